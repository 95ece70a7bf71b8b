"""
Retry with exponential backoff for outbound calls: mail transport,
send-letter service and CCD submissions.
"""

import functools
import logging
import time
from typing import Tuple, Type

logger = logging.getLogger("claimstore-retry")

# Retry config
DEFAULT_RETRIES = 2
DEFAULT_INITIAL_DELAY = 0.1
DEFAULT_MAX_DELAY = 0.5
DEFAULT_BACKOFF = 2.0


def _sync_retry_impl(
    fn,
    *args,
    retry_on: Tuple[Type[BaseException], ...],
    retries: int = DEFAULT_RETRIES,
    initial_delay: float = DEFAULT_INITIAL_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    backoff: float = DEFAULT_BACKOFF,
    **kwargs,
):
    """Call fn, retrying only the listed exception types."""
    delay = initial_delay
    for attempt in range(retries + 1):
        try:
            return fn(*args, **kwargs)
        except retry_on as e:
            if attempt >= retries:
                raise
            logger.warning("Retry %s/%s of %s after %s: %s", attempt + 1, retries, fn.__name__, type(e).__name__, e)
            time.sleep(delay)
            delay = min(delay * backoff, max_delay)


def with_retry(
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    retries: int = DEFAULT_RETRIES,
    initial_delay: float = DEFAULT_INITIAL_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    backoff: float = DEFAULT_BACKOFF,
):
    """Decorator: retry with exponential backoff, re-raising the last error."""

    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            return _sync_retry_impl(
                fn, *args, retry_on=retry_on, retries=retries, initial_delay=initial_delay,
                max_delay=max_delay, backoff=backoff, **kwargs
            )

        return wrapper

    return decorator
