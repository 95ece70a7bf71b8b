#!/usr/bin/env python3
"""
Claim Store Notifications
=========================
Email delivery with retry, templated notifications for lifecycle events,
and bulk printing of defendant PIN letters through the send-letter service.

Usage:
    email = EmailService(SmtpMailSender("localhost", 25))
    notifications = NotificationService(email, "noreply@example.com")
    notifications.notify("claim_issued_claimant", "claimant@example.com", {"claim_reference": "000MC001"})
"""

from __future__ import annotations

import base64
import logging
import smtplib
from email.message import EmailMessage
from typing import Any, Callable, Dict, List, Optional

import httpx

from claimstore_retry import with_retry
from claimstore_rules import EventPublisher
from claimstore_types import (
    PDF,
    AgreementCountersignedEvent,
    BulkPrintException,
    Claim,
    ClaimantResponseEvent,
    ClaimDocumentType,
    ClaimIssuedEvent,
    CountersignSettlementAgreementEvent,
    CountyCourtJudgmentEvent,
    DefendantResponseEvent,
    DocumentGeneratedEvent,
    EmailAttachment,
    EmailData,
    EmailSendFailedException,
    MadeBy,
    MoreTimeRequestedEvent,
    OfferAcceptedEvent,
    OfferMadeEvent,
    OfferRejectedEvent,
    ReDeterminationEvent,
    SettlementAgreementRejectedEvent,
)

logger = logging.getLogger("claimstore-email")

Telemetry = Callable[[str, Dict[str, str]], None]


def _log_telemetry(name: str, properties: Dict[str, str]):
    logger.info(f"Telemetry event {name}: {properties}")


# ============================================================================
# EMAIL DELIVERY
# ============================================================================

class SmtpMailSender:
    """Delivers MIME messages over SMTP."""

    def __init__(self, host: str, port: int = 25, username: Optional[str] = None,
                 password: Optional[str] = None, use_tls: bool = False, timeout: float = 10.0):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    def send(self, message: EmailMessage):
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            if self.use_tls:
                smtp.starttls()
            if self.username:
                smtp.login(self.username, self.password or "")
            smtp.send_message(message)


class LoggingMailSender:
    """Used when no SMTP host is configured; messages are logged, not sent."""

    def send(self, message: EmailMessage):
        logger.info(f"Mail disabled; not sending {message['Subject']!r} to {message['To']}")


class EmailService:
    """
    Sends an email, retrying transport failures. When every attempt fails the
    failure is logged and tracked; it propagates only when event operations
    run asynchronously, so a synchronous request is not failed by a mail outage.
    """

    def __init__(self, sender, telemetry: Optional[Telemetry] = None,
                 async_event_operations_enabled: bool = False):
        self.sender = sender
        self.telemetry = telemetry or _log_telemetry
        self.async_event_operations_enabled = async_event_operations_enabled

    def send_email(self, from_address: str, email_data: EmailData):
        try:
            self._send_with_retry(from_address, email_data)
        except EmailSendFailedException as e:
            self.recover(e, from_address, email_data)

    @with_retry(retry_on=(EmailSendFailedException,))
    def _send_with_retry(self, from_address: str, email_data: EmailData):
        message = build_message(from_address, email_data)
        try:
            self.sender.send(message)
        except (smtplib.SMTPException, OSError) as e:
            raise EmailSendFailedException(f"Failed to send email: {e}") from e

    def recover(self, exception: EmailSendFailedException, from_address: str, email_data: EmailData):
        logger.error(
            "sendEmail failure: failed to send email with details: %s due to %s",
            _describe(from_address, email_data), exception,
        )
        self.telemetry("Notification - failure", {"EmailSubject": email_data.subject})
        if self.async_event_operations_enabled:
            raise exception


def _describe(from_address: str, email_data: EmailData) -> str:
    names = [a.filename for a in email_data.attachments]
    return f"from={from_address} to={email_data.to} subject={email_data.subject!r} attachments={names}"


def build_message(from_address: str, email_data: EmailData) -> EmailMessage:
    message = EmailMessage()
    message["From"] = from_address
    message["To"] = email_data.to
    message["Subject"] = email_data.subject
    message.set_content(email_data.message)
    for attachment in email_data.attachments:
        maintype, _, subtype = attachment.content_type.partition("/")
        message.add_attachment(attachment.data, maintype=maintype, subtype=subtype or "octet-stream",
                               filename=attachment.filename)
    return message


# ============================================================================
# TEMPLATES
# ============================================================================

TEMPLATES: Dict[str, Dict[str, str]] = {
    "claim_issued_claimant": {
        "subject": "Your claim {claim_reference} has been issued",
        "body": "Dear {claimant_name},\n\nYour claim against {defendant_name} has been issued.\n"
                "Claim number: {claim_reference}\nThe defendant must respond by {response_deadline}.\n\n"
                "Track your claim at {frontend_base_url}",
    },
    "claim_issued_defendant": {
        "subject": "You've been sent a money claim: {claim_reference}",
        "body": "Dear {defendant_name},\n\n{claimant_name} has made a claim against you.\n"
                "Respond at {respond_to_claim_url} using claim number {claim_reference} "
                "and security code {pin}.\nYou must respond by {response_deadline}.",
    },
    "claim_issued_staff": {
        "subject": "Claim issued: {claim_reference}",
        "body": "Claim {claim_reference} was issued by {claimant_name} against {defendant_name}.",
    },
    "response_submitted_claimant": {
        "subject": "{defendant_name} has responded to your claim {claim_reference}",
        "body": "Dear {claimant_name},\n\n{defendant_name} has responded to your claim.\n"
                "Sign in at {frontend_base_url} to see the response.",
    },
    "response_submitted_staff": {
        "subject": "Defendant response received: {claim_reference}",
        "body": "A {response_type} response was submitted for claim {claim_reference}.",
    },
    "more_time_requested_claimant": {
        "subject": "{defendant_name} has requested more time: {claim_reference}",
        "body": "Dear {claimant_name},\n\n{defendant_name} has been given more time to respond. "
                "They must now respond by {response_deadline}.",
    },
    "more_time_requested_defendant": {
        "subject": "You've been given more time to respond: {claim_reference}",
        "body": "Dear {defendant_name},\n\nYou now have until {response_deadline} to respond to claim {claim_reference}.",
    },
    "claimant_response_defendant": {
        "subject": "{claimant_name} has responded to your response: {claim_reference}",
        "body": "Dear {defendant_name},\n\n{claimant_name} has responded to your response to claim "
                "{claim_reference}. Sign in at {frontend_base_url} to see what happens next.",
    },
    "offer_made": {
        "subject": "You've received a settlement offer: {claim_reference}",
        "body": "{party_name} has made an offer to settle claim {claim_reference}.\n"
                "Sign in at {frontend_base_url} to respond.",
    },
    "offer_accepted": {
        "subject": "Your offer has been accepted: {claim_reference}",
        "body": "{party_name} has accepted your offer to settle claim {claim_reference}.\n"
                "Sign in at {frontend_base_url} to sign the settlement agreement.",
    },
    "offer_rejected": {
        "subject": "Your offer has been rejected: {claim_reference}",
        "body": "{party_name} has rejected your offer to settle claim {claim_reference}.",
    },
    "agreement_countersigned": {
        "subject": "Settlement agreement signed: {claim_reference}",
        "body": "Both parties have signed the settlement agreement for claim {claim_reference}.",
    },
    "agreement_rejected": {
        "subject": "Settlement agreement rejected: {claim_reference}",
        "body": "Dear {claimant_name},\n\n{defendant_name} has rejected the settlement agreement for claim "
                "{claim_reference}. You can now request a County Court Judgment.",
    },
    "ccj_requested": {
        "subject": "County Court Judgment requested: {claim_reference}",
        "body": "Dear {claimant_name},\n\nYour request for a County Court Judgment against {defendant_name} "
                "has been received.",
    },
    "re_determination_staff": {
        "subject": "Re-determination requested: {claim_reference}",
        "body": "The {party} asked for the judgment on claim {claim_reference} to be re-determined.",
    },
    "bulk_print_failed_staff": {
        "subject": "Print failure: {claim_reference}",
        "body": "The PIN letter and sealed claim for claim {claim_reference} could not be printed. "
                "They are attached; please post them to the defendant.",
    },
}


class _Placeholders(dict):
    def __missing__(self, key):
        return "{" + key + "}"


def render_template(template_id: str, context: Dict[str, Any]) -> Dict[str, str]:
    if template_id not in TEMPLATES:
        raise ValueError(f"Unknown email template: {template_id}")
    template = TEMPLATES[template_id]
    values = _Placeholders({k: "" if v is None else v for k, v in context.items()})
    return {"subject": template["subject"].format_map(values), "body": template["body"].format_map(values)}


def claim_context(claim: Claim, frontend_base_url: str = "", **extra) -> Dict[str, Any]:
    claimant = claim.claim_data.claimant
    defendant = claim.claim_data.defendant
    context = {
        "claim_reference": claim.reference_number,
        "claimant_name": claimant.name if claimant else None,
        "defendant_name": defendant.name if defendant else None,
        "response_deadline": (f"{claim.response_deadline.day} {claim.response_deadline.strftime('%B %Y')}"
                              if claim.response_deadline else None),
        "frontend_base_url": frontend_base_url,
    }
    context.update(extra)
    return context


# ============================================================================
# NOTIFICATIONS
# ============================================================================

class NotificationService:

    def __init__(self, email_service: EmailService, from_address: str):
        self.email_service = email_service
        self.from_address = from_address

    def notify(self, template_id: str, to: Optional[str], context: Dict[str, Any],
               attachments: Optional[List[EmailAttachment]] = None):
        if not to:
            logger.info(f"Skipping {template_id} for {context.get('claim_reference')}: no recipient")
            return
        rendered = render_template(template_id, context)
        self.email_service.send_email(
            self.from_address,
            EmailData(to=to, subject=rendered["subject"], message=rendered["body"], attachments=attachments or []),
        )
        logger.info(f"Notification {template_id} sent for {context.get('claim_reference')}")


class NotificationHandler:
    """Sends the emails that follow each lifecycle event."""

    def __init__(self, notifications: NotificationService, staff_email: Optional[str] = None,
                 frontend_base_url: str = "", respond_to_claim_url: str = ""):
        self.notifications = notifications
        self.staff_email = staff_email
        self.frontend_base_url = frontend_base_url
        self.respond_to_claim_url = respond_to_claim_url

    def _context(self, claim: Claim, **extra) -> Dict[str, Any]:
        return claim_context(claim, self.frontend_base_url, respond_to_claim_url=self.respond_to_claim_url, **extra)

    def _party_email(self, claim: Claim, party: MadeBy) -> Optional[str]:
        return claim.submitter_email if party == MadeBy.CLAIMANT else claim.defendant_email

    def _party_name(self, claim: Claim, party: MadeBy) -> Optional[str]:
        person = claim.claim_data.claimant if party == MadeBy.CLAIMANT else claim.claim_data.defendant
        return person.name if person else None

    def on_claim_issued(self, event: ClaimIssuedEvent):
        claim = event.claim
        context = self._context(claim, pin=event.pin)
        self.notifications.notify("claim_issued_claimant", claim.submitter_email, context)
        if event.pin is not None:
            self.notifications.notify("claim_issued_defendant", claim.claim_data.defendant.email, context)
        self.notifications.notify("claim_issued_staff", self.staff_email, context)

    def on_defendant_response(self, event: DefendantResponseEvent):
        claim = event.claim
        context = self._context(claim, response_type=claim.response.response_type.replace("_", " "))
        self.notifications.notify("response_submitted_claimant", claim.submitter_email, context)
        self.notifications.notify("response_submitted_staff", self.staff_email, context)

    def on_more_time_requested(self, event: MoreTimeRequestedEvent):
        claim = event.claim
        context = self._context(claim)
        self.notifications.notify("more_time_requested_claimant", claim.submitter_email, context)
        self.notifications.notify("more_time_requested_defendant", claim.defendant_email, context)

    def on_claimant_response(self, event: ClaimantResponseEvent):
        claim = event.claim
        self.notifications.notify("claimant_response_defendant", claim.defendant_email, self._context(claim))

    def on_offer_made(self, event: OfferMadeEvent):
        self._notify_other_party("offer_made", event.claim, event.party)

    def on_offer_accepted(self, event: OfferAcceptedEvent):
        self._notify_other_party("offer_accepted", event.claim, event.party)

    def on_offer_rejected(self, event: OfferRejectedEvent):
        self._notify_other_party("offer_rejected", event.claim, event.party)

    def on_agreement_countersigned(self, event):
        claim = event.claim
        context = self._context(claim)
        self.notifications.notify("agreement_countersigned", claim.submitter_email, context)
        self.notifications.notify("agreement_countersigned", claim.defendant_email, context)

    def on_agreement_rejected(self, event: SettlementAgreementRejectedEvent):
        claim = event.claim
        self.notifications.notify("agreement_rejected", claim.submitter_email, self._context(claim))

    def on_county_court_judgment(self, event: CountyCourtJudgmentEvent):
        claim = event.claim
        self.notifications.notify("ccj_requested", claim.submitter_email, self._context(claim))

    def on_re_determination(self, event: ReDeterminationEvent):
        claim = event.claim
        self.notifications.notify("re_determination_staff", self.staff_email,
                                  self._context(claim, party=event.party.value))

    def _notify_other_party(self, template_id: str, claim: Claim, party: MadeBy):
        other = party.other()
        context = self._context(claim, party_name=self._party_name(claim, party))
        self.notifications.notify(template_id, self._party_email(claim, other), context)

    def register(self, publisher: EventPublisher):
        publisher.subscribe(ClaimIssuedEvent, self.on_claim_issued)
        publisher.subscribe(DefendantResponseEvent, self.on_defendant_response)
        publisher.subscribe(MoreTimeRequestedEvent, self.on_more_time_requested)
        publisher.subscribe(ClaimantResponseEvent, self.on_claimant_response)
        publisher.subscribe(OfferMadeEvent, self.on_offer_made)
        publisher.subscribe(OfferAcceptedEvent, self.on_offer_accepted)
        publisher.subscribe(OfferRejectedEvent, self.on_offer_rejected)
        publisher.subscribe(AgreementCountersignedEvent, self.on_agreement_countersigned)
        publisher.subscribe(CountersignSettlementAgreementEvent, self.on_agreement_countersigned)
        publisher.subscribe(SettlementAgreementRejectedEvent, self.on_agreement_rejected)
        publisher.subscribe(CountyCourtJudgmentEvent, self.on_county_court_judgment)
        publisher.subscribe(ReDeterminationEvent, self.on_re_determination)


# ============================================================================
# BULK PRINT
# ============================================================================

class BulkPrintStaffNotificationService:

    def __init__(self, notifications: NotificationService, staff_email: Optional[str]):
        self.notifications = notifications
        self.staff_email = staff_email

    def notify_failed_bulk_print(self, pin_letter: PDF, sealed_claim: PDF, claim: Claim):
        attachments = [
            EmailAttachment.pdf(pin_letter.data, pin_letter.filename),
            EmailAttachment.pdf(sealed_claim.data, sealed_claim.filename),
        ]
        self.notifications.notify("bulk_print_failed_staff", self.staff_email, claim_context(claim), attachments)


class BulkPrintService:
    """Posts the defendant's first-contact pack to the send-letter service."""

    def __init__(self, send_letter_url: str, staff_notifications: BulkPrintStaffNotificationService,
                 async_event_operations_enabled: bool = False, timeout: float = 10.0):
        self.send_letter_url = send_letter_url.rstrip("/")
        self.staff_notifications = staff_notifications
        self.async_event_operations_enabled = async_event_operations_enabled
        self.timeout = timeout

    def print(self, claim: Claim, pin_letter: PDF, sealed_claim: PDF):
        try:
            letter_id = self._send_letter(claim, [pin_letter, sealed_claim])
            logger.info(f"Letter {letter_id} sent for claim {claim.reference_number}")
        except httpx.HTTPError as e:
            logger.error(f"Bulk print of claim {claim.reference_number} failed: {e}")
            self.staff_notifications.notify_failed_bulk_print(pin_letter, sealed_claim, claim)
            if self.async_event_operations_enabled:
                raise BulkPrintException(f"Failed to print documents for claim {claim.reference_number}") from e

    @with_retry(retry_on=(httpx.TransportError,))
    def _send_letter(self, claim: Claim, documents: List[PDF]) -> Optional[str]:
        response = httpx.post(
            f"{self.send_letter_url}/letters",
            json={
                "documents": [base64.b64encode(d.data).decode("ascii") for d in documents],
                "additional_data": {
                    "letterType": "first-contact-pack",
                    "claimReferenceNumber": claim.reference_number,
                },
            },
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json().get("letter_id") if response.content else None


class DummyBulkPrintService:
    """Used when no send-letter service is configured."""

    def print(self, claim: Claim, pin_letter: PDF, sealed_claim: PDF):
        logger.info(f"Bulk print disabled; not printing documents for claim {claim.reference_number}")


class BulkPrintHandler:
    """Prints the PIN letter and sealed claim once both are generated."""

    def __init__(self, bulk_print):
        self.bulk_print = bulk_print

    def on_documents_generated(self, event: DocumentGeneratedEvent):
        by_type = {pdf.claim_document_type: pdf for pdf in event.documents}
        pin_letter = by_type.get(ClaimDocumentType.DEFENDANT_PIN_LETTER)
        sealed_claim = by_type.get(ClaimDocumentType.SEALED_CLAIM)
        if pin_letter is None or sealed_claim is None:
            return
        self.bulk_print.print(event.claim, pin_letter, sealed_claim)

    def register(self, publisher: EventPublisher):
        publisher.subscribe(DocumentGeneratedEvent, self.on_documents_generated)
