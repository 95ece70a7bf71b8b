#!/usr/bin/env python3
"""
Claim Store Lifecycle Rules
===========================
Services that move a claim through its lifecycle: issue, defendant linking,
more-time requests, defendant and claimant responses, offers and settlement
agreements, county court judgments and re-determinations, plus the routing
of rejected claims to mediation or directions.

Every state-changing operation persists the claim (as CCD case data),
records the CCD event, writes an audit entry and publishes an internal
event for the document and notification handlers.

Usage:
    repository = ClaimRepository(store)
    ccd = CCDEventProducer(store)
    claims = ClaimService(repository, ccd, EventPublisher())
    claim = claims.save_claim("user-1", claim_data)
"""

from __future__ import annotations

import logging
import secrets
import uuid
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional

import httpx

from claimstore_ccd import CaseEventMapper, ClaimMapper
from claimstore_retry import with_retry
from claimstore_store import Store
from claimstore_types import (
    AgreementCountersignedEvent,
    BadRequestException,
    CaseEvent,
    Claim,
    ClaimantResponseEvent,
    ClaimData,
    ClaimDocumentCollection,
    ClaimDocumentType,
    ClaimIssuedEvent,
    ClaimState,
    ConflictException,
    CoreCaseDataStoreException,
    CountersignSettlementAgreementEvent,
    CountyCourtJudgment,
    CountyCourtJudgmentEvent,
    CountyCourtJudgmentType,
    DefenceType,
    DefendantResponseEvent,
    DirectionsQuestionnaire,
    ForbiddenActionException,
    FormaliseOption,
    FullAdmissionResponse,
    FullDefenceResponse,
    MadeBy,
    MoreTimeAlreadyRequestedException,
    MoreTimeRequestedAfterDeadlineException,
    MoreTimeRequestedEvent,
    NotFoundException,
    Offer,
    OfferAcceptedEvent,
    OfferMadeEvent,
    OfferRejectedEvent,
    PartAdmissionResponse,
    ReDetermination,
    ReDeterminationEvent,
    ResponseAcceptation,
    ResponseRejection,
    Settlement,
    SettlementAgreementRejectedEvent,
    VALID_STATE_TRANSITIONS,
    YesNoOption,
    is_company_or_organisation,
)

logger = logging.getLogger("claimstore")

CITIZEN_REFERENCE_PREFIX = "000MC"
LEGAL_REP_REFERENCE_PREFIX = "000LR"

# Unambiguous characters for defendant PINs (no 0/O, 1/I/L)
PIN_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"
PIN_LENGTH = 8

DEFAULT_PILOT_COURTS = ("Birmingham", "Manchester", "Edmonton")


def generate_pin() -> str:
    return "".join(secrets.choice(PIN_ALPHABET) for _ in range(PIN_LENGTH))


def next_working_day(day: date) -> date:
    """Roll a date forward off Saturday and Sunday."""
    while day.weekday() >= 5:
        day += timedelta(days=1)
    return day


def calculate_response_deadline(issued_on: date, service_days: int, response_days: int) -> date:
    """Issue date + deemed service + response period, landing on a working day."""
    return next_working_day(issued_on + timedelta(days=service_days + response_days))


# ============================================================================
# EVENTS
# ============================================================================

class EventPublisher:
    """In-process publish/subscribe keyed by event class. Handlers run synchronously."""

    def __init__(self):
        self._handlers: Dict[type, List[Callable[[Any], None]]] = {}

    def subscribe(self, event_type: type, handler: Callable[[Any], None]):
        self._handlers.setdefault(event_type, []).append(handler)

    def publish(self, event: Any):
        handlers = self._handlers.get(type(event), [])
        logger.info(f"Publishing {type(event).__name__} to {len(handlers)} handler(s)")
        for handler in handlers:
            handler(event)


class CCDEventProducer:
    """
    Records CCD events against a claim. When a CCD base URL is configured the
    mapped case data is also submitted to CCD; submission runs before the
    claim is stored so a CCD failure leaves nothing behind.
    """

    def __init__(self, store: Store, ccd_url: Optional[str] = None, timeout: float = 10.0):
        self.store = store
        self.ccd_url = ccd_url.rstrip("/") if ccd_url else None
        self.timeout = timeout
        self.mapper = ClaimMapper()

    def submit(self, claim: Claim, events: Iterable[CaseEvent], authorisation: Optional[str] = None):
        """Send the events to CCD. No-op without a CCD base URL."""
        if not self.ccd_url:
            return
        case_data = self.mapper.to(claim)
        for event in events:
            try:
                self._submit(claim.external_id, event, case_data, authorisation)
            except httpx.HTTPError as e:
                logger.error(f"CCD submission of {event.value} for {claim.external_id} failed: {e}")
                raise CoreCaseDataStoreException(f"Failed to submit {event.value} to CCD") from e

    def record(self, claim: Claim, events: Iterable[CaseEvent]):
        state = self.mapper.to(claim).get("state")
        for event in events:
            self.store.publish_event(
                f"ccd.{event.value}",
                {"event": event.value, "reference_number": claim.reference_number, "state": state},
                external_id=claim.external_id,
            )

    @with_retry(retry_on=(httpx.TransportError,))
    def _submit(self, external_id: str, event: CaseEvent, case_data: Dict[str, Any], authorisation: Optional[str]):
        headers = {"Authorization": authorisation} if authorisation else {}
        response = httpx.post(
            f"{self.ccd_url}/cases/{external_id}/events",
            json={"event": {"id": event.value}, "data": case_data},
            headers=headers,
            timeout=self.timeout,
        )
        response.raise_for_status()


# ============================================================================
# REPOSITORY
# ============================================================================

class ClaimRepository:
    """Loads and saves domain claims through their CCD representation."""

    def __init__(self, store: Store):
        self.store = store
        self.mapper = ClaimMapper()

    def get(self, external_id: str) -> Claim:
        case_data = self.store.get_claim_by_external_id(external_id)
        if case_data is None:
            raise NotFoundException(f"Claim not found by external id {external_id}")
        return self.mapper.from_(case_data)

    def get_by_reference(self, reference_number: str) -> Claim:
        case_data = self.store.get_claim_by_reference(reference_number)
        if case_data is None:
            raise NotFoundException(f"Claim not found by claim reference {reference_number}")
        return self.mapper.from_(case_data)

    def exists(self, external_id: str) -> bool:
        return self.store.get_claim_by_external_id(external_id) is not None

    def create(self, claim: Claim):
        self.store.save_claim(self.mapper.to(claim))

    def save(self, claim: Claim):
        if not self.store.update_claim(self.mapper.to(claim)):
            raise NotFoundException(f"Claim not found by external id {claim.external_id}")

    def by_submitter(self, submitter_id: str) -> List[Claim]:
        return [self.mapper.from_(c) for c in self.store.list_claims_by_submitter(submitter_id)]

    def by_defendant(self, defendant_id: str) -> List[Claim]:
        return [self.mapper.from_(c) for c in self.store.list_claims_by_defendant(defendant_id)]

    def by_letter_holder(self, letter_holder_id: str) -> List[Claim]:
        return [self.mapper.from_(c) for c in self.store.list_claims_by_letter_holder(letter_holder_id)]


def transition(claim: Claim, new_state: ClaimState):
    """Move the claim to new_state, enforcing VALID_STATE_TRANSITIONS."""
    if claim.state == new_state:
        return
    allowed = VALID_STATE_TRANSITIONS.get(claim.state.value, set())
    if new_state.value not in allowed:
        raise ConflictException(
            f"Claim {claim.reference_number} cannot move from {claim.state.value} to {new_state.value}"
        )
    claim.state = new_state


class _LifecycleService:
    """Shared collaborators for the lifecycle services."""

    def __init__(self, repository: ClaimRepository, ccd: CCDEventProducer, publisher: EventPublisher):
        self.repository = repository
        self.ccd = ccd
        self.publisher = publisher
        self.store = repository.store

    def _record(self, claim: Claim, events: Iterable[CaseEvent], /, action: str, actor: str,
                authorisation: Optional[str] = None, **detail):
        events = list(events)
        self.ccd.submit(claim, events, authorisation)
        self.repository.save(claim)
        self.ccd.record(claim, events)
        self.store.audit(action, {"external_id": claim.external_id,
                                  "reference_number": claim.reference_number, **detail}, actor=actor)


# ============================================================================
# DIRECTIONS QUESTIONNAIRE
# ============================================================================

class DirectionsQuestionnaireService:
    """Routing of rejected claims and hearing court preferences."""

    def __init__(self, pilot_courts: Iterable[str] = DEFAULT_PILOT_COURTS):
        self.pilot_courts = {c.strip().lower() for c in pilot_courts if c.strip()}

    def is_pilot_court(self, court_name: Optional[str]) -> bool:
        return bool(court_name) and court_name.strip().lower() in self.pilot_courts

    def prepare_case_event(self, response_rejection: ResponseRejection) -> Optional[CaseEvent]:
        """
        Mediation takes priority; otherwise a pilot hearing court assigns the
        claim for directions. Returns None when neither applies.
        """
        dq = response_rejection.directions_questionnaire
        if dq is None:
            raise ValueError("Expected directions questionnaire is not present")

        if response_rejection.free_mediation == YesNoOption.YES:
            return CaseEvent.REFERRED_TO_MEDIATION

        if self.is_pilot_court(_hearing_court(dq)):
            return CaseEvent.ASSIGN_FOR_DIRECTIONS

        return None

    def get_preferred_court(self, claim: Claim) -> Optional[str]:
        if is_company_or_organisation(claim.claim_data.defendant):
            if claim.claimant_response is None:
                raise ConflictException("No preferred court as claimant response is not rejection.")
            return self.get_claimant_hearing_court(claim.claimant_response)
        if claim.response is None:
            raise ConflictException("No preferred court as defendant has not responded")
        return self.get_defendant_hearing_court(claim.response)

    def get_defendant_hearing_court(self, response) -> Optional[str]:
        if isinstance(response, (FullDefenceResponse, PartAdmissionResponse)):
            return _hearing_court(response.directions_questionnaire)
        raise ConflictException("No preferred court as defendant response is full admission")

    def get_claimant_hearing_court(self, claimant_response) -> Optional[str]:
        if isinstance(claimant_response, ResponseRejection):
            return _hearing_court(claimant_response.directions_questionnaire)
        raise ConflictException("No preferred court as claimant response is not rejection.")


def _hearing_court(dq: Optional[DirectionsQuestionnaire]) -> Optional[str]:
    if dq is None:
        raise ConflictException("No preferred court as directions questionnaire is not present")
    if dq.hearing_location is None:
        return None
    return dq.hearing_location.court_name or None


# ============================================================================
# CLAIMS
# ============================================================================

class ClaimService(_LifecycleService):

    def __init__(self, repository: ClaimRepository, ccd: CCDEventProducer, publisher: EventPublisher,
                 service_days: int = 5, response_days: int = 14, more_time_days: int = 14):
        super().__init__(repository, ccd, publisher)
        self.service_days = service_days
        self.response_days = response_days
        self.more_time_days = more_time_days

    def get_claim_by_external_id(self, external_id: str) -> Claim:
        return self.repository.get(external_id)

    def get_claim_by_reference(self, reference_number: str) -> Claim:
        return self.repository.get_by_reference(reference_number)

    def get_claims_by_submitter(self, submitter_id: str) -> List[Claim]:
        return self.repository.by_submitter(submitter_id)

    def get_claims_by_defendant(self, defendant_id: str) -> List[Claim]:
        return self.repository.by_defendant(defendant_id)

    def save_claim(self, submitter_id: str, claim_data: ClaimData, submitter_email: Optional[str] = None,
                   authorisation: Optional[str] = None) -> Claim:
        """Issue a claim: reference number, issue date, response deadline and, for citizens, a PIN."""
        if not claim_data.claimants or not claim_data.defendants:
            raise BadRequestException("Claim must have at least one claimant and one defendant")
        if self.repository.exists(claim_data.external_id):
            raise ConflictException(f"Claim already exists for external id {claim_data.external_id}")

        represented = claim_data.claimant.representative is not None
        prefix = LEGAL_REP_REFERENCE_PREFIX if represented else CITIZEN_REFERENCE_PREFIX
        issued_on = date.today()

        claim = Claim(
            external_id=claim_data.external_id,
            claim_data=claim_data,
            submitter_id=submitter_id,
            submitter_email=submitter_email,
            reference_number=self.store.next_reference_number(prefix),
            letter_holder_id=None if represented else f"lh_{uuid.uuid4().hex[:12]}",
            created_at=datetime.utcnow(),
            issued_on=issued_on,
            response_deadline=calculate_response_deadline(issued_on, self.service_days, self.response_days),
            state=ClaimState.OPEN,
        )
        pin = None if represented else generate_pin()

        self.ccd.submit(claim, [CaseEvent.SUBMIT_POST_PAYMENT], authorisation)
        self.repository.create(claim)
        self.ccd.record(claim, [CaseEvent.SUBMIT_POST_PAYMENT])
        self.store.audit("claim_issued", {
            "external_id": claim.external_id,
            "reference_number": claim.reference_number,
            "represented": represented,
        }, actor=submitter_id)
        logger.info(f"Claim issued: {claim.reference_number} ({claim.external_id})")

        self.publisher.publish(ClaimIssuedEvent(claim, pin=pin, authorisation=authorisation))
        return claim

    def link_defendant(self, external_id: str, defendant_id: str, defendant_email: Optional[str] = None) -> Claim:
        claim = self.repository.get(external_id)
        if claim.defendant_id and claim.defendant_id != defendant_id:
            raise ConflictException(
                f"Claim {claim.reference_number} has already been linked to defendant {claim.defendant_id}"
            )
        claim.defendant_id = defendant_id
        claim.defendant_email = defendant_email or claim.defendant_email
        self._record(claim, [CaseEvent.LINK_DEFENDANT], "defendant_linked", defendant_id)
        return claim

    def request_more_time(self, external_id: str, defendant_id: str) -> Claim:
        claim = self.repository.get(external_id)
        if claim.defendant_id != defendant_id:
            raise ForbiddenActionException(f"Claim {claim.reference_number} is not linked with defendant {defendant_id}")
        if claim.more_time_requested:
            raise MoreTimeAlreadyRequestedException("More time has already been requested")
        if claim.response is not None:
            raise ConflictException(f"Response for the claim {claim.reference_number} was already submitted")
        if claim.response_deadline and date.today() > claim.response_deadline:
            raise MoreTimeRequestedAfterDeadlineException("Cannot request more time after the response deadline")

        claim.more_time_requested = True
        claim.response_deadline = next_working_day(claim.response_deadline + timedelta(days=self.more_time_days))
        self._record(claim, [CaseEvent.MORE_TIME_REQUESTED_ONLINE], "more_time_requested", defendant_id,
                     new_deadline=claim.response_deadline.isoformat())
        self.publisher.publish(MoreTimeRequestedEvent(claim, claim.response_deadline))
        return claim

    def save_claim_documents(self, external_id: str, collection: ClaimDocumentCollection,
                             document_type: ClaimDocumentType, authorisation: Optional[str] = None) -> Claim:
        claim = self.repository.get(external_id)
        claim.claim_document_collection = collection
        self._record(claim, [CaseEventMapper.map(document_type)], "document_uploaded", "system",
                     authorisation, document_type=document_type.value)
        return claim

    def save_county_court_judgment(self, external_id: str, ccj: CountyCourtJudgment, submitter_id: str,
                                   authorisation: Optional[str] = None) -> Claim:
        claim = self.repository.get(external_id)
        if claim.submitter_id != submitter_id:
            raise ForbiddenActionException(f"Claim {claim.reference_number} does not belong to user {submitter_id}")
        if claim.county_court_judgment is not None:
            raise ConflictException(
                f"County Court Judgment for the claim {claim.reference_number} has been already submitted"
            )

        if ccj.ccj_type == CountyCourtJudgmentType.DEFAULT:
            if claim.response is not None:
                raise ForbiddenActionException(f"Response for the claim {claim.reference_number} was submitted")
            if claim.response_deadline is None or date.today() <= claim.response_deadline:
                raise ForbiddenActionException(
                    f"County Court Judgment for the claim {claim.reference_number} cannot be requested yet"
                )
            event = CaseEvent.DEFAULT_CCJ_REQUESTED
        else:
            if claim.response is None:
                raise ForbiddenActionException(
                    f"County Court Judgment for the claim {claim.reference_number} requires a defendant response"
                )
            event = CaseEvent.CCJ_REQUESTED

        transition(claim, ClaimState.JUDGMENT_REQUESTED)
        claim.county_court_judgment = ccj
        claim.county_court_judgment_requested_at = datetime.utcnow()
        self._record(claim, [event], "ccj_requested", submitter_id, authorisation, ccj_type=ccj.ccj_type.value)
        self.publisher.publish(CountyCourtJudgmentEvent(claim, authorisation))
        return claim

    def save_re_determination(self, external_id: str, re_determination: ReDetermination,
                              authorisation: Optional[str] = None) -> Claim:
        claim = self.repository.get(external_id)
        if claim.county_court_judgment is None:
            raise ConflictException(f"Re-determination for the claim {claim.reference_number} requires a judgment")
        if claim.re_determination is not None:
            raise ConflictException(
                f"Re-determination for the claim {claim.reference_number} has been already requested"
            )
        claim.re_determination = re_determination
        claim.re_determination_requested_at = datetime.utcnow()
        event = (CaseEvent.REFER_TO_JUDGE_BY_CLAIMANT if re_determination.party_type == MadeBy.CLAIMANT
                 else CaseEvent.REFER_TO_JUDGE_BY_DEFENDANT)
        self._record(claim, [event], "re_determination_requested", re_determination.party_type.value, authorisation)
        self.publisher.publish(ReDeterminationEvent(claim, re_determination.party_type))
        return claim

    def paid_in_full(self, external_id: str, submitter_id: str) -> Claim:
        """Claimant confirms payment before judgment; closes the claim."""
        claim = self.repository.get(external_id)
        if claim.submitter_id != submitter_id:
            raise ForbiddenActionException(f"Claim {claim.reference_number} does not belong to user {submitter_id}")
        transition(claim, ClaimState.SETTLED)
        claim.settlement_reached_at = datetime.utcnow()
        self._record(claim, [CaseEvent.SETTLED_PRE_JUDGMENT], "paid_in_full", submitter_id)
        return claim


# ============================================================================
# RESPONSES
# ============================================================================

class ResponseService(_LifecycleService):
    """Defendant responses."""

    def __init__(self, repository: ClaimRepository, ccd: CCDEventProducer, publisher: EventPublisher,
                 dq_service: DirectionsQuestionnaireService):
        super().__init__(repository, ccd, publisher)
        self.dq_service = dq_service

    def save(self, external_id: str, defendant_id: str, response, authorisation: Optional[str] = None) -> Claim:
        claim = self.repository.get(external_id)
        if claim.defendant_id != defendant_id:
            raise ForbiddenActionException(f"Claim {claim.reference_number} is not linked with defendant {defendant_id}")
        if claim.response is not None:
            raise ConflictException(f"Response for the claim {claim.reference_number} was already submitted")
        if claim.county_court_judgment is not None:
            raise ConflictException(
                f"County Court Judgment for the claim {claim.reference_number} has been already requested"
            )

        transition(claim, ClaimState.RESPONDED)
        claim.response = response
        claim.responded_at = datetime.utcnow()
        if (not is_company_or_organisation(claim.claim_data.defendant)
                and getattr(response, "directions_questionnaire", None) is not None):
            claim.preferred_court = self.dq_service.get_defendant_hearing_court(response)

        event = self.case_event_for(response)
        self._record(claim, [event], "defendant_responded", defendant_id, authorisation,
                     response_type=response.response_type)
        logger.info(f"Defendant response saved for {claim.reference_number}: {event.value}")
        self.publisher.publish(DefendantResponseEvent(claim, authorisation))
        return claim

    @staticmethod
    def case_event_for(response) -> CaseEvent:
        if isinstance(response, FullDefenceResponse):
            if response.defence_type == DefenceType.ALREADY_PAID:
                return CaseEvent.ALREADY_PAID
            return CaseEvent.DISPUTE
        if isinstance(response, FullAdmissionResponse):
            return CaseEvent.FULL_ADMISSION
        if isinstance(response, PartAdmissionResponse):
            if response.payment_declaration is not None:
                return CaseEvent.ALREADY_PAID
            return CaseEvent.PART_ADMISSION
        raise BadRequestException(f"Unsupported response type {type(response).__name__}")


class ClaimantResponseService(_LifecycleService):
    """Claimant's answer to the defendant's response."""

    def __init__(self, repository: ClaimRepository, ccd: CCDEventProducer, publisher: EventPublisher,
                 dq_service: DirectionsQuestionnaireService):
        super().__init__(repository, ccd, publisher)
        self.dq_service = dq_service

    def save(self, external_id: str, claimant_id: str, claimant_response,
             authorisation: Optional[str] = None) -> Claim:
        claim = self.repository.get(external_id)
        if claim.submitter_id != claimant_id:
            raise ForbiddenActionException(f"Claim {claim.reference_number} does not belong to user {claimant_id}")
        if claim.response is None:
            raise BadRequestException(f"Claim {claim.reference_number} does not have a defendant response")
        if claim.claimant_response is not None:
            raise ConflictException(
                f"Claimant response for the claim {claim.reference_number} was already submitted"
            )

        claim.claimant_response = claimant_response
        claim.claimant_responded_at = datetime.utcnow()

        if isinstance(claimant_response, ResponseAcceptation):
            events = self._accept(claim, claimant_response)
        else:
            events = self._reject(claim, claimant_response)

        self._record(claim, events, "claimant_responded", claimant_id, authorisation,
                     response_type=claimant_response.type, events=[e.value for e in events])
        self.publisher.publish(ClaimantResponseEvent(claim, authorisation))
        return claim

    def _accept(self, claim: Claim, acceptation: ResponseAcceptation) -> List[CaseEvent]:
        transition(claim, ClaimState.CLAIMANT_RESPONDED)
        events = [CaseEvent.CLAIMANT_RESPONSE_ACCEPTATION]

        if (is_company_or_organisation(claim.claim_data.defendant)
                and acceptation.claimant_payment_intention is not None):
            events.append(CaseEvent.REJECT_ORGANISATION_PAYMENT_PLAN)

        if acceptation.formalise_option == FormaliseOption.REFER_TO_JUDGE:
            events.append(CaseEvent.REFER_TO_JUDGE_BY_CLAIMANT)
        elif acceptation.formalise_option == FormaliseOption.SETTLEMENT:
            claim.settlement = self._settlement_from_admission(claim, acceptation)
            events.append(CaseEvent.AGREEMENT_SIGNED_BY_CLAIMANT)
        return events

    def _settlement_from_admission(self, claim: Claim, acceptation: ResponseAcceptation) -> Settlement:
        """Defendant's admission as an offer, signed by the claimant."""
        intention = acceptation.claimant_payment_intention or getattr(claim.response, "payment_intention", None)
        if isinstance(claim.response, PartAdmissionResponse):
            content = f"The defendant will pay £{claim.response.amount:,.2f}"
        else:
            content = "The defendant will pay the full amount claimed"
        settlement = Settlement()
        settlement.make_offer(Offer(content=content, payment_intention=intention), MadeBy.DEFENDANT)
        settlement.accept(MadeBy.CLAIMANT)
        return settlement

    def _reject(self, claim: Claim, rejection: ResponseRejection) -> List[CaseEvent]:
        events = [CaseEvent.CLAIMANT_RESPONSE_REJECTION]
        new_state = ClaimState.CLAIMANT_RESPONDED

        if rejection.directions_questionnaire is not None:
            routing = self.dq_service.prepare_case_event(rejection)
            if routing == CaseEvent.REFERRED_TO_MEDIATION:
                new_state = ClaimState.REFERRED_TO_MEDIATION
            elif routing == CaseEvent.ASSIGN_FOR_DIRECTIONS:
                new_state = ClaimState.AWAITING_DIRECTIONS
            if routing is not None:
                events.append(routing)
            # full admissions carry no questionnaire
            if (is_company_or_organisation(claim.claim_data.defendant)
                    or getattr(claim.response, "directions_questionnaire", None) is not None):
                claim.preferred_court = self.dq_service.get_preferred_court(claim)

        transition(claim, new_state)
        return events


# ============================================================================
# SETTLEMENT
# ============================================================================

class OffersService(_LifecycleService):
    """
    Offers journey: a party makes an offer, the claimant accepts or either
    party rejects, and the defendant countersigns the accepted offer.
    """

    OFFER_EVENTS = {
        MadeBy.CLAIMANT: CaseEvent.OFFER_MADE_BY_CLAIMANT,
        MadeBy.DEFENDANT: CaseEvent.OFFER_MADE_BY_DEFENDANT,
    }
    REJECT_EVENTS = {
        MadeBy.CLAIMANT: CaseEvent.OFFER_REJECTED_BY_CLAIMANT,
        MadeBy.DEFENDANT: CaseEvent.OFFER_REJECTED_BY_DEFENDANT,
    }

    def make_offer(self, external_id: str, offer: Offer, party: MadeBy,
                   authorisation: Optional[str] = None) -> Claim:
        claim = self._open_claim(external_id, party)
        settlement = claim.settlement or Settlement()
        settlement.make_offer(offer, party)
        claim.settlement = settlement
        self._record(claim, [self.OFFER_EVENTS[party]], "offer_made", party.value, authorisation)
        self.publisher.publish(OfferMadeEvent(claim, party))
        return claim

    def accept(self, external_id: str, party: MadeBy, authorisation: Optional[str] = None) -> Claim:
        self._assert_party(party)
        if party != MadeBy.CLAIMANT:
            raise ForbiddenActionException("Only the claimant can accept an offer")
        claim = self._open_claim(external_id, party)
        self._settlement(claim).accept(party)
        self._record(claim, [CaseEvent.OFFER_SIGNED_BY_CLAIMANT], "offer_accepted", party.value, authorisation)
        self.publisher.publish(OfferAcceptedEvent(claim, party))
        return claim

    def reject(self, external_id: str, party: MadeBy, authorisation: Optional[str] = None) -> Claim:
        claim = self._open_claim(external_id, party)
        self._settlement(claim).reject(party)
        self._record(claim, [self.REJECT_EVENTS[party]], "offer_rejected", party.value, authorisation)
        self.publisher.publish(OfferRejectedEvent(claim, party))
        return claim

    def countersign(self, external_id: str, party: MadeBy, authorisation: Optional[str] = None) -> Claim:
        self._assert_party(party)
        if party != MadeBy.DEFENDANT:
            raise ForbiddenActionException("Only the defendant can countersign an agreement")
        claim = self._open_claim(external_id, party)
        self._settlement(claim).countersign(party)
        transition(claim, ClaimState.SETTLED)
        claim.settlement_reached_at = datetime.utcnow()
        self._record(claim, [CaseEvent.OFFER_COUNTER_SIGNED_BY_DEFENDANT], "offer_countersigned",
                     party.value, authorisation)
        self.publisher.publish(AgreementCountersignedEvent(claim, party, authorisation))
        return claim

    def _assert_party(self, party: MadeBy):
        if party not in self.OFFER_EVENTS:
            raise BadRequestException(f"Party {party.value} cannot take part in offers")

    def _open_claim(self, external_id: str, party: MadeBy) -> Claim:
        self._assert_party(party)
        claim = self.repository.get(external_id)
        if claim.settlement_reached_at is not None:
            raise ConflictException(f"Settlement for claim {claim.reference_number} has been already reached")
        return claim

    @staticmethod
    def _settlement(claim: Claim) -> Settlement:
        if claim.settlement is None:
            raise ConflictException(f"Settlement for claim {claim.reference_number} does not exist")
        return claim.settlement


class SettlementAgreementService(_LifecycleService):
    """Settlement agreements created when the claimant accepts an admission."""

    def countersign(self, external_id: str, authorisation: Optional[str] = None) -> Claim:
        claim = self._claim_with_agreement(external_id)
        claim.settlement.countersign(MadeBy.DEFENDANT)
        transition(claim, ClaimState.SETTLED)
        claim.settlement_reached_at = datetime.utcnow()
        self._record(claim, [CaseEvent.AGREEMENT_COUNTER_SIGNED_BY_DEFENDANT], "agreement_countersigned",
                     "defendant", authorisation)
        self.publisher.publish(CountersignSettlementAgreementEvent(claim, authorisation))
        return claim

    def reject(self, external_id: str, authorisation: Optional[str] = None) -> Claim:
        claim = self._claim_with_agreement(external_id)
        claim.settlement.reject_agreement(MadeBy.DEFENDANT)
        self._record(claim, [CaseEvent.AGREEMENT_REJECTED_BY_DEFENDANT], "agreement_rejected",
                     "defendant", authorisation)
        self.publisher.publish(SettlementAgreementRejectedEvent(claim))
        return claim

    def _claim_with_agreement(self, external_id: str) -> Claim:
        claim = self.repository.get(external_id)
        if claim.settlement is None:
            raise NotFoundException("Settlement Agreement does not exist for this claim")
        if claim.settlement_reached_at is not None:
            raise ConflictException(f"Settlement for claim {claim.reference_number} has been already reached")
        return claim
