#!/usr/bin/env python3
"""
Claim Store Domain Types
========================
Claims, parties, defendant and claimant responses, settlements, directions
questionnaires, judgments and the documents generated along the way.

Plain dataclasses; pydantic adapters provide JSON (de)serialisation for the
HTTP layer. The CCD representation lives in claimstore_ccd.py.

Usage:
    from claimstore_types import Claim, ClaimData, Individual, CaseEvent, ...
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import Field, TypeAdapter


# ============================================================================
# ENUMS
# ============================================================================

class YesNoOption(str, Enum):
    YES = "yes"
    NO = "no"

    @classmethod
    def from_bool(cls, value: bool) -> "YesNoOption":
        return cls.YES if value else cls.NO


class ClaimDocumentType(str, Enum):
    """Documents generated and stored against a claim."""
    SEALED_CLAIM = "sealed_claim"
    CLAIM_ISSUE_RECEIPT = "claim_issue_receipt"
    DEFENDANT_RESPONSE_RECEIPT = "defendant_response_receipt"
    CCJ_REQUEST = "ccj_request"
    SETTLEMENT_AGREEMENT = "settlement_agreement"
    DEFENDANT_PIN_LETTER = "defendant_pin_letter"
    CLAIMANT_DIRECTIONS_QUESTIONNAIRE = "claimant_directions_questionnaire"


class CaseEvent(str, Enum):
    """CCD event ids triggered by the claim lifecycle."""
    SUBMIT_PRE_PAYMENT = "SubmitPrePayment"
    SUBMIT_POST_PAYMENT = "SubmitPostPayment"
    LINK_DEFENDANT = "LinkDefendant"
    MORE_TIME_REQUESTED_ONLINE = "MoreTimeRequestedOnline"
    DEFAULT_CCJ_REQUESTED = "DefaultCCJRequested"
    DISPUTE = "DisputesAll"
    ALREADY_PAID = "StatesPaid"
    FULL_ADMISSION = "AdmitAll"
    PART_ADMISSION = "AdmitPart"
    DIRECTIONS_QUESTIONNAIRE_DEADLINE = "DirectionsQuestionnaireDeadline"
    CLAIMANT_RESPONSE_ACCEPTATION = "ClaimantAccepts"
    CLAIMANT_RESPONSE_REJECTION = "ClaimantRejects"
    OFFER_MADE_BY_CLAIMANT = "OfferMadeByClaimant"
    OFFER_MADE_BY_DEFENDANT = "OfferMadeByDefendant"
    OFFER_REJECTED_BY_CLAIMANT = "OfferRejectedByClaimant"
    OFFER_REJECTED_BY_DEFENDANT = "OfferRejectedByDefendant"
    OFFER_SIGNED_BY_CLAIMANT = "OfferSignedByClaimant"
    OFFER_COUNTER_SIGNED_BY_DEFENDANT = "OfferCounterSignedByDefendant"
    AGREEMENT_SIGNED_BY_CLAIMANT = "AgreementSignedByClaimant"
    AGREEMENT_COUNTER_SIGNED_BY_DEFENDANT = "AgreementCounterSignedByDefendant"
    AGREEMENT_REJECTED_BY_DEFENDANT = "AgreementRejectedByDefendant"
    SETTLED_PRE_JUDGMENT = "SettledPreJudgment"
    CCJ_REQUESTED = "CCJRequested"
    INTERLOCATORY_JUDGEMENT = "InterlocatoryJudgement"
    REJECT_ORGANISATION_PAYMENT_PLAN = "RejectOrganisationPaymentPlan"
    REFER_TO_JUDGE_BY_CLAIMANT = "ReferToJudgeByClaimant"
    REFER_TO_JUDGE_BY_DEFENDANT = "ReferToJudgeByDefendant"
    REFERRED_TO_MEDIATION = "ReferredToMediation"
    ASSIGN_FOR_DIRECTIONS = "AssignForDirections"
    SEALED_CLAIM_UPLOAD = "SealedClaimUpload"
    CLAIM_ISSUE_RECEIPT_UPLOAD = "ClaimIssueReceiptUpload"
    DEFENDANT_RESPONSE_UPLOAD = "DefendantResponseReceiptUpload"
    CCJ_REQUEST_UPLOAD = "CCJRequestUpload"
    SETTLEMENT_AGREEMENT_UPLOAD = "SettlementAgreementUpload"
    LINK_SEALED_CLAIM = "LinkSealedClaim"


class ResponseType(str, Enum):
    FULL_DEFENCE = "full_defence"
    FULL_ADMISSION = "full_admission"
    PART_ADMISSION = "part_admission"


class DefenceType(str, Enum):
    DISPUTE = "dispute"
    ALREADY_PAID = "already_paid"


class ClaimantResponseType(str, Enum):
    ACCEPTATION = "acceptation"
    REJECTION = "rejection"


class FormaliseOption(str, Enum):
    """How the claimant wants an accepted admission formalised."""
    CCJ = "ccj"
    SETTLEMENT = "settlement"
    REFER_TO_JUDGE = "refer_to_judge"

    @property
    def description(self) -> str:
        return FORMALISE_OPTION_DESCRIPTIONS[self]


FORMALISE_OPTION_DESCRIPTIONS: Dict[FormaliseOption, str] = {
    FormaliseOption.CCJ: "County Court Judgment",
    FormaliseOption.SETTLEMENT: "Settlement",
    FormaliseOption.REFER_TO_JUDGE: "Refer to judge",
}


class StatementType(str, Enum):
    OFFER = "offer"
    ACCEPTATION = "acceptation"
    REJECTION = "rejection"
    COUNTERSIGNATURE = "countersignature"


class MadeBy(str, Enum):
    CLAIMANT = "claimant"
    DEFENDANT = "defendant"
    COURT = "court"

    def other(self) -> "MadeBy":
        if self == MadeBy.CLAIMANT:
            return MadeBy.DEFENDANT
        if self == MadeBy.DEFENDANT:
            return MadeBy.CLAIMANT
        raise ValueError(f"No opposite party for {self.name}")


class PaymentOption(str, Enum):
    IMMEDIATELY = "immediately"
    BY_SPECIFIED_DATE = "by_specified_date"
    INSTALMENTS = "instalments"


class PaymentSchedule(str, Enum):
    EACH_WEEK = "each_week"
    EVERY_TWO_WEEKS = "every_two_weeks"
    EVERY_MONTH = "every_month"


class CountyCourtJudgmentType(str, Enum):
    DEFAULT = "default"
    ADMISSIONS = "admissions"
    DETERMINATION = "determination"


class CourtLocationType(str, Enum):
    SUGGESTED_COURT = "suggested_court"
    ALTERNATE_COURT = "alternate_court"


class InterestType(str, Enum):
    STANDARD = "standard"
    DIFFERENT = "different"
    NO_INTEREST = "no_interest"


class ClaimState(str, Enum):
    """Lifecycle state of a claim."""
    OPEN = "open"
    RESPONDED = "responded"
    CLAIMANT_RESPONDED = "claimant_responded"
    REFERRED_TO_MEDIATION = "referred_to_mediation"
    AWAITING_DIRECTIONS = "awaiting_directions"
    JUDGMENT_REQUESTED = "judgment_requested"
    SETTLED = "settled"


# Valid state transitions: from_state -> set of allowed to_states
VALID_STATE_TRANSITIONS: Dict[str, set] = {
    "open":                  {"responded", "judgment_requested", "settled"},
    "responded":             {"claimant_responded", "referred_to_mediation", "awaiting_directions",
                              "judgment_requested", "settled"},
    "claimant_responded":    {"judgment_requested", "settled"},
    "referred_to_mediation": {"awaiting_directions", "settled"},
    "awaiting_directions":   {"settled"},
    "judgment_requested":    {"settled"},
    "settled":               set(),
}


STANDARD_INTEREST_RATE = Decimal("8")


# ============================================================================
# EXCEPTIONS
# ============================================================================

class ClaimStoreException(Exception):
    """Base error. HTTP layer renders status_code and code."""
    status_code = 500
    code = "INTERNAL_ERROR"


class NotFoundException(ClaimStoreException):
    status_code = 404
    code = "NOT_FOUND"


class ConflictException(ClaimStoreException):
    status_code = 409
    code = "CONFLICT"


class MoreTimeAlreadyRequestedException(ConflictException):
    code = "MORE_TIME_ALREADY_REQUESTED"


class MoreTimeRequestedAfterDeadlineException(ConflictException):
    code = "MORE_TIME_REQUESTED_AFTER_DEADLINE"


class ForbiddenActionException(ClaimStoreException):
    status_code = 403
    code = "FORBIDDEN"


class BadRequestException(ClaimStoreException):
    status_code = 400
    code = "BAD_REQUEST"


class IllegalSettlementStatementException(BadRequestException):
    code = "ILLEGAL_SETTLEMENT_STATEMENT"


class MappingException(ClaimStoreException):
    code = "MAPPING_ERROR"


class DocumentManagementException(ClaimStoreException):
    code = "DOCUMENT_MANAGEMENT_ERROR"


class EmailSendFailedException(ClaimStoreException):
    code = "EMAIL_SEND_FAILED"


class BulkPrintException(ClaimStoreException):
    code = "BULK_PRINT_FAILED"


class CoreCaseDataStoreException(ClaimStoreException):
    status_code = 502
    code = "CCD_STORE_ERROR"


# ============================================================================
# PARTIES
# ============================================================================

@dataclass
class Address:
    line1: str = ""
    line2: Optional[str] = None
    line3: Optional[str] = None
    city: Optional[str] = None
    county: Optional[str] = None
    postcode: Optional[str] = None


@dataclass
class StatementOfTruth:
    signer_name: str = ""
    signer_role: Optional[str] = None


@dataclass
class Representative:
    """Legal representative acting for a claimant."""
    organisation_name: str = ""
    organisation_address: Optional[Address] = None
    organisation_email: Optional[str] = None
    organisation_phone: Optional[str] = None
    organisation_dx_address: Optional[str] = None


@dataclass
class Party:
    """
    Common party details. Used both for the details a party gives about
    itself and for the details the claimant gave about the defendant.
    """
    name: str = ""
    address: Optional[Address] = None
    correspondence_address: Optional[Address] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    representative: Optional[Representative] = None


@dataclass
class Individual(Party):
    type: Literal["individual"] = "individual"
    title: Optional[str] = None
    date_of_birth: Optional[date] = None


@dataclass
class SoleTrader(Party):
    type: Literal["sole_trader"] = "sole_trader"
    title: Optional[str] = None
    business_name: Optional[str] = None


@dataclass
class Company(Party):
    type: Literal["company"] = "company"
    contact_person: Optional[str] = None
    companies_house_number: Optional[str] = None


@dataclass
class Organisation(Party):
    type: Literal["organisation"] = "organisation"
    contact_person: Optional[str] = None
    companies_house_number: Optional[str] = None


PartyUnion = Annotated[Union[Individual, SoleTrader, Company, Organisation], Field(discriminator="type")]


PARTY_TYPE_NAMES: Dict[str, str] = {
    "individual": "Individual",
    "sole_trader": "Sole trader",
    "company": "Company",
    "organisation": "Organisation",
}


def party_type_name(party: Party) -> str:
    return PARTY_TYPE_NAMES[party.type]


def is_company_or_organisation(party: Optional[Party]) -> bool:
    return isinstance(party, (Company, Organisation))


def business_name(party: Party) -> Optional[str]:
    return party.business_name if isinstance(party, SoleTrader) else None


def contact_person(party: Party) -> Optional[str]:
    return party.contact_person if isinstance(party, (Company, Organisation)) else None


# ============================================================================
# CLAIM DATA
# ============================================================================

@dataclass
class AmountRow:
    reason: str = ""
    amount: Optional[Decimal] = None


@dataclass
class AmountBreakDown:
    type: Literal["breakdown"] = "breakdown"
    rows: List[AmountRow] = field(default_factory=list)

    def total_amount(self) -> Decimal:
        return sum((row.amount for row in self.rows if row.amount is not None), Decimal("0"))


@dataclass
class AmountRange:
    type: Literal["range"] = "range"
    lower_value: Optional[Decimal] = None
    higher_value: Decimal = Decimal("0")


@dataclass
class NotKnown:
    type: Literal["not_known"] = "not_known"


AmountUnion = Annotated[Union[AmountBreakDown, AmountRange, NotKnown], Field(discriminator="type")]


@dataclass
class Interest:
    type: InterestType = InterestType.NO_INTEREST
    rate: Optional[Decimal] = None
    reason: Optional[str] = None

    def effective_rate(self) -> Decimal:
        if self.type == InterestType.STANDARD:
            return STANDARD_INTEREST_RATE
        if self.type == InterestType.DIFFERENT and self.rate is not None:
            return self.rate
        return Decimal("0")


@dataclass
class ClaimData:
    """What the claimant submitted when issuing the claim."""
    external_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    claimants: List[PartyUnion] = field(default_factory=list)
    defendants: List[PartyUnion] = field(default_factory=list)
    amount: AmountUnion = field(default_factory=NotKnown)
    fee_amount_in_pennies: Optional[int] = None
    reason: str = ""
    interest: Interest = field(default_factory=Interest)
    statement_of_truth: Optional[StatementOfTruth] = None
    external_reference_number: Optional[str] = None

    @property
    def claimant(self) -> Optional[Party]:
        return self.claimants[0] if self.claimants else None

    @property
    def defendant(self) -> Optional[Party]:
        return self.defendants[0] if self.defendants else None

    def amount_value(self) -> Optional[Decimal]:
        if isinstance(self.amount, AmountBreakDown):
            return self.amount.total_amount()
        if isinstance(self.amount, AmountRange):
            return self.amount.higher_value
        return None

    def fee_amount(self) -> Decimal:
        return to_pounds(self.fee_amount_in_pennies or 0)


def to_pounds(pennies: int) -> Decimal:
    return (Decimal(pennies) / 100).quantize(Decimal("0.01"))


# ============================================================================
# PAYMENTS
# ============================================================================

@dataclass
class PaymentDeclaration:
    paid_date: Optional[date] = None
    explanation: str = ""


@dataclass
class RepaymentPlan:
    instalment_amount: Decimal = Decimal("0")
    first_payment_date: Optional[date] = None
    payment_schedule: PaymentSchedule = PaymentSchedule.EVERY_MONTH
    completion_date: Optional[date] = None
    payment_length: Optional[str] = None


@dataclass
class PaymentIntention:
    payment_option: PaymentOption = PaymentOption.IMMEDIATELY
    payment_date: Optional[date] = None
    repayment_plan: Optional[RepaymentPlan] = None


# ============================================================================
# DIRECTIONS QUESTIONNAIRE
# ============================================================================

@dataclass
class HearingLocation:
    court_name: str = ""
    hearing_location_slug: Optional[str] = None
    court_address: Optional[Address] = None
    location_option: Optional[CourtLocationType] = None
    exceptional_circumstances_reason: Optional[str] = None


@dataclass
class Witness:
    self_witness: Optional[YesNoOption] = None
    no_of_other_witness: Optional[int] = None


@dataclass
class ExpertRequest:
    expert_evidence_to_examine: Optional[str] = None
    reason_for_expert_advice: Optional[str] = None


@dataclass
class RequireSupport:
    language_interpreter: Optional[str] = None
    sign_language_interpreter: Optional[str] = None
    hearing_loop: Optional[YesNoOption] = None
    disabled_access: Optional[YesNoOption] = None
    other_support: Optional[str] = None


@dataclass
class ExpertReport:
    expert_name: str = ""
    expert_report_date: Optional[date] = None


@dataclass
class UnavailableDate:
    unavailable_date: Optional[date] = None


@dataclass
class DirectionsQuestionnaire:
    """Hearing preferences collected from a party."""
    require_support: Optional[RequireSupport] = None
    hearing_location: Optional[HearingLocation] = None
    witness: Optional[Witness] = None
    expert_request: Optional[ExpertRequest] = None
    expert_reports: List[Optional[ExpertReport]] = field(default_factory=list)
    unavailable_dates: List[Optional[UnavailableDate]] = field(default_factory=list)


# ============================================================================
# DEFENDANT RESPONSES
# ============================================================================

@dataclass
class Response:
    free_mediation: Optional[YesNoOption] = None
    more_time_needed: Optional[YesNoOption] = None
    defendant: Optional[PartyUnion] = None
    statement_of_truth: Optional[StatementOfTruth] = None


@dataclass
class FullDefenceResponse(Response):
    response_type: Literal["full_defence"] = "full_defence"
    defence_type: DefenceType = DefenceType.DISPUTE
    defence: Optional[str] = None
    payment_declaration: Optional[PaymentDeclaration] = None
    directions_questionnaire: Optional[DirectionsQuestionnaire] = None


@dataclass
class FullAdmissionResponse(Response):
    response_type: Literal["full_admission"] = "full_admission"
    payment_intention: Optional[PaymentIntention] = None


@dataclass
class PartAdmissionResponse(Response):
    response_type: Literal["part_admission"] = "part_admission"
    amount: Decimal = Decimal("0")
    payment_declaration: Optional[PaymentDeclaration] = None
    payment_intention: Optional[PaymentIntention] = None
    defence: Optional[str] = None
    directions_questionnaire: Optional[DirectionsQuestionnaire] = None


ResponseUnion = Annotated[
    Union[FullDefenceResponse, FullAdmissionResponse, PartAdmissionResponse],
    Field(discriminator="response_type"),
]


# ============================================================================
# CLAIMANT RESPONSES
# ============================================================================

@dataclass
class ClaimantResponse:
    amount_paid: Optional[Decimal] = None


@dataclass
class ResponseAcceptation(ClaimantResponse):
    type: Literal["acceptation"] = "acceptation"
    claimant_payment_intention: Optional[PaymentIntention] = None
    formalise_option: Optional[FormaliseOption] = None


@dataclass
class ResponseRejection(ClaimantResponse):
    type: Literal["rejection"] = "rejection"
    free_mediation: Optional[YesNoOption] = None
    reason: Optional[str] = None
    directions_questionnaire: Optional[DirectionsQuestionnaire] = None


ClaimantResponseUnion = Annotated[Union[ResponseAcceptation, ResponseRejection], Field(discriminator="type")]


# ============================================================================
# SETTLEMENT
# ============================================================================

@dataclass
class Offer:
    content: str = ""
    completion_date: Optional[date] = None
    payment_intention: Optional[PaymentIntention] = None


@dataclass
class PartyStatement:
    type: Optional[StatementType] = None
    made_by: Optional[MadeBy] = None
    offer: Optional[Offer] = None


@dataclass
class Settlement:
    """
    Ordered negotiation between the parties. An OFFER may be answered by the
    other party with ACCEPTATION or REJECTION; an ACCEPTATION is closed by the
    other party's COUNTERSIGNATURE, after which the settlement is reached.
    """
    party_statements: List[PartyStatement] = field(default_factory=list)

    def make_offer(self, offer: Offer, party: MadeBy):
        self._assert_settlement_not_reached()
        self.party_statements.append(PartyStatement(StatementType.OFFER, party, offer))

    def accept(self, party: MadeBy):
        self._assert_settlement_not_reached()
        self._assert_last_statement(StatementType.OFFER, party)
        self.party_statements.append(PartyStatement(StatementType.ACCEPTATION, party))

    def reject(self, party: MadeBy):
        self._assert_settlement_not_reached()
        self._assert_last_statement(StatementType.OFFER, party)
        self.party_statements.append(PartyStatement(StatementType.REJECTION, party))

    def countersign(self, party: MadeBy):
        self._assert_settlement_not_reached()
        self._assert_last_statement(StatementType.ACCEPTATION, party)
        self.party_statements.append(PartyStatement(StatementType.COUNTERSIGNATURE, party))

    def reject_agreement(self, party: MadeBy):
        """Refuse to countersign an agreement the other party has signed."""
        self._assert_settlement_not_reached()
        self._assert_last_statement(StatementType.ACCEPTATION, party)
        self.party_statements.append(PartyStatement(StatementType.REJECTION, party))

    def is_settled(self) -> bool:
        last = self.last_statement()
        return last is not None and last.type == StatementType.COUNTERSIGNATURE

    def last_statement(self) -> Optional[PartyStatement]:
        return self.party_statements[-1] if self.party_statements else None

    def last_offer_statement(self) -> Optional[PartyStatement]:
        for statement in reversed(self.party_statements):
            if statement.type == StatementType.OFFER:
                return statement
        return None

    def _assert_settlement_not_reached(self):
        if self.is_settled():
            raise IllegalSettlementStatementException("Settlement is already reached")

    def _assert_last_statement(self, expected: StatementType, party: MadeBy):
        last = self.last_statement()
        if last is None:
            raise IllegalSettlementStatementException("No statements have yet been made during that settlement")
        if last.type != expected:
            raise IllegalSettlementStatementException(
                f"Last statement was expected to be {expected.name}, but was {last.type.name}"
            )
        if last.made_by == party:
            raise IllegalSettlementStatementException(
                f"Last statement was made by {party.name}, expected the other party"
            )


# ============================================================================
# JUDGMENTS
# ============================================================================

@dataclass
class CountyCourtJudgment:
    ccj_type: CountyCourtJudgmentType = CountyCourtJudgmentType.DEFAULT
    paid_amount: Optional[Decimal] = None
    payment_option: PaymentOption = PaymentOption.IMMEDIATELY
    pay_by_set_date: Optional[date] = None
    repayment_plan: Optional[RepaymentPlan] = None
    statement_of_truth: Optional[StatementOfTruth] = None
    defendant_date_of_birth: Optional[date] = None


@dataclass
class ReDetermination:
    explanation: str = ""
    party_type: MadeBy = MadeBy.CLAIMANT


# ============================================================================
# DOCUMENTS
# ============================================================================

@dataclass
class ClaimDocument:
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    document_manager_url: str = ""
    document_name: str = ""
    document_type: ClaimDocumentType = ClaimDocumentType.SEALED_CLAIM
    created_datetime: Optional[datetime] = None
    created_by: Optional[str] = None
    size: Optional[int] = None


@dataclass
class ClaimDocumentCollection:
    claim_documents: List[ClaimDocument] = field(default_factory=list)

    def add_claim_document(self, document: ClaimDocument):
        self.claim_documents.append(document)

    def get_document(self, document_type: ClaimDocumentType) -> Optional[ClaimDocument]:
        for document in self.claim_documents:
            if document.document_type == document_type:
                return document
        return None


@dataclass
class PDF:
    """A generated document, not yet stored."""
    filename: str
    data: bytes
    claim_document_type: ClaimDocumentType

    @property
    def file_base_name(self) -> str:
        return self.filename[:-4] if self.filename.endswith(".pdf") else self.filename


@dataclass
class EmailAttachment:
    filename: str
    data: bytes
    content_type: str = "application/pdf"

    @classmethod
    def pdf(cls, data: bytes, filename: str) -> "EmailAttachment":
        return cls(filename=filename, data=data, content_type="application/pdf")


@dataclass
class EmailData:
    to: str
    subject: str
    message: str
    attachments: List[EmailAttachment] = field(default_factory=list)


# ============================================================================
# CLAIM
# ============================================================================

@dataclass
class Claim:
    """
    A money claim as it moves through issue, response, claimant response,
    settlement and judgment.
    """
    external_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    claim_data: ClaimData = field(default_factory=ClaimData)
    submitter_id: Optional[str] = None
    submitter_email: Optional[str] = None
    reference_number: Optional[str] = None
    letter_holder_id: Optional[str] = None
    defendant_id: Optional[str] = None
    defendant_email: Optional[str] = None
    created_at: Optional[datetime] = None
    issued_on: Optional[date] = None
    response_deadline: Optional[date] = None
    more_time_requested: bool = False
    response: Optional[ResponseUnion] = None
    responded_at: Optional[datetime] = None
    claimant_response: Optional[ClaimantResponseUnion] = None
    claimant_responded_at: Optional[datetime] = None
    county_court_judgment: Optional[CountyCourtJudgment] = None
    county_court_judgment_requested_at: Optional[datetime] = None
    settlement: Optional[Settlement] = None
    settlement_reached_at: Optional[datetime] = None
    re_determination: Optional[ReDetermination] = None
    re_determination_requested_at: Optional[datetime] = None
    claim_document_collection: Optional[ClaimDocumentCollection] = None
    preferred_court: Optional[str] = None
    state: ClaimState = ClaimState.OPEN
    ccd_case_id: Optional[int] = None

    def get_claim_document(self, document_type: ClaimDocumentType) -> Optional[ClaimDocument]:
        if self.claim_document_collection is None:
            return None
        return self.claim_document_collection.get_document(document_type)

    def is_represented(self) -> bool:
        claimant = self.claim_data.claimant
        return claimant is not None and claimant.representative is not None

    def total_interest_till_date_of_issue(self) -> Decimal:
        amount = self.claim_data.amount_value()
        rate = self.claim_data.interest.effective_rate()
        if amount is None or not rate or self.created_at is None or self.issued_on is None:
            return Decimal("0.00")
        days = (self.issued_on - self.created_at.date()).days
        if days <= 0:
            return Decimal("0.00")
        interest = amount * rate / Decimal(100) * Decimal(days) / Decimal(365)
        return interest.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

    def total_amount_till_date_of_issue(self) -> Optional[Decimal]:
        """Claimed amount plus fee and interest; None unless the amount is itemised."""
        if not isinstance(self.claim_data.amount, AmountBreakDown):
            return None
        return (
            self.claim_data.amount.total_amount()
            + self.claim_data.fee_amount()
            + self.total_interest_till_date_of_issue()
        )


# ============================================================================
# INTERNAL EVENTS
# ============================================================================

@dataclass
class ClaimIssuedEvent:
    claim: Optional[Claim]
    pin: Optional[str] = None
    authorisation: Optional[str] = None


@dataclass
class DocumentGeneratedEvent:
    claim: Optional[Claim]
    authorisation: Optional[str] = None
    documents: List[PDF] = field(default_factory=list)


@dataclass
class DefendantResponseEvent:
    claim: Optional[Claim]
    authorisation: Optional[str] = None


@dataclass
class ClaimantResponseEvent:
    claim: Optional[Claim]
    authorisation: Optional[str] = None


@dataclass
class MoreTimeRequestedEvent:
    claim: Optional[Claim]
    new_response_deadline: Optional[date] = None


@dataclass
class CountyCourtJudgmentEvent:
    claim: Optional[Claim]
    authorisation: Optional[str] = None


@dataclass
class ReDeterminationEvent:
    claim: Optional[Claim]
    party: MadeBy = MadeBy.CLAIMANT


@dataclass
class OfferMadeEvent:
    claim: Optional[Claim]
    party: MadeBy = MadeBy.DEFENDANT


@dataclass
class OfferAcceptedEvent:
    claim: Optional[Claim]
    party: MadeBy = MadeBy.CLAIMANT


@dataclass
class OfferRejectedEvent:
    claim: Optional[Claim]
    party: MadeBy = MadeBy.CLAIMANT


@dataclass
class AgreementCountersignedEvent:
    """Settlement reached through the offers journey."""
    claim: Optional[Claim]
    party: MadeBy = MadeBy.DEFENDANT
    authorisation: Optional[str] = None


@dataclass
class CountersignSettlementAgreementEvent:
    """Settlement reached through an accepted admission."""
    claim: Optional[Claim]
    authorisation: Optional[str] = None


@dataclass
class SettlementAgreementRejectedEvent:
    claim: Optional[Claim]


# ============================================================================
# JSON
# ============================================================================

RESPONSE_ADAPTER = TypeAdapter(ResponseUnion)
CLAIMANT_RESPONSE_ADAPTER = TypeAdapter(ClaimantResponseUnion)

_ADAPTERS: Dict[type, TypeAdapter] = {}


def _adapter(cls: type) -> TypeAdapter:
    if cls not in _ADAPTERS:
        _ADAPTERS[cls] = TypeAdapter(cls)
    return _ADAPTERS[cls]


def to_json(obj: Any) -> Dict[str, Any]:
    """Serialise a domain object to JSON-compatible primitives."""
    return _adapter(type(obj)).dump_python(obj, mode="json")


def from_json(cls: type, data: Any) -> Any:
    """Validate and build a domain object from JSON-compatible primitives."""
    return _adapter(cls).validate_python(data)
