#!/usr/bin/env python3
"""
Claim Store Document Generator
==============================
Builds the content of every court document from a claim and renders it to
PDF with reportlab. Stored copies live in the document management store and
are linked to the claim's document collection.

Documents:
  1. Sealed claim form
  2. Claim issue receipt (claimant copy)
  3. Defendant response receipt
  4. County court judgment request
  5. Settlement agreement
  6. Defendant PIN letter
  7. Claimant directions questionnaire

Usage:
    from claimstore_docs import render_document, SealedClaimPdfService
    pdf = SealedClaimPdfService(content_providers).create_pdf(claim)
"""

from __future__ import annotations

import io
import logging
import sqlite3
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from reportlab.lib.colors import HexColor
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import HRFlowable, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle
from xml.sax.saxutils import escape

from claimstore_rules import ClaimService, EventPublisher
from claimstore_store import Store
from claimstore_types import (
    PDF,
    Address,
    AgreementCountersignedEvent,
    AmountBreakDown,
    AmountRange,
    Claim,
    ClaimantResponseEvent,
    ClaimDocument,
    ClaimDocumentCollection,
    ClaimDocumentType,
    ClaimIssuedEvent,
    CountersignSettlementAgreementEvent,
    CountyCourtJudgmentEvent,
    DefendantResponseEvent,
    DirectionsQuestionnaire,
    DocumentGeneratedEvent,
    DocumentManagementException,
    FormaliseOption,
    FullAdmissionResponse,
    FullDefenceResponse,
    Individual,
    MappingException,
    NotFoundException,
    Party,
    PartAdmissionResponse,
    PaymentIntention,
    PaymentOption,
    PaymentSchedule,
    ResponseAcceptation,
    ResponseRejection,
    StatementOfTruth,
    business_name,
    contact_person,
    is_company_or_organisation,
    party_type_name,
)

logger = logging.getLogger("claimstore-docs")


# ── Colours ──
INK         = HexColor("#0b0c0c")
TEXT_MED    = HexColor("#505a5f")
BORDER      = HexColor("#b1b4b6")
PANEL       = HexColor("#f3f2f1")


# ============================================================================
# FORMATTING
# ============================================================================

def format_money(amount: Optional[Decimal]) -> str:
    """£1,234.56"""
    return f"£{Decimal(amount or 0):,.2f}"


def format_date(value: Optional[date]) -> str:
    """1 January 2050"""
    if value is None:
        return ""
    return f"{value.day} {value.strftime('%B %Y')}"


def format_datetime(value: Optional[datetime]) -> str:
    """1 January 2050 at 10:15am"""
    if value is None:
        return ""
    hour = value.hour % 12 or 12
    suffix = "am" if value.hour < 12 else "pm"
    return f"{format_date(value.date())} at {hour}:{value.minute:02d}{suffix}"


FILE_BASE_NAMES: Dict[ClaimDocumentType, str] = {
    ClaimDocumentType.SEALED_CLAIM: "{ref}-claim-form",
    ClaimDocumentType.CLAIM_ISSUE_RECEIPT: "{ref}-claim-form-claimant-copy",
    ClaimDocumentType.DEFENDANT_RESPONSE_RECEIPT: "{ref}-claim-response",
    ClaimDocumentType.CCJ_REQUEST: "{ref}-county-court-judgment-details",
    ClaimDocumentType.SETTLEMENT_AGREEMENT: "{ref}-settlement-agreement",
    ClaimDocumentType.DEFENDANT_PIN_LETTER: "{ref}-defendant-pin-letter",
    ClaimDocumentType.CLAIMANT_DIRECTIONS_QUESTIONNAIRE: "{ref}-directions-questionnaire-claimant",
}


def file_base_name(reference_number: Optional[str], document_type: ClaimDocumentType) -> str:
    return FILE_BASE_NAMES[document_type].format(ref=reference_number or "draft")


def address_lines(address: Optional[Address]) -> List[str]:
    if address is None:
        return []
    parts = [address.line1, address.line2, address.line3, address.city, address.county, address.postcode]
    return [p for p in parts if p]


PAYMENT_SCHEDULE_TEXT = {
    PaymentSchedule.EACH_WEEK: "every week",
    PaymentSchedule.EVERY_TWO_WEEKS: "every two weeks",
    PaymentSchedule.EVERY_MONTH: "every month",
}


def describe_payment_intention(intention: Optional[PaymentIntention]) -> Optional[str]:
    if intention is None:
        return None
    if intention.payment_option == PaymentOption.IMMEDIATELY:
        return "Immediately"
    if intention.payment_option == PaymentOption.BY_SPECIFIED_DATE:
        return f"In full by {format_date(intention.payment_date)}"
    plan = intention.repayment_plan
    if plan is None:
        return "By instalments"
    return (
        f"{format_money(plan.instalment_amount)} {PAYMENT_SCHEDULE_TEXT[plan.payment_schedule]} "
        f"starting {format_date(plan.first_payment_date)}"
    )


def _yes_no(value) -> Optional[str]:
    return value.value.capitalize() if value is not None else None


# ============================================================================
# CONTENT PROVIDERS
# ============================================================================

@dataclass
class DefendantDetailsContent:
    """
    Defendant details as shown on response documents. Name and address
    come from the defendant when they differ from what the claimant gave,
    and the *_amended flags record that they did.
    """
    type: str
    full_name: str
    name_amended: bool
    business_name: Optional[str]
    contact_person: Optional[str]
    address: Optional[Address]
    correspondence_address: Optional[Address]
    address_amended: bool
    date_of_birth: Optional[str]
    email: Optional[str]
    signer_name: Optional[str]
    signer_role: Optional[str]

    @classmethod
    def build(cls, provided_by_claimant: Party, response, defendant: Party,
              defendant_email: Optional[str]) -> "DefendantDetailsContent":
        name_amended = provided_by_claimant.name != defendant.name
        address_amended = provided_by_claimant.address != defendant.address
        statement: Optional[StatementOfTruth] = response.statement_of_truth
        responding = response.defendant or defendant
        date_of_birth = None
        if isinstance(defendant, Individual) and defendant.date_of_birth is not None:
            date_of_birth = format_date(defendant.date_of_birth)
        return cls(
            type=party_type_name(provided_by_claimant),
            full_name=defendant.name if name_amended else provided_by_claimant.name,
            name_amended=name_amended,
            business_name=business_name(responding),
            contact_person=contact_person(responding),
            address=defendant.address if address_amended else provided_by_claimant.address,
            correspondence_address=responding.correspondence_address,
            address_amended=address_amended,
            date_of_birth=date_of_birth,
            email=defendant_email,
            signer_name=statement.signer_name if statement else None,
            signer_role=statement.signer_role if statement else None,
        )


class PartyDetailsContentProvider:

    def create_content(self, party: Party, email: Optional[str] = None) -> Dict[str, Any]:
        date_of_birth = None
        if isinstance(party, Individual) and party.date_of_birth is not None:
            date_of_birth = format_date(party.date_of_birth)
        representative = party.representative
        return {
            "type": party_type_name(party),
            "full_name": party.name,
            "business_name": business_name(party),
            "contact_person": contact_person(party),
            "address": party.address,
            "correspondence_address": party.correspondence_address,
            "date_of_birth": date_of_birth,
            "email": email or party.email,
            "phone": party.phone,
            "representative": representative.organisation_name if representative else None,
        }

    def create_defendant_content(self, provided_by_claimant: Party, response,
                                 defendant_email: Optional[str]) -> Dict[str, Any]:
        defendant = response.defendant or provided_by_claimant
        # shallow copy: addresses stay Address objects for the renderer
        return dict(vars(DefendantDetailsContent.build(provided_by_claimant, response, defendant, defendant_email)))


class ClaimDataContentProvider:
    """Claim summary shared by every document."""

    def __init__(self, party_provider: PartyDetailsContentProvider):
        self.party_provider = party_provider

    def create_content(self, claim: Claim) -> Dict[str, Any]:
        data = claim.claim_data
        if isinstance(data.amount, AmountBreakDown):
            amount_rows = [(row.reason, format_money(row.amount)) for row in data.amount.rows]
            claim_amount = format_money(data.amount.total_amount())
        elif isinstance(data.amount, AmountRange):
            amount_rows = []
            lower = format_money(data.amount.lower_value) if data.amount.lower_value is not None else None
            claim_amount = (f"{lower} to " if lower else "Up to ") + format_money(data.amount.higher_value)
        else:
            amount_rows = []
            claim_amount = "Not known"
        total = claim.total_amount_till_date_of_issue()
        statement = data.statement_of_truth
        return {
            "reference_number": claim.reference_number,
            "external_reference_number": data.external_reference_number,
            "submitted_on": format_datetime(claim.created_at),
            "issued_on": format_date(claim.issued_on),
            "response_deadline": format_date(claim.response_deadline),
            "amount_rows": amount_rows,
            "claim_amount": claim_amount,
            "fee": format_money(data.fee_amount()),
            "interest": format_money(claim.total_interest_till_date_of_issue()),
            "interest_rate": f"{data.interest.effective_rate()}%",
            "total_amount": format_money(total) if total is not None else None,
            "reason": data.reason,
            "claimants": [self.party_provider.create_content(c, claim.submitter_email) for c in data.claimants],
            "defendants": [self.party_provider.create_content(d) for d in data.defendants],
            "signer_name": statement.signer_name if statement else None,
            "signer_role": statement.signer_role if statement else None,
        }


class DirectionsQuestionnaireContentProvider:

    def create_content(self, dq: Optional[DirectionsQuestionnaire]) -> Dict[str, Any]:
        if dq is None:
            return {}
        support = dq.require_support
        location = dq.hearing_location
        return {
            "hearing_court": location.court_name if location else None,
            "exceptional_circumstances": location.exceptional_circumstances_reason if location else None,
            "language_interpreter": support.language_interpreter if support else None,
            "sign_language_interpreter": support.sign_language_interpreter if support else None,
            "hearing_loop": _yes_no(support.hearing_loop) if support else None,
            "disabled_access": _yes_no(support.disabled_access) if support else None,
            "other_support": support.other_support if support else None,
            "self_witness": _yes_no(dq.witness.self_witness) if dq.witness else None,
            "other_witnesses": dq.witness.no_of_other_witness if dq.witness else None,
            "expert_reports": [
                (r.expert_name, format_date(r.expert_report_date)) for r in dq.expert_reports if r is not None
            ],
            "expert_evidence": dq.expert_request.expert_evidence_to_examine if dq.expert_request else None,
            "unavailable_dates": [
                format_date(d.unavailable_date) for d in dq.unavailable_dates if d is not None
            ],
        }


class ResponseAcceptationContentProvider:

    def create_content(self, claim: Claim) -> Dict[str, Any]:
        acceptation: ResponseAcceptation = claim.claimant_response
        if acceptation.claimant_payment_intention is not None:
            return {
                "payment_intention": describe_payment_intention(acceptation.claimant_payment_intention),
                "payment_intention_proposed_by": "claimant",
            }
        return {
            "payment_intention": describe_payment_intention(getattr(claim.response, "payment_intention", None)),
            "payment_intention_proposed_by": "defendant",
        }


class ResponseRejectionContentProvider:

    def __init__(self, dq_provider: DirectionsQuestionnaireContentProvider):
        self.dq_provider = dq_provider

    def create_content(self, rejection: ResponseRejection) -> Dict[str, Any]:
        return {
            "free_mediation": _yes_no(rejection.free_mediation),
            "reason": rejection.reason,
            "directions_questionnaire": self.dq_provider.create_content(rejection.directions_questionnaire),
        }


class ClaimantResponseContentProvider:

    def __init__(self, party_provider: PartyDetailsContentProvider, claim_data_provider: ClaimDataContentProvider,
                 frontend_base_url: str, acceptation_provider: ResponseAcceptationContentProvider,
                 rejection_provider: ResponseRejectionContentProvider):
        self.party_provider = party_provider
        self.claim_data_provider = claim_data_provider
        self.frontend_base_url = frontend_base_url
        self.acceptation_provider = acceptation_provider
        self.rejection_provider = rejection_provider

    def create_content(self, claim: Claim) -> Dict[str, Any]:
        if claim is None:
            raise ValueError("Claim must not be null")
        claimant_response = claim.claimant_response
        defendant_response = claim.response
        if claimant_response is None or defendant_response is None:
            raise ValueError(f"Claim {claim.reference_number} has no claimant response to render")
        if not isinstance(claimant_response, (ResponseAcceptation, ResponseRejection)):
            raise MappingException(f"Invalid responseType {type(claimant_response).__name__}")

        content: Dict[str, Any] = {"claim": self.claim_data_provider.create_content(claim)}
        if claim.claimant_responded_at is not None:
            content["claimant_submitted_on"] = format_datetime(claim.claimant_responded_at)
            content["claimant_submitted_date"] = format_date(claim.claimant_responded_at.date())

        content["amount_paid"] = claimant_response.amount_paid
        content["response_dashboard_url"] = self.frontend_base_url
        content["defendant"] = self.party_provider.create_defendant_content(
            claim.claim_data.defendant, defendant_response, claim.defendant_email
        )
        content["claimant"] = self.party_provider.create_content(claim.claim_data.claimant, claim.submitter_email)
        content["response_type"] = claimant_response.type.upper()

        admission_status = self._defendant_admission_status(claim, defendant_response)
        if isinstance(claimant_response, ResponseAcceptation):
            content["defendant_admission_accepted"] = f"I accept {admission_status}"
            content.update(self.acceptation_provider.create_content(claim))
            option = claimant_response.formalise_option
            if option is not None:
                if (is_company_or_organisation(defendant_response.defendant)
                        and option == FormaliseOption.REFER_TO_JUDGE):
                    content["formalise_option"] = "Please enter judgment by determination"
                else:
                    content["formalise_option"] = option.description
            total = claim.total_amount_till_date_of_issue()
            if total is not None:
                content["total_amount"] = format_money(total - (claimant_response.amount_paid or Decimal("0")))
            self._add_formalised_option(claim, content, claimant_response)
        else:
            content["defendant_admission_accepted"] = f"I reject {admission_status}"
            content.update(self.rejection_provider.create_content(claimant_response))
        return content

    @staticmethod
    def _add_formalised_option(claim: Claim, content: Dict[str, Any], acceptation: ResponseAcceptation):
        option = acceptation.formalise_option
        if option is None:
            raise ValueError("Formalise option is required for an acceptation")
        if option == FormaliseOption.CCJ:
            content["ccj"] = claim.county_court_judgment

    @staticmethod
    def _defendant_admission_status(claim: Claim, response) -> str:
        if claim.re_determination_requested_at is None:
            return "this amount"
        if isinstance(response, PartAdmissionResponse):
            return format_money(response.amount)
        if isinstance(response, FullAdmissionResponse):
            return "full admission"
        return "this amount"


class DefendantResponseContentProvider:

    def __init__(self, party_provider: PartyDetailsContentProvider, claim_data_provider: ClaimDataContentProvider,
                 dq_provider: DirectionsQuestionnaireContentProvider):
        self.party_provider = party_provider
        self.claim_data_provider = claim_data_provider
        self.dq_provider = dq_provider

    def create_content(self, claim: Claim) -> Dict[str, Any]:
        response = claim.response
        content = {
            "claim": self.claim_data_provider.create_content(claim),
            "defendant": self.party_provider.create_defendant_content(
                claim.claim_data.defendant, response, claim.defendant_email
            ),
            "claimant": self.party_provider.create_content(claim.claim_data.claimant, claim.submitter_email),
            "response_type": response.response_type.upper(),
            "response_submitted_on": format_datetime(claim.responded_at),
            "free_mediation": _yes_no(response.free_mediation),
        }
        if isinstance(response, FullDefenceResponse):
            content["defence"] = response.defence
            content["defence_type"] = response.defence_type.name
            content["directions_questionnaire"] = self.dq_provider.create_content(response.directions_questionnaire)
        elif isinstance(response, PartAdmissionResponse):
            content["admitted_amount"] = format_money(response.amount)
            content["defence"] = response.defence
            content["payment_intention"] = describe_payment_intention(response.payment_intention)
            content["directions_questionnaire"] = self.dq_provider.create_content(response.directions_questionnaire)
        elif isinstance(response, FullAdmissionResponse):
            content["payment_intention"] = describe_payment_intention(response.payment_intention)
        declaration = getattr(response, "payment_declaration", None)
        if declaration is not None:
            content["paid_date"] = format_date(declaration.paid_date)
            content["paid_explanation"] = declaration.explanation
        return content


class SettlementContentProvider:

    def __init__(self, claim_data_provider: ClaimDataContentProvider):
        self.claim_data_provider = claim_data_provider

    def create_content(self, claim: Claim) -> Dict[str, Any]:
        settlement = claim.settlement
        statements = []
        for s in settlement.party_statements:
            statements.append({
                "made_by": s.made_by.name.capitalize() if s.made_by else None,
                "type": s.type.name.capitalize() if s.type else None,
                "offer_content": s.offer.content if s.offer else None,
                "completion_date": format_date(s.offer.completion_date) if s.offer else None,
                "payment": describe_payment_intention(s.offer.payment_intention) if s.offer else None,
            })
        last_offer = settlement.last_offer_statement()
        return {
            "claim": self.claim_data_provider.create_content(claim),
            "statements": statements,
            "agreed_terms": last_offer.offer.content if last_offer and last_offer.offer else None,
            "settlement_reached_at": format_datetime(claim.settlement_reached_at),
        }


class CountyCourtJudgmentContentProvider:

    def __init__(self, claim_data_provider: ClaimDataContentProvider):
        self.claim_data_provider = claim_data_provider

    def create_content(self, claim: Claim) -> Dict[str, Any]:
        ccj = claim.county_court_judgment
        total = claim.total_amount_till_date_of_issue()
        remaining = total - (ccj.paid_amount or Decimal("0")) if total is not None else None
        intention = PaymentIntention(
            payment_option=ccj.payment_option,
            payment_date=ccj.pay_by_set_date,
            repayment_plan=ccj.repayment_plan,
        )
        return {
            "claim": self.claim_data_provider.create_content(claim),
            "ccj_type": ccj.ccj_type.name.capitalize(),
            "requested_at": format_datetime(claim.county_court_judgment_requested_at),
            "paid_amount": format_money(ccj.paid_amount),
            "amount_remaining": format_money(remaining) if remaining is not None else None,
            "payment": describe_payment_intention(intention),
            "signer_name": ccj.statement_of_truth.signer_name if ccj.statement_of_truth else None,
        }


class ContentProviders:
    """Wires the content providers together."""

    def __init__(self, frontend_base_url: str = "", respond_to_claim_url: str = ""):
        self.frontend_base_url = frontend_base_url
        self.respond_to_claim_url = respond_to_claim_url
        self.party = PartyDetailsContentProvider()
        self.claim_data = ClaimDataContentProvider(self.party)
        self.directions_questionnaire = DirectionsQuestionnaireContentProvider()
        self.claimant_response = ClaimantResponseContentProvider(
            self.party, self.claim_data, frontend_base_url,
            ResponseAcceptationContentProvider(),
            ResponseRejectionContentProvider(self.directions_questionnaire),
        )
        self.defendant_response = DefendantResponseContentProvider(
            self.party, self.claim_data, self.directions_questionnaire
        )
        self.settlement = SettlementContentProvider(self.claim_data)
        self.county_court_judgment = CountyCourtJudgmentContentProvider(self.claim_data)


# ============================================================================
# RENDERING
# ============================================================================

def _build_styles():
    """Paragraph styles for court documents."""
    base = getSampleStyleSheet()
    return {
        "court": ParagraphStyle(
            "court", parent=base["Normal"], fontName="Helvetica-Bold", fontSize=10,
            textColor=TEXT_MED, leading=12, spaceAfter=4,
        ),
        "title": ParagraphStyle(
            "title", parent=base["Normal"], fontName="Helvetica-Bold", fontSize=18,
            textColor=INK, leading=22, spaceAfter=10,
        ),
        "heading": ParagraphStyle(
            "heading", parent=base["Normal"], fontName="Helvetica-Bold", fontSize=12,
            textColor=INK, spaceBefore=12, spaceAfter=6,
        ),
        "body": ParagraphStyle(
            "body", parent=base["Normal"], fontName="Helvetica", fontSize=10,
            textColor=INK, leading=14, spaceAfter=6,
        ),
        "label": ParagraphStyle(
            "label", parent=base["Normal"], fontName="Helvetica", fontSize=9, textColor=TEXT_MED,
        ),
        "value": ParagraphStyle(
            "value", parent=base["Normal"], fontName="Helvetica-Bold", fontSize=10, textColor=INK,
        ),
        "pin": ParagraphStyle(
            "pin", parent=base["Normal"], fontName="Courier-Bold", fontSize=20,
            textColor=INK, alignment=TA_CENTER, spaceBefore=10, spaceAfter=10,
        ),
        "footer": ParagraphStyle(
            "footer", parent=base["Normal"], fontName="Helvetica", fontSize=8,
            textColor=TEXT_MED, alignment=TA_CENTER,
        ),
    }


def _p(text: Any, style) -> Paragraph:
    return Paragraph(escape(str(text)) if text not in (None, "") else "-", style)


def _add_header(story, styles, title: str):
    story.append(Paragraph("In the County Court Business Centre", styles["court"]))
    story.append(Paragraph(escape(title), styles["title"]))
    story.append(HRFlowable(width="100%", thickness=1.5, color=INK, spaceAfter=12))


def _add_rows(story, styles, rows: List[tuple]):
    """Two-column label / value table; skips rows without a value."""
    data = [[_p(label, styles["label"]), _p(value, styles["value"])] for label, value in rows
            if value not in (None, "", [])]
    if not data:
        return
    table = Table(data, colWidths=[2.2 * inch, 4.6 * inch])
    table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, -1), PANEL),
        ("BOX", (0, 0), (-1, -1), 0.5, BORDER),
        ("INNERGRID", (0, 0), (-1, -1), 0.5, BORDER),
        ("TOPPADDING", (0, 0), (-1, -1), 5),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 5),
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
    ]))
    story.append(table)
    story.append(Spacer(1, 8))


def _add_section(story, styles, heading: str, rows: List[tuple]):
    story.append(Paragraph(escape(heading), styles["heading"]))
    _add_rows(story, styles, rows)


def _party_rows(party: Dict[str, Any]) -> List[tuple]:
    address = party.get("address")
    correspondence = party.get("correspondence_address")
    return [
        ("Type", party.get("type")),
        ("Name", party.get("full_name")),
        ("Business name", party.get("business_name")),
        ("Contact person", party.get("contact_person")),
        ("Address", ", ".join(address_lines(address)) if address else None),
        ("Correspondence address", ", ".join(address_lines(correspondence)) if correspondence else None),
        ("Date of birth", party.get("date_of_birth")),
        ("Email", party.get("email")),
        ("Representative", party.get("representative")),
    ]


def _claim_meta(story, styles, claim: Dict[str, Any]):
    _add_rows(story, styles, [
        ("Claim number", claim.get("reference_number")),
        ("Your reference", claim.get("external_reference_number")),
        ("Issued on", claim.get("issued_on")),
        ("Response deadline", claim.get("response_deadline")),
    ])


def _claim_amount_section(story, styles, claim: Dict[str, Any]):
    rows = list(claim.get("amount_rows", []))
    rows += [
        ("Amount claimed", claim.get("claim_amount")),
        ("Interest", claim.get("interest")),
        ("Court fee", claim.get("fee")),
        ("Total", claim.get("total_amount")),
    ]
    _add_section(story, styles, "Amount claimed", rows)


def _add_footer(story, styles, reference: Optional[str]):
    story.append(Spacer(1, 24))
    story.append(HRFlowable(width="100%", thickness=0.5, color=BORDER, spaceAfter=6))
    story.append(Paragraph(
        f"Claim number: {escape(reference or '-')} | Generated: {datetime.utcnow().strftime('%Y-%m-%d %H:%M UTC')}",
        styles["footer"],
    ))


def _add_claim_body(story, styles, content: Dict[str, Any]):
    """Claim meta, parties, details, amount and statement of truth; shared by the claim form and receipt."""
    _claim_meta(story, styles, content)
    for claimant in content.get("claimants", []):
        _add_section(story, styles, "Claimant", _party_rows(claimant))
    for defendant in content.get("defendants", []):
        _add_section(story, styles, "Defendant", _party_rows(defendant))
    _add_section(story, styles, "Brief details of claim", [("Reason", content.get("reason"))])
    _claim_amount_section(story, styles, content)
    _add_section(story, styles, "Statement of truth", [
        ("Signed by", content.get("signer_name")),
        ("Role", content.get("signer_role")),
        ("Submitted on", content.get("submitted_on")),
    ])
    _add_footer(story, styles, content.get("reference_number"))


def _build_sealed_claim(content: Dict[str, Any]) -> list:
    styles = _build_styles()
    story = []
    _add_header(story, styles, "Claim form")
    _add_claim_body(story, styles, content)
    return story


def _build_claim_issue_receipt(content: Dict[str, Any]) -> list:
    styles = _build_styles()
    story = []
    _add_header(story, styles, "Your money claim has been issued")
    story.append(Paragraph(
        "This is a copy of the claim you submitted. Keep it for your records.", styles["body"],
    ))
    _add_claim_body(story, styles, content)
    return story


def _build_defendant_response_receipt(content: Dict[str, Any]) -> list:
    styles = _build_styles()
    story = []
    claim = content["claim"]
    _add_header(story, styles, "Response to the claim")
    _claim_meta(story, styles, claim)
    _add_section(story, styles, "Defendant", _party_rows(content["defendant"]) + [
        ("Name amended", "Yes" if content["defendant"].get("name_amended") else None),
        ("Address amended", "Yes" if content["defendant"].get("address_amended") else None),
    ])
    _add_section(story, styles, "Response", [
        ("Response type", content.get("response_type", "").replace("_", " ").capitalize()),
        ("Submitted on", content.get("response_submitted_on")),
        ("Defence", content.get("defence")),
        ("Amount admitted", content.get("admitted_amount")),
        ("How they will pay", content.get("payment_intention")),
        ("Date paid", content.get("paid_date")),
        ("How they paid", content.get("paid_explanation")),
        ("Free mediation", content.get("free_mediation")),
    ])
    _add_dq_section(story, styles, content.get("directions_questionnaire"))
    _add_section(story, styles, "Statement of truth", [
        ("Signed by", content["defendant"].get("signer_name")),
        ("Role", content["defendant"].get("signer_role")),
    ])
    _add_footer(story, styles, claim.get("reference_number"))
    return story


def _add_dq_section(story, styles, dq: Optional[Dict[str, Any]]):
    if not dq:
        return
    _add_section(story, styles, "Hearing requirements", [
        ("Preferred court", dq.get("hearing_court")),
        ("Exceptional circumstances", dq.get("exceptional_circumstances")),
        ("Language interpreter", dq.get("language_interpreter")),
        ("Sign language interpreter", dq.get("sign_language_interpreter")),
        ("Hearing loop", dq.get("hearing_loop")),
        ("Disabled access", dq.get("disabled_access")),
        ("Other support", dq.get("other_support")),
        ("Giving evidence themselves", dq.get("self_witness")),
        ("Other witnesses", dq.get("other_witnesses")),
        ("Expert evidence", dq.get("expert_evidence")),
        ("Expert reports", "; ".join(f"{n} ({d})" for n, d in dq.get("expert_reports", []))),
        ("Dates unavailable", ", ".join(dq.get("unavailable_dates", []))),
    ])


def _build_ccj_request(content: Dict[str, Any]) -> list:
    styles = _build_styles()
    story = []
    claim = content["claim"]
    _add_header(story, styles, "County Court Judgment request")
    _claim_meta(story, styles, claim)
    _claim_amount_section(story, styles, claim)
    _add_section(story, styles, "Judgment", [
        ("Judgment type", content.get("ccj_type")),
        ("Requested on", content.get("requested_at")),
        ("Amount already paid", content.get("paid_amount")),
        ("Amount remaining", content.get("amount_remaining")),
        ("Payment", content.get("payment")),
        ("Signed by", content.get("signer_name")),
    ])
    _add_footer(story, styles, claim.get("reference_number"))
    return story


def _build_settlement_agreement(content: Dict[str, Any]) -> list:
    styles = _build_styles()
    story = []
    claim = content["claim"]
    _add_header(story, styles, "Settlement agreement")
    _claim_meta(story, styles, claim)
    _add_section(story, styles, "Agreed terms", [
        ("Terms", content.get("agreed_terms")),
        ("Agreement reached", content.get("settlement_reached_at")),
    ])
    for index, statement in enumerate(content.get("statements", []), start=1):
        _add_section(story, styles, f"Statement {index}", [
            ("Made by", statement.get("made_by")),
            ("Statement", statement.get("type")),
            ("Offer", statement.get("offer_content")),
            ("Complete by", statement.get("completion_date")),
            ("Payment", statement.get("payment")),
        ])
    _add_footer(story, styles, claim.get("reference_number"))
    return story


def _build_pin_letter(content: Dict[str, Any]) -> list:
    styles = _build_styles()
    story = []
    _add_header(story, styles, "You've been sent a money claim")
    _add_rows(story, styles, [
        ("Claim number", content.get("reference_number")),
        ("Claimant", content.get("claimant_name")),
        ("Issued on", content.get("issued_on")),
        ("Respond by", content.get("response_deadline")),
    ])
    story.append(Paragraph(
        f"{escape(content.get('defendant_name') or '')}, respond online at "
        f"{escape(content.get('respond_to_claim_url') or '')} using this security code:",
        styles["body"],
    ))
    story.append(Paragraph(escape(content.get("pin") or ""), styles["pin"]))
    story.append(Paragraph(
        "If you do not respond by the deadline the claimant can ask for a County Court Judgment against you.",
        styles["body"],
    ))
    _add_footer(story, styles, content.get("reference_number"))
    return story


def _build_claimant_dq(content: Dict[str, Any]) -> list:
    styles = _build_styles()
    story = []
    claim = content["claim"]
    _add_header(story, styles, "Claimant hearing requirements")
    _claim_meta(story, styles, claim)
    _add_section(story, styles, "Claimant response", [
        ("Response", content.get("defendant_admission_accepted")),
        ("Submitted on", content.get("claimant_submitted_on")),
        ("Reason", content.get("reason")),
        ("Free mediation", content.get("free_mediation")),
    ])
    _add_dq_section(story, styles, content.get("directions_questionnaire"))
    _add_footer(story, styles, claim.get("reference_number"))
    return story


DOCUMENT_TEMPLATES: Dict[ClaimDocumentType, Dict[str, Any]] = {
    ClaimDocumentType.SEALED_CLAIM: {"name": "Sealed claim form", "builder": _build_sealed_claim},
    ClaimDocumentType.CLAIM_ISSUE_RECEIPT: {"name": "Claim issue receipt", "builder": _build_claim_issue_receipt},
    ClaimDocumentType.DEFENDANT_RESPONSE_RECEIPT: {
        "name": "Defendant response receipt", "builder": _build_defendant_response_receipt,
    },
    ClaimDocumentType.CCJ_REQUEST: {"name": "County Court Judgment request", "builder": _build_ccj_request},
    ClaimDocumentType.SETTLEMENT_AGREEMENT: {"name": "Settlement agreement", "builder": _build_settlement_agreement},
    ClaimDocumentType.DEFENDANT_PIN_LETTER: {"name": "Defendant PIN letter", "builder": _build_pin_letter},
    ClaimDocumentType.CLAIMANT_DIRECTIONS_QUESTIONNAIRE: {
        "name": "Claimant directions questionnaire", "builder": _build_claimant_dq,
    },
}


def render_document(document_type: ClaimDocumentType, content: Dict[str, Any]) -> bytes:
    """Render document content to PDF bytes."""
    if document_type not in DOCUMENT_TEMPLATES:
        raise ValueError(f"Unknown document template: {document_type}")
    template = DOCUMENT_TEMPLATES[document_type]

    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        leftMargin=0.75 * inch,
        rightMargin=0.75 * inch,
        topMargin=0.6 * inch,
        bottomMargin=0.6 * inch,
        title=template["name"],
        author="HM Courts & Tribunals Service",
    )
    doc.build(template["builder"](content))
    pdf_bytes = buffer.getvalue()
    buffer.close()
    return pdf_bytes


# ============================================================================
# PDF SERVICES
# ============================================================================

class PdfService:
    """Turns a claim into one kind of PDF."""
    document_type: ClaimDocumentType

    def __init__(self, providers: ContentProviders):
        self.providers = providers

    def create_content(self, claim: Claim) -> Dict[str, Any]:
        raise NotImplementedError

    def create_pdf(self, claim: Claim) -> PDF:
        data = render_document(self.document_type, self.create_content(claim))
        filename = f"{file_base_name(claim.reference_number, self.document_type)}.pdf"
        return PDF(filename, data, self.document_type)


class SealedClaimPdfService(PdfService):
    document_type = ClaimDocumentType.SEALED_CLAIM

    def create_content(self, claim: Claim) -> Dict[str, Any]:
        return self.providers.claim_data.create_content(claim)


class ClaimIssueReceiptService(SealedClaimPdfService):
    document_type = ClaimDocumentType.CLAIM_ISSUE_RECEIPT


class DefendantResponseReceiptService(PdfService):
    document_type = ClaimDocumentType.DEFENDANT_RESPONSE_RECEIPT

    def create_content(self, claim: Claim) -> Dict[str, Any]:
        if claim.response is None:
            raise NotFoundException("Defendant response does not exist for this claim")
        return self.providers.defendant_response.create_content(claim)


class CountyCourtJudgmentPdfService(PdfService):
    document_type = ClaimDocumentType.CCJ_REQUEST

    def create_content(self, claim: Claim) -> Dict[str, Any]:
        if claim.county_court_judgment is None:
            raise NotFoundException("County Court Judgment does not exist for this claim")
        return self.providers.county_court_judgment.create_content(claim)


class SettlementAgreementCopyService(PdfService):
    document_type = ClaimDocumentType.SETTLEMENT_AGREEMENT

    def create_content(self, claim: Claim) -> Dict[str, Any]:
        if claim.settlement is None:
            raise NotFoundException("Settlement Agreement does not exist for this claim")
        return self.providers.settlement.create_content(claim)


class ClaimantDirectionsQuestionnairePdfService(PdfService):
    document_type = ClaimDocumentType.CLAIMANT_DIRECTIONS_QUESTIONNAIRE

    def create_content(self, claim: Claim) -> Dict[str, Any]:
        content = self.providers.claimant_response.create_content(claim)
        content.setdefault("directions_questionnaire", {})
        return content


class DefendantPinLetterPdfService(PdfService):
    document_type = ClaimDocumentType.DEFENDANT_PIN_LETTER

    def create_pdf_with_pin(self, claim: Claim, pin: str) -> PDF:
        content = self.create_content(claim)
        content["pin"] = pin
        data = render_document(self.document_type, content)
        return PDF(f"{file_base_name(claim.reference_number, self.document_type)}.pdf", data, self.document_type)

    def create_content(self, claim: Claim) -> Dict[str, Any]:
        defendant = claim.claim_data.defendant
        claimant = claim.claim_data.claimant
        return {
            "reference_number": claim.reference_number,
            "claimant_name": claimant.name if claimant else None,
            "defendant_name": defendant.name if defendant else None,
            "issued_on": format_date(claim.issued_on),
            "response_deadline": format_date(claim.response_deadline),
            "respond_to_claim_url": self.providers.respond_to_claim_url,
            "pin": None,
        }


# ============================================================================
# DOCUMENT MANAGEMENT
# ============================================================================

class DocumentManagementService:
    """Uploads and downloads claim documents in the document store."""

    def __init__(self, store: Store):
        self.store = store

    def upload_document(self, authorisation: Optional[str], pdf: PDF) -> ClaimDocument:
        try:
            record = self.store.save_document(pdf.filename, pdf.claim_document_type.name, pdf.data)
        except sqlite3.Error as e:
            raise DocumentManagementException(f"Unable to upload document {pdf.filename}") from e
        return ClaimDocument(
            document_manager_url=f"/documents/{record['document_id']}",
            document_name=pdf.filename,
            document_type=pdf.claim_document_type,
            created_datetime=datetime.utcnow(),
            created_by="claimstore",
            size=record["size"],
        )

    def download_document(self, authorisation: Optional[str], document: ClaimDocument) -> bytes:
        document_id = document.document_manager_url.rstrip("/").rsplit("/", 1)[-1]
        record = self.store.get_document(document_id)
        if record is None:
            raise DocumentManagementException(f"Unable to download document {document.document_name}")
        return record["content"]


class DocumentsService:
    """Serves a claim's documents, generating and storing them on first request."""

    def __init__(self, claim_service: ClaimService, document_management: DocumentManagementService,
                 pdf_services: Dict[ClaimDocumentType, PdfService]):
        self.claim_service = claim_service
        self.document_management = document_management
        self.pdf_services = pdf_services

    def get_service(self, document_type: ClaimDocumentType) -> PdfService:
        if document_type not in (
            ClaimDocumentType.CLAIM_ISSUE_RECEIPT,
            ClaimDocumentType.SEALED_CLAIM,
            ClaimDocumentType.DEFENDANT_RESPONSE_RECEIPT,
            ClaimDocumentType.SETTLEMENT_AGREEMENT,
        ):
            raise ValueError(f"Unknown document service for document of type {document_type.name}")
        return self.pdf_services[document_type]

    def generate_document(self, external_id: str, document_type: ClaimDocumentType,
                          authorisation: Optional[str] = None) -> bytes:
        service = self.get_service(document_type)
        claim = self.claim_service.get_claim_by_external_id(external_id)
        try:
            stored = claim.get_claim_document(document_type)
            if stored is not None:
                return self.document_management.download_document(authorisation, stored)
            pdf = service.create_pdf(claim)
            self.upload_to_document_management(pdf, authorisation, claim)
            return pdf.data
        except Exception as e:
            logger.warning(f"Falling back to generated {document_type.name} for {external_id}: {e}")
            return service.create_pdf(claim).data

    def upload_to_document_management(self, pdf: PDF, authorisation: Optional[str], claim: Claim) -> Claim:
        document = self.document_management.upload_document(authorisation, pdf)
        collection = claim.claim_document_collection or ClaimDocumentCollection()
        collection.add_claim_document(document)
        claim.claim_document_collection = collection
        return self.claim_service.save_claim_documents(
            claim.external_id, collection, pdf.claim_document_type, authorisation
        )


# ============================================================================
# EVENT HANDLERS
# ============================================================================

def _require_claim(event) -> Claim:
    if event.claim is None:
        raise ValueError("Claim must not be null")
    return event.claim


class DocumentGenerator:
    """Generates the issue documents and announces them."""

    def __init__(self, sealed_claim: SealedClaimPdfService, pin_letter: DefendantPinLetterPdfService,
                 publisher: EventPublisher):
        self.sealed_claim = sealed_claim
        self.pin_letter = pin_letter
        self.publisher = publisher

    def on_claim_issued(self, event: ClaimIssuedEvent):
        claim = _require_claim(event)
        documents = [self.sealed_claim.create_pdf(claim)]
        if event.pin is not None:
            documents.append(self.pin_letter.create_pdf_with_pin(claim, event.pin))
        self.publisher.publish(DocumentGeneratedEvent(claim, event.authorisation, documents))

    def register(self, publisher: EventPublisher):
        publisher.subscribe(ClaimIssuedEvent, self.on_claim_issued)


class DocumentUploadHandler:
    """Stores generated documents against the claim."""

    def __init__(self, documents_service: DocumentsService, pdf_services: Dict[ClaimDocumentType, PdfService]):
        self.documents_service = documents_service
        self.pdf_services = pdf_services

    def _upload(self, claim: Claim, pdf: PDF, authorisation: Optional[str]) -> Claim:
        return self.documents_service.upload_to_document_management(pdf, authorisation, claim)

    def upload_citizen_claim_documents(self, event: DocumentGeneratedEvent):
        """Sealed claim for every claim; a claimant receipt when a PIN letter shows a citizen claim."""
        claim = _require_claim(event)
        citizen = False
        for pdf in event.documents:
            if pdf.claim_document_type == ClaimDocumentType.SEALED_CLAIM:
                claim = self._upload(claim, pdf, event.authorisation)
            elif pdf.claim_document_type == ClaimDocumentType.DEFENDANT_PIN_LETTER:
                citizen = True
        if citizen:
            receipt = self.pdf_services[ClaimDocumentType.CLAIM_ISSUE_RECEIPT].create_pdf(claim)
            self._upload(claim, receipt, event.authorisation)

    def upload_defendant_response_document(self, event: DefendantResponseEvent):
        claim = _require_claim(event)
        if claim.response is None:
            raise NotFoundException("Defendant response does not exist for this claim")
        pdf = self.pdf_services[ClaimDocumentType.DEFENDANT_RESPONSE_RECEIPT].create_pdf(claim)
        self._upload(claim, pdf, event.authorisation)

    def upload_county_court_judgment_document(self, event: CountyCourtJudgmentEvent):
        claim = _require_claim(event)
        if claim.county_court_judgment is None:
            raise NotFoundException("County Court Judgment does not exist for this claim")
        pdf = self.pdf_services[ClaimDocumentType.CCJ_REQUEST].create_pdf(claim)
        self._upload(claim, pdf, event.authorisation)

    def upload_settlement_agreement_document(self, event):
        claim = _require_claim(event)
        if claim.settlement is None:
            raise NotFoundException("Settlement Agreement does not exist for this claim")
        pdf = self.pdf_services[ClaimDocumentType.SETTLEMENT_AGREEMENT].create_pdf(claim)
        self._upload(claim, pdf, event.authorisation)

    def upload_claimant_directions_questionnaire(self, event: ClaimantResponseEvent):
        claim = _require_claim(event)
        rejection = claim.claimant_response
        if not isinstance(rejection, ResponseRejection) or rejection.directions_questionnaire is None:
            return
        pdf = self.pdf_services[ClaimDocumentType.CLAIMANT_DIRECTIONS_QUESTIONNAIRE].create_pdf(claim)
        self._upload(claim, pdf, event.authorisation)

    def register(self, publisher: EventPublisher):
        publisher.subscribe(DocumentGeneratedEvent, self.upload_citizen_claim_documents)
        publisher.subscribe(DefendantResponseEvent, self.upload_defendant_response_document)
        publisher.subscribe(CountyCourtJudgmentEvent, self.upload_county_court_judgment_document)
        publisher.subscribe(AgreementCountersignedEvent, self.upload_settlement_agreement_document)
        publisher.subscribe(CountersignSettlementAgreementEvent, self.upload_settlement_agreement_document)
        publisher.subscribe(ClaimantResponseEvent, self.upload_claimant_directions_questionnaire)


def build_pdf_services(providers: ContentProviders) -> Dict[ClaimDocumentType, PdfService]:
    services = [
        SealedClaimPdfService(providers),
        ClaimIssueReceiptService(providers),
        DefendantResponseReceiptService(providers),
        CountyCourtJudgmentPdfService(providers),
        SettlementAgreementCopyService(providers),
        ClaimantDirectionsQuestionnairePdfService(providers),
        DefendantPinLetterPdfService(providers),
    ]
    return {s.document_type: s for s in services}
