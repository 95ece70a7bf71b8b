#!/usr/bin/env python3
"""
Claim Store CCD Mappers
=======================
Field-by-field translation between the domain model and Core Case Data
(CCD) case data.

CCD conventions:
    - camelCase keys, absent values omitted
    - collections are lists of {"id": <uuid>, "value": {...}} elements
    - money is pennies as a string, yes/no is "YES" / "NO"
    - enums are carried by member name ("FULL_DEFENCE", "CLAIMANT", ...)
    - UK addresses use AddressLine1..3 / PostTown / County / PostCode

Every mapper offers to(domain) -> ccd and from_(ccd) -> domain; both return
None for None.

Usage:
    from claimstore_ccd import ClaimMapper
    case_data = ClaimMapper().to(claim)
    claim = ClaimMapper().from_(case_data)
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Type

from claimstore_types import (
    Address,
    AmountBreakDown,
    AmountRange,
    AmountRow,
    CaseEvent,
    Claim,
    ClaimData,
    ClaimDocument,
    ClaimDocumentCollection,
    ClaimDocumentType,
    ClaimState,
    Company,
    CountyCourtJudgment,
    CountyCourtJudgmentType,
    CourtLocationType,
    DefenceType,
    DirectionsQuestionnaire,
    ExpertReport,
    ExpertRequest,
    FormaliseOption,
    FullAdmissionResponse,
    FullDefenceResponse,
    HearingLocation,
    Individual,
    Interest,
    InterestType,
    MadeBy,
    MappingException,
    NotKnown,
    Offer,
    Organisation,
    Party,
    PartAdmissionResponse,
    PartyStatement,
    PaymentDeclaration,
    PaymentIntention,
    PaymentOption,
    PaymentSchedule,
    ReDetermination,
    RepaymentPlan,
    Representative,
    RequireSupport,
    ResponseAcceptation,
    ResponseRejection,
    Settlement,
    SoleTrader,
    StatementOfTruth,
    StatementType,
    UnavailableDate,
    Witness,
    YesNoOption,
)

CCDValue = Dict[str, Any]


# ============================================================================
# HELPERS
# ============================================================================

def _compact(value: CCDValue) -> CCDValue:
    return {k: v for k, v in value.items() if v is not None and v != []}


def _element(value: CCDValue, element_id: Optional[str] = None) -> CCDValue:
    return {"id": element_id or str(uuid.uuid4()), "value": value}


def _date(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_date(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value) if value else None


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _name(member: Optional[Enum]) -> Optional[str]:
    return member.name if member is not None else None


def _member(enum_cls: Type[Enum], name: Optional[str]):
    if name is None:
        return None
    try:
        return enum_cls[name]
    except KeyError:
        raise MappingException(f"Unknown {enum_cls.__name__} value: {name}")


def _blank(value: Optional[str]) -> bool:
    return value is None or value == ""


class Mapper:
    """Base for bidirectional domain <-> CCD converters."""

    def to(self, value):
        raise NotImplementedError

    def from_(self, ccd):
        raise NotImplementedError

    def to_collection(self, values: List[Any]) -> List[CCDValue]:
        return [self.to(v) for v in values if v is not None]

    def from_collection(self, elements: Optional[List[CCDValue]]) -> List[Any]:
        return [self.from_(e) for e in (elements or []) if e is not None]


# ============================================================================
# SCALARS
# ============================================================================

class YesNoMapper(Mapper):

    def to(self, value: Optional[YesNoOption]) -> Optional[str]:
        return _name(value)

    def from_(self, ccd: Optional[str]) -> Optional[YesNoOption]:
        return _member(YesNoOption, ccd)


class MoneyMapper(Mapper):
    """Pounds as Decimal <-> pennies as string."""

    def to(self, value: Optional[Decimal]) -> Optional[str]:
        if value is None:
            return None
        return str(int((Decimal(value) * 100).quantize(Decimal("1"))))

    def from_(self, ccd: Optional[str]) -> Optional[Decimal]:
        if ccd is None or ccd == "":
            return None
        return (Decimal(ccd) / 100).quantize(Decimal("0.01"))


yes_no = YesNoMapper()
money = MoneyMapper()


class AddressMapper(Mapper):

    def to(self, address: Optional[Address]) -> Optional[CCDValue]:
        if address is None:
            return None
        return _compact({
            "AddressLine1": address.line1,
            "AddressLine2": address.line2,
            "AddressLine3": address.line3,
            "PostTown": address.city,
            "County": address.county,
            "PostCode": address.postcode,
        })

    def from_(self, ccd: Optional[CCDValue]) -> Optional[Address]:
        if ccd is None:
            return None
        return Address(
            line1=ccd.get("AddressLine1", ""),
            line2=ccd.get("AddressLine2"),
            line3=ccd.get("AddressLine3"),
            city=ccd.get("PostTown"),
            county=ccd.get("County"),
            postcode=ccd.get("PostCode"),
        )


class StatementOfTruthMapper(Mapper):

    def to(self, statement: Optional[StatementOfTruth]) -> Optional[CCDValue]:
        if statement is None:
            return None
        return _compact({"signerName": statement.signer_name, "signerRole": statement.signer_role})

    def from_(self, ccd: Optional[CCDValue]) -> Optional[StatementOfTruth]:
        if ccd is None:
            return None
        return StatementOfTruth(signer_name=ccd.get("signerName", ""), signer_role=ccd.get("signerRole"))


address_mapper = AddressMapper()
statement_of_truth_mapper = StatementOfTruthMapper()


# ============================================================================
# PARTIES
# ============================================================================

class RepresentativeMapper(Mapper):

    def to(self, representative: Optional[Representative]) -> Optional[CCDValue]:
        if representative is None:
            return None
        return _compact({
            "organisationName": representative.organisation_name,
            "organisationAddress": address_mapper.to(representative.organisation_address),
            "organisationEmail": representative.organisation_email,
            "organisationPhone": representative.organisation_phone,
            "organisationDxAddress": representative.organisation_dx_address,
        })

    def from_(self, ccd: Optional[CCDValue]) -> Optional[Representative]:
        if ccd is None:
            return None
        return Representative(
            organisation_name=ccd.get("organisationName", ""),
            organisation_address=address_mapper.from_(ccd.get("organisationAddress")),
            organisation_email=ccd.get("organisationEmail"),
            organisation_phone=ccd.get("organisationPhone"),
            organisation_dx_address=ccd.get("organisationDxAddress"),
        )


class PartyMapper(Mapper):
    """Maps the four party variants onto one CCD party shape keyed by 'type'."""

    representative_mapper = RepresentativeMapper()

    def to(self, party: Optional[Party]) -> Optional[CCDValue]:
        if party is None:
            return None
        ccd = {
            "type": party.type.upper(),
            "name": party.name,
            "primaryAddress": address_mapper.to(party.address),
            "correspondenceAddress": address_mapper.to(party.correspondence_address),
            "emailAddress": party.email,
            "phone": party.phone,
            "representative": self.representative_mapper.to(party.representative),
        }
        if isinstance(party, Individual):
            ccd["title"] = party.title
            ccd["dateOfBirth"] = _date(party.date_of_birth)
        elif isinstance(party, SoleTrader):
            ccd["title"] = party.title
            ccd["businessName"] = party.business_name
        elif isinstance(party, (Company, Organisation)):
            ccd["contactPerson"] = party.contact_person
            ccd["companiesHouseNumber"] = party.companies_house_number
        return _compact(ccd)

    def from_(self, ccd: Optional[CCDValue]) -> Optional[Party]:
        if ccd is None:
            return None
        common = dict(
            name=ccd.get("name", ""),
            address=address_mapper.from_(ccd.get("primaryAddress")),
            correspondence_address=address_mapper.from_(ccd.get("correspondenceAddress")),
            email=ccd.get("emailAddress"),
            phone=ccd.get("phone"),
            representative=self.representative_mapper.from_(ccd.get("representative")),
        )
        party_type = ccd.get("type")
        if party_type == "INDIVIDUAL":
            return Individual(title=ccd.get("title"), date_of_birth=_parse_date(ccd.get("dateOfBirth")), **common)
        if party_type == "SOLE_TRADER":
            return SoleTrader(title=ccd.get("title"), business_name=ccd.get("businessName"), **common)
        if party_type == "COMPANY":
            return Company(
                contact_person=ccd.get("contactPerson"),
                companies_house_number=ccd.get("companiesHouseNumber"),
                **common,
            )
        if party_type == "ORGANISATION":
            return Organisation(
                contact_person=ccd.get("contactPerson"),
                companies_house_number=ccd.get("companiesHouseNumber"),
                **common,
            )
        raise MappingException(f"Unknown party type: {party_type}")


party_mapper = PartyMapper()


# ============================================================================
# AMOUNTS AND PAYMENTS
# ============================================================================

class AmountMapper(Mapper):
    """
    Breakdowns serialise as {"type": "BREAKDOWN", "amountBreakDown": [rows]};
    ranges carry lowerValue / higherValue; unknown amounts only the type.
    """

    def to(self, amount) -> Optional[CCDValue]:
        if amount is None:
            return None
        if isinstance(amount, AmountBreakDown):
            return {
                "type": "BREAKDOWN",
                "amountBreakDown": [
                    _element(_compact({"reason": row.reason, "amount": money.to(row.amount)}))
                    for row in amount.rows
                ],
            }
        if isinstance(amount, AmountRange):
            return _compact({
                "type": "RANGE",
                "lowerValue": money.to(amount.lower_value),
                "higherValue": money.to(amount.higher_value),
            })
        if isinstance(amount, NotKnown):
            return {"type": "NOT_KNOWN"}
        raise MappingException(f"Unknown amount type: {type(amount).__name__}")

    def from_(self, ccd: Optional[CCDValue]):
        if ccd is None:
            return None
        amount_type = ccd.get("type")
        if amount_type == "BREAKDOWN":
            return AmountBreakDown(rows=[
                AmountRow(reason=e["value"].get("reason", ""), amount=money.from_(e["value"].get("amount")))
                for e in ccd.get("amountBreakDown", [])
            ])
        if amount_type == "RANGE":
            return AmountRange(
                lower_value=money.from_(ccd.get("lowerValue")),
                higher_value=money.from_(ccd.get("higherValue")) or Decimal("0"),
            )
        if amount_type == "NOT_KNOWN":
            return NotKnown()
        raise MappingException(f"Unknown amount type: {amount_type}")


class InterestMapper(Mapper):

    def to(self, interest: Optional[Interest]) -> Optional[CCDValue]:
        if interest is None:
            return None
        return _compact({
            "interestType": _name(interest.type),
            "interestRate": str(interest.rate) if interest.rate is not None else None,
            "interestReason": interest.reason,
        })

    def from_(self, ccd: Optional[CCDValue]) -> Optional[Interest]:
        if ccd is None:
            return None
        rate = ccd.get("interestRate")
        return Interest(
            type=_member(InterestType, ccd.get("interestType")) or InterestType.NO_INTEREST,
            rate=Decimal(rate) if rate is not None else None,
            reason=ccd.get("interestReason"),
        )


class PaymentDeclarationMapper(Mapper):

    def to(self, declaration: Optional[PaymentDeclaration]) -> Optional[CCDValue]:
        if declaration is None:
            return None
        return _compact({"paidDate": _date(declaration.paid_date), "explanation": declaration.explanation})

    def from_(self, ccd: Optional[CCDValue]) -> Optional[PaymentDeclaration]:
        if ccd is None:
            return None
        return PaymentDeclaration(
            paid_date=_parse_date(ccd.get("paidDate")),
            explanation=ccd.get("explanation", ""),
        )


class RepaymentPlanMapper(Mapper):

    def to(self, plan: Optional[RepaymentPlan]) -> Optional[CCDValue]:
        if plan is None:
            return None
        return _compact({
            "instalmentAmount": money.to(plan.instalment_amount),
            "firstPaymentDate": _date(plan.first_payment_date),
            "paymentSchedule": _name(plan.payment_schedule),
            "completionDate": _date(plan.completion_date),
            "paymentLength": plan.payment_length,
        })

    def from_(self, ccd: Optional[CCDValue]) -> Optional[RepaymentPlan]:
        if ccd is None:
            return None
        return RepaymentPlan(
            instalment_amount=money.from_(ccd.get("instalmentAmount")) or Decimal("0"),
            first_payment_date=_parse_date(ccd.get("firstPaymentDate")),
            payment_schedule=_member(PaymentSchedule, ccd.get("paymentSchedule")) or PaymentSchedule.EVERY_MONTH,
            completion_date=_parse_date(ccd.get("completionDate")),
            payment_length=ccd.get("paymentLength"),
        )


repayment_plan_mapper = RepaymentPlanMapper()


class PaymentIntentionMapper(Mapper):

    def to(self, intention: Optional[PaymentIntention]) -> Optional[CCDValue]:
        if intention is None:
            return None
        return _compact({
            "paymentOption": _name(intention.payment_option),
            "paymentDate": _date(intention.payment_date),
            "repaymentPlan": repayment_plan_mapper.to(intention.repayment_plan),
        })

    def from_(self, ccd: Optional[CCDValue]) -> Optional[PaymentIntention]:
        if ccd is None:
            return None
        return PaymentIntention(
            payment_option=_member(PaymentOption, ccd.get("paymentOption")) or PaymentOption.IMMEDIATELY,
            payment_date=_parse_date(ccd.get("paymentDate")),
            repayment_plan=repayment_plan_mapper.from_(ccd.get("repaymentPlan")),
        )


payment_declaration_mapper = PaymentDeclarationMapper()
payment_intention_mapper = PaymentIntentionMapper()


# ============================================================================
# DIRECTIONS QUESTIONNAIRE
# ============================================================================

class ExpertRowMapper(Mapper):

    def to(self, report: Optional[ExpertReport]) -> Optional[CCDValue]:
        if report is None:
            return None
        return _element(_compact({
            "expertName": report.expert_name,
            "expertReportDate": _date(report.expert_report_date),
        }))

    def from_(self, element: Optional[CCDValue]) -> Optional[ExpertReport]:
        if element is None:
            return None
        value = element.get("value", {})
        return ExpertReport(
            expert_name=value.get("expertName", ""),
            expert_report_date=_parse_date(value.get("expertReportDate")),
        )


class UnavailableDateMapper(Mapper):

    def to(self, unavailable: Optional[UnavailableDate]) -> Optional[CCDValue]:
        if unavailable is None:
            return None
        return _element(_compact({"unavailableDate": _date(unavailable.unavailable_date)}))

    def from_(self, element: Optional[CCDValue]) -> Optional[UnavailableDate]:
        if element is None:
            return None
        return UnavailableDate(unavailable_date=_parse_date(element.get("value", {}).get("unavailableDate")))


class DirectionsQuestionnaireMapper(Mapper):

    expert_row_mapper = ExpertRowMapper()
    unavailable_date_mapper = UnavailableDateMapper()

    def to(self, dq: Optional[DirectionsQuestionnaire]) -> Optional[CCDValue]:
        if dq is None:
            return None
        ccd: CCDValue = {}

        support = dq.require_support
        if support is not None:
            ccd["languageInterpreted"] = support.language_interpreter
            ccd["signLanguageInterpreted"] = support.sign_language_interpreter
            ccd["otherSupportRequired"] = support.other_support
            ccd["hearingLoop"] = yes_no.to(support.hearing_loop)
            ccd["disabledAccess"] = yes_no.to(support.disabled_access)

        location = dq.hearing_location or HearingLocation()
        ccd["hearingLocation"] = location.court_name
        ccd["hearingLocationSlug"] = location.hearing_location_slug
        ccd["hearingCourtAddress"] = address_mapper.to(location.court_address)
        ccd["hearingLocationOption"] = _name(location.location_option)
        ccd["exceptionalCircumstancesReason"] = location.exceptional_circumstances_reason

        if dq.witness is not None:
            ccd["selfWitness"] = yes_no.to(dq.witness.self_witness)
            ccd["howManyOtherWitness"] = dq.witness.no_of_other_witness

        if dq.expert_request is not None:
            ccd["expertEvidenceToExamine"] = dq.expert_request.expert_evidence_to_examine
            ccd["reasonForExpertAdvice"] = dq.expert_request.reason_for_expert_advice

        ccd["expertReports"] = self.expert_row_mapper.to_collection(dq.expert_reports)
        ccd["unavailableDates"] = self.unavailable_date_mapper.to_collection(dq.unavailable_dates)
        return _compact(ccd)

    def from_(self, ccd: Optional[CCDValue]) -> Optional[DirectionsQuestionnaire]:
        if ccd is None:
            return None
        return DirectionsQuestionnaire(
            require_support=self._require_support(ccd),
            hearing_location=HearingLocation(
                court_name=ccd.get("hearingLocation", ""),
                hearing_location_slug=ccd.get("hearingLocationSlug"),
                court_address=address_mapper.from_(ccd.get("hearingCourtAddress")),
                location_option=_member(CourtLocationType, ccd.get("hearingLocationOption")),
                exceptional_circumstances_reason=ccd.get("exceptionalCircumstancesReason"),
            ),
            witness=self._witness(ccd),
            expert_request=self._expert_request(ccd),
            expert_reports=self.expert_row_mapper.from_collection(ccd.get("expertReports")),
            unavailable_dates=self.unavailable_date_mapper.from_collection(ccd.get("unavailableDates")),
        )

    def _require_support(self, ccd: CCDValue) -> Optional[RequireSupport]:
        language = ccd.get("languageInterpreted")
        sign_language = ccd.get("signLanguageInterpreted")
        other = ccd.get("otherSupportRequired")
        hearing_loop = ccd.get("hearingLoop")
        disabled_access = ccd.get("disabledAccess")
        if (_blank(language) and _blank(sign_language) and _blank(other)
                and hearing_loop is None and disabled_access is None):
            return None
        return RequireSupport(
            language_interpreter=language,
            sign_language_interpreter=sign_language,
            other_support=other,
            hearing_loop=yes_no.from_(hearing_loop),
            disabled_access=yes_no.from_(disabled_access),
        )

    def _expert_request(self, ccd: CCDValue) -> Optional[ExpertRequest]:
        evidence = ccd.get("expertEvidenceToExamine")
        reason = ccd.get("reasonForExpertAdvice")
        if _blank(evidence) and _blank(reason):
            return None
        return ExpertRequest(expert_evidence_to_examine=evidence, reason_for_expert_advice=reason)

    def _witness(self, ccd: CCDValue) -> Optional[Witness]:
        self_witness = ccd.get("selfWitness")
        others = ccd.get("howManyOtherWitness")
        if self_witness is None and others is None:
            return None
        return Witness(self_witness=yes_no.from_(self_witness), no_of_other_witness=others)


directions_questionnaire_mapper = DirectionsQuestionnaireMapper()


# ============================================================================
# RESPONSES
# ============================================================================

class ResponseMapper(Mapper):
    """Defendant response; the variant is carried by responseType."""

    def to(self, response) -> Optional[CCDValue]:
        if response is None:
            return None
        ccd = {
            "responseType": response.response_type.upper(),
            "responseFreeMediationOption": yes_no.to(response.free_mediation),
            "responseMoreTimeNeededOption": yes_no.to(response.more_time_needed),
            "responseDefendantDetails": party_mapper.to(response.defendant),
            "statementOfTruth": statement_of_truth_mapper.to(response.statement_of_truth),
        }
        if isinstance(response, FullDefenceResponse):
            ccd["responseDefenceType"] = _name(response.defence_type)
            ccd["responseDefence"] = response.defence
            ccd["paymentDeclaration"] = payment_declaration_mapper.to(response.payment_declaration)
            ccd["directionsQuestionnaire"] = directions_questionnaire_mapper.to(response.directions_questionnaire)
        elif isinstance(response, FullAdmissionResponse):
            ccd["paymentIntention"] = payment_intention_mapper.to(response.payment_intention)
        elif isinstance(response, PartAdmissionResponse):
            ccd["responseAmount"] = money.to(response.amount)
            ccd["responseDefence"] = response.defence
            ccd["paymentDeclaration"] = payment_declaration_mapper.to(response.payment_declaration)
            ccd["paymentIntention"] = payment_intention_mapper.to(response.payment_intention)
            ccd["directionsQuestionnaire"] = directions_questionnaire_mapper.to(response.directions_questionnaire)
        return _compact(ccd)

    def from_(self, ccd: Optional[CCDValue]):
        if ccd is None:
            return None
        common = dict(
            free_mediation=yes_no.from_(ccd.get("responseFreeMediationOption")),
            more_time_needed=yes_no.from_(ccd.get("responseMoreTimeNeededOption")),
            defendant=party_mapper.from_(ccd.get("responseDefendantDetails")),
            statement_of_truth=statement_of_truth_mapper.from_(ccd.get("statementOfTruth")),
        )
        response_type = ccd.get("responseType")
        if response_type == "FULL_DEFENCE":
            return FullDefenceResponse(
                defence_type=_member(DefenceType, ccd.get("responseDefenceType")) or DefenceType.DISPUTE,
                defence=ccd.get("responseDefence"),
                payment_declaration=payment_declaration_mapper.from_(ccd.get("paymentDeclaration")),
                directions_questionnaire=directions_questionnaire_mapper.from_(ccd.get("directionsQuestionnaire")),
                **common,
            )
        if response_type == "FULL_ADMISSION":
            return FullAdmissionResponse(
                payment_intention=payment_intention_mapper.from_(ccd.get("paymentIntention")),
                **common,
            )
        if response_type == "PART_ADMISSION":
            return PartAdmissionResponse(
                amount=money.from_(ccd.get("responseAmount")) or Decimal("0"),
                defence=ccd.get("responseDefence"),
                payment_declaration=payment_declaration_mapper.from_(ccd.get("paymentDeclaration")),
                payment_intention=payment_intention_mapper.from_(ccd.get("paymentIntention")),
                directions_questionnaire=directions_questionnaire_mapper.from_(ccd.get("directionsQuestionnaire")),
                **common,
            )
        raise MappingException(f"Unknown response type: {response_type}")


class ClaimantResponseMapper(Mapper):

    def to(self, claimant_response) -> Optional[CCDValue]:
        if claimant_response is None:
            return None
        ccd = {"type": claimant_response.type.upper(), "amountPaid": money.to(claimant_response.amount_paid)}
        if isinstance(claimant_response, ResponseAcceptation):
            ccd["formaliseOption"] = _name(claimant_response.formalise_option)
            ccd["claimantPaymentIntention"] = payment_intention_mapper.to(claimant_response.claimant_payment_intention)
        elif isinstance(claimant_response, ResponseRejection):
            ccd["freeMediationOption"] = yes_no.to(claimant_response.free_mediation)
            ccd["reason"] = claimant_response.reason
            ccd["directionsQuestionnaire"] = directions_questionnaire_mapper.to(
                claimant_response.directions_questionnaire
            )
        return _compact(ccd)

    def from_(self, ccd: Optional[CCDValue]):
        if ccd is None:
            return None
        amount_paid = money.from_(ccd.get("amountPaid"))
        if ccd.get("type") == "ACCEPTATION":
            return ResponseAcceptation(
                amount_paid=amount_paid,
                formalise_option=_member(FormaliseOption, ccd.get("formaliseOption")),
                claimant_payment_intention=payment_intention_mapper.from_(ccd.get("claimantPaymentIntention")),
            )
        if ccd.get("type") == "REJECTION":
            return ResponseRejection(
                amount_paid=amount_paid,
                free_mediation=yes_no.from_(ccd.get("freeMediationOption")),
                reason=ccd.get("reason"),
                directions_questionnaire=directions_questionnaire_mapper.from_(ccd.get("directionsQuestionnaire")),
            )
        raise MappingException(f"Unknown claimant response type: {ccd.get('type')}")


# ============================================================================
# SETTLEMENT
# ============================================================================

class OfferMapper(Mapper):
    """Offer fields are flattened onto the party statement."""

    def to(self, offer: Optional[Offer]) -> CCDValue:
        if offer is None:
            return {}
        return _compact({
            "offerContent": offer.content,
            "offerCompletionDate": _date(offer.completion_date),
            "offerPaymentIntention": payment_intention_mapper.to(offer.payment_intention),
        })

    def from_(self, ccd: CCDValue) -> Optional[Offer]:
        if not any(ccd.get(k) is not None for k in ("offerContent", "offerCompletionDate", "offerPaymentIntention")):
            return None
        return Offer(
            content=ccd.get("offerContent", ""),
            completion_date=_parse_date(ccd.get("offerCompletionDate")),
            payment_intention=payment_intention_mapper.from_(ccd.get("offerPaymentIntention")),
        )


class PartyStatementMapper(Mapper):

    offer_mapper = OfferMapper()

    def to(self, statement: Optional[PartyStatement]) -> Optional[CCDValue]:
        if statement is None:
            return None
        ccd = {"type": _name(statement.type), "madeBy": _name(statement.made_by)}
        ccd.update(self.offer_mapper.to(statement.offer))
        return _compact(ccd)

    def from_(self, ccd: Optional[CCDValue]) -> Optional[PartyStatement]:
        if ccd is None:
            return None
        return PartyStatement(
            type=_member(StatementType, ccd.get("type")),
            made_by=_member(MadeBy, ccd.get("madeBy")),
            offer=self.offer_mapper.from_(ccd),
        )


class SettlementMapper(Mapper):

    statement_mapper = PartyStatementMapper()

    def to(self, settlement: Optional[Settlement]) -> Optional[List[CCDValue]]:
        if settlement is None:
            return None
        return [_element(self.statement_mapper.to(s)) for s in settlement.party_statements]

    def from_(self, elements: Optional[List[CCDValue]]) -> Optional[Settlement]:
        if elements is None:
            return None
        return Settlement(party_statements=[self.statement_mapper.from_(e.get("value", {})) for e in elements])


# ============================================================================
# JUDGMENTS
# ============================================================================

class CountyCourtJudgmentMapper(Mapper):

    def to(self, ccj: Optional[CountyCourtJudgment]) -> Optional[CCDValue]:
        if ccj is None:
            return None
        return _compact({
            "type": _name(ccj.ccj_type),
            "paidAmount": money.to(ccj.paid_amount),
            "paymentOption": _name(ccj.payment_option),
            "payBySetDate": _date(ccj.pay_by_set_date),
            "repaymentPlan": repayment_plan_mapper.to(ccj.repayment_plan),
            "statementOfTruth": statement_of_truth_mapper.to(ccj.statement_of_truth),
            "defendantDateOfBirth": _date(ccj.defendant_date_of_birth),
        })

    def from_(self, ccd: Optional[CCDValue]) -> Optional[CountyCourtJudgment]:
        if ccd is None:
            return None
        return CountyCourtJudgment(
            ccj_type=_member(CountyCourtJudgmentType, ccd.get("type")) or CountyCourtJudgmentType.DEFAULT,
            paid_amount=money.from_(ccd.get("paidAmount")),
            payment_option=_member(PaymentOption, ccd.get("paymentOption")) or PaymentOption.IMMEDIATELY,
            pay_by_set_date=_parse_date(ccd.get("payBySetDate")),
            repayment_plan=repayment_plan_mapper.from_(ccd.get("repaymentPlan")),
            statement_of_truth=statement_of_truth_mapper.from_(ccd.get("statementOfTruth")),
            defendant_date_of_birth=_parse_date(ccd.get("defendantDateOfBirth")),
        )


class ReDeterminationMapper(Mapper):

    def to(self, re_determination: Optional[ReDetermination]) -> Optional[CCDValue]:
        if re_determination is None:
            return None
        return {"explanation": re_determination.explanation, "partyType": _name(re_determination.party_type)}

    def from_(self, ccd: Optional[CCDValue]) -> Optional[ReDetermination]:
        if ccd is None:
            return None
        return ReDetermination(
            explanation=ccd.get("explanation", ""),
            party_type=_member(MadeBy, ccd.get("partyType")) or MadeBy.CLAIMANT,
        )


# ============================================================================
# DOCUMENTS AND EVENTS
# ============================================================================

class ClaimDocumentMapper(Mapper):

    def to(self, document: Optional[ClaimDocument]) -> Optional[CCDValue]:
        if document is None:
            return None
        return _element(_compact({
            "documentLink": {
                "document_url": document.document_manager_url,
                "document_binary_url": f"{document.document_manager_url}/binary",
                "document_filename": document.document_name,
            },
            "documentName": document.document_name,
            "documentType": _name(document.document_type),
            "createdDatetime": document.created_datetime.isoformat() if document.created_datetime else None,
            "createdBy": document.created_by,
            "size": document.size,
        }), element_id=document.id)

    def from_(self, element: Optional[CCDValue]) -> Optional[ClaimDocument]:
        if element is None:
            return None
        value = element.get("value", {})
        return ClaimDocument(
            id=element.get("id") or str(uuid.uuid4()),
            document_manager_url=value.get("documentLink", {}).get("document_url", ""),
            document_name=value.get("documentName", ""),
            document_type=_member(ClaimDocumentType, value.get("documentType")),
            created_datetime=_parse_datetime(value.get("createdDatetime")),
            created_by=value.get("createdBy"),
            size=value.get("size"),
        )


class CaseEventMapper:
    """CCD event fired when a document of the given type is attached to a case."""

    UPLOAD_EVENTS = {
        ClaimDocumentType.SEALED_CLAIM: CaseEvent.SEALED_CLAIM_UPLOAD,
        ClaimDocumentType.CLAIM_ISSUE_RECEIPT: CaseEvent.CLAIM_ISSUE_RECEIPT_UPLOAD,
        ClaimDocumentType.DEFENDANT_RESPONSE_RECEIPT: CaseEvent.DEFENDANT_RESPONSE_UPLOAD,
        ClaimDocumentType.CCJ_REQUEST: CaseEvent.CCJ_REQUEST_UPLOAD,
        ClaimDocumentType.SETTLEMENT_AGREEMENT: CaseEvent.SETTLEMENT_AGREEMENT_UPLOAD,
    }

    @classmethod
    def map(cls, document_type: ClaimDocumentType) -> CaseEvent:
        return cls.UPLOAD_EVENTS.get(document_type, CaseEvent.LINK_SEALED_CLAIM)


# ============================================================================
# CASE
# ============================================================================

class ClaimMapper(Mapper):
    """
    Whole claim <-> CCD case data. Claimants become applicant elements; each
    defendant becomes a respondent element and the first respondent carries
    the response, claimant response, settlement and judgment data.
    """

    amount_mapper = AmountMapper()
    interest_mapper = InterestMapper()
    response_mapper = ResponseMapper()
    claimant_response_mapper = ClaimantResponseMapper()
    settlement_mapper = SettlementMapper()
    ccj_mapper = CountyCourtJudgmentMapper()
    re_determination_mapper = ReDeterminationMapper()
    document_mapper = ClaimDocumentMapper()

    def to(self, claim: Optional[Claim]) -> Optional[CCDValue]:
        if claim is None:
            return None
        data = claim.claim_data
        respondents = [self._respondent(claim, d, first=(i == 0)) for i, d in enumerate(data.defendants)]
        documents = claim.claim_document_collection.claim_documents if claim.claim_document_collection else []
        return _compact({
            "id": claim.ccd_case_id,
            "externalId": claim.external_id,
            "referenceNumber": claim.reference_number,
            "submitterId": claim.submitter_id,
            "submitterEmail": claim.submitter_email,
            "submittedOn": claim.created_at.isoformat() if claim.created_at else None,
            "issuedOn": _date(claim.issued_on),
            "externalReferenceNumber": data.external_reference_number,
            "state": _name(claim.state),
            "reason": data.reason,
            "feeAmountInPennies": str(data.fee_amount_in_pennies) if data.fee_amount_in_pennies is not None else None,
            "amount": self.amount_mapper.to(data.amount),
            "interest": self.interest_mapper.to(data.interest),
            "statementOfTruth": statement_of_truth_mapper.to(data.statement_of_truth),
            "claimants": [_element(party_mapper.to(c)) for c in data.claimants],
            "respondents": respondents,
            "caseDocuments": self.document_mapper.to_collection(documents),
            "preferredCourt": claim.preferred_court,
        })

    def _respondent(self, claim: Claim, defendant: Party, first: bool) -> CCDValue:
        value = {"claimantProvidedDetail": party_mapper.to(defendant)}
        if first:
            value.update({
                "defendantId": claim.defendant_id,
                "letterHolderId": claim.letter_holder_id,
                "partyEmail": claim.defendant_email,
                "responseDeadline": _date(claim.response_deadline),
                "responseMoreTimeRequested": yes_no.to(YesNoOption.from_bool(claim.more_time_requested)),
                "response": self.response_mapper.to(claim.response),
                "responseSubmittedOn": claim.responded_at.isoformat() if claim.responded_at else None,
                "claimantResponse": self.claimant_response_mapper.to(claim.claimant_response),
                "claimantRespondedAt": (
                    claim.claimant_responded_at.isoformat() if claim.claimant_responded_at else None
                ),
                "countyCourtJudgmentRequest": self.ccj_mapper.to(claim.county_court_judgment),
                "countyCourtJudgmentRequestedAt": (
                    claim.county_court_judgment_requested_at.isoformat()
                    if claim.county_court_judgment_requested_at else None
                ),
                "settlementPartyStatements": self.settlement_mapper.to(claim.settlement),
                "settlementReachedAt": (
                    claim.settlement_reached_at.isoformat() if claim.settlement_reached_at else None
                ),
                "redetermination": self.re_determination_mapper.to(claim.re_determination),
                "redeterminationRequestedAt": (
                    claim.re_determination_requested_at.isoformat() if claim.re_determination_requested_at else None
                ),
            })
        return _element(_compact(value))

    def from_(self, ccd: Optional[CCDValue]) -> Optional[Claim]:
        if ccd is None:
            return None
        respondents = [e["value"] for e in ccd.get("respondents", [])]
        first = respondents[0] if respondents else {}
        fee = ccd.get("feeAmountInPennies")
        claim_data = ClaimData(
            external_id=ccd.get("externalId", ""),
            claimants=[party_mapper.from_(e["value"]) for e in ccd.get("claimants", [])],
            defendants=[party_mapper.from_(r["claimantProvidedDetail"]) for r in respondents],
            amount=self.amount_mapper.from_(ccd.get("amount")) or NotKnown(),
            fee_amount_in_pennies=int(fee) if fee is not None else None,
            reason=ccd.get("reason", ""),
            interest=self.interest_mapper.from_(ccd.get("interest")) or Interest(),
            statement_of_truth=statement_of_truth_mapper.from_(ccd.get("statementOfTruth")),
            external_reference_number=ccd.get("externalReferenceNumber"),
        )
        documents = self.document_mapper.from_collection(ccd.get("caseDocuments"))
        return Claim(
            external_id=ccd.get("externalId", ""),
            claim_data=claim_data,
            submitter_id=ccd.get("submitterId"),
            submitter_email=ccd.get("submitterEmail"),
            reference_number=ccd.get("referenceNumber"),
            letter_holder_id=first.get("letterHolderId"),
            defendant_id=first.get("defendantId"),
            defendant_email=first.get("partyEmail"),
            created_at=_parse_datetime(ccd.get("submittedOn")),
            issued_on=_parse_date(ccd.get("issuedOn")),
            response_deadline=_parse_date(first.get("responseDeadline")),
            more_time_requested=first.get("responseMoreTimeRequested") == "YES",
            response=self.response_mapper.from_(first.get("response")),
            responded_at=_parse_datetime(first.get("responseSubmittedOn")),
            claimant_response=self.claimant_response_mapper.from_(first.get("claimantResponse")),
            claimant_responded_at=_parse_datetime(first.get("claimantRespondedAt")),
            county_court_judgment=self.ccj_mapper.from_(first.get("countyCourtJudgmentRequest")),
            county_court_judgment_requested_at=_parse_datetime(first.get("countyCourtJudgmentRequestedAt")),
            settlement=self.settlement_mapper.from_(first.get("settlementPartyStatements")),
            settlement_reached_at=_parse_datetime(first.get("settlementReachedAt")),
            re_determination=self.re_determination_mapper.from_(first.get("redetermination")),
            re_determination_requested_at=_parse_datetime(first.get("redeterminationRequestedAt")),
            claim_document_collection=ClaimDocumentCollection(documents) if documents else None,
            preferred_court=ccd.get("preferredCourt"),
            state=_member(ClaimState, ccd.get("state")) or ClaimState.OPEN,
            ccd_case_id=ccd.get("id"),
        )
