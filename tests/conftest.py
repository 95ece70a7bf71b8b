"""
Pytest configuration and fixtures for Claim Store tests.

Provides factory helpers for claims, parties, responses and directions
questionnaires, and a fully wired set of lifecycle services on a
temporary database.
"""
import os
import tempfile

# The API module builds its store at import time.
os.environ.setdefault(
    "CLAIMSTORE_DB_PATH", os.path.join(tempfile.mkdtemp(prefix="claimstore-tests-"), "claims.db"),
)

from datetime import date, datetime, timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest

from claimstore_rules import (
    CCDEventProducer,
    ClaimantResponseService,
    ClaimRepository,
    ClaimService,
    DirectionsQuestionnaireService,
    EventPublisher,
    OffersService,
    ResponseService,
    SettlementAgreementService,
)
from claimstore_store import Store
from claimstore_types import (
    PDF,
    Address,
    AmountBreakDown,
    AmountRow,
    Claim,
    ClaimData,
    ClaimDocumentType,
    ClaimState,
    Company,
    DefenceType,
    DirectionsQuestionnaire,
    ExpertReport,
    FormaliseOption,
    FullAdmissionResponse,
    FullDefenceResponse,
    HearingLocation,
    Individual,
    Interest,
    InterestType,
    PartAdmissionResponse,
    PaymentIntention,
    PaymentOption,
    Representative,
    RequireSupport,
    ResponseAcceptation,
    ResponseRejection,
    StatementOfTruth,
    UnavailableDate,
    Witness,
    YesNoOption,
)


# =============================================================================
# Factory Helpers
# =============================================================================

def make_address(line1: str = "1 High Street", city: str = "London", postcode: str = "SW1A 1AA") -> Address:
    return Address(line1=line1, city=city, postcode=postcode)


def make_individual(name: str = "John Rambo", email: str = None, **kwargs) -> Individual:
    return Individual(name=name, address=make_address(), email=email, **kwargs)


def make_company(name: str = "Acme Ltd", contact_person: str = "Jane Manager") -> Company:
    return Company(name=name, address=make_address("2 Trade Park"), contact_person=contact_person)


def make_claim_data(claimant=None, defendant=None, represented: bool = False, **kwargs) -> ClaimData:
    """Claim for £100 plus a £25 fee, no interest."""
    claimant = claimant or make_individual("Dr. John Smith", email="claimant@example.com")
    if represented:
        claimant.representative = Representative(organisation_name="Trading Legal Ltd")
    defaults = dict(
        claimants=[claimant],
        defendants=[defendant or make_individual("Mr. Paul Defendant", email="defendant@example.com")],
        amount=AmountBreakDown(rows=[AmountRow(reason="Broken window", amount=Decimal("100.00"))]),
        fee_amount_in_pennies=2500,
        reason="Defendant broke my window and refused to pay",
        interest=Interest(type=InterestType.NO_INTEREST),
        statement_of_truth=StatementOfTruth(signer_name="John Smith", signer_role="Claimant"),
    )
    defaults.update(kwargs)
    return ClaimData(**defaults)


def make_claim(**overrides) -> Claim:
    """An issued claim as it would be read back from the store."""
    defaults = dict(
        claim_data=make_claim_data(),
        submitter_id="claimant-1",
        submitter_email="claimant@example.com",
        reference_number="000MC001",
        letter_holder_id="lh-1",
        defendant_id="defendant-1",
        defendant_email="defendant@example.com",
        created_at=datetime(2050, 1, 1, 10, 15),
        issued_on=date(2050, 1, 1),
        response_deadline=date(2050, 1, 20),
        state=ClaimState.OPEN,
    )
    defaults.update(overrides)
    return Claim(**defaults)


def make_dq(court: str = "Birmingham", **kwargs) -> DirectionsQuestionnaire:
    defaults = dict(
        require_support=RequireSupport(language_interpreter="Polish", hearing_loop=YesNoOption.YES),
        hearing_location=HearingLocation(court_name=court),
        witness=Witness(self_witness=YesNoOption.YES, no_of_other_witness=1),
        expert_reports=[ExpertReport("Dr. Expert", date(2049, 6, 1))],
        unavailable_dates=[UnavailableDate(date(2050, 3, 1))],
    )
    defaults.update(kwargs)
    return DirectionsQuestionnaire(**defaults)


def make_full_defence(dq=None, defence_type: DefenceType = DefenceType.DISPUTE, **kwargs) -> FullDefenceResponse:
    return FullDefenceResponse(
        free_mediation=kwargs.pop("free_mediation", YesNoOption.NO),
        defendant=kwargs.pop("defendant", make_individual("Mr. Paul Defendant", date_of_birth=date(1980, 5, 1))),
        statement_of_truth=StatementOfTruth(signer_name="Paul Defendant", signer_role="Defendant"),
        defence_type=defence_type,
        defence="I did not break the window",
        directions_questionnaire=dq if dq is not None else make_dq(),
        **kwargs,
    )


def make_full_admission(**kwargs) -> FullAdmissionResponse:
    return FullAdmissionResponse(
        free_mediation=YesNoOption.NO,
        defendant=kwargs.pop("defendant", make_individual("Mr. Paul Defendant")),
        payment_intention=PaymentIntention(PaymentOption.BY_SPECIFIED_DATE, date(2050, 6, 1)),
        **kwargs,
    )


def make_part_admission(amount: Decimal = Decimal("50.00"), dq=None, **kwargs) -> PartAdmissionResponse:
    return PartAdmissionResponse(
        free_mediation=YesNoOption.NO,
        defendant=kwargs.pop("defendant", make_individual("Mr. Paul Defendant")),
        amount=amount,
        defence="I only owe half",
        payment_intention=PaymentIntention(PaymentOption.IMMEDIATELY),
        directions_questionnaire=dq if dq is not None else make_dq(),
        **kwargs,
    )


def make_rejection(free_mediation: YesNoOption = YesNoOption.NO, dq=None, with_dq: bool = True) -> ResponseRejection:
    return ResponseRejection(
        free_mediation=free_mediation,
        reason="The defendant does owe the money",
        directions_questionnaire=(dq or make_dq("Manchester")) if with_dq else None,
    )


def make_acceptation(formalise_option: FormaliseOption = FormaliseOption.CCJ, **kwargs) -> ResponseAcceptation:
    return ResponseAcceptation(formalise_option=formalise_option, **kwargs)


def make_pdf(document_type: ClaimDocumentType = ClaimDocumentType.SEALED_CLAIM) -> PDF:
    return PDF(f"000MC001-{document_type.value}.pdf", b"%PDF-1.4 test", document_type)


def past(days: int) -> date:
    return date.today() - timedelta(days=days)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def store(tmp_path):
    return Store(str(tmp_path / "claims.db"))


@pytest.fixture
def services(store):
    """Lifecycle services sharing one store and publisher; records published events."""
    repository = ClaimRepository(store)
    ccd = CCDEventProducer(store)
    dq_service = DirectionsQuestionnaireService()
    published = []

    class RecordingPublisher(EventPublisher):
        def publish(self, event):
            published.append(event)
            super().publish(event)

    publisher = RecordingPublisher()
    return SimpleNamespace(
        store=store,
        publisher=publisher,
        published=published,
        repository=repository,
        ccd=ccd,
        dq_service=dq_service,
        claims=ClaimService(repository, ccd, publisher),
        responses=ResponseService(repository, ccd, publisher, dq_service),
        claimant_responses=ClaimantResponseService(repository, ccd, publisher, dq_service),
        offers=OffersService(repository, ccd, publisher),
        agreements=SettlementAgreementService(repository, ccd, publisher),
    )


@pytest.fixture
def issued_claim(services):
    """A citizen claim issued and linked to defendant-1."""
    claim = services.claims.save_claim("claimant-1", make_claim_data(), "claimant@example.com")
    return services.claims.link_defendant(claim.external_id, "defendant-1", "defendant@example.com")
