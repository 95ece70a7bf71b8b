"""
Document Tests

Content providers, PDF rendering, document storage and the handlers that
upload generated documents against a claim.
"""
from datetime import date, datetime
from decimal import Decimal

import pytest

from claimstore_docs import (
    DOCUMENT_TEMPLATES,
    ContentProviders,
    DefendantDetailsContent,
    DocumentGenerator,
    DocumentManagementService,
    DocumentsService,
    DocumentUploadHandler,
    build_pdf_services,
    describe_payment_intention,
    file_base_name,
    format_date,
    format_datetime,
    format_money,
    render_document,
)
from claimstore_types import (
    ClaimantResponse,
    ClaimDocument,
    ClaimDocumentType,
    CountyCourtJudgment,
    DefendantResponseEvent,
    DocumentManagementException,
    FormaliseOption,
    MadeBy,
    MappingException,
    NotFoundException,
    Offer,
    PaymentIntention,
    PaymentOption,
    PaymentSchedule,
    RepaymentPlan,
    Settlement,
    YesNoOption,
)
from tests.conftest import (
    make_acceptation,
    make_address,
    make_claim,
    make_claim_data,
    make_company,
    make_full_defence,
    make_individual,
    make_part_admission,
    make_rejection,
)

providers = ContentProviders("https://money-claims.example", "https://respond.example")


def settled_claim():
    settlement = Settlement()
    settlement.make_offer(Offer(content="£80 by March", completion_date=date(2050, 3, 1)), MadeBy.DEFENDANT)
    settlement.accept(MadeBy.CLAIMANT)
    settlement.countersign(MadeBy.DEFENDANT)
    return make_claim(settlement=settlement, settlement_reached_at=datetime(2050, 2, 1, 14, 30))


def rejected_claim():
    return make_claim(
        response=make_full_defence(),
        responded_at=datetime(2050, 1, 10, 9, 0),
        claimant_response=make_rejection(),
        claimant_responded_at=datetime(2050, 1, 15, 16, 45),
    )


# =============================================================================
# Formatting
# =============================================================================

class TestFormatting:

    def test_money(self) -> None:
        assert format_money(Decimal("1234.5")) == "£1,234.50"
        assert format_money(None) == "£0.00"

    def test_dates(self) -> None:
        assert format_date(date(2050, 1, 1)) == "1 January 2050"
        assert format_date(None) == ""

    def test_datetimes(self) -> None:
        assert format_datetime(datetime(2050, 1, 1, 10, 15)) == "1 January 2050 at 10:15am"
        assert format_datetime(datetime(2050, 1, 1, 0, 5)) == "1 January 2050 at 12:05am"
        assert format_datetime(datetime(2050, 1, 1, 13, 0)) == "1 January 2050 at 1:00pm"

    def test_file_names(self) -> None:
        assert file_base_name("000MC001", ClaimDocumentType.SEALED_CLAIM) == "000MC001-claim-form"
        assert file_base_name("000MC001", ClaimDocumentType.CLAIM_ISSUE_RECEIPT) == (
            "000MC001-claim-form-claimant-copy"
        )
        assert file_base_name(None, ClaimDocumentType.CCJ_REQUEST) == "draft-county-court-judgment-details"

    def test_payment_intentions(self) -> None:
        assert describe_payment_intention(PaymentIntention(PaymentOption.IMMEDIATELY)) == "Immediately"
        assert describe_payment_intention(
            PaymentIntention(PaymentOption.BY_SPECIFIED_DATE, date(2050, 6, 1))
        ) == "In full by 1 June 2050"
        plan = RepaymentPlan(Decimal("20"), date(2050, 2, 1), PaymentSchedule.EVERY_TWO_WEEKS)
        assert describe_payment_intention(
            PaymentIntention(PaymentOption.INSTALMENTS, repayment_plan=plan)
        ) == "£20.00 every two weeks starting 1 February 2050"


# =============================================================================
# Content
# =============================================================================

class TestDefendantDetails:

    def test_unchanged_details(self) -> None:
        given = make_individual("Mr. Paul Defendant")
        response = make_full_defence(defendant=make_individual("Mr. Paul Defendant"))

        details = DefendantDetailsContent.build(given, response, response.defendant, "d@example.com")

        assert details.full_name == "Mr. Paul Defendant"
        assert not details.name_amended
        assert not details.address_amended
        assert details.signer_name == "Paul Defendant"
        assert details.email == "d@example.com"

    def test_amended_name_and_address(self) -> None:
        given = make_individual("Mr. Paul Defendant")
        corrected = make_individual("Paul Defendant-Smith", date_of_birth=date(1980, 5, 1))
        corrected.address = make_address("9 New Road")
        response = make_full_defence(defendant=corrected)

        details = DefendantDetailsContent.build(given, response, corrected, None)

        assert details.name_amended
        assert details.full_name == "Paul Defendant-Smith"
        assert details.address_amended
        assert details.address.line1 == "9 New Road"
        assert details.date_of_birth == "1 May 1980"

    def test_company_details(self) -> None:
        company = make_company()
        response = make_full_defence(defendant=company)

        content = providers.party.create_defendant_content(company, response, None)

        assert content["type"] == "Company"
        assert content["contact_person"] == "Jane Manager"


class TestClaimData:

    def test_summary(self) -> None:
        content = providers.claim_data.create_content(make_claim())

        assert content["reference_number"] == "000MC001"
        assert content["submitted_on"] == "1 January 2050 at 10:15am"
        assert content["response_deadline"] == "20 January 2050"
        assert content["amount_rows"] == [("Broken window", "£100.00")]
        assert content["fee"] == "£25.00"
        assert content["total_amount"] == "£125.00"
        assert content["claimants"][0]["email"] == "claimant@example.com"


class TestClaimantResponseContent:

    def test_requires_claim(self) -> None:
        with pytest.raises(ValueError, match="Claim must not be null"):
            providers.claimant_response.create_content(None)

    def test_acceptation(self) -> None:
        claim = make_claim(
            response=make_part_admission(),
            claimant_response=make_acceptation(amount_paid=Decimal("10.00")),
            claimant_responded_at=datetime(2050, 1, 15, 9, 0),
        )

        content = providers.claimant_response.create_content(claim)

        assert content["response_type"] == "ACCEPTATION"
        assert content["defendant_admission_accepted"] == "I accept this amount"
        assert content["formalise_option"] == "County Court Judgment"
        assert content["total_amount"] == "£115.00"
        assert content["payment_intention"] == "Immediately"
        assert content["payment_intention_proposed_by"] == "defendant"
        assert content["claimant_submitted_date"] == "15 January 2050"
        assert "ccj" in content

    def test_acceptation_after_re_determination(self) -> None:
        claim = make_claim(
            response=make_part_admission(Decimal("40.00")),
            claimant_response=make_acceptation(),
            re_determination_requested_at=datetime(2050, 2, 1),
        )

        content = providers.claimant_response.create_content(claim)

        assert content["defendant_admission_accepted"] == "I accept £40.00"

    def test_company_referred_to_judge(self) -> None:
        claim = make_claim(
            claim_data=make_claim_data(defendant=make_company()),
            response=make_part_admission(defendant=make_company()),
            claimant_response=make_acceptation(FormaliseOption.REFER_TO_JUDGE),
        )

        content = providers.claimant_response.create_content(claim)

        assert content["formalise_option"] == "Please enter judgment by determination"

    def test_acceptation_needs_formalise_option(self) -> None:
        claim = make_claim(response=make_part_admission(), claimant_response=make_acceptation(None))

        with pytest.raises(ValueError, match="Formalise option is required"):
            providers.claimant_response.create_content(claim)

    def test_rejection(self) -> None:
        content = providers.claimant_response.create_content(rejected_claim())

        assert content["response_type"] == "REJECTION"
        assert content["defendant_admission_accepted"] == "I reject this amount"
        assert content["free_mediation"] == "No"
        assert content["directions_questionnaire"]["hearing_court"] == "Manchester"
        assert content["directions_questionnaire"]["hearing_loop"] == "Yes"

    def test_unknown_claimant_response(self) -> None:
        claim = make_claim(response=make_full_defence(), claimant_response=ClaimantResponse())

        with pytest.raises(MappingException, match="Invalid responseType"):
            providers.claimant_response.create_content(claim)


# =============================================================================
# Rendering
# =============================================================================

class TestRendering:

    pdf_services = build_pdf_services(providers)

    def test_unknown_template(self) -> None:
        with pytest.raises(ValueError):
            render_document("invoice", {})

    def test_sealed_claim(self) -> None:
        pdf = self.pdf_services[ClaimDocumentType.SEALED_CLAIM].create_pdf(make_claim())

        assert pdf.filename == "000MC001-claim-form.pdf"
        assert pdf.data.startswith(b"%PDF")

    def test_claim_issue_receipt(self) -> None:
        pdf = self.pdf_services[ClaimDocumentType.CLAIM_ISSUE_RECEIPT].create_pdf(make_claim())

        assert pdf.claim_document_type == ClaimDocumentType.CLAIM_ISSUE_RECEIPT
        assert pdf.data.startswith(b"%PDF")

    def test_receipt_is_claim_form_with_intro(self) -> None:
        content = providers.claim_data.create_content(make_claim())

        sealed = DOCUMENT_TEMPLATES[ClaimDocumentType.SEALED_CLAIM]["builder"](content)
        receipt = DOCUMENT_TEMPLATES[ClaimDocumentType.CLAIM_ISSUE_RECEIPT]["builder"](content)

        # the claim form plus one intro paragraph
        assert len(receipt) == len(sealed) + 1

    def test_defendant_response_receipt(self) -> None:
        pdf = self.pdf_services[ClaimDocumentType.DEFENDANT_RESPONSE_RECEIPT].create_pdf(rejected_claim())

        assert pdf.filename == "000MC001-claim-response.pdf"
        assert pdf.data.startswith(b"%PDF")

    def test_ccj_request(self) -> None:
        claim = make_claim(
            county_court_judgment=CountyCourtJudgment(paid_amount=Decimal("10.00")),
            county_court_judgment_requested_at=datetime(2050, 2, 1, 9, 0),
        )

        pdf = self.pdf_services[ClaimDocumentType.CCJ_REQUEST].create_pdf(claim)

        assert pdf.data.startswith(b"%PDF")

    def test_settlement_agreement(self) -> None:
        pdf = self.pdf_services[ClaimDocumentType.SETTLEMENT_AGREEMENT].create_pdf(settled_claim())

        assert pdf.filename == "000MC001-settlement-agreement.pdf"
        assert pdf.data.startswith(b"%PDF")

    def test_claimant_directions_questionnaire(self) -> None:
        pdf = self.pdf_services[ClaimDocumentType.CLAIMANT_DIRECTIONS_QUESTIONNAIRE].create_pdf(rejected_claim())

        assert pdf.data.startswith(b"%PDF")

    def test_pin_letter(self) -> None:
        service = self.pdf_services[ClaimDocumentType.DEFENDANT_PIN_LETTER]

        content = service.create_content(make_claim())
        pdf = service.create_pdf_with_pin(make_claim(), "ABCD2345")

        assert content["respond_to_claim_url"] == "https://respond.example"
        assert content["defendant_name"] == "Mr. Paul Defendant"
        assert pdf.filename == "000MC001-defendant-pin-letter.pdf"

    @pytest.mark.parametrize("document_type,message", [
        (ClaimDocumentType.DEFENDANT_RESPONSE_RECEIPT, "Defendant response does not exist"),
        (ClaimDocumentType.CCJ_REQUEST, "County Court Judgment does not exist"),
        (ClaimDocumentType.SETTLEMENT_AGREEMENT, "Settlement Agreement does not exist"),
    ])
    def test_missing_data(self, document_type, message) -> None:
        with pytest.raises(NotFoundException, match=message):
            self.pdf_services[document_type].create_pdf(make_claim())


# =============================================================================
# Storage and handlers
# =============================================================================

@pytest.fixture
def documents(services):
    """Document services wired onto the lifecycle publisher."""
    pdf_services = build_pdf_services(providers)
    management = DocumentManagementService(services.store)
    documents_service = DocumentsService(services.claims, management, pdf_services)
    uploads = DocumentUploadHandler(documents_service, pdf_services)
    generator = DocumentGenerator(
        pdf_services[ClaimDocumentType.SEALED_CLAIM],
        pdf_services[ClaimDocumentType.DEFENDANT_PIN_LETTER],
        services.publisher,
    )
    generator.register(services.publisher)
    uploads.register(services.publisher)
    services.documents_service = documents_service
    services.document_management = management
    services.uploads = uploads
    return services


def stored_types(claim):
    return [d.document_type for d in claim.claim_document_collection.claim_documents]


class TestDocumentManagement:

    def test_upload_and_download(self, store) -> None:
        management = DocumentManagementService(store)
        pdf = build_pdf_services(providers)[ClaimDocumentType.SEALED_CLAIM].create_pdf(make_claim())

        document = management.upload_document("Bearer token", pdf)

        assert document.document_manager_url.startswith("/documents/doc_")
        assert document.document_name == "000MC001-claim-form.pdf"
        assert document.size == len(pdf.data)
        assert management.download_document("Bearer token", document) == pdf.data

    def test_missing_document(self, store) -> None:
        missing = ClaimDocument(document_manager_url="/documents/doc_missing", document_name="gone.pdf")

        with pytest.raises(DocumentManagementException):
            DocumentManagementService(store).download_document(None, missing)


class TestIssueDocuments:

    def test_citizen_claim_stores_sealed_claim_and_receipt(self, documents) -> None:
        claim = documents.claims.save_claim("claimant-1", make_claim_data())

        stored = documents.claims.get_claim_by_external_id(claim.external_id)

        assert stored_types(stored) == [ClaimDocumentType.SEALED_CLAIM, ClaimDocumentType.CLAIM_ISSUE_RECEIPT]

    def test_represented_claim_stores_sealed_claim_only(self, documents) -> None:
        claim = documents.claims.save_claim("solicitor-1", make_claim_data(represented=True))

        stored = documents.claims.get_claim_by_external_id(claim.external_id)

        assert stored_types(stored) == [ClaimDocumentType.SEALED_CLAIM]

    def test_response_receipt_stored(self, documents) -> None:
        claim = documents.claims.save_claim("claimant-1", make_claim_data())
        documents.claims.link_defendant(claim.external_id, "defendant-1")

        documents.responses.save(claim.external_id, "defendant-1", make_full_defence())

        stored = documents.claims.get_claim_by_external_id(claim.external_id)
        assert stored_types(stored)[-1] == ClaimDocumentType.DEFENDANT_RESPONSE_RECEIPT

    def test_claimant_questionnaire_only_for_rejection(self, documents) -> None:
        claim = documents.claims.save_claim("claimant-1", make_claim_data())
        documents.claims.link_defendant(claim.external_id, "defendant-1")
        documents.responses.save(claim.external_id, "defendant-1", make_full_defence())

        documents.claimant_responses.save(claim.external_id, "claimant-1", make_rejection(YesNoOption.YES))

        stored = documents.claims.get_claim_by_external_id(claim.external_id)
        assert stored_types(stored)[-1] == ClaimDocumentType.CLAIMANT_DIRECTIONS_QUESTIONNAIRE

    def test_null_claim(self, documents) -> None:
        with pytest.raises(ValueError, match="Claim must not be null"):
            documents.uploads.upload_defendant_response_document(DefendantResponseEvent(None))


class TestGenerateDocument:

    def test_serves_stored_copy(self, documents) -> None:
        claim = documents.claims.save_claim("claimant-1", make_claim_data())
        stored = documents.claims.get_claim_by_external_id(claim.external_id)
        sealed = stored.get_claim_document(ClaimDocumentType.SEALED_CLAIM)

        data = documents.documents_service.generate_document(claim.external_id, ClaimDocumentType.SEALED_CLAIM)

        assert data == documents.document_management.download_document(None, sealed)

    def test_generates_and_stores_on_first_request(self, services) -> None:
        pdf_services = build_pdf_services(providers)
        service = DocumentsService(services.claims, DocumentManagementService(services.store), pdf_services)
        claim = services.claims.save_claim("claimant-1", make_claim_data())

        data = service.generate_document(claim.external_id, ClaimDocumentType.SEALED_CLAIM)

        assert data.startswith(b"%PDF")
        stored = services.claims.get_claim_by_external_id(claim.external_id)
        assert stored_types(stored) == [ClaimDocumentType.SEALED_CLAIM]

    def test_falls_back_when_storage_fails(self, services, monkeypatch) -> None:
        management = DocumentManagementService(services.store)
        service = DocumentsService(services.claims, management, build_pdf_services(providers))
        claim = services.claims.save_claim("claimant-1", make_claim_data())

        def broken_upload(authorisation, pdf):
            raise DocumentManagementException("store unavailable")

        monkeypatch.setattr(management, "upload_document", broken_upload)

        data = service.generate_document(claim.external_id, ClaimDocumentType.CLAIM_ISSUE_RECEIPT)

        assert data.startswith(b"%PDF")
        assert services.claims.get_claim_by_external_id(claim.external_id).claim_document_collection is None

    def test_unsupported_type(self, documents) -> None:
        with pytest.raises(ValueError, match="Unknown document service for document of type CCJ_REQUEST"):
            documents.documents_service.generate_document("any", ClaimDocumentType.CCJ_REQUEST)
