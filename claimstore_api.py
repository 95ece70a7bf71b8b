#!/usr/bin/env python3
"""
Claim Store API
===============
FastAPI service in front of the claim store: issue claims, link defendants,
take defendant and claimant responses, run the offers and settlement
agreement journeys, request judgments and serve the court documents.

Usage:
    uvicorn claimstore_api:app --host 0.0.0.0 --port 4400

Requires:
    pip install fastapi uvicorn pydantic reportlab httpx
"""

from __future__ import annotations

import hmac
import logging
import os
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import Body, FastAPI, Header, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ValidationError

from claimstore_ccd import ClaimMapper
from claimstore_docs import (
    ContentProviders,
    DocumentGenerator,
    DocumentManagementService,
    DocumentsService,
    DocumentUploadHandler,
    build_pdf_services,
    file_base_name,
)
from claimstore_email import (
    BulkPrintHandler,
    BulkPrintService,
    BulkPrintStaffNotificationService,
    DummyBulkPrintService,
    EmailService,
    LoggingMailSender,
    NotificationHandler,
    NotificationService,
    SmtpMailSender,
)
from claimstore_rules import (
    DEFAULT_PILOT_COURTS,
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
    CLAIMANT_RESPONSE_ADAPTER,
    RESPONSE_ADAPTER,
    Claim,
    ClaimData,
    ClaimDocumentType,
    ClaimStoreException,
    CountyCourtJudgment,
    MadeBy,
    Offer,
    ReDetermination,
    from_json,
    to_json,
)

# ── Logging ──
logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
logger = logging.getLogger("claimstore-api")


# ============================================================================
# CONFIGURATION
# ============================================================================

def _flag(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).lower() == "true"


class Config:
    """Environment-driven configuration. Reads from env vars in production."""
    DB_PATH: Optional[str] = os.environ.get("CLAIMSTORE_DB_PATH") or None
    API_KEY: str = os.environ.get("CLAIMSTORE_API_KEY", "cs_live_sk_placeholder")
    REQUIRE_AUTH: bool = _flag("REQUIRE_AUTH")
    CORS_ORIGINS: List[str] = os.environ.get(
        "CORS_ORIGINS", "http://localhost:3000,http://localhost:4000",
    ).split(",")
    FRONTEND_BASE_URL: str = os.environ.get("FRONTEND_BASE_URL", "http://localhost:3000")
    RESPOND_TO_CLAIM_URL: str = os.environ.get("RESPOND_TO_CLAIM_URL", "http://localhost:3000/first-contact/start")
    STAFF_EMAIL: Optional[str] = os.environ.get("STAFF_EMAIL") or None
    EMAIL_FROM: str = os.environ.get("EMAIL_FROM", "no-reply@money-claims.local")
    SMTP_HOST: Optional[str] = os.environ.get("SMTP_HOST") or None
    SMTP_PORT: int = int(os.environ.get("SMTP_PORT", "25"))
    SMTP_USERNAME: Optional[str] = os.environ.get("SMTP_USERNAME") or None
    SMTP_PASSWORD: Optional[str] = os.environ.get("SMTP_PASSWORD") or None
    SMTP_USE_TLS: bool = _flag("SMTP_USE_TLS")
    SEND_LETTER_URL: Optional[str] = os.environ.get("SEND_LETTER_URL") or None
    CORE_CASE_DATA_URL: Optional[str] = os.environ.get("CORE_CASE_DATA_URL") or None
    ASYNC_EVENT_OPERATIONS_ENABLED: bool = _flag("ASYNC_EVENT_OPERATIONS_ENABLED")
    PILOT_COURTS: List[str] = os.environ.get("PILOT_COURTS", ",".join(DEFAULT_PILOT_COURTS)).split(",")
    RESPONSE_DEADLINE_DAYS: int = int(os.environ.get("RESPONSE_DEADLINE_DAYS", "14"))
    SERVICE_DAYS: int = int(os.environ.get("SERVICE_DAYS", "5"))
    MORE_TIME_DAYS: int = int(os.environ.get("MORE_TIME_DAYS", "14"))


config = Config()


# ============================================================================
# WIRING
# ============================================================================

store = Store(config.DB_PATH)
publisher = EventPublisher()
repository = ClaimRepository(store)
ccd = CCDEventProducer(store, config.CORE_CASE_DATA_URL)
dq_service = DirectionsQuestionnaireService(config.PILOT_COURTS)

claim_service = ClaimService(
    repository, ccd, publisher,
    service_days=config.SERVICE_DAYS,
    response_days=config.RESPONSE_DEADLINE_DAYS,
    more_time_days=config.MORE_TIME_DAYS,
)
response_service = ResponseService(repository, ccd, publisher, dq_service)
claimant_response_service = ClaimantResponseService(repository, ccd, publisher, dq_service)
offers_service = OffersService(repository, ccd, publisher)
settlement_agreement_service = SettlementAgreementService(repository, ccd, publisher)

content_providers = ContentProviders(config.FRONTEND_BASE_URL, config.RESPOND_TO_CLAIM_URL)
pdf_services = build_pdf_services(content_providers)
documents_service = DocumentsService(claim_service, DocumentManagementService(store), pdf_services)


def _track(name: str, properties: Dict[str, str]):
    store.publish_event("telemetry", {"name": name, **properties})


if config.SMTP_HOST:
    mail_sender = SmtpMailSender(config.SMTP_HOST, config.SMTP_PORT, config.SMTP_USERNAME,
                                 config.SMTP_PASSWORD, config.SMTP_USE_TLS)
else:
    mail_sender = LoggingMailSender()
email_service = EmailService(mail_sender, _track, config.ASYNC_EVENT_OPERATIONS_ENABLED)
notification_service = NotificationService(email_service, config.EMAIL_FROM)

if config.SEND_LETTER_URL:
    bulk_print = BulkPrintService(
        config.SEND_LETTER_URL,
        BulkPrintStaffNotificationService(notification_service, config.STAFF_EMAIL),
        config.ASYNC_EVENT_OPERATIONS_ENABLED,
    )
else:
    bulk_print = DummyBulkPrintService()

DocumentGenerator(
    pdf_services[ClaimDocumentType.SEALED_CLAIM],
    pdf_services[ClaimDocumentType.DEFENDANT_PIN_LETTER],
    publisher,
).register(publisher)
DocumentUploadHandler(documents_service, pdf_services).register(publisher)
BulkPrintHandler(bulk_print).register(publisher)
NotificationHandler(
    notification_service, config.STAFF_EMAIL, config.FRONTEND_BASE_URL, config.RESPOND_TO_CLAIM_URL,
).register(publisher)


# ============================================================================
# AUTH
# ============================================================================

def verify_api_key(authorization: Optional[str] = Header(None)) -> str:
    """Verify the Bearer token matches our API key.
    In local dev mode, auth is skipped if no key is provided.
    In production, set REQUIRE_AUTH=true in environment.
    """
    if not authorization:
        if config.REQUIRE_AUTH:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail={"code": "UNAUTHORIZED", "message": "Missing Authorization header"},
            )
        return "local_dev"

    parts = authorization.split(" ")
    if len(parts) != 2 or parts[0].lower() != "bearer":
        if config.REQUIRE_AUTH:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail={"code": "UNAUTHORIZED", "message": "Invalid Authorization format"},
            )
        return "local_dev"

    if not hmac.compare_digest(parts[1], config.API_KEY):
        if config.REQUIRE_AUTH:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail={"code": "UNAUTHORIZED", "message": "Invalid API key"},
            )
        return "local_dev"

    return parts[1]


# ============================================================================
# FASTAPI APP
# ============================================================================

app = FastAPI(
    title="Claim Store",
    description="Money claims: issue, responses, settlement and judgment",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS if config.CORS_ORIGINS != ["*"] else ["*"],
    allow_credentials=config.CORS_ORIGINS != ["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ClaimStoreException)
async def claim_store_error(request: Request, exc: ClaimStoreException):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code}: {exc}")
    return JSONResponse(status_code=exc.status_code, content={"detail": {"code": exc.code, "message": str(exc)}})


@app.exception_handler(ValidationError)
async def validation_error(request: Request, exc: ValidationError):
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": {
            "code": "VALIDATION_ERROR",
            "message": str(exc),
            "errors": exc.errors(include_url=False, include_context=False),
        }},
    )


class HealthResponse(BaseModel):
    status: str = "ok"
    service: str = "claim-store"
    uptime_seconds: float
    claims_stored: int


def _bad_request(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={"code": "BAD_REQUEST", "message": message},
    )


def _party(value: str) -> MadeBy:
    try:
        return MadeBy(value.lower())
    except ValueError:
        raise _bad_request(f"Unknown party: {value}")


def _claim_json(claim: Claim) -> Dict[str, Any]:
    return to_json(claim)


@app.get("/health", response_model=HealthResponse)
async def health():
    """Service health check."""
    uptime = (datetime.utcnow() - store.start_time).total_seconds()
    return HealthResponse(uptime_seconds=round(uptime, 1), claims_stored=store.claim_count)


@app.get("/ready")
async def ready():
    """Readiness probe. Returns 200 when the service can accept traffic."""
    return {"ready": True}


# ── Claims ──

@app.get("/claims/reference/{reference}")
def get_claim_by_reference(reference: str, authorization: Optional[str] = Header(None)):
    verify_api_key(authorization)
    return _claim_json(claim_service.get_claim_by_reference(reference))


@app.get("/claims/claimant/{submitter_id}")
def get_claims_by_claimant(submitter_id: str, authorization: Optional[str] = Header(None)):
    verify_api_key(authorization)
    return [_claim_json(c) for c in claim_service.get_claims_by_submitter(submitter_id)]


@app.get("/claims/defendant/{defendant_id}")
def get_claims_by_defendant(defendant_id: str, authorization: Optional[str] = Header(None)):
    verify_api_key(authorization)
    return [_claim_json(c) for c in claim_service.get_claims_by_defendant(defendant_id)]


@app.get("/claims/{external_id}")
def get_claim(external_id: str, authorization: Optional[str] = Header(None)):
    verify_api_key(authorization)
    return _claim_json(claim_service.get_claim_by_external_id(external_id))


@app.post("/claims/{submitter_id}", status_code=status.HTTP_201_CREATED)
def issue_claim(
    submitter_id: str,
    body: Dict[str, Any] = Body(...),
    submitter_email: Optional[str] = Header(None, alias="Submitter-Email"),
    authorization: Optional[str] = Header(None),
):
    """
    Issue a claim. Assigns the reference number and response deadline,
    generates the sealed claim and, for citizen claims, the defendant's
    PIN letter.
    """
    verify_api_key(authorization)
    claim_data = from_json(ClaimData, body)
    claim = claim_service.save_claim(submitter_id, claim_data, submitter_email, authorization)
    return _claim_json(claim)


@app.put("/claims/{external_id}/defendant/{defendant_id}")
def link_defendant(
    external_id: str,
    defendant_id: str,
    defendant_email: Optional[str] = Header(None, alias="Defendant-Email"),
    authorization: Optional[str] = Header(None),
):
    verify_api_key(authorization)
    return _claim_json(claim_service.link_defendant(external_id, defendant_id, defendant_email))


@app.post("/claims/{external_id}/request-more-time")
def request_more_time(
    external_id: str,
    defendant_id: str = Header(..., alias="Defendant-Id"),
    authorization: Optional[str] = Header(None),
):
    verify_api_key(authorization)
    return _claim_json(claim_service.request_more_time(external_id, defendant_id))


# ── Responses ──

@app.post("/responses/claim/{external_id}/defendant/{defendant_id}")
def save_defendant_response(
    external_id: str,
    defendant_id: str,
    body: Dict[str, Any] = Body(...),
    authorization: Optional[str] = Header(None),
):
    verify_api_key(authorization)
    response = RESPONSE_ADAPTER.validate_python(body)
    return _claim_json(response_service.save(external_id, defendant_id, response, authorization))


@app.post("/responses/{external_id}/claimant/{claimant_id}")
def save_claimant_response(
    external_id: str,
    claimant_id: str,
    body: Dict[str, Any] = Body(...),
    authorization: Optional[str] = Header(None),
):
    verify_api_key(authorization)
    claimant_response = CLAIMANT_RESPONSE_ADAPTER.validate_python(body)
    return _claim_json(claimant_response_service.save(external_id, claimant_id, claimant_response, authorization))


# ── Offers and settlement agreements ──

@app.post("/claims/{external_id}/offers/{party}")
def make_offer(external_id: str, party: str, body: Dict[str, Any] = Body(...),
               authorization: Optional[str] = Header(None)):
    verify_api_key(authorization)
    offer = from_json(Offer, body)
    return _claim_json(offers_service.make_offer(external_id, offer, _party(party), authorization))


@app.post("/claims/{external_id}/offers/{party}/accept")
def accept_offer(external_id: str, party: str, authorization: Optional[str] = Header(None)):
    verify_api_key(authorization)
    return _claim_json(offers_service.accept(external_id, _party(party), authorization))


@app.post("/claims/{external_id}/offers/{party}/reject")
def reject_offer(external_id: str, party: str, authorization: Optional[str] = Header(None)):
    verify_api_key(authorization)
    return _claim_json(offers_service.reject(external_id, _party(party), authorization))


@app.post("/claims/{external_id}/offers/{party}/countersign")
def countersign_offer(external_id: str, party: str, authorization: Optional[str] = Header(None)):
    verify_api_key(authorization)
    return _claim_json(offers_service.countersign(external_id, _party(party), authorization))


@app.post("/claims/{external_id}/settlement-agreement/countersign")
def countersign_settlement_agreement(external_id: str, authorization: Optional[str] = Header(None)):
    verify_api_key(authorization)
    return _claim_json(settlement_agreement_service.countersign(external_id, authorization))


@app.post("/claims/{external_id}/settlement-agreement/reject")
def reject_settlement_agreement(external_id: str, authorization: Optional[str] = Header(None)):
    verify_api_key(authorization)
    return _claim_json(settlement_agreement_service.reject(external_id, authorization))


# ── Judgments ──

@app.post("/claims/{external_id}/county-court-judgment/{submitter_id}")
def request_county_court_judgment(
    external_id: str,
    submitter_id: str,
    body: Dict[str, Any] = Body(...),
    authorization: Optional[str] = Header(None),
):
    verify_api_key(authorization)
    ccj = from_json(CountyCourtJudgment, body)
    return _claim_json(claim_service.save_county_court_judgment(external_id, ccj, submitter_id, authorization))


@app.post("/claims/{external_id}/re-determination")
def request_re_determination(external_id: str, body: Dict[str, Any] = Body(...),
                             authorization: Optional[str] = Header(None)):
    verify_api_key(authorization)
    re_determination = from_json(ReDetermination, body)
    return _claim_json(claim_service.save_re_determination(external_id, re_determination, authorization))


@app.post("/claims/{external_id}/paid-in-full/{submitter_id}")
def paid_in_full(external_id: str, submitter_id: str, authorization: Optional[str] = Header(None)):
    verify_api_key(authorization)
    return _claim_json(claim_service.paid_in_full(external_id, submitter_id))


# ── Court, CCD and documents ──

@app.get("/claims/{external_id}/court")
def get_preferred_court(external_id: str, authorization: Optional[str] = Header(None)):
    verify_api_key(authorization)
    claim = claim_service.get_claim_by_external_id(external_id)
    return {"external_id": external_id, "preferred_court": dq_service.get_preferred_court(claim)}


@app.get("/claims/{external_id}/ccd")
def get_case_data(external_id: str, authorization: Optional[str] = Header(None)):
    """The claim as CCD case data."""
    verify_api_key(authorization)
    return ClaimMapper().to(claim_service.get_claim_by_external_id(external_id))


@app.get("/documents/{document_type}/{external_id}")
def get_document(document_type: str, external_id: str, authorization: Optional[str] = Header(None)):
    """
    Download a claim document as PDF.

    Types: sealed_claim, claim_issue_receipt, defendant_response_receipt,
    settlement_agreement
    """
    verify_api_key(authorization)
    try:
        claim_document_type = ClaimDocumentType(document_type.lower())
        pdf_bytes = documents_service.generate_document(external_id, claim_document_type, authorization)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "UNSUPPORTED_DOCUMENT", "message": str(e)},
        )

    claim = claim_service.get_claim_by_external_id(external_id)
    filename = f"{file_base_name(claim.reference_number, claim_document_type)}.pdf"
    store.audit("document.downloaded", {
        "external_id": external_id,
        "document_type": claim_document_type.value,
        "size_bytes": len(pdf_bytes),
    }, actor="api")

    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# ── Events and audit ──

@app.get("/claims/{external_id}/events")
def get_claim_events(external_id: str, authorization: Optional[str] = Header(None)):
    verify_api_key(authorization)
    claim = claim_service.get_claim_by_external_id(external_id)
    events = store.get_claim_events(claim.external_id)
    return {"external_id": external_id, "events": events, "total": len(events)}


@app.get("/audit-log")
def get_audit_log(action: Optional[str] = None, limit: int = 100, authorization: Optional[str] = Header(None)):
    verify_api_key(authorization)
    entries = store.get_audit_log(action, limit)
    return {"entries": entries, "total": len(entries)}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.environ.get("PORT", "4400")))
