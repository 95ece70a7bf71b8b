"""
API Tests

End-to-end flows through the FastAPI app and the error body shape.
"""
import pytest
from fastapi.testclient import TestClient

import claimstore_api
from claimstore_api import app

client = TestClient(app)

CLAIMANT = {
    "type": "individual",
    "name": "Dr. John Smith",
    "address": {"line1": "1 High Street", "city": "London", "postcode": "SW1A 1AA"},
    "email": "claimant@example.com",
}
DEFENDANT = {
    "type": "individual",
    "name": "Mr. Paul Defendant",
    "address": {"line1": "2 Low Street", "city": "Leeds", "postcode": "LS1 1AA"},
    "email": "defendant@example.com",
}


def claim_body(**overrides):
    body = {
        "claimants": [CLAIMANT],
        "defendants": [DEFENDANT],
        "amount": {"type": "breakdown", "rows": [{"reason": "Broken window", "amount": "100.00"}]},
        "fee_amount_in_pennies": 2500,
        "reason": "Defendant broke my window",
        "interest": {"type": "no_interest"},
        "statement_of_truth": {"signer_name": "John Smith"},
    }
    body.update(overrides)
    return body


def full_defence_body(court: str = "Birmingham"):
    return {
        "response_type": "full_defence",
        "defence_type": "dispute",
        "defence": "I did not break the window",
        "free_mediation": "no",
        "defendant": DEFENDANT,
        "directions_questionnaire": {"hearing_location": {"court_name": court}},
    }


def issue(submitter_id: str = "claimant-1") -> dict:
    response = client.post(f"/claims/{submitter_id}", json=claim_body(),
                           headers={"Submitter-Email": "claimant@example.com"})
    assert response.status_code == 201, response.text
    return response.json()


def issue_and_link() -> dict:
    claim = issue()
    response = client.put(f"/claims/{claim['external_id']}/defendant/defendant-1",
                          headers={"Defendant-Email": "defendant@example.com"})
    assert response.status_code == 200, response.text
    return response.json()


def error(response) -> dict:
    return response.json()["detail"]


class TestHealth:

    def test_health(self) -> None:
        body = client.get("/health").json()

        assert body["status"] == "ok"
        assert body["service"] == "claim-store"
        assert body["claims_stored"] >= 0

    def test_ready(self) -> None:
        assert client.get("/ready").json() == {"ready": True}


class TestClaims:

    def test_issue_claim(self) -> None:
        claim = issue()

        assert claim["reference_number"].startswith("000MC")
        assert claim["state"] == "open"
        assert claim["submitter_email"] == "claimant@example.com"
        assert claim["response_deadline"]

    def test_lookups(self) -> None:
        claim = issue("claimant-lookups")

        by_id = client.get(f"/claims/{claim['external_id']}").json()
        by_reference = client.get(f"/claims/reference/{claim['reference_number']}").json()
        by_claimant = client.get("/claims/claimant/claimant-lookups").json()

        assert by_id["external_id"] == claim["external_id"]
        assert by_reference["external_id"] == claim["external_id"]
        assert [c["external_id"] for c in by_claimant] == [claim["external_id"]]

    def test_issue_stores_documents(self) -> None:
        claim = issue()

        stored = client.get(f"/claims/{claim['external_id']}").json()

        types = [d["document_type"] for d in stored["claim_document_collection"]["claim_documents"]]
        assert types == ["sealed_claim", "claim_issue_receipt"]

    def test_unknown_claim(self) -> None:
        response = client.get("/claims/does-not-exist")

        assert response.status_code == 404
        assert error(response)["code"] == "NOT_FOUND"
        assert "does-not-exist" in error(response)["message"]

    def test_invalid_party_type(self) -> None:
        response = client.post("/claims/claimant-1", json=claim_body(claimants=[{"type": "robot", "name": "R2"}]))

        assert response.status_code == 422
        assert error(response)["code"] == "VALIDATION_ERROR"
        assert error(response)["errors"]

    def test_claim_without_defendant(self) -> None:
        response = client.post("/claims/claimant-1", json=claim_body(defendants=[]))

        assert response.status_code == 400
        assert error(response)["code"] == "BAD_REQUEST"

    def test_case_data(self) -> None:
        claim = issue()

        case_data = client.get(f"/claims/{claim['external_id']}/ccd").json()

        assert case_data["referenceNumber"] == claim["reference_number"]
        assert case_data["amount"]["type"] == "BREAKDOWN"


class TestDefendantJourney:

    def test_more_time(self) -> None:
        claim = issue_and_link()
        url = f"/claims/{claim['external_id']}/request-more-time"

        first = client.post(url, headers={"Defendant-Id": "defendant-1"})
        second = client.post(url, headers={"Defendant-Id": "defendant-1"})

        assert first.status_code == 200
        assert first.json()["more_time_requested"] is True
        assert second.status_code == 409
        assert error(second)["code"] == "MORE_TIME_ALREADY_REQUESTED"

    def test_more_time_by_other_defendant(self) -> None:
        claim = issue_and_link()

        response = client.post(f"/claims/{claim['external_id']}/request-more-time",
                               headers={"Defendant-Id": "someone-else"})

        assert response.status_code == 403
        assert error(response)["code"] == "FORBIDDEN"

    def test_response_and_rejection(self) -> None:
        claim = issue_and_link()
        external_id = claim["external_id"]

        responded = client.post(f"/responses/claim/{external_id}/defendant/defendant-1", json=full_defence_body())
        assert responded.status_code == 200, responded.text
        assert responded.json()["state"] == "responded"

        court = client.get(f"/claims/{external_id}/court").json()
        assert court == {"external_id": external_id, "preferred_court": "Birmingham"}

        rejected = client.post(f"/responses/{external_id}/claimant/claimant-1", json={
            "type": "rejection",
            "free_mediation": "no",
            "reason": "They did break it",
            "directions_questionnaire": {"hearing_location": {"court_name": "Manchester"}},
        })
        assert rejected.status_code == 200, rejected.text
        assert rejected.json()["state"] == "awaiting_directions"

        events = client.get(f"/claims/{external_id}/events").json()
        lifecycle = {"DisputesAll", "ClaimantRejects", "AssignForDirections"}
        ccd_events = [e["payload"]["event"] for e in events["events"]
                      if e["topic"].startswith("ccd.") and e["payload"]["event"] in lifecycle]
        assert ccd_events == ["DisputesAll", "ClaimantRejects", "AssignForDirections"]

    def test_response_receipt_download(self) -> None:
        claim = issue_and_link()
        client.post(f"/responses/claim/{claim['external_id']}/defendant/defendant-1", json=full_defence_body())

        response = client.get(f"/documents/defendant_response_receipt/{claim['external_id']}")

        assert response.status_code == 200
        assert response.content.startswith(b"%PDF")

    def test_claimant_response_before_defendant(self) -> None:
        claim = issue_and_link()

        response = client.post(f"/responses/{claim['external_id']}/claimant/claimant-1",
                               json={"type": "acceptation", "formalise_option": "ccj"})

        assert response.status_code == 400


class TestOffers:

    def test_offer_accept_countersign(self) -> None:
        claim = issue_and_link()
        base = f"/claims/{claim['external_id']}/offers"

        assert client.post(f"{base}/defendant", json={"content": "I will pay £80"}).status_code == 200
        assert client.post(f"{base}/claimant/accept").status_code == 200
        settled = client.post(f"{base}/defendant/countersign")

        assert settled.status_code == 200
        assert settled.json()["state"] == "settled"

    def test_unknown_party(self) -> None:
        claim = issue_and_link()

        response = client.post(f"/claims/{claim['external_id']}/offers/judge", json={"content": "x"})

        assert response.status_code == 400
        assert error(response)["message"] == "Unknown party: judge"

    def test_accept_own_offer(self) -> None:
        claim = issue_and_link()
        base = f"/claims/{claim['external_id']}/offers"
        client.post(f"{base}/claimant", json={"content": "Pay £90"})

        response = client.post(f"{base}/claimant/accept")

        assert response.status_code == 400
        assert error(response)["code"] == "ILLEGAL_SETTLEMENT_STATEMENT"


class TestJudgments:

    def test_default_judgment_too_early(self) -> None:
        claim = issue_and_link()

        response = client.post(f"/claims/{claim['external_id']}/county-court-judgment/claimant-1",
                               json={"ccj_type": "default"})

        assert response.status_code == 403

    def test_paid_in_full(self) -> None:
        claim = issue_and_link()

        response = client.post(f"/claims/{claim['external_id']}/paid-in-full/claimant-1")

        assert response.json()["state"] == "settled"


class TestDocuments:

    def test_sealed_claim(self) -> None:
        claim = issue()

        response = client.get(f"/documents/sealed_claim/{claim['external_id']}")

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert f'filename="{claim["reference_number"]}-claim-form.pdf"' in response.headers["content-disposition"]
        assert response.content.startswith(b"%PDF")

    @pytest.mark.parametrize("document_type", ["ccj_request", "invoice"])
    def test_unsupported_type(self, document_type) -> None:
        claim = issue()

        response = client.get(f"/documents/{document_type}/{claim['external_id']}")

        assert response.status_code == 400
        assert error(response)["code"] == "UNSUPPORTED_DOCUMENT"

    def test_download_is_audited(self) -> None:
        claim = issue()
        client.get(f"/documents/claim_issue_receipt/{claim['external_id']}")

        entries = client.get("/audit-log", params={"action": "document.downloaded"}).json()["entries"]

        assert entries[0]["detail"]["external_id"] == claim["external_id"]


class TestAuth:

    def test_required_auth(self, monkeypatch) -> None:
        monkeypatch.setattr(claimstore_api.config, "REQUIRE_AUTH", True)
        monkeypatch.setattr(claimstore_api.config, "API_KEY", "cs_test_key")

        missing = client.get("/claims/claimant/claimant-1")
        wrong = client.get("/claims/claimant/claimant-1", headers={"Authorization": "Bearer nope"})
        right = client.get("/claims/claimant/claimant-1", headers={"Authorization": "Bearer cs_test_key"})

        assert missing.status_code == 401
        assert error(missing)["message"] == "Missing Authorization header"
        assert error(wrong)["message"] == "Invalid API key"
        assert right.status_code == 200

    def test_health_is_open(self, monkeypatch) -> None:
        monkeypatch.setattr(claimstore_api.config, "REQUIRE_AUTH", True)

        assert client.get("/health").status_code == 200
