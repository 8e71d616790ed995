from __future__ import annotations

from fastapi.testclient import TestClient

from duezo.core.rate_limit import SlidingWindowRateLimiter, get_rate_limiter
from duezo.main import app
from duezo.modules.extraction import ai
from duezo.modules.extraction import api as extraction_api
from duezo.modules.extraction.ai import AIBillCandidate

COMCAST = {
    "message_id": "msg-1",
    "sender": "Comcast <billing@comcast.net>",
    "subject": "Your Comcast bill is ready",
    "body_plain": "Hi Alex, your bill is ready.\nAmount due: $89.45\nDue date: March 15, 2030",
}


def _auth_headers(client: TestClient, email: str = "owner@example.com") -> dict[str, str]:
    resp = client.post("/api/auth/register", json={"email": email, "password": "password123"})
    assert resp.status_code == 200, resp.text
    resp = client.post("/api/auth/token", data={"username": email, "password": "password123"})
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


def test_healthz():
    client = TestClient(app)
    assert client.get("/healthz").json() == {"status": "ok"}


def test_endpoints_require_auth():
    client = TestClient(app)
    assert client.get("/api/extraction/review-queue").status_code == 401
    assert client.post("/api/extraction/process-email", json=COMCAST).status_code == 401


def test_process_review_and_confirm_flow():
    client = TestClient(app)
    headers = _auth_headers(client)

    resp = client.post(
        "/api/extraction/process-email", params={"skip_ai": True}, json=COMCAST, headers=headers
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["already_processed"] is False
    assert body["extraction"]["status"] == "pending"
    assert body["extraction"]["name"] == "Xfinity"
    assert body["extraction"]["due_date"] == "2030-03-15"

    again = client.post("/api/extraction/process-email", json=COMCAST, headers=headers)
    assert again.json()["already_processed"] is True

    queue = client.get("/api/extraction/review-queue", headers=headers).json()
    assert [e["id"] for e in queue] == [body["extraction"]["id"]]

    extraction_id = body["extraction"]["id"]
    resp = client.post(
        f"/api/extraction/{extraction_id}/confirm",
        json={"name": "Xfinity Internet"},
        headers=headers,
    )
    assert resp.status_code == 200, resp.text
    confirmed = resp.json()
    assert confirmed["bill_created"] is True
    assert confirmed["bill"]["name"] == "Xfinity Internet"
    assert confirmed["extraction"]["status"] == "confirmed"

    assert client.post(f"/api/extraction/{extraction_id}/confirm", headers=headers).status_code == 409

    bills = client.get("/api/bills", headers=headers).json()
    assert [b["name"] for b in bills] == ["Xfinity Internet"]


def test_other_owner_cannot_confirm():
    client = TestClient(app)
    owner = _auth_headers(client)
    intruder = _auth_headers(client, "intruder@example.com")

    body = client.post(
        "/api/extraction/process-email", params={"skip_ai": True}, json=COMCAST, headers=owner
    ).json()
    resp = client.post(f"/api/extraction/{body['extraction']['id']}/confirm", headers=intruder)
    assert resp.status_code == 403


def test_reject_then_restore_suggestion():
    client = TestClient(app)
    headers = _auth_headers(client)

    body = client.post(
        "/api/extraction/process-email", params={"skip_ai": True}, json=COMCAST, headers=headers
    ).json()
    resp = client.post(f"/api/extraction/{body['extraction']['id']}/reject", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["status"] == "rejected"

    ignored = client.get("/api/suggestions/ignore", headers=headers).json()
    assert [i["source_message_id"] for i in ignored] == ["msg-1"]

    assert client.delete("/api/suggestions/ignore/msg-1", headers=headers).status_code == 204
    assert client.delete("/api/suggestions/ignore/msg-1", headers=headers).status_code == 404


def test_batch_endpoint_reports_counts():
    client = TestClient(app)
    headers = _auth_headers(client)

    promo = {
        "message_id": "promo-1",
        "sender": "Shop Deals <deals@shop.example.com>",
        "subject": "50% OFF Spring Sale - unsubscribe anytime",
        "body_plain": "Shop now and save up to 50% on everything.",
    }
    resp = client.post(
        "/api/extraction/process-batch",
        params={"skip_ai": True},
        json={"emails": [COMCAST, promo]},
        headers=headers,
    )
    assert resp.status_code == 200, resp.text
    summary = resp.json()
    assert summary["processed"] == 2
    assert summary["pending"] == 1
    assert summary["rejected"] == 1
    assert summary["skipped"] == 1
    assert summary["errors"] == 0


def test_process_email_is_rate_limited():
    limiter = SlidingWindowRateLimiter(max_requests=2, window_seconds=60)
    app.dependency_overrides[get_rate_limiter] = lambda: limiter
    try:
        client = TestClient(app)
        headers = _auth_headers(client)
        codes = [
            client.post(
                "/api/extraction/process-email",
                params={"skip_ai": True},
                json=COMCAST,
                headers=headers,
            ).status_code
            for _ in range(3)
        ]
    finally:
        app.dependency_overrides.clear()
    assert codes == [200, 200, 429]


def test_ai_parse_rejects_oversized_batch():
    client = TestClient(app)
    headers = _auth_headers(client)
    emails = [{"id": f"e{i}", "subject": "Bill", "body": "due"} for i in range(11)]
    resp = client.post("/api/extraction/ai-parse", json={"emails": emails}, headers=headers)
    assert resp.status_code == 422


def test_ai_parse_without_provider_is_bad_gateway():
    client = TestClient(app)
    headers = _auth_headers(client)
    resp = client.post(
        "/api/extraction/ai-parse", json={"emails": [{"id": "e1", "body": "due"}]}, headers=headers
    )
    assert resp.status_code == 502


def test_ai_parse_returns_bills_only(monkeypatch):
    monkeypatch.setattr(extraction_api, "bill_ai_available", lambda: True)

    def _stub(email):
        if email.id == "e1":
            return AIBillCandidate(source_id="e1", skip=True, skip_reason="newsletter")
        return AIBillCandidate(source_id=email.id, name="Netflix", confidence=0.9)

    monkeypatch.setattr(ai, "extract_bill_fields", _stub)

    client = TestClient(app)
    headers = _auth_headers(client)
    emails = [{"id": f"e{i}", "subject": "Bill", "body": "due"} for i in range(3)]
    resp = client.post("/api/extraction/ai-parse", json={"emails": emails}, headers=headers)

    assert resp.status_code == 200, resp.text
    assert [c["source_id"] for c in resp.json()] == ["e0", "e2"]
