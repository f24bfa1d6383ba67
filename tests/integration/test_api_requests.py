import io

from docx import Document as DocxDocument
from fastapi.testclient import TestClient

from resumematch.api.app import create_app
from resumematch.api.deps import get_services
from resumematch.config import AdminPolicy
from resumematch.core.admin_auth import AdminAuth


def _client(services) -> TestClient:
    app = create_app()
    app.dependency_overrides[get_services] = lambda: services
    return TestClient(app)


def _docx_bytes(text: str) -> bytes:
    doc = DocxDocument()
    doc.add_paragraph(text)
    buffer = io.BytesIO()
    doc.save(buffer)
    return buffer.getvalue()


def test_request_flow_over_http(services) -> None:
    client = _client(services)

    create_resp = client.post("/api/requests", json={"owner_id": "42", "chat_context_id": "chat-1"})
    assert create_resp.status_code == 200
    request_id = create_resp.json()["id"]
    assert create_resp.json()["status"] == "collecting"

    again = client.post("/api/requests", json={"owner_id": "42", "chat_context_id": "chat-1"})
    assert again.json()["id"] == request_id

    active = client.get("/api/requests/active/42")
    assert active.status_code == 200
    assert active.json()["id"] == request_id

    resume_resp = client.post(
        f"/api/requests/{request_id}/documents",
        data={"document_type": "resume", "text": "5 years product management"},
    )
    assert resume_resp.status_code == 200
    assert resume_resp.json()["conversion_method"] == "plain-text"

    pending = client.get(f"/api/requests/{request_id}/analysis")
    assert pending.status_code == 404

    job_resp = client.post(
        f"/api/requests/{request_id}/documents",
        data={"document_type": "job_post"},
        files={"file": ("job.docx", _docx_bytes("Seeking PM with 3+ years"), "application/octet-stream")},
    )
    assert job_resp.status_code == 200
    assert job_resp.json()["conversion_method"] == "legacy-fallback"
    assert job_resp.json()["original_name"] == "job.docx"

    analysis = client.get(f"/api/requests/{request_id}/analysis")
    assert analysis.status_code == 200
    body = analysis.json()
    assert body["overall_score"] == 75
    assert 0 <= body["analysis"]["headlines"]["matchScore"] <= 100
    assert body["summary"].startswith("STRONG MATCH")

    details = client.get(f"/api/requests/{request_id}")
    assert details.json()["request"]["status"] == "completed"
    assert len(details.json()["documents"]) == 2

    assert client.get("/api/requests/active/42").status_code == 404


def test_document_errors_map_to_status_codes(services) -> None:
    client = _client(services)
    request_id = client.post("/api/requests", json={"owner_id": "7"}).json()["id"]

    missing = client.post("/api/requests/request-nope/documents", data={"document_type": "resume", "text": "x"})
    assert missing.status_code == 404

    no_content = client.post(f"/api/requests/{request_id}/documents", data={"document_type": "resume"})
    assert no_content.status_code == 400

    unreadable = client.post(
        f"/api/requests/{request_id}/documents",
        data={"document_type": "resume"},
        files={"file": ("cv.pdf", b"garbage bytes", "application/pdf")},
    )
    assert unreadable.status_code == 422
    assert "Copy the text" in unreadable.json()["detail"]

    client.post(f"/api/requests/{request_id}/documents", data={"document_type": "resume", "text": "PM resume"})
    duplicate = client.post(
        f"/api/requests/{request_id}/documents",
        data={"document_type": "resume", "text": "Second resume"},
    )
    assert duplicate.status_code == 400
    assert "resume already provided" in duplicate.json()["detail"]


def test_cancel_request(services) -> None:
    client = _client(services)
    request_id = client.post("/api/requests", json={"owner_id": "9"}).json()["id"]

    assert client.delete(f"/api/requests/{request_id}").status_code == 200
    assert client.get(f"/api/requests/{request_id}").status_code == 404
    assert client.delete(f"/api/requests/{request_id}").status_code == 404


def test_document_from_url(services, monkeypatch) -> None:
    class FakeResponse:
        content = b"Seeking PM with 3+ years"
        headers = {"Content-Type": "text/plain; charset=utf-8"}

        def raise_for_status(self) -> None:
            return None

    monkeypatch.setattr("resumematch.core.fetcher.requests.get", lambda url, timeout, headers: FakeResponse())
    client = _client(services)
    request_id = client.post("/api/requests", json={"owner_id": "5"}).json()["id"]

    resp = client.post(
        f"/api/requests/{request_id}/documents/from-url",
        json={"document_type": "job_post", "url": "https://example.com/jobs/pm.txt"},
    )

    assert resp.status_code == 200
    assert resp.json()["original_name"] == "pm.txt"
    assert resp.json()["mime_type"] == "text/plain"


def test_maintenance_is_open_when_auth_not_required(services) -> None:
    client = _client(services)
    client.post("/api/requests", json={"owner_id": "1"})

    cleanup = client.post("/api/maintenance/cleanup", json={"older_than_hours": 24})
    assert cleanup.status_code == 200
    assert cleanup.json() == {"cleaned": 0, "removed_logs": 0}

    stats = client.get("/api/maintenance/stats")
    assert stats.json()["active_requests"] == 1

    status = client.get("/api/admin/status/1").json()
    assert status == {"owner_id": "1", "auth_required": False, "authenticated": True}


def test_admin_login_gates_maintenance(services) -> None:
    services.admin_auth = AdminAuth(
        services.kv,
        environment="production",
        password="pw-123",
        policy=AdminPolicy(
            auth_required=True, max_login_attempts=3, login_cooldown_minutes=15, session_timeout_hours=24
        ),
    )
    client = _client(services)

    denied = client.post("/api/maintenance/cleanup", params={"owner_id": "1"}, json={})
    assert denied.status_code == 401

    wrong = client.post("/api/admin/login", json={"owner_id": "1", "password": "nope"})
    assert wrong.status_code == 401
    assert wrong.json()["detail"]["remaining_attempts"] == 2

    ok = client.post("/api/admin/login", json={"owner_id": "1", "password": "pw-123"})
    assert ok.status_code == 200
    assert ok.json()["success"] is True

    allowed = client.post("/api/maintenance/cleanup", params={"owner_id": "1"}, json={})
    assert allowed.status_code == 200

    client.post("/api/admin/logout/1")
    assert client.get("/api/admin/status/1").json()["authenticated"] is False


def test_event_logs_over_http(services) -> None:
    client = _client(services)
    request_id = client.post("/api/requests", json={"owner_id": "7", "chat_context_id": "chat-7"}).json()["id"]
    client.post(f"/api/requests/{request_id}/documents", data={"document_type": "resume", "text": "PM, 5 years"})
    client.post("/api/requests", json={"owner_id": "8"})

    recent = client.get("/api/maintenance/logs", params={"limit": 2})
    assert recent.status_code == 200
    assert [entry["event_type"] for entry in recent.json()] == ["REQUEST_CREATED", "DOCUMENT_ADDED"]
    assert recent.json()[0]["owner_id"] == "8"

    mine = client.get("/api/maintenance/logs", params={"owner": "7"}).json()
    assert {entry["event_type"] for entry in mine} == {"REQUEST_CREATED", "DOCUMENT_ADDED"}
    assert all(entry["data"]["request_id"] == request_id for entry in mine)
    assert mine[0]["context_id"] == "chat-7"

    summary = client.get("/api/maintenance/logs/summary", params={"hours": 1}).json()
    assert summary["total"] == 3
    assert summary["info"] == 3
    assert summary["top_events"][0] == {"level": "INFO", "event_type": "REQUEST_CREATED", "count": 2}


def test_event_logs_require_admin_session(services) -> None:
    services.admin_auth = AdminAuth(
        services.kv,
        environment="production",
        password="pw-123",
        policy=AdminPolicy(
            auth_required=True, max_login_attempts=3, login_cooldown_minutes=15, session_timeout_hours=24
        ),
    )
    client = _client(services)

    assert client.get("/api/maintenance/logs", params={"owner_id": "1"}).status_code == 401
    assert client.get("/api/maintenance/logs/summary").status_code == 401

    client.post("/api/admin/login", json={"owner_id": "1", "password": "pw-123"})
    assert client.get("/api/maintenance/logs", params={"owner_id": "1"}).status_code == 200


def test_admin_lockout_returns_429(services) -> None:
    services.admin_auth = AdminAuth(
        services.kv,
        environment="production",
        password="pw-123",
        policy=AdminPolicy(
            auth_required=True, max_login_attempts=3, login_cooldown_minutes=15, session_timeout_hours=24
        ),
    )
    client = _client(services)
    for _ in range(2):
        client.post("/api/admin/login", json={"owner_id": "1", "password": "nope"})

    locked = client.post("/api/admin/login", json={"owner_id": "1", "password": "nope"})
    assert locked.status_code == 429

    still_locked = client.post("/api/admin/login", json={"owner_id": "1", "password": "pw-123"})
    assert still_locked.status_code == 429
    assert "Too many login attempts" in still_locked.json()["detail"]["message"]


def test_health(services) -> None:
    resp = _client(services).get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"
