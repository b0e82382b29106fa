import json

from fastapi.testclient import TestClient

from vod_intake.db import reset_schema
from vod_intake.main import app


def _events_from_caplog(caplog, logger_name: str = "vod.request") -> list[dict]:
    events: list[dict] = []
    for record in caplog.records:
        if record.name != logger_name:
            continue
        try:
            events.append(json.loads(record.message))
        except json.JSONDecodeError:
            continue
    return events


def test_request_completed_log_contains_request_id(caplog) -> None:
    caplog.set_level("INFO", logger="vod.request")
    with TestClient(app) as client:
        response = client.get("/health", headers={"X-Request-ID": "req-123"})
        assert response.status_code == 200
        assert response.headers.get("X-Request-ID") == "req-123"

    events = _events_from_caplog(caplog)
    completed = [e for e in events if e.get("event") == "request_completed" and e.get("path") == "/health"]
    assert completed
    assert completed[-1]["request_id"] == "req-123"
    assert completed[-1]["status_code"] == 200
    assert "trace_id" in completed[-1]


def test_request_error_log_contains_video_and_error_class(caplog) -> None:
    reset_schema()
    caplog.set_level("INFO", logger="vod.request")
    with TestClient(app) as client:
        response = client.put("/upload/v1/videos/not-found?uploadType=resumable", content=b"abc")
        assert response.status_code == 404

    events = _events_from_caplog(caplog)
    errors = [e for e in events if e.get("event") == "request_error" and e.get("path").startswith("/upload/")]
    assert errors
    assert errors[-1]["video_id"] == "not-found"
    assert errors[-1]["error_class"] == "client_error"
    assert errors[-1]["reason"] == "unknown_video"
    assert "trace_id" in errors[-1]


def test_video_create_emits_audit_event(caplog) -> None:
    reset_schema()
    caplog.set_level("INFO", logger="vod.audit")
    with TestClient(app) as client:
        response = client.post(
            "/v1/videos?uploadType=media",
            json={"title": "audit"},
            headers={
                "X-Request-ID": "req-audit",
                "X-Upload-Content-Length": "10",
                "X-Upload-Content-Type": "video/webm",
            },
        )
        assert response.status_code == 201, response.text

    events = _events_from_caplog(caplog, logger_name="vod.audit")
    created = [e for e in events if e.get("action") == "video_create"]
    assert created
    assert created[-1]["request_id"] == "req-audit"
    assert created[-1]["video_id"] == response.json()["id"]
    assert created[-1]["upload_type"] == "media"
