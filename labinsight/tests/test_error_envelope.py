from fastapi.testclient import TestClient

from labinsight.app import app
from labinsight.routes import extract_routes


def test_not_found_envelope(client):
    r = client.get("/api/does-not-exist")
    assert r.status_code == 404
    j = r.json()
    assert j["success"] is False
    assert j["code"] == "NOT_FOUND"
    assert "trace_id" in j


def test_validation_envelope(client):
    r = client.post("/api/risk-assessment", json={"healthParameters": "not-a-list"})
    assert r.status_code == 422
    j = r.json()
    assert j["code"] == "UNPROCESSABLE_ENTITY"
    assert isinstance(j["details"], list)


def test_unhandled_exception_envelope(monkeypatch):
    async def boom(**kwargs):
        raise ValueError("boom")

    monkeypatch.setattr(extract_routes, "run_extraction", boom)
    r = TestClient(app, raise_server_exceptions=False).post("/api/extract", data={"text": "Glucose 90 mg/dL"})
    assert r.status_code == 500
    j = r.json()
    assert j["code"] == "INTERNAL_SERVER_ERROR"
    assert j["details"] == "boom"
    assert "trace_id" in j


def test_trace_id_is_echoed(client):
    r = client.get("/api/health", headers={"x-trace-id": "trace-123"})
    assert r.status_code == 200
    assert r.json()["status"] == "ok"
    assert r.headers["x-trace-id"] == "trace-123"
