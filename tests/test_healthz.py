from __future__ import annotations

from fastapi.testclient import TestClient

from keydojo.db.session import dispose_engine
from keydojo.main import app


def teardown_module() -> None:  # pragma: no cover - test cleanup
    dispose_engine()


def test_health_endpoint_reports_mode() -> None:
    client = TestClient(app)
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_database_health_endpoint_success() -> None:
    client = TestClient(app)
    response = client.get("/healthz/database")
    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ok"
    assert "pool" in payload
    assert payload["persistence_mode"] == "database"


def test_database_health_endpoint_failure(monkeypatch) -> None:
    client = TestClient(app)

    def raise_runtime_error():
        raise RuntimeError("missing database url")

    monkeypatch.setattr("keydojo.main.get_engine", raise_runtime_error)
    response = client.get("/healthz/database")
    assert response.status_code == 503
    assert response.json()["detail"] == "missing database url"
