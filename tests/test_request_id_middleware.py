from __future__ import annotations

from fastapi.testclient import TestClient

from route_limits.core.app_factory import create_app
from route_limits.main import app


client = TestClient(app)


def test_preserves_incoming_request_id_header():
    incoming_id = "test-request-id-123"
    resp = client.get("/health", headers={"X-Request-ID": incoming_id})

    assert resp.status_code == 200
    assert resp.headers.get("X-Request-ID") == incoming_id


def test_generates_request_id_when_missing():
    resp = client.get("/health")

    assert resp.status_code == 200
    generated = resp.headers.get("X-Request-ID")
    assert generated
    assert isinstance(generated, str)
    assert len(generated) > 0

    duration = resp.headers.get("X-Request-Duration-ms")
    assert duration is not None


def test_global_app_is_inert_without_driver():
    resp = client.get("/v1/rate-limit/keys")

    assert resp.status_code == 200
    assert resp.json() == {"enabled": False, "keys": []}


def test_request_id_included_in_default_limit_rejection(settings_factory, tmp_path):
    limited_app = create_app(
        settings_factory(
            driver="file",
            file_directory=tmp_path / "counters",
            default={"limit": 1, "within": 60},
        )
    )
    limited_client = TestClient(limited_app)
    incoming_id = "limited-request-id-456"

    assert limited_client.get("/health").status_code == 200
    resp = limited_client.get("/health", headers={"X-Request-ID": incoming_id})

    assert resp.status_code == 429
    assert resp.headers.get("X-Request-ID") == incoming_id
    assert resp.json()["error"]["request_id"] == incoming_id
