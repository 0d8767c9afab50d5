"""
tests/test_health.py -- Integration tests for GET /api/v1/health and the
error envelope for framework-level failures.
"""

from __future__ import annotations

from sqlalchemy.exc import OperationalError


def test_health_returns_200_with_components(api):
    """Health endpoint returns 200 with status, version, and components."""
    resp = api.client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert "version" in data
    assert data["components"] == {"app": "ok", "database": "ok"}


def test_health_reports_database_error(api, monkeypatch):
    def _down():
        raise OperationalError("SELECT 1", {}, Exception("database is locked"))

    monkeypatch.setattr(api.store, "ping", _down)
    data = api.client.get("/api/v1/health").json()
    assert data["components"]["database"] == "error"


def test_health_no_auth_required(api):
    """Health endpoint is accessible without any authentication headers."""
    resp = api.client.get("/api/v1/health", headers={})
    assert resp.status_code == 200


def test_unknown_route_uses_error_envelope(api):
    resp = api.client.get("/api/v1/nope")
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "http_404"


def test_unexpected_exception_is_generic_500(api, monkeypatch):
    def _boom(email, password):
        raise RuntimeError("secret internals")

    monkeypatch.setattr(api.flows, "login", _boom)
    resp = api.client.post("/api/v1/auth/login", json={"email": "ada@example.com", "password": "x"})
    assert resp.status_code == 500
    assert resp.json()["error"] == {
        "code": "internal_error",
        "message": "An unexpected error occurred.",
        "detail": None,
    }
    assert "secret internals" not in resp.text
