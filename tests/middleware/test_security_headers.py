from __future__ import annotations

from fastapi import FastAPI
from fastapi.testclient import TestClient

from lms.middleware.security_headers import API_CSP, HSTS, SecurityHeadersMiddleware


def test_api_responses_carry_security_headers(client: TestClient) -> None:
    resp = client.get("/health")
    assert resp.headers["x-frame-options"] == "DENY"
    assert resp.headers["x-content-type-options"] == "nosniff"
    assert resp.headers["referrer-policy"] == "strict-origin-when-cross-origin"
    assert "camera=()" in resp.headers["permissions-policy"]
    assert resp.headers["content-security-policy"] == API_CSP


def test_hsts_not_sent_over_plain_http(client: TestClient) -> None:
    resp = client.get("/health")
    assert "strict-transport-security" not in resp.headers


def _app(enable_hsts: bool) -> FastAPI:
    app = FastAPI()

    @app.get("/ping")
    async def ping() -> dict:
        return {"ok": True}

    @app.get("/docs-ish")
    async def docs() -> dict:
        return {}

    app.add_middleware(SecurityHeadersMiddleware, enable_hsts=enable_hsts)
    return app


def test_hsts_sent_over_https_when_enabled() -> None:
    client = TestClient(_app(enable_hsts=True), base_url="https://testserver")
    resp = client.get("/ping")
    assert resp.headers["strict-transport-security"] == HSTS


def test_hsts_not_sent_when_disabled() -> None:
    client = TestClient(_app(enable_hsts=False), base_url="https://testserver")
    resp = client.get("/ping")
    assert "strict-transport-security" not in resp.headers


def test_docs_paths_have_no_csp() -> None:
    client = TestClient(_app(enable_hsts=False))
    resp = client.get("/docs-ish")
    assert "content-security-policy" not in resp.headers
