"""Security response headers.

Every response is JSON, so the Content-Security-Policy forbids all
content loading.  The interactive docs pages (dev only) need scripts
and styles and are left without a CSP.
"""

from __future__ import annotations

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

_STATIC_HEADERS = {
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=(), payment=()",
}

API_CSP = "default-src 'none'; script-src 'none'; object-src 'none'; base-uri 'none'"
HSTS = "max-age=31536000; includeSubDomains; preload"

_DOCS_PATHS = ("/docs", "/redoc", "/openapi.json")


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, *, enable_hsts: bool = False) -> None:
        super().__init__(app)
        self._enable_hsts = enable_hsts

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        response = await call_next(request)

        for name, value in _STATIC_HEADERS.items():
            response.headers[name] = value

        if not request.url.path.startswith(_DOCS_PATHS):
            response.headers["Content-Security-Policy"] = API_CSP

        # HSTS over plain HTTP is ignored by browsers; only send it on HTTPS.
        if self._enable_hsts and request.url.scheme == "https":
            response.headers["Strict-Transport-Security"] = HSTS

        for name in ("server", "x-powered-by"):
            if name in response.headers:
                del response.headers[name]

        return response
