"""Access guard middleware: turns GuardDecisions into HTTP responses.

Runs on every request except the exempt paths (/health, /ready,
/metrics).  A denied request never reaches a route handler; the
middleware answers it directly:

  403  {"success": false, "message": "Access denied",
        "error": "access_forbidden", "code": 403}
  429  {"success": false, "message": "Rate limit exceeded",
        "error": "rate_limit_exceeded", "retry_after": N,
        "limit_type": "api.general"}

Allowed responses get X-RateLimit-Limit / -Remaining / -Reset so
clients can throttle themselves before they hit the limit.
"""

from __future__ import annotations

import jwt
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from lms.middleware.request_context import client_ip
from lms.services import token_service
from lms.services.access_guard import AccessGuard, GuardDecision, GuardOutcome
from lms.services.rate_limiter import RateLimitResult

_FORBIDDEN_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Cache-Control": "no-cache, no-store, must-revalidate",
}


def _bearer_subject(request: Request) -> str | None:
    """Subject of a valid bearer token, else None (the IP bucket applies)."""
    auth_header = request.headers.get("authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    try:
        claims = token_service.decode_access_token(auth_header[7:])
    except jwt.InvalidTokenError:
        return None
    return str(claims["sub"])


def _rate_headers(rate: RateLimitResult) -> dict[str, str]:
    return {
        "X-RateLimit-Limit": str(rate.limit),
        "X-RateLimit-Remaining": str(rate.remaining),
        "X-RateLimit-Reset": str(rate.reset_at),
    }


def forbidden_response() -> JSONResponse:
    return JSONResponse(
        status_code=403,
        content={
            "success": False,
            "message": "Access denied",
            "error": "access_forbidden",
            "code": 403,
        },
        headers=_FORBIDDEN_HEADERS,
    )


def rate_limited_response(decision: GuardDecision) -> JSONResponse:
    rate = decision.rate
    if rate is None:
        raise ValueError("rate-limited decision without a rate-limit result")
    headers = _rate_headers(rate)
    headers["Retry-After"] = str(rate.retry_after)
    return JSONResponse(
        status_code=429,
        content={
            "success": False,
            "message": "Rate limit exceeded",
            "error": "rate_limit_exceeded",
            "retry_after": rate.retry_after,
            "limit_type": decision.limit_class,
        },
        headers=headers,
    )


class AccessGuardMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, *, guard: AccessGuard) -> None:
        super().__init__(app)
        self._guard = guard

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        limit_class = self._guard.policy.classify(request.url.path)
        if limit_class is None:
            return await call_next(request)

        decision = await self._guard.evaluate(
            client_ip(request),
            limit_class,
            _bearer_subject(request),
            method=request.method,
            path=request.url.path,
            headers=request.headers,
        )

        if decision.outcome == GuardOutcome.BLOCKED:
            return forbidden_response()
        if decision.outcome == GuardOutcome.RATE_LIMITED:
            return rate_limited_response(decision)

        response = await call_next(request)
        if decision.rate is not None:
            response.headers.update(_rate_headers(decision.rate))
        return response
