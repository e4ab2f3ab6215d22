from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from lms.api.admin_security import router as admin_security_router
from lms.api.certificates import router as certificates_router
from lms.api.health import router as health_router
from lms.api.metrics_endpoint import router as metrics_router
from lms.api.progress import router as progress_router
from lms.core.config import SETTINGS
from lms.core.errors import (
    CertificateNotEligible,
    ConflictError,
    NotFoundError,
    StoreUnavailable,
    ValidationError,
)
from lms.core.logging import setup_logging
from lms.db.engine import lifespan_db
from lms.db.redis import lifespan_redis
from lms.middleware.access_guard import AccessGuardMiddleware
from lms.middleware.metrics import MetricsMiddleware
from lms.middleware.request_context import RequestContextMiddleware
from lms.middleware.security_headers import SecurityHeadersMiddleware
from lms.services.access_guard import access_guard

# Configure logging before anything else runs.
setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    # Nested so teardown runs in reverse order even if one fails.
    async with lifespan_db():
        async with lifespan_redis():
            yield


app = FastAPI(
    title="lms-service",
    lifespan=lifespan,
    docs_url="/docs" if SETTINGS.is_dev else None,
    redoc_url="/redoc" if SETTINGS.is_dev else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Middleware execution order: last-added runs first (outermost layer).
# RequestContext -> Metrics -> SecurityHeaders -> AccessGuard -> CORS -> route
# Guard denials therefore still get a request ID, a metric sample and the
# security headers.
app.add_middleware(AccessGuardMiddleware, guard=access_guard)
app.add_middleware(SecurityHeadersMiddleware, enable_hsts=SETTINGS.is_prod)
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestContextMiddleware)


# ---------------------------------------------------------------------------
# Domain errors -> HTTP
# ---------------------------------------------------------------------------


@app.exception_handler(NotFoundError)
async def _not_found(_request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(CertificateNotEligible)
async def _not_eligible(_request: Request, exc: CertificateNotEligible) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={"success": False, "error": "certificate_not_eligible", **exc.to_dict()},
    )


@app.exception_handler(ValidationError)
async def _invalid(_request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(ConflictError)
async def _conflict(_request: Request, exc: ConflictError) -> JSONResponse:
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(StoreUnavailable)
async def _unavailable(request: Request, exc: StoreUnavailable) -> JSONResponse:
    logger.error("Store unavailable on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=503,
        content={"detail": "Service temporarily unavailable"},
        headers={"Retry-After": "5"},
    )


app.include_router(metrics_router)
app.include_router(health_router)
app.include_router(progress_router)
app.include_router(certificates_router)
app.include_router(admin_security_router)

logger.info(
    "lms-service started  env=%s log_level=%s port=%d docs=%s",
    SETTINGS.app_env,
    SETTINGS.log_level,
    SETTINGS.port,
    "on" if SETTINGS.is_dev else "off",
)
