from __future__ import annotations

import logging
from typing import Annotated

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from lms.core.config import SETTINGS
from lms.db.engine import get_async_session
from lms.models.principal import Principal
from lms.repos.assessment_repo import InMemoryAssessmentScoreRepo
from lms.repos.certificate_repo import InMemoryCertificateRepo
from lms.repos.course_repo import InMemoryCourseRepo
from lms.repos.enrollment_repo import InMemoryEnrollmentRepo
from lms.repos.pg_certificate_repo import PgCertificateRepo
from lms.repos.pg_course_repo import PgCourseRepo, PgUserRepo
from lms.repos.pg_enrollment_repo import PgAssessmentScoreRepo, PgEnrollmentRepo
from lms.repos.pg_progress_repo import PgProgressRepo
from lms.repos.progress_repo import InMemoryProgressRepo
from lms.repos.user_repo import InMemoryUserRepo
from lms.services import token_service
from lms.services.access_guard import AccessGuard, access_guard
from lms.services.notifier import LoggingNotifier
from lms.services.progress_engine import ProgressEngine
from lms.services.scoring import WeightedScoreProvider

logger = logging.getLogger(__name__)

# Token issuance lives in the identity provider; tokenUrl only feeds the docs UI.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/oauth/token")

# ---------------------------------------------------------------------------
# In-memory repositories, used when DATABASE_URL is unset (dev, tests)
# ---------------------------------------------------------------------------

user_repo = InMemoryUserRepo()
course_repo = InMemoryCourseRepo()
enrollment_repo = InMemoryEnrollmentRepo()
progress_repo = InMemoryProgressRepo()
assessment_repo = InMemoryAssessmentScoreRepo()
certificate_repo = InMemoryCertificateRepo()

notifier = LoggingNotifier()

_memory_engine = ProgressEngine(
    progress=progress_repo,
    courses=course_repo,
    enrollments=enrollment_repo,
    certificates=certificate_repo,
    users=user_repo,
    scores=WeightedScoreProvider(assessment_repo, SETTINGS.certificates),
    policy=SETTINGS.certificates,
    notifier=notifier,
)


def get_progress_engine(
    session: Annotated[AsyncSession | None, Depends(get_async_session)],
) -> ProgressEngine:
    """The request's ProgressEngine.

    With a database, every repository shares the request's session, so
    one request is one transaction.
    """
    if session is None:
        return _memory_engine
    return ProgressEngine(
        progress=PgProgressRepo(session),
        courses=PgCourseRepo(session),
        enrollments=PgEnrollmentRepo(session),
        certificates=PgCertificateRepo(session),
        users=PgUserRepo(session),
        scores=WeightedScoreProvider(PgAssessmentScoreRepo(session), SETTINGS.certificates),
        policy=SETTINGS.certificates,
        notifier=notifier,
    )


def get_access_guard() -> AccessGuard:
    return access_guard


# ---------------------------------------------------------------------------
# Authentication and roles
# ---------------------------------------------------------------------------


def require_user(
    raw_token: Annotated[str, Depends(oauth2_scheme)],
) -> Principal:
    """Extract and validate the JWT bearer token. Returns a Principal."""
    try:
        claims = token_service.decode_access_token(raw_token)
    except jwt.ExpiredSignatureError:
        logger.warning("Expired token rejected")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token expired",
            headers={"WWW-Authenticate": "Bearer"},
        ) from None
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid token rejected: %s", e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from None

    principal = Principal(
        user_id=str(claims["sub"]),
        roles=frozenset(claims.get("roles", [])),
    )
    logger.debug(
        "Token validated for user=%s roles=%s",
        principal.user_id,
        principal.roles,
    )
    return principal


def require_student_id(
    principal: Annotated[Principal, Depends(require_user)],
) -> int:
    """The caller's numeric user id, used as the student id."""
    try:
        return int(principal.user_id)
    except ValueError:
        logger.warning("Non-numeric subject rejected: user=%s", principal.user_id)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Token subject is not a student id",
        ) from None


def require_role(role: str):
    """Dependency factory: demand a specific role.

    Usage: Depends(require_role("admin"))
    """

    def _guard(
        principal: Annotated[Principal, Depends(require_user)],
    ) -> Principal:
        if not principal.has_role(role):
            logger.warning(
                "Access denied: user=%s missing role=%s",
                principal.user_id,
                role,
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return principal

    return _guard


def require_any_role(roles: set[str]):
    """Dependency factory: demand at least one of the given roles."""

    def _guard(
        principal: Annotated[Principal, Depends(require_user)],
    ) -> Principal:
        if not principal.has_any_role(roles):
            logger.warning(
                "Access denied: user=%s has none of roles=%s",
                principal.user_id,
                roles,
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return principal

    return _guard
