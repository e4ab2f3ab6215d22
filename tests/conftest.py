from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from lms.api import dependencies
from lms.main import app
from lms.models.course import Course, CourseModule, CourseUnit
from lms.models.enrollment import Enrollment
from lms.models.user import User
from lms.services import access_guard as guard_module
from lms.services import token_service


@pytest.fixture(autouse=True)
def reset_repos() -> None:
    """Clear the in-memory repositories the API uses between tests."""
    dependencies.user_repo.clear()
    dependencies.course_repo.clear()
    dependencies.enrollment_repo.clear()
    dependencies.progress_repo.clear()
    dependencies.assessment_repo.clear()
    dependencies.certificate_repo.clear()


@pytest.fixture(autouse=True)
def reset_access_guard() -> None:
    """Clear rate-limit windows, blocks and violation counts so limits don't bleed."""
    if hasattr(guard_module.rate_limiter, "clear"):
        guard_module.rate_limiter.clear()  # type: ignore[union-attr]
    if hasattr(guard_module.block_store, "clear"):
        guard_module.block_store.clear()  # type: ignore[union-attr]
    if hasattr(guard_module.suspicious_counter, "clear_all"):
        guard_module.suspicious_counter.clear_all()  # type: ignore[union-attr]


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


def mint_token(sub: str = "1", roles: list[str] | None = None) -> str:
    """Create a valid ES256 JWT for testing."""
    return token_service.create_access_token(sub=sub, roles=roles)


def auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def token() -> str:
    """Token for student 1."""
    return mint_token()


@pytest.fixture
def admin_token() -> str:
    return mint_token(sub="900", roles=["admin"])


class FakeClock:
    """Settable clock for services that take clock=..."""

    def __init__(self, now: float = 1_760_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ---------------------------------------------------------------------------
# Seed helpers (API-level in-memory repos)
# ---------------------------------------------------------------------------


def seed_course(
    course_id: int = 1,
    *,
    units: int = 4,
    modules_per_unit: int = 0,
    student_id: int = 1,
    enrollment_id: int = 1,
    title: str = "Intro to Testing",
) -> list[CourseUnit]:
    """Publish a course with N units and enroll one student in it.

    Unit ids are course_id * 100 + n; module ids are unit_id * 10 + n.
    """
    dependencies.course_repo.add_course(Course(id=course_id, title=title, status="published"))
    created = []
    for n in range(1, units + 1):
        unit = CourseUnit(
            id=course_id * 100 + n, course_id=course_id, title=f"Unit {n}", position=n
        )
        dependencies.course_repo.add_unit(unit)
        created.append(unit)
        for m in range(1, modules_per_unit + 1):
            dependencies.course_repo.add_module(
                CourseModule(
                    id=unit.id * 10 + m,
                    course_id=course_id,
                    unit_id=unit.id,
                    title=f"Module {m}",
                    position=m,
                )
            )
    if dependencies.user_repo._by_id.get(student_id) is None:
        dependencies.user_repo.add(
            User(id=student_id, email=f"s{student_id}@example.com", name="Ada Student")
        )
    dependencies.enrollment_repo.add(
        Enrollment(id=enrollment_id, student_id=student_id, course_id=course_id)
    )
    return created
