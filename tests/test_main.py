"""Domain errors raised below the routes map to stable HTTP responses."""

from __future__ import annotations

from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from lms.api.dependencies import get_progress_engine
from lms.core.errors import (
    CertificateConflict,
    LmsError,
    NoActiveEnrollment,
    StoreUnavailable,
    ValidationError,
)
from lms.main import app
from tests.conftest import auth


class _FailingEngine:
    def __init__(self, exc: LmsError) -> None:
        self._exc = exc

    async def update_progress(self, *args, **kwargs):
        raise self._exc


@pytest.fixture
def failing_client() -> Iterator[object]:
    def install(exc: LmsError) -> TestClient:
        app.dependency_overrides[get_progress_engine] = lambda: _FailingEngine(exc)
        return TestClient(app)

    try:
        yield install
    finally:
        app.dependency_overrides.clear()


def _post(client: TestClient, token: str):
    return client.post(
        "/v1/progress",
        json={"course_id": 1, "unit_id": 101, "percentage": 10},
        headers=auth(token),
    )


def test_store_unavailable_maps_to_503(failing_client, token: str) -> None:
    resp = _post(failing_client(StoreUnavailable("database", "connection reset")), token)
    assert resp.status_code == 503
    assert resp.headers["retry-after"] == "5"
    assert resp.json() == {"detail": "Service temporarily unavailable"}


@pytest.mark.parametrize(
    ("exc", "status_code"),
    [
        (ValidationError("percentage must be between 0 and 100"), 422),
        (NoActiveEnrollment(1, 1), 404),
        (CertificateConflict(1, "virtual"), 409),
    ],
)
def test_domain_errors_map_to_status(
    failing_client, token: str, exc: LmsError, status_code: int
) -> None:
    resp = _post(failing_client(exc), token)
    assert resp.status_code == status_code
    assert resp.json()["detail"] == str(exc)


def test_unknown_route_is_404(client: TestClient) -> None:
    assert client.get("/nope").status_code == 404
