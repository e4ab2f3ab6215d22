"""Domain error hierarchy.

Services raise these; the HTTP layer (lms.main) maps each kind to a
status code.  Nothing here knows about HTTP.
"""

from __future__ import annotations


class LmsError(Exception):
    """Base class for every domain error raised by this service."""


class ValidationError(LmsError):
    """Malformed input that should have been rejected upstream."""


class NotFoundError(LmsError):
    """An entity the operation depends on does not exist."""


class NoActiveEnrollment(NotFoundError):
    def __init__(self, student_id: int, course_id: int) -> None:
        super().__init__(
            f"no active enrollment for student={student_id} course={course_id}"
        )
        self.student_id = student_id
        self.course_id = course_id


class CertificateNotEligible(LmsError):
    """Business-rule gate: the student does not qualify yet.

    Not a fault.  Carries the numbers a client needs to show how close
    the student is.
    """

    def __init__(
        self,
        *,
        progress: float,
        final_score: float,
        thresholds: dict[str, float],
    ) -> None:
        self.progress = progress
        self.final_score = final_score
        self.thresholds = thresholds
        super().__init__(self.describe())

    def describe(self) -> str:
        return (
            f"Certificate requirements not met. Progress: {self.progress:g}% "
            f"(requires {self.thresholds['virtual_certificate']:g}%), "
            f"score: {self.final_score:g} "
            f"(requires {self.thresholds['complete_certificate']:g} "
            "for a complete certificate)"
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "message": self.describe(),
            "progress": self.progress,
            "final_score": self.final_score,
            "thresholds": dict(self.thresholds),
        }


class ConflictError(LmsError):
    """A concurrent writer got there first."""


class CertificateConflict(ConflictError):
    def __init__(self, enrollment_id: int, certificate_type: str) -> None:
        super().__init__(
            f"certificate type={certificate_type} already issued "
            f"for enrollment={enrollment_id}"
        )
        self.enrollment_id = enrollment_id
        self.certificate_type = certificate_type


class StoreUnavailable(LmsError):
    """The durable or ephemeral store could not be reached."""

    def __init__(self, store: str, detail: str = "") -> None:
        message = f"{store} unavailable"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.store = store
