from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class EnrollmentStatus(StrEnum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass(frozen=True, slots=True)
class Enrollment:
    """A (student, course) pair.  Never hard-deleted: certificates hang off it."""

    id: int
    student_id: int
    course_id: int
    status: EnrollmentStatus = EnrollmentStatus.ACTIVE
    enrolled_at: int = 0

    @property
    def is_current(self) -> bool:
        """Active or completed; cancelled enrollments earn nothing."""
        return self.status != EnrollmentStatus.CANCELLED
