from __future__ import annotations

from dataclasses import dataclass

from lms.models.certificate import Certificate


@dataclass(frozen=True, slots=True)
class ProgressRecord:
    """Per-(student, course, unit, module) progress row.

    At most one record exists per key; writes are upserts, last one wins.
    module_id is None for unit-level progress.
    """

    student_id: int
    course_id: int
    unit_id: int
    module_id: int | None
    progress_percentage: float
    completed_at: int | None = None
    updated_at: int = 0

    @property
    def key(self) -> tuple[int, int, int, int | None]:
        return (self.student_id, self.course_id, self.unit_id, self.module_id)

    @property
    def is_completed(self) -> bool:
        return self.progress_percentage >= 100


@dataclass(frozen=True, slots=True)
class ProgressUpdate:
    """Result of ProgressEngine.update_progress."""

    unit_progress: float
    course_progress: float
    is_completed: bool


@dataclass(frozen=True, slots=True)
class ModuleProgress:
    module_id: int | None
    progress: float
    completed_at: int | None


@dataclass(frozen=True, slots=True)
class UnitProgress:
    unit_id: int
    progress: float  # mean of the unit's module records
    modules: tuple[ModuleProgress, ...]


@dataclass(frozen=True, slots=True)
class CourseProgressReport:
    """Read model returned by ProgressEngine.get_course_progress."""

    student_id: int
    course_id: int
    overall_progress: float
    completed_units: int
    total_units: int
    units: tuple[UnitProgress, ...]

    @property
    def is_completed(self) -> bool:
        return self.overall_progress >= 100

    @property
    def can_generate_certificate(self) -> bool:
        return self.overall_progress >= 100


@dataclass(frozen=True, slots=True)
class EnrolledCourse:
    course_id: int
    title: str
    enrollment_status: str
    enrolled_at: int
    progress: float
    is_completed: bool


@dataclass(frozen=True, slots=True)
class ProgressActivity:
    """One recent progress write.  kind is "completed" at 100, else "progress"."""

    kind: str
    course_id: int
    course_title: str
    unit_id: int
    unit_title: str
    module_id: int | None
    progress: float
    updated_at: int


@dataclass(frozen=True, slots=True)
class DashboardStats:
    total_courses: int
    completed_courses: int
    in_progress_courses: int
    average_progress: float
    total_certificates: int


@dataclass(frozen=True, slots=True)
class StudentDashboard:
    """Read model returned by ProgressEngine.get_student_dashboard."""

    student_id: int
    stats: DashboardStats
    enrolled_courses: tuple[EnrolledCourse, ...]
    recent_certificates: tuple[Certificate, ...]
    recent_activity: tuple[ProgressActivity, ...]
