"""Student progress and certificate eligibility.

COURSE PROGRESS
----------------
Overall progress is unit-based:

    overall = completed published units / published units * 100

clamped to [0, 100], and 0 for a course with no published units.
A unit counts as completed when either

  - its unit-level record (module_id None) is at 100, or
  - it has published modules and each of them has a record at 100.

Records for unpublished units, and module records that are not a
published module of their unit, are ignored.  Nothing is cached: every
call recomputes from the progress rows, so a summary read straight
after a write sees that write.

CERTIFICATES
-------------
Two independent types per enrollment, each issued at most once:

  virtual   progress >= virtual_certificate_threshold
  complete  progress >= virtual_certificate_threshold
            and final_score >= complete_certificate_threshold

generate_certificate() prefers the stronger credential: an existing
complete certificate is returned first, then a newly earned complete
one, and only then the virtual path.  A student who already holds a
virtual certificate can still earn the complete one later.

ENROLLMENT
-----------
The enrollment moves from active to completed once overall progress
reaches the virtual threshold.  Completed enrollments still receive
certificates; only cancelled ones are refused.

Exactly-once issuance is the repository's job (unique key on
enrollment_id + type).  Losing that race is not an error: the engine
reads back the winner's row and returns it.
"""

from __future__ import annotations

import logging
import math
import time
from collections import defaultdict
from collections.abc import Callable

from lms.core.config import CertificatePolicy
from lms.core.errors import (
    CertificateConflict,
    CertificateNotEligible,
    NoActiveEnrollment,
    ValidationError,
)
from lms.core.metrics import CERTIFICATES_ISSUED, PROGRESS_UPDATES
from lms.models.certificate import (
    Certificate,
    CertificateStats,
    CertificateType,
    IssuedCertificate,
    certificate_number,
)
from lms.models.enrollment import Enrollment, EnrollmentStatus
from lms.models.progress import (
    CourseProgressReport,
    DashboardStats,
    EnrolledCourse,
    ModuleProgress,
    ProgressActivity,
    ProgressRecord,
    ProgressUpdate,
    StudentDashboard,
    UnitProgress,
)
from lms.repos.certificate_repo import CertificateRepo
from lms.repos.course_repo import CourseRepo
from lms.repos.enrollment_repo import EnrollmentRepo
from lms.repos.progress_repo import ProgressRepo
from lms.repos.user_repo import UserRepo
from lms.services.notifier import (
    CertificateIssued,
    CourseCompleted,
    LoggingNotifier,
    Notifier,
    ProgressMilestoneReached,
)
from lms.services.scoring import ScoreProvider

logger = logging.getLogger(__name__)

RECENT_CERTIFICATES = 5
RECENT_ACTIVITY = 10


class ProgressEngine:
    def __init__(
        self,
        *,
        progress: ProgressRepo,
        courses: CourseRepo,
        enrollments: EnrollmentRepo,
        certificates: CertificateRepo,
        users: UserRepo,
        scores: ScoreProvider,
        policy: CertificatePolicy,
        notifier: Notifier | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._progress = progress
        self._courses = courses
        self._enrollments = enrollments
        self._certificates = certificates
        self._users = users
        self._scores = scores
        self._policy = policy
        self._notifier = notifier or LoggingNotifier()
        self._clock = clock

    @property
    def policy(self) -> CertificatePolicy:
        return self._policy

    # ------------------------------------------------------------------
    # Progress
    # ------------------------------------------------------------------

    async def update_progress(
        self,
        student_id: int,
        course_id: int,
        unit_id: int,
        module_id: int | None,
        percentage: float,
    ) -> ProgressUpdate:
        """Upsert one progress record and return the recomputed summary.

        completed_at is stamped iff percentage >= 100.  Raises
        ValidationError for a percentage outside [0, 100].
        """
        if math.isnan(percentage) or not 0 <= percentage <= 100:
            raise ValidationError(
                f"percentage must be between 0 and 100 (got {percentage})"
            )

        previous = await self._overall_progress(student_id, course_id)

        now = int(self._clock())
        record = ProgressRecord(
            student_id=student_id,
            course_id=course_id,
            unit_id=unit_id,
            module_id=module_id,
            progress_percentage=float(percentage),
            completed_at=now if percentage >= 100 else None,
            updated_at=now,
        )
        await self._progress.upsert(record)
        PROGRESS_UPDATES.inc()

        overall = await self._overall_progress(student_id, course_id)
        logger.info(
            "Progress updated unit=%s module=%s pct=%s overall=%s",
            unit_id,
            module_id,
            percentage,
            overall,
            extra={"student_id": student_id, "course_id": course_id},
        )

        if overall >= self._policy.virtual_certificate_threshold:
            await self._complete_enrollment(student_id, course_id)
        await self._announce(student_id, course_id, previous, overall, now)

        return ProgressUpdate(
            unit_progress=record.progress_percentage,
            course_progress=overall,
            is_completed=overall >= 100,
        )

    async def get_course_progress(
        self, student_id: int, course_id: int
    ) -> CourseProgressReport:
        units = await self._courses.list_published_units(course_id)
        module_ids = await self._courses.published_module_ids(course_id)
        records = await self._progress.list_for(student_id, course_id)

        by_unit: dict[int, list[ProgressRecord]] = defaultdict(list)
        for r in records:
            by_unit[r.unit_id].append(r)

        breakdown = []
        completed = 0
        for unit in units:
            published = module_ids.get(unit.id, frozenset())
            unit_records = sorted(
                (
                    r
                    for r in by_unit.get(unit.id, [])
                    if r.module_id is None or r.module_id in published
                ),
                key=lambda r: (r.module_id is not None, r.module_id or 0),
            )
            if _unit_completed(unit_records, published):
                completed += 1
            breakdown.append(
                UnitProgress(
                    unit_id=unit.id,
                    progress=_mean(r.progress_percentage for r in unit_records),
                    modules=tuple(
                        ModuleProgress(
                            module_id=r.module_id,
                            progress=r.progress_percentage,
                            completed_at=r.completed_at,
                        )
                        for r in unit_records
                    ),
                )
            )

        return CourseProgressReport(
            student_id=student_id,
            course_id=course_id,
            overall_progress=_percentage(completed, len(units)),
            completed_units=completed,
            total_units=len(units),
            units=tuple(breakdown),
        )

    async def get_student_dashboard(self, student_id: int) -> StudentDashboard:
        """Current enrollments with progress, totals and recent activity.

        Cancelled enrollments are left out.  recent_certificates holds the
        newest five, recent_activity the ten latest progress writes.
        """
        titles: dict[int, str] = {}
        courses = []
        for e in await self._enrollments.list_current_for_student(student_id):
            progress = await self._overall_progress(student_id, e.course_id)
            courses.append(
                EnrolledCourse(
                    course_id=e.course_id,
                    title=await self._course_title(e.course_id, titles),
                    enrollment_status=e.status.value,
                    enrolled_at=e.enrolled_at,
                    progress=progress,
                    is_completed=progress >= 100,
                )
            )

        certificates = await self._certificates.list_for_student(student_id)
        completed = sum(1 for c in courses if c.is_completed)
        stats = DashboardStats(
            total_courses=len(courses),
            completed_courses=completed,
            in_progress_courses=len(courses) - completed,
            average_progress=(
                round(sum(c.progress for c in courses) / len(courses), 1)
                if courses
                else 0.0
            ),
            total_certificates=len(certificates),
        )
        return StudentDashboard(
            student_id=student_id,
            stats=stats,
            enrolled_courses=tuple(courses),
            recent_certificates=tuple(certificates[:RECENT_CERTIFICATES]),
            recent_activity=await self._recent_activity(student_id, titles),
        )

    async def _course_title(self, course_id: int, cache: dict[int, str]) -> str:
        if course_id not in cache:
            course = await self._courses.get(course_id)
            cache[course_id] = course.title if course else ""
        return cache[course_id]

    async def _recent_activity(
        self, student_id: int, titles: dict[int, str]
    ) -> tuple[ProgressActivity, ...]:
        records = await self._progress.list_recent_for_student(student_id, RECENT_ACTIVITY)
        unit_titles: dict[int, dict[int, str]] = {}
        activity = []
        for r in records:
            if r.course_id not in unit_titles:
                units = await self._courses.list_published_units(r.course_id)
                unit_titles[r.course_id] = {u.id: u.title for u in units}
            activity.append(
                ProgressActivity(
                    kind="completed" if r.is_completed else "progress",
                    course_id=r.course_id,
                    course_title=await self._course_title(r.course_id, titles),
                    unit_id=r.unit_id,
                    unit_title=unit_titles[r.course_id].get(r.unit_id, ""),
                    module_id=r.module_id,
                    progress=r.progress_percentage,
                    updated_at=r.updated_at,
                )
            )
        return tuple(activity)

    async def _overall_progress(self, student_id: int, course_id: int) -> float:
        report = await self.get_course_progress(student_id, course_id)
        return report.overall_progress

    async def _complete_enrollment(self, student_id: int, course_id: int) -> None:
        enrollment = await self._enrollments.get_current(student_id, course_id)
        if enrollment is None or enrollment.status != EnrollmentStatus.ACTIVE:
            return
        await self._enrollments.mark_completed(enrollment.id)
        logger.info(
            "Enrollment %s marked completed",
            enrollment.id,
            extra={"student_id": student_id, "course_id": course_id},
        )

    async def _announce(
        self,
        student_id: int,
        course_id: int,
        previous: float,
        overall: float,
        now: int,
    ) -> None:
        for milestone in self._policy.milestones:
            if previous < milestone <= overall:
                await self._notifier.publish(
                    ProgressMilestoneReached(
                        student_id=student_id,
                        course_id=course_id,
                        milestone=milestone,
                        progress=overall,
                    )
                )

        if previous >= 100 or overall < 100:
            return

        await self._notifier.publish(
            CourseCompleted(student_id=student_id, course_id=course_id, completed_at=now)
        )
        if not self._policy.auto_generate:
            return
        try:
            await self.generate_certificate(student_id, course_id)
        except (CertificateNotEligible, NoActiveEnrollment) as exc:
            logger.info(
                "Automatic certificate not issued: %s",
                exc,
                extra={"student_id": student_id, "course_id": course_id},
            )

    # ------------------------------------------------------------------
    # Certificates
    # ------------------------------------------------------------------

    async def generate_certificate(
        self, student_id: int, course_id: int
    ) -> IssuedCertificate:
        """Return the student's best certificate for the course, issuing it if needed.

        Raises NoActiveEnrollment when the enrollment is missing or cancelled and
        CertificateNotEligible when neither threshold is met.
        """
        enrollment = await self._enrollments.get_current(student_id, course_id)
        if enrollment is None:
            raise NoActiveEnrollment(student_id, course_id)

        progress = await self._overall_progress(student_id, course_id)
        score = await self._scores.final_score(enrollment)
        policy = self._policy

        existing = await self._certificates.get(enrollment.id, CertificateType.COMPLETE)
        if existing is not None:
            return IssuedCertificate(existing, newly_issued=False)

        progress_ok = progress >= policy.virtual_certificate_threshold
        if progress_ok and score >= policy.complete_certificate_threshold:
            return await self._issue(enrollment, CertificateType.COMPLETE, progress, score)

        existing = await self._certificates.get(enrollment.id, CertificateType.VIRTUAL)
        if existing is not None:
            return IssuedCertificate(existing, newly_issued=False)

        if progress_ok:
            return await self._issue(enrollment, CertificateType.VIRTUAL, progress, score)

        raise CertificateNotEligible(
            progress=progress, final_score=score, thresholds=policy.thresholds()
        )

    async def _issue(
        self,
        enrollment: Enrollment,
        certificate_type: CertificateType,
        progress: float,
        score: float,
    ) -> IssuedCertificate:
        student = await self._users.get_by_id(enrollment.student_id)
        course = await self._courses.get(enrollment.course_id)
        issued_at = int(self._clock())

        certificate = Certificate(
            id=None,
            enrollment_id=enrollment.id,
            student_id=enrollment.student_id,
            course_id=enrollment.course_id,
            type=certificate_type,
            certificate_number=certificate_number(
                course_id=enrollment.course_id,
                student_id=enrollment.student_id,
                issued_at=issued_at,
            ),
            issued_at=issued_at,
            final_score=score,
            course_progress=progress,
            student_name=student.name if student else "",
            course_title=course.title if course else "",
            issuer=self._policy.issuer_name,
        )

        try:
            stored = await self._certificates.add(certificate)
        except CertificateConflict:
            winner = await self._certificates.get(enrollment.id, certificate_type)
            if winner is None:
                raise
            logger.info(
                "Certificate already issued by a concurrent request number=%s",
                winner.certificate_number,
                extra={"student_id": enrollment.student_id, "course_id": enrollment.course_id},
            )
            return IssuedCertificate(winner, newly_issued=False)

        CERTIFICATES_ISSUED.labels(type=certificate_type.value).inc()
        logger.info(
            "Certificate issued number=%s type=%s score=%s progress=%s",
            stored.certificate_number,
            certificate_type.value,
            score,
            progress,
            extra={"student_id": enrollment.student_id, "course_id": enrollment.course_id},
        )
        await self._notifier.publish(
            CertificateIssued(
                student_id=stored.student_id,
                course_id=stored.course_id,
                certificate_number=stored.certificate_number,
                certificate_type=certificate_type.value,
            )
        )
        return IssuedCertificate(stored, newly_issued=True)

    async def list_certificates(self, student_id: int) -> list[Certificate]:
        return await self._certificates.list_for_student(student_id)

    def get_certificate_config(self) -> dict[str, object]:
        """Current thresholds and weights, for display in the client."""
        quiz_weight, activity_weight = self._policy.normalized_weights()
        return {
            "thresholds": self._policy.thresholds(),
            "auto_generate": self._policy.auto_generate,
            "weights": {"quiz": quiz_weight, "activity": activity_weight},
            "issuer_name": self._policy.issuer_name,
            "milestones": list(self._policy.milestones),
        }

    async def get_course_certificate_stats(self, course_id: int) -> CertificateStats:
        total = await self._enrollments.count_current(course_id)
        counts = await self._certificates.count_by_type(course_id)
        virtual = counts.get(CertificateType.VIRTUAL, 0)
        complete = counts.get(CertificateType.COMPLETE, 0)
        return CertificateStats(
            course_id=course_id,
            total_enrollments=total,
            virtual_certificates=virtual,
            complete_certificates=complete,
            virtual_rate=round(virtual / total * 100, 1) if total else 0.0,
            complete_rate=round(complete / total * 100, 1) if total else 0.0,
        )


def _unit_completed(
    records: list[ProgressRecord], published_modules: frozenset[int]
) -> bool:
    for r in records:
        if r.module_id is None and r.is_completed:
            return True
    if not published_modules:
        return False
    done = {r.module_id for r in records if r.is_completed}
    return published_modules <= done


def _percentage(part: int, whole: int) -> float:
    if whole <= 0:
        return 0.0
    return round(min(100.0, max(0.0, part / whole * 100)), 2)


def _mean(values) -> float:
    values = list(values)
    if not values:
        return 0.0
    return round(sum(values) / len(values), 2)
