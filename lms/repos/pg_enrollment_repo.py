"""PostgreSQL implementations of EnrollmentRepo and AssessmentScoreRepo."""

from __future__ import annotations

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from lms.db.tables import AssessmentScoreRow, EnrollmentRow
from lms.models.assessment import AssessmentScore, ScoreKind
from lms.models.enrollment import Enrollment, EnrollmentStatus


class PgEnrollmentRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_current(self, student_id: int, course_id: int) -> Enrollment | None:
        stmt = select(EnrollmentRow).where(
            EnrollmentRow.student_id == student_id,
            EnrollmentRow.course_id == course_id,
            EnrollmentRow.status != EnrollmentStatus.CANCELLED.value,
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_enrollment(row) if row is not None else None

    async def count_current(self, course_id: int) -> int:
        stmt = select(func.count(EnrollmentRow.id)).where(
            EnrollmentRow.course_id == course_id,
            EnrollmentRow.status != EnrollmentStatus.CANCELLED.value,
        )
        return int((await self._session.execute(stmt)).scalar_one())

    async def mark_completed(self, enrollment_id: int) -> None:
        stmt = (
            update(EnrollmentRow)
            .where(
                EnrollmentRow.id == enrollment_id,
                EnrollmentRow.status == EnrollmentStatus.ACTIVE.value,
            )
            .values(status=EnrollmentStatus.COMPLETED.value)
        )
        await self._session.execute(stmt)

    async def list_current_for_student(self, student_id: int) -> list[Enrollment]:
        stmt = (
            select(EnrollmentRow)
            .where(
                EnrollmentRow.student_id == student_id,
                EnrollmentRow.status != EnrollmentStatus.CANCELLED.value,
            )
            .order_by(EnrollmentRow.enrolled_at, EnrollmentRow.id)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_enrollment(r) for r in rows]


class PgAssessmentScoreRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def list_for_enrollment(self, enrollment_id: int) -> list[AssessmentScore]:
        stmt = select(AssessmentScoreRow).where(
            AssessmentScoreRow.enrollment_id == enrollment_id
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [
            AssessmentScore(
                enrollment_id=r.enrollment_id,
                kind=ScoreKind(r.kind),
                score=r.score,
                recorded_at=r.recorded_at,
            )
            for r in rows
        ]


def _row_to_enrollment(row: EnrollmentRow) -> Enrollment:
    return Enrollment(
        id=row.id,
        student_id=row.student_id,
        course_id=row.course_id,
        status=EnrollmentStatus(row.status),
        enrolled_at=row.enrolled_at,
    )
