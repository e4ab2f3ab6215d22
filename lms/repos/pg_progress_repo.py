"""PostgreSQL implementation of ProgressRepo."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from lms.db.tables import ProgressRecordRow
from lms.models.progress import ProgressRecord


class PgProgressRepo:
    """Upserts with INSERT .. ON CONFLICT DO UPDATE.

    Postgres serializes concurrent upserts on the same key through the
    unique index, so the last writer wins and no write is lost.  Writes
    to different keys never contend.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def upsert(self, record: ProgressRecord) -> ProgressRecord:
        stmt = insert(ProgressRecordRow).values(
            student_id=record.student_id,
            course_id=record.course_id,
            unit_id=record.unit_id,
            module_id=record.module_id,
            progress_percentage=record.progress_percentage,
            completed_at=record.completed_at,
            updated_at=record.updated_at,
        )
        stmt = stmt.on_conflict_do_update(
            constraint="uq_progress_records_key",
            set_={
                "progress_percentage": stmt.excluded.progress_percentage,
                "completed_at": stmt.excluded.completed_at,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        await self._session.execute(stmt)
        return record

    async def list_for(self, student_id: int, course_id: int) -> list[ProgressRecord]:
        stmt = (
            select(ProgressRecordRow)
            .where(
                ProgressRecordRow.student_id == student_id,
                ProgressRecordRow.course_id == course_id,
            )
            .order_by(ProgressRecordRow.unit_id, ProgressRecordRow.module_id)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_record(r) for r in rows]

    async def list_recent_for_student(
        self, student_id: int, limit: int
    ) -> list[ProgressRecord]:
        stmt = (
            select(ProgressRecordRow)
            .where(ProgressRecordRow.student_id == student_id)
            .order_by(ProgressRecordRow.updated_at.desc(), ProgressRecordRow.id.desc())
            .limit(limit)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_record(r) for r in rows]


def _row_to_record(r: ProgressRecordRow) -> ProgressRecord:
    return ProgressRecord(
        student_id=r.student_id,
        course_id=r.course_id,
        unit_id=r.unit_id,
        module_id=r.module_id,
        progress_percentage=r.progress_percentage,
        completed_at=r.completed_at,
        updated_at=r.updated_at,
    )
