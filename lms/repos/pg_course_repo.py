"""PostgreSQL implementations of CourseRepo and UserRepo."""

from __future__ import annotations

from collections import defaultdict

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lms.db.tables import CourseModuleRow, CourseRow, CourseUnitRow, UserRow
from lms.models.course import Course, CourseUnit
from lms.models.user import User


class PgCourseRepo:
    """Satisfies the CourseRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, course_id: int) -> Course | None:
        row = await self._session.get(CourseRow, course_id)
        if row is None:
            return None
        return Course(
            id=row.id, title=row.title, status=row.status, teacher_id=row.teacher_id
        )

    async def list_published_units(self, course_id: int) -> list[CourseUnit]:
        stmt = (
            select(CourseUnitRow)
            .where(
                CourseUnitRow.course_id == course_id,
                CourseUnitRow.is_published.is_(True),
            )
            .order_by(CourseUnitRow.position, CourseUnitRow.id)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [
            CourseUnit(
                id=r.id,
                course_id=r.course_id,
                title=r.title,
                position=r.position,
                is_published=r.is_published,
            )
            for r in rows
        ]

    async def published_module_ids(self, course_id: int) -> dict[int, frozenset[int]]:
        stmt = select(CourseModuleRow.unit_id, CourseModuleRow.id).where(
            CourseModuleRow.course_id == course_id,
            CourseModuleRow.is_published.is_(True),
        )
        by_unit: dict[int, set[int]] = defaultdict(set)
        for unit_id, module_id in (await self._session.execute(stmt)).all():
            by_unit[unit_id].add(module_id)
        return {unit_id: frozenset(ids) for unit_id, ids in by_unit.items()}


class PgUserRepo:
    """Satisfies the UserRepo Protocol."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, user_id: int) -> User | None:
        row = await self._session.get(UserRow, user_id)
        if row is None:
            return None
        return User(
            id=row.id,
            email=row.email,
            name=row.name or "",
            roles=tuple(row.roles) if row.roles else (),
            is_active=row.is_active,
        )
