from __future__ import annotations

from typing import Protocol

from lms.models.progress import ProgressRecord


class ProgressRepo(Protocol):
    async def upsert(self, record: ProgressRecord) -> ProgressRecord:
        """Insert or replace the record with the same key; last write wins."""
        ...

    async def list_for(self, student_id: int, course_id: int) -> list[ProgressRecord]: ...
    async def list_recent_for_student(
        self, student_id: int, limit: int
    ) -> list[ProgressRecord]: ...


class InMemoryProgressRepo:
    """Dict keyed by (student, course, unit, module).

    upsert() has no await between read and write, so on one event loop
    it is atomic the same way a single UPSERT statement is in Postgres.
    """

    def __init__(self) -> None:
        self._store: dict[tuple[int, int, int, int | None], ProgressRecord] = {}

    def clear(self) -> None:
        self._store.clear()

    async def upsert(self, record: ProgressRecord) -> ProgressRecord:
        self._store[record.key] = record
        return record

    async def list_for(self, student_id: int, course_id: int) -> list[ProgressRecord]:
        return [
            r
            for r in self._store.values()
            if r.student_id == student_id and r.course_id == course_id
        ]

    async def list_recent_for_student(
        self, student_id: int, limit: int
    ) -> list[ProgressRecord]:
        mine = [r for r in self._store.values() if r.student_id == student_id]
        mine.sort(key=lambda r: r.updated_at, reverse=True)
        return mine[:limit]
