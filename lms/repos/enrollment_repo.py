from __future__ import annotations

import dataclasses
from typing import Protocol

from lms.models.enrollment import Enrollment, EnrollmentStatus


class EnrollmentRepo(Protocol):
    async def get_current(self, student_id: int, course_id: int) -> Enrollment | None: ...
    async def count_current(self, course_id: int) -> int: ...
    async def mark_completed(self, enrollment_id: int) -> None: ...
    async def list_current_for_student(self, student_id: int) -> list[Enrollment]: ...

class InMemoryEnrollmentRepo:
    def __init__(self) -> None:
        self._by_id: dict[int, Enrollment] = {}

    def add(self, enrollment: Enrollment) -> None:
        for existing in self._by_id.values():
            if (existing.student_id, existing.course_id) == (
                enrollment.student_id,
                enrollment.course_id,
            ):
                raise ValueError("student already enrolled in course")
        self._by_id[enrollment.id] = enrollment

    def clear(self) -> None:
        self._by_id.clear()

    async def get_current(self, student_id: int, course_id: int) -> Enrollment | None:
        for e in self._by_id.values():
            if e.student_id == student_id and e.course_id == course_id and e.is_current:
                return e
        return None

    async def count_current(self, course_id: int) -> int:
        return sum(
            1 for e in self._by_id.values() if e.course_id == course_id and e.is_current
        )

    async def mark_completed(self, enrollment_id: int) -> None:
        e = self._by_id.get(enrollment_id)
        if e is not None and e.status == EnrollmentStatus.ACTIVE:
            self._by_id[enrollment_id] = dataclasses.replace(
                e, status=EnrollmentStatus.COMPLETED
            )

    async def list_current_for_student(self, student_id: int) -> list[Enrollment]:
        found = [
            e for e in self._by_id.values() if e.student_id == student_id and e.is_current
        ]
        return sorted(found, key=lambda e: (e.enrolled_at, e.id))
