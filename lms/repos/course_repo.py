from __future__ import annotations

from collections import defaultdict
from typing import Protocol

from lms.models.course import Course, CourseModule, CourseUnit


class CourseRepo(Protocol):
    async def get(self, course_id: int) -> Course | None: ...
    async def list_published_units(self, course_id: int) -> list[CourseUnit]: ...
    async def published_module_ids(self, course_id: int) -> dict[int, frozenset[int]]: ...


class InMemoryCourseRepo:
    def __init__(self) -> None:
        self._courses: dict[int, Course] = {}
        self._units: dict[int, CourseUnit] = {}
        self._modules: dict[int, CourseModule] = {}

    def add_course(self, course: Course) -> None:
        self._courses[course.id] = course

    def add_unit(self, unit: CourseUnit) -> None:
        self._units[unit.id] = unit

    def add_module(self, module: CourseModule) -> None:
        self._modules[module.id] = module

    def clear(self) -> None:
        self._courses.clear()
        self._units.clear()
        self._modules.clear()

    async def get(self, course_id: int) -> Course | None:
        return self._courses.get(course_id)

    async def list_published_units(self, course_id: int) -> list[CourseUnit]:
        units = [
            u for u in self._units.values() if u.course_id == course_id and u.is_published
        ]
        return sorted(units, key=lambda u: (u.position, u.id))

    async def published_module_ids(self, course_id: int) -> dict[int, frozenset[int]]:
        by_unit: dict[int, set[int]] = defaultdict(set)
        for m in self._modules.values():
            if m.course_id == course_id and m.is_published:
                by_unit[m.unit_id].add(m.id)
        return {unit_id: frozenset(ids) for unit_id, ids in by_unit.items()}
