from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Course:
    id: int
    title: str
    status: str = "draft"  # draft|published|archived
    teacher_id: int | None = None


@dataclass(frozen=True, slots=True)
class CourseUnit:
    """Top-level content grouping within a course."""

    id: int
    course_id: int
    title: str
    position: int = 0
    is_published: bool = True


@dataclass(frozen=True, slots=True)
class CourseModule:
    """Content grouping within a unit."""

    id: int
    course_id: int
    unit_id: int
    title: str
    position: int = 0
    is_published: bool = True
