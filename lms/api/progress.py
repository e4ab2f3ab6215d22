"""Progress endpoints for the authenticated student.

  POST /v1/progress                    record unit/module progress
  GET  /v1/progress/courses/{id}       per-unit breakdown + overall %
  GET  /v1/progress/dashboard           every enrolled course, totals, recent items
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from lms.api.certificates import CertificateView
from lms.api.dependencies import get_progress_engine, require_student_id
from lms.services.progress_engine import ProgressEngine

router = APIRouter(prefix="/v1/progress", tags=["progress"])


class ProgressUpdateIn(BaseModel):
    course_id: int
    unit_id: int
    module_id: int | None = None
    percentage: float = Field(ge=0, le=100)


class ProgressUpdateOut(BaseModel):
    unit_progress: float
    course_progress: float
    is_completed: bool


class ModuleProgressOut(BaseModel):
    module_id: int | None
    progress: float
    completed_at: int | None


class UnitProgressOut(BaseModel):
    unit_id: int
    progress: float
    modules: list[ModuleProgressOut]


class CourseProgressOut(BaseModel):
    student_id: int
    course_id: int
    overall_progress: float
    completed_units: int
    total_units: int
    is_completed: bool
    can_generate_certificate: bool
    units: list[UnitProgressOut]


@router.post("", response_model=ProgressUpdateOut)
async def update_progress(
    body: ProgressUpdateIn,
    student_id: Annotated[int, Depends(require_student_id)],
    engine: Annotated[ProgressEngine, Depends(get_progress_engine)],
) -> ProgressUpdateOut:
    result = await engine.update_progress(
        student_id, body.course_id, body.unit_id, body.module_id, body.percentage
    )
    return ProgressUpdateOut(
        unit_progress=result.unit_progress,
        course_progress=result.course_progress,
        is_completed=result.is_completed,
    )


@router.get("/courses/{course_id}", response_model=CourseProgressOut)
async def get_course_progress(
    course_id: int,
    student_id: Annotated[int, Depends(require_student_id)],
    engine: Annotated[ProgressEngine, Depends(get_progress_engine)],
) -> CourseProgressOut:
    report = await engine.get_course_progress(student_id, course_id)
    return CourseProgressOut(
        student_id=report.student_id,
        course_id=report.course_id,
        overall_progress=report.overall_progress,
        completed_units=report.completed_units,
        total_units=report.total_units,
        is_completed=report.is_completed,
        can_generate_certificate=report.can_generate_certificate,
        units=[
            UnitProgressOut(
                unit_id=u.unit_id,
                progress=u.progress,
                modules=[
                    ModuleProgressOut(
                        module_id=m.module_id,
                        progress=m.progress,
                        completed_at=m.completed_at,
                    )
                    for m in u.modules
                ],
            )
            for u in report.units
        ],
    )


class EnrolledCourseOut(BaseModel):
    course_id: int
    title: str
    enrollment_status: str
    enrolled_at: int
    progress: float
    is_completed: bool


class ActivityOut(BaseModel):
    type: str
    course_id: int
    course_title: str
    unit_id: int
    unit_title: str
    module_id: int | None
    progress: float
    date: int


class DashboardStatsOut(BaseModel):
    total_courses: int
    completed_courses: int
    in_progress_courses: int
    average_progress: float
    total_certificates: int


class DashboardOut(BaseModel):
    stats: DashboardStatsOut
    enrolled_courses: list[EnrolledCourseOut]
    recent_certificates: list[CertificateView]
    recent_activity: list[ActivityOut]


@router.get("/dashboard", response_model=DashboardOut)
async def get_dashboard(
    student_id: Annotated[int, Depends(require_student_id)],
    engine: Annotated[ProgressEngine, Depends(get_progress_engine)],
) -> DashboardOut:
    dashboard = await engine.get_student_dashboard(student_id)
    s = dashboard.stats
    return DashboardOut(
        stats=DashboardStatsOut(
            total_courses=s.total_courses,
            completed_courses=s.completed_courses,
            in_progress_courses=s.in_progress_courses,
            average_progress=s.average_progress,
            total_certificates=s.total_certificates,
        ),
        enrolled_courses=[
            EnrolledCourseOut(
                course_id=c.course_id,
                title=c.title,
                enrollment_status=c.enrollment_status,
                enrolled_at=c.enrolled_at,
                progress=c.progress,
                is_completed=c.is_completed,
            )
            for c in dashboard.enrolled_courses
        ],
        recent_certificates=[CertificateView.of(c) for c in dashboard.recent_certificates],
        recent_activity=[
            ActivityOut(
                type=a.kind,
                course_id=a.course_id,
                course_title=a.course_title,
                unit_id=a.unit_id,
                unit_title=a.unit_title,
                module_id=a.module_id,
                progress=a.progress,
                date=a.updated_at,
            )
            for a in dashboard.recent_activity
        ],
    )
