from __future__ import annotations

import asyncio
import math

import pytest
from prometheus_client import REGISTRY

from lms.core.config import CertificatePolicy
from lms.core.errors import ValidationError
from lms.models.certificate import CertificateType
from lms.models.course import Course, CourseModule, CourseUnit
from lms.models.enrollment import Enrollment, EnrollmentStatus
from lms.services.notifier import (
    CertificateIssued,
    CourseCompleted,
    ProgressMilestoneReached,
)
from tests.services.engine_fixtures import (
    COURSE,
    ENROLLMENT,
    STUDENT,
    build_world,
    complete_units,
)


def _progress_updates() -> float:
    return REGISTRY.get_sample_value("progress_updates_total") or 0.0


# ---- update_progress ----


def test_two_of_four_units_is_fifty_percent() -> None:
    world = build_world(units=4)

    async def scenario():
        await complete_units(world, 2)
        for unit_id in world.unit_ids()[2:]:
            await world.engine.update_progress(STUDENT, COURSE, unit_id, None, 50)
        return await world.engine.get_course_progress(STUDENT, COURSE)

    report = asyncio.run(scenario())
    assert report.overall_progress == 50.0
    assert report.completed_units == 2
    assert report.total_units == 4
    assert report.is_completed is False


def test_update_returns_written_and_course_progress() -> None:
    world = build_world(units=4)
    unit = world.unit_ids()[0]

    result = asyncio.run(world.engine.update_progress(STUDENT, COURSE, unit, None, 100))

    assert result.unit_progress == 100
    assert result.course_progress == 25.0
    assert result.is_completed is False


def test_partial_unit_progress_does_not_complete_unit() -> None:
    world = build_world(units=2)
    unit = world.unit_ids()[0]

    result = asyncio.run(world.engine.update_progress(STUDENT, COURSE, unit, None, 99.9))

    assert result.unit_progress == 99.9
    assert result.course_progress == 0.0


def test_last_write_wins() -> None:
    world = build_world(units=1)
    unit = world.unit_ids()[0]

    async def scenario():
        await world.engine.update_progress(STUDENT, COURSE, unit, None, 100)
        return await world.engine.update_progress(STUDENT, COURSE, unit, None, 40)

    result = asyncio.run(scenario())
    assert result.course_progress == 0.0
    records = asyncio.run(world.progress.list_for(STUDENT, COURSE))
    assert len(records) == 1
    assert records[0].progress_percentage == 40
    assert records[0].completed_at is None


def test_completed_at_stamped_only_at_100() -> None:
    world = build_world(units=2)
    first, second = world.unit_ids()

    async def scenario():
        await world.engine.update_progress(STUDENT, COURSE, first, None, 100)
        await world.engine.update_progress(STUDENT, COURSE, second, None, 50)
        return await world.progress.list_for(STUDENT, COURSE)

    records = {r.unit_id: r for r in asyncio.run(scenario())}
    assert records[first].completed_at == int(world.clock.now)
    assert records[second].completed_at is None
    assert records[second].updated_at == int(world.clock.now)


@pytest.mark.parametrize("bad", [-0.1, 100.01, 250, math.nan])
def test_out_of_range_percentage_rejected(bad: float) -> None:
    world = build_world(units=1)
    unit = world.unit_ids()[0]

    with pytest.raises(ValidationError):
        asyncio.run(world.engine.update_progress(STUDENT, COURSE, unit, None, bad))
    assert asyncio.run(world.progress.list_for(STUDENT, COURSE)) == []


def test_update_increments_metric() -> None:
    world = build_world(units=1)
    before = _progress_updates()
    asyncio.run(world.engine.update_progress(STUDENT, COURSE, world.unit_ids()[0], None, 10))
    assert _progress_updates() - before == 1


# ---- unit completion via modules ----


def test_unit_completes_when_all_published_modules_done() -> None:
    world = build_world(units=2, modules_per_unit=3)
    unit = world.unit_ids()[0]

    async def scenario():
        for m in (1, 2):
            await world.engine.update_progress(STUDENT, COURSE, unit, unit * 10 + m, 100)
        partial = await world.engine.get_course_progress(STUDENT, COURSE)
        await world.engine.update_progress(STUDENT, COURSE, unit, unit * 10 + 3, 100)
        full = await world.engine.get_course_progress(STUDENT, COURSE)
        return partial, full

    partial, full = asyncio.run(scenario())
    assert partial.overall_progress == 0.0
    assert full.overall_progress == 50.0
    assert full.units[0].progress == 100.0
    assert len(full.units[0].modules) == 3


def test_unknown_module_ids_do_not_complete_a_unit() -> None:
    world = build_world(units=1, modules_per_unit=2)
    unit = world.unit_ids()[0]

    async def scenario():
        await world.engine.update_progress(STUDENT, COURSE, unit, unit * 10 + 1, 100)
        await world.engine.update_progress(STUDENT, COURSE, unit, 999999, 100)
        return await world.engine.get_course_progress(STUDENT, COURSE)

    report = asyncio.run(scenario())
    assert report.overall_progress == 0.0
    assert [m.module_id for m in report.units[0].modules] == [unit * 10 + 1]
    assert world.notifier.of_type(CourseCompleted) == []
    assert world.enrollments._by_id[ENROLLMENT].status == EnrollmentStatus.ACTIVE


def test_modules_of_another_unit_do_not_count() -> None:
    world = build_world(units=2, modules_per_unit=1)
    first, second = world.unit_ids()

    result = asyncio.run(
        world.engine.update_progress(STUDENT, COURSE, first, second * 10 + 1, 100)
    )

    assert result.course_progress == 0.0


def test_unpublished_modules_are_not_required() -> None:
    world = build_world(units=1, modules_per_unit=1)
    unit = world.unit_ids()[0]
    draft = CourseModule(
        id=unit * 10 + 9,
        course_id=COURSE,
        unit_id=unit,
        title="Draft",
        position=9,
        is_published=False,
    )
    world.courses.add_module(draft)

    async def scenario():
        await world.engine.update_progress(STUDENT, COURSE, unit, draft.id, 100)
        only_draft = await world.engine.get_course_progress(STUDENT, COURSE)
        await world.engine.update_progress(STUDENT, COURSE, unit, unit * 10 + 1, 100)
        return only_draft, await world.engine.get_course_progress(STUDENT, COURSE)

    only_draft, done = asyncio.run(scenario())
    assert only_draft.overall_progress == 0.0
    assert done.overall_progress == 100.0


def test_unit_level_record_completes_unit_with_modules() -> None:
    world = build_world(units=2, modules_per_unit=3)
    unit = world.unit_ids()[1]

    result = asyncio.run(world.engine.update_progress(STUDENT, COURSE, unit, None, 100))

    assert result.course_progress == 50.0


def test_unpublished_units_are_ignored() -> None:
    world = build_world(units=2)
    world.courses.add_unit(
        CourseUnit(id=999, course_id=COURSE, title="Draft", position=9, is_published=False)
    )

    async def scenario():
        await world.engine.update_progress(STUDENT, COURSE, 999, None, 100)
        return await world.engine.get_course_progress(STUDENT, COURSE)

    report = asyncio.run(scenario())
    assert report.total_units == 2
    assert report.overall_progress == 0.0
    assert [u.unit_id for u in report.units] == world.unit_ids()[:2]


def test_course_without_units_is_zero_percent() -> None:
    world = build_world(units=0)
    report = asyncio.run(world.engine.get_course_progress(STUDENT, COURSE))
    assert report.overall_progress == 0.0
    assert report.units == ()


def test_unit_breakdown_is_mean_of_records() -> None:
    world = build_world(units=1, modules_per_unit=2)
    unit = world.unit_ids()[0]

    async def scenario():
        await world.engine.update_progress(STUDENT, COURSE, unit, unit * 10 + 1, 100)
        await world.engine.update_progress(STUDENT, COURSE, unit, unit * 10 + 2, 50)
        return await world.engine.get_course_progress(STUDENT, COURSE)

    report = asyncio.run(scenario())
    assert report.units[0].progress == 75.0


# ---- milestones and completion ----


def test_milestones_fire_once_when_crossed() -> None:
    world = build_world(units=4)

    async def scenario():
        await complete_units(world, 2)
        # Rewriting a completed unit does not re-announce.
        await world.engine.update_progress(STUDENT, COURSE, world.unit_ids()[0], None, 100)

    asyncio.run(scenario())
    milestones = [e.milestone for e in world.notifier.of_type(ProgressMilestoneReached)]
    assert milestones == [25, 50]


def test_jump_crosses_several_milestones() -> None:
    world = build_world(units=1)
    asyncio.run(world.engine.update_progress(STUDENT, COURSE, world.unit_ids()[0], None, 100))
    milestones = [e.milestone for e in world.notifier.of_type(ProgressMilestoneReached)]
    assert milestones == [25, 50, 75, 90]
    assert len(world.notifier.of_type(CourseCompleted)) == 1


def test_course_completed_announced_once() -> None:
    world = build_world(units=2)

    async def scenario():
        await complete_units(world, 2)
        await complete_units(world, 2)

    asyncio.run(scenario())
    assert len(world.notifier.of_type(CourseCompleted)) == 1


def test_enrollment_completes_at_virtual_threshold() -> None:
    world = build_world(units=5)

    asyncio.run(complete_units(world, 3))
    assert world.enrollments._by_id[ENROLLMENT].status == EnrollmentStatus.ACTIVE

    asyncio.run(complete_units(world, 4))
    assert world.enrollments._by_id[ENROLLMENT].status == EnrollmentStatus.COMPLETED


def test_cancelled_enrollment_stays_cancelled() -> None:
    world = build_world(units=1, enrollment_status=EnrollmentStatus.CANCELLED)
    asyncio.run(complete_units(world, 1))
    assert world.enrollments._by_id[ENROLLMENT].status == EnrollmentStatus.CANCELLED


def test_completed_enrollment_still_counts_in_stats() -> None:
    world = build_world(units=1)
    asyncio.run(complete_units(world, 1))
    stats = asyncio.run(world.engine.get_course_certificate_stats(COURSE))
    assert stats.total_enrollments == 1


def test_no_auto_certificate_by_default() -> None:
    world = build_world(units=1)
    world.add_scores(90, 90)
    asyncio.run(complete_units(world, 1))
    assert world.notifier.of_type(CertificateIssued) == []


def test_auto_generate_issues_on_completion() -> None:
    world = build_world(units=2, policy=CertificatePolicy(auto_generate=True))
    world.add_scores(90, 80)

    asyncio.run(complete_units(world, 2))

    issued = world.notifier.of_type(CertificateIssued)
    assert len(issued) == 1
    assert issued[0].certificate_type == CertificateType.COMPLETE.value


def test_auto_generate_without_enrollment_is_not_an_error() -> None:
    world = build_world(units=1, policy=CertificatePolicy(auto_generate=True), enrolled=False)

    result = asyncio.run(world.engine.update_progress(STUDENT, COURSE, 101, None, 100))

    assert result.is_completed is True
    assert world.notifier.of_type(CertificateIssued) == []


def test_auto_generate_falls_back_to_virtual_when_score_too_low() -> None:
    policy = CertificatePolicy(
        auto_generate=True,
        virtual_certificate_threshold=100,
        complete_certificate_threshold=100,
    )
    world = build_world(units=1, policy=policy)
    asyncio.run(complete_units(world, 1))
    issued = world.notifier.of_type(CertificateIssued)
    assert [e.certificate_type for e in issued] == ["virtual"]


# ---- dashboard ----


def _enroll_in_second_course(
    world, course_id: int, *, status: EnrollmentStatus = EnrollmentStatus.ACTIVE
) -> None:
    world.courses.add_course(Course(id=course_id, title="Statistics", status="published"))
    world.courses.add_unit(
        CourseUnit(id=course_id * 100 + 1, course_id=course_id, title="Sampling", position=1)
    )
    world.enrollments.add(
        Enrollment(
            id=course_id + 100,
            student_id=STUDENT,
            course_id=course_id,
            status=status,
            enrolled_at=5,
        )
    )


def test_dashboard_summarizes_enrolled_courses() -> None:
    world = build_world(units=2)
    _enroll_in_second_course(world, 4)
    _enroll_in_second_course(world, 5, status=EnrollmentStatus.CANCELLED)

    async def scenario():
        await complete_units(world, 2)
        await world.engine.generate_certificate(STUDENT, COURSE)
        world.clock.advance(60)
        await world.engine.update_progress(STUDENT, 4, 401, None, 50)
        return await world.engine.get_student_dashboard(STUDENT)

    dashboard = asyncio.run(scenario())

    assert [c.course_id for c in dashboard.enrolled_courses] == [COURSE, 4]
    first, second = dashboard.enrolled_courses
    assert (first.title, first.progress) == ("Data Science 101", 100.0)
    assert first.is_completed is True
    assert first.enrollment_status == "completed"
    assert (second.title, second.progress) == ("Statistics", 0.0)
    assert second.is_completed is False

    stats = dashboard.stats
    assert stats.total_courses == 2
    assert stats.completed_courses == 1
    assert stats.in_progress_courses == 1
    assert stats.average_progress == 50.0
    assert stats.total_certificates == 1
    assert [c.type for c in dashboard.recent_certificates] == [CertificateType.VIRTUAL]

    latest = dashboard.recent_activity[0]
    assert latest.kind == "progress"
    assert (latest.course_title, latest.unit_title) == ("Statistics", "Sampling")
    assert latest.progress == 50.0
    assert [a.kind for a in dashboard.recent_activity[1:]] == ["completed", "completed"]


def test_dashboard_activity_is_newest_first_and_capped() -> None:
    world = build_world(units=12)

    async def scenario():
        for unit_id in world.unit_ids():
            await world.engine.update_progress(STUDENT, COURSE, unit_id, None, 30)
            world.clock.advance(1)
        return await world.engine.get_student_dashboard(STUDENT)

    activity = asyncio.run(scenario()).recent_activity
    assert len(activity) == 10
    assert [a.unit_id for a in activity] == world.unit_ids()[::-1][:10]
    assert activity[0].unit_title == "Unit 12"


def test_dashboard_without_enrollments_is_empty() -> None:
    world = build_world(enrolled=False)
    dashboard = asyncio.run(world.engine.get_student_dashboard(STUDENT))
    assert dashboard.enrolled_courses == ()
    assert dashboard.stats.total_courses == 0
    assert dashboard.stats.average_progress == 0.0
    assert dashboard.recent_certificates == ()
    assert dashboard.recent_activity == ()


# ---- certificate config ----


def test_certificate_config_snapshot() -> None:
    policy = CertificatePolicy(quiz_weight=60, activity_weight=40, issuer_name="Acme")
    world = build_world(policy=policy)
    config = world.engine.get_certificate_config()
    assert config["thresholds"] == {
        "pass": 60.0,
        "virtual_certificate": 80.0,
        "complete_certificate": 70.0,
    }
    assert config["weights"] == {"quiz": 60.0, "activity": 40.0}
    assert config["issuer_name"] == "Acme"
    assert config["auto_generate"] is False
    assert config["milestones"] == [25, 50, 75, 90]
