"""
Unit Tests for dashboard aggregations
"""
from datetime import date, datetime, timedelta

import pytest
from sqlalchemy import select

from conftest import make_batch, make_course, make_student, make_user, principal_for
from edutrack.core.exceptions import AuthorizationError, BatchNotFoundError, ValidationError
from edutrack.core.types import generate_uuid
from edutrack.models import (
    Assignment, Attendance, AttendanceStatus, College, CourseEnrollment, Submission, SubmissionStatus, UserRole,
)
from edutrack.services.aggregation import (
    batch_overview, college_overview, department_performance, system_health, system_overview,
    trainer_batches, trainer_dashboard,
)


@pytest.fixture
async def cs24(db_session, trainer_user):
    """Batch CS24: five students, two courses, nobody has started"""
    batch = await make_batch(
        db_session, code="CS24", trainers=[trainer_user],
        start=datetime(2024, 1, 1), end=datetime(2024, 6, 1),
    )
    students = [await make_student(db_session, batch) for _ in range(5)]
    await make_course(db_session, batch, instructor=trainer_user, students=students, title="Algorithms")
    await make_course(db_session, batch, instructor=trainer_user, students=students, title="Databases")
    return batch


class TestBatchOverview:

    @pytest.mark.asyncio
    async def test_cs24_without_progress(self, db_session, admin_user, cs24):
        principal = await principal_for(db_session, admin_user)

        overview = await batch_overview(db_session, principal, cs24.id)

        assert overview["batch"]["durationWeeks"] == 22
        assert overview["summary"] == {
            "totalStudents": 5,
            "totalCourses": 2,
            "averageProgress": 0,
            "completionRate": 0,
        }
        assert [c["studentCount"] for c in overview["courses"]] == [5, 5]
        assert all(s["totalCourses"] == 2 for s in overview["students"])

    @pytest.mark.asyncio
    async def test_progress_and_completion(self, db_session, admin_user, cs24):
        enrollments = (await db_session.scalars(select(CourseEnrollment))).all()
        finisher = enrollments[0].student_id
        for enrollment in enrollments:
            if enrollment.student_id == finisher:
                enrollment.progress = 100
        await db_session.commit()
        principal = await principal_for(db_session, admin_user)

        overview = await batch_overview(db_session, principal, cs24.id)

        assert overview["summary"]["completionRate"] == 20
        assert overview["summary"]["averageProgress"] == 20
        assert overview["students"][0]["id"] == finisher
        assert overview["students"][0]["completedCourses"] == 2

    @pytest.mark.asyncio
    async def test_empty_batch(self, db_session, admin_user):
        batch = await make_batch(db_session)
        principal = await principal_for(db_session, admin_user)

        overview = await batch_overview(db_session, principal, batch.id)

        assert overview["summary"] == {
            "totalStudents": 0, "totalCourses": 0, "averageProgress": 0, "completionRate": 0,
        }

    @pytest.mark.asyncio
    async def test_trainer_outside_batch_forbidden(self, db_session, cs24):
        outsider = await make_user(db_session, UserRole.TRAINER)
        principal = await principal_for(db_session, outsider)

        with pytest.raises(AuthorizationError):
            await batch_overview(db_session, principal, cs24.id)

    @pytest.mark.asyncio
    async def test_missing_batch_concealed_from_trainer(self, db_session, trainer_user, admin_user):
        trainer = await principal_for(db_session, trainer_user)
        admin = await principal_for(db_session, admin_user)

        with pytest.raises(AuthorizationError):
            await batch_overview(db_session, trainer, generate_uuid())
        with pytest.raises(BatchNotFoundError):
            await batch_overview(db_session, admin, generate_uuid())


class TestTrainerDashboard:

    @pytest.mark.asyncio
    async def test_stats_cover_taught_courses(self, db_session, trainer_user, cs24):
        course_id = (await db_session.scalars(select(CourseEnrollment.course_id))).first()
        student_id = (await db_session.scalars(select(CourseEnrollment.student_id))).first()
        db_session.add(Assignment(
            id=generate_uuid(), title="Joins", description="Practice", course_id=course_id,
            due_date=datetime.utcnow() + timedelta(days=3), total_points=20, resources=[],
            submissions=[Submission(
                id=generate_uuid(), student_id=student_id, status=SubmissionStatus.SUBMITTED, download_history=[],
            )],
        ))
        await db_session.commit()
        principal = await principal_for(db_session, trainer_user)

        dashboard = await trainer_dashboard(db_session, principal)

        assert dashboard["stats"] == {
            "totalCourses": 2, "totalBatches": 1, "totalStudents": 5, "pendingGrading": 1,
        }
        assert all(len(c["students"]) == 5 for c in dashboard["courses"])
        assert dashboard["upcomingAssignments"][0]["batchId"] == cs24.id
        assert dashboard["recentSubmissions"][0]["student"]["id"] == student_id

    @pytest.mark.asyncio
    async def test_other_batch_filter_forbidden(self, db_session, trainer_user, cs24):
        other = await make_batch(db_session)
        principal = await principal_for(db_session, trainer_user)

        with pytest.raises(AuthorizationError):
            await trainer_dashboard(db_session, principal, batch_id=other.id)

    @pytest.mark.asyncio
    async def test_only_trainers(self, db_session, admin_user):
        principal = await principal_for(db_session, admin_user)

        with pytest.raises(AuthorizationError):
            await trainer_dashboard(db_session, principal)

    @pytest.mark.asyncio
    async def test_trainer_batches(self, db_session, trainer_user, cs24):
        principal = await principal_for(db_session, trainer_user)

        batches = await trainer_batches(db_session, principal)

        assert [b["code"] for b in batches] == ["CS24"]
        assert batches[0]["studentCount"] == 5
        assert batches[0]["courseCount"] == 2


class TestSystemViews:

    @pytest.mark.asyncio
    async def test_overview_counts(self, db_session, admin_user, cs24):
        principal = await principal_for(db_session, admin_user)

        overview = await system_overview(db_session, principal)

        assert overview["users"]["byRole"]["student"]["total"] == 5
        assert overview["users"]["total"] == 7
        assert overview["batches"]["total"] == 1
        assert overview["courses"]["total"] == 2
        assert overview["assignments"]["total"] == 0

    @pytest.mark.asyncio
    async def test_overview_denied_to_trainer(self, db_session, trainer_user):
        principal = await principal_for(db_session, trainer_user)

        with pytest.raises(AuthorizationError):
            await system_overview(db_session, principal)

    @pytest.mark.asyncio
    async def test_health_is_superadmin_only(self, db_session, admin_user, superadmin_user):
        admin = await principal_for(db_session, admin_user)
        superadmin = await principal_for(db_session, superadmin_user)

        with pytest.raises(AuthorizationError):
            await system_health(db_session, admin)

        health = await system_health(db_session, superadmin)
        assert health["database"]["dialect"] == "sqlite"
        assert health["database"]["tables"]["users"] == 2


class TestFacultyViews:

    @pytest.mark.asyncio
    async def test_college_overview(self, db_session, faculty_user, cs24, trainer_user):
        outsider_batch = await make_batch(db_session)
        await make_student(db_session, outsider_batch, college="Arts College")
        students = (await db_session.scalars(select(CourseEnrollment.student_id))).all()
        course_id = (await db_session.scalars(select(CourseEnrollment.course_id))).first()
        db_session.add(Attendance(
            id=generate_uuid(), student_id=students[0], course_id=course_id, date=date(2024, 2, 1),
            status=AttendanceStatus.PRESENT, marked_by=trainer_user.id, college="Engineering College",
        ))
        db_session.add(Attendance(
            id=generate_uuid(), student_id=students[0], course_id=course_id, date=date(2024, 2, 2),
            status=AttendanceStatus.ABSENT, marked_by=trainer_user.id, college="Engineering College",
        ))
        await db_session.commit()
        principal = await principal_for(db_session, faculty_user)

        overview = await college_overview(db_session, principal)

        assert overview["totalStudents"] == 5
        assert overview["departments"] == {"CSE": 5}
        assert overview["attendance"]["totalDays"] == 2
        assert overview["attendancePercentage"] == 50

    @pytest.mark.asyncio
    async def test_department_performance_other_college_forbidden(self, db_session, faculty_user):
        principal = await principal_for(db_session, faculty_user)

        with pytest.raises(AuthorizationError):
            await department_performance(db_session, principal, college="Arts College")

    @pytest.mark.asyncio
    async def test_department_performance_bad_range(self, db_session, faculty_user):
        principal = await principal_for(db_session, faculty_user)

        with pytest.raises(ValidationError) as exc_info:
            await department_performance(
                db_session, principal, start=date(2024, 3, 1), end=date(2024, 2, 1),
            )

        assert exc_info.value.field == "endDate"

    @pytest.mark.asyncio
    async def test_bad_range_rejected_before_aggregation(self, db_session, faculty_user, monkeypatch):
        principal = await principal_for(db_session, faculty_user)
        calls = []

        async def record(awaitable, operation, timeout=None):
            calls.append(operation)
            awaitable.close()

        monkeypatch.setattr("edutrack.services.aggregation.faculty.run_bounded", record)

        with pytest.raises(ValidationError):
            await department_performance(
                db_session, principal, start=date(2024, 3, 1), end=date(2024, 2, 1),
            )

        assert calls == []

    @pytest.mark.asyncio
    async def test_semester_breakdown_follows_college_setting(self, db_session, faculty_user, cs24):
        principal = await principal_for(db_session, faculty_user)

        plain = await department_performance(db_session, principal, department="CSE")
        assert "semesters" not in plain
        assert len(plain["students"]) == 5

        db_session.add(College(id=generate_uuid(), name="Engineering College", code="ENG",
                               semester_breakdown_enabled=True))
        await db_session.commit()

        detailed = await department_performance(db_session, principal, department="CSE")
        assert [s["semester"] for s in detailed["semesters"]] == [3]
