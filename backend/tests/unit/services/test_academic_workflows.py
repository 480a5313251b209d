"""
Unit Tests for attendance, assignments and the report workflow
"""
from datetime import date, datetime, timedelta

import pytest
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select, func

from conftest import make_batch, make_course, make_student, make_user, principal_for
from edutrack.core.exceptions import (
    AuthorizationError, ConflictError, InvalidTransitionError, ValidationError,
)
from edutrack.core.responses import Pagination
from edutrack.models import (
    Assignment, Attendance, AttendanceStatus, Batch, ReportStatus, ResourceType, Student, UserRole,
)
from edutrack.schemas.academic import (
    AssignmentCreate, AttendanceMark, BatchCreate, BatchUpdate, ReportFields, SubmissionGrade,
)
from edutrack.services.assignments import AssignmentService
from edutrack.services.attendance import AttendanceService
from edutrack.services.batches import BatchService
from edutrack.services.report_workflow import ReportWorkflowService
from edutrack.services.storage import StoredFile


def stored(area: str = "submissions", name: str = "work.pdf") -> StoredFile:
    return StoredFile(key=f"{area}/{name}", filename=name, path="", mimetype="application/pdf", size=128)


def report_fields(**overrides) -> ReportFields:
    data = {"title": "Lab report", "description": "Week 1 experiments", "semester": 3, "academicYear": "2024-2025"}
    data.update(overrides)
    return ReportFields.model_validate(data)


class TestAttendance:

    @pytest.mark.asyncio
    async def test_mark_then_duplicate_conflicts(self, db_session, trainer_user, student_user, course):
        principal = await principal_for(db_session, trainer_user)
        payload = AttendanceMark(
            student_id=student_user.id, course_id=course.id, date=date(2024, 2, 1), status=AttendanceStatus.PRESENT,
        )
        service = AttendanceService(db_session)

        record = await service.mark(principal, payload)
        assert record["status"] == "present"
        assert record["markedBy"] == trainer_user.id

        with pytest.raises(ConflictError) as exc_info:
            await service.mark(principal, payload)

        assert exc_info.value.field == "attendance"
        assert await db_session.scalar(select(func.count(Attendance.id))) == 1

    @pytest.mark.asyncio
    async def test_student_outside_course_batch_rejected(self, db_session, trainer_user, course):
        other_batch = await make_batch(db_session, trainers=[trainer_user])
        outsider = await make_student(db_session, other_batch)
        principal = await principal_for(db_session, trainer_user)
        payload = AttendanceMark(
            student_id=outsider.id, course_id=course.id, date=date(2024, 2, 1), status=AttendanceStatus.ABSENT,
        )

        with pytest.raises(ValidationError) as exc_info:
            await AttendanceService(db_session).mark(principal, payload)

        assert exc_info.value.field == "studentId"

    @pytest.mark.asyncio
    async def test_faculty_cannot_mark(self, db_session, faculty_user, student_user, course):
        principal = await principal_for(db_session, faculty_user)
        payload = AttendanceMark(
            student_id=student_user.id, course_id=course.id, date=date(2024, 2, 1), status=AttendanceStatus.PRESENT,
        )

        with pytest.raises(AuthorizationError):
            await AttendanceService(db_session).mark(principal, payload)

    @pytest.mark.asyncio
    async def test_monthly_sheets(self, db_session, trainer_user, batch, student_user, course):
        principal = await principal_for(db_session, trainer_user)
        service = AttendanceService(db_session)
        for day, status in ((1, AttendanceStatus.PRESENT), (2, AttendanceStatus.LATE), (3, AttendanceStatus.PRESENT)):
            await service.mark(principal, AttendanceMark(
                student_id=student_user.id, course_id=course.id, date=date(2024, 2, day), status=status,
            ))
        await service.mark(principal, AttendanceMark(
            student_id=student_user.id, course_id=course.id, date=date(2024, 3, 1), status=AttendanceStatus.ABSENT,
        ))

        sheet = await service.student_month(principal, student_user.id, 2024, 2)
        assert len(sheet["records"]) == 3
        assert sheet["summary"]["percentage"] == 67

        batch_sheet = await service.batch_month(principal, batch.id, 2024, 3)
        assert batch_sheet["summary"]["absent"] == 1
        assert batch_sheet["students"][0]["studentId"] == student_user.id


class TestAssignments:

    async def create(self, db_session, trainer_user, course, **overrides):
        data = {
            "title": "Loops",
            "description": "Practice problems",
            "dueDate": datetime.utcnow() + timedelta(days=7),
            "totalPoints": 10,
        }
        data.update(overrides)
        principal = await principal_for(db_session, trainer_user)
        return await AssignmentService(db_session).create_assignment(
            principal, course.id, AssignmentCreate.model_validate(data)
        )

    @pytest.mark.asyncio
    async def test_submit_and_grade(self, db_session, trainer_user, student_user, course):
        assignment = await self.create(db_session, trainer_user, course)
        student = await principal_for(db_session, student_user)
        trainer = await principal_for(db_session, trainer_user)
        service = AssignmentService(db_session)

        submission = await service.submit(student, assignment["id"], stored())
        assert submission["status"] == "submitted"

        graded = await service.grade(
            trainer, assignment["id"], submission["id"], SubmissionGrade(grade=8, feedback="Good")
        )
        assert graded["status"] == "graded"
        assert graded["grade"] == 8
        assert graded["gradedBy"] == trainer_user.id

        with pytest.raises(ValidationError) as exc_info:
            await service.submit(student, assignment["id"], stored(name="again.pdf"))
        assert exc_info.value.field == "file"

    @pytest.mark.asyncio
    async def test_past_due_submission_is_late(self, db_session, trainer_user, student_user, course):
        assignment = await self.create(db_session, trainer_user, course, dueDate=datetime.utcnow() - timedelta(days=1))
        student = await principal_for(db_session, student_user)

        submission = await AssignmentService(db_session).submit(student, assignment["id"], stored())

        assert submission["status"] == "late"

    @pytest.mark.asyncio
    async def test_grade_above_total_rejected(self, db_session, trainer_user, student_user, course):
        assignment = await self.create(db_session, trainer_user, course)
        service = AssignmentService(db_session)
        submission = await service.submit(await principal_for(db_session, student_user), assignment["id"], stored())

        with pytest.raises(ValidationError) as exc_info:
            await service.grade(
                await principal_for(db_session, trainer_user), assignment["id"], submission["id"],
                SubmissionGrade(grade=11),
            )

        assert exc_info.value.field == "grade"

    @pytest.mark.asyncio
    async def test_non_instructor_admin_cannot_grade(self, db_session, admin_user, trainer_user, student_user, course):
        assignment = await self.create(db_session, trainer_user, course)
        service = AssignmentService(db_session)
        submission = await service.submit(await principal_for(db_session, student_user), assignment["id"], stored())

        with pytest.raises(AuthorizationError):
            await service.grade(
                await principal_for(db_session, admin_user), assignment["id"], submission["id"],
                SubmissionGrade(grade=5),
            )

    @pytest.mark.asyncio
    async def test_trainer_of_other_batch_cannot_create(self, db_session, course):
        outsider = await make_user(db_session, UserRole.TRAINER)

        with pytest.raises(AuthorizationError):
            await self.create(db_session, outsider, course)

    @pytest.mark.asyncio
    async def test_resource_type_must_be_allowed(self, db_session, trainer_user, course):
        assignment = await self.create(db_session, trainer_user, course, allowedResourceTypes=["notes"])
        principal = await principal_for(db_session, trainer_user)

        with pytest.raises(ValidationError) as exc_info:
            await AssignmentService(db_session).upload_resource(
                principal, assignment["id"], ResourceType.PPT, stored("resources", "slides.pptx")
            )

        assert exc_info.value.field == "type"

    @pytest.mark.asyncio
    async def test_download_recorded_once_after_submission(self, db_session, trainer_user, student_user, course):
        assignment = await self.create(db_session, trainer_user, course)
        service = AssignmentService(db_session)
        resource = await service.upload_resource(
            await principal_for(db_session, trainer_user), assignment["id"], ResourceType.NOTES,
            stored("resources", "notes.pdf"),
        )
        student = await principal_for(db_session, student_user)

        # No submission yet: counted but not recorded
        await service.download_resource(student, assignment["id"], resource["id"])
        await service.submit(student, assignment["id"], stored())
        await service.download_resource(student, assignment["id"], resource["id"])
        await service.download_resource(student, assignment["id"], resource["id"])

        listing = await service.list_resources(student, assignment["id"])
        assert listing["totalDownloads"] == 3
        detail = await service.get_assignment(student, assignment["id"])
        assert detail["mySubmission"]["downloadedResources"] == [resource["id"]]


class TestReportWorkflow:

    @pytest.mark.asyncio
    async def test_draft_through_approval(self, db_session, faculty_user, student_user):
        student = await principal_for(db_session, student_user)
        faculty = await principal_for(db_session, faculty_user)
        service = ReportWorkflowService(db_session)

        report = await service.create_own(student, report_fields(), None, draft=True)
        assert report["status"] == "draft"

        with pytest.raises(InvalidTransitionError):
            await service.change_status(faculty, report["id"], ReportStatus.APPROVED)

        await service.change_status(student, report["id"], ReportStatus.SUBMITTED)
        commented = await service.add_comment(faculty, report["id"], "Please add references")
        assert commented["status"] == "reviewed"

        approved = await service.change_status(faculty, report["id"], ReportStatus.APPROVED, "Well done")
        assert approved["status"] == "approved"
        assert [h["status"] for h in approved["statusHistory"]] == ["draft", "submitted", "reviewed", "approved"]
        assert approved["comments"][0]["text"] == "Please add references"
        assert approved["comments"][0]["user"]["id"] == faculty_user.id

    @pytest.mark.asyncio
    async def test_submitted_report_requires_file(self, db_session, student_user):
        student = await principal_for(db_session, student_user)

        with pytest.raises(ValidationError) as exc_info:
            await ReportWorkflowService(db_session).create_own(student, report_fields(), None)

        assert exc_info.value.field == "reportFile"

    @pytest.mark.asyncio
    async def test_student_cannot_approve_own_report(self, db_session, faculty_user, student_user):
        student = await principal_for(db_session, student_user)
        service = ReportWorkflowService(db_session)
        report = await service.create_own(student, report_fields(), stored("reports", "lab.pdf"))
        await service.add_comment(await principal_for(db_session, faculty_user), report["id"], "Checked")

        with pytest.raises(AuthorizationError):
            await service.change_status(student, report["id"], ReportStatus.APPROVED)

    @pytest.mark.asyncio
    async def test_student_comment_does_not_advance(self, db_session, student_user):
        student = await principal_for(db_session, student_user)
        service = ReportWorkflowService(db_session)
        report = await service.create_own(student, report_fields(), stored("reports", "lab.pdf"))

        detail = await service.add_comment(student, report["id"], "Uploaded the final version")

        assert detail["status"] == "submitted"
        assert len(detail["statusHistory"]) == 1

    @pytest.mark.asyncio
    async def test_listing_is_scoped(self, db_session, faculty_user, student_user, batch):
        other = await make_student(db_session, batch)
        service = ReportWorkflowService(db_session)
        await service.create_own(await principal_for(db_session, student_user), report_fields(), stored("reports", "a.pdf"))
        await service.create_own(await principal_for(db_session, other), report_fields(), stored("reports", "b.pdf"))
        outside = await make_student(db_session, await make_batch(db_session), college="Arts College")
        await service.create_own(await principal_for(db_session, outside), report_fields(), stored("reports", "c.pdf"))

        own, own_total = await service.list_reports(await principal_for(db_session, student_user), Pagination())
        college, college_total = await service.list_reports(await principal_for(db_session, faculty_user), Pagination())

        assert own_total == 1
        assert own[0]["student"]["userId"] == student_user.id
        assert college_total == 2

    @pytest.mark.asyncio
    async def test_faculty_files_report_for_student(self, db_session, faculty_user, student_user):
        profile = await db_session.scalar(select(Student).where(Student.user_id == student_user.id))
        faculty = await principal_for(db_session, faculty_user)

        report = await ReportWorkflowService(db_session).create_for_student(
            faculty, profile.id, report_fields(), stored("reports", "lab.pdf")
        )

        assert report["status"] == "submitted"
        assert report["createdBy"] == faculty_user.id
        assert report["file"]["url"].endswith(f"/reports/{report['id']}/download")


class TestDateNormalization:

    def test_batch_dates_converted_to_naive_utc(self):
        payload = BatchCreate.model_validate({
            "name": "Computer Science 2024", "code": "cs24",
            "startDate": "2024-01-01T00:00:00Z", "endDate": "2024-06-01T05:30:00+05:30",
        })

        assert payload.start_date == datetime(2024, 1, 1)
        assert payload.end_date == datetime(2024, 6, 1)
        assert payload.start_date.tzinfo is None
        assert payload.end_date.tzinfo is None

    def test_offset_end_before_naive_start_rejected(self):
        # 12:00+05:30 is 06:30 UTC, before the 10:00 start
        with pytest.raises(PydanticValidationError):
            BatchCreate.model_validate({
                "name": "Evening batch", "code": "EVE24",
                "startDate": "2024-01-01T10:00:00", "endDate": "2024-01-01T12:00:00+05:30",
            })

    @pytest.mark.asyncio
    async def test_create_batch_with_offset_dates(self, db_session, admin_user):
        principal = await principal_for(db_session, admin_user)
        payload = BatchCreate.model_validate({
            "name": "Computer Science 2024", "code": "cs24",
            "startDate": "2024-01-01T00:00:00+00:00", "endDate": "2024-06-01T00:00:00Z",
        })

        data = await BatchService(db_session).create_batch(principal, payload)

        assert data["code"] == "CS24"
        assert data["durationWeeks"] == 22
        stored_batch = await db_session.get(Batch, data["id"])
        assert stored_batch.end_date == datetime(2024, 6, 1)

    @pytest.mark.asyncio
    async def test_update_batch_with_offset_end_date(self, db_session, admin_user, batch):
        principal = await principal_for(db_session, admin_user)

        data = await BatchService(db_session).update_batch(
            principal, batch.id, BatchUpdate.model_validate({"endDate": "2030-06-01T00:00:00Z"})
        )

        assert data["endDate"] == datetime(2030, 6, 1)
        assert data["startDate"] == datetime(2024, 1, 1)

    @pytest.mark.asyncio
    async def test_update_batch_offset_end_before_start_rejected(self, db_session, admin_user, batch):
        principal = await principal_for(db_session, admin_user)

        with pytest.raises(ValidationError) as exc_info:
            await BatchService(db_session).update_batch(
                principal, batch.id, BatchUpdate.model_validate({"endDate": "2024-01-01T03:00:00+05:30"})
            )

        assert exc_info.value.field == "endDate"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("alias", ["startDate", "endDate"])
    async def test_update_batch_rejects_cleared_dates(self, db_session, admin_user, batch, alias):
        principal = await principal_for(db_session, admin_user)

        with pytest.raises(ValidationError) as exc_info:
            await BatchService(db_session).update_batch(principal, batch.id, BatchUpdate.model_validate({alias: None}))

        assert exc_info.value.field == alias
        assert batch.start_date == datetime(2024, 1, 1)
        assert batch.end_date == datetime(2024, 6, 1)

    @pytest.mark.asyncio
    async def test_assignment_due_date_converted_to_utc(self, db_session, trainer_user, student_user, course):
        principal = await principal_for(db_session, trainer_user)

        data = await AssignmentService(db_session).create_assignment(
            principal, course.id, AssignmentCreate.model_validate({
                "title": "Loops", "description": "Practice problems", "totalPoints": 10,
                "dueDate": "2030-01-01T10:00:00+05:30",
            })
        )

        assert data["dueDate"] == datetime(2030, 1, 1, 4, 30)
        assignment = await db_session.get(Assignment, data["id"])
        assert assignment.due_date == datetime(2030, 1, 1, 4, 30)
