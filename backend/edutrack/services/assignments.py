"""
Assignments, trainer resources and student submissions.

Submission lifecycle: submitted | late -> graded. Grading may be repeated;
the latest grade and feedback win. Only the course instructor or a trainer
assigned to the course's batch may grade, whatever their role.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from edutrack.core.database import transaction
from edutrack.core.exceptions import AuthorizationError, ResourceNotFoundError, ValidationError
from edutrack.core.logging_config import logger
from edutrack.core.types import generate_uuid
from edutrack.models import (
    User, UserRole, Assignment, AssignmentResource, BatchTrainer, Course, ResourceType,
    Submission, SubmissionDownload, SubmissionStatus,
)
from edutrack.modules.auth import Action, Principal, require_roles
from edutrack.modules.auth.scope import conceal, load_assignment, load_course
from edutrack.schemas.academic import AssignmentCreate, SubmissionGrade
from edutrack.services.storage import LocalFileStorage, StoredFile

STAFF_ROLES = (UserRole.TRAINER, UserRole.ADMIN, UserRole.SUPERADMIN)


async def is_course_instructor(db: AsyncSession, user_id: str, course: Course) -> bool:
    """Course instructor, or a trainer assigned to the course's batch"""
    if course.instructor_id == user_id:
        return True
    if not course.batch_id:
        return False
    link = await db.scalar(
        select(BatchTrainer.id).where(
            BatchTrainer.batch_id == course.batch_id, BatchTrainer.trainer_id == user_id
        )
    )
    return link is not None


def submission_status(submitted_at: datetime, due_date: datetime) -> SubmissionStatus:
    return SubmissionStatus.LATE if submitted_at > due_date else SubmissionStatus.SUBMITTED


def serialize_resource(resource: AssignmentResource) -> Dict[str, Any]:
    return {
        "id": resource.id,
        "type": resource.type.value,
        "filename": resource.filename,
        "mimetype": resource.mimetype,
        "size": resource.size,
        "uploadedBy": resource.uploaded_by,
        "uploadedAt": resource.uploaded_at,
        "downloadCount": resource.download_count,
        "lastDownloadedAt": resource.last_downloaded_at,
    }


def serialize_submission(submission: Submission, student: Optional[User] = None) -> Dict[str, Any]:
    data = {
        "id": submission.id,
        "assignmentId": submission.assignment_id,
        "studentId": submission.student_id,
        "submittedAt": submission.submitted_at,
        "file": {"filename": submission.filename} if submission.file_key else None,
        "grade": submission.grade,
        "feedback": submission.feedback,
        "status": submission.status.value,
        "gradedAt": submission.graded_at,
        "gradedBy": submission.graded_by,
        "downloadedResources": [entry.resource_id for entry in submission.download_history],
    }
    if student is not None:
        data["student"] = {
            "id": student.id,
            "name": student.full_name,
            "email": student.email,
            "username": student.username,
        }
    return data


def serialize_assignment(assignment: Assignment, include_submissions: bool = False) -> Dict[str, Any]:
    data = {
        "id": assignment.id,
        "title": assignment.title,
        "description": assignment.description,
        "courseId": assignment.course_id,
        "dueDate": assignment.due_date,
        "totalPoints": assignment.total_points,
        "allowedResourceTypes": assignment.allowed_resource_types or [],
        "createdBy": assignment.created_by,
        "createdAt": assignment.created_at,
        "resourceCount": len(assignment.resources),
        "submissionCount": len(assignment.submissions),
    }
    if include_submissions:
        data["submissions"] = [serialize_submission(s) for s in assignment.submissions]
    return data


class AssignmentService:
    """Assignment authoring, resource distribution, submission and grading"""

    def __init__(self, db: AsyncSession, storage: Optional[LocalFileStorage] = None):
        self.db = db
        self.storage = storage

    async def _require_instructor(self, principal: Principal, course: Course) -> None:
        if not await is_course_instructor(self.db, principal.id, course):
            logger.warning(
                f"{principal.id} is not an instructor of course {course.id}",
                extra={"event_type": "access_denied", "principal_id": principal.id, "target_id": course.id},
            )
            raise AuthorizationError("Only the course instructor can perform this action")

    # =====================================================
    # ASSIGNMENTS
    # =====================================================

    async def create_assignment(self, principal: Principal, course_id: str,
                                payload: AssignmentCreate) -> Dict[str, Any]:
        require_roles(principal, *STAFF_ROLES)
        course = await load_course(self.db, principal, course_id, Action.CREATE)
        if not principal.is_global:
            await self._require_instructor(principal, course)

        async with transaction(self.db, "create_assignment"):
            assignment = Assignment(
                id=generate_uuid(),
                title=payload.title.strip(),
                description=payload.description,
                course_id=course.id,
                due_date=payload.due_date,
                total_points=payload.total_points,
                allowed_resource_types=[t.value for t in payload.allowed_resource_types],
                created_by=principal.id,
                resources=[],
                submissions=[],
            )
            self.db.add(assignment)
            await self.db.flush()
            data = serialize_assignment(assignment)
        logger.info(f"Assignment {data['id']} created for course {course.id}")
        return data

    async def list_course_assignments(self, principal: Principal, course_id: str) -> List[Dict[str, Any]]:
        course = await load_course(self.db, principal, course_id)
        assignments = (await self.db.scalars(
            select(Assignment).where(Assignment.course_id == course.id).order_by(Assignment.due_date)
        )).all()
        return [serialize_assignment(a) for a in assignments]

    async def get_assignment(self, principal: Principal, assignment_id: str) -> Dict[str, Any]:
        assignment, _ = await load_assignment(self.db, principal, assignment_id)
        data = serialize_assignment(assignment)
        if principal.role == UserRole.STUDENT:
            own = assignment.submission_for(principal.id)
            data["mySubmission"] = serialize_submission(own) if own else None
        return data

    # =====================================================
    # RESOURCES
    # =====================================================

    async def upload_resource(self, principal: Principal, assignment_id: str,
                              resource_type: ResourceType, file: StoredFile) -> Dict[str, Any]:
        require_roles(principal, *STAFF_ROLES)
        assignment, course = await load_assignment(self.db, principal, assignment_id, Action.CREATE)
        if not principal.is_global:
            await self._require_instructor(principal, course)
        if resource_type.value not in (assignment.allowed_resource_types or []):
            raise ValidationError(
                f"Resource type '{resource_type.value}' is not allowed for this assignment", field="type"
            )

        async with transaction(self.db, "upload_assignment_resource"):
            resource = AssignmentResource(
                id=generate_uuid(),
                type=resource_type,
                file_key=file.key,
                filename=file.filename,
                mimetype=file.mimetype,
                size=file.size,
                uploaded_by=principal.id,
                uploaded_at=datetime.utcnow(),
                download_count=0,
            )
            assignment.resources.append(resource)
            await self.db.flush()
            return serialize_resource(resource)

    async def list_resources(self, principal: Principal, assignment_id: str) -> Dict[str, Any]:
        assignment, _ = await load_assignment(self.db, principal, assignment_id)
        resources = (await self.db.scalars(
            select(AssignmentResource)
            .where(AssignmentResource.assignment_id == assignment.id)
            .order_by(AssignmentResource.uploaded_at)
        )).all()
        return {
            "resources": [serialize_resource(r) for r in resources],
            "totalResources": len(resources),
            "totalDownloads": sum(r.download_count for r in resources),
        }

    async def download_resource(self, principal: Principal, assignment_id: str,
                                resource_id: str) -> AssignmentResource:
        """Count a download and return the resource for streaming"""
        assignment, _ = await load_assignment(self.db, principal, assignment_id)
        resource = next((r for r in assignment.resources if r.id == resource_id), None)
        if resource is None:
            raise conceal(principal, ResourceNotFoundError("Resource", resource_id))

        async with transaction(self.db, "download_assignment_resource"):
            now = datetime.utcnow()
            resource.download_count = (resource.download_count or 0) + 1
            resource.last_downloaded_at = now
            if principal.role == UserRole.STUDENT:
                submission = assignment.submission_for(principal.id)
                if submission is not None and not submission.has_downloaded(resource.id):
                    submission.download_history.append(
                        SubmissionDownload(id=generate_uuid(), resource_id=resource.id, downloaded_at=now)
                    )
            await self.db.flush()
        return resource

    # =====================================================
    # SUBMISSIONS
    # =====================================================

    async def submit(self, principal: Principal, assignment_id: str, file: StoredFile) -> Dict[str, Any]:
        require_roles(principal, UserRole.STUDENT)
        assignment, _ = await load_assignment(self.db, principal, assignment_id, Action.SUBMIT)

        submission = assignment.submission_for(principal.id)
        if submission is not None and submission.status == SubmissionStatus.GRADED:
            raise ValidationError("Assignment has already been graded", field="file")

        replaced_key = None
        async with transaction(self.db, "submit_assignment"):
            now = datetime.utcnow()
            if submission is not None:
                replaced_key = submission.file_key
            else:
                submission = Submission(id=generate_uuid(), student_id=principal.id, download_history=[])
                assignment.submissions.append(submission)
            submission.submitted_at = now
            submission.file_key = file.key
            submission.filename = file.filename
            submission.status = submission_status(now, assignment.due_date)
            await self.db.flush()
            data = serialize_submission(submission)

        if replaced_key and self.storage is not None:
            await self.storage.delete(replaced_key)
        logger.info(
            f"Submission for assignment {assignment_id} by {principal.id}: {data['status']}",
            extra={"event_type": "assignment_submitted", "assignment_id": assignment_id},
        )
        return data

    async def list_submissions(self, principal: Principal, assignment_id: str) -> Dict[str, Any]:
        require_roles(principal, *STAFF_ROLES)
        assignment, _ = await load_assignment(self.db, principal, assignment_id)
        submissions = (await self.db.scalars(
            select(Submission).where(Submission.assignment_id == assignment.id).order_by(Submission.submitted_at.desc())
        )).all()
        students = {}
        if submissions:
            rows = await self.db.scalars(select(User).where(User.id.in_({s.student_id for s in submissions})))
            students = {u.id: u for u in rows.all()}
        graded = [s for s in submissions if s.status == SubmissionStatus.GRADED]
        return {
            "assignment": serialize_assignment(assignment),
            "submissions": [serialize_submission(s, students.get(s.student_id)) for s in submissions],
            "totalSubmissions": len(submissions),
            "gradedCount": len(graded),
            "lateCount": sum(1 for s in submissions if s.status == SubmissionStatus.LATE),
        }

    async def grade(self, principal: Principal, assignment_id: str, submission_id: str,
                    payload: SubmissionGrade) -> Dict[str, Any]:
        assignment, course = await load_assignment(self.db, principal, assignment_id, Action.GRADE)
        submission = next((s for s in assignment.submissions if s.id == submission_id), None)
        if submission is None:
            raise conceal(principal, ResourceNotFoundError("Submission", submission_id))
        await self._require_instructor(principal, course)
        if payload.grade > assignment.total_points:
            raise ValidationError(
                f"Grade must be between 0 and {assignment.total_points}", field="grade"
            )

        async with transaction(self.db, "grade_submission"):
            submission.grade = payload.grade
            submission.feedback = payload.feedback
            submission.status = SubmissionStatus.GRADED
            submission.graded_at = datetime.utcnow()
            submission.graded_by = principal.id
            await self.db.flush()
            data = serialize_submission(submission)
        logger.info(f"Submission {submission_id} graded {payload.grade}/{assignment.total_points}")
        return data
