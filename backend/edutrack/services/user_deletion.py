"""
Cascading user deletion.

Every role has a cleanup plan: an ordered list of named statements that
detach or remove the records referencing the user. The plan runs inside the
same transaction as the final ``DELETE FROM users``, so either every
reference is gone together with the account or nothing changed. Supporting
a new dependent table means adding a step here.
"""
from dataclasses import dataclass
from typing import Callable, Dict, List

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Executable

from edutrack.core.database import transaction
from edutrack.core.exceptions import AuthorizationError, ValidationError
from edutrack.core.logging_config import logger
from edutrack.models import (
    User, UserRole, Student, Batch, BatchStudent, BatchTrainer, Course, CourseEnrollment,
    Submission, SubmissionDownload, Attendance, Report, ReportStatusChange, ReportComment,
)
from edutrack.modules.auth import Action, Principal
from edutrack.modules.auth.scope import load_user


@dataclass(frozen=True)
class CleanupStep:
    name: str
    # (deleted user id, acting principal id) -> statement
    build: Callable[[str, str], Executable]


def _student_profile_ids(user_id: str):
    return select(Student.id).where(Student.user_id == user_id)


def _student_report_ids(user_id: str):
    return select(Report.id).where(Report.student_id.in_(_student_profile_ids(user_id)))


CLEANUP_PLAN: Dict[UserRole, List[CleanupStep]] = {
    UserRole.STUDENT: [
        CleanupStep("batch_students", lambda uid, _: delete(BatchStudent).where(BatchStudent.student_id == uid)),
        CleanupStep("course_enrollments",
                    lambda uid, _: delete(CourseEnrollment).where(CourseEnrollment.student_id == uid)),
        CleanupStep("submission_downloads", lambda uid, _: delete(SubmissionDownload).where(
            SubmissionDownload.submission_id.in_(select(Submission.id).where(Submission.student_id == uid))
        )),
        CleanupStep("submissions", lambda uid, _: delete(Submission).where(Submission.student_id == uid)),
        CleanupStep("attendance", lambda uid, _: delete(Attendance).where(Attendance.student_id == uid)),
        CleanupStep("report_status_history", lambda uid, _: delete(ReportStatusChange).where(
            ReportStatusChange.report_id.in_(_student_report_ids(uid))
        )),
        CleanupStep("report_comments", lambda uid, _: delete(ReportComment).where(
            ReportComment.report_id.in_(_student_report_ids(uid))
        )),
        CleanupStep("reports", lambda uid, _: delete(Report).where(
            Report.student_id.in_(_student_profile_ids(uid))
        )),
        CleanupStep("student_profile", lambda uid, _: delete(Student).where(Student.user_id == uid)),
    ],
    UserRole.TRAINER: [
        CleanupStep("batch_trainers", lambda uid, _: delete(BatchTrainer).where(BatchTrainer.trainer_id == uid)),
        CleanupStep("course_instructor", lambda uid, _: update(Course).where(
            Course.instructor_id == uid
        ).values(instructor_id=None)),
    ],
    UserRole.FACULTY: [
        CleanupStep("student_assigned_faculty", lambda uid, _: update(Student).where(
            Student.assigned_faculty_id == uid
        ).values(assigned_faculty_id=None)),
    ],
    UserRole.ADMIN: [
        CleanupStep("batch_created_by", lambda uid, actor: update(Batch).where(
            Batch.created_by == uid
        ).values(created_by=actor)),
    ],
}


async def run_cleanup_steps(db: AsyncSession, role: UserRole, user_id: str, actor_id: str) -> Dict[str, int]:
    """Execute the role's cleanup plan inside the caller's transaction"""
    affected: Dict[str, int] = {}
    for step in CLEANUP_PLAN.get(role, []):
        statement = step.build(user_id, actor_id).execution_options(synchronize_session=False)
        result = await db.execute(statement)
        affected[step.name] = result.rowcount or 0
    return affected


class UserDeletionService:
    """Deletes accounts together with every record that references them"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def delete_user(self, principal: Principal, user_id: str) -> Dict[str, object]:
        # Rejected before anything is read or written
        if user_id == principal.id:
            raise ValidationError("You cannot delete your own account", field="userId")

        user = await load_user(self.db, principal, user_id, Action.DELETE)
        if user.role == UserRole.SUPERADMIN:
            raise AuthorizationError("Cannot delete superadmin accounts")

        target_id = user.id
        role = user.role

        async with transaction(self.db, "delete_user"):
            affected = await run_cleanup_steps(self.db, role, target_id, principal.id)
            result = await self.db.execute(
                delete(User).where(User.id == target_id).execution_options(synchronize_session=False)
            )
            affected["users"] = result.rowcount or 0

        # Bulk statements bypass the identity map; drop stale instances
        self.db.expunge_all()

        logger.info(
            f"Deleted {role.value} {target_id}",
            extra={"event_type": "user_deleted", "target_user_id": target_id, "cleanup": affected},
        )
        return {"id": target_id, "role": role.value, "cleanup": affected}
