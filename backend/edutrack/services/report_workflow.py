"""
Report lifecycle.

    draft -> submitted -> reviewed -> approved
                                   -> rejected
                                   -> needs_revision -> submitted

Every status change, including the initial one, appends exactly one entry
to the report's status history. History and comments are append-only.
A reviewer's comment on a submitted report moves it to reviewed.
"""
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from edutrack.core.database import transaction
from edutrack.core.exceptions import (
    AuthorizationError, InvalidTransitionError, ResourceNotFoundError, ValidationError,
)
from edutrack.core.logging_config import logger
from edutrack.core.responses import Pagination
from edutrack.core.types import generate_uuid, is_valid_uuid
from edutrack.models import (
    User, UserRole, Student, BatchStudent, Report, ReportStatus, ReportStatusChange, ReportComment,
)
from edutrack.modules.auth import Action, Principal, authorize
from edutrack.modules.auth.scope import conceal, load_report, load_student_profile, student_target
from edutrack.schemas.academic import ReportFields
from edutrack.services.storage import StoredFile

TRANSITIONS: Dict[ReportStatus, frozenset] = {
    ReportStatus.DRAFT: frozenset({ReportStatus.SUBMITTED}),
    ReportStatus.SUBMITTED: frozenset({ReportStatus.REVIEWED}),
    ReportStatus.REVIEWED: frozenset({
        ReportStatus.APPROVED, ReportStatus.REJECTED, ReportStatus.NEEDS_REVISION,
    }),
    ReportStatus.NEEDS_REVISION: frozenset({ReportStatus.SUBMITTED}),
    ReportStatus.APPROVED: frozenset(),
    ReportStatus.REJECTED: frozenset(),
}

# Steps the report's own student may take
OWNER_TRANSITIONS = frozenset({
    (ReportStatus.DRAFT, ReportStatus.SUBMITTED),
    (ReportStatus.NEEDS_REVISION, ReportStatus.SUBMITTED),
})

TERMINAL_STATUSES = frozenset({ReportStatus.APPROVED, ReportStatus.REJECTED})


def can_transition(current: ReportStatus, requested: ReportStatus) -> bool:
    return requested in TRANSITIONS[current]


def append_history(report: Report, status: ReportStatus, actor_id: str,
                   comment: Optional[str] = None) -> ReportStatusChange:
    entry = ReportStatusChange(
        id=generate_uuid(),
        sequence=len(report.status_history) + 1,
        status=status,
        changed_by=actor_id,
        changed_at=datetime.utcnow(),
        comment=comment,
    )
    report.status_history.append(entry)
    return entry


def check_transition(current: ReportStatus, requested: ReportStatus, owner: bool = False) -> None:
    if not can_transition(current, requested):
        raise InvalidTransitionError("report", current.value, requested.value)
    if owner and (current, requested) not in OWNER_TRANSITIONS:
        raise AuthorizationError("Students may only submit their own reports")


def apply_transition(report: Report, requested: ReportStatus, actor_id: str,
                     comment: Optional[str] = None, owner: bool = False) -> ReportStatusChange:
    """Move ``report`` to ``requested`` or raise InvalidTransitionError"""
    check_transition(report.status, requested, owner)
    report.status = requested
    report.updated_at = datetime.utcnow()
    return append_history(report, requested, actor_id, comment)


async def _display_names(db: AsyncSession, user_ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
    ids = {uid for uid in user_ids if uid}
    if not ids:
        return {}
    rows = await db.execute(
        select(User.id, User.first_name, User.last_name, User.role).where(User.id.in_(ids))
    )
    return {
        row.id: {"id": row.id, "name": f"{row.first_name} {row.last_name}", "role": row.role.value}
        for row in rows.all()
    }


def report_summary(report: Report, student: Optional[Student] = None,
                   user: Optional[User] = None) -> Dict[str, Any]:
    data = {
        "id": report.id,
        "title": report.title,
        "description": report.description,
        "semester": report.semester,
        "academicYear": report.academic_year,
        "status": report.status.value,
        "submissionDate": report.submission_date,
        "updatedAt": report.updated_at,
        "createdBy": report.created_by,
        "studentId": report.student_id,
        "file": {
            "filename": report.filename,
            "mimetype": report.mimetype,
            "size": report.size,
            "url": f"/api/v1/reports/{report.id}/download",
        } if report.file_key else None,
    }
    if student is not None:
        data["student"] = {
            "id": student.id,
            "userId": student.user_id,
            "rollNumber": student.roll_number,
            "department": student.department,
            "name": user.full_name if user else None,
        }
    return data


class ReportWorkflowService:
    """Report creation, listing, status changes and comments"""

    def __init__(self, db: AsyncSession):
        self.db = db

    # =====================================================
    # CREATE
    # =====================================================

    async def create_for_student(self, principal: Principal, student_profile_id: str,
                                 fields: ReportFields, file: Optional[StoredFile]) -> Dict[str, Any]:
        """Faculty, trainer or admin files a report for a student"""
        if principal.role == UserRole.STUDENT:
            raise AuthorizationError()
        user, student = await load_student_profile(self.db, principal, student_profile_id, Action.CREATE)
        if file is None:
            raise ValidationError("Report file is required", field="reportFile")
        return await self._create(principal, student, user, fields, file, ReportStatus.SUBMITTED)

    async def create_own(self, principal: Principal, fields: ReportFields,
                         file: Optional[StoredFile], draft: bool = False) -> Dict[str, Any]:
        """A student files their own report, optionally as a draft"""
        if principal.role != UserRole.STUDENT or not principal.student_profile_id:
            raise AuthorizationError("Only students can submit their own reports")
        user, student = await load_student_profile(
            self.db, principal, principal.student_profile_id, Action.SUBMIT
        )
        if file is None and not draft:
            raise ValidationError("Report file is required", field="reportFile")
        status = ReportStatus.DRAFT if draft else ReportStatus.SUBMITTED
        return await self._create(principal, student, user, fields, file, status)

    async def _create(self, principal: Principal, student: Student, user: User, fields: ReportFields,
                      file: Optional[StoredFile], status: ReportStatus) -> Dict[str, Any]:
        async with transaction(self.db, "create_report"):
            report = Report(
                id=generate_uuid(),
                student_id=student.id,
                title=fields.title.strip(),
                description=fields.description.strip(),
                semester=fields.semester,
                academic_year=fields.academic_year,
                file_key=file.key if file else None,
                filename=file.filename if file else None,
                mimetype=file.mimetype if file else None,
                size=file.size if file else None,
                status=status,
                submission_date=datetime.utcnow(),
                created_by=principal.id,
                status_history=[],
                comments=[],
            )
            append_history(report, status, principal.id, "Report created")
            self.db.add(report)
            await self.db.flush()
            data = report_summary(report, student, user)
        logger.info(
            f"Report {data['id']} created with status {status.value}",
            extra={"event_type": "report_created", "report_id": data["id"], "student_profile_id": student.id},
        )
        return data

    # =====================================================
    # READ
    # =====================================================

    def _scope_condition(self, principal: Principal):
        """Restrict a Report query to what the principal may see"""
        if principal.is_global:
            return None
        if principal.role == UserRole.STUDENT:
            return Report.student_id == (principal.student_profile_id or "")
        if principal.role == UserRole.TRAINER:
            members = select(BatchStudent.student_id).where(BatchStudent.batch_id.in_(principal.batch_ids or [""]))
            return Report.student_id.in_(
                select(Student.id).where(or_(
                    Student.user_id.in_(members),
                    Student.batch_id.in_(principal.batch_ids or [""]),
                ))
            )
        if principal.role == UserRole.FACULTY:
            conditions = [Student.assigned_faculty_id == principal.id]
            if principal.college:
                conditions.append(Student.college == principal.college)
            return Report.student_id.in_(select(Student.id).where(or_(*conditions)))
        return Report.id.is_(None)

    async def list_reports(self, principal: Principal, pagination: Pagination,
                           status: Optional[ReportStatus] = None,
                           student_id: Optional[str] = None) -> Tuple[List[Dict[str, Any]], int]:
        query = select(Report)
        scope = self._scope_condition(principal)
        if scope is not None:
            query = query.where(scope)
        if status is not None:
            query = query.where(Report.status == status)
        if student_id:
            if not is_valid_uuid(student_id):
                raise ValidationError("Student ID is invalid", field="studentId")
            query = query.where(Report.student_id == student_id)

        total = await self.db.scalar(select(func.count()).select_from(query.subquery()))
        reports = (await self.db.scalars(
            query.order_by(Report.submission_date.desc()).offset(pagination.offset).limit(pagination.limit)
        )).all()

        students = {}
        users = {}
        profile_ids = {r.student_id for r in reports}
        if profile_ids:
            for s in (await self.db.scalars(select(Student).where(Student.id.in_(profile_ids)))).all():
                students[s.id] = s
            user_ids = {s.user_id for s in students.values()}
            for u in (await self.db.scalars(select(User).where(User.id.in_(user_ids)))).all():
                users[u.id] = u

        items = []
        for report in reports:
            student = students.get(report.student_id)
            items.append(report_summary(report, student, users.get(student.user_id) if student else None))
        return items, total

    async def get_report(self, principal: Principal, report_id: str) -> Dict[str, Any]:
        report, student, user = await load_report(self.db, principal, report_id)
        return await self._detail(report, student, user)

    async def _detail(self, report: Report, student: Student, user: User) -> Dict[str, Any]:
        names = await _display_names(
            self.db,
            [h.changed_by for h in report.status_history] + [c.user_id for c in report.comments],
        )
        data = report_summary(report, student, user)
        data["statusHistory"] = [
            {
                "status": h.status.value,
                "changedBy": names.get(h.changed_by, {"id": h.changed_by, "name": None}),
                "changedAt": h.changed_at,
                "comment": h.comment,
            }
            for h in report.status_history
        ]
        data["comments"] = [
            {
                "id": c.id,
                "user": names.get(c.user_id, {"id": c.user_id, "name": None}),
                "text": c.text,
                "createdAt": c.created_at,
                "updatedAt": c.updated_at,
            }
            for c in report.comments
        ]
        return data

    async def get_report_file(self, principal: Principal, report_id: str) -> Report:
        report, _, _ = await load_report(self.db, principal, report_id)
        if not report.file_key:
            raise conceal(principal, ResourceNotFoundError("Report file", report_id))
        return report

    # =====================================================
    # STATUS & COMMENTS
    # =====================================================

    async def change_status(self, principal: Principal, report_id: str, requested: ReportStatus,
                            comment: Optional[str] = None) -> Dict[str, Any]:
        is_student = principal.role == UserRole.STUDENT
        action = Action.SUBMIT if is_student else Action.REVIEW
        report, student, user = await load_report(self.db, principal, report_id, action)
        previous = report.status.value
        check_transition(report.status, requested, owner=is_student)

        async with transaction(self.db, "change_report_status"):
            apply_transition(report, requested, principal.id, comment, owner=is_student)
            await self.db.flush()

        logger.info(
            f"Report {report.id}: {previous} -> {requested.value}",
            extra={"event_type": "report_status_changed", "report_id": report.id,
                   "from_status": previous, "to_status": requested.value},
        )
        return await self._detail(report, student, user)

    async def add_comment(self, principal: Principal, report_id: str, text: str) -> Dict[str, Any]:
        report, student, user = await load_report(self.db, principal, report_id, Action.COMMENT)

        async with transaction(self.db, "add_report_comment"):
            now = datetime.utcnow()
            report.comments.append(ReportComment(
                id=generate_uuid(), user_id=principal.id, text=text, created_at=now,
            ))
            # First reviewer touch
            if report.status == ReportStatus.SUBMITTED and principal.role != UserRole.STUDENT:
                apply_transition(report, ReportStatus.REVIEWED, principal.id, "Reviewed with comment")
            report.updated_at = now
            await self.db.flush()

        return await self._detail(report, student, user)


async def reports_by_semester(db: AsyncSession, student: Student) -> Dict[str, Any]:
    """A student's reports grouped by semester with status counts"""
    reports = (await db.scalars(
        select(Report).where(Report.student_id == student.id).order_by(Report.semester, Report.submission_date)
    )).all()

    semesters: Dict[int, Dict[str, Any]] = {}
    for report in reports:
        bucket = semesters.setdefault(report.semester, {"semester": report.semester, "reports": [], "statusCounts": {}})
        bucket["reports"].append(report_summary(report))
        counts = bucket["statusCounts"]
        counts[report.status.value] = counts.get(report.status.value, 0) + 1

    approved = sum(1 for r in reports if r.status == ReportStatus.APPROVED)
    return {
        "totalReports": len(reports),
        "approvedReports": approved,
        "semesters": [semesters[k] for k in sorted(semesters)],
    }
