"""
Attendance marking and monthly attendance sheets.

The monthly sheets are the pre-aggregated rows handed to the document
renderer: one row per marked day plus summary counts.
"""
import calendar
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from edutrack.core.database import transaction, run_bounded
from edutrack.core.exceptions import ConflictError, ValidationError
from edutrack.core.logging_config import logger
from edutrack.core.types import generate_uuid, is_valid_uuid
from edutrack.models import Attendance, AttendanceStatus, BatchStudent, Student, User, UserRole
from edutrack.modules.auth import Action, Principal, require_roles
from edutrack.modules.auth.scope import load_batch, load_course, load_student, student_batch_ids
from edutrack.schemas.academic import AttendanceMark
from edutrack.services.stats import percentage


def attendance_summary(statuses: Iterable[AttendanceStatus]) -> Dict[str, int]:
    """Histogram of statuses with the share of days present"""
    counts = {status.value: 0 for status in AttendanceStatus}
    total = 0
    for status in statuses:
        counts[status.value] += 1
        total += 1
    return {
        "totalDays": total,
        **counts,
        "percentage": percentage(counts[AttendanceStatus.PRESENT.value], total),
    }


def month_range(year: int, month: int) -> Tuple[date, date]:
    if not 1 <= month <= 12:
        raise ValidationError("Month must be between 1 and 12", field="month")
    if not 2000 <= year <= 2100:
        raise ValidationError("Year is out of range", field="year")
    return date(year, month, 1), date(year, month, calendar.monthrange(year, month)[1])


def serialize_attendance(record: Attendance) -> Dict[str, Any]:
    return {
        "id": record.id,
        "studentId": record.student_id,
        "courseId": record.course_id,
        "date": record.date,
        "status": record.status.value,
        "remarks": record.remarks,
        "markedBy": record.marked_by,
    }


def _sheet_row(record: Attendance) -> Dict[str, Any]:
    return {
        "date": record.date,
        "courseId": record.course_id,
        "status": record.status.value,
        "remarks": record.remarks or "",
    }


class AttendanceService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def mark(self, principal: Principal, payload: AttendanceMark) -> Dict[str, Any]:
        require_roles(principal, UserRole.TRAINER, UserRole.ADMIN, UserRole.SUPERADMIN)
        if not is_valid_uuid(payload.student_id):
            raise ValidationError("Student ID is invalid", field="studentId")
        if not is_valid_uuid(payload.course_id):
            raise ValidationError("Course ID is invalid", field="courseId")

        course = await load_course(self.db, principal, payload.course_id, Action.MARK_ATTENDANCE)
        user, profile = await load_student(self.db, principal, payload.student_id, Action.MARK_ATTENDANCE)
        if course.batch_id not in await student_batch_ids(self.db, user.id, profile):
            raise ValidationError("Student does not belong to the course's batch", field="studentId")
        college = profile.college or user.college or principal.college or ""

        async with transaction(self.db, "mark_attendance"):
            existing = await self.db.scalar(
                select(func.count(Attendance.id)).where(
                    Attendance.student_id == user.id,
                    Attendance.course_id == course.id,
                    Attendance.date == payload.date,
                )
            )
            if existing:
                raise ConflictError("attendance")
            record = Attendance(
                id=generate_uuid(),
                student_id=user.id,
                course_id=course.id,
                date=payload.date,
                status=payload.status,
                marked_by=principal.id,
                college=college,
                remarks=payload.remarks,
            )
            self.db.add(record)
            await self.db.flush()
            data = serialize_attendance(record)

        logger.info(
            f"Attendance {payload.status.value} for {user.id} on {payload.date}",
            extra={"event_type": "attendance_marked", "course_id": course.id},
        )
        return data

    async def _records(self, student_ids: List[str], start: date, end: date,
                       course_id: Optional[str] = None) -> List[Attendance]:
        if not student_ids:
            return []
        query = select(Attendance).where(
            Attendance.student_id.in_(student_ids),
            Attendance.date >= start,
            Attendance.date <= end,
        )
        if course_id:
            query = query.where(Attendance.course_id == course_id)
        result = await run_bounded(
            self.db.scalars(query.order_by(Attendance.date, Attendance.course_id)), "attendance_sheet"
        )
        return list(result.all())

    async def student_month(self, principal: Principal, student_id: str, year: int, month: int,
                            course_id: Optional[str] = None) -> Dict[str, Any]:
        start, end = month_range(year, month)
        user, profile = await load_student(self.db, principal, student_id)
        records = await self._records([user.id], start, end, course_id)
        return {
            "student": {
                "id": user.id,
                "name": user.full_name,
                "rollNumber": profile.roll_number,
                "department": profile.department,
            },
            "year": year,
            "month": month,
            "records": [_sheet_row(r) for r in records],
            "summary": attendance_summary(r.status for r in records),
        }

    async def batch_month(self, principal: Principal, batch_id: str, year: int, month: int) -> Dict[str, Any]:
        start, end = month_range(year, month)
        batch = await load_batch(self.db, principal, batch_id)

        member_ids = list((await self.db.scalars(
            select(BatchStudent.student_id).where(BatchStudent.batch_id == batch.id)
        )).all())
        users = {}
        profiles = {}
        if member_ids:
            users = {u.id: u for u in (await self.db.scalars(select(User).where(User.id.in_(member_ids)))).all()}
            profiles = {
                p.user_id: p
                for p in (await self.db.scalars(select(Student).where(Student.user_id.in_(member_ids)))).all()
            }
        records = await self._records(member_ids, start, end)

        by_student: Dict[str, List[Attendance]] = {sid: [] for sid in member_ids}
        for record in records:
            by_student.setdefault(record.student_id, []).append(record)

        students = []
        for student_id in member_ids:
            user = users.get(student_id)
            profile = profiles.get(student_id)
            rows = by_student[student_id]
            students.append({
                "studentId": student_id,
                "name": user.full_name if user else None,
                "rollNumber": profile.roll_number if profile else None,
                "records": [_sheet_row(r) for r in rows],
                "summary": attendance_summary(r.status for r in rows),
            })
        students.sort(key=lambda s: s["rollNumber"] or "")

        return {
            "batch": {"id": batch.id, "name": batch.name, "code": batch.code},
            "year": year,
            "month": month,
            "students": students,
            "summary": attendance_summary(r.status for r in records),
        }
