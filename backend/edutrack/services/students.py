"""
Student profiles: viewing, self-service contact edits, academic updates,
scoped listing and academic performance.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from edutrack.core.database import transaction, run_bounded
from edutrack.core.exceptions import ConflictError, StudentNotFoundError, ValidationError
from edutrack.core.responses import Pagination
from edutrack.core.types import is_valid_uuid
from edutrack.models import User, UserRole, Student, BatchStudent
from edutrack.modules.auth import Action, Principal
from edutrack.modules.auth.scope import conceal, load_student, load_student_profile
from edutrack.schemas.user import AcademicUpdate, ProfileUpdate, student_profile_view, user_summary
from edutrack.services.report_workflow import reports_by_semester


def student_view(user: User, profile: Student) -> Dict[str, Any]:
    data = user_summary(user)
    data["studentId"] = profile.id
    data["studentInfo"] = student_profile_view(profile)
    return data


class StudentService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_profile(self, principal: Principal, user_id: str) -> Dict[str, Any]:
        user, profile = await load_student(self.db, principal, user_id)
        return student_view(user, profile)

    async def update_profile(self, principal: Principal, user_id: str, payload: ProfileUpdate) -> Dict[str, Any]:
        user, profile = await load_student(self.db, principal, user_id, Action.UPDATE)
        changes = payload.model_dump(exclude_unset=True, exclude_none=True)

        async with transaction(self.db, "update_student_profile"):
            if "email" in changes and changes["email"] != user.email:
                taken = await self.db.scalar(
                    select(func.count(User.id)).where(User.email == changes["email"], User.id != user.id)
                )
                if taken:
                    raise ConflictError("email")
                user.email = changes["email"]
            if "first_name" in changes:
                user.first_name = changes["first_name"].strip()
            if "last_name" in changes:
                user.last_name = changes["last_name"].strip()
            if "phone_number" in changes:
                profile.phone_number = changes["phone_number"]
            if "gender" in changes:
                profile.gender = changes["gender"]
            now = datetime.utcnow()
            user.updated_at = now
            profile.updated_at = now
            await self.db.flush()
            data = student_view(user, profile)
        return data

    async def update_academic(self, principal: Principal, user_id: str, payload: AcademicUpdate) -> Dict[str, Any]:
        user, profile = await load_student(self.db, principal, user_id, Action.UPDATE_ACADEMIC)

        async with transaction(self.db, "update_academic_details"):
            profile.semester = payload.semester
            profile.department = payload.department.strip()
            profile.academic_year = payload.academic_year
            profile.updated_at = datetime.utcnow()
            await self.db.flush()
            data = student_view(user, profile)
        return data

    def _scope_condition(self, principal: Principal):
        if principal.is_global:
            return None
        if principal.role == UserRole.STUDENT:
            return User.id == principal.id
        if principal.role == UserRole.TRAINER:
            batch_ids = principal.batch_ids or [""]
            members = select(BatchStudent.student_id).where(BatchStudent.batch_id.in_(batch_ids))
            return or_(User.id.in_(members), Student.batch_id.in_(batch_ids))
        if principal.role == UserRole.FACULTY:
            conditions = [Student.assigned_faculty_id == principal.id]
            if principal.college:
                conditions.append(Student.college == principal.college)
            return or_(*conditions)
        return User.id.is_(None)

    async def list_students(self, principal: Principal, pagination: Pagination,
                            search: Optional[str] = None, batch_id: Optional[str] = None,
                            department: Optional[str] = None,
                            semester: Optional[int] = None) -> Tuple[List[Dict[str, Any]], int]:
        query = select(User, Student).join(Student, Student.user_id == User.id).where(User.role == UserRole.STUDENT)
        scope = self._scope_condition(principal)
        if scope is not None:
            query = query.where(scope)
        if search:
            term = f"%{search.strip()}%"
            query = query.where(or_(
                User.first_name.ilike(term),
                User.last_name.ilike(term),
                User.email.ilike(term),
                User.username.ilike(term),
                Student.roll_number.ilike(term),
            ))
        if batch_id:
            if not is_valid_uuid(batch_id):
                raise ValidationError("Batch ID is invalid", field="batchId")
            query = query.where(Student.batch_id == batch_id)
        if department:
            query = query.where(Student.department == department)
        if semester is not None:
            query = query.where(Student.semester == semester)

        total = await run_bounded(
            self.db.scalar(select(func.count()).select_from(query.subquery())), "count_students"
        )
        result = await run_bounded(
            self.db.execute(
                query.order_by(Student.roll_number).offset(pagination.offset).limit(pagination.limit)
            ),
            "list_students",
        )
        return [student_view(user, profile) for user, profile in result.all()], total

    async def get_by_roll_number(self, principal: Principal, roll_number: str) -> Dict[str, Any]:
        roll_number = roll_number.strip().upper()
        profile = await self.db.scalar(select(Student).where(func.upper(Student.roll_number) == roll_number))
        if not profile:
            raise conceal(principal, StudentNotFoundError(roll_number))
        user, profile = await load_student_profile(self.db, principal, profile.id)
        return student_view(user, profile)

    async def performance(self, principal: Principal, user_id: str) -> Dict[str, Any]:
        user, profile = await load_student(self.db, principal, user_id)
        reports = await run_bounded(reports_by_semester(self.db, profile), "student_performance")
        return {
            "student": {
                "id": user.id,
                "name": user.full_name,
                "rollNumber": profile.roll_number,
                "department": profile.department,
                "semester": profile.semester,
                "academicYear": profile.academic_year,
            },
            **reports,
        }
