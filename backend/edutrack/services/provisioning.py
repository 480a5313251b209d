"""
User Provisioning Service
Creates accounts together with their dependent records in one transaction:
a student gets a Student profile and batch membership, a trainer gets the
requested batch assignments. Nothing is written unless every step succeeds.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select, func, delete
from sqlalchemy.ext.asyncio import AsyncSession

from edutrack.core.config import settings
from edutrack.core.database import transaction
from edutrack.core.exceptions import (
    BatchNotFoundError,
    ConflictError,
    EduTrackError,
    ServiceUnavailableError,
    ValidationError,
)
from edutrack.core.logging_config import logger
from edutrack.core.security import get_password_hash
from edutrack.core.types import generate_uuid, is_valid_uuid
from edutrack.models import User, UserRole, Student, Batch, BatchStudent, BatchTrainer
from edutrack.modules.auth import Action, Principal, authorize
from edutrack.modules.auth.authorization import Target, TargetKind
from edutrack.modules.auth.scope import load_user
from edutrack.schemas.base import field_errors
from edutrack.schemas.user import (
    StudentDetails, UserCreate, UserUpdate, PROFILE_KIND_BY_ROLE, user_summary, student_profile_view,
)
from edutrack.services.credentials import generate_strong_password, generate_unique_username
from edutrack.services.tabular import split_ids
from edutrack.services.user_deletion import run_cleanup_steps

# Role changes that keep dependent records consistent
ROLE_TRANSITIONS = {
    UserRole.TRAINER: {UserRole.FACULTY},
    UserRole.FACULTY: {UserRole.TRAINER},
}


def passwords_returned(send_email: bool = False) -> bool:
    return not send_email and settings.PASSWORD_DELIVERY != "out_of_band"


def validate_id_list(ids: List[str], field: str) -> List[str]:
    unique = list(dict.fromkeys(ids))
    if any(not is_valid_uuid(i) for i in unique):
        raise ValidationError("One or more batch IDs are invalid", field=field)
    return unique


class ProvisioningService:
    """Account creation, update and password reset"""

    def __init__(self, db: AsyncSession):
        self.db = db

    # =====================================================
    # CREATE
    # =====================================================

    async def create_user(self, principal: Principal, payload: UserCreate) -> Dict[str, Any]:
        """Provision one account; returns the generated credentials once"""
        authorize(principal, Action.MANAGE, Target(kind=TargetKind.USER, role=payload.role))

        # Input checks happen before any store access
        if payload.role == UserRole.STUDENT:
            if not payload.batch_id:
                raise ValidationError("Batch is required for students", field="batchId")
            if not is_valid_uuid(payload.batch_id):
                raise ValidationError("Batch ID is invalid", field="batchId")
        batch_ids: List[str] = []
        if payload.role == UserRole.TRAINER and payload.batch_ids:
            batch_ids = validate_id_list(payload.batch_ids, "batchIds")

        password = generate_strong_password(settings.GENERATED_PASSWORD_LENGTH)

        async with transaction(self.db, "provision_user"):
            user = await self._create_user_row(principal, payload, password)
            summary = user_summary(user)
            if payload.role == UserRole.STUDENT:
                student = await self._create_student_profile(user, payload.batch_id, payload.student_details)
                summary["studentInfo"] = student_profile_view(student)
            elif payload.role == UserRole.TRAINER and batch_ids:
                await self._assign_trainer(user.id, batch_ids)
                summary["batchIds"] = batch_ids

        logger.info(
            f"Provisioned {payload.role.value} {summary['username']}",
            extra={"event_type": "user_provisioned", "target_user_id": summary["id"], "role": payload.role.value},
        )

        credentials = {"username": summary["username"]}
        if passwords_returned():
            credentials["password"] = password
        return {**summary, "generatedCredentials": credentials}

    async def _username_taken(self, username: str) -> bool:
        return bool(await self.db.scalar(select(func.count(User.id)).where(User.username == username)))

    async def _create_user_row(self, principal: Principal, payload: UserCreate, password: str) -> User:
        username = await generate_unique_username(payload.first_name, payload.last_name, self._username_taken)
        email = (str(payload.email) if payload.email else f"{username}@{settings.DEFAULT_EMAIL_DOMAIN}").lower()

        if await self.db.scalar(select(func.count(User.id)).where(User.email == email)):
            raise ConflictError("email")

        profile = None
        if payload.profile is not None:
            profile = payload.profile.model_dump(mode="json")

        user = User(
            id=generate_uuid(),
            email=email,
            username=username,
            first_name=payload.first_name,
            last_name=payload.last_name,
            hashed_password=get_password_hash(password),
            role=payload.role,
            is_active=payload.is_active,
            college=payload.college or principal.college,
            profile=profile,
            created_by=principal.id,
            created_at=datetime.utcnow(),
        )
        self.db.add(user)
        await self.db.flush()
        return user

    async def _create_student_profile(self, user: User, batch_id: str,
                                      details: Optional[StudentDetails]) -> Student:
        batch = await self.db.get(Batch, batch_id)
        if not batch:
            raise BatchNotFoundError(batch_id)

        enrolled = await self.db.scalar(
            select(func.count(BatchStudent.id)).where(BatchStudent.batch_id == batch.id)
        )
        if enrolled >= batch.max_students:
            raise ValidationError(f"Batch {batch.code} is full", field="batchId")

        details = details or StudentDetails()
        roll_number = (details.roll_number or user.username).upper()
        if await self.db.scalar(select(func.count(Student.id)).where(Student.roll_number == roll_number)):
            raise ConflictError("rollNumber")

        student = Student(
            id=generate_uuid(),
            user_id=user.id,
            roll_number=roll_number,
            department=details.department,
            semester=details.semester,
            academic_year=details.academic_year,
            college=user.college,
            phone_number=details.phone_number,
            gender=details.gender,
            assigned_faculty_id=details.assigned_faculty_id,
            batch_id=batch.id,
            admission_date=datetime.utcnow(),
        )
        self.db.add(student)
        self.db.add(BatchStudent(batch_id=batch.id, student_id=user.id))
        await self.db.flush()
        return student

    async def _assign_trainer(self, trainer_id: str, batch_ids: List[str]) -> None:
        found = await self.db.scalar(select(func.count(Batch.id)).where(Batch.id.in_(batch_ids)))
        if found != len(batch_ids):
            raise ValidationError("One or more batch IDs are invalid", field="batchIds")
        for batch_id in batch_ids:
            self.db.add(BatchTrainer(batch_id=batch_id, trainer_id=trainer_id))
        await self.db.flush()

    # =====================================================
    # BULK CREATE
    # =====================================================

    async def bulk_create(self, principal: Principal, rows: List[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Provision every row independently.

        A failing row is reported and does not affect the others; each row
        is still all-or-nothing on its own.
        """
        created: List[Dict[str, Any]] = []
        failed: List[Dict[str, Any]] = []

        for index, row in enumerate(rows, start=2):  # row 1 is the header
            try:
                payload = UserCreate.model_validate(row_to_payload(row))
                result = await self.create_user(principal, payload)
            except PydanticValidationError as e:
                failed.append({
                    "row": index,
                    "email": row.get("email"),
                    "message": "Invalid row",
                    "errors": field_errors(e),
                })
            except ServiceUnavailableError:
                raise
            except EduTrackError as e:
                failed.append({
                    "row": index,
                    "email": row.get("email"),
                    "message": e.message,
                    "errors": e.details.get("errors", []),
                })
            else:
                created.append({
                    "row": index,
                    "id": result["id"],
                    "username": result["username"],
                    "email": result["email"],
                    "role": result["role"],
                    "generatedCredentials": result["generatedCredentials"],
                })

        logger.info(
            f"Bulk provisioning finished: {len(created)} created, {len(failed)} failed",
            extra={"event_type": "bulk_provisioning", "created_count": len(created), "failed_count": len(failed)},
        )
        return {
            "created": created,
            "failed": failed,
            "summary": {"total": len(rows), "succeeded": len(created), "failed": len(failed)},
        }

    # =====================================================
    # UPDATE
    # =====================================================

    async def update_user(self, principal: Principal, user_id: str, payload: UserUpdate) -> Dict[str, Any]:
        if payload.role == UserRole.SUPERADMIN:
            raise ValidationError("Cannot assign superadmin role", field="role")
        batch_ids = validate_id_list(payload.batch_ids, "batchIds") if payload.batch_ids is not None else None

        user = await load_user(self.db, principal, user_id, Action.UPDATE)
        previous_role = user.role
        new_role = payload.role or previous_role
        if new_role != previous_role:
            authorize(principal, Action.CHANGE_ROLE, Target(kind=TargetKind.USER, id=user.id, role=previous_role))
            if new_role not in ROLE_TRANSITIONS.get(previous_role, set()):
                raise ValidationError(
                    f"Cannot change role from {previous_role.value} to {new_role.value}", field="role"
                )
        if payload.profile is not None and payload.profile.kind != PROFILE_KIND_BY_ROLE.get(new_role):
            raise ValidationError("Profile does not match the user's role", field="profile")

        async with transaction(self.db, "update_user"):
            if payload.email and payload.email.lower() != user.email:
                taken = await self.db.scalar(
                    select(func.count(User.id)).where(User.email == payload.email.lower(), User.id != user.id)
                )
                if taken:
                    raise ConflictError("email")
                user.email = payload.email.lower()

            for field in ("first_name", "last_name", "is_active", "college"):
                value = getattr(payload, field)
                if value is not None:
                    setattr(user, field, value)

            if new_role != previous_role:
                # Leaving the trainer role drops batch and course assignments
                if previous_role == UserRole.TRAINER:
                    await run_cleanup_steps(self.db, UserRole.TRAINER, user.id, principal.id)
                user.role = new_role
                user.profile = None

            if payload.profile is not None:
                user.profile = payload.profile.model_dump(mode="json")

            if new_role == UserRole.STUDENT and payload.student_details is not None:
                await self._update_student_details(user, payload.student_details)

            if new_role == UserRole.STUDENT and payload.batch_id:
                await self._move_student(user, payload.batch_id)

            if new_role == UserRole.TRAINER and batch_ids is not None:
                await self.db.execute(delete(BatchTrainer).where(BatchTrainer.trainer_id == user.id))
                if batch_ids:
                    await self._assign_trainer(user.id, batch_ids)

            user.updated_at = datetime.utcnow()
            await self.db.flush()
            summary = user_summary(user)

        return summary

    async def _move_student(self, user: User, batch_id: str) -> None:
        """Change a student's batch in both the profile and the membership table"""
        if not is_valid_uuid(batch_id) or not await self.db.get(Batch, batch_id):
            raise ValidationError("Batch not found", field="batchId")
        student = await self.db.scalar(select(Student).where(Student.user_id == user.id))
        if not student:
            raise ValidationError("Student profile is missing", field="batchId")
        if student.batch_id == batch_id:
            return
        student.batch_id = batch_id
        await self.db.execute(delete(BatchStudent).where(BatchStudent.student_id == user.id))
        self.db.add(BatchStudent(batch_id=batch_id, student_id=user.id))

    async def _update_student_details(self, user: User, details: StudentDetails) -> None:
        student = await self.db.scalar(select(Student).where(Student.user_id == user.id))
        if not student:
            raise ValidationError("Student profile is missing", field="studentDetails")

        changes = details.model_dump(exclude_unset=True)
        if "roll_number" in changes and changes["roll_number"]:
            roll_number = changes["roll_number"].upper()
            taken = await self.db.scalar(
                select(func.count(Student.id)).where(Student.roll_number == roll_number, Student.id != student.id)
            )
            if taken:
                raise ConflictError("rollNumber")
            changes["roll_number"] = roll_number
        for field, value in changes.items():
            if value is not None:
                setattr(student, field, value)

    # =====================================================
    # PASSWORD RESET
    # =====================================================

    async def reset_password(self, principal: Principal, user_id: str, send_email: bool = False) -> Dict[str, Any]:
        """Replace a user's password with a generated one"""
        user = await load_user(self.db, principal, user_id, Action.UPDATE)
        authorize(principal, Action.MANAGE, Target(kind=TargetKind.USER, id=user.id, role=user.role))

        password = generate_strong_password(settings.RESET_PASSWORD_LENGTH)
        async with transaction(self.db, "reset_password"):
            user.hashed_password = get_password_hash(password)
            user.password_changed_at = datetime.utcnow()

        logger.log_auth_event("password_reset", True, user_email=user.email, actor_id=principal.id)
        if passwords_returned(send_email):
            return {"newPassword": password}
        # Delivery happens out of band; the plaintext is not kept anywhere
        return {"newPassword": None, "delivery": "out_of_band"}


def row_to_payload(row: Dict[str, Any]) -> Dict[str, Any]:
    """Map a spreadsheet row onto UserCreate fields"""
    details = {
        key: row.get(key)
        for key in ("rollNumber", "department", "semester", "academicYear", "phoneNumber", "gender")
        if row.get(key) is not None
    }
    if "semester" in details:
        try:
            details["semester"] = int(float(details["semester"]))
        except (TypeError, ValueError):
            pass
    if "rollNumber" in details:
        details["rollNumber"] = str(details["rollNumber"])

    role = row.get("role")
    payload: Dict[str, Any] = {
        "firstName": row.get("firstName"),
        "lastName": row.get("lastName"),
        "email": row.get("email"),
        "role": role.strip().lower() if isinstance(role, str) else role,
        "college": row.get("college"),
        "batchId": row.get("batchId"),
    }
    if row.get("batchIds") is not None:
        payload["batchIds"] = split_ids(row.get("batchIds"))
    if details:
        payload["studentDetails"] = details
    if row.get("isActive") is not None:
        payload["isActive"] = str(row["isActive"]).strip().lower() not in ("false", "0", "no")
    return payload
