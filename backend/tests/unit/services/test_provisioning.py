"""
Unit Tests for account provisioning
"""
import logging

import pytest
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select, func

from conftest import make_batch, make_student, make_user, principal_for
from edutrack.core.exceptions import BatchNotFoundError, ConflictError, ValidationError
from edutrack.core.security import verify_password
from edutrack.core.types import generate_uuid
from edutrack.models import BatchStudent, BatchTrainer, Student, User, UserRole
from edutrack.schemas.user import UserCreate, UserUpdate
from edutrack.services.provisioning import ProvisioningService


async def count(db, model, *conditions) -> int:
    query = select(func.count()).select_from(model)
    if conditions:
        query = query.where(*conditions)
    return await db.scalar(query)


class TestCreateStudent:

    @pytest.mark.asyncio
    async def test_student_without_batch_rejected(self, db_session, admin_user):
        principal = await principal_for(db_session, admin_user)
        payload = UserCreate(first_name="Asha", last_name="Verma", role=UserRole.STUDENT)

        with pytest.raises(ValidationError) as exc_info:
            await ProvisioningService(db_session).create_user(principal, payload)

        assert exc_info.value.field == "batchId"
        assert await count(db_session, User, User.role == UserRole.STUDENT) == 0

    @pytest.mark.asyncio
    async def test_missing_batch_leaves_no_account(self, db_session, admin_user):
        principal = await principal_for(db_session, admin_user)
        payload = UserCreate(
            first_name="Asha", last_name="Verma", email="asha@college.edu",
            role=UserRole.STUDENT, batch_id=generate_uuid(),
        )

        with pytest.raises(BatchNotFoundError):
            await ProvisioningService(db_session).create_user(principal, payload)

        assert await count(db_session, User, User.email == "asha@college.edu") == 0
        assert await count(db_session, Student) == 0
        assert await count(db_session, BatchStudent) == 0

    @pytest.mark.asyncio
    async def test_student_created_with_profile_and_membership(self, db_session, admin_user):
        batch = await make_batch(db_session, code="CS24")
        principal = await principal_for(db_session, admin_user)
        payload = UserCreate.model_validate({
            "firstName": "Asha",
            "lastName": "Verma",
            "role": "student",
            "batchId": batch.id,
            "studentDetails": {"department": "CSE", "semester": 3, "academicYear": "2024-2025"},
        })

        result = await ProvisioningService(db_session).create_user(principal, payload)

        assert result["role"] == "student"
        assert result["email"] == f"{result['username']}@college.edu"
        assert result["studentInfo"]["rollNumber"] == result["username"].upper()
        assert result["studentInfo"]["batchId"] == batch.id

        credentials = result["generatedCredentials"]
        assert credentials["username"] == result["username"]
        assert len(credentials["password"]) == 10

        user = await db_session.get(User, result["id"])
        assert verify_password(credentials["password"], user.hashed_password)
        profile = await db_session.scalar(select(Student).where(Student.user_id == user.id))
        assert profile.batch_id == batch.id
        assert profile.department == "CSE"
        assert await count(db_session, BatchStudent, BatchStudent.student_id == user.id) == 1

    @pytest.mark.asyncio
    async def test_full_batch_rejected(self, db_session, admin_user):
        batch = await make_batch(db_session, max_students=1)
        await make_student(db_session, batch)
        batch_id = batch.id
        principal = await principal_for(db_session, admin_user)
        payload = UserCreate(first_name="Ravi", last_name="Kumar", role=UserRole.STUDENT, batch_id=batch.id)

        with pytest.raises(ValidationError) as exc_info:
            await ProvisioningService(db_session).create_user(principal, payload)

        assert exc_info.value.field == "batchId"
        assert await count(db_session, BatchStudent, BatchStudent.batch_id == batch_id) == 1

    @pytest.mark.asyncio
    async def test_duplicate_email_conflict(self, db_session, admin_user):
        principal = await principal_for(db_session, admin_user)
        payload = UserCreate(first_name="Ravi", last_name="Kumar", email=admin_user.email, role=UserRole.FACULTY)

        with pytest.raises(ConflictError) as exc_info:
            await ProvisioningService(db_session).create_user(principal, payload)

        assert exc_info.value.field == "email"

    def test_admin_role_not_assignable(self):
        with pytest.raises(PydanticValidationError):
            UserCreate(first_name="Ravi", last_name="Kumar", role=UserRole.ADMIN)


class TestCreateTrainer:

    @pytest.mark.asyncio
    async def test_trainer_assigned_to_batches(self, db_session, admin_user):
        first = await make_batch(db_session)
        second = await make_batch(db_session)
        principal = await principal_for(db_session, admin_user)
        payload = UserCreate(
            first_name="Meera", last_name="Nair", role=UserRole.TRAINER, batch_ids=[first.id, second.id],
        )

        result = await ProvisioningService(db_session).create_user(principal, payload)

        assert sorted(result["batchIds"]) == sorted([first.id, second.id])
        assert await count(db_session, BatchTrainer, BatchTrainer.trainer_id == result["id"]) == 2

    @pytest.mark.asyncio
    async def test_unknown_batch_rolls_back(self, db_session, admin_user):
        principal = await principal_for(db_session, admin_user)
        payload = UserCreate(
            first_name="Meera", last_name="Nair", email="meera@college.edu",
            role=UserRole.TRAINER, batch_ids=[generate_uuid()],
        )

        with pytest.raises(ValidationError) as exc_info:
            await ProvisioningService(db_session).create_user(principal, payload)

        assert exc_info.value.field == "batchIds"
        assert await count(db_session, User, User.email == "meera@college.edu") == 0


class TestBulkCreate:

    @pytest.mark.asyncio
    async def test_rows_fail_independently(self, db_session, admin_user, caplog):
        batch = await make_batch(db_session)
        principal = await principal_for(db_session, admin_user)
        rows = [
            {"firstName": "Asha", "lastName": "Verma", "role": "student", "batchId": batch.id},
            {"firstName": "Ravi", "role": "faculty"},
            {"firstName": "Kiran", "lastName": "Rao", "role": "student"},
            {"firstName": "Meera", "lastName": "Nair", "role": "trainer", "email": "meera@college.edu"},
        ]

        with caplog.at_level(logging.INFO, logger="edutrack"):
            result = await ProvisioningService(db_session).bulk_create(principal, rows)

        assert result["summary"] == {"total": 4, "succeeded": 2, "failed": 2}
        assert [row["row"] for row in result["created"]] == [2, 5]
        assert [row["row"] for row in result["failed"]] == [3, 4]
        assert result["failed"][1]["errors"][0]["field"] == "batchId"
        assert await count(db_session, User, User.role == UserRole.STUDENT) == 1
        finished = [r for r in caplog.records if getattr(r, "event_type", None) == "bulk_provisioning"]
        assert [(r.created_count, r.failed_count) for r in finished] == [(2, 2)]


class TestUpdateAndReset:

    @pytest.mark.asyncio
    async def test_trainer_to_faculty_drops_assignments(self, db_session, admin_user):
        trainer = await make_user(db_session, UserRole.TRAINER)
        await make_batch(db_session, trainers=[trainer])
        principal = await principal_for(db_session, admin_user)

        result = await ProvisioningService(db_session).update_user(
            principal, trainer.id, UserUpdate(role=UserRole.FACULTY)
        )

        assert result["role"] == "faculty"
        assert await count(db_session, BatchTrainer, BatchTrainer.trainer_id == trainer.id) == 0

    @pytest.mark.asyncio
    async def test_student_role_change_rejected(self, db_session, admin_user):
        batch = await make_batch(db_session)
        student = await make_student(db_session, batch)
        principal = await principal_for(db_session, admin_user)

        with pytest.raises(ValidationError) as exc_info:
            await ProvisioningService(db_session).update_user(principal, student.id, UserUpdate(role=UserRole.TRAINER))

        assert exc_info.value.field == "role"

    @pytest.mark.asyncio
    async def test_move_student_updates_both_records(self, db_session, admin_user):
        old_batch = await make_batch(db_session)
        new_batch = await make_batch(db_session)
        student = await make_student(db_session, old_batch)
        principal = await principal_for(db_session, admin_user)

        await ProvisioningService(db_session).update_user(principal, student.id, UserUpdate(batch_id=new_batch.id))

        profile = await db_session.scalar(select(Student).where(Student.user_id == student.id))
        memberships = (await db_session.scalars(
            select(BatchStudent.batch_id).where(BatchStudent.student_id == student.id)
        )).all()
        assert profile.batch_id == new_batch.id
        assert list(memberships) == [new_batch.id]

    @pytest.mark.asyncio
    async def test_reset_password(self, db_session, admin_user):
        faculty = await make_user(db_session, UserRole.FACULTY)
        principal = await principal_for(db_session, admin_user)

        result = await ProvisioningService(db_session).reset_password(principal, faculty.id)

        assert len(result["newPassword"]) == 12
        refreshed = await db_session.get(User, faculty.id)
        assert verify_password(result["newPassword"], refreshed.hashed_password)
        assert refreshed.password_changed_at is not None
