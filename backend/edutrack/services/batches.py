"""
Batch and course administration.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, func, delete, and_
from sqlalchemy.ext.asyncio import AsyncSession

from edutrack.core.database import transaction
from edutrack.core.exceptions import (
    BatchNotFoundError, ConflictError, ResourceNotFoundError, ValidationError,
)
from edutrack.core.responses import Pagination
from edutrack.core.types import generate_uuid, is_valid_uuid
from edutrack.models import (
    User, UserRole, Student, Batch, BatchStudent, BatchTrainer, Course, CourseEnrollment, duration_weeks,
)
from edutrack.modules.auth import Action, Principal, authorize
from edutrack.modules.auth.authorization import Target, TargetKind
from edutrack.modules.auth.scope import conceal, load_batch, load_course
from edutrack.schemas.academic import BatchCreate, BatchUpdate, CourseCreate


async def batch_counts(db: AsyncSession, batch_ids: List[str]) -> Dict[str, Dict[str, int]]:
    """trainer/student/course counts per batch"""
    counts = {bid: {"trainerCount": 0, "studentCount": 0, "courseCount": 0} for bid in batch_ids}
    if not batch_ids:
        return counts
    queries = (
        ("trainerCount", BatchTrainer.batch_id, BatchTrainer.id),
        ("studentCount", BatchStudent.batch_id, BatchStudent.id),
        ("courseCount", Course.batch_id, Course.id),
    )
    for key, group_col, count_col in queries:
        rows = await db.execute(
            select(group_col, func.count(count_col)).where(group_col.in_(batch_ids)).group_by(group_col)
        )
        for batch_id, count in rows.all():
            counts[batch_id][key] = count
    return counts


def serialize_batch(batch: Batch, counts: Optional[Dict[str, int]] = None) -> Dict[str, Any]:
    data = {
        "id": batch.id,
        "name": batch.name,
        "code": batch.code,
        "description": batch.description,
        "startDate": batch.start_date,
        "endDate": batch.end_date,
        "isActive": batch.is_active,
        "maxStudents": batch.max_students,
        "tags": batch.tags or [],
        "createdBy": batch.created_by,
        "durationWeeks": duration_weeks(batch.start_date, batch.end_date),
    }
    if counts is not None:
        data.update(counts)
    return data


def serialize_course(course: Course) -> Dict[str, Any]:
    return {
        "id": course.id,
        "title": course.title,
        "description": course.description,
        "instructorId": course.instructor_id,
        "batchId": course.batch_id,
        "startDate": course.start_date,
        "endDate": course.end_date,
        "status": course.status.value,
        "isActive": course.is_active,
    }


class BatchService:
    """Batch CRUD and trainer assignment"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _validate_trainers(self, trainer_ids: List[str]) -> List[str]:
        trainer_ids = list(dict.fromkeys(trainer_ids))
        if not trainer_ids:
            return []
        if any(not is_valid_uuid(t) for t in trainer_ids):
            raise ValidationError("One or more trainer IDs are invalid", field="trainerIds")
        found = await self.db.scalar(
            select(func.count(User.id)).where(User.id.in_(trainer_ids), User.role == UserRole.TRAINER)
        )
        if found != len(trainer_ids):
            raise ValidationError("One or more trainer IDs are invalid", field="trainerIds")
        return trainer_ids

    async def create_batch(self, principal: Principal, payload: BatchCreate) -> Dict[str, Any]:
        authorize(principal, Action.MANAGE, Target(kind=TargetKind.BATCH))

        async with transaction(self.db, "create_batch"):
            if await self.db.scalar(select(func.count(Batch.id)).where(Batch.code == payload.code)):
                raise ConflictError("code")
            trainer_ids = await self._validate_trainers(payload.trainer_ids)

            batch = Batch(
                id=generate_uuid(),
                name=payload.name.strip(),
                description=payload.description,
                code=payload.code,
                start_date=payload.start_date,
                end_date=payload.end_date,
                is_active=payload.is_active,
                max_students=payload.max_students,
                tags=payload.tags,
                created_by=principal.id,
            )
            self.db.add(batch)
            for trainer_id in trainer_ids:
                self.db.add(BatchTrainer(batch_id=batch.id, trainer_id=trainer_id))
            await self.db.flush()
            data = serialize_batch(batch, {
                "trainerCount": len(trainer_ids), "studentCount": 0, "courseCount": 0,
            })
        return data

    def _scope_condition(self, principal: Principal):
        if principal.is_global:
            return None
        if principal.role in (UserRole.TRAINER, UserRole.STUDENT):
            return Batch.id.in_(principal.batch_ids or [""])
        # Faculty: batches holding students from their college
        return Batch.id.in_(
            select(Student.batch_id).where(Student.college == principal.college, Student.batch_id.isnot(None))
        )

    async def list_batches(self, principal: Principal, pagination: Pagination,
                           is_active: Optional[bool] = None) -> Tuple[List[Dict[str, Any]], int]:
        conditions = []
        scope = self._scope_condition(principal)
        if scope is not None:
            conditions.append(scope)
        if is_active is not None:
            conditions.append(Batch.is_active == is_active)

        query = select(Batch)
        if conditions:
            query = query.where(and_(*conditions))
        total = await self.db.scalar(select(func.count()).select_from(query.subquery()))
        result = await self.db.scalars(
            query.order_by(Batch.start_date.desc()).offset(pagination.offset).limit(pagination.limit)
        )
        batches = result.all()
        counts = await batch_counts(self.db, [b.id for b in batches])
        return [serialize_batch(b, counts[b.id]) for b in batches], total

    async def get_batch(self, principal: Principal, batch_id: str) -> Dict[str, Any]:
        batch = await load_batch(self.db, principal, batch_id)
        counts = await batch_counts(self.db, [batch.id])
        trainer_rows = await self.db.scalars(select(BatchTrainer.trainer_id).where(BatchTrainer.batch_id == batch.id))
        data = serialize_batch(batch, counts[batch.id])
        data["trainerIds"] = list(trainer_rows.all())
        return data

    async def update_batch(self, principal: Principal, batch_id: str, payload: BatchUpdate) -> Dict[str, Any]:
        batch = await load_batch(self.db, principal, batch_id, Action.MANAGE)
        changes = payload.model_dump(exclude_unset=True)
        for field, alias in (("start_date", "startDate"), ("end_date", "endDate")):
            if field in changes and changes[field] is None:
                raise ValidationError(f"{alias} cannot be cleared", field=alias)

        start = changes.get("start_date", batch.start_date)
        end = changes.get("end_date", batch.end_date)
        if end <= start:
            raise ValidationError("End date must be after start date", field="endDate")

        async with transaction(self.db, "update_batch"):
            for field, value in changes.items():
                if value is not None or field == "description":
                    setattr(batch, field, value)
            batch.updated_at = datetime.utcnow()
            await self.db.flush()
            data = serialize_batch(batch)
        return data

    async def assign_trainers(self, principal: Principal, batch_id: str, trainer_ids: List[str]) -> Dict[str, Any]:
        """Replace the batch's trainer set"""
        batch = await load_batch(self.db, principal, batch_id, Action.MANAGE)
        target_id = batch.id
        async with transaction(self.db, "assign_trainers"):
            trainer_ids = await self._validate_trainers(trainer_ids)
            await self.db.execute(delete(BatchTrainer).where(BatchTrainer.batch_id == target_id))
            for trainer_id in trainer_ids:
                self.db.add(BatchTrainer(batch_id=target_id, trainer_id=trainer_id))
        await self.db.refresh(batch, attribute_names=["trainer_links"])
        return {"id": target_id, "trainerIds": trainer_ids}


class CourseService:
    """Course creation, enrollment and progress tracking"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_course(self, principal: Principal, payload: CourseCreate) -> Dict[str, Any]:
        authorize(principal, Action.MANAGE, Target(kind=TargetKind.COURSE))
        if not is_valid_uuid(payload.batch_id):
            raise ValidationError("Batch ID is invalid", field="batchId")

        async with transaction(self.db, "create_course"):
            if not await self.db.get(Batch, payload.batch_id):
                raise BatchNotFoundError(payload.batch_id)
            if payload.instructor_id:
                instructor = await self.db.get(User, payload.instructor_id) if is_valid_uuid(payload.instructor_id) else None
                if not instructor or instructor.role != UserRole.TRAINER:
                    raise ValidationError("Instructor must be a trainer", field="instructorId")

            course = Course(id=generate_uuid(), **payload.model_dump())
            self.db.add(course)
            await self.db.flush()
            data = serialize_course(course)
        return data

    async def enroll_students(self, principal: Principal, course_id: str, student_ids: List[str]) -> Dict[str, Any]:
        """Enroll batch members in a course; already enrolled students are skipped"""
        course = await load_course(self.db, principal, course_id, Action.MANAGE)
        course_id, batch_id = course.id, course.batch_id
        student_ids = list(dict.fromkeys(student_ids))

        async with transaction(self.db, "enroll_students"):
            members = set((await self.db.scalars(
                select(BatchStudent.student_id).where(BatchStudent.batch_id == batch_id)
            )).all())
            outsiders = [s for s in student_ids if s not in members]
            if outsiders:
                raise ValidationError(
                    "Students must belong to the course's batch", field="studentIds"
                )
            enrolled = set((await self.db.scalars(
                select(CourseEnrollment.student_id).where(CourseEnrollment.course_id == course_id)
            )).all())
            added = [s for s in student_ids if s not in enrolled]
            for student_id in added:
                self.db.add(CourseEnrollment(course_id=course_id, student_id=student_id, progress=0))
        return {"courseId": course_id, "enrolled": added, "alreadyEnrolled": len(student_ids) - len(added)}

    async def update_progress(self, principal: Principal, course_id: str, student_id: str,
                              progress: float) -> Dict[str, Any]:
        course = await load_course(self.db, principal, course_id, Action.UPDATE)
        enrollment = await self.db.scalar(
            select(CourseEnrollment).where(
                CourseEnrollment.course_id == course.id, CourseEnrollment.student_id == student_id
            )
        )
        if not enrollment:
            raise conceal(principal, ResourceNotFoundError("Enrollment", student_id))

        async with transaction(self.db, "update_progress"):
            enrollment.progress = progress
            enrollment.last_accessed = datetime.utcnow()
        return {
            "courseId": course.id,
            "studentId": student_id,
            "progress": enrollment.progress,
            "lastAccessed": enrollment.last_accessed,
        }
