"""
Principal resolution.

A Principal is the authenticated caller plus the associations the
authorization gate needs to decide scope: a student's profile and batch,
a trainer's batches and courses. It is resolved once per request.
"""
from dataclasses import dataclass, field
from typing import FrozenSet, Optional

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from edutrack.models import User, UserRole, Student, BatchTrainer, BatchStudent, Course


@dataclass(frozen=True)
class Principal:
    id: str
    role: UserRole
    username: str
    email: str
    first_name: str = ""
    last_name: str = ""
    college: Optional[str] = None

    # Students
    student_profile_id: Optional[str] = None
    roll_number: Optional[str] = None

    # Students: their batch. Trainers: assigned batches.
    batch_ids: FrozenSet[str] = field(default_factory=frozenset)
    # Trainers: courses they teach or that run in their batches
    course_ids: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_global(self) -> bool:
        """Admin-tier principals see every record"""
        return self.role in (UserRole.ADMIN, UserRole.SUPERADMIN)


async def resolve_principal(db: AsyncSession, user: User) -> Principal:
    """Build the Principal for an authenticated user"""
    student_profile_id = None
    roll_number = None
    batch_ids: FrozenSet[str] = frozenset()
    course_ids: FrozenSet[str] = frozenset()

    if user.role == UserRole.STUDENT:
        student = await db.scalar(select(Student).where(Student.user_id == user.id))
        linked = await db.scalars(
            select(BatchStudent.batch_id).where(BatchStudent.student_id == user.id)
        )
        batch_set = set(linked.all())
        if student:
            student_profile_id = student.id
            roll_number = student.roll_number
            if student.batch_id:
                batch_set.add(student.batch_id)
        batch_ids = frozenset(batch_set)

    elif user.role == UserRole.TRAINER:
        assigned = await db.scalars(
            select(BatchTrainer.batch_id).where(BatchTrainer.trainer_id == user.id)
        )
        batch_ids = frozenset(assigned.all())
        conditions = [Course.instructor_id == user.id]
        if batch_ids:
            conditions.append(Course.batch_id.in_(batch_ids))
        courses = await db.scalars(select(Course.id).where(or_(*conditions)))
        course_ids = frozenset(courses.all())

    return Principal(
        id=user.id,
        role=user.role,
        username=user.username,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        college=user.college,
        student_profile_id=student_profile_id,
        roll_number=roll_number,
        batch_ids=batch_ids,
        course_ids=course_ids,
    )
