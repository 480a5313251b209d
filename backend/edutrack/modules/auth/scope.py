"""
Target loaders for the authorization gate.

Each loader fetches a record, derives the ``Target`` facts the gate needs and
runs the gate. For scope-restricted principals a missing record raises the
same AuthorizationError as an out-of-scope one, so ids cannot be enumerated;
admin-tier principals get the specific not-found error.
"""
from typing import Optional, Set, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from edutrack.core.exceptions import (
    AuthorizationError,
    ResourceNotFoundError,
    UserNotFoundError,
    StudentNotFoundError,
    BatchNotFoundError,
    CourseNotFoundError,
    AssignmentNotFoundError,
    ReportNotFoundError,
)
from edutrack.core.types import is_valid_uuid
from edutrack.models import (
    User, UserRole, Student, Batch, BatchStudent, Course, Assignment, Report,
)
from edutrack.modules.auth.authorization import Action, Target, TargetKind, authorize
from edutrack.modules.auth.principal import Principal


def conceal(principal: Principal, error: ResourceNotFoundError) -> Exception:
    """Error to raise for a missing target, given who is asking"""
    if principal.is_global:
        return error
    return AuthorizationError()


async def _get(db: AsyncSession, model, record_id: str):
    if not record_id or not is_valid_uuid(record_id):
        return None
    return await db.get(model, record_id)


async def student_batch_ids(db: AsyncSession, user_id: str, profile: Optional[Student]) -> Set[str]:
    """Batches a student belongs to, from both the profile and batch membership"""
    linked = await db.scalars(select(BatchStudent.batch_id).where(BatchStudent.student_id == user_id))
    batch_ids = set(linked.all())
    if profile and profile.batch_id:
        batch_ids.add(profile.batch_id)
    return batch_ids


async def student_target(db: AsyncSession, user: User, profile: Optional[Student],
                         kind: TargetKind = TargetKind.STUDENT, target_id: str = None) -> Target:
    return Target(
        kind=kind,
        id=target_id or user.id,
        role=user.role,
        owner_id=user.id,
        batch_ids=frozenset(await student_batch_ids(db, user.id, profile)),
        assigned_faculty_id=profile.assigned_faculty_id if profile else None,
        college=(profile.college if profile and profile.college else user.college),
    )


async def load_user(db: AsyncSession, principal: Principal, user_id: str,
                    action: Action = Action.VIEW) -> User:
    """Any account, gated as a USER target"""
    user = await _get(db, User, user_id)
    if not user:
        raise conceal(principal, UserNotFoundError(user_id))

    if user.role == UserRole.STUDENT:
        profile = await db.scalar(select(Student).where(Student.user_id == user.id))
        target = await student_target(db, user, profile, kind=TargetKind.USER)
    else:
        target = Target(kind=TargetKind.USER, id=user.id, role=user.role, college=user.college)
    authorize(principal, action, target)
    return user


async def load_student(db: AsyncSession, principal: Principal, user_id: str,
                       action: Action = Action.VIEW) -> Tuple[User, Student]:
    """Student account plus profile, addressed by user id"""
    user = await _get(db, User, user_id)
    profile = None
    if user and user.role == UserRole.STUDENT:
        profile = await db.scalar(select(Student).where(Student.user_id == user.id))
    if not profile:
        raise conceal(principal, StudentNotFoundError(user_id))

    authorize(principal, action, await student_target(db, user, profile))
    return user, profile


async def load_student_profile(db: AsyncSession, principal: Principal, profile_id: str,
                               action: Action = Action.VIEW) -> Tuple[User, Student]:
    """Student account plus profile, addressed by profile id"""
    profile = await _get(db, Student, profile_id)
    user = await _get(db, User, profile.user_id) if profile else None
    if not profile or not user:
        raise conceal(principal, StudentNotFoundError(profile_id))

    authorize(principal, action, await student_target(db, user, profile))
    return user, profile


async def load_batch(db: AsyncSession, principal: Principal, batch_id: str,
                     action: Action = Action.VIEW) -> Batch:
    batch = await _get(db, Batch, batch_id)
    if not batch:
        raise conceal(principal, BatchNotFoundError(batch_id))

    authorize(principal, action, Target(kind=TargetKind.BATCH, id=batch.id, batch_ids=frozenset({batch.id})))
    return batch


def course_target(course: Course) -> Target:
    return Target(
        kind=TargetKind.COURSE,
        id=course.id,
        course_id=course.id,
        batch_ids=frozenset({course.batch_id}) if course.batch_id else frozenset(),
    )


async def load_course(db: AsyncSession, principal: Principal, course_id: str,
                      action: Action = Action.VIEW) -> Course:
    course = await _get(db, Course, course_id)
    if not course:
        raise conceal(principal, CourseNotFoundError(course_id))

    authorize(principal, action, course_target(course))
    return course


async def load_assignment(db: AsyncSession, principal: Principal, assignment_id: str,
                          action: Action = Action.VIEW) -> Tuple[Assignment, Course]:
    """Assignment and its course.

    A student counts as the owner of their own submission slot when the
    course runs in one of their batches.
    """
    assignment = await _get(db, Assignment, assignment_id)
    course = await _get(db, Course, assignment.course_id) if assignment else None
    if not assignment or not course:
        raise conceal(principal, AssignmentNotFoundError(assignment_id))

    owner_id = None
    if principal.role == UserRole.STUDENT and course.batch_id in principal.batch_ids:
        owner_id = principal.id

    target = Target(
        kind=TargetKind.ASSIGNMENT,
        id=assignment.id,
        owner_id=owner_id,
        course_id=course.id,
        batch_ids=frozenset({course.batch_id}) if course.batch_id else frozenset(),
    )
    authorize(principal, action, target)
    return assignment, course


async def load_report(db: AsyncSession, principal: Principal, report_id: str,
                      action: Action = Action.VIEW) -> Tuple[Report, Student, User]:
    """Report with the student profile and account it belongs to"""
    report = await _get(db, Report, report_id)
    profile = await _get(db, Student, report.student_id) if report else None
    user = await _get(db, User, profile.user_id) if profile else None
    if not report or not profile or not user:
        raise conceal(principal, ReportNotFoundError(report_id))

    target = await student_target(db, user, profile, kind=TargetKind.REPORT, target_id=report.id)
    authorize(principal, action, target)
    return report, profile, user


def authorize_department(principal: Principal, college: Optional[str],
                         action: Action = Action.VIEW) -> None:
    """Department views are scoped by the college they belong to"""
    authorize(principal, action, Target(kind=TargetKind.DEPARTMENT, college=college))
