"""
Authorization gate.

``decide`` is a pure function: given a principal, an action and a resolved
target it returns Allow or Deny(reason). Rules are evaluated in precedence
order and the first rule that owns the principal's role decides:

1. superadmin - everything
2. admin      - everything except deleting admin-tier accounts, changing
                their own role, and system-wide diagnostics
3. trainer    - targets inside assigned batches/courses
4. faculty    - students assigned to them or in their college
5. student    - their own records only
6. anything else is denied

A Deny is a normal outcome. ``authorize`` turns it into AuthorizationError
with a fixed message so callers cannot tell which check failed.
"""
import enum
from dataclasses import dataclass, field
from typing import Callable, FrozenSet, List, Optional, Tuple

from edutrack.core.exceptions import AuthorizationError
from edutrack.core.logging_config import logger
from edutrack.models import UserRole, ADMIN_TIER_ROLES
from edutrack.modules.auth.principal import Principal


class Action(str, enum.Enum):
    VIEW = "view"
    UPDATE = "update"          # contact details on a profile
    UPDATE_ACADEMIC = "update_academic"
    CREATE = "create"          # content inside a scope (assignments, reports)
    MANAGE = "manage"          # user, batch and course administration
    DELETE = "delete"
    CHANGE_ROLE = "change_role"
    GRADE = "grade"
    REVIEW = "review"          # faculty/trainer/admin report decisions
    SUBMIT = "submit"          # owner-side lifecycle steps
    COMMENT = "comment"
    MARK_ATTENDANCE = "mark_attendance"


class TargetKind(str, enum.Enum):
    USER = "user"
    STUDENT = "student"
    BATCH = "batch"
    COURSE = "course"
    ASSIGNMENT = "assignment"
    REPORT = "report"
    DEPARTMENT = "department"
    ALL = "all"
    SYSTEM = "system"


@dataclass(frozen=True)
class Target:
    """What an operation touches, with the facts the rules look at"""
    kind: TargetKind
    id: Optional[str] = None
    # USER targets: the account's role
    role: Optional[UserRole] = None
    # The student user a record belongs to (student, report, submission)
    owner_id: Optional[str] = None
    batch_ids: FrozenSet[str] = field(default_factory=frozenset)
    course_id: Optional[str] = None
    assigned_faculty_id: Optional[str] = None
    college: Optional[str] = None


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str = ""

    def __bool__(self) -> bool:
        return self.allowed


ALLOW = Decision(True)


def deny(reason: str) -> Decision:
    return Decision(False, reason)


# Actions that only admin-tier principals perform
MANAGEMENT_ACTIONS = frozenset({Action.MANAGE, Action.DELETE, Action.CHANGE_ROLE})


def _superadmin_rule(principal: Principal, action: Action, target: Target) -> Decision:
    return ALLOW


def _admin_rule(principal: Principal, action: Action, target: Target) -> Decision:
    if target.kind == TargetKind.SYSTEM:
        return deny("system diagnostics are restricted to superadmins")
    if target.kind == TargetKind.USER:
        if action == Action.DELETE and target.role in ADMIN_TIER_ROLES:
            return deny("admins cannot delete admin-tier accounts")
        if action == Action.CHANGE_ROLE and target.id == principal.id:
            return deny("admins cannot change their own role")
        if action in (Action.UPDATE, Action.CHANGE_ROLE) and target.role == UserRole.SUPERADMIN:
            return deny("admins cannot modify superadmin accounts")
    return ALLOW


def _trainer_rule(principal: Principal, action: Action, target: Target) -> Decision:
    if action in MANAGEMENT_ACTIONS or action == Action.UPDATE_ACADEMIC:
        return deny("trainers cannot manage records")
    if action == Action.UPDATE and target.kind in (TargetKind.USER, TargetKind.STUDENT):
        return deny("trainers cannot edit user profiles")
    if target.kind == TargetKind.USER and target.id == principal.id and action == Action.VIEW:
        return ALLOW
    if target.kind == TargetKind.BATCH and target.id in principal.batch_ids:
        return ALLOW
    if target.course_id and target.course_id in principal.course_ids:
        return ALLOW
    if target.kind == TargetKind.COURSE and target.id in principal.course_ids:
        return ALLOW
    if target.batch_ids & principal.batch_ids:
        return ALLOW
    return deny("target is outside the trainer's assigned batches")


def _faculty_rule(principal: Principal, action: Action, target: Target) -> Decision:
    if action in MANAGEMENT_ACTIONS or action in (Action.GRADE, Action.MARK_ATTENDANCE, Action.UPDATE):
        return deny("faculty cannot perform this action")
    if target.kind == TargetKind.USER and target.id == principal.id and action == Action.VIEW:
        return ALLOW
    if target.assigned_faculty_id and target.assigned_faculty_id == principal.id:
        return ALLOW
    if principal.college and target.college == principal.college:
        return ALLOW
    return deny("target is outside the faculty member's college")


STUDENT_ACTIONS = frozenset({Action.VIEW, Action.SUBMIT, Action.COMMENT, Action.UPDATE})


def _student_rule(principal: Principal, action: Action, target: Target) -> Decision:
    if action not in STUDENT_ACTIONS:
        return deny("students cannot perform this action")
    if target.id == principal.id and target.kind == TargetKind.USER:
        return ALLOW
    if target.owner_id and target.owner_id == principal.id:
        return ALLOW
    return deny("students may only access their own records")


RULES: List[Tuple[UserRole, Callable[[Principal, Action, Target], Decision]]] = [
    (UserRole.SUPERADMIN, _superadmin_rule),
    (UserRole.ADMIN, _admin_rule),
    (UserRole.TRAINER, _trainer_rule),
    (UserRole.FACULTY, _faculty_rule),
    (UserRole.STUDENT, _student_rule),
]


def decide(principal: Principal, action: Action, target: Target) -> Decision:
    """Allow or deny ``action`` on ``target`` for ``principal``"""
    for role, rule in RULES:
        if principal.role == role:
            return rule(principal, action, target)
    return deny("no rule grants access")


def authorize(principal: Principal, action: Action, target: Target) -> None:
    """Raise AuthorizationError when the gate denies the request"""
    decision = decide(principal, action, target)
    if not decision:
        logger.warning(
            f"Access denied: {principal.role.value} {principal.id} {action.value} "
            f"{target.kind.value} {target.id or '-'} ({decision.reason})",
            extra={
                "event_type": "access_denied",
                "principal_id": principal.id,
                "action": action.value,
                "target_kind": target.kind.value,
                "target_id": target.id,
                "deny_reason": decision.reason,
            }
        )
        raise AuthorizationError()


def require_roles(principal: Principal, *roles: UserRole) -> None:
    """Coarse role check used by role-specific dashboards"""
    if principal.role not in roles:
        raise AuthorizationError()
