"""
Unit Tests for the authorization gate
"""
import pytest

from edutrack.core.exceptions import AuthorizationError
from edutrack.models import UserRole
from edutrack.modules.auth import (
    Action, Principal, Target, TargetKind, authorize, decide, require_roles,
)


def make_principal(role: UserRole, **kwargs) -> Principal:
    defaults = {
        "id": f"{role.value}-1",
        "role": role,
        "username": role.value,
        "email": f"{role.value}@college.edu",
    }
    defaults.update(kwargs)
    return Principal(**defaults)


def user_target(role: UserRole, target_id: str = "someone") -> Target:
    return Target(kind=TargetKind.USER, id=target_id, role=role)


class TestSuperadminRule:

    @pytest.mark.parametrize("action", list(Action))
    def test_allows_every_action(self, action):
        principal = make_principal(UserRole.SUPERADMIN)

        assert decide(principal, action, user_target(UserRole.ADMIN))
        assert decide(principal, action, Target(kind=TargetKind.SYSTEM))


class TestAdminRule:

    def test_may_delete_students(self):
        admin = make_principal(UserRole.ADMIN)

        assert decide(admin, Action.DELETE, user_target(UserRole.STUDENT))

    @pytest.mark.parametrize("role", [UserRole.ADMIN, UserRole.SUPERADMIN])
    def test_cannot_delete_admin_tier(self, role):
        admin = make_principal(UserRole.ADMIN)

        decision = decide(admin, Action.DELETE, user_target(role))

        assert not decision
        assert decision.reason

    def test_cannot_change_own_role(self):
        admin = make_principal(UserRole.ADMIN)

        assert not decide(admin, Action.CHANGE_ROLE, user_target(UserRole.ADMIN, target_id=admin.id))

    def test_cannot_update_superadmin(self):
        admin = make_principal(UserRole.ADMIN)

        assert not decide(admin, Action.UPDATE, user_target(UserRole.SUPERADMIN))

    def test_system_diagnostics_denied(self):
        admin = make_principal(UserRole.ADMIN)

        assert not decide(admin, Action.VIEW, Target(kind=TargetKind.SYSTEM))
        assert decide(admin, Action.VIEW, Target(kind=TargetKind.ALL))


class TestTrainerRule:

    def test_assigned_batch_allowed(self):
        trainer = make_principal(UserRole.TRAINER, batch_ids=frozenset({"b1"}))

        assert decide(trainer, Action.VIEW, Target(kind=TargetKind.BATCH, id="b1", batch_ids=frozenset({"b1"})))

    def test_other_batch_denied(self):
        trainer = make_principal(UserRole.TRAINER, batch_ids=frozenset({"b1"}))

        assert not decide(trainer, Action.VIEW, Target(kind=TargetKind.BATCH, id="b2", batch_ids=frozenset({"b2"})))

    def test_student_in_assigned_batch_allowed(self):
        trainer = make_principal(UserRole.TRAINER, batch_ids=frozenset({"b1"}))
        target = Target(kind=TargetKind.STUDENT, id="s1", owner_id="s1", batch_ids=frozenset({"b1"}))

        assert decide(trainer, Action.MARK_ATTENDANCE, target)

    def test_taught_course_allowed(self):
        trainer = make_principal(UserRole.TRAINER, course_ids=frozenset({"c1"}))
        target = Target(kind=TargetKind.ASSIGNMENT, id="a1", course_id="c1")

        assert decide(trainer, Action.GRADE, target)

    @pytest.mark.parametrize("action", [Action.MANAGE, Action.DELETE, Action.CHANGE_ROLE, Action.UPDATE_ACADEMIC])
    def test_management_denied_even_in_scope(self, action):
        trainer = make_principal(UserRole.TRAINER, batch_ids=frozenset({"b1"}))
        target = Target(kind=TargetKind.STUDENT, id="s1", batch_ids=frozenset({"b1"}))

        assert not decide(trainer, action, target)


class TestFacultyRule:

    def test_same_college_allowed(self):
        faculty = make_principal(UserRole.FACULTY, college="Engineering College")
        target = Target(kind=TargetKind.STUDENT, id="s1", college="Engineering College")

        assert decide(faculty, Action.VIEW, target)
        assert decide(faculty, Action.UPDATE_ACADEMIC, target)

    def test_assigned_student_in_other_college_allowed(self):
        faculty = make_principal(UserRole.FACULTY, college="Engineering College")
        target = Target(kind=TargetKind.STUDENT, id="s1", college="Arts College", assigned_faculty_id=faculty.id)

        assert decide(faculty, Action.REVIEW, target)

    def test_other_college_denied(self):
        faculty = make_principal(UserRole.FACULTY, college="Engineering College")

        assert not decide(faculty, Action.VIEW, Target(kind=TargetKind.STUDENT, id="s1", college="Arts College"))

    @pytest.mark.parametrize("action", [Action.GRADE, Action.MARK_ATTENDANCE, Action.MANAGE])
    def test_restricted_actions_denied(self, action):
        faculty = make_principal(UserRole.FACULTY, college="Engineering College")
        target = Target(kind=TargetKind.STUDENT, id="s1", college="Engineering College")

        assert not decide(faculty, action, target)


class TestStudentRule:

    def test_own_record_allowed(self):
        student = make_principal(UserRole.STUDENT)

        assert decide(student, Action.VIEW, Target(kind=TargetKind.REPORT, id="r1", owner_id=student.id))
        assert decide(student, Action.SUBMIT, Target(kind=TargetKind.ASSIGNMENT, id="a1", owner_id=student.id))

    def test_other_student_denied(self):
        student = make_principal(UserRole.STUDENT)

        assert not decide(student, Action.VIEW, Target(kind=TargetKind.REPORT, id="r1", owner_id="someone-else"))

    def test_review_of_own_report_denied(self):
        student = make_principal(UserRole.STUDENT)

        assert not decide(student, Action.REVIEW, Target(kind=TargetKind.REPORT, id="r1", owner_id=student.id))


class TestAuthorize:

    def test_denial_raises_generic_error(self):
        student = make_principal(UserRole.STUDENT)

        with pytest.raises(AuthorizationError) as exc_info:
            authorize(student, Action.VIEW, Target(kind=TargetKind.BATCH, id="b1"))

        assert exc_info.value.status_code == 403
        assert exc_info.value.message == "Not authorized to access this resource"

    def test_require_roles(self):
        trainer = make_principal(UserRole.TRAINER)

        require_roles(trainer, UserRole.TRAINER, UserRole.ADMIN)
        with pytest.raises(AuthorizationError):
            require_roles(trainer, UserRole.FACULTY)
