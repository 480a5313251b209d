"""
User schemas.

Role-specific details are a tagged union keyed by ``kind``. Trainer, faculty
and admin variants are stored on the user row; the student variant is a read
projection of the ``students`` table and is never stored on the user.
"""
import re
from typing import Annotated, List, Literal, Optional, Union

from pydantic import AfterValidator, EmailStr, Field, field_validator, model_validator

from edutrack.models import UserRole
from edutrack.schemas.base import CamelModel

ACADEMIC_YEAR_PATTERN = re.compile(r"^\d{4}-\d{4}$")

# Roles an admin may create or assign
ASSIGNABLE_ROLES = (UserRole.STUDENT, UserRole.TRAINER, UserRole.FACULTY)


class StudentProfile(CamelModel):
    kind: Literal["student"] = "student"
    roll_number: str
    department: Optional[str] = None
    semester: Optional[int] = None
    academic_year: Optional[str] = None
    batch_id: Optional[str] = None
    assigned_faculty_id: Optional[str] = None
    phone_number: Optional[str] = None
    gender: Optional[str] = None


class TrainerProfile(CamelModel):
    kind: Literal["trainer"] = "trainer"
    specialization: List[str] = Field(default_factory=list)
    experience: Optional[int] = Field(None, ge=0)
    phone_number: Optional[str] = None


class FacultyProfile(CamelModel):
    kind: Literal["faculty"] = "faculty"
    department: Optional[str] = None
    designation: Optional[str] = None
    phone_number: Optional[str] = None


class AdminProfile(CamelModel):
    kind: Literal["admin"] = "admin"
    department: Optional[str] = None
    phone_number: Optional[str] = None
    permissions: List[str] = Field(default_factory=list)


UserProfile = Annotated[
    Union[StudentProfile, TrainerProfile, FacultyProfile, AdminProfile],
    Field(discriminator="kind"),
]

# Which stored profile variant belongs to which role
PROFILE_KIND_BY_ROLE = {
    UserRole.TRAINER: "trainer",
    UserRole.FACULTY: "faculty",
    UserRole.ADMIN: "admin",
    UserRole.SUPERADMIN: "admin",
}


def validate_academic_year(value: Optional[str]) -> Optional[str]:
    if value is not None and not ACADEMIC_YEAR_PATTERN.match(value):
        raise ValueError("Academic year must look like 2023-2024")
    return value


AcademicYear = Annotated[str, AfterValidator(validate_academic_year)]


class StudentDetails(CamelModel):
    """Academic details supplied when provisioning a student"""
    roll_number: Optional[str] = Field(None, max_length=50)
    department: Optional[str] = Field(None, max_length=100)
    semester: Optional[int] = Field(None, ge=1, le=8)
    academic_year: Optional[AcademicYear] = None
    assigned_faculty_id: Optional[str] = None
    phone_number: Optional[str] = None
    gender: Optional[str] = None


class UserCreate(CamelModel):
    """Single user provisioning request"""
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    role: UserRole
    is_active: bool = True
    college: Optional[str] = None
    batch_id: Optional[str] = None
    batch_ids: Optional[List[str]] = None
    student_details: Optional[StudentDetails] = None
    profile: Optional[Union[TrainerProfile, FacultyProfile, AdminProfile]] = Field(None, discriminator="kind")

    @field_validator("first_name", "last_name")
    @classmethod
    def strip_names(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("role")
    @classmethod
    def role_is_assignable(cls, v: UserRole) -> UserRole:
        if v not in ASSIGNABLE_ROLES:
            raise ValueError("Valid role is required (student, trainer or faculty)")
        return v

    @model_validator(mode="after")
    def profile_matches_role(self):
        if self.profile is not None and self.profile.kind != PROFILE_KIND_BY_ROLE.get(self.role):
            raise ValueError(f"Profile of kind '{self.profile.kind}' does not match role '{self.role.value}'")
        return self


class UserUpdate(CamelModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    role: Optional[UserRole] = None
    is_active: Optional[bool] = None
    college: Optional[str] = None
    batch_id: Optional[str] = None
    batch_ids: Optional[List[str]] = None
    student_details: Optional[StudentDetails] = None
    profile: Optional[Union[TrainerProfile, FacultyProfile, AdminProfile]] = Field(None, discriminator="kind")


class PasswordReset(CamelModel):
    send_email: bool = False


class ProfileUpdate(CamelModel):
    """Contact details a student may edit on their own profile"""
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    phone_number: Optional[str] = Field(None, max_length=20)
    gender: Optional[str] = Field(None, max_length=20)


class AcademicUpdate(CamelModel):
    semester: int = Field(..., ge=1, le=8)
    department: str = Field(..., min_length=1, max_length=100)
    academic_year: AcademicYear


class LoginRequest(CamelModel):
    username: str = Field(..., min_length=1, description="Username or email")
    password: str = Field(..., min_length=1)


def user_summary(user) -> dict:
    """Public representation of a user row"""
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "fullName": user.full_name,
        "role": user.role.value,
        "isActive": user.is_active,
        "college": user.college,
        "profile": user.profile,
        "createdAt": user.created_at,
        "lastLogin": user.last_login,
    }


def student_profile_view(student) -> dict:
    """Student row projected as the ``student`` profile variant"""
    return StudentProfile(
        roll_number=student.roll_number,
        department=student.department,
        semester=student.semester,
        academic_year=student.academic_year,
        batch_id=student.batch_id,
        assigned_faculty_id=student.assigned_faculty_id,
        phone_number=student.phone_number,
        gender=student.gender,
    ).model_dump(by_alias=True)
