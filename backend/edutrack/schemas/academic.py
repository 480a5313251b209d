from datetime import date
from typing import List, Optional

from pydantic import Field, field_validator, model_validator

from edutrack.models import AttendanceStatus, CourseStatus, ReportStatus, ResourceType
from edutrack.schemas.base import CamelModel, UTCDateTime
from edutrack.schemas.user import AcademicYear


# ==================== Batches ====================

class BatchCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    code: str = Field(..., min_length=1, max_length=50)
    start_date: UTCDateTime
    end_date: UTCDateTime
    is_active: bool = True
    max_students: int = Field(30, ge=1)
    tags: List[str] = Field(default_factory=list)
    trainer_ids: List[str] = Field(default_factory=list)

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        return v.strip().upper()

    @model_validator(mode="after")
    def end_after_start(self):
        if self.end_date <= self.start_date:
            raise ValueError("End date must be after start date")
        return self


class BatchUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    start_date: Optional[UTCDateTime] = None
    end_date: Optional[UTCDateTime] = None
    is_active: Optional[bool] = None
    max_students: Optional[int] = Field(None, ge=1)
    tags: Optional[List[str]] = None


class TrainerAssignment(CamelModel):
    trainer_ids: List[str]


# ==================== Courses ====================

class CourseCreate(CamelModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    instructor_id: Optional[str] = None
    batch_id: str
    start_date: Optional[UTCDateTime] = None
    end_date: Optional[UTCDateTime] = None
    status: CourseStatus = CourseStatus.UPCOMING

    @model_validator(mode="after")
    def end_after_start(self):
        if self.start_date and self.end_date and self.end_date <= self.start_date:
            raise ValueError("End date must be after start date")
        return self


class EnrollmentCreate(CamelModel):
    student_ids: List[str] = Field(..., min_length=1)


class ProgressUpdate(CamelModel):
    progress: float = Field(..., ge=0, le=100)


# ==================== Assignments ====================

class AssignmentCreate(CamelModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    due_date: UTCDateTime
    total_points: int = Field(..., gt=0)
    allowed_resource_types: List[ResourceType] = Field(default_factory=lambda: [ResourceType.NOTES, ResourceType.PPT])


class SubmissionGrade(CamelModel):
    grade: float = Field(..., ge=0)
    feedback: Optional[str] = Field(None, max_length=5000)


# ==================== Attendance ====================

class AttendanceMark(CamelModel):
    student_id: str
    course_id: str
    date: date
    status: AttendanceStatus
    remarks: Optional[str] = Field(None, max_length=500)


# ==================== Reports ====================

class ReportFields(CamelModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    semester: int = Field(..., ge=1, le=8)
    academic_year: AcademicYear


class ReportStatusUpdate(CamelModel):
    status: ReportStatus
    comment: Optional[str] = Field(None, max_length=500)


class CommentCreate(CamelModel):
    text: str = Field(..., min_length=1, max_length=1000)

    @field_validator("text")
    @classmethod
    def strip_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Comment text is required")
        return v
