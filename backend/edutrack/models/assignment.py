from sqlalchemy import (
    Column, String, DateTime, Integer, Float, Text, JSON, BigInteger,
    Enum as SQLEnum, ForeignKey, UniqueConstraint,
)
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from edutrack.core.database import Base
from edutrack.core.types import GUID, generate_uuid


class ResourceType(str, enum.Enum):
    NOTES = "notes"
    PPT = "ppt"


class SubmissionStatus(str, enum.Enum):
    SUBMITTED = "submitted"
    LATE = "late"
    GRADED = "graded"


class Assignment(Base):
    """Assignment belonging to a course"""
    __tablename__ = "assignments"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    course_id = Column(GUID, nullable=False, index=True)
    due_date = Column(DateTime, nullable=False)
    total_points = Column(Integer, nullable=False)
    # Resource types trainers may attach, e.g. ["notes", "ppt"]
    allowed_resource_types = Column(JSON, default=list)

    created_by = Column(GUID, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    resources = relationship(
        "AssignmentResource", back_populates="assignment", cascade="all, delete-orphan", lazy="selectin"
    )
    submissions = relationship(
        "Submission", back_populates="assignment", cascade="all, delete-orphan", lazy="selectin"
    )

    def submission_for(self, student_id: str):
        for submission in self.submissions:
            if submission.student_id == student_id:
                return submission
        return None

    def __repr__(self):
        return f"<Assignment {self.title}>"


class AssignmentResource(Base):
    """Trainer-uploaded material (notes / slides) for an assignment"""
    __tablename__ = "assignment_resources"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    assignment_id = Column(GUID, ForeignKey("assignments.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(SQLEnum(ResourceType), nullable=False)
    file_key = Column(String(500), nullable=False)
    filename = Column(String(255), nullable=False)
    mimetype = Column(String(100), nullable=True)
    size = Column(BigInteger, default=0)
    uploaded_by = Column(GUID, nullable=False)
    uploaded_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    download_count = Column(Integer, default=0, nullable=False)
    last_downloaded_at = Column(DateTime, nullable=True)

    assignment = relationship("Assignment", back_populates="resources")


class Submission(Base):
    """A student's attempt at an assignment"""
    __tablename__ = "submissions"
    __table_args__ = (UniqueConstraint("assignment_id", "student_id", name="uq_submission_student"),)

    id = Column(GUID, primary_key=True, default=generate_uuid)
    assignment_id = Column(GUID, ForeignKey("assignments.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(GUID, nullable=False, index=True)
    submitted_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    file_key = Column(String(500), nullable=True)
    filename = Column(String(255), nullable=True)
    grade = Column(Float, nullable=True)
    feedback = Column(Text, nullable=True)
    status = Column(SQLEnum(SubmissionStatus), default=SubmissionStatus.SUBMITTED, nullable=False)
    graded_at = Column(DateTime, nullable=True)
    graded_by = Column(GUID, nullable=True)

    assignment = relationship("Assignment", back_populates="submissions")
    download_history = relationship(
        "SubmissionDownload", back_populates="submission", cascade="all, delete-orphan", lazy="selectin"
    )

    def has_downloaded(self, resource_id: str) -> bool:
        return any(entry.resource_id == resource_id for entry in self.download_history)


class SubmissionDownload(Base):
    """First download of a resource by the submitting student"""
    __tablename__ = "submission_downloads"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    submission_id = Column(GUID, ForeignKey("submissions.id", ondelete="CASCADE"), nullable=False, index=True)
    resource_id = Column(GUID, nullable=False)
    downloaded_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    submission = relationship("Submission", back_populates="download_history")
