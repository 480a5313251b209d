from sqlalchemy import Column, String, Boolean, DateTime, Float, Text, Enum as SQLEnum, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from edutrack.core.database import Base
from edutrack.core.types import GUID, generate_uuid


class CourseStatus(str, enum.Enum):
    UPCOMING = "upcoming"
    ONGOING = "ongoing"
    COMPLETED = "completed"


class Course(Base):
    """Course taught within a batch"""
    __tablename__ = "courses"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    instructor_id = Column(GUID, nullable=True, index=True)
    batch_id = Column(GUID, nullable=True, index=True)
    start_date = Column(DateTime, nullable=True)
    end_date = Column(DateTime, nullable=True)
    status = Column(SQLEnum(CourseStatus), default=CourseStatus.UPCOMING, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    enrollments = relationship(
        "CourseEnrollment", back_populates="course", cascade="all, delete-orphan", lazy="selectin"
    )

    def __repr__(self):
        return f"<Course {self.title}>"


class CourseEnrollment(Base):
    """A student's progress in a course (0-100)"""
    __tablename__ = "course_enrollments"
    __table_args__ = (UniqueConstraint("course_id", "student_id", name="uq_course_student"),)

    id = Column(GUID, primary_key=True, default=generate_uuid)
    course_id = Column(GUID, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(GUID, nullable=False, index=True)
    progress = Column(Float, default=0, nullable=False)
    enrolled_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    last_accessed = Column(DateTime, nullable=True)

    course = relationship("Course", back_populates="enrollments")
