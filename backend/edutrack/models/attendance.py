from sqlalchemy import Column, String, DateTime, Date, Text, Enum as SQLEnum, UniqueConstraint
from datetime import datetime
import enum

from edutrack.core.database import Base
from edutrack.core.types import GUID, generate_uuid


class AttendanceStatus(str, enum.Enum):
    PRESENT = "present"
    ABSENT = "absent"
    LATE = "late"
    EXCUSED = "excused"


class Attendance(Base):
    """One attendance mark per student, course and day"""
    __tablename__ = "attendance"
    __table_args__ = (
        UniqueConstraint("student_id", "course_id", "date", name="uq_attendance_student_course_date"),
    )

    id = Column(GUID, primary_key=True, default=generate_uuid)
    student_id = Column(GUID, nullable=False, index=True)
    course_id = Column(GUID, nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    status = Column(SQLEnum(AttendanceStatus), nullable=False)
    marked_by = Column(GUID, nullable=False)
    college = Column(String(255), nullable=False, index=True)
    remarks = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
