from sqlalchemy import Column, String, DateTime, Integer, CheckConstraint
from datetime import datetime

from edutrack.core.database import Base
from edutrack.core.types import GUID, generate_uuid


class Student(Base):
    """Academic profile of a student user.

    This row is the authoritative copy of a student's academic details;
    ``User.student_info`` style views are read projections built from it.
    ``batch_id`` mirrors the student's row in ``batch_students`` and both are
    written in the same transaction.
    """
    __tablename__ = "students"
    __table_args__ = (
        CheckConstraint("semester >= 1 AND semester <= 8", name="ck_students_semester"),
    )

    id = Column(GUID, primary_key=True, default=generate_uuid)
    user_id = Column(GUID, unique=True, index=True, nullable=False)
    roll_number = Column(String(50), unique=True, index=True, nullable=False)
    department = Column(String(100), nullable=True, index=True)
    semester = Column(Integer, nullable=True)
    academic_year = Column(String(9), nullable=True)
    college = Column(String(255), nullable=True, index=True)
    phone_number = Column(String(20), nullable=True)
    gender = Column(String(20), nullable=True)
    admission_date = Column(DateTime, nullable=True)

    assigned_faculty_id = Column(GUID, nullable=True, index=True)
    batch_id = Column(GUID, nullable=True, index=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<Student {self.roll_number}>"
