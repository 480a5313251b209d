from sqlalchemy import Column, String, Boolean, DateTime, Integer, Text, JSON, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
import math

from edutrack.core.database import Base
from edutrack.core.types import GUID, generate_uuid


class Batch(Base):
    """A cohort of students taught by one or more trainers"""
    __tablename__ = "batches"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    code = Column(String(50), unique=True, index=True, nullable=False)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    max_students = Column(Integer, default=30, nullable=False)
    tags = Column(JSON, default=list)

    created_by = Column(GUID, nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    trainer_links = relationship(
        "BatchTrainer", back_populates="batch", cascade="all, delete-orphan", lazy="selectin"
    )
    student_links = relationship(
        "BatchStudent", back_populates="batch", cascade="all, delete-orphan", lazy="selectin"
    )

    @property
    def trainer_ids(self) -> list:
        return [link.trainer_id for link in self.trainer_links]

    @property
    def student_ids(self) -> list:
        return [link.student_id for link in self.student_links]

    @property
    def duration_weeks(self) -> int:
        return duration_weeks(self.start_date, self.end_date)

    def __repr__(self):
        return f"<Batch {self.code}>"


def duration_weeks(start: datetime, end: datetime) -> int:
    """Whole weeks spanned by a date range, rounded up"""
    seconds = abs((end - start).total_seconds())
    return math.ceil(seconds / (7 * 24 * 60 * 60))


class BatchTrainer(Base):
    """Trainer assigned to a batch"""
    __tablename__ = "batch_trainers"
    __table_args__ = (UniqueConstraint("batch_id", "trainer_id", name="uq_batch_trainer"),)

    id = Column(GUID, primary_key=True, default=generate_uuid)
    batch_id = Column(GUID, ForeignKey("batches.id", ondelete="CASCADE"), nullable=False, index=True)
    trainer_id = Column(GUID, nullable=False, index=True)

    batch = relationship("Batch", back_populates="trainer_links")


class BatchStudent(Base):
    """Student enrolled in a batch"""
    __tablename__ = "batch_students"
    __table_args__ = (UniqueConstraint("batch_id", "student_id", name="uq_batch_student"),)

    id = Column(GUID, primary_key=True, default=generate_uuid)
    batch_id = Column(GUID, ForeignKey("batches.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(GUID, nullable=False, index=True)

    batch = relationship("Batch", back_populates="student_links")
