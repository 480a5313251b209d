from sqlalchemy import Column, String, DateTime, Integer, Text, BigInteger, Enum as SQLEnum, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from edutrack.core.database import Base
from edutrack.core.types import GUID, generate_uuid


class ReportStatus(str, enum.Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    REVIEWED = "reviewed"
    APPROVED = "approved"
    REJECTED = "rejected"
    NEEDS_REVISION = "needs_revision"


class Report(Base):
    """Academic report filed for a student profile"""
    __tablename__ = "reports"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    student_id = Column(GUID, nullable=False, index=True)  # students.id
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    semester = Column(Integer, nullable=False)
    academic_year = Column(String(9), nullable=False)

    # Attached file descriptor; bytes live in file storage
    file_key = Column(String(500), nullable=True)
    filename = Column(String(255), nullable=True)
    mimetype = Column(String(100), nullable=True)
    size = Column(BigInteger, nullable=True)

    status = Column(SQLEnum(ReportStatus), default=ReportStatus.SUBMITTED, nullable=False, index=True)
    submission_date = Column(DateTime, default=datetime.utcnow, nullable=False)
    created_by = Column(GUID, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    status_history = relationship(
        "ReportStatusChange",
        back_populates="report",
        cascade="all, delete-orphan",
        order_by="ReportStatusChange.sequence",
        lazy="selectin",
    )
    comments = relationship(
        "ReportComment",
        back_populates="report",
        cascade="all, delete-orphan",
        order_by="ReportComment.created_at",
        lazy="selectin",
    )

    def __repr__(self):
        return f"<Report {self.title} ({self.status.value if self.status else '-'})>"


class ReportStatusChange(Base):
    """Append-only status history entry"""
    __tablename__ = "report_status_history"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    report_id = Column(GUID, ForeignKey("reports.id", ondelete="CASCADE"), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)
    status = Column(SQLEnum(ReportStatus), nullable=False)
    changed_by = Column(GUID, nullable=False)
    changed_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    comment = Column(String(500), nullable=True)

    report = relationship("Report", back_populates="status_history")


class ReportComment(Base):
    """Comment thread entry on a report"""
    __tablename__ = "report_comments"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    report_id = Column(GUID, ForeignKey("reports.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(GUID, nullable=False)
    text = Column(String(1000), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, nullable=True)

    report = relationship("Report", back_populates="comments")
