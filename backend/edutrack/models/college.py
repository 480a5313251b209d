from sqlalchemy import Column, String, Boolean, DateTime
from datetime import datetime

from edutrack.core.database import Base
from edutrack.core.types import GUID, generate_uuid


class College(Base):
    """College/Institution model"""
    __tablename__ = "colleges"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    name = Column(String(255), unique=True, nullable=False)
    code = Column(String(50), unique=True, nullable=False)

    # Department performance additionally groups by semester when set
    semester_breakdown_enabled = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<College {self.code}>"
