from sqlalchemy import Column, String, Boolean, DateTime, Enum as SQLEnum, JSON
from datetime import datetime
import enum

from edutrack.core.database import Base
from edutrack.core.types import GUID, generate_uuid


class UserRole(str, enum.Enum):
    """User roles"""
    STUDENT = "student"
    TRAINER = "trainer"
    FACULTY = "faculty"
    ADMIN = "admin"
    SUPERADMIN = "superadmin"


# Accounts an admin may not delete
ADMIN_TIER_ROLES = frozenset({UserRole.ADMIN, UserRole.SUPERADMIN})


class User(Base):
    """User model

    Students keep their academic details in the ``students`` table;
    trainer, faculty and admin details live in ``profile`` as a tagged
    document validated by ``edutrack.schemas.user.UserProfile``.
    """
    __tablename__ = "users"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    email = Column(String(255), unique=True, index=True, nullable=False)
    username = Column(String(50), unique=True, index=True, nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    hashed_password = Column(String(255), nullable=False)

    role = Column(SQLEnum(UserRole), default=UserRole.STUDENT, nullable=False, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    college = Column(String(255), nullable=True)

    profile = Column(JSON, nullable=True)

    # Audit
    created_by = Column(GUID, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    last_login = Column(DateTime, nullable=True)
    password_changed_at = Column(DateTime, nullable=True)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self):
        return f"<User {self.username} ({self.role.value if self.role else '-'})>"
