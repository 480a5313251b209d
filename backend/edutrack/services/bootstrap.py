"""
Startup bootstrap: make sure a superadmin account exists.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from edutrack.core.config import settings
from edutrack.core.database import transaction
from edutrack.core.logging_config import logger
from edutrack.core.security import get_password_hash
from edutrack.core.types import generate_uuid
from edutrack.models import User, UserRole
from edutrack.services.credentials import generate_strong_password

DEFAULT_SUPERADMIN_USERNAME = "superadmin"


async def ensure_default_superadmin(db: AsyncSession) -> Optional[str]:
    """
    Create the first superadmin when none exists.

    Returns the new account's id, or None when a superadmin was already
    present. Safe to run on every startup.
    """
    existing = await db.scalar(select(func.count(User.id)).where(User.role == UserRole.SUPERADMIN))
    if existing:
        logger.info("[Startup] Superadmin account present")
        return None

    email = settings.BOOTSTRAP_SUPERADMIN_EMAIL.lower()
    password = settings.BOOTSTRAP_SUPERADMIN_PASSWORD
    generated = not password
    if generated:
        password = generate_strong_password(settings.RESET_PASSWORD_LENGTH)

    async with transaction(db, "bootstrap_superadmin"):
        clash = await db.scalar(
            select(func.count(User.id)).where(
                or_(User.email == email, User.username == DEFAULT_SUPERADMIN_USERNAME)
            )
        )
        username = DEFAULT_SUPERADMIN_USERNAME if not clash else f"superadmin_{generate_uuid()[:8]}"
        user = User(
            id=generate_uuid(),
            email=email if not clash else f"{username}@{settings.DEFAULT_EMAIL_DOMAIN}",
            username=username,
            first_name="Super",
            last_name="Admin",
            hashed_password=get_password_hash(password),
            role=UserRole.SUPERADMIN,
            is_active=True,
            created_at=datetime.utcnow(),
        )
        db.add(user)
        await db.flush()
        user_id = user.id
        login = user.username

    if generated:
        logger.warning(
            f"[Startup] Created superadmin '{login}' with generated password: {password} "
            "(change it after first login)",
            extra={"event_type": "bootstrap_superadmin"},
        )
    else:
        logger.info(f"[Startup] Created superadmin '{login}'", extra={"event_type": "bootstrap_superadmin"})
    return user_id
