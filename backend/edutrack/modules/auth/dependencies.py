from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from edutrack.core.database import get_db
from edutrack.core.exceptions import AuthenticationError, AuthorizationError
from edutrack.core.logging_config import set_user_id
from edutrack.core.security import decode_token
from edutrack.core.types import is_valid_uuid
from edutrack.models import User, UserRole
from edutrack.modules.auth.principal import Principal, resolve_principal

security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> User:
    """Get current authenticated user"""
    if credentials is None:
        raise AuthenticationError("Not authenticated")

    payload = decode_token(credentials.credentials)

    if payload.get("type") != "access":
        raise AuthenticationError("Invalid token type")

    user_id = payload.get("sub")
    if not user_id or not is_valid_uuid(user_id):
        raise AuthenticationError("Invalid token payload")

    user = await db.get(User, user_id)
    if not user:
        raise AuthenticationError("User not found")

    if not user.is_active:
        raise AuthenticationError("User account is inactive")

    set_user_id(str(user.id))
    return user


async def get_current_principal(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
) -> Principal:
    """Authenticated caller with the associations the gate needs"""
    return await resolve_principal(db, user)


def require_role(*roles: UserRole):
    """Dependency factory: principal must hold one of ``roles``"""
    async def checker(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in roles:
            raise AuthorizationError()
        return principal
    return checker


get_current_admin = require_role(UserRole.ADMIN, UserRole.SUPERADMIN)
get_current_superadmin = require_role(UserRole.SUPERADMIN)
get_current_trainer = require_role(UserRole.TRAINER, UserRole.ADMIN, UserRole.SUPERADMIN)
get_current_faculty = require_role(UserRole.FACULTY, UserRole.ADMIN, UserRole.SUPERADMIN)
