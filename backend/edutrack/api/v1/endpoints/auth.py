from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_
from datetime import datetime

from edutrack.core.database import get_db
from edutrack.core.exceptions import AuthenticationError
from edutrack.core.logging_config import logger, set_user_id
from edutrack.core.responses import success
from edutrack.core.security import verify_password, create_access_token
from edutrack.models import User
from edutrack.modules.auth import Principal
from edutrack.modules.auth.dependencies import get_current_principal, get_current_user
from edutrack.schemas.user import LoginRequest, user_summary

router = APIRouter()


@router.post("/login")
async def login(
    request: Request,
    credentials: LoginRequest,
    db: AsyncSession = Depends(get_db)
):
    """Login with username or email"""
    client_ip = request.client.host if request.client else "unknown"
    identifier = credentials.username.strip().lower()

    result = await db.execute(
        select(User).where(or_(User.username == identifier, User.email == identifier))
    )
    user = result.scalar_one_or_none()

    if not user or not verify_password(credentials.password, user.hashed_password):
        logger.log_auth_event(
            event="login",
            success=False,
            user_email=identifier,
            reason="Invalid credentials",
            client_ip=client_ip
        )
        raise AuthenticationError("Incorrect username or password")

    if not user.is_active:
        logger.log_auth_event(
            event="login",
            success=False,
            user_email=user.email,
            reason="Account inactive",
            client_ip=client_ip
        )
        raise AuthenticationError("Account is inactive")

    user.last_login = datetime.utcnow()
    await db.commit()

    set_user_id(str(user.id))
    access_token = create_access_token({"sub": str(user.id), "role": user.role.value})

    logger.log_auth_event(
        event="login",
        success=True,
        user_email=user.email,
        client_ip=client_ip,
        user_role=user.role.value
    )

    return success({
        "accessToken": access_token,
        "tokenType": "bearer",
        "user": user_summary(user),
    })


@router.get("/me")
async def get_me(
    user: User = Depends(get_current_user),
    principal: Principal = Depends(get_current_principal)
):
    """Current user with resolved scope"""
    data = user_summary(user)
    data["scope"] = {
        "studentId": principal.student_profile_id,
        "rollNumber": principal.roll_number,
        "batchIds": sorted(principal.batch_ids),
        "courseIds": sorted(principal.course_ids),
    }
    return success(data)
