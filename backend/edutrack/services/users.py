"""
User directory for admin screens.
"""
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from edutrack.core.database import run_bounded
from edutrack.core.responses import Pagination
from edutrack.models import BatchTrainer, Student, User, UserRole
from edutrack.modules.auth import Action, Principal, Target, TargetKind, authorize
from edutrack.modules.auth.scope import load_user
from edutrack.schemas.user import student_profile_view, user_summary


async def list_users(db: AsyncSession, principal: Principal, pagination: Pagination,
                     role: Optional[UserRole] = None, is_active: Optional[bool] = None,
                     search: Optional[str] = None) -> Tuple[List[Dict[str, Any]], int]:
    """Paginated account listing; admins never see superadmin accounts"""
    authorize(principal, Action.MANAGE, Target(kind=TargetKind.USER))

    query = select(User)
    if principal.role != UserRole.SUPERADMIN:
        query = query.where(User.role != UserRole.SUPERADMIN)
    if role is not None:
        query = query.where(User.role == role)
    if is_active is not None:
        query = query.where(User.is_active == is_active)
    if search:
        term = f"%{search.strip()}%"
        query = query.where(or_(
            User.first_name.ilike(term),
            User.last_name.ilike(term),
            User.email.ilike(term),
            User.username.ilike(term),
        ))

    total = await run_bounded(db.scalar(select(func.count()).select_from(query.subquery())), "count_users")
    result = await run_bounded(
        db.scalars(query.order_by(User.created_at.desc()).offset(pagination.offset).limit(pagination.limit)),
        "list_users",
    )
    return [user_summary(u) for u in result.all()], total


async def get_user(db: AsyncSession, principal: Principal, user_id: str) -> Dict[str, Any]:
    user = await load_user(db, principal, user_id)
    data = user_summary(user)
    if user.role == UserRole.STUDENT:
        profile = await db.scalar(select(Student).where(Student.user_id == user.id))
        data["studentInfo"] = student_profile_view(profile) if profile else None
    elif user.role == UserRole.TRAINER:
        batch_ids = await db.scalars(select(BatchTrainer.batch_id).where(BatchTrainer.trainer_id == user.id))
        data["batchIds"] = list(batch_ids.all())
    return data
