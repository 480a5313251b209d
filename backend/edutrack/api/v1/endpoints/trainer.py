from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from edutrack.core.database import get_db
from edutrack.core.responses import success
from edutrack.modules.auth import Principal
from edutrack.modules.auth.dependencies import get_current_principal
from edutrack.services.aggregation import trainer_batches, trainer_dashboard

router = APIRouter()


@router.get("/dashboard")
async def get_dashboard(
    batch_id: Optional[str] = Query(None, alias="batchId"),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    """Courses, upcoming assignments and recent submissions"""
    return success(await trainer_dashboard(db, principal, batch_id))


@router.get("/batches")
async def get_batches(
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    return success(await trainer_batches(db, principal))
