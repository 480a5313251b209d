"""
Admin dashboard views.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from edutrack.core.database import get_db
from edutrack.core.responses import success
from edutrack.modules.auth import Principal
from edutrack.modules.auth.dependencies import get_current_admin, get_current_superadmin
from edutrack.services.aggregation import superadmin_batches, system_health, system_overview

router = APIRouter()


@router.get("/overview")
async def get_overview(
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_admin)
):
    """User, batch, course and assignment totals"""
    return success(await system_overview(db, principal))


@router.get("/batches")
async def get_batches(
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_superadmin)
):
    return success(await superadmin_batches(db, principal))


@router.get("/system-health")
async def get_system_health(
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_superadmin)
):
    """Storage and process diagnostics (superadmin)"""
    return success(await system_health(db, principal))
