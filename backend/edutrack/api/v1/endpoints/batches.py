from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from edutrack.core.database import get_db
from edutrack.core.responses import Pagination, paginated, pagination_params, success
from edutrack.modules.auth import Principal
from edutrack.modules.auth.dependencies import get_current_principal
from edutrack.schemas.academic import BatchCreate, BatchUpdate, TrainerAssignment
from edutrack.services.aggregation import batch_overview
from edutrack.services.batches import BatchService

router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_batch(
    payload: BatchCreate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    """Create a batch (admin)"""
    return success(await BatchService(db).create_batch(principal, payload), message="Batch created")


@router.get("")
async def list_batches(
    is_active: Optional[bool] = Query(None, alias="isActive"),
    pagination: Pagination = Depends(pagination_params),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    """Batches visible to the caller"""
    items, total = await BatchService(db).list_batches(principal, pagination, is_active)
    return paginated(items, pagination, total)


@router.get("/{batch_id}")
async def get_batch(
    batch_id: str,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    return success(await BatchService(db).get_batch(principal, batch_id))


@router.put("/{batch_id}")
async def update_batch(
    batch_id: str,
    payload: BatchUpdate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    return success(await BatchService(db).update_batch(principal, batch_id, payload))


@router.put("/{batch_id}/trainers")
async def assign_trainers(
    batch_id: str,
    payload: TrainerAssignment,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    """Replace the batch's trainers"""
    return success(await BatchService(db).assign_trainers(principal, batch_id, payload.trainer_ids))


@router.get("/{batch_id}/overview")
async def get_batch_overview(
    batch_id: str,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    """Course and student progress for one batch"""
    return success(await batch_overview(db, principal, batch_id))
