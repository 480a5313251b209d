"""
Data maintenance endpoints.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from edutrack.core.database import get_db, run_bounded
from edutrack.core.responses import success
from edutrack.modules.auth import Principal
from edutrack.modules.auth.dependencies import get_current_superadmin
from edutrack.services.reconciliation import verify_student_projections

router = APIRouter()


@router.get("/reconciliation")
async def get_reconciliation(
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_superadmin)
):
    """Report drift between student users, profiles and batch membership"""
    drifts = await run_bounded(verify_student_projections(db), "reconciliation")
    return success({
        "consistent": not drifts,
        "driftCount": len(drifts),
        "drifts": [d.to_dict() for d in drifts],
    })
