from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from edutrack.core.database import get_db
from edutrack.core.responses import success
from edutrack.modules.auth import Principal
from edutrack.modules.auth.dependencies import get_current_principal
from edutrack.services.aggregation import college_overview, department_performance, student_performance

router = APIRouter()


@router.get("/overview")
async def get_overview(
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    """College-wide summary for the calling faculty member"""
    return success(await college_overview(db, principal))


@router.get("/students/{student_id}/performance")
async def get_student_performance(
    student_id: str,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    return success(await student_performance(db, principal, student_id))


@router.get("/department-performance")
async def get_department_performance(
    college: Optional[str] = Query(None),
    department: Optional[str] = Query(None),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    """Attendance, assignment and report statistics, optionally by date range"""
    return success(await department_performance(db, principal, college, department, start_date, end_date))
