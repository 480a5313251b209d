from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from edutrack.core.database import get_db
from edutrack.core.responses import success
from edutrack.modules.auth import Principal
from edutrack.modules.auth.dependencies import get_current_principal
from edutrack.schemas.academic import AttendanceMark
from edutrack.services.attendance import AttendanceService

router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def mark_attendance(
    payload: AttendanceMark,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    """Mark one student's attendance for a course and day"""
    return success(await AttendanceService(db).mark(principal, payload), message="Attendance marked")


@router.get("/students/{student_id}")
async def student_month(
    student_id: str,
    year: int = Query(...),
    month: int = Query(...),
    course_id: Optional[str] = Query(None, alias="courseId"),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    """Monthly attendance rows for one student"""
    return success(await AttendanceService(db).student_month(principal, student_id, year, month, course_id))


@router.get("/batches/{batch_id}")
async def batch_month(
    batch_id: str,
    year: int = Query(...),
    month: int = Query(...),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    return success(await AttendanceService(db).batch_month(principal, batch_id, year, month))
