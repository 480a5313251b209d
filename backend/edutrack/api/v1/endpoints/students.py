from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from edutrack.core.database import get_db
from edutrack.core.responses import Pagination, paginated, pagination_params, success
from edutrack.modules.auth import Principal
from edutrack.modules.auth.dependencies import get_current_principal
from edutrack.schemas.user import AcademicUpdate, ProfileUpdate
from edutrack.services.students import StudentService

router = APIRouter()


@router.get("")
async def list_students(
    search: Optional[str] = Query(None),
    batch_id: Optional[str] = Query(None, alias="batchId"),
    department: Optional[str] = Query(None),
    semester: Optional[int] = Query(None, ge=1, le=8),
    pagination: Pagination = Depends(pagination_params),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    """Students visible to the caller"""
    items, total = await StudentService(db).list_students(
        principal, pagination, search=search, batch_id=batch_id, department=department, semester=semester
    )
    return paginated(items, pagination, total)


@router.get("/me")
async def get_my_profile(
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    return success(await StudentService(db).get_profile(principal, principal.id))


@router.get("/roll/{roll_number}")
async def get_by_roll_number(
    roll_number: str,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    return success(await StudentService(db).get_by_roll_number(principal, roll_number))


@router.get("/{student_id}")
async def get_student(
    student_id: str,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    return success(await StudentService(db).get_profile(principal, student_id))


@router.put("/{student_id}/profile")
async def update_profile(
    student_id: str,
    payload: ProfileUpdate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    """Contact details (the student themselves or an admin)"""
    return success(await StudentService(db).update_profile(principal, student_id, payload))


@router.put("/{student_id}/academic")
async def update_academic(
    student_id: str,
    payload: AcademicUpdate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    return success(await StudentService(db).update_academic(principal, student_id, payload))


@router.get("/{student_id}/performance")
async def get_performance(
    student_id: str,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    """Reports grouped by semester"""
    return success(await StudentService(db).performance(principal, student_id))
