from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from edutrack.core.database import get_db
from edutrack.core.responses import success
from edutrack.modules.auth import Principal
from edutrack.modules.auth.dependencies import get_current_principal
from edutrack.schemas.academic import AssignmentCreate, CourseCreate, EnrollmentCreate, ProgressUpdate
from edutrack.services.assignments import AssignmentService
from edutrack.services.batches import CourseService

router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_course(
    payload: CourseCreate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    """Create a course inside a batch (admin)"""
    return success(await CourseService(db).create_course(principal, payload), message="Course created")


@router.post("/{course_id}/enrollments")
async def enroll_students(
    course_id: str,
    payload: EnrollmentCreate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    return success(await CourseService(db).enroll_students(principal, course_id, payload.student_ids))


@router.put("/{course_id}/students/{student_id}/progress")
async def update_progress(
    course_id: str,
    student_id: str,
    payload: ProgressUpdate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    return success(await CourseService(db).update_progress(principal, course_id, student_id, payload.progress))


@router.get("/{course_id}/assignments")
async def list_course_assignments(
    course_id: str,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    return success(await AssignmentService(db).list_course_assignments(principal, course_id))


@router.post("/{course_id}/assignments", status_code=status.HTTP_201_CREATED)
async def create_assignment(
    course_id: str,
    payload: AssignmentCreate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    """Create an assignment (course instructor)"""
    return success(
        await AssignmentService(db).create_assignment(principal, course_id, payload),
        message="Assignment created",
    )
