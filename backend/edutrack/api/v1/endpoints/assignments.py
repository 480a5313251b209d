from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from edutrack.core.config import settings
from edutrack.core.database import get_db
from edutrack.core.exceptions import EduTrackError, ResourceNotFoundError
from edutrack.core.responses import success
from edutrack.models import ResourceType
from edutrack.modules.auth import Principal
from edutrack.modules.auth.dependencies import get_current_principal
from edutrack.schemas.academic import SubmissionGrade
from edutrack.services.assignments import AssignmentService
from edutrack.services.storage import RESOURCE_MIMETYPES, LocalFileStorage, get_storage

router = APIRouter()


@router.get("/{assignment_id}")
async def get_assignment(
    assignment_id: str,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    return success(await AssignmentService(db).get_assignment(principal, assignment_id))


@router.post("/{assignment_id}/resources", status_code=status.HTTP_201_CREATED)
async def upload_resource(
    assignment_id: str,
    type: ResourceType = Form(...),
    file: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    storage: LocalFileStorage = Depends(get_storage)
):
    """Attach notes or slides to an assignment"""
    stored = await storage.save(
        "resources",
        file.filename or "resource",
        await file.read(),
        mimetype=file.content_type,
        allowed_mimetypes=RESOURCE_MIMETYPES,
        max_size=settings.MAX_RESOURCE_UPLOAD_SIZE,
    )
    try:
        data = await AssignmentService(db, storage).upload_resource(principal, assignment_id, type, stored)
    except EduTrackError:
        await storage.delete(stored.key)
        raise
    return success(data, message="Resource uploaded")


@router.get("/{assignment_id}/resources")
async def list_resources(
    assignment_id: str,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    """Resources with download statistics"""
    return success(await AssignmentService(db).list_resources(principal, assignment_id))


@router.get("/{assignment_id}/resources/{resource_id}/download")
async def download_resource(
    assignment_id: str,
    resource_id: str,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    storage: LocalFileStorage = Depends(get_storage)
):
    resource = await AssignmentService(db, storage).download_resource(principal, assignment_id, resource_id)
    if not await storage.exists(resource.file_key):
        raise ResourceNotFoundError("Resource file", resource_id)
    return FileResponse(
        storage.resolve(resource.file_key),
        media_type=resource.mimetype or "application/octet-stream",
        filename=resource.filename,
    )


@router.post("/{assignment_id}/submissions", status_code=status.HTTP_201_CREATED)
async def submit_assignment(
    assignment_id: str,
    file: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    storage: LocalFileStorage = Depends(get_storage)
):
    """Submit (or resubmit until graded) the caller's work"""
    stored = await storage.save(
        "submissions",
        file.filename or "submission",
        await file.read(),
        mimetype=file.content_type,
        allowed_mimetypes=RESOURCE_MIMETYPES,
        max_size=settings.MAX_REPORT_UPLOAD_SIZE,
    )
    try:
        data = await AssignmentService(db, storage).submit(principal, assignment_id, stored)
    except EduTrackError:
        await storage.delete(stored.key)
        raise
    return success(data, message="Assignment submitted")


@router.get("/{assignment_id}/submissions")
async def list_submissions(
    assignment_id: str,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    return success(await AssignmentService(db).list_submissions(principal, assignment_id))


@router.put("/{assignment_id}/submissions/{submission_id}/grade")
async def grade_submission(
    assignment_id: str,
    submission_id: str,
    payload: SubmissionGrade,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    """Grade a submission (course instructor only)"""
    return success(
        await AssignmentService(db).grade(principal, assignment_id, submission_id, payload),
        message="Submission graded",
    )
