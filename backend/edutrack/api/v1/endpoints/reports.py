from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from edutrack.core.config import settings
from edutrack.core.database import get_db
from edutrack.core.exceptions import EduTrackError, ResourceNotFoundError
from edutrack.core.responses import Pagination, paginated, pagination_params, success
from edutrack.models import ReportStatus
from edutrack.modules.auth import Principal
from edutrack.modules.auth.dependencies import get_current_principal
from edutrack.schemas.academic import CommentCreate, ReportFields, ReportStatusUpdate
from edutrack.schemas.base import parse_form
from edutrack.services.report_workflow import ReportWorkflowService
from edutrack.services.storage import REPORT_MIMETYPES, LocalFileStorage, StoredFile, get_storage

router = APIRouter()


async def _store_report(storage: LocalFileStorage, upload: Optional[UploadFile]) -> Optional[StoredFile]:
    if upload is None:
        return None
    return await storage.save(
        "reports",
        upload.filename or "report",
        await upload.read(),
        mimetype=upload.content_type,
        allowed_mimetypes=REPORT_MIMETYPES,
        max_size=settings.MAX_REPORT_UPLOAD_SIZE,
    )


@router.get("")
async def list_reports(
    status_filter: Optional[ReportStatus] = Query(None, alias="status"),
    student_id: Optional[str] = Query(None, alias="studentId"),
    pagination: Pagination = Depends(pagination_params),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    """Reports visible to the caller, newest first"""
    items, total = await ReportWorkflowService(db).list_reports(principal, pagination, status_filter, student_id)
    return paginated(items, pagination, total)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_report(
    student_id: str = Form(..., alias="studentId"),
    title: str = Form(...),
    description: str = Form(...),
    semester: int = Form(...),
    academic_year: str = Form(..., alias="academicYear"),
    report_file: Optional[UploadFile] = File(None, alias="reportFile"),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    storage: LocalFileStorage = Depends(get_storage)
):
    """File a report on behalf of a student (faculty, trainer or admin)"""
    fields = parse_form(ReportFields, {
        "title": title, "description": description, "semester": semester, "academicYear": academic_year,
    })
    stored = await _store_report(storage, report_file)
    try:
        data = await ReportWorkflowService(db).create_for_student(principal, student_id, fields, stored)
    except EduTrackError:
        if stored:
            await storage.delete(stored.key)
        raise
    return success(data, message="Report created")


@router.post("/submit", status_code=status.HTTP_201_CREATED)
async def submit_own_report(
    title: str = Form(...),
    description: str = Form(...),
    semester: int = Form(...),
    academic_year: str = Form(..., alias="academicYear"),
    draft: bool = Form(False),
    report_file: Optional[UploadFile] = File(None, alias="reportFile"),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    storage: LocalFileStorage = Depends(get_storage)
):
    """A student files their own report, optionally as a draft"""
    fields = parse_form(ReportFields, {
        "title": title, "description": description, "semester": semester, "academicYear": academic_year,
    })
    stored = await _store_report(storage, report_file)
    try:
        data = await ReportWorkflowService(db).create_own(principal, fields, stored, draft=draft)
    except EduTrackError:
        if stored:
            await storage.delete(stored.key)
        raise
    return success(data, message="Report submitted")


@router.get("/{report_id}")
async def get_report(
    report_id: str,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    return success(await ReportWorkflowService(db).get_report(principal, report_id))


@router.get("/{report_id}/download")
async def download_report(
    report_id: str,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    storage: LocalFileStorage = Depends(get_storage)
):
    report = await ReportWorkflowService(db).get_report_file(principal, report_id)
    if not await storage.exists(report.file_key):
        raise ResourceNotFoundError("Report file", report_id)
    return FileResponse(
        storage.resolve(report.file_key),
        media_type=report.mimetype or "application/octet-stream",
        filename=report.filename,
    )


@router.put("/{report_id}/status")
async def update_report_status(
    report_id: str,
    payload: ReportStatusUpdate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    """Move a report along its lifecycle"""
    data = await ReportWorkflowService(db).change_status(principal, report_id, payload.status, payload.comment)
    return success(data, message="Report status updated")


@router.post("/{report_id}/comments", status_code=status.HTTP_201_CREATED)
async def add_comment(
    report_id: str,
    payload: CommentCreate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    return success(await ReportWorkflowService(db).add_comment(principal, report_id, payload.text))
