"""
Admin user management: listing, provisioning, updates, password resets
and deletion.
"""
from typing import Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile, status
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from edutrack.core.config import settings
from edutrack.core.database import get_db
from edutrack.core.exceptions import ValidationError
from edutrack.core.responses import Pagination, paginated, pagination_params, success
from edutrack.models import UserRole
from edutrack.modules.auth import Principal
from edutrack.modules.auth.dependencies import get_current_admin
from edutrack.schemas.user import PasswordReset, UserCreate, UserUpdate
from edutrack.services.provisioning import ProvisioningService
from edutrack.services.tabular import XLSX_MEDIA_TYPE, build_user_template, parse_user_rows
from edutrack.services.user_deletion import UserDeletionService
from edutrack.services.users import get_user, list_users

router = APIRouter()


@router.get("")
async def list_all_users(
    role: Optional[UserRole] = Query(None),
    is_active: Optional[bool] = Query(None, alias="isActive"),
    search: Optional[str] = Query(None),
    pagination: Pagination = Depends(pagination_params),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_admin)
):
    """List users with filtering and pagination"""
    items, total = await list_users(db, principal, pagination, role=role, is_active=is_active, search=search)
    return paginated(items, pagination, total)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_user(
    payload: UserCreate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_admin)
):
    """Provision one account; generated credentials are returned once"""
    return success(await ProvisioningService(db).create_user(principal, payload), message="User created")


@router.post("/bulk", status_code=status.HTTP_201_CREATED)
async def bulk_create_users(
    file: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_admin)
):
    """Provision accounts from a .csv or .xlsx upload, one row per user"""
    content = await file.read()
    if len(content) > settings.MAX_BULK_UPLOAD_SIZE:
        raise ValidationError(
            f"File size cannot exceed {settings.MAX_BULK_UPLOAD_SIZE // (1024 * 1024)}MB", field="file"
        )
    rows = parse_user_rows(file.filename or "", content)
    if not rows:
        raise ValidationError("The uploaded file has no data rows", field="file")

    result = await ProvisioningService(db).bulk_create(principal, rows)
    summary = result["summary"]
    return success(result, message=f"{summary['succeeded']} of {summary['total']} users created")


@router.get("/template")
async def download_user_template(
    principal: Principal = Depends(get_current_admin)
):
    """XLSX template for bulk provisioning, with one sample row per role"""
    return Response(
        content=build_user_template(),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": "attachment; filename=user_upload_template.xlsx"},
    )


@router.get("/{user_id}")
async def get_user_detail(
    user_id: str,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_admin)
):
    return success(await get_user(db, principal, user_id))


@router.put("/{user_id}")
async def update_user(
    user_id: str,
    payload: UserUpdate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_admin)
):
    return success(await ProvisioningService(db).update_user(principal, user_id, payload), message="User updated")


@router.post("/{user_id}/reset-password")
async def reset_password(
    user_id: str,
    payload: Optional[PasswordReset] = None,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_admin)
):
    send_email = payload.send_email if payload else False
    data = await ProvisioningService(db).reset_password(principal, user_id, send_email)
    return success(data, message="Password reset")


@router.delete("/{user_id}")
async def delete_user(
    user_id: str,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_admin)
):
    """Delete a user and every record that references them"""
    return success(await UserDeletionService(db).delete_user(principal, user_id), message="User deleted")
