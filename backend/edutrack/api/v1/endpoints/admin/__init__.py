"""
Admin API endpoints.
All endpoints require admin or superadmin privileges.
"""
from fastapi import APIRouter

from edutrack.api.v1.endpoints.admin import dashboard, users, maintenance

admin_router = APIRouter(prefix="/admin", tags=["Admin"])

admin_router.include_router(dashboard.router, prefix="/dashboard", tags=["Admin Dashboard"])
admin_router.include_router(users.router, prefix="/users", tags=["Admin Users"])
admin_router.include_router(maintenance.router, prefix="/maintenance", tags=["Admin Maintenance"])
