"""
Global views: system overview, super-admin batch list and system health.
"""
import os
import platform
import resource
import sys
import time
from datetime import datetime
from typing import Any, Dict, List

from sqlalchemy import select, func, text
from sqlalchemy.ext.asyncio import AsyncSession

from edutrack.core.config import settings
from edutrack.core.database import run_bounded
from edutrack.models import (
    User, UserRole, Student, Batch, Course, Assignment, Submission, Attendance, Report, College,
)
from edutrack.modules.auth import Action, Principal, Target, TargetKind, authorize, require_roles
from edutrack.services.batches import batch_counts, serialize_batch

PROCESS_STARTED_AT = time.time()

HEALTH_TABLES = (
    ("users", User),
    ("students", Student),
    ("colleges", College),
    ("batches", Batch),
    ("courses", Course),
    ("assignments", Assignment),
    ("submissions", Submission),
    ("attendance", Attendance),
    ("reports", Report),
)


async def _active_split(db: AsyncSession, model) -> Dict[str, int]:
    rows = await db.execute(select(model.is_active, func.count(model.id)).group_by(model.is_active))
    split = {"total": 0, "active": 0, "inactive": 0}
    for is_active, count in rows.all():
        split["total"] += count
        split["active" if is_active else "inactive"] += count
    return split


async def _system_overview(db: AsyncSession) -> Dict[str, Any]:
    by_role = {role.value: {"total": 0, "active": 0} for role in UserRole}
    rows = await db.execute(
        select(User.role, User.is_active, func.count(User.id)).group_by(User.role, User.is_active)
    )
    for role, is_active, count in rows.all():
        by_role[role.value]["total"] += count
        if is_active:
            by_role[role.value]["active"] += count

    users = await _active_split(db, User)
    users["byRole"] = by_role

    recent = await db.scalars(
        select(User).where(User.last_login.isnot(None)).order_by(User.last_login.desc()).limit(10)
    )
    return {
        "users": users,
        "batches": await _active_split(db, Batch),
        "courses": await _active_split(db, Course),
        "assignments": {"total": await db.scalar(select(func.count(Assignment.id))) or 0},
        "recentActivity": [
            {
                "id": u.id,
                "name": u.full_name,
                "role": u.role.value,
                "lastLogin": u.last_login,
                "isActive": u.is_active,
            }
            for u in recent.all()
        ],
    }


async def system_overview(db: AsyncSession, principal: Principal) -> Dict[str, Any]:
    """User, batch, course and assignment totals with recent logins"""
    authorize(principal, Action.VIEW, Target(kind=TargetKind.ALL))
    return await run_bounded(_system_overview(db), "system_overview")


async def _all_batches(db: AsyncSession) -> List[Dict[str, Any]]:
    batches = (await db.scalars(select(Batch).order_by(Batch.start_date.desc()))).all()
    counts = await batch_counts(db, [b.id for b in batches])
    return [serialize_batch(b, counts[b.id]) for b in batches]


async def superadmin_batches(db: AsyncSession, principal: Principal) -> List[Dict[str, Any]]:
    """Every batch with trainer/student/course counts and duration"""
    require_roles(principal, UserRole.SUPERADMIN)
    return await run_bounded(_all_batches(db), "superadmin_batches")


async def _system_health(db: AsyncSession) -> Dict[str, Any]:
    started = time.perf_counter()
    await db.execute(text("SELECT 1"))
    latency_ms = round((time.perf_counter() - started) * 1000, 2)

    tables = {}
    for name, model in HEALTH_TABLES:
        tables[name] = await db.scalar(select(func.count()).select_from(model)) or 0

    usage = resource.getrusage(resource.RUSAGE_SELF)
    return {
        "timestamp": datetime.utcnow(),
        "database": {
            "dialect": db.get_bind().dialect.name,
            "latencyMs": latency_ms,
            "tables": tables,
            "totalRecords": sum(tables.values()),
        },
        "process": {
            "pid": os.getpid(),
            "pythonVersion": platform.python_version(),
            "platform": platform.platform(),
            "uptimeSeconds": int(time.time() - PROCESS_STARTED_AT),
            # kilobytes on Linux, bytes on macOS
            "maxRss": usage.ru_maxrss,
            "userCpuSeconds": round(usage.ru_utime, 2),
            "systemCpuSeconds": round(usage.ru_stime, 2),
            "threads": len(sys._current_frames()),
        },
        "environment": settings.ENVIRONMENT,
        "version": settings.API_VERSION,
    }


async def system_health(db: AsyncSession, principal: Principal) -> Dict[str, Any]:
    """Point-in-time storage and process diagnostics"""
    authorize(principal, Action.VIEW, Target(kind=TargetKind.SYSTEM))
    return await run_bounded(_system_health(db), "system_health")
