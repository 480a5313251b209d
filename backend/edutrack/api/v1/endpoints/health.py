"""
Health check endpoints.

- /health/live  - the process is running
- /health/ready - the database answers
"""
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import OperationalError, DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import datetime
import time

from edutrack.core.config import settings
from edutrack.core.database import get_db
from edutrack.core.logging_config import logger

router = APIRouter(prefix="/health", tags=["Health Checks"])


@router.get("/live")
async def liveness():
    return {"status": "alive", "timestamp": datetime.utcnow().isoformat()}


@router.get("/ready")
async def readiness(db: AsyncSession = Depends(get_db)):
    start = time.perf_counter()
    try:
        await db.execute(text("SELECT 1"))
    except (OperationalError, DBAPIError) as e:
        logger.error(f"[HealthCheck] Database check failed: {e}")
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "database": "unreachable"},
        )
    return {
        "status": "ready",
        "database": "ok",
        "latency_ms": round((time.perf_counter() - start) * 1000, 2),
        "environment": settings.ENVIRONMENT,
    }
