"""
Health Router
Liveness and readiness endpoints.

Endpoints:
- /health, /healthz - Basic liveness check (is the process running?)
- /readyz - Readiness check (database reachable, AI provider configured)
"""

import asyncio
import time

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.core.config import Settings, get_settings
from app.core.database import get_db_session
from app.core.utc import utc_now_iso


router = APIRouter()

# Track startup time for uptime calculation
_start_time = time.time()


@router.get("/health")
async def health_check(settings: Settings = Depends(get_settings)):
    """Liveness probe - returns 200 while the process is alive."""
    return {
        "status": "ok",
        "app": settings.app_name,
        "version": settings.app_version,
        "timestamp": utc_now_iso(),
    }


@router.get("/healthz")
async def health_alias():
    """Alias for /health."""
    return {"status": "ok", "timestamp": utc_now_iso()}


@router.get("/readyz")
async def readiness_check(settings: Settings = Depends(get_settings)):
    """
    Readiness check - database connectivity and AI provider configuration.
    Returns 503 when the database is unreachable.
    """
    checks = {}
    details = {}

    try:
        db_start = time.perf_counter()
        async with get_db_session() as session:
            await asyncio.wait_for(session.execute(text("SELECT 1")), timeout=5.0)
        checks["database"] = True
        details["database_latency_ms"] = round((time.perf_counter() - db_start) * 1000, 2)
    except asyncio.TimeoutError:
        checks["database"] = False
        details["database_error"] = "Connection timeout (5s)"
    except SQLAlchemyError as e:
        checks["database"] = False
        details["database_error"] = str(e)

    checks["ai_provider"] = settings.ai_provider
    details["ai_configured"] = bool(settings.ai_api_key)

    ready = checks["database"] is True
    return JSONResponse(
        status_code=200 if ready else 503,
        content={
            "status": "ready" if ready else "degraded",
            "checks": checks,
            "details": details,
            "uptime_seconds": round(time.time() - _start_time, 2),
            "timestamp": utc_now_iso(),
        },
    )
