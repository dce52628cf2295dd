"""Health and readiness endpoints."""
from __future__ import annotations

from datetime import datetime, timezone
from fastapi import APIRouter, Depends

from ..config import Settings
from ..deps import get_app_settings

router = APIRouter(tags=["health"])


@router.get("/healthz")
async def healthz(settings: Settings = Depends(get_app_settings)) -> dict:
    """Liveness probe; also reports which job store backend is active."""
    return {
        "status": "ok",
        "jobStore": settings.JOB_STORE_BACKEND,
        "workerEmulated": settings.TASKS_EMULATE,
        "time": datetime.now(timezone.utc).isoformat(),
    }
