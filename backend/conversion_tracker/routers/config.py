"""Runtime config endpoint for frontend consumption."""
from __future__ import annotations

from fastapi import APIRouter, Depends

from ..config import Settings
from ..deps import get_app_settings

router = APIRouter(tags=["config"])


@router.get("/config")
async def get_config(settings: Settings = Depends(get_app_settings)) -> dict:
    """Expose non-sensitive runtime limits and accepted file types."""
    return {
        "maxFiles": settings.MAX_FILES,
        "maxSizeMb": settings.MAX_SIZE_MB,
        "acceptedMime": settings.ACCEPTED_MIME,
        "acceptedExtensions": settings.ACCEPTED_EXTENSIONS,
    }
