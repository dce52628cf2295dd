"""Worker callback endpoint (thin HTTP layer).

The conversion worker posts status updates here. Messages may be late,
duplicated, or refer to jobs that were deleted; `JobLifecycleService`
absorbs all of these.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from ..deps import get_job_service, verify_worker_token
from ..exceptions import NotFoundError
from ..models import Job, WorkerStatusUpdate
from ..services.orchestration.job_service import JobLifecycleService

router = APIRouter(tags=["callbacks"])  # mounted under /api
logger = logging.getLogger(__name__)


@router.post("/jobs/{job_id}/status", response_model=Job)
async def update_job_status(
    job_id: str,
    payload: WorkerStatusUpdate,
    service: JobLifecycleService = Depends(get_job_service),
    decoded_token: dict = Depends(verify_worker_token),
) -> Job:
    """Apply a worker status update: expects JSON { status?, progress?, resultRef?, error?, attempt? }."""
    logger.debug("[%s] status callback from %s", job_id, decoded_token.get("email"))
    job = service.apply_worker_update(job_id, payload)
    if job is None:
        raise NotFoundError("Job not found")
    return job
