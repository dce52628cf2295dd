"""Jobs router: submit documents, list and inspect jobs, retry, download, delete.

Thin HTTP layer over `JobLifecycleService`; domain exceptions are mapped to
status codes by the handlers registered in `main.py`.
"""
from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, File, UploadFile

from ..config import Settings
from ..deps import get_app_settings, get_job_service
from ..exceptions import NotFoundError
from ..models import DownloadResponse, Job, JobsCreateResponse, JobStats, Limits, MessageResponse
from ..services.orchestration.job_service import JobLifecycleService
from ..utils.files import SourceFile

router = APIRouter(tags=["jobs"])


@router.post("/jobs", response_model=JobsCreateResponse)
async def create_jobs(
    files: List[UploadFile] = File(description="One or more .docx files to convert"),
    service: JobLifecycleService = Depends(get_job_service),
    settings: Settings = Depends(get_app_settings),
) -> JobsCreateResponse:
    """Create conversion jobs for the uploaded documents."""
    sources = [
        SourceFile(filename=f.filename or "", content_type=f.content_type or "", data=await f.read())
        for f in files
    ]
    jobs = await service.submit_many(sources)
    return JobsCreateResponse(
        message="Files uploaded successfully",
        jobs=jobs,
        limits=Limits(maxFiles=settings.MAX_FILES, maxSizeMb=settings.MAX_SIZE_MB),
    )


@router.get("/jobs", response_model=List[Job])
async def list_jobs(service: JobLifecycleService = Depends(get_job_service)) -> List[Job]:
    """List all jobs, newest first."""
    return service.list_jobs()


# Declared before /jobs/{job_id} so "stats" is not captured as an id
@router.get("/jobs/stats", response_model=JobStats)
async def get_stats(service: JobLifecycleService = Depends(get_job_service)) -> JobStats:
    return service.stats()


@router.get("/jobs/{job_id}", response_model=Job)
async def get_job(job_id: str, service: JobLifecycleService = Depends(get_job_service)) -> Job:
    return service.get_job(job_id)


@router.get("/jobs/{job_id}/download", response_model=DownloadResponse)
async def download_job(
    job_id: str,
    service: JobLifecycleService = Depends(get_job_service),
    settings: Settings = Depends(get_app_settings),
) -> DownloadResponse:
    """Return a time-limited signed URL for the converted PDF."""
    url = await service.request_download(job_id)
    return DownloadResponse(downloadUrl=url, expiresIn=settings.DOWNLOAD_URL_TTL_SEC)


@router.post("/jobs/{job_id}/retry", response_model=Job)
async def retry_job(job_id: str, service: JobLifecycleService = Depends(get_job_service)) -> Job:
    """Re-dispatch a failed job; jobs in any other state are returned unchanged."""
    return await service.retry(job_id)


@router.delete("/jobs/{job_id}", response_model=MessageResponse)
async def delete_job(job_id: str, service: JobLifecycleService = Depends(get_job_service)) -> MessageResponse:
    if not await service.delete_job(job_id):
        raise NotFoundError("Job not found")
    return MessageResponse(message="Job deleted successfully")
