from __future__ import annotations

import asyncio
import logging
import os
from typing import Any, Dict, List, Optional, Sequence

from ...config import Settings, get_settings
from ...exceptions import (
    ConflictError,
    InvalidInputError,
    InvalidTransitionError,
    NotFoundError,
    NotReadyError,
    StaleUpdateError,
)
from ...models import Job, JobDraft, JobStats, JobStatus, WorkerStatusUpdate
from ...utils.files import SourceFile, validate_source_file
from ..interfaces import ObjectStore, WorkerInvoker
from ..job_store import JobStore
from ..stats import compute_stats

logger = logging.getLogger(__name__)

PROGRESS_CREATED = 0
PROGRESS_DISPATCHED = 25
UNKNOWN_ERROR = "Unknown error occurred"


def _reconcile_worker_update(expected_attempt: Optional[int]):
    """Build the guard applied atomically to a worker callback."""

    def reconcile(job: Job, changes: Dict[str, Any]) -> Dict[str, Any]:
        if expected_attempt is not None and expected_attempt != job.attempt:
            raise StaleUpdateError(f"attempt {expected_attempt} superseded by attempt {job.attempt}")
        if job.status == JobStatus.UPLOADING:
            raise InvalidTransitionError("job has not been dispatched yet")

        status = JobStatus(changes["status"]) if "status" in changes else None
        if status == JobStatus.UPLOADING:
            raise InvalidTransitionError("workers cannot move a job back to uploading")
        if job.status.is_terminal:
            if status is not None and status != job.status:
                raise InvalidTransitionError(f"job is already {job.status.value}")
            changes.pop("progress", None)

        # progress never goes backwards within an attempt
        if changes.get("progress", job.progress) < job.progress:
            changes.pop("progress")

        if status == JobStatus.FAILED:
            changes["error"] = changes.get("error") or job.error or UNKNOWN_ERROR
        elif status is not None:
            changes["error"] = None
        elif job.status != JobStatus.FAILED:
            changes.pop("error", None)
        return changes

    return reconcile


def _reconcile_retry(job: Job, changes: Dict[str, Any]) -> Dict[str, Any]:
    if job.status != JobStatus.FAILED:
        raise InvalidTransitionError(f"retry is only allowed from failed, job is {job.status.value}")
    return {**changes, "attempt": job.attempt + 1}


def _reconcile_dispatch_failure(attempt: int):
    def reconcile(job: Job, changes: Dict[str, Any]) -> Dict[str, Any]:
        if job.attempt != attempt or job.status.is_terminal:
            raise StaleUpdateError("job moved on before the dispatch failure was recorded")
        return changes

    return reconcile


class JobLifecycleService:
    """Orchestrates submission, worker dispatch, callbacks, retry, download and deletion.

    Only in-memory record changes go through the store's per-job critical
    section; object storage and worker dispatch are blocking calls that run in
    a thread via `asyncio.to_thread` and never hold a job lock.
    """

    def __init__(
        self,
        store: JobStore,
        object_store: ObjectStore,
        worker: WorkerInvoker,
        settings: Optional[Settings] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._store = store
        self._objects = object_store
        self._worker = worker

    @property
    def store(self) -> JobStore:
        return self._store

    # --- Keys ---
    def source_key(self, job: Job) -> str:
        return f"{self.settings.UPLOAD_PREFIX}/{job.id}/{job.filename}"

    def output_key(self, job: Job) -> str:
        stem = os.path.splitext(job.filename)[0]
        return f"{self.settings.RESULT_PREFIX}/{job.id}/{stem}.pdf"

    # --- Submission ---
    async def submit_many(self, files: Sequence[SourceFile]) -> List[Job]:
        """Validate every file, then submit each one in isolation.

        Returns only the jobs that were stored and dispatched; jobs whose
        upload or dispatch failed stay in the store as failed.
        """
        if not files:
            raise InvalidInputError("No files uploaded")
        if len(files) > self.settings.MAX_FILES:
            raise InvalidInputError(f"Too many files in one request (max {self.settings.MAX_FILES})")
        for f in files:
            validate_source_file(f, self.settings)

        jobs: List[Job] = []
        for f in files:
            job = await self._submit_validated(f)
            if job.status != JobStatus.FAILED:
                jobs.append(job)
        return jobs

    async def submit(self, f: SourceFile) -> Job:
        """Validate, store, and dispatch a single file. Returns the job even if it failed."""
        validate_source_file(f, self.settings)
        return await self._submit_validated(f)

    async def _submit_validated(self, f: SourceFile) -> Job:
        job = self._store.create(
            JobDraft(
                filename=f.filename,
                originalSize=f.size,
                status=JobStatus.UPLOADING,
                progress=PROGRESS_CREATED,
            )
        )

        try:
            source_ref = await asyncio.to_thread(
                self._objects.put, self.source_key(job), f.data, f.content_type
            )
        except Exception as exc:
            logger.error("[%s] upload of %s failed: %s", job.id, f.filename, exc)
            failed = self._mark_failed(job.id, str(exc))
            return failed or job.model_copy(update={"status": JobStatus.FAILED, "error": str(exc) or UNKNOWN_ERROR})

        updated = self._store.update(
            job.id,
            {
                "status": JobStatus.CONVERTING,
                "progress": PROGRESS_DISPATCHED,
                "sourceRef": source_ref,
                "attempt": 1,
            },
        )
        if updated is None:
            logger.info("[%s] deleted during upload; not dispatching", job.id)
            return job
        return await self._dispatch(updated)

    async def _dispatch(self, job: Job) -> Job:
        try:
            await asyncio.to_thread(
                self._worker.invoke_async, job.id, job.sourceRef, self.output_key(job), job.attempt
            )
        except Exception as exc:
            logger.error("[%s] dispatch of attempt %s failed: %s", job.id, job.attempt, exc)
            try:
                failed = self._store.update(
                    job.id,
                    {"status": JobStatus.FAILED, "error": str(exc) or UNKNOWN_ERROR},
                    reconcile=_reconcile_dispatch_failure(job.attempt),
                )
            except StaleUpdateError:
                failed = self._store.get(job.id)
            return failed or job
        logger.info("[%s] dispatched attempt %s", job.id, job.attempt)
        return job

    def _mark_failed(self, job_id: str, message: str) -> Optional[Job]:
        return self._store.update(job_id, {"status": JobStatus.FAILED, "error": message or UNKNOWN_ERROR})

    # --- Worker callbacks ---
    def apply_worker_update(self, job_id: str, update: WorkerStatusUpdate) -> Optional[Job]:
        """Apply a status message from the worker.

        Returns None when the job does not exist (e.g. deleted meanwhile).
        Stale or out-of-order messages are absorbed and the current job is
        returned unchanged.
        """
        changes = update.changes()
        try:
            job = self._store.update(job_id, changes, reconcile=_reconcile_worker_update(update.attempt))
        except (StaleUpdateError, InvalidTransitionError) as exc:
            logger.info("[%s] ignoring worker update %s: %s", job_id, changes, exc)
            return self._store.get(job_id)
        if job is None:
            logger.info("[%s] worker update for unknown job ignored", job_id)
            return None
        logger.info("[%s] worker update applied: status=%s progress=%s", job_id, job.status.value, job.progress)
        return job

    # --- Retry ---
    async def retry(self, job_id: str) -> Job:
        job = self._store.get(job_id)
        if job is None:
            raise NotFoundError("Job not found")
        if job.status != JobStatus.FAILED:
            logger.info("[%s] retry ignored in status %s", job_id, job.status.value)
            return job
        if not job.sourceRef:
            raise ConflictError("Original document not available; re-upload required")

        exists = await asyncio.to_thread(self._objects.exists, job.sourceRef)
        if not exists:
            raise ConflictError("Original document not available; re-upload required")

        try:
            updated = self._store.update(
                job_id,
                {"status": JobStatus.CONVERTING, "progress": PROGRESS_DISPATCHED, "error": None},
                reconcile=_reconcile_retry,
            )
        except InvalidTransitionError as exc:
            # another request retried (or the worker finished) first
            logger.info("[%s] retry ignored: %s", job_id, exc)
            current = self._store.get(job_id)
            if current is None:
                raise NotFoundError("Job not found")
            return current
        if updated is None:
            raise NotFoundError("Job not found")
        return await self._dispatch(updated)

    # --- Download ---
    async def request_download(self, job_id: str) -> str:
        job = self._store.get(job_id)
        if job is None:
            raise NotFoundError("Job not found")
        if job.status != JobStatus.COMPLETED:
            raise NotReadyError("Conversion not completed yet")
        if not job.resultRef:
            raise NotFoundError("Converted document not found")
        return await asyncio.to_thread(self._objects.get, job.resultRef, self.settings.DOWNLOAD_URL_TTL_SEC)

    # --- Deletion ---
    async def delete_job(self, job_id: str) -> bool:
        job = self._store.get(job_id)
        deleted = self._store.delete(job_id)
        if deleted and job is not None and self.settings.DELETE_BLOBS_ON_DELETE:
            for ref in (job.sourceRef, job.resultRef):
                if not ref:
                    continue
                try:
                    await asyncio.to_thread(self._objects.delete, ref)
                except Exception as exc:
                    logger.warning("[%s] blob cleanup failed for %s: %s", job_id, ref, exc)
        return deleted

    # --- Reads ---
    def get_job(self, job_id: str) -> Job:
        job = self._store.get(job_id)
        if job is None:
            raise NotFoundError("Job not found")
        return job

    def list_jobs(self) -> List[Job]:
        return self._store.list()

    def stats(self) -> JobStats:
        return compute_stats(self._store)


def build_job_service(settings: Optional[Settings] = None) -> JobLifecycleService:
    """Wire the lifecycle service to the configured store, GCS and Cloud Tasks."""
    from ..gcs import GCSService
    from ..job_store import build_job_store
    from ..tasks import CloudTasksService, TasksConfig

    settings = settings or get_settings()
    callback_base = f"{settings.PUBLIC_BASE_URL}{settings.API_PREFIX}" if settings.PUBLIC_BASE_URL else ""
    return JobLifecycleService(
        store=build_job_store(settings),
        object_store=GCSService(settings.GCS_BUCKET, project=settings.GCP_PROJECT or None),
        worker=CloudTasksService(
            TasksConfig(
                project=settings.GCP_PROJECT,
                region=settings.REGION,
                queue=settings.TASKS_QUEUE,
                target_url=settings.WORKER_URL,
                service_account_email=settings.TASKS_SERVICE_ACCOUNT_EMAIL,
                bucket=settings.GCS_BUCKET,
                callback_base_url=callback_base,
                emulate=settings.TASKS_EMULATE,
            )
        ),
        settings=settings,
    )
