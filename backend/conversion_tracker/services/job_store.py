"""Job store contract and the process-local implementation.

The store is the only component allowed to mutate job records. `update` is
atomic per job id: the merge (and an optional reconcile callback supplied by
the caller) runs inside a per-id critical section, so a progress tick and a
terminal write for the same job can never interleave field by field. Jobs
with different ids never contend on the same lock.
"""
from __future__ import annotations

import abc
import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from ..config import Settings
from ..models import MUTABLE_FIELDS, Job, JobDraft, JobStatus

logger = logging.getLogger(__name__)

# Called with (current job, requested changes); returns the changes to apply
# or raises a domain exception to abort the update.
Reconcile = Callable[[Job, Dict[str, Any]], Dict[str, Any]]

MAX_ID_ATTEMPTS = 8


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def merge_job(job: Job, changes: Dict[str, Any], now: datetime) -> Job:
    """Apply a partial update to `job` and return the merged copy.

    Only mutable fields are taken from `changes`. `completedAt` is stamped the
    first time the status becomes completed and is never overwritten.
    """
    unknown = set(changes) - MUTABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot update immutable or unknown fields: {sorted(unknown)}")

    updates = {k: v for k, v in changes.items() if k != "completedAt"}
    if "status" in updates:
        updates["status"] = JobStatus(updates["status"])
    if updates.get("status") == JobStatus.COMPLETED and job.completedAt is None:
        updates["completedAt"] = now
    return job.model_copy(update=updates)


class JobStore(abc.ABC):
    """Storage-engine-agnostic contract for job records."""

    @abc.abstractmethod
    def create(self, draft: JobDraft) -> Job:
        ...

    @abc.abstractmethod
    def get(self, job_id: str) -> Optional[Job]:
        ...

    @abc.abstractmethod
    def list(self) -> List[Job]:
        """Return all jobs, newest first."""

    @abc.abstractmethod
    def update(
        self,
        job_id: str,
        changes: Dict[str, Any],
        reconcile: Optional[Reconcile] = None,
    ) -> Optional[Job]:
        """Atomically merge `changes` into the job; None if it does not exist."""

    @abc.abstractmethod
    def delete(self, job_id: str) -> bool:
        ...


class InMemoryJobStore(JobStore):
    """Thread-safe job store kept in process memory.

    `_lock` guards the structure of the record map and the id registry; each
    job additionally has its own lock serialising read-merge-write cycles.
    Issued ids are remembered for the lifetime of the store so a deleted id
    can never be handed out again.
    """

    def __init__(self, id_factory: Callable[[], str] | None = None, clock: Callable[[], datetime] = utcnow) -> None:
        self._jobs: Dict[str, Job] = {}
        self._job_locks: Dict[str, threading.Lock] = {}
        self._issued_ids: set[str] = set()
        self._lock = threading.Lock()
        self._new_id = id_factory or (lambda: str(uuid.uuid4()))
        self._clock = clock

    def create(self, draft: JobDraft) -> Job:
        with self._lock:
            job_id = self._reserve_id()
            job = Job(id=job_id, createdAt=self._clock(), completedAt=None, attempt=0, **draft.model_dump())
            self._jobs[job_id] = job
            self._job_locks[job_id] = threading.Lock()
        logger.debug("[%s] job created (%s)", job_id, job.filename)
        return job.model_copy()

    def _reserve_id(self) -> str:
        for _ in range(MAX_ID_ATTEMPTS):
            candidate = self._new_id()
            if candidate not in self._issued_ids:
                self._issued_ids.add(candidate)
                return candidate
        raise RuntimeError("Unable to allocate a unique job id")

    def get(self, job_id: str) -> Optional[Job]:
        with self._lock:
            job = self._jobs.get(job_id)
        return job.model_copy() if job else None

    def list(self) -> List[Job]:
        with self._lock:
            snapshot = list(self._jobs.values())
        # sorted() is stable with reverse=True, so equal timestamps keep insertion order
        return [j.model_copy() for j in sorted(snapshot, key=lambda j: j.createdAt, reverse=True)]

    def update(
        self,
        job_id: str,
        changes: Dict[str, Any],
        reconcile: Optional[Reconcile] = None,
    ) -> Optional[Job]:
        with self._lock:
            job_lock = self._job_locks.get(job_id)
        if job_lock is None:
            return None

        with job_lock:
            with self._lock:
                current = self._jobs.get(job_id)
            if current is None:
                # deleted while we were waiting for the lock
                return None
            effective = reconcile(current.model_copy(), dict(changes)) if reconcile else changes
            merged = merge_job(current, effective, self._clock())
            with self._lock:
                if job_id not in self._jobs:
                    return None
                self._jobs[job_id] = merged
        return merged.model_copy()

    def delete(self, job_id: str) -> bool:
        with self._lock:
            job_lock = self._job_locks.get(job_id)
        if job_lock is None:
            return False
        with job_lock:
            with self._lock:
                existed = self._jobs.pop(job_id, None) is not None
                self._job_locks.pop(job_id, None)
        return existed


def build_job_store(settings: Settings) -> JobStore:
    """Construct the job store selected by `JOB_STORE_BACKEND`."""
    backend = settings.JOB_STORE_BACKEND
    if backend == "memory":
        return InMemoryJobStore()
    if backend == "firestore":
        from .firestore import FirestoreJobStore

        return FirestoreJobStore(
            project=settings.GCP_PROJECT or None,
            database=settings.FIRESTORE_DATABASE_ID,
            collection=settings.FIRESTORE_COLLECTION,
        )
    raise ValueError(f"Unknown JOB_STORE_BACKEND: {backend}")
