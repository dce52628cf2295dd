"""Aggregate statistics over the job store."""
from __future__ import annotations

import math
from typing import Iterable

from ..models import Job, JobStats, JobStatus
from .job_store import JobStore


def format_seconds(avg_ms: float) -> str:
    # half-up rounding to whole seconds
    return f"{int(math.floor(avg_ms / 1000.0 + 0.5))}s"


def summarize_jobs(jobs: Iterable[Job]) -> JobStats:
    jobs = list(jobs)
    completed = [j for j in jobs if j.status == JobStatus.COMPLETED]

    avg = "--"
    if completed:
        total_ms = sum(
            (j.completedAt - j.createdAt).total_seconds() * 1000.0
            for j in completed
            if j.completedAt is not None
        )
        avg = format_seconds(total_ms / len(completed))

    return JobStats(
        totalUploaded=len(jobs),
        totalConverted=len(completed),
        avgProcessingTime=avg,
    )


def compute_stats(store: JobStore) -> JobStats:
    """Compute stats from a point-in-time snapshot of the store."""
    return summarize_jobs(store.list())
