"""Pydantic models for jobs, worker callbacks, and API responses."""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class JobStatus(str, Enum):
    UPLOADING = "uploading"
    CONVERTING = "converting"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class JobDraft(BaseModel):
    """Fields supplied when a job is created; id and timestamps are assigned by the store."""

    filename: str
    originalSize: int = Field(ge=0)
    status: JobStatus = JobStatus.UPLOADING
    progress: int = Field(default=0, ge=0, le=100)
    sourceRef: Optional[str] = None
    resultRef: Optional[str] = None
    error: Optional[str] = None


class Job(BaseModel):
    """Canonical job record as owned by the job store."""

    id: str
    filename: str
    originalSize: int
    status: JobStatus
    progress: int = Field(ge=0, le=100)
    sourceRef: Optional[str] = None
    resultRef: Optional[str] = None
    error: Optional[str] = None
    attempt: int = 0
    createdAt: datetime
    completedAt: Optional[datetime] = None


# Statuses a worker may report; `uploading` belongs to the submission path only.
WorkerStatus = Literal["converting", "completed", "failed"]

# Fields a store update may touch; id, filename, originalSize and createdAt are immutable.
MUTABLE_FIELDS = frozenset(
    {"status", "progress", "sourceRef", "resultRef", "error", "attempt", "completedAt"}
)


class WorkerStatusUpdate(BaseModel):
    """Status message posted back by the conversion worker.

    Every field is optional: the worker may send a bare progress tick or a
    terminal payload. `attempt` echoes the value from the dispatch payload.
    """

    model_config = ConfigDict(extra="forbid")

    status: Optional[WorkerStatus] = None
    progress: Optional[int] = Field(default=None, ge=0, le=100)
    resultRef: Optional[str] = None
    error: Optional[str] = None
    attempt: Optional[int] = Field(default=None, ge=1)

    def changes(self) -> dict:
        """Return only the fields the worker actually sent."""
        return self.model_dump(exclude_unset=True, exclude_none=True, exclude={"attempt"})


class JobStats(BaseModel):
    totalUploaded: int
    totalConverted: int
    avgProcessingTime: str


class Limits(BaseModel):
    """Runtime limits exposed to the frontend."""

    maxFiles: int = Field(..., description="Maximum files per request")
    maxSizeMb: int = Field(..., description="Maximum size per file in MB")


class JobsCreateResponse(BaseModel):
    """Response for submitting conversion jobs."""

    message: str
    jobs: List[Job]
    limits: Limits


class DownloadResponse(BaseModel):
    downloadUrl: str
    expiresIn: int


class MessageResponse(BaseModel):
    message: str
