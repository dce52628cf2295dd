"""Collaborator contracts consumed by the job lifecycle service."""
from __future__ import annotations

from typing import Optional, Protocol


class ObjectStore(Protocol):
    def put(self, key: str, data: bytes, content_type: str) -> str:
        """Store bytes under `key` and return an opaque reference.

        Blocking call; raises StorageError on failure.
        """

    def get(self, ref: str, expires_in: int) -> str:
        """Mint a time-limited retrieval URL for `ref`. Raises StorageError."""

    def delete(self, ref: str) -> None:
        ...

    def exists(self, ref: str) -> bool:
        ...


class WorkerInvoker(Protocol):
    def invoke_async(self, job_id: str, source_ref: str, output_key: str, attempt: int) -> Optional[str]:
        """Hand the job to the conversion worker and return without waiting.

        Returns a dispatch handle (or None when emulated); raises DispatchError.
        """
