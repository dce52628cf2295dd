"""Google Cloud Storage helper service."""
from __future__ import annotations

from datetime import timedelta
from typing import Optional
from google.cloud import storage

from ..exceptions import StorageError


class GCSService:
    """Wrapper around google-cloud-storage for source uploads and result downloads.

    The client is created on first use so the app can be constructed without
    credentials (tests, local emulation).
    """

    def __init__(self, bucket_name: str, project: Optional[str] = None) -> None:
        self.bucket_name = bucket_name
        self._project = project
        self._bucket: Optional[storage.Bucket] = None

    @property
    def bucket(self) -> storage.Bucket:
        if self._bucket is None:
            client = storage.Client(project=self._project)
            self._bucket = client.bucket(self.bucket_name)
        return self._bucket

    def blob_path(self, ref: str) -> str:
        """Accept either a gs:// URI in this bucket or a bare object key."""
        prefix = f"gs://{self.bucket_name}/"
        if ref.startswith(prefix):
            return ref[len(prefix):]
        if ref.startswith("gs://"):
            raise StorageError(f"Object {ref} is outside bucket {self.bucket_name}")
        return ref.lstrip("/")

    def put(self, key: str, data: bytes, content_type: str) -> str:
        try:
            blob = self.bucket.blob(key)
            blob.upload_from_string(data, content_type=content_type)
        except Exception as exc:
            raise StorageError(f"Storage error while uploading {key}: {exc}") from exc
        return f"gs://{self.bucket_name}/{key}"

    def get(self, ref: str, expires_in: int) -> str:
        path = self.blob_path(ref)
        try:
            return self.bucket.blob(path).generate_signed_url(
                version="v4",
                expiration=timedelta(seconds=expires_in),
                method="GET",
            )
        except Exception as exc:
            # includes credentials that cannot sign
            raise StorageError(f"Unable to sign download URL: {exc}") from exc

    def delete(self, ref: str) -> None:
        path = self.blob_path(ref)
        try:
            self.bucket.blob(path).delete(if_generation_match=None)  # ignore preconditions
        except Exception as exc:
            raise StorageError(f"Storage error while deleting {ref}: {exc}") from exc

    def exists(self, ref: str) -> bool:
        path = self.blob_path(ref)
        try:
            return self.bucket.blob(path).exists()
        except Exception as exc:
            raise StorageError(f"Storage error while checking {ref}: {exc}") from exc
