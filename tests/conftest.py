import io
import zipfile
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from conversion_tracker.config import DOCX_MIME, Settings, get_settings
from conversion_tracker.exceptions import DispatchError, StorageError
from conversion_tracker.main import create_app
from conversion_tracker.services.job_store import InMemoryJobStore
from conversion_tracker.services.orchestration.job_service import JobLifecycleService
from conversion_tracker.utils.files import SourceFile


class FakeObjectStore:
    def __init__(self, bucket: str = "test-bucket") -> None:
        self.bucket = bucket
        self.objects: Dict[str, bytes] = {}
        self.deleted: List[str] = []
        self.fail_puts_for: set[str] = set()

    def _key(self, ref: str) -> str:
        prefix = f"gs://{self.bucket}/"
        return ref[len(prefix):] if ref.startswith(prefix) else ref

    def put(self, key: str, data: bytes, content_type: str) -> str:
        if any(name in key for name in self.fail_puts_for):
            raise StorageError("bucket unavailable")
        self.objects[key] = data
        return f"gs://{self.bucket}/{key}"

    def get(self, ref: str, expires_in: int) -> str:
        return f"https://storage.example/{self._key(ref)}?expires={expires_in}"

    def delete(self, ref: str) -> None:
        self.deleted.append(ref)
        self.objects.pop(self._key(ref), None)

    def exists(self, ref: str) -> bool:
        return self._key(ref) in self.objects


class FakeWorker:
    def __init__(self) -> None:
        self.calls: List[tuple] = []
        self.fail = False

    def invoke_async(self, job_id: str, source_ref: str, output_key: str, attempt: int) -> Optional[str]:
        if self.fail:
            raise DispatchError("queue unavailable")
        self.calls.append((job_id, source_ref, output_key, attempt))
        return f"tasks/{job_id}-{attempt}"


class StepClock:
    """Deterministic clock: every call advances by `step`."""

    def __init__(self, start: Optional[datetime] = None, step: timedelta = timedelta(milliseconds=1)) -> None:
        self.now = start or datetime(2025, 1, 1, tzinfo=timezone.utc)
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + self.step
        return current

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def make_docx(text: str = "hello") -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        zf.writestr("[Content_Types].xml", "<Types/>")
        zf.writestr("word/document.xml", f"<w:document><w:body>{text}</w:body></w:document>")
    return buf.getvalue()


def docx_file(name: str = "report.docx", data: Optional[bytes] = None) -> SourceFile:
    return SourceFile(filename=name, content_type=DOCX_MIME, data=data if data is not None else make_docx())


@pytest.fixture()
def settings(monkeypatch):
    monkeypatch.setenv("TASKS_EMULATE", "true")
    monkeypatch.setenv("MAX_SIZE_MB", "10")
    monkeypatch.setenv("MAX_FILES", "10")
    monkeypatch.setenv("JOB_STORE_BACKEND", "memory")
    monkeypatch.setenv("DELETE_BLOBS_ON_DELETE", "false")
    get_settings.cache_clear()
    yield Settings()
    get_settings.cache_clear()


@pytest.fixture()
def store():
    return InMemoryJobStore()


@pytest.fixture()
def objects():
    return FakeObjectStore()


@pytest.fixture()
def worker():
    return FakeWorker()


@pytest.fixture()
def service(store, objects, worker, settings):
    return JobLifecycleService(store, objects, worker, settings=settings)


@pytest.fixture()
def client(settings, service):
    app = create_app(settings=settings, job_service=service)
    with TestClient(app) as test_client:
        yield test_client
