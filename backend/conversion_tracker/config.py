"""Application settings and configuration helpers."""
from __future__ import annotations

import os
from functools import lru_cache
from typing import List
from dotenv import load_dotenv, find_dotenv


DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


class Settings:
    """Runtime configuration loaded from environment variables.

    Defaults are suitable for local development: jobs live in process memory
    and worker dispatch is emulated. Production should set explicit values
    via environment variables and Secret Manager.
    """

    APP_NAME: str = "Document Conversion Tracker API"
    API_PREFIX: str

    # CORS
    CORS_ORIGINS: List[str]

    # Limits
    MAX_FILES: int
    MAX_SIZE_MB: int
    ACCEPTED_MIME: List[str]
    ACCEPTED_EXTENSIONS: List[str]
    CHECK_DOCX_STRUCTURE: bool

    # GCP / object storage
    GCS_BUCKET: str
    REGION: str
    GCP_PROJECT: str
    UPLOAD_PREFIX: str
    RESULT_PREFIX: str
    DOWNLOAD_URL_TTL_SEC: int
    DELETE_BLOBS_ON_DELETE: bool

    # Job store
    JOB_STORE_BACKEND: str
    FIRESTORE_DATABASE_ID: str
    FIRESTORE_COLLECTION: str

    # Cloud Tasks / conversion worker
    TASKS_QUEUE: str
    WORKER_URL: str
    TASKS_SERVICE_ACCOUNT_EMAIL: str
    TASKS_EMULATE: bool

    # Worker callbacks
    PUBLIC_BASE_URL: str
    CALLBACK_AUDIENCE: str
    CALLBACK_SERVICE_ACCOUNT_EMAIL: str

    def __init__(self) -> None:
        # Load .env once (supports parent directories)
        load_dotenv(find_dotenv(), override=False)
        self.API_PREFIX = os.getenv("API_PREFIX", "/api")
        self.CORS_ORIGINS = self._get_list("CORS_ORIGINS", default="*")
        self.MAX_FILES = int(os.getenv("MAX_FILES", "10"))
        self.MAX_SIZE_MB = int(os.getenv("MAX_SIZE_MB", "10"))
        self.ACCEPTED_MIME = self._get_list("ACCEPTED_MIME", default=DOCX_MIME)
        self.ACCEPTED_EXTENSIONS = [
            ext.lower() for ext in self._get_list("ACCEPTED_EXTENSIONS", default=".docx")
        ]
        self.CHECK_DOCX_STRUCTURE = os.getenv("CHECK_DOCX_STRUCTURE", "true").lower() == "true"

        self.GCS_BUCKET = os.getenv("GCS_BUCKET", "document-conversion-input")
        self.REGION = os.getenv("REGION", "europe-north1")
        self.GCP_PROJECT = os.getenv("GCP_PROJECT", os.getenv("GOOGLE_CLOUD_PROJECT", ""))
        self.UPLOAD_PREFIX = os.getenv("UPLOAD_PREFIX", "uploads").strip("/")
        self.RESULT_PREFIX = os.getenv("RESULT_PREFIX", "converted").strip("/")
        self.DOWNLOAD_URL_TTL_SEC = int(os.getenv("DOWNLOAD_URL_TTL_SEC", "3600"))
        self.DELETE_BLOBS_ON_DELETE = os.getenv("DELETE_BLOBS_ON_DELETE", "false").lower() == "true"

        self.JOB_STORE_BACKEND = os.getenv("JOB_STORE_BACKEND", "memory").lower()
        self.FIRESTORE_DATABASE_ID = os.getenv("FIRESTORE_DATABASE_ID", "(default)")
        self.FIRESTORE_COLLECTION = os.getenv("FIRESTORE_COLLECTION", "conversions")

        self.TASKS_QUEUE = os.getenv("TASKS_QUEUE", "docx-convert-queue")
        self.WORKER_URL = os.getenv("WORKER_URL", "")  # e.g., https://<worker-run-url>/convert
        self.TASKS_SERVICE_ACCOUNT_EMAIL = os.getenv("TASKS_SERVICE_ACCOUNT_EMAIL", "")
        self.TASKS_EMULATE = os.getenv("TASKS_EMULATE", "true").lower() == "true"

        # Base URL the worker uses to reach /jobs/{id}/status
        self.PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "").rstrip("/")
        self.CALLBACK_AUDIENCE = os.getenv("CALLBACK_AUDIENCE", self.PUBLIC_BASE_URL)
        self.CALLBACK_SERVICE_ACCOUNT_EMAIL = os.getenv("CALLBACK_SERVICE_ACCOUNT_EMAIL", "")

    @property
    def max_size_bytes(self) -> int:
        return self.MAX_SIZE_MB * 1024 * 1024

    @staticmethod
    def _get_list(name: str, default: str = "") -> List[str]:
        raw = os.getenv(name, default)
        return [item.strip() for item in raw.split(",") if item.strip()] or ["*"]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return Settings()
