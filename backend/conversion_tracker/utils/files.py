from __future__ import annotations

import io
import os
import zipfile
from dataclasses import dataclass

from ..config import Settings
from ..exceptions import InvalidInputError


@dataclass
class SourceFile:
    """An uploaded source document, already read into memory."""

    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


def is_docx_package(data: bytes) -> bool:
    """Return True when the bytes are a zip archive holding a Word main document."""
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            return "word/document.xml" in zf.namelist()
    except zipfile.BadZipFile:
        return False


def validate_source_file(f: SourceFile, settings: Settings) -> None:
    """Raise InvalidInputError unless the upload is an acceptable source document."""
    name = f.filename or ""
    if not name.strip():
        raise InvalidInputError("File name is missing")

    if "*" not in settings.ACCEPTED_MIME and f.content_type not in settings.ACCEPTED_MIME:
        raise InvalidInputError(f"Unsupported file type for {name}: {f.content_type}")

    ext = os.path.splitext(name)[1].lower()
    if "*" not in settings.ACCEPTED_EXTENSIONS and ext not in settings.ACCEPTED_EXTENSIONS:
        raise InvalidInputError(f"Unsupported file extension for {name}")

    if not f.data:
        raise InvalidInputError(f"File {name} is empty")

    if f.size > settings.max_size_bytes:
        raise InvalidInputError(f"File {name} exceeds size limit of {settings.MAX_SIZE_MB}MB")

    if settings.CHECK_DOCX_STRUCTURE and not is_docx_package(f.data):
        raise InvalidInputError(f"File {name} is not a readable .docx document")
