from __future__ import annotations

import logging
import mimetypes
import time
import uuid
from pathlib import Path, PurePosixPath
from typing import Optional

from wizard import UploadedDocument

logger = logging.getLogger(__name__)

_EXTENSION_BY_MIME = {
    "application/pdf": "pdf",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "application/msword": "doc",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
}


def file_extension(document: UploadedDocument) -> str:
    suffix = PurePosixPath(document.file_name).suffix.lstrip(".").lower()
    if suffix:
        return suffix
    if document.mime_type in _EXTENSION_BY_MIME:
        return _EXTENSION_BY_MIME[document.mime_type]
    guessed = mimetypes.guess_extension(document.mime_type or "")
    return guessed.lstrip(".") if guessed else "bin"


class DocumentStore:
    """Application documents on local disk under ``root``.

    Stored paths are relative (``{application_id}/{type}_{epoch_ms}.{ext}``) so
    the database never records where the store is mounted.
    """

    def __init__(self, root: Path | str, clock=time.time) -> None:
        self.root = Path(root)
        self.clock = clock

    def save(self, application_id: uuid.UUID | str, document_type: str, document: UploadedDocument) -> str:
        stamp = int(self.clock() * 1000)
        relative = f"{application_id}/{document_type}_{stamp}.{file_extension(document)}"
        target = self._resolve(relative)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(document.content)
        logger.info("Stored %s (%d bytes) at %s", document_type, document.size, relative)
        return relative

    def read(self, relative_path: str) -> bytes:
        return self._resolve(relative_path).read_bytes()

    def exists(self, relative_path: str) -> bool:
        return self._resolve(relative_path).is_file()

    def _resolve(self, relative_path: str) -> Path:
        root = self.root.resolve()
        target = (root / relative_path).resolve()
        if root not in target.parents:
            raise ValueError(f"Path escapes document store: {relative_path}")
        return target


def guess_mime_type(file_name: str, fallback: Optional[str] = None) -> str:
    guessed, _ = mimetypes.guess_type(file_name)
    return guessed or fallback or "application/octet-stream"
