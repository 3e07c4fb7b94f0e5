"""Multipart upload intake: type allow-list, size ceiling, temp storage.

Stored files are named ``<field>-<epoch ms>-<random>.<ext>`` so concurrent
uploads of the same original name never collide. Nothing sweeps the upload
directory; whoever consumes a file is responsible for deleting it.
"""

from __future__ import annotations

import logging
import os
import random
import time
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from fastapi import UploadFile
from starlette.concurrency import run_in_threadpool

from table_extractor.config import MAX_FILE_SIZE, MAX_UPLOAD_FILES, UPLOAD_DIR
from table_extractor.errors import FileTooLarge, InvalidFileType, TooManyFiles
from table_extractor.types import UploadedFile

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 1024 * 1024
# multipart boundaries, part headers and small form fields
_FRAMING_BYTES = 64 * 1024

_DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

# extension -> MIME types accepted for it
ALLOWED_TYPES: dict[str, frozenset[str]] = {
    ".jpeg": frozenset({"image/jpeg", "image/jpg", "image/pjpeg"}),
    ".jpg": frozenset({"image/jpeg", "image/jpg", "image/pjpeg"}),
    ".png": frozenset({"image/png"}),
    ".gif": frozenset({"image/gif"}),
    ".pdf": frozenset({"application/pdf"}),
    ".doc": frozenset({"application/msword"}),
    ".docx": frozenset({_DOCX_MIME}),
    ".txt": frozenset({"text/plain"}),
    ".json": frozenset({"application/json"}),
}


@dataclass(frozen=True)
class UploadPolicy:
    directory: Path
    max_file_size: int = MAX_FILE_SIZE
    max_files: int = MAX_UPLOAD_FILES

    @classmethod
    def from_env(cls) -> UploadPolicy:
        return cls(directory=Path(UPLOAD_DIR), max_file_size=MAX_FILE_SIZE, max_files=MAX_UPLOAD_FILES)

    def multipart_budget(self, files: int) -> int:
        """Largest multipart body that can carry ``files`` parts at the size ceiling."""
        return self.max_file_size * files + _FRAMING_BYTES

    def json_budget(self) -> int:
        # one file, base64-encoded, plus the JSON envelope and prompt
        return -(-self.max_file_size // 3) * 4 + _FRAMING_BYTES

    def ensure_directory(self) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)


def normalize_mime(content_type: str | None) -> str:
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def validate_file_type(filename: str | None, content_type: str | None) -> None:
    """Require an allow-listed extension and a MIME type that agrees with it."""
    ext = Path(filename or "").suffix.lower()
    mime = normalize_mime(content_type)
    accepted = ALLOWED_TYPES.get(ext)
    if accepted is None or mime not in accepted:
        raise InvalidFileType()


def storage_name(field_name: str, original_name: str) -> str:
    ext = Path(original_name).suffix.lower()
    millis = int(time.time() * 1000)
    return f"{field_name}-{millis}-{random.randint(0, 10**9)}{ext}"


async def save_upload(upload: UploadFile, *, field_name: str, policy: UploadPolicy) -> UploadedFile:
    """Validate one multipart part and copy it into the upload directory.

    Raises:
        InvalidFileType: Extension or MIME type not allowed, or they disagree.
        FileTooLarge: The part exceeds ``policy.max_file_size``.
    """
    original_name = upload.filename or ""
    validate_file_type(original_name, upload.content_type)

    if upload.size is not None and upload.size > policy.max_file_size:
        raise FileTooLarge()

    policy.ensure_directory()
    filename = storage_name(field_name, original_name)
    path = policy.directory / filename

    written = 0
    try:
        with path.open("wb") as out:
            while chunk := await upload.read(_CHUNK_SIZE):
                written += len(chunk)
                if written > policy.max_file_size:
                    raise FileTooLarge()
                await run_in_threadpool(out.write, chunk)
    except BaseException:
        path.unlink(missing_ok=True)
        raise
    finally:
        await upload.close()

    logger.info("Stored upload %s as %s (%d bytes)", original_name, filename, written)
    return UploadedFile(
        field_name=field_name,
        original_name=original_name,
        filename=filename,
        size=written,
        content_type=normalize_mime(upload.content_type),
        path=path,
    )


async def save_uploads(
    uploads: Sequence[UploadFile],
    *,
    field_name: str,
    policy: UploadPolicy,
) -> list[UploadedFile]:
    """Save every part, or none: on the first rejection earlier parts are removed."""
    if len(uploads) > policy.max_files:
        raise TooManyFiles(policy.max_files)

    saved: list[UploadedFile] = []
    try:
        for upload in uploads:
            saved.append(await save_upload(upload, field_name=field_name, policy=policy))
    except BaseException:
        for f in saved:
            delete_upload(f)
        raise
    return saved


def delete_upload(file: UploadedFile) -> None:
    """Best-effort removal; failures are logged, never raised."""
    try:
        os.unlink(file.path)
    except OSError as e:
        logger.warning("Error cleaning up file %s: %s", file.path, e)
