"""
Photo blob storage with retrying uploads.

Blobs live on disk under ``settings.photos_dir``; rows in ``job_photos`` only
ever point at a blob that was written successfully. Storage failures are
retried with linear backoff and the final error is turned into guidance a
technician can act on.
"""

import hashlib
import logging
import os
import re
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from fieldgates.core.exceptions import UploadFailedError

logger = logging.getLogger(__name__)

PERMISSION_MESSAGE = "Permission denied. Please contact support if this issue persists."
SIZE_MESSAGE = "File too large. Please use a smaller image."
NETWORK_MESSAGE = "Network connection failed. Please check your internet and try again."

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")


@dataclass
class PhotoUpload:
    filename: str
    content: bytes
    content_type: str | None = "image/jpeg"
    metadata: dict = field(default_factory=dict)
    is_ppe: bool = False


@dataclass
class StoredPhoto:
    storage_path: str
    file_hash: str
    file_size_bytes: int


class PhotoStorage:
    """Write-once photo blobs laid out as ``jobs/<job_id>/photos/<name>``."""

    def __init__(self, root: Path):
        self.root = root

    @staticmethod
    def blob_name(filename: str) -> str:
        # Camera filenames carry spaces and locale characters; keep them readable.
        return f"{uuid.uuid4().hex[:12]}_{_UNSAFE_NAME_CHARS.sub('_', filename)}"

    def put(self, job_id: str, filename: str, content: bytes) -> StoredPhoto:
        """Write a blob once. Returns its path relative to the storage root."""
        storage_path = f"jobs/{job_id}/photos/{self.blob_name(filename)}"
        photo_path = self.full_path(storage_path)
        photo_path.parent.mkdir(parents=True, exist_ok=True)
        photo_path.write_bytes(content)
        os.chmod(photo_path, 0o444)
        return StoredPhoto(
            storage_path=storage_path,
            file_hash=hashlib.sha256(content).hexdigest(),
            file_size_bytes=len(content),
        )

    def digest(self, storage_path: str) -> str:
        """SHA-256 of the blob as it is on disk now."""
        with open(self.full_path(storage_path), "rb") as f:
            return hashlib.file_digest(f, "sha256").hexdigest()

    def delete(self, storage_path: str) -> None:
        self.full_path(storage_path).unlink(missing_ok=True)

    def full_path(self, storage_path: str) -> Path:
        return self.root / storage_path


def classify_upload_error(exc: Exception) -> str:
    message = str(exc)
    lowered = message.lower()
    if isinstance(exc, PermissionError) or "permission" in lowered or "rls" in lowered:
        return PERMISSION_MESSAGE
    if "large" in lowered or "size" in lowered or "no space" in lowered:
        return SIZE_MESSAGE
    if isinstance(exc, ConnectionError) or any(k in lowered for k in ("network", "fetch", "connection", "timed out")):
        return NETWORK_MESSAGE
    return f"Upload failed: {message}" if message else "Upload failed. Please try again."


def _log_failed_attempt(job_id: str, max_attempts: int):
    def before_sleep(retry_state: RetryCallState) -> None:
        logger.warning("Photo upload attempt %d/%d for job %s failed: %s",
                       retry_state.attempt_number, max_attempts, job_id,
                       retry_state.outcome.exception())
    return before_sleep


def upload_with_retry(
    storage: PhotoStorage,
    job_id: str,
    upload: PhotoUpload,
    max_attempts: int = 3,
    backoff_seconds: float = 1.0,
    max_bytes: int | None = None,
    sleep=time.sleep,
) -> StoredPhoto:
    """Store one photo, retrying storage errors.

    Oversized files are rejected before the first attempt since retrying
    cannot help. Attempt N that fails waits ``N * backoff_seconds`` before
    the next one.
    """
    if max_bytes is not None and len(upload.content) > max_bytes:
        raise UploadFailedError(
            f"File too large. Please use a smaller image (max {max_bytes // (1024 * 1024)}MB).",
            attempts=0,
        )
    if not upload.content:
        raise UploadFailedError("Empty file. Please retake the photo.", attempts=0)

    retrying = Retrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_incrementing(start=backoff_seconds, increment=backoff_seconds),
        retry=retry_if_exception_type(OSError),
        before_sleep=_log_failed_attempt(job_id, max_attempts),
        sleep=sleep,
        reraise=True,
    )
    try:
        return retrying(storage.put, job_id, upload.filename, upload.content)
    except OSError as exc:
        logger.error("Photo upload for job %s failed after %d attempts: %s", job_id, max_attempts, exc)
        raise UploadFailedError(classify_upload_error(exc), attempts=max_attempts) from exc
