"""Validation and persistence of uploaded PDFs."""

import asyncio
import os
import re
import threading
import time
from pathlib import Path
from typing import Callable, Optional, Sequence

import structlog

from ocr_pdf_service.adapters.base import IOFailure, PayloadTooLarge, UnsupportedMediaType
from ocr_pdf_service.config import Settings
from ocr_pdf_service.models.job import FileRole, StoredFile
from ocr_pdf_service.services.directories import ensure_writable_directories

logger = structlog.get_logger(__name__)

ACCEPTED_MEDIA_TYPE = "application/pdf"
ACCEPTED_EXTENSION = ".pdf"
OUTPUT_SUFFIX = "_ocr"
MAX_BASENAME_LENGTH = 100
FALLBACK_BASENAME = "document"
_MAX_NAME_ATTEMPTS = 100

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9]+")


def sanitize_basename(name: str) -> str:
    """
    Map a client-supplied base name to [A-Za-z0-9_].

    Runs of other characters collapse to a single underscore, edge
    underscores are trimmed and the result is capped at 100 characters.
    """
    cleaned = _UNSAFE_CHARS.sub("_", name).strip("_")
    cleaned = cleaned[:MAX_BASENAME_LENGTH].rstrip("_")
    return cleaned or FALLBACK_BASENAME


def split_filename(filename: str) -> tuple[str, str]:
    """Base name and lower-cased extension of the last path component."""
    leaf = filename.replace("\\", "/").rsplit("/", 1)[-1]
    stem, extension = os.path.splitext(leaf)
    return stem, extension.lower()


def format_megabytes(size_bytes: int) -> str:
    return f"{size_bytes / (1024 * 1024):.2f} MB"


class MillisecondClock:
    """Strictly increasing millisecond timestamps within one process."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._last = 0
        self._lock = threading.Lock()

    def __call__(self) -> int:
        with self._lock:
            now = int(self._clock() * 1000)
            if now <= self._last:
                now = self._last + 1
            self._last = now
            return now


class UploadIntake:
    """Validates uploads and writes them to the intake directory."""

    def __init__(
        self,
        uploads_dir: Path,
        processed_dir: Path,
        max_upload_bytes: int,
        clock: Optional[MillisecondClock] = None,
    ) -> None:
        """
        Initialize the intake.

        Args:
            uploads_dir: Directory uploaded files are written to.
            processed_dir: Directory ocrmypdf writes results to.
            max_upload_bytes: Largest accepted upload in bytes.
            clock: Timestamp source for unique names.
        """
        self.uploads_dir = Path(uploads_dir)
        self.processed_dir = Path(processed_dir)
        self.max_upload_bytes = max_upload_bytes
        self.clock = clock or MillisecondClock()

    @classmethod
    def from_settings(cls, settings: Settings, clock: Optional[MillisecondClock] = None) -> "UploadIntake":
        return cls(
            uploads_dir=settings.uploads_path,
            processed_dir=settings.processed_path,
            max_upload_bytes=settings.max_upload_bytes,
            clock=clock,
        )

    def validate(self, content: bytes, content_type: Optional[str], filename: Optional[str]) -> None:
        """
        Check media type, extension and size. Touches no files.

        Raises:
            UnsupportedMediaType: If the upload is not declared as a PDF.
            PayloadTooLarge: If the upload exceeds the size limit.
        """
        media_type = (content_type or "").split(";", 1)[0].strip().lower()
        if media_type != ACCEPTED_MEDIA_TYPE:
            raise UnsupportedMediaType(
                "Only PDF files are supported",
                details=f"Declared media type: {content_type or 'none'}",
            )

        _, extension = split_filename(filename or "")
        if extension != ACCEPTED_EXTENSION:
            raise UnsupportedMediaType(
                "Only PDF files are supported",
                details=f"File extension {extension or '(none)'} does not match {ACCEPTED_EXTENSION}",
            )

        if len(content) > self.max_upload_bytes:
            raise PayloadTooLarge(
                f"File too large: {format_megabytes(len(content))}",
                details=f"Maximum upload size is {format_megabytes(self.max_upload_bytes)}",
            )

    def prepare_directories(self) -> None:
        """Create and probe both working directories."""
        ensure_writable_directories([self.uploads_dir, self.processed_dir])

    async def store(self, content: bytes, filename: str) -> StoredFile:
        """
        Write an upload under a sanitized, timestamped name and verify it.

        Raises:
            IOFailure: If the write fails or the on-disk size is wrong.
        """
        stem, _ = split_filename(filename)
        base = sanitize_basename(stem)

        try:
            path = await asyncio.to_thread(self._write_exclusive, base, content)
        except OSError as e:
            logger.error("upload_write_failed", filename=filename, error=str(e))
            raise IOFailure("Failed to save uploaded file", details=str(e), original_error=e) from e

        size_on_disk = await asyncio.to_thread(self._size_on_disk, path)
        if size_on_disk == 0 or size_on_disk != len(content):
            await asyncio.to_thread(path.unlink, True)
            raise IOFailure(
                "Failed to save uploaded file",
                details=(
                    "File was saved but has zero size"
                    if size_on_disk == 0
                    else f"Size on disk {size_on_disk} does not match upload size {len(content)}"
                ),
            )

        logger.info("upload_stored", safe_name=path.name, size_bytes=size_on_disk)

        return StoredFile(
            original_name=filename,
            safe_name=path.name,
            path=path,
            role=FileRole.INPUT,
            size_bytes=size_on_disk,
        )

    async def store_many(self, uploads: Sequence[tuple[bytes, Optional[str], str]]) -> list[StoredFile]:
        """Validate a batch of (content, content_type, filename), prepare once, store each."""
        for content, content_type, filename in uploads:
            self.validate(content, content_type, filename)

        self.prepare_directories()
        return [await self.store(content, filename) for content, _, filename in uploads]

    def output_for(self, stored: StoredFile) -> StoredFile:
        """Descriptor of the searchable PDF produced from a stored upload."""
        safe_name = f"{Path(stored.safe_name).stem}{OUTPUT_SUFFIX}{ACCEPTED_EXTENSION}"
        return StoredFile(
            original_name=stored.original_name,
            safe_name=safe_name,
            path=self.processed_dir / safe_name,
            role=FileRole.OUTPUT,
        )

    def _write_exclusive(self, base: str, content: bytes) -> Path:
        for _ in range(_MAX_NAME_ATTEMPTS):
            path = self.uploads_dir / f"{base}_{self.clock()}{ACCEPTED_EXTENSION}"
            try:
                handle = path.open("xb")
            except FileExistsError:
                continue
            try:
                with handle:
                    handle.write(content)
                    handle.flush()
                    os.fsync(handle.fileno())
            except OSError:
                path.unlink(missing_ok=True)
                raise
            return path
        raise FileExistsError(f"Could not find a free name for {base} in {self.uploads_dir}")

    @staticmethod
    def _size_on_disk(path: Path) -> int:
        try:
            return path.stat().st_size
        except FileNotFoundError:
            return 0
