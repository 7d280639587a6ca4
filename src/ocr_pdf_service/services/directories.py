"""Working directory creation and write-permission probes."""

import time
import uuid
from pathlib import Path
from typing import Iterable

import structlog

from ocr_pdf_service.adapters.base import PermissionDenied
from ocr_pdf_service.models.job import DirectoryStatus

logger = structlog.get_logger(__name__)


def _probe_file(directory: Path) -> Path:
    return directory / f".write-test-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}.tmp"


def probe_writable(directory: Path) -> None:
    """Write then delete a throwaway file. Raises OSError on failure."""
    probe = _probe_file(directory)
    probe.write_bytes(b"permission test")
    probe.unlink()


def ensure_writable_directories(directories: Iterable[Path]) -> None:
    """
    Create each directory (recursively, idempotently) and probe it for writes.

    Raises:
        PermissionDenied: If a directory cannot be created or written.
    """
    for directory in directories:
        try:
            directory.mkdir(parents=True, exist_ok=True)
            probe_writable(directory)
        except OSError as e:
            logger.error("directory_not_writable", directory=str(directory), error=str(e))
            raise PermissionDenied(
                f"Directory is not writable: {directory}",
                details=str(e),
                original_error=e,
            ) from e

        logger.debug("directory_ready", directory=str(directory))


def check_directory(directory: Path) -> DirectoryStatus:
    """Report existence and writability without creating anything."""
    status = DirectoryStatus(directory=str(directory))

    if not directory.is_dir():
        status.error = "Directory does not exist"
        return status

    status.exists = True
    try:
        probe_writable(directory)
        status.writable = True
    except OSError as e:
        status.error = str(e)

    return status


def check_directories(directories: Iterable[Path]) -> list[DirectoryStatus]:
    return [check_directory(directory) for directory in directories]
