"""Periodic removal of aged and duplicate files from the working directories."""

import asyncio
import hashlib
import time
from pathlib import Path
from typing import Optional, Sequence

import structlog

from ocr_pdf_service.config import Settings

logger = structlog.get_logger(__name__)


def file_fingerprint(path: Path) -> str:
    """
    Heuristic duplicate key: MD5 of path, size and mtime.

    This does not hash file content. Because the path is part of the key,
    two distinct files practically never share a fingerprint.
    """
    stats = path.stat()
    key = f"{path}{stats.st_size}{int(stats.st_mtime * 1000)}"
    return hashlib.md5(key.encode("utf-8")).hexdigest()


class RetentionSweep:
    """Deletes old files and heuristic duplicates on a fixed interval."""

    def __init__(
        self,
        age_directories: Sequence[Path],
        duplicate_directories: Sequence[Path],
        max_age_seconds: float,
        interval_seconds: float,
    ) -> None:
        """
        Initialize the sweep.

        Args:
            age_directories: Directories swept for files older than max_age_seconds.
            duplicate_directories: Directories swept for duplicate PDFs.
            max_age_seconds: Age after which a file is deleted.
            interval_seconds: Time between sweeps.
        """
        self.age_directories = [Path(d) for d in age_directories]
        self.duplicate_directories = [Path(d) for d in duplicate_directories]
        self.max_age_seconds = max_age_seconds
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetentionSweep":
        return cls(
            age_directories=[settings.uploads_path, settings.processed_path, settings.temp_path],
            duplicate_directories=[settings.uploads_path, settings.processed_path],
            max_age_seconds=settings.max_storage_age_seconds,
            interval_seconds=settings.cleanup_interval_seconds,
        )

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Schedule the sweep loop on the running event loop."""
        if self.running:
            return
        self._task = asyncio.create_task(self._loop())
        logger.info("retention_sweep_started", interval_s=self.interval_seconds)

    async def stop(self) -> None:
        """Cancel the sweep loop and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("retention_sweep_stopped")

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.perform_cleanup()
            except Exception as e:
                logger.error("retention_sweep_failed", error=str(e), exc_info=True)

    async def perform_cleanup(self) -> dict[str, list[Path]]:
        """Run one sweep off the event loop."""
        return await asyncio.to_thread(self.sweep)

    def sweep(self, now: Optional[float] = None) -> dict[str, list[Path]]:
        logger.info("retention_sweep_running")

        removed_old: list[Path] = []
        for directory in self.age_directories:
            removed_old.extend(self.remove_old_files(directory, now=now))

        removed_duplicates: list[Path] = []
        for directory in self.duplicate_directories:
            removed_duplicates.extend(self.remove_duplicates(directory))

        logger.info(
            "retention_sweep_completed",
            removed_old=len(removed_old),
            removed_duplicates=len(removed_duplicates),
        )
        return {"old": removed_old, "duplicates": removed_duplicates}

    def remove_old_files(self, directory: Path, now: Optional[float] = None) -> list[Path]:
        """Delete regular files whose mtime is older than the maximum age."""
        if not directory.is_dir():
            return []

        now = time.time() if now is None else now
        removed: list[Path] = []

        for path in directory.iterdir():
            try:
                if not path.is_file():
                    continue
                if now - path.stat().st_mtime > self.max_age_seconds:
                    path.unlink()
                    removed.append(path)
                    logger.info("removed_old_file", path=str(path))
            except OSError as e:
                logger.error("remove_old_file_failed", path=str(path), error=str(e))

        return removed

    def find_duplicates(self, directory: Path) -> list[list[Path]]:
        """Groups of PDFs sharing a fingerprint."""
        if not directory.is_dir():
            return []

        groups: dict[str, list[Path]] = {}
        for path in sorted(directory.iterdir()):
            if not path.name.lower().endswith(".pdf") or not path.is_file():
                continue
            try:
                groups.setdefault(file_fingerprint(path), []).append(path)
            except OSError as e:
                logger.error("fingerprint_failed", path=str(path), error=str(e))

        return [paths for paths in groups.values() if len(paths) > 1]

    def remove_duplicates(self, directory: Path) -> list[Path]:
        """Keep the newest file of each duplicate group, delete the rest."""
        removed: list[Path] = []

        for group in self.find_duplicates(directory):
            group.sort(key=self._mtime, reverse=True)
            for path in group[1:]:
                try:
                    path.unlink()
                    removed.append(path)
                    logger.info("removed_duplicate_file", path=str(path))
                except OSError as e:
                    logger.error("remove_duplicate_failed", path=str(path), error=str(e))

        return removed

    @staticmethod
    def _mtime(path: Path) -> float:
        try:
            return path.stat().st_mtime
        except OSError:
            return 0.0
