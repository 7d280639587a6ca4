"""Operator endpoints: status, health and dependency checks."""

import asyncio
import os
import platform
import sys
from datetime import UTC, datetime
from typing import Any

import structlog
from fastapi import APIRouter, Depends

from ocr_pdf_service import __version__
from ocr_pdf_service.adapters.dependencies import (
    DependencyChecker,
    all_required_available,
    find_dependency,
)
from ocr_pdf_service.adapters.process_runner import ProcessRunner
from ocr_pdf_service.adapters.tool_probe import CandidatePathResolver
from ocr_pdf_service.config import Settings, get_settings
from ocr_pdf_service.models.job import OutputFileInfo
from ocr_pdf_service.services.directories import check_directories, check_directory

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["system"])


def get_dependency_checker(settings: Settings = Depends(get_settings)) -> DependencyChecker:
    """Dependency checker wired to the configured ocrmypdf and jbig2 locations."""
    runner = ProcessRunner(timeout=settings.probe_timeout, max_output_bytes=64 * 1024)
    return DependencyChecker(
        runner=runner,
        compressor_resolver=CandidatePathResolver.for_jbig2(settings, runner),
        ocrmypdf_command=settings.ocrmypdf_command,
    )


def list_output_files(settings: Settings) -> list[OutputFileInfo]:
    directory = settings.processed_path
    if not directory.is_dir():
        return []
    return [
        OutputFileInfo(name=path.name, size=path.stat().st_size)
        for path in sorted(directory.iterdir())
        if path.is_file() and path.name.lower().endswith(".pdf")
    ]


@router.get("/status")
async def get_status(
    settings: Settings = Depends(get_settings),
    checker: DependencyChecker = Depends(get_dependency_checker),
) -> dict[str, Any]:
    """ocrmypdf and jbig2 availability, directory state and processed files."""
    ocrmypdf, jbig2 = await asyncio.gather(
        checker.check_ocrmypdf(), checker.check_compressor()
    )
    uploads = await asyncio.to_thread(check_directory, settings.uploads_path)
    processed = await asyncio.to_thread(check_directory, settings.processed_path)
    files = await asyncio.to_thread(list_output_files, settings)

    return {
        "success": True,
        "system": {
            "ocrmypdf": {
                "available": ocrmypdf.available,
                "version": ocrmypdf.version or "Not available",
                "jbig2": jbig2.model_dump(by_alias=True, exclude_none=True),
            },
            "directories": {
                "uploads": uploads.model_dump(by_alias=True, exclude_none=True),
                "processed": processed.model_dump(by_alias=True, exclude_none=True),
            },
        },
        "files": [f.model_dump(by_alias=True) for f in files],
    }


@router.get("/health")
async def health_check(
    settings: Settings = Depends(get_settings),
    checker: DependencyChecker = Depends(get_dependency_checker),
) -> dict[str, Any]:
    """Overall health: directories writable and required tools present."""
    logger.info("health_check_called")

    directories = await asyncio.to_thread(
        check_directories, [settings.uploads_path, settings.processed_path]
    )
    dependencies = await checker.check_core()

    directories_ok = all(d.exists and d.writable for d in directories)
    healthy = directories_ok and all_required_available(dependencies)

    jbig2 = find_dependency(dependencies, "jbig2enc")

    return {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": datetime.now(UTC).isoformat(),
        "version": __version__,
        "service": settings.app_name,
        "system": {
            "cpuCount": os.cpu_count(),
            "platform": sys.platform,
            "pythonVersion": platform.python_version(),
        },
        "directories": [d.model_dump(by_alias=True, exclude_none=True) for d in directories],
        "dependencies": [d.model_dump(by_alias=True, exclude_none=True) for d in dependencies],
        "optimization": {
            "jbig2Available": bool(jbig2 and jbig2.available),
            "enabled": settings.enable_optimization,
        },
        "config": {
            "maxUploadSize": settings.max_upload_size,
            "ocrTimeout": settings.ocr_timeout,
            "defaultLanguage": settings.default_language,
            "debug": settings.debug,
        },
    }


@router.get("/check-dependencies")
async def check_dependencies(
    settings: Settings = Depends(get_settings),
    checker: DependencyChecker = Depends(get_dependency_checker),
) -> dict[str, Any]:
    """Every dependency, required vs optional, plus directory writability."""
    dependencies = await checker.check_all()
    directories = await asyncio.to_thread(
        check_directories, [settings.uploads_path, settings.processed_path]
    )

    return {
        "success": True,
        "dependencies": [d.model_dump(by_alias=True, exclude_none=True) for d in dependencies],
        "allRequiredAvailable": all_required_available(dependencies),
        "allDependenciesAvailable": all(d.available for d in dependencies),
        "directories": [d.model_dump(by_alias=True, exclude_none=True) for d in directories],
    }
