"""Version checks for the external executables the service relies on."""

import asyncio
import re
from typing import Callable, Optional

import structlog

from ocr_pdf_service.adapters.base import BaseToolResolver, OCRError
from ocr_pdf_service.adapters.process_runner import ProcessRunner
from ocr_pdf_service.models.job import DependencyStatus

logger = structlog.get_logger(__name__)

VERSION_CHECK_TIMEOUT = 5.0

_TESSERACT_VERSION = re.compile(r"tesseract\s+v?([0-9][0-9.]*)", re.IGNORECASE)


def _first_line(output: str) -> str:
    stripped = output.strip()
    return stripped.splitlines()[0].strip() if stripped else ""


def parse_tesseract_version(output: str) -> str:
    """Extract the version number from `tesseract --version` output."""
    match = _TESSERACT_VERSION.search(output)
    return match.group(1) if match else _first_line(output) or "Unknown"


class DependencyChecker:
    """Runs `<tool> --version` for each dependency and reports availability."""

    def __init__(
        self,
        runner: ProcessRunner,
        compressor_resolver: BaseToolResolver,
        ocrmypdf_command: str = "ocrmypdf",
        timeout: float = VERSION_CHECK_TIMEOUT,
    ) -> None:
        self.runner = runner
        self.compressor_resolver = compressor_resolver
        self.ocrmypdf_command = ocrmypdf_command
        self.timeout = timeout

    async def check_command(
        self,
        name: str,
        command: str,
        optional: bool = False,
        parse_version: Callable[[str], str] = _first_line,
    ) -> DependencyStatus:
        """
        Check a single executable.

        Args:
            name: Display name.
            command: Executable to invoke with --version.
            optional: Whether the service works without it.
            parse_version: Extracts a version string from the output.

        Returns:
            DependencyStatus for the executable.
        """
        try:
            result = await self.runner.run([command, "--version"], timeout=self.timeout)
        except OCRError as e:
            return DependencyStatus(
                name=name, command=command, available=False, error=e.message, optional=optional
            )

        if not result.success:
            error = (
                f"timed out after {self.timeout}s"
                if result.timed_out
                else (result.stderr.strip() or f"exit code {result.returncode}")
            )
            return DependencyStatus(
                name=name, command=command, available=False, error=error, optional=optional
            )

        output = result.stdout if result.stdout.strip() else result.stderr
        return DependencyStatus(
            name=name,
            command=command,
            available=True,
            version=parse_version(output),
            optional=optional,
        )

    async def check_ocrmypdf(self) -> DependencyStatus:
        return await self.check_command("OCRmyPDF", self.ocrmypdf_command)

    async def check_tesseract(self) -> DependencyStatus:
        return await self.check_command(
            "Tesseract OCR", "tesseract", parse_version=parse_tesseract_version
        )

    async def check_compressor(self) -> DependencyStatus:
        probe = await self.compressor_resolver.resolve()
        return DependencyStatus(
            name="jbig2enc",
            command=probe.path or "jbig2",
            available=probe.available,
            version=probe.version,
            error=probe.error,
            optional=True,
        )

    async def check_core(self) -> list[DependencyStatus]:
        """ocrmypdf, Tesseract and the optional compressor."""
        return list(
            await asyncio.gather(
                self.check_ocrmypdf(),
                self.check_tesseract(),
                self.check_compressor(),
            )
        )

    async def check_all(self) -> list[DependencyStatus]:
        """Every dependency, required ones first."""
        results = await asyncio.gather(
            self.check_ocrmypdf(),
            self.check_tesseract(),
            self.check_command("Ghostscript", "gs"),
            self.check_compressor(),
            self.check_command("unpaper", "unpaper", optional=True),
        )
        logger.info(
            "dependencies_checked",
            available=[d.name for d in results if d.available],
            missing=[d.name for d in results if not d.available],
        )
        return list(results)


def all_required_available(dependencies: list[DependencyStatus]) -> bool:
    return all(dep.available for dep in dependencies if not dep.optional)


def find_dependency(
    dependencies: list[DependencyStatus], name: str
) -> Optional[DependencyStatus]:
    return next((dep for dep in dependencies if dep.name == name), None)
