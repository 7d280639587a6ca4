"""Discovery of the optional jbig2 compressor used by ocrmypdf --optimize 2/3."""

from pathlib import Path
from typing import Optional, Sequence

import structlog

from ocr_pdf_service.adapters.base import BaseToolResolver, OCRError, ToolProbeResult
from ocr_pdf_service.adapters.process_runner import ProcessRunner
from ocr_pdf_service.config import Settings

logger = structlog.get_logger(__name__)

JBIG2_NAME = "jbig2"
STANDARD_JBIG2_PATHS = (
    "/usr/bin/jbig2",
    "/usr/local/bin/jbig2",
    "/opt/homebrew/bin/jbig2",
    "/opt/local/bin/jbig2",
)


def probe_output_ok(output: str) -> bool:
    """True when --version output looks like a working binary."""
    lowered = output.strip().lower()
    return bool(lowered) and "not found" not in lowered and "error" not in lowered


class CandidatePathResolver(BaseToolResolver):
    """Tries an ordered list of candidate paths, then the bare name on PATH."""

    def __init__(
        self,
        runner: ProcessRunner,
        candidates: Sequence[str],
        version_flag: str = "--version",
        timeout: float = 3.0,
        name: str = JBIG2_NAME,
    ) -> None:
        """
        Initialize the resolver.

        Args:
            runner: Process runner used for the version probes.
            candidates: Paths or bare names, in priority order.
            version_flag: Argument that makes the binary print its version.
            timeout: Timeout in seconds for each probe.
            name: Tool name used in log events and errors.
        """
        self.runner = runner
        self.candidates = list(dict.fromkeys(c for c in candidates if c))
        self.version_flag = version_flag
        self.timeout = timeout
        self.name = name

    @classmethod
    def for_jbig2(
        cls,
        settings: Settings,
        runner: ProcessRunner,
        base_dir: Optional[Path] = None,
    ) -> "CandidatePathResolver":
        """Build the jbig2 candidate list from settings."""
        base_dir = base_dir or Path.cwd()
        build_path = Path(settings.jbig2_build_path)
        if not build_path.is_absolute():
            build_path = base_dir / build_path

        candidates = [
            settings.jbig2_path,
            str(build_path),
            *STANDARD_JBIG2_PATHS,
            JBIG2_NAME,
        ]
        return cls(runner=runner, candidates=candidates, timeout=settings.probe_timeout)

    async def resolve(self) -> ToolProbeResult:
        checked: list[str] = []
        last_error: Optional[str] = None

        for candidate in self.candidates:
            checked.append(candidate)
            try:
                result = await self.runner.run(
                    [candidate, self.version_flag], timeout=self.timeout
                )
            except OCRError as e:
                last_error = e.message
                continue
            except Exception as e:
                logger.warning("tool_probe_unexpected_error", candidate=candidate, error=str(e))
                last_error = str(e)
                continue

            if result.timed_out:
                last_error = f"{candidate} timed out after {self.timeout}s"
                continue

            output = (result.stdout + "\n" + result.stderr).strip()
            if probe_output_ok(output):
                version = output.splitlines()[0].strip()
                logger.debug("tool_probe_found", tool=self.name, candidate=candidate, version=version)
                return ToolProbeResult(
                    available=True, path=candidate, version=version, checked=checked
                )

            last_error = f"{candidate} returned no usable version output"

        logger.info("tool_probe_not_found", tool=self.name, checked=len(checked), error=last_error)
        error = f"{self.name} not found"
        if last_error:
            error = f"{error} ({last_error})"
        return ToolProbeResult(
            available=False,
            error=error,
            checked=checked,
        )


class StaticToolResolver(BaseToolResolver):
    """Resolver with a fixed answer, for tests and for disabling discovery."""

    def __init__(self, available: bool, path: Optional[str] = None, version: Optional[str] = None) -> None:
        self.result = ToolProbeResult(
            available=available,
            path=path,
            version=version,
            error=None if available else f"{JBIG2_NAME} not found",
        )
        self.resolve_count = 0

    async def resolve(self) -> ToolProbeResult:
        self.resolve_count += 1
        return self.result
