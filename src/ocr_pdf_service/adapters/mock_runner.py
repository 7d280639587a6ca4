"""Mock process runner that imitates ocrmypdf for testing and development."""

import asyncio
from pathlib import Path
from typing import Any, Optional, Sequence

from pydantic import BaseModel

from ocr_pdf_service.adapters.process_runner import ProcessRunner
from ocr_pdf_service.models.job import ProcessResult

MOCK_PDF_BYTES = b"%PDF-1.4\n% mock ocr output\n%%EOF\n"


class ScriptedRun(BaseModel):
    """Behaviour of one simulated invocation."""

    returncode: int = 0
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    write_output: bool = True
    """Write the output file (last argument) when an ocrmypdf run succeeds."""

    output_bytes: bytes = MOCK_PDF_BYTES


class MockProcessRunner(ProcessRunner):
    """Runner that returns scripted results without spawning processes."""

    def __init__(self, config: Optional[dict[str, Any]] = None) -> None:
        """
        Initialize the mock runner.

        Args:
            config: Configuration dictionary. Supports:
                - script: list of ScriptedRun (or dicts), consumed one per call;
                  the last entry repeats once the list is exhausted
                - delay_ms: Simulated processing delay in milliseconds (default: 0)
        """
        config = config or {}
        super().__init__()
        self.script = [
            run if isinstance(run, ScriptedRun) else ScriptedRun(**run)
            for run in config.get("script", [ScriptedRun()])
        ]
        self.delay_ms = config.get("delay_ms", 0)
        self.calls: list[tuple[str, ...]] = []

    @property
    def process_count(self) -> int:
        return len(self.calls)

    async def run(
        self, args: Sequence[str], timeout: Optional[float] = None
    ) -> ProcessResult:
        args = tuple(str(arg) for arg in args)
        scripted = self.script[min(len(self.calls), len(self.script) - 1)]
        self.calls.append(args)

        if self.delay_ms > 0:
            await asyncio.sleep(self.delay_ms / 1000.0)

        if scripted.timed_out:
            return ProcessResult(
                args=args,
                returncode=None,
                stdout=scripted.stdout,
                stderr=scripted.stderr,
                timed_out=True,
                duration_ms=int((timeout or self.timeout) * 1000),
            )

        # Version probes have two arguments; only real jobs name an output path.
        if scripted.returncode == 0 and scripted.write_output and len(args) >= 3:
            Path(args[-1]).write_bytes(scripted.output_bytes)

        return ProcessResult(
            args=args,
            returncode=scripted.returncode,
            stdout=scripted.stdout,
            stderr=scripted.stderr,
            duration_ms=self.delay_ms,
        )
