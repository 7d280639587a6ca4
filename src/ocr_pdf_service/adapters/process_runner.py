"""Async child process runner with a wall-clock timeout and capped output."""

import asyncio
import time
from typing import Optional, Sequence

import structlog

from ocr_pdf_service.adapters.base import ProcessSpawnError
from ocr_pdf_service.models.job import ProcessResult

logger = structlog.get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 600.0
DEFAULT_MAX_OUTPUT_BYTES = 10 * 1024 * 1024
_READ_CHUNK = 64 * 1024
_REAP_GRACE_SECONDS = 5.0


class _CappedBuffer:
    """Collects stream bytes up to a ceiling and drops the rest."""

    def __init__(self, limit: int) -> None:
        self.limit = limit
        self.data = bytearray()
        self.truncated = False

    def feed(self, chunk: bytes) -> None:
        room = self.limit - len(self.data)
        if room <= 0:
            self.truncated = True
            return
        if len(chunk) > room:
            self.truncated = True
            chunk = chunk[:room]
        self.data.extend(chunk)

    def text(self) -> str:
        return self.data.decode("utf-8", errors="replace")


class ProcessRunner:
    """Runs commands without a shell and always resolves to a ProcessResult."""

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES,
    ) -> None:
        """
        Initialize the runner.

        Args:
            timeout: Default wall-clock budget in seconds.
            max_output_bytes: Maximum bytes kept per output stream.
        """
        self.timeout = timeout
        self.max_output_bytes = max_output_bytes

    async def run(
        self, args: Sequence[str], timeout: Optional[float] = None
    ) -> ProcessResult:
        """
        Execute a command and wait for it, killing it on timeout.

        The timeout covers both process exit and closure of its output
        streams, so a child that leaves its pipes open cannot block the caller.

        Args:
            args: Argument vector, executable first.
            timeout: Override of the default timeout in seconds.

        Returns:
            ProcessResult with captured (capped) output.

        Raises:
            ProcessSpawnError: If the process could not be started.
        """
        budget = self.timeout if timeout is None else timeout
        args = tuple(str(arg) for arg in args)
        started = time.monotonic()

        logger.debug("process_starting", executable=args[0], timeout_s=budget)

        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error("process_spawn_failed", executable=args[0], error=str(e))
            raise ProcessSpawnError(
                f"Failed to start {args[0]}: {e}",
                details=str(e),
                original_error=e,
            ) from e

        stdout_buffer = _CappedBuffer(self.max_output_bytes)
        stderr_buffer = _CappedBuffer(self.max_output_bytes)
        timed_out = False

        try:
            await asyncio.wait_for(
                asyncio.gather(
                    self._drain(process.stdout, stdout_buffer),
                    self._drain(process.stderr, stderr_buffer),
                    process.wait(),
                ),
                timeout=budget,
            )
        except asyncio.TimeoutError:
            timed_out = True
            logger.warning("process_timed_out", pid=process.pid, timeout_s=budget)
            await self._kill(process)
        except asyncio.CancelledError:
            logger.warning("process_cancelled", pid=process.pid)
            await self._kill(process)
            raise

        duration_ms = int((time.monotonic() - started) * 1000)
        result = ProcessResult(
            args=args,
            returncode=None if timed_out else process.returncode,
            stdout=stdout_buffer.text(),
            stderr=stderr_buffer.text(),
            timed_out=timed_out,
            output_truncated=stdout_buffer.truncated or stderr_buffer.truncated,
            duration_ms=duration_ms,
        )

        logger.debug(
            "process_finished",
            pid=process.pid,
            returncode=result.returncode,
            timed_out=timed_out,
            duration_ms=duration_ms,
        )

        return result

    async def _drain(
        self, stream: Optional[asyncio.StreamReader], buffer: _CappedBuffer
    ) -> None:
        if stream is None:
            return
        while True:
            chunk = await stream.read(_READ_CHUNK)
            if not chunk:
                break
            buffer.feed(chunk)

    async def _kill(self, process: asyncio.subprocess.Process) -> None:
        """Kill the process by pid and reap it; failures are logged only."""
        try:
            process.kill()
        except ProcessLookupError:
            logger.debug("process_already_exited", pid=process.pid)
        except OSError as e:
            logger.error("process_kill_failed", pid=process.pid, error=str(e))
            return

        try:
            await asyncio.wait_for(process.wait(), timeout=_REAP_GRACE_SECONDS)
        except asyncio.TimeoutError:
            logger.error("process_reap_timed_out", pid=process.pid)
