"""OCR processing service that orchestrates the complete pipeline."""

import asyncio
import time
from pathlib import Path
from typing import Optional

import structlog

from ocr_pdf_service.adapters.base import BaseToolResolver, GenericFailure, OCRError
from ocr_pdf_service.adapters.process_runner import ProcessRunner
from ocr_pdf_service.models.job import (
    CommandInvocation,
    OcrJobResult,
    OcrOptions,
    ProcessResult,
    StoredFile,
)
from ocr_pdf_service.services.command_builder import DEFAULT_EXECUTABLE, build_command
from ocr_pdf_service.services.failure_classifier import (
    RetryPolicy,
    classify_failure,
    failure_error,
)
from ocr_pdf_service.services.upload_intake import UploadIntake

logger = structlog.get_logger(__name__)

TRUNCATION_MARKER = "\n... [output truncated]"
DEFAULT_RESPONSE_OUTPUT_CHARS = 10000


def truncate_output(text: str, limit: int = DEFAULT_RESPONSE_OUTPUT_CHARS) -> str:
    """Cap response text at `limit` characters, marking the cut."""
    if len(text) <= limit:
        return text
    return text[:limit] + TRUNCATION_MARKER


class OCRService:
    """Service for orchestrating the OCR processing pipeline."""

    def __init__(
        self,
        intake: UploadIntake,
        runner: ProcessRunner,
        compressor_resolver: BaseToolResolver,
        retry_policy: Optional[RetryPolicy] = None,
        executable: str = DEFAULT_EXECUTABLE,
        timeout: Optional[float] = None,
        response_output_chars: int = DEFAULT_RESPONSE_OUTPUT_CHARS,
    ) -> None:
        """
        Initialize the OCR service.

        Args:
            intake: Upload validation and storage.
            runner: Runs ocrmypdf.
            compressor_resolver: Locates the optional jbig2 compressor.
            retry_policy: Decides on the single retry.
            executable: ocrmypdf executable.
            timeout: Per-attempt timeout in seconds (runner default if None).
            response_output_chars: Cap for stdout/stderr in the result.
        """
        self.intake = intake
        self.runner = runner
        self.compressor_resolver = compressor_resolver
        self.retry_policy = retry_policy or RetryPolicy()
        self.executable = executable
        self.timeout = timeout
        self.response_output_chars = response_output_chars

        logger.debug(
            "ocr_service_initialized",
            runner=type(runner).__name__,
            resolver=type(compressor_resolver).__name__,
            uploads_dir=str(intake.uploads_dir),
        )

    async def process_upload(
        self,
        content: bytes,
        content_type: Optional[str],
        filename: Optional[str],
        options: OcrOptions,
    ) -> OcrJobResult:
        """
        Run an uploaded PDF through the complete pipeline.

        Pipeline steps:
        1. Validate media type, extension and size
        2. Prepare and probe the working directories
        3. Store the upload and verify its size on disk
        4. Probe for the optional compressor
        5. Build and run ocrmypdf, retrying once on a known signature
        6. Verify the output file and build the result

        Args:
            content: Uploaded bytes.
            content_type: Declared media type.
            filename: Declared filename (untrusted).
            options: OCR options.

        Returns:
            OcrJobResult describing the searchable PDF.

        Raises:
            OCRError: A classified validation, storage or execution error.
        """
        start_time = time.time()

        logger.info(
            "processing_ocr_upload",
            filename=filename,
            content_type=content_type,
            size_bytes=len(content),
        )

        # Step 1: Validate before touching the filesystem
        self.intake.validate(content, content_type, filename)

        # Step 2: Working directories
        await asyncio.to_thread(self.intake.prepare_directories)

        # Step 3: Store the upload
        stored = await self.intake.store(content, filename or "")
        output = self.intake.output_for(stored)

        # Step 4: Optional compressor
        probe = await self.compressor_resolver.resolve()
        logger.info(
            "compressor_probed",
            available=probe.available,
            path=probe.path,
            version=probe.version,
        )

        # Step 5: Run with at most one retry
        invocation = build_command(
            options,
            stored.path,
            output.path,
            compressor_available=probe.available,
            executable=self.executable,
        )
        invocation, process_result = await self._run_with_retry(invocation, probe.available)

        # Step 6: Verify output and build result
        file_size = await asyncio.to_thread(self._verify_output, invocation, output)

        processing_time_ms = int((time.time() - start_time) * 1000)
        logger.info(
            "ocr_job_completed",
            input_file=stored.safe_name,
            output_file=output.safe_name,
            attempts=invocation.attempt_number,
            file_size=file_size,
            processing_time_ms=processing_time_ms,
        )

        return OcrJobResult(
            input_file=stored.safe_name,
            output_file=output.safe_name,
            stdout=truncate_output(process_result.stdout, self.response_output_chars),
            stderr=truncate_output(process_result.stderr, self.response_output_chars),
            file_size=file_size,
            attempts=invocation.attempt_number,
            command=invocation.command_line,
        )

    async def _run_with_retry(
        self, invocation: CommandInvocation, compressor_available: bool
    ) -> tuple[CommandInvocation, ProcessResult]:
        while True:
            logger.info(
                "ocr_attempt_started",
                attempt=invocation.attempt_number,
                command=invocation.command_line,
            )

            try:
                result = await self.runner.run(invocation.args, timeout=self.timeout)
            except OCRError as e:
                e.command = e.command or invocation.command_line
                raise

            if result.success:
                logger.info(
                    "ocr_attempt_succeeded",
                    attempt=invocation.attempt_number,
                    duration_ms=result.duration_ms,
                )
                return invocation, result

            kind = classify_failure(result)
            logger.warning(
                "ocr_attempt_failed",
                attempt=invocation.attempt_number,
                failure=kind.value,
                returncode=result.returncode,
                timed_out=result.timed_out,
            )

            retry_options = self.retry_policy.next_options(
                kind, invocation.options, invocation.attempt_number
            )
            if retry_options is None:
                raise failure_error(kind, result, invocation)

            invocation = build_command(
                retry_options,
                invocation.input_path,
                invocation.output_path,
                compressor_available=compressor_available,
                attempt_number=invocation.attempt_number + 1,
                executable=self.executable,
            )
            logger.info(
                "ocr_retry_scheduled",
                failure=kind.value,
                attempt=invocation.attempt_number,
                command=invocation.command_line,
            )

    @staticmethod
    def _verify_output(invocation: CommandInvocation, output: StoredFile) -> int:
        """The exit code alone is not trusted; the output must exist and be non-empty."""
        path: Path = output.path
        if not path.is_file():
            raise GenericFailure(
                "OCR process completed but output file was not created",
                details=f"Expected output at {path}",
                command=invocation.command_line,
            )

        size = path.stat().st_size
        if size == 0:
            raise GenericFailure(
                "OCR process completed but output file is empty",
                details=f"Output at {path} has zero size",
                command=invocation.command_line,
            )
        return size
