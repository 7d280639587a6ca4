"""Integration tests for the OCR pipeline."""

from typing import Any, Callable, Optional
from unittest.mock import AsyncMock, patch

import pytest

from ocr_pdf_service.adapters import (
    GenericFailure,
    HasTextLayer,
    MockProcessRunner,
    PayloadTooLarge,
    ProcessSpawnError,
    ProcessTimeout,
    StaticToolResolver,
    TaggedPdf,
    UnsupportedMediaType,
)
from ocr_pdf_service.config import Settings
from ocr_pdf_service.models.job import OcrOptions
from ocr_pdf_service.services.failure_classifier import RetryPolicy
from ocr_pdf_service.services.ocr_service import TRUNCATION_MARKER, OCRService
from ocr_pdf_service.services.upload_intake import UploadIntake

PRIOR_OCR_STDERR = "PriorOcrFoundError: page already has text! - aborting (use --force-ocr to force OCR)"


@pytest.fixture
def make_service(settings: Settings) -> Callable[..., OCRService]:
    """Build an OCRService around a scripted runner."""

    def _make(
        script: Optional[list[dict[str, Any]]] = None,
        compressor_available: bool = True,
        retry_policy: Optional[RetryPolicy] = None,
        response_output_chars: int = 10000,
        max_upload_bytes: Optional[int] = None,
    ) -> OCRService:
        config: dict[str, Any] = {"delay_ms": 0}
        if script is not None:
            config["script"] = script
        intake = UploadIntake.from_settings(settings)
        if max_upload_bytes is not None:
            intake.max_upload_bytes = max_upload_bytes
        return OCRService(
            intake=intake,
            runner=MockProcessRunner(config=config),
            compressor_resolver=StaticToolResolver(available=compressor_available),
            retry_policy=retry_policy,
            response_output_chars=response_output_chars,
        )

    return _make


async def _process(service: OCRService, content: bytes, options: Optional[OcrOptions] = None, **kwargs):
    return await service.process_upload(
        content,
        content_type=kwargs.get("content_type", "application/pdf"),
        filename=kwargs.get("filename", "scan.pdf"),
        options=options or OcrOptions(),
    )


class TestOCRPipeline:
    """Integration tests for the complete OCR pipeline."""

    @pytest.mark.asyncio
    async def test_text_free_pdf_default_options(
        self, make_service, sample_pdf_bytes: bytes, settings: Settings
    ) -> None:
        """A one-page PDF with default options produces a non-empty output file."""
        service = make_service()

        result = await _process(service, sample_pdf_bytes)

        assert result.success is True
        assert result.attempts == 1
        output = settings.processed_path / result.output_file
        assert output.is_file()
        assert output.stat().st_size > 0
        assert result.file_size == output.stat().st_size
        assert "errorType" not in result.model_dump(by_alias=True, exclude_none=True)

        stored = settings.uploads_path / result.input_file
        assert stored.read_bytes() == sample_pdf_bytes
        assert result.output_file == stored.stem + "_ocr.pdf"
        assert "--optimize 3" in result.command

    @pytest.mark.asyncio
    async def test_prior_ocr_retried_with_skip_text(self, make_service, sample_pdf_bytes: bytes) -> None:
        """The retry adds --skip-text and drops the conflicting flag of attempt 1."""
        service = make_service(
            script=[{"returncode": 6, "stderr": PRIOR_OCR_STDERR}, {"stdout": "success"}]
        )

        result = await _process(service, sample_pdf_bytes, OcrOptions(redo_ocr=True))

        assert result.success is True
        assert result.attempts == 2
        first, second = service.runner.calls
        assert "--redo-ocr" in first
        assert "--skip-text" not in first
        assert "--skip-text" in second
        assert "--redo-ocr" not in second
        assert "--skip-text" in result.command
        assert "--redo-ocr" not in result.command

    @pytest.mark.asyncio
    async def test_prior_ocr_retried_with_force_ocr(self, make_service, sample_pdf_bytes: bytes) -> None:
        service = make_service(
            script=[{"returncode": 6, "stderr": PRIOR_OCR_STDERR}, {}],
            retry_policy=RetryPolicy(prior_ocr_strategy="force_ocr"),
        )

        result = await _process(service, sample_pdf_bytes, OcrOptions(skip_text=True))

        assert result.attempts == 2
        assert "--force-ocr" in service.runner.calls[1]
        assert "--skip-text" not in service.runner.calls[1]

    @pytest.mark.asyncio
    async def test_persistent_prior_ocr_is_has_text(self, make_service, sample_pdf_bytes: bytes) -> None:
        """At most one retry; a repeated signature ends as has_text."""
        service = make_service(script=[{"returncode": 6, "stderr": PRIOR_OCR_STDERR}])

        with pytest.raises(HasTextLayer) as exc_info:
            await _process(service, sample_pdf_bytes)

        assert service.runner.process_count == 2
        error = exc_info.value
        assert error.status_code == 422
        assert error.error_type == "has_text"
        assert "--skip-text" in error.command

    @pytest.mark.asyncio
    async def test_tagged_pdf_retried_with_force_ocr(self, make_service, sample_pdf_bytes: bytes) -> None:
        service = make_service(
            script=[{"returncode": 2, "stderr": "TaggedPDFError: This PDF is marked as a Tagged PDF."}, {}]
        )

        result = await _process(service, sample_pdf_bytes)

        assert result.attempts == 2
        assert "--force-ocr" in service.runner.calls[1]

    @pytest.mark.asyncio
    async def test_persistent_tagged_pdf(self, make_service, sample_pdf_bytes: bytes) -> None:
        service = make_service(script=[{"returncode": 2, "stderr": "Tagged PDF"}])

        with pytest.raises(TaggedPdf) as exc_info:
            await _process(service, sample_pdf_bytes)

        assert exc_info.value.error_type == "tagged_pdf"
        assert service.runner.process_count == 2

    @pytest.mark.asyncio
    async def test_second_attempt_failure_classified_on_its_own(
        self, make_service, sample_pdf_bytes: bytes
    ) -> None:
        service = make_service(
            script=[{"returncode": 6, "stderr": PRIOR_OCR_STDERR}, {"returncode": 1, "stderr": "crash"}]
        )

        with pytest.raises(GenericFailure) as exc_info:
            await _process(service, sample_pdf_bytes)

        assert exc_info.value.error_type is None
        assert service.runner.process_count == 2

    @pytest.mark.asyncio
    async def test_timeout_not_retried(self, make_service, sample_pdf_bytes: bytes) -> None:
        service = make_service(script=[{"timed_out": True, "stderr": PRIOR_OCR_STDERR}])

        with pytest.raises(ProcessTimeout) as exc_info:
            await _process(service, sample_pdf_bytes)

        assert exc_info.value.status_code == 504
        assert service.runner.process_count == 1

    @pytest.mark.asyncio
    async def test_generic_failure_echoes_command(self, make_service, sample_pdf_bytes: bytes) -> None:
        service = make_service(script=[{"returncode": 2, "stderr": "InputFileError: bad xref"}])

        with pytest.raises(GenericFailure) as exc_info:
            await _process(service, sample_pdf_bytes)

        error = exc_info.value
        assert error.message == "Failed to execute OCRmyPDF"
        assert error.command.startswith("ocrmypdf ")
        assert "bad xref" in error.details
        assert service.runner.process_count == 1

    @pytest.mark.asyncio
    async def test_exe_rejected_before_any_write(
        self, make_service, sample_pdf_bytes: bytes, settings: Settings
    ) -> None:
        service = make_service()

        with pytest.raises(UnsupportedMediaType):
            await _process(service, sample_pdf_bytes, filename="setup.exe")

        assert not settings.uploads_path.exists() or list(settings.uploads_path.iterdir()) == []
        assert service.runner.process_count == 0

    @pytest.mark.asyncio
    async def test_oversize_rejected_with_exact_size(self, make_service, settings: Settings) -> None:
        service = make_service(max_upload_bytes=1024 * 1024)
        content = b"%PDF-1.4\n" + b"0" * 2_345_678

        with pytest.raises(PayloadTooLarge) as exc_info:
            await _process(service, content)

        expected = f"{len(content) / (1024 * 1024):.2f} MB"
        assert expected == "2.24 MB"
        assert exc_info.value.message == f"File too large: {expected}"
        assert service.runner.process_count == 0
        assert not settings.uploads_path.exists()

    @pytest.mark.asyncio
    async def test_missing_output_is_failure(self, make_service, sample_pdf_bytes: bytes) -> None:
        service = make_service(script=[{"write_output": False}])

        with pytest.raises(GenericFailure) as exc_info:
            await _process(service, sample_pdf_bytes)

        assert "not created" in exc_info.value.message
        assert exc_info.value.command is not None

    @pytest.mark.asyncio
    async def test_empty_output_is_failure(self, make_service, sample_pdf_bytes: bytes) -> None:
        service = make_service(script=[{"output_bytes": b""}])

        with pytest.raises(GenericFailure) as exc_info:
            await _process(service, sample_pdf_bytes)

        assert "empty" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_missing_compressor_downgrades_and_runs(
        self, make_service, sample_pdf_bytes: bytes
    ) -> None:
        service = make_service(compressor_available=False)

        result = await _process(service, sample_pdf_bytes, OcrOptions(optimize=3))

        assert result.success is True
        assert "--optimize 1" in result.command
        assert service.compressor_resolver.resolve_count == 1

    @pytest.mark.asyncio
    async def test_spawn_error_carries_command(self, make_service, sample_pdf_bytes: bytes) -> None:
        service = make_service()

        with patch.object(
            service.runner,
            "run",
            AsyncMock(side_effect=ProcessSpawnError("Failed to start ocrmypdf: not found")),
        ):
            with pytest.raises(ProcessSpawnError) as exc_info:
                await _process(service, sample_pdf_bytes)

        assert exc_info.value.command.startswith("ocrmypdf ")

    @pytest.mark.asyncio
    async def test_output_streams_truncated(self, make_service, sample_pdf_bytes: bytes) -> None:
        service = make_service(script=[{"stdout": "x" * 50, "stderr": "short"}], response_output_chars=10)

        result = await _process(service, sample_pdf_bytes)

        assert result.stdout == "x" * 10 + TRUNCATION_MARKER
        assert result.stderr == "short"

    @pytest.mark.asyncio
    async def test_unsafe_filename_is_sanitized(
        self, make_service, sample_pdf_bytes: bytes, settings: Settings
    ) -> None:
        service = make_service()

        result = await _process(service, sample_pdf_bytes, filename="../../etc/rm -rf $(x).pdf")

        assert result.input_file.startswith("rm_rf_x_")
        assert (settings.uploads_path / result.input_file).is_file()
