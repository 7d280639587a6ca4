"""Unit tests for data models and small helpers."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from ocr_pdf_service.config import Settings
from ocr_pdf_service.models.job import (
    ErrorResponse,
    OcrJobResult,
    OcrOptions,
    OutputFileInfo,
    ProcessResult,
)
from ocr_pdf_service.services.directories import check_directory
from ocr_pdf_service.services.ocr_service import TRUNCATION_MARKER, truncate_output


class TestOcrOptions:
    """Tests for OcrOptions."""

    def test_defaults(self) -> None:
        options = OcrOptions()

        assert options.language == "eng"
        assert options.optimize == 3
        assert options.rotate == "auto"
        assert options.pdf_renderer == "auto"
        assert not any(
            [options.deskew, options.skip_text, options.force_ocr, options.redo_ocr, options.clean]
        )

    @pytest.mark.parametrize("language", ["deu", "eng+deu", "chi_sim"])
    def test_valid_languages(self, language: str) -> None:
        assert OcrOptions(language=language).language == language

    @pytest.mark.parametrize("language", ["", "eng;rm -rf /", "eng+", "-l"])
    def test_invalid_languages(self, language: str) -> None:
        with pytest.raises(ValidationError):
            OcrOptions(language=language)

    @pytest.mark.parametrize("optimize", [-1, 4])
    def test_optimize_range(self, optimize: int) -> None:
        with pytest.raises(ValidationError):
            OcrOptions(optimize=optimize)

    def test_invalid_rotate(self) -> None:
        with pytest.raises(ValidationError):
            OcrOptions(rotate="45")

    def test_frozen(self) -> None:
        options = OcrOptions()

        with pytest.raises(ValidationError):
            options.deskew = True


class TestResponseModels:
    """Tests for the JSON response shapes."""

    def test_job_result_uses_camel_case(self) -> None:
        result = OcrJobResult(
            input_file="a_1.pdf",
            output_file="a_1_ocr.pdf",
            file_size=10,
            command="ocrmypdf a b",
        )

        body = result.model_dump(by_alias=True)

        assert body["success"] is True
        assert body["inputFile"] == "a_1.pdf"
        assert body["outputFile"] == "a_1_ocr.pdf"
        assert body["fileSize"] == 10
        assert "errorType" not in body

    def test_error_response_omits_empty_fields(self) -> None:
        body = ErrorResponse(error="Only PDF files are supported").model_dump(
            by_alias=True, exclude_none=True
        )

        assert body == {"success": False, "error": "Only PDF files are supported"}

    def test_error_response_error_type(self) -> None:
        body = ErrorResponse(error="x", error_type="has_text").model_dump(by_alias=True)

        assert body["errorType"] == "has_text"

    def test_output_file_download_path(self) -> None:
        info = OutputFileInfo(name="my file_ocr.pdf", size=3)

        assert info.model_dump(by_alias=True)["path"] == "/download?file=my%20file_ocr.pdf"


class TestProcessResult:
    """Tests for ProcessResult."""

    def test_error_message_for_failure(self) -> None:
        result = ProcessResult(args=("ocrmypdf", "in.pdf"), returncode=2, stdout="o", stderr="e")

        message = result.error_message

        assert message.startswith("Command failed with exit code 2: ocrmypdf in.pdf")
        assert "stdout: o" in message
        assert "stderr: e" in message

    def test_success_requires_zero_exit_and_no_timeout(self) -> None:
        assert ProcessResult(returncode=0).success
        assert not ProcessResult(returncode=1).success
        assert not ProcessResult(returncode=0, timed_out=True).success


class TestTruncateOutput:
    """Tests for truncate_output."""

    def test_short_text_unchanged(self) -> None:
        assert truncate_output("abc", limit=10) == "abc"

    def test_long_text_marked(self) -> None:
        assert truncate_output("x" * 20, limit=10) == "x" * 10 + TRUNCATION_MARKER


class TestCheckDirectory:
    """Tests for check_directory."""

    def test_missing_directory_not_created(self, tmp_path: Path) -> None:
        status = check_directory(tmp_path / "absent")

        assert status.exists is False
        assert status.writable is False
        assert not (tmp_path / "absent").exists()

    def test_writable_directory_left_clean(self, tmp_path: Path) -> None:
        status = check_directory(tmp_path)

        assert status.exists is True
        assert status.writable is True
        assert list(tmp_path.iterdir()) == []


class TestSettings:
    """Tests for Settings."""

    def test_derived_values(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MAX_UPLOAD_SIZE", "5")
        monkeypatch.setenv("OCR_TIMEOUT", "1500")

        settings = Settings()

        assert settings.max_upload_bytes == 5 * 1024 * 1024
        assert settings.ocr_timeout_seconds == 1.5
        assert settings.port == 3000

    def test_debug_forces_debug_level(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LOG_LEVEL", "WARNING")
        monkeypatch.setenv("DEBUG", "true")

        assert Settings().effective_log_level == "DEBUG"

    @pytest.mark.parametrize("name,value", [("PORT", "0"), ("MAX_UPLOAD_SIZE", "0")])
    def test_invalid_values(self, monkeypatch: pytest.MonkeyPatch, name: str, value: str) -> None:
        monkeypatch.setenv(name, value)

        with pytest.raises(ValidationError):
            Settings()
