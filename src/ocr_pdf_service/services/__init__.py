"""OCR orchestration services."""

from ocr_pdf_service.services.command_builder import build_command
from ocr_pdf_service.services.failure_classifier import (
    FailureKind,
    RetryPolicy,
    classify_failure,
    classify_stderr,
)
from ocr_pdf_service.services.ocr_service import OCRService
from ocr_pdf_service.services.retention import RetentionSweep
from ocr_pdf_service.services.upload_intake import UploadIntake, sanitize_basename

__all__ = [
    "FailureKind",
    "OCRService",
    "RetentionSweep",
    "RetryPolicy",
    "UploadIntake",
    "build_command",
    "classify_failure",
    "classify_stderr",
    "sanitize_basename",
]
