"""Data models for ocr-pdf-service."""

from ocr_pdf_service.models.job import (
    CommandInvocation,
    DependencyStatus,
    DirectoryStatus,
    ErrorResponse,
    FileRole,
    OcrJobResult,
    OcrOptions,
    OutputFileInfo,
    ProcessResult,
    StoredFile,
)

__all__ = [
    "CommandInvocation",
    "DependencyStatus",
    "DirectoryStatus",
    "ErrorResponse",
    "FileRole",
    "OcrJobResult",
    "OcrOptions",
    "OutputFileInfo",
    "ProcessResult",
    "StoredFile",
]
