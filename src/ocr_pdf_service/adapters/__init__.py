"""Adapters for external processes and executables."""

from ocr_pdf_service.adapters.base import (
    BaseToolResolver,
    GenericFailure,
    HasTextLayer,
    IOFailure,
    MalformedRequest,
    OCRError,
    PayloadTooLarge,
    PermissionDenied,
    ProcessSpawnError,
    ProcessTimeout,
    TaggedPdf,
    ToolProbeResult,
    UnsupportedMediaType,
)
from ocr_pdf_service.adapters.dependencies import DependencyChecker
from ocr_pdf_service.adapters.mock_runner import MockProcessRunner, ScriptedRun
from ocr_pdf_service.adapters.process_runner import ProcessRunner
from ocr_pdf_service.adapters.tool_probe import CandidatePathResolver, StaticToolResolver

__all__ = [
    "BaseToolResolver",
    "CandidatePathResolver",
    "DependencyChecker",
    "GenericFailure",
    "HasTextLayer",
    "IOFailure",
    "MalformedRequest",
    "MockProcessRunner",
    "OCRError",
    "PayloadTooLarge",
    "PermissionDenied",
    "ProcessRunner",
    "ProcessSpawnError",
    "ProcessTimeout",
    "ScriptedRun",
    "StaticToolResolver",
    "TaggedPdf",
    "ToolProbeResult",
    "UnsupportedMediaType",
]
