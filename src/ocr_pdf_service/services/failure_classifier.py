"""Classify ocrmypdf failures and decide on the single retry."""

import re
from enum import Enum
from typing import Literal, Optional

import structlog

from ocr_pdf_service.adapters.base import (
    GenericFailure,
    HasTextLayer,
    OCRError,
    ProcessTimeout,
    TaggedPdf,
)
from ocr_pdf_service.models.job import CommandInvocation, OcrOptions, ProcessResult

logger = structlog.get_logger(__name__)

MAX_ATTEMPTS = 2

PRIOR_OCR_PATTERN = re.compile(
    r"already\s+(?:has|contains)\s+text|prior\s*ocr\s*found",
    re.IGNORECASE,
)
TAGGED_PDF_PATTERN = re.compile(r"tagged\s*pdf", re.IGNORECASE)


class FailureKind(str, Enum):
    """Classification of a failed ocrmypdf run."""

    HAS_TEXT_LAYER = "has_text"
    TAGGED_PDF = "tagged_pdf"
    TIMEOUT = "timeout"
    GENERIC_FAILURE = "generic"


def classify_stderr(stderr: str) -> FailureKind:
    """Classify by error stream text alone."""
    if PRIOR_OCR_PATTERN.search(stderr):
        return FailureKind.HAS_TEXT_LAYER
    if TAGGED_PDF_PATTERN.search(stderr):
        return FailureKind.TAGGED_PDF
    return FailureKind.GENERIC_FAILURE


def classify_failure(result: ProcessResult) -> FailureKind:
    """Classify a failed run. A timeout wins over any stderr content."""
    if result.timed_out:
        return FailureKind.TIMEOUT
    return classify_stderr(result.stderr)


class RetryPolicy:
    """At most one retry, only for the prior-OCR and tagged-PDF signatures."""

    def __init__(
        self,
        prior_ocr_strategy: Literal["skip_text", "force_ocr"] = "skip_text",
        max_attempts: int = MAX_ATTEMPTS,
    ) -> None:
        """
        Initialize the policy.

        Args:
            prior_ocr_strategy: Flag forced on when the PDF already has text.
            max_attempts: Total invocations allowed, including the first.
        """
        self.prior_ocr_strategy = prior_ocr_strategy
        self.max_attempts = max_attempts

    def next_options(
        self, kind: FailureKind, options: OcrOptions, attempt_number: int
    ) -> Optional[OcrOptions]:
        """
        Options for the next attempt, or None when no retry should happen.

        force_ocr, skip_text and redo_ocr are exclusive in ocrmypdf, so the
        forced strategy clears the other two.
        """
        if attempt_number >= self.max_attempts:
            return None

        if kind is FailureKind.HAS_TEXT_LAYER:
            forced = self.prior_ocr_strategy
        elif kind is FailureKind.TAGGED_PDF:
            forced = "force_ocr"
        else:
            return None

        logger.debug("retry_flag_forced", failure=kind.value, flag=forced, attempt=attempt_number + 1)
        update = {"skip_text": False, "force_ocr": False, "redo_ocr": False, forced: True}
        return options.model_copy(update=update)


def failure_error(
    kind: FailureKind, result: ProcessResult, invocation: CommandInvocation
) -> OCRError:
    """Terminal error for a failed run that will not be retried."""
    command = invocation.command_line
    details = result.error_message

    if kind is FailureKind.HAS_TEXT_LAYER:
        message = "PDF already contains text"
        if invocation.attempt_number > 1:
            message += " and the retry did not succeed"
        return HasTextLayer(message, details=details, command=command)

    if kind is FailureKind.TAGGED_PDF:
        message = "PDF is a tagged PDF"
        if invocation.attempt_number > 1:
            message += " and the force-ocr retry did not succeed"
        return TaggedPdf(message, details=details, command=command)

    if kind is FailureKind.TIMEOUT:
        return ProcessTimeout(
            f"OCRmyPDF did not finish within {result.duration_ms} ms and was terminated",
            details=details,
            command=command,
        )

    return GenericFailure("Failed to execute OCRmyPDF", details=details, command=command)
