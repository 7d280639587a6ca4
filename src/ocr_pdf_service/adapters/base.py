"""Base interfaces and error taxonomy for OCR adapters."""

from abc import ABC, abstractmethod
from typing import Optional

from pydantic import BaseModel


class ToolProbeResult(BaseModel):
    """Outcome of locating an optional helper binary."""

    available: bool = False
    """Whether a working binary was found."""

    path: Optional[str] = None
    """Path (or bare name) of the first working candidate."""

    version: Optional[str] = None
    """Version string reported by the binary."""

    error: Optional[str] = None
    """Why no candidate worked, when unavailable."""

    checked: list[str] = []
    """Candidates tried, in order."""


class BaseToolResolver(ABC):
    """Abstract base class for optional-tool discovery."""

    @abstractmethod
    async def resolve(self) -> ToolProbeResult:
        """
        Locate a working binary.

        Returns:
            ToolProbeResult describing the first working candidate, or an
            unavailable result. Implementations must not raise.
        """
        pass


class OCRError(Exception):
    """Base exception for OCR-related errors."""

    status_code: int = 500
    error_type: Optional[str] = None

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        command: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ) -> None:
        """
        Initialize OCR error.

        Args:
            message: Human-readable error message.
            details: Diagnostic detail (e.g. captured tool output).
            command: Command line that was attempted, if any.
            original_error: Original exception that caused this error.
        """
        super().__init__(message)
        self.message = message
        self.details = details
        self.command = command
        self.original_error = original_error


class MalformedRequest(OCRError):
    """The request body could not be parsed or had invalid fields."""

    status_code = 400


class UnsupportedMediaType(OCRError):
    """The upload is not a PDF."""

    status_code = 415


class PayloadTooLarge(OCRError):
    """The upload exceeds the configured size limit."""

    status_code = 413


class PermissionDenied(OCRError):
    """A working directory cannot be written."""

    status_code = 500


class IOFailure(OCRError):
    """Writing or verifying a file on disk failed."""

    status_code = 500


class HasTextLayer(OCRError):
    """The PDF already has a text layer and the retry did not help."""

    status_code = 422
    error_type = "has_text"


class TaggedPdf(OCRError):
    """The PDF is a tagged PDF and the retry did not help."""

    status_code = 422
    error_type = "tagged_pdf"


class ProcessTimeout(OCRError):
    """ocrmypdf exceeded its wall-clock budget and was killed."""

    status_code = 504


class GenericFailure(OCRError):
    """Any other ocrmypdf failure."""

    status_code = 500


class ProcessSpawnError(GenericFailure):
    """The child process could not be started."""
