"""OCR job data models."""

import re
import shlex
import subprocess
import sys
from enum import Enum
from pathlib import Path
from typing import Literal, Optional
from urllib.parse import quote

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator
from pydantic.alias_generators import to_camel

DEFAULT_LANGUAGE = "eng"

_LANGUAGE_PATTERN = re.compile(r"^[A-Za-z0-9_]+(\+[A-Za-z0-9_]+)*$")

RotateOption = Literal["auto", "0", "90", "180", "270"]
PdfRendererOption = Literal["auto", "hocr", "sandwich"]


class FileRole(str, Enum):
    """Role of a stored artifact."""

    INPUT = "input"
    OUTPUT = "output"


class OcrOptions(BaseModel):
    """User-selected ocrmypdf options for a single job."""

    model_config = ConfigDict(frozen=True)

    language: str = Field(default=DEFAULT_LANGUAGE, description="Tesseract language(s), e.g. eng+deu")
    deskew: bool = False
    skip_text: bool = False
    force_ocr: bool = False
    redo_ocr: bool = False
    remove_background: bool = False
    clean: bool = False
    optimize: int = Field(default=3, ge=0, le=3, description="Optimization level 0-3")
    rotate: RotateOption = "auto"
    pdf_renderer: PdfRendererOption = "auto"

    @field_validator("language")
    @classmethod
    def _check_language(cls, value: str) -> str:
        if not _LANGUAGE_PATTERN.match(value):
            raise ValueError(f"Invalid language code: {value!r}")
        return value


class StoredFile(BaseModel):
    """An input or output artifact in one of the working directories."""

    original_name: str = Field(..., description="Client-declared filename (untrusted)")
    safe_name: str = Field(..., description="Sanitized, timestamped filename")
    path: Path = Field(..., description="Absolute location on disk")
    role: FileRole = FileRole.INPUT
    size_bytes: int = 0


class CommandInvocation(BaseModel):
    """One attempt to run ocrmypdf. Retries build a new invocation."""

    model_config = ConfigDict(frozen=True)

    args: tuple[str, ...]
    input_path: Path
    output_path: Path
    attempt_number: int = Field(default=1, ge=1, le=2)
    options: OcrOptions

    @property
    def command_line(self) -> str:
        return format_command_line(self.args)

    def has_flag(self, flag: str) -> bool:
        return flag in self.args


def format_command_line(args: tuple[str, ...] | list[str], platform: Optional[str] = None) -> str:
    """Render an argument vector as a copy-pasteable command line for display."""
    platform = platform or sys.platform
    if platform.startswith("win"):
        return subprocess.list2cmdline(list(args))
    return shlex.join(args)


class ProcessResult(BaseModel):
    """Outcome of one child process run."""

    args: tuple[str, ...] = ()
    returncode: Optional[int] = None
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    output_truncated: bool = False
    duration_ms: int = 0

    @property
    def success(self) -> bool:
        return not self.timed_out and self.returncode == 0

    @property
    def error_message(self) -> str:
        command = format_command_line(self.args) if self.args else "<unknown>"
        if self.timed_out:
            head = f"Command timed out after {self.duration_ms} ms: {command}"
        else:
            head = f"Command failed with exit code {self.returncode}: {command}"
        return f"{head}\nstdout: {self.stdout}\nstderr: {self.stderr}"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OcrJobResult(_CamelModel):
    """Successful OCR response."""

    success: bool = True
    input_file: str
    output_file: str
    stdout: str = ""
    stderr: str = ""
    file_size: int
    attempts: int = 1
    command: str


class ErrorResponse(_CamelModel):
    """Uniform failure body."""

    success: bool = False
    error: str
    details: Optional[str] = None
    error_type: Optional[str] = None
    command: Optional[str] = None


class DirectoryStatus(_CamelModel):
    """Existence and writability of a working directory."""

    directory: str
    exists: bool = False
    writable: bool = False
    error: Optional[str] = None


class DependencyStatus(_CamelModel):
    """Availability of one external executable."""

    name: str
    command: str
    available: bool = False
    version: Optional[str] = None
    error: Optional[str] = None
    optional: bool = False


class OutputFileInfo(_CamelModel):
    """A downloadable file in the output directory."""

    name: str
    size: int

    @computed_field  # type: ignore[prop-decorator]
    @property
    def path(self) -> str:
        return f"/download?file={quote(self.name)}"
