"""Pytest configuration and shared fixtures."""

import io
from pathlib import Path
from typing import Any, Callable, Generator, Optional, Sequence, Union

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from PIL import Image

from ocr_pdf_service.adapters import (
    DependencyChecker,
    MockProcessRunner,
    ProcessRunner,
    ProcessSpawnError,
    StaticToolResolver,
)
from ocr_pdf_service.config import Settings, get_settings
from ocr_pdf_service.models.job import ProcessResult
from ocr_pdf_service.services.ocr_service import OCRService
from ocr_pdf_service.services.upload_intake import UploadIntake

TableEntry = Union[str, ProcessResult, Exception]


class TableRunner(ProcessRunner):
    """Answers commands from a table keyed by executable.

    A string entry is returned as stdout with exit code 0, a ProcessResult is
    returned as-is and an exception is raised. Unknown executables fail to
    spawn, like a binary missing from PATH.
    """

    def __init__(self, table: dict[str, TableEntry]) -> None:
        super().__init__()
        self.table = table
        self.calls: list[tuple[str, ...]] = []

    async def run(self, args: Sequence[str], timeout: Optional[float] = None) -> ProcessResult:
        args = tuple(str(arg) for arg in args)
        self.calls.append(args)

        entry = self.table.get(args[0])
        if entry is None:
            raise ProcessSpawnError(f"Failed to start {args[0]}: No such file or directory")
        if isinstance(entry, Exception):
            raise entry
        if isinstance(entry, ProcessResult):
            return entry.model_copy(update={"args": args})
        return ProcessResult(args=args, returncode=0, stdout=entry)


@pytest.fixture(autouse=True)
def setup_test_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Generator[None, None, None]:
    """Set up test environment variables."""
    monkeypatch.setenv("ENVIRONMENT", "test")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("CLEANUP_ENABLED", "false")
    monkeypatch.setenv("UPLOADS_DIR", str(tmp_path / "uploads"))
    monkeypatch.setenv("PROCESSED_DIR", str(tmp_path / "processed"))
    monkeypatch.setenv("TEMP_DIR", str(tmp_path / "tmp"))

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    """Settings pointing at the per-test directories."""
    return get_settings()


@pytest.fixture
def sample_pdf_bytes() -> bytes:
    """A real one-page PDF without a text layer."""
    img = Image.new("RGB", (612, 792), color="white")
    buffer = io.BytesIO()
    img.save(buffer, format="PDF", resolution=72.0)
    return buffer.getvalue()


@pytest.fixture
def intake(settings: Settings) -> UploadIntake:
    return UploadIntake.from_settings(settings)


@pytest.fixture
def mock_runner() -> MockProcessRunner:
    """Runner that succeeds and writes a small PDF on every call."""
    return MockProcessRunner(config={"delay_ms": 0})


@pytest.fixture
def compressor_resolver() -> StaticToolResolver:
    return StaticToolResolver(available=True, path="/usr/bin/jbig2", version="jbig2enc 0.29")


@pytest.fixture
def table_runner_factory() -> Callable[[dict[str, TableEntry]], TableRunner]:
    return TableRunner


@pytest.fixture
def healthy_versions() -> dict[str, TableEntry]:
    """Version output of every dependency as installed on a typical host."""
    return {
        "ocrmypdf": "16.0.4",
        "tesseract": "tesseract 5.3.0\n leptonica-1.82.0",
        "gs": "10.02.1",
        "unpaper": "7.0.0",
    }


@pytest.fixture
def dependency_checker(healthy_versions: dict[str, TableEntry]) -> DependencyChecker:
    return DependencyChecker(
        runner=TableRunner(healthy_versions),
        compressor_resolver=StaticToolResolver(available=True, path="/usr/bin/jbig2", version="0.29"),
    )


@pytest.fixture
def app(
    settings: Settings,
    mock_runner: MockProcessRunner,
    compressor_resolver: StaticToolResolver,
    dependency_checker: DependencyChecker,
) -> FastAPI:
    """Application with the process runner and tool discovery replaced."""
    from ocr_pdf_service.main import create_app
    from ocr_pdf_service.routes.ocr import get_ocr_service
    from ocr_pdf_service.routes.system import get_dependency_checker

    application = create_app()
    application.dependency_overrides[get_settings] = lambda: settings
    application.dependency_overrides[get_ocr_service] = lambda: OCRService(
        intake=UploadIntake.from_settings(settings),
        runner=mock_runner,
        compressor_resolver=compressor_resolver,
        executable=settings.ocrmypdf_command,
        response_output_chars=settings.response_output_chars,
    )
    application.dependency_overrides[get_dependency_checker] = lambda: dependency_checker
    return application


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app)


@pytest.fixture
def upload(sample_pdf_bytes: bytes) -> Callable[..., dict[str, Any]]:
    """Build the `files` argument for a multipart upload."""

    def _upload(
        filename: str = "scan.pdf",
        content: Optional[bytes] = None,
        content_type: str = "application/pdf",
    ) -> dict[str, Any]:
        data = sample_pdf_bytes if content is None else content
        return {"file": (filename, data, content_type)}

    return _upload
