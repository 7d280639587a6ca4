"""FastAPI routes for OCR processing and downloads."""

import os
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from fastapi.responses import FileResponse

from ocr_pdf_service.adapters.base import MalformedRequest
from ocr_pdf_service.adapters.process_runner import ProcessRunner
from ocr_pdf_service.adapters.tool_probe import CandidatePathResolver
from ocr_pdf_service.config import Settings, get_settings
from ocr_pdf_service.models.job import OcrJobResult, OcrOptions
from ocr_pdf_service.services.failure_classifier import RetryPolicy
from ocr_pdf_service.services.ocr_service import OCRService
from ocr_pdf_service.services.upload_intake import UploadIntake

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["ocr"])


def get_process_runner(settings: Settings = Depends(get_settings)) -> ProcessRunner:
    """Process runner configured with the ocrmypdf timeout and output cap."""
    return ProcessRunner(
        timeout=settings.ocr_timeout_seconds,
        max_output_bytes=settings.max_output_bytes,
    )


def get_ocr_service(
    settings: Settings = Depends(get_settings),
    runner: ProcessRunner = Depends(get_process_runner),
) -> OCRService:
    """
    Dependency for creating OCR service instance.

    Args:
        settings: Application settings.
        runner: Process runner for ocrmypdf and the compressor probe.

    Returns:
        Configured OCR service instance.
    """
    return OCRService(
        intake=UploadIntake.from_settings(settings),
        runner=runner,
        compressor_resolver=CandidatePathResolver.for_jbig2(settings, runner),
        retry_policy=RetryPolicy(prior_ocr_strategy=settings.prior_ocr_retry_strategy),
        executable=settings.ocrmypdf_command,
        timeout=settings.ocr_timeout_seconds,
        response_output_chars=settings.response_output_chars,
    )


def _form_flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() == "true"


def parse_options(
    settings: Settings,
    language: Optional[str] = None,
    deskew: Optional[str] = None,
    skip_text: Optional[str] = None,
    force: Optional[str] = None,
    redo_ocr: Optional[str] = None,
    remove_background: Optional[str] = None,
    clean: Optional[str] = None,
    optimize: Optional[str] = None,
    rotate: Optional[str] = None,
    pdf_renderer: Optional[str] = None,
) -> OcrOptions:
    """
    Build OcrOptions from raw multipart form strings.

    Raises:
        MalformedRequest: If a value is out of range or not recognised.
    """
    try:
        optimize_level = int(optimize) if optimize not in (None, "") else 3
        if not settings.enable_optimization:
            optimize_level = 0

        return OcrOptions(
            language=language or settings.default_language,
            deskew=_form_flag(deskew),
            skip_text=_form_flag(skip_text),
            force_ocr=_form_flag(force),
            redo_ocr=_form_flag(redo_ocr),
            remove_background=_form_flag(remove_background),
            clean=_form_flag(clean),
            optimize=optimize_level,
            rotate=rotate or "auto",
            pdf_renderer=pdf_renderer or "auto",
        )
    except ValueError as e:
        raise MalformedRequest("Invalid OCR options", details=str(e), original_error=e) from e


@router.post(
    "/ocr",
    response_model=OcrJobResult,
    response_model_exclude_none=True,
    status_code=status.HTTP_200_OK,
)
async def process_ocr(
    file: UploadFile = File(..., description="PDF to make searchable"),
    language: Optional[str] = Form(None),
    deskew: Optional[str] = Form(None),
    skip_text: Optional[str] = Form(None, alias="skipText"),
    force: Optional[str] = Form(None),
    redo_ocr: Optional[str] = Form(None, alias="redoOcr"),
    remove_background: Optional[str] = Form(None, alias="removeBackground"),
    clean: Optional[str] = Form(None),
    optimize: Optional[str] = Form(None),
    rotate: Optional[str] = Form(None),
    pdf_renderer: Optional[str] = Form(None, alias="pdfRenderer"),
    settings: Settings = Depends(get_settings),
    ocr_service: OCRService = Depends(get_ocr_service),
) -> OcrJobResult:
    """
    Run ocrmypdf on an uploaded PDF.

    Classified failures propagate as OCRError and are rendered by the
    application's exception handler.
    """
    options = parse_options(
        settings,
        language=language,
        deskew=deskew,
        skip_text=skip_text,
        force=force,
        redo_ocr=redo_ocr,
        remove_background=remove_background,
        clean=clean,
        optimize=optimize,
        rotate=rotate,
        pdf_renderer=pdf_renderer,
    )

    content = await file.read()

    logger.info(
        "ocr_request_received",
        filename=file.filename,
        size_bytes=len(content),
        options=options.model_dump(),
    )

    return await ocr_service.process_upload(
        content,
        content_type=file.content_type,
        filename=file.filename,
        options=options,
    )


@router.get("/download")
async def download_file(
    file: Optional[str] = Query(None, description="Name of a file in the output directory"),
    settings: Settings = Depends(get_settings),
) -> FileResponse:
    """Serve a processed file. Only the base name of `file` is used."""
    if not file:
        raise MalformedRequest("File parameter is required")

    safe_name = os.path.basename(file.replace("\\", "/"))
    path = settings.processed_path / safe_name

    if not safe_name or safe_name in (".", "..") or not path.is_file():
        logger.warning("download_not_found", requested=file)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")

    media_type = "text/plain" if safe_name.lower().endswith(".txt") else "application/pdf"
    return FileResponse(path, media_type=media_type, filename=safe_name)
