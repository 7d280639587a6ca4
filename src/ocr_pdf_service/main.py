"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ocr_pdf_service import __version__
from ocr_pdf_service.adapters.base import OCRError
from ocr_pdf_service.config import get_settings
from ocr_pdf_service.models.job import ErrorResponse
from ocr_pdf_service.routes import ocr_router, system_router
from ocr_pdf_service.services.retention import RetentionSweep


def configure_logging(log_level: str) -> None:
    """
    Configure structured logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR).
    """
    log_level_map = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR,
    }

    level = log_level_map.get(log_level.upper(), logging.INFO)

    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifespan events."""
    settings = get_settings()

    configure_logging(settings.effective_log_level)

    logger.info(
        "starting_application",
        app_name=settings.app_name,
        version=__version__,
        environment=settings.environment,
        uploads_dir=str(settings.uploads_path),
        processed_dir=str(settings.processed_path),
        cleanup_enabled=settings.cleanup_enabled,
    )

    sweep = None
    if settings.cleanup_enabled:
        sweep = RetentionSweep.from_settings(settings)
        sweep.start()
    app.state.retention_sweep = sweep

    yield

    if sweep is not None:
        await sweep.stop()

    logger.info("shutting_down_application")


def error_body(error: ErrorResponse) -> dict:
    return error.model_dump(by_alias=True, exclude_none=True)


async def ocr_error_handler(request: Request, exc: OCRError) -> JSONResponse:
    """Render any classified OCRError as the uniform failure body."""
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "request_failed",
        path=request.url.path,
        error=exc.message,
        error_class=type(exc).__name__,
        status_code=exc.status_code,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(
            ErrorResponse(
                error=exc.message,
                details=exc.details,
                error_type=exc.error_type,
                command=exc.command,
            )
        ),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Missing or unparseable request fields are reported as a 400."""
    details = "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg', '')}"
        for err in exc.errors()
    )
    logger.warning("request_validation_failed", path=request.url.path, details=details)
    return JSONResponse(
        status_code=400,
        content=error_body(ErrorResponse(error="Malformed request", details=details)),
    )


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Keep `success: false` on router-level errors such as 404 and 405."""
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(ErrorResponse(error=str(exc.detail))),
        headers=getattr(exc, "headers", None),
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=__version__,
        description="Makes uploaded PDFs searchable by running them through ocrmypdf",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Error bodies
    app.add_exception_handler(OCRError, ocr_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)

    # Include routers
    app.include_router(ocr_router)
    app.include_router(system_router)

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint."""
        return {
            "service": settings.app_name,
            "version": __version__,
            "status": "running",
            "docs": "/docs",
        }

    logger.info(
        "application_created",
        routes_count=len(app.routes),
    )

    return app


app = create_app()


def run() -> None:
    """Console entry point."""
    settings = get_settings()
    uvicorn.run(
        "ocr_pdf_service.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.effective_log_level.lower(),
    )
