"""Build ocrmypdf argument vectors from OCR options."""

from pathlib import Path

import structlog

from ocr_pdf_service.models.job import DEFAULT_LANGUAGE, CommandInvocation, OcrOptions

logger = structlog.get_logger(__name__)

DEFAULT_EXECUTABLE = "ocrmypdf"

# Levels above this need jbig2 for lossy JBIG2 image compression.
MAX_OPTIMIZE_WITHOUT_COMPRESSOR = 1

# Order is part of the contract: tests and retries rely on it.
BOOLEAN_FLAGS: tuple[tuple[str, str], ...] = (
    ("deskew", "--deskew"),
    ("skip_text", "--skip-text"),
    ("force_ocr", "--force-ocr"),
    ("redo_ocr", "--redo-ocr"),
    ("remove_background", "--remove-background"),
    ("clean", "--clean"),
)


def effective_optimize_level(options: OcrOptions, compressor_available: bool) -> int:
    """Optimization level after downgrading for a missing compressor."""
    if options.optimize > MAX_OPTIMIZE_WITHOUT_COMPRESSOR and not compressor_available:
        return MAX_OPTIMIZE_WITHOUT_COMPRESSOR
    return options.optimize


def build_command(
    options: OcrOptions,
    input_path: Path,
    output_path: Path,
    *,
    compressor_available: bool,
    attempt_number: int = 1,
    executable: str = DEFAULT_EXECUTABLE,
) -> CommandInvocation:
    """
    Build one ocrmypdf invocation.

    Token order is fixed: executable, language, boolean flags in
    BOOLEAN_FLAGS order, optimize, rotate-pages, pdf-renderer, then the
    input and output paths.

    Args:
        options: Validated OCR options.
        input_path: Absolute path of the stored upload.
        output_path: Absolute path the searchable PDF is written to.
        compressor_available: Whether jbig2 was found.
        attempt_number: 1 for the first run, 2 for the retry.
        executable: ocrmypdf executable name or path.

    Returns:
        An immutable CommandInvocation.
    """
    args: list[str] = [executable]

    if options.language != DEFAULT_LANGUAGE:
        args.extend(["--language", options.language])

    for field_name, flag in BOOLEAN_FLAGS:
        if getattr(options, field_name):
            args.append(flag)

    optimize = effective_optimize_level(options, compressor_available)
    if optimize != options.optimize:
        logger.warning(
            "optimize_level_downgraded",
            requested=options.optimize,
            effective=optimize,
            reason="jbig2 not available",
        )
    if optimize > 0:
        args.extend(["--optimize", str(optimize)])

    # ocrmypdf only auto-corrects page orientation; it takes no angle.
    if options.rotate != "auto":
        args.append("--rotate-pages")

    if options.pdf_renderer != "auto":
        args.extend(["--pdf-renderer", options.pdf_renderer])

    args.extend([str(input_path), str(output_path)])

    return CommandInvocation(
        args=tuple(args),
        input_path=input_path,
        output_path=output_path,
        attempt_number=attempt_number,
        options=options,
    )
