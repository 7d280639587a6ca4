"""HTTP routes."""

from ocr_pdf_service.routes.ocr import router as ocr_router
from ocr_pdf_service.routes.system import router as system_router

__all__ = ["ocr_router", "system_router"]
