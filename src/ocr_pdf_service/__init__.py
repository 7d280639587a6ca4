"""ocr-pdf-service: searchable PDFs from uploaded scans via ocrmypdf."""

__version__ = "0.1.0"
