"""Configuration management for ocr-pdf-service."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application Settings
    app_name: str = Field(default="ocr-pdf-service", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    log_level: str = Field(default="INFO", description="Logging level")
    environment: str = Field(default="production", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug logging")

    # Server Configuration
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=3000, ge=1, le=65535, description="Server port")

    # Upload Limits
    max_upload_size: int = Field(
        default=100,
        gt=0,
        description="Maximum upload size in MB",
    )

    # OCR Configuration
    ocrmypdf_command: str = Field(
        default="ocrmypdf",
        description="ocrmypdf executable, resolved through PATH",
    )
    default_language: str = Field(default="eng", description="Default OCR language")
    enable_optimization: bool = Field(
        default=True,
        description="Allow --optimize; when disabled the level is forced to 0",
    )
    ocr_timeout: int = Field(
        default=600000,
        gt=0,
        description="Per-run ocrmypdf timeout in milliseconds (10 minutes)",
    )
    prior_ocr_retry_strategy: Literal["skip_text", "force_ocr"] = Field(
        default="skip_text",
        description="Flag forced on retry when the PDF already has a text layer",
    )
    max_output_bytes: int = Field(
        default=10 * 1024 * 1024,
        gt=0,
        description="Maximum bytes buffered per output stream of a child process",
    )
    response_output_chars: int = Field(
        default=10000,
        gt=0,
        description="Maximum stdout/stderr characters returned in responses",
    )

    # Optional compressor (jbig2enc)
    jbig2_path: str = Field(
        default="/usr/bin/jbig2",
        description="Explicit jbig2 binary path, checked first",
    )
    jbig2_build_path: str = Field(
        default="jbig2enc/src/jbig2",
        description="Project-relative jbig2 build output, checked second",
    )
    probe_timeout: float = Field(
        default=3.0,
        gt=0,
        description="Timeout in seconds for each --version probe",
    )

    # Storage paths
    uploads_dir: str = Field(default="./uploads", description="Intake directory")
    processed_dir: str = Field(default="./processed", description="Output directory")
    temp_dir: str = Field(default="./tmp", description="Scratch directory")

    # Cleanup configuration
    cleanup_enabled: bool = Field(default=True, description="Run the retention sweep")
    cleanup_interval: int = Field(
        default=3600000,
        gt=0,
        description="Retention sweep interval in milliseconds (1 hour)",
    )
    max_storage_age: int = Field(
        default=259200000,
        gt=0,
        description="Maximum file age in milliseconds before deletion (3 days)",
    )

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_size * 1024 * 1024

    @property
    def ocr_timeout_seconds(self) -> float:
        return self.ocr_timeout / 1000.0

    @property
    def cleanup_interval_seconds(self) -> float:
        return self.cleanup_interval / 1000.0

    @property
    def max_storage_age_seconds(self) -> float:
        return self.max_storage_age / 1000.0

    @property
    def uploads_path(self) -> Path:
        return Path(self.uploads_dir).resolve()

    @property
    def processed_path(self) -> Path:
        return Path(self.processed_dir).resolve()

    @property
    def temp_path(self) -> Path:
        return Path(self.temp_dir).resolve()

    @property
    def effective_log_level(self) -> str:
        return "DEBUG" if self.debug else self.log_level


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
