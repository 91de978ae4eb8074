"""
Configuration management for the exam sorter.

All configuration comes from environment variables or .env file.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator, model_validator
from typing import Optional
from functools import lru_cache

from exam_sorter.config.constants import (
    DATA_DIR, MAX_UPLOAD_SIZE, MAX_BATCH_SIZE, DEFAULT_STAMP_WORKERS,
    WATERMARK_FONT_SIZE, WATERMARK_MIN_FONT_SIZE, WATERMARK_OPACITY,
    WATERMARK_MARGIN
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="EXAM_SORTER_",
        case_sensitive=False,
        extra="ignore"
    )

    # Storage
    data_dir: str = DATA_DIR

    # Uploads
    max_upload_size: int = Field(default=MAX_UPLOAD_SIZE, gt=0)
    max_batch_size: int = Field(default=MAX_BATCH_SIZE, gt=0)
    strict_uploads: bool = False  # Reject unreadable PDFs at upload time

    # Processing
    stamp_workers: int = Field(default=DEFAULT_STAMP_WORKERS, ge=1)
    sort_final_pages: bool = True

    # Watermark
    watermark_font_size: float = Field(default=WATERMARK_FONT_SIZE, gt=0)
    watermark_min_font_size: float = Field(default=WATERMARK_MIN_FONT_SIZE, gt=0)
    watermark_opacity: float = Field(default=WATERMARK_OPACITY, ge=0.0, le=1.0)
    watermark_margin: float = Field(default=WATERMARK_MARGIN, ge=0.0)

    # CORS
    cors_origins: list[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    # Logging
    log_level: str = "INFO"
    log_json: bool = False
    log_file: Optional[str] = None

    # Sentry
    sentry_dsn: str = ""
    sentry_environment: str = "development"
    sentry_traces_sample_rate: float = 0.1

    # Validators
    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one loguru knows."""
        valid_levels = ['TRACE', 'DEBUG', 'INFO', 'SUCCESS', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of: {', '.join(valid_levels)}")
        return v.upper()

    @model_validator(mode='after')
    def validate_watermark_sizes(self):
        """The shrink-to-fit floor cannot exceed the nominal font size."""
        if self.watermark_min_font_size > self.watermark_font_size:
            raise ValueError("watermark_min_font_size must not exceed watermark_font_size")
        return self


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def reload_settings() -> Settings:
    """Reload settings from environment."""
    get_settings.cache_clear()
    return get_settings()
