"""
Tests for configuration.
"""

import pytest
from pydantic import ValidationError

from exam_sorter.config.settings import Settings, get_settings, reload_settings
from exam_sorter.export.stamper import WatermarkStyle


def test_env_prefix(monkeypatch):
    """Test settings are read from EXAM_SORTER_ variables."""
    monkeypatch.setenv("EXAM_SORTER_STAMP_WORKERS", "2")
    monkeypatch.setenv("EXAM_SORTER_SORT_FINAL_PAGES", "false")
    monkeypatch.setenv("EXAM_SORTER_LOG_LEVEL", "debug")

    settings = reload_settings()
    try:
        assert settings.stamp_workers == 2
        assert not settings.sort_final_pages
        assert settings.log_level == "DEBUG"
        assert get_settings() is settings
    finally:
        monkeypatch.undo()
        reload_settings()


def test_invalid_log_level():
    """Test unknown log levels are rejected."""
    with pytest.raises(ValidationError):
        Settings(log_level="LOUD")


def test_min_font_size_cannot_exceed_font_size():
    """Test the shrink floor must stay below the nominal size."""
    with pytest.raises(ValidationError):
        Settings(watermark_font_size=10, watermark_min_font_size=12)


def test_watermark_style_from_settings():
    """Test the stamping style follows the settings."""
    style = WatermarkStyle.from_settings(Settings(watermark_opacity=0.5, watermark_margin=10))

    assert style.opacity == 0.5
    assert style.margin == 10
    assert style.font == "helv"
