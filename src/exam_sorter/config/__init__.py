"""
Configuration module for the exam sorter.

Provides settings, constants and logging configuration.
"""

from exam_sorter.config.settings import get_settings, reload_settings, Settings
from exam_sorter.config.logging_config import setup_structured_logging
from exam_sorter.config.constants import (
    NOT_A_PROBLEM,
    APP_NAME,
    APP_VERSION,
    DATA_DIR,
)

__all__ = [
    # Settings
    'get_settings',
    'reload_settings',
    'Settings',
    # Logging
    'setup_structured_logging',
    # Constants
    'NOT_A_PROBLEM',
    'APP_NAME',
    'APP_VERSION',
    'DATA_DIR',
]
