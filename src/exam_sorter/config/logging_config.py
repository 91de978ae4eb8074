"""
Centralized logging configuration for the exam sorter.

Provides plain or structured JSON logging with correlation ID support.
"""

import sys
from pathlib import Path
from typing import Optional
from loguru import logger


TEXT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan> | {extra[correlation_id]} | <level>{message}</level>"
)


def setup_structured_logging(
    level: str = "INFO",
    serialize: bool = False,
    log_file: Optional[str] = None,
    enqueue: bool = True
) -> None:
    """
    Configure logging with Loguru.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        serialize: Emit JSON records on stdout instead of text lines
        log_file: Optional path to a rotating log file (always DEBUG, always JSON)
        enqueue: Hand records to a background thread (non-blocking)

    Returns:
        None (Loguru configures its own handlers)
    """
    # Remove default handler
    logger.remove()

    # Records logged outside a request still need the field the format uses
    logger.configure(extra={"correlation_id": "-"})

    logger.add(
        sys.stdout,
        serialize=serialize,
        format=TEXT_FORMAT,
        level=level,
        enqueue=enqueue,
        backtrace=True,
        diagnose=False  # Variable values may include student names
    )

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        logger.add(
            log_path,
            serialize=True,
            level="DEBUG",
            rotation="10 MB",
            retention="30 days",
            compression="zip",
            enqueue=enqueue
        )

    # Suppress noisy third-party loggers
    logger.disable("fitz")
    logger.disable("multipart")
