"""
Error tracking and exception handling for the exam sorter API.

Maps domain exceptions to HTTP responses and integrates Sentry for
unhandled errors.
"""

import logging

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger

from exam_sorter.core.exceptions import (
    DocumentError, ExamSorterError, InvalidInputError, NotFoundError,
    NotReadyError, StorageError
)


# Most specific first
STATUS_CODES = [
    (InvalidInputError, 400),
    (NotFoundError, 404),
    (DocumentError, 422),
    (NotReadyError, 409),
    (StorageError, 500),
]


def init_sentry(
    dsn: str,
    environment: str,
    sample_rate: float = 0.1,
    debug: bool = False
) -> None:
    """
    Initialize Sentry with FastAPI integration.

    Args:
        dsn: Sentry DSN from dashboard
        environment: 'development' or 'production'
        sample_rate: Traces sample rate (1.0 for dev, 0.1 for prod)
        debug: Enable debug mode (verbose logging)
    """
    if not dsn:
        logger.info("Sentry DSN not configured - error tracking disabled")
        return

    traces_sample_rate = 1.0 if environment == "development" else sample_rate

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        traces_sample_rate=traces_sample_rate,
        debug=debug,
        integrations=[
            FastApiIntegration(),
            LoggingIntegration(
                level=logging.INFO,
                event_level=logging.ERROR
            )
        ],
        # Status polling would drown every other transaction
        before_send_transaction=lambda event, hint: None if event.get("transaction", "").startswith(("/health", "/api/status")) else event,
        before_send=_filter_sensitive_data
    )

    logger.info(f"Sentry initialized: environment={environment}, traces_sample_rate={traces_sample_rate}")


def _filter_sensitive_data(event, hint):
    """
    Filter sensitive data before sending to Sentry.

    Removes cookies, authorization and the student name header.
    """
    request = event.get("request")
    if request and "headers" in request:
        request["headers"] = {
            k: v for k, v in request["headers"].items()
            if k.lower() not in ["authorization", "cookie", "x-student-name"]
        }
    return event


def status_code_for(exc: ExamSorterError) -> int:
    for exc_type, code in STATUS_CODES:
        if isinstance(exc, exc_type):
            return code
    return 500


async def domain_exception_handler(request: Request, exc: ExamSorterError) -> JSONResponse:
    """Return a domain error as JSON with its mapped status code."""
    status_code = status_code_for(exc)
    if status_code >= 500:
        sentry_sdk.capture_exception(exc)
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {status_code}: {exc.message}")

    return JSONResponse(
        status_code=status_code,
        content={"error": exc.message, "details": exc.details}
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Global handler for uncaught exceptions.

    Reports to Sentry, logs the traceback and returns a generic message.
    """
    sentry_sdk.capture_exception(exc)
    logger.opt(exception=exc).error(
        f"Unhandled exception on {request.method} {request.url.path}: {exc}"
    )
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error"}
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ExamSorterError, domain_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
