"""
Middleware module: exception handlers and error tracking.
"""

from exam_sorter.middleware.error_handler import init_sentry, register_exception_handlers

__all__ = ["init_sentry", "register_exception_handlers"]
