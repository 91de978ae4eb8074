"""
API module for the exam sorter.

Provides the FastAPI application and routes for web access.
"""

from exam_sorter.api.app import create_app, app

__all__ = ['create_app', 'app']
