"""
Core module: labels, models, background processing and status.
"""

from exam_sorter.core.labels import LabelAssignment, LabelAction
from exam_sorter.core.models import Student, StudentStatus, StampedPage

__all__ = [
    "LabelAssignment",
    "LabelAction",
    "Student",
    "StudentStatus",
    "StampedPage",
]
