"""
Core data models for the exam sorter.

This module defines the Pydantic models shared by the store, the background
processor and the finalizer.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import datetime
from enum import Enum

from exam_sorter.core.labels import LabelAssignment


class StudentStatus(str, Enum):
    """Processing status of a student's submission."""
    PENDING = "pending"          # Uploaded, not submitted yet
    PROCESSING = "processing"    # Background stamping in flight
    COMPLETED = "completed"
    ERROR = "error"


class Student(BaseModel):
    """
    One uploaded exam and its grading metadata for the session.

    Owned by the SessionStore; the original PDF lives on disk at
    `document_path` and is removed with the session directory.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: int = Field(ge=1)
    name: str = ""
    filename: Optional[str] = None
    document_path: str
    document_size: int = 0
    page_count: Optional[int] = None  # None when the upload did not parse

    labels: LabelAssignment = Field(default_factory=LabelAssignment)

    status: StudentStatus = StudentStatus.PENDING
    error: Optional[str] = None

    # Incremented on every submit; stamped pages of older revisions are stale
    revision: int = 0

    uploaded_at: datetime = Field(default_factory=datetime.now)
    submitted_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def is_labeled(self) -> bool:
        """Loose 'labeled' check: a name and at least one labeled page."""
        return bool(self.name) and bool(self.labels)


class StampedPage(BaseModel):
    """
    A single-page watermarked PDF filed under one problem number.
    """
    model_config = ConfigDict(frozen=True)

    student_id: int
    student_name: str
    page_number: int = Field(ge=1)
    problem: int = Field(ge=1)

    # Position of the (page, problem) pair inside its submission
    sequence: int = 0
    revision: int = 0

    pdf_data: bytes = Field(repr=False)

    @property
    def size(self) -> int:
        return len(self.pdf_data)

    def sort_key(self) -> tuple:
        """Reproducible order inside a problem: student, page, submission order."""
        return (self.student_id, self.page_number, self.sequence)
