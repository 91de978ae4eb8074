"""
Read-only status snapshots for polling clients.
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from exam_sorter.core.models import StudentStatus
from exam_sorter.core.processor import BackgroundProcessor
from exam_sorter.storage.session_store import SessionStore


class StudentError(BaseModel):
    """A student whose last submission failed."""
    student_id: int
    student_name: str
    error: str


class ResourceStats(BaseModel):
    """Bytes and work held by the session."""
    original_bytes: int = 0
    stamped_bytes: int = 0
    stamped_pages: int = 0
    final_bytes: int = 0
    active_tasks: int = 0


class SessionStatusSnapshot(BaseModel):
    """Counts a client polls to know when finalizing is safe."""
    total_students: int = 0
    labeled_students: int = 0
    pending_students: int = 0
    processing_students: int = 0
    completed_students: int = 0
    error_students: int = 0
    problems: List[int] = Field(default_factory=list)
    is_finalized: bool = False
    errors: List[StudentError] = Field(default_factory=list)
    resources: ResourceStats = Field(default_factory=ResourceStats)

    @property
    def ready_to_finalize(self) -> bool:
        return self.processing_students == 0


def build_status(store: SessionStore, processor: Optional[BackgroundProcessor] = None) -> SessionStatusSnapshot:
    """Snapshot the store without modifying it."""
    students = store.list_students()
    counts = {status: 0 for status in StudentStatus}
    for student in students:
        counts[student.status] += 1

    errors = [
        StudentError(student_id=s.id, student_name=s.name, error=s.error or "")
        for s in students
        if s.status == StudentStatus.ERROR
    ]

    return SessionStatusSnapshot(
        total_students=len(students),
        labeled_students=sum(1 for s in students if s.is_labeled),
        pending_students=counts[StudentStatus.PENDING],
        processing_students=counts[StudentStatus.PROCESSING],
        completed_students=counts[StudentStatus.COMPLETED],
        error_students=counts[StudentStatus.ERROR],
        problems=store.problems(),
        is_finalized=store.is_finalized,
        errors=errors,
        resources=ResourceStats(
            **store.resource_stats(),
            active_tasks=processor.active_count() if processor else 0
        )
    )
