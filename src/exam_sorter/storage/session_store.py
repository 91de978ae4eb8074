"""
In-memory session store with file-backed originals.

Architecture:
    data/
    └── sessions/
        └── {session_id}/
            └── originals/
                └── student_{id}.pdf   # Uploaded exam, one per student

Everything else (roster, label assignments, problem collections, final
documents) lives in memory and disappears on reset or on the next upload.
There is exactly one session at a time; `generation` increments on every
reset so background work started for an older session can recognise itself
as stale.
"""

import asyncio
import shutil
import uuid
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from loguru import logger

from exam_sorter.config.constants import DATA_DIR, ORIGINALS_DIR, ORIGINAL_FILENAME
from exam_sorter.core.exceptions import (
    InvalidInputError, MalformedDocumentError, ProblemNotFoundError,
    StorageError, StudentNotFoundError
)
from exam_sorter.core.labels import LabelAction, LabelAssignment
from exam_sorter.core.models import StampedPage, Student, StudentStatus
from exam_sorter.export.stamper import count_pages


class ProblemCollections:
    """
    Stamped pages grouped by problem number.

    Each problem number has its own asyncio.Lock; writers to different
    problems never wait on each other.
    """

    def __init__(self):
        self._pages: Dict[int, List[StampedPage]] = {}
        self._locks: Dict[int, asyncio.Lock] = {}

    def _lock(self, problem: int) -> asyncio.Lock:
        lock = self._locks.get(problem)
        if lock is None:
            lock = self._locks[problem] = asyncio.Lock()
        return lock

    async def append(self, page: StampedPage, accept: Callable[[], bool] = lambda: True) -> bool:
        """
        Append a page to its problem's collection.

        `accept` is evaluated while holding the lock; the page is dropped
        when it returns False.
        """
        async with self._lock(page.problem):
            if not accept():
                return False
            self._pages.setdefault(page.problem, []).append(page)
            return True

    async def remove_where(self, predicate: Callable[[StampedPage], bool]) -> int:
        """Remove every page matching `predicate`. Returns the number removed."""
        removed = 0
        for problem in list(self._pages):
            async with self._lock(problem):
                pages = self._pages.get(problem, [])
                kept = [p for p in pages if not predicate(p)]
                removed += len(pages) - len(kept)
                if kept:
                    self._pages[problem] = kept
                else:
                    self._pages.pop(problem, None)
        return removed

    def problems(self) -> List[int]:
        """Problem numbers with at least one page, ascending."""
        return sorted(problem for problem, pages in self._pages.items() if pages)

    def pages(self, problem: int) -> List[StampedPage]:
        """Copy of a problem's pages in filing order."""
        return list(self._pages.get(problem, []))

    def snapshot(self) -> Dict[int, List[StampedPage]]:
        """Copy of every non-empty collection."""
        return {problem: list(self._pages[problem]) for problem in self.problems()}

    def page_count(self) -> int:
        return sum(len(pages) for pages in self._pages.values())

    def total_bytes(self) -> int:
        return sum(page.size for pages in self._pages.values() for page in pages)


class SessionStore:
    """
    Owner of all state of the current grading session.

    Students are numbered 1..N in upload order. Problem collections and
    final documents are keyed by problem number.
    """

    def __init__(self, base_dir: str = None, strict_uploads: bool = False):
        self.base_dir = Path(base_dir or DATA_DIR)
        self.strict_uploads = strict_uploads

        self.session_id: Optional[str] = None
        self.session_dir: Optional[Path] = None
        self.generation = 0

        self.students: Dict[int, Student] = {}
        self.collections = ProblemCollections()
        self.final_documents: Dict[int, bytes] = {}
        self.finalized_at: Optional[datetime] = None

    # ==================== LIFECYCLE ====================

    def reset(self) -> None:
        """Drop the whole session and delete its files."""
        self.generation += 1
        self.students = {}
        self.collections = ProblemCollections()
        self.final_documents = {}
        self.finalized_at = None

        if self.session_dir is not None:
            try:
                shutil.rmtree(self.session_dir)
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning(f"Could not remove session directory {self.session_dir}: {e}")

        if self.session_id:
            logger.info(f"Session {self.session_id} reset (generation {self.generation})")
        self.session_id = None
        self.session_dir = None

    def start_session(
        self,
        documents: Sequence[bytes],
        filenames: Optional[Sequence[Optional[str]]] = None
    ) -> int:
        """
        Replace the roster with one pending student per document.

        Args:
            documents: Raw PDF bytes, in upload order
            filenames: Optional original filenames, same order

        Returns:
            Number of students

        Raises:
            InvalidInputError: If no documents were given, or (strict uploads)
                a document is not a readable PDF
        """
        if not documents:
            raise InvalidInputError("No files uploaded")

        filenames = list(filenames or [])
        page_counts = []
        for index, data in enumerate(documents):
            try:
                page_counts.append(count_pages(data))
            except MalformedDocumentError as e:
                if self.strict_uploads:
                    raise InvalidInputError(
                        f"File {index + 1} is not a readable PDF: {e.message}",
                        {"index": index + 1}
                    ) from e
                logger.warning(f"Uploaded file {index + 1} did not parse, deferring: {e.message}")
                page_counts.append(None)

        self.reset()
        self.session_id = uuid.uuid4().hex[:12]
        self.session_dir = self.base_dir / "sessions" / self.session_id
        originals = self.session_dir / ORIGINALS_DIR

        try:
            originals.mkdir(parents=True, exist_ok=True)
            for index, data in enumerate(documents):
                student_id = index + 1
                path = originals / ORIGINAL_FILENAME.format(student_id=student_id)
                path.write_bytes(data)

                self.students[student_id] = Student(
                    id=student_id,
                    filename=filenames[index] if index < len(filenames) else None,
                    document_path=str(path),
                    document_size=len(data),
                    page_count=page_counts[index]
                )
                logger.debug(
                    f"Stored student {student_id}: {len(data)} bytes, "
                    f"{page_counts[index]} pages"
                )
        except OSError as e:
            self.reset()
            raise StorageError(f"Failed to store uploaded files: {e}") from e

        logger.info(f"Session {self.session_id} started with {len(self.students)} students")
        return len(self.students)

    def is_current(self, generation: int) -> bool:
        """True if `generation` is the session generation in effect."""
        return generation == self.generation

    # ==================== STUDENTS ====================

    def get_student(self, student_id: int) -> Student:
        """
        Raises:
            StudentNotFoundError: If the id is not in the roster
        """
        student = self.students.get(student_id)
        if student is None:
            raise StudentNotFoundError(student_id)
        return student

    def list_students(self) -> List[Student]:
        return [self.students[student_id] for student_id in sorted(self.students)]

    def read_document(self, student_id: int) -> bytes:
        """Original PDF bytes of a student."""
        return read_document_file(self.get_student(student_id).document_path)

    def record_labels(self, student_id: int, name: str, labels: LabelAssignment) -> Student:
        """
        Overwrite a student's name and label assignment.

        Bumps the student's revision, which makes pages filed by earlier
        submissions stale. Does not start processing.
        """
        student = self.get_student(student_id)
        student.name = name
        student.labels = labels.copy()
        student.revision += 1
        student.submitted_at = datetime.now()
        return student

    def update_label(
        self,
        student_id: int,
        action: LabelAction,
        page: int,
        problem: Optional[int] = None
    ) -> LabelAssignment:
        """Apply one label event to a student's stored assignment."""
        student = self.get_student(student_id)
        if student.page_count is not None and page > student.page_count:
            raise InvalidInputError(
                f"Page {page} out of range (1-{student.page_count})",
                {"page": page, "page_count": student.page_count}
            )
        student.labels.apply(action, page, problem)
        return student.labels

    def set_status(
        self,
        student_id: int,
        status: StudentStatus,
        generation: int,
        revision: int,
        error: Optional[str] = None
    ) -> bool:
        """
        Update a student's status on behalf of a specific submission.

        Ignored (returns False) when the submission is stale.
        """
        student = self.students.get(student_id)
        if not self.is_current(generation) or student is None or student.revision != revision:
            return False
        student.status = status
        student.error = error
        if status in (StudentStatus.COMPLETED, StudentStatus.ERROR):
            student.completed_at = datetime.now()
        return True

    # ==================== PROBLEM COLLECTIONS ====================

    def _accepts(self, page: StampedPage, generation: int) -> bool:
        student = self.students.get(page.student_id)
        return (
            self.is_current(generation)
            and student is not None
            and student.revision == page.revision
        )

    async def file_stamped(self, page: StampedPage, generation: int) -> bool:
        """
        File a stamped page under its problem number.

        Returns False (and files nothing) if the page belongs to an older
        session or a superseded submission.
        """
        collections = self.collections
        return await collections.append(page, lambda: self._accepts(page, generation))

    async def purge_student(self, student_id: int, before_revision: int) -> int:
        """Remove a student's pages filed by submissions older than `before_revision`."""
        removed = await self.collections.remove_where(
            lambda p: p.student_id == student_id and p.revision < before_revision
        )
        if removed:
            logger.info(f"Student {student_id}: replaced {removed} previously filed pages")
        return removed

    def problems(self) -> List[int]:
        return self.collections.problems()

    # ==================== FINAL DOCUMENTS ====================

    def set_final_documents(self, documents: Dict[int, bytes], generation: int) -> bool:
        """Replace all final documents (ignored if the session changed meanwhile)."""
        if not self.is_current(generation):
            return False
        self.final_documents = dict(documents)
        self.finalized_at = datetime.now()
        return True

    def get_final(self, problem: int) -> bytes:
        """
        Raises:
            ProblemNotFoundError: If no final document exists for the problem
        """
        document = self.final_documents.get(problem)
        if document is None:
            raise ProblemNotFoundError(problem)
        return document

    @property
    def is_finalized(self) -> bool:
        return bool(self.final_documents)

    # ==================== RESOURCES ====================

    def resource_stats(self) -> Dict[str, int]:
        """Bytes held by the session."""
        return {
            "original_bytes": sum(s.document_size for s in self.students.values()),
            "stamped_bytes": self.collections.total_bytes(),
            "stamped_pages": self.collections.page_count(),
            "final_bytes": sum(len(d) for d in self.final_documents.values()),
        }


def read_document_file(path: str) -> bytes:
    """
    Read a stored original.

    Raises:
        StorageError: If the file is gone or unreadable
    """
    try:
        return Path(path).read_bytes()
    except OSError as e:
        raise StorageError(f"Failed to read document {path}: {e}") from e
