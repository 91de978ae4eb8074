"""
Background processing of submitted students.

Each submission becomes one asyncio task, keyed by student id, that stamps
every labeled (page, problem) pair and files the results in the session
store. The caller that submits never waits for the task.

Stamping runs in a thread pool so the event loop stays responsive. The pool
defaults to a single worker because PyMuPDF does not support concurrent use
from several threads; tasks for different students still interleave at every
await.
"""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from functools import partial
from typing import Callable, Dict, Optional, Set

from loguru import logger

from exam_sorter.config.constants import DEFAULT_STAMP_WORKERS
from exam_sorter.core.exceptions import ProcessingError
from exam_sorter.core.labels import LabelAssignment
from exam_sorter.core.models import StampedPage, StudentStatus
from exam_sorter.export.stamper import WatermarkStyle, stamp_page
from exam_sorter.storage.session_store import SessionStore, read_document_file


@dataclass(frozen=True)
class StampJob:
    """Immutable snapshot of one submission."""
    student_id: int
    student_name: str
    labels: LabelAssignment
    document_path: str
    generation: int
    revision: int


class BackgroundProcessor:
    """
    Runs and tracks per-student stamping tasks.

    Usage:
        processor = BackgroundProcessor(store)
        processor.submit(1, "Ada", labels)   # returns immediately
        await processor.wait_idle()
    """

    def __init__(
        self,
        store: SessionStore,
        style: WatermarkStyle = WatermarkStyle(),
        max_workers: int = DEFAULT_STAMP_WORKERS,
        stamper: Callable[..., bytes] = stamp_page
    ):
        self.store = store
        self.style = style
        self._stamper = stamper
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="stamper")

        # Latest task per student, plus every task still running
        self._tasks: Dict[int, asyncio.Task] = {}
        self._inflight: Set[asyncio.Task] = set()

    # ==================== SUBMISSION ====================

    def submit(self, student_id: int, student_name: str, labels: LabelAssignment) -> asyncio.Task:
        """
        Record a student's labels and start stamping them in the background.

        The student is marked processing before this returns, so a status
        poll can never observe a submitted student as pending.

        Raises:
            StudentNotFoundError: If the id is unknown (nothing is changed)
        """
        student = self.store.record_labels(student_id, student_name, labels)

        job = StampJob(
            student_id=student.id,
            student_name=student.name,
            labels=student.labels.copy(),
            document_path=student.document_path,
            generation=self.store.generation,
            revision=student.revision
        )
        self.store.set_status(student.id, StudentStatus.PROCESSING, job.generation, job.revision)

        task = asyncio.create_task(self._run(job), name=f"stamp-student-{student.id}-r{job.revision}")
        self._tasks[student.id] = task
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

        logger.info(
            f"Student {student.id} ({student.name}) submitted: "
            f"{sum(1 for _ in job.labels.pairs())} pages to stamp"
        )
        return task

    async def _run(self, job: StampJob) -> None:
        """Stamp and file every pair of a submission."""
        filed = 0
        try:
            document = await asyncio.to_thread(read_document_file, job.document_path)
            await self.store.purge_student(job.student_id, job.revision)

            for sequence, (page_number, problem) in enumerate(job.labels.pairs()):
                pdf_data = await self.run_in_worker(
                    self._stamper,
                    document,
                    page_number,
                    problem,
                    job.student_id,
                    job.student_name,
                    self.style
                )
                page = StampedPage(
                    student_id=job.student_id,
                    student_name=job.student_name,
                    page_number=page_number,
                    problem=problem,
                    sequence=sequence,
                    revision=job.revision,
                    pdf_data=pdf_data
                )
                if not await self.store.file_stamped(page, job.generation):
                    logger.info(f"Student {job.student_id}: submission superseded, stopping")
                    return
                filed += 1

        except Exception as e:
            error = ProcessingError(job.student_id, e)
            logger.error(f"{error.message} (after {filed} pages filed)")
            self.store.set_status(
                job.student_id, StudentStatus.ERROR, job.generation, job.revision,
                error=getattr(e, "message", None) or str(e) or type(e).__name__
            )
            return

        if self.store.set_status(job.student_id, StudentStatus.COMPLETED, job.generation, job.revision):
            logger.info(f"Student {job.student_id} completed: {filed} pages filed")

    async def run_in_worker(self, func: Callable, *args):
        """Run a blocking PDF operation on the stamping pool."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, partial(func, *args))

    # ==================== TRACKING ====================

    def get_task(self, student_id: int) -> Optional[asyncio.Task]:
        """Latest task started for a student."""
        return self._tasks.get(student_id)

    def active_count(self) -> int:
        return sum(1 for task in self._inflight if not task.done())

    async def wait_idle(self) -> None:
        """Wait until no task is running (including tasks started meanwhile)."""
        while True:
            pending = [task for task in self._inflight if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    def forget(self) -> None:
        """Drop task bookkeeping of finished tasks (after a reset)."""
        self._tasks = {sid: t for sid, t in self._tasks.items() if not t.done()}

    async def shutdown(self) -> None:
        """Let running tasks settle, then stop the thread pool."""
        await self.wait_idle()
        self._executor.shutdown(wait=True)
