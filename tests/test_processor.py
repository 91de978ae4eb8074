"""
Tests for background stamping.
"""

import asyncio
import threading

import pytest

from conftest import make_pdf, page_texts
from exam_sorter.core.labels import LabelAssignment
from exam_sorter.core.models import StudentStatus
from exam_sorter.core.processor import BackgroundProcessor
from exam_sorter.core.exceptions import StudentNotFoundError
from exam_sorter.export.stamper import stamp_page


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def processor(store):
    processor = BackgroundProcessor(store)
    yield processor
    processor._executor.shutdown(wait=True)


def test_submit_files_every_pair(store, processor):
    """Test each (page, problem) pair becomes one stamped page."""
    store.start_session([make_pdf(3)])

    async def scenario():
        processor.submit(1, "Ada", LabelAssignment.from_wire({"1": [1], "2": [1, 2], "3": [-1]}))
        assert store.get_student(1).status == StudentStatus.PROCESSING
        assert processor.get_task(1) is not None
        await processor.wait_idle()
        assert processor.get_task(1).done()

    run(scenario())

    student = store.get_student(1)
    assert student.status == StudentStatus.COMPLETED
    assert student.name == "Ada"
    assert store.problems() == [1, 2]
    assert [p.page_number for p in store.collections.pages(1)] == [1, 2]
    assert [p.page_number for p in store.collections.pages(2)] == [2]
    assert "Problem 2" in page_texts(store.collections.pages(2)[0].pdf_data)[0]
    assert processor.active_count() == 0


def test_submit_without_labels_completes(store, processor):
    """Test a student with no filed pages still completes."""
    store.start_session([make_pdf(1)])

    async def scenario():
        processor.submit(1, "Ada", LabelAssignment({1: [-1]}))
        await processor.wait_idle()

    run(scenario())

    assert store.get_student(1).status == StudentStatus.COMPLETED
    assert store.problems() == []


def test_unknown_student_changes_nothing(store, processor):
    """Test submitting an unknown id raises before any state changes."""
    store.start_session([make_pdf(1)])

    async def scenario():
        with pytest.raises(StudentNotFoundError):
            processor.submit(5, "Nobody", LabelAssignment({1: [1]}))

    run(scenario())
    assert processor.active_count() == 0


def test_corrupt_document_sets_error(store, processor):
    """Test a corrupt original marks only that student as error."""
    store.start_session([b"definitely not a pdf", make_pdf(1)])

    async def scenario():
        processor.submit(1, "Broken", LabelAssignment({1: [1]}))
        processor.submit(2, "Fine", LabelAssignment({1: [1]}))
        await processor.wait_idle()

    run(scenario())

    broken, fine = store.list_students()
    assert broken.status == StudentStatus.ERROR
    assert broken.error
    assert fine.status == StudentStatus.COMPLETED
    assert [p.student_id for p in store.collections.pages(1)] == [2]


def test_partial_failure_keeps_filed_pages(store, processor):
    """Test pages filed before a failure stay filed."""
    store.start_session([make_pdf(2)])

    async def scenario():
        processor.submit(1, "Ada", LabelAssignment({1: [1], 5: [2]}))
        await processor.wait_idle()

    run(scenario())

    student = store.get_student(1)
    assert student.status == StudentStatus.ERROR
    assert "out of range" in student.error
    assert store.problems() == [1]


def test_resubmission_replaces_pages(store, processor):
    """Test a second submit replaces everything the first one filed."""
    store.start_session([make_pdf(3)])

    async def scenario():
        processor.submit(1, "Ada", LabelAssignment({1: [1], 2: [2]}))
        await processor.wait_idle()
        processor.submit(1, "Ada", LabelAssignment({3: [1]}))
        await processor.wait_idle()

    run(scenario())

    assert store.problems() == [1]
    assert [p.page_number for p in store.collections.pages(1)] == [3]
    assert store.get_student(1).status == StudentStatus.COMPLETED


def test_resubmission_while_in_flight(store, processor):
    """Test the superseded submission files nothing once the new one exists."""
    store.start_session([make_pdf(3)])

    async def scenario():
        processor.submit(1, "Ada", LabelAssignment({1: [1], 2: [1], 3: [1]}))
        processor.submit(1, "Ada", LabelAssignment({2: [4]}))
        await processor.wait_idle()

    run(scenario())

    assert store.problems() == [4]
    assert store.get_student(1).revision == 2


def test_reset_during_processing_discards_results(store):
    """Test results of a session reset mid-flight never reach the new session."""
    started = threading.Event()
    release = threading.Event()

    def blocking_stamper(*args):
        started.set()
        release.wait(timeout=10)
        return stamp_page(*args)

    processor = BackgroundProcessor(store, stamper=blocking_stamper)
    store.start_session([make_pdf(2)])

    async def scenario():
        processor.submit(1, "Ada", LabelAssignment({1: [1], 2: [2]}))
        assert await asyncio.to_thread(started.wait, 10)

        store.reset()
        store.start_session([make_pdf(1)])
        release.set()
        await processor.wait_idle()

    try:
        run(scenario())
    finally:
        processor._executor.shutdown(wait=True)

    assert store.problems() == []
    assert store.get_student(1).status == StudentStatus.PENDING
