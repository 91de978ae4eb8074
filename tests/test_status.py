"""
Tests for status snapshots.
"""

import asyncio

from conftest import make_pdf
from exam_sorter.core.labels import LabelAssignment
from exam_sorter.core.processor import BackgroundProcessor
from exam_sorter.core.status import build_status


def test_empty_status(store):
    """Test a store with no session reports nothing."""
    status = build_status(store)

    assert status.total_students == 0
    assert status.problems == []
    assert not status.is_finalized
    assert status.ready_to_finalize


def test_status_counts(store):
    """Test per-status counts, errors and resources."""
    store.start_session([make_pdf(2), b"broken", make_pdf(1)])
    processor = BackgroundProcessor(store)

    async def scenario():
        processor.submit(1, "Ada", LabelAssignment({1: [1], 2: [2]}))
        processor.submit(2, "Broken", LabelAssignment({1: [1]}))
        await processor.wait_idle()

    try:
        asyncio.run(scenario())
    finally:
        processor._executor.shutdown(wait=True)

    status = build_status(store, processor)

    assert status.total_students == 3
    assert status.labeled_students == 2
    assert status.pending_students == 1
    assert status.processing_students == 0
    assert status.completed_students == 1
    assert status.error_students == 1
    assert status.problems == [1, 2]
    assert [e.student_id for e in status.errors] == [2]
    assert status.errors[0].error
    assert status.resources.stamped_pages == 2
    assert status.resources.stamped_bytes > 0
    assert status.resources.active_tasks == 0


def test_status_after_reset(store):
    """Test reset brings the snapshot back to zero."""
    store.start_session([make_pdf(1)])
    store.set_final_documents({1: b"%PDF"}, store.generation)
    assert build_status(store).is_finalized

    store.reset()
    status = build_status(store)

    assert status.total_students == 0
    assert status.problems == []
    assert not status.is_finalized
