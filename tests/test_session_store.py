"""
Tests for the session store.
"""

import asyncio
from pathlib import Path

import pytest

from conftest import make_pdf
from exam_sorter.core.exceptions import (
    InvalidInputError, ProblemNotFoundError, StudentNotFoundError
)
from exam_sorter.core.labels import LabelAction, LabelAssignment
from exam_sorter.core.models import StampedPage, StudentStatus
from exam_sorter.storage.session_store import SessionStore


def stamped(student_id=1, problem=1, page_number=1, revision=1, sequence=0):
    return StampedPage(
        student_id=student_id,
        student_name="Ada",
        page_number=page_number,
        problem=problem,
        sequence=sequence,
        revision=revision,
        pdf_data=b"%PDF-stub"
    )


def test_start_session_numbers_students(store):
    """Test students are numbered 1..N in upload order."""
    total = store.start_session([make_pdf(2), make_pdf(3)], ["a.pdf", "b.pdf"])

    assert total == 2
    students = store.list_students()
    assert [s.id for s in students] == [1, 2]
    assert [s.filename for s in students] == ["a.pdf", "b.pdf"]
    assert [s.page_count for s in students] == [2, 3]
    assert all(s.status == StudentStatus.PENDING for s in students)
    assert all(s.name == "" for s in students)
    assert Path(students[0].document_path).exists()


def test_start_session_rejects_empty(store):
    """Test an upload with no documents raises."""
    with pytest.raises(InvalidInputError):
        store.start_session([])


def test_start_session_defers_unreadable_pdf(store):
    """Test unreadable uploads are accepted unless uploads are strict."""
    store.start_session([b"not a pdf"])
    assert store.get_student(1).page_count is None


def test_strict_upload_rejects_unreadable_pdf(tmp_path):
    """Test strict uploads fail fast."""
    store = SessionStore(base_dir=str(tmp_path), strict_uploads=True)
    with pytest.raises(InvalidInputError):
        store.start_session([make_pdf(1), b"not a pdf"])
    assert store.list_students() == []


def test_new_upload_replaces_session(store):
    """Test a second upload discards the first session entirely."""
    store.start_session([make_pdf(1), make_pdf(1), make_pdf(1)])
    old_dir = store.session_dir
    generation = store.generation

    store.start_session([make_pdf(2)])

    assert len(store.list_students()) == 1
    assert not old_dir.exists()
    assert store.generation > generation


def test_reset_clears_everything(store):
    """Test reset drops students, collections and final documents."""
    store.start_session([make_pdf(1)])
    session_dir = store.session_dir
    asyncio.run(store.file_stamped(stamped(revision=0), store.generation))
    store.set_final_documents({1: b"%PDF"}, store.generation)

    store.reset()

    assert store.list_students() == []
    assert store.problems() == []
    assert not store.is_finalized
    assert not session_dir.exists()
    store.reset()  # idempotent


def test_unknown_student(store):
    """Test lookups of unknown ids raise StudentNotFoundError."""
    store.start_session([make_pdf(1)])
    with pytest.raises(StudentNotFoundError):
        store.get_student(2)
    with pytest.raises(StudentNotFoundError):
        store.record_labels(0, "X", LabelAssignment())


def test_read_document(store, exam_pdf):
    """Test originals are read back unchanged."""
    store.start_session([exam_pdf])
    assert store.read_document(1) == exam_pdf


def test_record_labels_bumps_revision(store):
    """Test each submit overwrites labels and increments the revision."""
    store.start_session([make_pdf(2)])
    labels = LabelAssignment({1: [1]})

    student = store.record_labels(1, "Ada", labels)
    assert student.revision == 1
    labels.add(2, 2)
    assert student.labels.get(2) == []

    student = store.record_labels(1, "Ada L.", LabelAssignment({2: [3]}))
    assert student.revision == 2
    assert student.name == "Ada L."
    assert student.labels.to_wire() == {"2": [3]}


def test_update_label(store):
    """Test single label events and page range checks."""
    store.start_session([make_pdf(2)])

    labels = store.update_label(1, LabelAction.ADD, 2, 4)
    assert labels.to_wire() == {"2": [4]}

    with pytest.raises(InvalidInputError):
        store.update_label(1, LabelAction.ADD, 3, 1)


def test_set_status_ignores_stale_submissions(store):
    """Test status updates from old generations or revisions are dropped."""
    store.start_session([make_pdf(1)])
    student = store.record_labels(1, "Ada", LabelAssignment({1: [1]}))
    generation = store.generation

    assert store.set_status(1, StudentStatus.PROCESSING, generation, student.revision)
    assert not store.set_status(1, StudentStatus.COMPLETED, generation, student.revision - 1)
    assert not store.set_status(1, StudentStatus.COMPLETED, generation - 1, student.revision)
    assert store.get_student(1).status == StudentStatus.PROCESSING


def test_file_stamped_and_purge(store):
    """Test filing pages and replacing a student's older pages."""
    store.start_session([make_pdf(2), make_pdf(2)])
    store.record_labels(1, "Ada", LabelAssignment())
    store.record_labels(2, "Bob", LabelAssignment())
    generation = store.generation

    async def scenario():
        assert await store.file_stamped(stamped(1, problem=1), generation)
        assert await store.file_stamped(stamped(1, problem=2), generation)
        assert await store.file_stamped(stamped(2, problem=1), generation)

        # Stale generation and stale revision are dropped
        assert not await store.file_stamped(stamped(2, problem=3), generation - 1)
        assert not await store.file_stamped(stamped(2, problem=3, revision=0), generation)

        store.record_labels(1, "Ada", LabelAssignment())
        return await store.purge_student(1, before_revision=2)

    removed = asyncio.run(scenario())

    assert removed == 2
    assert store.problems() == [1]
    assert [p.student_id for p in store.collections.pages(1)] == [2]


def test_final_documents(store):
    """Test final documents are replaced only for the current generation."""
    store.start_session([make_pdf(1)])

    with pytest.raises(ProblemNotFoundError):
        store.get_final(1)

    assert store.set_final_documents({1: b"one"}, store.generation)
    assert store.get_final(1) == b"one"
    assert store.is_finalized

    assert not store.set_final_documents({2: b"two"}, store.generation - 1)
    assert store.get_final(1) == b"one"


def test_resource_stats(store, exam_pdf):
    """Test byte accounting."""
    store.start_session([exam_pdf])
    stats = store.resource_stats()

    assert stats["original_bytes"] == len(exam_pdf)
    assert stats["stamped_pages"] == 0
    assert stats["final_bytes"] == 0
