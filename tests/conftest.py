"""
Shared fixtures: small generated exam PDFs.
"""

import fitz
import pytest

from exam_sorter.storage.session_store import SessionStore


def make_pdf(pages: int = 3, prefix: str = "Page", width: float = 595, height: float = 842) -> bytes:
    """PDF whose page N carries the text '<prefix> N'."""
    doc = fitz.open()
    for number in range(1, pages + 1):
        page = doc.new_page(width=width, height=height)
        page.insert_text((72, 72), f"{prefix} {number}", fontsize=14)
    data = doc.tobytes()
    doc.close()
    return data


def page_texts(pdf_data: bytes) -> list:
    doc = fitz.open(stream=pdf_data, filetype="pdf")
    try:
        return [page.get_text() for page in doc]
    finally:
        doc.close()


@pytest.fixture
def exam_pdf():
    return make_pdf(3)


@pytest.fixture
def store(tmp_path):
    store = SessionStore(base_dir=str(tmp_path))
    yield store
    store.reset()
