"""
Final per-problem documents.

Concatenates every stamped page filed under a problem number into one PDF.
Final documents are always rebuilt from the current collections.
"""

from typing import Dict, Iterable, List

import fitz  # PyMuPDF
from loguru import logger

from exam_sorter.core.exceptions import NotReadyError
from exam_sorter.core.models import StampedPage, StudentStatus
from exam_sorter.core.processor import BackgroundProcessor
from exam_sorter.export.stamper import open_document
from exam_sorter.storage.session_store import SessionStore


def order_pages(pages: Iterable[StampedPage], sort_pages: bool = True) -> List[StampedPage]:
    """Pages in output order: by student, page and submission order, or as filed."""
    pages = list(pages)
    if sort_pages:
        pages.sort(key=lambda p: p.sort_key())
    return pages


def build_final_document(pages: List[StampedPage]) -> bytes:
    """
    Concatenate single-page PDFs into one document.

    Args:
        pages: Stamped pages, already in output order

    Returns:
        PDF bytes
    """
    final = fitz.open()
    try:
        for page in pages:
            source = open_document(page.pdf_data)
            try:
                final.insert_pdf(source, from_page=0, to_page=0)
            finally:
                source.close()
        return final.tobytes(garbage=3, deflate=True, no_new_id=True)
    finally:
        final.close()


class Finalizer:
    """
    Builds one final document per problem number.

    Usage:
        finalizer = Finalizer(store, processor)
        problems = await finalizer.finalize()
        pdf = store.get_final(problems[0])
    """

    def __init__(self, store: SessionStore, processor: BackgroundProcessor, sort_pages: bool = True):
        self.store = store
        self.processor = processor
        self.sort_pages = sort_pages

    async def finalize(self, strict: bool = False) -> List[int]:
        """
        Rebuild every final document from the current collections.

        Without `strict`, students still processing simply contribute
        whatever they have filed so far.

        Returns:
            Problem numbers with a final document, ascending

        Raises:
            NotReadyError: If strict and some student is still processing
        """
        processing = [
            s.id for s in self.store.list_students() if s.status == StudentStatus.PROCESSING
        ]
        if processing:
            if strict:
                raise NotReadyError(
                    f"{len(processing)} students still processing",
                    {"processing": processing}
                )
            logger.warning(f"Finalizing while {len(processing)} students are still processing")

        generation = self.store.generation
        snapshot = self.store.collections.snapshot()

        documents: Dict[int, bytes] = {}
        for problem, pages in snapshot.items():
            ordered = order_pages(pages, self.sort_pages)
            documents[problem] = await self.processor.run_in_worker(build_final_document, ordered)
            logger.debug(f"Problem {problem}: {len(ordered)} pages")

        if not self.store.set_final_documents(documents, generation):
            logger.warning("Session was reset during finalize; results discarded")
            return []

        problems = sorted(documents)
        logger.info(f"Finalized {len(problems)} problem PDFs: {problems}")
        return problems
