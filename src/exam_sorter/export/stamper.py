"""
Page stamping for problem sorting.

Copies one page of a student's exam into its own PDF and writes a
semi-transparent label along the right edge identifying the problem and the
student. Every function here is pure: no session state is read or written,
so calls can run in a worker thread.

Uses PyMuPDF (fitz) for all PDF manipulation.
"""

from dataclasses import dataclass
from typing import Tuple, Union

import fitz  # PyMuPDF

from exam_sorter.config.constants import (
    WATERMARK_TEMPLATE, WATERMARK_FONT, WATERMARK_FONT_SIZE,
    WATERMARK_MIN_FONT_SIZE, WATERMARK_MARGIN, WATERMARK_COLOR,
    WATERMARK_OPACITY, DEFAULT_RENDER_SCALE, MAX_RENDER_SCALE
)
from exam_sorter.core.exceptions import (
    InvalidInputError, MalformedDocumentError, PageOutOfRangeError
)


@dataclass(frozen=True)
class WatermarkStyle:
    """Appearance of the problem label."""
    font: str = WATERMARK_FONT
    font_size: float = WATERMARK_FONT_SIZE
    min_font_size: float = WATERMARK_MIN_FONT_SIZE
    margin: float = WATERMARK_MARGIN
    color: Tuple[float, float, float] = WATERMARK_COLOR
    opacity: float = WATERMARK_OPACITY

    @classmethod
    def from_settings(cls, settings) -> "WatermarkStyle":
        return cls(
            font_size=settings.watermark_font_size,
            min_font_size=settings.watermark_min_font_size,
            margin=settings.watermark_margin,
            opacity=settings.watermark_opacity
        )


def watermark_text(problem: int, student_name: str, student_id: int) -> str:
    """Label written on every stamped page."""
    return WATERMARK_TEMPLATE.format(problem=problem, name=student_name, student_id=student_id)


# ==================== DOCUMENT ACCESS ====================

def open_document(document: bytes) -> fitz.Document:
    """
    Open PDF bytes.

    Raises:
        MalformedDocumentError: If the bytes are not a readable PDF
    """
    if not document:
        raise MalformedDocumentError("Empty document")
    try:
        doc = fitz.open(stream=document, filetype="pdf")
    except Exception as e:
        raise MalformedDocumentError(f"Failed to open PDF: {e}") from e

    if doc.needs_pass:
        doc.close()
        raise MalformedDocumentError("PDF is encrypted")
    if doc.page_count == 0:
        doc.close()
        raise MalformedDocumentError("PDF has no pages")
    return doc


def count_pages(document: bytes) -> int:
    """Number of pages of a PDF."""
    doc = open_document(document)
    try:
        return doc.page_count
    finally:
        doc.close()


def _check_page_number(doc: fitz.Document, page_number: int) -> None:
    if page_number < 1 or page_number > doc.page_count:
        raise PageOutOfRangeError(page_number, doc.page_count)


# ==================== STAMPING ====================

def fit_label(text: str, page_height: float, style: WatermarkStyle) -> Tuple[float, float]:
    """
    Choose the font size and vertical extent of a rotated label.

    The label is centered on the page height. Text taller than the page
    shrinks down to the style's minimum font size; if it still does not fit,
    it starts at the bottom margin and runs past the top edge.

    Returns:
        (font_size, text_length) in points
    """
    font_size = style.font_size
    length = fitz.get_text_length(text, fontname=style.font, fontsize=font_size)
    usable = page_height - 2 * style.margin

    if length > usable and usable > 0:
        font_size = max(style.min_font_size, font_size * usable / length)
        length = fitz.get_text_length(text, fontname=style.font, fontsize=font_size)

    return font_size, length


def label_origin(page_rect: fitz.Rect, text_length: float, style: WatermarkStyle) -> fitz.Point:
    """
    Baseline start of a label rotated 90 degrees counter-clockwise.

    The text reads bottom to top, so the origin is its lowest point.
    """
    x = page_rect.x1 - style.margin
    usable = page_rect.height - 2 * style.margin
    if text_length <= usable:
        y = page_rect.y0 + page_rect.height / 2 + text_length / 2
    else:
        y = page_rect.y1 - style.margin
    return fitz.Point(x, y)


def unrotated_rect(page: fitz.Page) -> fitz.Rect:
    """Page rectangle before any /Rotate is applied."""
    return page.rect * page.derotation_matrix


def stamp_page(
    document: Union[bytes, fitz.Document],
    page_number: int,
    problem: int,
    student_id: int,
    student_name: str,
    style: WatermarkStyle = WatermarkStyle()
) -> bytes:
    """
    Produce a single-page PDF of one exam page with its problem label.

    The page content and dimensions are copied unchanged; the label is
    drawn on top.

    Args:
        document: Original PDF bytes, or an already open document
        page_number: 1-based page number in the original
        problem: Problem number written on the label
        student_id: Student number written on the label
        student_name: Student name written on the label
        style: Label appearance

    Returns:
        PDF bytes of the stamped page

    Raises:
        MalformedDocumentError: If the original cannot be parsed
        PageOutOfRangeError: If page_number is outside the original
    """
    owns_source = not isinstance(document, fitz.Document)
    source = open_document(document) if owns_source else document
    stamped = None
    try:
        _check_page_number(source, page_number)

        stamped = fitz.open()
        stamped.insert_pdf(source, from_page=page_number - 1, to_page=page_number - 1)
        page = stamped[0]

        # insert_text works in unrotated page space
        frame = unrotated_rect(page)
        text = watermark_text(problem, student_name, student_id)
        font_size, length = fit_label(text, frame.height, style)

        page.insert_text(
            label_origin(frame, length, style),
            text,
            fontsize=font_size,
            fontname=style.font,
            color=style.color,
            rotate=90,
            fill_opacity=style.opacity,
            stroke_opacity=style.opacity,
            overlay=True
        )

        return stamped.tobytes(garbage=3, deflate=True, no_new_id=True)
    except (MalformedDocumentError, PageOutOfRangeError):
        raise
    except Exception as e:
        raise MalformedDocumentError(f"Failed to stamp page {page_number}: {e}") from e
    finally:
        if stamped is not None:
            stamped.close()
        if owns_source:
            source.close()


# ==================== RENDERING ====================

def render_page(document: bytes, page_number: int, scale: float = DEFAULT_RENDER_SCALE) -> bytes:
    """
    Render one page as PNG.

    Args:
        document: PDF bytes
        page_number: 1-based page number
        scale: Zoom factor (1.0 = 72 dpi)

    Returns:
        PNG bytes
    """
    if scale <= 0 or scale > MAX_RENDER_SCALE:
        raise InvalidInputError(
            f"Scale must be in (0, {MAX_RENDER_SCALE}]", {"scale": scale}
        )

    doc = open_document(document)
    try:
        _check_page_number(doc, page_number)
        pix = doc[page_number - 1].get_pixmap(matrix=fitz.Matrix(scale, scale))
        return pix.tobytes("png")
    finally:
        doc.close()
