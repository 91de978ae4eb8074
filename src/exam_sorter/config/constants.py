"""
Constants and default values for the exam sorter.

Defines label values, watermark defaults, upload limits and file naming.
"""

from typing import Final

# Labels
NOT_A_PROBLEM: Final[int] = -1  # Sentinel: page is filed under no problem

# Watermark (drawn along the right edge, rotated 90 degrees)
WATERMARK_TEMPLATE: Final[str] = "Problem {problem} - {name} - Student nr: {student_id}"
WATERMARK_FONT: Final[str] = "helv"
WATERMARK_FONT_SIZE: Final[float] = 20.0
WATERMARK_MIN_FONT_SIZE: Final[float] = 8.0
WATERMARK_MARGIN: Final[float] = 20.0  # Distance of the baseline from the right edge
WATERMARK_COLOR: Final[tuple] = (1.0, 0.0, 0.0)  # Red
WATERMARK_OPACITY: Final[float] = 0.3

# Page rendering (viewer capability)
DEFAULT_RENDER_SCALE: Final[float] = 1.5
MAX_RENDER_SCALE: Final[float] = 4.0

# Processing
DEFAULT_STAMP_WORKERS: Final[int] = 1  # PyMuPDF is not thread-safe

# Uploads
MAX_UPLOAD_SIZE: Final[int] = 50 * 1024 * 1024  # 50 MB per file
MAX_BATCH_SIZE: Final[int] = 500

# Storage
DATA_DIR: Final[str] = "data"
ORIGINALS_DIR: Final[str] = "originals"
ORIGINAL_FILENAME: Final[str] = "student_{student_id}.pdf"

# Downloads
FINAL_FILENAME: Final[str] = "Problem_{problem}.pdf"
PDF_MEDIA_TYPE: Final[str] = "application/pdf"
PNG_MEDIA_TYPE: Final[str] = "image/png"

# Student metadata headers
HEADER_STUDENT_ID: Final[str] = "X-Student-Id"
HEADER_STUDENT_NAME: Final[str] = "X-Student-Name"
HEADER_LABEL_ASSIGNMENT: Final[str] = "X-Label-Assignment"
HEADER_PAGE_COUNT: Final[str] = "X-Page-Count"
HEADER_STUDENT_STATUS: Final[str] = "X-Student-Status"

APP_NAME: Final[str] = "Exam Sorter"
APP_VERSION: Final[str] = "1.0.0"
