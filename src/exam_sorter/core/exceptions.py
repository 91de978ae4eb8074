"""
Custom exception hierarchy for the exam sorter.

Provides a consistent error handling approach across all modules.
"""


class ExamSorterError(Exception):
    """
    Base exception for all exam sorter errors.

    All custom exceptions should inherit from this class.
    """

    def __init__(self, message: str, details: dict | None = None):
        """
        Initialize the exception.

        Args:
            message: Human-readable error message
            details: Optional dictionary with additional error context
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# ==================== Input Errors ====================

class InvalidInputError(ExamSorterError):
    """
    Raised when a request carries unusable input.

    Empty uploads, malformed label assignments, unknown label actions.
    """
    pass


# ==================== Lookup Errors ====================

class NotFoundError(ExamSorterError):
    """
    Base error for unknown identifiers.
    """
    pass


class StudentNotFoundError(NotFoundError):
    """Raised when a student id is not in the current roster."""

    def __init__(self, student_id: int):
        super().__init__(f"Student not found: {student_id}", {"student_id": student_id})
        self.student_id = student_id


class ProblemNotFoundError(NotFoundError):
    """Raised when no final document exists for a problem number."""

    def __init__(self, problem: int):
        super().__init__(f"Problem PDF not found: {problem}", {"problem": problem})
        self.problem = problem


# ==================== Document Errors ====================

class DocumentError(ExamSorterError):
    """
    Base error for PDF processing issues.
    """
    pass


class MalformedDocumentError(DocumentError):
    """Raised when a PDF cannot be parsed."""
    pass


class PageOutOfRangeError(DocumentError):
    """Raised when a page number falls outside the document."""

    def __init__(self, page_number: int, page_count: int):
        super().__init__(
            f"Page {page_number} out of range (1-{page_count})",
            {"page_number": page_number, "page_count": page_count}
        )
        self.page_number = page_number
        self.page_count = page_count


# ==================== Processing Errors ====================

class ProcessingError(ExamSorterError):
    """
    Failure of a student's background processing.

    Stored on the student status, never raised to a request.
    """

    def __init__(self, student_id: int, cause: Exception):
        super().__init__(
            f"Processing failed for student {student_id}: {cause}",
            {"student_id": student_id, "cause": type(cause).__name__}
        )
        self.student_id = student_id
        self.cause = cause


class NotReadyError(ExamSorterError):
    """Raised by a strict finalize while students are still processing."""
    pass


# ==================== Storage Errors ====================

class StorageError(ExamSorterError):
    """
    Raised when backing files cannot be written or read.
    """
    pass
