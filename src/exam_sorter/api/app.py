"""
FastAPI application for the exam sorter.

Upload a batch of student exams, label and submit each student (stamping runs
in the background), poll the status, finalize and download one PDF per
problem.
"""

from contextlib import asynccontextmanager
from typing import List, Optional
from urllib.parse import quote
import asyncio
import json
import time

from fastapi import FastAPI, File, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from starlette.middleware.base import BaseHTTPMiddleware

from asgi_correlation_id import CorrelationIdMiddleware, correlation_id
from loguru import logger

from exam_sorter.api.health import router as health_router
from exam_sorter.api.schemas import (
    AckResponse, FinalizeResponse, LabelAssignmentResponse, LabelEventRequest,
    StatusResponse, StudentInfoResponse, StudentSummary, SubmitLabelsRequest,
    UploadResponse
)
from exam_sorter.config.constants import (
    APP_NAME, APP_VERSION, DEFAULT_RENDER_SCALE, FINAL_FILENAME,
    HEADER_LABEL_ASSIGNMENT, HEADER_PAGE_COUNT, HEADER_STUDENT_ID,
    HEADER_STUDENT_NAME, HEADER_STUDENT_STATUS, PDF_MEDIA_TYPE, PNG_MEDIA_TYPE
)
from exam_sorter.config.logging_config import setup_structured_logging
from exam_sorter.config.settings import Settings, get_settings
from exam_sorter.core.exceptions import InvalidInputError
from exam_sorter.core.labels import LabelAssignment
from exam_sorter.core.models import Student
from exam_sorter.core.processor import BackgroundProcessor
from exam_sorter.core.status import build_status
from exam_sorter.export.finalizer import Finalizer
from exam_sorter.export.stamper import WatermarkStyle, render_page
from exam_sorter.middleware.error_handler import init_sentry, register_exception_handlers
from exam_sorter.storage.session_store import SessionStore


# ============================================================================
# Request Logging Middleware
# ============================================================================

class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log all requests with correlation ID, method, path, status, latency."""

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()

        with logger.contextualize(correlation_id=correlation_id.get() or "-"):
            response = await call_next(request)
            latency_ms = (time.time() - start_time) * 1000

            # Status polling runs every second or so
            log = logger.debug if request.url.path == "/api/status" else logger.info
            log(f"{request.method} {request.url.path} -> {response.status_code} ({latency_ms:.1f} ms)")

            return response


# ============================================================================
# Helpers
# ============================================================================

def student_summary(student: Student) -> StudentSummary:
    return StudentSummary(
        student_id=student.id,
        student_name=student.name,
        filename=student.filename,
        page_count=student.page_count,
        status=student.status.value,
        error=student.error,
        labeled_pages=len(student.labels)
    )


def student_headers(student: Student) -> dict:
    """Metadata sent alongside a student's PDF."""
    return {
        HEADER_STUDENT_ID: str(student.id),
        HEADER_STUDENT_NAME: quote(student.name),
        HEADER_LABEL_ASSIGNMENT: json.dumps(student.labels.to_wire()),
        HEADER_PAGE_COUNT: "" if student.page_count is None else str(student.page_count),
        HEADER_STUDENT_STATUS: student.status.value,
    }


# ============================================================================
# Application Factory
# ============================================================================

def create_app(
    settings: Optional[Settings] = None,
    store: Optional[SessionStore] = None,
    processor: Optional[BackgroundProcessor] = None
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Settings to use (defaults to environment settings)
        store: Session store (created from settings if omitted)
        processor: Background processor (created from settings if omitted)

    Returns:
        FastAPI application instance
    """
    settings = settings or get_settings()
    store = store or SessionStore(base_dir=settings.data_dir, strict_uploads=settings.strict_uploads)
    processor = processor or BackgroundProcessor(
        store,
        style=WatermarkStyle.from_settings(settings),
        max_workers=settings.stamp_workers
    )
    finalizer = Finalizer(store, processor, sort_pages=settings.sort_final_pages)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_structured_logging(
            level=settings.log_level,
            serialize=settings.log_json,
            log_file=settings.log_file
        )
        init_sentry(
            dsn=settings.sentry_dsn,
            environment=settings.sentry_environment,
            sample_rate=settings.sentry_traces_sample_rate,
            debug=(settings.sentry_environment == "development")
        )
        logger.info(f"{APP_NAME} {APP_VERSION} starting, data dir: {store.base_dir}")

        yield

        await processor.shutdown()
        store.reset()
        logger.info(f"{APP_NAME} stopped")

    app = FastAPI(
        title=APP_NAME,
        description="Split per-student exam PDFs into one PDF per problem",
        version=APP_VERSION,
        lifespan=lifespan
    )
    app.state.settings = settings
    app.state.store = store
    app.state.processor = processor
    app.state.finalizer = finalizer

    register_exception_handlers(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-Request-ID"],
        expose_headers=[
            HEADER_STUDENT_ID, HEADER_STUDENT_NAME, HEADER_LABEL_ASSIGNMENT,
            HEADER_PAGE_COUNT, HEADER_STUDENT_STATUS, "Content-Disposition"
        ],
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(CorrelationIdMiddleware, validator=lambda x: True)

    app.include_router(health_router, tags=["health"])

    # ============================================================================
    # Routes
    # ============================================================================

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "name": APP_NAME,
            "version": APP_VERSION,
            "docs": "/docs"
        }

    @app.post("/api/reset", response_model=AckResponse)
    async def reset_session():
        """Discard the current session and its files."""
        store.reset()
        processor.forget()
        return AckResponse(message="Session reset")

    @app.post("/api/upload", response_model=UploadResponse)
    async def upload(pdfs: Optional[List[UploadFile]] = File(None)):
        """
        Upload one PDF per student and start a new session.

        Students are numbered 1..N in upload order.
        """
        pdfs = pdfs or []
        if not pdfs:
            raise InvalidInputError("No files uploaded")
        if len(pdfs) > settings.max_batch_size:
            raise InvalidInputError(
                f"Too many files. Maximum {settings.max_batch_size} PDFs per batch.",
                {"count": len(pdfs)}
            )

        documents = []
        filenames = []
        for index, upload_file in enumerate(pdfs):
            data = await upload_file.read()
            if len(data) > settings.max_upload_size:
                raise InvalidInputError(
                    f"File {upload_file.filename or index + 1} exceeds "
                    f"{settings.max_upload_size // (1024 * 1024)} MB",
                    {"index": index + 1}
                )
            logger.info(f"Received file {index + 1}: {upload_file.filename}, {len(data)} bytes")
            documents.append(data)
            filenames.append(upload_file.filename)

        total = await asyncio.to_thread(store.start_session, documents, filenames)
        processor.forget()

        return UploadResponse(
            total_students=total,
            message=f"Successfully uploaded {total} PDF files"
        )

    @app.get("/api/students", response_model=List[StudentSummary])
    async def list_students():
        """Roster with per-student processing status."""
        return [student_summary(s) for s in store.list_students()]

    @app.get("/api/student/{student_id}")
    async def get_student_document(student_id: int):
        """Original PDF of a student, with name and labels in headers."""
        student = store.get_student(student_id)
        data = await asyncio.to_thread(store.read_document, student_id)
        return Response(content=data, media_type=PDF_MEDIA_TYPE, headers=student_headers(student))

    @app.get("/api/student/{student_id}/info", response_model=StudentInfoResponse)
    async def get_student_info(student_id: int):
        """Student metadata and current label assignment as JSON."""
        student = store.get_student(student_id)
        summary = student_summary(student)
        return StudentInfoResponse(
            **summary.model_dump(),
            label_assignment=student.labels.to_wire(),
            missing_pages=student.labels.missing_pages(student.page_count or 0)
        )

    @app.get("/api/student/{student_id}/page/{page_number}")
    async def get_student_page(
        student_id: int,
        page_number: int,
        scale: float = Query(DEFAULT_RENDER_SCALE, gt=0)
    ):
        """Render one page of a student's exam as PNG."""
        data = await asyncio.to_thread(store.read_document, student_id)
        png = await processor.run_in_worker(render_page, data, page_number, scale)
        return Response(content=png, media_type=PNG_MEDIA_TYPE)

    @app.post("/api/student/{student_id}/labels", response_model=LabelAssignmentResponse)
    async def update_student_label(student_id: int, request: LabelEventRequest):
        """
        Apply one label event to a student's stored assignment.

        Only edits the draft; nothing is stamped until the student is submitted.
        """
        labels = store.update_label(student_id, request.action, request.page, request.problem)
        return LabelAssignmentResponse(student_id=student_id, label_assignment=labels.to_wire())

    @app.post("/api/label", response_model=AckResponse)
    async def submit_labels(request: SubmitLabelsRequest):
        """
        Submit a student's name and labels.

        Returns as soon as the labels are recorded; stamping continues in the
        background and shows up in /api/status.
        """
        labels = LabelAssignment.from_wire(request.label_assignment)
        processor.submit(request.student_id, request.student_name.strip(), labels)
        return AckResponse(message="Student submitted, processing in background")

    @app.post("/api/finalize", response_model=FinalizeResponse)
    async def finalize(
        strict: bool = Query(False, description="Fail with 409 while students are processing"),
        wait: bool = Query(False, description="Wait for background processing first")
    ):
        """Build one PDF per problem from everything filed so far."""
        if wait:
            await processor.wait_idle()
        problems = await finalizer.finalize(strict=strict)
        return FinalizeResponse(
            problems=problems,
            message=f"Created {len(problems)} problem PDFs"
        )

    @app.get("/api/download/{problem}")
    async def download(problem: int):
        """Download the final PDF of a problem."""
        data = store.get_final(problem)
        filename = FINAL_FILENAME.format(problem=problem)
        return Response(
            content=data,
            media_type=PDF_MEDIA_TYPE,
            headers={"Content-Disposition": f'attachment; filename="{filename}"'}
        )

    @app.get("/api/status", response_model=StatusResponse)
    async def status():
        """Counts a polling client uses to decide when to finalize."""
        snapshot = build_status(store, processor)
        return StatusResponse.model_validate(snapshot.model_dump())

    return app


# Create app instance
app = create_app()
