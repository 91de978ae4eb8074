"""
Health check endpoint for the exam sorter.

Provides process health for load balancers and monitoring.
"""

from fastapi import APIRouter, HTTPException, Request
from loguru import logger

from exam_sorter.config.constants import APP_VERSION

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """
    Health check endpoint with storage status.

    Returns:
        JSON with status, version, active background tasks and whether the
        data directory is writable. HTTP 200 if healthy, 503 otherwise.
    """
    store = request.app.state.store
    processor = request.app.state.processor

    health_status = {
        "status": "healthy",
        "version": APP_VERSION,
        "active_tasks": processor.active_count(),
        "students": len(store.students),
        "storage": "unknown"
    }

    try:
        store.base_dir.mkdir(parents=True, exist_ok=True)
        probe = store.base_dir / ".health"
        probe.write_bytes(b"ok")
        probe.unlink()
        health_status["storage"] = "writable"
    except OSError as e:
        health_status["status"] = "unhealthy"
        health_status["storage"] = f"unavailable: {e}"
        logger.error(f"Health check failed: {e}")
        raise HTTPException(status_code=503, detail=health_status)

    return health_status
