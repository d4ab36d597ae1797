"""Health check endpoint."""

import os
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel

from multipart_downloader.core.logger import LogIcon, logger
from multipart_downloader.core.router import Router
from multipart_downloader.core.settings import settings as st

router = Router(__file__, prefix="/")


class HealthResponse(BaseModel):
    status: Literal["healthy", "degraded"]
    version: str
    upload_dir: str
    upload_dir_writable: bool
    workers_running: bool


def health_report(upload_dir: Path, state: Any = None) -> HealthResponse:
    """Uploads need a writable target directory and, for blocking endpoints, the worker pool."""
    writable = upload_dir.is_dir() and os.access(upload_dir, os.W_OK)
    workers = state is not None and state.get("worker_pool") is not None
    return HealthResponse(
        status="healthy" if writable and workers else "degraded",
        version=st.API_VERSION,
        upload_dir=str(upload_dir),
        upload_dir_writable=writable,
        workers_running=workers,
    )


@router.get("/health")
async def health_check(global_dependencies=None) -> HealthResponse:
    state = (global_dependencies or {}).get("state")
    upload_dir = state.get("upload_dir", st.UPLOAD_DIR) if state is not None else st.UPLOAD_DIR
    report = health_report(Path(upload_dir), state)
    logger.info("Health check requested", icon=LogIcon.HEALTHCHECK, status=report.status)
    return report
