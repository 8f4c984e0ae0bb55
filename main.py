"""FastAPI application for the viva queue.

The app exposes admin endpoints to upload the student list and drive the
queue, a polling endpoint for the public monitor display, and the feed of
pending announcements the monitor reads out.  It reads configuration from
environment variables and connects to a relational database using SQLModel.
Redis is optional and only used to hold announcements.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any, Dict

from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

import announcements
from database import get_session, init_db
from exceptions import PersistenceError, VivaQueueError
from schemas import StudentsToShowRequest, UploadRequest
from services import (
    advance_batch,
    get_admin_state,
    get_status,
    move_to_end,
    start_queue,
    update_students_to_show,
    upload_list,
    warn_student,
)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
PORT = int(os.getenv("PORT", 8000))

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Viva Queue",
    description="Sequential viva queue with a public monitor display",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def on_startup() -> None:
    logger.info("Starting Viva Queue...")
    logger.info("Redis URL: %s", "configured" if announcements.REDIS_URL else "not configured")
    init_db()
    logger.info("Database ready")


@app.exception_handler(VivaQueueError)
async def queue_error_handler(request: Request, exc: VivaQueueError) -> JSONResponse:
    """Report command failures to the admin instead of crashing."""
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.message, "type": type(exc).__name__},
    )


@app.get("/")
def root() -> Dict[str, Any]:
    return {
        "service": "Viva Queue API",
        "status": "running",
        "version": "1.0.0",
        "endpoints": {
            "queue_status": "/api/queue-status",
            "announcements": "/api/announcements",
            "admin_state": "/admin/state",
        },
    }


@app.get("/health")
def health_check(session: Session = Depends(get_session)) -> JSONResponse:
    try:
        session.execute(text("SELECT 1"))
        database_status = "connected"
    except SQLAlchemyError as e:
        logger.error("Health check database error: %s", e)
        database_status = "unavailable"

    redis_status = announcements.redis_status()
    healthy = database_status == "connected"
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={
            "status": "healthy" if healthy else "unhealthy",
            "database": database_status,
            "redis": redis_status,
            "pending_announcements": announcements.pending_count(),
        },
    )


# ===== MONITOR =====

@app.get("/api/queue-status")
def queue_status(session: Session = Depends(get_session)):
    """Current batch for the monitor display.  Polled every few seconds."""
    try:
        return get_status(session)
    except PersistenceError as e:
        return JSONResponse(status_code=500, content={"error": e.message})


@app.get("/api/announcements")
def pending_announcements(limit: int = Query(20, ge=1, le=100)) -> Dict[str, Any]:
    """Pop pending announcements, oldest first."""
    return {"announcements": announcements.drain(limit)}


# ===== ADMIN =====

@app.get("/admin/state")
def admin_state(session: Session = Depends(get_session)) -> Dict[str, Any]:
    return get_admin_state(session)


@app.post("/admin/upload")
def admin_upload(request: UploadRequest, session: Session = Depends(get_session)) -> Dict[str, Any]:
    return upload_list(session, request.enrollment_list)


@app.post("/admin/students-to-show")
def admin_students_to_show(
    request: StudentsToShowRequest, session: Session = Depends(get_session)
) -> Dict[str, Any]:
    return update_students_to_show(session, request.students_to_show)


@app.post("/admin/start")
def admin_start(session: Session = Depends(get_session)) -> Dict[str, Any]:
    return start_queue(session)


@app.post("/admin/next")
def admin_next(session: Session = Depends(get_session)) -> Dict[str, Any]:
    return advance_batch(session)


@app.post("/admin/warn")
def admin_warn(session: Session = Depends(get_session)) -> Dict[str, Any]:
    return warn_student(session)


@app.post("/admin/move-to-end")
def admin_move_to_end(session: Session = Depends(get_session)) -> Dict[str, Any]:
    return move_to_end(session)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=PORT)
