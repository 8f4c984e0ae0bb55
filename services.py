"""Queue business logic.

This module holds the admin commands (upload, start, next batch, warn, move
to end) and the status projection used by the monitor's polling endpoint.
All functions accept a SQLModel ``Session``.

Every command runs inside :func:`transaction`: the individual steps (delete,
renumber, settings update) are flushed one by one but committed once, so a
failure half way leaves the queue exactly as it was.  Announcements are only
published after the commit succeeded.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional, Sequence, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

import announcements
import stores
from exceptions import (
    EmptyQueueError,
    NotFoundError,
    PersistenceError,
    PreconditionNotMetError,
    VivaQueueError,
)
from models import QueueEntry, utcnow

logger = logging.getLogger(__name__)


@contextmanager
def transaction(session: Session, action: str) -> Iterator[List[Dict[str, Any]]]:
    """Commit the block as one unit and publish its announcements afterwards.

    Yields a list the block appends announcement events to.  Database errors
    are rolled back and re-raised as :class:`PersistenceError` with a message
    suitable for the admin.
    """
    pending: List[Dict[str, Any]] = []
    try:
        yield pending
        session.commit()
    except VivaQueueError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.error("Database error while %s: %s", action, e)
        raise PersistenceError(f"Error {action}: {e}") from e
    except Exception:
        session.rollback()
        raise

    for event in pending:
        announcements.publish(event)


def parse_enrollment_list(raw: Union[str, Sequence[str]]) -> List[str]:
    """Split pasted text (or a list of lines) into trimmed, non-blank numbers."""
    lines = raw.strip().split("\n") if isinstance(raw, str) else list(raw)
    return [line.strip() for line in lines if line and line.strip()]


# ===== ADMIN COMMANDS =====

def upload_list(session: Session, raw: Union[str, Sequence[str]]) -> Dict[str, Any]:
    """Replace the whole queue with the given enrollment numbers."""
    enrollments = parse_enrollment_list(raw)
    if not enrollments:
        raise PreconditionNotMetError("Please enter enrollment numbers")

    with transaction(session, "uploading list"):
        removed = stores.delete_all_entries(session)
        stores.insert_entries(session, enrollments)

        settings = stores.load_settings(session)
        settings.current_batch_start = 1
        settings.queue_started = False
        settings.warning_student_id = None
        stores.save_settings(session, settings)

    # calls queued for the previous list are stale now
    announcements.clear()
    logger.info("Uploaded %d students (replaced %d)", len(enrollments), removed)
    return {
        "message": f"Successfully uploaded {len(enrollments)} students",
        "count": len(enrollments),
    }


def start_queue(session: Session) -> Dict[str, Any]:
    with transaction(session, "starting queue") as pending:
        if stores.count_waiting(session) == 0:
            raise EmptyQueueError("Please upload student list first")

        settings = stores.load_settings(session)
        settings.queue_started = True
        settings.current_batch_start = 1
        stores.save_settings(session, settings)

        first = stores.get_waiting_at(session, 1)
        if first is not None:
            pending.append(announcements.student_event(first.enrollment_number))

    logger.info("Queue started")
    return {
        "message": "Queue started!",
        "announced": first.enrollment_number if first is not None else None,
    }


def advance_batch(session: Session) -> Dict[str, Any]:
    """Remove the current batch and renumber everyone left from 1."""
    with transaction(session, "moving to next batch") as pending:
        settings = stores.load_settings(session)
        if not settings.queue_started:
            raise PreconditionNotMetError("Please start the queue first")

        start = settings.current_batch_start
        end = start + settings.students_to_show - 1
        removed = stores.delete_waiting_in_range(session, start, end)

        remaining = stores.list_waiting(session)
        for idx, entry in enumerate(remaining, start=1):
            stores.set_position(session, entry, idx)

        if remaining:
            settings.current_batch_start = 1
            pending.append(announcements.student_event(remaining[0].enrollment_number))
        else:
            settings.queue_started = False
        stores.save_settings(session, settings)

    if not remaining:
        logger.info("Queue complete after removing %d students", removed)
        return {
            "message": "No more students in queue",
            "removed": removed,
            "remaining": 0,
            "queue_complete": True,
        }

    logger.info("Advanced batch: removed %d, %d remaining", removed, len(remaining))
    return {
        "message": "Moved to next batch",
        "removed": removed,
        "remaining": len(remaining),
        "queue_complete": False,
    }


def warn_student(session: Session) -> Dict[str, Any]:
    """Flag the student at the batch start and announce a warning."""
    with transaction(session, "sending warning") as pending:
        settings = stores.load_settings(session)
        if not settings.queue_started:
            raise PreconditionNotMetError("No student to warn")

        entry = stores.get_waiting_at(session, settings.current_batch_start)
        if entry is None:
            raise PreconditionNotMetError("No student to warn")

        settings.warning_student_id = entry.id
        stores.save_settings(session, settings)
        pending.append(announcements.warning_event(entry.enrollment_number))

    logger.info("Warning sent to %s (entry %s)", entry.enrollment_number, entry.id)
    return {
        "message": f"Warning sent to student {entry.enrollment_number}",
        "student": entry.to_dict(),
    }


def _get_warned_entry(session: Session, entry_id: int) -> QueueEntry:
    entry = stores.get_entry(session, entry_id)
    if entry is None:
        raise NotFoundError(f"Student {entry_id} is no longer in the queue")
    return entry


def move_to_end(session: Session) -> Dict[str, Any]:
    """Send the warned student to the back of the queue.

    Everyone behind the student moves up by one.  Does nothing when no student
    is under warning or the warned entry has since been removed.
    """
    with transaction(session, "moving student"):
        settings = stores.load_settings(session)
        if settings.warning_student_id is None:
            return {"message": "No student under warning", "moved": False}

        try:
            warned = _get_warned_entry(session, settings.warning_student_id)
        except NotFoundError as e:
            logger.info("Move to end skipped: %s", e.message)
            return {"message": e.message, "moved": False}

        original_position = warned.queue_position
        max_position = stores.max_waiting_position(session) or 0
        stores.set_position(session, warned, max_position + 1)

        # the warned entry itself is past original_position now and lands on max_position
        for entry in stores.list_waiting_after(session, original_position):
            stores.set_position(session, entry, entry.queue_position - 1)

        settings.warning_student_id = None
        stores.save_settings(session, settings)

    logger.info(
        "Moved %s from position %d to %d",
        warned.enrollment_number,
        original_position,
        warned.queue_position,
    )
    return {
        "message": f"Student {warned.enrollment_number} moved to end of queue",
        "moved": True,
        "student": warned.to_dict(),
    }


def update_students_to_show(session: Session, students_to_show: int) -> Dict[str, Any]:
    if students_to_show < 1:
        raise PreconditionNotMetError("Students to show must be a positive number")

    with transaction(session, "updating students to show"):
        settings = stores.load_settings(session)
        settings.students_to_show = students_to_show
        stores.save_settings(session, settings)

    logger.info("Students to show set to %d", students_to_show)
    return {"message": "Students to show counter updated", "students_to_show": students_to_show}


def get_admin_state(session: Session) -> Dict[str, Any]:
    try:
        settings = stores.load_settings(session)
        total = stores.count_waiting(session)
    except SQLAlchemyError as e:
        session.rollback()
        logger.error("Database error while loading admin state: %s", e)
        raise PersistenceError(f"Error loading queue: {e}") from e

    return {
        "students_to_show": settings.students_to_show,
        "current_batch_start": settings.current_batch_start,
        "queue_started": settings.queue_started,
        "warning_student_id": settings.warning_student_id,
        "total_students": total,
    }


# ===== STATUS PROJECTION =====

def compute_batch(entries: Sequence[QueueEntry], batch_start: int, batch_size: int) -> List[QueueEntry]:
    """Entries whose position lies in ``[batch_start, batch_start + batch_size - 1]``."""
    end = batch_start + batch_size - 1
    return [e for e in entries if batch_start <= e.queue_position <= end]


def get_status(session: Session, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Snapshot for the monitor display.  Re-reads the database on every call."""
    try:
        settings = stores.load_settings(session)
        entries = stores.list_waiting(session) if settings.queue_started else []
    except SQLAlchemyError as e:
        session.rollback()
        logger.error("Database error while reading queue status: %s", e)
        raise PersistenceError("Failed to fetch queue status") from e

    batch = compute_batch(entries, settings.current_batch_start, settings.students_to_show)
    return {
        "queueStarted": settings.queue_started,
        "studentsToShow": settings.students_to_show,
        "currentBatchStart": settings.current_batch_start,
        "totalStudents": len(entries),
        "currentStudents": [e.to_dict() for e in batch],
        "timestamp": (now or utcnow()).isoformat(),
    }
