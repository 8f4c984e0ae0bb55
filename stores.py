"""Storage helpers for queue entries and the settings record.

These functions only talk to the database; they never commit.  The caller
owns the transaction (see ``services.transaction``), so a command made of
several of these steps either lands completely or not at all.
"""

from __future__ import annotations

from typing import Iterable, List, Optional

from sqlalchemy import delete, func
from sqlmodel import Session, select

from database import DEFAULT_STUDENTS_TO_SHOW
from models import EntryStatus, QueueEntry, Settings, utcnow


# ===== SETTINGS =====

def load_settings(session: Session) -> Settings:
    """Return the settings row, creating it with defaults if missing."""
    settings = session.get(Settings, 1)
    if settings is None:
        settings = Settings(id=1, students_to_show=DEFAULT_STUDENTS_TO_SHOW)
        session.add(settings)
        session.flush()
    return settings


def save_settings(session: Session, settings: Settings) -> Settings:
    settings.updated_at = utcnow()
    session.add(settings)
    session.flush()
    return settings


# ===== QUEUE ENTRIES =====

def delete_all_entries(session: Session) -> int:
    result = session.execute(delete(QueueEntry))
    return result.rowcount or 0


def insert_entries(session: Session, enrollment_numbers: Iterable[str]) -> List[QueueEntry]:
    """Bulk insert waiting entries numbered 1..N in the given order."""
    now = utcnow()
    entries = [
        QueueEntry(
            enrollment_number=number,
            queue_position=idx,
            status=EntryStatus.waiting,
            created_at=now,
            updated_at=now,
        )
        for idx, number in enumerate(enrollment_numbers, start=1)
    ]
    session.add_all(entries)
    session.flush()
    return entries


def list_waiting(session: Session) -> List[QueueEntry]:
    statement = (
        select(QueueEntry)
        .where(QueueEntry.status == EntryStatus.waiting)
        .order_by(QueueEntry.queue_position, QueueEntry.id)
    )
    return list(session.exec(statement).all())


def list_waiting_after(session: Session, position: int) -> List[QueueEntry]:
    statement = (
        select(QueueEntry)
        .where(QueueEntry.status == EntryStatus.waiting)
        .where(QueueEntry.queue_position > position)
        .order_by(QueueEntry.queue_position, QueueEntry.id)
    )
    return list(session.exec(statement).all())


def count_waiting(session: Session) -> int:
    statement = select(func.count()).select_from(QueueEntry).where(
        QueueEntry.status == EntryStatus.waiting
    )
    return session.exec(statement).one()


def get_waiting_at(session: Session, position: int) -> Optional[QueueEntry]:
    statement = (
        select(QueueEntry)
        .where(QueueEntry.status == EntryStatus.waiting)
        .where(QueueEntry.queue_position == position)
        .order_by(QueueEntry.id)
    )
    return session.exec(statement).first()


def get_entry(session: Session, entry_id: int) -> Optional[QueueEntry]:
    return session.get(QueueEntry, entry_id)


def max_waiting_position(session: Session) -> Optional[int]:
    statement = select(func.max(QueueEntry.queue_position)).where(
        QueueEntry.status == EntryStatus.waiting
    )
    return session.exec(statement).one()


def delete_waiting_in_range(session: Session, start: int, end: int) -> int:
    """Delete waiting entries with ``start <= queue_position <= end``."""
    statement = (
        delete(QueueEntry)
        .where(QueueEntry.status == EntryStatus.waiting)
        .where(QueueEntry.queue_position >= start)
        .where(QueueEntry.queue_position <= end)
        .execution_options(synchronize_session="fetch")
    )
    result = session.execute(statement)
    return result.rowcount or 0


def set_position(session: Session, entry: QueueEntry, position: int) -> QueueEntry:
    entry.queue_position = position
    entry.updated_at = utcnow()
    session.add(entry)
    session.flush()
    return entry
