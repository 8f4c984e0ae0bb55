"""Database models for the viva queue.

We use SQLModel to define the schema.  The database stores queue entries and
settings.  Entries represent students waiting for their viva, ordered by
``queue_position``.  Settings is a single row holding the display batch size,
the batch start, whether the queue is running and the id of the student
currently under warning.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """SQLite hands timestamps back without an offset; they are always UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class EntryStatus(str, Enum):
    """Possible statuses for a queue entry."""

    waiting = "waiting"
    called = "called"
    completed = "completed"
    warned = "warned"


class QueueEntry(SQLModel, table=True):
    __tablename__ = "viva_queue"

    id: Optional[int] = Field(default=None, primary_key=True)
    enrollment_number: str = Field(index=True)
    queue_position: int = Field(index=True)
    status: EntryStatus = Field(default=EntryStatus.waiting, index=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "enrollment_number": self.enrollment_number,
            "queue_position": self.queue_position,
            "status": self.status.value if isinstance(self.status, EntryStatus) else self.status,
            "created_at": as_utc(self.created_at).isoformat(),
            "updated_at": as_utc(self.updated_at).isoformat(),
        }


class Settings(SQLModel, table=True):
    __tablename__ = "viva_settings"

    id: Optional[int] = Field(default=1, primary_key=True)
    students_to_show: int = Field(default=5)
    current_batch_start: int = Field(default=1)
    queue_started: bool = Field(default=False)
    warning_student_id: Optional[int] = Field(default=None)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
