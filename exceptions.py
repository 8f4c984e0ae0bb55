"""Errors raised by the queue engine.

Every error carries a human-readable message meant to be shown to the admin
as-is.  The HTTP layer maps each class to a status code.
"""

from __future__ import annotations


class VivaQueueError(Exception):
    """Base class for all queue errors."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class PersistenceError(VivaQueueError):
    """A database operation failed.  The whole command was rolled back."""

    status_code = 500


class EmptyQueueError(VivaQueueError):
    """The command needs waiting students but there are none."""

    status_code = 409


class PreconditionNotMetError(VivaQueueError):
    status_code = 409


class NotFoundError(VivaQueueError):
    """A referenced entry is gone.  Commands treat this as a no-op."""
