"""Typed errors raised by the time tracking core.

Everything a caller can recover from derives from ``TimeTrackingError`` (itself
a ``ValueError``). ``ConsistencyViolation`` is kept outside that hierarchy: it
means the one-open-entry-per-user guarantee was broken in storage.
"""
from typing import Optional


class TimeTrackingError(ValueError):
    """Base class for caller-recoverable time tracking errors."""


class ValidationError(TimeTrackingError):
    """Malformed input: bad instant, bad duration, description too long."""


class InvalidInterval(ValidationError):
    """End instant is not strictly after the start instant, or unparseable."""


class NoFieldsToUpdate(ValidationError):
    """A partial update carried no fields."""

    def __init__(self, message: str = "No fields to update"):
        super().__init__(message)


class ConflictError(TimeTrackingError):
    """A precondition on current state does not hold."""


class TimerAlreadyRunning(ConflictError):
    """The user already has an open entry."""

    def __init__(self, entry_id: Optional[str] = None):
        self.entry_id = entry_id
        message = "Timer already running"
        if entry_id:
            message = f"Timer already running (entry {entry_id})"
        super().__init__(message)


class NotFoundOrForbidden(TimeTrackingError):
    """Entry does not exist or belongs to another user."""

    def __init__(self, message: str = "Time entry not found"):
        super().__init__(message)


class EntryNotFound(NotFoundOrForbidden):
    """No entry with the given id exists."""


class NoActiveTimer(TimeTrackingError):
    """The user has no open entry."""

    def __init__(self, message: str = "No timer running"):
        super().__init__(message)


class NoPausedTimer(TimeTrackingError):
    """The user has no paused session to resume."""

    def __init__(self, message: str = "No paused timer"):
        super().__init__(message)


class AlreadyStopped(TimeTrackingError):
    """The entry was already closed."""

    def __init__(self, entry_id: Optional[str] = None):
        self.entry_id = entry_id
        super().__init__("Timer already stopped")


class ConsistencyViolation(RuntimeError):
    """Storage holds more than one open entry for a user."""
