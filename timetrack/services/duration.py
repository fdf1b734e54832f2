"""Duration calculation for time entries."""
from datetime import datetime, timedelta, timezone
from typing import Union

from timetrack.errors import InvalidInterval

Instant = Union[datetime, str]

_MICROS_PER_MINUTE = 60_000_000
_ONE_MICRO = timedelta(microseconds=1)


def parse_instant(value: Instant) -> datetime:
    """
    Normalize an instant to an aware UTC datetime.

    Accepts datetimes and ISO 8601 strings (a trailing ``Z`` is allowed).
    Naive values are taken to be UTC.

    Raises:
        InvalidInterval: If the value is not a valid timestamp
    """
    if isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            value = datetime.fromisoformat(text)
        except ValueError:
            raise InvalidInterval(f"Invalid timestamp: {value!r}")

    if not isinstance(value, datetime):
        raise InvalidInterval(f"Invalid timestamp: {value!r}")

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    try:
        return value.astimezone(timezone.utc)
    except OverflowError:
        raise InvalidInterval(f"Timestamp out of range: {value.isoformat()}")


def compute_duration_minutes(start: Instant, end: Instant) -> int:
    """
    Calculate whole minutes between two instants, rounding half up.

    Args:
        start: Start instant
        end: End instant, strictly after start

    Returns:
        Elapsed minutes

    Raises:
        InvalidInterval: If either instant is invalid or end <= start

    Example:
        >>> compute_duration_minutes("2025-01-01T09:00:00Z", "2025-01-01T09:01:30Z")
        2
    """
    start_at = parse_instant(start)
    end_at = parse_instant(end)

    if end_at <= start_at:
        raise InvalidInterval("End time must be after start time")

    micros = (end_at - start_at) // _ONE_MICRO
    return (micros + _MICROS_PER_MINUTE // 2) // _MICROS_PER_MINUTE


def elapsed_seconds(start: Instant, now: Instant) -> int:
    """Whole seconds from start to now, never negative."""
    delta = parse_instant(now) - parse_instant(start)
    return max(int(delta.total_seconds()), 0)


def end_from_duration(start: Instant, duration_minutes: int) -> datetime:
    """End instant for a start plus a positive number of minutes."""
    if duration_minutes <= 0:
        raise InvalidInterval("Duration must be a positive number of minutes")
    start_at = parse_instant(start)
    try:
        return start_at + timedelta(minutes=duration_minutes)
    except OverflowError:
        raise InvalidInterval("Duration runs past the latest representable time")
