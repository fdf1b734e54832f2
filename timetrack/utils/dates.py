"""Calendar helpers for the reporting timezone."""
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from timetrack.errors import ValidationError


def get_zone(name: str) -> ZoneInfo:
    """Resolve an IANA timezone name."""
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValidationError(f"Unknown timezone: {name}")


def start_of_day_utc(day: date, zone: ZoneInfo) -> datetime:
    """UTC instant of local midnight at the start of ``day``."""
    try:
        return datetime.combine(day, time.min, tzinfo=zone).astimezone(timezone.utc)
    except OverflowError:
        raise ValidationError(f"Date out of range: {day.isoformat()}")


def end_of_day_utc(day: date, zone: ZoneInfo) -> datetime:
    """UTC instant of local midnight at the end of ``day`` (exclusive bound)."""
    try:
        next_day = day + timedelta(days=1)
    except OverflowError:
        raise ValidationError(f"Date out of range: {day.isoformat()}")
    return start_of_day_utc(next_day, zone)


def minutes_to_hours(minutes: int) -> float:
    """Minutes as hours rounded to two decimals."""
    return round(minutes / 60, 2)
