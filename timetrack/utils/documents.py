"""Conversions between MongoDB documents and models."""
from typing import Optional

from bson import ObjectId
from bson.errors import InvalidId

from timetrack.models.time_entry import TimeEntry


def parse_object_id(value: str) -> Optional[ObjectId]:
    """Parse an entry id, returning None when it is malformed."""
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def doc_to_entry(doc: dict) -> TimeEntry:
    """Convert a time_entries document to a TimeEntry model."""
    return TimeEntry(
        _id=str(doc["_id"]),
        user_id=doc["user_id"],
        task_id=doc.get("task_id"),
        project_id=doc.get("project_id"),
        description=doc.get("description"),
        start_time=doc["start_time"],
        end_time=doc.get("end_time"),
        duration_minutes=doc.get("duration_minutes"),
        billable=doc["billable"],
        session_id=doc.get("session_id"),
        paused=doc.get("paused", False),
        created_at=doc["created_at"],
        updated_at=doc["updated_at"],
    )
