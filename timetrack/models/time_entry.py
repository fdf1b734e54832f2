"""Time entry model definitions."""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class TimeEntryBase(BaseModel):
    """Base time entry fields."""

    task_id: Optional[str] = None
    project_id: Optional[str] = None
    description: Optional[str] = None


class TimeEntryCreate(TimeEntryBase):
    """
    Manual time entry creation model.

    Either ``end_time`` or ``duration_minutes`` (or both, if they agree) must
    be supplied: manual entries are always created closed.
    """

    model_config = {"extra": "forbid"}

    start_time: datetime
    end_time: Optional[datetime] = None
    duration_minutes: Optional[int] = None
    billable: Optional[bool] = None


class TimeEntryUpdate(BaseModel):
    """Time entry update model - only fields that are set are applied."""

    model_config = {"extra": "forbid"}

    task_id: Optional[str] = None
    project_id: Optional[str] = None
    description: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration_minutes: Optional[int] = None
    billable: Optional[bool] = None


class TimeEntry(TimeEntryBase):
    """Full time entry model with database fields."""

    id: str = Field(alias="_id", serialization_alias="id")
    user_id: str
    start_time: datetime
    end_time: Optional[datetime] = None
    duration_minutes: Optional[int] = None
    billable: bool
    session_id: Optional[str] = None
    paused: bool = False
    created_at: datetime
    updated_at: datetime

    model_config = {"populate_by_name": True}

    @property
    def is_open(self) -> bool:
        """True while the timer for this entry is running."""
        return self.end_time is None


class ActiveTimer(TimeEntry):
    """Open entry plus the live elapsed time for display."""

    elapsed_seconds: int


class TimeEntryPage(BaseModel):
    """One page of query results with the unpaginated total."""

    entries: list[TimeEntry]
    total: int
    offset: int = 0
    limit: Optional[int] = None


class SessionSummary(BaseModel):
    """Entries of one work session (a timer with its pauses) and their sum."""

    session_id: str
    entries: list[TimeEntry]
    total_minutes: int
    running: bool
