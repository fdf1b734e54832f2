"""Filter definitions shared by entry queries and reports."""
from datetime import date
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class SortField(str, Enum):
    """Fields entry queries can be sorted by."""

    START_TIME = "start_time"
    CREATED_AT = "created_at"


class SortOrder(str, Enum):
    """Sort directions."""

    ASC = "asc"
    DESC = "desc"


class EntryCriteria(BaseModel):
    """
    Selection criteria for time entries.

    ``date_from``/``date_to`` are inclusive calendar dates in the reporting
    timezone, applied to each entry's start instant.
    """

    model_config = {"extra": "forbid"}

    user_id: Optional[str] = None
    task_id: Optional[str] = None
    project_id: Optional[str] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    billable: Optional[bool] = None


class TimeEntryFilters(EntryCriteria):
    """Entry query filters with free-text search, sorting and pagination."""

    search: Optional[str] = None
    sort_by: SortField = SortField.START_TIME
    sort_order: SortOrder = SortOrder.DESC
    offset: int = Field(0, ge=0)
    limit: Optional[int] = Field(None, ge=1, le=1000)
