"""Report model definitions."""
from datetime import date
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class GroupBy(str, Enum):
    """Report grouping dimensions."""

    DATE = "date"
    USER = "user"
    PROJECT = "project"
    TASK = "task"


class ReportRow(BaseModel):
    """One aggregation bucket."""

    work_date: Optional[date] = None
    user_id: Optional[str] = None
    user_name: Optional[str] = None
    project_id: Optional[str] = None
    project_name: Optional[str] = None
    task_id: Optional[str] = None
    task_title: Optional[str] = None
    total_minutes: int
    billable_minutes: int
    entry_count: int
    total_hours: float
    billable_hours: float


class TimeTotals(BaseModel):
    """Scalar totals for a set of entries."""

    total_minutes: int
    billable_minutes: int
    non_billable_minutes: int
    entry_count: int
    total_hours: float
    billable_hours: float
    non_billable_hours: float


class TimeReportSummary(TimeTotals):
    """Totals plus per-dimension minute breakdowns."""

    by_date: dict[str, int]
    by_project: dict[str, int]
    by_task: dict[str, int]
    by_user: dict[str, int]
