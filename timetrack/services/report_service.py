"""Report service - grouped totals over closed time entries."""
import csv
import io
import logging
from datetime import date
from typing import Optional

from timetrack.config import Settings, settings
from timetrack.database import PROJECTS, TASKS, TIME_ENTRIES, USERS
from timetrack.models.filters import EntryCriteria, TimeEntryFilters
from timetrack.models.report import GroupBy, ReportRow, TimeReportSummary, TimeTotals
from timetrack.services.time_entry_store import TimeEntryStore
from timetrack.utils.dates import minutes_to_hours
from timetrack.utils.documents import parse_object_id

logger = logging.getLogger(__name__)

# Fields each grouping buckets on, following the composite keys of the time report.
GROUP_FIELDS = {
    GroupBy.DATE: ("work_date", "project_id", "task_id", "user_id"),
    GroupBy.USER: ("user_id", "project_id", "task_id"),
    GroupBy.PROJECT: ("project_id", "task_id"),
    GroupBy.TASK: ("task_id",),
}

EXPORT_COLUMNS = [
    "id",
    "user_id",
    "task_id",
    "project_id",
    "description",
    "start_time",
    "end_time",
    "duration_minutes",
    "billable",
    "created_at",
    "updated_at",
]


def _label_key(label: Optional[str]) -> tuple[bool, str]:
    """Sort key placing missing labels last, case-insensitive otherwise."""
    return (label is None, (label or "").lower())


def _user_label(doc: dict) -> Optional[str]:
    """Display name of a user document."""
    if doc.get("name"):
        return doc["name"]
    full_name = " ".join(
        part for part in (doc.get("first_name"), doc.get("last_name")) if part
    )
    return full_name or doc.get("email")


def _project_label(doc: dict) -> Optional[str]:
    return doc.get("name") or doc.get("title")


def _task_label(doc: dict) -> Optional[str]:
    return doc.get("title")


def _totals(total_minutes: int, billable_minutes: int, entry_count: int) -> dict:
    """Minute and hour totals with the billable split."""
    non_billable = total_minutes - billable_minutes
    return {
        "total_minutes": total_minutes,
        "billable_minutes": billable_minutes,
        "non_billable_minutes": non_billable,
        "entry_count": entry_count,
        "total_hours": minutes_to_hours(total_minutes),
        "billable_hours": minutes_to_hours(billable_minutes),
        "non_billable_hours": minutes_to_hours(non_billable),
    }


class ReportService:
    """
    Service for time reports.

    Only closed entries count: a running timer has no duration yet and is left
    out until it is stopped.
    """

    def __init__(self, db, config: Settings = settings):
        """Initialize service with database connection."""
        self.db = db
        self.time_entries = db[TIME_ENTRIES]
        self.config = config
        self.entries = TimeEntryStore(db, config=config)

    async def _closed_query(self, criteria: EntryCriteria) -> dict:
        query = await self.entries.build_query(criteria)
        query["end_time"] = {"$ne": None}
        query["duration_minutes"] = {"$ne": None}
        return query

    def _sums(self) -> dict:
        """$group accumulators shared by all reports."""
        return {
            "total_minutes": {"$sum": "$duration_minutes"},
            "billable_minutes": {
                "$sum": {"$cond": [{"$eq": ["$billable", True]}, "$duration_minutes", 0]}
            },
            "entry_count": {"$sum": 1},
        }

    def _group_key(self, group_by: GroupBy) -> dict:
        key = {}
        for field in GROUP_FIELDS[group_by]:
            if field == "work_date":
                key[field] = {
                    "$dateToString": {
                        "format": "%Y-%m-%d",
                        "date": "$start_time",
                        "timezone": self.config.report_timezone,
                    }
                }
            else:
                key[field] = f"${field}"
        return key

    async def aggregate(
        self,
        criteria: EntryCriteria,
        group_by: GroupBy = GroupBy.DATE,
    ) -> list[ReportRow]:
        """
        Group closed entries and total their durations.

        Args:
            criteria: Which entries to include
            group_by: Grouping dimension

        Returns:
            One row per bucket, ordered by date descending then project and
            task name for date grouping, alphabetically by label otherwise
        """
        query = await self._closed_query(criteria)
        pipeline = [
            {"$match": query},
            {"$group": {"_id": self._group_key(group_by), **self._sums()}},
        ]

        cursor = self.time_entries.aggregate(pipeline)
        groups = await cursor.to_list(length=None)

        user_names = await self._labels(USERS, groups, "user_id", _user_label)
        project_names = await self._labels(PROJECTS, groups, "project_id", _project_label)
        task_titles = await self._labels(TASKS, groups, "task_id", _task_label)

        rows = []
        for group in groups:
            key = group["_id"]
            user_id = key.get("user_id")
            project_id = key.get("project_id")
            task_id = key.get("task_id")
            work_date = key.get("work_date")
            rows.append(
                ReportRow(
                    work_date=date.fromisoformat(work_date) if work_date else None,
                    user_id=user_id,
                    user_name=user_names.get(user_id),
                    project_id=project_id,
                    project_name=project_names.get(project_id),
                    task_id=task_id,
                    task_title=task_titles.get(task_id),
                    total_minutes=group["total_minutes"],
                    billable_minutes=group["billable_minutes"],
                    entry_count=group["entry_count"],
                    total_hours=minutes_to_hours(group["total_minutes"]),
                    billable_hours=minutes_to_hours(group["billable_minutes"]),
                )
            )

        self._sort(rows, group_by)
        logger.debug("Report by %s: %d rows", group_by.value, len(rows))
        return rows

    def _sort(self, rows: list[ReportRow], group_by: GroupBy) -> None:
        if group_by == GroupBy.DATE:
            rows.sort(
                key=lambda row: (
                    _label_key(row.project_name),
                    _label_key(row.task_title),
                    row.project_id or "",
                    row.task_id or "",
                    row.user_id or "",
                )
            )
            rows.sort(key=lambda row: row.work_date, reverse=True)
        elif group_by == GroupBy.USER:
            rows.sort(
                key=lambda row: (
                    _label_key(row.user_name),
                    row.user_id or "",
                    _label_key(row.project_name),
                    _label_key(row.task_title),
                )
            )
        elif group_by == GroupBy.PROJECT:
            rows.sort(
                key=lambda row: (
                    _label_key(row.project_name),
                    row.project_id or "",
                    _label_key(row.task_title),
                )
            )
        else:
            rows.sort(
                key=lambda row: (
                    _label_key(row.task_title),
                    row.task_id or "",
                    _label_key(row.project_name),
                )
            )

    async def _labels(self, collection: str, groups: list[dict], field: str, label) -> dict:
        """
        Look up display labels for the ids in a report.

        Ids that no longer resolve (deleted task or project) are left out.
        """
        ids = {group["_id"].get(field) for group in groups}
        ids.discard(None)
        if not ids:
            return {}

        lookup = list(ids)
        lookup.extend(oid for oid in map(parse_object_id, ids) if oid is not None)

        cursor = self.db[collection].find({"_id": {"$in": lookup}})
        docs = await cursor.to_list(length=None)
        return {str(doc["_id"]): label(doc) for doc in docs}

    async def total_for_filters(self, criteria: EntryCriteria) -> TimeTotals:
        """
        Totals over all closed entries matching criteria.

        Returns:
            Total, billable and non-billable minutes and hours, and entry count
        """
        query = await self._closed_query(criteria)
        pipeline = [
            {"$match": query},
            {"$group": {"_id": None, **self._sums()}},
        ]

        cursor = self.time_entries.aggregate(pipeline)
        results = await cursor.to_list(length=1)

        if not results:
            return TimeTotals(**_totals(0, 0, 0))

        result = results[0]
        return TimeTotals(
            **_totals(result["total_minutes"], result["billable_minutes"], result["entry_count"])
        )

    async def summarize(self, criteria: EntryCriteria) -> TimeReportSummary:
        """Totals plus minutes per date, project, task and user."""
        rows = await self.aggregate(criteria, GroupBy.DATE)

        by_date: dict[str, int] = {}
        by_project: dict[str, int] = {}
        by_task: dict[str, int] = {}
        by_user: dict[str, int] = {}

        for row in rows:
            minutes = row.total_minutes
            day = row.work_date.isoformat()
            project = row.project_name or row.project_id or "No project"
            task = row.task_title or row.task_id or "No task"
            user = row.user_name or row.user_id

            by_date[day] = by_date.get(day, 0) + minutes
            by_project[project] = by_project.get(project, 0) + minutes
            by_task[task] = by_task.get(task, 0) + minutes
            by_user[user] = by_user.get(user, 0) + minutes

        totals = _totals(
            sum(row.total_minutes for row in rows),
            sum(row.billable_minutes for row in rows),
            sum(row.entry_count for row in rows),
        )
        return TimeReportSummary(
            **totals,
            by_date=by_date,
            by_project=by_project,
            by_task=by_task,
            by_user=by_user,
        )

    async def export_csv(self, filters: TimeEntryFilters) -> str:
        """Matching entries as CSV text with a header row."""
        entries = await self.entries.query(filters)

        output = io.StringIO()
        writer = csv.writer(output)
        writer.writerow(EXPORT_COLUMNS)

        for entry in entries:
            writer.writerow([
                entry.id,
                entry.user_id,
                entry.task_id or "",
                entry.project_id or "",
                entry.description or "",
                entry.start_time.isoformat(),
                entry.end_time.isoformat() if entry.end_time else "",
                entry.duration_minutes if entry.duration_minutes is not None else "",
                "true" if entry.billable else "false",
                entry.created_at.isoformat(),
                entry.updated_at.isoformat(),
            ])

        logger.info("Exported %d time entries", len(entries))
        return output.getvalue()
