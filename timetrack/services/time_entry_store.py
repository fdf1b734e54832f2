"""Time entry store - persistence and filtered retrieval of time entries."""
import logging
import re
from datetime import datetime
from typing import Optional

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING, ReturnDocument

from timetrack.config import Settings, settings
from timetrack.database import PROJECTS, TASKS, TIME_ENTRIES
from timetrack.errors import (
    ConflictError,
    EntryNotFound,
    NoFieldsToUpdate,
    NotFoundOrForbidden,
    ValidationError,
)
from timetrack.models.filters import EntryCriteria, SortOrder, TimeEntryFilters
from timetrack.models.time_entry import TimeEntry, TimeEntryCreate, TimeEntryPage, TimeEntryUpdate
from timetrack.services.duration import compute_duration_minutes, end_from_duration, parse_instant
from timetrack.services.validation import resolve_billable, validate_description, validate_references
from timetrack.utils.clock import Clock, utc_now
from timetrack.utils.dates import end_of_day_utc, get_zone, start_of_day_utc
from timetrack.utils.documents import doc_to_entry, parse_object_id

logger = logging.getLogger(__name__)

_TIMING_FIELDS = ("start_time", "end_time", "duration_minutes")


def closed_interval(
    start_time: datetime,
    end_time: Optional[datetime],
    duration_minutes: Optional[int],
) -> tuple[datetime, datetime, int]:
    """
    Resolve start, end and duration of a closed entry.

    With only a duration the end is start + duration. With both an end and a
    duration they must agree.

    Raises:
        ValidationError: If the values are missing, invalid or inconsistent
    """
    start = parse_instant(start_time)

    if end_time is not None:
        end = parse_instant(end_time)
        computed = compute_duration_minutes(start, end)
        if duration_minutes is not None and duration_minutes != computed:
            raise ValidationError("Duration does not match start and end time")
        return start, end, computed

    if duration_minutes is None:
        raise ValidationError("An end time or a duration is required")

    return start, end_from_duration(start, duration_minutes), duration_minutes


class TimeEntryStore:
    """Service for storing and querying time entries."""

    def __init__(self, db, clock: Clock = utc_now, config: Settings = settings):
        """Initialize store with database connection."""
        self.db = db
        self.time_entries = db[TIME_ENTRIES]
        self.clock = clock
        self.config = config
        self.zone = get_zone(config.report_timezone)

    async def build_query(self, criteria: EntryCriteria) -> dict:
        """
        Translate criteria into a MongoDB filter.

        Args:
            criteria: Entry criteria (search applies for TimeEntryFilters)

        Returns:
            MongoDB query document

        Raises:
            ValidationError: If date_from is after date_to
        """
        if criteria.date_from and criteria.date_to and criteria.date_from > criteria.date_to:
            raise ValidationError("date_from must not be after date_to")

        query = {}

        if criteria.user_id:
            query["user_id"] = criteria.user_id
        if criteria.task_id:
            query["task_id"] = criteria.task_id
        if criteria.project_id:
            query["project_id"] = criteria.project_id
        if criteria.billable is not None:
            query["billable"] = criteria.billable

        if criteria.date_from or criteria.date_to:
            query["start_time"] = {}
            if criteria.date_from:
                query["start_time"]["$gte"] = start_of_day_utc(criteria.date_from, self.zone)
            if criteria.date_to:
                query["start_time"]["$lt"] = end_of_day_utc(criteria.date_to, self.zone)

        search = criteria.search if isinstance(criteria, TimeEntryFilters) else None
        if search and search.strip():
            regex = {"$regex": re.escape(search.strip()), "$options": "i"}
            clauses = [{"description": regex}]

            project_ids = await self._matching_ids(
                PROJECTS, {"$or": [{"name": regex}, {"title": regex}]}
            )
            if project_ids:
                clauses.append({"project_id": {"$in": project_ids}})

            task_ids = await self._matching_ids(TASKS, {"title": regex})
            if task_ids:
                clauses.append({"task_id": {"$in": task_ids}})

            query["$or"] = clauses

        return query

    async def _matching_ids(self, collection: str, query: dict) -> list[str]:
        """Ids of collaborator documents whose labels match a search."""
        cursor = self.db[collection].find(query, {"_id": 1})
        docs = await cursor.to_list(length=None)
        return [str(doc["_id"]) for doc in docs]

    async def get(self, entry_id: str) -> Optional[TimeEntry]:
        """Get an entry by id, or None."""
        object_id = parse_object_id(entry_id)
        if object_id is None:
            return None

        doc = await self.time_entries.find_one({"_id": object_id})
        if not doc:
            return None

        return doc_to_entry(doc)

    async def get_for_user(self, user_id: str, entry_id: str) -> TimeEntry:
        """
        Get an entry owned by a user.

        Raises:
            NotFoundOrForbidden: If the entry is missing or owned by someone else
        """
        entry = await self.get(entry_id)
        if entry is None or entry.user_id != user_id:
            raise NotFoundOrForbidden()
        return entry

    def _manual_entry_doc(self, user_id: str, entry_create: TimeEntryCreate) -> dict:
        """Validate a manual entry and build its document."""
        validate_description(entry_create.description, self.config)
        validate_references(entry_create.task_id, entry_create.project_id, self.config)

        start, end, duration = closed_interval(
            entry_create.start_time,
            entry_create.end_time,
            entry_create.duration_minutes,
        )

        now = self.clock()
        return {
            "user_id": user_id,
            "task_id": entry_create.task_id,
            "project_id": entry_create.project_id,
            "description": entry_create.description,
            "start_time": start,
            "end_time": end,
            "duration_minutes": duration,
            "billable": resolve_billable(entry_create.billable, self.config),
            "open": False,
            "session_id": str(ObjectId()),
            "paused": False,
            "created_at": now,
            "updated_at": now,
        }

    async def create(self, user_id: str, entry_create: TimeEntryCreate) -> TimeEntry:
        """
        Create a closed entry directly, without running a timer.

        Raises:
            ValidationError: If the interval or the fields are invalid
        """
        entry_doc = self._manual_entry_doc(user_id, entry_create)

        result = await self.time_entries.insert_one(entry_doc)
        entry_doc["_id"] = result.inserted_id

        logger.info(
            "Manual time entry %s created for user %s (%d min)",
            entry_doc["_id"],
            user_id,
            entry_doc["duration_minutes"],
        )
        return doc_to_entry(entry_doc)

    async def bulk_create(
        self,
        user_id: str,
        entries: list[TimeEntryCreate],
    ) -> list[TimeEntry]:
        """
        Create several closed entries; nothing is written if any is invalid.

        Raises:
            ValidationError: If the list is empty or any entry is invalid
        """
        if not entries:
            raise ValidationError("No time entries supplied")

        entry_docs = []
        for index, entry_create in enumerate(entries):
            try:
                entry_docs.append(self._manual_entry_doc(user_id, entry_create))
            except ValidationError as e:
                raise type(e)(f"Entry {index}: {e}")

        result = await self.time_entries.insert_many(entry_docs)
        for entry_doc, inserted_id in zip(entry_docs, result.inserted_ids):
            entry_doc["_id"] = inserted_id

        logger.info("Created %d manual time entries for user %s", len(entry_docs), user_id)
        return [doc_to_entry(doc) for doc in entry_docs]

    async def query(self, filters: TimeEntryFilters) -> list[TimeEntry]:
        """
        List entries matching filters, sorted and paginated.

        Args:
            filters: Query filters

        Returns:
            List of time entries
        """
        query = await self.build_query(filters)
        direction = ASCENDING if filters.sort_order == SortOrder.ASC else DESCENDING

        cursor = self.time_entries.find(query).sort(
            [(filters.sort_by.value, direction), ("_id", direction)]
        )
        if filters.offset:
            cursor = cursor.skip(filters.offset)
        if filters.limit:
            cursor = cursor.limit(filters.limit)

        entry_docs = await cursor.to_list(length=None)
        return [doc_to_entry(doc) for doc in entry_docs]

    async def count(self, filters: EntryCriteria) -> int:
        """Number of entries matching filters, ignoring pagination."""
        query = await self.build_query(filters)
        return await self.time_entries.count_documents(query)

    async def query_page(self, filters: TimeEntryFilters) -> TimeEntryPage:
        """One page of entries together with the total match count."""
        entries = await self.query(filters)
        total = await self.count(filters)
        return TimeEntryPage(
            entries=entries,
            total=total,
            offset=filters.offset,
            limit=filters.limit,
        )

    async def list_session(self, user_id: str, session_id: str) -> list[TimeEntry]:
        """Entries of one work session in start order."""
        cursor = self.time_entries.find(
            {"user_id": user_id, "session_id": session_id}
        ).sort("start_time", ASCENDING)
        entry_docs = await cursor.to_list(length=None)
        return [doc_to_entry(doc) for doc in entry_docs]

    def _timing_update(self, existing: dict, fields: dict) -> dict:
        """Validate start/end/duration edits and return the fields to set."""
        for name in _TIMING_FIELDS:
            if name in fields and fields[name] is None:
                raise ValidationError(f"{name} cannot be cleared")

        if existing.get("end_time") is None:
            if "end_time" in fields or "duration_minutes" in fields:
                raise ValidationError("Stop the timer to close a running entry")
            start = parse_instant(fields["start_time"])
            if start >= self.clock():
                raise ValidationError("Start time must be in the past")
            return {"start_time": start}

        if "end_time" in fields and "duration_minutes" in fields:
            raise ValidationError("Supply either end_time or duration_minutes, not both")

        start = parse_instant(fields.get("start_time", existing["start_time"]))
        if "duration_minutes" in fields:
            duration = fields["duration_minutes"]
            end = end_from_duration(start, duration)
        else:
            end = parse_instant(fields.get("end_time", existing["end_time"]))
            duration = compute_duration_minutes(start, end)

        return {"start_time": start, "end_time": end, "duration_minutes": duration}

    async def update(
        self,
        entry_id: str,
        entry_update: TimeEntryUpdate,
        user_id: Optional[str] = None,
    ) -> TimeEntry:
        """
        Apply a partial update to an entry.

        Duration is recomputed whenever start or end change.

        Args:
            entry_id: Time entry ID
            entry_update: Fields to change
            user_id: Owner to enforce, if any

        Returns:
            Updated time entry

        Raises:
            NoFieldsToUpdate: If no field is set
            EntryNotFound: If no matching entry exists
            ValidationError: If the new values are invalid
        """
        fields = entry_update.model_dump(exclude_unset=True)
        if not fields:
            raise NoFieldsToUpdate()

        object_id = parse_object_id(entry_id)
        if object_id is None:
            raise EntryNotFound()

        query = {"_id": object_id}
        if user_id is not None:
            query["user_id"] = user_id

        existing = await self.time_entries.find_one(query)
        if not existing:
            raise EntryNotFound()

        update_doc = {}

        if "description" in fields:
            validate_description(fields["description"], self.config)
            update_doc["description"] = fields["description"]
        if "task_id" in fields:
            update_doc["task_id"] = fields["task_id"]
        if "project_id" in fields:
            update_doc["project_id"] = fields["project_id"]
        if "billable" in fields:
            if fields["billable"] is None:
                raise ValidationError("billable cannot be cleared")
            update_doc["billable"] = fields["billable"]

        if any(name in fields for name in _TIMING_FIELDS):
            update_doc.update(self._timing_update(existing, fields))
            # The entry must still be in the state the timing was validated against.
            query["open"] = existing.get("end_time") is None

        update_doc["updated_at"] = self.clock()

        updated_doc = await self.time_entries.find_one_and_update(
            query,
            {"$set": update_doc},
            return_document=ReturnDocument.AFTER,
        )

        if not updated_doc:
            if "open" in query:
                raise ConflictError("Time entry changed while updating")
            raise EntryNotFound()

        logger.info("Time entry %s updated: %s", entry_id, ", ".join(sorted(fields)))
        return doc_to_entry(updated_doc)

    async def delete(self, entry_id: str, user_id: Optional[str] = None) -> bool:
        """
        Delete an entry.

        Returns:
            True if an entry was removed, False if none matched
        """
        object_id = parse_object_id(entry_id)
        if object_id is None:
            return False

        query = {"_id": object_id}
        if user_id is not None:
            query["user_id"] = user_id

        result = await self.time_entries.delete_one(query)
        deleted = result.deleted_count > 0

        if deleted:
            logger.info("Time entry %s deleted", entry_id)
        return deleted
