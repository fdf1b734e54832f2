"""Tests for TimeEntryStore."""
import re

import pytest
from datetime import date, datetime, timedelta, timezone
from bson import ObjectId

from timetrack.config import Settings
from timetrack.errors import (
    ConflictError,
    EntryNotFound,
    InvalidInterval,
    NoFieldsToUpdate,
    NotFoundOrForbidden,
    ValidationError,
)
from timetrack.models.filters import SortField, SortOrder, TimeEntryFilters, EntryCriteria
from timetrack.models.time_entry import TimeEntryCreate, TimeEntryUpdate


def make_store(db, clock, **config):
    from timetrack.services.time_entry_store import TimeEntryStore

    return TimeEntryStore(db, clock=clock, config=Settings(jwt_secret="test-secret", **config))


@pytest.mark.asyncio
class TestTimeEntryStoreCreate:
    """Tests for creating manual entries."""

    async def test_create_from_start_and_end(self, make_db, make_collection, clock):
        """Test a manual entry from start and end gets its duration."""
        entries = make_collection()
        entries.insert_one.return_value.inserted_id = ObjectId()

        store = make_store(make_db(time_entries=entries), clock)
        entry = await store.create(
            "user123",
            TimeEntryCreate(
                project_id="p1",
                start_time=datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc),
                end_time=datetime(2025, 1, 1, 11, 30, tzinfo=timezone.utc),
            ),
        )

        doc = entries.insert_one.call_args[0][0]
        assert doc["duration_minutes"] == 150
        assert doc["open"] is False
        assert entry.duration_minutes == 150
        assert entry.billable is True

    async def test_create_from_duration(self, make_db, make_collection, clock):
        """Test a manual entry from start and duration gets its end."""
        entries = make_collection()
        entries.insert_one.return_value.inserted_id = ObjectId()
        start = datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc)

        store = make_store(make_db(time_entries=entries), clock)
        entry = await store.create(
            "user123",
            TimeEntryCreate(task_id="7", start_time=start, duration_minutes=45),
        )

        assert entry.end_time == start + timedelta(minutes=45)
        assert entry.duration_minutes == 45

    async def test_create_with_consistent_end_and_duration(self, make_db, make_collection, clock):
        """Test end and duration that agree are accepted."""
        entries = make_collection()
        entries.insert_one.return_value.inserted_id = ObjectId()
        start = datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc)

        store = make_store(make_db(time_entries=entries), clock)
        entry = await store.create(
            "user123",
            TimeEntryCreate(
                start_time=start,
                end_time=start + timedelta(minutes=30),
                duration_minutes=30,
            ),
        )

        assert entry.duration_minutes == 30

    async def test_create_with_inconsistent_duration(self, make_db, make_collection, clock):
        """Test end and duration that disagree are rejected."""
        entries = make_collection()
        start = datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc)

        store = make_store(make_db(time_entries=entries), clock)

        with pytest.raises(ValidationError, match="does not match"):
            await store.create(
                "user123",
                TimeEntryCreate(
                    start_time=start,
                    end_time=start + timedelta(minutes=30),
                    duration_minutes=90,
                ),
            )

        entries.insert_one.assert_not_called()

    async def test_create_without_end_or_duration(self, make_db, make_collection, clock):
        """Test manual entries must be closed."""
        store = make_store(make_db(time_entries=make_collection()), clock)

        with pytest.raises(ValidationError, match="end time or a duration"):
            await store.create("user123", TimeEntryCreate(start_time=clock()))

    async def test_create_end_before_start(self, make_db, make_collection, clock):
        """Test an inverted interval is rejected."""
        store = make_store(make_db(time_entries=make_collection()), clock)

        with pytest.raises(InvalidInterval):
            await store.create(
                "user123",
                TimeEntryCreate(start_time=clock(), end_time=clock() - timedelta(hours=1)),
            )

    async def test_create_huge_duration_rejected(self, make_db, make_collection, clock):
        """Test a duration past the latest representable time is invalid."""
        entries = make_collection()
        store = make_store(make_db(time_entries=entries), clock)

        with pytest.raises(InvalidInterval):
            await store.create(
                "user123",
                TimeEntryCreate(start_time=clock(), duration_minutes=10**10),
            )

        entries.insert_one.assert_not_called()

    async def test_bulk_create_all_or_nothing(self, make_db, make_collection, clock):
        """Test one invalid entry stops the whole batch."""
        entries = make_collection()
        start = datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc)

        store = make_store(make_db(time_entries=entries), clock)

        with pytest.raises(ValidationError, match="Entry 1"):
            await store.bulk_create(
                "user123",
                [
                    TimeEntryCreate(start_time=start, duration_minutes=30),
                    TimeEntryCreate(start_time=start, duration_minutes=0),
                ],
            )

        entries.insert_many.assert_not_called()

    async def test_bulk_create(self, make_db, make_collection, clock):
        """Test a valid batch is written with one insert."""
        entries = make_collection()
        entries.insert_many.return_value.inserted_ids = [ObjectId(), ObjectId()]
        start = datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc)

        store = make_store(make_db(time_entries=entries), clock)
        created = await store.bulk_create(
            "user123",
            [
                TimeEntryCreate(start_time=start, duration_minutes=30),
                TimeEntryCreate(start_time=start + timedelta(hours=1), duration_minutes=45),
            ],
        )

        assert [entry.duration_minutes for entry in created] == [30, 45]
        entries.insert_many.assert_awaited_once()


@pytest.mark.asyncio
class TestTimeEntryStoreQuery:
    """Tests for filtered retrieval."""

    async def test_query_builds_filters(self, make_db, make_collection, clock):
        """Test criteria map onto the MongoDB filter."""
        entries = make_collection()
        store = make_store(make_db(time_entries=entries), clock)

        await store.query(
            TimeEntryFilters(
                user_id="user123",
                task_id="7",
                project_id="p1",
                billable=False,
                date_from=date(2025, 1, 1),
                date_to=date(2025, 1, 31),
            )
        )

        query = entries.find.call_args[0][0]
        assert query["user_id"] == "user123"
        assert query["task_id"] == "7"
        assert query["project_id"] == "p1"
        assert query["billable"] is False
        assert query["start_time"]["$gte"] == datetime(2025, 1, 1, tzinfo=timezone.utc)
        assert query["start_time"]["$lt"] == datetime(2025, 2, 1, tzinfo=timezone.utc)

    async def test_date_range_uses_reporting_timezone(self, make_db, make_collection, clock):
        """Test calendar dates are local to the reporting timezone."""
        entries = make_collection()
        store = make_store(make_db(time_entries=entries), clock, report_timezone="Europe/Berlin")

        await store.query(TimeEntryFilters(date_from=date(2025, 1, 1), date_to=date(2025, 1, 1)))

        query = entries.find.call_args[0][0]
        assert query["start_time"]["$gte"] == datetime(2024, 12, 31, 23, 0, tzinfo=timezone.utc)
        assert query["start_time"]["$lt"] == datetime(2025, 1, 1, 23, 0, tzinfo=timezone.utc)

    async def test_inverted_date_range_rejected(self, make_db, make_collection, clock):
        """Test date_from after date_to is a validation error."""
        store = make_store(make_db(time_entries=make_collection()), clock)

        with pytest.raises(ValidationError):
            await store.count(EntryCriteria(date_from=date(2025, 2, 1), date_to=date(2025, 1, 1)))

    async def test_unrepresentable_date_bounds_rejected(self, make_db, make_collection, clock):
        """Test dates at the edge of the calendar are validation errors."""
        entries = make_collection()
        store = make_store(make_db(time_entries=entries), clock, report_timezone="Europe/Berlin")

        with pytest.raises(ValidationError, match="out of range"):
            await store.count(EntryCriteria(date_to=date(9999, 12, 31)))
        with pytest.raises(ValidationError, match="out of range"):
            await store.count(EntryCriteria(date_from=date(1, 1, 1)))

        entries.count_documents.assert_not_called()

    async def test_search_ignored_for_plain_criteria(self, make_db, make_collection, clock):
        """Test criteria without search never query collaborator labels."""
        projects = make_collection()
        store = make_store(make_db(time_entries=make_collection(), projects=projects), clock)

        query = await store.build_query(EntryCriteria(user_id="user123"))

        assert "$or" not in query
        projects.find.assert_not_called()

    async def test_sort_and_pagination(self, make_db, make_collection, make_cursor, make_entry_doc, clock):
        """Test sort key, direction, offset and limit reach the cursor."""
        cursor = make_cursor([make_entry_doc()])
        entries = make_collection()
        entries.find.return_value = cursor

        store = make_store(make_db(time_entries=entries), clock)
        result = await store.query(
            TimeEntryFilters(
                sort_by=SortField.CREATED_AT,
                sort_order=SortOrder.ASC,
                offset=20,
                limit=10,
            )
        )

        assert len(result) == 1
        cursor.sort.assert_called_once_with([("created_at", 1), ("_id", 1)])
        cursor.skip.assert_called_once_with(20)
        cursor.limit.assert_called_once_with(10)

    async def test_search_covers_description_projects_and_tasks(
        self, make_db, make_collection, make_cursor, clock
    ):
        """Test free-text search matches descriptions, project names and task titles."""
        project_id = ObjectId()
        task_id = ObjectId()
        entries = make_collection()
        projects = make_collection()
        projects.find.return_value = make_cursor([{"_id": project_id}])
        tasks = make_collection()
        tasks.find.return_value = make_cursor([{"_id": task_id}])

        store = make_store(
            make_db(time_entries=entries, projects=projects, tasks=tasks), clock
        )
        await store.query(TimeEntryFilters(search="api (v2)"))

        query = entries.find.call_args[0][0]
        regex = {"$regex": re.escape("api (v2)"), "$options": "i"}
        assert query["$or"] == [
            {"description": regex},
            {"project_id": {"$in": [str(project_id)]}},
            {"task_id": {"$in": [str(task_id)]}},
        ]

    async def test_count(self, make_db, make_collection, clock):
        """Test count uses the same filter without pagination."""
        entries = make_collection()
        entries.count_documents.return_value = 42

        store = make_store(make_db(time_entries=entries), clock)
        total = await store.count(TimeEntryFilters(user_id="user123", limit=5))

        assert total == 42
        entries.count_documents.assert_awaited_once_with({"user_id": "user123"})

    async def test_query_page(self, make_db, make_collection, make_cursor, make_entry_doc, clock):
        """Test a page carries entries and the total."""
        entries = make_collection()
        entries.find.return_value = make_cursor([make_entry_doc(), make_entry_doc()])
        entries.count_documents.return_value = 7

        store = make_store(make_db(time_entries=entries), clock)
        page = await store.query_page(TimeEntryFilters(limit=2))

        assert len(page.entries) == 2
        assert page.total == 7
        assert page.limit == 2


@pytest.mark.asyncio
class TestTimeEntryStoreUpdate:
    """Tests for partial updates."""

    async def test_update_description(self, make_db, make_collection, make_entry_doc, clock):
        """Test updating only the description."""
        existing = make_entry_doc(end_time=clock() + timedelta(hours=1), duration_minutes=60, open=False)
        entries = make_collection()
        entries.find_one.return_value = existing
        entries.find_one_and_update.return_value = {**existing, "description": "New description"}

        store = make_store(make_db(time_entries=entries), clock)
        entry = await store.update(str(existing["_id"]), TimeEntryUpdate(description="New description"))

        update = entries.find_one_and_update.call_args[0][1]["$set"]
        assert update["description"] == "New description"
        assert "duration_minutes" not in update
        assert entry.description == "New description"

    async def test_update_end_recomputes_duration(self, make_db, make_collection, make_entry_doc, clock):
        """Test changing the end instant recomputes the duration."""
        existing = make_entry_doc(end_time=clock() + timedelta(hours=1), duration_minutes=60, open=False)
        entries = make_collection()
        entries.find_one.return_value = existing
        entries.find_one_and_update.return_value = existing

        store = make_store(make_db(time_entries=entries), clock)
        await store.update(
            str(existing["_id"]),
            TimeEntryUpdate(end_time=clock() + timedelta(minutes=90)),
        )

        query, update = entries.find_one_and_update.call_args[0]
        assert update["$set"]["duration_minutes"] == 90
        assert query["open"] is False

    async def test_update_start_recomputes_duration(self, make_db, make_collection, make_entry_doc, clock):
        """Test changing the start instant recomputes the duration."""
        existing = make_entry_doc(end_time=clock() + timedelta(hours=1), duration_minutes=60, open=False)
        entries = make_collection()
        entries.find_one.return_value = existing
        entries.find_one_and_update.return_value = existing

        store = make_store(make_db(time_entries=entries), clock)
        await store.update(
            str(existing["_id"]),
            TimeEntryUpdate(start_time=clock() + timedelta(minutes=15)),
        )

        update = entries.find_one_and_update.call_args[0][1]["$set"]
        assert update["duration_minutes"] == 45

    async def test_update_duration_moves_end(self, make_db, make_collection, make_entry_doc, clock):
        """Test editing the duration of a closed entry moves its end."""
        existing = make_entry_doc(end_time=clock() + timedelta(hours=1), duration_minutes=60, open=False)
        entries = make_collection()
        entries.find_one.return_value = existing
        entries.find_one_and_update.return_value = existing

        store = make_store(make_db(time_entries=entries), clock)
        await store.update(str(existing["_id"]), TimeEntryUpdate(duration_minutes=120))

        update = entries.find_one_and_update.call_args[0][1]["$set"]
        assert update["end_time"] == clock() + timedelta(minutes=120)
        assert update["duration_minutes"] == 120

    async def test_update_end_before_start_rejected(self, make_db, make_collection, make_entry_doc, clock):
        """Test an edit producing an inverted interval is rejected."""
        existing = make_entry_doc(end_time=clock() + timedelta(hours=1), duration_minutes=60, open=False)
        entries = make_collection()
        entries.find_one.return_value = existing

        store = make_store(make_db(time_entries=entries), clock)

        with pytest.raises(InvalidInterval):
            await store.update(
                str(existing["_id"]),
                TimeEntryUpdate(end_time=clock() - timedelta(minutes=1)),
            )

        entries.find_one_and_update.assert_not_called()

    async def test_update_cannot_close_running_entry(self, make_db, make_collection, make_entry_doc, clock):
        """Test closing an open entry must go through stopping the timer."""
        entries = make_collection()
        entries.find_one.return_value = make_entry_doc()

        store = make_store(make_db(time_entries=entries), clock)

        with pytest.raises(ValidationError, match="Stop the timer"):
            await store.update(str(ObjectId()), TimeEntryUpdate(end_time=clock() + timedelta(hours=1)))

    async def test_update_no_fields(self, make_db, make_collection, clock):
        """Test an empty update is rejected."""
        store = make_store(make_db(time_entries=make_collection()), clock)

        with pytest.raises(NoFieldsToUpdate):
            await store.update(str(ObjectId()), TimeEntryUpdate())

    async def test_update_not_found(self, make_db, make_collection, clock):
        """Test updating non-existent entry fails."""
        entries = make_collection()
        entries.find_one.return_value = None

        store = make_store(make_db(time_entries=entries), clock)

        with pytest.raises(EntryNotFound, match="Time entry not found"):
            await store.update(str(ObjectId()), TimeEntryUpdate(description="x"))

    async def test_update_scoped_to_owner(self, make_db, make_collection, clock):
        """Test the owner is part of the lookup when given."""
        entries = make_collection()
        entries.find_one.return_value = None
        entry_id = ObjectId()

        store = make_store(make_db(time_entries=entries), clock)

        with pytest.raises(NotFoundOrForbidden):
            await store.update(str(entry_id), TimeEntryUpdate(billable=False), user_id="user123")

        entries.find_one.assert_awaited_once_with({"_id": entry_id, "user_id": "user123"})

    async def test_update_state_changed_concurrently(self, make_db, make_collection, make_entry_doc, clock):
        """Test a timing edit racing a stop is reported as a conflict."""
        entries = make_collection()
        entries.find_one.return_value = make_entry_doc()
        entries.find_one_and_update.return_value = None
        clock.advance(hours=1)

        store = make_store(make_db(time_entries=entries), clock)

        with pytest.raises(ConflictError):
            await store.update(
                str(ObjectId()),
                TimeEntryUpdate(start_time=clock() - timedelta(minutes=30)),
            )


@pytest.mark.asyncio
class TestTimeEntryStoreDelete:
    """Tests for deleting entries."""

    async def test_delete_entry_success(self, make_db, make_collection, clock):
        """Test deleting a time entry."""
        entries = make_collection()
        entries.delete_one.return_value.deleted_count = 1

        store = make_store(make_db(time_entries=entries), clock)

        assert await store.delete(str(ObjectId())) is True

    async def test_delete_entry_missing(self, make_db, make_collection, clock):
        """Test deleting a missing entry returns False."""
        entries = make_collection()
        entries.delete_one.return_value.deleted_count = 0

        store = make_store(make_db(time_entries=entries), clock)

        assert await store.delete(str(ObjectId())) is False

    async def test_delete_malformed_id(self, make_db, make_collection, clock):
        """Test a malformed id deletes nothing."""
        entries = make_collection()
        store = make_store(make_db(time_entries=entries), clock)

        assert await store.delete("nope") is False
        entries.delete_one.assert_not_called()
