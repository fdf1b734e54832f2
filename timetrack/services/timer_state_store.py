"""Timer state store - the open entry of each user.

The running timer is not kept in memory: it is the single time entry of a user
with ``open: True``. A partial unique index on ``user_id`` over open entries
makes a second open entry impossible even under concurrent starts.
"""
import logging
from datetime import datetime
from typing import Optional

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from timetrack.database import TIME_ENTRIES
from timetrack.errors import ConsistencyViolation, TimerAlreadyRunning
from timetrack.models.time_entry import TimeEntry
from timetrack.utils.clock import Clock, utc_now
from timetrack.utils.documents import doc_to_entry

logger = logging.getLogger(__name__)


class TimerStateStore:
    """Answers "is this user timing something" and creates open entries."""

    def __init__(self, db, clock: Clock = utc_now):
        """Initialize store with database connection."""
        self.db = db
        self.time_entries = db[TIME_ENTRIES]
        self.clock = clock

    async def find_open_entry(self, user_id: str) -> Optional[TimeEntry]:
        """
        Get the open entry of a user, if any.

        Raises:
            ConsistencyViolation: If storage holds more than one open entry
        """
        cursor = self.time_entries.find({"user_id": user_id, "open": True}).limit(2)
        docs = await cursor.to_list(length=2)

        if len(docs) > 1:
            logger.error(
                "User %s has %d open time entries: %s",
                user_id,
                len(docs),
                ", ".join(str(doc["_id"]) for doc in docs),
            )
            raise ConsistencyViolation(f"More than one open time entry for user {user_id}")

        if not docs:
            return None

        return doc_to_entry(docs[0])

    async def create_open_entry(
        self,
        user_id: str,
        start_time: datetime,
        billable: bool,
        session_id: str,
        task_id: Optional[str] = None,
        project_id: Optional[str] = None,
        description: Optional[str] = None,
    ) -> TimeEntry:
        """
        Persist a new open entry for a user.

        Raises:
            TimerAlreadyRunning: If the user already has an open entry
        """
        running = await self.find_open_entry(user_id)
        if running:
            raise TimerAlreadyRunning(running.id)

        now = self.clock()
        entry_doc = {
            "user_id": user_id,
            "task_id": task_id,
            "project_id": project_id,
            "description": description,
            "start_time": start_time,
            "end_time": None,
            "duration_minutes": None,
            "billable": billable,
            "open": True,
            "session_id": session_id,
            "paused": False,
            "created_at": now,
            "updated_at": now,
        }

        try:
            result = await self.time_entries.insert_one(entry_doc)
        except DuplicateKeyError:
            # Another start for this user got in between the check and the insert.
            winner = await self.find_open_entry(user_id)
            logger.warning("Concurrent timer start rejected for user %s", user_id)
            raise TimerAlreadyRunning(winner.id if winner else None)

        entry_doc["_id"] = result.inserted_id
        return doc_to_entry(entry_doc)

    async def close_entry(
        self,
        entry_id: ObjectId,
        user_id: str,
        end_time: datetime,
        duration_minutes: int,
        paused: bool = False,
    ) -> Optional[TimeEntry]:
        """
        Close an open entry in a single conditional write.

        Returns:
            The closed entry, or None if it was no longer open
        """
        updated_doc = await self.time_entries.find_one_and_update(
            {"_id": entry_id, "user_id": user_id, "open": True},
            {
                "$set": {
                    "end_time": end_time,
                    "duration_minutes": duration_minutes,
                    "open": False,
                    "paused": paused,
                    "updated_at": self.clock(),
                }
            },
            return_document=ReturnDocument.AFTER,
        )

        if not updated_doc:
            return None

        return doc_to_entry(updated_doc)
