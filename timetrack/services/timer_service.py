"""Timer service - business logic for time tracking."""
import logging
from typing import Optional

from bson import ObjectId
from pymongo import DESCENDING, ReturnDocument

from timetrack.config import Settings, settings
from timetrack.database import TIME_ENTRIES
from timetrack.errors import (
    AlreadyStopped,
    NoActiveTimer,
    NoPausedTimer,
    NotFoundOrForbidden,
    TimerAlreadyRunning,
)
from timetrack.models.time_entry import (
    ActiveTimer,
    SessionSummary,
    TimeEntry,
    TimeEntryCreate,
)
from timetrack.services.duration import compute_duration_minutes, elapsed_seconds
from timetrack.services.time_entry_store import TimeEntryStore
from timetrack.services.timer_state_store import TimerStateStore
from timetrack.services.validation import resolve_billable, validate_description, validate_references
from timetrack.utils.clock import Clock, utc_now
from timetrack.utils.documents import doc_to_entry

logger = logging.getLogger(__name__)


class TimerService:
    """
    Service for handling timer operations.

    Each user is either idle or has exactly one running timer (an open time
    entry). Pausing closes the running entry and remembers it; resuming opens a
    new entry in the same session, so no entry spans a pause.
    """

    def __init__(self, db, clock: Clock = utc_now, config: Settings = settings):
        """Initialize service with database connection."""
        self.db = db
        self.time_entries = db[TIME_ENTRIES]
        self.clock = clock
        self.config = config
        self.state = TimerStateStore(db, clock=clock)
        self.entries = TimeEntryStore(db, clock=clock, config=config)

    async def start_timer(
        self,
        user_id: str,
        task_id: Optional[str] = None,
        project_id: Optional[str] = None,
        description: Optional[str] = None,
        billable: Optional[bool] = None,
    ) -> TimeEntry:
        """
        Start a new timer.

        Args:
            user_id: User ID
            task_id: Optional task being timed
            project_id: Optional project being timed
            description: Optional description
            billable: Billable flag (defaults to the deployment setting)

        Returns:
            Created open time entry

        Raises:
            TimerAlreadyRunning: If the user already has a running timer
            ValidationError: If the description is too long, or no task or
                project was given while the deployment requires one
        """
        validate_description(description, self.config)
        validate_references(task_id, project_id, self.config)

        entry = await self._open(
            user_id=user_id,
            task_id=task_id,
            project_id=project_id,
            description=description,
            billable=resolve_billable(billable, self.config),
            session_id=str(ObjectId()),
        )

        # A fresh timer replaces any paused session.
        await self.time_entries.update_many(
            {"user_id": user_id, "paused": True},
            {"$set": {"paused": False}},
        )

        logger.info("Timer %s started for user %s", entry.id, user_id)
        return entry

    async def _open(self, user_id: str, **fields) -> TimeEntry:
        """Open an entry, logging rejected starts."""
        try:
            return await self.state.create_open_entry(
                user_id=user_id,
                start_time=self.clock(),
                **fields,
            )
        except TimerAlreadyRunning as e:
            logger.warning(
                "Timer start rejected for user %s: entry %s is running",
                user_id,
                e.entry_id,
            )
            raise

    async def stop_timer(
        self,
        user_id: str,
        entry_id: Optional[str] = None,
    ) -> TimeEntry:
        """
        Stop the running timer.

        Args:
            user_id: User ID
            entry_id: Optional entry to stop; defaults to the running one

        Returns:
            Closed time entry with end_time and duration

        Raises:
            NotFoundOrForbidden: If entry_id is unknown or owned by another user
            NoActiveTimer: If no entry_id was given and no timer is running
            AlreadyStopped: If the entry is already closed
        """
        entry = await self._closable_entry(user_id, entry_id)
        return await self._close(entry, paused=False)

    async def _closable_entry(self, user_id: str, entry_id: Optional[str]) -> TimeEntry:
        """Resolve the entry a stop or pause applies to."""
        if entry_id is None:
            entry = await self.state.find_open_entry(user_id)
            if entry is None:
                raise NoActiveTimer()
            return entry

        entry = await self.entries.get(entry_id)
        if entry is None or entry.user_id != user_id:
            raise NotFoundOrForbidden("Timer not found")
        if not entry.is_open:
            raise AlreadyStopped(entry.id)
        return entry

    async def _close(self, entry: TimeEntry, paused: bool) -> TimeEntry:
        """Close an open entry at the current instant."""
        end_time = self.clock()
        duration = compute_duration_minutes(entry.start_time, end_time)

        closed = await self.state.close_entry(
            ObjectId(entry.id),
            entry.user_id,
            end_time=end_time,
            duration_minutes=duration,
            paused=paused,
        )

        if closed is None:
            logger.warning("Timer %s was stopped concurrently", entry.id)
            raise AlreadyStopped(entry.id)

        logger.info(
            "Timer %s %s for user %s after %d min",
            closed.id,
            "paused" if paused else "stopped",
            closed.user_id,
            duration,
        )
        return closed

    async def pause_timer(self, user_id: str) -> TimeEntry:
        """
        Pause the running timer.

        The running entry is closed with its elapsed duration and marked as
        paused so that resume_timer can continue it.

        Raises:
            NoActiveTimer: If no timer is running
        """
        entry = await self._closable_entry(user_id, None)
        return await self._close(entry, paused=True)

    async def resume_timer(self, user_id: str) -> TimeEntry:
        """
        Resume the paused timer as a new entry in the same session.

        Raises:
            TimerAlreadyRunning: If a timer is running
            NoPausedTimer: If there is nothing to resume
        """
        running = await self.state.find_open_entry(user_id)
        if running:
            raise TimerAlreadyRunning(running.id)

        paused_doc = await self.time_entries.find_one_and_update(
            {"user_id": user_id, "paused": True},
            {"$set": {"paused": False, "updated_at": self.clock()}},
            sort=[("end_time", DESCENDING)],
            return_document=ReturnDocument.AFTER,
        )
        if not paused_doc:
            raise NoPausedTimer()

        paused = doc_to_entry(paused_doc)
        try:
            entry = await self._open(
                user_id=user_id,
                task_id=paused.task_id,
                project_id=paused.project_id,
                description=paused.description,
                billable=paused.billable,
                session_id=paused.session_id or str(ObjectId()),
            )
        except TimerAlreadyRunning:
            await self.time_entries.update_one(
                {"_id": paused_doc["_id"]},
                {"$set": {"paused": True}},
            )
            raise

        logger.info("Timer %s resumed for user %s (session %s)", entry.id, user_id, entry.session_id)
        return entry

    async def get_active_timer(self, user_id: str) -> Optional[ActiveTimer]:
        """
        Get the running timer with its live elapsed time, if any.

        Args:
            user_id: User ID

        Returns:
            Running timer, or None
        """
        entry = await self.state.find_open_entry(user_id)
        if entry is None:
            return None

        return ActiveTimer(
            **entry.model_dump(),
            elapsed_seconds=elapsed_seconds(entry.start_time, self.clock()),
        )

    async def get_session(self, user_id: str, session_id: str) -> SessionSummary:
        """
        Get all entries of a work session and the time summed over them.

        Raises:
            NotFoundOrForbidden: If the user has no entries in that session
        """
        entries = await self.entries.list_session(user_id, session_id)
        if not entries:
            raise NotFoundOrForbidden("Session not found")

        return SessionSummary(
            session_id=session_id,
            entries=entries,
            total_minutes=sum(entry.duration_minutes or 0 for entry in entries),
            running=any(entry.is_open for entry in entries),
        )

    async def create_manual_entry(
        self,
        user_id: str,
        entry_create: TimeEntryCreate,
    ) -> TimeEntry:
        """Log a closed entry without running a timer."""
        return await self.entries.create(user_id, entry_create)

    async def get_entry(self, user_id: str, entry_id: str) -> TimeEntry:
        """Get an entry owned by the user."""
        return await self.entries.get_for_user(user_id, entry_id)
