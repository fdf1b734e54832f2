"""Time entry endpoints - manual entries, queries, edits and export."""
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel

from timetrack.database import get_database
from timetrack.errors import NotFoundOrForbidden
from timetrack.models.filters import SortField, SortOrder, TimeEntryFilters
from timetrack.models.time_entry import TimeEntry, TimeEntryCreate, TimeEntryPage, TimeEntryUpdate
from timetrack.routers.dependencies import get_current_user_id
from timetrack.services.report_service import ReportService
from timetrack.services.time_entry_store import TimeEntryStore
from timetrack.services.timer_service import TimerService


router = APIRouter(prefix="/time-entries", tags=["time-entries"])


class BulkCreate(BaseModel):
    """Request model for creating several manual entries."""

    entries: list[TimeEntryCreate]


def entry_filters(
    task_id: Optional[str] = Query(None),
    project_id: Optional[str] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    billable: Optional[bool] = Query(None),
    search: Optional[str] = Query(None),
    sort_by: SortField = Query(SortField.START_TIME),
    sort_order: SortOrder = Query(SortOrder.DESC),
    offset: int = Query(0, ge=0),
    limit: Optional[int] = Query(50, ge=1, le=1000),
    user_id: str = Depends(get_current_user_id),
) -> TimeEntryFilters:
    """Query parameters as filters scoped to the authenticated user."""
    return TimeEntryFilters(
        user_id=user_id,
        task_id=task_id,
        project_id=project_id,
        date_from=date_from,
        date_to=date_to,
        billable=billable,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
        offset=offset,
        limit=limit,
    )


@router.get("", response_model=TimeEntryPage)
async def list_entries(
    filters: TimeEntryFilters = Depends(entry_filters),
    db=Depends(get_database),
):
    """
    List time entries for the authenticated user.

    - Filters: task_id, project_id, date_from/date_to (start date), billable, search
    - Sorted by start_time (default) or created_at, paginated with offset/limit
    """
    store = TimeEntryStore(db)
    return await store.query_page(filters)


@router.post("", response_model=TimeEntry, status_code=201)
async def create_entry(
    entry_create: TimeEntryCreate,
    user_id: str = Depends(get_current_user_id),
    db=Depends(get_database),
):
    """
    Log a closed time entry without running a timer.

    - Needs end_time or duration_minutes
    - Duration is calculated from start and end when not provided
    """
    service = TimerService(db)
    return await service.create_manual_entry(user_id=user_id, entry_create=entry_create)


@router.post("/bulk", response_model=list[TimeEntry], status_code=201)
async def bulk_create_entries(
    bulk: BulkCreate,
    user_id: str = Depends(get_current_user_id),
    db=Depends(get_database),
):
    """Log several closed entries; none are written if any is invalid."""
    store = TimeEntryStore(db)
    return await store.bulk_create(user_id=user_id, entries=bulk.entries)


@router.get("/export")
async def export_entries(
    filters: TimeEntryFilters = Depends(entry_filters),
    db=Depends(get_database),
):
    """Export matching entries as CSV."""
    service = ReportService(db)
    content = await service.export_csv(filters.model_copy(update={"offset": 0, "limit": None}))
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="time-entries.csv"'},
    )


@router.get("/{entry_id}", response_model=TimeEntry)
async def get_entry(
    entry_id: str,
    user_id: str = Depends(get_current_user_id),
    db=Depends(get_database),
):
    """Get a time entry owned by the authenticated user."""
    service = TimerService(db)
    return await service.get_entry(user_id=user_id, entry_id=entry_id)


@router.patch("/{entry_id}", response_model=TimeEntry)
async def update_entry(
    entry_id: str,
    entry_update: TimeEntryUpdate,
    user_id: str = Depends(get_current_user_id),
    db=Depends(get_database),
):
    """
    Update a time entry.

    - Only the supplied fields change
    - Changing start or end recalculates the duration
    """
    store = TimeEntryStore(db)
    return await store.update(entry_id=entry_id, entry_update=entry_update, user_id=user_id)


@router.delete("/{entry_id}", status_code=204)
async def delete_entry(
    entry_id: str,
    user_id: str = Depends(get_current_user_id),
    db=Depends(get_database),
):
    """
    Delete a time entry.

    - Hard delete (permanent)
    """
    store = TimeEntryStore(db)
    if not await store.delete(entry_id=entry_id, user_id=user_id):
        raise NotFoundOrForbidden()
    return Response(status_code=204)
