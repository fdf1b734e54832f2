"""Timer endpoints - start, stop, pause and resume."""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from timetrack.database import get_database
from timetrack.models.time_entry import ActiveTimer, SessionSummary, TimeEntry
from timetrack.routers.dependencies import get_current_user_id
from timetrack.services.timer_service import TimerService


router = APIRouter(prefix="/timers", tags=["timers"])


class TimerStart(BaseModel):
    """Request model for starting a timer."""

    task_id: Optional[str] = None
    project_id: Optional[str] = None
    description: Optional[str] = None
    billable: Optional[bool] = None


class TimerStop(BaseModel):
    """Request model for stopping a timer."""

    entry_id: Optional[str] = None


@router.post("/start", response_model=TimeEntry)
async def start_timer(
    timer_start: TimerStart,
    user_id: str = Depends(get_current_user_id),
    db=Depends(get_database),
):
    """
    Start a new timer.

    - Requires authentication
    - Only one timer can run at a time (409 names the running entry)
    """
    service = TimerService(db)
    return await service.start_timer(
        user_id=user_id,
        task_id=timer_start.task_id,
        project_id=timer_start.project_id,
        description=timer_start.description,
        billable=timer_start.billable,
    )


@router.post("/stop", response_model=TimeEntry)
async def stop_timer(
    timer_stop: Optional[TimerStop] = None,
    user_id: str = Depends(get_current_user_id),
    db=Depends(get_database),
):
    """
    Stop the running timer, or a specific running entry.

    - Requires authentication
    - 409 if the entry is already stopped
    """
    service = TimerService(db)
    return await service.stop_timer(
        user_id=user_id,
        entry_id=timer_stop.entry_id if timer_stop else None,
    )


@router.post("/pause", response_model=TimeEntry)
async def pause_timer(
    user_id: str = Depends(get_current_user_id),
    db=Depends(get_database),
):
    """Pause the running timer."""
    service = TimerService(db)
    return await service.pause_timer(user_id=user_id)


@router.post("/resume", response_model=TimeEntry)
async def resume_timer(
    user_id: str = Depends(get_current_user_id),
    db=Depends(get_database),
):
    """Resume the paused timer as a new entry in the same session."""
    service = TimerService(db)
    return await service.resume_timer(user_id=user_id)


@router.get("/current", response_model=ActiveTimer)
async def get_current_timer(
    user_id: str = Depends(get_current_user_id),
    db=Depends(get_database),
):
    """
    Get the running timer with its elapsed seconds.

    - Returns 404 if no timer is running
    """
    service = TimerService(db)
    timer = await service.get_active_timer(user_id=user_id)

    if not timer:
        raise HTTPException(status_code=404, detail="No timer running")

    return timer


@router.get("/sessions/{session_id}", response_model=SessionSummary)
async def get_session(
    session_id: str,
    user_id: str = Depends(get_current_user_id),
    db=Depends(get_database),
):
    """Get the entries of a work session and their total."""
    service = TimerService(db)
    return await service.get_session(user_id=user_id, session_id=session_id)
