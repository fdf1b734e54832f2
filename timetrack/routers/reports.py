"""Report endpoints - grouped totals and headline statistics."""
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from timetrack.database import get_database
from timetrack.models.filters import EntryCriteria
from timetrack.models.report import GroupBy, ReportRow, TimeReportSummary, TimeTotals
from timetrack.routers.dependencies import get_current_user_id
from timetrack.services.report_service import ReportService


router = APIRouter(prefix="/reports", tags=["reports"])


def report_criteria(
    task_id: Optional[str] = Query(None),
    project_id: Optional[str] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    billable: Optional[bool] = Query(None),
    user_id: str = Depends(get_current_user_id),
) -> EntryCriteria:
    """Query parameters as report criteria scoped to the authenticated user."""
    return EntryCriteria(
        user_id=user_id,
        task_id=task_id,
        project_id=project_id,
        date_from=date_from,
        date_to=date_to,
        billable=billable,
    )


@router.get("", response_model=list[ReportRow])
async def aggregate(
    group_by: GroupBy = Query(GroupBy.DATE),
    criteria: EntryCriteria = Depends(report_criteria),
    db=Depends(get_database),
):
    """Totals grouped by date, user, project or task."""
    service = ReportService(db)
    return await service.aggregate(criteria, group_by)


@router.get("/totals", response_model=TimeTotals)
async def totals(
    criteria: EntryCriteria = Depends(report_criteria),
    db=Depends(get_database),
):
    """Headline totals with the billable split."""
    service = ReportService(db)
    return await service.total_for_filters(criteria)


@router.get("/summary", response_model=TimeReportSummary)
async def summary(
    criteria: EntryCriteria = Depends(report_criteria),
    db=Depends(get_database),
):
    """Totals plus minutes per date, project, task and user."""
    service = ReportService(db)
    return await service.summarize(criteria)
