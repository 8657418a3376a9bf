"""Answer history endpoints: streak, categories and contribution grid."""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ....core.dependencies import get_progress_service
from ....domain.models import AuthenticatedUser
from ....services.calendar_grid import available_years, build_grid
from ....services.progress_service import ProgressService
from ...api.dependencies import require_user
from ...api.schemas.progress_schemas import (
    CategoryPerformanceResponse,
    ContributionDay,
    ContributionsResponse,
    ContributionWeek,
    StreakResponse,
)

router = APIRouter(prefix="/api/progress", tags=["progress"])


@router.get("/streak", response_model=StreakResponse)
async def get_streak(
    today: Optional[date] = None,
    user: AuthenticatedUser = Depends(require_user),
    progress_service: ProgressService = Depends(get_progress_service),
) -> StreakResponse:
    today = today or date.today()
    return StreakResponse(streak=progress_service.current_streak(user.id, today), today=today)


@router.get("/categories", response_model=List[CategoryPerformanceResponse])
async def get_category_performance(
    user: AuthenticatedUser = Depends(require_user),
    progress_service: ProgressService = Depends(get_progress_service),
) -> List[CategoryPerformanceResponse]:
    return [
        CategoryPerformanceResponse(
            category=item.category,
            correct_answers=item.correct_answers,
            total_answers=item.total_answers,
            percentage=round(item.percentage, 1),
        )
        for item in progress_service.category_performance(user.id)
    ]


@router.get("/contributions", response_model=ContributionsResponse)
async def get_contributions(
    year: Optional[int] = Query(default=None, ge=1970, le=9999),
    today: Optional[date] = None,
    user: AuthenticatedUser = Depends(require_user),
    progress_service: ProgressService = Depends(get_progress_service),
) -> ContributionsResponse:
    """52-week answer grid for the selected year; the current year is a rolling window."""
    today = today or date.today()
    selected_year = year or today.year
    if selected_year > today.year:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Year is in the future")

    by_day = progress_service.progress_by_day(user.id)
    years = available_years([today, *by_day.keys()])

    weeks = []
    for column in build_grid(selected_year, today):
        days = []
        for weekday, day in enumerate(column.days):
            record = by_day.get(day) if day is not None else None
            days.append(
                ContributionDay(
                    weekday=weekday,
                    day=day,
                    answered=record is not None,
                    is_correct=record.is_correct if record else None,
                )
            )
        weeks.append(ContributionWeek(week=column.week, month_label=column.month_label, days=days))

    return ContributionsResponse(year=selected_year, available_years=years, weeks=weeks)
