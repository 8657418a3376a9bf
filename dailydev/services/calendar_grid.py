"""Contribution grid date mapping.

The grid has 52 week columns and 7 weekday rows (0 = Sunday). When the
selected year is the current year the grid is a rolling window ending in the
current week; for past years it covers that calendar year, starting at the
Sunday on or before January 1st.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Iterable, List, Optional

WEEKS_TO_SHOW = 52
DAYS_PER_WEEK = 7
DAY_LABELS = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")
MONTH_ABBREVIATIONS = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)


@dataclass(slots=True)
class GridColumn:
    week: int
    month_label: Optional[str]
    days: List[Optional[date]] = field(default_factory=list)


def days_from_sunday(day: date) -> int:
    return (day.weekday() + 1) % DAYS_PER_WEEK


def week_start(day: date) -> date:
    """Sunday of the week containing ``day``."""
    return day - timedelta(days=days_from_sunday(day))


def _validate(week: int, weekday: int) -> None:
    if not 0 <= week < WEEKS_TO_SHOW:
        raise ValueError(f"week must be in 0..{WEEKS_TO_SHOW - 1}, got {week}")
    if not 0 <= weekday < DAYS_PER_WEEK:
        raise ValueError(f"weekday must be in 0..{DAYS_PER_WEEK - 1}, got {weekday}")


def date_for_grid_position(
    week: int, weekday: int, selected_year: int, today: date
) -> Optional[date]:
    """Map a grid cell to its date, or None for future days and days outside the year."""
    _validate(week, weekday)

    if selected_year == today.year:
        weeks_back = WEEKS_TO_SHOW - 1 - week
        target_week = week_start(today) - timedelta(weeks=weeks_back)
        target = target_week + timedelta(days=weekday)
        return target if target <= today else None

    first_week = week_start(date(selected_year, 1, 1))
    target = first_week + timedelta(days=week * DAYS_PER_WEEK + weekday)
    return target if target.year == selected_year else None


def month_label_for_week(week: int, selected_year: int, today: date) -> Optional[str]:
    """Label a week column with the month whose 1st falls in it, first day offset wins."""
    for weekday in range(DAYS_PER_WEEK):
        day = date_for_grid_position(week, weekday, selected_year, today)
        if day is not None and day.day == 1:
            return MONTH_ABBREVIATIONS[day.month - 1]
    return None


def build_grid(selected_year: int, today: date) -> List[GridColumn]:
    return [
        GridColumn(
            week=week,
            month_label=month_label_for_week(week, selected_year, today),
            days=[
                date_for_grid_position(week, weekday, selected_year, today)
                for weekday in range(DAYS_PER_WEEK)
            ],
        )
        for week in range(WEEKS_TO_SHOW)
    ]


def available_years(days: Iterable[Optional[date]]) -> List[int]:
    return sorted({day.year for day in days if day is not None}, reverse=True)
