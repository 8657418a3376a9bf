"""Pydantic schemas for progress API endpoints."""

from datetime import date
from typing import List, Optional

from pydantic import BaseModel


class StreakResponse(BaseModel):
    streak: int
    today: date


class CategoryPerformanceResponse(BaseModel):
    category: str
    correct_answers: int
    total_answers: int
    percentage: float


class ContributionDay(BaseModel):
    """One grid cell; ``day`` is None for padding and future cells."""

    weekday: int
    day: Optional[date] = None
    answered: bool = False
    is_correct: Optional[bool] = None


class ContributionWeek(BaseModel):
    week: int
    month_label: Optional[str] = None
    days: List[ContributionDay]


class ContributionsResponse(BaseModel):
    year: int
    available_years: List[int]
    weeks: List[ContributionWeek]
