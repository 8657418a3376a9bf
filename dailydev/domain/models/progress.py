from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional


@dataclass(slots=True)
class ProgressRecord:
    user_id: str
    question_id: str
    is_correct: Optional[bool]
    category: Optional[str]
    completed_day: Optional[date]


@dataclass(slots=True)
class DailyChallenge:
    challenge_date: date
    question_id: str


@dataclass(slots=True)
class CategoryPerformance:
    category: str
    correct_answers: int
    total_answers: int
    percentage: float
