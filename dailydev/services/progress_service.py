"""Answer history: streaks, category performance and first-question detection."""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from ..domain.models import CategoryPerformance, DailyChallenge, ProgressRecord
from ..domain.ports.persistence import ProgressRepository

logger = logging.getLogger(__name__)

MAX_STREAK_DAYS = 365


def calculate_streak(
    challenges: Iterable[DailyChallenge],
    progress: Iterable[ProgressRecord],
    today: date,
) -> int:
    """
    Count consecutive days, ending today, on which the scheduled question was answered correctly.

    The streak stops at the first day with no scheduled question or without a
    correct answer to that day's question.
    """
    schedule: Dict[date, str] = {c.challenge_date: c.question_id for c in challenges}
    correct: set[Tuple[date, str]] = {
        (record.completed_day, record.question_id)
        for record in progress
        if record.is_correct and record.completed_day is not None
    }

    streak = 0
    current = today
    for _ in range(MAX_STREAK_DAYS):
        question_id = schedule.get(current)
        if question_id is None or (current, question_id) not in correct:
            break
        streak += 1
        current -= timedelta(days=1)
    return streak


def calculate_category_performance(progress: Iterable[ProgressRecord]) -> List[CategoryPerformance]:
    stats: Dict[str, List[int]] = defaultdict(lambda: [0, 0])
    for record in progress:
        if not record.category or record.is_correct is None:
            continue
        entry = stats[record.category]
        entry[1] += 1
        if record.is_correct:
            entry[0] += 1

    performances = [
        CategoryPerformance(
            category=category,
            correct_answers=correct,
            total_answers=total,
            percentage=(correct / total * 100) if total else 0.0,
        )
        for category, (correct, total) in stats.items()
    ]
    return sorted(performances, key=lambda item: item.percentage, reverse=True)


class ProgressService:
    """Reads a user's answer history for streaks, analytics and access checks."""

    def __init__(self, repository: ProgressRepository):
        self._repository = repository

    def has_answered_any(self, user_id: str) -> bool:
        return self._repository.count_progress(user_id) > 0

    def current_streak(self, user_id: str, today: date) -> int:
        streak = calculate_streak(
            self._repository.get_daily_challenges(),
            self._repository.get_progress_history(user_id),
            today,
        )
        logger.debug("Streak for %s on %s: %s", user_id, today, streak)
        return streak

    def category_performance(self, user_id: str) -> List[CategoryPerformance]:
        return calculate_category_performance(self._repository.get_progress_history(user_id))

    def progress_by_day(self, user_id: str) -> Dict[date, ProgressRecord]:
        """Most recent answer per completed day."""
        by_day: Dict[date, ProgressRecord] = {}
        for record in self._repository.get_progress_history(user_id):
            if record.completed_day is not None and record.completed_day not in by_day:
                by_day[record.completed_day] = record
        return by_day

    def record_answer(
        self,
        user_id: str,
        question_id: str,
        is_correct: bool,
        category: Optional[str],
        completed_day: date,
    ) -> ProgressRecord:
        return self._repository.record_progress(
            user_id, question_id, is_correct, category, completed_day
        )
