"""Question access rules."""

from datetime import date
from typing import Optional

from dailydev.domain.models.subscription import SubscriptionSnapshot

# date.weekday() numbering: Monday == 0.
FRIDAY = 4
FREE_DAY = FRIDAY


def can_access(
    snapshot: Optional[SubscriptionSnapshot],
    has_ever_answered: bool,
    today: date,
    free_day: int = FREE_DAY,
) -> bool:
    """
    Decide whether the user may open today's question.

    Access is granted to subscribers (active or trialing), to users who have
    never answered a question, and to everyone on the free weekday.
    """
    if snapshot is not None and snapshot.is_active():
        return True
    if not has_ever_answered:
        return True
    return today.weekday() == free_day
