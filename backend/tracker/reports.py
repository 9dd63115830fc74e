"""
Daily productivity figures for a user, read from the task store.

Builds the inputs the scorer needs (completed tasks, how many task types
were worked on) for a given calendar day and runs the scorer over them.
Days are interpreted in the configured ``TIME_ZONE``.
"""

import logging
from datetime import date, timedelta
from typing import Dict, List

from .models import Task, TaskStatus, TimeEntry
from .scoring import ScoringContext, scorer

logger = logging.getLogger(__name__)

DEFAULT_AVERAGE_WINDOW_DAYS = 30


def scoring_context_for_day(user_id: str, day: date) -> ScoringContext:
    """Count the distinct task types the user tracked time on during ``day``."""
    # order_by() drops the default ordering so it does not leak into DISTINCT
    task_type_count = (
        TimeEntry.objects.filter(
            user_id=user_id,
            started_at__date=day,
            task__task_type_id__isnull=False,
        )
        .order_by()
        .values_list('task__task_type_id', flat=True)
        .distinct()
        .count()
    )
    return ScoringContext(task_types_worked_today=task_type_count)


def completed_tasks_for_day(user_id: str, day: date) -> List[Task]:
    return list(
        Task.objects.filter(
            user_id=user_id,
            status=TaskStatus.COMPLETED,
            completed_at__date=day,
            deleted=False,
        ).order_by('completed_at')
    )


def daily_score_for_user(user_id: str, day: date) -> int:
    """Productivity points earned by the user on ``day``."""
    context = scoring_context_for_day(user_id, day)
    return scorer.calculate_daily_score(completed_tasks_for_day(user_id, day), context)


def average_daily_score(
    user_id: str,
    day: date,
    days: int = DEFAULT_AVERAGE_WINDOW_DAYS
) -> float:
    """Mean daily score over the ``days`` days before ``day`` (``day`` excluded)."""
    if days <= 0:
        return 0.0
    total = sum(
        daily_score_for_user(user_id, day - timedelta(days=offset))
        for offset in range(1, days + 1)
    )
    return total / days


def daily_trend(user_id: str, day: date, days: int = DEFAULT_AVERAGE_WINDOW_DAYS) -> Dict:
    """Today's score next to the rolling average, with a readable label."""
    score = daily_score_for_user(user_id, day)
    average = average_daily_score(user_id, day, days)
    trend = scorer.calculate_trend(score, average)

    logger.debug("Trend for user %s on %s: %s vs %.2f", user_id, day, score, average)
    return {
        'date': day.isoformat(),
        'score': score,
        'average': round(average, 2),
        'trend': round(trend, 2),
        'label': scorer.get_trend_label(trend)
    }
