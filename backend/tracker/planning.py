"""
Day planning: assigning tasks to calendar days and listing them back.

Each operation is a single conditional UPDATE or a single query against the
task store. A status only moves between BACKLOG and PLANNED; tasks that are
in progress, completed or archived keep their status when their day changes.

Lookups of a missing task raise ``Task.DoesNotExist`` from the store.
"""

import logging
from datetime import date, datetime
from typing import List, Tuple

from django.db.models import Case, F, Value, When
from django.utils import timezone

from .models import Task, TaskStatus
from .priority import prioritizer

logger = logging.getLogger(__name__)


def _apply_day(task_id, planned_for_date, from_status, to_status) -> Task:
    Task.objects.filter(pk=task_id).update(
        planned_for_date=planned_for_date,
        status=Case(
            When(status=from_status, then=Value(to_status)),
            default=F('status'),
        ),
        updated_at=timezone.now(),
    )
    return Task.objects.get(pk=task_id)


def assign_to_day(task_id, planned_for_date: date) -> Task:
    """
    Assign a task to a specific day.

    A backlog task becomes planned; any other status is left alone.
    """
    task = _apply_day(task_id, planned_for_date, TaskStatus.BACKLOG, TaskStatus.PLANNED)
    logger.info("Task %s planned for %s (status %s)", task_id, planned_for_date, task.status)
    return task


def unassign_task(task_id) -> Task:
    """Remove a task from its planned day, returning planned tasks to the backlog."""
    task = _apply_day(task_id, None, TaskStatus.PLANNED, TaskStatus.BACKLOG)
    logger.info("Task %s unplanned (status %s)", task_id, task.status)
    return task


def reschedule_task(task_id, new_date: date) -> Task:
    """Move a task to a different day."""
    return assign_to_day(task_id, new_date)


def get_tasks_for_day(user_id: str, day: date) -> List[Task]:
    """Tasks planned for ``day``, oldest first."""
    return list(
        Task.objects.filter(
            user_id=user_id,
            planned_for_date=day,
            deleted=False,
        ).order_by('created_at')
    )


def get_ongoing_tasks(user_id: str, today: date) -> List[Task]:
    """
    Unfinished tasks whose planned day has already passed.

    Most recently lapsed first.
    """
    return list(
        Task.objects.filter(
            user_id=user_id,
            planned_for_date__lt=today,
            deleted=False,
        ).exclude(
            status__in=[TaskStatus.COMPLETED, TaskStatus.ARCHIVED]
        ).order_by('-planned_for_date')
    )


def get_backlog_tasks(user_id: str) -> List[Task]:
    """Unplanned backlog tasks, newest first."""
    return list(
        Task.objects.filter(
            user_id=user_id,
            planned_for_date__isnull=True,
            status=TaskStatus.BACKLOG,
            deleted=False,
        ).order_by('-created_at')
    )


def suggest_tasks_for_user(user_id: str, now: datetime, count: int = 3) -> List[Tuple[Task, int]]:
    """
    Suggest what the user should work on next.

    Returns up to ``count`` ``(task, priority)`` pairs from the user's open
    tasks, highest priority first.
    """
    candidates = Task.objects.filter(
        user_id=user_id,
        deleted=False,
    ).exclude(
        status__in=[TaskStatus.COMPLETED, TaskStatus.ARCHIVED]
    ).order_by('created_at')

    suggestions = prioritizer.suggest_tasks(candidates, now, count=count)
    logger.debug(
        "Suggested %d task(s) for user %s: %s",
        len(suggestions), user_id, [str(task.pk) for task, _ in suggestions]
    )
    return suggestions
