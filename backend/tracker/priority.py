"""
Priority Scoring for day planning.

Suggests which tasks to work on by adding up flat point bands:

- Due date urgency:   overdue +40, due in a day +35, within a week +25,
                      within a month +10
- Near completion:    80%+ done +30, 50%+ done +15
- Time constraint:    at most 20% of the time budget left +20,
                      at most 50% left +10
- Neglect:            untouched for 7+ days +10, for 3+ days +5

The bands are plain additions, not weights of a 100 point scale, so the
score has no fixed maximum. It is only meaningful as a sort key and is
recomputed on every call since it drifts with "today".
"""

from datetime import date, datetime
from typing import Iterable, List, Tuple, Union

from .models import TaskStatus
from .utils import days_between

Today = Union[date, datetime]


class TaskPrioritizer:
    """Scores and orders tasks by how urgently they need attention."""

    OVERDUE_POINTS = 40
    DUE_NEXT_DAY_POINTS = 35
    # (max days until due, points), checked after overdue and next day
    DUE_BANDS = (
        (7, 25),
        (30, 10),
    )

    NEAR_DONE_PROGRESS = 80
    NEAR_DONE_POINTS = 30
    HALF_DONE_PROGRESS = 50
    HALF_DONE_POINTS = 15

    CRITICAL_TIME_LEFT = 0.2
    CRITICAL_TIME_POINTS = 20
    LOW_TIME_LEFT = 0.5
    LOW_TIME_POINTS = 10

    LONG_NEGLECT_DAYS = 7
    LONG_NEGLECT_POINTS = 10
    SHORT_NEGLECT_DAYS = 3
    SHORT_NEGLECT_POINTS = 5

    CLOSED_STATUSES = (TaskStatus.COMPLETED, TaskStatus.ARCHIVED)

    def calculate_due_date_points(self, task, today: Today) -> int:
        if not task.due_date:
            return 0

        days_until_due = days_between(task.due_date, today)
        if days_until_due <= 0:
            return self.OVERDUE_POINTS
        if days_until_due == 1:
            return self.DUE_NEXT_DAY_POINTS
        for max_days, points in self.DUE_BANDS:
            if days_until_due <= max_days:
                return points
        return 0

    def calculate_completion_points(self, task) -> int:
        if task.progress >= self.NEAR_DONE_PROGRESS:
            return self.NEAR_DONE_POINTS
        if task.progress >= self.HALF_DONE_PROGRESS:
            return self.HALF_DONE_POINTS
        return 0

    def calculate_time_constraint_points(self, task) -> int:
        # A task with no tracked time yet gets no points here, even with a
        # budget set: zero actual minutes is treated the same as missing.
        if not (task.max_minutes and task.actual_minutes):
            return 0

        time_remaining = task.max_minutes - task.actual_minutes
        percent_remaining = time_remaining / task.max_minutes

        if percent_remaining <= self.CRITICAL_TIME_LEFT:
            return self.CRITICAL_TIME_POINTS
        if percent_remaining <= self.LOW_TIME_LEFT:
            return self.LOW_TIME_POINTS
        return 0

    def calculate_neglect_points(self, task, today: Today) -> int:
        if not task.updated_at:
            return 0

        days_since_update = days_between(today, task.updated_at)
        if days_since_update >= self.LONG_NEGLECT_DAYS:
            return self.LONG_NEGLECT_POINTS
        if days_since_update >= self.SHORT_NEGLECT_DAYS:
            return self.SHORT_NEGLECT_POINTS
        return 0

    def calculate_priority(self, task, today: Today) -> int:
        """
        Calculate the priority score for a task (higher = work on it first).

        Args:
            task: A task row or snapshot
            today: Reference point for due-date and neglect calculations

        Returns:
            Sum of the points from every band that applies.
        """
        return (
            self.calculate_due_date_points(task, today) +
            self.calculate_completion_points(task) +
            self.calculate_time_constraint_points(task) +
            self.calculate_neglect_points(task, today)
        )

    def rank_tasks(self, tasks: Iterable, today: Today) -> List[Tuple[object, int]]:
        """
        Score a list of tasks and sort them by priority (highest first).

        Tasks with equal scores keep their input order.
        """
        scored = [(task, self.calculate_priority(task, today)) for task in tasks]
        scored.sort(key=lambda pair: pair[1], reverse=True)
        return scored

    def suggest_tasks(
        self,
        tasks: Iterable,
        today: Today,
        count: int = 3
    ) -> List[Tuple[object, int]]:
        """Top ``count`` open tasks to work on next."""
        open_tasks = [
            task for task in tasks
            if getattr(task, 'status', None) not in self.CLOSED_STATUSES
        ]
        return self.rank_tasks(open_tasks, today)[:count]


prioritizer = TaskPrioritizer()
