"""
Productivity Scoring for Stride.

This module turns a task's difficulty, progress and timing into productivity
points, rates how well time estimates held up, and compares a day's score
against the user's running average.

Scoring Formula:
---------------
base_points      = difficulty_multiplier * (progress / 100)
efficiency_bonus = base_points * 0.2   if completed under the estimate
focus_bonus      = base_points * 0.1   if 3+ task types were worked today
total_points     = round(base_points + efficiency_bonus + focus_bonus)

The breakdown components are rounded to one decimal for display only;
``total_points`` is always rounded from the unrounded sum.

Every function here is pure: nothing is read from or written to the store.
"""

from dataclasses import dataclass
from datetime import datetime
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional

from .models import Difficulty
from .utils import round_half_up


# ==================== Difficulty Table ====================

DIFFICULTY_MULTIPLIERS: Mapping[str, int] = MappingProxyType({
    Difficulty.TRIVIAL: 1,
    Difficulty.EASY: 2,
    Difficulty.MEDIUM: 3,
    Difficulty.HARD: 5,
    Difficulty.EXTREME: 8,
})


def difficulty_multiplier(level: str) -> int:
    """Base point multiplier for a difficulty level."""
    return DIFFICULTY_MULTIPLIERS[level]


# ==================== Value Objects ====================

@dataclass(frozen=True)
class TaskSnapshot:
    """
    The scoring-relevant projection of a task.

    Calculators only read these attributes, so a ``Task`` row works just as
    well; the snapshot exists for callers holding data outside the store.
    """
    difficulty: str = Difficulty.MEDIUM
    progress: int = 0
    estimated_minutes: Optional[int] = None
    actual_minutes: int = 0
    max_minutes: Optional[int] = None
    due_date: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_task(cls, task) -> "TaskSnapshot":
        return cls(
            difficulty=task.difficulty,
            progress=task.progress,
            estimated_minutes=task.estimated_minutes,
            actual_minutes=task.actual_minutes,
            max_minutes=task.max_minutes,
            due_date=task.due_date,
            updated_at=task.updated_at,
        )


@dataclass(frozen=True)
class ScoringContext:
    """Signals about the user's day that are not stored on the task."""
    task_types_worked_today: int = 0


@dataclass(frozen=True)
class TaskScore:
    """Point breakdown for a single task."""
    base_points: float = 0.0
    efficiency_bonus: float = 0.0
    focus_bonus: float = 0.0
    total_points: int = 0

    def to_dict(self) -> Dict:
        return {
            'base_points': self.base_points,
            'efficiency_bonus': self.efficiency_bonus,
            'focus_bonus': self.focus_bonus,
            'total_points': self.total_points
        }


# ==================== Scorer ====================

class ProductivityScorer:
    """
    Calculates productivity points, efficiency and trend ratings.

    The thresholds are fixed class constants; there is nothing to configure
    per instance, but keeping them on a class makes them easy to reference
    from reports and tests.
    """

    EFFICIENCY_BONUS_RATE = 0.2
    FOCUS_BONUS_RATE = 0.1
    FOCUS_TASK_TYPES_THRESHOLD = 3

    # First match wins, checked top to bottom
    EFFICIENCY_LABELS = (
        (1.5, 'Exceptional'),
        (1.2, 'Excellent'),
        (1.0, 'Good'),
        (0.8, 'Fair'),
    )
    EFFICIENCY_FALLBACK_LABEL = 'Needs Improvement'

    GREAT_TREND_PERCENT = 20

    def calculate_task_score(self, task, context: ScoringContext) -> TaskScore:
        """
        Calculate productivity points for a task.

        The efficiency bonus needs a completed task with an estimate that the
        tracked time came in under. The focus bonus needs the user to have
        worked on at least three task types today.
        """
        base_points = difficulty_multiplier(task.difficulty) * (task.progress / 100)

        efficiency_bonus = 0.0
        if (
            task.progress == 100
            and task.estimated_minutes is not None
            and task.actual_minutes < task.estimated_minutes
        ):
            efficiency_bonus = base_points * self.EFFICIENCY_BONUS_RATE

        focus_bonus = 0.0
        if context.task_types_worked_today >= self.FOCUS_TASK_TYPES_THRESHOLD:
            focus_bonus = base_points * self.FOCUS_BONUS_RATE

        total_points = round_half_up(base_points + efficiency_bonus + focus_bonus)

        return TaskScore(
            base_points=round_half_up(base_points, 1),
            efficiency_bonus=round_half_up(efficiency_bonus, 1),
            focus_bonus=round_half_up(focus_bonus, 1),
            total_points=total_points
        )

    def calculate_efficiency(self, task) -> float:
        """
        Ratio of estimated to actual time.

        1.0 means on estimate, above 1.0 under time, below 1.0 over time.
        Tasks without an estimate (or a zero one) or without tracked time
        rate 1.0.
        """
        if not task.estimated_minutes or task.actual_minutes == 0:
            return 1.0
        return task.estimated_minutes / task.actual_minutes

    def get_efficiency_label(self, efficiency: float) -> str:
        for threshold, label in self.EFFICIENCY_LABELS:
            if efficiency >= threshold:
                return label
        return self.EFFICIENCY_FALLBACK_LABEL

    def calculate_daily_score(
        self,
        completed_tasks: Iterable,
        context: ScoringContext
    ) -> int:
        """Sum of total points over the tasks completed in a day."""
        return sum(
            self.calculate_task_score(task, context).total_points
            for task in completed_tasks
        )

    def calculate_trend(self, today_score: float, average_score: float) -> float:
        """
        Today's score as a multiple of the average (1.25 = 125% of average).

        A zero average has nothing to compare against and reads as neutral.
        """
        if average_score == 0:
            return 1.0
        return today_score / average_score

    def get_trend_label(self, trend: float) -> str:
        percentage = round_half_up((trend - 1) * 100)

        if percentage > self.GREAT_TREND_PERCENT:
            return f"{percentage}% above your average—great focus today!"
        if percentage > 0:
            return f"{percentage}% above your average"
        if percentage == 0:
            return "Right on your average"
        if percentage > -self.GREAT_TREND_PERCENT:
            return f"{abs(percentage)}% below your average"
        return f"{abs(percentage)}% below your average—take it easy"


# Shared stateless instance for module-level callers
scorer = ProductivityScorer()
