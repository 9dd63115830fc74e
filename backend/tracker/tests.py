"""
Unit Tests for the Stride tracker.

Covers the productivity scorer, the planning priority score, day planning
queries, task services with sub-task rollups, time tracking, permissions
and the per-user daily reports.
"""

from datetime import date, datetime, timedelta, timezone as dt_timezone
from itertools import permutations
import uuid

from django.test import SimpleTestCase, TestCase, override_settings
from django.utils import timezone

from .exceptions import ErrorCode, TaskValidationError, TimeEntryError
from .models import (
    BillingPeriod,
    Difficulty,
    Role,
    SubscriptionHistory,
    SubscriptionStatus,
    Task,
    TaskStatus,
    TimeEntry,
    UserSubscription,
)
from . import permissions, planning, reports, services
from .priority import TaskPrioritizer
from .scoring import (
    DIFFICULTY_MULTIPLIERS,
    ProductivityScorer,
    ScoringContext,
    TaskSnapshot,
    difficulty_multiplier,
)
from .time_tracking import TimeEntryService
from .utils import days_between, round_half_up

USER = 'user-1'
PROJECT = 'project-1'


def make_task(**kwargs):
    """Create a stored task with sensible defaults."""
    values = {
        'user_id': USER,
        'project_id': PROJECT,
        'title': 'Task',
    }
    values.update(kwargs)
    return Task.objects.create(**values)


# ==================== Helpers ====================

class RoundingTests(SimpleTestCase):
    """Tests for the half-up rounding helper."""

    def test_halves_round_up(self):
        self.assertEqual(round_half_up(6.5), 7)
        self.assertEqual(round_half_up(2.5), 3)

    def test_negative_halves_round_toward_positive(self):
        self.assertEqual(round_half_up(-2.5), -2)
        self.assertEqual(round_half_up(-2.6), -3)

    def test_one_decimal_place(self):
        self.assertEqual(round_half_up(0.45, 1), 0.5)
        self.assertEqual(round_half_up(1.04, 1), 1.0)

    def test_whole_number_result_is_int(self):
        self.assertIsInstance(round_half_up(3.2), int)


class DaysBetweenTests(SimpleTestCase):
    """Tests for the day difference helper."""

    def test_plain_dates(self):
        self.assertEqual(days_between(date(2025, 6, 12), date(2025, 6, 10)), 2)

    def test_partial_days_round_up(self):
        start = datetime(2025, 6, 10, 12, 0, tzinfo=dt_timezone.utc)
        self.assertEqual(days_between(start + timedelta(hours=25), start), 2)
        self.assertEqual(days_between(start - timedelta(hours=1), start), 0)

    def test_date_against_aware_datetime(self):
        noon = datetime(2025, 6, 10, 12, 0, tzinfo=dt_timezone.utc)
        self.assertEqual(days_between(date(2025, 6, 11), noon), 1)


# ==================== Productivity scoring ====================

class DifficultyTableTests(SimpleTestCase):
    """Tests for the difficulty multipliers."""

    def test_fixed_multipliers(self):
        expected = {
            Difficulty.TRIVIAL: 1,
            Difficulty.EASY: 2,
            Difficulty.MEDIUM: 3,
            Difficulty.HARD: 5,
            Difficulty.EXTREME: 8,
        }
        for level, multiplier in expected.items():
            self.assertEqual(difficulty_multiplier(level), multiplier)

    def test_every_level_has_a_distinct_multiplier(self):
        values = [difficulty_multiplier(level) for level in Difficulty.values]
        self.assertEqual(len(set(values)), len(Difficulty.values))

    def test_plain_string_levels_work(self):
        self.assertEqual(difficulty_multiplier('HARD'), 5)

    def test_table_is_read_only(self):
        with self.assertRaises(TypeError):
            DIFFICULTY_MULTIPLIERS[Difficulty.HARD] = 10


class TaskScoreTests(SimpleTestCase):
    """Tests for per-task productivity points."""

    def setUp(self):
        self.scorer = ProductivityScorer()
        self.no_focus = ScoringContext(task_types_worked_today=0)
        self.focused = ScoringContext(task_types_worked_today=3)

    def test_completed_under_estimate_with_focus(self):
        """HARD task done in 45 of 60 minutes with 3 task types: 5 + 1 + 0.5 -> 7."""
        task = TaskSnapshot(
            difficulty=Difficulty.HARD,
            progress=100,
            estimated_minutes=60,
            actual_minutes=45
        )
        score = self.scorer.calculate_task_score(task, self.focused)

        self.assertEqual(score.base_points, 5.0)
        self.assertEqual(score.efficiency_bonus, 1.0)
        self.assertEqual(score.focus_bonus, 0.5)
        self.assertEqual(score.total_points, 7)

    def test_no_progress_scores_zero(self):
        task = TaskSnapshot(difficulty=Difficulty.EXTREME, progress=0)
        score = self.scorer.calculate_task_score(task, self.focused)

        self.assertEqual(score.base_points, 0)
        self.assertEqual(score.total_points, 0)

    def test_partial_progress_scales_base_points(self):
        task = TaskSnapshot(difficulty=Difficulty.EXTREME, progress=50)
        score = self.scorer.calculate_task_score(task, self.no_focus)

        self.assertEqual(score.base_points, 4.0)
        self.assertEqual(score.total_points, 4)

    def test_efficiency_bonus_requires_finishing_under_estimate(self):
        """Matching or exceeding the estimate removes the bonus."""
        for actual in (60, 75):
            task = TaskSnapshot(
                difficulty=Difficulty.HARD,
                progress=100,
                estimated_minutes=60,
                actual_minutes=actual
            )
            score = self.scorer.calculate_task_score(task, self.no_focus)
            self.assertEqual(score.efficiency_bonus, 0)
            self.assertEqual(score.total_points, 5)

    def test_efficiency_bonus_requires_completion(self):
        task = TaskSnapshot(
            difficulty=Difficulty.EXTREME,
            progress=99,
            estimated_minutes=60,
            actual_minutes=10
        )
        score = self.scorer.calculate_task_score(task, self.no_focus)
        self.assertEqual(score.efficiency_bonus, 0)

    def test_efficiency_bonus_requires_estimate(self):
        task = TaskSnapshot(difficulty=Difficulty.HARD, progress=100, actual_minutes=10)
        score = self.scorer.calculate_task_score(task, self.no_focus)
        self.assertEqual(score.efficiency_bonus, 0)

    def test_focus_bonus_threshold(self):
        task = TaskSnapshot(difficulty=Difficulty.HARD, progress=100)

        two_types = self.scorer.calculate_task_score(task, ScoringContext(2))
        three_types = self.scorer.calculate_task_score(task, ScoringContext(3))

        self.assertEqual(two_types.focus_bonus, 0)
        self.assertEqual(three_types.focus_bonus, 0.5)

    def test_total_rounds_from_unrounded_sum(self):
        """0.45 base shows as 0.5 but the total is rounded from 0.45."""
        task = TaskSnapshot(difficulty=Difficulty.TRIVIAL, progress=45)
        score = self.scorer.calculate_task_score(task, self.no_focus)

        self.assertEqual(score.base_points, 0.5)
        self.assertEqual(score.total_points, 0)

    def test_total_points_never_negative(self):
        for level in Difficulty.values:
            for progress in (0, 1, 50, 100):
                task = TaskSnapshot(difficulty=level, progress=progress)
                score = self.scorer.calculate_task_score(task, self.focused)
                self.assertGreaterEqual(score.total_points, 0)

    def test_scores_unsaved_task_rows(self):
        task = Task(difficulty=Difficulty.MEDIUM, progress=100, estimated_minutes=30, actual_minutes=20)
        from_row = self.scorer.calculate_task_score(task, self.no_focus)
        from_snapshot = self.scorer.calculate_task_score(TaskSnapshot.from_task(task), self.no_focus)

        self.assertEqual(from_row, from_snapshot)
        self.assertEqual(from_row.total_points, 4)

    def test_to_dict(self):
        task = TaskSnapshot(difficulty=Difficulty.EASY, progress=100)
        result = self.scorer.calculate_task_score(task, self.no_focus).to_dict()

        self.assertEqual(result, {
            'base_points': 2.0,
            'efficiency_bonus': 0.0,
            'focus_bonus': 0.0,
            'total_points': 2
        })


class EfficiencyTests(SimpleTestCase):
    """Tests for the efficiency ratio and its labels."""

    def setUp(self):
        self.scorer = ProductivityScorer()

    def test_missing_estimate_is_neutral(self):
        task = TaskSnapshot(actual_minutes=30)
        self.assertEqual(self.scorer.calculate_efficiency(task), 1.0)

    def test_no_tracked_time_is_neutral(self):
        task = TaskSnapshot(estimated_minutes=30, actual_minutes=0)
        self.assertEqual(self.scorer.calculate_efficiency(task), 1.0)

    def test_zero_estimate_is_neutral(self):
        """A zero estimate counts as no estimate."""
        task = TaskSnapshot(estimated_minutes=0, actual_minutes=30)
        efficiency = self.scorer.calculate_efficiency(task)

        self.assertEqual(efficiency, 1.0)
        self.assertEqual(self.scorer.get_efficiency_label(efficiency), 'Good')

    def test_ratio_of_estimate_to_actual(self):
        under = TaskSnapshot(estimated_minutes=60, actual_minutes=40)
        over = TaskSnapshot(estimated_minutes=60, actual_minutes=120)

        self.assertAlmostEqual(self.scorer.calculate_efficiency(under), 1.5)
        self.assertAlmostEqual(self.scorer.calculate_efficiency(over), 0.5)

    def test_labels(self):
        cases = [
            (2.0, 'Exceptional'),
            (1.5, 'Exceptional'),
            (1.2, 'Excellent'),
            (1.19, 'Good'),
            (1.0, 'Good'),
            (0.8, 'Fair'),
            (0.79, 'Needs Improvement'),
            (0.0, 'Needs Improvement'),
        ]
        for efficiency, label in cases:
            self.assertEqual(self.scorer.get_efficiency_label(efficiency), label)


class DailyScoreTests(SimpleTestCase):
    """Tests for summing a day's completed tasks."""

    def setUp(self):
        self.scorer = ProductivityScorer()
        self.context = ScoringContext(task_types_worked_today=0)
        self.tasks = [
            TaskSnapshot(difficulty=Difficulty.HARD, progress=100),
            TaskSnapshot(difficulty=Difficulty.MEDIUM, progress=50),
            TaskSnapshot(difficulty=Difficulty.TRIVIAL, progress=100),
        ]

    def test_empty_day_scores_zero(self):
        self.assertEqual(self.scorer.calculate_daily_score([], self.context), 0)

    def test_sums_total_points(self):
        # 5 + round(1.5) + 1
        self.assertEqual(self.scorer.calculate_daily_score(self.tasks, self.context), 8)

    def test_order_does_not_matter(self):
        results = {
            self.scorer.calculate_daily_score(list(order), self.context)
            for order in permutations(self.tasks)
        }
        self.assertEqual(results, {8})


class TrendTests(SimpleTestCase):
    """Tests for the trend ratio and labels."""

    def setUp(self):
        self.scorer = ProductivityScorer()

    def test_zero_average_is_neutral(self):
        for today in (0, 5, 120):
            self.assertEqual(self.scorer.calculate_trend(today, 0), 1.0)

    def test_ratio_to_average(self):
        self.assertEqual(self.scorer.calculate_trend(15, 10), 1.5)
        self.assertEqual(self.scorer.calculate_trend(5, 10), 0.5)

    def test_well_above_average(self):
        self.assertEqual(
            self.scorer.get_trend_label(1.5),
            "50% above your average—great focus today!"
        )

    def test_slightly_above_average(self):
        self.assertEqual(self.scorer.get_trend_label(1.1), "10% above your average")

    def test_exactly_twenty_percent_is_not_great(self):
        self.assertEqual(self.scorer.get_trend_label(1.2), "20% above your average")

    def test_on_average(self):
        self.assertEqual(self.scorer.get_trend_label(1.0), "Right on your average")
        self.assertEqual(self.scorer.get_trend_label(1.004), "Right on your average")

    def test_slightly_below_average(self):
        self.assertEqual(self.scorer.get_trend_label(0.9), "10% below your average")

    def test_well_below_average(self):
        self.assertEqual(
            self.scorer.get_trend_label(0.8),
            "20% below your average—take it easy"
        )
        self.assertEqual(
            self.scorer.get_trend_label(0.5),
            "50% below your average—take it easy"
        )


# ==================== Priority ====================

class PriorityScoreTests(SimpleTestCase):
    """Tests for the planning priority bands."""

    def setUp(self):
        self.prioritizer = TaskPrioritizer()
        self.today = datetime(2025, 6, 10, 12, 0, tzinfo=dt_timezone.utc)

    def priority(self, **kwargs):
        return self.prioritizer.calculate_priority(TaskSnapshot(**kwargs), self.today)

    def test_due_tomorrow_nearly_done_and_neglected(self):
        """35 (due) + 30 (completion) + 0 (time) + 10 (neglect) = 75."""
        score = self.priority(
            due_date=self.today + timedelta(days=1),
            progress=85,
            updated_at=self.today - timedelta(days=10)
        )
        self.assertEqual(score, 75)

    def test_nothing_applies(self):
        self.assertEqual(self.priority(progress=10), 0)

    def test_due_date_bands(self):
        cases = [
            (timedelta(days=-3), 40),
            (timedelta(hours=-1), 40),
            (timedelta(0), 40),
            (timedelta(days=1), 35),
            (timedelta(days=1, hours=1), 25),
            (timedelta(days=7), 25),
            (timedelta(days=8), 10),
            (timedelta(days=30), 10),
            (timedelta(days=31), 0),
        ]
        for offset, points in cases:
            self.assertEqual(
                self.priority(due_date=self.today + offset),
                points,
                msg=f"due in {offset}"
            )

    def test_completion_bands(self):
        cases = [(100, 30), (80, 30), (79, 15), (50, 15), (49, 0)]
        for progress, points in cases:
            self.assertEqual(self.priority(progress=progress), points)

    def test_time_constraint_bands(self):
        cases = [
            (85, 20),   # 15% left
            (80, 20),   # 20% left
            (60, 10),   # 40% left
            (50, 10),   # 50% left
            (30, 0),    # 70% left
            (120, 20),  # over budget
        ]
        for actual, points in cases:
            self.assertEqual(
                self.priority(max_minutes=100, actual_minutes=actual),
                points,
                msg=f"{actual} of 100 minutes"
            )

    def test_time_constraint_ignored_without_tracked_time(self):
        """Zero actual minutes counts as missing, even with a budget set."""
        self.assertEqual(self.priority(max_minutes=100, actual_minutes=0), 0)

    def test_time_constraint_ignored_without_budget(self):
        self.assertEqual(self.priority(max_minutes=None, actual_minutes=90), 0)

    def test_neglect_bands(self):
        cases = [
            (timedelta(days=10), 10),
            (timedelta(days=7), 10),
            (timedelta(days=6), 5),
            (timedelta(days=3), 5),
            (timedelta(days=2, hours=12), 5),
            (timedelta(days=2), 0),
            (timedelta(0), 0),
        ]
        for age, points in cases:
            self.assertEqual(
                self.priority(updated_at=self.today - age),
                points,
                msg=f"updated {age} ago"
            )

    def test_bands_add_up_past_one_hundred(self):
        score = self.priority(
            due_date=self.today - timedelta(days=1),
            progress=90,
            max_minutes=100,
            actual_minutes=95,
            updated_at=self.today - timedelta(days=8)
        )
        self.assertEqual(score, 100)

    def test_plain_dates(self):
        task = TaskSnapshot(due_date=date(2025, 6, 11), updated_at=date(2025, 6, 7))
        self.assertEqual(self.prioritizer.calculate_priority(task, date(2025, 6, 10)), 35 + 5)


class RankingTests(SimpleTestCase):
    """Tests for ordering and suggesting tasks by priority."""

    def setUp(self):
        self.prioritizer = TaskPrioritizer()
        self.today = datetime(2025, 6, 10, 12, 0, tzinfo=dt_timezone.utc)

    def make(self, title, **kwargs):
        kwargs.setdefault('updated_at', None)
        return Task(title=title, **kwargs)

    def test_rank_highest_first(self):
        low = self.make('low', progress=0)
        high = self.make('high', due_date=self.today - timedelta(days=2))
        mid = self.make('mid', progress=60)

        ranked = self.prioritizer.rank_tasks([low, high, mid], self.today)

        self.assertEqual([task.title for task, _ in ranked], ['high', 'mid', 'low'])
        self.assertEqual([score for _, score in ranked], [40, 15, 0])

    def test_ties_keep_input_order(self):
        first = self.make('first', progress=55)
        second = self.make('second', progress=60)

        ranked = self.prioritizer.rank_tasks([first, second], self.today)
        self.assertEqual([task.title for task, _ in ranked], ['first', 'second'])

    def test_suggestions_skip_closed_tasks(self):
        done = self.make('done', status=TaskStatus.COMPLETED, progress=100)
        archived = self.make('archived', status=TaskStatus.ARCHIVED, progress=90)
        open_task = self.make('open', status=TaskStatus.PLANNED, progress=10)

        suggested = self.prioritizer.suggest_tasks([done, archived, open_task], self.today)
        self.assertEqual([task.title for task, _ in suggested], ['open'])

    def test_suggestions_respect_count(self):
        tasks = [self.make(f'task {i}', progress=i * 10) for i in range(10)]
        suggested = self.prioritizer.suggest_tasks(tasks, self.today, count=3)

        self.assertEqual(len(suggested), 3)
        self.assertEqual(suggested[0][0].title, 'task 8')


# ==================== Planning ====================

class AssignmentTests(TestCase):
    """Tests for assigning tasks to days."""

    def setUp(self):
        self.day = date(2025, 6, 10)
        self.stale = timezone.now() - timedelta(days=10)

    def test_assign_moves_backlog_to_planned(self):
        task = make_task(updated_at=self.stale)

        updated = planning.assign_to_day(task.pk, self.day)

        self.assertEqual(updated.planned_for_date, self.day)
        self.assertEqual(updated.status, TaskStatus.PLANNED)
        self.assertGreater(updated.updated_at, self.stale)

    def test_assign_keeps_other_statuses(self):
        task = make_task(status=TaskStatus.IN_PROGRESS)

        updated = planning.assign_to_day(task.pk, self.day)

        self.assertEqual(updated.status, TaskStatus.IN_PROGRESS)
        self.assertEqual(updated.planned_for_date, self.day)

    def test_unassign_returns_planned_to_backlog(self):
        task = make_task(status=TaskStatus.PLANNED, planned_for_date=self.day, updated_at=self.stale)

        updated = planning.unassign_task(task.pk)

        self.assertIsNone(updated.planned_for_date)
        self.assertEqual(updated.status, TaskStatus.BACKLOG)
        self.assertGreater(updated.updated_at, self.stale)

    def test_unassign_keeps_other_statuses(self):
        task = make_task(status=TaskStatus.IN_PROGRESS, planned_for_date=self.day)

        updated = planning.unassign_task(task.pk)

        self.assertIsNone(updated.planned_for_date)
        self.assertEqual(updated.status, TaskStatus.IN_PROGRESS)

    def test_assign_then_unassign_restores_backlog(self):
        task = make_task()

        planning.assign_to_day(task.pk, self.day)
        restored = planning.unassign_task(task.pk)

        self.assertEqual(restored.status, TaskStatus.BACKLOG)
        self.assertIsNone(restored.planned_for_date)

    def test_reschedule_changes_day(self):
        task = make_task()
        planning.assign_to_day(task.pk, self.day)

        moved = planning.reschedule_task(task.pk, self.day + timedelta(days=2))

        self.assertEqual(moved.planned_for_date, self.day + timedelta(days=2))
        self.assertEqual(moved.status, TaskStatus.PLANNED)

    def test_missing_task_raises(self):
        with self.assertRaises(Task.DoesNotExist):
            planning.assign_to_day(uuid.uuid4(), self.day)
        with self.assertRaises(Task.DoesNotExist):
            planning.unassign_task(uuid.uuid4())


class PlanningQueryTests(TestCase):
    """Tests for the day, ongoing and backlog listings."""

    def setUp(self):
        self.today = date(2025, 6, 10)
        self.base = datetime(2025, 6, 1, 9, 0, tzinfo=dt_timezone.utc)

    def created(self, hours):
        return self.base + timedelta(hours=hours)

    def test_tasks_for_day_oldest_first(self):
        later = make_task(title='later', planned_for_date=self.today, created_at=self.created(2))
        earlier = make_task(title='earlier', planned_for_date=self.today, created_at=self.created(1))
        make_task(title='deleted', planned_for_date=self.today, deleted=True)
        make_task(title='other day', planned_for_date=self.today + timedelta(days=1))
        make_task(title='other user', user_id='user-2', planned_for_date=self.today)

        tasks = planning.get_tasks_for_day(USER, self.today)

        self.assertEqual([t.pk for t in tasks], [earlier.pk, later.pk])

    def test_ongoing_tasks_most_recently_lapsed_first(self):
        old = make_task(title='old', status=TaskStatus.PLANNED,
                        planned_for_date=self.today - timedelta(days=5))
        recent = make_task(title='recent', status=TaskStatus.IN_PROGRESS,
                           planned_for_date=self.today - timedelta(days=1))
        make_task(title='today', status=TaskStatus.PLANNED, planned_for_date=self.today)
        make_task(title='done', status=TaskStatus.COMPLETED,
                  planned_for_date=self.today - timedelta(days=2))
        make_task(title='archived', status=TaskStatus.ARCHIVED,
                  planned_for_date=self.today - timedelta(days=2))
        make_task(title='deleted', status=TaskStatus.PLANNED, deleted=True,
                  planned_for_date=self.today - timedelta(days=2))
        make_task(title='unplanned')

        tasks = planning.get_ongoing_tasks(USER, self.today)

        self.assertEqual([t.pk for t in tasks], [recent.pk, old.pk])

    def test_backlog_newest_first(self):
        older = make_task(title='older', created_at=self.created(1))
        newer = make_task(title='newer', created_at=self.created(5))
        make_task(title='planned', status=TaskStatus.PLANNED, planned_for_date=self.today)
        make_task(title='in progress', status=TaskStatus.IN_PROGRESS)
        make_task(title='deleted', deleted=True)

        tasks = planning.get_backlog_tasks(USER)

        self.assertEqual([t.pk for t in tasks], [newer.pk, older.pk])

    def test_suggest_tasks_for_user(self):
        now = timezone.now()
        due_soon = make_task(title='due soon', due_date=now + timedelta(days=1))
        idle = make_task(title='idle')
        overdue = make_task(title='overdue', due_date=now - timedelta(days=1))
        make_task(title='done', status=TaskStatus.COMPLETED, progress=100,
                  due_date=now - timedelta(days=3))
        make_task(title='not mine', user_id='user-2', due_date=now - timedelta(days=3))

        suggested = planning.suggest_tasks_for_user(USER, now)

        self.assertEqual([task.pk for task, _ in suggested], [overdue.pk, due_soon.pk, idle.pk])
        self.assertEqual([score for _, score in suggested], [40, 35, 0])

        top_two = planning.suggest_tasks_for_user(USER, now, count=2)
        self.assertEqual(len(top_two), 2)


# ==================== Task services ====================

class CreateTaskTests(TestCase):
    """Tests for task creation and its validation rules."""

    def params(self, **kwargs):
        values = {'title': 'Write report', 'project_id': PROJECT}
        values.update(kwargs)
        return values

    def assertInvalid(self, params, field, message):
        with self.assertRaises(TaskValidationError) as ctx:
            services.create_task(USER, params)
        self.assertEqual(ctx.exception.field, field)
        self.assertEqual(ctx.exception.message, message)
        return ctx.exception

    def test_creates_backlog_task_with_defaults(self):
        task = services.create_task(USER, self.params(
            title='  Write report  ',
            description='  draft  ',
            estimated_minutes=30,
            max_minutes=60
        ))

        task.refresh_from_db()
        self.assertEqual(task.title, 'Write report')
        self.assertEqual(task.description, 'draft')
        self.assertEqual(task.difficulty, Difficulty.MEDIUM)
        self.assertEqual(task.status, TaskStatus.BACKLOG)
        self.assertEqual(task.progress, 0)
        self.assertEqual(task.actual_minutes, 0)
        self.assertEqual(task.estimated_minutes, 30)
        self.assertEqual(task.max_minutes, 60)
        self.assertEqual(task.user_id, USER)
        self.assertFalse(task.deleted)

    def test_blank_description_is_stored_as_null(self):
        task = services.create_task(USER, self.params(description='   '))
        self.assertIsNone(task.description)

    def test_creates_sub_task(self):
        parent = make_task(title='parent')
        child = services.create_task(USER, self.params(parent_task_id=str(parent.pk)))
        self.assertEqual(child.parent_id, parent.pk)

    def test_title_required(self):
        error = self.assertInvalid(self.params(title=None), 'title', 'Task title is required')
        self.assertEqual(error.code, ErrorCode.ERR_MISSING_FIELD)
        self.assertInvalid(self.params(title='   '), 'title', 'Task title is required')

        params = self.params()
        del params['title']
        self.assertInvalid(params, 'title', 'Task title is required')

    def test_title_length(self):
        self.assertInvalid(
            self.params(title='x' * 201),
            'title',
            'Task title must be under 200 characters'
        )

    def test_project_required(self):
        params = self.params()
        del params['project_id']
        self.assertInvalid(params, 'project_id', 'Task must belong to a project')

    def test_negative_times(self):
        error = self.assertInvalid(
            self.params(estimated_minutes=-1),
            'estimated_minutes',
            'Estimated time cannot be negative'
        )
        self.assertEqual(error.code, ErrorCode.ERR_INVALID_FIELD)
        self.assertInvalid(
            self.params(max_minutes=-5),
            'max_minutes',
            'Max time cannot be negative'
        )

    def test_estimate_cannot_exceed_max(self):
        self.assertInvalid(
            self.params(estimated_minutes=90, max_minutes=60),
            'estimated_minutes',
            'Estimated time cannot exceed max time'
        )

    def test_due_date_in_past(self):
        self.assertInvalid(
            self.params(due_date=timezone.now() - timedelta(days=1)),
            'due_date',
            'Due date cannot be in the past'
        )

    def test_description_length(self):
        self.assertInvalid(
            self.params(description='x' * 5001),
            'description',
            'Description must be under 5000 characters'
        )

    def test_unknown_parent(self):
        self.assertInvalid(
            self.params(parent_task_id=str(uuid.uuid4())),
            'parent_task_id',
            'Parent task not found'
        )

    def test_estimate_over_max_reported_before_later_rules(self):
        """With several rules failing, the estimate/max rule is reported first."""
        self.assertInvalid(
            self.params(
                estimated_minutes=10,
                max_minutes=5,
                due_date=timezone.now() - timedelta(days=1)
            ),
            'estimated_minutes',
            'Estimated time cannot exceed max time'
        )
        self.assertInvalid(
            self.params(estimated_minutes=10, max_minutes=5, description='a' * 5001),
            'estimated_minutes',
            'Estimated time cannot exceed max time'
        )

    def test_due_date_reported_before_description_and_parent(self):
        self.assertInvalid(
            self.params(
                due_date=timezone.now() - timedelta(days=1),
                description='a' * 5001,
                parent_task_id=str(uuid.uuid4())
            ),
            'due_date',
            'Due date cannot be in the past'
        )
        self.assertInvalid(
            self.params(description='a' * 5001, parent_task_id=str(uuid.uuid4())),
            'description',
            'Description must be under 5000 characters'
        )

    def test_error_to_dict(self):
        error = self.assertInvalid(self.params(title=''), 'title', 'Task title is required')
        self.assertEqual(error.to_dict(), {
            'error_code': 'ERR_MISSING_FIELD',
            'message': 'Task title is required',
            'field': 'title'
        })


class UpdateTaskTests(TestCase):
    """Tests for partial task updates."""

    def setUp(self):
        self.stale = timezone.now() - timedelta(days=5)
        self.task = make_task(
            title='Original',
            description='keep me',
            estimated_minutes=30,
            planned_for_date=date(2025, 6, 10),
            updated_at=self.stale
        )

    def test_only_given_fields_change(self):
        updated = services.update_task(self.task.pk, {'title': ' Renamed '})
        updated.refresh_from_db()

        self.assertEqual(updated.title, 'Renamed')
        self.assertEqual(updated.description, 'keep me')
        self.assertEqual(updated.estimated_minutes, 30)
        self.assertEqual(updated.planned_for_date, date(2025, 6, 10))
        self.assertGreater(updated.updated_at, self.stale)

    def test_none_clears_nullable_field(self):
        updated = services.update_task(self.task.pk, {'planned_for_date': None})
        updated.refresh_from_db()
        self.assertIsNone(updated.planned_for_date)

    def test_full_progress_completes_task(self):
        updated = services.update_task(self.task.pk, {'progress': 100})

        self.assertEqual(updated.status, TaskStatus.COMPLETED)
        self.assertIsNotNone(updated.completed_at)

    def test_explicit_status_wins_over_full_progress(self):
        updated = services.update_task(self.task.pk, {
            'progress': 100,
            'status': TaskStatus.IN_PROGRESS
        })

        self.assertEqual(updated.status, TaskStatus.IN_PROGRESS)
        self.assertIsNone(updated.completed_at)

    def test_completed_status_fills_progress(self):
        updated = services.update_task(self.task.pk, {'status': TaskStatus.COMPLETED})

        self.assertEqual(updated.progress, 100)
        self.assertIsNotNone(updated.completed_at)

    def test_completed_status_keeps_given_progress(self):
        updated = services.update_task(self.task.pk, {
            'status': TaskStatus.COMPLETED,
            'progress': 40
        })
        self.assertEqual(updated.progress, 40)

    def test_invalid_progress(self):
        for progress in (-1, 101):
            with self.assertRaises(TaskValidationError) as ctx:
                services.update_task(self.task.pk, {'progress': progress})
            self.assertEqual(ctx.exception.message, 'Progress must be between 0 and 100')

    def test_blank_title(self):
        with self.assertRaises(TaskValidationError) as ctx:
            services.update_task(self.task.pk, {'title': '  '})
        self.assertEqual(ctx.exception.message, 'Task title cannot be empty')

    def test_missing_task(self):
        with self.assertRaises(Task.DoesNotExist):
            services.update_task(uuid.uuid4(), {'title': 'x'})


class ProgressRollupTests(TestCase):
    """Tests for rolling sub-task progress up into parents."""

    def setUp(self):
        self.parent = make_task(title='parent')
        self.first = make_task(title='first', parent=self.parent)
        self.second = make_task(title='second', parent=self.parent)

    def test_parent_gets_average(self):
        services.update_task_progress(self.first.pk, 50)

        self.parent.refresh_from_db()
        self.assertEqual(self.parent.progress, 25)
        self.assertEqual(self.parent.status, TaskStatus.BACKLOG)

    def test_average_rounds_half_up(self):
        services.update_task_progress(self.first.pk, 33)
        services.update_task_progress(self.second.pk, 34)

        self.parent.refresh_from_db()
        self.assertEqual(self.parent.progress, 34)

    def test_parent_completes_with_children(self):
        services.update_task_progress(self.first.pk, 100)
        services.update_task_progress(self.second.pk, 100)

        self.parent.refresh_from_db()
        self.assertEqual(self.parent.progress, 100)
        self.assertEqual(self.parent.status, TaskStatus.COMPLETED)

    def test_rollup_stops_at_direct_parent(self):
        """Only the immediate parent is recalculated, not the grandparent."""
        grandparent = make_task(title='grandparent', progress=10)
        self.parent.parent = grandparent
        self.parent.save()

        services.update_task_progress(self.first.pk, 80)

        self.parent.refresh_from_db()
        grandparent.refresh_from_db()
        self.assertEqual(self.parent.progress, 40)
        self.assertEqual(grandparent.progress, 10)

    def test_deleted_sub_tasks_are_ignored(self):
        services.update_task_progress(self.first.pk, 60)
        services.delete_task(self.second.pk)

        self.parent.refresh_from_db()
        self.assertEqual(self.parent.progress, 60)

    def test_parent_without_sub_tasks(self):
        lonely = make_task(title='lonely', progress=20)

        self.assertIsNone(services.update_parent_progress(lonely.pk))
        lonely.refresh_from_db()
        self.assertEqual(lonely.progress, 20)

    def test_deleted_task_is_hidden_from_get(self):
        services.delete_task(self.first.pk)
        with self.assertRaises(Task.DoesNotExist):
            services.get_task(self.first.pk)


# ==================== Time tracking ====================

class TimeEntryServiceTests(TestCase):
    """Tests for timers and tracked minutes."""

    def setUp(self):
        self.service = TimeEntryService()
        self.task = make_task(title='tracked')
        self.start_time = timezone.now() - timedelta(hours=2)

    def test_start_creates_running_entry(self):
        entry = self.service.start(self.task.pk, USER)

        self.assertIsNone(entry.ended_at)
        self.assertEqual(self.service.find_active(USER), entry)

    def test_only_one_active_entry_per_user(self):
        self.service.start(self.task.pk, USER)
        other = make_task(title='other')

        with self.assertRaises(TimeEntryError) as ctx:
            self.service.start(other.pk, USER)
        self.assertEqual(ctx.exception.code, ErrorCode.ERR_CONFLICT)

    def test_start_on_missing_task(self):
        with self.assertRaises(TimeEntryError) as ctx:
            self.service.start(uuid.uuid4(), USER)
        self.assertEqual(ctx.exception.code, ErrorCode.ERR_NOT_FOUND)

    def test_stop_updates_actual_minutes(self):
        entry = self.service.start(self.task.pk, USER, started_at=self.start_time)
        self.service.stop(entry.pk, ended_at=self.start_time + timedelta(minutes=45))

        self.task.refresh_from_db()
        self.assertEqual(self.task.actual_minutes, 45)
        self.assertIsNone(self.service.find_active(USER))

    def test_stop_twice(self):
        entry = self.service.start(self.task.pk, USER)
        self.service.stop(entry.pk)

        with self.assertRaises(TimeEntryError):
            self.service.stop(entry.pk)

    def test_stop_missing_entry(self):
        with self.assertRaises(TimeEntryError) as ctx:
            self.service.stop(uuid.uuid4())
        self.assertEqual(ctx.exception.code, ErrorCode.ERR_NOT_FOUND)

    def test_stop_active(self):
        self.assertIsNone(self.service.stop_active(USER))

        self.service.start(self.task.pk, USER, started_at=self.start_time)
        stopped = self.service.stop_active(USER, ended_at=self.start_time + timedelta(minutes=10))

        self.assertIsNotNone(stopped.ended_at)

    def test_total_minutes_counts_stopped_entries(self):
        TimeEntry.objects.create(
            task=self.task, user_id=USER,
            started_at=self.start_time,
            ended_at=self.start_time + timedelta(minutes=30)
        )
        TimeEntry.objects.create(
            task=self.task, user_id=USER,
            started_at=self.start_time + timedelta(minutes=40),
            ended_at=self.start_time + timedelta(minutes=55, seconds=30)
        )
        TimeEntry.objects.create(
            task=self.task, user_id=USER,
            started_at=self.start_time + timedelta(minutes=60)
        )

        # 30 + 15.5 rounds up to 46; the running entry is ignored
        self.assertEqual(self.service.calculate_total_minutes(self.task.pk), 46)

    def test_delete_recomputes_actual_minutes(self):
        first = self.service.start(self.task.pk, USER, started_at=self.start_time)
        self.service.stop(first.pk, ended_at=self.start_time + timedelta(minutes=20))
        second = self.service.start(self.task.pk, USER, started_at=self.start_time + timedelta(minutes=30))
        self.service.stop(second.pk, ended_at=self.start_time + timedelta(minutes=40))

        self.task.refresh_from_db()
        self.assertEqual(self.task.actual_minutes, 30)

        self.service.delete(first.pk)

        self.task.refresh_from_db()
        self.assertEqual(self.task.actual_minutes, 10)
        self.assertEqual(self.service.find_by_task(self.task.pk), [second])

    def test_find_by_date_range(self):
        inside = TimeEntry.objects.create(
            task=self.task, user_id=USER,
            started_at=self.start_time, ended_at=self.start_time + timedelta(minutes=5)
        )
        TimeEntry.objects.create(
            task=self.task, user_id=USER,
            started_at=self.start_time - timedelta(days=3),
            ended_at=self.start_time - timedelta(days=3) + timedelta(minutes=5)
        )

        found = self.service.find_by_date_range(
            USER,
            self.start_time - timedelta(hours=1),
            self.start_time + timedelta(hours=1)
        )

        self.assertEqual(found, [inside])
        self.assertEqual(len(self.service.find_by_user(USER)), 2)


# ==================== Permissions ====================

class PermissionRuleTests(SimpleTestCase):
    """Tests for role and subscription rules."""

    def setUp(self):
        self.free = Role(id='role_free', name='FREE', display_name='Free',
                         cloud_sync=False, max_projects=3, max_workspaces=1)
        self.pro = Role(id='role_pro', name='PRO', display_name='Pro',
                        cloud_sync=True, max_projects=None)
        self.pro_legacy = Role(id='role_pro_legacy', name='PRO_LEGACY', display_name='Pro (legacy)',
                               is_legacy=True)
        self.team = Role(id='role_team', name='TEAM', display_name='Team')
        self.retired = Role(id='role_retired', name='ENTERPRISE', display_name='Old Enterprise',
                            is_active=False)

    def subscription(self, **kwargs):
        return UserSubscription(user_id=USER, role=self.pro, **kwargs)

    def test_has_feature(self):
        self.assertTrue(permissions.has_feature(self.pro, 'cloud_sync'))
        self.assertFalse(permissions.has_feature(self.free, 'cloud_sync'))

    def test_numeric_flags_and_non_features(self):
        self.free.max_workspaces = 1
        self.assertTrue(permissions.has_feature(self.free, 'max_workspaces'))
        self.assertFalse(permissions.has_feature(self.free, 'max_projects'))
        self.assertFalse(permissions.has_feature(self.free, 'name'))
        self.assertFalse(permissions.has_feature(self.free, 'no_such_feature'))

    def test_can_create_resource(self):
        self.assertTrue(permissions.can_create_resource(self.free, 'max_projects', 2))
        self.assertFalse(permissions.can_create_resource(self.free, 'max_projects', 3))
        self.assertTrue(permissions.can_create_resource(self.pro, 'max_projects', 500))

    def test_remaining_quota(self):
        self.assertEqual(permissions.get_remaining_quota(self.free, 'max_projects', 1), 2)
        self.assertEqual(permissions.get_remaining_quota(self.free, 'max_projects', 5), 0)
        self.assertEqual(permissions.get_remaining_quota(self.pro, 'max_projects', 5), 'unlimited')

    def test_unknown_limit_field(self):
        with self.assertRaises(ValueError):
            permissions.can_create_resource(self.free, 'max_storage_mb', 1)

    def test_subscription_active(self):
        for status, active in [
            (SubscriptionStatus.ACTIVE, True),
            (SubscriptionStatus.TRIALING, True),
            (SubscriptionStatus.PAST_DUE, False),
            (SubscriptionStatus.CANCELED, False),
        ]:
            self.assertEqual(
                permissions.is_subscription_active(self.subscription(status=status)),
                active
            )

    def test_upgrade_messages(self):
        self.assertEqual(
            permissions.get_upgrade_message(self.free, 'cloud sync'),
            'Upgrade to Pro to unlock cloud sync. Starting at $12/month.'
        )
        self.assertEqual(
            permissions.get_upgrade_message(self.pro_legacy, 'SSO'),
            'Upgrade to Team to unlock SSO. Starting at $19/user/month.'
        )
        self.assertEqual(
            permissions.get_upgrade_message(self.team, 'audit logs'),
            'Contact us for Enterprise to unlock audit logs.'
        )
        self.assertEqual(
            permissions.get_upgrade_message(self.retired, 'x'),
            'Upgrade your plan to unlock x.'
        )

    def test_effective_monthly_price(self):
        yearly = self.subscription(billing_period=BillingPeriod.YEARLY, price_cents=9999)
        monthly = self.subscription(billing_period=BillingPeriod.MONTHLY, price_cents=1200)
        lifetime = self.subscription(billing_period=BillingPeriod.LIFETIME, price_cents=29900)

        self.assertEqual(permissions.get_effective_monthly_price(yearly), 833)
        self.assertEqual(permissions.get_effective_monthly_price(monthly), 1200)
        self.assertEqual(permissions.get_effective_monthly_price(lifetime), 0)

    def test_grandfathered_badge(self):
        plain = self.subscription()
        flagged = self.subscription(is_grandfathered=True)
        lifetime = self.subscription(billing_period=BillingPeriod.LIFETIME)

        self.assertFalse(permissions.should_show_grandfathered_badge(self.pro, plain))
        self.assertTrue(permissions.should_show_grandfathered_badge(self.pro, flagged))
        self.assertTrue(permissions.should_show_grandfathered_badge(self.pro_legacy, plain))
        self.assertTrue(permissions.should_show_grandfathered_badge(self.pro, lifetime))

    def test_grandfathered_text(self):
        cases = [
            (self.subscription(billing_period=BillingPeriod.LIFETIME, grandfathered_reason='founder'),
             'Lifetime Access'),
            (self.subscription(grandfathered_reason='founder'), 'Founder Plan'),
            (self.subscription(grandfathered_reason='early_adopter'), 'Early Adopter Pricing'),
            (self.subscription(), 'Legacy Plan'),
        ]
        for subscription, text in cases:
            self.assertEqual(permissions.get_grandfathered_text(subscription), text)

    def test_upgrades(self):
        self.assertTrue(permissions.can_upgrade_to(self.free, self.pro))
        self.assertTrue(permissions.can_upgrade_to(self.pro_legacy, self.team))
        self.assertFalse(permissions.can_upgrade_to(self.pro, self.free))
        self.assertFalse(permissions.can_upgrade_to(self.pro, self.pro))
        self.assertFalse(permissions.can_upgrade_to(self.free, self.pro_legacy))
        self.assertFalse(permissions.can_upgrade_to(self.team, self.retired))

    def test_downgrades(self):
        self.assertTrue(permissions.can_downgrade_to(self.team, self.pro))
        self.assertTrue(permissions.can_downgrade_to(self.team, self.pro_legacy))
        self.assertFalse(permissions.can_downgrade_to(self.free, self.pro))
        self.assertFalse(permissions.can_downgrade_to(self.team, self.team))


class PermissionQueryTests(TestCase):
    """Tests for reading and writing roles and subscriptions."""

    def setUp(self):
        for role_id, name in [
            ('role_team', 'TEAM'),
            ('role_free', 'FREE'),
            ('role_enterprise', 'ENTERPRISE'),
            ('role_pro', 'PRO'),
            ('role_custom', 'CUSTOM'),
        ]:
            Role.objects.create(id=role_id, name=name, display_name=name.title())
        Role.objects.create(id='role_pro_legacy', name='PRO_LEGACY',
                            display_name='Pro (legacy)', is_active=False, is_legacy=True)

    def test_active_roles_in_tier_order(self):
        names = [role.name for role in permissions.get_active_roles()]
        self.assertEqual(names, ['FREE', 'PRO', 'TEAM', 'ENTERPRISE', 'CUSTOM'])

    def test_role_by_id(self):
        self.assertEqual(permissions.get_role_by_id('role_pro').name, 'PRO')
        self.assertIsNone(permissions.get_role_by_id('role_missing'))

    def test_user_without_subscription(self):
        self.assertIsNone(permissions.get_user_role(USER))

    def test_free_subscription(self):
        subscription = permissions.create_free_subscription(USER)

        self.assertEqual(subscription.role_id, 'role_free')
        self.assertEqual(subscription.price_cents, 0)
        self.assertEqual(subscription.status, SubscriptionStatus.ACTIVE)

        info = permissions.get_user_role(USER)
        self.assertEqual(info.role.name, 'FREE')
        self.assertEqual(info.subscription.pk, subscription.pk)
        self.assertTrue(permissions.is_subscription_active(info.subscription))

    def test_free_subscription_needs_free_role(self):
        Role.objects.filter(pk='role_free').delete()
        with self.assertRaises(Role.DoesNotExist):
            permissions.create_free_subscription(USER)

    def test_record_subscription_change(self):
        permissions.record_subscription_change(
            USER, 'role_free', 'role_pro', 0, 1200, 'upgrade'
        )

        entry = SubscriptionHistory.objects.get(user_id=USER)
        self.assertEqual(entry.old_role_id, 'role_free')
        self.assertEqual(entry.new_role_id, 'role_pro')
        self.assertEqual(entry.new_price_cents, 1200)
        self.assertEqual(entry.reason, 'upgrade')


# ==================== Reports ====================

@override_settings(TIME_ZONE='UTC')
class DailyReportTests(TestCase):
    """Tests for per-user daily scores and trends."""

    def setUp(self):
        self.day = date(2025, 3, 10)
        self.afternoon = datetime(2025, 3, 10, 15, 0, tzinfo=dt_timezone.utc)

        self.finished = make_task(
            title='finished',
            difficulty=Difficulty.HARD,
            progress=100,
            status=TaskStatus.COMPLETED,
            estimated_minutes=60,
            actual_minutes=45,
            task_type_id='writing',
            completed_at=self.afternoon
        )
        for task_type in ('coding', 'review'):
            make_task(title=task_type, status=TaskStatus.IN_PROGRESS,
                      progress=40, task_type_id=task_type)

    def track_all_types(self):
        for task in Task.objects.filter(task_type_id__isnull=False):
            TimeEntry.objects.create(
                task=task, user_id=USER,
                started_at=self.afternoon - timedelta(hours=3),
                ended_at=self.afternoon - timedelta(hours=2)
            )

    def test_scoring_context_counts_distinct_task_types(self):
        self.assertEqual(reports.scoring_context_for_day(USER, self.day).task_types_worked_today, 0)

        self.track_all_types()
        self.track_all_types()

        context = reports.scoring_context_for_day(USER, self.day)
        self.assertEqual(context.task_types_worked_today, 3)

    def test_completed_tasks_for_day(self):
        make_task(title='yesterday', status=TaskStatus.COMPLETED, progress=100,
                  completed_at=self.afternoon - timedelta(days=1))
        make_task(title='deleted', status=TaskStatus.COMPLETED, progress=100,
                  completed_at=self.afternoon, deleted=True)

        tasks = reports.completed_tasks_for_day(USER, self.day)
        self.assertEqual([t.pk for t in tasks], [self.finished.pk])

    def test_daily_score_with_focus(self):
        self.assertEqual(reports.daily_score_for_user(USER, self.day), 6)

        self.track_all_types()
        self.assertEqual(reports.daily_score_for_user(USER, self.day), 7)

    def test_trend_without_history_is_neutral(self):
        result = reports.daily_trend(USER, self.day)

        self.assertEqual(result['score'], 6)
        self.assertEqual(result['average'], 0)
        self.assertEqual(result['trend'], 1.0)
        self.assertEqual(result['label'], 'Right on your average')

    def test_trend_against_recent_days(self):
        make_task(title='yesterday', difficulty=Difficulty.MEDIUM, status=TaskStatus.COMPLETED,
                  progress=100, completed_at=self.afternoon - timedelta(days=1))

        self.assertEqual(reports.average_daily_score(USER, self.day, days=2), 1.5)
        self.assertEqual(reports.average_daily_score(USER, self.day, days=0), 0.0)

        result = reports.daily_trend(USER, self.day, days=2)
        self.assertEqual(result['trend'], 4.0)
        self.assertEqual(result['label'], '300% above your average—great focus today!')
