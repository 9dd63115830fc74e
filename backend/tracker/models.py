"""
Models for the Stride task store.

This module defines the tables the business-logic layer reads and updates:
tasks with their scheduling and time-tracking fields, timer entries, and the
role/subscription tables behind the permission model.
"""

import uuid

from django.db import models
from django.core.validators import MinValueValidator, MaxValueValidator
from django.utils import timezone


# ==================== Enumerations ====================

class Difficulty(models.TextChoices):
    """Task complexity tier driving the base point value."""
    TRIVIAL = 'TRIVIAL', 'Trivial'
    EASY = 'EASY', 'Easy'
    MEDIUM = 'MEDIUM', 'Medium'
    HARD = 'HARD', 'Hard'
    EXTREME = 'EXTREME', 'Extreme'


class TaskStatus(models.TextChoices):
    """Scheduling state of a task."""
    BACKLOG = 'BACKLOG', 'Backlog'
    PLANNED = 'PLANNED', 'Planned'
    IN_PROGRESS = 'IN_PROGRESS', 'In progress'
    COMPLETED = 'COMPLETED', 'Completed'
    ARCHIVED = 'ARCHIVED', 'Archived'


class SubscriptionStatus(models.TextChoices):
    ACTIVE = 'active', 'Active'
    TRIALING = 'trialing', 'Trialing'
    PAST_DUE = 'past_due', 'Past due'
    CANCELED = 'canceled', 'Canceled'
    EXPIRED = 'expired', 'Expired'


class BillingPeriod(models.TextChoices):
    MONTHLY = 'monthly', 'Monthly'
    YEARLY = 'yearly', 'Yearly'
    LIFETIME = 'lifetime', 'Lifetime'


# ==================== Tasks ====================

class Task(models.Model):
    """
    A unit of work tracked by a user.

    Attributes:
        user_id: Identifier issued by the external auth provider
        project_id: Project the task belongs to
        parent: Parent task when this is a sub-task
        difficulty: Complexity tier used for productivity points
        progress: Completion percentage from 0 to 100
        estimated_minutes: Expected time to complete (optional)
        max_minutes: Hard time budget (optional)
        actual_minutes: Time tracked so far, kept in sync by the timer
        planned_for_date: Calendar day the task is assigned to (optional)
        due_date: Deadline (optional)
        deleted: Soft-delete flag; deleted tasks are excluded from queries
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user_id = models.CharField(max_length=64, db_index=True)
    project_id = models.CharField(max_length=64)
    parent = models.ForeignKey(
        'self',
        null=True,
        blank=True,
        on_delete=models.CASCADE,
        related_name='subtasks'
    )
    title = models.CharField(max_length=200, help_text="Task title")
    description = models.TextField(null=True, blank=True, max_length=5000)
    difficulty = models.CharField(
        max_length=10,
        choices=Difficulty.choices,
        default=Difficulty.MEDIUM
    )
    progress = models.PositiveSmallIntegerField(
        default=0,
        validators=[MinValueValidator(0), MaxValueValidator(100)],
        help_text="Completion percentage (0-100)"
    )
    status = models.CharField(
        max_length=12,
        choices=TaskStatus.choices,
        default=TaskStatus.BACKLOG
    )
    estimated_minutes = models.PositiveIntegerField(null=True, blank=True)
    max_minutes = models.PositiveIntegerField(null=True, blank=True)
    actual_minutes = models.PositiveIntegerField(default=0)
    planned_for_date = models.DateField(null=True, blank=True)
    due_date = models.DateTimeField(null=True, blank=True)
    task_type_id = models.CharField(max_length=64, null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    deleted = models.BooleanField(default=False)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['user_id', 'planned_for_date']),
        ]

    def __str__(self):
        return f"{self.title} ({self.status}, {self.progress}%)"


class TimeEntry(models.Model):
    """A timer run against a task. ``ended_at`` is empty while it runs."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    task = models.ForeignKey(Task, on_delete=models.CASCADE, related_name='time_entries')
    user_id = models.CharField(max_length=64, db_index=True)
    started_at = models.DateTimeField(default=timezone.now)
    ended_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ['-started_at']
        verbose_name_plural = 'time entries'

    def __str__(self):
        state = 'running' if self.ended_at is None else 'stopped'
        return f"TimeEntry {self.id} on {self.task_id} ({state})"

    @property
    def duration_minutes(self):
        """Length of a stopped entry in minutes, ``None`` while running."""
        if self.ended_at is None:
            return None
        return (self.ended_at - self.started_at).total_seconds() / 60


# ==================== Roles & subscriptions ====================

class Role(models.Model):
    """
    A purchasable (or legacy) plan and the features it unlocks.

    Limit fields left empty mean "unlimited".
    """

    id = models.CharField(primary_key=True, max_length=64)
    name = models.CharField(max_length=64, help_text="e.g. FREE, PRO, PRO_LEGACY, TEAM")
    display_name = models.CharField(max_length=128)
    description = models.TextField(blank=True, default='')

    cloud_sync = models.BooleanField(default=False)
    mobile_app = models.BooleanField(default=False)
    team_workspaces = models.BooleanField(default=False)
    export_reports = models.BooleanField(default=False)
    api_access = models.BooleanField(default=False)
    sso = models.BooleanField(default=False)
    audit_logs = models.BooleanField(default=False)
    custom_integrations = models.BooleanField(default=False)
    priority_support = models.BooleanField(default=False)

    max_workspaces = models.PositiveIntegerField(null=True, blank=True)
    max_projects = models.PositiveIntegerField(null=True, blank=True)
    max_team_members = models.PositiveIntegerField(null=True, blank=True)
    max_api_calls_per_day = models.PositiveIntegerField(null=True, blank=True)
    max_storage_mb = models.PositiveIntegerField(null=True, blank=True)

    is_active = models.BooleanField(default=True)
    is_legacy = models.BooleanField(default=False)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(default=timezone.now)

    def __str__(self):
        return self.display_name or self.name


class UserSubscription(models.Model):
    """The role a user currently holds and what they pay for it."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user_id = models.CharField(max_length=64, db_index=True)
    role = models.ForeignKey(Role, on_delete=models.PROTECT, related_name='subscriptions')
    status = models.CharField(
        max_length=16,
        choices=SubscriptionStatus.choices,
        default=SubscriptionStatus.ACTIVE
    )
    price_cents = models.PositiveIntegerField(default=0)
    currency = models.CharField(max_length=3, default='USD')
    billing_period = models.CharField(
        max_length=16,
        choices=BillingPeriod.choices,
        default=BillingPeriod.MONTHLY
    )
    stripe_customer_id = models.CharField(max_length=128, null=True, blank=True)
    stripe_subscription_id = models.CharField(max_length=128, null=True, blank=True)
    stripe_price_id = models.CharField(max_length=128, null=True, blank=True)
    started_at = models.DateTimeField(default=timezone.now)
    current_period_start = models.DateTimeField(null=True, blank=True)
    current_period_end = models.DateTimeField(null=True, blank=True)
    canceled_at = models.DateTimeField(null=True, blank=True)
    trial_ends_at = models.DateTimeField(null=True, blank=True)
    is_grandfathered = models.BooleanField(default=False)
    grandfathered_reason = models.CharField(
        max_length=32,
        null=True,
        blank=True,
        help_text="e.g. founder, early_adopter"
    )
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.user_id} on {self.role_id} ({self.status})"


class SubscriptionHistory(models.Model):
    """Audit row written whenever a user's role or price changes."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user_id = models.CharField(max_length=64, db_index=True)
    old_role = models.ForeignKey(
        Role,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name='+'
    )
    new_role = models.ForeignKey(Role, on_delete=models.PROTECT, related_name='+')
    old_price_cents = models.PositiveIntegerField(null=True, blank=True)
    new_price_cents = models.PositiveIntegerField()
    reason = models.CharField(max_length=255)
    changed_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ['-changed_at']
        verbose_name_plural = 'subscription history'

    def __str__(self):
        return f"{self.user_id}: {self.old_role_id} -> {self.new_role_id}"
