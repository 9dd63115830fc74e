"""
Time tracking: starting and stopping timers against tasks.

A user has at most one running entry. Whenever an entry is stopped or
removed the task's ``actual_minutes`` is recomputed from its stopped entries,
so the task always reflects the tracked total.
"""

import logging
from datetime import datetime
from typing import List, Optional

from django.utils import timezone

from .exceptions import ErrorCode, TimeEntryError
from .models import Task, TimeEntry
from .utils import round_half_up

logger = logging.getLogger(__name__)


class TimeEntryService:
    """Business logic around ``TimeEntry`` rows."""

    def start(self, task_id, user_id: str, started_at: Optional[datetime] = None) -> TimeEntry:
        """Start a timer on a task."""
        if self.find_active(user_id) is not None:
            raise TimeEntryError(
                'User already has an active time entry. Stop the current timer first.'
            )

        if not Task.objects.filter(pk=task_id, deleted=False).exists():
            raise TimeEntryError('Task not found', ErrorCode.ERR_NOT_FOUND)

        entry = TimeEntry.objects.create(
            task_id=task_id,
            user_id=user_id,
            started_at=started_at or timezone.now(),
            ended_at=None,
        )
        logger.info("Started time entry %s on task %s for user %s", entry.pk, task_id, user_id)
        return entry

    def stop(self, entry_id, ended_at: Optional[datetime] = None) -> TimeEntry:
        """Stop a running timer and refresh the task's tracked minutes."""
        entry = self.find_by_id(entry_id)
        if entry is None:
            raise TimeEntryError('Time entry not found', ErrorCode.ERR_NOT_FOUND)

        if entry.ended_at is not None:
            raise TimeEntryError('Time entry is already stopped')

        entry.ended_at = ended_at or timezone.now()
        entry.save(update_fields=['ended_at'])
        logger.info("Stopped time entry %s after %.1f minute(s)", entry.pk, entry.duration_minutes)

        self._sync_actual_minutes(entry.task_id)
        return entry

    def stop_active(self, user_id: str, ended_at: Optional[datetime] = None) -> Optional[TimeEntry]:
        """Stop whatever timer the user has running, if any."""
        active = self.find_active(user_id)
        if active is None:
            return None
        return self.stop(active.pk, ended_at)

    def find_active(self, user_id: str) -> Optional[TimeEntry]:
        return (
            TimeEntry.objects.filter(user_id=user_id, ended_at__isnull=True)
            .order_by('-started_at')
            .first()
        )

    def find_by_id(self, entry_id) -> Optional[TimeEntry]:
        return TimeEntry.objects.filter(pk=entry_id).first()

    def find_by_task(self, task_id) -> List[TimeEntry]:
        return list(TimeEntry.objects.filter(task_id=task_id).order_by('-started_at'))

    def find_by_user(self, user_id: str) -> List[TimeEntry]:
        return list(TimeEntry.objects.filter(user_id=user_id).order_by('-started_at'))

    def find_by_date_range(
        self,
        user_id: str,
        start: datetime,
        end: datetime
    ) -> List[TimeEntry]:
        """Entries started within ``[start, end]``, oldest first."""
        return list(
            TimeEntry.objects.filter(
                user_id=user_id,
                started_at__gte=start,
                started_at__lte=end,
            ).order_by('started_at')
        )

    def calculate_total_minutes(self, task_id) -> int:
        """Total tracked minutes for a task, counting stopped entries only."""
        total = sum(
            entry.duration_minutes
            for entry in TimeEntry.objects.filter(task_id=task_id, ended_at__isnull=False)
        )
        return round_half_up(total)

    def delete(self, entry_id) -> None:
        entry = self.find_by_id(entry_id)
        if entry is None:
            raise TimeEntryError('Time entry not found', ErrorCode.ERR_NOT_FOUND)

        task_id = entry.task_id
        entry.delete()
        logger.info("Deleted time entry %s", entry_id)

        self._sync_actual_minutes(task_id)

    def _sync_actual_minutes(self, task_id) -> None:
        total_minutes = self.calculate_total_minutes(task_id)
        Task.objects.filter(pk=task_id).update(
            actual_minutes=total_minutes,
            updated_at=timezone.now(),
        )
        logger.debug("Task %s now has %d tracked minute(s)", task_id, total_minutes)


time_entry_service = TimeEntryService()
