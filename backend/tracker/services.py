"""
Task creation, updates and sub-task progress rollups.

Parameters arrive as plain dicts keyed by model field name and are checked by
the serializers in ``serializers.py``. Updates are partial: only the keys
present in the dict are written, plus ``updated_at`` which always moves.
"""

import logging
from typing import Dict, Optional

from django.utils import timezone

from .exceptions import ErrorCode, TaskValidationError
from .models import Task, TaskStatus
from .serializers import TaskCreateSerializer, TaskUpdateSerializer
from .utils import round_half_up

logger = logging.getLogger(__name__)


def _raise_first_error(serializer) -> None:
    """Turn the first serializer error into a ``TaskValidationError``."""
    for field, messages in serializer.errors.items():
        if isinstance(messages, dict):
            # Nested errors are not expected for flat task params
            messages = list(messages.values())
        message = str(messages[0])
        code = (
            ErrorCode.ERR_MISSING_FIELD
            if getattr(messages[0], 'code', None) in ('required', 'null', 'blank')
            else ErrorCode.ERR_INVALID_FIELD
        )
        raise TaskValidationError(field, message, code)


# ==================== Validation ====================

def validate_create_task(params: Dict) -> Dict:
    """
    Validate task creation parameters.

    Returns:
        The cleaned parameters.

    Raises:
        TaskValidationError: for the first rule that fails.
    """
    serializer = TaskCreateSerializer(data=params)
    if not serializer.is_valid():
        _raise_first_error(serializer)
    return serializer.validated_data


def validate_update_task(params: Dict) -> Dict:
    """Validate update parameters; only the keys present are checked."""
    serializer = TaskUpdateSerializer(data=params, partial=True)
    if not serializer.is_valid():
        _raise_first_error(serializer)
    return serializer.validated_data


# ==================== CRUD ====================

def get_task(task_id) -> Task:
    return Task.objects.get(pk=task_id, deleted=False)


def create_task(user_id: str, params: Dict) -> Task:
    """
    Create a new backlog task for ``user_id``.

    Args:
        user_id: Owner of the task
        params: title, project_id and any of difficulty, estimated_minutes,
            max_minutes, due_date, description, parent_task_id,
            task_type_id, planned_for_date

    Returns:
        The created task.
    """
    data = validate_create_task(params)
    description = (data.get('description') or '').strip() or None

    task = Task.objects.create(
        user_id=user_id,
        project_id=data['project_id'],
        parent_id=data.get('parent_task_id'),
        title=data['title'].strip(),
        description=description,
        difficulty=data['difficulty'],
        progress=0,
        status=TaskStatus.BACKLOG,
        estimated_minutes=data.get('estimated_minutes'),
        max_minutes=data.get('max_minutes'),
        actual_minutes=0,
        planned_for_date=data.get('planned_for_date'),
        due_date=data.get('due_date'),
        task_type_id=data.get('task_type_id') or None,
        completed_at=None,
        deleted=False,
    )
    logger.info("Created task %s for user %s in project %s", task.pk, user_id, task.project_id)
    return task


def update_task(task_id, params: Dict) -> Task:
    """
    Apply a partial update to a task.

    Setting progress to 100 without an explicit status completes the task.
    Setting the status to COMPLETED stamps ``completed_at`` and, unless a
    progress value was given too, sets progress to 100.
    """
    data = validate_update_task(params)
    task = Task.objects.get(pk=task_id)
    now = timezone.now()
    changes = {}

    if 'title' in data:
        changes['title'] = data['title'].strip()

    if 'description' in data:
        changes['description'] = (data['description'] or '').strip() or None

    if 'progress' in data:
        changes['progress'] = data['progress']
        if data['progress'] == 100 and 'status' not in data:
            changes['status'] = TaskStatus.COMPLETED
            changes['completed_at'] = now

    if 'status' in data:
        changes['status'] = data['status']
        if data['status'] == TaskStatus.COMPLETED:
            changes['completed_at'] = now
            if 'progress' not in data:
                changes['progress'] = 100

    for field in ('difficulty', 'estimated_minutes', 'max_minutes',
                  'planned_for_date', 'due_date'):
        if field in data:
            changes[field] = data[field]

    if 'task_type_id' in data:
        changes['task_type_id'] = data['task_type_id'] or None

    changes['updated_at'] = now

    for field, value in changes.items():
        setattr(task, field, value)
    task.save(update_fields=list(changes))

    logger.info("Updated task %s: %s", task.pk, sorted(changes))
    return task


def delete_task(task_id) -> Task:
    """Soft-delete a task and roll its parent's progress up again."""
    task = Task.objects.get(pk=task_id)
    task.deleted = True
    task.updated_at = timezone.now()
    task.save(update_fields=['deleted', 'updated_at'])
    logger.info("Deleted task %s", task.pk)

    if task.parent_id:
        update_parent_progress(task.parent_id)
    return task


# ==================== Progress rollup ====================

def update_task_progress(task_id, progress: int) -> Task:
    """Update a task's progress and recalculate its parent's progress."""
    task = update_task(task_id, {'progress': progress})

    if task.parent_id:
        update_parent_progress(task.parent_id)

    return task


def update_parent_progress(parent_task_id) -> Optional[Task]:
    """
    Set a parent task's progress to the average of its live sub-tasks.

    Does nothing when the parent has no sub-tasks left. Only the direct
    parent is updated; grandparents are not recalculated.
    """
    progresses = list(
        Task.objects.filter(parent_id=parent_task_id, deleted=False)
        .values_list('progress', flat=True)
    )

    if not progresses:
        return None

    average_progress = round_half_up(sum(progresses) / len(progresses))
    logger.debug(
        "Rolling up %d sub-task(s) into %s: %d%%",
        len(progresses), parent_task_id, average_progress
    )
    return update_task(parent_task_id, {'progress': average_progress})
