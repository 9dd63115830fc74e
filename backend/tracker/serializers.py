"""
Serializers for validating task parameters.

Nothing here is exposed over HTTP; DRF serializers are used because they
give declarative field rules, custom error messages and partial-update
semantics (fields missing from the input are missing from
``validated_data``) for free.
"""

from django.utils import timezone
from rest_framework import serializers

from .models import Difficulty, Task, TaskStatus

TITLE_MAX_LENGTH = 200
DESCRIPTION_MAX_LENGTH = 5000


class TaskCreateSerializer(serializers.Serializer):
    """
    Serializer for the parameters of a new task.

    Single-field rules are declared in the order they are checked, so the
    first entry of ``errors`` is the first rule that failed. The rules that
    come after the estimate/max comparison (due date, description length,
    parent task) run in ``validate`` so they cannot report ahead of it.
    """

    title = serializers.CharField(
        max_length=TITLE_MAX_LENGTH,
        error_messages={
            'required': 'Task title is required',
            'null': 'Task title is required',
            'blank': 'Task title is required',
            'max_length': f'Task title must be under {TITLE_MAX_LENGTH} characters',
        }
    )
    project_id = serializers.CharField(
        max_length=64,
        error_messages={
            'required': 'Task must belong to a project',
            'null': 'Task must belong to a project',
            'blank': 'Task must belong to a project',
        }
    )
    difficulty = serializers.ChoiceField(
        choices=Difficulty.choices,
        default=Difficulty.MEDIUM
    )
    estimated_minutes = serializers.IntegerField(
        required=False,
        allow_null=True,
        min_value=0,
        error_messages={'min_value': 'Estimated time cannot be negative'}
    )
    max_minutes = serializers.IntegerField(
        required=False,
        allow_null=True,
        min_value=0,
        error_messages={'min_value': 'Max time cannot be negative'}
    )
    due_date = serializers.DateTimeField(required=False, allow_null=True)
    description = serializers.CharField(
        required=False,
        allow_null=True,
        allow_blank=True
    )
    parent_task_id = serializers.UUIDField(required=False, allow_null=True)
    task_type_id = serializers.CharField(
        required=False,
        allow_null=True,
        allow_blank=True,
        max_length=64
    )
    planned_for_date = serializers.DateField(required=False, allow_null=True)

    def validate(self, attrs):
        estimated = attrs.get('estimated_minutes')
        maximum = attrs.get('max_minutes')
        if estimated is not None and maximum is not None and estimated > maximum:
            raise serializers.ValidationError({
                'estimated_minutes': 'Estimated time cannot exceed max time'
            })

        due_date = attrs.get('due_date')
        if due_date is not None and due_date < timezone.now():
            raise serializers.ValidationError({
                'due_date': 'Due date cannot be in the past'
            })

        description = attrs.get('description')
        if description and len(description) > DESCRIPTION_MAX_LENGTH:
            raise serializers.ValidationError({
                'description': f'Description must be under {DESCRIPTION_MAX_LENGTH} characters'
            })

        parent_task_id = attrs.get('parent_task_id')
        if (
            parent_task_id is not None
            and not Task.objects.filter(pk=parent_task_id, deleted=False).exists()
        ):
            raise serializers.ValidationError({
                'parent_task_id': 'Parent task not found'
            })

        return attrs


class TaskUpdateSerializer(serializers.Serializer):
    """
    Serializer for task updates. Always used with ``partial=True``.

    An explicit ``None`` clears a nullable field; an absent key leaves it
    unchanged.
    """

    title = serializers.CharField(
        max_length=TITLE_MAX_LENGTH,
        error_messages={
            'null': 'Task title cannot be empty',
            'blank': 'Task title cannot be empty',
            'max_length': f'Task title must be under {TITLE_MAX_LENGTH} characters',
        }
    )
    description = serializers.CharField(
        allow_null=True,
        allow_blank=True,
        max_length=DESCRIPTION_MAX_LENGTH,
        error_messages={
            'max_length': f'Description must be under {DESCRIPTION_MAX_LENGTH} characters',
        }
    )
    progress = serializers.IntegerField(
        min_value=0,
        max_value=100,
        error_messages={
            'min_value': 'Progress must be between 0 and 100',
            'max_value': 'Progress must be between 0 and 100',
        }
    )
    status = serializers.ChoiceField(choices=TaskStatus.choices)
    difficulty = serializers.ChoiceField(choices=Difficulty.choices)
    estimated_minutes = serializers.IntegerField(
        allow_null=True,
        min_value=0,
        error_messages={'min_value': 'Estimated time cannot be negative'}
    )
    max_minutes = serializers.IntegerField(
        allow_null=True,
        min_value=0,
        error_messages={'min_value': 'Max time cannot be negative'}
    )
    planned_for_date = serializers.DateField(allow_null=True)
    due_date = serializers.DateTimeField(allow_null=True)
    task_type_id = serializers.CharField(allow_null=True, allow_blank=True, max_length=64)
