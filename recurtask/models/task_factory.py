"""Task creation factory for recurtask.

This module centralizes task creation logic so every code path applies the
same defaults and keeps `due_date` and `duration` consistent.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from recurtask.errors import InvalidRangeError, ValidationError
from recurtask.models.duration import Duration
from recurtask.models.task import Task, TaskPriority, TaskStatus
from recurtask.recurrence.duration_math import add_to_date, calculate_duration, validate_duration


def create_task_defaults() -> Dict[str, Any]:
    """Get default task values as a dictionary."""
    return {
        "description": None,
        "status": TaskStatus.TODO,
        "priority": TaskPriority.MEDIUM,
        "category": None,
        "assignees": [],
        "due_date": None,
        "duration": None,
        "is_recurring": False,
        "recurrence_pattern": None,
        "parent_task_id": None,
        "instance_number": None,
        "occurrence_start": None,
        "recurrence_version": 1,
        "last_recurrence_update": None,
    }


def resolve_schedule(
    start_date: datetime,
    due_date: Optional[datetime],
    duration: Optional[Duration],
    *,
    duration_required: bool = False,
) -> Tuple[Optional[datetime], Optional[Duration]]:
    """Derive the (due_date, duration) pair from whichever one was supplied.

    A duration wins over an explicit due date: due_date = start_date + duration.
    Otherwise a due date is measured into an approximate duration and the due
    date is re-derived from it, so `due_date == add_to_date(start_date, duration)`
    always holds (spans under 28 days come back unchanged).

    Raises:
        ValidationError: If the duration is out of bounds, missing when required,
            or the due date is not after the start date
    """
    if duration is not None:
        validate_duration(duration, required=True)
        return add_to_date(start_date, duration), duration
    if due_date is not None:
        try:
            derived = calculate_duration(start_date, due_date)
        except InvalidRangeError as e:
            raise ValidationError("Start date must be before due date") from e
        if duration_required:
            validate_duration(derived, required=True)
        return add_to_date(start_date, derived), derived
    if duration_required:
        raise ValidationError("Duration is required for recurring tasks")
    return None, None


def create_task_base(
    user_id: str,
    title: str,
    start_date: Optional[datetime] = None,
    description: Optional[str] = None,
    status: Optional[TaskStatus] = None,
    priority: Optional[TaskPriority] = None,
    category: Optional[str] = None,
    assignees: Optional[List[str]] = None,
    due_date: Optional[datetime] = None,
    duration: Optional[Duration] = None,
    now: Optional[datetime] = None,
) -> Task:
    """Create a standalone task with defaults, allowing overrides.

    Args:
        user_id: User ID who owns this task (required)
        title: Task title (required)
        start_date: When the task starts (defaults to now)
        description: Task description
        status: Task status (defaults to todo)
        priority: Task priority (defaults to medium)
        category: Category id or name
        assignees: Assigned user IDs
        due_date: Absolute due date (ignored when duration is given)
        duration: Relative duration; due_date is computed from it
        now: Clock reading used for timestamps and the default start date

    Returns:
        Task object with defaults applied and schedule fields in sync
    """
    now = now or datetime.utcnow()
    defaults = create_task_defaults()
    start = start_date or now
    resolved_due, resolved_duration = resolve_schedule(start, due_date, duration)

    return Task(
        id=str(uuid.uuid4()),
        user_id=user_id,
        title=title,
        description=description if description is not None else defaults["description"],
        status=status if status is not None else defaults["status"],
        priority=priority if priority is not None else defaults["priority"],
        category=category if category is not None else defaults["category"],
        assignees=assignees if assignees is not None else defaults["assignees"],
        created_at=now,
        updated_at=now,
        start_date=start,
        due_date=resolved_due,
        duration=resolved_duration,
        is_recurring=defaults["is_recurring"],
        recurrence_pattern=defaults["recurrence_pattern"],
        parent_task_id=defaults["parent_task_id"],
        instance_number=defaults["instance_number"],
        occurrence_start=defaults["occurrence_start"],
        recurrence_version=defaults["recurrence_version"],
        last_recurrence_update=defaults["last_recurrence_update"],
    )
