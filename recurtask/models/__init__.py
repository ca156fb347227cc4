"""Data models for recurtask."""

from recurtask.models.duration import Duration
from recurtask.models.recurrence import (
    EditScope,
    RecurrenceFrequency,
    RecurrencePattern,
    RecurrencePatternRecord,
)
from recurtask.models.task import Task, TaskUpdate, TaskStatus, TaskPriority, NON_RECURRING_FIELDS
from recurtask.models.activity_event import ActivityEvent, ActivityEventType

__all__ = [
    "Duration",
    "EditScope",
    "RecurrenceFrequency",
    "RecurrencePattern",
    "RecurrencePatternRecord",
    "Task",
    "TaskUpdate",
    "TaskStatus",
    "TaskPriority",
    "NON_RECURRING_FIELDS",
    "ActivityEvent",
    "ActivityEventType",
]
