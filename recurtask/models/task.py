"""Task data model for recurtask."""

from datetime import datetime
from typing import Any, Dict, List, Optional
from enum import Enum
from pydantic import BaseModel, Field, model_validator

from recurtask.models.constants import MAX_DESCRIPTION_LENGTH, MAX_TITLE_LENGTH
from recurtask.models.duration import Duration
from recurtask.models.recurrence import RecurrencePattern


class TaskStatus(str, Enum):
    """Task status enumeration."""
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class TaskPriority(str, Enum):
    """Task priority enumeration."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


# Fields that describe the task itself rather than its schedule. These are the
# only fields propagated to detached instances on an all_instances edit.
NON_RECURRING_FIELDS = ("title", "description", "priority", "status", "category", "assignees")


class Task(BaseModel):
    """Canonical Task model."""

    id: str = Field(..., description="Unique task identifier (UUID v4)")
    user_id: str = Field(..., description="User ID who owns this task")
    title: str = Field(..., max_length=MAX_TITLE_LENGTH, description="Task title")
    description: Optional[str] = Field(None, max_length=MAX_DESCRIPTION_LENGTH)
    status: TaskStatus = Field(TaskStatus.TODO, description="Task status")
    priority: TaskPriority = Field(TaskPriority.MEDIUM, description="Task priority")
    category: Optional[str] = Field(None, description="Category id or name")
    assignees: List[str] = Field(default_factory=list, description="Assigned user IDs")
    created_at: datetime = Field(..., description="Task creation timestamp")
    updated_at: datetime = Field(..., description="Task last update timestamp")

    # Scheduling: either an explicit due_date or a duration relative to start_date
    start_date: datetime = Field(..., description="When the task (or current occurrence) starts")
    due_date: Optional[datetime] = Field(None, description="Absolute due date")
    duration: Optional[Duration] = Field(None, description="Relative duration; due_date is derived from it")

    # Recurrence
    is_recurring: bool = Field(False, description="True only on a series root")
    recurrence_pattern: Optional[RecurrencePattern] = Field(
        None, description="Structured pattern the series rule was generated from (series root only)"
    )
    parent_task_id: Optional[str] = Field(
        None, description="Series root this instance was detached from (lookup key, not ownership)"
    )
    instance_number: Optional[int] = Field(None, ge=1)
    occurrence_start: Optional[datetime] = Field(
        None, description="For detached instances, the series occurrence this instance replaced"
    )
    recurrence_version: int = Field(1, ge=1)
    last_recurrence_update: Optional[datetime] = None

    @model_validator(mode="after")
    def _root_or_instance(self):
        if self.is_recurring and self.parent_task_id:
            raise ValueError("A task cannot be both a series root and a detached instance")
        return self

    class Config:
        """Pydantic configuration."""
        use_enum_values = True


class TaskUpdate(BaseModel):
    """Partial update to a task. Only fields explicitly set are applied."""

    title: Optional[str] = Field(None, max_length=MAX_TITLE_LENGTH)
    description: Optional[str] = Field(None, max_length=MAX_DESCRIPTION_LENGTH)
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    category: Optional[str] = None
    assignees: Optional[List[str]] = None
    start_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    duration: Optional[Duration] = None
    recurrence_pattern: Optional[RecurrencePattern] = None

    class Config:
        """Pydantic configuration."""
        use_enum_values = True

    def provided(self) -> Dict[str, Any]:
        """Fields the caller actually set (None included when explicitly set)."""
        return {name: getattr(self, name) for name in self.model_fields_set}

    def non_recurring_subset(self) -> Dict[str, Any]:
        return {k: v for k, v in self.provided().items() if k in NON_RECURRING_FIELDS}
