"""SQLAlchemy database models for recurtask."""

from datetime import datetime
from typing import Optional, Union, TypeVar, Type
import uuid
from sqlalchemy import Column, String, Integer, Boolean, DateTime, JSON, ForeignKey, UniqueConstraint

from recurtask.database.database import Base
from recurtask.models.constants import DEFAULT_TIMEZONE
from recurtask.models.duration import Duration
from recurtask.models.recurrence import RecurrencePattern
from recurtask.models.task import TaskStatus, TaskPriority

T = TypeVar('T')


def enum_to_value(enum_obj: Union[str, T]) -> str:
    """Convert enum to string value (handles both enum and string).

    Args:
        enum_obj: Enum instance or string value

    Returns:
        String value of the enum, or the string itself if already a string
    """
    if hasattr(enum_obj, 'value'):
        return enum_obj.value
    return str(enum_obj)


def value_to_enum(value: str, enum_class: Type[T], default: T) -> T:
    """Convert string to enum with fallback to default.

    Args:
        value: String value to convert
        enum_class: Enum class to convert to
        default: Default enum value if conversion fails

    Returns:
        Enum instance, or default if conversion fails
    """
    if not value:
        return default
    try:
        return enum_class(value.lower())
    except (ValueError, AttributeError):
        return default


def duration_to_json(duration: Optional[Duration]) -> Optional[dict]:
    return duration.model_dump() if duration is not None else None


def duration_from_json(data: Optional[dict]) -> Optional[Duration]:
    return Duration(**data) if data else None


def pattern_to_json(pattern: Optional[RecurrencePattern]) -> Optional[dict]:
    return pattern.model_dump(mode="json") if pattern is not None else None


def pattern_from_json(data: Optional[dict]) -> Optional[RecurrencePattern]:
    return RecurrencePattern(**data) if data else None


class TaskDB(Base):
    """Database model for Task (standalone, series root or detached instance)."""

    __tablename__ = "tasks"
    __table_args__ = (
        # One detached instance per series occurrence; retried skips hit this.
        # NULL values do not participate (roots and standalone tasks are unaffected).
        UniqueConstraint("parent_task_id", "occurrence_start", name="uq_task_parent_occurrence"),
    )

    # Primary key
    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))

    # Owner (authentication lives outside this service)
    user_id = Column(String, nullable=False, index=True)

    # Basic fields
    title = Column(String, nullable=False)
    description = Column(String, nullable=True)
    status = Column(String, nullable=False, default=TaskStatus.TODO.value)
    priority = Column(String, nullable=False, default=TaskPriority.MEDIUM.value)
    category = Column(String, nullable=True)
    assignees = Column(JSON, nullable=False, default=list)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Scheduling fields (duration stored as {years, months, days, hours, minutes})
    start_date = Column(DateTime, nullable=False)
    due_date = Column(DateTime, nullable=True, index=True)
    duration = Column(JSON(none_as_null=True), nullable=True)

    # Recurrence
    is_recurring = Column(Boolean, nullable=False, default=False, index=True)
    recurrence_pattern = Column(JSON(none_as_null=True), nullable=True)
    # Lookup key to the series root, not an ownership edge.
    parent_task_id = Column(String, ForeignKey("tasks.id", ondelete="SET NULL"), nullable=True, index=True)
    instance_number = Column(Integer, nullable=True)
    occurrence_start = Column(DateTime, nullable=True)
    recurrence_version = Column(Integer, nullable=False, default=1)
    last_recurrence_update = Column(DateTime, nullable=True)

    def to_pydantic(self):
        """Convert database model to Pydantic model."""
        from recurtask.models.task import Task

        return Task(
            id=self.id,
            user_id=self.user_id,
            title=self.title,
            description=self.description,
            status=value_to_enum(self.status, TaskStatus, TaskStatus.TODO),
            priority=value_to_enum(self.priority, TaskPriority, TaskPriority.MEDIUM),
            category=self.category,
            assignees=self.assignees or [],
            created_at=self.created_at,
            updated_at=self.updated_at,
            start_date=self.start_date,
            due_date=self.due_date,
            duration=duration_from_json(self.duration),
            is_recurring=bool(self.is_recurring),
            recurrence_pattern=pattern_from_json(self.recurrence_pattern),
            parent_task_id=self.parent_task_id,
            instance_number=self.instance_number,
            occurrence_start=self.occurrence_start,
            recurrence_version=self.recurrence_version or 1,
            last_recurrence_update=self.last_recurrence_update,
        )

    @classmethod
    def from_pydantic(cls, task):
        """Create database model from Pydantic model."""
        row = cls(id=task.id, created_at=task.created_at)
        row.apply_pydantic(task)
        return row

    def apply_pydantic(self, task) -> None:
        """Copy every mutable field from a Pydantic Task onto this row."""
        # Handle enum values (Pydantic with use_enum_values=True returns strings)
        self.user_id = task.user_id
        self.title = task.title
        self.description = task.description
        self.status = enum_to_value(task.status)
        self.priority = enum_to_value(task.priority)
        self.category = task.category
        self.assignees = list(task.assignees or [])
        self.updated_at = task.updated_at
        self.start_date = task.start_date
        self.due_date = task.due_date
        self.duration = duration_to_json(task.duration)
        self.is_recurring = task.is_recurring
        self.recurrence_pattern = pattern_to_json(task.recurrence_pattern)
        self.parent_task_id = task.parent_task_id
        self.instance_number = task.instance_number
        self.occurrence_start = task.occurrence_start
        self.recurrence_version = task.recurrence_version
        self.last_recurrence_update = task.last_recurrence_update


class RecurrencePatternDB(Base):
    """Database model for the persisted state of one recurring series."""

    __tablename__ = "recurrence_patterns"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    task_id = Column(String, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, unique=True, index=True)
    user_id = Column(String, nullable=False, index=True)

    rule = Column(String, nullable=False)
    instance_duration = Column(JSON(none_as_null=True), nullable=True)
    timezone = Column(String, nullable=False, default=DEFAULT_TIMEZONE)

    # Cursor over the series; NULL once exhausted.
    next_due = Column(DateTime, nullable=True, index=True)
    last_generated = Column(DateTime, nullable=True)
    pattern_version = Column(Integer, nullable=False, default=1)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    total_instances_created = Column(Integer, nullable=False, default=0)
    last_instance_date = Column(DateTime, nullable=True)

    end_date = Column(DateTime, nullable=True)
    end_occurrences = Column(Integer, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_pydantic(self):
        """Convert database model to Pydantic model."""
        from recurtask.models.recurrence import RecurrencePatternRecord

        return RecurrencePatternRecord(
            id=self.id,
            task_id=self.task_id,
            user_id=self.user_id,
            rule=self.rule,
            instance_duration=duration_from_json(self.instance_duration),
            timezone=self.timezone or DEFAULT_TIMEZONE,
            next_due=self.next_due,
            last_generated=self.last_generated,
            pattern_version=self.pattern_version or 1,
            is_active=bool(self.is_active),
            total_instances_created=self.total_instances_created or 0,
            last_instance_date=self.last_instance_date,
            end_date=self.end_date,
            end_occurrences=self.end_occurrences,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    @classmethod
    def from_pydantic(cls, record):
        """Create database model from Pydantic model."""
        row = cls(id=record.id, task_id=record.task_id, created_at=record.created_at)
        row.apply_pydantic(record)
        return row

    def apply_pydantic(self, record) -> None:
        """Copy every mutable field from a RecurrencePatternRecord onto this row."""
        self.user_id = record.user_id
        self.rule = record.rule
        self.instance_duration = duration_to_json(record.instance_duration)
        self.timezone = record.timezone
        self.next_due = record.next_due
        self.last_generated = record.last_generated
        self.pattern_version = record.pattern_version
        self.is_active = record.is_active
        self.total_instances_created = record.total_instances_created
        self.last_instance_date = record.last_instance_date
        self.end_date = record.end_date
        self.end_occurrences = record.end_occurrences
        self.updated_at = record.updated_at
