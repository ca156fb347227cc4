"""Recurrence models for recurtask.

`RecurrencePattern` is the structured input users edit; the canonical RRULE
string derived from it lives on `RecurrencePatternRecord`, one per series root.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from recurtask.models.constants import DEFAULT_TIMEZONE, MAX_END_OCCURRENCES
from recurtask.models.duration import Duration


class RecurrenceFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"
    # Only produced when decoding a legacy rule the structured schema cannot express.
    CUSTOM = "custom"


class EditScope(str, Enum):
    """Breadth of an edit/delete on a recurring series."""

    THIS_INSTANCE = "this_instance"
    THIS_AND_FUTURE = "this_and_future"
    ALL_INSTANCES = "all_instances"


class RecurrencePattern(BaseModel):
    """Structured recurrence definition.

    Notes:
    - days_of_week uses Sunday=0 ... Saturday=6.
    - Cross-field rules (weekly needs days, end_date vs end_occurrences, ...) are
      enforced by the codec in a fixed order, not here.
    """

    frequency: RecurrenceFrequency
    interval: int = Field(1, description="Every N units (days/weeks/months/years)")

    # Weekly specifics
    days_of_week: Optional[List[int]] = Field(
        None, description="For weekly recurrence: weekdays (Sunday=0) on which it occurs"
    )
    # Monthly specifics
    day_of_month: Optional[int] = Field(None, ge=1, le=31)

    # End condition (at most one)
    end_date: Optional[datetime] = None
    end_occurrences: Optional[int] = Field(None, ge=1, le=MAX_END_OCCURRENCES)

    timezone: str = DEFAULT_TIMEZONE

    @field_validator("days_of_week")
    @classmethod
    def _validate_days_of_week(cls, v):
        if v is None:
            return None
        seen = set()
        out: List[int] = []
        for day in v:
            if day < 0 or day > 6:
                raise ValueError("Day of week must be between 0 and 6")
            if day not in seen:
                seen.add(day)
                out.append(day)
        return out

    class Config:
        """Pydantic configuration."""
        use_enum_values = True


class RecurrencePatternRecord(BaseModel):
    """Persisted state of one recurring series."""

    id: str = Field(..., description="Unique record identifier (UUID v4)")
    task_id: str = Field(..., description="Series root task id")
    user_id: str = Field(..., description="User ID who owns the series")
    rule: str = Field(..., description="Canonical DTSTART + RRULE string")
    instance_duration: Optional[Duration] = None
    timezone: str = DEFAULT_TIMEZONE
    next_due: Optional[datetime] = Field(None, description="Cursor: next occurrence not yet consumed")
    last_generated: Optional[datetime] = None
    pattern_version: int = Field(1, ge=1)
    is_active: bool = True
    total_instances_created: int = Field(0, ge=0)
    last_instance_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    end_occurrences: Optional[int] = None
    created_at: datetime
    updated_at: datetime
