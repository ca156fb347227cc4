"""ActivityEvent data model for recurtask.

Events are emitted after a recurring-series mutation commits; the sink that
receives them (notifications, activity feed) is outside the engine.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field


class ActivityEventType(str, Enum):
    """Activity event type enumeration."""
    SERIES_CREATED = "series_created"
    SERIES_UPDATED = "series_updated"
    SERIES_DEACTIVATED = "series_deactivated"
    SERIES_ENDED = "series_ended"
    SERIES_DELETED = "series_deleted"
    OCCURRENCE_SKIPPED = "occurrence_skipped"
    INSTANCE_DETACHED = "instance_detached"
    INSTANCE_UPDATED = "instance_updated"
    INSTANCE_DELETED = "instance_deleted"
    TASK_CREATED = "task_created"
    TASK_UPDATED = "task_updated"
    TASK_DELETED = "task_deleted"


class ActivityEvent(BaseModel):
    """Something a user-facing activity feed or notifier may want to know about."""

    event_type: ActivityEventType = Field(..., description="Type of activity event")
    user_id: str = Field(..., description="User who owns the affected task")
    task_id: str = Field(..., description="Task this event relates to")
    scope: Optional[str] = Field(None, description="Edit/delete scope that produced the event")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="Event timestamp")
    details: Dict[str, Any] = Field(default_factory=dict, description="Additional event details")

    class Config:
        """Pydantic configuration."""
        use_enum_values = True
