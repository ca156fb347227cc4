"""Activity sinks for recurring-series events."""

import logging
from typing import List, Protocol

from recurtask.models.activity_event import ActivityEvent

logger = logging.getLogger(__name__)


class ActivitySink(Protocol):
    """Receives events after the mutation that produced them has committed."""

    def record(self, event: ActivityEvent) -> None:
        ...


class LoggingActivitySink:
    """Default sink: writes each event to the log at INFO."""

    def record(self, event: ActivityEvent) -> None:
        logger.info(
            f"Activity {event.event_type} task={event.task_id} user={event.user_id} "
            f"scope={event.scope} details={event.details}"
        )


class InMemoryActivitySink:
    """Keeps events in a list (useful for tests and for batching by a host app)."""

    def __init__(self):
        self.events: List[ActivityEvent] = []

    def record(self, event: ActivityEvent) -> None:
        self.events.append(event)
