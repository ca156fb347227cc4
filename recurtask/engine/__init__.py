"""Recurring series engine for recurtask."""

from recurtask.engine.activity import ActivitySink, InMemoryActivitySink, LoggingActivitySink
from recurtask.engine.scope import (
    SCOPE_OPTIONS,
    DeleteAction,
    EditAction,
    TaskState,
    parse_scope,
    task_state,
)
from recurtask.engine.series import (
    DeleteResult,
    EditResult,
    RecurringSeriesEngine,
    ScopePreview,
    SeriesInfo,
)

__all__ = [
    "ActivitySink",
    "InMemoryActivitySink",
    "LoggingActivitySink",
    "SCOPE_OPTIONS",
    "DeleteAction",
    "EditAction",
    "TaskState",
    "parse_scope",
    "task_state",
    "DeleteResult",
    "EditResult",
    "RecurringSeriesEngine",
    "ScopePreview",
    "SeriesInfo",
]
