"""Classify how disruptive a proposed update is to a recurring series.

The scope engine uses the result to decide whether the series rule must be
regenerated and its version bumped, independently of the structural work the
edit scope itself requires.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional

from recurtask.models.duration import Duration
from recurtask.models.recurrence import RecurrencePattern
from recurtask.models.task import NON_RECURRING_FIELDS, Task, TaskUpdate
from recurtask.recurrence.duration_math import calculate_duration


class ChangeSeverity(str, Enum):
    NONE = "none"
    MINOR = "minor"
    MAJOR = "major"


_RANK = {ChangeSeverity.NONE: 0, ChangeSeverity.MINOR: 1, ChangeSeverity.MAJOR: 2}

_PATTERN_FIELDS = (
    "frequency",
    "interval",
    "days_of_week",
    "day_of_month",
    "end_date",
    "end_occurrences",
    "timezone",
)
_DURATION_FIELDS = ("years", "months", "days", "hours", "minutes")


class ChangeType(str, Enum):
    PATTERN_ADDITION = "pattern_addition"
    PATTERN_REMOVAL = "pattern_removal"
    PATTERN_FIELD_CHANGE = "pattern_field_change"
    DURATION_ADDITION = "duration_addition"
    DURATION_REMOVAL = "duration_removal"
    DURATION_FIELD_CHANGE = "duration_field_change"
    TIMING_CHANGE = "timing_change"
    FIELD_CHANGE = "field_change"


@dataclass(frozen=True)
class FieldChange:
    type: ChangeType
    field: str
    old_value: Any = None
    new_value: Any = None


@dataclass
class RecurrenceChanges:
    has_pattern_changes: bool = False
    has_duration_changes: bool = False
    has_timing_changes: bool = False
    has_non_recurring_changes: bool = False
    changes: List[FieldChange] = field(default_factory=list)
    severity: ChangeSeverity = ChangeSeverity.NONE

    @property
    def requires_rule_regeneration(self) -> bool:
        """Whether the series rule must be rebuilt and its version bumped."""
        return self.severity != ChangeSeverity.NONE and (
            self.has_pattern_changes or self.has_duration_changes or self.has_timing_changes
        )

    def escalate(self, severity: ChangeSeverity) -> None:
        if _RANK[severity] > _RANK[self.severity]:
            self.severity = severity


def _normalize(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime) and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _is_major(change: FieldChange) -> bool:
    if change.type in (
        ChangeType.PATTERN_ADDITION,
        ChangeType.PATTERN_REMOVAL,
        ChangeType.DURATION_ADDITION,
        ChangeType.DURATION_REMOVAL,
    ):
        return True
    if change.type != ChangeType.PATTERN_FIELD_CHANGE:
        return False
    if change.field == "frequency":
        return True
    if change.field == "interval":
        return abs(int(change.old_value or 1) - int(change.new_value or 1)) > 1
    return False


def determine_severity(changes: List[FieldChange], current: ChangeSeverity) -> ChangeSeverity:
    """Severity implied by a batch of changes, never lower than `current`."""
    if any(_is_major(c) for c in changes):
        candidate = ChangeSeverity.MAJOR
    elif any(c.type != ChangeType.FIELD_CHANGE for c in changes):
        candidate = ChangeSeverity.MINOR
    else:
        candidate = ChangeSeverity.NONE
    return candidate if _RANK[candidate] > _RANK[current] else current


def compare_patterns(old: RecurrencePattern, new: RecurrencePattern) -> List[FieldChange]:
    changes: List[FieldChange] = []
    for name in _PATTERN_FIELDS:
        old_value = _normalize(getattr(old, name))
        new_value = _normalize(getattr(new, name))
        if name == "days_of_week":
            if set(old_value or []) != set(new_value or []):
                changes.append(FieldChange(ChangeType.PATTERN_FIELD_CHANGE, name, old_value, new_value))
        elif old_value != new_value:
            changes.append(FieldChange(ChangeType.PATTERN_FIELD_CHANGE, name, old_value, new_value))
    return changes


def compare_durations(old: Duration, new: Duration) -> List[FieldChange]:
    return [
        FieldChange(ChangeType.DURATION_FIELD_CHANGE, name, getattr(old, name), getattr(new, name))
        for name in _DURATION_FIELDS
        if getattr(old, name) != getattr(new, name)
    ]


def track_recurrence_changes(
    current: Task,
    update: TaskUpdate,
    *,
    current_pattern: Optional[RecurrencePattern] = None,
) -> RecurrenceChanges:
    """Diff a task against a proposed update.

    Args:
        current: Task as stored
        update: Proposed partial update; fields the caller did not set are ignored
        current_pattern: Pattern to compare against when it is not on `current`
            (e.g. a detached instance compared with its series root)

    Returns:
        RecurrenceChanges with flags, per-field changes and overall severity
    """
    result = RecurrenceChanges()
    provided = update.provided()
    old_pattern = current_pattern if current_pattern is not None else current.recurrence_pattern

    if "recurrence_pattern" in provided:
        new_pattern = provided["recurrence_pattern"]
        if old_pattern is not None and new_pattern is not None:
            pattern_changes = compare_patterns(old_pattern, new_pattern)
        elif old_pattern is None and new_pattern is not None:
            pattern_changes = [FieldChange(ChangeType.PATTERN_ADDITION, "recurrence_pattern", None, new_pattern)]
        elif old_pattern is not None and new_pattern is None:
            pattern_changes = [FieldChange(ChangeType.PATTERN_REMOVAL, "recurrence_pattern", old_pattern, None)]
        else:
            pattern_changes = []
        if pattern_changes:
            result.has_pattern_changes = True
            result.changes.extend(pattern_changes)
            result.escalate(determine_severity(pattern_changes, result.severity))

    duration_given = "duration" in provided
    new_duration = provided.get("duration")
    if not duration_given and provided.get("due_date") is not None:
        # A due date alone is re-expressed as a duration from the (new) start.
        start = _normalize(provided.get("start_date") or current.start_date)
        due = _normalize(provided["due_date"])
        if start is not None and due > start:
            duration_given = True
            new_duration = calculate_duration(start, due)

    if duration_given:
        old_duration = current.duration
        if old_duration is not None and new_duration is not None:
            duration_changes = compare_durations(old_duration, new_duration)
        elif old_duration is None and new_duration is not None:
            duration_changes = [FieldChange(ChangeType.DURATION_ADDITION, "duration", None, new_duration)]
        elif old_duration is not None and new_duration is None:
            duration_changes = [FieldChange(ChangeType.DURATION_REMOVAL, "duration", old_duration, None)]
        else:
            duration_changes = []
        if duration_changes:
            result.has_duration_changes = True
            result.changes.extend(duration_changes)
            result.escalate(determine_severity(duration_changes, result.severity))

    new_start = provided.get("start_date")
    if new_start is not None and current.start_date is not None:
        if _normalize(new_start) != _normalize(current.start_date):
            timing = FieldChange(ChangeType.TIMING_CHANGE, "start_date", current.start_date, new_start)
            result.has_timing_changes = True
            result.changes.append(timing)
            result.escalate(determine_severity([timing], result.severity))

    for name in NON_RECURRING_FIELDS:
        if name not in provided:
            continue
        old_value = _normalize(getattr(current, name))
        new_value = _normalize(provided[name])
        if name == "assignees":
            old_value, new_value = list(old_value or []), list(new_value or [])
        if old_value != new_value:
            result.has_non_recurring_changes = True
            result.changes.append(FieldChange(ChangeType.FIELD_CHANGE, name, old_value, new_value))

    return result
