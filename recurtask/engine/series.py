"""Recurring series engine.

Creates series, and applies scoped edits and deletes to them. Every public
mutation runs as one database transaction: repositories only flush, and the
engine commits once at the end or rolls everything back. Activity events are
handed to the sink only after the commit.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from recurtask.database.database import transaction
from recurtask.database.recurrence_pattern_repository import RecurrencePatternRepository
from recurtask.database.repository import TaskRepository
from recurtask.engine.activity import ActivitySink, LoggingActivitySink
from recurtask.engine.scope import (
    SCOPE_OPTIONS,
    DeleteAction,
    EditAction,
    TaskState,
    delete_action,
    describe_scope,
    edit_action,
    parse_scope,
    task_state,
)
from recurtask.errors import StaleVersionError, TaskNotFoundError, ValidationError
from recurtask.models.activity_event import ActivityEvent, ActivityEventType
from recurtask.models.constants import OCCURRENCE_PREVIEW_COUNT
from recurtask.models.duration import Duration
from recurtask.models.recurrence import EditScope, RecurrencePattern, RecurrencePatternRecord
from recurtask.models.task import NON_RECURRING_FIELDS, Task, TaskUpdate
from recurtask.models.task_factory import resolve_schedule
from recurtask.recurrence.change_tracker import RecurrenceChanges, track_recurrence_changes
from recurtask.recurrence.duration_math import add_to_date
from recurtask.recurrence.occurrences import next_occurrence, upcoming_occurrences
from recurtask.recurrence.rrule_codec import pattern_to_rule, rule_to_pattern

logger = logging.getLogger(__name__)

ScopeValue = Union[EditScope, str]


class EditResult(BaseModel):
    """Tasks and records written by one scoped edit."""

    updated_tasks: List[Task] = Field(default_factory=list)
    created_tasks: List[Task] = Field(default_factory=list)
    updated_patterns: List[RecurrencePatternRecord] = Field(default_factory=list)


class DeleteResult(BaseModel):
    """Rows removed (and records rewritten) by one scoped delete."""

    deleted_task_ids: List[str] = Field(default_factory=list)
    deleted_pattern_ids: List[str] = Field(default_factory=list)
    updated_patterns: List[RecurrencePatternRecord] = Field(default_factory=list)
    updated_tasks: List[Task] = Field(default_factory=list)


class ScopePreview(BaseModel):
    """What an edit with a given scope would touch, computed without writing."""

    scope: EditScope
    description: str
    affected_task_ids: List[str] = Field(default_factory=list)
    current_task_id: str
    is_instance: bool = False
    parent_task_id: Optional[str] = None
    instances_count: int = 0
    severity: str = "none"
    requires_rule_regeneration: bool = False
    changes: List[Dict[str, Any]] = Field(default_factory=list)

    class Config:
        """Pydantic configuration."""
        use_enum_values = True


class SeriesInfo(BaseModel):
    """Snapshot of a series for display: root, record, instances, what comes next."""

    is_instance: bool
    root: Task
    record: RecurrencePatternRecord
    instances: List[Task] = Field(default_factory=list)
    upcoming: List[datetime] = Field(default_factory=list)
    scope_options: List[Dict[str, str]] = Field(default_factory=list)


def _as_naive_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def _changes_as_dicts(changes: RecurrenceChanges) -> List[Dict[str, Any]]:
    return [
        {
            "type": c.type.value,
            "field": c.field,
            "old_value": c.old_value,
            "new_value": c.new_value,
        }
        for c in changes.changes
    ]


class RecurringSeriesEngine:
    """Scoped create/edit/delete over tasks and their recurrence records.

    Args:
        db: SQLAlchemy session; the engine owns its transactions
        clock: Returns "now" as naive UTC (defaults to datetime.utcnow)
        activity_sink: Receives events after commit (defaults to logging)
    """

    def __init__(
        self,
        db: Session,
        clock: Optional[Callable[[], datetime]] = None,
        activity_sink: Optional[ActivitySink] = None,
    ):
        self.db = db
        self.clock = clock or datetime.utcnow
        self.activity_sink = activity_sink or LoggingActivitySink()
        self.tasks = TaskRepository(db, autocommit=False)
        self.patterns = RecurrencePatternRepository(db, autocommit=False)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_task(self, task: Task) -> Task:
        """Persist a standalone task, keeping due_date and duration in sync.

        Raises:
            ValidationError: If the task is recurring/an instance, or its schedule is invalid
        """
        if task.is_recurring or task.recurrence_pattern is not None:
            raise ValidationError("Recurring tasks must be created with create_series")
        if task.parent_task_id:
            raise ValidationError("Detached instances are created by editing a series")

        due, duration = resolve_schedule(task.start_date, task.due_date, task.duration)
        task = task.model_copy(update={"due_date": due, "duration": duration})

        with transaction(self.db):
            created = self.tasks.create(task)

        logger.info(f"Created task {created.id} for user {created.user_id}")
        self._emit([self._event(ActivityEventType.TASK_CREATED, created)])
        return created

    def create_series(
        self,
        task: Task,
        pattern: RecurrencePattern,
        duration: Optional[Duration] = None,
    ) -> Tuple[Task, RecurrencePatternRecord]:
        """Make `task` the root of a new recurring series.

        Args:
            task: Root task; its start_date anchors the rule
            pattern: Structured recurrence pattern
            duration: Per-occurrence duration (falls back to task.duration, then to
                the span between task.start_date and task.due_date)

        Returns:
            (root task, pattern record) as persisted

        Raises:
            ValidationError: If the pattern or duration is invalid; nothing is written
        """
        if task.parent_task_id:
            raise ValidationError("A detached instance cannot become a series root")

        rule = pattern_to_rule(pattern, task.start_date)
        due, resolved = resolve_schedule(
            task.start_date,
            task.due_date,
            duration if duration is not None else task.duration,
            duration_required=True,
        )
        now = self.clock()
        first = next_occurrence(rule, task.start_date, inclusive=True)

        root = task.model_copy(update={
            "is_recurring": True,
            "recurrence_pattern": pattern,
            "due_date": due,
            "duration": resolved,
            "recurrence_version": 1,
            "last_recurrence_update": now,
        })
        record = RecurrencePatternRecord(
            id=str(uuid.uuid4()),
            task_id=root.id,
            user_id=root.user_id,
            rule=rule,
            instance_duration=resolved,
            timezone=pattern.timezone,
            next_due=first,
            last_generated=now,
            pattern_version=1,
            is_active=first is not None,
            total_instances_created=0,
            end_date=pattern.end_date,
            end_occurrences=pattern.end_occurrences,
            created_at=now,
            updated_at=now,
        )

        with transaction(self.db):
            root = self.tasks.create(root)
            record = self.patterns.create(record)

        logger.info(f"Created recurring series {record.id} for task {root.id} (next due {record.next_due})")
        self._emit([self._event(ActivityEventType.SERIES_CREATED, root, details={"rule": record.rule})])
        return root, record

    # ------------------------------------------------------------------
    # Edit
    # ------------------------------------------------------------------

    def edit_series(
        self,
        task_id: str,
        user_id: str,
        update: TaskUpdate,
        scope: ScopeValue,
        expected_version: Optional[int] = None,
        occurrence: Optional[datetime] = None,
    ) -> EditResult:
        """Apply an update to a task with the given scope.

        Args:
            task_id: Task being edited (root, instance or standalone)
            user_id: Owner
            update: Partial update; only explicitly set fields apply
            scope: this_instance / this_and_future / all_instances
            expected_version: recurrence_version the caller last saw on the series root
            occurrence: For this_instance on a root, the occurrence the caller means
                to detach; a retry with the same value returns the same instance

        Raises:
            InvalidScopeError: Unknown scope
            TaskNotFoundError: Task (or its series record) does not exist
            ValidationError: Invalid pattern/schedule; nothing is written
            StaleVersionError: The series changed since the caller read it
        """
        scope = parse_scope(scope)
        result = EditResult()
        events: List[ActivityEvent] = []

        with transaction(self.db):
            task = self._load(user_id, task_id)
            state = task_state(task)
            root, record = self._series_of(task, state)
            self._check_version(root or task, expected_version)
            action = edit_action(state, scope)
            if state == TaskState.DETACHED_INSTANCE and record is None:
                action = EditAction.UPDATE_INSTANCE
            now = self.clock()

            if action == EditAction.APPLY_DIRECT:
                self._edit_standalone(task, update, now, result, events, scope)
            elif action == EditAction.DETACH_OCCURRENCE:
                self._detach_occurrence(root, record, update, occurrence, now, result, events, scope)
            elif action == EditAction.UPDATE_INSTANCE:
                self._edit_instance(task, update, now, result, events, scope)
            elif action == EditAction.UPDATE_INSTANCE_AND_SERIES:
                self._edit_instance_and_series(task, root, record, update, now, result, events, scope)
            elif action == EditAction.UPDATE_SERIES:
                self._edit_root(root, record, update, now, result, events, scope, propagate=False)
            elif action == EditAction.UPDATE_ALL:
                self._edit_root(root, record, update, now, result, events, scope, propagate=True)

        logger.info(
            f"Edited task {task_id} with scope {scope.value}: "
            f"{len(result.updated_tasks)} updated, {len(result.created_tasks)} created, "
            f"{len(result.updated_patterns)} patterns"
        )
        self._emit(events)
        return result

    def _edit_standalone(self, task, update, now, result, events, scope) -> None:
        pattern = update.provided().get("recurrence_pattern")
        merged = self._merge(task, update, now, duration_required=pattern is not None)
        if pattern is None:
            result.updated_tasks.append(self.tasks.update(merged))
            events.append(self._event(ActivityEventType.TASK_UPDATED, merged, scope))
            return

        # Adding a pattern turns the task into a series root.
        rule = pattern_to_rule(pattern, merged.start_date)
        due, duration = resolve_schedule(
            merged.start_date, merged.due_date, merged.duration, duration_required=True
        )
        first = next_occurrence(rule, merged.start_date, inclusive=True)
        root = merged.model_copy(update={
            "due_date": due,
            "duration": duration,
            "is_recurring": True,
            "recurrence_pattern": pattern,
            "recurrence_version": task.recurrence_version + 1,
            "last_recurrence_update": now,
        })
        record = RecurrencePatternRecord(
            id=str(uuid.uuid4()),
            task_id=root.id,
            user_id=root.user_id,
            rule=rule,
            instance_duration=root.duration,
            timezone=pattern.timezone,
            next_due=first,
            last_generated=now,
            is_active=first is not None,
            end_date=pattern.end_date,
            end_occurrences=pattern.end_occurrences,
            created_at=now,
            updated_at=now,
        )
        result.updated_tasks.append(self.tasks.update(root))
        result.updated_patterns.append(self.patterns.create(record))
        events.append(self._event(ActivityEventType.SERIES_CREATED, root, scope, {"rule": rule}))

    def _detach_occurrence(self, root, record, update, occurrence, now, result, events, scope) -> None:
        """Carve the series' current occurrence out into its own task."""
        consumed, existing = self._claimed_occurrence(root, record, occurrence)
        if consumed:
            # A retry gets back what the first call produced.
            if existing is not None:
                result.created_tasks.append(existing)
            return
        if not record.is_active or record.next_due is None:
            logger.info(f"Series {record.id} is exhausted; nothing to detach")
            return

        target = record.next_due
        duration = record.instance_duration or root.duration
        base = root.model_copy(update={
            "id": str(uuid.uuid4()),
            "is_recurring": False,
            "recurrence_pattern": None,
            "parent_task_id": root.id,
            "instance_number": record.total_instances_created + 1,
            "occurrence_start": target,
            "start_date": target,
            "due_date": add_to_date(target, duration) if duration is not None else None,
            "duration": duration,
            "last_recurrence_update": None,
            "created_at": now,
            "updated_at": now,
        })
        instance = self._merge(base, update, now)
        new_record = self._advance(record, target, now, detached=True)

        result.created_tasks.append(self.tasks.create(instance))
        result.updated_patterns.append(
            self.patterns.update(new_record, loaded_version=record.pattern_version)
        )
        events.append(self._event(
            ActivityEventType.INSTANCE_DETACHED, instance, scope,
            {"occurrence_start": target.isoformat(), "instance_number": instance.instance_number},
        ))
        if not new_record.is_active:
            events.append(self._event(ActivityEventType.SERIES_DEACTIVATED, root, scope))

    def _edit_instance(self, task, update, now, result, events, scope) -> None:
        merged = self._merge(task, update, now)
        result.updated_tasks.append(self.tasks.update(merged))
        events.append(self._event(ActivityEventType.INSTANCE_UPDATED, merged, scope))

    def _edit_instance_and_series(self, task, root, record, update, now, result, events, scope) -> None:
        provided = update.provided()
        self._reject_pattern_removal(provided)
        current_pattern = root.recurrence_pattern
        changes = track_recurrence_changes(task, update, current_pattern=current_pattern)

        instance = self._merge(task, update, now)

        # The root is only touched when the update carries a pattern; it then
        # also takes the task-level fields.
        new_root = root
        new_record = record
        if "recurrence_pattern" in provided:
            subset = update.non_recurring_subset()
            if subset:
                new_root = self._merge(root, TaskUpdate(**subset), now)
        if changes.has_pattern_changes and changes.requires_rule_regeneration:
            pattern = provided.get("recurrence_pattern") or current_pattern
            new_root, new_record = self._regenerate(new_root, record, pattern, now)

        result.updated_tasks.append(self.tasks.update(instance))
        if new_root is not root:
            result.updated_tasks.append(self.tasks.update(new_root))
        if new_record is not record:
            result.updated_patterns.append(
                self.patterns.update(new_record, loaded_version=record.pattern_version)
            )
            events.extend(self._regeneration_events(new_root, new_record, changes, scope))
        events.append(self._event(ActivityEventType.INSTANCE_UPDATED, instance, scope))

    def _edit_root(self, root, record, update, now, result, events, scope, *, propagate: bool) -> None:
        provided = update.provided()
        self._reject_pattern_removal(provided)
        current_pattern = root.recurrence_pattern
        changes = track_recurrence_changes(root, update, current_pattern=current_pattern)

        new_root = self._merge(root, update, now, duration_required=True)
        new_record = record
        if changes.requires_rule_regeneration:
            pattern = provided.get("recurrence_pattern") or current_pattern or rule_to_pattern(record.rule)
            new_root, new_record = self._regenerate(new_root, record, pattern, now)

        instance_updates: List[Task] = []
        subset = update.non_recurring_subset()
        if propagate and subset:
            subset_update = TaskUpdate(**subset)
            instance_updates = [
                self._merge(instance, subset_update, now)
                for instance in self.tasks.list_by_parent(root.user_id, root.id)
            ]

        result.updated_tasks.append(self.tasks.update(new_root))
        if new_record is not record:
            result.updated_patterns.append(
                self.patterns.update(new_record, loaded_version=record.pattern_version)
            )
            events.extend(self._regeneration_events(new_root, new_record, changes, scope))
        else:
            events.append(self._event(ActivityEventType.SERIES_UPDATED, new_root, scope, {"severity": changes.severity.value}))
        for instance in instance_updates:
            result.updated_tasks.append(self.tasks.update(instance))

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    def delete_series(
        self,
        task_id: str,
        user_id: str,
        scope: ScopeValue,
        expected_version: Optional[int] = None,
        occurrence: Optional[datetime] = None,
    ) -> DeleteResult:
        """Delete a task, an occurrence, or a whole series depending on scope.

        Raises:
            InvalidScopeError: Unknown scope
            TaskNotFoundError: Task (or its series record) does not exist
            StaleVersionError: The series changed since the caller read it
        """
        scope = parse_scope(scope)
        result = DeleteResult()
        events: List[ActivityEvent] = []

        with transaction(self.db):
            task = self._load(user_id, task_id)
            state = task_state(task)
            root, record = self._series_of(task, state)
            self._check_version(root or task, expected_version)
            action = delete_action(state, scope)
            if state == TaskState.DETACHED_INSTANCE and record is None:
                action = DeleteAction.DELETE_TASK
            now = self.clock()

            if action == DeleteAction.DELETE_TASK:
                self.tasks.delete(user_id, task.id)
                result.deleted_task_ids.append(task.id)
                event_type = (
                    ActivityEventType.INSTANCE_DELETED
                    if state == TaskState.DETACHED_INSTANCE
                    else ActivityEventType.TASK_DELETED
                )
                events.append(self._event(event_type, task, scope))

            elif action == DeleteAction.SKIP_OCCURRENCE:
                self._skip_occurrence(root, record, occurrence, now, result, events, scope)

            elif action in (DeleteAction.END_SERIES, DeleteAction.END_SERIES_AND_INSTANCE):
                ended = self._end_series(root, record, now, result)
                if action == DeleteAction.END_SERIES_AND_INSTANCE:
                    self.tasks.delete(user_id, task.id)
                    result.deleted_task_ids.append(task.id)
                events.append(self._event(ActivityEventType.SERIES_ENDED, ended, scope))

            elif action == DeleteAction.DELETE_SERIES:
                deleted_pattern = self.patterns.delete(user_id, root.id)
                if deleted_pattern:
                    result.deleted_pattern_ids.append(deleted_pattern)
                instance_ids = [i.id for i in self.tasks.list_by_parent(user_id, root.id)]
                result.deleted_task_ids.extend(self.tasks.delete_many(user_id, instance_ids))
                self.tasks.delete(user_id, root.id)
                result.deleted_task_ids.append(root.id)
                events.append(self._event(
                    ActivityEventType.SERIES_DELETED, root, scope,
                    {"deleted_instances": len(instance_ids)},
                ))

        logger.info(
            f"Deleted task {task_id} with scope {scope.value}: "
            f"{len(result.deleted_task_ids)} tasks, {len(result.deleted_pattern_ids)} patterns"
        )
        self._emit(events)
        return result

    def _skip_occurrence(self, root, record, occurrence, now, result, events, scope) -> None:
        consumed, _ = self._claimed_occurrence(root, record, occurrence)
        if consumed:
            return
        if not record.is_active or record.next_due is None:
            logger.info(f"Series {record.id} is exhausted; nothing to skip")
            return
        skipped = record.next_due
        new_record = self._advance(record, skipped, now, detached=False)
        result.updated_patterns.append(
            self.patterns.update(new_record, loaded_version=record.pattern_version)
        )
        events.append(self._event(
            ActivityEventType.OCCURRENCE_SKIPPED, root, scope, {"occurrence_start": skipped.isoformat()}
        ))
        if not new_record.is_active:
            events.append(self._event(ActivityEventType.SERIES_DEACTIVATED, root, scope))

    def _end_series(self, root, record, now, result) -> Task:
        deleted_pattern = self.patterns.delete(root.user_id, root.id)
        if deleted_pattern:
            result.deleted_pattern_ids.append(deleted_pattern)
        ended = root.model_copy(update={
            "is_recurring": False,
            "recurrence_pattern": None,
            "recurrence_version": root.recurrence_version + 1,
            "last_recurrence_update": now,
            "updated_at": now,
        })
        ended = self.tasks.update(ended)
        result.updated_tasks.append(ended)
        return ended

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    def preview_scope(
        self,
        task_id: str,
        user_id: str,
        scope: ScopeValue,
        update: Optional[TaskUpdate] = None,
    ) -> ScopePreview:
        """Describe what `edit_series` would touch, without writing anything.

        Raises:
            InvalidScopeError: Unknown scope
            TaskNotFoundError: Task does not exist
            ValidationError: Task is not part of a recurring series
        """
        scope = parse_scope(scope)
        task = self._load(user_id, task_id)
        state = task_state(task)
        if state == TaskState.STANDALONE:
            raise ValidationError("Task is not part of a recurring series")
        root, _ = self._series_of(task, state)
        instances = self.tasks.list_by_parent(user_id, root.id) if root is not None else []

        if scope == EditScope.ALL_INSTANCES and root is not None:
            affected = [root.id] + [i.id for i in instances]
        elif (
            scope == EditScope.THIS_AND_FUTURE
            and state == TaskState.DETACHED_INSTANCE
            and root is not None
            and (update is None or "recurrence_pattern" in update.provided())
        ):
            # The root is only touched by an update that carries a pattern.
            affected = [task.id, root.id]
        else:
            affected = [task.id]

        preview = ScopePreview(
            scope=scope,
            description=describe_scope(state, scope),
            affected_task_ids=affected,
            current_task_id=task.id,
            is_instance=state == TaskState.DETACHED_INSTANCE,
            parent_task_id=root.id if root is not None else None,
            instances_count=len(instances),
        )
        if update is not None:
            current_pattern = root.recurrence_pattern if root is not None else None
            changes = track_recurrence_changes(task, update, current_pattern=current_pattern)
            preview.severity = changes.severity.value
            preview.requires_rule_regeneration = changes.requires_rule_regeneration
            preview.changes = _changes_as_dicts(changes)
        return preview

    def series_info(self, task_id: str, user_id: str) -> SeriesInfo:
        """Root, record, detached instances and the next few occurrences of a series.

        Raises:
            TaskNotFoundError: Task or its series record does not exist
            ValidationError: Task is not part of a recurring series
        """
        task = self._load(user_id, task_id)
        state = task_state(task)
        if state == TaskState.STANDALONE:
            raise ValidationError("Task is not part of a recurring series")
        root, record = self._series_of(task, state)
        if record is None:
            raise TaskNotFoundError("Recurring pattern not found")

        upcoming: List[datetime] = []
        if record.is_active and record.next_due is not None:
            upcoming = [record.next_due] + upcoming_occurrences(
                record.rule, record.next_due, OCCURRENCE_PREVIEW_COUNT - 1
            )

        return SeriesInfo(
            is_instance=state == TaskState.DETACHED_INSTANCE,
            root=root,
            record=record,
            instances=self.tasks.list_by_parent(user_id, root.id),
            upcoming=upcoming,
            scope_options=[dict(option) for option in SCOPE_OPTIONS],
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _load(self, user_id: str, task_id: str) -> Task:
        task = self.tasks.get(user_id, task_id)
        if task is None:
            raise TaskNotFoundError(f"Task {task_id} not found")
        return task

    def _series_of(
        self, task: Task, state: TaskState
    ) -> Tuple[Optional[Task], Optional[RecurrencePatternRecord]]:
        """(root, record) of the series a task belongs to.

        A detached instance whose root is gone or no longer recurring gets
        (root or None, None); it is then edited and deleted on its own.
        """
        if state == TaskState.SERIES_ROOT:
            record = self.patterns.get_by_task(task.user_id, task.id)
            if record is None:
                logger.error(f"Series root {task.id} has no recurrence pattern record")
                raise TaskNotFoundError(f"Recurring pattern for task {task.id} not found")
            return task, record
        if state == TaskState.DETACHED_INSTANCE:
            root = self.tasks.get(task.user_id, task.parent_task_id)
            if root is None or not root.is_recurring:
                return root, None
            return root, self.patterns.get_by_task(task.user_id, root.id)
        return None, None

    def _check_version(self, task: Task, expected_version: Optional[int]) -> None:
        if expected_version is not None and expected_version != task.recurrence_version:
            raise StaleVersionError(
                f"Task {task.id} is at recurrence version {task.recurrence_version}, "
                f"caller expected {expected_version}",
                expected=expected_version,
                actual=task.recurrence_version,
            )

    def _claimed_occurrence(
        self, root: Task, record: RecurrencePatternRecord, occurrence: Optional[datetime]
    ) -> Tuple[bool, Optional[Task]]:
        """Guard for operations on the series cursor.

        Returns (already_consumed, detached_instance). A retried call whose
        occurrence the cursor has already passed gets (True, instance or None)
        and must not move the cursor again.

        Raises:
            StaleVersionError: `occurrence` lies beyond the current cursor
        """
        if occurrence is None:
            return False, None
        occurrence = _as_naive_utc(occurrence)
        existing = self.tasks.find_instance_for_occurrence(root.user_id, root.id, occurrence)
        if existing is not None:
            logger.debug(f"Occurrence {occurrence} of series {record.id} already detached as {existing.id}")
            return True, existing
        if record.next_due is None or occurrence < record.next_due:
            return True, None
        if occurrence != record.next_due:
            raise StaleVersionError(
                f"Occurrence {occurrence} is not the next occurrence of series {record.id} "
                f"(next is {record.next_due})"
            )
        return False, None

    def _advance(
        self, record: RecurrencePatternRecord, consumed: datetime, now: datetime, *, detached: bool
    ) -> RecurrencePatternRecord:
        """Move the cursor past `consumed`; deactivates the record when the series is exhausted."""
        following = next_occurrence(record.rule, consumed)
        values: Dict[str, Any] = {
            "next_due": following,
            "is_active": following is not None,
            "updated_at": now,
        }
        if detached:
            values["total_instances_created"] = record.total_instances_created + 1
            values["last_instance_date"] = consumed
        if following is None:
            logger.warning(f"Recurring series {record.id} has no occurrences after {consumed}; deactivating")
        else:
            logger.debug(f"Series {record.id} cursor {consumed} -> {following}")
        return record.model_copy(update=values)

    def _regenerate(
        self,
        root: Task,
        record: RecurrencePatternRecord,
        pattern: RecurrencePattern,
        now: datetime,
    ) -> Tuple[Task, RecurrencePatternRecord]:
        """Rebuild the rule from `pattern` anchored at root.start_date and bump versions.

        The cursor is re-seated on the first occurrence of the new rule at or
        after the later of the old cursor and now.

        Raises:
            ValidationError: If the pattern is invalid for the root's start date
        """
        rule = pattern_to_rule(pattern, root.start_date)
        anchor = max(record.next_due, now) if record.next_due is not None else now
        following = next_occurrence(rule, anchor, inclusive=True)
        if following is None:
            logger.warning(f"Regenerated rule for series {record.id} has no future occurrence; deactivating")

        new_record = record.model_copy(update={
            "rule": rule,
            "instance_duration": root.duration,
            "timezone": pattern.timezone,
            "next_due": following,
            "is_active": following is not None,
            "last_generated": now,
            "pattern_version": record.pattern_version + 1,
            "end_date": pattern.end_date,
            "end_occurrences": pattern.end_occurrences,
            "updated_at": now,
        })
        new_root = root.model_copy(update={
            "recurrence_pattern": pattern,
            "recurrence_version": root.recurrence_version + 1,
            "last_recurrence_update": now,
        })
        return new_root, new_record

    def _regeneration_events(self, root, record, changes, scope) -> List[ActivityEvent]:
        events = [self._event(
            ActivityEventType.SERIES_UPDATED, root, scope,
            {
                "severity": changes.severity.value,
                "pattern_version": record.pattern_version,
                "fields": [c.field for c in changes.changes],
            },
        )]
        if not record.is_active:
            events.append(self._event(ActivityEventType.SERIES_DEACTIVATED, root, scope))
        return events

    @staticmethod
    def _reject_pattern_removal(provided: Dict[str, Any]) -> None:
        if "recurrence_pattern" in provided and provided["recurrence_pattern"] is None:
            raise ValidationError(
                "A series cannot drop its recurrence pattern by edit; "
                "delete with scope this_and_future to end the series"
            )

    def _merge(self, task: Task, update: TaskUpdate, now: datetime, *, duration_required: bool = False) -> Task:
        """Apply the explicitly set fields of `update` to `task` (pattern excluded).

        Schedule fields are re-resolved together so that due_date always equals
        start_date + duration.

        Raises:
            ValidationError: If the merged task is invalid
        """
        provided = update.provided()
        data = task.model_dump()
        for name in NON_RECURRING_FIELDS:
            if name in provided:
                value = provided[name]
                data[name] = [] if name == "assignees" and value is None else value

        if provided.keys() & {"start_date", "due_date", "duration"}:
            start = provided.get("start_date") or task.start_date
            new_duration = provided.get("duration")
            if new_duration is not None:
                due, duration = resolve_schedule(start, None, new_duration, duration_required=duration_required)
            elif "due_date" in provided:
                due, duration = resolve_schedule(
                    start, provided["due_date"], None, duration_required=duration_required
                )
            elif "duration" in provided:
                due, duration = resolve_schedule(start, None, None, duration_required=duration_required)
            else:
                due, duration = resolve_schedule(
                    start,
                    task.due_date if task.duration is None else None,
                    task.duration,
                    duration_required=duration_required,
                )
            data.update(start_date=start, due_date=due, duration=duration)

        data["updated_at"] = now
        try:
            return Task.model_validate(data)
        except PydanticValidationError as e:
            messages = [err["msg"] for err in e.errors()]
            raise ValidationError(f"Invalid task update: {'; '.join(messages)}", errors=messages) from e

    def _event(
        self,
        event_type: ActivityEventType,
        task: Task,
        scope: Optional[EditScope] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> ActivityEvent:
        return ActivityEvent(
            event_type=event_type,
            user_id=task.user_id,
            task_id=task.id,
            scope=scope.value if scope is not None else None,
            timestamp=self.clock(),
            details={"title": task.title, **(details or {})},
        )

    def _emit(self, events: List[ActivityEvent]) -> None:
        for event in events:
            try:
                self.activity_sink.record(event)
            except Exception as e:
                # Already committed; a failing sink must not undo the mutation.
                logger.warning(f"Activity sink failed for {event.event_type}: {type(e).__name__}: {str(e)}")
