"""Edit/delete scope rules for recurring series.

A task is in exactly one of three states (standalone, series root, detached
instance). What an edit or delete does is looked up from an explicit
(state, scope) table rather than decided by nested conditionals, so every
combination is visible in one place.
"""

from enum import Enum
from typing import Dict, List, Tuple, Union

from recurtask.errors import InvalidScopeError
from recurtask.models.recurrence import EditScope
from recurtask.models.task import Task


class TaskState(str, Enum):
    STANDALONE = "standalone"
    SERIES_ROOT = "series_root"
    DETACHED_INSTANCE = "detached_instance"


class EditAction(str, Enum):
    APPLY_DIRECT = "apply_direct"
    DETACH_OCCURRENCE = "detach_occurrence"
    UPDATE_INSTANCE = "update_instance"
    UPDATE_SERIES = "update_series"
    UPDATE_INSTANCE_AND_SERIES = "update_instance_and_series"
    UPDATE_ALL = "update_all"


class DeleteAction(str, Enum):
    DELETE_TASK = "delete_task"
    SKIP_OCCURRENCE = "skip_occurrence"
    END_SERIES = "end_series"
    END_SERIES_AND_INSTANCE = "end_series_and_instance"
    DELETE_SERIES = "delete_series"


EDIT_ACTIONS: Dict[Tuple[TaskState, EditScope], EditAction] = {
    (TaskState.STANDALONE, EditScope.THIS_INSTANCE): EditAction.APPLY_DIRECT,
    (TaskState.STANDALONE, EditScope.THIS_AND_FUTURE): EditAction.APPLY_DIRECT,
    (TaskState.STANDALONE, EditScope.ALL_INSTANCES): EditAction.APPLY_DIRECT,
    (TaskState.SERIES_ROOT, EditScope.THIS_INSTANCE): EditAction.DETACH_OCCURRENCE,
    (TaskState.SERIES_ROOT, EditScope.THIS_AND_FUTURE): EditAction.UPDATE_SERIES,
    (TaskState.SERIES_ROOT, EditScope.ALL_INSTANCES): EditAction.UPDATE_ALL,
    (TaskState.DETACHED_INSTANCE, EditScope.THIS_INSTANCE): EditAction.UPDATE_INSTANCE,
    (TaskState.DETACHED_INSTANCE, EditScope.THIS_AND_FUTURE): EditAction.UPDATE_INSTANCE_AND_SERIES,
    # Resolved to the root first, then handled as a root edit.
    (TaskState.DETACHED_INSTANCE, EditScope.ALL_INSTANCES): EditAction.UPDATE_ALL,
}

DELETE_ACTIONS: Dict[Tuple[TaskState, EditScope], DeleteAction] = {
    (TaskState.STANDALONE, EditScope.THIS_INSTANCE): DeleteAction.DELETE_TASK,
    (TaskState.STANDALONE, EditScope.THIS_AND_FUTURE): DeleteAction.DELETE_TASK,
    (TaskState.STANDALONE, EditScope.ALL_INSTANCES): DeleteAction.DELETE_TASK,
    (TaskState.SERIES_ROOT, EditScope.THIS_INSTANCE): DeleteAction.SKIP_OCCURRENCE,
    (TaskState.SERIES_ROOT, EditScope.THIS_AND_FUTURE): DeleteAction.END_SERIES,
    (TaskState.SERIES_ROOT, EditScope.ALL_INSTANCES): DeleteAction.DELETE_SERIES,
    (TaskState.DETACHED_INSTANCE, EditScope.THIS_INSTANCE): DeleteAction.DELETE_TASK,
    (TaskState.DETACHED_INSTANCE, EditScope.THIS_AND_FUTURE): DeleteAction.END_SERIES_AND_INSTANCE,
    (TaskState.DETACHED_INSTANCE, EditScope.ALL_INSTANCES): DeleteAction.DELETE_SERIES,
}

SCOPE_OPTIONS: List[Dict[str, str]] = [
    {
        "scope": EditScope.THIS_INSTANCE.value,
        "label": "Only this instance",
        "description": "Changes will only apply to this specific occurrence",
    },
    {
        "scope": EditScope.THIS_AND_FUTURE.value,
        "label": "This and future instances",
        "description": "Changes will apply to this occurrence and all future ones",
    },
    {
        "scope": EditScope.ALL_INSTANCES.value,
        "label": "All instances",
        "description": "Changes will apply to all past, current, and future occurrences",
    },
]

_DESCRIPTIONS: Dict[Tuple[TaskState, EditScope], str] = {
    (TaskState.SERIES_ROOT, EditScope.THIS_INSTANCE): (
        "Only this specific occurrence will be modified. The recurring pattern will remain unchanged."
    ),
    (TaskState.DETACHED_INSTANCE, EditScope.THIS_INSTANCE): (
        "Only this specific occurrence will be modified. The recurring pattern will remain unchanged."
    ),
    (TaskState.SERIES_ROOT, EditScope.THIS_AND_FUTURE): (
        "The recurring pattern will be updated, affecting all future occurrences."
    ),
    (TaskState.DETACHED_INSTANCE, EditScope.THIS_AND_FUTURE): (
        "This occurrence will be modified and the recurring pattern will be updated for future occurrences."
    ),
    (TaskState.SERIES_ROOT, EditScope.ALL_INSTANCES): (
        "All occurrences (past, current, and future) will be modified."
    ),
    (TaskState.DETACHED_INSTANCE, EditScope.ALL_INSTANCES): (
        "All occurrences (past, current, and future) will be modified."
    ),
}


def parse_scope(value: Union[str, EditScope, None]) -> EditScope:
    """Coerce a scope value, rejecting anything outside the three known scopes.

    Raises:
        InvalidScopeError: If value is missing or unknown
    """
    if isinstance(value, EditScope):
        return value
    try:
        return EditScope(value)
    except ValueError:
        raise InvalidScopeError(
            f"Invalid scope {value!r}; expected one of: {', '.join(s.value for s in EditScope)}"
        ) from None


def task_state(task: Task) -> TaskState:
    if task.parent_task_id:
        return TaskState.DETACHED_INSTANCE
    if task.is_recurring:
        return TaskState.SERIES_ROOT
    return TaskState.STANDALONE


def edit_action(state: TaskState, scope: EditScope) -> EditAction:
    return EDIT_ACTIONS[(state, scope)]


def delete_action(state: TaskState, scope: EditScope) -> DeleteAction:
    return DELETE_ACTIONS[(state, scope)]


def describe_scope(state: TaskState, scope: EditScope) -> str:
    """Human-readable summary of what an edit with this scope will touch."""
    if state == TaskState.STANDALONE:
        return "This task is not recurring; the change applies to this task only."
    return _DESCRIPTIONS[(state, scope)]
