"""FastAPI web application for recurtask.

A thin layer over `RecurringSeriesEngine`: request parsing, the user-id seam
and the mapping from engine errors to HTTP status codes.
"""

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from recurtask.auth.dependencies import get_current_user_id
from recurtask.database.database import get_db
from recurtask.engine.series import (
    DeleteResult,
    EditResult,
    RecurringSeriesEngine,
    ScopePreview,
    SeriesInfo,
)
from recurtask.errors import (
    InvalidRangeError,
    InvalidScopeError,
    MalformedRuleError,
    RecurrenceError,
    StaleVersionError,
    TaskNotFoundError,
    ValidationError,
)
from recurtask.models.constants import MAX_DESCRIPTION_LENGTH, MAX_TITLE_LENGTH
from recurtask.models.duration import Duration
from recurtask.models.recurrence import EditScope, RecurrencePattern, RecurrencePatternRecord
from recurtask.models.task import Task, TaskPriority, TaskStatus, TaskUpdate
from recurtask.models.task_factory import create_task_base

logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="recurtask API",
    description="Tasks with recurring series and scoped edits",
    version="0.1.0"
)


# Request models
class TaskCreateRequest(BaseModel):
    """Request body for creating a standalone or recurring task."""
    title: str = Field(..., min_length=1, max_length=MAX_TITLE_LENGTH)
    description: Optional[str] = Field(None, max_length=MAX_DESCRIPTION_LENGTH)
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    category: Optional[str] = None
    assignees: Optional[List[str]] = None
    start_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    duration: Optional[Duration] = None
    recurrence_pattern: Optional[RecurrencePattern] = None


class PreviewRequest(BaseModel):
    """Request body for previewing a scoped edit."""
    scope: str
    update: Optional[TaskUpdate] = None


# Response models
class TaskResponse(BaseModel):
    """Response for a single task."""
    task: Task
    recurrence: Optional[RecurrencePatternRecord] = None


def _engine(db: Session) -> RecurringSeriesEngine:
    return RecurringSeriesEngine(db)


def _http_error(e: RecurrenceError) -> HTTPException:
    """Map an engine error onto an HTTP error."""
    if isinstance(e, TaskNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, StaleVersionError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    if isinstance(e, ValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail={"message": str(e), "errors": e.errors})
    if isinstance(e, (InvalidScopeError, InvalidRangeError)):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if isinstance(e, MalformedRuleError):
        logger.error(f"Stored recurrence rule is unreadable: {str(e)}")
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Recurring task engine error")


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "healthy", "version": "0.1.0"}


@app.post("/tasks", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
def create_task(
    request: TaskCreateRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Create a task; with a recurrence_pattern it becomes the root of a new series."""
    engine = _engine(db)
    try:
        if request.recurrence_pattern is None:
            task = create_task_base(
                user_id=user_id,
                title=request.title,
                start_date=request.start_date,
                description=request.description,
                status=request.status,
                priority=request.priority,
                category=request.category,
                assignees=request.assignees,
                due_date=request.due_date,
                duration=request.duration,
            )
            return TaskResponse(task=engine.create_task(task))

        # Recurring: validate the schedule as part of create_series, not here.
        base = create_task_base(
            user_id=user_id,
            title=request.title,
            start_date=request.start_date,
            description=request.description,
            status=request.status,
            priority=request.priority,
            category=request.category,
            assignees=request.assignees,
        )
        base = base.model_copy(update={"due_date": request.due_date})
        root, record = engine.create_series(base, request.recurrence_pattern, request.duration)
        return TaskResponse(task=root, recurrence=record)
    except RecurrenceError as e:
        raise _http_error(e)


@app.get("/tasks/{task_id}", response_model=TaskResponse)
def get_task(
    task_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Get a task by id."""
    engine = _engine(db)
    task = engine.tasks.get(user_id, task_id)
    if task is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Task {task_id} not found")
    record = engine.patterns.get_by_task(user_id, task_id) if task.is_recurring else None
    return TaskResponse(task=task, recurrence=record)


@app.patch("/tasks/{task_id}", response_model=EditResult)
def update_task(
    task_id: str,
    update: TaskUpdate,
    scope: str = Query(EditScope.THIS_INSTANCE.value),
    expected_version: Optional[int] = Query(None),
    occurrence: Optional[datetime] = Query(None),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Edit a task with the given scope."""
    try:
        return _engine(db).edit_series(
            task_id,
            user_id,
            update,
            scope,
            expected_version=expected_version,
            occurrence=occurrence,
        )
    except RecurrenceError as e:
        raise _http_error(e)


@app.delete("/tasks/{task_id}", response_model=DeleteResult)
def delete_task(
    task_id: str,
    scope: str = Query(EditScope.THIS_INSTANCE.value),
    expected_version: Optional[int] = Query(None),
    occurrence: Optional[datetime] = Query(None),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Delete a task, one occurrence, or a whole series depending on scope."""
    try:
        return _engine(db).delete_series(
            task_id,
            user_id,
            scope,
            expected_version=expected_version,
            occurrence=occurrence,
        )
    except RecurrenceError as e:
        raise _http_error(e)


@app.get("/tasks/{task_id}/recurring", response_model=SeriesInfo)
def get_recurring_info(
    task_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Series root, record, detached instances, upcoming occurrences and scope options."""
    try:
        return _engine(db).series_info(task_id, user_id)
    except RecurrenceError as e:
        raise _http_error(e)


@app.post("/tasks/{task_id}/recurring/preview", response_model=ScopePreview)
def preview_recurring_edit(
    task_id: str,
    request: PreviewRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Preview which tasks a scoped edit would touch."""
    try:
        return _engine(db).preview_scope(task_id, user_id, request.scope, request.update)
    except RecurrenceError as e:
        raise _http_error(e)
