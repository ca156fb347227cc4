"""Repository layer for database operations."""

import logging
from typing import List, Optional, Set
from datetime import datetime
from sqlalchemy.orm import Session

from recurtask.models.task import Task
from recurtask.database.models import TaskDB

logger = logging.getLogger(__name__)


class TaskRepository:
    """Repository for Task database operations.

    With `autocommit=False` writes are only flushed; the caller owns the
    transaction (see `database.transaction`).
    """

    def __init__(self, db: Session, autocommit: bool = True):
        self.db = db
        self.autocommit = autocommit

    def _as_unique_ids(self, task_ids: List[str]) -> List[str]:
        """Deduplicate while preserving order."""
        seen: Set[str] = set()
        unique: List[str] = []
        for task_id in task_ids:
            if task_id not in seen:
                seen.add(task_id)
                unique.append(task_id)
        return unique

    def _finish(self) -> None:
        if self.autocommit:
            self.db.commit()
        else:
            self.db.flush()

    def _row(self, user_id: str, task_id: str) -> Optional[TaskDB]:
        return self.db.query(TaskDB).filter(
            TaskDB.id == task_id,
            TaskDB.user_id == user_id,
        ).first()

    def create(self, task: Task) -> Task:
        """Create a new task."""
        try:
            task_db = TaskDB.from_pydantic(task)
            self.db.add(task_db)
            self._finish()
            self.db.refresh(task_db)
            logger.debug(f"Created task {task.id}: {task.title[:50]}")
            return task_db.to_pydantic()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create task {task.id}: {type(e).__name__}: {str(e)}")
            raise

    def get(self, user_id: str, task_id: str) -> Optional[Task]:
        """Get task by ID for a specific user."""
        task_db = self._row(user_id, task_id)
        return task_db.to_pydantic() if task_db else None

    def list_by_parent(self, user_id: str, parent_task_id: str) -> List[Task]:
        """Detached instances of a series, ordered by due date then instance number."""
        tasks_db = self.db.query(TaskDB).filter(
            TaskDB.user_id == user_id,
            TaskDB.parent_task_id == parent_task_id,
        ).order_by(TaskDB.due_date.asc(), TaskDB.instance_number.asc()).all()
        return [task_db.to_pydantic() for task_db in tasks_db]

    def find_instance_for_occurrence(
        self, user_id: str, parent_task_id: str, occurrence_start: datetime
    ) -> Optional[Task]:
        """Instance already detached for a given series occurrence, if any."""
        task_db = self.db.query(TaskDB).filter(
            TaskDB.user_id == user_id,
            TaskDB.parent_task_id == parent_task_id,
            TaskDB.occurrence_start == occurrence_start,
        ).first()
        return task_db.to_pydantic() if task_db else None

    def update(self, task: Task) -> Task:
        """Update an existing task (user_id must match task.user_id)."""
        task_db = self._row(task.user_id, task.id)
        if not task_db:
            raise ValueError(f"Task {task.id} not found")

        task_db.apply_pydantic(task)

        try:
            self._finish()
            self.db.refresh(task_db)
            logger.debug(f"Updated task {task.id}: {task.title[:50]}")
            return task_db.to_pydantic()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to update task {task.id}: {type(e).__name__}: {str(e)}")
            raise

    def delete(self, user_id: str, task_id: str) -> bool:
        """Permanently delete a task by ID for a specific user."""
        task_db = self._row(user_id, task_id)
        if not task_db:
            return False

        try:
            self.db.delete(task_db)
            self._finish()
            logger.debug(f"Deleted task {task_id}")
            return True
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to delete task {task_id}: {type(e).__name__}: {str(e)}")
            raise

    def delete_many(self, user_id: str, task_ids: List[str]) -> List[str]:
        """Permanently delete several tasks for a user.

        Returns:
            IDs that were actually deleted, in request order
        """
        unique_ids = self._as_unique_ids(task_ids)
        if not unique_ids:
            return []

        existing_ids = {
            row[0]
            for row in self.db.query(TaskDB.id).filter(
                TaskDB.user_id == user_id,
                TaskDB.id.in_(unique_ids),
            ).all()
        }
        deleted = [task_id for task_id in unique_ids if task_id in existing_ids]

        try:
            affected = (
                self.db.query(TaskDB)
                .filter(
                    TaskDB.user_id == user_id,
                    TaskDB.id.in_(deleted),
                )
                .delete(synchronize_session=False)
            )
            self._finish()
            logger.debug(f"Deleted {affected} tasks for user {user_id}")
            return deleted
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to delete tasks for user {user_id}: {type(e).__name__}: {str(e)}")
            raise
