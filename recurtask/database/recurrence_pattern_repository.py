"""Repository for RecurrencePatternRecord database operations."""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from recurtask.errors import StaleVersionError
from recurtask.models.recurrence import RecurrencePatternRecord
from recurtask.database.models import RecurrencePatternDB

logger = logging.getLogger(__name__)


class RecurrencePatternRepository:
    def __init__(self, db: Session, autocommit: bool = True):
        self.db = db
        self.autocommit = autocommit

    def _finish(self) -> None:
        if self.autocommit:
            self.db.commit()
        else:
            self.db.flush()

    def _row_for_task(self, user_id: str, task_id: str) -> Optional[RecurrencePatternDB]:
        return (
            self.db.query(RecurrencePatternDB)
            .filter(
                RecurrencePatternDB.user_id == user_id,
                RecurrencePatternDB.task_id == task_id,
            )
            .first()
        )

    def create(self, record: RecurrencePatternRecord) -> RecurrencePatternRecord:
        row = RecurrencePatternDB.from_pydantic(record)
        try:
            self.db.add(row)
            self._finish()
            self.db.refresh(row)
            logger.debug(f"Created recurrence pattern {record.id} for task {record.task_id}")
            return row.to_pydantic()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create recurrence pattern for task {record.task_id}: {type(e).__name__}: {str(e)}")
            raise

    def get_by_task(self, user_id: str, task_id: str) -> Optional[RecurrencePatternRecord]:
        row = self._row_for_task(user_id, task_id)
        return row.to_pydantic() if row else None

    def update(self, record: RecurrencePatternRecord, *, loaded_version: int) -> RecurrencePatternRecord:
        """Write a record back, refusing if someone else bumped its version meanwhile.

        Args:
            record: New record state (pattern_version may already be incremented)
            loaded_version: pattern_version the caller read before mutating

        Raises:
            StaleVersionError: If the stored pattern_version differs from loaded_version
            ValueError: If the record no longer exists
        """
        row = self._row_for_task(record.user_id, record.task_id)
        if row is None:
            raise ValueError(f"Recurrence pattern for task {record.task_id} not found")
        if row.pattern_version != loaded_version:
            raise StaleVersionError(
                f"Recurrence pattern {row.id} is at version {row.pattern_version}, expected {loaded_version}",
                expected=loaded_version,
                actual=row.pattern_version,
            )
        row.apply_pydantic(record)
        try:
            self._finish()
            self.db.refresh(row)
            return row.to_pydantic()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to update recurrence pattern {row.id}: {type(e).__name__}: {str(e)}")
            raise

    def delete(self, user_id: str, task_id: str) -> Optional[str]:
        """Delete the record of a series root; returns the deleted record id."""
        row = self._row_for_task(user_id, task_id)
        if row is None:
            return None
        record_id = row.id
        try:
            self.db.delete(row)
            self._finish()
            logger.debug(f"Deleted recurrence pattern {record_id}")
            return record_id
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to delete recurrence pattern {record_id}: {type(e).__name__}: {str(e)}")
            raise
