"""Migration script to bring legacy tasks and recurrence records up to date.

For rows written before durations, structured patterns and versioning existed:
- tasks with start/due dates but no duration get one (due date re-derived from it)
- series roots with only a stored rule get a structured pattern decoded from it
- recurrence_version / last_recurrence_update are filled in on series roots
- recurrence records get instance_duration, timezone and pattern_version

Safe to run more than once: rows that are already current are left alone.
"""

import sys
import os
from datetime import datetime
from typing import Dict, Optional

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import or_
from sqlalchemy.orm import Session

from recurtask.database.database import SessionLocal, init_db
from recurtask.database.models import (
    RecurrencePatternDB,
    TaskDB,
    duration_to_json,
    pattern_to_json,
)
from recurtask.errors import InvalidRangeError, MalformedRuleError
from recurtask.recurrence.duration_math import add_to_date, calculate_duration
from recurtask.recurrence.rrule_codec import rule_to_pattern


def _task_changes(db: Session, task: TaskDB, now: datetime) -> Dict[str, object]:
    """Column values a legacy task row needs; empty when it is already current.

    Everything is computed before anything is assigned, so a row that fails
    (bad date range, undecodable rule) is left untouched.
    """
    changes: Dict[str, object] = {}

    if task.duration is None and task.start_date and task.due_date:
        duration = calculate_duration(task.start_date, task.due_date)
        changes["duration"] = duration_to_json(duration)
        changes["due_date"] = add_to_date(task.start_date, duration)

    if task.is_recurring and task.recurrence_pattern is None:
        record = db.query(RecurrencePatternDB).filter(RecurrencePatternDB.task_id == task.id).first()
        if record is not None:
            changes["recurrence_pattern"] = pattern_to_json(rule_to_pattern(record.rule))

    if task.recurrence_version is None:
        changes["recurrence_version"] = 1
    if task.is_recurring and task.last_recurrence_update is None:
        changes["last_recurrence_update"] = now

    return changes


def _record_changes(db: Session, record: RecurrencePatternDB) -> Dict[str, object]:
    """Column values a legacy recurrence record needs; empty when it is already current."""
    changes: Dict[str, object] = {}

    if record.instance_duration is None:
        parent: Optional[TaskDB] = db.query(TaskDB).filter(TaskDB.id == record.task_id).first()
        if parent is not None and parent.duration:
            changes["instance_duration"] = parent.duration
        elif parent is not None and parent.start_date and parent.due_date:
            changes["instance_duration"] = duration_to_json(
                calculate_duration(parent.start_date, parent.due_date)
            )

    if not record.timezone:
        changes["timezone"] = rule_to_pattern(record.rule).timezone

    if record.pattern_version is None:
        changes["pattern_version"] = 1

    return changes


def migrate_legacy_rules(db: Optional[Session] = None) -> Dict[str, int]:
    """Migrate legacy task and recurrence rows.

    Args:
        db: Session to use (defaults to a new SessionLocal, closed afterwards)

    Returns:
        Counts: migrated_tasks, migrated_patterns, errors
    """
    owns_session = db is None
    db = db or SessionLocal()
    counts = {"migrated_tasks": 0, "migrated_patterns": 0, "errors": 0}
    now = datetime.utcnow()

    try:
        print("Starting legacy rule migration...")

        tasks = db.query(TaskDB).filter(
            or_(
                TaskDB.duration.is_(None),
                TaskDB.recurrence_version.is_(None),
                (TaskDB.is_recurring.is_(True) & TaskDB.recurrence_pattern.is_(None)),
                (TaskDB.is_recurring.is_(True) & TaskDB.last_recurrence_update.is_(None)),
            )
        ).all()
        print(f"Found {len(tasks)} tasks to check")

        for task in tasks:
            try:
                changes = _task_changes(db, task, now)
            except (InvalidRangeError, MalformedRuleError) as e:
                print(f"  - Error migrating task \"{task.title}\": {e}")
                counts["errors"] += 1
                continue
            if not changes:
                continue
            for column, value in changes.items():
                setattr(task, column, value)
            counts["migrated_tasks"] += 1
            print(f"  - Migrated task \"{task.title}\" ({', '.join(sorted(changes))})")

        records = db.query(RecurrencePatternDB).filter(
            or_(
                RecurrencePatternDB.instance_duration.is_(None),
                RecurrencePatternDB.timezone.is_(None),
                RecurrencePatternDB.timezone == "",
                RecurrencePatternDB.pattern_version.is_(None),
            )
        ).all()
        print(f"Found {len(records)} recurring patterns to check")

        for record in records:
            try:
                changes = _record_changes(db, record)
            except (InvalidRangeError, MalformedRuleError) as e:
                print(f"  - Error migrating pattern {record.id}: {e}")
                counts["errors"] += 1
                continue
            if not changes:
                continue
            for column, value in changes.items():
                setattr(record, column, value)
            counts["migrated_patterns"] += 1
            print(f"  - Migrated pattern for task {record.task_id}")

        db.commit()
        print(
            f"Migrated {counts['migrated_tasks']} tasks and {counts['migrated_patterns']} patterns "
            f"({counts['errors']} errors)."
        )
        return counts

    except Exception as e:
        db.rollback()
        print(f"Error during migration: {e}")
        raise
    finally:
        if owns_session:
            db.close()


if __name__ == "__main__":
    print("=" * 60)
    print("Legacy Recurrence Migration Script")
    print("=" * 60)
    print()
    print("This script will:")
    print("  derive durations from start/due dates")
    print("  decode stored rules into structured patterns")
    print("  backfill versioning, instance durations and timezones")
    print()

    response = input("Do you want to proceed? (yes/no): ")
    if response.lower() in ['yes', 'y']:
        init_db()
        migrate_legacy_rules()
        print()
        print("Migration complete!")
    else:
        print("Migration cancelled.")
