"""Tests for the legacy data migration and the Alembic migration runner."""

import pytest
from datetime import datetime

from recurtask.database.models import RecurrencePatternDB, TaskDB


LEGACY_RULE = "DTSTART;TZID=Europe/Paris:20240101T100000\nRRULE:FREQ=WEEKLY;INTERVAL=1;BYDAY=MO,WE"


def _legacy_task(user_id, **overrides):
    data = {
        "id": "legacy-root",
        "user_id": user_id,
        "title": "Legacy standup",
        "created_at": datetime(2023, 6, 1),
        "updated_at": datetime(2023, 6, 1),
        "start_date": datetime(2024, 1, 1, 9, 0),
        "due_date": datetime(2024, 1, 1, 10, 30),
        "duration": None,
        "is_recurring": True,
        "recurrence_pattern": None,
        "last_recurrence_update": None,
    }
    data.update(overrides)
    return TaskDB(**data)


def _legacy_record(user_id, **overrides):
    data = {
        "id": "legacy-record",
        "task_id": "legacy-root",
        "user_id": user_id,
        "rule": LEGACY_RULE,
        "instance_duration": None,
        "timezone": "",
        "next_due": datetime(2024, 1, 1, 9, 0),
        "created_at": datetime(2023, 6, 1),
        "updated_at": datetime(2023, 6, 1),
    }
    data.update(overrides)
    return RecurrencePatternDB(**data)


class TestMigrateLegacyRules:
    """Backfill of durations, structured patterns and versioning."""

    def test_series_root_and_record_backfilled(self, db_session, test_user_id):
        from migrations.migrate_legacy_rules import migrate_legacy_rules

        db_session.add(_legacy_task(test_user_id))
        db_session.flush()
        db_session.add(_legacy_record(test_user_id))
        db_session.commit()

        counts = migrate_legacy_rules(db_session)

        assert counts == {"migrated_tasks": 1, "migrated_patterns": 1, "errors": 0}
        task = db_session.query(TaskDB).filter(TaskDB.id == "legacy-root").one().to_pydantic()
        assert task.duration.hours == 1
        assert task.duration.minutes == 30
        assert task.due_date == datetime(2024, 1, 1, 10, 30)
        assert task.recurrence_pattern.frequency == "weekly"
        assert task.recurrence_pattern.days_of_week == [1, 3]
        assert task.recurrence_pattern.timezone == "Europe/Paris"
        assert task.last_recurrence_update is not None

        record = db_session.query(RecurrencePatternDB).filter(RecurrencePatternDB.id == "legacy-record").one().to_pydantic()
        assert record.instance_duration == task.duration
        assert record.timezone == "Europe/Paris"

    def test_second_run_changes_nothing(self, db_session, test_user_id):
        from migrations.migrate_legacy_rules import migrate_legacy_rules

        db_session.add(_legacy_task(test_user_id))
        db_session.flush()
        db_session.add(_legacy_record(test_user_id))
        db_session.commit()

        migrate_legacy_rules(db_session)
        counts = migrate_legacy_rules(db_session)

        assert counts == {"migrated_tasks": 0, "migrated_patterns": 0, "errors": 0}

    def test_bad_rows_are_counted_and_left_alone(self, db_session, test_user_id):
        from migrations.migrate_legacy_rules import migrate_legacy_rules

        db_session.add(_legacy_task(
            test_user_id,
            id="backwards",
            is_recurring=False,
            due_date=datetime(2023, 12, 31),
        ))
        db_session.commit()

        counts = migrate_legacy_rules(db_session)

        assert counts["errors"] == 1
        assert counts["migrated_tasks"] == 0
        row = db_session.query(TaskDB).filter(TaskDB.id == "backwards").one()
        assert row.duration is None
        assert row.due_date == datetime(2023, 12, 31)

    def test_task_without_schedule_untouched(self, db_session, test_user_id):
        from migrations.migrate_legacy_rules import migrate_legacy_rules

        db_session.add(_legacy_task(test_user_id, id="plain", is_recurring=False, due_date=None))
        db_session.commit()

        counts = migrate_legacy_rules(db_session)

        assert counts == {"migrated_tasks": 0, "migrated_patterns": 0, "errors": 0}


class TestMigrateRunner:
    """Schema checks used before stamping Alembic head."""

    def test_required_checks_cover_versioning_columns(self):
        from recurtask.database.migrate_runner import _required_schema_checks

        checks = _required_schema_checks()
        assert ("table", "tasks") in checks
        assert ("table", "recurrence_patterns") in checks
        assert ("column:tasks", "recurrence_version") in checks
        assert ("column:recurrence_patterns", "pattern_version") in checks

    def test_missing_requirements_reported(self, monkeypatch):
        from recurtask.database import migrate_runner

        monkeypatch.setattr(migrate_runner, "_table_exists", lambda conn, table: table == "tasks")
        monkeypatch.setattr(
            migrate_runner, "_column_exists", lambda conn, table, column: column != "occurrence_start"
        )

        missing = migrate_runner._missing_requirements(conn=None)
        assert missing == [
            "missing table: recurrence_patterns",
            "missing column: tasks.occurrence_start",
        ]

    def test_nothing_missing(self, monkeypatch):
        from recurtask.database import migrate_runner

        monkeypatch.setattr(migrate_runner, "_table_exists", lambda conn, table: True)
        monkeypatch.setattr(migrate_runner, "_column_exists", lambda conn, table, column: True)

        assert migrate_runner._missing_requirements(conn=None) == []
