"""Tests for task creation defaults and schedule resolution."""

import pytest
from datetime import datetime

from recurtask.errors import ValidationError
from recurtask.models.duration import Duration
from recurtask.models.task import Task, TaskPriority, TaskStatus, TaskUpdate
from recurtask.models.task_factory import create_task_base, resolve_schedule


NOW = datetime(2024, 1, 1, 9, 0)


class TestTaskCreationDefaults:
    """Test that task creation uses correct default values."""

    def test_default_task_values(self, test_user_id):
        """Test that a factory-built task has correct default values."""
        task = create_task_base(test_user_id, "Write report", now=NOW)

        assert task.status == TaskStatus.TODO
        assert task.priority == TaskPriority.MEDIUM
        assert task.assignees == []
        assert task.start_date == NOW
        assert task.created_at == NOW
        assert task.due_date is None
        assert task.duration is None
        assert task.is_recurring is False
        assert task.recurrence_pattern is None
        assert task.parent_task_id is None
        assert task.recurrence_version == 1

    def test_overrides(self, test_user_id):
        task = create_task_base(
            test_user_id,
            "Write report",
            start_date=datetime(2024, 2, 1, 8, 0),
            status=TaskStatus.IN_PROGRESS,
            priority=TaskPriority.HIGH,
            category="work",
            assignees=["u-1"],
            now=NOW,
        )

        assert task.status == TaskStatus.IN_PROGRESS
        assert task.priority == TaskPriority.HIGH
        assert task.category == "work"
        assert task.assignees == ["u-1"]
        assert task.start_date == datetime(2024, 2, 1, 8, 0)

    def test_ids_are_unique(self, test_user_id):
        first = create_task_base(test_user_id, "A", now=NOW)
        second = create_task_base(test_user_id, "A", now=NOW)
        assert first.id != second.id

    def test_duration_sets_due_date(self, test_user_id):
        task = create_task_base(test_user_id, "Call", duration=Duration(minutes=45), now=NOW)
        assert task.due_date == datetime(2024, 1, 1, 9, 45)

    def test_duration_wins_over_due_date(self, test_user_id):
        task = create_task_base(
            test_user_id, "Call", due_date=datetime(2024, 3, 1), duration=Duration(hours=2), now=NOW
        )
        assert task.due_date == datetime(2024, 1, 1, 11, 0)

    def test_title_length_enforced(self, sample_task_base):
        with pytest.raises(ValueError):
            Task(**{**sample_task_base, "title": "x" * 201})

    def test_root_cannot_be_instance(self, sample_task_base):
        with pytest.raises(ValueError):
            Task(**{**sample_task_base, "is_recurring": True, "parent_task_id": "root"})


class TestResolveSchedule:
    """due_date and duration are always kept consistent."""

    def test_nothing_supplied(self):
        assert resolve_schedule(NOW, None, None) == (None, None)

    def test_nothing_supplied_but_required(self):
        with pytest.raises(ValidationError, match="Duration is required for recurring tasks"):
            resolve_schedule(NOW, None, None, duration_required=True)

    def test_due_date_measured(self):
        due, duration = resolve_schedule(datetime(2024, 1, 1), datetime(2024, 1, 2, 2, 30), None)
        assert duration == Duration(days=1, hours=2, minutes=30)
        assert due == datetime(2024, 1, 2, 2, 30)

    def test_long_span_due_date_rederived(self):
        """Over a month the 30-day approximation moves the due date onto the calendar month."""
        due, duration = resolve_schedule(datetime(2024, 1, 1), datetime(2024, 3, 1), None)
        assert duration == Duration(months=2)
        assert due == datetime(2024, 3, 1)

    def test_due_date_not_after_start(self):
        with pytest.raises(ValidationError, match="Start date must be before due date"):
            resolve_schedule(NOW, NOW, None)

    def test_zero_duration_rejected(self):
        with pytest.raises(ValidationError):
            resolve_schedule(NOW, None, Duration())


class TestTaskUpdate:
    """Only explicitly set fields count as provided."""

    def test_provided_includes_explicit_none(self):
        update = TaskUpdate(title="New", description=None)
        assert update.provided() == {"title": "New", "description": None}

    def test_non_recurring_subset(self):
        update = TaskUpdate(title="New", duration=Duration(hours=1))
        assert update.non_recurring_subset() == {"title": "New"}

    def test_unset_fields_not_provided(self):
        assert TaskUpdate(priority="low").provided() == {"priority": "low"}
