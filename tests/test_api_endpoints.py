"""Integration tests for API endpoints.

These tests verify API endpoints work correctly end-to-end.
"""

import pytest
from fastapi.testclient import TestClient


SERIES_PAYLOAD = {
    "title": "Standup",
    "start_date": "2024-01-01T09:00:00",
    "duration": {"hours": 1},
    "recurrence_pattern": {"frequency": "daily", "interval": 1},
}


def _create_series(test_client: TestClient, **overrides) -> dict:
    response = test_client.post("/tasks", json={**SERIES_PAYLOAD, **overrides})
    assert response.status_code == 201
    return response.json()


class TestTaskEndpoints:
    """Test task create/read API endpoints."""

    def test_create_task(self, test_client):
        """Test POST /tasks endpoint."""
        response = test_client.post(
            "/tasks",
            json={
                "title": "Test Task",
                "description": "Test description",
                "start_date": "2024-01-01T09:00:00",
                "duration": {"hours": 1, "minutes": 30},
            }
        )

        assert response.status_code == 201
        data = response.json()
        assert data["recurrence"] is None
        task = data["task"]
        assert task["title"] == "Test Task"
        assert task["description"] == "Test description"
        assert task["status"] == "todo"
        assert task["priority"] == "medium"
        assert task["due_date"] == "2024-01-01T10:30:00"
        assert task["is_recurring"] is False

    def test_create_task_with_due_date(self, test_client):
        """Test that a due date is turned into a duration."""
        response = test_client.post(
            "/tasks",
            json={"title": "Due", "start_date": "2024-01-01T00:00:00", "due_date": "2024-01-02T02:30:00"}
        )

        assert response.status_code == 201
        duration = response.json()["task"]["duration"]
        assert duration == {"years": 0, "months": 0, "days": 1, "hours": 2, "minutes": 30}

    def test_create_task_due_before_start(self, test_client):
        response = test_client.post(
            "/tasks",
            json={"title": "Backwards", "start_date": "2024-01-02T00:00:00", "due_date": "2024-01-01T00:00:00"}
        )
        assert response.status_code == 400
        assert response.json()["detail"]["message"] == "Start date must be before due date"

    def test_create_task_duration_out_of_bounds(self, test_client):
        response = test_client.post(
            "/tasks",
            json={"title": "Too long", "start_date": "2024-01-01T00:00:00", "duration": {"hours": 30}}
        )
        assert response.status_code == 400
        assert response.json()["detail"]["errors"] == ["Hours cannot exceed 23"]

    def test_create_recurring_task(self, test_client):
        """Test that a pattern makes the new task a series root."""
        data = _create_series(test_client)

        assert data["task"]["is_recurring"] is True
        assert data["task"]["recurrence_version"] == 1
        assert data["recurrence"]["rule"] == "DTSTART:20240101T090000Z\nRRULE:FREQ=DAILY;INTERVAL=1"
        assert data["recurrence"]["next_due"] == "2024-01-01T09:00:00"

    def test_create_recurring_task_requires_duration(self, test_client):
        payload = {key: value for key, value in SERIES_PAYLOAD.items() if key != "duration"}
        response = test_client.post("/tasks", json=payload)

        assert response.status_code == 400
        assert "Duration is required" in response.json()["detail"]["message"]

    def test_create_recurring_task_with_both_end_conditions(self, test_client):
        pattern = {"frequency": "daily", "interval": 1, "end_date": "2024-02-01T00:00:00", "end_occurrences": 3}
        response = test_client.post("/tasks", json={**SERIES_PAYLOAD, "recurrence_pattern": pattern})

        assert response.status_code == 400
        assert response.json()["detail"]["errors"] == ["Cannot specify both end date and end occurrences"]

    def test_get_task_by_id(self, test_client):
        """Test GET /tasks/{task_id} endpoint."""
        task_id = _create_series(test_client)["task"]["id"]

        response = test_client.get(f"/tasks/{task_id}")

        assert response.status_code == 200
        data = response.json()
        assert data["task"]["id"] == task_id
        assert data["recurrence"]["task_id"] == task_id

    def test_get_nonexistent_task(self, test_client):
        """Test GET /tasks/{task_id} with nonexistent ID."""
        response = test_client.get("/tasks/nonexistent-id")

        assert response.status_code == 404


class TestScopedEditEndpoints:
    """Test PATCH /tasks/{task_id} with scopes."""

    def test_default_scope_detaches_one_occurrence(self, test_client):
        task_id = _create_series(test_client)["task"]["id"]

        response = test_client.patch(f"/tasks/{task_id}", json={"title": "Special"})

        assert response.status_code == 200
        created = response.json()["created_tasks"]
        assert len(created) == 1
        assert created[0]["parent_task_id"] == task_id
        assert created[0]["title"] == "Special"
        assert created[0]["start_date"] == "2024-01-01T09:00:00"
        assert response.json()["updated_patterns"][0]["next_due"] == "2024-01-02T09:00:00"

    def test_retry_with_occurrence_returns_same_instance(self, test_client):
        task_id = _create_series(test_client)["task"]["id"]
        params = {"scope": "this_instance", "occurrence": "2024-01-01T09:00:00"}

        first = test_client.patch(f"/tasks/{task_id}", params=params, json={"title": "Special"})
        retry = test_client.patch(f"/tasks/{task_id}", params=params, json={"title": "Special"})

        assert first.status_code == 200
        assert retry.status_code == 200
        assert retry.json()["created_tasks"][0]["id"] == first.json()["created_tasks"][0]["id"]

    def test_all_instances(self, test_client):
        task_id = _create_series(test_client)["task"]["id"]
        test_client.patch(f"/tasks/{task_id}", json={"title": "Detached"})

        response = test_client.patch(
            f"/tasks/{task_id}", params={"scope": "all_instances"}, json={"priority": "high"}
        )

        assert response.status_code == 200
        updated = response.json()["updated_tasks"]
        assert len(updated) == 2
        assert all(task["priority"] == "high" for task in updated)

    def test_pattern_change_bumps_version(self, test_client):
        task_id = _create_series(test_client)["task"]["id"]

        response = test_client.patch(
            f"/tasks/{task_id}",
            params={"scope": "this_and_future", "expected_version": 1},
            json={"recurrence_pattern": {"frequency": "weekly", "interval": 1, "days_of_week": [1, 3, 5]}},
        )

        assert response.status_code == 200
        assert response.json()["updated_tasks"][0]["recurrence_version"] == 2
        assert response.json()["updated_patterns"][0]["pattern_version"] == 2

    def test_invalid_scope(self, test_client):
        task_id = _create_series(test_client)["task"]["id"]

        response = test_client.patch(f"/tasks/{task_id}", params={"scope": "everything"}, json={"title": "x"})

        assert response.status_code == 400
        assert "Invalid scope" in response.json()["detail"]

    def test_stale_version(self, test_client):
        task_id = _create_series(test_client)["task"]["id"]

        response = test_client.patch(
            f"/tasks/{task_id}", params={"scope": "all_instances", "expected_version": 7}, json={"title": "x"}
        )

        assert response.status_code == 409

    def test_edit_nonexistent_task(self, test_client):
        response = test_client.patch("/tasks/nonexistent-id", json={"title": "x"})

        assert response.status_code == 404


class TestScopedDeleteEndpoints:
    """Test DELETE /tasks/{task_id} with scopes."""

    def test_delete_standalone_task(self, test_client):
        """Test DELETE /tasks/{task_id} endpoint."""
        create_response = test_client.post(
            "/tasks",
            json={"title": "Delete Me", "start_date": "2024-01-01T09:00:00"}
        )
        task_id = create_response.json()["task"]["id"]

        response = test_client.delete(f"/tasks/{task_id}")

        assert response.status_code == 200
        assert response.json()["deleted_task_ids"] == [task_id]

        # Verify it's deleted
        get_response = test_client.get(f"/tasks/{task_id}")
        assert get_response.status_code == 404

    def test_skip_occurrence(self, test_client):
        task_id = _create_series(test_client)["task"]["id"]

        response = test_client.delete(f"/tasks/{task_id}", params={"scope": "this_instance"})

        assert response.status_code == 200
        assert response.json()["updated_patterns"][0]["next_due"] == "2024-01-02T09:00:00"
        assert test_client.get(f"/tasks/{task_id}").status_code == 200

    def test_end_series(self, test_client):
        task_id = _create_series(test_client)["task"]["id"]

        response = test_client.delete(f"/tasks/{task_id}", params={"scope": "this_and_future"})

        assert response.status_code == 200
        assert len(response.json()["deleted_pattern_ids"]) == 1
        task = test_client.get(f"/tasks/{task_id}").json()
        assert task["task"]["is_recurring"] is False
        assert task["recurrence"] is None

    def test_delete_whole_series(self, test_client):
        task_id = _create_series(test_client)["task"]["id"]
        instance_id = test_client.patch(f"/tasks/{task_id}", json={"title": "Detached"}).json()["created_tasks"][0]["id"]

        response = test_client.delete(f"/tasks/{instance_id}", params={"scope": "all_instances"})

        assert response.status_code == 200
        assert set(response.json()["deleted_task_ids"]) == {task_id, instance_id}
        assert test_client.get(f"/tasks/{task_id}").status_code == 404
        assert test_client.get(f"/tasks/{instance_id}").status_code == 404


class TestRecurringInfoEndpoints:
    """Test the read-only series endpoints."""

    def test_series_info(self, test_client):
        task_id = _create_series(test_client)["task"]["id"]

        response = test_client.get(f"/tasks/{task_id}/recurring")

        assert response.status_code == 200
        data = response.json()
        assert data["is_instance"] is False
        assert data["upcoming"][:2] == ["2024-01-01T09:00:00", "2024-01-02T09:00:00"]
        assert len(data["scope_options"]) == 3

    def test_series_info_for_standalone_task(self, test_client):
        task_id = test_client.post(
            "/tasks", json={"title": "One-off", "start_date": "2024-01-01T09:00:00"}
        ).json()["task"]["id"]

        response = test_client.get(f"/tasks/{task_id}/recurring")

        assert response.status_code == 400

    def test_preview(self, test_client):
        task_id = _create_series(test_client)["task"]["id"]
        instance_id = test_client.patch(f"/tasks/{task_id}", json={"title": "Detached"}).json()["created_tasks"][0]["id"]

        response = test_client.post(
            f"/tasks/{instance_id}/recurring/preview",
            json={"scope": "this_and_future", "update": {"recurrence_pattern": {"frequency": "daily", "interval": 2}}},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["affected_task_ids"] == [instance_id, task_id]
        assert data["is_instance"] is True
        assert data["severity"] == "minor"
        assert data["requires_rule_regeneration"] is True

    def test_preview_invalid_scope(self, test_client):
        task_id = _create_series(test_client)["task"]["id"]

        response = test_client.post(f"/tasks/{task_id}/recurring/preview", json={"scope": "sometimes"})

        assert response.status_code == 400


class TestUserIdentity:

    def test_missing_user_header(self, test_client):
        from recurtask.api.app import app
        from recurtask.auth.dependencies import get_current_user_id

        app.dependency_overrides.pop(get_current_user_id)

        response = test_client.get("/tasks/any-id")

        assert response.status_code == 401

    def test_user_header_scopes_tasks(self, test_client):
        from recurtask.api.app import app
        from recurtask.auth.dependencies import get_current_user_id

        task_id = _create_series(test_client)["task"]["id"]
        app.dependency_overrides.pop(get_current_user_id)

        response = test_client.get(f"/tasks/{task_id}", headers={"X-User-Id": "someone-else"})

        assert response.status_code == 404


class TestHealthEndpoint:
    """Test health check endpoint."""

    def test_health_check(self, test_client):
        """Test GET /health endpoint."""
        response = test_client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "version": "0.1.0"}
