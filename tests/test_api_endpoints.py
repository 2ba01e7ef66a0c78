"""Integration tests for API endpoints.

These tests verify API endpoints work correctly end-to-end.
"""

import json
import pytest
from datetime import datetime, timedelta, timezone

from sqlalchemy.exc import OperationalError

from taskreset.api.app import SessionRegistry, sessions
from taskreset.errors import PersistenceError
from taskreset.models.task import TaskUpdate


def _create(test_client, headers, **payload):
    body = {"title": "Water the plants", "category": "Daily", **payload}
    response = test_client.post("/tasks", json=body, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["task"]


class TestOwnerHeader:
    """Requests are scoped by the X-Owner-Id header."""

    def test_health_needs_no_owner(self, test_client):
        response = test_client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_missing_owner_is_unauthorized(self, test_client):
        assert test_client.get("/tasks").status_code == 401
        assert test_client.get("/tasks", headers={"X-Owner-Id": "  "}).status_code == 401

    def test_owners_do_not_see_each_other(self, test_client, owner_headers, other_owner_id):
        task = _create(test_client, owner_headers)
        other = {"X-Owner-Id": other_owner_id}

        assert test_client.get("/tasks", headers=other).json()["count"] == 0
        assert test_client.get(f"/tasks/{task['id']}", headers=other).status_code == 404
        assert test_client.post(f"/tasks/{task['id']}/toggle", headers=other).status_code == 404
        assert test_client.delete(f"/tasks/{task['id']}", headers=other).status_code == 404


class TestTaskEndpoints:
    """Test task CRUD API endpoints."""

    def test_create_task(self, test_client, owner_headers, owner_id):
        """Test POST /tasks endpoint."""
        task = _create(test_client, owner_headers, tags=["home"], sub_tasks=[
            {"title": "Balcony"},
            {"title": "Kitchen", "category": "SpecificHours", "specific_reset_hours": 12},
        ])

        assert task["ownerId"] == owner_id
        assert task["category"] == "Daily"
        assert task["isCompleted"] is False
        assert task["nextEligibleInstant"] is not None
        sub_tasks = json.loads(task["subTasks"])
        assert [st["title"] for st in sub_tasks] == ["Balcony", "Kitchen"]
        assert sub_tasks[1]["specificResetHours"] == 12

    @pytest.mark.parametrize("payload", [
        {"title": "Gym", "category": "SpecificDay"},
        {"title": "Water", "category": "SpecificHours", "specific_reset_hours": 0},
        {"title": "  ", "category": "Daily"},
        {"title": "Gym", "category": "Fortnightly"},
    ])
    def test_create_invalid_task(self, test_client, owner_headers, payload):
        assert test_client.post("/tasks", json=payload, headers=owner_headers).status_code == 422

    def test_get_task(self, test_client, owner_headers):
        task = _create(test_client, owner_headers)
        response = test_client.get(f"/tasks/{task['id']}", headers=owner_headers)

        assert response.status_code == 200
        assert response.json()["task"] == task

    def test_get_missing_task(self, test_client, owner_headers):
        assert test_client.get("/tasks/nonexistent-id", headers=owner_headers).status_code == 404

    def test_list_filters_and_sort(self, test_client, owner_headers):
        _create(test_client, owner_headers, title="Banana", tags=["home", "food"])
        _create(test_client, owner_headers, title="apple", tags=["home"], category="Countdown24h")
        _create(test_client, owner_headers, title="Cherry", tags=["work"])

        by_title = test_client.get("/tasks", params={"sort": "title_asc"}, headers=owner_headers).json()
        assert [t["title"] for t in by_title["tasks"]] == ["apple", "Banana", "Cherry"]
        assert by_title["count"] == 3

        tagged = test_client.get("/tasks", params=[("tag", "home"), ("tag", "food")], headers=owner_headers).json()
        assert [t["title"] for t in tagged["tasks"]] == ["Banana"]

        countdowns = test_client.get("/tasks", params={"category": "24h Countdown"}, headers=owner_headers).json()
        assert [t["title"] for t in countdowns["tasks"]] == ["apple"]

        searched = test_client.get("/tasks", params={"search": "CHER"}, headers=owner_headers).json()
        assert [t["title"] for t in searched["tasks"]] == ["Cherry"]

    def test_list_unknown_category_filter(self, test_client, owner_headers):
        assert test_client.get("/tasks", params={"category": "Hourly"}, headers=owner_headers).status_code == 422

    def test_edit_task(self, test_client, owner_headers):
        task = _create(test_client, owner_headers)
        response = test_client.patch(
            f"/tasks/{task['id']}",
            json={"title": "Water ferns", "category": "SpecificHours", "specific_reset_hours": 4},
            headers=owner_headers,
        )

        assert response.status_code == 200
        edited = response.json()["task"]
        assert edited["title"] == "Water ferns"
        assert edited["category"] == "SpecificHours"
        assert edited["specificResetHours"] == 4
        assert edited["nextEligibleInstant"] != task["nextEligibleInstant"]

    def test_edit_invalid(self, test_client, owner_headers):
        task = _create(test_client, owner_headers)
        response = test_client.patch(f"/tasks/{task['id']}", json={"category": "SpecificDay"}, headers=owner_headers)
        assert response.status_code == 422

    def test_delete_task(self, test_client, owner_headers):
        task = _create(test_client, owner_headers)

        assert test_client.delete(f"/tasks/{task['id']}", headers=owner_headers).status_code == 204
        assert test_client.get(f"/tasks/{task['id']}", headers=owner_headers).status_code == 404
        assert test_client.delete(f"/tasks/{task['id']}", headers=owner_headers).status_code == 404


class TestToggleEndpoint:
    """Test POST /tasks/{id}/toggle."""

    def test_toggle_parent_cascades(self, test_client, owner_headers):
        task = _create(test_client, owner_headers, sub_tasks=[{"title": "A"}, {"title": "B"}])

        response = test_client.post(f"/tasks/{task['id']}/toggle", headers=owner_headers)
        assert response.status_code == 200
        toggled = response.json()["task"]
        assert toggled["isCompleted"] is True
        assert toggled["lastCompletionInstant"] is not None
        assert all(st["isCompleted"] for st in json.loads(toggled["subTasks"]))

    def test_toggle_sub_tasks_rolls_up(self, test_client, owner_headers):
        task = _create(test_client, owner_headers, sub_tasks=[{"title": "A"}, {"title": "B"}])
        url = f"/tasks/{task['id']}/toggle"

        first = test_client.post(url, json={"sub_task_title": "A"}, headers=owner_headers).json()["task"]
        assert first["isCompleted"] is False
        second = test_client.post(url, json={"sub_task_title": "B"}, headers=owner_headers).json()["task"]
        assert second["isCompleted"] is True

    def test_toggle_unknown_sub_task(self, test_client, owner_headers):
        task = _create(test_client, owner_headers, sub_tasks=[{"title": "A"}])
        response = test_client.post(
            f"/tasks/{task['id']}/toggle", json={"sub_task_title": "Z"}, headers=owner_headers
        )
        assert response.status_code == 404

    def test_toggle_ended_is_a_noop(self, test_client, owner_headers):
        task = _create(test_client, owner_headers, category="Ended")
        toggled = test_client.post(f"/tasks/{task['id']}/toggle", headers=owner_headers).json()["task"]

        assert toggled == task
        assert toggled["isCompleted"] is True
        assert toggled["nextEligibleInstant"] is None

    def test_toggle_is_persisted(self, test_client, owner_headers, owner_id, task_repository):
        task = _create(test_client, owner_headers)
        test_client.post(f"/tasks/{task['id']}/toggle", headers=owner_headers)

        assert task_repository.get(owner_id, task["id"]).is_completed is True


class TestReconcileEndpoint:
    """Test POST /reconcile and session lifecycle."""

    def test_reconcile_resets_elapsed_task(self, test_client, owner_headers, owner_id, task_repository):
        task = _create(test_client, owner_headers, category="Countdown24h")
        test_client.post(f"/tasks/{task['id']}/toggle", headers=owner_headers)

        # Move the stored completion two days back and reload the session.
        past = datetime.now(timezone.utc) - timedelta(days=2)
        task_repository.update_task(owner_id, task["id"], TaskUpdate(
            last_completion_at=past, next_eligible_at=past + timedelta(hours=24),
        ))
        assert test_client.delete("/session", headers=owner_headers).status_code == 204

        report = test_client.post("/reconcile", headers=owner_headers).json()
        assert report["checked"] == 1
        assert report["persisted"] == [task["id"]]
        assert report["transitions"][0]["reasons"] == ["re-eligible"]

        reloaded = test_client.get(f"/tasks/{task['id']}", headers=owner_headers).json()["task"]
        assert reloaded["isCompleted"] is False
        assert reloaded["lastCompletionInstant"] is None

    def test_reconcile_with_nothing_due(self, test_client, owner_headers):
        _create(test_client, owner_headers)
        report = test_client.post("/reconcile", headers=owner_headers).json()

        assert report["checked"] == 1
        assert report["transitions"] == []
        assert report["discarded"] is False

    def test_sign_out_closes_session(self, test_client, owner_headers, owner_id):
        _create(test_client, owner_headers)
        session = sessions.get(owner_id)
        assert session is not None and session.is_alive

        assert test_client.delete("/session", headers=owner_headers).status_code == 204
        assert session.is_alive is False
        assert sessions.get(owner_id) is None

        # Next request reloads from the store
        assert test_client.get("/tasks", headers=owner_headers).json()["count"] == 1


class _BrokenDb:
    """Database session whose queries always fail."""

    def __init__(self):
        self.closed = False

    def query(self, *args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("database is locked"))

    def close(self):
        self.closed = True


class TestSessionRegistry:
    """Test SessionRegistry bookkeeping."""

    def test_failed_load_closes_db_session(self, owner_id):
        registry = SessionRegistry()
        db = _BrokenDb()

        with pytest.raises(PersistenceError):
            registry.open(owner_id, lambda: db)
        assert db.closed is True
        assert registry.get(owner_id) is None
