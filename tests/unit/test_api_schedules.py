"""Tests for the schedules router."""

from datetime import UTC, datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from inzikt.api.auth import CurrentUser, get_current_user
from inzikt.api.deps import get_registry, get_store
from inzikt.core.registry import HandlerRegistry
from inzikt.models.schedule import JobFrequency


async def _noop(params):
    return None


@pytest.fixture
def client(store):
    from inzikt.api.app import create_app

    app = create_app()
    app.dependency_overrides[get_current_user] = lambda: CurrentUser(id="u1")
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_registry] = lambda: HandlerRegistry(
        {"ticket-analysis": _noop, "automated-import": _noop}
    )
    return TestClient(app)


def _own(store, **kwargs):
    kwargs.setdefault("job_type", "ticket-analysis")
    kwargs.setdefault("frequency", JobFrequency.DAILY)
    kwargs.setdefault("next_run", datetime.now(UTC) + timedelta(hours=5))
    kwargs.setdefault("user_id", "u1")
    return store.add_scheduled(**kwargs)


class TestCreate:
    def test_create_daily(self, client, store):
        response = client.post("/api/v1/schedules/", json={"job_type": "ticket-analysis", "parameters": {"user_id": "evil"}})
        assert response.status_code == 201
        data = response.json()
        assert data["schedule_human"] == "Every day at 3:00 UTC"
        assert data["parameters"] == {"user_id": "u1"}
        (job,) = store.scheduled.values()
        assert job.user_id == "u1"
        assert job.next_run.hour == 3

    def test_unknown_job_type(self, client):
        response = client.post("/api/v1/schedules/", json={"job_type": "mine-bitcoin"})
        assert response.status_code == 422

    def test_custom_requires_valid_cron(self, client):
        missing = client.post("/api/v1/schedules/", json={"job_type": "ticket-analysis", "frequency": "custom"})
        invalid = client.post(
            "/api/v1/schedules/",
            json={"job_type": "ticket-analysis", "frequency": "custom", "cron_expression": "0 25 * * *"},
        )
        assert missing.status_code == 422
        assert invalid.status_code == 422

    def test_custom_schedule_described(self, client):
        response = client.post(
            "/api/v1/schedules/",
            json={"job_type": "ticket-analysis", "frequency": "custom", "cron_expression": "0 8 * * 1-5"},
        )
        assert response.status_code == 201
        assert response.json()["schedule_human"] == "Weekdays at 8:00 UTC"


class TestReadUpdate:
    def test_list_only_own(self, client, store):
        mine = _own(store)
        _own(store, user_id="u2")
        response = client.get("/api/v1/schedules/")
        assert [s["id"] for s in response.json()] == [mine.id]

    def test_other_users_schedule_is_404(self, client, store):
        theirs = _own(store, user_id="u2")
        assert client.get(f"/api/v1/schedules/{theirs.id}").status_code == 404

    def test_frequency_change_recomputes_next_run(self, client, store):
        job = _own(store)
        response = client.patch(f"/api/v1/schedules/{job.id}", json={"frequency": "hourly"})
        assert response.status_code == 200
        assert job.frequency == JobFrequency.HOURLY
        assert job.next_run.minute == 0
        assert job.next_run - datetime.now(UTC) <= timedelta(hours=1)

    def test_toggle_and_cancel(self, client, store):
        job = _own(store)

        assert client.patch(f"/api/v1/schedules/{job.id}/toggle").json()["enabled"] is False
        assert client.post(f"/api/v1/schedules/{job.id}/cancel").status_code == 400

        assert client.patch(f"/api/v1/schedules/{job.id}/toggle").json()["enabled"] is True
        response = client.post(f"/api/v1/schedules/{job.id}/cancel")
        assert response.json() == {"success": True, "message": f"Scheduled job {job.id} has been disabled"}
        assert job.enabled is False

    def test_delete(self, client, store):
        job = _own(store)
        assert client.delete(f"/api/v1/schedules/{job.id}").status_code == 204
        assert job.id not in store.scheduled
