"""Tests for the HTTP API."""

from datetime import datetime, timedelta, timezone

import httpx
import pytest
import pytest_asyncio

from swarmcore.api import create_fastapi_app
from swarmcore.app import Application
from swarmcore.config import EventBusConfig


@pytest_asyncio.fixture
async def application():
    app = Application(
        db_path=":memory:",
        backend="sqlite",
        bus_config=EventBusConfig(retry_delay=0, batch_size=1, flush_interval=0),
        stats_interval_seconds=0,
    )
    await app.start()
    yield app
    await app.stop()


@pytest_asyncio.fixture
async def client(application):
    transport = httpx.ASGITransport(app=create_fastapi_app(application))
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def submit(client, **body):
    body.setdefault("title", "Echo me")
    response = await client.post("/api/tasks", json=body)
    assert response.status_code == 201, response.text
    return response.json()


class TestTasksApi:
    """Tests for /api/tasks."""

    async def test_submit_and_complete(self, client, application):
        """Test that a submitted task runs on the echo agent."""
        task = await submit(client, id="t1", priority="high", complexity=2)
        assert task["id"] == "t1"
        assert task["priority"] == "high"
        assert task["correlation_id"].startswith("corr_")

        await application.manager.wait_for_tasks()
        response = await client.get("/api/tasks/t1")

        assert response.status_code == 200
        assert response.json()["status"] == "completed"
        assert response.json()["assigned_agent"] == "echo_agent"

    async def test_generated_id(self, client):
        """Test that an id is generated when omitted."""
        task = await submit(client)
        assert task["id"].startswith("task_")

    async def test_invalid_task(self, client):
        """Test that validation errors map to 400."""
        response = await client.post("/api/tasks", json={"title": "x", "complexity": 42})

        assert response.status_code == 400
        assert response.json()["detail"]["errors"]

    async def test_unknown_task(self, client):
        """Test 404 for unknown ids."""
        assert (await client.get("/api/tasks/missing")).status_code == 404
        assert (await client.post("/api/tasks/missing/cancel")).status_code == 404

    async def test_cancel_pending(self, client):
        """Test cancelling a task no agent can take."""
        await submit(client, id="t1", requirements=["quantum"])

        response = await client.post("/api/tasks/t1/cancel")

        assert response.json() == {"task_id": "t1", "cancelled": True}
        assert (await client.get("/api/tasks/t1")).json()["status"] == "cancelled"

    async def test_list_by_status(self, client):
        """Test filtering the task list."""
        await submit(client, id="t1", requirements=["quantum"])

        response = await client.get("/api/tasks", params={"status": "pending"})
        assert [t["id"] for t in response.json()] == ["t1"]


class TestObservabilityApi:
    """Tests for events and stats."""

    async def test_events_and_correlation_chain(self, client, application):
        """Test reading a task's causal chain."""
        task = await submit(client, id="t1")
        await application.manager.wait_for_tasks()

        response = await client.get(f"/api/correlations/{task['correlation_id']}/events")
        types = [e["type"] for e in response.json()]
        assert types == ["task_created", "task_assigned", "task_started", "task_completed"]

        event_id = response.json()[0]["id"]
        single = await client.get(f"/api/events/{event_id}")
        assert single.json()["payload"]["task_id"] == "t1"

    async def test_events_filter_by_type(self, client):
        """Test event type filtering."""
        await submit(client, id="t1")

        response = await client.get("/api/events", params={"event_type": "task_created"})

        assert response.status_code == 200
        assert [e["payload"]["task_id"] for e in response.json()] == ["t1"]

    async def test_events_bad_filters(self, client):
        """Test 400 for malformed filters."""
        assert (await client.get("/api/events", params={"event_type": "nope"})).status_code == 400
        assert (await client.get("/api/events", params={"after": "yesterday"})).status_code == 400

    async def test_unknown_event(self, client):
        """Test 404 for unknown event ids."""
        assert (await client.get("/api/events/evt_missing")).status_code == 404

    async def test_stats(self, client, application):
        """Test the combined stats document."""
        await submit(client, id="t1")
        await application.manager.wait_for_tasks()

        stats = (await client.get("/api/stats")).json()

        assert stats["system"]["total_agents"] == 1
        assert stats["system"]["completed_tasks"] == 1
        assert stats["event_store"]["events_by_type"]["task_completed"] == 1
        assert stats["swarm"]["total_tasks"] == 0


class TestControlApi:
    """Tests for /api/control."""

    async def test_reset(self, client):
        """Test that reset clears tasks."""
        await submit(client, id="t1", requirements=["quantum"])

        response = await client.post("/api/control/reset")

        assert response.json() == {"status": "ok"}
        assert (await client.get("/api/tasks/t1")).status_code == 404

    async def test_replay(self, client, application):
        """Test starting and polling a replay."""
        await submit(client, id="t1")
        await application.manager.wait_for_tasks()
        now = datetime.now(timezone.utc)

        response = await client.post(
            "/api/control/replay",
            json={
                "from_timestamp": (now - timedelta(minutes=5)).isoformat(),
                "to_timestamp": (now + timedelta(minutes=5)).isoformat(),
                "event_types": ["task_created"],
            },
        )
        assert response.status_code == 202
        replay_id = response.json()["replay_id"]

        job = application.event_bus.get_replay(replay_id)
        await job.wait()

        polled = (await client.get(f"/api/control/replay/{replay_id}")).json()
        assert polled["status"] == "completed"
        assert polled["total_events"] == 1

    async def test_replay_invalid_window(self, client):
        """Test 400 when from is after to."""
        now = datetime.now(timezone.utc)
        response = await client.post(
            "/api/control/replay",
            json={
                "from_timestamp": now.isoformat(),
                "to_timestamp": (now - timedelta(seconds=1)).isoformat(),
            },
        )
        assert response.status_code == 400

    async def test_unknown_replay(self, client):
        """Test 404 for unknown replay ids."""
        assert (await client.get("/api/control/replay/replay_x")).status_code == 404
