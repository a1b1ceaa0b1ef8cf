"""Integration tests for the HTTP surface."""

from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

from eventstate.config import Settings
from eventstate.events.feed import FeedHealth
from eventstate.main import create_app
from tests.fixtures import increment, wait_for


def _count(state, event):
    return {**state, "count": state.get("count", 0) + 1}


class TestHealth:
    async def test_health_before_store(self, client):
        resp = await client.get("/api/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "ok"
        assert body["feed"] == "idle"
        assert body["hydrated"] is False

    async def test_health_when_live(self, client, registry):
        registry.create_store()
        await registry.ready()
        await wait_for(lambda: registry.health is FeedHealth.LIVE)

        resp = await client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json()["feed"] == "live"
        assert resp.json()["hydrated"] is True

    async def test_health_503_when_feed_failed(self, client, registry):
        registry.create_store()
        await registry.ready()
        registry.feed.health = FeedHealth.FAILED

        resp = await client.get("/api/health")
        assert resp.status_code == 503
        assert resp.json()["status"] == "failed"

    async def test_health_503_when_startup_failed(self, client, registry, state_cache):
        state_cache.get = AsyncMock(side_effect=RuntimeError("disk gone"))
        registry.create_store()
        with pytest.raises(RuntimeError):
            await registry.ready()

        resp = await client.get("/api/health")
        assert resp.status_code == 503
        assert resp.json()["feed"] == "failed"
        assert resp.json()["hydrated"] is False


class TestState:
    async def test_state_without_store(self, client):
        resp = await client.get("/api/state")
        assert resp.status_code == 503

    async def test_emit_then_read_state(self, client, registry):
        registry.register("FOO", increment)
        store = registry.create_store(initial_state=0)
        await registry.ready()

        resp = await client.post("/api/events", json={"type": "FOO", "meta": {"by": "api"}})
        assert resp.status_code == 201
        event = resp.json()
        assert len(event["id"]) == 32
        assert event["type"] == "FOO"
        assert event["meta"] == {"by": "api"}

        await wait_for(lambda: store.get_state() == 1)
        resp = await client.get("/api/state")
        assert resp.json() == {"state": 1, "sequence": 1}


class TestEmit:
    async def test_missing_type_rejected(self, client):
        resp = await client.post("/api/events", json={"payload": {"a": 1}})
        assert resp.status_code == 422

    async def test_empty_type_rejected(self, client):
        resp = await client.post("/api/events", json={"type": ""})
        assert resp.status_code == 422

    async def test_event_persisted(self, client, event_store):
        resp = await client.post("/api/events", json={"type": "ADD_USER", "payload": {"id": "u1"}})
        stored = await event_store.get(resp.json()["id"])
        assert stored.payload == {"id": "u1"}


class TestLifespan:
    async def test_lifespan_wires_registry(self, tmp_path):
        settings = Settings(
            events_db=str(tmp_path / "events.db"),
            state_db=str(tmp_path / "state.db"),
            feed_poll_interval=0.05,
        )
        app = create_app(lambda registry: registry.register("COUNT", _count), settings=settings)

        async with app.router.lifespan_context(app):
            registry = app.state.registry
            assert repr(registry) == "Registry { COUNT }"
            assert registry.get_store().hydrated

            async with AsyncClient(
                transport=ASGITransport(app=app),
                base_url="http://test",
            ) as client:
                resp = await client.post("/api/events", json={"type": "COUNT"})
                assert resp.status_code == 201
                await wait_for(lambda: registry.get_store().get_state() == {"count": 1})
                resp = await client.get("/api/state")
                assert resp.json()["state"] == {"count": 1}
