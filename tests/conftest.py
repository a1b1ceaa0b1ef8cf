"""Shared pytest fixtures for eventstate tests."""

import pytest
from httpx import ASGITransport, AsyncClient

from eventstate.api.router import get_registry
from eventstate.cache.store import SQLiteStateCache
from eventstate.config import Settings
from eventstate.db.connection import Database
from eventstate.events.store import EventStore
from eventstate.main import app
from eventstate.registry import Registry


@pytest.fixture
async def db():
    """In-memory database for tests."""
    database = await Database.connect(":memory:")
    yield database
    await database.close()


@pytest.fixture
async def event_store(db):
    """EventStore backed by in-memory database, polling quickly."""
    return EventStore(db, poll_interval=0.05)


@pytest.fixture
async def state_cache(db):
    """SQLiteStateCache backed by in-memory database."""
    return SQLiteStateCache(db)


@pytest.fixture
def settings():
    """Settings with no retry delays so failure paths run fast."""
    return Settings(
        cache_retry_backoff=0,
        feed_retry_backoff=0,
        feed_max_restarts=2,
        feed_poll_interval=0.05,
    )


@pytest.fixture
async def registry(event_store, state_cache, settings):
    """Registry over the in-memory event store and cache. Closed after the test."""
    reg = Registry(event_store, state_cache, settings=settings)
    yield reg
    await reg.close()


@pytest.fixture
async def client(registry):
    """Async test client with the in-memory registry wired into the app."""
    app.dependency_overrides[get_registry] = lambda: registry
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client
    app.dependency_overrides.clear()
