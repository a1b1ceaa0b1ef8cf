"""eventstate FastAPI application entry point."""

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI

from eventstate.api.router import get_registry
from eventstate.api.router import router as events_router
from eventstate.cache.store import SQLiteStateCache
from eventstate.config import Settings
from eventstate.db.connection import Database
from eventstate.events.store import EventStore
from eventstate.registry import Registry

logger = logging.getLogger(__name__)


def create_app(
    configure: Callable[[Registry], None] | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    """Build the app. ``configure`` registers reducers before the store starts."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Manage database lifecycle and registry wiring."""
        resolved = settings or Settings.from_env()
        logging.basicConfig(level=resolved.log_level.upper())

        events_db = await Database.connect(resolved.events_db)
        state_db = await Database.connect(resolved.state_db)

        registry = Registry(
            EventStore(events_db, poll_interval=resolved.feed_poll_interval),
            SQLiteStateCache(state_db),
            settings=resolved,
        )
        if configure is not None:
            configure(registry)
        registry.create_store()
        await registry.ready()
        logger.info("Registry ready: %r", registry)

        app.dependency_overrides[get_registry] = lambda: registry
        app.state.registry = registry
        yield

        await registry.close()
        await events_db.close()
        await state_db.close()

    app = FastAPI(
        title="eventstate",
        description="Event-sourced state registry with a cached, resumable projection",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(events_router)
    return app


app = create_app()
