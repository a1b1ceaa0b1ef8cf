"""Registry: the public entry point tying reducers, event store and state cache together.

A Registry is an ordinary object owned by the caller. It holds the reducer
table, writes new events to the event store, and builds at most one Store,
which it hydrates from the state cache before following the change feed.
"""

import asyncio
import logging
from collections.abc import Callable, Mapping
from typing import Any

from eventstate.cache.guard import ConcurrencyGuard
from eventstate.cache.store import (
    CacheCorruptError,
    CacheError,
    CacheRowNotFoundError,
    StateCache,
)
from eventstate.config import Settings
from eventstate.events.feed import ChangeFeedListener, FeedHealth
from eventstate.events.projector import StateProjector
from eventstate.events.registry import InvalidArgumentError, Reducer, ReducerRegistry
from eventstate.events.store import EventSource
from eventstate.identifier import generate_event_id
from eventstate.models import CacheRow, Event
from eventstate.state.store import Store

logger = logging.getLogger(__name__)

StoreEnhancer = Callable[[Store], Store]


class Registry:
    """Registry of reducers over an event store, with an optional state cache."""

    def __init__(
        self,
        source: EventSource,
        cache: StateCache | None = None,
        *,
        settings: Settings | None = None,
        on_error: Callable[[Exception], None] | None = None,
    ) -> None:
        self._settings = settings or Settings()
        self._source = source
        self._cache = cache
        self._on_error = on_error
        self.reducers = ReducerRegistry(on_duplicate=self._settings.duplicate_reducers)
        self._guard = ConcurrencyGuard(
            cache,
            enabled=self._settings.cache_enabled,
            row_id=self._settings.cache_row_id,
            max_attempts=self._settings.cache_max_attempts,
            retry_backoff=self._settings.cache_retry_backoff,
        )
        self._store: Store | None = None
        self._feed: ChangeFeedListener | None = None
        self._startup: asyncio.Task | None = None

    def __repr__(self) -> str:
        return f"Registry {{ {', '.join(self.reducers.event_types())} }}"

    @property
    def source(self) -> EventSource:
        return self._source

    @property
    def cache(self) -> StateCache | None:
        return self._cache

    @property
    def cache_enabled(self) -> bool:
        return self._guard.enabled

    @cache_enabled.setter
    def cache_enabled(self, value: bool) -> None:
        self._guard.enabled = value

    @property
    def guard(self) -> ConcurrencyGuard:
        return self._guard

    @property
    def feed(self) -> ChangeFeedListener | None:
        return self._feed

    @property
    def health(self) -> FeedHealth:
        """Feed health, or ``failed`` when startup itself died before the feed ran."""
        if self._startup_failed():
            return FeedHealth.FAILED
        return self._feed.health if self._feed is not None else FeedHealth.IDLE

    # -- Reducers and events --

    def register(self, event_type: str, reducer: Reducer) -> None:
        """Register a reducer for an event type. See ReducerRegistry.register."""
        self.reducers.register(event_type, reducer)

    async def emit(self, event: Mapping[str, Any] | None) -> Event:
        """Write a new event to the event store and return it.

        The event needs a ``type``; ``payload``, ``error`` and ``meta`` are
        optional and stored as given. The id is generated here.
        """
        if not event or not event.get("type"):
            raise InvalidArgumentError("Event type is required")
        if not isinstance(event["type"], str):
            raise InvalidArgumentError(f"Event type must be a string, got {event['type']!r}")

        record = Event(
            id=generate_event_id(),
            type=event["type"],
            payload=event.get("payload"),
            error=event.get("error"),
            meta=event.get("meta"),
        )
        await self._source.put(record)
        logger.debug("Emitted %s event %s", record.type, record.id)
        return record

    # -- Store lifecycle --

    def create_store(
        self,
        enhancer: StoreEnhancer | None = None,
        *,
        initial_state: Any = None,
    ) -> Store:
        """Build the Store and start hydration. Later calls return the same Store.

        Must be called from a running event loop. The returned Store accepts
        dispatches at once; EVENT actions wait until hydration completes.
        ``initial_state`` is used when there is no cached snapshot (default {}).
        """
        if self._store is not None:
            return self._store

        projector = StateProjector(self.reducers, on_error=self._report)
        store = Store(projector, self._guard, initial_state=initial_state, on_error=self._report)
        if enhancer is not None:
            store = enhancer(store)
        self._store = store

        self._feed = ChangeFeedListener(
            self._source,
            store.dispatch,
            max_restarts=self._settings.feed_max_restarts,
            retry_backoff=self._settings.feed_retry_backoff,
            on_error=self._report,
        )
        self._startup = asyncio.get_running_loop().create_task(self._start(store))
        self._startup.add_done_callback(self._on_startup_done)
        return store

    def get_store(self) -> Store | None:
        return self._store

    async def ready(self) -> Store:
        """Wait until the store is hydrated and the change feed is running."""
        if self._startup is None or self._store is None:
            raise RuntimeError("create_store() has not been called")
        await self._startup
        return self._store

    async def close(self) -> None:
        """Stop following the feed and flush pending cache writes."""
        if self._startup is not None and not self._startup.done():
            self._startup.cancel()
            try:
                await self._startup
            except asyncio.CancelledError:
                pass
        if self._feed is not None:
            await self._feed.stop()
        if self._store is not None:
            await self._store.drain()

    async def _start(self, store: Store) -> None:
        row = await self._load_cached_row()
        store.complete_hydration(row)

        since = row.sequence if row is not None else 0
        task = self._feed.start(since)
        task.add_done_callback(self._on_feed_done)

    async def _load_cached_row(self) -> CacheRow | None:
        if not self._guard.active:
            return None
        try:
            row = await self._cache.get(self._guard.row_id)
        except CacheRowNotFoundError:
            logger.info("No cached state, projecting from sequence 0")
            return None
        except CacheCorruptError as e:
            logger.warning("Cached state is unreadable, projecting from sequence 0: %s", e)
            self._guard.revision_token = e.revision_token
            return None
        except CacheError as e:
            logger.warning("Could not read cached state, projecting from sequence 0: %s", e)
            return None

        self._guard.observe(row)
        logger.info("Hydrating from cached state at sequence %d", row.sequence)
        return row

    def _startup_failed(self) -> bool:
        task = self._startup
        return (
            task is not None
            and task.done()
            and not task.cancelled()
            and task.exception() is not None
        )

    def _on_startup_done(self, task: asyncio.Task) -> None:
        if self._startup_failed():
            logger.critical(
                "Store startup failed, events will not be projected: %s", task.exception()
            )

    def _on_feed_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.critical("Change feed stopped, state is no longer being projected: %s", error)

    def _report(self, error: Exception) -> None:
        if self._on_error is not None:
            self._on_error(error)
