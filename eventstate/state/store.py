"""Store: the single state cell, its subscribers, and the hydration barrier.

Every mutation goes through dispatch(), which is synchronous and refuses
reentrant calls, so reductions never interleave. EVENT actions dispatched
before hydration has completed are held back and replayed, in order, right
after the cached snapshot is applied.

Snapshots are persisted in the background. The projector only reports that
state changed; the Store keeps the newest pending snapshot and a single
writer task pushes it through the ConcurrencyGuard once dispatch has
returned. A failed write is logged and reported, never raised into dispatch.
"""

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from eventstate.cache.guard import ConcurrencyGuard
from eventstate.events.projector import StateProjector
from eventstate.models import CacheRow, EventAction, HydrateAction, InitAction

logger = logging.getLogger(__name__)

Listener = Callable[[], None]


class Store:
    """Holds projected state and notifies subscribers after each dispatch."""

    def __init__(
        self,
        projector: StateProjector,
        guard: ConcurrencyGuard | None = None,
        *,
        initial_state: Any = None,
        on_error: Callable[[Exception], None] | None = None,
    ) -> None:
        self._projector = projector
        self._projector.on_projected = self._schedule_cache_write
        self._guard = guard
        self._on_error = on_error
        self._state: Any = {} if initial_state is None else initial_state
        self._listeners: list[Listener] = []
        self._dispatching = False
        self._hydrated = asyncio.Event()
        self._deferred: list[EventAction] = []
        self._pending_cache: tuple[Any, int | None] | None = None
        self._cache_task: asyncio.Task | None = None
        self._apply(InitAction())

    # -- State access --

    def get_state(self) -> Any:
        return self._state

    @property
    def sequence(self) -> int | None:
        """Sequence cursor of the last change applied to state."""
        return self._projector.sequence

    def select(self, selector: Callable[..., Any], *args: Any) -> Any:
        """Run a read-only query against the current state."""
        return selector(self._state, *args)

    # -- Dispatch and subscriptions --

    def dispatch(self, action: Any) -> Any:
        """Reduce one action, then notify subscribers in registration order."""
        if self._dispatching:
            raise RuntimeError("Reducers may not dispatch actions")
        if isinstance(action, EventAction) and not self._hydrated.is_set():
            self._deferred.append(action)
            return action
        self._apply(action)
        return action

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener. Returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _apply(self, action: Any) -> None:
        self._dispatching = True
        try:
            self._state = self._projector.reduce_root(self._state, action)
        finally:
            self._dispatching = False

        for listener in list(self._listeners):
            try:
                listener()
            except Exception as e:
                logger.exception("Store subscriber %r raised", listener)
                self._report(e)

    # -- Hydration barrier --

    @property
    def hydrated(self) -> bool:
        return self._hydrated.is_set()

    async def wait_hydrated(self) -> None:
        await self._hydrated.wait()

    def complete_hydration(self, row: CacheRow | None) -> None:
        """Apply the cached snapshot (if any), open the barrier, replay held events."""
        if self._hydrated.is_set():
            raise RuntimeError("Store already hydrated")
        if row is not None:
            self.dispatch(HydrateAction(payload=row.state, sequence=row.sequence))
        self._hydrated.set()

        deferred, self._deferred = self._deferred, []
        if deferred:
            logger.info("Replaying %d event(s) received during hydration", len(deferred))
        for action in deferred:
            self.dispatch(action)

    # -- Background cache writes --

    def _schedule_cache_write(self, state: Any, sequence: int | None) -> None:
        if self._guard is None or not self._guard.active:
            return
        self._pending_cache = (state, sequence)
        if self._cache_task is None or self._cache_task.done():
            self._cache_task = asyncio.get_running_loop().create_task(self._write_cache())

    async def _write_cache(self) -> None:
        while self._pending_cache is not None:
            state, sequence = self._pending_cache
            self._pending_cache = None
            try:
                await self._guard.cache_state(state, sequence)
            except Exception as e:
                logger.exception("Failed to cache state at sequence %s", sequence)
                self._report(e)

    async def drain(self) -> None:
        """Wait until every scheduled snapshot has been written (or has failed)."""
        while self._cache_task is not None and not self._cache_task.done():
            await self._cache_task

    def _report(self, error: Exception) -> None:
        if self._on_error is not None:
            self._on_error(error)
