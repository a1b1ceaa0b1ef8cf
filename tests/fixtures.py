"""Shared test helpers: event builders, a scriptable event source, polling."""

import asyncio
from collections.abc import AsyncIterator, Callable
from typing import Any

from eventstate.events.store import EventNotFoundError
from eventstate.identifier import generate_event_id
from eventstate.models import ChangeRecord, Event


def make_event(event_type: str = "FOO", **fields: Any) -> Event:
    """Create an Event with a generated id."""
    return Event(id=generate_event_id(), type=event_type, **fields)


def make_change(sequence: int, event_type: str = "FOO", **fields: Any) -> ChangeRecord:
    """Create a ChangeRecord wrapping a fresh Event."""
    event = make_event(event_type, **fields)
    return ChangeRecord(sequence=sequence, id=event.id, document=event)


def make_deleted_change(sequence: int) -> ChangeRecord:
    """A tombstone, which an append-only store must never produce."""
    return ChangeRecord(sequence=sequence, id=generate_event_id(), deleted=True)


def increment(state: Any, event: Event) -> Any:
    """FOO reducer over an integer state."""
    return state + 1


def unchanged(state: Any, event: Event) -> Any:
    return state


async def wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll until predicate() is true. Fails the test on timeout."""
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.01)


class ScriptedSource:
    """In-memory EventSource whose feed is driven by the test.

    Items pushed with feed() are delivered to the current subscriber in
    order. Pushing an exception makes the subscription raise it, which is
    how a feed fault looks to the listener.
    """

    def __init__(self) -> None:
        self.events: list[Event] = []
        self.subscriptions: list[int] = []
        self._queue: asyncio.Queue[ChangeRecord | Exception] = asyncio.Queue()

    async def put(self, event: Event) -> int:
        self.events.append(event)
        sequence = len(self.events)
        self.feed(ChangeRecord(sequence=sequence, id=event.id, document=event))
        return sequence

    async def get(self, event_id: str) -> Event:
        for event in self.events:
            if event.id == event_id:
                return event
        raise EventNotFoundError(event_id)

    def feed(self, item: ChangeRecord | Exception) -> None:
        self._queue.put_nowait(item)

    async def changes(self, since: int = 0, *, live: bool = True) -> AsyncIterator[ChangeRecord]:
        self.subscriptions.append(since)
        while True:
            item = await self._queue.get()
            if isinstance(item, Exception):
                raise item
            yield item
