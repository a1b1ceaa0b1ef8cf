"""Append-only event store backed by SQLite, with a live change feed."""

import asyncio
import json
from collections.abc import AsyncIterator
from datetime import UTC, datetime
from typing import Protocol

import aiosqlite

from eventstate.db.connection import Database
from eventstate.models import ChangeRecord, Event


class EventSource(Protocol):
    """What the registry needs from an event store."""

    async def put(self, event: Event) -> int: ...

    async def get(self, event_id: str) -> Event: ...

    def changes(self, since: int = 0, *, live: bool = True) -> AsyncIterator[ChangeRecord]: ...


class EventStore:
    """Append-only event store. Sequence numbers are assigned by the database."""

    def __init__(self, db: Database, poll_interval: float = 1.0) -> None:
        self._db = db
        self._poll_interval = poll_interval
        self._appended = asyncio.Event()

    async def put(self, event: Event) -> int:
        """Append an event and return the assigned sequence number.

        Raises DuplicateEventError if the event id is already stored.
        """
        try:
            cursor = await self._db.execute(
                """
                INSERT INTO events
                    (event_id, event_type, payload, error, meta, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    event.id,
                    event.type,
                    json.dumps(event.payload),
                    json.dumps(event.error),
                    json.dumps(event.meta),
                    datetime.now(UTC).isoformat(),
                ),
            )
        except aiosqlite.IntegrityError as e:
            raise DuplicateEventError(event.id) from e
        assert cursor.lastrowid is not None
        self._notify()
        return cursor.lastrowid

    async def get(self, event_id: str) -> Event:
        """Fetch a single event by id. Raises EventNotFoundError."""
        row = await self._db.fetchone(
            "SELECT * FROM events WHERE event_id = ?", (event_id,)
        )
        if row is None:
            raise EventNotFoundError(event_id)
        return self._row_to_event(row)

    async def get_events_since(self, sequence: int) -> list[ChangeRecord]:
        """All events after the given sequence number, in order."""
        rows = await self._db.fetchall(
            "SELECT * FROM events WHERE sequence_num > ? ORDER BY sequence_num",
            (sequence,),
        )
        return [self._row_to_change(row) for row in rows]

    async def changes(self, since: int = 0, *, live: bool = True) -> AsyncIterator[ChangeRecord]:
        """Yield every event after ``since``, then keep following new appends.

        With ``live=False`` iteration ends once the feed has caught up.
        Appends through this store wake the feed at once; appends from
        other connections are picked up every ``poll_interval`` seconds.
        """
        cursor = since
        while True:
            # Grab the waiter before querying so an append racing the
            # query still wakes us.
            appended = self._appended
            for change in await self.get_events_since(cursor):
                cursor = change.sequence
                yield change
            if not live:
                return
            try:
                await asyncio.wait_for(appended.wait(), timeout=self._poll_interval)
            except TimeoutError:
                pass

    def _notify(self) -> None:
        self._appended.set()
        self._appended = asyncio.Event()

    @classmethod
    def _row_to_change(cls, row) -> ChangeRecord:
        return ChangeRecord(
            sequence=row["sequence_num"],
            id=row["event_id"],
            document=cls._row_to_event(row),
        )

    @staticmethod
    def _row_to_event(row) -> Event:
        """Convert a database row to an Event."""
        return Event(
            id=row["event_id"],
            type=row["event_type"],
            payload=json.loads(row["payload"]) if row["payload"] else None,
            error=json.loads(row["error"]) if row["error"] else None,
            meta=json.loads(row["meta"]) if row["meta"] else None,
        )


class EventNotFoundError(Exception):
    def __init__(self, event_id: str) -> None:
        self.event_id = event_id
        super().__init__(f"Event not found: {event_id}")


class DuplicateEventError(Exception):
    def __init__(self, event_id: str) -> None:
        self.event_id = event_id
        super().__init__(f"Event already exists: {event_id}")
