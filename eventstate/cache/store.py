"""State cache: one continuously overwritten snapshot row, guarded by revision tokens."""

import json
from datetime import UTC, datetime
from typing import Any, Protocol
from uuid import uuid4

import aiosqlite

from eventstate.db.connection import Database
from eventstate.models import CacheRow

DEFAULT_ROW_ID = "state"


class StateCache(Protocol):
    """What the registry needs from a state cache."""

    async def get(self, row_id: str = DEFAULT_ROW_ID) -> CacheRow: ...

    async def put(self, row: CacheRow, row_id: str = DEFAULT_ROW_ID) -> str: ...


class SQLiteStateCache:
    """State cache backed by the state_cache table.

    Every write must carry the revision token of the row it replaces.
    A write with no token creates the row and fails if it already exists.
    """

    def __init__(self, db: Database) -> None:
        self._db = db

    async def get(self, row_id: str = DEFAULT_ROW_ID) -> CacheRow:
        """Read the cached row.

        Raises CacheRowNotFoundError, or CacheCorruptError when the stored
        snapshot is not valid JSON. The latter carries the row's revision
        token so the row can still be overwritten.
        """
        row = await self._db.fetchone(
            "SELECT * FROM state_cache WHERE row_id = ?", (row_id,)
        )
        if row is None:
            raise CacheRowNotFoundError(row_id)
        try:
            state = json.loads(row["state"]) if row["state"] is not None else None
        except ValueError as e:
            raise CacheCorruptError(row_id, row["revision"], str(e)) from e
        return CacheRow(
            state=state,
            sequence=row["sequence"],
            revision_token=row["revision"],
        )

    async def put(self, row: CacheRow, row_id: str = DEFAULT_ROW_ID) -> str:
        """Write the row and return its new revision token.

        Raises CacheConflictError when the supplied token is stale, and
        CacheRowNotFoundError when updating a row that does not exist.
        State is stored as JSON, so non-string dict keys or unserializable
        values raise CacheSerializationError before the row is touched.
        """
        now = datetime.now(UTC).isoformat()
        state = _dump_state(row.state, row_id)

        async with self._db.transaction() as conn:
            cursor = await conn.execute(
                "SELECT revision FROM state_cache WHERE row_id = ?", (row_id,)
            )
            current = await cursor.fetchone()

            if row.revision_token is None:
                if current is not None:
                    raise CacheConflictError(row_id, None)
                revision = _next_revision(None)
                try:
                    await conn.execute(
                        """
                        INSERT INTO state_cache (row_id, revision, sequence, state, updated_at)
                        VALUES (?, ?, ?, ?, ?)
                        """,
                        (row_id, revision, row.sequence, state, now),
                    )
                except aiosqlite.IntegrityError as e:
                    raise CacheConflictError(row_id, None) from e
                return revision

            if current is None:
                raise CacheRowNotFoundError(row_id)

            revision = _next_revision(current["revision"])
            cursor = await conn.execute(
                """
                UPDATE state_cache
                SET revision = ?, sequence = ?, state = ?, updated_at = ?
                WHERE row_id = ? AND revision = ?
                """,
                (revision, row.sequence, state, now, row_id, row.revision_token),
            )
            if cursor.rowcount == 0:
                raise CacheConflictError(row_id, row.revision_token)
            return revision


def _next_revision(current: str | None) -> str:
    """Tokens look like ``3-<hex>``; the prefix counts writes to the row."""
    generation = int(current.split("-", 1)[0]) if current else 0
    return f"{generation + 1}-{uuid4().hex}"


def _dump_state(state: Any, row_id: str) -> str:
    _check_keys(state, row_id)
    try:
        return json.dumps(state)
    except (TypeError, ValueError) as e:
        raise CacheSerializationError(row_id, str(e)) from e


def _check_keys(value: Any, row_id: str) -> None:
    # json.dumps would silently turn 1 into "1"
    if isinstance(value, dict):
        for key, item in value.items():
            if not isinstance(key, str):
                raise CacheSerializationError(row_id, f"non-string key {key!r}")
            _check_keys(item, row_id)
    elif isinstance(value, (list, tuple)):
        for item in value:
            _check_keys(item, row_id)


class CacheError(Exception):
    pass


class CacheConflictError(CacheError):
    def __init__(self, row_id: str, revision_token: str | None) -> None:
        self.row_id = row_id
        self.revision_token = revision_token
        super().__init__(f"Cache conflict on row {row_id!r}: stale revision {revision_token!r}")


class CacheRowNotFoundError(CacheError):
    def __init__(self, row_id: str) -> None:
        self.row_id = row_id
        super().__init__(f"Cache row not found: {row_id}")


class CacheFailureError(CacheError):
    def __init__(self, row_id: str, attempts: int) -> None:
        self.row_id = row_id
        self.attempts = attempts
        super().__init__(f"Cache write to row {row_id!r} still conflicting after {attempts} attempts")


class CacheCorruptError(CacheError):
    def __init__(self, row_id: str, revision_token: str, reason: str) -> None:
        self.row_id = row_id
        self.revision_token = revision_token
        super().__init__(f"Cached state in row {row_id!r} is unreadable: {reason}")


class CacheSerializationError(CacheError):
    def __init__(self, row_id: str, reason: str) -> None:
        self.row_id = row_id
        super().__init__(f"State for cache row {row_id!r} is not JSON-safe: {reason}")
