"""Async SQLite connection shared by the event store and the state cache."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Self

import aiosqlite

from eventstate.db.schema import SCHEMA_SQL

MEMORY = ":memory:"


class Database:
    """One aiosqlite connection with serialized writes.

    Writes go through transaction(), which holds a lock until commit or
    rollback, so a read-check-write sequence is never interleaved with
    another coroutine's write on the same connection.
    """

    def __init__(self, connection: aiosqlite.Connection, path: str = MEMORY) -> None:
        self._conn = connection
        self._write_lock = asyncio.Lock()
        self.path = path

    @classmethod
    async def connect(cls, path: str = "eventstate.db") -> Self:
        """Open the database, enable WAL for file databases, create tables."""
        conn = await aiosqlite.connect(path)
        conn.row_factory = aiosqlite.Row
        if path != MEMORY:
            await conn.execute("PRAGMA journal_mode=WAL")
        await conn.execute("PRAGMA busy_timeout=5000")
        db = cls(conn, path)
        await db._ensure_schema()
        return db

    async def _ensure_schema(self) -> None:
        await self._conn.executescript(SCHEMA_SQL)
        await self._conn.commit()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Hold the write lock; commit on exit, roll back if the block raises."""
        async with self._write_lock:
            try:
                yield self._conn
            except BaseException:
                await self._conn.rollback()
                raise
            await self._conn.commit()

    async def execute(self, sql: str, params: tuple | None = None) -> aiosqlite.Cursor:
        """Run one write statement in its own transaction."""
        async with self.transaction() as conn:
            return await conn.execute(sql, params or ())

    async def fetchone(self, sql: str, params: tuple | None = None) -> aiosqlite.Row | None:
        cursor = await self._conn.execute(sql, params or ())
        return await cursor.fetchone()

    async def fetchall(self, sql: str, params: tuple | None = None) -> list[aiosqlite.Row]:
        cursor = await self._conn.execute(sql, params or ())
        return list(await cursor.fetchall())

    async def close(self) -> None:
        await self._conn.close()
