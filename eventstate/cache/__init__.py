"""State cache: snapshot storage and the optimistic-concurrency writer."""

from eventstate.cache.guard import ConcurrencyGuard
from eventstate.cache.store import SQLiteStateCache, StateCache

__all__ = ["ConcurrencyGuard", "SQLiteStateCache", "StateCache"]
