"""Concurrency guard: writes snapshots to the state cache with optimistic retries."""

import logging
from typing import Any

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from eventstate.cache.store import (
    DEFAULT_ROW_ID,
    CacheConflictError,
    CacheCorruptError,
    CacheFailureError,
    CacheRowNotFoundError,
    StateCache,
)
from eventstate.models import CacheRow

logger = logging.getLogger(__name__)

_CONFLICTS = (CacheConflictError, CacheRowNotFoundError)


class ConcurrencyGuard:
    """Owns the revision token of the cache row and the retry loop around writes."""

    def __init__(
        self,
        cache: StateCache | None,
        *,
        enabled: bool = True,
        row_id: str = DEFAULT_ROW_ID,
        max_attempts: int = 5,
        retry_backoff: float = 0.05,
    ) -> None:
        self._cache = cache
        self.enabled = enabled
        self.row_id = row_id
        self._max_attempts = max_attempts
        self._retry_backoff = retry_backoff
        self.revision_token: str | None = None

    @property
    def active(self) -> bool:
        return self.enabled and self._cache is not None

    def observe(self, row: CacheRow) -> None:
        """Adopt the token of a row read from the cache."""
        self.revision_token = row.revision_token

    async def cache_state(self, state: Any, sequence: int | None) -> str | None:
        """Persist a snapshot, refetching the token and retrying on conflict.

        Returns the new revision token, or None when caching is off.
        Raises CacheFailureError once ``max_attempts`` writes have all
        conflicted; any other cache error propagates unchanged.
        """
        if not self.active:
            return None

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(multiplier=self._retry_backoff),
            retry=retry_if_exception_type(_CONFLICTS),
            before_sleep=self._before_retry,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    row = CacheRow(
                        state=state, sequence=sequence or 0, revision_token=self.revision_token
                    )
                    self.revision_token = await self._cache.put(row, self.row_id)
        except RetryError as e:
            last = e.last_attempt
            raise CacheFailureError(self.row_id, last.attempt_number) from last.exception()
        return self.revision_token

    async def _before_retry(self, retry_state: RetryCallState) -> None:
        logger.warning(
            "Cache write conflict on %r (attempt %d/%d): %s",
            self.row_id, retry_state.attempt_number, self._max_attempts,
            retry_state.outcome.exception(),
        )
        try:
            latest = await self._cache.get(self.row_id)
        except CacheRowNotFoundError:
            self.revision_token = None
        except CacheCorruptError as e:
            self.revision_token = e.revision_token
        else:
            self.revision_token = latest.revision_token
