"""Change feed listener: follows the event store and dispatches into the Store.

Events are append-only, so a deletion on the feed is an integrity
violation. It is reported loudly and skipped. Feed faults are supervised:
the listener resubscribes from the last change it applied, with backoff, and
gives up (health ``failed``) after too many consecutive faults rather than
carrying on past a gap it cannot account for.
"""

import asyncio
import logging
from collections.abc import Callable
from enum import StrEnum
from typing import Any

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from eventstate.events.store import EventSource
from eventstate.models import ChangeRecord, EventAction

logger = logging.getLogger(__name__)


class FeedHealth(StrEnum):
    IDLE = "idle"
    LIVE = "live"
    RECONNECTING = "reconnecting"
    STOPPED = "stopped"
    FAILED = "failed"


class ChangeFeedListener:
    """Subscribes to an EventSource's live changes and dispatches EVENT actions."""

    def __init__(
        self,
        source: EventSource,
        dispatch: Callable[[Any], Any],
        *,
        max_restarts: int = 5,
        retry_backoff: float = 0.5,
        on_error: Callable[[Exception], None] | None = None,
    ) -> None:
        self._source = source
        self._dispatch = dispatch
        self._max_restarts = max_restarts
        self._retry_backoff = retry_backoff
        self._on_error = on_error
        self._task: asyncio.Task | None = None
        self.health = FeedHealth.IDLE
        self.sequence = 0

    def start(self, since: int = 0) -> asyncio.Task:
        """Spawn the supervised listener task. Starting twice is an error."""
        if self._task is not None:
            raise RuntimeError("Change feed already started")
        self._task = asyncio.get_running_loop().create_task(self.run(since))
        return self._task

    async def stop(self) -> None:
        """Cancel the listener and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        except FeedFailureError:
            pass  # already reported when it failed
        if self.health is not FeedHealth.FAILED:
            self.health = FeedHealth.STOPPED

    async def run(self, since: int = 0) -> None:
        """Follow the feed until cancelled, resubscribing after faults."""
        self.sequence = since
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._max_restarts + 1),
            wait=wait_exponential(multiplier=self._retry_backoff),
            retry=retry_if_exception_type(Exception),
            before_sleep=self._before_reconnect,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    await self._follow(attempt.retry_state)
        except asyncio.CancelledError:
            self.health = FeedHealth.STOPPED
            raise
        except RetryError as e:
            last = e.last_attempt
            cause = last.exception()
            error = FeedFailureError(self.sequence, last.attempt_number, cause)
            self._report(error, level=logging.ERROR)
            self.health = FeedHealth.FAILED
            logger.critical(
                "Change feed failed %d times in a row at sequence %d; giving up",
                last.attempt_number, self.sequence,
            )
            raise error from cause
        # A live feed only ends if the source closes it
        self.health = FeedHealth.STOPPED

    async def _follow(self, retry_state: RetryCallState) -> None:
        self.health = FeedHealth.LIVE
        logger.info("Following change feed from sequence %d", self.sequence)
        async for change in self._source.changes(since=self.sequence, live=True):
            self.handle_change(change)
            # a delivered record ends the failure streak
            retry_state.attempt_number = 1

    def _before_reconnect(self, retry_state: RetryCallState) -> None:
        error = FeedFailureError(
            self.sequence, retry_state.attempt_number, retry_state.outcome.exception()
        )
        self._report(error, level=logging.ERROR)
        self.health = FeedHealth.RECONNECTING

    def handle_change(self, change: ChangeRecord) -> None:
        """Dispatch one change. The cursor advances only once dispatch returns."""
        if change.deleted:
            self._report(IntegrityViolationError(change), level=logging.CRITICAL)
        else:
            self._dispatch(EventAction(change=change))
        if change.sequence is not None:
            self.sequence = change.sequence

    def _report(self, error: Exception, *, level: int) -> None:
        logger.log(level, "%s", error)
        if self._on_error is not None:
            self._on_error(error)


class IntegrityViolationError(Exception):
    def __init__(self, change: ChangeRecord) -> None:
        self.change = change
        super().__init__(
            f"EVENT {change.id} WAS DELETED FROM THE EVENT STORE "
            f"(sequence {change.sequence}). Events must never be deleted; "
            f"investigate immediately."
        )


class FeedFailureError(Exception):
    def __init__(self, sequence: int, attempt: int, cause: Exception) -> None:
        self.sequence = sequence
        self.attempt = attempt
        self.cause = cause
        super().__init__(
            f"Change feed error after sequence {sequence} (failure {attempt}): {cause!r}"
        )
