"""Reducer registry: maps event types to the reducer that projects them."""

import logging
from collections.abc import Callable
from enum import StrEnum
from typing import Any

from eventstate.models import Event

logger = logging.getLogger(__name__)

Reducer = Callable[[Any, Event], Any]


class DuplicatePolicy(StrEnum):
    """What register() does when an event type already has a reducer."""

    OVERRIDE = "override"
    ERROR = "error"


class ReducerRegistry:
    """Table of event type -> reducer, validated at registration time."""

    def __init__(self, on_duplicate: DuplicatePolicy = DuplicatePolicy.OVERRIDE) -> None:
        self._reducers: dict[str, Reducer] = {}
        self._on_duplicate = DuplicatePolicy(on_duplicate)

    def register(self, event_type: str, reducer: Reducer) -> None:
        """Register a reducer for an event type.

        Raises InvalidArgumentError for an empty type or a non-callable
        reducer. A second registration for the same type replaces the first
        under the ``override`` policy and raises DuplicateReducerError under
        ``error``.
        """
        if not event_type or not isinstance(event_type, str):
            raise InvalidArgumentError(f"Event type must be a non-empty string, got {event_type!r}")
        if reducer is None or not callable(reducer):
            raise InvalidArgumentError(f"Reducer for {event_type!r} must be callable, got {reducer!r}")

        if event_type in self._reducers:
            if self._on_duplicate is DuplicatePolicy.ERROR:
                raise DuplicateReducerError(event_type)
            logger.warning("Replacing reducer already registered for %r", event_type)

        self._reducers[event_type] = reducer

    def lookup(self, event_type: str) -> Reducer | None:
        """Return the reducer for an event type, or None."""
        return self._reducers.get(event_type)

    def event_types(self) -> list[str]:
        """Registered event types in registration order."""
        return list(self._reducers)

    def __contains__(self, event_type: object) -> bool:
        return event_type in self._reducers

    def __len__(self) -> int:
        return len(self._reducers)

    def __repr__(self) -> str:
        return f"ReducerRegistry {{ {', '.join(self._reducers)} }}"


class InvalidArgumentError(ValueError):
    pass


class DuplicateReducerError(InvalidArgumentError):
    def __init__(self, event_type: str) -> None:
        self.event_type = event_type
        super().__init__(f"Reducer already registered for event type: {event_type}")
