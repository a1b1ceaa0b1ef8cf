"""State projector: folds change records into the aggregate state.

The read side of the event log. Root actions (init, event, hydrate) are
handled here; individual events are delegated to whatever reducer the
ReducerRegistry holds for their type. Nothing in this module raises for a
bad action or an unknown event: the Store must stay alive, so those are
logged and passed to the error callback instead.
"""

import logging
from collections.abc import Callable
from typing import Any

from eventstate.events.registry import ReducerRegistry
from eventstate.models import ChangeRecord, EventAction, HydrateAction, InitAction

logger = logging.getLogger(__name__)

ProjectedHook = Callable[[Any, int | None], None]
ErrorHook = Callable[[Exception], None]


class StateProjector:
    """Applies actions to state and tracks the latest sequence cursor."""

    def __init__(
        self,
        registry: ReducerRegistry,
        *,
        on_projected: ProjectedHook | None = None,
        on_error: ErrorHook | None = None,
    ) -> None:
        self._registry = registry
        self.on_projected = on_projected
        self.on_error = on_error
        self.sequence: int | None = None

    def reduce_root(self, state: Any, action: object) -> Any:
        """Root reducer handed to the Store."""
        if isinstance(action, InitAction):
            return state

        if isinstance(action, EventAction):
            new_state = self.reduce_event(state, action.change)
            # Same object back means the reducer made no change
            if new_state is state:
                return state
            if self.on_projected is not None:
                self.on_projected(new_state, self.sequence)
            return new_state

        if isinstance(action, HydrateAction):
            if action.sequence is not None:
                self.sequence = action.sequence
            return action.payload if action.payload is not None else state

        self._report(UnrecognizedActionError(action))
        return state

    def reduce_event(self, state: Any, change: ChangeRecord | None) -> Any:
        """Apply one change record through its registered reducer."""
        if change is None or change.sequence is None or change.document is None:
            self._report(InvalidChangeError(change))
            return state

        self.sequence = change.sequence

        document = change.document
        reducer = self._registry.lookup(document.type)
        if reducer is None:
            self._report(UnrecognizedEventError(document.type, change.sequence))
            return state

        return reducer(state, document)

    def _report(self, error: Exception) -> None:
        logger.error("%s", error)
        if self.on_error is not None:
            self.on_error(error)


class UnrecognizedActionError(Exception):
    def __init__(self, action: object) -> None:
        self.action = action
        action_type = getattr(action, "type", None)
        super().__init__(f"Unrecognised action {action_type!r}: {action!r}")


class UnrecognizedEventError(Exception):
    def __init__(self, event_type: str, sequence: int) -> None:
        self.event_type = event_type
        self.sequence = sequence
        super().__init__(f"Unrecognised event {event_type!r} at sequence {sequence}")


class InvalidChangeError(Exception):
    def __init__(self, change: ChangeRecord | None) -> None:
        self.change = change
        super().__init__(f"Invalid event action, missing sequence or document: {change!r}")
