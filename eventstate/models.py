"""Canonical data structures for eventstate.

Defined once here, referenced everywhere else. Events are the immutable
records held by the event store; change records are what a change feed
delivers; actions are what the Store dispatches into the projector.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict

# ---------------------------------------------------------------------------
# Event store records
# ---------------------------------------------------------------------------


class Event(BaseModel):
    """A persisted domain event. Never modified after it is written."""

    model_config = ConfigDict(frozen=True)

    id: str
    type: str
    payload: Any = None
    error: Any = None
    meta: Any = None


class ChangeRecord(BaseModel):
    """One entry of a change feed. ``document`` is None for deletions."""

    model_config = ConfigDict(frozen=True)

    sequence: int | None = None
    id: str | None = None
    document: Event | None = None
    deleted: bool = False


# ---------------------------------------------------------------------------
# State cache
# ---------------------------------------------------------------------------


class CacheRow(BaseModel):
    """The single cached snapshot: projected state plus its cursor and token."""

    state: Any = None
    sequence: int = 0
    revision_token: str | None = None


# ---------------------------------------------------------------------------
# Store actions
# ---------------------------------------------------------------------------

INIT = "@@INIT"
EVENT = "EVENT"
HYDRATE_STATE = "HYDRATE_STATE"


class InitAction(BaseModel):
    type: Literal["@@INIT"] = INIT


class EventAction(BaseModel):
    """Apply one change record through its registered reducer."""

    type: Literal["EVENT"] = EVENT
    change: ChangeRecord | None = None


class HydrateAction(BaseModel):
    """Replace state with a cached snapshot. No payload keeps current state."""

    type: Literal["HYDRATE_STATE"] = HYDRATE_STATE
    payload: Any = None
    sequence: int | None = None


Action = InitAction | EventAction | HydrateAction
