"""Event sourcing: append-only event store, change feed, reducers and projection."""

from eventstate.events.feed import ChangeFeedListener, FeedHealth
from eventstate.events.projector import StateProjector
from eventstate.events.registry import ReducerRegistry
from eventstate.events.store import EventSource, EventStore

__all__ = [
    "ChangeFeedListener",
    "EventSource",
    "EventStore",
    "FeedHealth",
    "ReducerRegistry",
    "StateProjector",
]
