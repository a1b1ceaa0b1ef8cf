"""Event-sourced state registry."""

from eventstate.events.registry import DuplicatePolicy, InvalidArgumentError
from eventstate.models import ChangeRecord, Event
from eventstate.registry import Registry
from eventstate.state.store import Store

__all__ = [
    "ChangeRecord",
    "DuplicatePolicy",
    "Event",
    "InvalidArgumentError",
    "Registry",
    "Store",
]
