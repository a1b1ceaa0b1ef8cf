"""Sortable event identifiers."""

from uuid import uuid1


def generate_event_id() -> str:
    """Return a 32-char hex id that sorts in creation order.

    A version-1 UUID stores its timestamp low bits first. Reordering the
    fields to time_hi, time_mid, time_low, clock_seq, node puts the most
    significant bits up front, so plain string ordering of ids matches the
    order they were generated in. The leading character is always the
    version nibble ``1``.
    """
    time_low, time_mid, time_hi, clock_seq, node = str(uuid1()).split("-")
    return "".join((time_hi, time_mid, time_low, clock_seq, node))
