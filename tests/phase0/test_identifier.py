"""Contract tests for generated event ids."""

import re

from eventstate.identifier import generate_event_id


class TestGenerateEventId:
    def test_is_32_hex_characters(self):
        event_id = generate_event_id()
        assert len(event_id) == 32
        assert re.fullmatch(r"[0-9a-f]{32}", event_id)

    def test_starts_with_version_nibble(self):
        """time_hi leads, so the version-1 nibble is the first character."""
        assert generate_event_id().startswith("1")

    def test_ids_are_unique(self):
        ids = {generate_event_id() for _ in range(1000)}
        assert len(ids) == 1000

    def test_lexicographic_order_matches_creation_order(self):
        ids = [generate_event_id() for _ in range(200)]
        assert sorted(ids) == ids

    def test_differs_from_a_previously_generated_id(self):
        assert generate_event_id() != "11e7b68fb373d1a0a33e8fb9afebf642"
