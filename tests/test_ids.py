# tests/test_ids.py
"""
Test composite conflict id parsing.
"""

import pytest

from buildwise.conflict.ids import (
    EDGE,
    NODE,
    edge_conflict_id,
    node_conflict_id,
    parse_conflict_id,
)
from buildwise.errors import InvalidConflictId, InvalidInput


class TestParseConflictId:

    def test_node_id(self):
        ref = parse_conflict_id("m1::node::db")

        assert ref.module_id == "m1"
        assert ref.kind == NODE
        assert ref.node_id == "db"

    def test_meta_suffix_is_ignored_for_key(self):
        ref = parse_conflict_id(node_conflict_id("m1", "db", meta=True))

        assert ref.node_id == "db"
        assert ref.rest == ("db", "meta")

    def test_edge_pair(self):
        ref = parse_conflict_id(edge_conflict_id("m1", "api", "db"))

        assert ref.kind == EDGE
        assert ref.edge_pair == ("api", "db")

    def test_edge_missing_target(self):
        ref = parse_conflict_id("m1::edge::api")

        with pytest.raises(InvalidConflictId):
            ref.edge_pair

    @pytest.mark.parametrize("raw", ["", "m1", "m1::node"])
    def test_too_few_parts(self, raw):
        with pytest.raises(InvalidConflictId, match="invalid conflictId format"):
            parse_conflict_id(raw)

    def test_unknown_kind(self):
        with pytest.raises(InvalidInput):
            parse_conflict_id("m1::port::x")
