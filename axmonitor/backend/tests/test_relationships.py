"""
tests/test_relationships.py

Tests for correlation/relationships.py — cross-type correlation config.
"""

from __future__ import annotations

import pytest

from axmonitor.backend.correlation import CorrelationRelationship, RelationshipSet


class TestParse:

    def test_default_window(self):
        rel = CorrelationRelationship.parse("cpu_high+blocking_chain_high", 300)
        assert rel == CorrelationRelationship("cpu_high", "blocking_chain_high", 300)

    def test_explicit_window(self):
        rel = CorrelationRelationship.parse(" aos_down + batch_backlog_high @600", 300)
        assert rel.type_a == "aos_down"
        assert rel.type_b == "batch_backlog_high"
        assert rel.window_seconds == 600.0

    @pytest.mark.parametrize("text", ["cpu_high", "+b", "a+", "a+b@0", "a+b@-5"])
    def test_invalid(self, text):
        with pytest.raises(ValueError):
            CorrelationRelationship.parse(text, 300)

    def test_str(self):
        assert str(CorrelationRelationship("a", "b", 60)) == "a+b@60"


class TestRelationshipSet:

    def test_from_config_skips_bad_entries(self):
        rels = RelationshipSet.from_config(["a+b", "garbage", "c+d@60"], 300)
        assert len(rels) == 2

    def test_related_within_is_symmetric(self):
        rels = RelationshipSet([CorrelationRelationship("a", "b", 300)])
        assert rels.related_within("a", "b", 100) is not None
        assert rels.related_within("b", "a", -100) is not None

    def test_outside_window(self):
        rels = RelationshipSet([CorrelationRelationship("a", "b", 300)])
        assert rels.related_within("a", "b", 301) is None

    def test_unrelated_types(self):
        rels = RelationshipSet([CorrelationRelationship("a", "b", 300)])
        assert rels.related_within("a", "c", 0) is None

    def test_lock_key_shared_across_chain(self):
        rels = RelationshipSet([
            CorrelationRelationship("cpu", "blocking", 300),
            CorrelationRelationship("blocking", "aos", 300),
        ])
        assert rels.lock_key("cpu") == rels.lock_key("blocking") == rels.lock_key("aos") == "aos"

    def test_unrelated_type_is_its_own_key(self):
        rels = RelationshipSet([CorrelationRelationship("a", "b", 300)])
        assert rels.lock_key("zzz") == "zzz"
