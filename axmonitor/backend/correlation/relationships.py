"""
correlation/relationships.py

Cross-type correlation: alerts of two different types that belong to the
same incident when detected close together (e.g. a CPU spike and a blocking
chain on the same SQL instance).

Config format, one entry per pair:
    cpu_high+blocking_chain_high          window = CORRELATION_WINDOW_SECONDS
    aos_down+batch_backlog_high@600       explicit window in seconds
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CorrelationRelationship:
    type_a: str
    type_b: str
    window_seconds: float

    @classmethod
    def parse(cls, text: str, default_window: float) -> CorrelationRelationship:
        body, _, window = text.strip().partition("@")
        a, sep, b = body.partition("+")
        if not sep or not a.strip() or not b.strip():
            raise ValueError(f"expected 'type_a+type_b[@seconds]', got {text!r}")
        seconds = float(window) if window else default_window
        if seconds <= 0:
            raise ValueError(f"relationship window must be positive in {text!r}")
        return cls(a.strip(), b.strip(), seconds)

    def links(self, first: str, second: str) -> bool:
        return {first, second} == {self.type_a, self.type_b}

    def __str__(self) -> str:
        return f"{self.type_a}+{self.type_b}@{self.window_seconds:g}"


class RelationshipSet:
    """
    All configured relationships, plus the lock key for each alert type.

    Types connected through any chain of relationships share one lock key, so
    two related alerts arriving at the same moment are matched one after the
    other instead of each opening its own incident.
    """

    def __init__(self, relationships: Iterable[CorrelationRelationship] = ()) -> None:
        self._relationships = list(relationships)
        self._parent: dict[str, str] = {}
        for rel in self._relationships:
            self._union(rel.type_a, rel.type_b)

    @classmethod
    def from_config(cls, entries: Iterable[str], default_window: float) -> RelationshipSet:
        parsed = []
        for entry in entries:
            try:
                parsed.append(CorrelationRelationship.parse(entry, default_window))
            except ValueError as exc:
                logger.warning("Ignoring correlation relationship: %s", exc)
        return cls(parsed)

    def related_within(self, type_a: str, type_b: str, gap_seconds: float) -> CorrelationRelationship | None:
        """The relationship linking two types when their alerts are at most its window apart."""
        for rel in self._relationships:
            if rel.links(type_a, type_b) and abs(gap_seconds) <= rel.window_seconds:
                return rel
        return None

    def lock_key(self, alert_type: str) -> str:
        return self._find(alert_type)

    # -- union-find over alert types --

    def _find(self, item: str) -> str:
        root = item
        while self._parent.get(root, root) != root:
            root = self._parent[root]
        return root

    def _union(self, a: str, b: str) -> None:
        ra, rb = self._find(a), self._find(b)
        if ra != rb:
            # Smallest name becomes the root so keys are stable across restarts
            low, high = sorted((ra, rb))
            self._parent[high] = low
            self._parent.setdefault(low, low)

    def __len__(self) -> int:
        return len(self._relationships)

    def __iter__(self):
        return iter(self._relationships)
