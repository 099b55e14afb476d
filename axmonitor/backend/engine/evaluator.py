"""
engine/evaluator.py

ConditionEvaluator — maps (metric snapshot, rules) → rules that fire.

Guarantees:
  - Pure: no state, no I/O, safe to call concurrently for different snapshots
  - Never raises: missing metrics, NaN values and malformed conditions all
    evaluate to "not fired" (the latter with a logged warning)
  - Deterministic output order: severity descending, then rule id ascending
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping

from .models import And, Comparison, Condition, FiredRule, Rule

logger = logging.getLogger(__name__)


def match_condition(
    condition: Condition, metrics: Mapping[str, float]
) -> dict[str, float] | None:
    """
    Return the metric values that satisfied *condition*, or None if it does not hold.

    A referenced metric that is absent, or NaN on either side of a comparison,
    makes the comparison non-matching.
    """
    if isinstance(condition, Comparison):
        value = metrics.get(condition.metric)
        if value is None:
            return None
        if math.isnan(value) or math.isnan(condition.threshold):
            return None
        if not condition.operator.compare(value, condition.threshold):
            return None
        return {condition.metric: value}

    if isinstance(condition, And):
        left = match_condition(condition.left, metrics)
        if left is None:
            return None
        right = match_condition(condition.right, metrics)
        if right is None:
            return None
        return {**left, **right}

    raise TypeError(f"unsupported condition node {type(condition).__name__}")


class ConditionEvaluator:
    """Stateless; one instance can be shared by every environment."""

    def evaluate(
        self, metrics: Mapping[str, float], rules: Iterable[Rule]
    ) -> list[FiredRule]:
        fired: list[FiredRule] = []
        for rule in rules:
            if not rule.enabled:
                continue
            matched = self._safe_match(rule, metrics)
            if matched is not None:
                fired.append(FiredRule(rule=rule, matched_values=matched))

        fired.sort(key=lambda f: (-f.rule.severity.rank, f.rule.id))
        return fired

    @staticmethod
    def _safe_match(rule: Rule, metrics: Mapping[str, float]) -> dict[str, float] | None:
        if rule.condition is None:
            logger.warning("Rule %r has no condition — treated as not fired", rule.id)
            return None
        try:
            return match_condition(rule.condition, metrics)
        except Exception as exc:
            logger.warning(
                "Rule %r condition could not be evaluated (%s) — treated as not fired",
                rule.id, exc,
            )
            return None
