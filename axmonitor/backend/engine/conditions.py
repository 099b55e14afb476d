"""
engine/conditions.py

Parsing and (de)serialisation of rule conditions.

Text form (what operators type into the dashboard):
    cpu >= 90 AND blocking_chains >= 2
    batch_backlog > 500
    aos_online == false

Dict form (what the rule store persists as JSON):
    {"metric": "cpu", "operator": ">=", "threshold": 90}
    {"and": [<condition>, <condition>]}

Anything that does not parse raises ConditionParseError, so malformed
conditions are rejected when a rule is created — never during evaluation.
"""

from __future__ import annotations

import re
from functools import reduce
from typing import Any

from ..errors import ConditionParseError
from .models import And, Comparison, Condition, Operator

_AND_SPLIT = re.compile(r"\s+AND\s+", re.IGNORECASE)
_COMPARISON = re.compile(
    r"""^\s*
        (?P<metric>[A-Za-z_][A-Za-z0-9_.]*)\s*
        (?P<op>>=|<=|==|!=|>|<)\s*
        (?P<literal>\S+)
        \s*$""",
    re.VERBOSE,
)


def parse_condition(text: str) -> Condition:
    """Parse the text form into an AST (left-nested And for multiple clauses)."""
    if not isinstance(text, str) or not text.strip():
        raise ConditionParseError("condition is empty")

    clauses = _AND_SPLIT.split(text.strip())
    comparisons: list[Condition] = [_parse_comparison(c) for c in clauses]
    return reduce(And, comparisons)


def _parse_comparison(clause: str) -> Comparison:
    m = _COMPARISON.match(clause)
    if m is None:
        raise ConditionParseError(f"cannot parse comparison {clause!r}")
    return Comparison(
        metric=m.group("metric"),
        operator=Operator(m.group("op")),
        threshold=_parse_literal(m.group("literal")),
    )


def _parse_literal(literal: str) -> float:
    lowered = literal.lower()
    if lowered == "true":
        return 1.0
    if lowered == "false":
        return 0.0
    try:
        return float(literal)
    except ValueError:
        raise ConditionParseError(f"threshold {literal!r} is not a number") from None


# ---------------------------------------------------------------------------
# Dict form
# ---------------------------------------------------------------------------

def condition_to_dict(condition: Condition) -> dict[str, Any]:
    if isinstance(condition, Comparison):
        return {
            "metric": condition.metric,
            "operator": condition.operator.value,
            "threshold": condition.threshold,
        }
    return {"and": [condition_to_dict(condition.left), condition_to_dict(condition.right)]}


def condition_from_dict(data: Any) -> Condition:
    if not isinstance(data, dict):
        raise ConditionParseError(f"condition must be an object, got {type(data).__name__}")

    if "and" in data:
        parts = data["and"]
        if not isinstance(parts, list) or len(parts) < 2:
            raise ConditionParseError("'and' needs a list of at least two conditions")
        return reduce(And, [condition_from_dict(p) for p in parts])

    try:
        metric = data["metric"]
        op = Operator(data["operator"])
        threshold = data["threshold"]
    except KeyError as exc:
        raise ConditionParseError(f"comparison is missing {exc.args[0]!r}") from None
    except ValueError:
        raise ConditionParseError(f"unknown operator {data.get('operator')!r}") from None

    if not isinstance(metric, str) or not metric:
        raise ConditionParseError("metric name must be a non-empty string")
    if isinstance(threshold, bool):
        threshold = 1.0 if threshold else 0.0
    if not isinstance(threshold, (int, float)):
        raise ConditionParseError(f"threshold {threshold!r} is not a number")
    return Comparison(metric=metric, operator=op, threshold=float(threshold))


def coerce_condition(value: Any) -> Condition:
    """Accept an AST, the text form or the dict form."""
    if isinstance(value, (Comparison, And)):
        return value
    if isinstance(value, str):
        return parse_condition(value)
    return condition_from_dict(value)
