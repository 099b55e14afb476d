"""engine/__init__.py"""
from .conditions import coerce_condition, parse_condition
from .evaluator import ConditionEvaluator, match_condition
from .models import (
    And,
    Comparison,
    CorrelationRule,
    EscalationLevel,
    EscalationRule,
    FiredRule,
    Operator,
    RemediationAction,
    RemediationRule,
    Rule,
    RuleKind,
)

__all__ = [
    "ConditionEvaluator",
    "match_condition",
    "parse_condition",
    "coerce_condition",
    "And",
    "Comparison",
    "Operator",
    "Rule",
    "RuleKind",
    "CorrelationRule",
    "EscalationLevel",
    "EscalationRule",
    "RemediationAction",
    "RemediationRule",
    "FiredRule",
]
