"""
engine/models.py

Rule and condition models shared by the evaluator, correlator, escalation
and remediation engines.

Operator / Comparison / And — tagged condition AST
CorrelationRule            — fires alerts
EscalationRule             — time-based notification steps for open alerts
RemediationRule            — guarded corrective actions
FiredRule                  — returned by ConditionEvaluator.evaluate()
"""

from __future__ import annotations

import operator as _op
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar

from ..models import Severity


# ---------------------------------------------------------------------------
# Condition AST
# ---------------------------------------------------------------------------

class Operator(str, Enum):
    GT = ">"
    GE = ">="
    LT = "<"
    LE = "<="
    EQ = "=="
    NE = "!="

    def compare(self, left: float, right: float) -> bool:
        return _COMPARATORS[self](left, right)


_COMPARATORS = {
    Operator.GT: _op.gt,
    Operator.GE: _op.ge,
    Operator.LT: _op.lt,
    Operator.LE: _op.le,
    Operator.EQ: _op.eq,
    Operator.NE: _op.ne,
}


@dataclass(frozen=True, slots=True)
class Comparison:
    metric: str
    operator: Operator
    threshold: float

    def __str__(self) -> str:
        return f"{self.metric} {self.operator.value} {self.threshold:g}"


@dataclass(frozen=True, slots=True)
class And:
    left: Condition
    right: Condition

    def __str__(self) -> str:
        return f"{self.left} AND {self.right}"


Condition = Comparison | And


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------

class RuleKind(str, Enum):
    CORRELATION = "correlation"
    ESCALATION  = "escalation"
    REMEDIATION = "remediation"


@dataclass
class Rule:
    """Fields common to every rule kind."""

    kind: ClassVar[RuleKind]

    id: str = ""
    name: str = ""
    description: str = ""
    severity: Severity = Severity.WARNING
    enabled: bool = True
    condition: Condition | None = None
    created_at: float = 0.0
    updated_at: float | None = None

    def validate(self) -> None:
        """Raise ValueError if the rule cannot be evaluated. Called by the rule store."""
        if not self.name:
            raise ValueError("rule name is required")

    def __repr__(self) -> str:
        return f"<{type(self).__name__}:{self.id} {self.severity.value} enabled={self.enabled}>"


@dataclass
class CorrelationRule(Rule):
    kind: ClassVar[RuleKind] = RuleKind.CORRELATION

    alert_type: str = ""
    """Type given to alerts from this rule; defaults to the rule id."""

    message: str = ""

    @property
    def effective_alert_type(self) -> str:
        return self.alert_type or self.id

    def validate(self) -> None:
        super().validate()
        if self.condition is None:
            raise ValueError("correlation rule needs a condition")


@dataclass(frozen=True)
class EscalationLevel:
    after_seconds: int
    action: str
    """Notification channel, e.g. 'teams', 'email', 'ticket', 'dashboard'."""

    recipients: str = ""


@dataclass
class EscalationRule(Rule):
    """
    Applies to Active alerts whose type matches alert_type (None = any type)
    and whose severity is at least `severity`. `condition`, when set, is
    checked against the alert's trigger metrics.
    """

    kind: ClassVar[RuleKind] = RuleKind.ESCALATION

    alert_type: str | None = None
    levels: list[EscalationLevel] = field(default_factory=list)

    def validate(self) -> None:
        super().validate()
        if not self.levels:
            raise ValueError("escalation rule needs at least one level")
        previous = -1
        for level in self.levels:
            if level.after_seconds < 0:
                raise ValueError("escalation level delay must be >= 0")
            if level.after_seconds <= previous:
                raise ValueError("escalation levels must be strictly ascending by after_seconds")
            if not level.action:
                raise ValueError("escalation level needs an action")
            previous = level.after_seconds


@dataclass(frozen=True)
class RemediationAction:
    name: str
    parameters: dict[str, Any] = field(default_factory=dict)
    continue_on_failure: bool = False


@dataclass
class RemediationRule(Rule):
    kind: ClassVar[RuleKind] = RuleKind.REMEDIATION

    actions: list[RemediationAction] = field(default_factory=list)
    cooldown_seconds: int = 900
    max_executions_per_window: int = 3
    rate_limit_window_seconds: int = 3600
    timeout_seconds: int = 300
    priority: int = 5
    """Higher runs first when several remediation rules fire in one cycle."""

    requires_confirmation: bool = False
    """Never executed automatically by the pipeline; manual trigger only."""

    def validate(self) -> None:
        super().validate()
        if self.condition is None:
            raise ValueError("remediation rule needs a condition")
        if not self.actions:
            raise ValueError("remediation rule needs at least one action")
        if self.cooldown_seconds < 0:
            raise ValueError("cooldown_seconds must be >= 0")
        if self.max_executions_per_window < 1:
            raise ValueError("max_executions_per_window must be >= 1")
        if self.rate_limit_window_seconds <= 0 or self.timeout_seconds <= 0:
            raise ValueError("rate-limit window and timeout must be positive")


# ---------------------------------------------------------------------------
# FiredRule
# ---------------------------------------------------------------------------

@dataclass(slots=True)
class FiredRule:
    """A rule whose condition held, plus the metric values that satisfied it."""

    rule: Rule
    matched_values: dict[str, float]

    def __repr__(self) -> str:
        return f"FiredRule({self.rule.id!r} values={self.matched_values!r})"
