"""
storage/rules.py

Rule store for the three rule kinds. One table; the kind-specific fields
(alert type, escalation levels, remediation actions and guards) live in a
JSON `config` column, the condition in a JSON `condition` column.

The engines read the store on every cycle, so edits take effect on the next
evaluation without a restart.
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from typing import Any

from ..engine.conditions import condition_from_dict, condition_to_dict
from ..engine.models import (
    CorrelationRule,
    EscalationLevel,
    EscalationRule,
    RemediationAction,
    RemediationRule,
    Rule,
    RuleKind,
)
from ..errors import ConditionParseError, RuleNotFound
from ..models import Severity
from .database import Database

logger = logging.getLogger(__name__)

_RULE_TYPES: dict[RuleKind, type[Rule]] = {
    RuleKind.CORRELATION: CorrelationRule,
    RuleKind.ESCALATION:  EscalationRule,
    RuleKind.REMEDIATION: RemediationRule,
}

_ID_PREFIX = {
    RuleKind.CORRELATION: "CR",
    RuleKind.ESCALATION:  "ESC",
    RuleKind.REMEDIATION: "REM",
}


class RuleRepository:
    def __init__(self, db: Database) -> None:
        self._db = db

    # ==================================================================
    # Write methods
    # ==================================================================

    def create(self, rule: Rule, now: float | None = None) -> Rule:
        """
        Validate and insert a rule. Assigns `<PREFIX>_<hex>` when the id is blank.

        Raises ValueError for invalid rules or a duplicate id.
        """
        rule.validate()
        if not rule.id:
            rule.id = f"{_ID_PREFIX[rule.kind]}_{uuid.uuid4().hex[:12]}"
        rule.created_at = now if now is not None else time.time()
        rule.updated_at = None

        if self._db.execute("SELECT 1 FROM rules WHERE id = ?", (rule.id,)).fetchone():
            raise ValueError(f"rule id {rule.id!r} already exists")

        self._db.execute(
            """
            INSERT INTO rules (
                id, kind, name, description, severity, enabled,
                condition, config, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                rule.id,
                rule.kind.value,
                rule.name,
                rule.description,
                rule.severity.value,
                int(rule.enabled),
                _dump_condition(rule),
                json.dumps(_config_of(rule)),
                rule.created_at,
                rule.updated_at,
            ),
        )
        self._db.commit()
        logger.info("Rule created: %r", rule)
        return rule

    def update(self, rule: Rule, now: float | None = None) -> Rule:
        """Replace a stored rule. Raises RuleNotFound if the id/kind pair is unknown."""
        rule.validate()
        existing = self._db.execute(
            "SELECT created_at FROM rules WHERE id = ? AND kind = ?",
            (rule.id, rule.kind.value),
        ).fetchone()
        if existing is None:
            raise RuleNotFound(rule.id)

        rule.created_at = existing["created_at"]
        rule.updated_at = now if now is not None else time.time()
        self._db.execute(
            """
            UPDATE rules SET
                name = ?, description = ?, severity = ?, enabled = ?,
                condition = ?, config = ?, updated_at = ?
            WHERE id = ? AND kind = ?
            """,
            (
                rule.name,
                rule.description,
                rule.severity.value,
                int(rule.enabled),
                _dump_condition(rule),
                json.dumps(_config_of(rule)),
                rule.updated_at,
                rule.id,
                rule.kind.value,
            ),
        )
        self._db.commit()
        logger.info("Rule updated: %r", rule)
        return rule

    def set_enabled(self, kind: RuleKind, rule_id: str, enabled: bool) -> None:
        cur = self._db.execute(
            "UPDATE rules SET enabled = ?, updated_at = ? WHERE id = ? AND kind = ?",
            (int(enabled), time.time(), rule_id, kind.value),
        )
        if cur.rowcount == 0:
            raise RuleNotFound(rule_id)
        self._db.commit()

    def delete(self, kind: RuleKind, rule_id: str) -> None:
        cur = self._db.execute(
            "DELETE FROM rules WHERE id = ? AND kind = ?", (rule_id, kind.value)
        )
        if cur.rowcount == 0:
            raise RuleNotFound(rule_id)
        self._db.commit()
        logger.info("Rule deleted: %s/%s", kind.value, rule_id)

    # ==================================================================
    # Read methods
    # ==================================================================

    def get_by_id(self, kind: RuleKind, rule_id: str) -> Rule | None:
        row = self._db.execute(
            "SELECT * FROM rules WHERE id = ? AND kind = ?", (rule_id, kind.value)
        ).fetchone()
        return _rule_from_row(row) if row else None

    def list_rules(self, kind: RuleKind) -> list[Rule]:
        rows = self._db.execute(
            "SELECT * FROM rules WHERE kind = ? ORDER BY id", (kind.value,)
        ).fetchall()
        return _rules_from_rows(rows)

    def list_enabled(self, kind: RuleKind) -> list[Rule]:
        """Enabled rules of one kind; rows that no longer parse are skipped."""
        rows = self._db.execute(
            "SELECT * FROM rules WHERE kind = ? AND enabled = 1 ORDER BY id",
            (kind.value,),
        ).fetchall()
        return _rules_from_rows(rows)

    def count_by_kind(self) -> dict[str, int]:
        rows = self._db.execute(
            "SELECT kind, COUNT(*) FROM rules GROUP BY kind"
        ).fetchall()
        return {r[0]: r[1] for r in rows}


# ---------------------------------------------------------------------------
# Row <-> model helpers
# ---------------------------------------------------------------------------

def _dump_condition(rule: Rule) -> str | None:
    if rule.condition is None:
        return None
    return json.dumps(condition_to_dict(rule.condition))


def _config_of(rule: Rule) -> dict[str, Any]:
    if isinstance(rule, CorrelationRule):
        return {"alert_type": rule.alert_type, "message": rule.message}
    if isinstance(rule, EscalationRule):
        return {
            "alert_type": rule.alert_type,
            "levels": [
                {"after_seconds": lv.after_seconds, "action": lv.action, "recipients": lv.recipients}
                for lv in rule.levels
            ],
        }
    if isinstance(rule, RemediationRule):
        return {
            "actions": [
                {
                    "name": a.name,
                    "parameters": a.parameters,
                    "continue_on_failure": a.continue_on_failure,
                }
                for a in rule.actions
            ],
            "cooldown_seconds": rule.cooldown_seconds,
            "max_executions_per_window": rule.max_executions_per_window,
            "rate_limit_window_seconds": rule.rate_limit_window_seconds,
            "timeout_seconds": rule.timeout_seconds,
            "priority": rule.priority,
            "requires_confirmation": rule.requires_confirmation,
        }
    return {}


def _rules_from_rows(rows: list[Any]) -> list[Rule]:
    rules = []
    for row in rows:
        rule = _rule_from_row(row)
        if rule is not None:
            rules.append(rule)
    return rules


def _rule_from_row(row: Any) -> Rule | None:
    """Rebuild a rule; returns None (with a warning) if the stored row is malformed."""
    try:
        kind = RuleKind(row["kind"])
        config = json.loads(row["config"] or "{}")
        condition = (
            condition_from_dict(json.loads(row["condition"]))
            if row["condition"] else None
        )
        common = dict(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            severity=Severity.parse(row["severity"]),
            enabled=bool(row["enabled"]),
            condition=condition,
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

        if kind is RuleKind.CORRELATION:
            return CorrelationRule(
                **common,
                alert_type=config.get("alert_type", ""),
                message=config.get("message", ""),
            )
        if kind is RuleKind.ESCALATION:
            return EscalationRule(
                **common,
                alert_type=config.get("alert_type"),
                levels=[EscalationLevel(**lv) for lv in config.get("levels", [])],
            )
        return RemediationRule(
            **common,
            actions=[RemediationAction(**a) for a in config.get("actions", [])],
            cooldown_seconds=config.get("cooldown_seconds", 900),
            max_executions_per_window=config.get("max_executions_per_window", 3),
            rate_limit_window_seconds=config.get("rate_limit_window_seconds", 3600),
            timeout_seconds=config.get("timeout_seconds", 300),
            priority=config.get("priority", 5),
            requires_confirmation=bool(config.get("requires_confirmation", False)),
        )
    except (ConditionParseError, ValueError, TypeError, KeyError) as exc:
        logger.warning("Skipping malformed rule %r: %s", row["id"], exc)
        return None
