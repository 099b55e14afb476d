"""
storage/executions.py

ExecutionRepository — append-only audit trail of escalation dispatches and
remediation executions.

The remediation guards read their state from here:
  most_recent_execution()  → cooldown
  count_executions_since() → rate limit
Only attempted records (Running / Success / Failed) are considered; skip
records are audit-only.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from ..escalation.models import EscalationExecution
from ..remediation.models import ATTEMPTED_OUTCOMES, RemediationExecution, RemediationOutcome
from .database import Database

logger = logging.getLogger(__name__)

_ATTEMPTED_SQL = "outcome IN (%s)" % ", ".join(
    sorted(f"'{outcome.value}'" for outcome in ATTEMPTED_OUTCOMES)
)


class ExecutionRepository:
    def __init__(self, db: Database) -> None:
        self._db = db

    # ==================================================================
    # Escalation
    # ==================================================================

    def save_escalation(self, execution: EscalationExecution) -> bool:
        """
        Append an escalation record.

        Returns False when the record was discarded because a successful
        record for the same (alert, rule, level) already exists.
        """
        cur = self._db.execute(
            """
            INSERT OR IGNORE INTO escalation_executions (
                id, alert_id, rule_id, level, after_seconds, elapsed_seconds,
                action, recipients, success, reference_id, detail, executed_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                execution.id,
                execution.alert_id,
                execution.rule_id,
                execution.level,
                execution.after_seconds,
                execution.elapsed_seconds,
                execution.action,
                execution.recipients,
                int(execution.success),
                execution.reference_id,
                execution.detail,
                execution.executed_at,
            ),
        )
        self._db.commit()
        if cur.rowcount == 0:
            logger.info(
                "Discarded duplicate escalation success alert=%s rule=%s level=%d",
                execution.alert_id, execution.rule_id, execution.level,
            )
            return False
        return True

    def has_successful_escalation(self, alert_id: str, rule_id: str, level: int) -> bool:
        row = self._db.execute(
            """
            SELECT 1 FROM escalation_executions
            WHERE alert_id = ? AND rule_id = ? AND level = ? AND success = 1
            LIMIT 1
            """,
            (alert_id, rule_id, level),
        ).fetchone()
        return row is not None

    def get_escalations(self, alert_id: str | None = None, limit: int = 100) -> list[EscalationExecution]:
        if alert_id is None:
            rows = self._db.execute(
                "SELECT * FROM escalation_executions ORDER BY executed_at DESC, rowid DESC LIMIT ?",
                (min(limit, 500),),
            ).fetchall()
        else:
            rows = self._db.execute(
                """
                SELECT * FROM escalation_executions
                WHERE alert_id = ?
                ORDER BY executed_at, rowid
                """,
                (alert_id,),
            ).fetchall()
        return [_row_to_escalation(r) for r in rows]

    # ==================================================================
    # Remediation
    # ==================================================================

    def save_remediation(self, execution: RemediationExecution) -> None:
        self._db.execute(
            """
            INSERT INTO remediation_executions (
                id, rule_id, trigger_data, start_time, completion_time,
                outcome, detail, actions_executed
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                execution.id,
                execution.rule_id,
                json.dumps(execution.trigger_data, default=str),
                execution.start_time,
                execution.completion_time,
                execution.outcome.value,
                execution.detail,
                json.dumps(execution.actions_executed, default=str),
            ),
        )
        self._db.commit()

    def finalize_remediation(self, execution: RemediationExecution) -> None:
        """Write the terminal state of a Running record. Terminal records never change."""
        self._db.execute(
            """
            UPDATE remediation_executions SET
                completion_time = ?, outcome = ?, detail = ?, actions_executed = ?
            WHERE id = ? AND outcome = ?
            """,
            (
                execution.completion_time,
                execution.outcome.value,
                execution.detail,
                json.dumps(execution.actions_executed, default=str),
                execution.id,
                RemediationOutcome.RUNNING.value,
            ),
        )
        self._db.commit()

    def get_remediation(self, execution_id: str) -> RemediationExecution | None:
        row = self._db.execute(
            "SELECT * FROM remediation_executions WHERE id = ?", (execution_id,)
        ).fetchone()
        return _row_to_remediation(row) if row else None

    def most_recent_execution(self, rule_id: str) -> RemediationExecution | None:
        """Latest attempted execution of a rule, by completion (or start) time."""
        row = self._db.execute(
            f"""
            SELECT * FROM remediation_executions
            WHERE rule_id = ? AND {_ATTEMPTED_SQL}
            ORDER BY COALESCE(completion_time, start_time) DESC, rowid DESC
            LIMIT 1
            """,
            (rule_id,),
        ).fetchone()
        return _row_to_remediation(row) if row else None

    def count_executions_since(self, rule_id: str, since: float) -> int:
        row = self._db.execute(
            f"""
            SELECT COUNT(*) FROM remediation_executions
            WHERE rule_id = ? AND start_time >= ? AND {_ATTEMPTED_SQL}
            """,
            (rule_id, since),
        ).fetchone()
        return row[0] if row else 0

    def get_remediation_history(
        self, rule_id: str | None = None, limit: int = 100
    ) -> list[RemediationExecution]:
        """Newest first."""
        if rule_id is None:
            rows = self._db.execute(
                "SELECT * FROM remediation_executions ORDER BY start_time DESC, rowid DESC LIMIT ?",
                (limit,),
            ).fetchall()
        else:
            rows = self._db.execute(
                """
                SELECT * FROM remediation_executions
                WHERE rule_id = ?
                ORDER BY start_time DESC, rowid DESC
                LIMIT ?
                """,
                (rule_id, limit),
            ).fetchall()
        return [_row_to_remediation(r) for r in rows]

    def list_running_remediations(self) -> list[RemediationExecution]:
        rows = self._db.execute(
            "SELECT * FROM remediation_executions WHERE outcome = ? ORDER BY start_time",
            (RemediationOutcome.RUNNING.value,),
        ).fetchall()
        return [_row_to_remediation(r) for r in rows]

    def get_outcome_counts(self) -> dict[str, int]:
        rows = self._db.execute(
            "SELECT outcome, COUNT(*) FROM remediation_executions GROUP BY outcome"
        ).fetchall()
        return {r[0]: r[1] for r in rows}


# ---------------------------------------------------------------------------
# Row helpers
# ---------------------------------------------------------------------------

def _row_to_escalation(row: Any) -> EscalationExecution:
    return EscalationExecution(
        id=row["id"],
        alert_id=row["alert_id"],
        rule_id=row["rule_id"],
        level=row["level"],
        after_seconds=row["after_seconds"],
        elapsed_seconds=row["elapsed_seconds"],
        action=row["action"],
        recipients=row["recipients"],
        success=bool(row["success"]),
        reference_id=row["reference_id"],
        detail=row["detail"],
        executed_at=row["executed_at"],
    )


def _row_to_remediation(row: Any) -> RemediationExecution:
    try:
        trigger = json.loads(row["trigger_data"] or "{}")
        actions = json.loads(row["actions_executed"] or "[]")
    except (TypeError, json.JSONDecodeError):
        logger.warning("Execution %s has unreadable JSON columns", row["id"])
        trigger, actions = {}, []
    return RemediationExecution(
        id=row["id"],
        rule_id=row["rule_id"],
        trigger_data=trigger,
        start_time=row["start_time"],
        completion_time=row["completion_time"],
        outcome=RemediationOutcome(row["outcome"]),
        detail=row["detail"],
        actions_executed=actions,
    )
