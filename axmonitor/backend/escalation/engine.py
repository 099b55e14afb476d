"""
escalation/engine.py

EscalationEngine — walks Active alerts against escalation rules and dispatches
the level each alert has reached.

Per tick, per (alert, rule) pair, at most ONE level is dispatched: the highest
one whose delay has elapsed. Skipped lower levels are not back-filled. A level
that already has a successful record is never dispatched again; a failed
dispatch is retried on the next tick.

Alerts are processed concurrently; everything for one alert runs
sequentially under that alert's lock, and a record is persisted before the
next rule is looked at.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Any

from ..config import settings
from ..engine.evaluator import match_condition
from ..engine.models import EscalationLevel, EscalationRule, RuleKind
from ..interfaces import DispatchResult, NotificationSink
from ..locks import KeyedLock
from ..metrics import METRICS
from ..models import Alert, AlertStatus
from .models import EscalationExecution

if TYPE_CHECKING:
    from ..storage.executions import ExecutionRepository
    from ..storage.repository import AlertRepository
    from ..storage.rules import RuleRepository

logger = logging.getLogger(__name__)


class EscalationEngine:
    def __init__(
        self,
        rules: RuleRepository,
        alerts: AlertRepository,
        executions: ExecutionRepository,
        sink: NotificationSink,
        dispatch_timeout: float | None = None,
    ) -> None:
        self._rules = rules
        self._alerts = alerts
        self._executions = executions
        self._sink = sink
        self._timeout = (
            dispatch_timeout if dispatch_timeout is not None
            else settings.NOTIFICATION_TIMEOUT_SECONDS
        )
        self._alert_locks = KeyedLock("escalation-alert")

    async def evaluate(self, now: float | None = None) -> list[EscalationExecution]:
        """One escalation tick. Returns the records written during it."""
        now = now if now is not None else time.time()
        rules: list[EscalationRule] = self._rules.list_enabled(RuleKind.ESCALATION)
        if not rules:
            return []

        active = self._alerts.list_active_alerts()
        results = await asyncio.gather(
            *(self._escalate_alert(alert, rules, now) for alert in active)
        )
        return [record for batch in results for record in batch]

    async def _escalate_alert(
        self, alert: Alert, rules: list[EscalationRule], now: float
    ) -> list[EscalationExecution]:
        records: list[EscalationExecution] = []
        async with self._alert_locks.hold(alert.id):
            elapsed = now - alert.timestamp
            for rule in rules:
                if not _applies(rule, alert):
                    continue
                due = _due_level(rule.levels, elapsed)
                if due is None:
                    continue
                index, level = due
                if self._executions.has_successful_escalation(alert.id, rule.id, index):
                    continue
                # Status may change while an earlier dispatch is awaited
                current = self._alerts.get_alert(alert.id)
                if current is None or current.status is not AlertStatus.ACTIVE:
                    logger.debug("Escalation of %s stopped: no longer Active", alert.id)
                    break
                record = await self._dispatch(current, rule, index, level, elapsed, now)
                if self._executions.save_escalation(record):
                    records.append(record)
        return records

    async def _dispatch(
        self,
        alert: Alert,
        rule: EscalationRule,
        index: int,
        level: EscalationLevel,
        elapsed: float,
        now: float,
    ) -> EscalationExecution:
        payload = _payload(alert, rule, index, level, elapsed)
        try:
            result = await asyncio.wait_for(
                self._sink.dispatch(level.action, payload), timeout=self._timeout
            )
        except asyncio.TimeoutError:
            result = DispatchResult(False, detail=f"timed out after {self._timeout:g}s")
        except Exception as exc:
            logger.warning("Escalation dispatch via %s failed for %s: %s", level.action, alert.id, exc)
            result = DispatchResult(False, detail=f"{type(exc).__name__}: {exc}")

        if result.success:
            METRICS.escalations_dispatched.inc()
            logger.info(
                "Escalated %s to level %d via %s (rule %s, %.0fs elapsed)",
                alert.id, index, level.action, rule.id, elapsed,
            )
        else:
            METRICS.escalations_failed.inc()
            logger.warning(
                "Escalation of %s level %d via %s failed: %s",
                alert.id, index, level.action, result.detail,
            )

        return EscalationExecution(
            alert_id=alert.id,
            rule_id=rule.id,
            level=index,
            after_seconds=level.after_seconds,
            elapsed_seconds=elapsed,
            action=level.action,
            recipients=level.recipients,
            success=result.success,
            reference_id=result.reference_id,
            detail=result.detail,
            executed_at=now,
        )

    def history_for_alert(self, alert_id: str) -> list[EscalationExecution]:
        return self._executions.get_escalations(alert_id=alert_id)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _applies(rule: EscalationRule, alert: Alert) -> bool:
    if rule.alert_type and rule.alert_type != alert.type:
        return False
    if alert.severity.rank < rule.severity.rank:
        return False
    if rule.condition is not None:
        try:
            return match_condition(rule.condition, alert.metrics) is not None
        except Exception:
            logger.warning("Escalation rule %s condition failed on %s", rule.id, alert.id, exc_info=True)
            return False
    return True


def _due_level(levels: list[EscalationLevel], elapsed: float) -> tuple[int, EscalationLevel] | None:
    """Highest level (1-based index) whose delay has elapsed."""
    due = None
    for index, level in enumerate(levels, start=1):
        if level.after_seconds <= elapsed:
            due = (index, level)
    return due


def _payload(
    alert: Alert, rule: EscalationRule, index: int, level: EscalationLevel, elapsed: float
) -> dict[str, Any]:
    minutes = int(elapsed // 60)
    text = (
        f"Alert escalation (level {index})\n"
        f"Alert: {alert.id}\n"
        f"Type: {alert.type}\n"
        f"Severity: {alert.severity.value}\n"
        f"Message: {alert.message}\n"
        f"Minutes since alert: {minutes}\n"
        f"Escalation rule: {rule.name}"
    )
    return {
        "kind": "escalation",
        "alert_id": alert.id,
        "alert_type": alert.type,
        "severity": alert.severity.value,
        "message": alert.message,
        "incident_id": alert.incident_id,
        "rule_id": rule.id,
        "rule_name": rule.name,
        "level": index,
        "elapsed_seconds": round(elapsed, 1),
        "recipients": level.recipients,
        "text": text,
    }
