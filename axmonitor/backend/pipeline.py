"""
backend/pipeline.py

EvaluationPipeline — one monitored environment's evaluation cycle:

    snapshot → condition evaluator → correlator → escalation → remediation

run_cycle() performs a single pass; run() repeats it every
EVALUATION_INTERVAL_SECONDS until the shutdown event is set. Each
environment gets its own pipeline, task, database and engines.

A failing snapshot source, or an active maintenance window, skips the
whole cycle. Failures inside a stage are logged and the remaining stages
still run.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field

from .api.serializers import alert_to_dict, escalation_to_dict, incident_to_dict, remediation_to_dict
from .api.ws_manager import WebSocketManager, ws_manager
from .config import settings
from .correlation import AlertCorrelator
from .engine import ConditionEvaluator, RuleKind
from .escalation import EscalationEngine, EscalationExecution
from .interfaces import MetricSnapshotSource
from .maintenance import MaintenanceGate
from .metrics import METRICS
from .models import Alert, Incident, MetricSnapshot
from .remediation import RemediationEngine, RemediationExecution
from .storage.rules import RuleRepository

logger = logging.getLogger(__name__)


@dataclass
class CycleReport:
    environment: str
    started_at: float
    skipped: str | None = None
    """Why the cycle did nothing ("snapshot unavailable", "maintenance"), else None."""

    fired_rules: list[str] = field(default_factory=list)
    alerts_created: list[Alert] = field(default_factory=list)
    incidents: list[Incident] = field(default_factory=list)
    escalations: list[EscalationExecution] = field(default_factory=list)
    remediations: list[RemediationExecution] = field(default_factory=list)
    duration_seconds: float = 0.0


class EvaluationPipeline:
    def __init__(
        self,
        environment: str,
        source: MetricSnapshotSource,
        rules: RuleRepository,
        correlator: AlertCorrelator,
        escalation: EscalationEngine,
        remediation: RemediationEngine,
        maintenance: MaintenanceGate,
        evaluator: ConditionEvaluator | None = None,
        broadcaster: WebSocketManager | None = None,
        snapshot_timeout: float | None = None,
        interval: float | None = None,
    ) -> None:
        self.environment = environment
        self._source = source
        self._rules = rules
        self._correlator = correlator
        self._escalation = escalation
        self._remediation = remediation
        self._maintenance = maintenance
        self._evaluator = evaluator or ConditionEvaluator()
        self._ws = broadcaster or ws_manager
        self._snapshot_timeout = snapshot_timeout or settings.SNAPSHOT_TIMEOUT_SECONDS
        self._interval = interval or settings.EVALUATION_INTERVAL_SECONDS
        self.last_report: CycleReport | None = None

    # ------------------------------------------------------------------
    # One cycle
    # ------------------------------------------------------------------

    async def run_cycle(self, now: float | None = None) -> CycleReport:
        now = now if now is not None else time.time()
        started = time.monotonic()
        report = CycleReport(environment=self.environment, started_at=now)

        snapshot = await self._fetch_snapshot(now)
        if snapshot is None:
            report.skipped = "snapshot unavailable"
        elif self._maintenance.is_suppressed(now):
            METRICS.cycles_skipped.inc()
            logger.info("[%s] maintenance window active — cycle skipped", self.environment)
            report.skipped = "maintenance"
        else:
            METRICS.cycles_run.inc()
            await self._correlate(snapshot, now, report)
            await self._escalate(now, report)
            await self._remediate(snapshot, now, report)

        report.duration_seconds = time.monotonic() - started
        self.last_report = report
        if report.skipped is None:
            logger.info(
                "[%s] cycle done in %.2fs — fired=%d new_alerts=%d escalations=%d remediations=%d",
                self.environment, report.duration_seconds, len(report.fired_rules),
                len(report.alerts_created), len(report.escalations), len(report.remediations),
            )
        return report

    async def _fetch_snapshot(self, now: float) -> MetricSnapshot | None:
        try:
            async with asyncio.timeout(self._snapshot_timeout):
                raw = await self._source.get_current_metrics()
            return MetricSnapshot.from_raw(raw, captured_at=now)
        except asyncio.TimeoutError:
            reason = f"timed out after {self._snapshot_timeout:g}s"
        except Exception as exc:
            reason = str(exc) or type(exc).__name__

        METRICS.snapshot_failures.inc()
        METRICS.cycles_skipped.inc()
        logger.warning("[%s] metric snapshot unavailable (%s) — cycle skipped", self.environment, reason)
        return None

    async def _correlate(self, snapshot: MetricSnapshot, now: float, report: CycleReport) -> None:
        fired = self._evaluator.evaluate(snapshot, self._rules.list_enabled(RuleKind.CORRELATION))
        METRICS.rules_fired.inc(len(fired))
        report.fired_rules = [f.rule.id for f in fired]

        for firing in fired:
            try:
                alert = await self._correlator.record_firing(firing.rule, firing.matched_values, now)
                if alert.incident_id is not None:
                    continue
                incident = await self._correlator.correlate(alert, now)
            except Exception:
                logger.exception("[%s] correlation of rule %s failed", self.environment, firing.rule.id)
                continue

            report.alerts_created.append(alert)
            report.incidents.append(incident)
            await self._ws.broadcast("alerts", self.environment, alert_to_dict(alert))
            await self._ws.broadcast("incidents", self.environment, incident_to_dict(incident))

    async def _escalate(self, now: float, report: CycleReport) -> None:
        try:
            report.escalations = await self._escalation.evaluate(now)
        except Exception:
            logger.exception("[%s] escalation tick failed", self.environment)
            return
        for record in report.escalations:
            await self._ws.broadcast("escalations", self.environment, escalation_to_dict(record))

    async def _remediate(self, snapshot: MetricSnapshot, now: float, report: CycleReport) -> None:
        fired = self._remediation.evaluate_conditions(snapshot)
        for firing in fired:
            if firing.rule.requires_confirmation:
                logger.info(
                    "[%s] remediation %s needs confirmation; not run automatically",
                    self.environment,
                    firing.rule.id,
                )
        fired = [f for f in fired if not f.rule.requires_confirmation]
        if not fired:
            return
        results = await asyncio.gather(
            *(self._remediation.execute(f.rule.id, f.matched_values, now=now) for f in fired),
            return_exceptions=True,
        )
        for firing, result in zip(fired, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                logger.warning(
                    "[%s] remediation %s not executed: %s", self.environment, firing.rule.id, result
                )
                continue
            report.remediations.append(result)
            await self._ws.broadcast("remediations", self.environment, remediation_to_dict(result))

    # ------------------------------------------------------------------
    # Periodic loop
    # ------------------------------------------------------------------

    async def run(self, shutdown_event: asyncio.Event) -> None:
        logger.info(
            "[%s] evaluation loop started (every %ss)", self.environment, self._interval
        )
        while not shutdown_event.is_set():
            try:
                await self.run_cycle()
            except Exception:
                logger.exception("[%s] evaluation cycle crashed", self.environment)
            try:
                await asyncio.wait_for(shutdown_event.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                continue
        logger.info("[%s] evaluation loop exiting", self.environment)
