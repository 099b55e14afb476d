"""
tests/test_pipeline.py

Tests for pipeline.py — the per-environment evaluation cycle, wired through
MonitoringServices.build() against an in-memory database.
"""

from __future__ import annotations

from typing import Any
from unittest.mock import patch

import pytest

from axmonitor.backend.engine import (
    CorrelationRule,
    EscalationLevel,
    EscalationRule,
    RemediationAction,
    RemediationRule,
    parse_condition,
)
from axmonitor.backend.interfaces import DispatchResult, MetricSnapshotSource, NotificationSink
from axmonitor.backend.maintenance import MaintenanceWindow
from axmonitor.backend.metrics import METRICS
from axmonitor.backend.models import AlertStatus, IncidentStatus
from axmonitor.backend.remediation import RemediationOutcome
from axmonitor.backend.services import MonitoringServices
from axmonitor.backend.sources import DryRunActionExecutor, StaticMetricSource

T0 = 1_700_000_000.0


class RecordingSink(NotificationSink):
    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def dispatch(self, channel: str, payload: dict[str, Any]) -> DispatchResult:
        self.calls.append((channel, payload))
        return DispatchResult(True, reference_id=f"N-{len(self.calls)}")


class FailingSource(MetricSnapshotSource):
    async def get_current_metrics(self):
        raise ConnectionError("AOS unreachable")


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def reset_metrics():
    METRICS.reset_all()
    yield
    METRICS.reset_all()


@pytest.fixture
def source():
    return StaticMetricSource({"cpu": 95, "blocking_chains": 12})


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def executor():
    return DryRunActionExecutor()


@pytest.fixture
def services(source, sink, executor):
    svc = MonitoringServices.build("TST", source, sink=sink, executor=executor, db_path=":memory:")
    svc.rules.create(CorrelationRule(
        id="CR_cpu", name="SQL CPU high", condition=parse_condition("cpu > 90"), alert_type="cpu_high",
    ))
    svc.rules.create(EscalationRule(
        id="ER_all", name="Notify dashboard", levels=[EscalationLevel(0, "dashboard")],
    ))
    svc.rules.create(RemediationRule(
        id="RR_blocking", name="Kill head blocker",
        condition=parse_condition("blocking_chains > 10"),
        actions=[RemediationAction("kill_head_blocker", {"min_wait_seconds": 60})],
    ))
    yield svc
    svc.close()


# ---------------------------------------------------------------------------
# Full cycle
# ---------------------------------------------------------------------------

class TestCycle:

    @pytest.mark.asyncio
    async def test_cycle_runs_every_stage(self, services, sink, executor):
        report = await services.pipeline.run_cycle(now=T0)

        assert report.skipped is None
        assert report.fired_rules == ["CR_cpu"]

        assert len(report.alerts_created) == 1
        alert = report.alerts_created[0]
        assert alert.type == "cpu_high"
        assert alert.status is AlertStatus.ACTIVE

        assert len(report.incidents) == 1
        assert report.incidents[0].status is IncidentStatus.OPEN
        assert services.alerts.get_alert(alert.id).incident_id == report.incidents[0].id

        assert [e.level for e in report.escalations] == [1]
        assert sink.calls[0][0] == "dashboard"
        assert sink.calls[0][1]["alert_id"] == alert.id

        assert [r.outcome for r in report.remediations] == [RemediationOutcome.SUCCESS]
        assert executor.calls == [("kill_head_blocker", {"min_wait_seconds": 60})]

        assert services.pipeline.last_report is report
        assert METRICS.cycles_run.value == 1

    @pytest.mark.asyncio
    async def test_second_cycle_folds_refire_and_respects_guards(self, services, sink, executor):
        await services.pipeline.run_cycle(now=T0)
        report = await services.pipeline.run_cycle(now=T0 + 60)

        assert report.fired_rules == ["CR_cpu"]
        assert report.alerts_created == []
        assert report.escalations == []
        assert len(sink.calls) == 1
        assert [r.outcome for r in report.remediations] == [RemediationOutcome.SKIPPED_COOLDOWN]
        assert len(executor.calls) == 1
        assert services.alerts.get_alert_count() == 1

    @pytest.mark.asyncio
    async def test_quiet_metrics_do_nothing(self, services, source, sink):
        source.set(cpu=20, blocking_chains=0)
        report = await services.pipeline.run_cycle(now=T0)
        assert report.skipped is None
        assert report.fired_rules == []
        assert report.remediations == []
        assert sink.calls == []

    @pytest.mark.asyncio
    async def test_failing_stage_does_not_stop_the_rest(self, services, executor):
        with patch.object(services.escalation, "evaluate", side_effect=RuntimeError("db locked")):
            report = await services.pipeline.run_cycle(now=T0)
        assert len(report.alerts_created) == 1
        assert report.escalations == []
        assert len(executor.calls) == 1

    @pytest.mark.asyncio
    async def test_confirmation_rules_left_for_manual_trigger(self, services, executor):
        services.rules.create(RemediationRule(
            id="RR_failover", name="Fail over AOS",
            condition=parse_condition("blocking_chains > 10"),
            actions=[RemediationAction("failover_aos")],
            priority=9,
            requires_confirmation=True,
        ))
        report = await services.pipeline.run_cycle(now=T0)

        assert [r.rule_id for r in report.remediations] == ["RR_blocking"]
        assert [name for name, _ in executor.calls] == ["kill_head_blocker"]
        assert services.remediation.get_execution_history("RR_failover") == []


# ---------------------------------------------------------------------------
# Skipped cycles
# ---------------------------------------------------------------------------

class TestSkippedCycles:

    @pytest.mark.asyncio
    async def test_snapshot_failure_skips_cycle(self, sink, executor):
        svc = MonitoringServices.build("TST", FailingSource(), sink=sink, executor=executor, db_path=":memory:")
        try:
            report = await svc.pipeline.run_cycle(now=T0)
        finally:
            svc.close()
        assert report.skipped == "snapshot unavailable"
        assert METRICS.snapshot_failures.value == 1
        assert METRICS.cycles_skipped.value == 1
        assert METRICS.cycles_run.value == 0

    @pytest.mark.asyncio
    async def test_maintenance_window_skips_cycle(self, services, sink, executor):
        services.maintenance.create(MaintenanceWindow(
            name="AX CU upgrade", start_time=T0 - 60, end_time=T0 + 3600,
        ))
        report = await services.pipeline.run_cycle(now=T0)

        assert report.skipped == "maintenance"
        assert services.alerts.get_alert_count() == 0
        assert sink.calls == []
        assert executor.calls == []

    @pytest.mark.asyncio
    async def test_disabled_window_does_not_skip(self, services):
        services.maintenance.create(MaintenanceWindow(
            name="old", start_time=T0 - 60, end_time=T0 + 3600, enabled=False,
        ))
        report = await services.pipeline.run_cycle(now=T0)
        assert report.skipped is None
