"""
tests/test_correlator.py

Tests for correlation/correlator.py — alert creation, incident grouping and
status transitions.
"""

from __future__ import annotations

import asyncio
from unittest.mock import patch

import pytest

from axmonitor.backend.correlation import AlertCorrelator, CorrelationRelationship, RelationshipSet
from axmonitor.backend.engine import CorrelationRule, parse_condition
from axmonitor.backend.errors import AlertNotFound, IncidentNotFound
from axmonitor.backend.metrics import METRICS
from axmonitor.backend.models import AlertStatus, IncidentStatus, Severity
from axmonitor.backend.storage import AlertRepository, Database, apply_migrations

T0 = 1_700_000_000.0


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def reset_metrics():
    METRICS.reset_all()
    yield
    METRICS.reset_all()


@pytest.fixture
def db():
    d = Database(":memory:")
    d.init_schema()
    apply_migrations(d)
    yield d
    d.close()


@pytest.fixture
def repo(db):
    return AlertRepository(db)


@pytest.fixture
def correlator(repo):
    relationships = RelationshipSet([
        CorrelationRelationship("cpu_high", "blocking_chain_high", 300),
    ])
    return AlertCorrelator(repo, relationships=relationships, suppression_seconds=900)


def rule(
    rule_id: str = "CR_cpu",
    alert_type: str = "cpu_high",
    severity: Severity = Severity.WARNING,
    message: str = "",
) -> CorrelationRule:
    return CorrelationRule(
        id=rule_id,
        name=rule_id,
        severity=severity,
        condition=parse_condition("x > 0"),
        alert_type=alert_type,
        message=message,
    )


# ---------------------------------------------------------------------------
# record_firing
# ---------------------------------------------------------------------------

class TestRecordFiring:

    @pytest.mark.asyncio
    async def test_creates_active_alert(self, correlator, repo):
        alert = await correlator.record_firing(rule(message="SQL CPU high"), {"cpu": 95.0}, T0)
        assert alert.status is AlertStatus.ACTIVE
        assert alert.type == "cpu_high"
        assert alert.timestamp == T0
        assert alert.message == "SQL CPU high (cpu=95)"
        assert alert.metrics == {"cpu": 95.0}
        assert repo.get_alert(alert.id) is not None
        assert METRICS.alerts_created.value == 1

    @pytest.mark.asyncio
    async def test_alert_type_defaults_to_rule_id(self, correlator):
        alert = await correlator.record_firing(rule(alert_type=""), {}, T0)
        assert alert.type == "CR_cpu"

    @pytest.mark.asyncio
    async def test_refire_inside_window_reuses_alert(self, correlator, repo):
        first = await correlator.record_firing(rule(), {"cpu": 95.0}, T0)
        second = await correlator.record_firing(rule(), {"cpu": 97.0}, T0 + 600)
        assert second.id == first.id
        assert repo.get_alert_count() == 1
        assert METRICS.alerts_suppressed.value == 1

    @pytest.mark.asyncio
    async def test_refire_after_window_creates_new_alert(self, correlator, repo):
        first = await correlator.record_firing(rule(), {}, T0)
        second = await correlator.record_firing(rule(), {}, T0 + 901)
        assert second.id != first.id
        assert repo.get_alert_count() == 2

    @pytest.mark.asyncio
    async def test_refire_after_acknowledge_creates_new_alert(self, correlator):
        first = await correlator.record_firing(rule(), {}, T0)
        await correlator.acknowledge(first.id, "ops", T0 + 10)
        second = await correlator.record_firing(rule(), {}, T0 + 20)
        assert second.id != first.id

    @pytest.mark.asyncio
    async def test_concurrent_firings_create_one_alert(self, correlator, repo):
        alerts = await asyncio.gather(*(correlator.record_firing(rule(), {}, T0) for _ in range(5)))
        assert len({a.id for a in alerts}) == 1
        assert repo.get_alert_count() == 1


# ---------------------------------------------------------------------------
# correlate
# ---------------------------------------------------------------------------

class TestCorrelate:

    @pytest.mark.asyncio
    async def test_first_alert_opens_incident(self, correlator, repo):
        alert = await correlator.record_firing(rule(severity=Severity.CRITICAL), {}, T0)
        incident = await correlator.correlate(alert, T0)
        assert incident.status is IncidentStatus.OPEN
        assert incident.title == "Incident: cpu_high"
        assert incident.severity is Severity.CRITICAL
        assert incident.alert_ids == [alert.id]
        assert incident.correlation_reason == "Standalone alert"
        assert repo.get_alert(alert.id).incident_id == incident.id
        assert METRICS.incidents_opened.value == 1

    @pytest.mark.asyncio
    async def test_same_type_joins_open_incident(self, correlator, repo):
        a1 = await correlator.record_firing(rule("CR_1"), {}, T0)
        inc1 = await correlator.correlate(a1, T0)
        a2 = await correlator.record_firing(rule("CR_2"), {}, T0 + 3600)
        inc2 = await correlator.correlate(a2, T0 + 3600)
        assert inc2.id == inc1.id
        assert "Same type (cpu_high)" in inc2.correlation_reason
        assert repo.get_incident(inc1.id).alert_ids == [a1.id, a2.id]

    @pytest.mark.asyncio
    async def test_related_type_within_window_joins(self, correlator):
        cpu = await correlator.record_firing(rule("CR_cpu"), {}, T0)
        inc1 = await correlator.correlate(cpu, T0)
        blocking = await correlator.record_firing(
            rule("CR_blk", "blocking_chain_high", Severity.CRITICAL), {}, T0 + 120
        )
        inc2 = await correlator.correlate(blocking, T0 + 120)
        assert inc2.id == inc1.id
        assert inc2.severity is Severity.CRITICAL
        assert "Related types (cpu_high + blocking_chain_high)" in inc2.correlation_reason
        assert inc2.title == "Incident: cpu_high"

    @pytest.mark.asyncio
    async def test_related_type_outside_window_opens_new(self, correlator):
        cpu = await correlator.record_firing(rule("CR_cpu"), {}, T0)
        inc1 = await correlator.correlate(cpu, T0)
        blocking = await correlator.record_firing(rule("CR_blk", "blocking_chain_high"), {}, T0 + 301)
        inc2 = await correlator.correlate(blocking, T0 + 301)
        assert inc2.id != inc1.id

    @pytest.mark.asyncio
    async def test_unrelated_type_opens_new(self, correlator):
        a1 = await correlator.record_firing(rule("CR_cpu"), {}, T0)
        inc1 = await correlator.correlate(a1, T0)
        a2 = await correlator.record_firing(rule("CR_aos", "aos_down"), {}, T0 + 1)
        inc2 = await correlator.correlate(a2, T0 + 1)
        assert inc2.id != inc1.id

    @pytest.mark.asyncio
    async def test_resolved_incident_not_reused(self, correlator):
        a1 = await correlator.record_firing(rule("CR_1"), {}, T0)
        inc1 = await correlator.correlate(a1, T0)
        await correlator.resolve(inc1.id, "ops", T0 + 10)
        a2 = await correlator.record_firing(rule("CR_2"), {}, T0 + 20)
        inc2 = await correlator.correlate(a2, T0 + 20)
        assert inc2.id != inc1.id

    @pytest.mark.asyncio
    async def test_already_correlated_alert_returns_its_incident(self, correlator, repo):
        alert = await correlator.record_firing(rule(), {}, T0)
        inc1 = await correlator.correlate(alert, T0)
        inc2 = await correlator.correlate(alert, T0 + 5)
        assert inc2.id == inc1.id
        assert len(repo.get_incidents()) == 1

    @pytest.mark.asyncio
    async def test_concurrent_related_alerts_share_one_incident(self, correlator, repo):
        cpu = await correlator.record_firing(rule("CR_cpu"), {}, T0)
        blocking = await correlator.record_firing(rule("CR_blk", "blocking_chain_high"), {}, T0 + 1)
        incidents = await asyncio.gather(
            correlator.correlate(cpu, T0 + 1),
            correlator.correlate(blocking, T0 + 1),
        )
        assert incidents[0].id == incidents[1].id
        assert len(repo.get_incidents()) == 1

    @pytest.mark.asyncio
    async def test_matching_failure_still_creates_incident(self, correlator, repo):
        alert = await correlator.record_firing(rule(), {}, T0)
        with patch.object(repo, "list_open_incidents", side_effect=RuntimeError("db busy")):
            incident = await correlator.correlate(alert, T0)
        assert incident.alert_ids == [alert.id]
        assert incident.correlation_reason.startswith("Standalone (matching failed")
        assert repo.get_alert(alert.id).incident_id == incident.id


# ---------------------------------------------------------------------------
# Status transitions
# ---------------------------------------------------------------------------

class TestAcknowledge:

    @pytest.mark.asyncio
    async def test_active_to_acknowledged(self, correlator, repo):
        alert = await correlator.record_firing(rule(), {}, T0)
        assert await correlator.acknowledge(alert.id, "ops", T0 + 5) is True
        stored = repo.get_alert(alert.id)
        assert stored.status is AlertStatus.ACKNOWLEDGED
        assert stored.acknowledged_by == "ops"
        assert stored.acknowledged_at == T0 + 5

    @pytest.mark.asyncio
    async def test_same_actor_repeat_is_noop_true(self, correlator, repo):
        alert = await correlator.record_firing(rule(), {}, T0)
        await correlator.acknowledge(alert.id, "ops", T0 + 5)
        assert await correlator.acknowledge(alert.id, "ops", T0 + 9) is True
        assert repo.get_alert(alert.id).acknowledged_at == T0 + 5

    @pytest.mark.asyncio
    async def test_other_actor_rejected(self, correlator, repo):
        alert = await correlator.record_firing(rule(), {}, T0)
        await correlator.acknowledge(alert.id, "ops", T0 + 5)
        assert await correlator.acknowledge(alert.id, "dba", T0 + 9) is False
        assert repo.get_alert(alert.id).acknowledged_by == "ops"

    @pytest.mark.asyncio
    async def test_resolved_alert_rejected(self, correlator):
        alert = await correlator.record_firing(rule(), {}, T0)
        await correlator.resolve_alert(alert.id, "ops", T0 + 5)
        assert await correlator.acknowledge(alert.id, "ops", T0 + 9) is False

    @pytest.mark.asyncio
    async def test_unknown_alert(self, correlator):
        with pytest.raises(AlertNotFound):
            await correlator.acknowledge("ALERT_missing", "ops")


class TestResolve:

    @pytest.mark.asyncio
    async def test_resolve_incident_cascades(self, correlator, repo):
        a1 = await correlator.record_firing(rule("CR_1"), {}, T0)
        incident = await correlator.correlate(a1, T0)
        a2 = await correlator.record_firing(rule("CR_2"), {}, T0 + 1)
        await correlator.correlate(a2, T0 + 1)
        await correlator.acknowledge(a2.id, "ops", T0 + 2)

        resolved = await correlator.resolve(incident.id, "lead", T0 + 10)
        assert resolved.status is IncidentStatus.RESOLVED
        assert resolved.resolved_by == "lead"
        for alert_id in (a1.id, a2.id):
            stored = repo.get_alert(alert_id)
            assert stored.status is AlertStatus.RESOLVED
            assert stored.resolved_by == "lead"
            assert stored.resolved_at == T0 + 10

    @pytest.mark.asyncio
    async def test_resolve_is_idempotent(self, correlator):
        alert = await correlator.record_firing(rule(), {}, T0)
        incident = await correlator.correlate(alert, T0)
        await correlator.resolve(incident.id, "lead", T0 + 10)
        again = await correlator.resolve(incident.id, "someone-else", T0 + 20)
        assert again.status is IncidentStatus.RESOLVED
        assert again.resolved_by == "lead"
        assert again.resolved_at == T0 + 10

    @pytest.mark.asyncio
    async def test_resolve_unknown_incident(self, correlator):
        with pytest.raises(IncidentNotFound):
            await correlator.resolve("INC_missing", "ops")

    @pytest.mark.asyncio
    async def test_resolving_last_alert_closes_incident(self, correlator, repo):
        a1 = await correlator.record_firing(rule("CR_1"), {}, T0)
        incident = await correlator.correlate(a1, T0)
        a2 = await correlator.record_firing(rule("CR_2"), {}, T0 + 1)
        await correlator.correlate(a2, T0 + 1)

        await correlator.resolve_alert(a1.id, "ops", T0 + 5)
        assert repo.get_incident(incident.id).status is IncidentStatus.OPEN

        await correlator.resolve_alert(a2.id, "ops", T0 + 6)
        closed = repo.get_incident(incident.id)
        assert closed.status is IncidentStatus.RESOLVED
        assert closed.resolved_at == T0 + 6

    @pytest.mark.asyncio
    async def test_resolve_alert_twice_is_true(self, correlator):
        alert = await correlator.record_firing(rule(), {}, T0)
        assert await correlator.resolve_alert(alert.id, "ops", T0 + 1) is True
        assert await correlator.resolve_alert(alert.id, "ops", T0 + 2) is True

    @pytest.mark.asyncio
    async def test_concurrent_resolve_and_acknowledge(self, correlator, repo):
        alert = await correlator.record_firing(rule(), {}, T0)
        incident = await correlator.correlate(alert, T0)
        await asyncio.gather(
            correlator.resolve(incident.id, "lead", T0 + 10),
            correlator.acknowledge(alert.id, "ops", T0 + 10),
        )
        assert repo.get_alert(alert.id).status is AlertStatus.RESOLVED
        assert repo.get_incident(incident.id).status is IncidentStatus.RESOLVED


class TestDelete:

    @pytest.mark.asyncio
    async def test_delete_hides_alert(self, correlator, repo):
        alert = await correlator.record_firing(rule(), {}, T0)
        await correlator.delete_alert(alert.id, T0 + 1)
        assert repo.get_alert(alert.id) is None
        with pytest.raises(AlertNotFound):
            await correlator.delete_alert(alert.id)
