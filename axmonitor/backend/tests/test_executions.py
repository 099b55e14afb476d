"""
tests/test_executions.py

Tests for storage/executions.py — escalation and remediation audit trail.
"""

from __future__ import annotations

import pytest

from axmonitor.backend.escalation.models import EscalationExecution
from axmonitor.backend.remediation.models import RemediationExecution, RemediationOutcome
from axmonitor.backend.storage import Database, ExecutionRepository, apply_migrations


@pytest.fixture
def db():
    d = Database(":memory:")
    d.init_schema()
    apply_migrations(d)
    yield d
    d.close()


@pytest.fixture
def repo(db):
    return ExecutionRepository(db)


def escalation(level: int = 1, success: bool = True, alert_id: str = "A1", ts: float = 1000.0) -> EscalationExecution:
    return EscalationExecution(
        alert_id=alert_id,
        rule_id="ESC_1",
        level=level,
        after_seconds=900 * level,
        elapsed_seconds=900.0 * level,
        action="teams",
        success=success,
        executed_at=ts,
    )


def remediation(
    outcome: RemediationOutcome,
    start: float,
    completion: float | None = None,
    rule_id: str = "REM_1",
) -> RemediationExecution:
    return RemediationExecution(
        rule_id=rule_id,
        start_time=start,
        completion_time=completion,
        outcome=outcome,
    )


# ---------------------------------------------------------------------------
# Escalation records
# ---------------------------------------------------------------------------

class TestEscalationRecords:

    def test_save_and_query(self, repo):
        assert repo.save_escalation(escalation()) is True
        assert repo.has_successful_escalation("A1", "ESC_1", 1)
        assert not repo.has_successful_escalation("A1", "ESC_1", 2)

    def test_failed_record_does_not_count(self, repo):
        repo.save_escalation(escalation(success=False))
        assert not repo.has_successful_escalation("A1", "ESC_1", 1)

    def test_multiple_failures_then_success_allowed(self, repo):
        assert repo.save_escalation(escalation(success=False))
        assert repo.save_escalation(escalation(success=False))
        assert repo.save_escalation(escalation(success=True))
        assert len(repo.get_escalations(alert_id="A1")) == 3

    def test_second_success_discarded(self, repo):
        assert repo.save_escalation(escalation()) is True
        assert repo.save_escalation(escalation()) is False
        assert len(repo.get_escalations(alert_id="A1")) == 1

    def test_history_order(self, repo):
        repo.save_escalation(escalation(level=1, ts=1000.0))
        repo.save_escalation(escalation(level=2, ts=2000.0))
        repo.save_escalation(escalation(level=1, alert_id="A2", ts=1500.0))
        assert [r.level for r in repo.get_escalations(alert_id="A1")] == [1, 2]
        assert [r.executed_at for r in repo.get_escalations()] == [2000.0, 1500.0, 1000.0]


# ---------------------------------------------------------------------------
# Remediation records
# ---------------------------------------------------------------------------

class TestRemediationRecords:

    def test_finalize_running_record(self, repo):
        record = remediation(RemediationOutcome.RUNNING, start=1000.0)
        repo.save_remediation(record)
        record.outcome = RemediationOutcome.SUCCESS
        record.completion_time = 1010.0
        record.actions_executed = [{"action": "restart", "success": True, "detail": "ok"}]
        repo.finalize_remediation(record)

        stored = repo.get_remediation(record.id)
        assert stored.outcome is RemediationOutcome.SUCCESS
        assert stored.completion_time == 1010.0
        assert stored.actions_executed[0]["action"] == "restart"

    def test_terminal_record_never_changes(self, repo):
        record = remediation(RemediationOutcome.SUCCESS, start=1000.0, completion=1010.0)
        repo.save_remediation(record)
        record.outcome = RemediationOutcome.FAILED
        repo.finalize_remediation(record)
        assert repo.get_remediation(record.id).outcome is RemediationOutcome.SUCCESS

    def test_most_recent_ignores_skips(self, repo):
        repo.save_remediation(remediation(RemediationOutcome.SUCCESS, 1000.0, 1010.0))
        repo.save_remediation(remediation(RemediationOutcome.SKIPPED_COOLDOWN, 1100.0, 1100.0))
        last = repo.most_recent_execution("REM_1")
        assert last.outcome is RemediationOutcome.SUCCESS
        assert last.completion_time == 1010.0

    def test_most_recent_uses_completion_time(self, repo):
        repo.save_remediation(remediation(RemediationOutcome.SUCCESS, 1000.0, 1500.0))
        repo.save_remediation(remediation(RemediationOutcome.FAILED, 1100.0, 1200.0))
        assert repo.most_recent_execution("REM_1").completion_time == 1500.0

    def test_count_since_counts_attempted_only(self, repo):
        repo.save_remediation(remediation(RemediationOutcome.SUCCESS, 1000.0, 1001.0))
        repo.save_remediation(remediation(RemediationOutcome.FAILED, 2000.0, 2001.0))
        repo.save_remediation(remediation(RemediationOutcome.RUNNING, 3000.0))
        repo.save_remediation(remediation(RemediationOutcome.SKIPPED_RATE_LIMIT, 3100.0, 3100.0))
        assert repo.count_executions_since("REM_1", 0.0) == 3
        assert repo.count_executions_since("REM_1", 1500.0) == 2
        assert repo.count_executions_since("REM_other", 0.0) == 0

    def test_history_newest_first_and_filtered(self, repo):
        repo.save_remediation(remediation(RemediationOutcome.SUCCESS, 1000.0, 1001.0))
        repo.save_remediation(remediation(RemediationOutcome.SUCCESS, 2000.0, 2001.0))
        repo.save_remediation(remediation(RemediationOutcome.SUCCESS, 1500.0, 1501.0, rule_id="REM_2"))
        assert [r.start_time for r in repo.get_remediation_history()] == [2000.0, 1500.0, 1000.0]
        assert [r.start_time for r in repo.get_remediation_history(rule_id="REM_1", limit=1)] == [2000.0]

    def test_running_and_outcome_counts(self, repo):
        repo.save_remediation(remediation(RemediationOutcome.RUNNING, 1000.0))
        repo.save_remediation(remediation(RemediationOutcome.SUCCESS, 900.0, 901.0))
        assert len(repo.list_running_remediations()) == 1
        assert repo.get_outcome_counts() == {"Running": 1, "Success": 1}
