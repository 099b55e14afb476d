"""
remediation/engine.py

RemediationEngine — guarded, audited execution of remediation rules.

execute() for one rule id is mutually exclusive (per-rule lock), so guard
checks and the history write they depend on are atomic:

    1. cooldown    most recent attempted execution finished < cooldown_seconds ago
                   → SkippedCooldown
    2. rate limit  attempted executions started inside the trailing window
                   >= max_executions_per_window → SkippedRateLimit
    3. a Running record is written, then the rule's actions run in order
       through the ActionExecutor, each bounded by timeout_seconds
    4. the record is finalised as Success or Failed

Skip records are audit-only; they never feed the guards. Nothing is left in
Running: cancellation finalises the record as Failed ("cancelled"), and
recover_interrupted() cleans up after a crash.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from ..config import settings
from ..engine.evaluator import ConditionEvaluator
from ..engine.models import FiredRule, RemediationAction, RemediationRule, RuleKind
from ..errors import RuleNotFound
from ..interfaces import ActionExecutor, ActionResult
from ..locks import KeyedLock
from ..metrics import METRICS
from .models import RemediationExecution, RemediationOutcome

if TYPE_CHECKING:
    from ..storage.executions import ExecutionRepository
    from ..storage.rules import RuleRepository

logger = logging.getLogger(__name__)


class _ExecutionCancelled(Exception):
    """Raised internally when the caller's cancel_event is set mid-execution."""


class RemediationEngine:
    def __init__(
        self,
        rules: RuleRepository,
        executions: ExecutionRepository,
        executor: ActionExecutor,
        evaluator: ConditionEvaluator | None = None,
    ) -> None:
        self._rules = rules
        self._executions = executions
        self._executor = executor
        self._evaluator = evaluator or ConditionEvaluator()
        self._rule_locks = KeyedLock("remediation")

    # ------------------------------------------------------------------
    # Condition evaluation
    # ------------------------------------------------------------------

    def evaluate_conditions(self, metrics: Mapping[str, float]) -> list[FiredRule]:
        """Fired remediation rules, highest priority first, ties by rule id."""
        rules = self._rules.list_enabled(RuleKind.REMEDIATION)
        fired = self._evaluator.evaluate(metrics, rules)
        return sorted(fired, key=lambda f: (-f.rule.priority, f.rule.id))

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(
        self,
        rule_id: str,
        trigger_data: Mapping[str, Any],
        now: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> RemediationExecution:
        """
        Run one remediation rule. Guard skips and action failures come back
        as the outcome of the returned record; only an unknown or disabled
        rule raises (RuleNotFound).
        """
        rule = self._rules.get_by_id(RuleKind.REMEDIATION, rule_id)
        if rule is None or not rule.enabled:
            raise RuleNotFound(rule_id)

        async with self._rule_locks.hold(rule_id):
            start = now if now is not None else time.time()

            skip = self._check_guards(rule, start)
            if skip is not None:
                outcome, detail = skip
                record = RemediationExecution(
                    rule_id=rule_id,
                    trigger_data=dict(trigger_data),
                    start_time=start,
                    completion_time=start,
                    outcome=outcome,
                    detail=detail,
                )
                self._executions.save_remediation(record)
                METRICS.remediations_skipped.inc()
                logger.info("Remediation %s skipped: %s", rule_id, detail)
                return record

            record = RemediationExecution(
                rule_id=rule_id, trigger_data=dict(trigger_data), start_time=start
            )
            self._executions.save_remediation(record)
            logger.info("Remediation %s started (%s)", rule_id, record.id)
            started = time.monotonic()

            try:
                outcome, detail = await self._run_actions(rule, record, cancel_event)
            except _ExecutionCancelled:
                self._finalize(record, RemediationOutcome.FAILED, "cancelled", started)
                return record
            except asyncio.CancelledError:
                self._finalize(record, RemediationOutcome.FAILED, "cancelled", started)
                raise

            self._finalize(record, outcome, detail, started)
            return record

    def _check_guards(
        self, rule: RemediationRule, now: float
    ) -> tuple[RemediationOutcome, str] | None:
        last = self._executions.most_recent_execution(rule.id) if rule.cooldown_seconds > 0 else None
        if last is not None:
            finished = last.completion_time if last.completion_time is not None else last.start_time
            remaining = rule.cooldown_seconds - (now - finished)
            if remaining > 0:
                return RemediationOutcome.SKIPPED_COOLDOWN, f"cooldown active, {remaining:.0f}s remaining"

        count = self._executions.count_executions_since(
            rule.id, now - rule.rate_limit_window_seconds
        )
        if count >= rule.max_executions_per_window:
            return RemediationOutcome.SKIPPED_RATE_LIMIT, (
                f"rate limit reached: {count}/{rule.max_executions_per_window} "
                f"in the last {rule.rate_limit_window_seconds}s"
            )
        return None

    async def _run_actions(
        self,
        rule: RemediationRule,
        record: RemediationExecution,
        cancel_event: asyncio.Event | None,
    ) -> tuple[RemediationOutcome, str]:
        failed: list[str] = []
        for action in rule.actions:
            if cancel_event is not None and cancel_event.is_set():
                raise _ExecutionCancelled()
            try:
                result = await self._perform(action, rule.timeout_seconds, cancel_event)
            except _ExecutionCancelled:
                raise
            except asyncio.TimeoutError:
                result = ActionResult(False, f"timed out after {rule.timeout_seconds}s")
            except Exception as exc:
                logger.warning("Action %s of %s raised: %s", action.name, rule.id, exc)
                result = ActionResult(False, f"{type(exc).__name__}: {exc}")

            record.actions_executed.append(
                {"action": action.name, "success": result.success, "detail": result.detail}
            )
            if not result.success:
                failed.append(action.name)
                if not action.continue_on_failure:
                    break

        if failed:
            return RemediationOutcome.FAILED, f"failed action(s): {', '.join(failed)}"
        return RemediationOutcome.SUCCESS, f"{len(record.actions_executed)} action(s) completed"

    async def _perform(
        self,
        action: RemediationAction,
        timeout: float,
        cancel_event: asyncio.Event | None,
    ) -> ActionResult:
        call = asyncio.wait_for(
            self._executor.perform_action(action.name, dict(action.parameters)), timeout
        )
        if cancel_event is None:
            return await call

        task = asyncio.ensure_future(call)
        waiter = asyncio.ensure_future(cancel_event.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for fut in (task, waiter):
                if not fut.done():
                    fut.cancel()
        if task in done:
            return task.result()
        raise _ExecutionCancelled()

    def _finalize(
        self,
        record: RemediationExecution,
        outcome: RemediationOutcome,
        detail: str,
        started: float,
    ) -> None:
        record.completion_time = record.start_time + (time.monotonic() - started)
        record.outcome = outcome
        record.detail = detail
        self._executions.finalize_remediation(record)

        if outcome is RemediationOutcome.SUCCESS:
            METRICS.remediations_succeeded.inc()
            logger.info("Remediation %s succeeded: %s", record.rule_id, detail)
        else:
            METRICS.remediations_failed.inc()
            logger.warning("Remediation %s failed: %s", record.rule_id, detail)

    # ------------------------------------------------------------------
    # History / recovery
    # ------------------------------------------------------------------

    def get_execution_history(
        self, rule_id: str | None = None, limit: int | None = None
    ) -> list[RemediationExecution]:
        """Newest first, capped at EXECUTION_HISTORY_LIMIT by default."""
        return self._executions.get_remediation_history(
            rule_id=rule_id, limit=limit or settings.EXECUTION_HISTORY_LIMIT
        )

    def recover_interrupted(self, now: float | None = None) -> int:
        """Finalise Running records left behind by a crash. Call once at startup."""
        now = now if now is not None else time.time()
        stale = self._executions.list_running_remediations()
        for record in stale:
            record.completion_time = max(now, record.start_time)
            record.outcome = RemediationOutcome.FAILED
            record.detail = "interrupted"
            self._executions.finalize_remediation(record)
        if stale:
            logger.warning("Marked %d interrupted remediation(s) as failed", len(stale))
        return len(stale)
