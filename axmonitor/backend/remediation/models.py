"""
remediation/models.py

RemediationOutcome     — tagged result of an execute() call
RemediationExecution   — audit record; also the source of cooldown / rate-limit state
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class RemediationOutcome(str, Enum):
    RUNNING             = "Running"
    SUCCESS             = "Success"
    FAILED              = "Failed"
    SKIPPED_COOLDOWN    = "SkippedCooldown"
    SKIPPED_RATE_LIMIT  = "SkippedRateLimit"


# Outcomes that count towards cooldown and rate-limit state
ATTEMPTED_OUTCOMES = frozenset({
    RemediationOutcome.RUNNING,
    RemediationOutcome.SUCCESS,
    RemediationOutcome.FAILED,
})


@dataclass
class RemediationExecution:
    id: str = field(default_factory=lambda: f"EXEC_{uuid.uuid4().hex[:16]}")
    rule_id: str = ""
    trigger_data: dict[str, Any] = field(default_factory=dict)
    start_time: float = field(default_factory=time.time)
    completion_time: float | None = None
    outcome: RemediationOutcome = RemediationOutcome.RUNNING
    detail: str = ""
    actions_executed: list[dict[str, Any]] = field(default_factory=list)
    """One entry per action: {"action", "success", "detail"}."""

    def __repr__(self) -> str:
        return (
            f"RemediationExecution({self.id!r} rule={self.rule_id!r} "
            f"{self.outcome.value} detail={self.detail!r})"
        )
