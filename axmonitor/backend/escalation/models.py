"""
escalation/models.py
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field


@dataclass
class EscalationExecution:
    """
    Audit record of one escalation dispatch. Append-only.

    A level counts as executed for an alert only once it has a record with
    success=True; failed records leave the level eligible for the next tick.
    """

    id: str = field(default_factory=lambda: f"ESC_{uuid.uuid4().hex[:12]}")
    alert_id: str = ""
    rule_id: str = ""
    level: int = 0
    """1-based position in the rule's escalation levels."""

    after_seconds: int = 0
    elapsed_seconds: float = 0.0
    action: str = ""
    recipients: str = ""
    success: bool = False
    reference_id: str | None = None
    detail: str = ""
    executed_at: float = field(default_factory=time.time)

    def __repr__(self) -> str:
        state = "ok" if self.success else "failed"
        return (
            f"EscalationExecution(alert={self.alert_id!r} rule={self.rule_id!r} "
            f"level={self.level} {self.action!r} {state})"
        )
