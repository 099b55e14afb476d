"""
backend/maintenance.py

Maintenance windows: planned periods (AX upgrades, SQL index rebuilds, ...)
during which alert creation, escalation and remediation are suppressed.

A window is either one-time (active for start_time <= now <= end_time) or
recurring. A recurring window repeats its [start, end] span every day or
every week, starting from start_time, so "daily 02:00–03:00" is expressed as
a window from some night's 02:00 to 03:00 with recurrence="daily".
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .storage.maintenance import MaintenanceRepository

logger = logging.getLogger(__name__)


class Recurrence(str, Enum):
    DAILY  = "daily"
    WEEKLY = "weekly"

    @property
    def period_seconds(self) -> int:
        return 86400 if self is Recurrence.DAILY else 7 * 86400


@dataclass
class MaintenanceWindow:
    id: int | None = None
    name: str = ""
    description: str = ""
    start_time: float = 0.0
    end_time: float = 0.0
    recurrence: Recurrence | None = None
    suppress_alerts: bool = True
    enabled: bool = True
    created_at: float = field(default_factory=time.time)

    def validate(self) -> None:
        if not self.name:
            raise ValueError("maintenance window name is required")
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        if self.recurrence is not None and self.end_time - self.start_time >= self.recurrence.period_seconds:
            raise ValueError("a recurring window must be shorter than its period")

    def is_active(self, now: float) -> bool:
        if not self.enabled or now < self.start_time:
            return False
        if self.recurrence is None:
            return now <= self.end_time
        offset = (now - self.start_time) % self.recurrence.period_seconds
        return offset <= self.end_time - self.start_time


class MaintenanceGate:
    """Answers "is this environment in maintenance right now?" for the pipeline."""

    def __init__(self, repo: MaintenanceRepository) -> None:
        self._repo = repo

    def active_windows(self, now: float | None = None) -> list[MaintenanceWindow]:
        now = now if now is not None else time.time()
        return [
            w for w in self._repo.list_windows()
            if w.suppress_alerts and w.is_active(now)
        ]

    def is_suppressed(self, now: float | None = None) -> bool:
        windows = self.active_windows(now)
        if windows:
            logger.debug("Maintenance active: %s", ", ".join(w.name for w in windows))
        return bool(windows)
