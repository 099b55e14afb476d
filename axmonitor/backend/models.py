"""
backend/models.py

Shared data models for every stage of the evaluation cycle.

MetricSnapshot — read-only metric values captured from an environment
Severity       — Info < Warning < Critical
Alert          — one detected condition breach
Incident       — a group of alerts believed to share a root cause
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class Severity(str, Enum):
    INFO     = "Info"
    WARNING  = "Warning"
    CRITICAL = "Critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    @classmethod
    def parse(cls, value: str | Severity) -> Severity:
        """Case-insensitive lookup: 'critical', 'CRITICAL' and 'Critical' all work."""
        if isinstance(value, Severity):
            return value
        for member in cls:
            if member.value.lower() == str(value).strip().lower():
                return member
        raise ValueError(f"unknown severity {value!r}")


_SEVERITY_RANK = {Severity.INFO: 1, Severity.WARNING: 2, Severity.CRITICAL: 3}


class AlertStatus(str, Enum):
    ACTIVE       = "Active"
    ACKNOWLEDGED = "Acknowledged"
    RESOLVED     = "Resolved"


class IncidentStatus(str, Enum):
    OPEN     = "Open"
    RESOLVED = "Resolved"


# ---------------------------------------------------------------------------
# MetricSnapshot
# ---------------------------------------------------------------------------

class MetricSnapshot(Mapping[str, float]):
    """
    Immutable metric name → float mapping with a capture timestamp.

    Build it with from_raw() at the ingestion boundary; the evaluator only
    ever sees floats (NaN allowed, treated as non-matching).
    """

    __slots__ = ("_values", "captured_at")

    def __init__(self, values: Mapping[str, float], captured_at: float | None = None) -> None:
        self._values = MappingProxyType(dict(values))
        self.captured_at = captured_at if captured_at is not None else time.time()

    @classmethod
    def from_raw(
        cls, raw: Mapping[str, Any], captured_at: float | None = None
    ) -> MetricSnapshot:
        """
        Convert a loosely typed mapping into a snapshot.

        bool → 1.0/0.0, int/float → float, numeric strings → float.
        Anything else (None, lists, nested dicts, junk strings) is dropped.
        """
        values: dict[str, float] = {}
        for name, value in raw.items():
            converted = _to_float(value)
            if converted is None:
                logger.debug("Dropping metric %r — unsupported value %r", name, value)
                continue
            values[str(name)] = converted
        return cls(values, captured_at)

    def __getitem__(self, key: str) -> float:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"MetricSnapshot({dict(self._values)!r}, captured_at={self.captured_at})"


def _to_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, str):
        value = value.strip().lower()
        if value in ("true", "false"):
            return 1.0 if value == "true" else 0.0
    elif not isinstance(value, (int, float)):
        return None
    # ints beyond float range raise OverflowError
    try:
        return float(value)
    except (OverflowError, ValueError):
        return None


# ---------------------------------------------------------------------------
# Alert
# ---------------------------------------------------------------------------

@dataclass
class Alert:
    """
    A single detected condition breach, created from a correlation-rule firing.

    Status machine: Active → Acknowledged → Resolved, or Active → Resolved.
    Nothing leaves Resolved.
    """

    id: str = field(default_factory=lambda: f"ALERT_{uuid.uuid4().hex[:12]}")
    rule_id: str = ""
    type: str = ""
    severity: Severity = Severity.WARNING
    message: str = ""
    status: AlertStatus = AlertStatus.ACTIVE
    timestamp: float = field(default_factory=time.time)
    """Detection time; escalation delays are measured from here."""

    metrics: dict[str, float] = field(default_factory=dict)
    """Metric values that satisfied the rule condition."""

    incident_id: str | None = None
    created_by: str = "System"
    acknowledged_by: str | None = None
    acknowledged_at: float | None = None
    resolved_by: str | None = None
    resolved_at: float | None = None
    deleted_at: float | None = None

    @property
    def is_open(self) -> bool:
        return self.status is not AlertStatus.RESOLVED

    def __repr__(self) -> str:
        return (
            f"Alert({self.id!r} {self.type!r} {self.severity.value} "
            f"{self.status.value} incident={self.incident_id!r})"
        )


# ---------------------------------------------------------------------------
# Incident
# ---------------------------------------------------------------------------

@dataclass
class Incident:
    """A correlated group of alerts. alert_ids is ordered by detection time."""

    id: str = field(default_factory=lambda: f"INC_{uuid.uuid4().hex[:12]}")
    title: str = ""
    severity: Severity = Severity.WARNING
    status: IncidentStatus = IncidentStatus.OPEN
    alert_ids: list[str] = field(default_factory=list)
    correlation_reason: str = ""
    created_at: float = field(default_factory=time.time)
    updated_at: float | None = None
    resolved_at: float | None = None
    resolved_by: str | None = None

    def __repr__(self) -> str:
        return (
            f"Incident({self.id!r} {self.status.value} "
            f"{self.severity.value} alerts={len(self.alert_ids)})"
        )
