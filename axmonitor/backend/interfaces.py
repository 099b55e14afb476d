"""
backend/interfaces.py

Contracts for the external collaborators the pipeline talks to.
Concrete implementations live in sources/ and notifications/; tests use fakes.

All three calls may block on network I/O and are therefore coroutines.
Callers bound them with timeouts and convert failures into outcome records.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any


@dataclass(slots=True)
class ActionResult:
    success: bool
    detail: str = ""


@dataclass(slots=True)
class DispatchResult:
    success: bool
    reference_id: str | None = None
    """External id (ticket number, message id) when the backend returns one."""

    detail: str = ""


class MetricSnapshotSource(ABC):
    """Produces the current metric values of one monitored environment."""

    @abstractmethod
    async def get_current_metrics(self) -> Mapping[str, Any]:
        """
        Return raw metric name → value pairs.

        Values may be loosely typed; MetricSnapshot.from_raw() normalises them.
        """
        ...


class ActionExecutor(ABC):
    """
    The only place remediation reaches into the monitored AX environment
    (restart batch job, kill session, ...).

    The engine never retries within one execute() call, so implementations
    must tolerate being invoked again on a later cycle.
    """

    @abstractmethod
    async def perform_action(self, action_name: str, parameters: dict[str, Any]) -> ActionResult:
        ...


class NotificationSink(ABC):
    """Delivers escalation / alert payloads to email, Teams, ticketing, ..."""

    @abstractmethod
    async def dispatch(self, channel: str, payload: dict[str, Any]) -> DispatchResult:
        ...
