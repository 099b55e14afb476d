"""
sources/metrics.py

MetricSnapshotSource implementations.

HttpMetricSource   — GETs the environment's current metrics as a JSON object
                     from the AX monitoring API (batch backlog, error rate,
                     CPU, blocking chains, AOS state, ...)
StaticMetricSource — fixed values, replaceable at runtime (tests, demos)
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import httpx

from ..interfaces import MetricSnapshotSource

logger = logging.getLogger(__name__)


class SnapshotUnavailable(Exception):
    """The metric source could not produce a snapshot for this cycle."""


class HttpMetricSource(MetricSnapshotSource):
    """
    Args:
        url:     full URL of the current-metrics endpoint
        timeout: per-request timeout in seconds
        client:  optional shared AsyncClient (tests inject one with a MockTransport)
    """

    def __init__(self, url: str, timeout: float = 10.0, client: httpx.AsyncClient | None = None) -> None:
        self.url = url
        self._timeout = timeout
        self._client = client

    async def get_current_metrics(self) -> Mapping[str, Any]:
        try:
            if self._client is not None:
                resp = await self._client.get(self.url)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    resp = await client.get(self.url)
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPError as exc:
            raise SnapshotUnavailable(f"{self.url}: {exc}") from exc
        except ValueError as exc:
            raise SnapshotUnavailable(f"{self.url}: response is not JSON") from exc

        # Some endpoints wrap the values: {"metrics": {...}, "timestamp": ...}
        if isinstance(data, dict) and isinstance(data.get("metrics"), dict):
            data = data["metrics"]
        if not isinstance(data, dict):
            raise SnapshotUnavailable(f"{self.url}: expected a JSON object, got {type(data).__name__}")
        return data


class StaticMetricSource(MetricSnapshotSource):
    def __init__(self, values: Mapping[str, Any] | None = None) -> None:
        self.values: dict[str, Any] = dict(values or {})

    def set(self, **values: Any) -> None:
        self.values.update(values)

    async def get_current_metrics(self) -> Mapping[str, Any]:
        return dict(self.values)
