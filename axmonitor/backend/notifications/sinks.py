"""
notifications/sinks.py

Concrete NotificationSink implementations.

WebhookNotificationSink   — httpx POST to a Teams / ticketing webhook
DashboardNotificationSink — WebSocket broadcast on the "notifications" channel
LogNotificationSink       — writes the payload to the log (email fallback, dev)

Sinks never raise for delivery problems; they return DispatchResult(False, ...)
so the escalation engine can record the failure and retry on the next tick.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from ..api.ws_manager import WebSocketManager, ws_manager
from ..interfaces import DispatchResult, NotificationSink

logger = logging.getLogger(__name__)


class WebhookNotificationSink(NotificationSink):
    """
    POSTs the payload as JSON to a fixed URL.

    Teams incoming webhooks render the top-level "text" field; ticketing
    webhooks usually answer with a JSON body carrying the ticket id, which is
    returned as the reference id when present.
    """

    def __init__(self, url: str, timeout: float = 10.0, client: httpx.AsyncClient | None = None) -> None:
        self.url = url
        self._timeout = timeout
        self._client = client

    async def dispatch(self, channel: str, payload: dict[str, Any]) -> DispatchResult:
        try:
            async with asyncio.timeout(self._timeout):
                if self._client is not None:
                    resp = await self._client.post(self.url, json=payload)
                else:
                    async with httpx.AsyncClient(timeout=self._timeout + 1) as client:
                        resp = await client.post(self.url, json=payload)
                resp.raise_for_status()
        except asyncio.TimeoutError:
            logger.warning("Webhook %s timed out after %.1fs", channel, self._timeout)
            return DispatchResult(False, detail=f"timed out after {self._timeout:g}s")
        except httpx.HTTPStatusError as exc:
            logger.warning("Webhook %s rejected: HTTP %d", channel, exc.response.status_code)
            return DispatchResult(False, detail=f"HTTP {exc.response.status_code}")
        except httpx.HTTPError as exc:
            logger.warning("Webhook %s failed: %s", channel, exc)
            return DispatchResult(False, detail=f"{type(exc).__name__}: {exc}")

        return DispatchResult(True, reference_id=_reference_id(resp), detail=f"HTTP {resp.status_code}")


def _reference_id(resp: httpx.Response) -> str | None:
    try:
        body = resp.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        for key in ("id", "ticket_id", "ticketId", "reference"):
            if body.get(key) is not None:
                return str(body[key])
    return None


class DashboardNotificationSink(NotificationSink):
    """Pushes the payload to connected dashboards. Succeeds even with no listeners."""

    def __init__(self, environment: str, manager: WebSocketManager | None = None) -> None:
        self.environment = environment
        self._manager = manager or ws_manager

    async def dispatch(self, channel: str, payload: dict[str, Any]) -> DispatchResult:
        delivered = await self._manager.broadcast("notifications", self.environment, payload)
        return DispatchResult(True, detail=f"delivered to {delivered} dashboard client(s)")


class LogNotificationSink(NotificationSink):
    async def dispatch(self, channel: str, payload: dict[str, Any]) -> DispatchResult:
        logger.warning(
            "[%s] notification to %s: %s",
            channel, payload.get("recipients") or "-", payload.get("text") or payload,
        )
        return DispatchResult(True, detail="logged")
