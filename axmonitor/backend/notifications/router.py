"""
notifications/router.py

NotificationRouter — the NotificationSink the escalation engine talks to.
Maps an escalation level's action ("teams", "email", "ticket", "dashboard",
...) to the sink that delivers it.
"""

from __future__ import annotations

import logging
from typing import Any

from ..config import settings
from ..interfaces import DispatchResult, NotificationSink
from .sinks import DashboardNotificationSink, LogNotificationSink, WebhookNotificationSink

logger = logging.getLogger(__name__)


class NotificationRouter(NotificationSink):
    def __init__(self, sinks: dict[str, NotificationSink] | None = None) -> None:
        self._sinks: dict[str, NotificationSink] = {
            name.lower(): sink for name, sink in (sinks or {}).items()
        }

    @classmethod
    def from_settings(cls, environment: str) -> NotificationRouter:
        """
        dashboard → WebSocket, every WEBHOOK_URLS entry → webhook,
        email → log unless a webhook is configured for it.
        """
        sinks: dict[str, NotificationSink] = {
            "dashboard": DashboardNotificationSink(environment),
            "email": LogNotificationSink(),
            "log": LogNotificationSink(),
        }
        for channel, url in settings.WEBHOOK_URLS.items():
            sinks[channel.lower()] = WebhookNotificationSink(
                url, timeout=settings.NOTIFICATION_TIMEOUT_SECONDS
            )
        logger.info("[%s] notification channels: %s", environment, ", ".join(sorted(sinks)))
        return cls(sinks)

    def register(self, channel: str, sink: NotificationSink) -> None:
        self._sinks[channel.lower()] = sink

    @property
    def channels(self) -> list[str]:
        return sorted(self._sinks)

    async def dispatch(self, channel: str, payload: dict[str, Any]) -> DispatchResult:
        sink = self._sinks.get(channel.lower())
        if sink is None:
            logger.warning("No notification sink for channel %r", channel)
            return DispatchResult(False, detail=f"no sink for channel {channel!r}")
        return await sink.dispatch(channel, payload)
