"""
api/ws_manager.py

WebSocketManager — live dashboard feed over named broadcast channels.

Channels:
    "alerts"        — newly created alerts and alert status changes
    "incidents"     — incidents opened, grown or resolved
    "escalations"   — escalation dispatch records
    "remediations"  — remediation execution records
    "notifications" — payloads routed to the "dashboard" notification channel

Every message is an envelope {"channel", "environment", "data"} so one
dashboard can follow several environments over one socket per channel.

Thread safety: designed to be called exclusively from asyncio coroutines.
"""

from __future__ import annotations

import json
import logging
from collections import defaultdict
from typing import Any

from fastapi import WebSocket

logger = logging.getLogger(__name__)

CHANNELS = ("alerts", "incidents", "escalations", "remediations", "notifications")


class WebSocketManager:
    """Named broadcast channels, each with N WebSocket clients."""

    def __init__(self) -> None:
        self._channels: dict[str, set[WebSocket]] = defaultdict(set)

    async def connect(self, websocket: WebSocket, channel: str) -> None:
        await websocket.accept()
        self._channels[channel].add(websocket)
        logger.debug("WS connected — channel=%r total=%d", channel, len(self._channels[channel]))

    async def disconnect(self, websocket: WebSocket, channel: str) -> None:
        """No-op if the socket is not registered."""
        self._channels[channel].discard(websocket)
        logger.debug("WS disconnected — channel=%r remaining=%d", channel, len(self._channels[channel]))

    async def broadcast(self, channel: str, environment: str, data: Any) -> int:
        """
        Send the envelope to every client on *channel*; returns how many got it.

        Clients whose send fails are dropped from the channel.
        """
        clients = list(self._channels.get(channel, ()))
        if not clients:
            return 0

        payload = json.dumps(
            {"channel": channel, "environment": environment, "data": data},
            default=str,
        )
        delivered = 0
        for ws in clients:
            try:
                await ws.send_text(payload)
                delivered += 1
            except Exception as exc:
                logger.debug("WS send failed (channel=%r): %s — removing", channel, exc)
                self._channels[channel].discard(ws)
        return delivered

    def connection_count(self, channel: str) -> int:
        return len(self._channels.get(channel, ()))

    def all_counts(self) -> dict[str, int]:
        return {ch: len(self._channels.get(ch, ())) for ch in CHANNELS}


# Global singleton, shared by routes, sinks and the pipeline
ws_manager = WebSocketManager()
