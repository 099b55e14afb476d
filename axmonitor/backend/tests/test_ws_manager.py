"""
tests/test_ws_manager.py

Tests for api/ws_manager.py — WebSocket channel manager.
"""

from __future__ import annotations

import json
from unittest.mock import AsyncMock

import pytest

from axmonitor.backend.api.ws_manager import CHANNELS, WebSocketManager


@pytest.fixture
def manager():
    return WebSocketManager()


def mock_ws(accept_side_effect=None):
    ws = AsyncMock()
    ws.accept = AsyncMock(side_effect=accept_side_effect)
    ws.send_text = AsyncMock()
    return ws


class TestConnect:

    @pytest.mark.asyncio
    async def test_connect_accepts_and_registers(self, manager):
        ws = mock_ws()
        await manager.connect(ws, "alerts")
        ws.accept.assert_called_once()
        assert manager.connection_count("alerts") == 1

    @pytest.mark.asyncio
    async def test_disconnect_nonexistent_is_noop(self, manager):
        await manager.disconnect(mock_ws(), "alerts")
        assert manager.connection_count("alerts") == 0


class TestBroadcast:

    @pytest.mark.asyncio
    async def test_envelope_sent_to_all(self, manager):
        ws1, ws2 = mock_ws(), mock_ws()
        await manager.connect(ws1, "incidents")
        await manager.connect(ws2, "incidents")

        delivered = await manager.broadcast("incidents", "PRD", {"id": "INC_1"})

        expected = json.dumps(
            {"channel": "incidents", "environment": "PRD", "data": {"id": "INC_1"}}, default=str
        )
        assert delivered == 2
        ws1.send_text.assert_called_once_with(expected)
        ws2.send_text.assert_called_once_with(expected)

    @pytest.mark.asyncio
    async def test_channels_are_isolated(self, manager):
        alerts_ws, esc_ws = mock_ws(), mock_ws()
        await manager.connect(alerts_ws, "alerts")
        await manager.connect(esc_ws, "escalations")
        await manager.broadcast("alerts", "PRD", {})
        alerts_ws.send_text.assert_called_once()
        esc_ws.send_text.assert_not_called()

    @pytest.mark.asyncio
    async def test_dead_connection_removed(self, manager):
        good, bad = mock_ws(), mock_ws()
        bad.send_text = AsyncMock(side_effect=RuntimeError("connection reset"))
        await manager.connect(good, "remediations")
        await manager.connect(bad, "remediations")

        assert await manager.broadcast("remediations", "TST", {"x": 1}) == 1
        assert manager.connection_count("remediations") == 1

    @pytest.mark.asyncio
    async def test_empty_channel_returns_zero(self, manager):
        assert await manager.broadcast("alerts", "PRD", {}) == 0


class TestCounts:

    @pytest.mark.asyncio
    async def test_all_counts_lists_every_channel(self, manager):
        await manager.connect(mock_ws(), "alerts")
        counts = manager.all_counts()
        assert set(counts) == set(CHANNELS)
        assert counts["alerts"] == 1
        assert counts["notifications"] == 0
