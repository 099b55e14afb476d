"""
tests/test_locks.py

Tests for locks.py — KeyedLock.
"""

from __future__ import annotations

import asyncio

import pytest

from axmonitor.backend.locks import KeyedLock


class TestKeyedLock:

    @pytest.mark.asyncio
    async def test_same_key_serialises(self):
        locks = KeyedLock("test")
        order: list[str] = []

        async def worker(name: str) -> None:
            async with locks.hold("k"):
                order.append(f"{name}-in")
                await asyncio.sleep(0.01)
                order.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))
        assert order == ["a-in", "a-out", "b-in", "b-out"]

    @pytest.mark.asyncio
    async def test_different_keys_do_not_block(self):
        locks = KeyedLock("test")
        entered = asyncio.Event()

        async def holder() -> None:
            async with locks.hold("k1"):
                await asyncio.wait_for(entered.wait(), timeout=1.0)

        async def other() -> None:
            async with locks.hold("k2"):
                entered.set()

        await asyncio.gather(holder(), other())

    @pytest.mark.asyncio
    async def test_locks_dropped_when_unused(self):
        locks = KeyedLock("test")
        async with locks.hold("k"):
            assert locks.locked("k")
            assert len(locks) == 1
        assert len(locks) == 0
        assert not locks.locked("k")

    @pytest.mark.asyncio
    async def test_released_on_exception(self):
        locks = KeyedLock("test")
        with pytest.raises(RuntimeError):
            async with locks.hold("k"):
                raise RuntimeError("boom")
        assert len(locks) == 0
