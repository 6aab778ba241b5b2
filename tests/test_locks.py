"""
Tests for per-key asyncio locks.
"""

import asyncio

import pytest

from nwha.core.locks import KeyedLocks


class TestKeyedLocks:
    """Tests for KeyedLocks."""

    async def test_lock_dropped_after_use(self):
        locks = KeyedLocks()

        async with locks.hold("session-1"):
            assert len(locks) == 1

        assert len(locks) == 0

    async def test_same_key_is_serialized(self):
        locks = KeyedLocks()
        order = []

        async def worker(name):
            async with locks.hold("session-1"):
                order.append(f"{name}-in")
                await asyncio.sleep(0.05)
                order.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))

        assert order == ["a-in", "a-out", "b-in", "b-out"]
        assert len(locks) == 0

    async def test_different_keys_run_together(self):
        locks = KeyedLocks()
        inside = asyncio.Event()

        async def first():
            async with locks.hold("session-1"):
                await asyncio.wait_for(inside.wait(), timeout=1.0)

        async def second():
            async with locks.hold("session-2"):
                inside.set()

        await asyncio.gather(first(), second())
        assert len(locks) == 0

    async def test_released_on_error(self):
        locks = KeyedLocks()

        with pytest.raises(RuntimeError):
            async with locks.hold("session-1"):
                raise RuntimeError("boom")

        assert len(locks) == 0
