"""
Tests for per-key async locks.
"""

import asyncio

import pytest

from app.core.locks import KeyedLocks


class TestKeyedLocks:
    """Serialization per key and cleanup of idle keys."""

    @pytest.mark.anyio
    async def test_lock_dropped_after_release(self):
        locks = KeyedLocks()
        async with locks.hold("rs_210"):
            assert len(locks) == 1
        assert len(locks) == 0

    @pytest.mark.anyio
    async def test_lock_dropped_after_error(self):
        locks = KeyedLocks()
        with pytest.raises(RuntimeError):
            async with locks.hold("rs_210"):
                raise RuntimeError("boom")
        assert len(locks) == 0

    @pytest.mark.anyio
    async def test_same_key_is_serialized(self):
        locks = KeyedLocks()
        events = []

        async def worker(name: str):
            async with locks.hold(("justice.vd.ch", "delai")):
                events.append(f"{name}:in")
                await asyncio.sleep(0.01)
                events.append(f"{name}:out")

        await asyncio.gather(worker("a"), worker("b"), worker("c"))

        assert events == ["a:in", "a:out", "b:in", "b:out", "c:in", "c:out"]
        assert len(locks) == 0

    @pytest.mark.anyio
    async def test_distinct_keys_do_not_block(self):
        locks = KeyedLocks()
        async with locks.hold("rs_210"):
            await asyncio.wait_for(self._enter(locks, "rs_172"), timeout=1)
            assert len(locks) == 1
        assert len(locks) == 0

    @staticmethod
    async def _enter(locks: KeyedLocks, key: str) -> None:
        async with locks.hold(key):
            pass
