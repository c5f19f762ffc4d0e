"""Tests for KeyedLock."""

from __future__ import annotations

import asyncio

from glowbot.core.cron.locks import KeyedLock


async def test_same_key_serialized_in_arrival_order():
    locks = KeyedLock()
    order: list[int] = []
    release = asyncio.Event()

    async def first():
        async with locks.hold("job"):
            await release.wait()
            order.append(0)

    async def later(i: int):
        async with locks.hold("job"):
            order.append(i)

    holder = asyncio.create_task(first())
    await asyncio.sleep(0)
    waiters = [asyncio.create_task(later(i)) for i in range(1, 5)]
    await asyncio.sleep(0)
    assert order == []
    assert len(locks) == 1

    release.set()
    await asyncio.gather(holder, *waiters)
    assert order == [0, 1, 2, 3, 4]


async def test_different_keys_independent():
    locks = KeyedLock()
    async with locks.hold(1):
        await asyncio.wait_for(_hold_briefly(locks, 2), timeout=1)
        assert len(locks) == 1


async def _hold_briefly(locks: KeyedLock, key) -> None:
    async with locks.hold(key):
        assert len(locks) == 2


async def test_idle_locks_dropped():
    locks = KeyedLock()
    async with locks.hold("a"):
        assert len(locks) == 1
    assert len(locks) == 0


async def test_released_on_error():
    locks = KeyedLock()
    try:
        async with locks.hold("a"):
            raise RuntimeError("boom")
    except RuntimeError:
        pass
    assert len(locks) == 0
