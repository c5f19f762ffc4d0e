"""Tests for CronRegistry — one armed timer per job id."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from glowbot.core.cron.errors import DuplicateRegistrationError
from glowbot.core.cron.registry import CronRegistry
from glowbot.core.cron.types import ScheduleSpec


def spec(time: str, tz: str = "America/New_York") -> ScheduleSpec:
    return ScheduleSpec(schedule_time=time, timezone=tz)


@pytest.fixture
def registry():
    return CronRegistry()


@pytest.fixture
def callback():
    return AsyncMock()


async def test_register(registry, callback):
    await registry.register(1, spec("09:00"), callback)
    assert registry.is_armed(1)
    assert registry.list_active() == {1: "0 9 * * * (America/New_York)"}
    assert len(registry) == 1

    timer = registry._scheduler.get_job("scheduled-job:1")
    assert timer is not None
    assert list(timer.args) == [1]


async def test_duplicate_register_rejected(registry, callback):
    await registry.register(1, spec("09:00"), callback)
    with pytest.raises(DuplicateRegistrationError):
        await registry.register(1, spec("10:00"), callback)
    assert registry.list_active() == {1: "0 9 * * * (America/New_York)"}


async def test_replace_swaps_timer(registry, callback):
    await registry.register(1, spec("09:00"), callback)
    await registry.replace(1, spec("17:30", "Europe/London"), callback)
    assert registry.list_active() == {1: "30 17 * * * (Europe/London)"}
    assert len(registry._scheduler.get_jobs()) == 1


async def test_replace_arms_when_absent(registry, callback):
    await registry.replace(3, spec("06:00"), callback)
    assert registry.is_armed(3)


async def test_unregister(registry, callback):
    await registry.register(1, spec("09:00"), callback)
    assert await registry.unregister(1) is True
    assert await registry.unregister(1) is False
    assert registry.list_active() == {}
    assert registry._scheduler.get_jobs() == []


async def test_stop_all(registry, callback):
    for job_id in (3, 1, 2):
        await registry.register(job_id, spec("09:00"), callback)
    assert await registry.stop_all() == [1, 2, 3]
    assert len(registry) == 0
    assert registry._scheduler.get_jobs() == []


async def test_concurrent_replace_leaves_one_timer(registry, callback):
    times = ["01:00", "02:00", "03:00", "04:00", "05:00"]
    await asyncio.gather(*(registry.replace(1, spec(t), callback) for t in times))
    assert registry.list_active() == {1: "0 5 * * * (America/New_York)"}
    assert len(registry._scheduler.get_jobs()) == 1


async def test_running_loop_reports_next_run(registry, callback):
    registry.start()
    try:
        assert registry.running
        await registry.register(1, spec("09:00", "UTC"), callback)
        nxt = registry.next_run_time(1)
        assert nxt is not None
        assert (nxt.hour, nxt.minute) == (9, 0)
        assert registry.next_run_time(2) is None
    finally:
        registry.shutdown()
    assert not registry.running
