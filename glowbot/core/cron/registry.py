"""CronRegistry — sole owner of live APScheduler timers, one per job id."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import datetime

from apscheduler.job import Job
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from loguru import logger

from glowbot.core.cron.errors import DuplicateRegistrationError
from glowbot.core.cron.locks import KeyedLock
from glowbot.core.cron.types import ScheduleSpec

TimerCallback = Callable[[int], Awaitable[None]]


def _timer_id(job_id: int) -> str:
    return f"scheduled-job:{job_id}"


class CronRegistry:
    """Authoritative map from job id to at most one armed timer.

    Every timer is created and removed here. Mutations for the same id are
    serialized through a per-id lock; different ids never wait on each
    other. Handles never leave this class.
    """

    def __init__(
        self,
        scheduler: AsyncIOScheduler | None = None,
        misfire_grace_s: int = 300,
    ):
        self._scheduler = scheduler or AsyncIOScheduler(
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": misfire_grace_s,
            }
        )
        self._handles: dict[int, Job] = {}
        self._descriptors: dict[int, str] = {}
        self._locks = KeyedLock()

    # ── Lifecycle ───────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def start(self) -> None:
        if not self._scheduler.running:
            self._scheduler.start()
            logger.info("CronRegistry timer loop started")

    def shutdown(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("CronRegistry timer loop stopped")

    # ── Mutations ───────────────────────────────────────────

    async def register(
        self, job_id: int, schedule: ScheduleSpec, callback: TimerCallback
    ) -> None:
        """Arm a timer. Raises DuplicateRegistrationError if one is armed."""
        async with self._locks.hold(job_id):
            if job_id in self._handles:
                raise DuplicateRegistrationError(job_id)
            self._arm(job_id, schedule, callback)

    async def replace(
        self, job_id: int, schedule: ScheduleSpec, callback: TimerCallback
    ) -> None:
        """Disarm any existing timer for ``job_id`` and arm a new one."""
        async with self._locks.hold(job_id):
            self._disarm(job_id)
            self._arm(job_id, schedule, callback)

    async def unregister(self, job_id: int) -> bool:
        """Stop and forget the timer. Returns False if none was armed."""
        async with self._locks.hold(job_id):
            return self._disarm(job_id)

    async def stop_all(self) -> list[int]:
        """Disarm every timer. Returns the ids that were armed."""
        stopped = []
        for job_id in sorted(self._handles):
            async with self._locks.hold(job_id):
                if self._disarm(job_id):
                    stopped.append(job_id)
        logger.warning(f"CronRegistry stopped all timers ({len(stopped)})")
        return stopped

    # ── Diagnostics ─────────────────────────────────────────

    def list_active(self) -> dict[int, str]:
        """Snapshot {job_id: schedule descriptor}."""
        return dict(self._descriptors)

    def is_armed(self, job_id: int) -> bool:
        return job_id in self._handles

    def next_run_time(self, job_id: int) -> datetime | None:
        """Next fire time, or None when unarmed or the timer loop is not running."""
        handle = self._handles.get(job_id)
        if handle is None:
            return None
        return getattr(handle, "next_run_time", None)

    def __len__(self) -> int:
        return len(self._handles)

    # ── Internals (caller holds the id lock) ────────────────

    def _arm(self, job_id: int, schedule: ScheduleSpec, callback: TimerCallback) -> None:
        trigger = CronTrigger(
            hour=schedule.hour, minute=schedule.minute, timezone=schedule.timezone
        )
        handle = self._scheduler.add_job(
            callback,
            trigger=trigger,
            id=_timer_id(job_id),
            name=f"job {job_id} @ {schedule.descriptor}",
            args=[job_id],
            replace_existing=True,
        )
        self._handles[job_id] = handle
        self._descriptors[job_id] = schedule.descriptor
        logger.info(f"Timer armed: job {job_id} ({schedule.descriptor})")

    def _disarm(self, job_id: int) -> bool:
        handle = self._handles.pop(job_id, None)
        self._descriptors.pop(job_id, None)
        if handle is None:
            return False
        try:
            handle.remove()
        except JobLookupError:
            logger.debug(f"Timer for job {job_id} already gone from the timer loop")
        logger.info(f"Timer disarmed: job {job_id}")
        return True
