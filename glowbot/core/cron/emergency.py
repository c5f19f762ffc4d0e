"""EmergencyController — halt every timer and in-flight run."""

from __future__ import annotations

from typing import TYPE_CHECKING

from loguru import logger

from glowbot.core.cron.registry import CronRegistry
from glowbot.core.cron.runner import ExecutionRunner
from glowbot.core.cron.types import EmergencyStopReport, LockdownStatus

if TYPE_CHECKING:
    from glowbot.core.cron.scheduler import JobScheduler
    from glowbot.memory.store import JobStore


class EmergencyController:
    """Best-effort kill switch.

    ``stop_all`` keeps sweeping when an individual step fails; failures are
    collected in the report instead of aborting. Jobs end up Disabled in
    the store, not deleted, so a restart does not re-arm them. Per-job
    changes go through ``JobScheduler.disarm`` and so wait for any
    create/update holding that job's lock.
    """

    def __init__(
        self,
        store: JobStore,
        registry: CronRegistry,
        runner: ExecutionRunner,
        scheduler: JobScheduler,
        stop_wait_s: float = 5.0,
    ):
        self.store = store
        self.registry = registry
        self.runner = runner
        self.scheduler = scheduler
        self.stop_wait_s = stop_wait_s

    async def stop_all(self) -> EmergencyStopReport:
        logger.warning("EMERGENCY STOP requested")
        report = EmergencyStopReport()

        try:
            report.timers_stopped = len(await self.registry.stop_all())
        except Exception as e:
            report.errors.append(f"timer sweep: {e}")

        try:
            job_ids = self.store.active_job_ids()
        except Exception as e:
            job_ids = []
            report.errors.append(f"listing active jobs: {e}")

        for job_id in job_ids:
            try:
                if await self.scheduler.disarm(job_id):
                    report.jobs_stopped += 1
            except Exception as e:
                report.errors.append(f"job {job_id}: {e}")

        report.runs_cancelled = self.runner.cancel_all()
        if not await self.runner.wait_idle(self.stop_wait_s):
            report.errors.append(
                f"{self.runner.in_flight_count} run(s) still in flight after {self.stop_wait_s:g}s"
            )

        # A job created or re-enabled mid-sweep may have re-armed a timer.
        for job_id in self.registry.list_active():
            try:
                await self.scheduler.disarm(job_id)
                report.timers_stopped += 1
            except Exception as e:
                report.errors.append(f"late timer {job_id}: {e}")

        logger.warning(
            f"Emergency stop complete: {report.timers_stopped} timer(s), "
            f"{report.jobs_stopped} job(s) disabled, {report.runs_cancelled} run(s) cancelled, "
            f"{len(report.errors)} error(s)"
        )
        return report

    def status(self) -> LockdownStatus:
        active = self.registry.list_active()
        in_flight = self.runner.in_flight_count
        try:
            persisted = self.store.count_active()
        except Exception as e:
            logger.error(f"Lockdown status: cannot count active jobs: {e}")
            persisted = -1
        return LockdownStatus(
            active_timer_count=len(active),
            active_job_ids=sorted(active),
            in_flight_run_count=in_flight,
            persisted_active_count=persisted,
            lockdown=not active and in_flight == 0 and persisted == 0,
        )
