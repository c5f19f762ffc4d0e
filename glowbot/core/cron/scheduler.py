"""JobScheduler — JobStore + CronRegistry bridge for recurring generation jobs."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from loguru import logger

from glowbot.core.cron.errors import DuplicateRegistrationError, JobNotFoundError
from glowbot.core.cron.gate import TriggerGate
from glowbot.core.cron.locks import KeyedLock
from glowbot.core.cron.registry import CronRegistry
from glowbot.core.cron.runner import ExecutionRunner
from glowbot.core.cron.types import (
    JobDefinition,
    JobUpdate,
    RunOutcome,
    ScheduledJob,
    TriggerRequest,
    validate_definition,
)

if TYPE_CHECKING:
    from glowbot.core.config.schema import Config
    from glowbot.memory.store import JobStore


class JobScheduler:
    """Bridge between the scheduled_jobs table and live timers.

    Jobs are persisted in SQLite (source of truth) and armed in the
    CronRegistry for execution. Every mutation of one job id (create,
    update, delete, auto-pause) runs under that id's lock, so the stored
    definition and the armed timer always come from the same call.

    With ``scheduler.enabled`` or ``triggers.allow_scheduled`` off, rows keep
    their ``is_active`` flag but nothing is ever armed.
    """

    def __init__(
        self,
        store: JobStore,
        registry: CronRegistry,
        runner: ExecutionRunner,
        gate: TriggerGate,
        config: Config | None = None,
    ):
        self.store = store
        self.registry = registry
        self.runner = runner
        self.gate = gate
        self.config = config
        self._job_locks = KeyedLock()
        self._initialized = False
        self._init_lock = asyncio.Lock()
        if runner.on_auto_pause is None:
            runner.on_auto_pause = self._auto_pause

    @property
    def initialized(self) -> bool:
        return self._initialized

    # ── Lifecycle ───────────────────────────────────────────

    async def start(self) -> int:
        """Start the timer loop and arm every active job. Returns jobs armed."""
        if self._may_arm():
            self.registry.start()
        else:
            logger.warning("Scheduled runs disabled by config; timer loop not started")
        armed = await self.initialize_from_store()
        logger.info(f"JobScheduler started with {armed} armed job(s)")
        return armed

    async def shutdown(self) -> None:
        self.registry.shutdown()
        logger.info("JobScheduler stopped")

    async def initialize_from_store(self) -> int:
        """Arm every active persisted job once. A second call is a no-op."""
        async with self._init_lock:
            if self._initialized:
                logger.debug("initialize_from_store already ran, skipping")
                return 0
            self._initialized = True

            if not self._may_arm():
                logger.info("Scheduled runs disabled by config; no jobs armed")
                return 0

            armed = 0
            for job in self.store.list_jobs(active_only=True):
                async with self._job_locks.hold(job.id):
                    if self.registry.is_armed(job.id):
                        continue
                    try:
                        await self.registry.register(job.id, job.schedule, self._fire)
                        armed += 1
                    except Exception as e:
                        logger.error(f"Failed to arm job {job.id} at boot: {e}")
            logger.info(f"Initialized {armed} scheduled job(s) from store")
            return armed

    # ── CRUD ────────────────────────────────────────────────

    async def create_job(self, definition: JobDefinition | dict[str, Any]) -> ScheduledJob:
        """Validate, persist, and arm (when active) a new job."""
        if isinstance(definition, dict):
            if "timezone" not in definition and self.config is not None:
                definition = {**definition, "timezone": self.config.scheduler.default_timezone}
            definition = validate_definition(definition)
        else:
            definition = validate_definition(definition.definition())

        job = self.store.add_job(definition)
        if job.is_active and self._may_arm():
            async with self._job_locks.hold(job.id):
                try:
                    await self._register(job)
                except Exception:
                    self.store.set_active(job.id, False)
                    logger.error(f"Job {job.id} stored inactive: its timer could not be armed")
                    raise
        logger.info(f"Scheduled job created: {job.id} ({job.name}, {job.schedule.descriptor})")
        return job

    async def update_job(self, job_id: int, changes: JobUpdate | dict[str, Any]) -> ScheduledJob:
        """Persist the new definition, then replace or disarm the timer."""
        if isinstance(changes, dict):
            changes = JobUpdate.parse(changes)

        async with self._job_locks.hold(job_id):
            current = self.store.get_job(job_id)
            if current is None:
                raise JobNotFoundError(job_id)
            definition = changes.apply(current)

            job = self.store.update_job(job_id, definition)
            if job is None:
                raise JobNotFoundError(job_id)

            if job.is_active and self._may_arm():
                await self.registry.replace(job.id, job.schedule, self._fire)
            else:
                await self.registry.unregister(job.id)

        logger.info(f"Scheduled job updated: {job.id} (active={job.is_active})")
        return job

    async def delete_job(self, job_id: int) -> None:
        """Disarm the timer, then delete the row."""
        async with self._job_locks.hold(job_id):
            await self.registry.unregister(job_id)
            if not self.store.delete_job(job_id):
                raise JobNotFoundError(job_id)
        logger.info(f"Scheduled job deleted: {job_id}")

    async def set_active(self, job_id: int, active: bool) -> ScheduledJob:
        return await self.update_job(job_id, JobUpdate(is_active=active))

    # ── Execution ───────────────────────────────────────────

    async def trigger_now(self, job_id: int, request: TriggerRequest) -> RunOutcome:
        """Run a job immediately for the given caller. Timer state is untouched."""
        self.gate.check(request)
        if self.store.get_job(job_id) is None:
            raise JobNotFoundError(job_id)
        logger.info(f"Manual trigger: job {job_id} by {request.source} ({request.subject})")
        return await self.runner.run(job_id, request)

    async def _fire(self, job_id: int) -> None:
        """Timer callback. Never raises into the timer loop."""
        logger.info(f"Timer fired: job {job_id}")
        try:
            await self.runner.run(job_id, TriggerRequest.internal(job_id))
        except Exception:
            logger.opt(exception=True).error(f"Unhandled error in timer for job {job_id}")

    async def disarm(self, job_id: int) -> bool:
        """Disarm the timer and mark the row inactive under the job lock.

        Returns False if the row no longer exists.
        """
        async with self._job_locks.hold(job_id):
            await self.registry.unregister(job_id)
            return self.store.set_active(job_id, False)

    async def _auto_pause(self, job_id: int, reason: str) -> None:
        await self.disarm(job_id)
        logger.warning(f"Job {job_id} auto-paused: {reason}")

    def _may_arm(self) -> bool:
        """False when config switches off the scheduler or scheduled triggers."""
        if self.config is None:
            return True
        return self.config.scheduler.enabled and self.config.triggers.allow_scheduled

    async def _register(self, job: ScheduledJob) -> None:
        try:
            await self.registry.register(job.id, job.schedule, self._fire)
        except DuplicateRegistrationError:
            logger.opt(exception=True).critical(
                f"Invariant violated: job {job.id} already had an armed timer"
            )
            raise

    # ── Queries ─────────────────────────────────────────────

    def get_job(self, job_id: int) -> ScheduledJob:
        job = self.store.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def list_jobs(self, active_only: bool = False) -> list[ScheduledJob]:
        return self.store.list_jobs(active_only=active_only)

    def get_runs(self, job_id: int, limit: int = 20) -> list[dict[str, Any]]:
        self.get_job(job_id)
        return self.store.get_runs(job_id, limit=limit)
