"""ExecutionRunner — one generation run with bookkeeping and auto-pause."""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from loguru import logger

from glowbot.core.cron.errors import AuthorizationError, GlowBotError
from glowbot.core.cron.gate import TriggerGate
from glowbot.core.cron.types import (
    GenerationResult,
    RunOutcome,
    RunStatus,
    ScheduledJob,
    TriggerRequest,
    TriggerSource,
)

if TYPE_CHECKING:
    from glowbot.core.generation.client import GenerationService
    from glowbot.memory.store import JobStore

PauseHook = Callable[[int, str], Awaitable[None]]


@dataclass
class InFlightRun:
    run_id: str
    job_id: int
    source: str
    started_at: float = field(default_factory=time.monotonic)
    task: asyncio.Task | None = None
    cancelled: bool = False


class ExecutionRunner:
    """Wraps a single GenerationService call.

    Nothing raised by the generator escapes ``run``: errors and timeouts
    become a FAILED outcome and count toward the job's failure streak.
    Runs cancelled through ``cancel_all`` never write statistics, even if
    the generator returns after the cancellation.
    """

    def __init__(
        self,
        store: JobStore,
        generator: GenerationService,
        gate: TriggerGate,
        timeout_s: float = 180.0,
        failure_threshold: int = 3,
        on_auto_pause: PauseHook | None = None,
    ):
        self.store = store
        self.generator = generator
        self.gate = gate
        self.timeout_s = timeout_s
        self.failure_threshold = failure_threshold
        self.on_auto_pause = on_auto_pause
        self._in_flight: dict[str, InFlightRun] = {}
        self._idle = asyncio.Event()
        self._idle.set()

    # ── Public API ──────────────────────────────────────────

    async def run(self, job_id: int, request: TriggerRequest | None = None) -> RunOutcome:
        """Execute one run of ``job_id``. Defaults to the scheduler's own identity."""
        request = request or TriggerRequest.internal(job_id)
        run_id = uuid.uuid4().hex[:8]

        try:
            source = self.gate.check(request)
        except AuthorizationError as e:
            return self._outcome(
                job_id, run_id, RunStatus.DENIED, source=request.source, error=e.reason
            )

        try:
            job = self.store.get_job(job_id)
        except GlowBotError as e:
            logger.error(f"Run {run_id}: cannot load job {job_id}: {e}")
            return self._outcome(job_id, run_id, RunStatus.SKIPPED, source=source.value, error=str(e))
        if job is None:
            logger.warning(f"Run {run_id}: job {job_id} no longer exists, skipping")
            return self._outcome(
                job_id, run_id, RunStatus.SKIPPED, source=source.value, error="job not found"
            )
        # A timer fire dispatched before a pause or emergency stop disarmed it.
        if source is TriggerSource.SCHEDULED_JOB and not job.is_active:
            logger.warning(f"Run {run_id}: job {job_id} is disabled, skipping timer fire")
            return self._outcome(
                job_id, run_id, RunStatus.SKIPPED, source=source.value, error="job is disabled"
            )

        run =InFlightRun(run_id=run_id, job_id=job_id, source=source.value)
        self._track(run)
        logger.info(f"Run {run_id} started: job {job_id} ({job.name}) via {source.value}")

        result: GenerationResult | None = None
        error: str | None = None
        try:
            result = await self._call(run, job)
        except asyncio.CancelledError:
            if not run.cancelled:
                raise
        except asyncio.TimeoutError:
            error = f"generation timed out after {self.timeout_s:g}s"
        except Exception as e:
            error = f"{type(e).__name__}: {e}"
        finally:
            self._untrack(run)

        duration_ms = int((time.monotonic() - run.started_at) * 1000)

        if run.cancelled:
            logger.warning(f"Run {run_id} for job {job_id} was cancelled; result discarded")
            return self._outcome(
                job_id, run_id, RunStatus.CANCELLED, source=source.value,
                error="cancelled by emergency stop", duration_ms=duration_ms, log=True,
            )

        if result is not None and result.success:
            return self._record_success(job, run_id, source.value, result, duration_ms)

        if error is None:
            error = "; ".join(result.errors) if result and result.errors else "generation reported failure"
        return await self._record_failure(job, run_id, source.value, error, duration_ms)

    def cancel_all(self) -> int:
        """Cancel every in-flight run. Returns how many were signalled."""
        count = 0
        for run in list(self._in_flight.values()):
            if run.cancelled:
                continue
            run.cancelled = True
            if run.task is not None and not run.task.done():
                run.task.cancel()
            count += 1
        if count:
            logger.warning(f"Cancellation signalled to {count} in-flight run(s)")
        return count

    async def wait_idle(self, timeout: float) -> bool:
        """Wait until no run is in flight. Returns False on timeout."""
        if not self._in_flight:
            return True
        try:
            await asyncio.wait_for(self._idle.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)

    def in_flight(self) -> list[dict[str, Any]]:
        now = time.monotonic()
        return [
            {
                "run_id": r.run_id,
                "job_id": r.job_id,
                "source": r.source,
                "running_for_s": round(now - r.started_at, 1),
                "cancelled": r.cancelled,
            }
            for r in self._in_flight.values()
        ]

    # ── Internals ───────────────────────────────────────────

    async def _call(self, run: InFlightRun, job: ScheduledJob) -> GenerationResult:
        context = {
            "scheduledJobId": job.id,
            "scheduledJobName": job.name,
            "runId": run.run_id,
        }
        run.task = asyncio.ensure_future(self.generator.generate(job.params, context))
        return await asyncio.wait_for(run.task, timeout=self.timeout_s)

    def _record_success(
        self, job: ScheduledJob, run_id: str, source: str,
        result: GenerationResult, duration_ms: int,
    ) -> RunOutcome:
        try:
            self.store.record_success(job.id)
        except GlowBotError as e:
            logger.error(f"Run {run_id}: could not record success for job {job.id}: {e}")
        logger.info(
            f"Run {run_id} succeeded: job {job.id}, {result.items_generated} item(s) in {duration_ms}ms"
        )
        return self._outcome(
            job.id, run_id, RunStatus.SUCCESS, source=source,
            items_generated=result.items_generated, duration_ms=duration_ms, log=True,
        )

    async def _record_failure(
        self, job: ScheduledJob, run_id: str, source: str, error: str, duration_ms: int
    ) -> RunOutcome:
        auto_paused = False
        try:
            count = self.store.record_failure(job.id, error)
        except GlowBotError as e:
            logger.error(f"Run {run_id}: could not record failure for job {job.id}: {e}")
            count = 0
        logger.error(
            f"Run {run_id} failed: job {job.id} ({count}/{self.failure_threshold}): {error}"
        )

        if count >= self.failure_threshold:
            logger.warning(f"Pausing job {job.id} after {count} consecutive failures")
            try:
                await self._pause(job.id, error)
                auto_paused = True
            except Exception as e:
                logger.error(f"Auto-pause of job {job.id} failed: {e}")

        return self._outcome(
            job.id, run_id, RunStatus.FAILED, source=source, error=error,
            duration_ms=duration_ms, auto_paused=auto_paused, log=True,
        )

    async def _pause(self, job_id: int, reason: str) -> None:
        if self.on_auto_pause is not None:
            await self.on_auto_pause(job_id, reason)
        else:
            self.store.set_active(job_id, False)

    def _outcome(
        self, job_id: int, run_id: str, status: RunStatus, log: bool = False, **kwargs: Any
    ) -> RunOutcome:
        outcome = RunOutcome(job_id=job_id, run_id=run_id, status=status, **kwargs)
        if log:
            try:
                self.store.log_run(outcome)
            except GlowBotError as e:
                logger.error(f"Run {run_id}: could not write run log: {e}")
        return outcome

    def _track(self, run: InFlightRun) -> None:
        self._in_flight[run.run_id] = run
        self._idle.clear()

    def _untrack(self, run: InFlightRun) -> None:
        self._in_flight.pop(run.run_id, None)
        if not self._in_flight:
            self._idle.set()
