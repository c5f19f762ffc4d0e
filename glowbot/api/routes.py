"""Control surface — job CRUD, manual trigger, status, emergency stop."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, Query
from pydantic import BaseModel

from glowbot import __version__
from glowbot.api.deps import (
    get_current_user,
    get_emergency,
    get_gate,
    get_registry,
    get_scheduler,
    get_trigger_request,
)
from glowbot.core.cron.emergency import EmergencyController
from glowbot.core.cron.gate import TriggerGate
from glowbot.core.cron.registry import CronRegistry
from glowbot.core.cron.scheduler import JobScheduler
from glowbot.core.cron.types import (
    EmergencyStopReport,
    LockdownStatus,
    RunOutcome,
    ScheduledJob,
    TriggerDecision,
    TriggerRequest,
)

router = APIRouter()


class StatusResponse(BaseModel):
    active_timers: dict[int, str]
    enabled_sources: list[str]
    lockdown: LockdownStatus
    in_flight: list[dict[str, Any]]


@router.get("/health")
async def health():
    return {"status": "ok", "version": __version__}


# ── Jobs ─────────────────────────────────────────────────────


@router.get("/jobs", response_model=list[ScheduledJob])
async def list_jobs(
    active_only: bool = Query(default=False),
    current_user: str = Depends(get_current_user),
    scheduler: JobScheduler = Depends(get_scheduler),
):
    return scheduler.list_jobs(active_only=active_only)


@router.get("/jobs/{job_id}", response_model=ScheduledJob)
async def get_job(
    job_id: int,
    current_user: str = Depends(get_current_user),
    scheduler: JobScheduler = Depends(get_scheduler),
):
    return scheduler.get_job(job_id)


@router.post("/jobs", response_model=ScheduledJob, status_code=201)
async def create_job(
    body: dict[str, Any] = Body(...),
    current_user: str = Depends(get_current_user),
    scheduler: JobScheduler = Depends(get_scheduler),
):
    """Create a job. Arms its timer when ``is_active`` (default true)."""
    return await scheduler.create_job(body)


@router.put("/jobs/{job_id}", response_model=ScheduledJob)
async def update_job(
    job_id: int,
    body: dict[str, Any] = Body(...),
    current_user: str = Depends(get_current_user),
    scheduler: JobScheduler = Depends(get_scheduler),
):
    """Partial update; omitted fields keep their stored value."""
    return await scheduler.update_job(job_id, body)


@router.delete("/jobs/{job_id}")
async def delete_job(
    job_id: int,
    current_user: str = Depends(get_current_user),
    scheduler: JobScheduler = Depends(get_scheduler),
):
    await scheduler.delete_job(job_id)
    return {"status": "deleted", "job_id": job_id}


@router.get("/jobs/{job_id}/runs")
async def job_runs(
    job_id: int,
    limit: int = Query(default=20, ge=1, le=200),
    current_user: str = Depends(get_current_user),
    scheduler: JobScheduler = Depends(get_scheduler),
):
    return scheduler.get_runs(job_id, limit=limit)


# ── Trigger ──────────────────────────────────────────────────


@router.post("/trigger/{job_id}", response_model=RunOutcome)
async def trigger_job(
    job_id: int,
    trigger: TriggerRequest = Depends(get_trigger_request),
    scheduler: JobScheduler = Depends(get_scheduler),
):
    """Run a job now. Identity comes from ``X-Generation-Source``."""
    return await scheduler.trigger_now(job_id, trigger)


@router.get("/trigger-log", response_model=list[TriggerDecision])
async def trigger_log(
    current_user: str = Depends(get_current_user),
    gate: TriggerGate = Depends(get_gate),
):
    return gate.recent_decisions()


# ── Status / kill switch ─────────────────────────────────────


@router.get("/status", response_model=StatusResponse)
async def status(
    current_user: str = Depends(get_current_user),
    registry: CronRegistry = Depends(get_registry),
    gate: TriggerGate = Depends(get_gate),
    emergency: EmergencyController = Depends(get_emergency),
):
    return StatusResponse(
        active_timers=registry.list_active(),
        enabled_sources=[s.value for s in gate.enabled_sources()],
        lockdown=emergency.status(),
        in_flight=emergency.runner.in_flight(),
    )


@router.post("/emergency-stop", response_model=EmergencyStopReport)
async def emergency_stop(
    current_user: str = Depends(get_current_user),
    emergency: EmergencyController = Depends(get_emergency),
):
    return await emergency.stop_all()
