"""Wire the scheduler components together from a Config."""

from __future__ import annotations

from dataclasses import dataclass

from glowbot.core.config.schema import Config
from glowbot.core.cron.emergency import EmergencyController
from glowbot.core.cron.gate import TriggerGate
from glowbot.core.cron.registry import CronRegistry
from glowbot.core.cron.runner import ExecutionRunner
from glowbot.core.cron.scheduler import JobScheduler
from glowbot.core.generation.client import GenerationService, HttpGenerationService
from glowbot.memory.store import JobStore


@dataclass
class Services:
    config: Config
    store: JobStore
    gate: TriggerGate
    registry: CronRegistry
    runner: ExecutionRunner
    scheduler: JobScheduler
    emergency: EmergencyController


def build_services(
    config: Config,
    store: JobStore | None = None,
    generator: GenerationService | None = None,
) -> Services:
    """Build one isolated set of components. Nothing here is a module-level singleton."""
    if store is None:
        store = JobStore(str(config.db_path))
    if generator is None:
        generator = HttpGenerationService(
            config.generation.endpoint,
            api_key=config.generation.api_key,
            timeout_s=config.generation.timeout_s,
        )
    gate = TriggerGate(config.triggers)
    registry = CronRegistry(misfire_grace_s=config.scheduler.misfire_grace_s)
    runner = ExecutionRunner(
        store,
        generator,
        gate,
        timeout_s=config.generation.timeout_s,
        failure_threshold=config.scheduler.failure_threshold,
    )
    scheduler = JobScheduler(store, registry, runner, gate, config=config)
    emergency = EmergencyController(
        store, registry, runner, scheduler, stop_wait_s=config.scheduler.stop_wait_s
    )
    return Services(
        config=config,
        store=store,
        gate=gate,
        registry=registry,
        runner=runner,
        scheduler=scheduler,
        emergency=emergency,
    )
