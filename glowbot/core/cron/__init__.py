"""Recurring job scheduling — APScheduler + SQLite bridge."""

from glowbot.core.cron.emergency import EmergencyController
from glowbot.core.cron.gate import TriggerGate
from glowbot.core.cron.registry import CronRegistry
from glowbot.core.cron.runner import ExecutionRunner
from glowbot.core.cron.scheduler import JobScheduler
from glowbot.core.cron.types import JobDefinition, JobUpdate, ScheduledJob, TriggerRequest, TriggerSource

__all__ = [
    "CronRegistry",
    "EmergencyController",
    "ExecutionRunner",
    "JobDefinition",
    "JobScheduler",
    "JobUpdate",
    "ScheduledJob",
    "TriggerGate",
    "TriggerRequest",
    "TriggerSource",
]
