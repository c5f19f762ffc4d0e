"""Scheduled job types — mirrors the SQLite scheduled_jobs table."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from glowbot.core.cron.errors import JobValidationError

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})$")

# Fields a caller may set; everything else on ScheduledJob is bookkeeping.
DEFINITION_FIELDS = (
    "name",
    "schedule_time",
    "timezone",
    "niches",
    "tones",
    "templates",
    "platforms",
    "ai_model",
    "use_spartan_format",
    "use_smart_style",
    "top_rated_style_used",
    "use_existing_products",
    "generate_affiliate_links",
    "is_active",
)


def _normalize_time(value: str) -> str:
    match = _TIME_RE.match(value.strip())
    if not match:
        raise ValueError(f"schedule_time must be HH:MM, got {value!r}")
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ValueError(f"schedule_time out of range: {value!r}")
    return f"{hour:02d}:{minute:02d}"


def _check_timezone(value: str) -> str:
    try:
        ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"unknown timezone {value!r}") from None
    return value


def _clean_list(values: list[str]) -> list[str]:
    return [v.strip() for v in values if v and v.strip()]


# ════════════════════════════════════════════════════════════
# SCHEDULE + PARAMETERS
# ════════════════════════════════════════════════════════════


class ScheduleSpec(BaseModel):
    """Daily time-of-day schedule in a given timezone."""

    schedule_time: str
    timezone: str = "America/New_York"

    @field_validator("schedule_time")
    @classmethod
    def _valid_time(cls, v: str) -> str:
        return _normalize_time(v)

    @field_validator("timezone")
    @classmethod
    def _valid_timezone(cls, v: str) -> str:
        return _check_timezone(v)

    @property
    def hour(self) -> int:
        return int(self.schedule_time.split(":")[0])

    @property
    def minute(self) -> int:
        return int(self.schedule_time.split(":")[1])

    @property
    def cron_expression(self) -> str:
        """Five-field crontab equivalent (minute hour * * *)."""
        return f"{self.minute} {self.hour} * * *"

    @property
    def descriptor(self) -> str:
        return f"{self.cron_expression} ({self.timezone})"


class GenerationParams(BaseModel):
    """Recognized parameters passed to the generation service."""

    niches: list[str] = Field(default_factory=list)
    tones: list[str] = Field(default_factory=list)
    templates: list[str] = Field(default_factory=list)
    platforms: list[str] = Field(default_factory=list)
    ai_model: str = "claude"

    # Format flags
    use_spartan_format: bool = False
    use_smart_style: bool = False
    top_rated_style_used: bool = False
    use_existing_products: bool = True
    generate_affiliate_links: bool = False


class JobDefinition(GenerationParams):
    """User-editable job definition. Validated on every create/update."""

    name: str = ""
    schedule_time: str
    timezone: str = "America/New_York"
    is_active: bool = True

    @field_validator("schedule_time")
    @classmethod
    def _valid_time(cls, v: str) -> str:
        return _normalize_time(v)

    @field_validator("timezone")
    @classmethod
    def _valid_timezone(cls, v: str) -> str:
        return _check_timezone(v)

    @model_validator(mode="after")
    def _check_required(self) -> JobDefinition:
        self.niches = _clean_list(self.niches)
        self.tones = _clean_list(self.tones)
        self.templates = _clean_list(self.templates)
        self.platforms = _clean_list(self.platforms)
        missing = [
            f for f in ("niches", "templates", "platforms") if not getattr(self, f)
        ]
        if missing:
            raise ValueError(f"required fields are empty: {', '.join(missing)}")
        if not self.name.strip():
            tones = f" ({', '.join(self.tones)})" if self.tones else ""
            self.name = f"Daily {', '.join(self.niches)} content{tones}"
        return self

    @property
    def schedule(self) -> ScheduleSpec:
        return ScheduleSpec(schedule_time=self.schedule_time, timezone=self.timezone)

    @property
    def params(self) -> GenerationParams:
        return GenerationParams(**self.model_dump(include=set(GenerationParams.model_fields)))

    def definition(self) -> dict[str, Any]:
        """Plain dict of the editable fields."""
        return self.model_dump(include=set(DEFINITION_FIELDS))


class ScheduledJob(JobDefinition):
    """Persisted job row with run statistics."""

    id: int
    created_at: datetime | None = None
    updated_at: datetime | None = None
    last_run_at: datetime | None = None
    total_runs: int = 0
    consecutive_failures: int = 0
    last_error: str | None = None


class JobUpdate(BaseModel):
    """Partial update. Unset fields keep their stored value."""

    name: str | None = None
    schedule_time: str | None = None
    timezone: str | None = None
    niches: list[str] | None = None
    tones: list[str] | None = None
    templates: list[str] | None = None
    platforms: list[str] | None = None
    ai_model: str | None = None
    use_spartan_format: bool | None = None
    use_smart_style: bool | None = None
    top_rated_style_used: bool | None = None
    use_existing_products: bool | None = None
    generate_affiliate_links: bool | None = None
    is_active: bool | None = None

    @classmethod
    def parse(cls, data: dict[str, Any]) -> JobUpdate:
        try:
            return cls(**data)
        except ValidationError as e:
            raise JobValidationError(_format_errors(e)) from e

    def apply(self, current: JobDefinition) -> JobDefinition:
        merged = current.definition()
        merged.update(self.model_dump(exclude_unset=True, exclude_none=True))
        return validate_definition(merged)


def validate_definition(data: dict[str, Any]) -> JobDefinition:
    """Build a JobDefinition, converting pydantic errors to JobValidationError."""
    try:
        return JobDefinition(**data)
    except ValidationError as e:
        raise JobValidationError(_format_errors(e)) from e


def _format_errors(error: ValidationError) -> str:
    parts = []
    for err in error.errors():
        loc = ".".join(str(p) for p in err["loc"])
        msg = err["msg"].removeprefix("Value error, ")
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(parts)


# ════════════════════════════════════════════════════════════
# TRIGGERS
# ════════════════════════════════════════════════════════════


class TriggerSource(str, Enum):
    """Closed set of caller identities allowed to start generation."""

    MANUAL_UI = "manual_ui"
    VERIFIED_WEBHOOK = "verified_webhook"
    SCHEDULED_JOB = "scheduled_job"


class TriggerRequest(BaseModel):
    """Ephemeral trigger descriptor. Never persisted."""

    source: str | None = None
    verified: bool = False
    subject: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def internal(cls, job_id: int | None = None) -> TriggerRequest:
        """The scheduler's own identity, used when a timer fires."""
        payload = {"job_id": job_id} if job_id is not None else {}
        return cls(
            source=TriggerSource.SCHEDULED_JOB.value,
            verified=True,
            subject="scheduler",
            payload=payload,
        )


class TriggerDecision(BaseModel):
    """Audit entry for one gate decision."""

    source: str | None
    resolved: TriggerSource | None = None
    allowed: bool
    reason: str | None = None
    subject: str | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# ════════════════════════════════════════════════════════════
# RUNS
# ════════════════════════════════════════════════════════════


class GenerationResult(BaseModel):
    success: bool
    items_generated: int = 0
    errors: list[str] = Field(default_factory=list)


class RunStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"
    DENIED = "denied"
    SKIPPED = "skipped"


class RunOutcome(BaseModel):
    job_id: int
    run_id: str
    status: RunStatus
    source: str | None = None
    items_generated: int = 0
    error: str | None = None
    duration_ms: int = 0
    auto_paused: bool = False


# ════════════════════════════════════════════════════════════
# EMERGENCY
# ════════════════════════════════════════════════════════════


class EmergencyStopReport(BaseModel):
    jobs_stopped: int = 0
    timers_stopped: int = 0
    runs_cancelled: int = 0
    errors: list[str] = Field(default_factory=list)


class LockdownStatus(BaseModel):
    active_timer_count: int
    active_job_ids: list[int]
    in_flight_run_count: int
    persisted_active_count: int
    lockdown: bool
