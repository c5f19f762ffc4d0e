"""Error types for the job scheduler.

Run failures are not exceptions: the runner converts them into a
``RunOutcome`` so nothing from the generation call escapes into the
timer loop.
"""


class GlowBotError(Exception):
    """Base error for glowbot."""


class JobValidationError(GlowBotError):
    """Job definition is malformed (bad schedule, empty niches, ...)."""


class JobNotFoundError(GlowBotError):
    """No persisted job with the requested id."""

    def __init__(self, job_id: int):
        super().__init__(f"Scheduled job {job_id} not found")
        self.job_id = job_id


class DuplicateRegistrationError(GlowBotError):
    """A timer is already armed for this job id. Invariant violation."""

    def __init__(self, job_id: int):
        super().__init__(f"Timer already armed for job {job_id}")
        self.job_id = job_id


class AuthorizationError(GlowBotError):
    """Trigger source is not admitted by the gate."""

    def __init__(self, reason: str, source: str | None = None):
        super().__init__(reason)
        self.reason = reason
        self.source = source


class PersistenceError(GlowBotError):
    """JobStore read/write failed."""


class GenerationError(GlowBotError):
    """Generation service returned an unusable response."""
