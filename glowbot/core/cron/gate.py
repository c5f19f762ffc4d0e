"""TriggerGate — admission control for anything that starts a paid generation run."""

from __future__ import annotations

from collections import deque

from loguru import logger

from glowbot.core.config.schema import TriggersConfig
from glowbot.core.cron.errors import AuthorizationError
from glowbot.core.cron.types import TriggerDecision, TriggerRequest, TriggerSource

# Tokens older clients still send. Anything not listed here is unknown.
_ALIASES: dict[str, TriggerSource] = {
    "manual_ui": TriggerSource.MANUAL_UI,
    "manual": TriggerSource.MANUAL_UI,
    "verified_webhook": TriggerSource.VERIFIED_WEBHOOK,
    "make_com_webhook": TriggerSource.VERIFIED_WEBHOOK,
    "make-com-webhook": TriggerSource.VERIFIED_WEBHOOK,
    "scheduled_job": TriggerSource.SCHEDULED_JOB,
    "bulk_scheduler": TriggerSource.SCHEDULED_JOB,
    "bulk-scheduler": TriggerSource.SCHEDULED_JOB,
}

AUDIT_LOG_SIZE = 100


def classify(token: str | None) -> TriggerSource | None:
    """Map a raw source token onto the closed TriggerSource set, else None."""
    if not token:
        return None
    return _ALIASES.get(token.strip().lower())


class TriggerGate:
    """Deny-by-default check over TriggerSource.

    A request is admitted only when its token classifies to a known source,
    that source is enabled in config, and the transport vouched for the
    identity (`verified`): a valid webhook signature, a valid UI session,
    or the scheduler calling itself. HTTP callers can never claim the
    scheduler identity because the transport never marks it verified.
    """

    def __init__(self, config: TriggersConfig | None = None):
        self.config = config or TriggersConfig()
        self._log: deque[TriggerDecision] = deque(maxlen=AUDIT_LOG_SIZE)

    def check(self, request: TriggerRequest) -> TriggerSource:
        """Return the admitted source or raise AuthorizationError."""
        source = classify(request.source)
        reason = self._deny_reason(request, source)
        decision = TriggerDecision(
            source=request.source,
            resolved=source,
            allowed=reason is None,
            reason=reason,
            subject=request.subject,
        )
        self._log.append(decision)

        if reason is not None:
            logger.warning(
                f"Trigger denied: source={request.source!r} subject={request.subject!r}: {reason}"
            )
            raise AuthorizationError(reason, source=request.source)

        logger.debug(f"Trigger admitted: {source.value} (subject={request.subject!r})")
        return source

    def is_allowed(self, request: TriggerRequest) -> bool:
        try:
            self.check(request)
        except AuthorizationError:
            return False
        return True

    def enabled_sources(self) -> list[TriggerSource]:
        return [s for s in TriggerSource if self._source_enabled(s)]

    def recent_decisions(self) -> list[TriggerDecision]:
        return list(self._log)

    def _deny_reason(
        self, request: TriggerRequest, source: TriggerSource | None
    ) -> str | None:
        if not request.source:
            return "Generation source is missing"
        if source is None:
            allowed = ", ".join(s.value for s in TriggerSource)
            return f"Source {request.source!r} is not a recognized trigger source ({allowed})"
        if not self._source_enabled(source):
            return f"Source {source.value!r} is disabled by configuration"
        if not request.verified:
            if source is TriggerSource.VERIFIED_WEBHOOK:
                return "Webhook trigger carries no valid signature"
            return f"Source {source.value!r} was not verified by its transport"
        return None

    def _source_enabled(self, source: TriggerSource) -> bool:
        if source is TriggerSource.MANUAL_UI:
            return self.config.allow_manual
        if source is TriggerSource.VERIFIED_WEBHOOK:
            return self.config.allow_webhook
        return self.config.allow_scheduled
