"""Tests for TriggerGate — deny-by-default admission of generation triggers."""

from __future__ import annotations

import pytest

from glowbot.core.config.schema import TriggersConfig
from glowbot.core.cron.errors import AuthorizationError
from glowbot.core.cron.gate import AUDIT_LOG_SIZE, TriggerGate, classify
from glowbot.core.cron.types import TriggerRequest, TriggerSource


@pytest.fixture
def gate():
    return TriggerGate()


def test_classify_aliases():
    assert classify("manual_ui") is TriggerSource.MANUAL_UI
    assert classify(" Manual ") is TriggerSource.MANUAL_UI
    assert classify("make-com-webhook") is TriggerSource.VERIFIED_WEBHOOK
    assert classify("bulk_scheduler") is TriggerSource.SCHEDULED_JOB
    assert classify("zapier") is None
    assert classify(None) is None
    assert classify("") is None


def test_missing_source_denied(gate):
    with pytest.raises(AuthorizationError, match="missing"):
        gate.check(TriggerRequest(source=None, verified=True))


def test_unknown_source_denied(gate):
    with pytest.raises(AuthorizationError) as exc:
        gate.check(TriggerRequest(source="cron_bot_9000", verified=True))
    assert "not a recognized" in exc.value.reason
    assert exc.value.source == "cron_bot_9000"


def test_verified_manual_admitted(gate):
    assert gate.check(TriggerRequest(source="manual_ui", verified=True)) is TriggerSource.MANUAL_UI


def test_webhook_alias_admitted_when_signed(gate):
    req = TriggerRequest(source="make_com_webhook", verified=True)
    assert gate.check(req) is TriggerSource.VERIFIED_WEBHOOK


def test_unsigned_webhook_denied(gate):
    with pytest.raises(AuthorizationError, match="signature"):
        gate.check(TriggerRequest(source="verified_webhook"))


def test_scheduler_identity_cannot_be_claimed(gate):
    """An unverified request naming the scheduler is refused."""
    with pytest.raises(AuthorizationError, match="not verified"):
        gate.check(TriggerRequest(source="scheduled_job"))


def test_internal_request_admitted(gate):
    assert gate.check(TriggerRequest.internal(1)) is TriggerSource.SCHEDULED_JOB


def test_disabled_source_denied():
    gate = TriggerGate(TriggersConfig(allow_webhook=False))
    with pytest.raises(AuthorizationError, match="disabled"):
        gate.check(TriggerRequest(source="verified_webhook", verified=True))
    assert TriggerSource.VERIFIED_WEBHOOK not in gate.enabled_sources()
    assert TriggerSource.MANUAL_UI in gate.enabled_sources()


def test_is_allowed(gate):
    assert gate.is_allowed(TriggerRequest(source="manual", verified=True))
    assert not gate.is_allowed(TriggerRequest(source="bogus"))


def test_decisions_recorded(gate):
    gate.is_allowed(TriggerRequest(source="manual_ui", verified=True, subject="ops"))
    gate.is_allowed(TriggerRequest(source="bogus"))

    log = gate.recent_decisions()
    assert [d.allowed for d in log] == [True, False]
    assert log[0].resolved is TriggerSource.MANUAL_UI
    assert log[0].subject == "ops"
    assert log[1].reason


def test_audit_log_bounded(gate):
    for _ in range(AUDIT_LOG_SIZE + 50):
        gate.is_allowed(TriggerRequest(source="bogus"))
    assert len(gate.recent_decisions()) == AUDIT_LOG_SIZE
