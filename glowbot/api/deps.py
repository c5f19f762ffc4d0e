"""FastAPI dependency injection — pull components from app.state."""

from __future__ import annotations

from fastapi import Depends, Header, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from glowbot.api.auth import decode_token, verify_signature
from glowbot.core.config.schema import Config
from glowbot.core.cron.emergency import EmergencyController
from glowbot.core.cron.gate import TriggerGate, classify
from glowbot.core.cron.registry import CronRegistry
from glowbot.core.cron.scheduler import JobScheduler
from glowbot.core.cron.types import TriggerRequest, TriggerSource

_bearer_scheme = HTTPBearer(auto_error=False)


def get_config(request: Request) -> Config:
    return request.app.state.config


def get_scheduler(request: Request) -> JobScheduler:
    return request.app.state.scheduler


def get_registry(request: Request) -> CronRegistry:
    return request.app.state.registry


def get_gate(request: Request) -> TriggerGate:
    return request.app.state.gate


def get_emergency(request: Request) -> EmergencyController:
    return request.app.state.emergency


def _session_subject(
    config: Config, credentials: HTTPAuthorizationCredentials | None
) -> str:
    if not config.auth_enabled:
        return "default"
    if credentials is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return decode_token(
        credentials.credentials,
        config.auth.jwt_secret_key,
        config.auth.jwt_algorithm,
    )


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> str:
    """Subject of the UI session. Returns "default" when auth is disabled."""
    return _session_subject(request.app.state.config, credentials)


async def get_trigger_request(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
    x_generation_source: str | None = Header(None),
    x_webhook_signature: str | None = Header(None),
) -> TriggerRequest:
    """Build the TriggerRequest for an inbound HTTP trigger.

    Only the transport decides ``verified``:
        manual_ui         valid session (or auth disabled)
        verified_webhook  HMAC signature over the raw body
        scheduled_job     never, the scheduler does not call itself over HTTP
    """
    config: Config = request.app.state.config
    source = classify(x_generation_source)
    body = await request.body()
    verified = False
    subject: str | None = None

    if source is TriggerSource.MANUAL_UI:
        subject = _session_subject(config, credentials)
        verified = True
    elif source is TriggerSource.VERIFIED_WEBHOOK:
        verified = verify_signature(body, x_webhook_signature, config.triggers.webhook_secret)
        subject = "webhook"

    payload = {}
    if body:
        try:
            payload = await request.json()
        except ValueError:
            payload = {}
    if not isinstance(payload, dict):
        payload = {"body": payload}

    return TriggerRequest(
        source=x_generation_source,
        verified=verified,
        subject=subject or request.headers.get("user-agent"),
        payload=payload,
    )
