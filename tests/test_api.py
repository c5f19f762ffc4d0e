"""Tests for the control-surface API (jobs, trigger, status, emergency stop)."""

from __future__ import annotations

import json

import pytest
from httpx import ASGITransport, AsyncClient

from glowbot.api.app import attach_services, create_app
from glowbot.api.auth import create_access_token, sign_body
from glowbot.core.config import Config
from glowbot.core.services import build_services

SECRET = "hook-secret"

JOB = {
    "schedule_time": "09:00",
    "niches": ["skincare"],
    "templates": ["product_review"],
    "platforms": ["tiktok"],
}


def _make_app(config, store, generator):
    """Create test app with pre-wired services (lifespan is not run)."""
    application = create_app()
    services = build_services(config, store=store, generator=generator)
    attach_services(application, services)
    return application


@pytest.fixture
def app(tmp_path, store, generator):
    config = Config(
        database={"path": store.db_path},
        triggers={"webhook_secret": SECRET},
    )
    return _make_app(config, store, generator)


@pytest.fixture
async def client(app):
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as c:
        yield c


async def _create(client, **overrides) -> dict:
    resp = await client.post("/jobs", json={**JOB, **overrides})
    assert resp.status_code == 201, resp.text
    return resp.json()


async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


# ── Jobs ────────────────────────────────────────────────────


async def test_create_and_get(client, app):
    job = await _create(client)
    assert job["name"] == "Daily skincare content"
    assert job["is_active"] is True
    assert app.state.registry.is_armed(job["id"])

    resp = await client.get(f"/jobs/{job['id']}")
    assert resp.status_code == 200
    assert resp.json()["schedule_time"] == "09:00"


async def test_create_invalid(client, app):
    resp = await client.post("/jobs", json={**JOB, "schedule_time": "9am"})
    assert resp.status_code == 400
    assert "schedule_time" in resp.json()["detail"]
    assert len(app.state.registry) == 0


async def test_list_jobs(client):
    await _create(client)
    await _create(client, is_active=False)

    assert len((await client.get("/jobs")).json()) == 2
    assert len((await client.get("/jobs", params={"active_only": True})).json()) == 1


async def test_get_missing(client):
    resp = await client.get("/jobs/999")
    assert resp.status_code == 404


async def test_update_deactivates(client, app):
    job = await _create(client)
    resp = await client.put(f"/jobs/{job['id']}", json={"is_active": False})
    assert resp.status_code == 200
    assert resp.json()["is_active"] is False
    assert app.state.registry.list_active() == {}


async def test_update_bad_value(client):
    job = await _create(client)
    resp = await client.put(f"/jobs/{job['id']}", json={"timezone": "Nowhere/Land"})
    assert resp.status_code == 400


async def test_delete(client, app):
    job = await _create(client)
    resp = await client.delete(f"/jobs/{job['id']}")
    assert resp.json() == {"status": "deleted", "job_id": job["id"]}
    assert len(app.state.registry) == 0

    resp = await client.delete(f"/jobs/{job['id']}")
    assert resp.status_code == 404


# ── Trigger ─────────────────────────────────────────────────


async def test_manual_trigger(client, generator):
    job = await _create(client)
    resp = await client.post(
        f"/trigger/{job['id']}", headers={"X-Generation-Source": "manual_ui"}
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "success"
    assert data["items_generated"] == 3
    generator.generate.assert_awaited_once()

    runs = (await client.get(f"/jobs/{job['id']}/runs")).json()
    assert len(runs) == 1
    assert runs[0]["source"] == "manual_ui"


async def test_trigger_without_source_blocked(client, generator):
    job = await _create(client)
    resp = await client.post(f"/trigger/{job['id']}")
    assert resp.status_code == 403
    body = resp.json()
    assert body["detail"] == "Content generation blocked by trigger gate"
    assert "missing" in body["reason"]
    generator.generate.assert_not_called()


async def test_trigger_cannot_impersonate_scheduler(client, generator):
    job = await _create(client)
    resp = await client.post(
        f"/trigger/{job['id']}", headers={"X-Generation-Source": "scheduled_job"}
    )
    assert resp.status_code == 403
    assert resp.json()["source"] == "scheduled_job"
    generator.generate.assert_not_called()


async def test_signed_webhook_trigger(client, generator):
    job = await _create(client)
    body = json.dumps({"campaign": "spring"}).encode()
    resp = await client.post(
        f"/trigger/{job['id']}",
        content=body,
        headers={
            "Content-Type": "application/json",
            "X-Generation-Source": "make_com_webhook",
            "X-Webhook-Signature": sign_body(body, SECRET),
        },
    )
    assert resp.status_code == 200
    assert resp.json()["source"] == "verified_webhook"
    generator.generate.assert_awaited_once()


async def test_webhook_with_bad_signature(client, generator):
    job = await _create(client)
    body = b'{"campaign": "spring"}'
    resp = await client.post(
        f"/trigger/{job['id']}",
        content=body,
        headers={
            "X-Generation-Source": "verified_webhook",
            "X-Webhook-Signature": sign_body(body, "wrong-secret"),
        },
    )
    assert resp.status_code == 403
    assert "signature" in resp.json()["reason"]
    generator.generate.assert_not_called()


async def test_trigger_missing_job(client):
    resp = await client.post("/trigger/321", headers={"X-Generation-Source": "manual_ui"})
    assert resp.status_code == 404


async def test_trigger_log(client):
    job = await _create(client)
    await client.post(f"/trigger/{job['id']}", headers={"X-Generation-Source": "bogus"})

    entries = (await client.get("/trigger-log")).json()
    assert entries[-1]["allowed"] is False
    assert entries[-1]["source"] == "bogus"


# ── Status / emergency stop ─────────────────────────────────


async def test_status_and_emergency_stop(client):
    job = await _create(client)
    await _create(client, schedule_time="18:00")

    status = (await client.get("/status")).json()
    assert status["lockdown"]["lockdown"] is False
    assert status["active_timers"][str(job["id"])] == "0 9 * * * (America/New_York)"
    assert status["in_flight"] == []
    assert status["enabled_sources"] == ["manual_ui", "verified_webhook", "scheduled_job"]

    report = (await client.post("/emergency-stop")).json()
    assert report["timers_stopped"] == 2
    assert report["jobs_stopped"] == 2
    assert report["errors"] == []

    status = (await client.get("/status")).json()
    assert status["lockdown"]["lockdown"] is True
    assert status["active_timers"] == {}

    jobs = (await client.get("/jobs")).json()
    assert all(j["is_active"] is False for j in jobs)


# ── Auth enabled ────────────────────────────────────────────


@pytest.fixture
async def secured(tmp_path, store, generator):
    config = Config(
        database={"path": store.db_path},
        auth={"jwt_secret_key": "ui-secret"},
    )
    application = _make_app(config, store, generator)
    async with AsyncClient(
        transport=ASGITransport(app=application), base_url="http://test"
    ) as c:
        yield c


def _auth(subject: str = "ops") -> dict[str, str]:
    token = create_access_token(subject, "ui-secret", "HS256", 5)
    return {"Authorization": f"Bearer {token}"}


async def test_auth_required_for_jobs(secured):
    assert (await secured.get("/jobs")).status_code == 401
    assert (await secured.get("/jobs", headers=_auth())).status_code == 200


async def test_invalid_token_rejected(secured):
    resp = await secured.get("/jobs", headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 401


async def test_manual_trigger_needs_session(secured, generator):
    resp = await secured.post("/jobs", json=JOB, headers=_auth())
    job_id = resp.json()["id"]

    resp = await secured.post(f"/trigger/{job_id}", headers={"X-Generation-Source": "manual_ui"})
    assert resp.status_code == 401
    generator.generate.assert_not_called()

    resp = await secured.post(
        f"/trigger/{job_id}",
        headers={"X-Generation-Source": "manual_ui", **_auth()},
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "success"
