"""Tests for the HTTP generation client."""

from __future__ import annotations

import json

import httpx
import pytest

from glowbot.core.cron.errors import GenerationError
from glowbot.core.cron.types import GenerationParams
from glowbot.core.generation.client import HttpGenerationService, build_payload, parse_result

ENDPOINT = "http://gen.test/api/generate-unified"


@pytest.fixture
def params():
    return GenerationParams(
        niches=["skincare"],
        tones=["friendly"],
        templates=["review"],
        platforms=["tiktok", "instagram"],
        use_smart_style=True,
    )


def test_build_payload(params):
    payload = build_payload(params, {"scheduledJobId": 4})
    assert payload["mode"] == "automated"
    assert payload["selectedNiches"] == ["skincare"]
    assert payload["platforms"] == ["tiktok", "instagram"]
    assert payload["aiModel"] == "claude"
    assert payload["useSmartStyle"] is True
    assert payload["useExistingProducts"] is True
    assert payload["scheduledJobId"] == 4


def test_parse_result_counts():
    assert parse_result({"success": True, "itemsGenerated": 4}).items_generated == 4
    assert parse_result({"success": True, "items_generated": 2}).items_generated == 2
    assert parse_result({"success": True, "results": [{}, {}, {}]}).items_generated == 3
    assert parse_result({"success": True}).items_generated == 0


def test_parse_result_errors_merged():
    result = parse_result({"success": False, "error": "top", "errors": ["a", "b"]})
    assert result.success is False
    assert result.errors == ["top", "a", "b"]


def test_parse_result_rejects_non_object():
    with pytest.raises(GenerationError):
        parse_result(["not", "a", "dict"])


async def test_generate_posts_payload(params):
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["headers"] = request.headers
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"success": True, "itemsGenerated": 2})

    service = HttpGenerationService(
        ENDPOINT, api_key="k-1", transport=httpx.MockTransport(handler)
    )
    result = await service.generate(params, {"runId": "abc"})

    assert result.success is True
    assert result.items_generated == 2
    assert seen["headers"]["x-generation-source"] == "scheduled_job"
    assert seen["headers"]["authorization"] == "Bearer k-1"
    assert seen["body"]["runId"] == "abc"


async def test_generate_http_error_raises(params):
    transport = httpx.MockTransport(lambda r: httpx.Response(502, text="bad gateway"))
    service = HttpGenerationService(ENDPOINT, transport=transport)
    with pytest.raises(httpx.HTTPStatusError):
        await service.generate(params)


async def test_generate_non_json_raises(params):
    transport = httpx.MockTransport(lambda r: httpx.Response(200, text="<html>oops</html>"))
    service = HttpGenerationService(ENDPOINT, transport=transport)
    with pytest.raises(GenerationError):
        await service.generate(params)


async def test_no_auth_header_without_key(params):
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["headers"] = request.headers
        return httpx.Response(200, json={"success": True})

    service = HttpGenerationService(ENDPOINT, transport=httpx.MockTransport(handler))
    await service.generate(params)
    assert "authorization" not in seen["headers"]
