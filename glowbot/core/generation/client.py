"""HTTP client for the unified content generator."""

from __future__ import annotations

from typing import Any, Protocol

import httpx
from loguru import logger

from glowbot.core.cron.errors import GenerationError
from glowbot.core.cron.types import GenerationParams, GenerationResult


class GenerationService(Protocol):
    """Anything that can turn recognized parameters into generated content."""

    async def generate(
        self, params: GenerationParams, context: dict[str, Any] | None = None
    ) -> GenerationResult: ...


class HttpGenerationService:
    """Async client for the unified generator endpoint.

    Parameters
    ----------
    endpoint : str
        Full URL of the generator (e.g. "http://localhost:5000/api/generate-unified").
    api_key : str
        Sent as a bearer token when non-empty.
    timeout_s : float
        Transport timeout. The runner applies its own bound on top.
    transport : httpx.AsyncBaseTransport, optional
        Custom transport (tests pass ``httpx.MockTransport``).
    """

    def __init__(
        self,
        endpoint: str,
        api_key: str = "",
        timeout_s: float = 180.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.endpoint = endpoint
        self.api_key = api_key
        self.timeout_s = timeout_s
        self._transport = transport

    async def generate(
        self, params: GenerationParams, context: dict[str, Any] | None = None
    ) -> GenerationResult:
        payload = build_payload(params, context)
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout_s),
            headers=self._headers(),
            transport=self._transport,
        ) as client:
            resp = await client.post(self.endpoint, json=payload)
            if resp.status_code >= 400:
                logger.warning(
                    f"Generator call failed ({resp.status_code}): {resp.text[:200]}"
                )
            resp.raise_for_status()
            try:
                data = resp.json()
            except ValueError as e:
                raise GenerationError(f"generator returned non-JSON body: {e}") from e
        return parse_result(data)

    def _headers(self) -> dict[str, str]:
        headers = {"x-generation-source": "scheduled_job"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers


def build_payload(
    params: GenerationParams, context: dict[str, Any] | None = None
) -> dict[str, Any]:
    """Request body in the generator's camelCase shape."""
    payload: dict[str, Any] = {
        "mode": "automated",
        "selectedNiches": params.niches,
        "tones": params.tones,
        "templates": params.templates,
        "platforms": params.platforms,
        "aiModel": params.ai_model,
        "useSpartanFormat": params.use_spartan_format,
        "useSmartStyle": params.use_smart_style,
        "topRatedStyleUsed": params.top_rated_style_used,
        "useExistingProducts": params.use_existing_products,
        "generateAffiliateLinks": params.generate_affiliate_links,
    }
    if context:
        payload.update(context)
    return payload


def parse_result(data: Any) -> GenerationResult:
    """Normalize the generator response.

    Accepts ``itemsGenerated`` / ``items_generated`` counts or a
    ``results`` list; ``error`` and ``errors`` are merged.
    """
    if not isinstance(data, dict):
        raise GenerationError(f"unexpected generator response type: {type(data).__name__}")

    items = data.get("itemsGenerated", data.get("items_generated"))
    if items is None:
        results = data.get("results") or []
        items = len(results) if isinstance(results, list) else 0

    errors = [str(e) for e in data.get("errors") or []]
    if data.get("error"):
        errors.insert(0, str(data["error"]))

    return GenerationResult(
        success=bool(data.get("success")),
        items_generated=int(items),
        errors=errors,
    )
