"""Shared fixtures: tmp job store, mock generator, wired services."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from glowbot.core.config import Config
from glowbot.core.cron.types import GenerationResult, validate_definition
from glowbot.core.services import build_services
from glowbot.memory.store import JobStore


def _make_definition(**overrides):
    data = {
        "schedule_time": "09:00",
        "timezone": "America/New_York",
        "niches": ["skincare"],
        "tones": ["friendly"],
        "templates": ["product_review"],
        "platforms": ["tiktok"],
    }
    data.update(overrides)
    return validate_definition(data)


@pytest.fixture
def make_definition():
    """Factory for valid JobDefinitions; keyword overrides replace defaults."""
    return _make_definition


@pytest.fixture
def config(tmp_path):
    return Config(database={"path": str(tmp_path / "test.db")})


@pytest.fixture
def store(config):
    return JobStore(config.database.path)


@pytest.fixture
def generator():
    gen = AsyncMock()
    gen.generate = AsyncMock(
        return_value=GenerationResult(success=True, items_generated=3)
    )
    return gen


@pytest.fixture
def services(config, store, generator):
    """Fully wired components. The timer loop is not started (timers stay pending)."""
    return build_services(config, store=store, generator=generator)
