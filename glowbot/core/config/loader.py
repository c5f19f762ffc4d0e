"""Configuration loader: locate the YAML file and build a Config from it."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from loguru import logger

from glowbot.core.config.schema import Config

CONFIG_ENV = "GLOWBOT_CONFIG"
DEFAULT_FILES = ("config.yaml", "config.yml")


def load_config(config_path: str | Path | None = None) -> Config:
    """
    Build the Config.

    The file comes from ``config_path``, else ``$GLOWBOT_CONFIG``, else the
    first of ``config.yaml`` / ``config.yml`` in the working directory. A
    missing file means defaults. ``${VAR}`` references in string values are
    expanded, so secrets can stay out of the file. ``GLOWBOT_*`` env
    variables still override whatever the file sets.
    """
    path = find_config_file(config_path)
    if path is None:
        logger.debug("No config file found, using defaults")
        return Config()
    logger.debug(f"Loading config from {path}")
    return Config(**read_yaml(path))


def find_config_file(config_path: str | Path | None = None) -> Path | None:
    """Resolve which config file to read. None when there is nothing to read."""
    explicit = config_path or os.environ.get(CONFIG_ENV)
    if explicit:
        path = Path(explicit).expanduser()
        return path if path.is_file() else None

    for name in DEFAULT_FILES:
        candidate = Path(name)
        if candidate.is_file():
            return candidate
    return None


def read_yaml(path: Path) -> dict[str, Any]:
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return _expand_env(data)


def _expand_env(value: Any) -> Any:
    if isinstance(value, str):
        return os.path.expandvars(value)
    if isinstance(value, dict):
        return {k: _expand_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_expand_env(v) for v in value]
    return value
