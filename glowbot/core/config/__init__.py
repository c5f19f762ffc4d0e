"""Configuration module."""

from glowbot.core.config.loader import load_config
from glowbot.core.config.schema import Config

__all__ = ["Config", "load_config"]
