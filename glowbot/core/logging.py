"""Loguru sink configuration."""

from __future__ import annotations

import os
import sys

from loguru import logger


def setup_logging(level: str | None = None) -> None:
    """Replace loguru's default handler with a single stderr sink.

    ``level`` falls back to the ``LOG_LEVEL`` env variable, then INFO.
    """
    if level is None:
        level = os.environ.get("LOG_LEVEL", "INFO")

    logger.remove()
    logger.add(
        sys.stderr,
        format="<level>{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} | {message}</level>",
        level=level.upper(),
        colorize=True,
        backtrace=True,
        diagnose=False,
    )
