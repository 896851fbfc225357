# action_engine/logging_config.py
"""
Logging configuration for the action engine.

Usage:
    from action_engine.logging_config import setup_logging
    setup_logging()  # once, at process startup

Environment variables:
    LOG_LEVEL: DEBUG, INFO, WARNING, ERROR or CRITICAL (default: INFO)
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Optional

VALID_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def setup_logging(level: Optional[str] = None) -> None:
    """
    Configure the root logger and quiet the chattier third-party loggers.

    Args:
        level: Log level name. Falls back to LOG_LEVEL, then INFO.
    """
    if level is None:
        level = os.getenv("LOG_LEVEL", "INFO")
    level = level.upper()

    if level not in VALID_LEVELS:
        level = "INFO"

    numeric_level = getattr(logging, level)

    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
    )

    logging.getLogger("action_engine").setLevel(numeric_level)

    # Model SDK and HTTP client log every request at INFO
    if level != "DEBUG":
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)
        logging.getLogger("openai").setLevel(logging.WARNING)

    logging.getLogger(__name__).debug("Logging configured at %s level", level)
