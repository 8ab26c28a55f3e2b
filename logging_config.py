"""
logging_config.py - Centralized logging configuration.

Every AutoMatch module logs through a named logger obtained here. Messages
use the `event | key=value | ...` layout so scoring runs can be grepped.
"""

from __future__ import annotations

import logging
import sys

TEXT_FORMAT = "%(asctime)s [%(name)-20s] %(levelname)-7s %(message)s"
JSON_FORMAT = '{"ts":"%(asctime)s","level":"%(levelname)s","logger":"%(name)s","event":"%(message)s"}'
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that are chatty at INFO when the API is served.
QUIET_LOGGERS = ("httpx", "uvicorn.access")


def _formatter(json_format: bool) -> logging.Formatter:
    return logging.Formatter(JSON_FORMAT if json_format else TEXT_FORMAT, datefmt=DATE_FORMAT)


def setup_logging(level: int = logging.INFO, json_format: bool = False) -> None:
    """Route every AutoMatch logger to one stderr handler.

    Stdout stays free for CLI output (text block or JSON payload).

    Args:
        level: Root logging level.
        json_format: Emit one JSON object per line for log aggregation.
    """
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_formatter(json_format))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def get_logger(name: str) -> logging.Logger:
    """Get a named logger."""
    return logging.getLogger(name)


def level_from_name(name: str | None, default: int = logging.INFO) -> int:
    """Map a level name such as 'debug' to its logging constant."""
    text = str(name or "").strip().upper()
    if not text:
        return default
    value = logging.getLevelName(text)
    return value if isinstance(value, int) else default
