"""
config.py - Runtime settings for AutoMatch.

Settings come from the environment (a local `.env` is loaded first through
python-dotenv). Bad values never stop the engine: they are logged and the
default is kept.
"""

from __future__ import annotations

import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

from logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_MAX_RESULTS = 5
DEFAULT_MIN_SCORE = 0
DEFAULT_REASON_LIMIT = 3
DEFAULT_DATA_FILE = "data/marketplace.json"
DEFAULT_PORT = 8000

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


class AutoMatchSettings(BaseModel):
    """Engine and surface settings."""

    model_config = ConfigDict(frozen=True)

    max_results: int = Field(default=DEFAULT_MAX_RESULTS, ge=0)
    min_score: int = Field(default=DEFAULT_MIN_SCORE, ge=0, le=100)
    reason_limit: int = Field(default=DEFAULT_REASON_LIMIT, ge=1)
    # None -> latest year in the underserved-area table.
    program_year: Optional[int] = None
    block_on_failing_eligibility: bool = False
    data_file: str = DEFAULT_DATA_FILE
    providers_csv: Optional[str] = None
    port: int = Field(default=DEFAULT_PORT, gt=0)
    log_level: str = "INFO"


def _env_int(name: str, default: Optional[int], minimum: int = 0) -> Optional[int]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("settings_invalid | name=%s | value=%r | fallback=%r", name, raw, default)
        return default
    if value < minimum:
        logger.warning("settings_out_of_range | name=%s | value=%s | minimum=%s | fallback=%r", name, value, minimum, default)
        return default
    return value


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    if raw in _TRUE_VALUES:
        return True
    if raw in _FALSE_VALUES:
        return False
    logger.warning("settings_invalid | name=%s | value=%r | fallback=%r", name, raw, default)
    return default


def load_settings(dotenv: bool = True) -> AutoMatchSettings:
    """Build settings from environment variables."""
    if dotenv:
        load_dotenv()

    min_score = _env_int("AUTOMATCH_MIN_SCORE", DEFAULT_MIN_SCORE)
    if min_score is not None and min_score > 100:
        logger.warning("settings_out_of_range | name=AUTOMATCH_MIN_SCORE | value=%s | fallback=%s", min_score, DEFAULT_MIN_SCORE)
        min_score = DEFAULT_MIN_SCORE

    settings = AutoMatchSettings(
        max_results=_env_int("AUTOMATCH_MAX_RESULTS", DEFAULT_MAX_RESULTS),
        min_score=min_score,
        reason_limit=_env_int("AUTOMATCH_REASON_LIMIT", DEFAULT_REASON_LIMIT, minimum=1),
        program_year=_env_int("AUTOMATCH_PROGRAM_YEAR", None, minimum=1),
        block_on_failing_eligibility=_env_bool("AUTOMATCH_BLOCK_ON_FAILING_ELIGIBILITY", False),
        data_file=os.getenv("AUTOMATCH_DATA_FILE", "").strip() or DEFAULT_DATA_FILE,
        providers_csv=os.getenv("AUTOMATCH_PROVIDERS_CSV", "").strip() or None,
        port=_env_int("PORT", DEFAULT_PORT, minimum=1),
        log_level=os.getenv("AUTOMATCH_LOG_LEVEL", "").strip().upper() or "INFO",
    )
    logger.debug(
        "settings_loaded | max_results=%s | min_score=%s | program_year=%s | block_on_failing=%s | data_file=%s",
        settings.max_results,
        settings.min_score,
        settings.program_year,
        settings.block_on_failing_eligibility,
        settings.data_file,
    )
    return settings
