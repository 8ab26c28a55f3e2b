"""
geography.py - State reference table and underserved-area table.

Both tables are module-level constants wrapped in read-only mappings. They
are built once at import and shared by every matching request without
locking.

    resolve_state(value)          -> StateInfo | None
    area_code(value)              -> "WV" / "PR" / ""
    underserved_year(year)        -> table year actually used
    is_underserved(code, year)    -> bool
"""

from __future__ import annotations

import re
from types import MappingProxyType
from typing import Any, Mapping, Optional

from logging_config import get_logger
from models import StateInfo

logger = get_logger(__name__)

STATE_CODE_TO_NAME: Mapping[str, str] = MappingProxyType(
    {
        "AL": "alabama", "AK": "alaska", "AZ": "arizona", "AR": "arkansas",
        "CA": "california", "CO": "colorado", "CT": "connecticut", "DE": "delaware",
        "FL": "florida", "GA": "georgia", "HI": "hawaii", "ID": "idaho",
        "IL": "illinois", "IN": "indiana", "IA": "iowa", "KS": "kansas",
        "KY": "kentucky", "LA": "louisiana", "ME": "maine", "MD": "maryland",
        "MA": "massachusetts", "MI": "michigan", "MN": "minnesota", "MS": "mississippi",
        "MO": "missouri", "MT": "montana", "NE": "nebraska", "NV": "nevada",
        "NH": "new hampshire", "NJ": "new jersey", "NM": "new mexico", "NY": "new york",
        "NC": "north carolina", "ND": "north dakota", "OH": "ohio", "OK": "oklahoma",
        "OR": "oregon", "PA": "pennsylvania", "RI": "rhode island", "SC": "south carolina",
        "SD": "south dakota", "TN": "tennessee", "TX": "texas", "UT": "utah",
        "VT": "vermont", "VA": "virginia", "WA": "washington", "WV": "west virginia",
        "WI": "wisconsin", "WY": "wyoming",
    }
)

STATE_NAME_TO_CODE: Mapping[str, str] = MappingProxyType(
    {name: code for code, name in STATE_CODE_TO_NAME.items()}
)

# CDFI Fund underserved / targeted states by NMTC allocation round.
# Territories only appear here, never as resolvable states.
UNDERSERVED_AREAS_BY_YEAR: Mapping[int, frozenset[str]] = MappingProxyType(
    {
        2022: frozenset({"AZ", "CA", "CO", "FL", "NV", "NC", "TN", "TX", "VA", "WV", "VI", "AS", "GU", "MP"}),
        2023: frozenset({"AZ", "CA", "CO", "FL", "KS", "NV", "NC", "TX", "VA", "WV", "PR"}),
        2024: frozenset({"AZ", "CA", "CO", "CT", "FL", "KS", "NC", "TX", "VA", "WV", "PR"}),
        2025: frozenset({"AZ", "CA", "CO", "CT", "FL", "KS", "NC", "TX", "VA", "WV", "PR"}),
    }
)

KNOWN_YEARS: tuple[int, ...] = tuple(sorted(UNDERSERVED_AREAS_BY_YEAR))
EARLIEST_YEAR = KNOWN_YEARS[0]
LATEST_YEAR = KNOWN_YEARS[-1]

_CODE_PATTERN = re.compile(r"^[A-Z]{2}$")


def validate_tables() -> None:
    """Check the reference-table invariants. Raises ValueError on violation."""
    if len(STATE_CODE_TO_NAME) != 50:
        raise ValueError(f"State table must have 50 entries, found {len(STATE_CODE_TO_NAME)}")
    if len(STATE_NAME_TO_CODE) != len(STATE_CODE_TO_NAME):
        raise ValueError("State name table is not a one-to-one inverse of the code table")

    for code, name in STATE_CODE_TO_NAME.items():
        if not _CODE_PATTERN.match(code):
            raise ValueError(f"State code must be 2 uppercase letters: {code!r}")
        if name != name.lower() or name != name.strip():
            raise ValueError(f"State name must be lowercase and trimmed: {name!r}")
        if STATE_NAME_TO_CODE.get(name) != code:
            raise ValueError(f"State tables disagree for {code!r} / {name!r}")

    for year, areas in UNDERSERVED_AREAS_BY_YEAR.items():
        if not areas:
            raise ValueError(f"Underserved-area set for {year} is empty")
        bad = sorted(area for area in areas if not _CODE_PATTERN.match(area))
        if bad:
            raise ValueError(f"Invalid area codes for {year}: {bad}")


validate_tables()


def resolve_state(value: Any) -> Optional[StateInfo]:
    """Resolve a state code or full name to StateInfo, or None."""
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None

    if len(text) == 2:
        code = text.upper()
        name = STATE_CODE_TO_NAME.get(code)
        if name is None:
            return None
        return StateInfo(code=code, name=name)

    name = " ".join(text.lower().split())
    code = STATE_NAME_TO_CODE.get(name)
    if code is None:
        return None
    return StateInfo(code=code, name=name)


def area_code(value: Any) -> str:
    """Return the 2-letter area code for a state or territory, or ''.

    States resolve by code or name. Bare 2-letter territory codes are
    accepted when some underserved-area year lists them.
    """
    info = resolve_state(value)
    if info is not None:
        return info.code

    if isinstance(value, str):
        code = value.strip().upper()
        if any(code in areas for areas in UNDERSERVED_AREAS_BY_YEAR.values()):
            return code
    return ""


def underserved_year(year: int) -> int:
    """Return the table year used for `year`.

    Years before the table use the earliest round and years after it use
    the latest round. Either fallback is logged.
    """
    if isinstance(year, bool) or not isinstance(year, int):
        logger.warning(
            "underserved_year_fallback | requested=%r | reason='not an integer year' | resolved=%s",
            year,
            LATEST_YEAR,
        )
        return LATEST_YEAR

    if year in UNDERSERVED_AREAS_BY_YEAR:
        return year

    resolved = EARLIEST_YEAR if year < EARLIEST_YEAR else LATEST_YEAR
    logger.warning(
        "underserved_year_fallback | requested=%s | resolved=%s | known=%s",
        year,
        resolved,
        list(KNOWN_YEARS),
    )
    return resolved


def is_underserved(code: Any, year: int) -> bool:
    """Whether an area code is in the underserved set for a program year."""
    if not isinstance(code, str) or not code.strip():
        return False
    areas = UNDERSERVED_AREAS_BY_YEAR[underserved_year(year)]
    return code.strip().upper() in areas
