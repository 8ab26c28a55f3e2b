"""
classify.py - Match-strength tiers from aggregate scores.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping

from logging_config import get_logger
from models import MatchTier

logger = get_logger(__name__)

# -- Tier Thresholds --
# Lower bound (inclusive) of each tier. A score sitting exactly on a
# boundary belongs to the higher tier: 80 is excellent, 79 is good.

MATCH_THRESHOLDS: Mapping[MatchTier, int] = MappingProxyType(
    {
        MatchTier.EXCELLENT: 80,
        MatchTier.GOOD: 65,
        MatchTier.FAIR: 50,
        MatchTier.WEAK: 0,
    }
)
# Display colors key off these tiers (green / blue / amber / gray), so the
# bounds are part of the result contract. Changing them re-buckets every
# stored match.

TIER_LABELS: Mapping[MatchTier, str] = MappingProxyType(
    {
        MatchTier.EXCELLENT: "Excellent",
        MatchTier.GOOD: "Good",
        MatchTier.FAIR: "Fair",
        MatchTier.WEAK: "Poor",
    }
)

# Highest threshold first.
_ORDERED = tuple(sorted(MATCH_THRESHOLDS.items(), key=lambda item: item[1], reverse=True))


def classify_score(score: int) -> MatchTier:
    """Map an aggregate score in [0, 100] to its tier."""
    if isinstance(score, bool) or not isinstance(score, (int, float)):
        raise ValueError(f"score must be a number, got {type(score).__name__}")

    for tier, minimum in _ORDERED:
        if score >= minimum:
            return tier

    logger.debug("classify_below_floor | score=%s | tier=%s", score, MatchTier.WEAK.value)
    return MatchTier.WEAK


def tier_label(tier: MatchTier) -> str:
    return TIER_LABELS[tier]
