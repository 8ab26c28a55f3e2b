"""
score.py - Criterion scoring for one (deal, provider) pair.

Fifteen fixed criteria share a 100-point budget. Each criterion reads a
declared set of optional fields and awards a fraction of its weight:

    geographic (14)        underserved (8)      program (8)
    financing (6)          sector (12)          urban_rural (4)
    capital_fit (10)       small_deal (3)       distressed_tract (7)
    distress_percentile (4) minority_focus (3)  entity_type (3)
    compliance (8)         shovel_ready (6)     jobs (4)

A criterion whose inputs are missing on either side awards 0. Weights are
never rescaled over the criteria that happen to have data, so sparse deals
score lower.

Every awarded sub-score carries a reason string so the ranking can be
explained later without re-reading the deal.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Callable, NamedTuple, Optional

from rapidfuzz import fuzz

from eligibility import evaluate_eligibility
from geography import STATE_NAME_TO_CODE, area_code, is_underserved, resolve_state, underserved_year
from logging_config import get_logger
from models import AllocationType, CriterionScore, Deal, EligibilityResult, Provider, StateInfo
from normalize import normalize_text

logger = get_logger(__name__)

TOTAL_CRITERIA = 15
MAX_SCORE = 100

SMALL_DEAL_MAX = 5_000_000
SECTOR_FUZZY_THRESHOLD = 85.0
HIGH_POVERTY_RATE = 30.0
LOW_MEDIAN_INCOME_PCT = 60.0
NATIONAL_UNEMPLOYMENT_RATE = 4.0
HIGH_UNEMPLOYMENT_MULTIPLIER = 1.5
JOBS_FULL_CREDIT = 50
JOBS_HALF_CREDIT = 10


class ScoringContext(NamedTuple):
    """Everything a criterion may read for one pair."""

    deal: Deal
    provider: Provider
    program_year: int
    underserved_year: int
    eligibility: EligibilityResult
    state: Optional[StateInfo]
    area: str


# A criterion returns (fraction of weight in [0, 1], reason).
Scorer = Callable[[ScoringContext], tuple[float, str]]

_NO_CREDIT: tuple[float, str] = (0.0, "")


@dataclass(frozen=True)
class MatchCriterion:
    name: str
    weight: float
    scorer: Scorer

    def evaluate(self, context: ScoringContext) -> CriterionScore:
        fraction, reason = self.scorer(context)
        fraction = max(0.0, min(1.0, float(fraction)))
        score = round(self.weight * fraction, 2)
        return CriterionScore(
            name=self.name,
            score=score,
            weight=self.weight,
            reason=reason if score > 0 else "",
        )


def _money(amount: float) -> str:
    if amount >= 1_000_000:
        return f"${amount / 1_000_000:.1f}M"
    return f"${amount:,.0f}"


def _market_mentions_state(market: str, state: StateInfo) -> bool:
    """Whether free-text market names the state (by code list or full name)."""
    codes = {part.strip().upper() for part in re.split(r"[,;/]+", market)}
    if state.code in codes:
        return True

    text = normalize_text(market)
    # Keep "virginia" from matching inside "west virginia".
    for other in STATE_NAME_TO_CODE:
        if other != state.name and state.name in other:
            text = text.replace(other, " ")
    return re.search(rf"\b{re.escape(state.name)}\b", text) is not None


def _geographic(ctx: ScoringContext) -> tuple[float, str]:
    """Reads deal.state; provider.service_area_type, geographic_focus, predominant_market."""
    state = ctx.state
    if state is None:
        return _NO_CREDIT

    provider = ctx.provider
    market = provider.predominant_market or ""
    if normalize_text(provider.service_area_type) == "national" or re.search(
        r"\bnational\b", normalize_text(market)
    ):
        return 1.0, f"National coverage includes {state.display_name}"

    for entry in provider.geographic_focus:
        info = resolve_state(entry)
        if info is not None and info.code == state.code:
            return 1.0, f"Located in {state.display_name}, within the provider's service area"

    if market and _market_mentions_state(market, state):
        return 1.0, f"Located in {state.display_name}, within the provider's predominant market"
    return _NO_CREDIT


def _underserved(ctx: ScoringContext) -> tuple[float, str]:
    """Reads deal.state and the program year."""
    if not ctx.area:
        return _NO_CREDIT
    if is_underserved(ctx.area, ctx.underserved_year):
        where = ctx.state.display_name if ctx.state else ctx.area
        return 1.0, f"Located in underserved community: {where} ({ctx.underserved_year} round)"
    return _NO_CREDIT


def _program(ctx: ScoringContext) -> tuple[float, str]:
    """Reads deal.program, allocation_type; provider.program_focus, allocation_type.

    A state allocation never substitutes for a federal one (and vice
    versa). Either side missing its allocation type counts as federal.
    """
    program = ctx.deal.program
    if program is None or program not in ctx.provider.program_focus:
        return _NO_CREDIT
    wanted = ctx.deal.allocation_type or AllocationType.FEDERAL
    offered = ctx.provider.allocation_type or AllocationType.FEDERAL
    if wanted != offered:
        return _NO_CREDIT
    if wanted == AllocationType.STATE:
        return 1.0, f"Program focus includes {program.value} (state allocation)"
    return 1.0, f"Program focus includes {program.value}"


def _financing(ctx: ScoringContext) -> tuple[float, str]:
    """Reads deal.is_owner_occupied, is_real_estate; provider.financing_focus."""
    focus = normalize_text(ctx.provider.financing_focus)
    if not focus:
        return _NO_CREDIT

    real_estate = "real estate" in focus
    business = "business" in focus or "operating" in focus
    if not real_estate and not business:
        return _NO_CREDIT

    deal = ctx.deal
    if deal.is_owner_occupied:
        label = "real estate" if real_estate else "business"
        return 1.0, f"Owner-occupied project fits {label} financing"
    if deal.is_real_estate is None:
        return _NO_CREDIT
    if deal.is_real_estate and real_estate:
        return 1.0, "Real estate financing focus"
    if not deal.is_real_estate and business:
        return 1.0, "Business financing focus"
    return _NO_CREDIT


def _sector(ctx: ScoringContext) -> tuple[float, str]:
    """Reads deal.sector, deal.description; provider.sector_focus."""
    sectors = [text for text in (normalize_text(item) for item in ctx.provider.sector_focus) if text]
    deal_sector = normalize_text(ctx.deal.sector)
    description = normalize_text(ctx.deal.description)
    if not sectors or not (deal_sector or description):
        return _NO_CREDIT

    if deal_sector:
        for sector in sectors:
            if sector in deal_sector or deal_sector in sector:
                return 1.0, f"Sector alignment: {sector}"

        best_sector = ""
        best_ratio = 0.0
        for sector in sectors:
            ratio = float(fuzz.token_set_ratio(deal_sector, sector))
            if ratio > best_ratio:
                best_sector, best_ratio = sector, ratio
        if best_ratio >= SECTOR_FUZZY_THRESHOLD:
            return 1.0, f"Sector alignment: {best_sector}"

    if description:
        for sector in sectors:
            if re.search(rf"\b{re.escape(sector)}\b", description):
                return 0.5, f"Project description mentions {sector}"
    return _NO_CREDIT


def _urban_rural(ctx: ScoringContext) -> tuple[float, str]:
    """Reads deal.is_rural; provider.rural_focus, urban_focus."""
    is_rural = ctx.deal.is_rural
    rural_focus = ctx.provider.rural_focus
    urban_focus = ctx.provider.urban_focus
    if is_rural is None or (rural_focus is None and urban_focus is None):
        return _NO_CREDIT

    if is_rural and rural_focus:
        return 1.0, "Rural project fits rural focus"
    if not is_rural and urban_focus:
        return 1.0, "Urban project fits urban focus"
    if rural_focus is False and urban_focus is False:
        return 1.0, "No urban/rural restriction"
    return _NO_CREDIT


def _capital_fit(ctx: ScoringContext) -> tuple[float, str]:
    """Reads deal.requested_amount; CDE remaining_allocation or investor range."""
    amount = ctx.deal.requested_amount
    if not amount:
        return _NO_CREDIT

    provider = ctx.provider
    if provider.is_cde:
        remaining = provider.remaining_allocation
        if remaining is None or amount > remaining:
            return _NO_CREDIT
        return 1.0, f"Request {_money(amount)} fits remaining allocation {_money(remaining)}"

    low = provider.min_investment
    high = provider.max_investment
    if low is None and high is None:
        return _NO_CREDIT
    if low is not None and amount < low:
        return _NO_CREDIT
    if high is not None and amount > high:
        return _NO_CREDIT
    if provider.available_capital is not None and amount > provider.available_capital:
        return _NO_CREDIT
    return 1.0, f"Within investment range ({_money(amount)} request)"


def _small_deal(ctx: ScoringContext) -> tuple[float, str]:
    """Reads deal.requested_amount; provider.small_deal_fund."""
    amount = ctx.deal.requested_amount
    if not amount:
        return _NO_CREDIT
    if amount > SMALL_DEAL_MAX:
        return 1.0, f"{_money(amount)} request is above the small-deal threshold"
    if ctx.provider.small_deal_fund:
        return 1.0, "Small-deal fund available"
    return _NO_CREDIT


def tract_distress_reason(deal: Deal) -> str:
    """Describe the first tract-distress signal a deal shows, or ''."""
    if deal.severely_distressed:
        return "Severely distressed census tract"
    if deal.poverty_rate is not None and deal.poverty_rate >= HIGH_POVERTY_RATE:
        return f"High-poverty tract ({deal.poverty_rate:.0f}% poverty rate)"
    if deal.median_income_pct is not None and deal.median_income_pct <= LOW_MEDIAN_INCOME_PCT:
        return f"Low-income tract ({deal.median_income_pct:.0f}% of area median income)"
    threshold = NATIONAL_UNEMPLOYMENT_RATE * HIGH_UNEMPLOYMENT_MULTIPLIER
    if deal.unemployment_rate is not None and deal.unemployment_rate >= threshold:
        return f"High-unemployment tract ({deal.unemployment_rate:.1f}% unemployment)"
    return ""


def _distressed_tract(ctx: ScoringContext) -> tuple[float, str]:
    """Reads deal.severely_distressed, poverty_rate, median_income_pct, unemployment_rate."""
    reason = tract_distress_reason(ctx.deal)
    if not reason:
        return _NO_CREDIT
    return 1.0, reason


def _distress_percentile(ctx: ScoringContext) -> tuple[float, str]:
    """Reads deal.distress_percentile; provider.min_distress_percentile."""
    minimum = ctx.provider.min_distress_percentile
    percentile = ctx.deal.distress_percentile
    if minimum is None or percentile is None:
        return _NO_CREDIT
    if percentile >= minimum:
        return 1.0, f"Distress percentile {percentile:.0f} meets provider minimum {minimum:.0f}"
    return _NO_CREDIT


def _minority_focus(ctx: ScoringContext) -> tuple[float, str]:
    """Reads deal.is_minority_owned; provider.minority_focus."""
    focus = ctx.provider.minority_focus
    owned = ctx.deal.is_minority_owned
    if focus is None or owned is None:
        return _NO_CREDIT
    if not focus:
        return 1.0, "No minority-ownership requirement"
    if owned:
        return 1.0, "Minority-owned business fits provider focus"
    return _NO_CREDIT


def _entity_type(ctx: ScoringContext) -> tuple[float, str]:
    """Reads deal.is_nonprofit; provider.accepts_for_profit."""
    nonprofit = ctx.deal.is_nonprofit
    if nonprofit is None:
        return _NO_CREDIT
    if nonprofit:
        return 1.0, "Nonprofit sponsor"
    if ctx.provider.accepts_for_profit:
        return 1.0, "Provider accepts for-profit sponsors"
    return _NO_CREDIT


def _compliance(ctx: ScoringContext) -> tuple[float, str]:
    """Reads the eligibility gate result."""
    gate = ctx.eligibility
    if gate.tests_completed == 0:
        return _NO_CREDIT
    return gate.pass_ratio, f"Compliance tests passing: {gate.tests_passing}/{gate.tests_completed}"


def _shovel_ready(ctx: ScoringContext) -> tuple[float, str]:
    """Reads deal.shovel_ready."""
    if ctx.deal.shovel_ready:
        return 1.0, "Shovel-ready project"
    return _NO_CREDIT


def _jobs(ctx: ScoringContext) -> tuple[float, str]:
    """Reads deal.jobs_created."""
    jobs = ctx.deal.jobs_created
    if not jobs:
        return _NO_CREDIT
    if jobs >= JOBS_FULL_CREDIT:
        fraction = 1.0
    elif jobs >= JOBS_HALF_CREDIT:
        fraction = 0.5
    else:
        fraction = 0.25
    return fraction, f"Creates {jobs} jobs"


CRITERIA: tuple[MatchCriterion, ...] = (
    MatchCriterion("geographic", 14, _geographic),
    MatchCriterion("underserved", 8, _underserved),
    MatchCriterion("program", 8, _program),
    MatchCriterion("financing", 6, _financing),
    MatchCriterion("sector", 12, _sector),
    MatchCriterion("urban_rural", 4, _urban_rural),
    MatchCriterion("capital_fit", 10, _capital_fit),
    MatchCriterion("small_deal", 3, _small_deal),
    MatchCriterion("distressed_tract", 7, _distressed_tract),
    MatchCriterion("distress_percentile", 4, _distress_percentile),
    MatchCriterion("minority_focus", 3, _minority_focus),
    MatchCriterion("entity_type", 3, _entity_type),
    MatchCriterion("compliance", 8, _compliance),
    MatchCriterion("shovel_ready", 6, _shovel_ready),
    MatchCriterion("jobs", 4, _jobs),
)

CRITERION_NAMES: tuple[str, ...] = tuple(criterion.name for criterion in CRITERIA)
CRITERION_WEIGHTS: dict[str, float] = {criterion.name: criterion.weight for criterion in CRITERIA}

if len(CRITERIA) != TOTAL_CRITERIA or len(set(CRITERION_NAMES)) != TOTAL_CRITERIA:
    raise RuntimeError(f"Expected {TOTAL_CRITERIA} distinct criteria, found {len(CRITERIA)}")
if sum(CRITERION_WEIGHTS.values()) != MAX_SCORE:
    raise RuntimeError(f"Criterion weights must sum to {MAX_SCORE}")


def build_context(
    deal: Deal,
    provider: Provider,
    program_year: int,
    eligibility: Optional[EligibilityResult] = None,
    table_year: Optional[int] = None,
) -> ScoringContext:
    """Resolve the per-pair inputs shared by all criteria."""
    return ScoringContext(
        deal=deal,
        provider=provider,
        program_year=program_year,
        underserved_year=table_year if table_year is not None else underserved_year(program_year),
        eligibility=eligibility if eligibility is not None else evaluate_eligibility(deal),
        state=resolve_state(deal.state),
        area=area_code(deal.state),
    )


def score_pair(
    deal: Deal,
    provider: Provider,
    program_year: int,
    eligibility: Optional[EligibilityResult] = None,
    table_year: Optional[int] = None,
) -> list[CriterionScore]:
    """Score every criterion for one pair, in fixed criterion order."""
    context = build_context(deal, provider, program_year, eligibility, table_year)
    scores = [criterion.evaluate(context) for criterion in CRITERIA]

    logger.debug(
        "pair_scored | deal_id=%s | provider_id=%s | state=%s | total=%.2f | nonzero=%s",
        deal.id,
        provider.id,
        context.state.code if context.state else None,
        sum(item.score for item in scores),
        [item.name for item in scores if item.score > 0],
    )
    return scores


def aggregate_score(scores: list[CriterionScore]) -> int:
    """Sum sub-scores, round half up, clamp to [0, 100]."""
    total = sum(item.score for item in scores)
    rounded = int(math.floor(total + 0.5))
    return max(0, min(MAX_SCORE, rounded))


def breakdown(scores: list[CriterionScore]) -> dict[str, float]:
    """Criterion name -> sub-score, in criterion order."""
    return {item.name: item.score for item in scores}
