"""
match.py - AutoMatch orchestration: rank capital providers for one deal.

    run(deal, candidates, program_year)   -> MatchResultSet   (pure, testable)
    run_match(deal_id, program_year)      -> MatchResultSet   (directory-backed)

A run checks the deal's lifecycle status, evaluates the eligibility gate
once, scores every active candidate, keeps the best allocation-year row per
provider organization, then filters, sorts and truncates. The only impure
input is the timestamp, taken once per run.

Ranking order is fixed: score descending, then provider name ascending
(case-insensitive), then provider id. Re-running with identical inputs
yields identical matches.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable, NamedTuple, Optional

from classify import classify_score
from config import AutoMatchSettings, load_settings
from directory import DealNotFoundError, MarketplaceDirectory
from eligibility import evaluate_eligibility, is_matchable_status
from explain import generate_reasons
from geography import LATEST_YEAR, underserved_year
from logging_config import get_logger
from models import CriterionScore, Deal, EligibilityResult, GateStatus, MatchResult, MatchResultSet, Provider
from score import aggregate_score, breakdown, score_pair

logger = get_logger(__name__)

__all__ = ["DealNotFoundError", "run", "run_match"]


def _require_int(name: str, value: Any, maximum: Optional[int] = None) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer, got {type(value).__name__}")
    if value < 0:
        raise ValueError(f"{name} must be non-negative, got {value}")
    if maximum is not None and value > maximum:
        raise ValueError(f"{name} must be at most {maximum}, got {value}")
    return value


class _ScoredRow(NamedTuple):
    provider: Provider
    scores: list[CriterionScore]
    score: int


def _best_per_organization(rows: list[_ScoredRow]) -> list[tuple[_ScoredRow, Provider]]:
    """Collapse allocation-year rows of one organization.

    The best-scoring row is kept (ties: latest allocation year, then
    provider id) and is reported as the organization's latest
    allocation-year row: id, name and kind all come from that row.
    """
    groups: dict[str, list[_ScoredRow]] = {}
    for row in rows:
        groups.setdefault(row.provider.organization_key, []).append(row)

    merged: list[tuple[_ScoredRow, Provider]] = []
    for key, group in groups.items():
        best = min(
            group,
            key=lambda row: (-row.score, -(row.provider.allocation_year or 0), row.provider.id),
        )
        latest = min(
            group,
            key=lambda row: (-(row.provider.allocation_year or 0), row.provider.id),
        )
        if len(group) > 1:
            logger.debug(
                "organization_merged | organization=%s | rows=%s | best_row=%s | reported_id=%s | score=%s",
                key,
                len(group),
                best.provider.id,
                latest.provider.id,
                best.score,
            )
        merged.append((best, latest.provider))
    return merged


def _skipped(
    deal: Deal,
    program_year: int,
    table_year: int,
    total_candidates: int,
    eligibility: EligibilityResult,
    reason: str,
    timestamp: datetime,
) -> MatchResultSet:
    logger.info("matching_skipped | deal_id=%s | reason=%r", deal.id, reason)
    return MatchResultSet(
        deal_id=deal.id,
        program_year=program_year,
        underserved_year=table_year,
        matches=(),
        total_candidates=total_candidates,
        eligibility=eligibility,
        skipped_reason=reason,
        timestamp=timestamp,
    )


def run(
    deal: Deal,
    candidates: Iterable[Provider],
    program_year: int,
    max_results: Optional[int] = None,
    min_score: Optional[int] = None,
    settings: Optional[AutoMatchSettings] = None,
) -> MatchResultSet:
    """Rank candidate providers for a deal.

    Raises ValueError for an invalid call shape (non-integer year, negative
    limits, non-Provider candidates). Missing deal or provider data never
    raises: it only lowers scores.
    """
    settings = settings or AutoMatchSettings()

    if not isinstance(deal, Deal):
        raise ValueError(f"deal must be a Deal, got {type(deal).__name__}")
    if isinstance(program_year, bool) or not isinstance(program_year, int):
        raise ValueError(f"program_year must be an integer, got {type(program_year).__name__}")
    limit = _require_int("max_results", settings.max_results if max_results is None else max_results)
    floor = _require_int("min_score", settings.min_score if min_score is None else min_score, maximum=100)

    providers = list(candidates or [])
    for provider in providers:
        if not isinstance(provider, Provider):
            raise ValueError(f"candidates must be Provider objects, got {type(provider).__name__}")

    timestamp = datetime.now(timezone.utc)
    table_year = underserved_year(program_year)

    if not is_matchable_status(deal.status):
        status = deal.status.value if deal.status else "unknown"
        return _skipped(
            deal,
            program_year,
            table_year,
            len(providers),
            EligibilityResult(),
            f"Deal status '{status}' is not eligible for matching",
            timestamp,
        )

    eligibility = evaluate_eligibility(deal)
    if settings.block_on_failing_eligibility and eligibility.status == GateStatus.FAILING:
        return _skipped(
            deal,
            program_year,
            table_year,
            len(providers),
            eligibility,
            f"Eligibility gate failing: {', '.join(eligibility.failed_tests)}",
            timestamp,
        )

    rows: list[_ScoredRow] = []
    skipped_inactive = 0
    for provider in providers:
        if not provider.active:
            skipped_inactive += 1
            continue
        scores = score_pair(deal, provider, program_year, eligibility, table_year)
        rows.append(_ScoredRow(provider, scores, aggregate_score(scores)))

    results: list[MatchResult] = []
    below_floor = 0
    for row, reported in _best_per_organization(rows):
        if row.score < floor:
            below_floor += 1
            continue
        results.append(
            MatchResult(
                provider_id=reported.id,
                provider_name=reported.name,
                provider_kind=reported.kind,
                score=row.score,
                tier=classify_score(row.score),
                breakdown=breakdown(row.scores),
                reasons=tuple(generate_reasons(row.scores, settings.reason_limit)),
                eligibility=eligibility,
                matched_at=timestamp,
            )
        )

    results.sort(key=lambda match: (-match.score, match.provider_name.casefold(), match.provider_id))
    matches = tuple(results[:limit])

    logger.info(
        "matching_complete | deal_id=%s | program_year=%s | table_year=%s | candidates=%s | scored=%s | skipped_inactive=%s | below_min_score=%s | returned=%s | top_score=%s",
        deal.id,
        program_year,
        table_year,
        len(providers),
        len(rows),
        skipped_inactive,
        below_floor,
        len(matches),
        matches[0].score if matches else None,
    )

    return MatchResultSet(
        deal_id=deal.id,
        program_year=program_year,
        underserved_year=table_year,
        matches=matches,
        total_candidates=len(providers),
        eligibility=eligibility,
        timestamp=timestamp,
    )


def run_match(
    deal_id: str,
    program_year: Optional[int] = None,
    max_results: Optional[int] = None,
    directory: Optional[MarketplaceDirectory] = None,
    settings: Optional[AutoMatchSettings] = None,
    min_score: Optional[int] = None,
) -> MatchResultSet:
    """Match a deal from the marketplace directory.

    Raises DealNotFoundError for an unknown deal id.
    """
    settings = settings or load_settings()
    if directory is None:
        directory = MarketplaceDirectory.from_files(settings.data_file, settings.providers_csv)

    deal = directory.get_deal(deal_id)
    year = program_year if program_year is not None else (settings.program_year or LATEST_YEAR)
    candidates = directory.list_providers(active_only=True)

    logger.info(
        "run_match | deal_id=%s | program_year=%s | candidates=%s",
        deal.id,
        year,
        len(candidates),
    )
    return run(
        deal,
        candidates,
        year,
        max_results=max_results,
        min_score=min_score,
        settings=settings,
    )
