"""
explain.py - Match reasons and result formatting.

This module turns scored matches into:
- short "why this provider" reason lists (top positive criteria)
- provider-independent highlights for a deal that has not been matched
- terminal-friendly text output for CLI usage
- machine-friendly dictionary output for the API
"""

from __future__ import annotations

from typing import Optional

from classify import tier_label
from eligibility import evaluate_eligibility
from geography import area_code, is_underserved, resolve_state, underserved_year
from logging_config import get_logger
from models import CriterionScore, Deal, EligibilityResult, GateStatus, MatchResultSet
from score import tract_distress_reason

logger = get_logger(__name__)

REASON_LIMIT = 3
NO_REASON_FALLBACK = "Run AutoMatch to see reasons"

# Used when a positive sub-score arrives without a rendered reason.
CRITERION_LABELS: dict[str, str] = {
    "geographic": "Geographic fit",
    "underserved": "Underserved community",
    "program": "Program fit",
    "financing": "Financing type fit",
    "sector": "Sector alignment",
    "urban_rural": "Urban/rural fit",
    "capital_fit": "Capital fit",
    "small_deal": "Deal size fit",
    "distressed_tract": "Distressed census tract",
    "distress_percentile": "Distress percentile fit",
    "minority_focus": "Minority ownership fit",
    "entity_type": "Sponsor entity fit",
    "compliance": "Compliance progress",
    "shovel_ready": "Shovel-ready project",
    "jobs": "Job creation",
}

OUTPUT_WIDTH = 64
SEPARATOR = "=" * OUTPUT_WIDTH


def generate_reasons(scores: list[CriterionScore], limit: int = REASON_LIMIT) -> list[str]:
    """Render the top `limit` positive sub-scores.

    Highest sub-score first; equal sub-scores keep criterion order. Zero
    contributions are never rendered.
    """
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 0:
        raise ValueError(f"limit must be a non-negative integer, got {limit!r}")

    positive = [item for item in scores if item.score > 0]
    # sorted() is stable, so ties stay in criterion order.
    ranked = sorted(positive, key=lambda item: -item.score)
    return [item.reason or CRITERION_LABELS.get(item.name, item.name) for item in ranked[:limit]]


def deal_highlights(
    deal: Deal,
    program_year: int,
    limit: int = REASON_LIMIT,
    eligibility: Optional[EligibilityResult] = None,
) -> list[str]:
    """Provider-independent highlights for a deal.

    Shown where no match has been run yet. Falls back to
    NO_REASON_FALLBACK when the deal has nothing to highlight.
    """
    highlights: list[str] = []

    code = area_code(deal.state)
    if code:
        table_year = underserved_year(program_year)
        if is_underserved(code, table_year):
            state = resolve_state(deal.state)
            where = state.display_name if state else code
            highlights.append(f"Located in underserved community: {where} ({table_year} round)")

    distress = tract_distress_reason(deal)
    if distress:
        highlights.append(distress)

    if deal.shovel_ready:
        highlights.append("Shovel-ready project")
    if deal.jobs_created:
        highlights.append(f"Creates {deal.jobs_created} jobs")

    gate = eligibility if eligibility is not None else evaluate_eligibility(deal)
    if gate.applicable and gate.status == GateStatus.PASSING:
        highlights.append(f"All {gate.tests_completed} completed compliance tests passing")

    if not highlights:
        logger.debug("deal_highlights | deal_id=%s | none=True | fallback=%r", deal.id, NO_REASON_FALLBACK)
        return [NO_REASON_FALLBACK]
    return highlights[:limit]


def _error_block(message: str) -> str:
    return "\n" + SEPARATOR + "\n" + f"  {message}\n" + SEPARATOR + "\n"


def _eligibility_lines(gate: EligibilityResult) -> list[str]:
    if not gate.applicable:
        return ["  Eligibility:  not applicable for this program"]

    lines = [
        f"  Eligibility:  {gate.status.value} "
        f"({gate.tests_passing}/{gate.tests_completed} tests passing)"
    ]
    for label in gate.failed_tests:
        lines.append(f"    x {label}")
    for recommendation in gate.recommendations:
        lines.append(f"    -> {recommendation}")
    return lines


def format_match_set(result_set: Optional[MatchResultSet]) -> str:
    """Format a MatchResultSet into a human-readable text block."""
    if result_set is None:
        logger.error("explain_input_error | result_set_none=True | fallback=error_block")
        return _error_block("ERROR: No match data available")

    lines: list[str] = [""]
    if result_set.is_skipped:
        header = "MATCHING SKIPPED"
    elif not result_set.matches:
        header = "NO MATCHES FOUND"
    else:
        header = f"{len(result_set.matches)} Match(es) for deal {result_set.deal_id}"

    lines.append(SEPARATOR)
    lines.append(f"  {header}")
    lines.append(SEPARATOR)
    lines.append("")
    lines.append(f"  Deal:         {result_set.deal_id}")
    year_line = f"  Program year: {result_set.program_year}"
    if result_set.underserved_year != result_set.program_year:
        year_line += f" (underserved table: {result_set.underserved_year})"
    lines.append(year_line)
    lines.append(f"  Candidates:   {result_set.total_candidates}")
    lines.extend(_eligibility_lines(result_set.eligibility))

    if result_set.is_skipped:
        lines.append("")
        lines.append(f"  Reason: {result_set.skipped_reason}")

    for rank, match in enumerate(result_set.matches, start=1):
        lines.append("")
        lines.append(f"  {rank}. {match.provider_name}  [{match.provider_kind.value}]")
        lines.append(f"     Score: {match.score}/100  |  {tier_label(match.tier)} match")
        if match.reasons:
            for reason in match.reasons:
                lines.append(f"       • {reason}")
        else:
            lines.append("       • (no positive criteria)")

    lines.append("")
    lines.append(SEPARATOR)
    lines.append("")
    return "\n".join(lines)


def format_eligibility_json(gate: EligibilityResult) -> dict:
    """Eligibility gate result as a JSON-compatible dictionary."""
    return {
        "applicable": gate.applicable,
        "status": gate.status.value,
        "tests_completed": gate.tests_completed,
        "tests_passing": gate.tests_passing,
        "passed_tests": list(gate.passed_tests),
        "failed_tests": list(gate.failed_tests),
        "recommendations": list(gate.recommendations),
    }


def format_match_set_json(result_set: Optional[MatchResultSet]) -> dict:
    """Format a MatchResultSet as a JSON-compatible dictionary."""
    if result_set is None:
        logger.error("explain_json_input_error | result_set_none=True | fallback=error_payload")
        return {
            "status": "error",
            "deal_id": None,
            "matches": [],
            "warnings": ["Result set was None"],
        }

    if result_set.is_skipped:
        status = "skipped"
    elif result_set.matches:
        status = "matched"
    else:
        status = "no_matches"

    matches = []
    for rank, match in enumerate(result_set.matches, start=1):
        matches.append(
            {
                "rank": rank,
                "provider_id": match.provider_id,
                "provider_name": match.provider_name,
                "provider_kind": match.provider_kind.value,
                "score": match.score,
                "tier": match.tier.value,
                "tier_label": tier_label(match.tier),
                "reasons": list(match.reasons),
                "breakdown": dict(match.breakdown),
                "matched_at": match.matched_at.isoformat(),
            }
        )

    warnings: list[str] = []
    if result_set.underserved_year != result_set.program_year:
        warnings.append(
            f"No underserved-area table for {result_set.program_year}; "
            f"used the {result_set.underserved_year} round."
        )

    return {
        "status": status,
        "deal_id": result_set.deal_id,
        "program_year": result_set.program_year,
        "underserved_year": result_set.underserved_year,
        "timestamp": result_set.timestamp.isoformat(),
        "total_candidates": result_set.total_candidates,
        "skipped_reason": result_set.skipped_reason,
        "eligibility": format_eligibility_json(result_set.eligibility),
        "matches": matches,
        "warnings": warnings,
    }
