"""
eligibility.py - Compliance gate and lifecycle status checks.

The gate runs the QALICB qualifying tests for compliance-bound programs.
It is informational: the orchestrator reports it next to every match and
only blocks scoring when the blocking policy is switched on.

Tests are independently optional. A test whose input is missing is left
out of the counts rather than counted as a failure.
"""

from __future__ import annotations

from typing import Any, Callable, NamedTuple, Optional

from logging_config import get_logger
from models import ComplianceInputs, Deal, DealStatus, EligibilityResult, GateStatus, ProgramType
from normalize import normalize_text

logger = get_logger(__name__)

COMPLIANCE_PROGRAMS: frozenset[ProgramType] = frozenset({ProgramType.NMTC})

GROSS_INCOME_MIN_PCT = 50.0
TANGIBLE_PROPERTY_MIN_PCT = 40.0
SERVICES_MIN_PCT = 40.0

PROHIBITED_BUSINESSES: tuple[str, ...] = (
    "Golf course",
    "Country club",
    "Massage parlor",
    "Hot tub facility",
    "Suntan facility",
    "Racetrack or gambling facility",
    "Liquor store",
    "Residential rental property",
    "Farming business",
)

# Lifecycle statuses that can be matched. draft/closed/withdrawn cannot.
MATCHABLE_STATUSES: frozenset[DealStatus] = frozenset(
    {
        DealStatus.SUBMITTED,
        DealStatus.UNDER_REVIEW,
        DealStatus.AVAILABLE,
        DealStatus.SEEKING_CAPITAL,
        DealStatus.MATCHED,
        DealStatus.CLOSING,
    }
)


class ComplianceTest(NamedTuple):
    """A named qualifying test. `check` returns None when input is absent."""

    key: str
    label: str
    check: Callable[[ComplianceInputs], Optional[bool]]
    recommendation: Optional[str]


def _share_test(value: Any, minimum: float) -> Optional[bool]:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    return float(value) >= minimum


def _matches_prohibited(business_type: Optional[str]) -> Optional[bool]:
    text = normalize_text(business_type)
    if not text:
        return None
    for prohibited in PROHIBITED_BUSINESSES:
        if normalize_text(prohibited) in text:
            return True
    # "Racetrack or gambling facility" also covers plain casinos.
    return any(token in text for token in ("casino", "gambling", "racetrack"))


def _not_prohibited(inputs: ComplianceInputs) -> Optional[bool]:
    if inputs.prohibited_business is not None:
        return not inputs.prohibited_business
    prohibited = _matches_prohibited(inputs.business_type)
    if prohibited is None:
        return None
    return not prohibited


COMPLIANCE_TESTS: tuple[ComplianceTest, ...] = (
    ComplianceTest(
        "gross_income",
        "Gross Income Test (50%)",
        lambda c: _share_test(c.gross_income, GROSS_INCOME_MIN_PCT),
        "At least 50% gross income must be derived from active business in the low-income community.",
    ),
    ComplianceTest(
        "tangible_property",
        "Tangible Property Test (40%)",
        lambda c: _share_test(c.tangible_property, TANGIBLE_PROPERTY_MIN_PCT),
        "Increase tangible property located in the low-income community above the 40% threshold.",
    ),
    ComplianceTest(
        "services",
        "Services Test (40%)",
        lambda c: _share_test(c.services, SERVICES_MIN_PCT),
        "At least 40% of employee services must be performed in the LIC.",
    ),
    ComplianceTest(
        "collectibles",
        "No Collectibles",
        lambda c: c.collectibles_test,
        None,
    ),
    ComplianceTest(
        "financial_property",
        "No Financial Property",
        lambda c: c.financial_property_test,
        None,
    ),
    ComplianceTest(
        "active_business",
        "Active Business",
        lambda c: c.active_business,
        "Document active conduct of a qualified business before closing.",
    ),
    ComplianceTest(
        "not_prohibited",
        "Not Prohibited Business",
        _not_prohibited,
        "The business type appears on the prohibited list and cannot receive NMTC financing.",
    ),
)


def gate_status(tests_completed: int, tests_passing: int) -> GateStatus:
    """Derive the overall gate status from the pass counts."""
    if tests_completed <= 0:
        return GateStatus.NOT_STARTED
    if tests_passing >= tests_completed:
        return GateStatus.PASSING
    if tests_passing == 0:
        return GateStatus.FAILING
    return GateStatus.PARTIAL


def is_compliance_bound(deal: Deal) -> bool:
    return deal.program in COMPLIANCE_PROGRAMS


def evaluate_eligibility(deal: Deal) -> EligibilityResult:
    """Run the qualifying tests for a deal."""
    if not is_compliance_bound(deal):
        logger.debug(
            "eligibility_skipped | deal_id=%s | program=%s | reason='not compliance-bound'",
            deal.id,
            deal.program.value if deal.program else None,
        )
        return EligibilityResult(applicable=False)

    passed: list[str] = []
    failed: list[str] = []
    recommendations: list[str] = []

    for test in COMPLIANCE_TESTS:
        outcome = test.check(deal.compliance)
        if outcome is None:
            continue
        if outcome:
            passed.append(test.label)
        else:
            failed.append(test.label)
            if test.recommendation:
                recommendations.append(test.recommendation)

    completed = len(passed) + len(failed)
    status = gate_status(completed, len(passed))
    result = EligibilityResult(
        applicable=True,
        tests_completed=completed,
        tests_passing=len(passed),
        status=status,
        passed_tests=tuple(passed),
        failed_tests=tuple(failed),
        recommendations=tuple(recommendations),
    )

    logger.info(
        "eligibility_evaluated | deal_id=%s | completed=%s | passing=%s | status=%s | failed=%s",
        deal.id,
        completed,
        len(passed),
        status.value,
        failed,
    )
    return result


def is_matchable_status(status: Optional[DealStatus]) -> bool:
    """Whether a deal in this lifecycle status may be matched.

    An unknown status does not block matching.
    """
    if status is None:
        return True
    return status in MATCHABLE_STATUSES
