"""
models.py - Data Models for the AutoMatch engine

This file defines ALL data structures used across the matching pipeline.
Every module communicates exclusively through these models:

    normalize.py   ->  Deal, Provider (one canonical record each)
    eligibility.py ->  EligibilityResult
    score.py       ->  list[CriterionScore]
    classify.py    ->  MatchTier
    match.py       ->  MatchResult, MatchResultSet
    explain.py     ->  str / dict (uses MatchResultSet as input)

Design principles:
1. Each layer's output is the next layer's input
2. Every optional field is explicit - a criterion that needs a missing
   field contributes 0, it never raises
3. Results are frozen snapshots; a run never mutates them after creation
4. Sub-scores carry reason strings so the ranking is explainable end-to-end
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator


class ProgramType(str, Enum):
    """Tax-credit programs a deal can be financed under."""

    NMTC = "NMTC"
    HTC = "HTC"
    LIHTC = "LIHTC"
    OZ = "OZ"
    BROWNFIELD = "BROWNFIELD"


class AllocationType(str, Enum):
    """Source of a tax-credit allocation. Missing is read as federal."""

    FEDERAL = "federal"
    STATE = "state"


class ProviderKind(str, Enum):
    """Capital provider flavor. Both share the scoring contract."""

    CDE = "cde"
    INVESTOR = "investor"


class DealStatus(str, Enum):
    """Deal lifecycle statuses (owned by the deal workflow, read here)."""

    DRAFT = "draft"
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    AVAILABLE = "available"
    SEEKING_CAPITAL = "seeking_capital"
    MATCHED = "matched"
    CLOSING = "closing"
    CLOSED = "closed"
    WITHDRAWN = "withdrawn"


class MatchTier(str, Enum):
    """Match-strength bucket derived from the aggregate score."""

    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    WEAK = "weak"


class GateStatus(str, Enum):
    """Overall compliance status of a deal's eligibility tests."""

    NOT_STARTED = "not_started"
    FAILING = "failing"
    PARTIAL = "partial"
    PASSING = "passing"


class ComplianceInputs(BaseModel):
    """Program-specific qualifying test inputs for a deal.

    The three share tests accept either a percentage (0-100) or a boolean
    that already states pass/fail. None means the sponsor has not provided
    the input yet, which excludes the test from the gate entirely.
    """

    model_config = ConfigDict(frozen=True)

    gross_income: Optional[Union[bool, float]] = Field(
        default=None,
        description="Share of gross income from active business in the low-income community.",
    )
    tangible_property: Optional[Union[bool, float]] = Field(
        default=None,
        description="Share of tangible property used within the low-income community.",
    )
    services: Optional[Union[bool, float]] = Field(
        default=None,
        description="Share of services performed by employees within the low-income community.",
    )
    collectibles_test: Optional[bool] = Field(
        default=None,
        description="True when collectibles stay below the allowed share of assets.",
    )
    financial_property_test: Optional[bool] = Field(
        default=None,
        description="True when nonqualified financial property stays below the allowed share.",
    )
    active_business: Optional[bool] = Field(
        default=None,
        description="True when the business is actively conducting a trade or business.",
    )
    prohibited_business: Optional[bool] = Field(
        default=None,
        description="True when the business is a disqualified type (golf course, liquor store, ...).",
    )
    business_type: Optional[str] = Field(
        default=None,
        description="Free-text business type, checked against the prohibited list when the flag is absent.",
    )


class Deal(BaseModel):
    """A capital-seeking project, after reconciliation.

    Only `id` is required. Geographic, financial, compliance and project
    fields are all optional: sparse deals are scored lower, never rejected.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Deal identifier.")
    name: Optional[str] = Field(default=None, description="Project name.")
    program: Optional[ProgramType] = Field(default=None, description="Tax-credit program.")
    allocation_type: Optional[AllocationType] = Field(default=None, description="Federal or state allocation.")
    status: Optional[DealStatus] = Field(default=None, description="Lifecycle status.")

    state: Optional[str] = Field(default=None, description="State code or name as entered.")
    city: Optional[str] = None
    address: Optional[str] = None
    census_tract: Optional[str] = Field(default=None, description="11-digit census tract FIPS.")

    requested_amount: Optional[float] = Field(
        default=None, ge=0, description="Allocation / investment requested, in dollars."
    )
    total_cost: Optional[float] = Field(default=None, ge=0)
    financing_gap: Optional[float] = Field(default=None, ge=0)

    sector: Optional[str] = Field(default=None, description="Project sector, e.g. 'community facility'.")
    description: Optional[str] = Field(default=None, description="Mission / project narrative.")

    is_rural: Optional[bool] = None
    is_real_estate: Optional[bool] = None
    is_owner_occupied: Optional[bool] = None
    is_nonprofit: Optional[bool] = None
    is_minority_owned: Optional[bool] = None
    severely_distressed: Optional[bool] = None
    shovel_ready: Optional[bool] = None

    poverty_rate: Optional[float] = Field(default=None, ge=0, le=100)
    median_income_pct: Optional[float] = Field(default=None, ge=0)
    unemployment_rate: Optional[float] = Field(default=None, ge=0, le=100)
    distress_percentile: Optional[float] = Field(default=None, ge=0, le=100)
    jobs_created: Optional[int] = Field(default=None, ge=0)

    compliance: ComplianceInputs = Field(default_factory=ComplianceInputs)


class Provider(BaseModel):
    """A capital source: a CDE (allocation holder) or an Investor.

    CDEs appear once per allocation round, so several Provider rows can
    share an organization_id. The orchestrator keeps the best row per
    organization.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    name: str = Field(default="Unknown Provider")
    kind: ProviderKind = ProviderKind.CDE
    organization_id: Optional[str] = None
    allocation_year: Optional[int] = None
    active: bool = True

    service_area_type: Optional[str] = Field(default=None, description="'national', 'statewide', ...")
    geographic_focus: tuple[str, ...] = Field(default=(), description="State codes or names served.")
    predominant_market: Optional[str] = Field(default=None, description="Free-text market description.")
    sector_focus: tuple[str, ...] = ()
    program_focus: tuple[ProgramType, ...] = ()
    allocation_type: Optional[AllocationType] = None
    financing_focus: Optional[str] = Field(default=None, description="'Real Estate', 'Business Financing', ...")

    rural_focus: Optional[bool] = None
    urban_focus: Optional[bool] = None

    remaining_allocation: Optional[float] = Field(default=None, ge=0)
    available_capital: Optional[float] = Field(default=None, ge=0)
    min_investment: Optional[float] = Field(default=None, ge=0)
    max_investment: Optional[float] = Field(default=None, ge=0)

    small_deal_fund: Optional[bool] = None
    min_distress_percentile: Optional[float] = Field(default=None, ge=0, le=100)
    minority_focus: Optional[bool] = None
    accepts_for_profit: Optional[bool] = None

    @property
    def is_cde(self) -> bool:
        return self.kind == ProviderKind.CDE

    @property
    def organization_key(self) -> str:
        """Grouping key for allocation-year rows of the same organization."""
        return self.organization_id or self.id


class StateInfo(BaseModel):
    """A resolved US state: uppercase code plus canonical lowercase name."""

    model_config = ConfigDict(frozen=True)

    code: str = Field(..., min_length=2, max_length=2)
    name: str

    @property
    def display_name(self) -> str:
        return self.name.title()


class CriterionScore(BaseModel):
    """One criterion's contribution for a (deal, provider) pair."""

    model_config = ConfigDict(frozen=True)

    name: str
    score: float = Field(..., ge=0)
    weight: float = Field(..., gt=0)
    reason: str = Field(
        default="",
        description="Rendered justification; empty when the criterion contributed nothing.",
    )


class EligibilityResult(BaseModel):
    """Outcome of the compliance gate for one deal."""

    model_config = ConfigDict(frozen=True)

    applicable: bool = False
    tests_completed: int = Field(default=0, ge=0)
    tests_passing: int = Field(default=0, ge=0)
    status: GateStatus = GateStatus.NOT_STARTED
    passed_tests: tuple[str, ...] = ()
    failed_tests: tuple[str, ...] = ()
    recommendations: tuple[str, ...] = ()

    @property
    def pass_ratio(self) -> float:
        if self.tests_completed == 0:
            return 0.0
        return self.tests_passing / self.tests_completed


class MatchResult(BaseModel):
    """One ranked provider for a deal.

    `score`, `tier`, `breakdown` and `reasons` are the stable display
    contract: badges, colored buckets and top-N lists key off them.
    """

    model_config = ConfigDict(frozen=True)

    provider_id: str
    provider_name: str
    provider_kind: ProviderKind
    score: int = Field(..., ge=0, le=100)
    tier: MatchTier
    breakdown: Mapping[str, float] = Field(
        default_factory=dict,
        validate_default=True,
        description="Criterion name -> sub-score, in fixed criterion order. Read-only.",
    )
    reasons: tuple[str, ...] = ()
    eligibility: EligibilityResult = Field(default_factory=EligibilityResult)
    matched_at: datetime

    @field_validator("breakdown", mode="after")
    @classmethod
    def _freeze_breakdown(cls, value: Mapping[str, float]) -> Mapping[str, float]:
        return MappingProxyType(dict(value))

    @field_serializer("breakdown")
    def _dump_breakdown(self, value: Mapping[str, float]) -> dict[str, float]:
        return dict(value)


class MatchResultSet(BaseModel):
    """Timestamped output of one orchestration run."""

    model_config = ConfigDict(frozen=True)

    deal_id: str
    program_year: int
    underserved_year: int
    matches: tuple[MatchResult, ...] = ()
    total_candidates: int = Field(default=0, ge=0)
    eligibility: EligibilityResult = Field(default_factory=EligibilityResult)
    skipped_reason: Optional[str] = None
    timestamp: datetime

    @property
    def top_match(self) -> Optional[MatchResult]:
        return self.matches[0] if self.matches else None

    @property
    def is_skipped(self) -> bool:
        return self.skipped_reason is not None
