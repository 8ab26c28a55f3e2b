"""
conftest.py - Shared fixtures for the AutoMatch test suite.

`make_deal` / `make_provider` build the reference pair used across the
suite: a rural West Virginia NMTC clinic and a WV healthcare CDE. With no
other inputs that pair scores exactly 72 (a "good" match).
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from models import ComplianceInputs, Deal, ProgramType, Provider, ProviderKind

REFERENCE_DEAL: dict[str, Any] = {
    "id": "deal-wv-clinic",
    "name": "Mingo County Health Clinic",
    "program": ProgramType.NMTC,
    "state": "WV",
    "is_owner_occupied": True,
    "sector": "healthcare",
    "is_rural": True,
    "requested_amount": 4_000_000,
    "severely_distressed": True,
}

REFERENCE_PROVIDER: dict[str, Any] = {
    "id": "cde-zephyr",
    "name": "Zephyr Capital CDE",
    "kind": ProviderKind.CDE,
    "geographic_focus": ("WV",),
    "financing_focus": "Real Estate",
    "sector_focus": ("Healthcare",),
    "rural_focus": True,
    "remaining_allocation": 10_000_000,
    "small_deal_fund": True,
    "program_focus": (ProgramType.NMTC,),
}

ALL_PASSING_COMPLIANCE = ComplianceInputs(
    gross_income=80,
    tangible_property=70,
    services=60,
    collectibles_test=True,
    financial_property_test=True,
    active_business=True,
    prohibited_business=False,
)


def make_deal(**overrides: Any) -> Deal:
    values = dict(REFERENCE_DEAL)
    values.update(overrides)
    return Deal(**values)


def make_provider(**overrides: Any) -> Provider:
    values = dict(REFERENCE_PROVIDER)
    values.update(overrides)
    return Provider(**values)


def make_strong_deal(**overrides: Any) -> Deal:
    """Reference deal with every remaining criterion satisfied (scores 100)."""
    values: dict[str, Any] = {
        "distress_percentile": 85,
        "is_minority_owned": False,
        "is_nonprofit": True,
        "compliance": ALL_PASSING_COMPLIANCE,
        "shovel_ready": True,
        "jobs_created": 60,
    }
    values.update(overrides)
    return make_deal(**values)


def make_strong_provider(**overrides: Any) -> Provider:
    values: dict[str, Any] = {"min_distress_percentile": 70, "minority_focus": False}
    values.update(overrides)
    return make_provider(**values)


MARKETPLACE: dict[str, Any] = {
    "deals": [
        {
            "id": "deal-wv-clinic",
            "name": "Mingo County Health Clinic",
            "program": "NMTC",
            "status": "available",
            "state": "West Virginia",
            "owner_occupied": "yes",
            "project_type": "Healthcare",
            "tract_rural": True,
            "allocation_request": "$4,000,000",
            "tract_severely_distressed": True,
            "compliance": {"gross_income": "65%", "services": 30},
        },
        {
            "id": "deal-draft",
            "program": "NMTC",
            "status": "draft",
            "state": "WV",
        },
        {
            "id": "deal-merged",
            "sources": [
                {"project_type": "Education", "allocation_request": "$2,500,000"},
                {"sector": "Healthcare", "state": "CT", "jobs": 12},
            ],
            "program": "New Markets Tax Credit",
        },
        {"name": "Record without an id"},
    ],
    "providers": [
        {
            "id": "cde-zephyr",
            "name": "Zephyr Capital CDE",
            "type": "CDE",
            "primary_states": "WV;KY",
            "predominant_financing": "Real Estate",
            "target_sectors": ["Healthcare"],
            "rural_focus": True,
            "amount_remaining": 10000000,
            "small_deal_fund": True,
            "programs": ["NMTC"],
        },
        {
            "id": "cde-acorn",
            "name": "acorn community fund",
            "type": "CDE",
            "service_area_type": "national",
            "predominant_financing": "Operating Business",
            "target_sectors": "Manufacturing, Education",
            "amount_remaining": "$1,000,000",
            "programs": "NMTC",
        },
        {
            "id": "inv-harbor",
            "name": "Harbor Impact Investors",
            "type": "Investor",
            "primary_states": ["WV", "CT"],
            "min_investment": 1000000,
            "max_investment": 5000000,
            "programs": ["NMTC", "HTC"],
        },
        {
            "id": "cde-dormant",
            "name": "Dormant CDE",
            "status": "inactive",
            "primary_states": "WV",
        },
        {"name": "Provider without an id"},
    ],
}


@pytest.fixture
def marketplace_file(tmp_path: Path) -> Path:
    path = tmp_path / "marketplace.json"
    path.write_text(json.dumps(MARKETPLACE, indent=2), encoding="utf-8")
    return path


@pytest.fixture
def providers_csv(tmp_path: Path) -> Path:
    path = tmp_path / "providers.csv"
    path.write_text(
        "id,name,type,primary_states,target_sectors,remaining_allocation,small_deal_fund,programs\n"
        'cde-csv-mountain,Mountain CDE,CDE,WV;KY,Healthcare;Education,"$12,000,000",yes,NMTC\n'
        "inv-csv-harbor,Harbor Investors,Investor,,,,,\n"
        "cde-zephyr,Duplicate Zephyr Row,CDE,CA,,,,\n",
        encoding="utf-8",
    )
    return path
