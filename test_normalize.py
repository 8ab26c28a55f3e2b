"""
test_normalize.py - Normalizer and record reconciliation tests.

Usage: pytest test_normalize.py
"""

from __future__ import annotations

import math

import pytest

from models import AllocationType, DealStatus, ProgramType, ProviderKind
from normalize import (
    normalize_allocation_type,
    normalize_amount,
    normalize_bool,
    normalize_list,
    normalize_percent,
    normalize_program,
    normalize_provider,
    normalize_status,
    normalize_text,
    reconcile_deal,
)


class TestNormalizeText:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("Real_Estate", "real estate"),
            ("  Real   Estate ", "real estate"),
            ("community-facility", "community facility"),
            ("HEALTHCARE", "healthcare"),
            ("", ""),
            (None, ""),
        ],
    )
    def test_cases(self, raw, expected):
        assert normalize_text(raw) == expected

    def test_idempotent(self):
        for raw in ["Real_Estate", "  Mixed-Use  Retail ", "NMTC", "a_b-c  d"]:
            once = normalize_text(raw)
            assert normalize_text(once) == once

    def test_non_string_is_coerced(self):
        assert normalize_text(2024) == "2024"


class TestNormalizeAmount:
    def test_dollar_text(self):
        assert normalize_amount("$4,500,000") == 4_500_000.0

    def test_suffixes(self):
        assert normalize_amount("4.5M") == 4_500_000.0
        assert normalize_amount("250k") == 250_000.0

    def test_numbers_pass_through(self):
        assert normalize_amount(1200) == 1200.0

    @pytest.mark.parametrize("raw", [None, "", "n/a", "abc", "-5", float("nan"), True])
    def test_unusable_values_become_none(self, raw):
        assert normalize_amount(raw) is None


class TestNormalizePercent:
    def test_percent_sign(self):
        assert normalize_percent("35%") == 35.0

    def test_out_of_range(self):
        assert normalize_percent("150") is None
        assert normalize_percent(-1) is None

    def test_missing(self):
        assert normalize_percent(None) is None
        assert normalize_percent(math.nan) is None


class TestNormalizeBool:
    @pytest.mark.parametrize("raw", [True, "yes", "Y", "true", 1, "1"])
    def test_true(self, raw):
        assert normalize_bool(raw) is True

    @pytest.mark.parametrize("raw", [False, "no", "N", "false", 0, "0"])
    def test_false(self, raw):
        assert normalize_bool(raw) is False

    @pytest.mark.parametrize("raw", [None, "", "maybe", "unknown"])
    def test_unknown(self, raw):
        assert normalize_bool(raw) is None


class TestNormalizeProgram:
    @pytest.mark.parametrize(
        "raw",
        ["NMTC", "nmtc", "New Markets Tax Credit", "new_markets", ProgramType.NMTC],
    )
    def test_nmtc_aliases(self, raw):
        assert normalize_program(raw) == ProgramType.NMTC

    def test_other_programs(self):
        assert normalize_program("Historic") == ProgramType.HTC
        assert normalize_program("opportunity-zone") == ProgramType.OZ
        assert normalize_program("LIHTC") == ProgramType.LIHTC

    def test_unknown_program(self):
        assert normalize_program("space credits") is None
        assert normalize_program(None) is None


def test_normalize_status():
    assert normalize_status("Seeking Capital") == DealStatus.SEEKING_CAPITAL
    assert normalize_status("under-review") == DealStatus.UNDER_REVIEW
    assert normalize_status("archived") is None


def test_normalize_list():
    assert normalize_list("WV; VA, KY") == ("WV", "VA", "KY")
    assert normalize_list(["WV", "", None, " VA "]) == ("WV", "VA")
    assert normalize_list(None) == ()
    assert normalize_list("") == ()


def test_enum_members_use_their_value():
    assert normalize_list([ProgramType.NMTC, "HTC"]) == ("NMTC", "HTC")
    assert normalize_list(ProgramType.LIHTC) == ("LIHTC",)
    assert normalize_text(ProgramType.NMTC) == "nmtc"


class TestNormalizeAllocationType:
    @pytest.mark.parametrize("raw", ["State NMTC", "state", "STATE_NMTC", AllocationType.STATE])
    def test_state(self, raw):
        assert normalize_allocation_type(raw) == AllocationType.STATE

    @pytest.mark.parametrize("raw", ["Federal", "federal NMTC", "fed"])
    def test_federal(self, raw):
        assert normalize_allocation_type(raw) == AllocationType.FEDERAL

    @pytest.mark.parametrize("raw", ["NMTC", "New Markets Tax Credit", "", None])
    def test_plain_program_says_nothing(self, raw):
        assert normalize_allocation_type(raw) is None


class TestReconcileDeal:
    def test_first_source_wins(self):
        deal = reconcile_deal(
            {"id": "d1", "project_type": "Healthcare"},
            {"sector": "Education", "allocation_request": "$3,000,000"},
        )
        assert deal.sector == "Healthcare"
        assert deal.requested_amount == 3_000_000.0

    def test_empty_values_fall_through(self):
        deal = reconcile_deal({"id": "d1", "state": ""}, {"state": "WV"})
        assert deal.state == "WV"

    def test_aliases_map_to_canonical_fields(self):
        deal = reconcile_deal(
            {
                "deal_id": "d2",
                "tract_poverty_rate": "31.5%",
                "tract_severely_distressed": "yes",
                "permanent_jobs_fte": "25",
                "credit_type": "new markets",
            }
        )
        assert deal.id == "d2"
        assert deal.poverty_rate == 31.5
        assert deal.severely_distressed is True
        assert deal.jobs_created == 25
        assert deal.program == ProgramType.NMTC

    def test_nested_compliance_wins_over_top_level(self):
        deal = reconcile_deal({"id": "d1", "compliance": {"gross_income": "65%"}, "gross_income": 20})
        assert deal.compliance.gross_income == 65.0

    def test_boolean_compliance_inputs(self):
        deal = reconcile_deal({"id": "d1", "gross_income_test": "yes", "no_collectibles": False})
        assert deal.compliance.gross_income is True
        assert deal.compliance.collectibles_test is False

    def test_sparse_deal_is_valid(self):
        deal = reconcile_deal({"id": "sparse"})
        assert deal.state is None
        assert deal.requested_amount is None
        assert deal.compliance.gross_income is None

    def test_missing_id_raises(self):
        with pytest.raises(ValueError):
            reconcile_deal({"name": "no id"}, {"state": "WV"})

    def test_non_mapping_sources_are_skipped(self):
        deal = reconcile_deal("garbage", {"id": "d3"})
        assert deal.id == "d3"

    def test_state_allocation_is_kept(self):
        deal = reconcile_deal({"id": "d4", "program": "State NMTC"})
        assert deal.program == ProgramType.NMTC
        assert deal.allocation_type == AllocationType.STATE

    def test_plain_program_leaves_allocation_unset(self):
        assert reconcile_deal({"id": "d5", "program": "NMTC"}).allocation_type is None

    def test_explicit_allocation_type_wins(self):
        deal = reconcile_deal({"id": "d6", "allocation_type": "federal", "program": "State NMTC"})
        assert deal.allocation_type == AllocationType.FEDERAL


class TestNormalizeProvider:
    def test_aliases_and_kind(self):
        provider = normalize_provider(
            {
                "id": "p1",
                "type": "Investor",
                "primary_states": "WV;VA",
                "min_deal_size": "$1M",
                "programs": "NMTC, HTC",
            }
        )
        assert provider.kind == ProviderKind.INVESTOR
        assert provider.geographic_focus == ("WV", "VA")
        assert provider.min_investment == 1_000_000.0
        assert provider.program_focus == (ProgramType.NMTC, ProgramType.HTC)
        assert provider.active is True

    def test_program_focus_from_enum_members(self):
        provider = normalize_provider({"id": "p6", "program_focus": [ProgramType.NMTC, ProgramType.HTC]})
        assert provider.program_focus == (ProgramType.NMTC, ProgramType.HTC)

    def test_allocation_source(self):
        assert normalize_provider({"id": "p7", "allocation_source": "State"}).allocation_type == AllocationType.STATE
        assert normalize_provider({"id": "p8"}).allocation_type is None

    def test_defaults_to_cde(self):
        assert normalize_provider({"id": "p2"}).kind == ProviderKind.CDE

    def test_inactive_status(self):
        assert normalize_provider({"id": "p3", "status": "inactive"}).active is False
        assert normalize_provider({"id": "p4", "active": "no"}).active is False

    def test_missing_id_raises(self):
        with pytest.raises(ValueError):
            normalize_provider({"name": "no id"})

    def test_non_mapping_raises(self):
        with pytest.raises(ValueError):
            normalize_provider(["p5"])
