"""
test_explain.py - Reason generation and result formatting tests.

Usage: pytest test_explain.py
"""

from __future__ import annotations

import json

import pytest

from conftest import ALL_PASSING_COMPLIANCE, make_deal, make_provider
from explain import (
    NO_REASON_FALLBACK,
    REASON_LIMIT,
    deal_highlights,
    format_eligibility_json,
    format_match_set,
    format_match_set_json,
    generate_reasons,
)
from match import run
from models import CriterionScore, Deal, DealStatus, EligibilityResult
from score import score_pair


def _result_set(year: int = 2024, **deal_overrides):
    providers = [
        make_provider(id="cde-zephyr", name="Zephyr Capital CDE"),
        make_provider(id="cde-acorn", name="acorn community fund"),
    ]
    return run(make_deal(**deal_overrides), providers, year)


class TestGenerateReasons:
    def test_default_limit(self):
        assert REASON_LIMIT == 3
        reasons = generate_reasons(score_pair(make_deal(), make_provider(), 2024))
        assert len(reasons) == 3
        assert reasons[0].startswith("Located in West Virginia")
        assert reasons[1].startswith("Sector alignment")
        assert reasons[2].startswith("Request $4.0M fits remaining allocation")

    def test_ties_keep_criterion_order(self):
        reasons = generate_reasons(score_pair(make_deal(), make_provider(), 2024), limit=5)
        # underserved (8) and program (8) tie; underserved comes first.
        assert reasons[3].startswith("Located in underserved community")
        assert reasons[4].startswith("Program focus includes NMTC")

    def test_zero_contributions_never_rendered(self):
        scores = [
            CriterionScore(name="geographic", score=0, weight=14, reason="should not show"),
            CriterionScore(name="sector", score=6, weight=12, reason="Sector alignment: education"),
        ]
        assert generate_reasons(scores) == ["Sector alignment: education"]

    def test_all_zero_gives_empty_list(self):
        scores = score_pair(Deal(id="empty"), make_provider(geographic_focus=()), 2024)
        assert generate_reasons([item for item in scores if item.score == 0]) == []

    def test_missing_reason_uses_label(self):
        scores = [CriterionScore(name="shovel_ready", score=6, weight=6)]
        assert generate_reasons(scores) == ["Shovel-ready project"]

    def test_limit_zero(self):
        assert generate_reasons(score_pair(make_deal(), make_provider(), 2024), limit=0) == []

    def test_negative_limit_rejected(self):
        with pytest.raises(ValueError):
            generate_reasons([], limit=-1)


class TestDealHighlights:
    def test_fallback_when_nothing_applies(self):
        assert deal_highlights(Deal(id="empty"), 2024) == [NO_REASON_FALLBACK]
        assert NO_REASON_FALLBACK == "Run AutoMatch to see reasons"

    def test_reference_deal(self):
        highlights = deal_highlights(make_deal(), 2024)
        assert highlights == [
            "Located in underserved community: West Virginia (2024 round)",
            "Severely distressed census tract",
        ]

    def test_limit_applies(self):
        deal = make_deal(shovel_ready=True, jobs_created=30, compliance=ALL_PASSING_COMPLIANCE)
        assert len(deal_highlights(deal, 2024)) == 3
        full = deal_highlights(deal, 2024, limit=10)
        assert "Creates 30 jobs" in full
        assert "All 7 completed compliance tests passing" in full

    def test_year_fallback_is_reported(self):
        highlights = deal_highlights(make_deal(), 2030)
        assert highlights[0].endswith("(2025 round)")


class TestFormatMatchSet:
    def test_text_output(self):
        text = format_match_set(_result_set())
        assert "2 Match(es) for deal deal-wv-clinic" in text
        assert "1. acorn community fund" in text
        assert "2. Zephyr Capital CDE" in text
        assert "Score: 72/100  |  Good match" in text

    def test_none_input(self):
        assert "ERROR" in format_match_set(None)

    def test_skipped_run(self):
        text = format_match_set(_result_set(status=DealStatus.DRAFT))
        assert "MATCHING SKIPPED" in text
        assert "draft" in text

    def test_year_fallback_is_shown(self):
        assert "(underserved table: 2025)" in format_match_set(_result_set(year=2031))


class TestFormatMatchSetJson:
    def test_matched_payload(self):
        payload = format_match_set_json(_result_set())
        assert payload["status"] == "matched"
        assert payload["deal_id"] == "deal-wv-clinic"
        assert [match["rank"] for match in payload["matches"]] == [1, 2]
        first = payload["matches"][0]
        assert first["provider_name"] == "acorn community fund"
        assert first["score"] == 72
        assert first["tier"] == "good"
        assert first["tier_label"] == "Good"
        assert list(first["breakdown"])[0] == "geographic"
        assert payload["warnings"] == []
        json.dumps(payload)

    def test_skipped_payload(self):
        payload = format_match_set_json(_result_set(status=DealStatus.WITHDRAWN))
        assert payload["status"] == "skipped"
        assert payload["matches"] == []
        assert "withdrawn" in payload["skipped_reason"]

    def test_no_matches_payload(self):
        payload = format_match_set_json(run(make_deal(), [], 2024))
        assert payload["status"] == "no_matches"

    def test_year_fallback_warning(self):
        payload = format_match_set_json(_result_set(year=2019))
        assert payload["underserved_year"] == 2022
        assert payload["warnings"]

    def test_none_input(self):
        assert format_match_set_json(None)["status"] == "error"


def test_format_eligibility_json():
    payload = format_eligibility_json(EligibilityResult())
    assert payload == {
        "applicable": False,
        "status": "not_started",
        "tests_completed": 0,
        "tests_passing": 0,
        "passed_tests": [],
        "failed_tests": [],
        "recommendations": [],
    }
