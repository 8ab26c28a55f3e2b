"""
test_api.py - HTTP layer tests.

The directory dependency is overridden with a fixture snapshot, so no
files outside tmp_path are read.

Usage: pytest test_api.py
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from api import app, get_directory, get_settings
from config import AutoMatchSettings
from directory import MarketplaceDirectory


@pytest.fixture
def client(marketplace_file):
    directory = MarketplaceDirectory.from_json(str(marketplace_file))
    app.dependency_overrides[get_directory] = lambda: directory
    app.dependency_overrides[get_settings] = lambda: AutoMatchSettings()
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def test_settings_come_from_dependency(client):
    app.dependency_overrides[get_settings] = lambda: AutoMatchSettings(max_results=1, reason_limit=1)
    response = client.post("/automatch/run", json={"deal_id": "deal-wv-clinic", "program_year": 2024})
    assert [match["provider_id"] for match in response.json()["matches"]] == ["cde-zephyr"]
    highlights = client.get("/deals/deal-wv-clinic/highlights", params={"program_year": 2024}).json()["highlights"]
    assert len(highlights) == 1


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


class TestRun:
    def test_success(self, client):
        response = client.post("/automatch/run", json={"deal_id": "deal-wv-clinic", "program_year": 2024})
        assert response.status_code == 200
        payload = response.json()
        assert payload["status"] == "matched"
        assert payload["program_year"] == 2024
        top = payload["matches"][0]
        assert top["provider_id"] == "cde-zephyr"
        assert top["score"] == 76
        assert top["rank"] == 1
        assert len(top["reasons"]) <= 3

    def test_max_results_and_min_score(self, client):
        response = client.post(
            "/automatch/run",
            json={"deal_id": "deal-wv-clinic", "program_year": 2024, "max_results": 5, "min_score": 50},
        )
        assert response.status_code == 200
        assert [match["provider_id"] for match in response.json()["matches"]] == ["cde-zephyr", "inv-harbor"]

    def test_skipped_deal(self, client):
        response = client.post("/automatch/run", json={"deal_id": "deal-draft"})
        assert response.status_code == 200
        assert response.json()["status"] == "skipped"

    def test_unknown_deal(self, client):
        response = client.post("/automatch/run", json={"deal_id": "missing"})
        assert response.status_code == 404

    @pytest.mark.parametrize(
        "body",
        [
            {"deal_id": "deal-wv-clinic", "max_results": -1},
            {"deal_id": "deal-wv-clinic", "program_year": "2024"},
            {"deal_id": "deal-wv-clinic", "min_score": 101},
            {"deal_id": ""},
            {"program_year": 2024},
            {"deal_id": "deal-wv-clinic", "unexpected": True},
            ["deal-wv-clinic"],
        ],
    )
    def test_bad_request(self, client, body):
        response = client.post("/automatch/run", json=body)
        assert response.status_code == 400

    def test_missing_body(self, client):
        assert client.post("/automatch/run").status_code == 400


class TestDealEndpoints:
    def test_eligibility(self, client):
        response = client.get("/deals/deal-wv-clinic/eligibility")
        assert response.status_code == 200
        payload = response.json()
        assert payload["deal_id"] == "deal-wv-clinic"
        assert payload["eligibility"]["status"] == "partial"
        assert payload["eligibility"]["tests_completed"] == 2
        assert payload["eligibility"]["tests_passing"] == 1

    def test_eligibility_unknown_deal(self, client):
        assert client.get("/deals/missing/eligibility").status_code == 404

    def test_highlights(self, client):
        response = client.get("/deals/deal-wv-clinic/highlights", params={"program_year": 2024})
        assert response.status_code == 200
        payload = response.json()
        assert payload["program_year"] == 2024
        assert payload["highlights"] == [
            "Located in underserved community: West Virginia (2024 round)",
            "Severely distressed census tract",
        ]

    def test_highlights_unknown_deal(self, client):
        assert client.get("/deals/missing/highlights").status_code == 404
