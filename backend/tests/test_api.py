"""Tests for the calculations HTTP API."""

import pytest
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock, patch

from ll97_retrofit.api.routes import get_calculation_service
from ll97_retrofit.engine.orchestrator import CalculationService
from ll97_retrofit.main import app
from ll97_retrofit.models.schemas import LL84Data, PlutoData, SourcedNOI


PROFILE = {
    "bbl": "1000010001",
    "building_class": "R6",
    "total_square_feet": 12500,
    "occupancy": [{"occupancy_type": "Office", "square_feet": 12500}],
    "total_emissions_tco2e": 1250.50,
}


@pytest.fixture
def client(repository):
    service = CalculationService(repository)
    app.dependency_overrides[get_calculation_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestCalculationsApi:
    def test_create_and_read(self, client):
        resp = client.post("/api/v1/calculations", json={"profile": PROFILE})
        assert resp.status_code == 200
        body = resp.json()
        assert body["unit_breakdown"]["ptac_units"] == 28
        assert body["financial"]["retrofit_cost"] == 47740.0

        again = client.get(f"/api/v1/calculations/{body['id']}")
        assert again.status_code == 200
        assert again.json() == body

    def test_ll97_slice(self, client):
        created = client.post("/api/v1/calculations", json={"profile": PROFILE}).json()
        resp = client.get(f"/api/v1/calculations/{created['id']}/ll97")
        assert resp.status_code == 200
        body = resp.json()
        assert body["emissions_budget_2024_2029"] == pytest.approx(105.75)
        assert body["compliance_status"]["2024-2029"] is False

    def test_flat_fields(self, client):
        created = client.post("/api/v1/calculations", json={"profile": PROFILE}).json()
        body = client.get(f"/api/v1/calculations/{created['id']}/flat").json()
        assert body["ptac_units"] == 28
        assert len(body["noi_with_upgrade_by_year"]) == 25

    def test_override(self, client):
        created = client.post("/api/v1/calculations", json={"profile": PROFILE}).json()
        resp = client.put(f"/api/v1/calculations/{created['id']}", json={"ptac_units": 10})
        assert resp.status_code == 200
        assert resp.json()["unit_breakdown"]["ptac_units"] == 10

    def test_unknown_id(self, client):
        assert client.get("/api/v1/calculations/does-not-exist").status_code == 404

    def test_missing_emissions_reports_stage(self, client):
        profile = {**PROFILE, "total_emissions_tco2e": None}
        resp = client.post("/api/v1/calculations", json={"profile": profile})
        assert resp.status_code == 422
        assert resp.json()["detail"]["stage"] == "ll97"

    def test_requires_bbl_or_profile(self, client):
        assert client.post("/api/v1/calculations", json={}).status_code == 422

    def test_invalid_bbl(self, client):
        resp = client.post("/api/v1/calculations", json={"bbl": "123"})
        assert resp.status_code == 400

    def test_bbl_without_pluto(self, client):
        with patch("ll97_retrofit.api.routes.fetch_pluto_data", AsyncMock(return_value=None)):
            resp = client.post("/api/v1/calculations", json={"bbl": "1000010001"})
        assert resp.status_code == 404


# ──────────────────────────────────────────────────────────────
# BBL RESOLUTION
# ──────────────────────────────────────────────────────────────

BBL_PLUTO = PlutoData(
    bbl="3012340789", bldgclass="D1", borough="BK", cd=308,
    bldgarea=12_500, unitsres=12, yearbuilt=1928, numfloors=8,
)
BBL_LL84 = LL84Data(
    bbl="3012340789",
    list_of_all_property_use="Multifamily Housing (12500.0)",
    site_energy_use_kbtu=1_200_000.0,
    total_location_based_ghg=95.0,
)


def _patched_sources(ll84=BBL_LL84, noi=None):
    return (
        patch("ll97_retrofit.api.routes.fetch_pluto_data", AsyncMock(return_value=BBL_PLUTO)),
        patch("ll97_retrofit.api.routes.fetch_ll84_data", AsyncMock(return_value=ll84)),
        patch("ll97_retrofit.api.routes.source_base_noi", AsyncMock(return_value=noi)),
        patch("ll97_retrofit.api.routes.estimate_unit_mix", AsyncMock(return_value=None)),
    )


class TestBblResolution:
    def test_missing_ll84_makes_no_model_or_noi_request(self, client):
        pluto_p, ll84_p, noi_p, model_p = _patched_sources(ll84=None)
        with pluto_p, ll84_p, noi_p as mock_noi, model_p as mock_model:
            resp = client.post("/api/v1/calculations", json={"bbl": "3012340789"})

        assert resp.status_code == 422
        assert resp.json()["detail"]["field"] == "ll84"
        mock_model.assert_not_awaited()
        mock_noi.assert_not_awaited()

    def test_missing_site_energy_makes_no_model_request(self, client):
        ll84 = BBL_LL84.model_copy(update={"site_energy_use_kbtu": None})
        pluto_p, ll84_p, noi_p, model_p = _patched_sources(ll84=ll84)
        with pluto_p, ll84_p, noi_p, model_p as mock_model:
            resp = client.post("/api/v1/calculations", json={"bbl": "3012340789"})

        assert resp.status_code == 422
        assert resp.json()["detail"]["field"] == "total_site_energy_kbtu"
        mock_model.assert_not_awaited()

    def test_sourced_noi_becomes_base_noi(self, client):
        sourced = SourcedNOI(annual_noi=250_000.0, source="rgb_study")
        pluto_p, ll84_p, noi_p, model_p = _patched_sources(noi=sourced)
        with pluto_p, ll84_p, noi_p, model_p as mock_model:
            resp = client.post("/api/v1/calculations", json={"bbl": "3012340789"})

        assert resp.status_code == 200
        body = resp.json()
        assert body["financial"]["base_noi"] == 250_000.0
        assert body["financial"]["noi_source"] == "rgb_study"
        assert body["financial"]["noi_estimated"] is False
        assert body["options"]["noi"]["base_noi_source"] == "rgb_study"
        mock_model.assert_awaited_once()

    def test_override_replaces_sourced_noi(self, client):
        sourced = SourcedNOI(annual_noi=250_000.0, source="rgb_study")
        pluto_p, ll84_p, noi_p, model_p = _patched_sources(noi=sourced)
        with pluto_p, ll84_p, noi_p, model_p:
            created = client.post("/api/v1/calculations", json={"bbl": "3012340789"}).json()

        resp = client.put(f"/api/v1/calculations/{created['id']}", json={"base_noi": 90_000})
        assert resp.json()["financial"]["base_noi"] == 90_000.0
        assert resp.json()["financial"]["noi_source"] == "override"

    def test_no_noi_found_falls_back_to_building_value(self, client):
        pluto_p, ll84_p, noi_p, model_p = _patched_sources(noi=None)
        with pluto_p, ll84_p, noi_p, model_p:
            body = client.post("/api/v1/calculations", json={"bbl": "3012340789"}).json()

        assert body["financial"]["noi_source"] == "building_value"
        assert body["financial"]["noi_estimated"] is True
