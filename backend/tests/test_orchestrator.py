"""Tests for the calculation pipeline and get-or-compute service."""

import pytest
from unittest.mock import patch

from ll97_retrofit.engine import orchestrator
from ll97_retrofit.engine.errors import CalculationAbortedError, CalculationNotFoundError
from ll97_retrofit.engine.orchestrator import (
    CalculationService,
    apply_overrides,
    cache_key,
    compute,
    constants_version,
)
from ll97_retrofit.models.schemas import (
    CalculationOptions,
    CalculationOverrides,
    EnergyPrices,
)


# ──────────────────────────────────────────────────────────────
# PURE PIPELINE
# ──────────────────────────────────────────────────────────────

class TestCompute:
    def test_reference_office_building(self, office_profile):
        result = compute(office_profile)
        assert result.unit_breakdown.ptac_units == 28
        assert result.unit_breakdown.confidence == "medium"
        assert [c.emissions_budget for c in result.compliance] == pytest.approx(
            [105.75, 56.625, 20.65425, 7.2736625]
        )
        assert result.financial.retrofit_cost == 47_740.0
        assert result.energy.ptac_units == 28
        assert result.constants_version == constants_version()
        assert len(result.cache_key) == 64

    def test_deterministic(self, office_profile):
        a = compute(office_profile).model_dump(exclude={"calculated_at"})
        b = compute(office_profile).model_dump(exclude={"calculated_at"})
        assert a == b

    def test_missing_emissions_aborts_with_stage(self, office_profile):
        profile = office_profile.model_copy(update={"total_emissions_tco2e": None})
        with pytest.raises(CalculationAbortedError) as exc:
            compute(profile)
        assert exc.value.stage == "ll97"
        assert exc.value.field == "total_emissions_tco2e"

    def test_unknown_class_still_computes(self, office_profile):
        profile = office_profile.model_copy(update={"building_class": "Z9"})
        result = compute(profile)
        assert result.unit_breakdown.confidence == "low"
        assert result.unit_breakdown.ptac_units == 25

    def test_zero_units(self, office_profile):
        result = compute(office_profile, CalculationOptions(ptac_units_override=0))
        assert result.financial.retrofit_cost == 0
        assert result.energy.annual_savings == 0
        assert all(v.value == 0 for v in result.financial.loan_balance)

    def test_flat_fields(self, office_profile):
        flat = compute(office_profile).to_flat_fields()
        assert flat["emissions_budget_2024_2029"] == pytest.approx(105.75)
        assert flat["total_retrofit_cost"] == 47_740.0
        assert "be_credit_2024_2026" in flat
        assert "adjusted_annual_fee_2027_2029" in flat
        assert flat["compliance_status"]["2040-2049"] is False
        assert flat["loan_balance_by_year"][0] == {"year": 2025, "value": 47_740.0}


class TestCacheKey:
    def test_stable(self, office_profile):
        assert cache_key(office_profile, CalculationOptions()) == cache_key(office_profile, CalculationOptions())

    def test_changes_with_options(self, office_profile):
        cheap = CalculationOptions(prices=EnergyPrices(price_per_kwh=0.10))
        assert cache_key(office_profile, cheap) != cache_key(office_profile, CalculationOptions())

    def test_changes_with_constants_version(self, office_profile):
        before = cache_key(office_profile, CalculationOptions())
        with patch.object(orchestrator, "CONSTANTS_VERSION", "2099.1"):
            assert cache_key(office_profile, CalculationOptions()) != before


class TestApplyOverrides:
    def test_only_supplied_fields_change(self):
        options = apply_overrides(CalculationOptions(), CalculationOverrides(price_per_kwh=0.30, loan_term_years=10))
        assert options.prices.price_per_kwh == 0.30
        assert options.prices.price_per_therm == CalculationOptions().prices.price_per_therm
        assert options.loan.term_years == 10
        assert options.ptac_units_override is None

    def test_ptac_override(self):
        options = apply_overrides(CalculationOptions(), CalculationOverrides(ptac_units=40))
        assert options.ptac_units_override == 40

    def test_base_noi_override_is_tagged(self):
        options = apply_overrides(CalculationOptions(), CalculationOverrides(base_noi=90_000))
        assert options.noi.base_noi == 90_000
        assert options.noi.base_noi_source == "override"

    def test_other_overrides_keep_noi_source(self):
        options = CalculationOptions().model_copy(update={
            "noi": CalculationOptions().noi.model_copy(update={"base_noi": 1.0, "base_noi_source": "rgb_study"}),
        })
        out = apply_overrides(options, CalculationOverrides(cap_rate=0.06))
        assert out.noi.base_noi_source == "rgb_study"
        assert out.noi.cap_rate == 0.06


# ──────────────────────────────────────────────────────────────
# GET-OR-COMPUTE
# ──────────────────────────────────────────────────────────────

class TestCalculationService:
    @pytest.mark.asyncio
    async def test_create_persists_full_result(self, office_profile, repository):
        service = CalculationService(repository)
        result = await service.create(office_profile)
        stored = repository.records[result.id]
        assert stored.result.id == result.id
        assert stored.result.compliance

    @pytest.mark.asyncio
    async def test_create_persists_nothing_on_failure(self, office_profile, repository):
        service = CalculationService(repository)
        profile = office_profile.model_copy(update={"total_emissions_tco2e": None})
        with pytest.raises(CalculationAbortedError):
            await service.create(profile)
        assert repository.records == {}

    @pytest.mark.asyncio
    async def test_stored_result_returned_unchanged(self, office_profile, repository):
        service = CalculationService(repository)
        created = await service.create(office_profile)
        with patch.object(orchestrator, "compute") as mock_compute:
            first = await service.get_or_compute(created.id)
            second = await service.get_or_compute(created.id)
        mock_compute.assert_not_called()
        assert first == second
        assert first.calculated_at == created.calculated_at
        assert repository.saves == 0

    @pytest.mark.asyncio
    async def test_record_without_compliance_is_computed(self, office_profile, repository):
        service = CalculationService(repository)
        calculation_id = await repository.create(office_profile, CalculationOptions())
        result = await service.get_or_compute(calculation_id)
        assert result.id == calculation_id
        assert len(result.compliance) == 4
        assert repository.saves == 1
        assert repository.records[calculation_id].result == result

    @pytest.mark.asyncio
    async def test_unknown_id(self, repository):
        with pytest.raises(CalculationNotFoundError):
            await CalculationService(repository).get_or_compute("missing")

    @pytest.mark.asyncio
    async def test_stale_result_reused_by_default(self, office_profile, repository):
        service = CalculationService(repository)
        created = await service.create(office_profile)
        stale = created.model_copy(update={"constants_version": "2023.1"})
        await repository.save_result(stale)
        result = await service.get_or_compute(created.id)
        assert result.constants_version == "2023.1"

    @pytest.mark.asyncio
    async def test_stale_result_recomputed_when_configured(self, office_profile, repository):
        service = CalculationService(repository, stale_result_policy="recompute")
        created = await service.create(office_profile)
        await repository.save_result(created.model_copy(update={"constants_version": "2023.1"}))
        result = await service.get_or_compute(created.id)
        assert result.constants_version == constants_version()

    @pytest.mark.asyncio
    async def test_recalculate_rederives_everything(self, office_profile, repository):
        service = CalculationService(repository)
        created = await service.create(office_profile)
        updated = await service.recalculate(
            created.id, CalculationOverrides(price_per_kwh=0.10, ptac_units=40),
        )
        assert updated.unit_breakdown.ptac_units == 40
        assert updated.financial.retrofit_cost == pytest.approx(1550 * 40 * 1.1)
        assert updated.energy.annual_savings > created.energy.annual_savings
        assert updated.cache_key != created.cache_key
        assert repository.records[created.id].result == updated
        # overrides stick for later reads
        again = await service.get_or_compute(created.id)
        assert again == updated
