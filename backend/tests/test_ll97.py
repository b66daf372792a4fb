"""Tests for LL97 budgets, retrofit-adjusted emissions, BE credit and fees."""

import pytest

from ll97_retrofit.engine.energy import convert
from ll97_retrofit.engine.errors import DataAvailabilityError
from ll97_retrofit.engine.ll97 import (
    emissions_budgets,
    evaluate,
    fees_for_year,
    summarize,
)
from ll97_retrofit.models.schemas import BuildingProfile, LL97Constants, OccupancyUse


def _profile(uses, total_sf=None, emissions=1000.0, building_class="D4"):
    occupancy = [OccupancyUse(occupancy_type=t, square_feet=sf) for t, sf in uses]
    return BuildingProfile(
        building_class=building_class,
        total_square_feet=total_sf if total_sf is not None else sum(sf for _, sf in uses),
        occupancy=occupancy,
        total_emissions_tco2e=emissions,
    )


# ──────────────────────────────────────────────────────────────
# BUDGETS
# ──────────────────────────────────────────────────────────────

class TestEmissionsBudgets:
    def test_reference_office_building(self, office_profile):
        budgets = emissions_budgets(office_profile)
        assert budgets["2024-2029"] == pytest.approx(105.75)
        assert budgets["2030-2034"] == pytest.approx(56.625)
        assert budgets["2035-2039"] == pytest.approx(20.65425)
        assert budgets["2040-2049"] == pytest.approx(7.2736625)

    def test_mixed_use_sums_per_occupancy(self):
        budgets = emissions_budgets(_profile([("Office", 10_000), ("Multifamily Housing", 20_000)]))
        assert budgets["2024-2029"] == pytest.approx(10_000 * 0.00846 + 20_000 * 0.00675)

    def test_alias_uses_canonical_limits(self):
        a = emissions_budgets(_profile([("Multi-family Housing", 10_000)]))
        b = emissions_budgets(_profile([("Multifamily Housing", 10_000)]))
        assert a == b

    def test_unclassified_remainder_budgeted_as_office(self):
        budgets = emissions_budgets(_profile([("Multifamily Housing", 8_000)], total_sf=10_000))
        assert budgets["2024-2029"] == pytest.approx(8_000 * 0.00675 + 2_000 * 0.00846)

    def test_zero_area_zero_budget(self):
        budgets = emissions_budgets(_profile([("Office", 0)], total_sf=10_000))
        assert all(v == 0 for v in budgets.values())

    def test_no_occupancy_zero_budget(self):
        budgets = emissions_budgets(_profile([], total_sf=10_000))
        assert all(v == 0 for v in budgets.values())


# ──────────────────────────────────────────────────────────────
# EVALUATION
# ──────────────────────────────────────────────────────────────

class TestEvaluate:
    def test_four_periods_in_order(self, office_profile):
        results = evaluate(office_profile, convert(28))
        assert [r.period for r in results] == ["2024-2029", "2030-2034", "2035-2039", "2040-2049"]

    def test_missing_emissions_raises(self):
        profile = _profile([("Office", 10_000)]).model_copy(update={"total_emissions_tco2e": None})
        with pytest.raises(DataAvailabilityError) as exc:
            evaluate(profile, convert(10))
        assert exc.value.field == "total_emissions_tco2e"

    def test_adjusted_emissions_first_period(self, office_profile):
        energy = convert(28)
        r = evaluate(office_profile, energy)[0]
        removed = energy.baseline_heating_mmbtu * 0.05311
        added = energy.retrofit_heating_kwh * 0.000288962
        credit = energy.retrofit_heating_kwh * 0.0013
        assert r.retrofit_emissions_delta == pytest.approx(removed - added)
        assert r.be_credit == pytest.approx(credit)
        assert r.adjusted_emissions == pytest.approx(1250.50 - removed + added - credit)
        assert r.annual_fee == pytest.approx((r.adjusted_emissions - 105.75) * 268)
        assert r.baseline_annual_fee == pytest.approx((1250.50 - 105.75) * 268)
        assert r.fee_avoidance == pytest.approx(r.baseline_annual_fee - r.annual_fee)
        assert not r.compliant

    def test_be_credit_windows(self, office_profile):
        energy = convert(28)
        r = evaluate(office_profile, energy)[0]
        assert [(w.start_year, w.end_year) for w in r.be_credit_windows] == [(2024, 2026), (2027, 2029)]
        assert r.be_credit_windows[1].be_credit == pytest.approx(energy.retrofit_heating_kwh * 0.00065)
        assert r.be_credit_windows[1].annual_fee > r.be_credit_windows[0].annual_fee

    def test_no_be_credit_from_2030(self, office_profile):
        for r in evaluate(office_profile, convert(28))[1:]:
            assert not r.be_credit_eligible
            assert r.be_credit == 0
            assert r.be_credit_windows == []

    def test_later_periods_use_lower_grid_factor(self, office_profile):
        energy = convert(28)
        r = evaluate(office_profile, energy)[1]
        removed = energy.baseline_heating_mmbtu * 0.05311
        added = energy.retrofit_heating_kwh * 0.000145
        assert r.adjusted_emissions == pytest.approx(1250.50 - removed + added)

    def test_credit_pushes_below_budget_but_flag_uses_current(self, office_profile):
        # current 110 t against a 105.75 t budget; the credit alone closes the gap
        profile = office_profile.model_copy(update={"total_emissions_tco2e": 110.0})
        energy = convert(0).model_copy(update={"retrofit_heating_kwh": 10_000.0})
        r = evaluate(profile, energy)[0]
        assert r.adjusted_emissions < r.emissions_budget
        assert r.annual_fee == 0
        assert r.compliant is False
        assert r.baseline_annual_fee == pytest.approx((110.0 - 105.75) * 268)

    def test_credit_never_drives_emissions_negative(self, office_profile):
        profile = office_profile.model_copy(update={"total_emissions_tco2e": 5.0})
        energy = convert(0).model_copy(update={"retrofit_heating_kwh": 1_000_000.0})
        for r in evaluate(profile, energy):
            assert r.adjusted_emissions >= 0
            assert r.be_credit >= 0

    def test_compliant_building(self, office_profile):
        profile = office_profile.model_copy(update={"total_emissions_tco2e": 50.0})
        r = evaluate(profile, convert(28))[0]
        assert r.compliant
        assert r.baseline_annual_fee == 0
        assert r.annual_fee == 0

    def test_fee_rate_is_configurable(self, office_profile):
        r = evaluate(office_profile, convert(0), LL97Constants(fee_per_ton=100))[0]
        assert r.baseline_annual_fee == pytest.approx((1250.50 - 105.75) * 100)


# ──────────────────────────────────────────────────────────────
# INSIGHTS
# ──────────────────────────────────────────────────────────────

class TestInsights:
    def test_summary(self, office_profile):
        energy = convert(28)
        results = evaluate(office_profile, energy)
        insights = summarize(results)
        assert insights.worst_case_fee == pytest.approx((1250.50 - 7.2736625) * 268)
        assert insights.total_be_credit_available == pytest.approx(
            energy.retrofit_heating_kwh * (0.0013 + 0.00065)
        )
        assert insights.compliance_status == {
            "2024-2029": False, "2030-2034": False, "2035-2039": False, "2040-2049": False,
        }


class TestFeesForYear:
    def test_year_lookup(self, office_profile):
        results = evaluate(office_profile, convert(28))
        first = results[0]
        assert fees_for_year(results, 2023) == (0.0, 0.0)
        assert fees_for_year(results, 2025) == (first.baseline_annual_fee, first.be_credit_windows[0].annual_fee)
        assert fees_for_year(results, 2028) == (first.baseline_annual_fee, first.be_credit_windows[1].annual_fee)
        assert fees_for_year(results, 2031) == (results[1].baseline_annual_fee, results[1].annual_fee)
        assert fees_for_year(results, 2060) == (results[3].baseline_annual_fee, results[3].annual_fee)

    def test_no_results(self):
        assert fees_for_year([], 2030) == (0.0, 0.0)
