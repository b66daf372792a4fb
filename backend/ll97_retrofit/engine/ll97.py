"""
LL97 Compliance Engine.

For each compliance period (2024-2029, 2030-2034, 2035-2039, 2040-2049):

  budget            = Σ occupancy sf × period limit
                      (+ unclassified remainder at the Office limit)
  current           = disclosed LL84 emissions (tCO2e)
  retrofit delta    = gas heating MMBtu × 0.05311
                      − PTHP heating kWh × period grid factor
  BE credit         = PTHP heating kWh × window coefficient
                      (2024-2026: 0.0013, 2027-2029: 0.00065, none from 2030)
  adjusted          = max(0, current − retrofit delta − BE credit)
  baseline fee      = max(0, current − budget) × $268
  annual fee        = max(0, adjusted − budget) × $268
  compliant         = current ≤ budget

The compliance flag is judged before the credit is applied; fees after.
"""

from __future__ import annotations

import logging
from typing import Optional

from ll97_retrofit.engine.constants import COMPLIANCE_PERIODS, CompliancePeriod
from ll97_retrofit.engine.errors import ComputationError, DataAvailabilityError
from ll97_retrofit.engine.occupancy import (
    DEFAULT_OCCUPANCY_TYPE,
    GROUP_LIMITS,
    ESPM_OCCUPANCY_GROUPS,
    normalize_occupancy,
)
from ll97_retrofit.models.schemas import (
    BECreditWindowResult,
    BuildingProfile,
    ComplianceInsights,
    ComplianceResult,
    EnergyProfile,
    LL97Constants,
)

logger = logging.getLogger(__name__)

# Remainders below this are rounding noise in LL84 areas, not unclassified space.
_UNCLASSIFIED_TOLERANCE_SF = 1.0


def emissions_budgets(profile: BuildingProfile) -> dict[str, float]:
    """Per-period emissions budget (tCO2e) from the occupancy mix."""
    budgets = {p.key: 0.0 for p in COMPLIANCE_PERIODS}
    entries = [o for o in profile.occupancy if o.square_feet > 0]
    if not entries:
        return budgets

    weighted: list[tuple[float, str]] = []
    for use in entries:
        match = normalize_occupancy(use.occupancy_type)
        weighted.append((use.square_feet, match.group))

    remainder = profile.total_square_feet - sum(o.square_feet for o in entries)
    if remainder > _UNCLASSIFIED_TOLERANCE_SF:
        logger.info(
            "%.0f sf unclassified for %s; budgeting at %s limits",
            remainder, profile.bbl or profile.building_class, DEFAULT_OCCUPANCY_TYPE,
        )
        weighted.append((remainder, ESPM_OCCUPANCY_GROUPS[DEFAULT_OCCUPANCY_TYPE]))

    for i, period in enumerate(COMPLIANCE_PERIODS):
        total = sum(sf * GROUP_LIMITS[group][i] for sf, group in weighted)
        if total < 0:
            raise ComputationError(
                f"Negative emissions budget {total} for {period.key}", field="emissions_budget",
            )
        budgets[period.key] = total
    return budgets


def _fee(emissions: float, budget: float, fee_per_ton: float) -> float:
    return max(0.0, emissions - budget) * fee_per_ton


def _evaluate_period(
    period: CompliancePeriod,
    budget: float,
    current: float,
    energy: EnergyProfile,
    constants: LL97Constants,
) -> ComplianceResult:
    removed = energy.baseline_heating_mmbtu * constants.gas_emissions_factor
    added = energy.retrofit_heating_kwh * period.grid_emissions_factor
    delta = removed - added
    pre_credit = current - delta
    if pre_credit < 0:
        logger.warning(
            "Retrofit removes more than disclosed emissions in %s (%.2f t); clamping to zero",
            period.key, pre_credit,
        )
        pre_credit = 0.0

    windows: list[BECreditWindowResult] = []
    if period.be_credit_eligible:
        for w in period.be_credit_windows:
            credit = max(0.0, energy.retrofit_heating_kwh * w.coefficient)
            credit = min(credit, pre_credit)
            adjusted = pre_credit - credit
            windows.append(BECreditWindowResult(
                start_year=w.start_year,
                end_year=w.end_year,
                coefficient=w.coefficient,
                be_credit=credit,
                adjusted_emissions=adjusted,
                annual_fee=_fee(adjusted, budget, constants.fee_per_ton),
            ))

    # Headline values use the window in force at the start of the period.
    be_credit = windows[0].be_credit if windows else 0.0
    adjusted = pre_credit - be_credit
    baseline_fee = _fee(current, budget, constants.fee_per_ton)
    annual_fee = _fee(adjusted, budget, constants.fee_per_ton)

    return ComplianceResult(
        period=period.key,
        start_year=period.start_year,
        end_year=period.end_year,
        emissions_budget=budget,
        current_emissions=current,
        retrofit_emissions_delta=delta,
        adjusted_emissions=adjusted,
        be_credit_eligible=period.be_credit_eligible,
        be_credit=be_credit,
        be_credit_windows=windows,
        baseline_annual_fee=baseline_fee,
        annual_fee=annual_fee,
        fee_avoidance=baseline_fee - annual_fee,
        compliant=current <= budget,
    )


def evaluate(
    profile: BuildingProfile,
    energy: EnergyProfile,
    constants: Optional[LL97Constants] = None,
) -> list[ComplianceResult]:
    """Evaluate all four compliance periods, in period order."""
    constants = constants or LL97Constants()
    if profile.total_emissions_tco2e is None:
        raise DataAvailabilityError(
            "total_emissions_tco2e",
            f"No disclosed emissions for {profile.bbl or profile.building_class}; "
            "LL97 compliance cannot be assessed",
        )

    budgets = emissions_budgets(profile)
    return [
        _evaluate_period(period, budgets[period.key], profile.total_emissions_tco2e, energy, constants)
        for period in COMPLIANCE_PERIODS
    ]


def summarize(results: list[ComplianceResult]) -> ComplianceInsights:
    worst = max((r.baseline_annual_fee for r in results), default=0.0)
    credit = sum(w.be_credit for r in results for w in r.be_credit_windows)
    return ComplianceInsights(
        worst_case_fee=worst,
        total_be_credit_available=credit,
        compliance_status={r.period: r.compliant for r in results},
    )


def fees_for_year(results: list[ComplianceResult], year: int) -> tuple[float, float]:
    """(baseline fee, fee with retrofit) in force for a calendar year.

    Years before the first period owe nothing; years after the last period
    carry the final period's fees forward.
    """
    if not results or year < results[0].start_year:
        return 0.0, 0.0
    for r in results:
        if r.start_year <= year <= r.end_year:
            for w in r.be_credit_windows:
                if w.start_year <= year <= w.end_year:
                    return r.baseline_annual_fee, w.annual_fee
            return r.baseline_annual_fee, r.annual_fee
    last = results[-1]
    return last.baseline_annual_fee, last.annual_fee
