"""
Energy Conversion Engine.

Converts a PTAC unit count into annual baseline (gas-heat PTAC) and retrofit
(electric PTHP) energy use and cost.

Baseline, per PTAC unit per year:
  heating  255 therms  (25.5 MMBtu)
  cooling  1,600 kWh   (5.459427 MMBtu)

Retrofit heating, two methods:
  eflh  kWh = capacity_kBtu / 3.412 × (1 / rated COP) × EFLH × units
        EFLH comes from a building-height × construction-era table.
  cop   kWh = heating MMBtu / COP × 293.1
Retrofit cooling equals baseline cooling.

Savings are reported as-is; a retrofit that costs more to run than the
baseline yields negative savings and ``retrofit_uneconomical``.
"""

from __future__ import annotations

from typing import Optional

from ll97_retrofit.engine import constants as C
from ll97_retrofit.models.schemas import (
    EnergyConstants,
    EnergyPrices,
    EnergyProfile,
    UnitBreakdown,
)


def get_eflh(year_built: Optional[int] = None, num_floors: Optional[float] = None) -> int:
    """Equivalent full-load heating hours for a building's height and era."""
    year = year_built if year_built and year_built > 0 else C.DEFAULT_YEAR_BUILT
    floors = num_floors if num_floors and num_floors > 0 else C.DEFAULT_NUM_FLOORS
    height = "low_rise" if floors <= C.LOW_RISE_MAX_FLOORS else "high_rise"
    return C.EFLH_HOURS[height][C.construction_era(year)]


def pthp_heating_kwh_per_unit(
    constants: EnergyConstants,
    year_built: Optional[int] = None,
    num_floors: Optional[float] = None,
) -> tuple[float, Optional[int]]:
    """Annual PTHP heating kWh for one unit, plus the EFLH used (if any)."""
    if constants.heating_method == "cop":
        return constants.heating_mmbtu_per_unit / constants.pthp_cop * C.KWH_PER_MMBTU, None
    eflh = get_eflh(year_built, num_floors)
    capacity_kw = constants.pthp_heating_capacity_kbtu / C.KBTU_PER_KWH
    return capacity_kw * (1 / constants.pthp_rated_cop) * eflh, eflh


def convert(
    units: int | UnitBreakdown,
    prices: Optional[EnergyPrices] = None,
    constants: Optional[EnergyConstants] = None,
    year_built: Optional[int] = None,
    num_floors: Optional[float] = None,
) -> EnergyProfile:
    prices = prices or EnergyPrices()
    constants = constants or EnergyConstants()
    ptac_units = units.ptac_units if isinstance(units, UnitBreakdown) else units
    n = max(int(ptac_units), 0)

    heating_therms = n * constants.heating_therms_per_unit
    heating_mmbtu = n * constants.heating_mmbtu_per_unit
    cooling_kwh = n * constants.cooling_kwh_per_unit
    cooling_mmbtu = n * constants.cooling_mmbtu_per_unit

    per_unit_kwh, eflh = pthp_heating_kwh_per_unit(constants, year_built, num_floors)
    pthp_heating_kwh = n * per_unit_kwh
    pthp_heating_mmbtu = pthp_heating_kwh * C.MMBTU_PER_KWH
    pthp_cooling_kwh = cooling_kwh
    pthp_cooling_mmbtu = cooling_mmbtu
    pthp_total_kwh = pthp_heating_kwh + pthp_cooling_kwh

    baseline_total_mmbtu = heating_mmbtu + cooling_mmbtu
    retrofit_total_mmbtu = pthp_heating_mmbtu + pthp_cooling_mmbtu

    baseline_cost = cooling_kwh * prices.price_per_kwh + heating_therms * prices.price_per_therm
    retrofit_cost = pthp_total_kwh * prices.price_per_kwh
    savings = baseline_cost - retrofit_cost

    reduction_pct = 0.0
    if baseline_total_mmbtu > 0:
        reduction_pct = (baseline_total_mmbtu - retrofit_total_mmbtu) / baseline_total_mmbtu * 100

    return EnergyProfile(
        ptac_units=n,
        heating_method=constants.heating_method,
        eflh_hours=eflh,
        baseline_heating_therms=heating_therms,
        baseline_heating_mmbtu=heating_mmbtu,
        baseline_cooling_kwh=cooling_kwh,
        baseline_cooling_mmbtu=cooling_mmbtu,
        baseline_total_mmbtu=baseline_total_mmbtu,
        retrofit_heating_kwh=pthp_heating_kwh,
        retrofit_heating_mmbtu=pthp_heating_mmbtu,
        retrofit_cooling_kwh=pthp_cooling_kwh,
        retrofit_cooling_mmbtu=pthp_cooling_mmbtu,
        retrofit_total_kwh=pthp_total_kwh,
        retrofit_total_mmbtu=retrofit_total_mmbtu,
        baseline_annual_cost=baseline_cost,
        retrofit_annual_cost=retrofit_cost,
        annual_savings=savings,
        energy_reduction_pct=reduction_pct,
        retrofit_uneconomical=savings < 0,
    )
