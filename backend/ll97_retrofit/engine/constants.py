"""
Versioned constants for the PTAC → PTHP retrofit calculations.

Every table here is read-only.  Changing any value must bump
CONSTANTS_VERSION, which is folded into each result's cache key so stored
results can be traced back to the tables that produced them.

Sources:
  - Per-unit PTAC loads: NYC multifamily PTAC field averages (255 therms of
    gas heating and 1,600 kWh of cooling per unit per year).
  - EFLH: equivalent full-load heating hours for NYC by building height and
    construction era (NYSERDA / TRM climate-zone 4A tables).
  - LL97: Local Law 97 of 2019 §28-320 penalty rate, the DOB grid and
    natural-gas coefficients, and the beneficial-electrification credit
    coefficients in 1 RCNY §103-14.
"""

from __future__ import annotations

from dataclasses import dataclass


CONSTANTS_VERSION = "2024.2"


# ──────────────────────────────────────────────────────────────────
# UNIT CONVERSIONS
# ──────────────────────────────────────────────────────────────────

MMBTU_PER_KWH = 0.003412
KWH_PER_MMBTU = 293.1
KBTU_PER_KWH = 3.412  # 1 kW = 3.412 kBtu/h


# ──────────────────────────────────────────────────────────────────
# PER-UNIT PTAC / PTHP LOADS
# ──────────────────────────────────────────────────────────────────

PTAC_HEATING_THERMS_PER_UNIT = 255.0
PTAC_HEATING_MMBTU_PER_UNIT = 25.5
PTAC_COOLING_KWH_PER_UNIT = 1600.0
PTAC_COOLING_MMBTU_PER_UNIT = 5.459427  # documented value, not kWh × 0.003412

PTHP_COP = 3.5
PTHP_HEATING_CAPACITY_KBTU = 8.0
PTHP_RATED_COP = 1.51

PTHP_UNIT_COST = 1100.0
PTHP_INSTALLATION_COST = 450.0
RETROFIT_CONTINGENCY = 0.10

PRICE_PER_KWH = 0.24
PRICE_PER_THERM = 1.45


# ──────────────────────────────────────────────────────────────────
# EQUIVALENT FULL-LOAD HOURS (heating)
# ──────────────────────────────────────────────────────────────────
# Rows: building height.  Columns: construction era.
# Low-rise is 6 floors or fewer.

LOW_RISE_MAX_FLOORS = 6

EFLH_HOURS: dict[str, dict[str, int]] = {
    "low_rise":  {"prewar": 974, "pre_1979": 738, "post_1979": 705, "post_2007": 491},
    "high_rise": {"prewar": 987, "pre_1979": 513, "post_1979": 385, "post_2007": 214},
}

# (last year built inclusive, era)
CONSTRUCTION_ERAS: list[tuple[int, str]] = [
    (1939, "prewar"),
    (1978, "pre_1979"),
    (2006, "post_1979"),
]
_LATEST_ERA = "post_2007"

DEFAULT_YEAR_BUILT = 1980
DEFAULT_NUM_FLOORS = 6


def construction_era(year_built: int) -> str:
    for last_year, era in CONSTRUCTION_ERAS:
        if year_built <= last_year:
            return era
    return _LATEST_ERA


# ──────────────────────────────────────────────────────────────────
# LL97 PERIODS
# ──────────────────────────────────────────────────────────────────

LL97_FEE_PER_TON = 268.0
GAS_EMISSIONS_FACTOR = 0.05311  # tCO2e per MMBtu of natural gas


@dataclass(frozen=True)
class BECreditWindow:
    """Beneficial-electrification credit window inside a compliance period."""
    start_year: int
    end_year: int
    coefficient: float  # tCO2e credited per kWh of electrified heating


@dataclass(frozen=True)
class CompliancePeriod:
    key: str
    start_year: int
    end_year: int
    grid_emissions_factor: float  # tCO2e per kWh
    be_credit_windows: tuple[BECreditWindow, ...] = ()

    @property
    def be_credit_eligible(self) -> bool:
        return self.end_year < 2030 and bool(self.be_credit_windows)


COMPLIANCE_PERIODS: tuple[CompliancePeriod, ...] = (
    CompliancePeriod(
        key="2024-2029",
        start_year=2024,
        end_year=2029,
        grid_emissions_factor=0.000288962,
        be_credit_windows=(
            BECreditWindow(start_year=2024, end_year=2026, coefficient=0.0013),
            BECreditWindow(start_year=2027, end_year=2029, coefficient=0.00065),
        ),
    ),
    CompliancePeriod(key="2030-2034", start_year=2030, end_year=2034,
                     grid_emissions_factor=0.000145),
    CompliancePeriod(key="2035-2039", start_year=2035, end_year=2039,
                     grid_emissions_factor=0.000145),
    CompliancePeriod(key="2040-2049", start_year=2040, end_year=2049,
                     grid_emissions_factor=0.000145),
)

PERIOD_KEYS: tuple[str, ...] = tuple(p.key for p in COMPLIANCE_PERIODS)


# ──────────────────────────────────────────────────────────────────
# FINANCING DEFAULTS
# ──────────────────────────────────────────────────────────────────

LOAN_INTEREST_RATE = 0.06
LOAN_TERM_YEARS = 15
CAP_RATE = 0.055
NOI_GROWTH_RATE = 0.03
DEFAULT_BUILDING_VALUE = 1_000_000.0
RETROFIT_YEAR = 2025
TRAILING_YEARS = 10
