"""
Base NOI sourcing rules.

A building's base NOI comes from one of three places, chosen by building
class:
  - co-ops (C0-C9): NYC DOF cooperative comparable rental income (myei-c3fa)
  - condos (R4, R5, R6A-R9X, D4-D9): DOF condominium comparable rental
    income (9ck6-2jew)
  - everything else, and any co-op / condo missing from its dataset:
    Rent Guidelines Board (RGB) Income & Expense study rates

RGB estimate per unit per month:
  rent(location) × era multiplier (stabilized only)
    × supplemental income (1.108) × NOI margin (0.45)

Location is Core Manhattan (CD 101-108), Upper Manhattan (CD 109-112), or
the borough.  The published rates are not segmented by building size; the
size bucket is reported with the estimate.

The dataset lookups live in ``services/noi.py``; this module is pure.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from ll97_retrofit.engine.errors import DataAvailabilityError

logger = logging.getLogger(__name__)


# ──────────────────────────────────────────────────────────────────
# BUILDING CLASS → NOI SOURCE
# ──────────────────────────────────────────────────────────────────

COOPERATIVE_CLASSES = ("C0", "C1", "C2", "C3", "C4", "C5", "C6", "C7", "C8", "C9")

CONDOMINIUM_CLASSES = (
    "R4", "R5", "R6A", "R6B", "R7A", "R7B", "R7D", "R7X",
    "R8A", "R8B", "R8X", "R9A", "R9B", "R9X",
    "D4", "D5", "D6", "D7", "D8", "D9",
)


def is_cooperative(building_class: str) -> bool:
    return (building_class or "").strip().upper() in COOPERATIVE_CLASSES


def is_condominium(building_class: str) -> bool:
    return (building_class or "").strip().upper() in CONDOMINIUM_CLASSES


def noi_source_for_class(building_class: str) -> str:
    if is_cooperative(building_class):
        return "cooperative_api"
    if is_condominium(building_class):
        return "condominium_api"
    return "rgb_study"


# ──────────────────────────────────────────────────────────────────
# RGB STUDY RATES
# ──────────────────────────────────────────────────────────────────
# 2024 RGB Income & Expense Study, monthly rent per unit.

CORE_MANHATTAN = "Core Manhattan"
UPPER_MANHATTAN = "Upper Manhattan"

RGB_RENT_PER_UNIT_MONTH: dict[str, float] = {
    CORE_MANHATTAN: 3118.0,
    UPPER_MANHATTAN: 1649.0,
    "Manhattan": 2498.0,
    "Bronx": 1224.0,
    "Brooklyn": 1640.0,
    "Queens": 1603.0,
    "Staten Island": 1166.0,
}

# RPIE: pre-1974 stabilized buildings earn $1,587/unit, post-1973 $2,552,
# against a $1,769 average.
STABILIZED_ERA_MULTIPLIERS: dict[str, float] = {
    "pre_1974": 1587 / 1769,
    "post_1973": 2552 / 1769,
}

SUPPLEMENTAL_INCOME_MULTIPLIER = 1.108
NOI_MARGIN = 0.45

CORE_MANHATTAN_DISTRICTS = range(101, 109)
UPPER_MANHATTAN_DISTRICTS = range(109, 113)

BOROUGH_NAMES: dict[str, str] = {
    "MN": "Manhattan",
    "BX": "Bronx",
    "BK": "Brooklyn",
    "QN": "Queens",
    "SI": "Staten Island",
    "1": "Manhattan",
    "2": "Bronx",
    "3": "Brooklyn",
    "4": "Queens",
    "5": "Staten Island",
}

# Rent stabilization heuristic
STABILIZED_BUILT_BEFORE = 1974
STABILIZED_MIN_FLOORS = 7


def borough_name(borough: Optional[str]) -> str:
    raw = (borough or "").strip()
    name = BOROUGH_NAMES.get(raw.upper())
    if name:
        return name
    for known in BOROUGH_NAMES.values():
        if raw.lower() == known.lower():
            return known
    raise DataAvailabilityError("borough", f"Unknown borough {borough!r}")


def location_category(borough: Optional[str], community_district: Optional[int] = None) -> str:
    name = borough_name(borough)
    if name == "Manhattan" and community_district:
        if community_district in CORE_MANHATTAN_DISTRICTS:
            return CORE_MANHATTAN
        if community_district in UPPER_MANHATTAN_DISTRICTS:
            return UPPER_MANHATTAN
    return name


def size_category(units: int) -> str:
    if units >= 100:
        return "100+ units"
    if units >= 20:
        return "20-99 units"
    return "11-19 units"


def era_category(year_built: int) -> str:
    return "pre_1974" if year_built <= 1973 else "post_1973"


def is_rent_stabilized(
    year_built: Optional[int],
    num_floors: Optional[float],
    building_class: str,
) -> bool:
    """Older mid/high-rise rentals are presumed stabilized."""
    if not year_built or year_built >= STABILIZED_BUILT_BEFORE:
        return False
    if not num_floors or num_floors < STABILIZED_MIN_FLOORS:
        return False
    return not (is_cooperative(building_class) or is_condominium(building_class))


@dataclass(frozen=True)
class RGBStudyEstimate:
    annual_noi: float
    noi_per_unit_month: float
    units: int
    location: str
    size: str
    rent_stabilized: bool
    era: Optional[str] = None


def rgb_study_noi(
    units: Optional[int],
    borough: Optional[str],
    community_district: Optional[int] = None,
    year_built: Optional[int] = None,
    num_floors: Optional[float] = None,
    building_class: str = "",
    rent_stabilized: Optional[bool] = None,
) -> RGBStudyEstimate:
    """Annual building NOI from RGB study rates.

    ``rent_stabilized`` is the known registry status; when None the age and
    height heuristic decides.
    """
    if not units or units <= 0:
        raise DataAvailabilityError("residential_units", "RGB study NOI needs a residential unit count")

    location = location_category(borough, community_district)
    stabilized = rent_stabilized
    if stabilized is None:
        stabilized = is_rent_stabilized(year_built, num_floors, building_class)
    era = era_category(year_built or 0) if stabilized else None

    rent = RGB_RENT_PER_UNIT_MONTH[location]
    if era:
        rent *= STABILIZED_ERA_MULTIPLIERS[era]
    per_unit_month = rent * SUPPLEMENTAL_INCOME_MULTIPLIER * NOI_MARGIN

    estimate = RGBStudyEstimate(
        annual_noi=per_unit_month * units * 12,
        noi_per_unit_month=per_unit_month,
        units=units,
        location=location,
        size=size_category(units),
        rent_stabilized=stabilized,
        era=era,
    )
    logger.debug(
        "RGB study NOI: %.2f/unit/month × %d units (%s, stabilized=%s)",
        per_unit_month, units, location, stabilized,
    )
    return estimate
