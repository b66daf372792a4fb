"""
Unit Breakdown Classifier.

Estimates how many PTAC units a building has from its PLUTO building class,
floor area and (when known) residential unit count, then spreads those
units across the building's occupancy mix by floor-area share.

Classification is a small state machine:

    START → CLASSIFY_BY_CODE ─┬─→ CLASSIFY_BY_EXTERNAL_MODEL ─┬─→ DONE
                              │                                │
                              └─→ CLASSIFY_BY_HEURISTIC ←──────┘ (invalid hint)
                                          │
                                          └─→ DONE

Residential categories convert dwelling units into a unit mix using a fixed
percentage split, then count one PTAC per room (studio 1, 1BR 2, 2BR 3,
3BR+ 4).  Non-residential categories use gross square feet per PTAC.
Unknown building classes fall back to the default category and are marked
low-confidence; they never raise.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ll97_retrofit.models.schemas import (
    OccupancyAllocation,
    OccupancyUse,
    UnitBreakdown,
    UnitMix,
)

logger = logging.getLogger(__name__)


class ClassifierState(str, Enum):
    START = "start"
    CLASSIFY_BY_CODE = "classify_by_code"
    CLASSIFY_BY_EXTERNAL_MODEL = "classify_by_external_model"
    CLASSIFY_BY_HEURISTIC = "classify_by_heuristic"
    DONE = "done"


@dataclass(frozen=True)
class ClassCategory:
    name: str
    residential: bool
    avg_unit_sf: float = 0.0
    # percent of dwelling units: studio, 1BR, 2BR, 3BR+ (sums to 100)
    unit_mix_pct: tuple[int, int, int, int] = (0, 0, 0, 0)
    sf_per_ptac: float = 0.0


# ──────────────────────────────────────────────────────────────────
# CATEGORY TABLE
# ──────────────────────────────────────────────────────────────────

CATEGORIES: dict[str, ClassCategory] = {
    "walkup": ClassCategory("walkup", True, avg_unit_sf=850, unit_mix_pct=(10, 40, 35, 15)),
    "elevator": ClassCategory("elevator", True, avg_unit_sf=900, unit_mix_pct=(15, 40, 35, 10)),
    "condo": ClassCategory("condo", True, avg_unit_sf=1000, unit_mix_pct=(15, 40, 35, 10)),
    "mixed_residential": ClassCategory(
        "mixed_residential", True, avg_unit_sf=900, unit_mix_pct=(10, 45, 35, 10),
    ),
    "one_two_family": ClassCategory(
        "one_two_family", True, avg_unit_sf=1200, unit_mix_pct=(0, 20, 50, 30),
    ),
    "hotel": ClassCategory("hotel", False, sf_per_ptac=400),
    "healthcare": ClassCategory("healthcare", False, sf_per_ptac=600),
    "education": ClassCategory("education", False, sf_per_ptac=900),
    "office": ClassCategory("office", False, sf_per_ptac=1000),
    "retail": ClassCategory("retail", False, sf_per_ptac=1500),
    "default": ClassCategory("default", False, sf_per_ptac=500),
}

DEFAULT_CATEGORY = "default"

# First matching prefix wins, so more specific codes come first.
CLASS_CODE_RULES: list[tuple[str, str]] = [
    ("RH", "hotel"),
    ("RK", "retail"),
    ("R", "condo"),
    ("C", "walkup"),
    ("D", "elevator"),
    ("S", "mixed_residential"),
    ("A", "one_two_family"),
    ("B", "one_two_family"),
    ("H", "hotel"),
    ("I", "healthcare"),
    ("W", "education"),
    ("O", "office"),
    ("K", "retail"),
]

PTAC_PER_ROOM_TYPE = {"studio": 1, "one_bed": 2, "two_bed": 3, "three_plus": 4}


def resolve_category(building_class: str) -> Optional[ClassCategory]:
    code = (building_class or "").strip().upper()
    if not code:
        return None
    for prefix, name in CLASS_CODE_RULES:
        if code.startswith(prefix):
            return CATEGORIES[name]
    return None


# ──────────────────────────────────────────────────────────────────
# APPORTIONMENT HELPERS
# ──────────────────────────────────────────────────────────────────

def _largest_remainder(total: int, weights: list[float]) -> list[int]:
    """Split an integer total proportionally so the parts sum exactly to total."""
    weight_sum = sum(weights)
    if total <= 0 or weight_sum <= 0:
        return [0] * len(weights)
    quotas = [total * w / weight_sum for w in weights]
    parts = [int(q) for q in quotas]
    shortfall = total - sum(parts)
    order = sorted(range(len(weights)), key=lambda i: (-(quotas[i] - parts[i]), i))
    for i in order[:shortfall]:
        parts[i] += 1
    return parts


def split_unit_mix(dwelling_units: int, pct: tuple[int, int, int, int]) -> UnitMix:
    """Apply a percentage mix to a dwelling-unit count using integer arithmetic."""
    if dwelling_units <= 0:
        return UnitMix()
    quotas = [dwelling_units * p for p in pct]
    parts = [q // 100 for q in quotas]
    shortfall = dwelling_units - sum(parts)
    order = sorted(range(4), key=lambda i: (-(quotas[i] % 100), i))
    for i in order[:shortfall]:
        parts[i] += 1
    return UnitMix(studio=parts[0], one_bed=parts[1], two_bed=parts[2], three_plus=parts[3])


def allocate_units(ptac_units: int, occupancy: list[OccupancyUse]) -> list[OccupancyAllocation]:
    """Apportion PTAC units across occupancy entries by floor-area share."""
    entries = [o for o in occupancy if o.square_feet > 0]
    total_sf = sum(o.square_feet for o in entries)
    if not entries:
        return []
    counts = _largest_remainder(ptac_units, [o.square_feet for o in entries])
    return [
        OccupancyAllocation(
            occupancy_type=o.occupancy_type,
            square_feet=o.square_feet,
            weight=o.square_feet / total_sf,
            ptac_units=n,
        )
        for o, n in zip(entries, counts)
    ]


# ──────────────────────────────────────────────────────────────────
# CLASSIFIER
# ──────────────────────────────────────────────────────────────────

class UnitBreakdownClassifier:
    """Runs the classification state machine for one building."""

    def __init__(
        self,
        building_class: str,
        occupancy: list[OccupancyUse],
        total_square_feet: float,
        residential_units: Optional[int] = None,
        unit_mix_hint: Optional[UnitMix] = None,
    ):
        self.building_class = (building_class or "").strip().upper()
        self.occupancy = list(occupancy)
        self.total_square_feet = max(total_square_feet or 0.0, 0.0)
        self.residential_units = residential_units
        self.unit_mix_hint = unit_mix_hint

        self.category: ClassCategory = CATEGORIES[DEFAULT_CATEGORY]
        self.mapped = False
        self.unit_mix = UnitMix()
        self.ptac_units = 0
        self.confidence = "low"
        self.source = "heuristic"
        self.path: list[str] = []
        self.notes: list[str] = []

    def run(self) -> UnitBreakdown:
        handlers = {
            ClassifierState.START: self._start,
            ClassifierState.CLASSIFY_BY_CODE: self._classify_by_code,
            ClassifierState.CLASSIFY_BY_EXTERNAL_MODEL: self._classify_by_model,
            ClassifierState.CLASSIFY_BY_HEURISTIC: self._classify_by_heuristic,
        }
        state = ClassifierState.START
        while state is not ClassifierState.DONE:
            self.path.append(state.value)
            state = handlers[state]()
        self.path.append(ClassifierState.DONE.value)

        return UnitBreakdown(
            building_class=self.building_class,
            category=self.category.name,
            dwelling_units=self.unit_mix.dwelling_units,
            unit_mix=self.unit_mix,
            ptac_units=self.ptac_units,
            bedrooms=self.unit_mix.bedrooms,
            allocations=allocate_units(self.ptac_units, self.occupancy),
            confidence=self.confidence,
            source=self.source,
            path=self.path,
            notes=self.notes,
        )

    # ── states ──

    def _start(self) -> ClassifierState:
        return ClassifierState.CLASSIFY_BY_CODE

    def _classify_by_code(self) -> ClassifierState:
        category = resolve_category(self.building_class)
        if category is None:
            logger.warning(
                "Unknown building class %r; using %s unit heuristic",
                self.building_class, DEFAULT_CATEGORY,
            )
            self.notes.append(
                f"Building class '{self.building_class}' is not mapped; "
                f"estimated with the {DEFAULT_CATEGORY} heuristic"
            )
            return ClassifierState.CLASSIFY_BY_HEURISTIC

        self.category = category
        self.mapped = True
        if category.residential and self.unit_mix_hint is not None:
            return ClassifierState.CLASSIFY_BY_EXTERNAL_MODEL
        return ClassifierState.CLASSIFY_BY_HEURISTIC

    def _classify_by_model(self) -> ClassifierState:
        hint = self.unit_mix_hint
        expected = self.residential_units
        if hint.dwelling_units == 0:
            reason = "model returned no units"
        elif expected and hint.dwelling_units != expected:
            reason = f"model total {hint.dwelling_units} != PLUTO units {expected}"
        else:
            self.unit_mix = hint
            self.ptac_units = hint.ptac_units
            self.source = "model"
            self.confidence = "high" if expected else "medium"
            return ClassifierState.DONE

        logger.warning("Discarding unit mix hint for %s: %s", self.building_class, reason)
        self.notes.append(f"Unit mix hint discarded ({reason})")
        return ClassifierState.CLASSIFY_BY_HEURISTIC

    def _classify_by_heuristic(self) -> ClassifierState:
        category = self.category
        if category.residential:
            if self.residential_units and self.residential_units > 0:
                dwelling_units = self.residential_units
                self.source = "pluto"
                self.confidence = "high"
            else:
                dwelling_units = int(self.total_square_feet // category.avg_unit_sf)
                self.source = "heuristic"
                self.confidence = "medium"
            self.unit_mix = split_unit_mix(dwelling_units, category.unit_mix_pct)
            self.ptac_units = self.unit_mix.ptac_units
        else:
            self.ptac_units = int(self.total_square_feet // category.sf_per_ptac)
            self.source = "heuristic"
            self.confidence = "medium" if self.mapped else "low"
        return ClassifierState.DONE


def classify(
    building_class: str,
    occupancy: list[OccupancyUse],
    total_square_feet: float,
    residential_units: Optional[int] = None,
    unit_mix_hint: Optional[UnitMix] = None,
) -> UnitBreakdown:
    """Estimate PTAC units for a building and apportion them by occupancy."""
    return UnitBreakdownClassifier(
        building_class, occupancy, total_square_feet,
        residential_units=residential_units, unit_mix_hint=unit_mix_hint,
    ).run()


def apply_ptac_override(breakdown: UnitBreakdown, ptac_units: int, occupancy: list[OccupancyUse]) -> UnitBreakdown:
    """Replace the estimated PTAC count with a user-supplied one."""
    return breakdown.model_copy(update={
        "ptac_units": ptac_units,
        "allocations": allocate_units(ptac_units, occupancy),
        "source": "override",
        "confidence": "high",
        "notes": breakdown.notes + [f"PTAC units overridden ({breakdown.ptac_units} → {ptac_units})"],
    })
