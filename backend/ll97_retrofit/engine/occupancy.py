"""
Occupancy parsing, normalization and LL97 emissions limits.

LL84 disclosures list property uses as ENERGY STAR Portfolio Manager (ESPM)
property types, e.g. ``"Office (264550.0), Retail Store (21700.0)"``.  Each
ESPM type maps to an LL97 occupancy group, and each group has a
tCO2e-per-square-foot limit for every compliance period.

Normalization is an ordered list of rules applied first-match-wins:
  1. exact alias        : known spelling variants in LL84 data
  2. canonical match    : case / punctuation-insensitive ESPM name match
  3. keyword pattern    : broad keyword families (hotel, school, warehouse…)
  4. fallback           : Office, which has limits for every period

The rule list is versioned with OCCUPANCY_RULES_VERSION; edits to the rules
or to the limits tables must bump it.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from ll97_retrofit.engine.constants import PERIOD_KEYS
from ll97_retrofit.models.schemas import OccupancyUse

logger = logging.getLogger(__name__)

OCCUPANCY_RULES_VERSION = "2024.1"

DEFAULT_OCCUPANCY_TYPE = "Office"


# ──────────────────────────────────────────────────────────────────
# LL97 LIMITS BY OCCUPANCY GROUP  (tCO2e / sf)
# ──────────────────────────────────────────────────────────────────
# 2024-2029 and 2030-2034 from LL97 §28-320.3; 2035 onward from the DOB
# ESPM property-type mapping.

GROUP_LIMITS: dict[str, tuple[float, float, float, float]] = {
    "A":          (0.01074, 0.00420, 0.00154,    0.000536),
    "B":          (0.00846, 0.00453, 0.00165234, 0.000581893),
    "B-HEALTH":   (0.02381, 0.01193, 0.00598,    0.00209),
    "E":          (0.00758, 0.00344, 0.00138,    0.000478),
    "F":          (0.00574, 0.00167, 0.000975,   0.000339),
    "H":          (0.02381, 0.01193, 0.00598,    0.00209),
    "I-1":        (0.01138, 0.00598, 0.00226,    0.000786),
    "I-2":        (0.02381, 0.01193, 0.00598,    0.00209),
    "I-3":        (0.02381, 0.01193, 0.00598,    0.00209),
    "I-4":        (0.00758, 0.00344, 0.00138,    0.000478),
    "M":          (0.01181, 0.00403, 0.00131,    0.000456),
    "R-1":        (0.00987, 0.00526, 0.00197,    0.000686),
    "R-2":        (0.00675, 0.00407, 0.00166,    0.000577),
    "S":          (0.00426, 0.00110, 0.000440,   0.000153),
    "U":          (0.00426, 0.00110, 0.000440,   0.000153),
}


# ──────────────────────────────────────────────────────────────────
# ESPM PROPERTY TYPE → OCCUPANCY GROUP
# ──────────────────────────────────────────────────────────────────

ESPM_OCCUPANCY_GROUPS: dict[str, str] = {
    "Adult Education": "B",
    "Ambulatory Surgical Center": "B-HEALTH",
    "Automobile Dealership": "M",
    "Bank Branch": "B",
    "Bar/Nightclub": "A",
    "College/University": "B",
    "Convenience Store without Gas Station": "M",
    "Courthouse": "B",
    "Data Center": "B",
    "Distribution Center": "S",
    "Enclosed Mall": "M",
    "Financial Office": "B",
    "Fitness Center/Health Club/Gym": "A",
    "Food Service": "A",
    "Hospital (General Medical & Surgical)": "I-2",
    "Hotel": "R-1",
    "K-12 School": "E",
    "Laboratory": "B",
    "Library": "A",
    "Mailing Center/Post Office": "B",
    "Manufacturing/Industrial Plant": "F",
    "Medical Office": "B",
    "Mixed Use Property": "B",
    "Movie Theater": "A",
    "Multifamily Housing": "R-2",
    "Museum": "A",
    "Non-Refrigerated Warehouse": "S",
    "Office": "B",
    "Outpatient Rehabilitation/Physical Therapy": "B-HEALTH",
    "Parking": "S",
    "Performing Arts": "A",
    "Personal Services": "B",
    "Pre-school/Daycare": "E",
    "Refrigerated Warehouse": "S",
    "Repair Services (Vehicle, Shoe, Locksmith, etc.)": "B",
    "Residence Hall/Dormitory": "R-2",
    "Residential Care Facility": "I-1",
    "Restaurant": "A",
    "Retail Store": "M",
    "Self-Storage Facility": "S",
    "Senior Living Community": "I-1",
    "Social/Meeting Hall": "A",
    "Strip Mall": "M",
    "Supermarket/Grocery Store": "M",
    "Urgent Care/Clinic/Other Outpatient": "B-HEALTH",
    "Wholesale Club/Supercenter": "M",
    "Worship Facility": "A",
}


# ──────────────────────────────────────────────────────────────────
# NORMALIZATION RULES
# ──────────────────────────────────────────────────────────────────

EXACT_ALIASES: dict[str, str] = {
    "Multi-family Housing": "Multifamily Housing",
    "Multi-Family Housing": "Multifamily Housing",
    "MultiFamily Housing": "Multifamily Housing",
    "Preschool/Daycare": "Pre-school/Daycare",
    "K12 School": "K-12 School",
    "Personal Services (Health/Beauty, Dry Cleaning, etc.)": "Personal Services",
    "Hospital": "Hospital (General Medical & Surgical)",
    "Other": "Office",
}

KEYWORD_RULES: list[tuple[re.Pattern, str]] = [
    (re.compile(r"multi.?family|apartment|residential", re.I), "Multifamily Housing"),
    (re.compile(r"dorm|residence hall", re.I), "Residence Hall/Dormitory"),
    (re.compile(r"hotel|motel|lodging", re.I), "Hotel"),
    (re.compile(r"hospital", re.I), "Hospital (General Medical & Surgical)"),
    (re.compile(r"clinic|outpatient|urgent care", re.I), "Urgent Care/Clinic/Other Outpatient"),
    (re.compile(r"school|education", re.I), "K-12 School"),
    (re.compile(r"retail|store|shop|mall", re.I), "Retail Store"),
    (re.compile(r"restaurant|food|bar\b|cafe", re.I), "Restaurant"),
    (re.compile(r"warehouse|storage|distribution", re.I), "Non-Refrigerated Warehouse"),
    (re.compile(r"parking|garage", re.I), "Parking"),
    (re.compile(r"worship|church|synagogue|mosque", re.I), "Worship Facility"),
    (re.compile(r"office", re.I), "Office"),
]


def _canonical_key(name: str) -> str:
    return re.sub(r"[^a-z0-9]", "", name.lower())


_CANONICAL_INDEX: dict[str, str] = {
    _canonical_key(name): name for name in list(ESPM_OCCUPANCY_GROUPS) + list(EXACT_ALIASES)
}


@dataclass(frozen=True)
class OccupancyMatch:
    raw: str
    occupancy_type: str
    group: str
    rule: str  # "exact", "alias", "canonical", "keyword" or "fallback"

    @property
    def is_fallback(self) -> bool:
        return self.rule == "fallback"


def _resolve(espm_type: str) -> str:
    return EXACT_ALIASES.get(espm_type, espm_type)


def normalize_occupancy(name: str) -> OccupancyMatch:
    """Map a raw LL84 property-use name onto a known ESPM type."""
    raw = (name or "").strip()

    if raw in ESPM_OCCUPANCY_GROUPS:
        return OccupancyMatch(raw, raw, ESPM_OCCUPANCY_GROUPS[raw], "exact")

    if raw in EXACT_ALIASES:
        target = EXACT_ALIASES[raw]
        return OccupancyMatch(raw, target, ESPM_OCCUPANCY_GROUPS[target], "alias")

    canonical = _CANONICAL_INDEX.get(_canonical_key(raw))
    if canonical:
        target = _resolve(canonical)
        return OccupancyMatch(raw, target, ESPM_OCCUPANCY_GROUPS[target], "canonical")

    for pattern, target in KEYWORD_RULES:
        if pattern.search(raw):
            return OccupancyMatch(raw, target, ESPM_OCCUPANCY_GROUPS[target], "keyword")

    logger.warning(
        "No LL97 occupancy mapping for %r; using %s limits", raw, DEFAULT_OCCUPANCY_TYPE,
    )
    return OccupancyMatch(
        raw, DEFAULT_OCCUPANCY_TYPE,
        ESPM_OCCUPANCY_GROUPS[DEFAULT_OCCUPANCY_TYPE], "fallback",
    )


def emissions_limit(occupancy_type: str, period_key: str) -> float:
    """tCO2e/sf limit for an occupancy type in a compliance period."""
    if period_key not in PERIOD_KEYS:
        raise KeyError(f"Unknown compliance period: {period_key}")
    group = normalize_occupancy(occupancy_type).group
    return GROUP_LIMITS[group][PERIOD_KEYS.index(period_key)]


# ──────────────────────────────────────────────────────────────────
# LL84 PROPERTY-USE PARSING
# ──────────────────────────────────────────────────────────────────

# Handles names that themselves contain parentheses and commas, e.g.
# "Personal Services (Health/Beauty, Dry Cleaning, etc.) (500.0)"
_USE_PATTERN = re.compile(r"([^,()]+(?:\([^)]*\)[^,()]*)*)\s*\(([0-9.,]+)\)")
_ENTRY_PATTERN = re.compile(r"^(.+?)\s*\(([0-9.,]+)\)$")


def _parse_area(text: str) -> float | None:
    try:
        value = float(text.replace(",", ""))
    except ValueError:
        return None
    return value if value >= 0 else None


def parse_property_uses(text: str | None) -> list[OccupancyUse]:
    """Parse an LL84 ``list_of_all_property_use`` string."""
    if not text or not text.strip():
        return []

    uses: list[OccupancyUse] = []
    for match in _USE_PATTERN.finditer(text):
        area = _parse_area(match.group(2))
        if area is None:
            logger.warning("Invalid square footage in property use entry: %s", match.group(0))
            continue
        uses.append(OccupancyUse(occupancy_type=match.group(1).strip(), square_feet=area))

    if uses:
        return uses

    logger.warning("Pattern parse failed, splitting on commas: %s", text)
    for entry in (e.strip() for e in text.split(",")):
        if not entry:
            continue
        m = _ENTRY_PATTERN.match(entry)
        if not m:
            logger.warning("Unable to parse property use entry: %s", entry)
            continue
        area = _parse_area(m.group(2))
        if area is None:
            logger.warning("Invalid square footage in property use entry: %s", entry)
            continue
        uses.append(OccupancyUse(occupancy_type=m.group(1).strip(), square_feet=area))
    return uses
