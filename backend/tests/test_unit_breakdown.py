"""Tests for the PTAC unit classifier state machine and apportionment."""

import pytest

from ll97_retrofit.engine.unit_breakdown import (
    CATEGORIES,
    ClassifierState,
    allocate_units,
    apply_ptac_override,
    classify,
    resolve_category,
    split_unit_mix,
)
from ll97_retrofit.models.schemas import OccupancyUse, UnitMix


def _uses(*pairs):
    return [OccupancyUse(occupancy_type=t, square_feet=sf) for t, sf in pairs]


# ──────────────────────────────────────────────────────────────
# CATEGORY RESOLUTION
# ──────────────────────────────────────────────────────────────

class TestResolveCategory:
    @pytest.mark.parametrize("code,expected", [
        ("R6", "condo"),
        ("RH", "hotel"),
        ("C1", "walkup"),
        ("D4", "elevator"),
        ("S2", "mixed_residential"),
        ("H1", "hotel"),
        ("O4", "office"),
        ("k1", "retail"),
    ])
    def test_prefix_rules(self, code, expected):
        assert resolve_category(code).name == expected

    def test_unknown_code(self):
        assert resolve_category("Z9") is None
        assert resolve_category("") is None


# ──────────────────────────────────────────────────────────────
# UNIT MIX
# ──────────────────────────────────────────────────────────────

class TestSplitUnitMix:
    def test_sums_to_dwelling_units(self):
        for n in range(0, 60):
            mix = split_unit_mix(n, (15, 40, 35, 10))
            assert mix.dwelling_units == n

    def test_largest_remainder(self):
        mix = split_unit_mix(12, (15, 40, 35, 10))
        assert (mix.studio, mix.one_bed, mix.two_bed, mix.three_plus) == (2, 5, 4, 1)

    def test_ptac_and_bedrooms(self):
        mix = UnitMix(studio=6, one_bed=10, two_bed=6, three_plus=2)
        assert mix.ptac_units == 6 + 20 + 18 + 8
        assert mix.bedrooms == 10 + 12 + 6


# ──────────────────────────────────────────────────────────────
# STATE MACHINE
# ──────────────────────────────────────────────────────────────

class TestClassify:
    def test_reference_office_building(self):
        b = classify("R6", _uses(("Office", 12_500)), 12_500)
        assert b.category == "condo"
        assert b.dwelling_units == 12
        assert b.ptac_units == 28
        assert b.bedrooms == 5 + 8 + 3
        assert b.confidence == "medium"
        assert b.source == "heuristic"
        assert b.path == [
            ClassifierState.START.value,
            ClassifierState.CLASSIFY_BY_CODE.value,
            ClassifierState.CLASSIFY_BY_HEURISTIC.value,
            ClassifierState.DONE.value,
        ]

    def test_pluto_unit_count_is_high_confidence(self):
        b = classify("D4", _uses(("Multifamily Housing", 90_000)), 90_000, residential_units=100)
        assert b.dwelling_units == 100
        assert b.source == "pluto"
        assert b.confidence == "high"

    def test_unknown_class_is_low_confidence_not_error(self):
        b = classify("Z9", _uses(("Office", 10_000)), 10_000)
        assert b.category == "default"
        assert b.confidence == "low"
        assert b.ptac_units == 10_000 // CATEGORIES["default"].sf_per_ptac
        assert b.notes

    def test_non_residential_category(self):
        b = classify("H1", _uses(("Hotel", 40_000)), 40_000)
        assert b.ptac_units == 100
        assert b.dwelling_units == 0
        assert b.confidence == "medium"

    def test_valid_model_hint_is_used(self):
        hint = UnitMix(studio=6, one_bed=10, two_bed=6, three_plus=2)
        b = classify("D4", [], 30_000, residential_units=24, unit_mix_hint=hint)
        assert b.source == "model"
        assert b.confidence == "high"
        assert b.ptac_units == 52
        assert ClassifierState.CLASSIFY_BY_EXTERNAL_MODEL.value in b.path

    def test_inconsistent_model_hint_falls_back(self):
        hint = UnitMix(studio=1, one_bed=1)
        b = classify("D4", [], 30_000, residential_units=24, unit_mix_hint=hint)
        assert b.source == "pluto"
        assert b.dwelling_units == 24
        assert b.path[-2:] == [ClassifierState.CLASSIFY_BY_HEURISTIC.value, ClassifierState.DONE.value]
        assert any("discarded" in n for n in b.notes)

    def test_hint_ignored_for_non_residential(self):
        hint = UnitMix(studio=10)
        b = classify("O4", [], 10_000, unit_mix_hint=hint)
        assert b.source == "heuristic"
        assert ClassifierState.CLASSIFY_BY_EXTERNAL_MODEL.value not in b.path

    def test_zero_area(self):
        b = classify("R6", [], 0)
        assert b.ptac_units == 0
        assert b.allocations == []

    def test_deterministic(self):
        args = ("C1", _uses(("Multifamily Housing", 8_000), ("Retail Store", 2_000)), 10_000)
        assert classify(*args) == classify(*args)


# ──────────────────────────────────────────────────────────────
# APPORTIONMENT
# ──────────────────────────────────────────────────────────────

class TestAllocateUnits:
    def test_weights_sum_to_one(self):
        allocations = allocate_units(
            37, _uses(("Multifamily Housing", 7_000), ("Retail Store", 2_000), ("Office", 1_000)),
        )
        assert sum(a.weight for a in allocations) == pytest.approx(1.0)
        assert sum(a.ptac_units for a in allocations) == 37

    def test_zero_area_entries_excluded(self):
        allocations = allocate_units(10, _uses(("Office", 1_000), ("Parking", 0)))
        assert [a.occupancy_type for a in allocations] == ["Office"]
        assert allocations[0].ptac_units == 10

    def test_no_area(self):
        assert allocate_units(10, _uses(("Office", 0))) == []


class TestPtacOverride:
    def test_override_replaces_count(self):
        uses = _uses(("Office", 12_500))
        b = apply_ptac_override(classify("R6", uses, 12_500), 40, uses)
        assert b.ptac_units == 40
        assert b.source == "override"
        assert b.allocations[0].ptac_units == 40
