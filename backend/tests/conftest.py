"""Shared fixtures: the reference Office building and an in-memory repository."""

from __future__ import annotations

import uuid

import pytest

from ll97_retrofit.engine.orchestrator import StoredCalculation
from ll97_retrofit.models.schemas import BuildingProfile, OccupancyUse


class InMemoryCalculationRepository:
    def __init__(self):
        self.records: dict[str, StoredCalculation] = {}
        self.saves = 0

    async def create(self, profile, options, result=None):
        calculation_id = str(uuid.uuid4())
        if result is not None:
            result = result.model_copy(update={"id": calculation_id})
        self.records[calculation_id] = StoredCalculation(
            id=calculation_id, profile=profile, options=options, result=result,
        )
        return calculation_id

    async def get(self, calculation_id):
        return self.records.get(calculation_id)

    async def save_result(self, result):
        stored = self.records[result.id]
        self.records[result.id] = StoredCalculation(
            id=stored.id, profile=stored.profile, options=result.options, result=result,
        )
        self.saves += 1


@pytest.fixture
def office_profile() -> BuildingProfile:
    """Class R6, 12,500 sf, all Office, 1,250.50 tCO2e disclosed."""
    return BuildingProfile(
        bbl="1000010001",
        building_class="R6",
        total_square_feet=12_500,
        occupancy=[OccupancyUse(occupancy_type="Office", square_feet=12_500)],
        total_emissions_tco2e=1250.50,
    )


@pytest.fixture
def repository() -> InMemoryCalculationRepository:
    return InMemoryCalculationRepository()
