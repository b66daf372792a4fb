"""
Calculation Orchestrator.

``compute`` is a pure function of (BuildingProfile, CalculationOptions):

    classify → convert → evaluate (LL97) → project (financial)

and returns one CalculationResult.  A failure in any stage aborts the run
with CalculationAbortedError naming the stage; nothing is persisted.

``CalculationService`` adds the async persistence boundary:
  - get_or_compute: a stored record that already carries compliance results
    is returned unchanged; otherwise the full pipeline runs and the whole
    aggregate is saved in one transaction.
  - recalculate: overrides always force a full re-derivation.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Protocol

from ll97_retrofit.engine import energy, financial, ll97, unit_breakdown
from ll97_retrofit.engine.constants import CONSTANTS_VERSION
from ll97_retrofit.engine.errors import (
    CalculationAbortedError,
    CalculationNotFoundError,
    RetrofitCalculationError,
)
from ll97_retrofit.engine.occupancy import OCCUPANCY_RULES_VERSION
from ll97_retrofit.models.schemas import (
    BuildingProfile,
    CalculationOptions,
    CalculationOverrides,
    CalculationResult,
)

logger = logging.getLogger(__name__)

STAGE_UNIT_BREAKDOWN = "unit_breakdown"
STAGE_ENERGY = "energy"
STAGE_LL97 = "ll97"
STAGE_FINANCIAL = "financial"


def constants_version() -> str:
    return f"{CONSTANTS_VERSION}+occ{OCCUPANCY_RULES_VERSION}"


def cache_key(profile: BuildingProfile, options: CalculationOptions) -> str:
    """Deterministic key over inputs, options and constants-table versions."""
    payload = json.dumps(
        {
            "profile": profile.model_dump(mode="json"),
            "options": options.model_dump(mode="json"),
            "constants": constants_version(),
        },
        sort_keys=True,
    )
    return hashlib.sha256(payload.encode()).hexdigest()


def apply_overrides(options: CalculationOptions, overrides: CalculationOverrides) -> CalculationOptions:
    """Fold user overrides into a new options struct."""
    o = overrides
    prices = options.prices.model_copy(update={
        k: v for k, v in {
            "price_per_kwh": o.price_per_kwh,
            "price_per_therm": o.price_per_therm,
        }.items() if v is not None
    })
    loan = options.loan.model_copy(update={
        k: v for k, v in {
            "annual_interest_rate": o.annual_interest_rate,
            "term_years": o.loan_term_years,
        }.items() if v is not None
    })
    noi = options.noi.model_copy(update={
        k: v for k, v in {
            "base_noi": o.base_noi,
            "base_noi_source": "override" if o.base_noi is not None else None,
            "cap_rate": o.cap_rate,
        }.items() if v is not None
    })
    update = {"prices": prices, "loan": loan, "noi": noi}
    if o.ptac_units is not None:
        update["ptac_units_override"] = o.ptac_units
    return options.model_copy(update=update)


def compute(
    profile: BuildingProfile,
    options: Optional[CalculationOptions] = None,
    calculation_id: Optional[str] = None,
) -> CalculationResult:
    """Run every stage for one building and assemble the result."""
    options = options or CalculationOptions()
    stage = STAGE_UNIT_BREAKDOWN
    try:
        breakdown = unit_breakdown.classify(
            profile.building_class,
            profile.occupancy,
            profile.total_square_feet,
            residential_units=profile.residential_units,
            unit_mix_hint=profile.unit_mix_hint,
        )
        if options.ptac_units_override is not None:
            breakdown = unit_breakdown.apply_ptac_override(
                breakdown, options.ptac_units_override, profile.occupancy,
            )

        stage = STAGE_ENERGY
        energy_profile = energy.convert(
            breakdown,
            options.prices,
            options.energy,
            year_built=profile.year_built,
            num_floors=profile.num_floors,
        )

        stage = STAGE_LL97
        compliance = ll97.evaluate(profile, energy_profile, options.ll97)
        insights = ll97.summarize(compliance)

        stage = STAGE_FINANCIAL
        retrofit_cost = financial.estimate_retrofit_cost(breakdown.ptac_units, options.energy)
        projection = financial.project(
            retrofit_cost,
            energy_profile.annual_savings,
            options.loan,
            options.noi,
            options.timeline,
            compliance=compliance,
        )
    except RetrofitCalculationError as exc:
        logger.warning(
            "Calculation for %s aborted in %s: %s",
            profile.bbl or profile.building_class, stage, exc,
        )
        raise CalculationAbortedError(stage, exc) from exc

    logger.debug(
        "Computed %s: %d PTAC units, cost %.2f, savings %.2f",
        profile.bbl or profile.building_class, breakdown.ptac_units,
        retrofit_cost, energy_profile.annual_savings,
    )
    return CalculationResult(
        id=calculation_id,
        bbl=profile.bbl,
        profile=profile,
        options=options,
        unit_breakdown=breakdown,
        energy=energy_profile,
        compliance=compliance,
        financial=projection,
        insights=insights,
        constants_version=constants_version(),
        cache_key=cache_key(profile, options),
        calculated_at=datetime.now(timezone.utc),
    )


# ──────────────────────────────────────────────────────────────────
# PERSISTENCE BOUNDARY
# ──────────────────────────────────────────────────────────────────

@dataclass
class StoredCalculation:
    id: str
    profile: BuildingProfile
    options: CalculationOptions
    result: Optional[CalculationResult] = None


class CalculationRepository(Protocol):
    async def create(
        self,
        profile: BuildingProfile,
        options: CalculationOptions,
        result: Optional[CalculationResult] = None,
    ) -> str: ...

    async def get(self, calculation_id: str) -> Optional[StoredCalculation]: ...

    async def save_result(self, result: CalculationResult) -> None: ...


class CalculationService:
    """Async get-or-compute over a calculation repository."""

    def __init__(self, repository: CalculationRepository, stale_result_policy: str = "reuse"):
        self.repository = repository
        self.stale_result_policy = stale_result_policy

    async def create(
        self,
        profile: BuildingProfile,
        options: Optional[CalculationOptions] = None,
    ) -> CalculationResult:
        options = options or CalculationOptions()
        result = compute(profile, options)
        calculation_id = await self.repository.create(profile, options, result)
        return result.model_copy(update={"id": calculation_id})

    async def get_or_compute(self, calculation_id: str) -> CalculationResult:
        stored = await self._load(calculation_id)
        result = stored.result
        if result is not None and result.compliance:
            if result.constants_version == constants_version():
                return result
            if self.stale_result_policy != "recompute":
                logger.warning(
                    "Returning calculation %s computed with constants %s (current %s)",
                    calculation_id, result.constants_version, constants_version(),
                )
                return result
            logger.info("Recomputing stale calculation %s", calculation_id)

        result = compute(stored.profile, stored.options, calculation_id=calculation_id)
        await self.repository.save_result(result)
        return result

    async def recalculate(self, calculation_id: str, overrides: CalculationOverrides) -> CalculationResult:
        stored = await self._load(calculation_id)
        options = apply_overrides(stored.options, overrides)
        result = compute(stored.profile, options, calculation_id=calculation_id)
        await self.repository.save_result(result)
        return result

    async def _load(self, calculation_id: str) -> StoredCalculation:
        stored = await self.repository.get(calculation_id)
        if stored is None:
            raise CalculationNotFoundError(calculation_id)
        return stored
