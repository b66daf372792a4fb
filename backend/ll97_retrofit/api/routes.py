from __future__ import annotations

import logging
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, model_validator

from ll97_retrofit.config import settings
from ll97_retrofit.database import get_session_factory
from ll97_retrofit.engine.errors import (
    CalculationAbortedError,
    CalculationNotFoundError,
    DataAvailabilityError,
)
from ll97_retrofit.engine.orchestrator import CalculationService, apply_overrides
from ll97_retrofit.models.schemas import (
    BuildingProfile,
    CalculationOptions,
    CalculationOverrides,
    CalculationResult,
    SourcedNOI,
)
from ll97_retrofit.services.benchmarking import fetch_ll84_data
from ll97_retrofit.services.noi import apply_sourced_noi, source_base_noi
from ll97_retrofit.services.pluto import fetch_pluto_data
from ll97_retrofit.services.profile import build_building_profile
from ll97_retrofit.services.repository import SqlCalculationRepository
from ll97_retrofit.services.unit_mix_model import estimate_unit_mix

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/calculations", tags=["calculations"])


class CalculationRequest(BaseModel):
    bbl: Optional[str] = None
    profile: Optional[BuildingProfile] = None
    overrides: Optional[CalculationOverrides] = None

    @model_validator(mode="after")
    def _one_source(self) -> "CalculationRequest":
        if not self.bbl and self.profile is None:
            raise ValueError("Provide bbl or profile.")
        return self


def get_calculation_service() -> CalculationService:
    return CalculationService(
        SqlCalculationRepository(get_session_factory()),
        stale_result_policy=settings.stale_result_policy,
    )


def _abort_detail(exc: CalculationAbortedError) -> dict:
    return {"stage": exc.stage, "field": exc.field, "message": str(exc.cause)}


# ──────────────────────────────────────────────────────────────────
# PROFILE RESOLUTION
# ──────────────────────────────────────────────────────────────────

async def resolve_building(bbl: str) -> tuple[BuildingProfile, Optional[SourcedNOI]]:
    """BBL → PLUTO + LL84 → BuildingProfile, plus the building's base NOI if found.

    The profile is validated before the unit mix model is asked for a hint,
    so a building without usable LL84 data never triggers a model request.
    """
    digits = "".join(ch for ch in bbl if ch.isdigit())
    if len(digits) != 10:
        raise HTTPException(status_code=400, detail=f"Invalid BBL: {bbl}")

    try:
        pluto = await fetch_pluto_data(digits, settings.socrata_app_token)
        if not pluto:
            raise HTTPException(status_code=404, detail=f"No PLUTO data for BBL {digits}")
        ll84 = await fetch_ll84_data(digits, settings.socrata_app_token)
    except httpx.HTTPError as e:
        raise HTTPException(status_code=502, detail=f"NYC Open Data error: {e}")

    try:
        profile = build_building_profile(digits, pluto, ll84)
    except DataAvailabilityError as e:
        raise HTTPException(status_code=422, detail={"field": e.field, "message": str(e)})

    sourced_noi = await source_base_noi(pluto, settings.socrata_app_token)
    hint = await estimate_unit_mix(pluto)
    if hint is not None:
        profile = profile.model_copy(update={"unit_mix_hint": hint})
    return profile, sourced_noi


# ──────────────────────────────────────────────────────────────────
# ENDPOINTS
# ──────────────────────────────────────────────────────────────────

@router.post("", response_model=CalculationResult)
async def create_calculation(
    request: CalculationRequest,
    service: CalculationService = Depends(get_calculation_service),
):
    if request.profile is not None:
        profile, sourced_noi = request.profile, None
    else:
        profile, sourced_noi = await resolve_building(request.bbl)
    options = apply_sourced_noi(CalculationOptions(), sourced_noi)
    if request.overrides:
        options = apply_overrides(options, request.overrides)

    try:
        return await service.create(profile, options)
    except CalculationAbortedError as e:
        raise HTTPException(status_code=422, detail=_abort_detail(e))


@router.get("/{calculation_id}", response_model=CalculationResult)
async def get_calculation(
    calculation_id: str,
    service: CalculationService = Depends(get_calculation_service),
):
    try:
        return await service.get_or_compute(calculation_id)
    except CalculationNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except CalculationAbortedError as e:
        raise HTTPException(status_code=422, detail=_abort_detail(e))


@router.put("/{calculation_id}", response_model=CalculationResult)
async def override_calculation(
    calculation_id: str,
    overrides: CalculationOverrides,
    service: CalculationService = Depends(get_calculation_service),
):
    try:
        return await service.recalculate(calculation_id, overrides)
    except CalculationNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except CalculationAbortedError as e:
        raise HTTPException(status_code=422, detail=_abort_detail(e))


@router.get("/{calculation_id}/ll97")
async def get_ll97(
    calculation_id: str,
    service: CalculationService = Depends(get_calculation_service),
):
    """LL97 budgets, fees, credits and compliance flags as flat fields."""
    result = await get_calculation(calculation_id, service)
    return {"id": result.id, "bbl": result.bbl, **result.ll97_fields()}


@router.get("/{calculation_id}/flat")
async def get_flat(
    calculation_id: str,
    service: CalculationService = Depends(get_calculation_service),
):
    result = await get_calculation(calculation_id, service)
    return result.to_flat_fields()
