"""
Base NOI lookup.

Co-ops and condos are looked up in the DOF comparable rental income datasets
on NYC Open Data, keyed by ``boro_block_lot`` in "B-BBBBB-LLLL" form.  A
building missing from its dataset, or of any other class, gets an RGB study
estimate.  When no estimate is possible either, the caller keeps the
building value × cap rate fallback.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from ll97_retrofit.engine.errors import DataAvailabilityError
from ll97_retrofit.engine.noi import noi_source_for_class, rgb_study_noi
from ll97_retrofit.models.schemas import CalculationOptions, PlutoData, SourcedNOI
from ll97_retrofit.services.benchmarking import format_bbl_for_ll84
from ll97_retrofit.services.cache import get_cached_noi, set_cached_noi
from ll97_retrofit.services.pluto import _float, _int

logger = logging.getLogger(__name__)

COOPERATIVE_NOI_URL = "https://data.cityofnewyork.us/resource/myei-c3fa.json"
CONDOMINIUM_NOI_URL = "https://data.cityofnewyork.us/resource/9ck6-2jew.json"

NOI_DATASETS = {
    "cooperative_api": COOPERATIVE_NOI_URL,
    "condominium_api": CONDOMINIUM_NOI_URL,
}


def parse_noi_record(source: str, record: dict) -> Optional[SourcedNOI]:
    noi = _float(record.get("net_operating_income"))
    if noi is None or noi <= 0:
        logger.warning("Unusable %s NOI value: %r", source, record.get("net_operating_income"))
        return None
    return SourcedNOI(
        annual_noi=noi,
        source=source,
        report_year=_int(record.get("report_year")),
    )


async def fetch_reported_noi(bbl: str, source: str, app_token: str = "") -> Optional[SourcedNOI]:
    """Latest reported NOI for a co-op or condo BBL."""
    cached = await get_cached_noi(source, bbl)
    if cached:
        return SourcedNOI.model_validate(cached)

    params = {
        "boro_block_lot": format_bbl_for_ll84(bbl),
        "$order": "report_year DESC",
        "$limit": 1,
    }
    headers = {}
    if app_token:
        headers["X-App-Token"] = app_token

    async with httpx.AsyncClient(timeout=15) as client:
        resp = await client.get(NOI_DATASETS[source], params=params, headers=headers)
        if resp.status_code == 400:
            logger.info("BBL %s rejected by %s dataset", bbl, source)
            return None
        resp.raise_for_status()
        data = resp.json()

    if not data:
        logger.info("No %s NOI for BBL %s", source, bbl)
        return None

    noi = parse_noi_record(source, data[0])
    if noi is not None:
        await set_cached_noi(source, bbl, noi.model_dump())
    return noi


async def source_base_noi(pluto: PlutoData, app_token: str = "") -> Optional[SourcedNOI]:
    """Best available base NOI for a building, or None."""
    building_class = pluto.bldgclass or ""
    source = noi_source_for_class(building_class)

    if source != "rgb_study":
        try:
            reported = await fetch_reported_noi(pluto.bbl, source, app_token)
        except httpx.HTTPError as exc:
            logger.warning("%s NOI lookup failed for %s: %s", source, pluto.bbl, exc)
            reported = None
        if reported is not None:
            return reported
        logger.info("Falling back to RGB study NOI for %s (%s)", pluto.bbl, building_class)

    try:
        estimate = rgb_study_noi(
            pluto.unitsres,
            pluto.borough,
            community_district=pluto.cd,
            year_built=pluto.yearbuilt,
            num_floors=pluto.numfloors,
            building_class=building_class,
        )
    except DataAvailabilityError as exc:
        logger.info("No RGB study NOI for %s: %s", pluto.bbl, exc)
        return None

    return SourcedNOI(
        annual_noi=estimate.annual_noi,
        source="rgb_study",
        details={
            "noi_per_unit_month": estimate.noi_per_unit_month,
            "units": estimate.units,
            "location": estimate.location,
            "size": estimate.size,
            "rent_stabilized": estimate.rent_stabilized,
            "era": estimate.era,
        },
    )


def apply_sourced_noi(options: CalculationOptions, sourced: Optional[SourcedNOI]) -> CalculationOptions:
    """Use a looked-up NOI as the base NOI unless one is already set."""
    if sourced is None or options.noi.base_noi is not None:
        return options
    noi = options.noi.model_copy(update={
        "base_noi": sourced.annual_noi,
        "base_noi_source": sourced.source,
    })
    return options.model_copy(update={"noi": noi})
