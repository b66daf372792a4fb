"""
LL84 energy and water benchmarking disclosures (NYC Open Data 5zyy-y8am).

LL84 keys properties by ``nyc_borough_block_and_lot`` in "B-BBBBB-LLLL"
form; a property can have one row per report year, and only the latest is
used.
"""

from __future__ import annotations

import logging

import httpx

from ll97_retrofit.models.schemas import LL84Data
from ll97_retrofit.services.cache import get_cached_ll84, set_cached_ll84
from ll97_retrofit.services.pluto import _float, _int

logger = logging.getLogger(__name__)

LL84_SOCRATA_URL = "https://data.cityofnewyork.us/resource/5zyy-y8am.json"


def format_bbl_for_ll84(bbl: str) -> str:
    """"1000010001" → "1-00001-0001"."""
    digits = "".join(ch for ch in str(bbl) if ch.isdigit())
    if len(digits) != 10:
        raise ValueError(f"Invalid BBL: {bbl}")
    return f"{digits[0]}-{digits[1:6]}-{digits[6:10]}"


async def fetch_ll84_data(bbl: str, app_token: str = "") -> LL84Data | None:
    """Fetch the latest LL84 disclosure for a BBL."""
    cached = await get_cached_ll84(bbl)
    if cached:
        return LL84Data.model_validate(cached)

    params = {
        "nyc_borough_block_and_lot": format_bbl_for_ll84(bbl),
        "$order": "report_year DESC",
        "$limit": 1,
    }
    headers = {}
    if app_token:
        headers["X-App-Token"] = app_token

    async with httpx.AsyncClient(timeout=15) as client:
        resp = await client.get(LL84_SOCRATA_URL, params=params, headers=headers)
        resp.raise_for_status()
        data = resp.json()

    if not data:
        logger.info("No LL84 disclosure for BBL %s", bbl)
        return None

    ll84 = parse_ll84_record(bbl, data[0])
    await set_cached_ll84(bbl, ll84.model_dump())
    return ll84


def parse_ll84_record(bbl: str, record: dict) -> LL84Data:
    return LL84Data(
        bbl=bbl,
        report_year=_int(record.get("report_year")),
        property_name=record.get("property_name"),
        largest_property_use_type=record.get("largest_property_use_type"),
        list_of_all_property_use=record.get("list_of_all_property_use"),
        property_gfa=_float(record.get("property_gfa")),
        site_eui=_float(record.get("site_eui")),
        site_energy_use_kbtu=_float(record.get("site_energy_use_kbtu")),
        total_ghg_emissions=_float(record.get("total_ghg_emissions")),
        total_location_based_ghg=_float(record.get("total_location_based_ghg")),
    )
