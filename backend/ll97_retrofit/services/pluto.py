from __future__ import annotations

import logging

import httpx

from ll97_retrofit.models.schemas import PlutoData
from ll97_retrofit.services.cache import get_cached_pluto, set_cached_pluto

logger = logging.getLogger(__name__)

PLUTO_SOCRATA_URL = "https://data.cityofnewyork.us/resource/64uk-42ks.json"

PLUTO_FIELDS = [
    "bbl", "address", "borough", "bldgclass", "landuse",
    "bldgarea", "resarea", "comarea", "officearea", "retailarea",
    "unitsres", "unitstotal", "numfloors", "yearbuilt", "zipcode", "cd",
]


def _float(val):
    if val is None:
        return None
    try:
        return float(val)
    except (ValueError, TypeError):
        return None


def _int(val):
    if val is None:
        return None
    try:
        return int(float(val))
    except (ValueError, TypeError):
        return None


async def fetch_pluto_data(bbl: str, app_token: str = "") -> PlutoData | None:
    """Fetch the PLUTO record for a BBL, using the Redis cache when available."""
    cached = await get_cached_pluto(bbl)
    if cached:
        return PlutoData.model_validate(cached)

    params = {"bbl": bbl, "$select": ",".join(PLUTO_FIELDS)}
    headers = {}
    if app_token:
        headers["X-App-Token"] = app_token

    async with httpx.AsyncClient(timeout=15) as client:
        resp = await client.get(PLUTO_SOCRATA_URL, params=params, headers=headers)
        resp.raise_for_status()
        data = resp.json()

    if not data:
        logger.info("No PLUTO record for BBL %s", bbl)
        return None

    pluto = parse_pluto_record(data[0])
    await set_cached_pluto(bbl, pluto.model_dump())
    return pluto


def parse_pluto_record(record: dict) -> PlutoData:
    """Parse a raw PLUTO Socrata record into our schema."""
    bbl = record.get("bbl", "")
    # Socrata returns bbl as "1000010001.00000000"
    bbl = str(_int(bbl)) if _int(bbl) is not None else str(bbl)

    return PlutoData(
        bbl=bbl,
        address=record.get("address"),
        borough=record.get("borough"),
        bldgclass=(record.get("bldgclass") or None),
        landuse=record.get("landuse"),
        bldgarea=_float(record.get("bldgarea")),
        resarea=_float(record.get("resarea")),
        comarea=_float(record.get("comarea")),
        officearea=_float(record.get("officearea")),
        retailarea=_float(record.get("retailarea")),
        unitsres=_int(record.get("unitsres")),
        unitstotal=_int(record.get("unitstotal")),
        numfloors=_float(record.get("numfloors")),
        yearbuilt=_int(record.get("yearbuilt")),
        zipcode=record.get("zipcode"),
        cd=_int(record.get("cd")),
    )
