"""
Optional language-model estimate of a building's unit mix.

Given PLUTO characteristics, asks an OpenAI-compatible chat completions
endpoint for a studio / 1BR / 2BR / 3BR+ split that sums to the residential
unit count.  The estimate is only a hint: the classifier validates it and
falls back to its own table when the hint is missing or inconsistent.
Any API or parsing failure returns None.
"""

from __future__ import annotations

import json
import logging
from typing import Optional

from openai import APIError, AsyncOpenAI
from pydantic import ValidationError

from ll97_retrofit.config import settings
from ll97_retrofit.models.schemas import PlutoData, UnitMix
from ll97_retrofit.services.cache import get_cached_unit_mix, set_cached_unit_mix

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You estimate apartment unit mixes for New York City residential buildings. "
    "Reply with a JSON object with integer keys studio, one_bed, two_bed, three_plus "
    "whose values sum exactly to the residential unit count you are given."
)


def model_configured() -> bool:
    return bool(settings.unit_mix_model_api_key)


def _client() -> AsyncOpenAI:
    return AsyncOpenAI(
        api_key=settings.unit_mix_model_api_key,
        base_url=settings.unit_mix_model_base_url,
        timeout=settings.unit_mix_model_timeout,
    )


def _build_prompt(pluto: PlutoData) -> str:
    facts = {
        "bbl": pluto.bbl,
        "building_class": pluto.bldgclass,
        "residential_units": pluto.unitsres,
        "residential_area_sf": pluto.resarea,
        "building_area_sf": pluto.bldgarea,
        "floors": pluto.numfloors,
        "year_built": pluto.yearbuilt,
        "borough": pluto.borough,
    }
    return "Building:\n" + json.dumps(facts, indent=2)


def _parse_content(content: Optional[str]) -> UnitMix:
    return UnitMix.model_validate(json.loads(content))


async def estimate_unit_mix(pluto: PlutoData) -> Optional[UnitMix]:
    """Ask the configured model for a unit mix; None when unavailable."""
    if not model_configured() or not pluto.unitsres:
        return None

    cached = await get_cached_unit_mix(pluto.bbl)
    if cached:
        return UnitMix.model_validate(cached)

    try:
        response = await _client().chat.completions.create(
            model=settings.unit_mix_model_name,
            temperature=0,
            response_format={"type": "json_object"},
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": _build_prompt(pluto)},
            ],
        )
        mix = _parse_content(response.choices[0].message.content)
    except APIError as exc:
        logger.warning("Unit mix model request failed for %s: %s", pluto.bbl, exc)
        return None
    except (IndexError, TypeError, ValueError, ValidationError) as exc:
        logger.warning("Unit mix model returned an unusable answer for %s: %s", pluto.bbl, exc)
        return None

    await set_cached_unit_mix(pluto.bbl, mix.model_dump())
    return mix
