"""
Assemble a BuildingProfile from PLUTO and LL84.

PLUTO supplies the building class, gross area, residential unit count, age
and height; LL84 supplies the occupancy mix and disclosed emissions.
Location-based GHG is preferred over the total GHG figure.  Site energy
falls back to site EUI × gross floor area.  Missing emissions or energy
raise DataAvailabilityError.
"""

from __future__ import annotations

import logging
from typing import Optional

from ll97_retrofit.engine.errors import DataAvailabilityError
from ll97_retrofit.engine.occupancy import parse_property_uses
from ll97_retrofit.models.schemas import (
    BuildingProfile,
    LL84Data,
    OccupancyUse,
    PlutoData,
    UnitMix,
)

logger = logging.getLogger(__name__)


def _fit_occupancy(uses: list[OccupancyUse], total_sf: float) -> list[OccupancyUse]:
    """Scale LL84 areas down when they exceed the PLUTO gross area."""
    classified = sum(u.square_feet for u in uses)
    if classified <= total_sf or classified <= 0:
        return uses
    factor = total_sf / classified
    logger.info("LL84 areas (%.0f sf) exceed building area (%.0f sf); scaling by %.4f",
                classified, total_sf, factor)
    return [
        OccupancyUse(occupancy_type=u.occupancy_type, square_feet=u.square_feet * factor)
        for u in uses
    ]


def build_building_profile(
    bbl: str,
    pluto: PlutoData,
    ll84: Optional[LL84Data],
    unit_mix_hint: Optional[UnitMix] = None,
) -> BuildingProfile:
    if ll84 is None:
        raise DataAvailabilityError("ll84", f"No LL84 benchmarking disclosure for BBL {bbl}")

    emissions = ll84.total_location_based_ghg
    if emissions is None:
        emissions = ll84.total_ghg_emissions
    if emissions is None:
        raise DataAvailabilityError(
            "total_emissions_tco2e", f"LL84 disclosure for BBL {bbl} has no GHG emissions",
        )

    site_energy = ll84.site_energy_use_kbtu
    if site_energy is None and ll84.site_eui is not None and ll84.property_gfa:
        site_energy = ll84.site_eui * ll84.property_gfa
    if site_energy is None:
        raise DataAvailabilityError(
            "total_site_energy_kbtu", f"LL84 disclosure for BBL {bbl} has no site energy use",
        )

    total_sf = pluto.bldgarea or ll84.property_gfa or 0.0
    if total_sf <= 0:
        raise DataAvailabilityError("total_square_feet", f"No gross floor area for BBL {bbl}")

    uses = parse_property_uses(ll84.list_of_all_property_use)
    if not uses and ll84.largest_property_use_type:
        uses = [OccupancyUse(occupancy_type=ll84.largest_property_use_type, square_feet=total_sf)]

    return BuildingProfile(
        bbl=bbl,
        address=pluto.address,
        building_class=pluto.bldgclass or "",
        total_square_feet=total_sf,
        occupancy=_fit_occupancy(uses, total_sf),
        total_emissions_tco2e=emissions,
        total_site_energy_kbtu=site_energy,
        year_built=pluto.yearbuilt,
        num_floors=pluto.numfloors,
        residential_units=pluto.unitsres,
        unit_mix_hint=unit_mix_hint,
    )
