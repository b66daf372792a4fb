"""
Postgres persistence for calculations.

Every write goes through a single ``session.begin()`` block, so a result is
stored together with its compliance slice and cache key or not at all.
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ll97_retrofit.engine.orchestrator import StoredCalculation
from ll97_retrofit.models.calculation import CalculationRecord
from ll97_retrofit.models.schemas import (
    BuildingProfile,
    CalculationOptions,
    CalculationResult,
)

logger = logging.getLogger(__name__)


def _parse_id(calculation_id: str) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(str(calculation_id))
    except ValueError:
        return None


def _apply_result(record: CalculationRecord, result: CalculationResult) -> None:
    payload = result.model_dump(mode="json")
    record.options = payload["options"]
    record.result = payload
    record.compliance = payload["compliance"]
    record.cache_key = result.cache_key
    record.constants_version = result.constants_version


class SqlCalculationRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def create(
        self,
        profile: BuildingProfile,
        options: CalculationOptions,
        result: Optional[CalculationResult] = None,
    ) -> str:
        calculation_id = uuid.uuid4()
        record = CalculationRecord(
            id=calculation_id,
            bbl=profile.bbl,
            profile=profile.model_dump(mode="json"),
            options=options.model_dump(mode="json"),
        )
        if result is not None:
            _apply_result(record, result.model_copy(update={"id": str(calculation_id)}))

        async with self.session_factory() as session:
            async with session.begin():
                session.add(record)
        return str(calculation_id)

    async def get(self, calculation_id: str) -> Optional[StoredCalculation]:
        key = _parse_id(calculation_id)
        if key is None:
            return None
        async with self.session_factory() as session:
            record = await session.get(CalculationRecord, key)
        if record is None:
            return None

        result = None
        if record.compliance is not None and record.result is not None:
            result = CalculationResult.model_validate(record.result)
        return StoredCalculation(
            id=str(record.id),
            profile=BuildingProfile.model_validate(record.profile),
            options=CalculationOptions.model_validate(record.options or {}),
            result=result,
        )

    async def save_result(self, result: CalculationResult) -> None:
        key = _parse_id(result.id)
        if key is None:
            raise ValueError(f"Cannot save a result without a valid id: {result.id!r}")
        async with self.session_factory() as session:
            async with session.begin():
                record = await session.get(CalculationRecord, key, with_for_update=True)
                if record is None:
                    raise LookupError(f"Calculation {result.id} not found")
                _apply_result(record, result)
        logger.debug("Saved calculation %s (%s)", result.id, result.cache_key)
