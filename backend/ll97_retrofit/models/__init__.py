from __future__ import annotations

from ll97_retrofit.models.calculation import CalculationRecord

__all__ = ["CalculationRecord"]
