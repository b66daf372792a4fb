"""
Error taxonomy for the retrofit calculation pipeline.

Classification gaps (unknown building class, unmapped occupancy type) are
never errors: they are recorded on the result as low-confidence annotations.
Only missing regulatory inputs and arithmetic invariant violations raise.
"""

from __future__ import annotations

from typing import Optional


class RetrofitCalculationError(ValueError):
    """Base class for calculation failures."""


class DataAvailabilityError(RetrofitCalculationError):
    """A required upstream value (emissions, energy use, area) is missing."""

    def __init__(self, field: str, message: Optional[str] = None):
        self.field = field
        super().__init__(message or f"Required input '{field}' is not available")


class ComputationError(RetrofitCalculationError):
    """An arithmetic invariant was violated (negative budget, non-converging loan)."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class CalculationAbortedError(RetrofitCalculationError):
    """A pipeline stage failed; nothing from this run was persisted."""

    def __init__(self, stage: str, cause: Exception):
        self.stage = stage
        self.field = getattr(cause, "field", None)
        self.cause = cause
        detail = f"{stage} failed"
        if self.field:
            detail += f" on '{self.field}'"
        super().__init__(f"{detail}: {cause}")


class CalculationNotFoundError(LookupError):
    def __init__(self, calculation_id: str):
        self.calculation_id = calculation_id
        super().__init__(f"Calculation {calculation_id} not found")
