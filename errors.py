"""Error taxonomy for box planning commands."""
from __future__ import annotations


class BoxPlanError(Exception):
    """Base class for every rejected allocation, registry or estimate call."""


class ValidationError(BoxPlanError, ValueError):
    """Bad input: quantity outside stock, non-positive dimension, malformed table."""


class InvariantViolation(BoxPlanError):
    """Command would break a shipment invariant (e.g. removing the last box)."""


class NotFound(BoxPlanError, KeyError):
    def __str__(self) -> str:
        # KeyError quotes its argument; keep messages readable.
        return str(self.args[0]) if self.args else ""


class EstimateUnavailable(BoxPlanError):
    """Cost estimator failed or had no rate for the request."""
