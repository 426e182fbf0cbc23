"""Typed models and core box aggregate math."""
from __future__ import annotations

from dataclasses import dataclass, field
import math
from typing import Any, Iterable, Mapping

from errors import ValidationError


TIER_NONE = "NONE"
TIER_CARRIER_RISK = "CARRIER_RISK"
TIER_DECLARED_VALUE = "DECLARED_VALUE"
TIER_COMPREHENSIVE = "COMPREHENSIVE"
TIER_TYPES = (TIER_NONE, TIER_CARRIER_RISK, TIER_DECLARED_VALUE, TIER_COMPREHENSIVE)

# Standard carton, centimetres.
DEFAULT_BOX_LENGTH_CM = 30.0
DEFAULT_BOX_BREADTH_CM = 20.0
DEFAULT_BOX_HEIGHT_CM = 15.0


def _require_non_negative(value: float, field_name: str, owner: str = "") -> None:
    if value is None or not (math.isfinite(value) and value >= 0):
        target = f" for item '{owner}'" if owner else ""
        raise ValidationError(f"Missing or invalid {field_name}{target}: must be >= 0")


def _require_positive(value: float, field_name: str) -> float:
    if value is None or not (math.isfinite(value) and value > 0):
        raise ValidationError(f"Missing or invalid {field_name}: must be > 0")
    return value


@dataclass(frozen=True)
class InventoryItem:
    """Catalog snapshot of one part as seen by the engine."""

    code: str
    name: str
    unit_weight_g: int
    unit_price: float
    available_qty: int

    def __post_init__(self) -> None:
        if not str(self.code or "").strip():
            raise ValidationError("Item code must not be blank")
        _require_non_negative(self.unit_weight_g, "unit_weight_g", self.code)
        _require_non_negative(self.unit_price, "unit_price", self.code)
        _require_non_negative(self.available_qty, "available_qty", self.code)


@dataclass(frozen=True)
class SelectionLine:
    item_code: str
    quantity: int


@dataclass(frozen=True)
class BoxLine:
    item_code: str
    quantity: int

    def __post_init__(self) -> None:
        if int(self.quantity) <= 0:
            raise ValidationError(f"Box line quantity for '{self.item_code}' must be > 0")


@dataclass(frozen=True)
class Dimensions:
    length: float = DEFAULT_BOX_LENGTH_CM
    breadth: float = DEFAULT_BOX_BREADTH_CM
    height: float = DEFAULT_BOX_HEIGHT_CM

    def __post_init__(self) -> None:
        for name in ("length", "breadth", "height"):
            _require_positive(getattr(self, name), name)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "Dimensions":
        """Build from a {length, breadth, height} mapping, defaulting missing keys."""
        data = data or {}
        try:
            length = float(data.get("length", DEFAULT_BOX_LENGTH_CM))
            breadth = float(data.get("breadth", DEFAULT_BOX_BREADTH_CM))
            height = float(data.get("height", DEFAULT_BOX_HEIGHT_CM))
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"Dimensions must be numeric: {dict(data)!r}") from exc
        return cls(length=length, breadth=breadth, height=height)

    @property
    def volume_cm3(self) -> float:
        return self.length * self.breadth * self.height

    @property
    def volume_litres(self) -> float:
        return self.volume_cm3 / 1000.0

    def as_dict(self) -> dict[str, float]:
        return {"length": self.length, "breadth": self.breadth, "height": self.height}


@dataclass(frozen=True)
class InsuranceTier:
    tier_type: str
    premium_rate_pct: float
    min_value: float | None = None
    max_value: float | None = None
    name: str = ""
    description: str = ""

    def contains(self, value: float) -> bool:
        """Inclusive range check; a missing bound is open on that side."""
        low = self.min_value if self.min_value is not None else 0.0
        if value < low:
            return False
        return self.max_value is None or value <= self.max_value


@dataclass(frozen=True)
class InsuranceAssignment:
    tier_type: str
    declared_value: float
    premium: float
    gst: float = 0.0

    @property
    def total(self) -> float:
        return round(self.premium + self.gst, 2)


@dataclass
class Box:
    box_id: str
    lines: list[BoxLine] = field(default_factory=list)
    dimensions: Dimensions = field(default_factory=Dimensions)
    weight_g: int = 0
    value: float = 0.0
    insurance: InsuranceAssignment | None = None
    tier_override: str | None = None
    notes: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.lines

    def quantity_of(self, item_code: str) -> int:
        return sum(line.quantity for line in self.lines if line.item_code == item_code)

    def copy_as(self, box_id: str) -> "Box":
        # BoxLine and Dimensions are frozen, so a new list is an independent copy.
        return Box(
            box_id=box_id,
            lines=list(self.lines),
            dimensions=self.dimensions,
            weight_g=self.weight_g,
            value=self.value,
            insurance=None,
            tier_override=self.tier_override,
            notes=self.notes,
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "lines": [{"item_code": line.item_code, "quantity": line.quantity} for line in self.lines],
            "dimensions": self.dimensions.as_dict(),
        }


def line_weight_g(line: BoxLine | SelectionLine, catalog: Mapping[str, InventoryItem]) -> int:
    return int(_catalog_item(catalog, line.item_code).unit_weight_g) * int(line.quantity)


def line_value(line: BoxLine | SelectionLine, catalog: Mapping[str, InventoryItem]) -> float:
    return float(_catalog_item(catalog, line.item_code).unit_price) * int(line.quantity)


def derive_aggregates(lines: Iterable[BoxLine | SelectionLine], catalog: Mapping[str, InventoryItem]) -> tuple[int, float]:
    """Return (weight_g, value) summed over lines.

    Always recomputed from scratch; callers never adjust weight or value by deltas.
    """
    weight = 0
    value = 0.0
    for line in lines:
        weight += line_weight_g(line, catalog)
        value += line_value(line, catalog)
    return weight, round(value, 2)


def _catalog_item(catalog: Mapping[str, InventoryItem], item_code: str) -> InventoryItem:
    item = catalog.get(item_code)
    if item is None:
        raise ValidationError(f"Unknown item code: {item_code}")
    return item
