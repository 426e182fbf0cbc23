"""Adapt manual-packing tool output into the box model."""
from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

from box_registry import BoxRegistry
from errors import ValidationError
from insurance_engine import DEFAULT_TIER_TABLE, recommend_insurance
from models import Box, BoxLine, Dimensions, InsuranceTier, InventoryItem, derive_aggregates
from settings import INSURANCE_GST_PCT

logger = logging.getLogger(__name__)


def manual_box_id(box_number: int) -> str:
    return f"manual-box-{box_number}"


def _pick(row: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in row and row[key] is not None:
            return row[key]
    return default


def _parts_to_lines(box_number: int, parts: Sequence[Mapping[str, Any]], catalog: Mapping[str, InventoryItem]) -> list[BoxLine]:
    quantities: dict[str, int] = {}
    for part in parts or []:
        code = str(_pick(part, "partId", "part_id", "item_code", default="")).strip()
        if code not in catalog:
            raise ValidationError(f"Manual box {box_number}: unknown part '{code}'")
        try:
            qty = int(_pick(part, "quantity", default=0))
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"Manual box {box_number}: quantity for '{code}' must be a whole number") from exc
        if qty < 0:
            raise ValidationError(f"Manual box {box_number}: quantity for '{code}' must be >= 0")
        if qty == 0:
            continue
        # dict keeps first-seen order; repeated part ids merge into one line
        quantities[code] = quantities.get(code, 0) + qty
    return [BoxLine(code, qty) for code, qty in quantities.items()]


def adapt_manual_allocation(
    allocations: Sequence[Mapping[str, Any]],
    catalog: Mapping[str, InventoryItem],
    tiers: Sequence[InsuranceTier] = DEFAULT_TIER_TABLE,
    gst_pct: float = INSURANCE_GST_PCT,
) -> list[Box]:
    """Convert [{boxNumber, parts, dimensions, totalWeight}] into Boxes.

    No packing happens here: lines, dimensions and box order are taken as given,
    weight and value are recomputed from the catalog and insurance recommended on
    the summed value. The tool's own totalWeight is only cross-checked.
    """
    boxes: list[Box] = []
    seen: set[int] = set()
    for row in allocations:
        raw_number = _pick(row, "boxNumber", "box_number")
        try:
            box_number = int(raw_number)
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"Manual allocation row is missing a box number: {dict(row)!r}") from exc
        if box_number in seen:
            raise ValidationError(f"Duplicate manual box number: {box_number}")
        seen.add(box_number)

        lines = _parts_to_lines(box_number, _pick(row, "parts", default=[]), catalog)
        dims = Dimensions.from_mapping(_pick(row, "dimensions", default={}))
        weight, value = derive_aggregates(lines, catalog)

        reported = _pick(row, "totalWeight", "total_weight")
        try:
            reported = float(reported) if reported is not None else None
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"Manual box {box_number}: totalWeight must be numeric") from exc
        if reported is not None and reported != weight:
            logger.warning("Manual box %s reports %sg, lines sum to %sg; using %sg", box_number, reported, weight, weight)

        boxes.append(
            Box(
                box_id=manual_box_id(box_number),
                lines=lines,
                dimensions=dims,
                weight_g=weight,
                value=value,
                insurance=recommend_insurance(value, tiers, gst_pct),
                notes=str(_pick(row, "customNotes", "notes", default="")),
            )
        )
    return boxes


def apply_manual_allocation(registry: BoxRegistry, allocations: Sequence[Mapping[str, Any]]) -> list[Box]:
    boxes = adapt_manual_allocation(allocations, registry.catalog, registry.tiers, registry.gst_pct)
    registry.replace_boxes(boxes)
    return registry.boxes
