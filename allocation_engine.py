"""Greedy weight-based split of selected parts into shipping boxes."""
from __future__ import annotations

import logging
from collections import defaultdict
from typing import Mapping, Sequence

from errors import ValidationError
from models import Box, BoxLine, Dimensions, InventoryItem, SelectionLine, derive_aggregates, line_weight_g
from settings import WEIGHT_CEILING_G

logger = logging.getLogger(__name__)


def box_id_for(position: int) -> str:
    return f"box-{position}"


def validate_selection(selection: Sequence[SelectionLine], catalog: Mapping[str, InventoryItem]) -> None:
    """Reject unknown items and quantities outside [1, available stock].

    Every bad line is reported in one error so a form can show them together.
    """
    errors: list[str] = []
    requested: dict[str, int] = defaultdict(int)
    for i, line in enumerate(selection, start=1):
        item = catalog.get(line.item_code)
        if item is None:
            errors.append(f"Line {i} ({line.item_code}): unknown item")
            continue
        try:
            qty = int(line.quantity)
        except (TypeError, ValueError):
            errors.append(f"Line {i} ({line.item_code}): quantity must be a whole number")
            continue
        if qty != line.quantity or qty <= 0:
            errors.append(f"Line {i} ({line.item_code}): quantity must be a whole number > 0")
            continue
        if qty > item.available_qty:
            errors.append(f"Line {i} ({line.item_code}): quantity {qty} exceeds available stock {item.available_qty}")
            continue
        requested[line.item_code] += qty

    for code, total in requested.items():
        available = catalog[code].available_qty
        if total > available:
            errors.append(f"{code}: total selected {total} exceeds available stock {available}")

    if errors:
        raise ValidationError("; ".join(errors))


def allocate_boxes(
    selection: Sequence[SelectionLine],
    catalog: Mapping[str, InventoryItem],
    weight_ceiling_g: int = WEIGHT_CEILING_G,
    *,
    dimensions: Dimensions | None = None,
) -> list[Box]:
    """Split selection lines into boxes under a per-box weight ceiling.

    Algorithm:
    1) Walk lines in the given order, keeping one open box.
    2) Close the open box when the next whole line would push it over the ceiling,
       unless the open box is still empty.
    3) Place the line whole; a line heavier than the ceiling ends up alone.

    Boxes come back without insurance, ids box-1..box-n in order.
    """
    if weight_ceiling_g is None or weight_ceiling_g <= 0:
        raise ValidationError("weight_ceiling_g must be > 0")
    validate_selection(selection, catalog)
    dims = dimensions or Dimensions()

    boxes: list[Box] = []
    current = Box(box_id=box_id_for(1), dimensions=dims)
    for line in selection:
        weight = line_weight_g(line, catalog)
        if current.weight_g + weight > weight_ceiling_g and not current.is_empty:
            boxes.append(current)
            current = Box(box_id=box_id_for(len(boxes) + 1), dimensions=dims)
        current.lines.append(BoxLine(line.item_code, int(line.quantity)))
        current.weight_g, current.value = derive_aggregates(current.lines, catalog)
        if weight > weight_ceiling_g:
            logger.info("Line %s x%s weighs %sg, over the %sg ceiling; packed alone", line.item_code, line.quantity, weight, weight_ceiling_g)

    if not current.is_empty:
        boxes.append(current)

    logger.debug("Allocated %d lines into %d boxes (ceiling %sg)", len(selection), len(boxes), weight_ceiling_g)
    return boxes


def within_ceiling(box: Box, catalog: Mapping[str, InventoryItem], weight_ceiling_g: int = WEIGHT_CEILING_G) -> bool:
    """True when the box is under the ceiling or is a lone oversize line."""
    if box.weight_g <= weight_ceiling_g:
        return True
    return len(box.lines) == 1 and line_weight_g(box.lines[0], catalog) > weight_ceiling_g
