"""Editable box set for one shipment in progress."""
from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Iterator, Mapping, Sequence

from allocation_engine import allocate_boxes, box_id_for
from errors import InvariantViolation, NotFound, ValidationError
from insurance_engine import DEFAULT_TIER_TABLE, assign_insurance, recommend_insurance, tier_available, tier_by_type
from models import Box, BoxLine, Dimensions, InsuranceTier, InventoryItem, SelectionLine, derive_aggregates
from settings import INSURANCE_GST_PCT, WEIGHT_CEILING_G

logger = logging.getLogger(__name__)


class BoxRegistry:
    """Owns the ordered boxes of one shipment and every edit made to them.

    Each command validates before touching state, then calls ``recompute`` so
    weight, value and insurance are always re-derived from the box lines.
    """

    def __init__(
        self,
        boxes: Sequence[Box],
        catalog: Mapping[str, InventoryItem],
        selection: Sequence[SelectionLine] = (),
        *,
        tiers: Sequence[InsuranceTier] = DEFAULT_TIER_TABLE,
        gst_pct: float = INSURANCE_GST_PCT,
    ) -> None:
        if not boxes:
            raise InvariantViolation("A shipment needs at least one box")
        self._catalog = dict(catalog)
        self._selection = list(selection)
        self._tiers = tuple(tiers)
        self._gst_pct = gst_pct
        self._boxes: list[Box] = []
        self._next_seq = 1
        self._dropped_overrides: list[str] = []
        self._install(boxes)

    @classmethod
    def from_allocation(
        cls,
        selection: Sequence[SelectionLine],
        catalog: Mapping[str, InventoryItem],
        weight_ceiling_g: int = WEIGHT_CEILING_G,
        *,
        tiers: Sequence[InsuranceTier] = DEFAULT_TIER_TABLE,
        gst_pct: float = INSURANCE_GST_PCT,
    ) -> "BoxRegistry":
        boxes = allocate_boxes(selection, catalog, weight_ceiling_g)
        if not boxes:
            boxes = [Box(box_id=box_id_for(1))]
        return cls(boxes, catalog, selection, tiers=tiers, gst_pct=gst_pct)

    # ---------- queries ----------
    @property
    def boxes(self) -> list[Box]:
        return list(self._boxes)

    @property
    def catalog(self) -> dict[str, InventoryItem]:
        return dict(self._catalog)

    @property
    def selection(self) -> list[SelectionLine]:
        return list(self._selection)

    @property
    def tiers(self) -> tuple[InsuranceTier, ...]:
        return self._tiers

    @property
    def gst_pct(self) -> float:
        return self._gst_pct

    def __len__(self) -> int:
        return len(self._boxes)

    def __iter__(self) -> Iterator[Box]:
        return iter(list(self._boxes))

    def get(self, box_id: str) -> Box:
        for box in self._boxes:
            if box.box_id == box_id:
                return box
        raise NotFound(f"Box not found: {box_id}")

    def index_of(self, box_id: str) -> int:
        return self._boxes.index(self.get(box_id))

    @property
    def total_weight_g(self) -> int:
        return sum(box.weight_g for box in self._boxes)

    @property
    def total_value(self) -> float:
        return round(sum(box.value for box in self._boxes), 2)

    @property
    def total_premium(self) -> float:
        return round(sum(box.insurance.premium for box in self._boxes if box.insurance), 2)

    @property
    def total_insurance(self) -> float:
        return round(sum(box.insurance.total for box in self._boxes if box.insurance), 2)

    def allocated_quantities(self) -> dict[str, int]:
        totals: dict[str, int] = defaultdict(int)
        for box in self._boxes:
            for line in box.lines:
                totals[line.item_code] += line.quantity
        return dict(totals)

    def selected_quantities(self) -> dict[str, int]:
        totals: dict[str, int] = defaultdict(int)
        for line in self._selection:
            totals[line.item_code] += int(line.quantity)
        return dict(totals)

    def allocation_balance(self) -> dict[str, dict[str, int]]:
        """Per item: selected, allocated and unallocated (negative when over-allocated)."""
        selected = self.selected_quantities()
        allocated = self.allocated_quantities()
        balance: dict[str, dict[str, int]] = {}
        for code in list(selected) + [c for c in allocated if c not in selected]:
            sel = selected.get(code, 0)
            alloc = allocated.get(code, 0)
            balance[code] = {"selected": sel, "allocated": alloc, "unallocated": sel - alloc}
        return balance

    def is_balanced(self) -> bool:
        return all(row["unallocated"] == 0 for row in self.allocation_balance().values())

    def check_invariants(self) -> None:
        if not self._boxes:
            raise InvariantViolation("A shipment needs at least one box")
        ids = [box.box_id for box in self._boxes]
        if len(set(ids)) != len(ids):
            raise InvariantViolation("Box ids must be unique")
        for box in self._boxes:
            weight, value = derive_aggregates(box.lines, self._catalog)
            if box.weight_g != weight or box.value != value:
                raise InvariantViolation(f"Box {box.box_id} aggregates are stale")
            if box.insurance is None or box.insurance.declared_value != value:
                raise InvariantViolation(f"Box {box.box_id} insurance is stale")

    def pop_dropped_overrides(self) -> list[str]:
        """Ids of boxes whose tier override was dropped since the last call."""
        dropped, self._dropped_overrides = self._dropped_overrides, []
        return dropped

    def submission_payload(self) -> list[dict[str, Any]]:
        return [box.to_payload() for box in self._boxes]

    # ---------- commands ----------
    def add_box(self, dimensions: Dimensions | None = None) -> Box:
        box = Box(box_id=self._new_id(), dimensions=dimensions or Dimensions())
        self._boxes.append(box)
        self.recompute()
        logger.debug("Added %s", box.box_id)
        return box

    def remove_box(self, box_id: str) -> None:
        box = self.get(box_id)
        if len(self._boxes) <= 1:
            logger.info("Rejected removing %s: last box", box_id)
            raise InvariantViolation("At least one box is required")
        self._boxes.remove(box)
        self.recompute()
        logger.debug("Removed %s", box_id)

    def duplicate_box(self, box_id: str) -> Box:
        """Append a copy with a fresh id; copies allocation, not inventory."""
        source = self.get(box_id)
        copy = source.copy_as(self._new_id())
        self._boxes.append(copy)
        self.recompute()
        logger.debug("Duplicated %s as %s", box_id, copy.box_id)
        return copy

    def update_dimensions(self, box_id: str, dimensions: Dimensions | Mapping[str, Any]) -> Box:
        box = self.get(box_id)
        dims = dimensions if isinstance(dimensions, Dimensions) else Dimensions.from_mapping(dimensions)
        box.dimensions = dims
        self.recompute()
        return box

    def reassign_line(self, box_id: str, line: BoxLine | SelectionLine, from_box_id: str | None = None) -> None:
        """Set an item's quantity in a box, or move units into it from another box.

        Without ``from_box_id`` the box's line for ``line.item_code`` is set to
        ``line.quantity`` (0 removes it). With ``from_box_id`` that many units
        move from the source box into this one.
        """
        target = self.get(box_id)
        code = line.item_code
        if code not in self._catalog:
            raise ValidationError(f"Unknown item code: {code}")
        qty = int(line.quantity)
        if qty != line.quantity or qty < 0:
            raise ValidationError(f"Quantity for '{code}' must be a whole number >= 0")

        if from_box_id is None:
            current = target.quantity_of(code)
            if self._selection and qty > current:
                selected = self.selected_quantities().get(code, 0)
                after = self.allocated_quantities().get(code, 0) - current + qty
                if after > selected:
                    raise ValidationError(f"{code}: allocating {after} exceeds selected quantity {selected}")
            target.lines = _set_quantity(target.lines, code, qty)
            logger.debug("Set %s x%d in %s", code, qty, box_id)
        else:
            source = self.get(from_box_id)
            if source is target:
                raise ValidationError("Source and destination box must differ")
            if qty == 0:
                raise ValidationError(f"Quantity to move for '{code}' must be > 0")
            held = source.quantity_of(code)
            if qty > held:
                raise ValidationError(f"{from_box_id} holds {held} of {code}, cannot move {qty}")
            new_source = _set_quantity(source.lines, code, held - qty)
            new_target = _set_quantity(target.lines, code, target.quantity_of(code) + qty)
            source.lines = new_source
            target.lines = new_target
            logger.debug("Moved %s x%d from %s to %s", code, qty, from_box_id, box_id)
        self.recompute()

    def remove_line(self, box_id: str, item_code: str) -> None:
        self.reassign_line(box_id, SelectionLine(item_code, 0))

    def set_insurance_tier(self, box_id: str, tier_type: str) -> Box:
        box = self.get(box_id)
        tier = tier_by_type(tier_type, self._tiers)
        if not tier_available(tier, box.value):
            raise ValidationError(f"{tier.tier_type} does not cover a box value of {box.value:,.2f}")
        box.tier_override = tier.tier_type
        self.recompute()
        return box

    def clear_insurance_tier(self, box_id: str) -> Box:
        box = self.get(box_id)
        box.tier_override = None
        self.recompute()
        return box

    def replace_boxes(self, boxes: Sequence[Box]) -> None:
        if not boxes:
            raise InvariantViolation("A shipment needs at least one box")
        ids = [box.box_id for box in boxes]
        if len(set(ids)) != len(ids):
            raise ValidationError("Box ids must be unique")
        for box in boxes:
            derive_aggregates(box.lines, self._catalog)
            if box.tier_override:
                tier_by_type(box.tier_override, self._tiers)
        self._boxes = []
        self._install(boxes)

    def recompute(self) -> None:
        """Re-derive every box; an override whose tier no longer covers the value is dropped."""
        for box in self._boxes:
            box.weight_g, box.value = derive_aggregates(box.lines, self._catalog)
            tier = tier_by_type(box.tier_override, self._tiers) if box.tier_override else None
            if tier is not None and not tier_available(tier, box.value):
                logger.info("Dropped %s override on %s: value %.2f is outside its range", tier.tier_type, box.box_id, box.value)
                self._dropped_overrides.append(box.box_id)
                box.tier_override = None
                tier = None
            if tier is not None:
                box.insurance = assign_insurance(box.value, tier, self._gst_pct)
            else:
                box.insurance = recommend_insurance(box.value, self._tiers, self._gst_pct)

    # ---------- internals ----------
    def _install(self, boxes: Sequence[Box]) -> None:
        self._boxes = list(boxes)
        for box in self._boxes:
            seq = _id_sequence(box.box_id)
            if seq is not None:
                self._next_seq = max(self._next_seq, seq + 1)
        self.recompute()

    def _new_id(self) -> str:
        existing = {box.box_id for box in self._boxes}
        while box_id_for(self._next_seq) in existing:
            self._next_seq += 1
        box_id = box_id_for(self._next_seq)
        self._next_seq += 1
        return box_id


def _set_quantity(lines: Sequence[BoxLine], item_code: str, quantity: int) -> list[BoxLine]:
    """Return a new line list with item_code at quantity, order preserved."""
    out: list[BoxLine] = []
    placed = False
    for line in lines:
        if line.item_code != item_code:
            out.append(line)
            continue
        if not placed and quantity > 0:
            out.append(BoxLine(item_code, quantity))
        placed = True
    if not placed and quantity > 0:
        out.append(BoxLine(item_code, quantity))
    return out


def _id_sequence(box_id: str) -> int | None:
    prefix, _, tail = box_id.rpartition("-")
    if prefix != "box" or not tail.isdigit():
        return None
    return int(tail)
