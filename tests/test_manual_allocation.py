import logging

import pytest

from box_registry import BoxRegistry
from errors import ValidationError
from manual_allocation import adapt_manual_allocation, apply_manual_allocation
from models import BoxLine, Dimensions, SelectionLine


def _tool_output():
    return [
        {
            "boxNumber": 1,
            "parts": [{"partId": "CLT-PLT", "quantity": 2}, {"partId": "AIR-FLT", "quantity": 1}],
            "dimensions": {"length": 40, "breadth": 30, "height": 20},
            "totalWeight": 6400,
        },
        {
            "boxNumber": 2,
            "parts": [{"partId": "ECU-MOD", "quantity": 1}],
            "dimensions": {},
            "totalWeight": 2000,
            "customNotes": "fragile",
        },
    ]


def test_adapts_tool_output_without_repacking(catalog):
    boxes = adapt_manual_allocation(_tool_output(), catalog, gst_pct=18)

    assert [b.box_id for b in boxes] == ["manual-box-1", "manual-box-2"]
    assert boxes[0].lines == [BoxLine("CLT-PLT", 2), BoxLine("AIR-FLT", 1)]
    assert boxes[0].dimensions == Dimensions(40, 30, 20)
    assert boxes[0].weight_g == 6400
    assert boxes[0].value == 8750.0
    assert boxes[0].insurance.tier_type == "CARRIER_RISK"
    assert boxes[1].dimensions == Dimensions()
    assert boxes[1].insurance.tier_type == "DECLARED_VALUE"
    assert boxes[1].insurance.premium == 300.0
    assert boxes[1].notes == "fragile"


def test_ids_follow_box_numbers(catalog):
    rows = _tool_output()
    rows[0]["boxNumber"] = 7

    boxes = adapt_manual_allocation(rows, catalog)

    assert [b.box_id for b in boxes] == ["manual-box-7", "manual-box-2"]


def test_repeated_parts_merge_and_zero_quantities_drop(catalog):
    rows = [
        {
            "box_number": 1,
            "parts": [
                {"part_id": "AIR-FLT", "quantity": 2},
                {"item_code": "CLT-PLT", "quantity": 0},
                {"partId": "AIR-FLT", "quantity": "3"},
            ],
        }
    ]

    boxes = adapt_manual_allocation(rows, catalog)

    assert boxes[0].lines == [BoxLine("AIR-FLT", 5)]


def test_weight_mismatch_is_logged_and_recomputed(catalog, caplog):
    rows = _tool_output()
    rows[0]["totalWeight"] = 9999

    with caplog.at_level(logging.WARNING, logger="manual_allocation"):
        boxes = adapt_manual_allocation(rows, catalog)

    assert boxes[0].weight_g == 6400
    assert "reports 9999" in caplog.text


@pytest.mark.parametrize(
    "rows, message",
    [
        ([{"boxNumber": 1, "parts": [{"partId": "GHOST", "quantity": 1}]}], "unknown part 'GHOST'"),
        ([{"boxNumber": 1, "parts": []}, {"boxNumber": 1, "parts": []}], "Duplicate manual box number: 1"),
        ([{"parts": []}], "missing a box number"),
        ([{"boxNumber": 1, "parts": [{"partId": "AIR-FLT", "quantity": -1}]}], ">= 0"),
        ([{"boxNumber": 1, "parts": [], "totalWeight": "heavy"}], "totalWeight must be numeric"),
        ([{"boxNumber": 1, "parts": [], "dimensions": {"length": -5}}], "length"),
    ],
)
def test_bad_tool_output_rejected(catalog, rows, message):
    with pytest.raises(ValidationError, match=message):
        adapt_manual_allocation(rows, catalog)


def test_apply_replaces_registry_boxes(catalog):
    selection = [SelectionLine("CLT-PLT", 2), SelectionLine("AIR-FLT", 1), SelectionLine("ECU-MOD", 1)]
    registry = BoxRegistry.from_allocation(selection, catalog)

    boxes = apply_manual_allocation(registry, _tool_output())

    assert [b.box_id for b in boxes] == ["manual-box-1", "manual-box-2"]
    assert registry.is_balanced()
    registry.check_invariants()

    added = registry.add_box()
    assert added.box_id.startswith("box-")
    assert len(registry) == 3


def test_apply_bad_output_keeps_existing_boxes(catalog):
    registry = BoxRegistry.from_allocation([SelectionLine("CLT-PLT", 1)], catalog)

    with pytest.raises(ValidationError):
        apply_manual_allocation(registry, [{"boxNumber": 1, "parts": [{"partId": "GHOST", "quantity": 1}]}])

    assert [b.box_id for b in registry] == ["box-1"]
