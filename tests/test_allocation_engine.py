import logging

import pytest

from allocation_engine import allocate_boxes, validate_selection, within_ceiling
from errors import ValidationError
from models import BoxLine, Dimensions, SelectionLine, derive_aggregates


def test_two_items_that_overflow_together_get_two_boxes(catalog):
    selection = [SelectionLine("CLT-PLT", 1), SelectionLine("ALT-12V", 1)]

    boxes = allocate_boxes(selection, catalog, 10_000)

    assert [b.box_id for b in boxes] == ["box-1", "box-2"]
    assert boxes[0].lines == [BoxLine("CLT-PLT", 1)]
    assert boxes[0].weight_g == 3000
    assert boxes[1].lines == [BoxLine("ALT-12V", 1)]
    assert boxes[1].weight_g == 8000
    assert all(b.insurance is None for b in boxes)


def test_lines_that_fit_share_a_box(catalog):
    selection = [SelectionLine("CLT-PLT", 2), SelectionLine("ECU-MOD", 1), SelectionLine("AIR-FLT", 5)]

    boxes = allocate_boxes(selection, catalog)

    assert len(boxes) == 1
    assert boxes[0].weight_g == 10_000
    assert boxes[0].dimensions == Dimensions()


def test_oversize_line_is_packed_alone(catalog, caplog):
    selection = [SelectionLine("CLT-PLT", 1), SelectionLine("HVY-AXL", 1), SelectionLine("AIR-FLT", 1)]

    with caplog.at_level(logging.INFO, logger="allocation_engine"):
        boxes = allocate_boxes(selection, catalog, 10_000)

    assert [b.lines for b in boxes] == [
        [BoxLine("CLT-PLT", 1)],
        [BoxLine("HVY-AXL", 1)],
        [BoxLine("AIR-FLT", 1)],
    ]
    assert boxes[1].weight_g == 12_000
    assert "packed alone" in caplog.text


def test_oversize_line_first_does_not_leave_empty_box(catalog):
    boxes = allocate_boxes([SelectionLine("HVY-AXL", 1)], catalog, 10_000)

    assert len(boxes) == 1
    assert boxes[0].lines == [BoxLine("HVY-AXL", 1)]


def test_lines_are_never_split(catalog):
    boxes = allocate_boxes([SelectionLine("CLT-PLT", 4)], catalog, 10_000)

    assert len(boxes) == 1
    assert boxes[0].lines == [BoxLine("CLT-PLT", 4)]
    assert boxes[0].weight_g == 12_000


SELECTIONS = [
    [SelectionLine("CLT-PLT", 1), SelectionLine("ALT-12V", 1)],
    [SelectionLine("AIR-FLT", 30), SelectionLine("CLT-PLT", 3), SelectionLine("ALT-12V", 2), SelectionLine("ECU-MOD", 3)],
    [SelectionLine("HVY-AXL", 2), SelectionLine("AIR-FLT", 1), SelectionLine("ALT-12V", 1), SelectionLine("AIR-FLT", 20)],
    [SelectionLine("ECU-MOD", 1)],
]


@pytest.mark.parametrize("selection", SELECTIONS)
def test_weight_and_value_are_conserved(catalog, selection):
    boxes = allocate_boxes(selection, catalog, 10_000)
    expected_weight, expected_value = derive_aggregates(selection, catalog)

    assert sum(b.weight_g for b in boxes) == expected_weight
    assert round(sum(b.value for b in boxes), 2) == expected_value


@pytest.mark.parametrize("selection", SELECTIONS)
def test_every_box_respects_ceiling_or_is_single_oversize(catalog, selection):
    boxes = allocate_boxes(selection, catalog, 10_000)

    for box in boxes:
        assert within_ceiling(box, catalog, 10_000)
        if box.weight_g > 10_000:
            assert len(box.lines) == 1


@pytest.mark.parametrize("selection", SELECTIONS)
def test_allocation_is_deterministic(catalog, selection):
    first = allocate_boxes(selection, catalog)
    second = allocate_boxes(selection, catalog)

    assert [(b.box_id, b.lines, b.weight_g, b.value) for b in first] == [
        (b.box_id, b.lines, b.weight_g, b.value) for b in second
    ]


def test_empty_selection_yields_no_boxes(catalog):
    assert allocate_boxes([], catalog) == []


def test_custom_ceiling_and_dimensions(catalog):
    dims = Dimensions(50, 40, 30)

    boxes = allocate_boxes([SelectionLine("AIR-FLT", 5), SelectionLine("AIR-FLT", 5)], catalog, 2500, dimensions=dims)

    assert [b.weight_g for b in boxes] == [2000, 2000]
    assert all(b.dimensions == dims for b in boxes)


def test_rejects_non_positive_ceiling(catalog):
    with pytest.raises(ValidationError, match="weight_ceiling_g"):
        allocate_boxes([SelectionLine("CLT-PLT", 1)], catalog, 0)


def test_validate_selection_reports_every_bad_line(catalog):
    selection = [
        SelectionLine("CLT-PLT", 0),
        SelectionLine("ALT-12V", 6),
        SelectionLine("GHOST", 1),
        SelectionLine("AIR-FLT", 1.5),
    ]

    with pytest.raises(ValidationError) as exc:
        validate_selection(selection, catalog)

    message = str(exc.value)
    assert "Line 1 (CLT-PLT): quantity must be a whole number > 0" in message
    assert "Line 2 (ALT-12V): quantity 6 exceeds available stock 5" in message
    assert "Line 3 (GHOST): unknown item" in message
    assert "Line 4 (AIR-FLT)" in message


def test_validate_selection_checks_totals_across_lines(catalog):
    selection = [SelectionLine("ECU-MOD", 2), SelectionLine("ECU-MOD", 2)]

    with pytest.raises(ValidationError, match="ECU-MOD: total selected 4 exceeds available stock 3"):
        allocate_boxes(selection, catalog)
