from datetime import date

import pandas as pd
import pytest

from errors import ValidationError
from insurance_engine import DEFAULT_TIER_TABLE
from models import SelectionLine
from planning_engine import (
    balance_frame,
    box_summary_frame,
    import_parts,
    line_frame,
    load_catalog,
    load_estimator,
    load_tier_table,
    plan_shipment,
    selection_from_frame,
    shipment_totals,
)
from rate_engine import estimate_request_for
from seed import seed_if_empty


@pytest.fixture
def seeded(conn):
    seed_if_empty(conn)
    return conn


def test_catalog_and_tiers_load_from_db(seeded):
    catalog = load_catalog(seeded)

    assert catalog["ALT-12V-90A"].unit_weight_g == 8000
    assert catalog["ECU-MOD-7"].unit_price == 62000.0
    assert load_tier_table(seeded) == list(DEFAULT_TIER_TABLE)


def test_broken_tier_table_is_rejected(seeded):
    with seeded:
        seeded.execute("DELETE FROM insurance_tiers WHERE tier_type = 'COMPREHENSIVE'")

    with pytest.raises(ValidationError, match="open-ended"):
        load_tier_table(seeded)


def test_plan_shipment_end_to_end(seeded):
    selection = [SelectionLine("CLT-PLT-110", 1), SelectionLine("ALT-12V-90A", 1)]

    registry = plan_shipment(seeded, selection, 10_000, gst_pct=18)

    summary = box_summary_frame(registry)
    assert summary["box_id"].tolist() == ["box-1", "box-2"]
    assert summary["weight_kg"].tolist() == [3.0, 8.0]
    assert summary["tier"].tolist() == ["NONE", "CARRIER_RISK"]
    assert summary["premium"].tolist() == [0.0, 92.5]
    assert summary["volume_l"].tolist() == [9.0, 9.0]

    lines = line_frame(registry)
    assert lines["item_code"].tolist() == ["CLT-PLT-110", "ALT-12V-90A"]
    assert lines["name"].tolist() == ["Clutch plate", "Alternator 12V 90A"]

    balance = balance_frame(registry)
    assert balance["unallocated"].tolist() == [0, 0]

    totals = shipment_totals(registry)
    assert totals["box_count"] == 2
    assert totals["total_weight_kg"] == 11.0
    assert totals["total_value"] == 22_700.0
    assert totals["total_premium"] == 92.5
    assert totals["balanced"] is True


def test_seeded_rate_cards_estimate(seeded):
    registry = plan_shipment(seeded, [SelectionLine("CLT-PLT-110", 1), SelectionLine("ALT-12V-90A", 1)])
    estimator = load_estimator(seeded)

    standard = estimator.estimate(estimate_request_for(registry, "MEDIUM", date(2026, 3, 1)))
    express = estimator.estimate(estimate_request_for(registry, "HIGH", date(2026, 3, 1)))

    assert standard == 380.0
    assert express == 611.0


def test_empty_registry_frames(seeded):
    registry = plan_shipment(seeded, [])

    assert len(box_summary_frame(registry)) == 1
    assert line_frame(registry).empty
    assert balance_frame(registry).empty


def test_import_parts_normalizes_and_upserts(seeded):
    frame = pd.DataFrame(
        [
            {"code": " brk-pad-220 ", "name": "Brake pad set", "unit_weight_g": 900, "unit_price": 1500.0, "available_qty": 8},
            {"code": "gsk-hd-01", "name": "Head gasket", "unit_weight_g": 300, "unit_price": 2100.0, "available_qty": 15},
        ]
    )

    assert import_parts(seeded, frame) == 2

    catalog = load_catalog(seeded)
    assert catalog["BRK-PAD-220"].unit_weight_g == 900
    assert catalog["GSK-HD-01"].available_qty == 15
    assert len(catalog) == 7


def test_import_parts_missing_column(seeded):
    frame = pd.DataFrame([{"code": "X1", "unit_weight_g": 1, "unit_price": 1.0, "available_qty": 1}])

    with pytest.raises(ValidationError, match="Missing or blank required columns: name"):
        import_parts(seeded, frame)


def test_import_parts_duplicate_codes(seeded):
    row = {"code": "X1", "name": "Thing", "unit_weight_g": 1, "unit_price": 1.0, "available_qty": 1}

    with pytest.raises(ValidationError, match="Duplicate part codes: X1"):
        import_parts(seeded, pd.DataFrame([row, dict(row, code="x1")]))


def test_import_parts_bad_values(seeded):
    frame = pd.DataFrame([{"code": "X1", "name": "Thing", "unit_weight_g": -4, "unit_price": 1.0, "available_qty": 1.5}])

    with pytest.raises(ValidationError) as exc:
        import_parts(seeded, frame)

    assert "Row 1 (unit_weight_g): must be >= 0" in str(exc.value)
    assert "Row 1 (available_qty): must be a whole number" in str(exc.value)


def test_selection_from_frame(seeded):
    catalog = load_catalog(seeded)
    frame = pd.DataFrame([{"item_code": " clt-plt-110", "quantity": 2}, {"item_code": "AIR-FLT-05", "quantity": 5.0}])

    assert selection_from_frame(frame, catalog) == [SelectionLine("CLT-PLT-110", 2), SelectionLine("AIR-FLT-05", 5)]
    assert selection_from_frame(pd.DataFrame(columns=["item_code", "quantity"]), catalog) == []


def test_selection_from_frame_rejects_unknown_and_zero(seeded):
    catalog = load_catalog(seeded)

    with pytest.raises(ValidationError, match="Unknown part codes: NOPE-1"):
        selection_from_frame(pd.DataFrame([{"item_code": "NOPE-1", "quantity": 1}]), catalog)
    with pytest.raises(ValidationError, match="must be >= 1"):
        selection_from_frame(pd.DataFrame([{"item_code": "CLT-PLT-110", "quantity": 0}]), catalog)
