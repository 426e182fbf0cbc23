"""End-to-end box planning workflow."""
from __future__ import annotations

import logging
import sqlite3
from typing import Any

import pandas as pd

from box_registry import BoxRegistry
from db import upsert_rows
from errors import ValidationError
from insurance_engine import validate_tier_table
from models import InsuranceTier, InventoryItem, SelectionLine
from rate_engine import RateCardEstimator
from settings import INSURANCE_GST_PCT, WEIGHT_CEILING_G
from validators import normalize_codes, validate_frame

logger = logging.getLogger(__name__)


def norm_code(code: str | None) -> str:
    return (code or "").strip().upper()


def _optional_float(value: Any) -> float | None:
    if value is None or (isinstance(value, float) and pd.isna(value)) or value == "":
        return None
    return float(value)


def load_catalog(conn: sqlite3.Connection) -> dict[str, InventoryItem]:
    rows = conn.execute("SELECT code, name, unit_weight_g, unit_price, available_qty FROM parts ORDER BY code").fetchall()
    return {
        norm_code(row["code"]): InventoryItem(
            code=norm_code(row["code"]),
            name=row["name"],
            unit_weight_g=int(row["unit_weight_g"]),
            unit_price=float(row["unit_price"]),
            available_qty=int(row["available_qty"]),
        )
        for row in rows
    }


def load_tier_table(conn: sqlite3.Connection) -> list[InsuranceTier]:
    rows = conn.execute(
        """
        SELECT tier_type, premium_rate_pct, min_value, max_value, name, description
        FROM insurance_tiers
        ORDER BY sort_order, id
        """
    ).fetchall()
    tiers = [
        InsuranceTier(
            tier_type=norm_code(row["tier_type"]),
            premium_rate_pct=float(row["premium_rate_pct"] or 0.0),
            min_value=_optional_float(row["min_value"]),
            max_value=_optional_float(row["max_value"]),
            name=row["name"] or "",
            description=row["description"] or "",
        )
        for row in rows
    ]
    return validate_tier_table(tiers)


def load_estimator(conn: sqlite3.Connection) -> RateCardEstimator:
    cards = [dict(r) for r in conn.execute("SELECT * FROM rate_cards ORDER BY id").fetchall()]
    charges = [dict(r) for r in conn.execute("SELECT * FROM rate_charges ORDER BY id").fetchall()]
    return RateCardEstimator(cards, charges)


def import_parts(conn: sqlite3.Connection, frame: pd.DataFrame) -> int:
    """Validate and upsert a parts_import frame; returns rows written."""
    frame = normalize_codes(frame, ["code"])
    errors = validate_frame("parts_import", frame)
    if errors:
        raise ValidationError("; ".join(errors))
    dupes = frame["code"][frame["code"].duplicated()].unique().tolist()
    if dupes:
        raise ValidationError("Duplicate part codes: " + ", ".join(dupes))
    cols = ["code", "name", "unit_weight_g", "unit_price", "available_qty"]
    with conn:
        written = upsert_rows(conn, "parts", frame[cols], ["code"])
    logger.info("Imported %d parts", written)
    return written


def selection_from_frame(frame: pd.DataFrame, catalog: dict[str, InventoryItem]) -> list[SelectionLine]:
    """Turn an edited selection grid into SelectionLines, rejecting bad rows."""
    if frame.empty:
        return []
    frame = normalize_codes(frame, ["item_code"])
    errors = validate_frame("selection", frame)
    if errors:
        raise ValidationError("; ".join(errors))
    unknown = [code for code in frame["item_code"].tolist() if code not in catalog]
    if unknown:
        raise ValidationError("Unknown part codes: " + ", ".join(dict.fromkeys(unknown)))
    return [SelectionLine(code, int(qty)) for code, qty in zip(frame["item_code"], frame["quantity"])]


def plan_shipment(
    conn: sqlite3.Connection,
    selection: list[SelectionLine],
    weight_ceiling_g: int | None = None,
    gst_pct: float = INSURANCE_GST_PCT,
) -> BoxRegistry:
    catalog = load_catalog(conn)
    tiers = load_tier_table(conn)
    registry = BoxRegistry.from_allocation(
        selection,
        catalog,
        weight_ceiling_g or WEIGHT_CEILING_G,
        tiers=tiers,
        gst_pct=gst_pct,
    )
    logger.info("Planned %d lines into %d boxes, %.2f kg", len(selection), len(registry), registry.total_weight_g / 1000)
    return registry


def box_summary_frame(registry: BoxRegistry) -> pd.DataFrame:
    rows = []
    for number, box in enumerate(registry, start=1):
        dims = box.dimensions
        insurance = box.insurance
        rows.append(
            {
                "box": number,
                "box_id": box.box_id,
                "lines": len(box.lines),
                "units": sum(line.quantity for line in box.lines),
                "weight_kg": round(box.weight_g / 1000, 3),
                "value": box.value,
                "tier": insurance.tier_type if insurance else "",
                "tier_override": bool(box.tier_override),
                "premium": insurance.premium if insurance else 0.0,
                "gst": insurance.gst if insurance else 0.0,
                "dimensions_cm": f"{dims.length:g} x {dims.breadth:g} x {dims.height:g}",
                "volume_l": round(dims.volume_litres, 2),
            }
        )
    return pd.DataFrame(rows)


def line_frame(registry: BoxRegistry) -> pd.DataFrame:
    catalog = registry.catalog
    rows = []
    for number, box in enumerate(registry, start=1):
        for line in box.lines:
            item = catalog[line.item_code]
            rows.append(
                {
                    "box": number,
                    "box_id": box.box_id,
                    "item_code": line.item_code,
                    "name": item.name,
                    "quantity": line.quantity,
                    "weight_kg": round(item.unit_weight_g * line.quantity / 1000, 3),
                    "value": round(item.unit_price * line.quantity, 2),
                }
            )
    return pd.DataFrame(rows, columns=["box", "box_id", "item_code", "name", "quantity", "weight_kg", "value"])


def balance_frame(registry: BoxRegistry) -> pd.DataFrame:
    rows = [{"item_code": code, **counts} for code, counts in registry.allocation_balance().items()]
    return pd.DataFrame(rows, columns=["item_code", "selected", "allocated", "unallocated"])


def shipment_totals(registry: BoxRegistry) -> dict:
    return {
        "box_count": len(registry),
        "total_weight_kg": round(registry.total_weight_g / 1000, 3),
        "total_value": registry.total_value,
        "total_premium": registry.total_premium,
        "total_insurance": registry.total_insurance,
        "balanced": registry.is_balanced(),
    }
