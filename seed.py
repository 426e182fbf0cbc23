"""Seed data and CSV template helpers."""
from __future__ import annotations

from pathlib import Path
import csv
import io
import sqlite3

from db import get_conn
from field_specs import TABLE_SPECS
from insurance_engine import DEFAULT_TIER_TABLE


TEMPLATE_SPECS: list[tuple[str, str]] = [
    ("parts_import", "parts_template.csv"),
    ("selection", "selection_template.csv"),
    ("insurance_tiers", "insurance_tiers_template.csv"),
    ("rate_cards", "rate_cards_template.csv"),
    ("rate_charges", "rate_charges_template.csv"),
]


def seed_if_empty(conn: sqlite3.Connection | None = None) -> bool:
    """Load sample parts, the default tier table and rate cards into an empty db."""
    conn = conn or get_conn()
    with conn:
        existing = conn.execute("SELECT COUNT(*) FROM parts").fetchone()[0]
        if existing:
            return False
        conn.executemany(
            "INSERT INTO parts(code, name, unit_weight_g, unit_price, available_qty) VALUES (?,?,?,?,?)",
            [
                ("BRK-PAD-220", "Brake pad set", 850, 1450.0, 40),
                ("CLT-PLT-110", "Clutch plate", 3000, 4200.0, 12),
                ("ALT-12V-90A", "Alternator 12V 90A", 8000, 18500.0, 6),
                ("ECU-MOD-7", "Engine control module", 1200, 62000.0, 4),
                ("AIR-FLT-05", "Air filter", 400, 350.0, 120),
                ("HDL-LED-PR", "LED headlamp pair", 2200, 9800.0, 10),
            ],
        )
        conn.executemany(
            """
            INSERT INTO insurance_tiers(sort_order, tier_type, name, description, premium_rate_pct, min_value, max_value)
            VALUES (?,?,?,?,?,?,?)
            """,
            [
                (i, t.tier_type, t.name, t.description, t.premium_rate_pct, t.min_value, t.max_value)
                for i, t in enumerate(DEFAULT_TIER_TABLE, start=1)
            ],
        )
        conn.executemany(
            """
            INSERT INTO rate_cards(name, service_level, currency, base_rate, uom_pricing, min_charge, effective_from, effective_to, priority, is_active)
            VALUES (?,?,?,?,?,?,?,?,?,?)
            """,
            [
                ("Surface standard", "STANDARD", "INR", 60.0, "PER_BOX", 80.0, "2025-01-01", None, 10, 1),
                ("Air express", "EXPRESS", "INR", 95.0, "PER_BOX", 120.0, "2025-01-01", None, 10, 1),
            ],
        )
        cards = {r["service_level"]: r["id"] for r in conn.execute("SELECT id, service_level FROM rate_cards").fetchall()}
        conn.executemany(
            """
            INSERT INTO rate_charges(rate_card_id, charge_code, charge_name, calc_method, amount, applies_when, min_amount, max_amount)
            VALUES (?,?,?,?,?,?,?,?)
            """,
            [
                (cards["STANDARD"], "WGT", "Weight charge", "PER_KG", 18.0, "ALWAYS", None, None),
                (cards["STANDARD"], "FOV", "Freight on value", "PERCENT_OF_VALUE", 0.2, "ALWAYS", 50.0, 5000.0),
                (cards["STANDARD"], "MKP", "Platform markup", "PERCENT_OF_BASE", 10.0, "ALWAYS", None, None),
                (cards["EXPRESS"], "WGT", "Weight charge", "PER_KG", 32.0, "ALWAYS", None, None),
                (cards["EXPRESS"], "FOV", "Freight on value", "PERCENT_OF_VALUE", 0.2, "ALWAYS", 50.0, 5000.0),
                (cards["EXPRESS"], "MKP", "Platform markup", "PERCENT_OF_BASE", 10.0, "ALWAYS", None, None),
            ],
        )
    return True


def ensure_templates(template_dir: Path | None = None) -> list[Path]:
    template_dir = template_dir or Path("templates")
    template_dir.mkdir(exist_ok=True)

    written = []
    for table_key, fname in TEMPLATE_SPECS:
        cols = list(TABLE_SPECS[table_key].keys())
        sample_row = [TABLE_SPECS[table_key][col].example for col in cols]
        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(cols)
        writer.writerow(sample_row)
        path = template_dir / fname
        path.write_text(buffer.getvalue(), encoding="utf-8")
        written.append(path)
    return written
