from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
import re
from typing import Any

import pandas as pd
import streamlit as st


@dataclass(frozen=True)
class FieldSpec:
    field_type: str
    required: bool = False
    description: str = ""
    example: str = ""
    fmt: str = ""
    max_length: int | None = None
    regex: str | None = None
    allowed_chars: str = ""
    min_value: float | int | None = None
    max_value: float | int | None = None
    choices: list[str] | None = None
    notes: str = ""


TABLE_SPECS: dict[str, dict[str, FieldSpec]] = {
    "parts_import": {
        "code": FieldSpec("text", required=True, max_length=40, regex=r"^[A-Z0-9_.-]{2,40}$", allowed_chars="A-Z, 0-9, ., _, -", description="Part code", example="BRK-PAD-220"),
        "name": FieldSpec("text", required=True, max_length=120, description="Part name", example="Brake pad set"),
        "unit_weight_g": FieldSpec("int", required=True, min_value=0, description="Weight of one unit in grams", example="850", notes="Drives the per-box weight split."),
        "unit_price": FieldSpec("decimal", required=True, min_value=0, description="Price of one unit", example="1450.00", notes="Drives box value and insurance tier."),
        "available_qty": FieldSpec("int", required=True, min_value=0, description="Units in stock", example="40", notes="Upper bound for selection quantity."),
    },
    "selection": {
        "item_code": FieldSpec("text", required=True, max_length=40, regex=r"^[A-Z0-9_.-]{2,40}$", allowed_chars="A-Z, 0-9, ., _, -", description="Part code to ship", example="BRK-PAD-220"),
        "quantity": FieldSpec("int", required=True, min_value=1, description="Units to ship", example="4", notes="Must not exceed available stock."),
    },
    "insurance_tiers": {
        "sort_order": FieldSpec("int", required=True, min_value=1, description="Position in tier table", example="1", notes="Tiers are matched first-to-last."),
        "tier_type": FieldSpec("text", required=True, choices=["NONE", "CARRIER_RISK", "DECLARED_VALUE", "COMPREHENSIVE"], description="Coverage type", example="CARRIER_RISK"),
        "name": FieldSpec("text", max_length=60, description="Display name", example="Carrier Risk"),
        "premium_rate_pct": FieldSpec("decimal", required=True, min_value=0, max_value=100, description="Premium % of declared value", example="0.5"),
        "min_value": FieldSpec("decimal", min_value=0, description="Lowest value covered (inclusive)", example="5000"),
        "max_value": FieldSpec("decimal", min_value=0, description="Highest value covered (inclusive); blank = no limit", example="25000"),
    },
    "rate_cards": {
        "name": FieldSpec("text", required=True, max_length=60, description="Rate card name", example="Surface standard"),
        "service_level": FieldSpec("text", required=True, choices=["STANDARD", "EXPRESS"], description="Service level", example="STANDARD", notes="HIGH priority shipments use EXPRESS."),
        "currency": FieldSpec("text", required=True, max_length=3, regex=r"^[A-Z]{3}$", allowed_chars="A-Z", description="ISO currency", example="INR"),
        "base_rate": FieldSpec("decimal", required=True, min_value=0, description="Base charge", example="60"),
        "uom_pricing": FieldSpec("text", required=True, choices=["PER_BOX", "PER_KG", "FLAT"], description="Base charge unit", example="PER_BOX"),
        "min_charge": FieldSpec("decimal", min_value=0, description="Minimum base charge", example="80"),
        "effective_from": FieldSpec("date", required=True, fmt="YYYY-MM-DD", description="Start date", example="2026-01-01"),
        "effective_to": FieldSpec("date", fmt="YYYY-MM-DD", description="End date", example="2026-12-31"),
        "priority": FieldSpec("int", min_value=0, description="Tie-breaker priority", example="10"),
    },
    "rate_charges": {
        "rate_card_id": FieldSpec("int", required=True, min_value=1, description="Parent rate card", example="1"),
        "charge_code": FieldSpec("text", required=True, max_length=32, regex=r"^[A-Z0-9_-]{2,32}$", allowed_chars="A-Z, 0-9, _, -", description="Charge code", example="FOV"),
        "charge_name": FieldSpec("text", required=True, max_length=64, description="Charge label", example="Freight on value"),
        "calc_method": FieldSpec("text", required=True, choices=["FLAT", "PER_BOX", "PER_KG", "PERCENT_OF_BASE", "PERCENT_OF_VALUE"], description="Calculation basis", example="PERCENT_OF_VALUE"),
        "amount": FieldSpec("decimal", required=True, min_value=0, description="Charge amount or percent", example="0.2"),
        "applies_when": FieldSpec("text", choices=["ALWAYS", "HIGH_ONLY", "LOW_ONLY"], description="Priority filter", example="ALWAYS"),
        "effective_from": FieldSpec("date", fmt="YYYY-MM-DD", description="Charge start", example="2026-01-01"),
        "effective_to": FieldSpec("date", fmt="YYYY-MM-DD", description="Charge end", example="2026-12-31"),
    },
}


NUMERIC_TYPES = {"int", "decimal"}


def build_help_text(table_key: str, field: str) -> str:
    spec = TABLE_SPECS.get(table_key, {}).get(field)
    if spec is None:
        return ""
    low = "-∞" if spec.min_value is None else spec.min_value
    high = "∞" if spec.max_value is None else spec.max_value
    parts = [
        spec.description,
        f"Format: {spec.fmt}" if spec.fmt else "",
        f"Allowed: {spec.allowed_chars}" if spec.allowed_chars else "",
        f"One of: {', '.join(spec.choices)}" if spec.choices else "",
        f"Range: {low} to {high}" if spec.min_value is not None or spec.max_value is not None else "",
        f"Example: {spec.example}" if spec.example else "",
    ]
    return " | ".join(p for p in parts if p)


def field_guide_df(table_key: str) -> pd.DataFrame:
    """One row per column: what an upload needs to contain."""
    specs = TABLE_SPECS.get(table_key, {})
    return pd.DataFrame(
        [
            {
                "column": col,
                "type": spec.field_type,
                "required": "yes" if spec.required else "no",
                "allowed": ", ".join(spec.choices) if spec.choices else (spec.allowed_chars or "-"),
                "example": spec.example,
                "notes": spec.notes or "-",
            }
            for col, spec in specs.items()
        ],
        columns=["column", "type", "required", "allowed", "example", "notes"],
    )


def _is_blank(value: Any) -> bool:
    return value is None or (not isinstance(value, str) and pd.isna(value)) or str(value).strip() == ""


def _number_problem(spec: FieldSpec, value: Any) -> str | None:
    num = pd.to_numeric(pd.Series([value]), errors="coerce").iloc[0]
    if pd.isna(num):
        return "must be numeric"
    if spec.field_type == "int" and float(num) != int(num):
        return "must be a whole number"
    if spec.min_value is not None and num < spec.min_value:
        return f"must be >= {spec.min_value}"
    if spec.max_value is not None and num > spec.max_value:
        return f"must be <= {spec.max_value}"
    return None


def _text_problem(spec: FieldSpec, value: Any) -> str | None:
    if spec.field_type == "date":
        # date pickers hand back date objects, csv uploads hand back text
        if isinstance(value, date):
            return None
        try:
            datetime.strptime(str(value), "%Y-%m-%d")
        except ValueError:
            return "must be YYYY-MM-DD"
        return None
    text = str(value)
    if spec.max_length and len(text) > spec.max_length:
        return f"max length {spec.max_length}"
    if spec.regex and not re.fullmatch(spec.regex, text):
        return "invalid format" + (f", {spec.allowed_chars} only" if spec.allowed_chars else "")
    if spec.choices and text not in spec.choices:
        return f"must be one of {', '.join(spec.choices)}"
    return None


def cell_problem(spec: FieldSpec, value: Any) -> str | None:
    """First thing wrong with one cell, or None when it passes."""
    if _is_blank(value):
        return "required" if spec.required else None
    if spec.field_type in NUMERIC_TYPES:
        return _number_problem(spec, value)
    return _text_problem(spec, value)


def validate_table_rows(table_key: str, df: pd.DataFrame) -> list[str]:
    checked = {col: spec for col, spec in TABLE_SPECS.get(table_key, {}).items() if col in df.columns}
    errors: list[str] = []
    for i, record in enumerate(df.to_dict("records"), start=1):
        for col, spec in checked.items():
            problem = cell_problem(spec, record.get(col))
            if problem:
                errors.append(f"Row {i} ({col}): {problem}. Example: {spec.example}")
    return errors


def table_column_config(table_key: str) -> dict[str, Any]:
    """Streamlit column_config for a data_editor bound to table_key."""
    config: dict[str, Any] = {}
    for col, spec in TABLE_SPECS.get(table_key, {}).items():
        kwargs = {"help": build_help_text(table_key, col)}
        if spec.field_type == "date":
            config[col] = st.column_config.DateColumn(col, format="YYYY-MM-DD", **kwargs)
        elif spec.field_type in NUMERIC_TYPES:
            step = 1 if spec.field_type == "int" else None
            config[col] = st.column_config.NumberColumn(col, min_value=spec.min_value, max_value=spec.max_value, step=step, **kwargs)
        elif spec.choices:
            config[col] = st.column_config.SelectboxColumn(col, options=spec.choices, required=spec.required, **kwargs)
        else:
            config[col] = st.column_config.TextColumn(col, max_chars=spec.max_length, required=spec.required, **kwargs)
    return config
