from __future__ import annotations

import pandas as pd

from field_specs import TABLE_SPECS, validate_table_rows


def require_cols(df: pd.DataFrame, cols: list[str]) -> list[str]:
    missing = []
    for col in cols:
        if col not in df.columns or df[col].fillna("").astype(str).str.strip().eq("").any():
            missing.append(col)
    return missing


def validate_with_specs(table_key: str, df: pd.DataFrame) -> list[str]:
    return validate_table_rows(table_key, df)


def required_columns(table_key: str) -> list[str]:
    return [name for name, spec in TABLE_SPECS[table_key].items() if spec.required]


def validate_frame(table_key: str, df: pd.DataFrame) -> list[str]:
    """Missing/blank required columns first, then per-row field checks."""
    missing = require_cols(df, required_columns(table_key))
    if missing:
        return ["Missing or blank required columns: " + ", ".join(missing)]
    return validate_with_specs(table_key, df)


def normalize_codes(df: pd.DataFrame, cols: list[str]) -> pd.DataFrame:
    out = df.copy()
    for col in cols:
        if col in out.columns:
            out[col] = out[col].fillna("").astype(str).str.strip().str.upper()
    return out
