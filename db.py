"""Database layer for the box planner.

Uses SQLite with lightweight startup migrations.
"""
from __future__ import annotations

import logging
import os
import sqlite3
from pathlib import Path

import pandas as pd

logger = logging.getLogger(__name__)

_env_db_path = os.getenv("BOXPLAN_DB_PATH")
if _env_db_path:
    DB_PATH = Path(_env_db_path).expanduser().resolve()
else:
    DB_PATH = (Path(__file__).resolve().parent / "boxplan.db").resolve()


MIGRATIONS: list[tuple[int, str]] = [
    (
        1,
        """
        CREATE TABLE IF NOT EXISTS parts (
            code TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            unit_weight_g INTEGER NOT NULL CHECK (unit_weight_g >= 0),
            unit_price REAL NOT NULL CHECK (unit_price >= 0),
            available_qty INTEGER NOT NULL DEFAULT 0 CHECK (available_qty >= 0)
        );

        CREATE TABLE IF NOT EXISTS insurance_tiers (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            sort_order INTEGER NOT NULL,
            tier_type TEXT NOT NULL UNIQUE,
            name TEXT,
            description TEXT,
            premium_rate_pct REAL NOT NULL DEFAULT 0,
            min_value REAL,
            max_value REAL
        );
        """,
    ),
    (
        2,
        """
        CREATE TABLE IF NOT EXISTS rate_cards (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            service_level TEXT NOT NULL DEFAULT 'STANDARD',
            currency TEXT NOT NULL DEFAULT 'INR',
            base_rate REAL NOT NULL DEFAULT 0,
            uom_pricing TEXT NOT NULL DEFAULT 'PER_BOX',
            min_charge REAL,
            effective_from TEXT NOT NULL,
            effective_to TEXT,
            priority INTEGER NOT NULL DEFAULT 0,
            is_active INTEGER NOT NULL DEFAULT 1
        );

        CREATE TABLE IF NOT EXISTS rate_charges (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            rate_card_id INTEGER NOT NULL,
            charge_code TEXT NOT NULL,
            charge_name TEXT,
            calc_method TEXT NOT NULL DEFAULT 'FLAT',
            amount REAL NOT NULL DEFAULT 0,
            applies_when TEXT NOT NULL DEFAULT 'ALWAYS',
            min_amount REAL,
            max_amount REAL,
            effective_from TEXT,
            effective_to TEXT,
            FOREIGN KEY (rate_card_id) REFERENCES rate_cards(id) ON DELETE CASCADE
        );
        """,
    ),
]


def get_conn() -> sqlite3.Connection:
    conn = sqlite3.connect(DB_PATH)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys=ON;")
    return conn


def run_migrations(conn: sqlite3.Connection | None = None) -> list[int]:
    """Apply pending migrations in order; returns the versions applied now."""
    conn = conn or get_conn()
    applied_now: list[int] = []
    with conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS schema_migrations (
                version INTEGER PRIMARY KEY,
                applied_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
            );
            """
        )
        applied = {
            row[0]
            for row in conn.execute("SELECT version FROM schema_migrations").fetchall()
        }
        for version, script in MIGRATIONS:
            if version in applied:
                continue
            conn.executescript(script)
            conn.execute("INSERT INTO schema_migrations(version) VALUES (?)", (version,))
            applied_now.append(version)
    if applied_now:
        logger.info("Applied migrations %s to %s", applied_now, DB_PATH)
    return applied_now


def read_table(conn: sqlite3.Connection, name: str, order_by: str | None = None) -> pd.DataFrame:
    sql = f"SELECT * FROM {name}"
    if order_by:
        sql += f" ORDER BY {order_by}"
    return pd.read_sql_query(sql, conn)


def _cell(value):
    if value is None or value == "":
        return None
    return None if pd.isna(value) else value


def upsert_rows(conn: sqlite3.Connection, table: str, rows: pd.DataFrame, key_cols: list[str]) -> int:
    """Insert rows, overwriting non-key columns of rows whose key already exists."""
    if rows.empty:
        return 0
    columns = list(rows.columns)
    updates = [f"{col}=excluded.{col}" for col in columns if col not in key_cols]
    on_conflict = f"DO UPDATE SET {', '.join(updates)}" if updates else "DO NOTHING"
    sql = (
        f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({', '.join('?' for _ in columns)}) "
        f"ON CONFLICT({', '.join(key_cols)}) {on_conflict}"
    )
    params = [tuple(_cell(v) for v in record) for record in rows.itertuples(index=False, name=None)]
    conn.executemany(sql, params)
    return len(params)
