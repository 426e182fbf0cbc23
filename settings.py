"""Environment-driven configuration."""
from __future__ import annotations

import logging
import os


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logging.getLogger(__name__).warning("Ignoring non-numeric %s=%r", name, raw)
        return default


WEIGHT_CEILING_G = int(_env_float("BOXPLAN_WEIGHT_CEILING_G", 10_000))
ESTIMATE_DEBOUNCE_MS = _env_float("BOXPLAN_ESTIMATE_DEBOUNCE_MS", 300)
INSURANCE_GST_PCT = _env_float("BOXPLAN_INSURANCE_GST_PCT", 18.0)
LOG_LEVEL = (os.getenv("BOXPLAN_LOG_LEVEL") or "INFO").strip().upper()


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=getattr(logging, level or LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
