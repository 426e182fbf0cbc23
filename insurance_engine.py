"""Insurance tier table lookup and premium math."""
from __future__ import annotations

from typing import Sequence

from errors import ValidationError
from models import (
    TIER_CARRIER_RISK,
    TIER_COMPREHENSIVE,
    TIER_DECLARED_VALUE,
    TIER_NONE,
    TIER_TYPES,
    InsuranceAssignment,
    InsuranceTier,
)
from settings import INSURANCE_GST_PCT


DEFAULT_TIER_TABLE: tuple[InsuranceTier, ...] = (
    InsuranceTier(TIER_NONE, 0.0, None, 5000.0, "No Insurance", "Basic carrier liability only"),
    InsuranceTier(TIER_CARRIER_RISK, 0.5, 5000.0, 25000.0, "Carrier Risk", "Standard carrier insurance"),
    InsuranceTier(TIER_DECLARED_VALUE, 1.0, 25000.0, 100000.0, "Declared Value", "Full declared value coverage"),
    InsuranceTier(TIER_COMPREHENSIVE, 2.0, 100000.0, None, "Comprehensive", "Theft, damage and loss"),
)


def _require_value(value: float) -> float:
    value = float(value)
    if value < 0:
        raise ValidationError(f"Declared value must be >= 0, got {value}")
    return value


def lowest_coverage_tier(tiers: Sequence[InsuranceTier]) -> InsuranceTier:
    if not tiers:
        raise ValidationError("Insurance tier table is empty")
    return min(tiers, key=lambda t: t.premium_rate_pct)


def tier_for_value(value: float, tiers: Sequence[InsuranceTier] = DEFAULT_TIER_TABLE) -> InsuranceTier:
    """Pick the first tier in table order whose inclusive range holds value.

    Adjacent default ranges share their end points, so first-match means a value
    exactly on a boundary (5000, 25000, 100000) gets the lower tier.
    """
    value = _require_value(value)
    for tier in tiers:
        if tier.contains(value):
            return tier
    return lowest_coverage_tier(tiers)


def tier_by_type(tier_type: str, tiers: Sequence[InsuranceTier] = DEFAULT_TIER_TABLE) -> InsuranceTier:
    key = (tier_type or "").strip().upper()
    for tier in tiers:
        if tier.tier_type == key:
            return tier
    raise ValidationError(f"Unknown insurance tier: {tier_type}")


def tier_available(tier: InsuranceTier, value: float) -> bool:
    return tier.contains(_require_value(value))


def premium_for(value: float, tier: InsuranceTier) -> float:
    return round(_require_value(value) * tier.premium_rate_pct / 100, 2)


def assign_insurance(value: float, tier: InsuranceTier, gst_pct: float = INSURANCE_GST_PCT) -> InsuranceAssignment:
    """Assignment for an explicitly chosen tier; GST is charged on the premium."""
    value = _require_value(value)
    premium = premium_for(value, tier)
    return InsuranceAssignment(
        tier_type=tier.tier_type,
        declared_value=round(value, 2),
        premium=premium,
        gst=round(premium * gst_pct / 100, 2),
    )


def recommend_insurance(
    value: float,
    tiers: Sequence[InsuranceTier] = DEFAULT_TIER_TABLE,
    gst_pct: float = INSURANCE_GST_PCT,
) -> InsuranceAssignment:
    return assign_insurance(value, tier_for_value(value, tiers), gst_pct)


def validate_tier_table(tiers: Sequence[InsuranceTier]) -> list[InsuranceTier]:
    """Check a tier table is usable: ordered, contiguous and non-negative."""
    tiers = list(tiers)
    if not tiers:
        raise ValidationError("Insurance tier table is empty")
    seen: set[str] = set()
    previous_max: float | None = None
    for i, tier in enumerate(tiers):
        if tier.tier_type not in TIER_TYPES:
            raise ValidationError(f"Unknown insurance tier type at position {i + 1}: {tier.tier_type}")
        if tier.tier_type in seen:
            raise ValidationError(f"Duplicate insurance tier: {tier.tier_type}")
        seen.add(tier.tier_type)
        if tier.premium_rate_pct < 0:
            raise ValidationError(f"{tier.tier_type}: premium_rate_pct must be >= 0")
        low = tier.min_value if tier.min_value is not None else 0.0
        if tier.max_value is not None and tier.max_value < low:
            raise ValidationError(f"{tier.tier_type}: max_value must be >= min_value")
        if i == 0 and low != 0:
            raise ValidationError(f"{tier.tier_type}: first tier must start at 0")
        if i > 0:
            if previous_max is None:
                raise ValidationError(f"{tier.tier_type}: follows an open-ended tier")
            if low != previous_max:
                raise ValidationError(f"{tier.tier_type}: min_value must equal previous max_value {previous_max}")
        previous_max = tier.max_value
    if previous_max is not None:
        raise ValidationError("Last insurance tier must be open-ended")
    return tiers
