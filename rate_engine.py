"""Parcel cost estimation: rate cards, accessorials and debounced re-estimates."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Protocol

from box_registry import BoxRegistry
from errors import EstimateUnavailable, ValidationError
from settings import ESTIMATE_DEBOUNCE_MS

logger = logging.getLogger(__name__)

PRIORITIES = ("LOW", "MEDIUM", "HIGH")
MIN_ESTIMATE_WEIGHT_KG = 0.1


@dataclass
class EstimateRequest:
    box_count: int
    total_weight_kg: float
    declared_value: float
    priority: str = "MEDIUM"
    ship_date: date = field(default_factory=date.today)

    def __post_init__(self) -> None:
        self.priority = (self.priority or "MEDIUM").strip().upper()
        if self.priority not in PRIORITIES:
            raise ValidationError(f"priority must be one of {', '.join(PRIORITIES)}")
        if self.box_count < 1:
            raise ValidationError("box_count must be >= 1")
        if self.total_weight_kg < 0 or self.declared_value < 0:
            raise ValidationError("total_weight_kg and declared_value must be >= 0")

    @property
    def service_level(self) -> str:
        return "EXPRESS" if self.priority == "HIGH" else "STANDARD"


class CostEstimator(Protocol):
    def estimate(self, request: EstimateRequest) -> float:
        """Return a monetary estimate or raise EstimateUnavailable."""
        ...


def estimate_request_for(registry: BoxRegistry, priority: str = "MEDIUM", ship_date: date | None = None) -> EstimateRequest:
    return EstimateRequest(
        box_count=max(len(registry), 1),
        total_weight_kg=max(registry.total_weight_g / 1000, MIN_ESTIMATE_WEIGHT_KG),
        declared_value=registry.total_value,
        priority=priority,
        ship_date=ship_date or date.today(),
    )


def _is_date_valid(ship_date: date, effective_from: str | None, effective_to: str | None) -> bool:
    if effective_from and ship_date < date.fromisoformat(effective_from):
        return False
    if effective_to:
        return ship_date <= date.fromisoformat(effective_to)
    return True


def _charge_flag_applies(flag: str, request: EstimateRequest) -> bool:
    flag = (flag or "ALWAYS").strip().upper()
    if flag == "ALWAYS":
        return True
    if flag == "HIGH_ONLY":
        return request.priority == "HIGH"
    if flag == "LOW_ONLY":
        return request.priority == "LOW"
    return False


def _calc_charge(calc_method: str, amount: float, request: EstimateRequest, base_total: float) -> float:
    method = (calc_method or "FLAT").upper()
    if method == "FLAT":
        return amount
    if method == "PER_BOX":
        return amount * request.box_count
    if method == "PER_KG":
        return amount * request.total_weight_kg
    if method == "PERCENT_OF_BASE":
        return base_total * amount / 100
    if method == "PERCENT_OF_VALUE":
        return request.declared_value * amount / 100
    return 0.0


def _apply_min_max(value: float, min_amount: float | None, max_amount: float | None) -> float:
    if min_amount is not None:
        value = max(value, float(min_amount))
    if max_amount is not None:
        value = min(value, float(max_amount))
    return value


def _base_total(rate_card: dict, request: EstimateRequest) -> float:
    base_rate = float(rate_card.get("base_rate") or 0)
    uom = (rate_card.get("uom_pricing") or "FLAT").upper()
    if uom == "PER_BOX":
        total = base_rate * request.box_count
    elif uom == "PER_KG":
        total = base_rate * request.total_weight_kg
    else:
        total = base_rate
    min_charge = rate_card.get("min_charge")
    if min_charge is not None:
        total = max(total, float(min_charge))
    return total


def select_best_rate_card(rate_cards: list[dict], request: EstimateRequest) -> dict | None:
    candidates = []
    for row in rate_cards:
        if not row.get("is_active"):
            continue
        if (row.get("service_level") or "STANDARD").upper() != request.service_level:
            continue
        if not _is_date_valid(request.ship_date, row.get("effective_from"), row.get("effective_to")):
            continue
        candidates.append(row)

    if not candidates:
        return None

    return max(
        candidates,
        key=lambda r: (
            int(r.get("priority") or 0),
            date.fromisoformat(r["effective_from"]) if r.get("effective_from") else date.min,
        ),
    )


def compute_estimate(rate_card: dict, charges: list[dict], request: EstimateRequest) -> dict:
    base_total = _base_total(rate_card, request)
    items = [
        {
            "type": "BASE",
            "code": "BASE",
            "name": "Base freight",
            "amount": round(base_total, 2),
        }
    ]

    charges_total = 0.0
    for charge in charges:
        if int(charge.get("rate_card_id") or 0) != int(rate_card["id"]):
            continue
        if not _is_date_valid(request.ship_date, charge.get("effective_from"), charge.get("effective_to")):
            continue
        if not _charge_flag_applies(charge.get("applies_when") or "ALWAYS", request):
            continue

        raw = _calc_charge(charge.get("calc_method") or "FLAT", float(charge.get("amount") or 0), request, base_total)
        bounded = _apply_min_max(raw, charge.get("min_amount"), charge.get("max_amount"))
        charges_total += bounded
        items.append(
            {
                "type": "ACCESSORIAL",
                "code": charge.get("charge_code"),
                "name": charge.get("charge_name"),
                "amount": round(bounded, 2),
            }
        )

    return {
        "currency": rate_card.get("currency"),
        "service_level": request.service_level,
        "base_total": round(base_total, 2),
        "charges_total": round(charges_total, 2),
        "grand_total": round(base_total + charges_total, 2),
        "items": items,
    }


class RateCardEstimator:
    """CostEstimator backed by locally stored rate cards and charges."""

    def __init__(self, rate_cards: list[dict], charges: list[dict] | None = None) -> None:
        self.rate_cards = list(rate_cards)
        self.charges = list(charges or [])

    def breakdown(self, request: EstimateRequest) -> dict:
        card = select_best_rate_card(self.rate_cards, request)
        if card is None:
            raise EstimateUnavailable(f"No active {request.service_level} rate card for {request.ship_date.isoformat()}")
        return compute_estimate(card, self.charges, request)

    def estimate(self, request: EstimateRequest) -> float:
        return float(self.breakdown(request)["grand_total"])


@dataclass(frozen=True)
class EstimateResult:
    seq: int
    amount: float
    stale: bool = False


class EstimateTracker:
    """Debounced, latest-request-wins wrapper around a CostEstimator.

    Triggers inside the debounce window collapse into one pending request.
    Every issued request gets a sequence number; a response is kept only when
    its number is the latest issued, so late answers to superseded requests
    are dropped. There is no cancellation and no timeout on the estimator.
    """

    def __init__(
        self,
        estimator: CostEstimator,
        debounce_ms: float = ESTIMATE_DEBOUNCE_MS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.estimator = estimator
        self.debounce_s = max(0.0, float(debounce_ms)) / 1000.0
        self.clock = clock
        self._seq = 0
        self._latest_issued = 0
        self._pending: EstimateRequest | None = None
        self._last_request: EstimateRequest | None = None
        self._deadline = 0.0
        self.latest: EstimateResult | None = None

    @property
    def pending(self) -> bool:
        return self._pending is not None

    @property
    def latest_issued(self) -> int:
        return self._latest_issued

    def trigger(self, request: EstimateRequest) -> int:
        self._seq += 1
        self._pending = request
        self._last_request = request
        self._deadline = self.clock() + self.debounce_s
        return self._seq

    def trigger_if_changed(self, request: EstimateRequest) -> int | None:
        """Trigger only when request differs from the last one triggered."""
        if request == self._last_request:
            return None
        return self.trigger(request)

    def due(self) -> bool:
        return self._pending is not None and self.clock() >= self._deadline

    def issue(self) -> tuple[int, EstimateRequest] | None:
        """Hand out the pending request for a caller that resolves it elsewhere."""
        if self._pending is None:
            return None
        request, self._pending = self._pending, None
        self._latest_issued = self._seq
        return self._seq, request

    def accept(self, seq: int, amount: float, stale: bool = False) -> bool:
        if seq != self._latest_issued:
            logger.debug("Discarding estimate #%d, latest issued is #%d", seq, self._latest_issued)
            return False
        self.latest = EstimateResult(seq=seq, amount=round(float(amount), 2), stale=stale)
        return True

    def flush(self, force: bool = False) -> EstimateResult | None:
        if not (force and self.pending) and not self.due():
            return None
        seq, request = self.issue()
        try:
            amount = self.estimator.estimate(request)
        except EstimateUnavailable as exc:
            logger.warning("Cost estimate #%d unavailable: %s", seq, exc)
            self.accept(seq, 0.0, stale=True)
        except Exception:
            # the estimator is external; any failure marks the estimate stale
            logger.warning("Cost estimate #%d failed", seq, exc_info=True)
            self.accept(seq, 0.0, stale=True)
        else:
            self.accept(seq, amount)
        return self.latest
