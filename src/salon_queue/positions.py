"""Position engine.

Pure helpers, no storage access:
    position            = index in joined_at order among waiting entries
    estimated wait      = position * mean duration of the entry's services
    price after offers  = subtotal with each percentage discount applied in turn
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence

from .schemas import QueueEntryRecord


def recompute(waiting_entries: Iterable[QueueEntryRecord]) -> dict[str, int]:
    """Assign 0-based positions to waiting entries in joined_at order.

    Entries are expected to arrive oldest first (the store returns them in
    insertion order). Equal timestamps keep their incoming order.

    Returns:
        Mapping entry_id -> position
    """
    ordered = sorted(waiting_entries, key=lambda e: e.joined_at)
    return {entry.entry_id: index for index, entry in enumerate(ordered)}


def mean_service_duration(durations: Sequence[float | None], default_minutes: float) -> float:
    """Mean duration in minutes, unknown durations counting as the default.

    Args:
        durations: per-service durations, None when unknown
        default_minutes: salon-level default (> 0)

    Returns:
        Non-negative float; the default when no durations are given.
    """
    if default_minutes < 0:
        raise ValueError("default_minutes must be >= 0")
    if not durations:
        return float(default_minutes)
    known = [default_minutes if d is None else max(float(d), 0.0) for d in durations]
    return sum(known) / len(known)


def estimate_wait(position: int, durations: Sequence[float | None], default_minutes: float) -> int:
    """Estimated wait in whole minutes for an entry at ``position``.

    Monotonically non-decreasing in position for a fixed service mix.
    """
    if position < 0:
        raise ValueError("position must be >= 0")
    minutes = position * mean_service_duration(durations, default_minutes)
    return max(0, int(round(minutes)))


def price_after_offers(prices: Sequence[float], discounts: Sequence[float]) -> float:
    """Total price of the selected services after percentage discounts.

    Args:
        prices: service prices (>= 0)
        discounts: percentages (0-100), applied one after another

    Returns:
        Price rounded to cents, never negative.
    """
    if any(p < 0 for p in prices):
        raise ValueError("prices must be >= 0")
    total = float(sum(prices))
    for discount in discounts:
        if not 0 <= discount <= 100:
            raise ValueError("discount must be between 0 and 100")
        total *= 1 - discount / 100
    return max(0.0, round(total, 2))


def loyalty_points_for(total_price: float, divisor: int) -> int:
    """Points earned for a completed visit: floor(total_price / divisor)."""
    if divisor <= 0:
        raise ValueError("divisor must be > 0")
    return max(0, math.floor(total_price / divisor))
