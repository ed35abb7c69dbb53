"""
Module: freshstock_engines.demand
Responsibility:
    Historical demand averages and the optimal-stock heuristics used by
    the imbalance strategy.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Missing days count as zero sales; nothing is extrapolated.
    - ``has_data`` is False when the window holds no sales rows at all.
    - Decimal-only arithmetic.

Failure modes:
    - ValueError on a non-positive window or negative inputs.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import ROUND_CEILING, Decimal
from enum import Enum
from typing import Mapping

from freshstock_engines.tracer import traced_engine


class OptimalStockMethod(str, Enum):
    MINIMUM_MULTIPLE = "minimum_multiple"
    VELOCITY = "velocity"


@dataclass(frozen=True)
class DemandEstimate:
    """Trailing-window sales average for one product at one branch."""
    window_days: int
    total_units: int
    days_with_sales: int
    has_data: bool

    @property
    def average_daily_units(self) -> Decimal:
        if self.window_days <= 0:
            return Decimal("0")
        return Decimal(self.total_units) / Decimal(self.window_days)


@traced_engine("demand_estimate", "1.0", log_fields=("window_days", "until"))
def estimate_demand(
    daily_units: Mapping[date, int],
    window_days: int,
    until: date,
) -> DemandEstimate:
    """
    Average units sold per day over the ``window_days`` days ending the day
    before ``until``.

    Rows outside the window are ignored.
    """
    if window_days <= 0:
        raise ValueError(f"window_days must be positive, got {window_days}")
    since = until - timedelta(days=window_days)
    in_window = {
        day: units for day, units in daily_units.items() if since <= day < until
    }
    total = sum(in_window.values())
    return DemandEstimate(
        window_days=window_days,
        total_units=total,
        days_with_sales=sum(1 for units in in_window.values() if units > 0),
        has_data=bool(in_window),
    )


def calculate_reorder_point(
    avg_daily_usage: Decimal,
    lead_time_days: int,
    safety_stock: Decimal,
) -> Decimal:
    """
    ``ROP = (avg_daily_usage * lead_time_days) + safety_stock``

    Raises:
        ValueError: If inputs are negative.
    """
    if avg_daily_usage < 0:
        raise ValueError(f"avg_daily_usage must be non-negative, got {avg_daily_usage}")
    if lead_time_days < 0:
        raise ValueError(f"lead_time_days must be non-negative, got {lead_time_days}")
    if safety_stock < 0:
        raise ValueError(f"safety_stock must be non-negative, got {safety_stock}")

    return (avg_daily_usage * lead_time_days) + safety_stock


def calculate_optimal_stock(
    minimum_stock: int,
    method: OptimalStockMethod = OptimalStockMethod.MINIMUM_MULTIPLE,
    multiplier: Decimal = Decimal("2"),
    demand: DemandEstimate | None = None,
    lead_time_days: int = 7,
) -> int:
    """
    Target stock level for a product at a branch.

    ``minimum_multiple``: ``multiplier * minimum_stock``.
    ``velocity``: reorder point with minimum stock as safety stock, used
    only when sales data exists; otherwise falls back to the multiple.
    Fractional results round up to whole units.
    """
    if minimum_stock < 0:
        raise ValueError(f"minimum_stock must be non-negative, got {minimum_stock}")

    if method is OptimalStockMethod.VELOCITY and demand is not None and demand.has_data:
        target = calculate_reorder_point(
            demand.average_daily_units, lead_time_days, Decimal(minimum_stock),
        )
    else:
        target = multiplier * minimum_stock
    return int(target.to_integral_value(rounding=ROUND_CEILING))
