"""
Sales-history contract (``freshstock_kernel.domain.sales``).

The core only reads historical units sold per day.  Missing days mean zero
units; an empty mapping means no recorded sales at all.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date
from typing import Mapping, Protocol
from uuid import UUID


class SalesHistory(Protocol):
    """Historical daily units sold for a product at a branch."""

    def get_daily_units_sold(
        self,
        product_id: UUID,
        branch_id: UUID,
        since: date,
    ) -> Mapping[date, int]:
        """Return units sold per day for days on or after ``since``."""
        ...


class InMemorySalesHistory:
    """Dictionary-backed ``SalesHistory`` for embedding and tests."""

    def __init__(self) -> None:
        self._rows: dict[tuple[UUID, UUID], dict[date, int]] = defaultdict(dict)

    def record(self, product_id: UUID, branch_id: UUID, day: date, units: int) -> None:
        """Add ``units`` to the total for ``day``."""
        if units < 0:
            raise ValueError(f"units cannot be negative (got {units})")
        series = self._rows[(product_id, branch_id)]
        series[day] = series.get(day, 0) + units

    def get_daily_units_sold(
        self,
        product_id: UUID,
        branch_id: UUID,
        since: date,
    ) -> dict[date, int]:
        series = self._rows.get((product_id, branch_id), {})
        return {day: units for day, units in series.items() if day >= since}
