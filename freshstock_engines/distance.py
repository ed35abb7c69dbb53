"""
Module: freshstock_engines.distance
Responsibility:
    Local distance heuristic between branches and delivery date estimate.
    No routing or geocoding.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Same city < same province < configured province pair / default.
    - Province pair lookups are symmetric and case-insensitive.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Mapping

from freshstock_kernel.domain.catalog import Branch
from freshstock_kernel.domain.transfer import TransferPriority

BASE_DELIVERY_DAYS: dict[TransferPriority, int] = {
    TransferPriority.EMERGENCY: 1,
    TransferPriority.HIGH: 2,
    TransferPriority.NORMAL: 3,
    TransferPriority.LOW: 5,
}


def _pair(a: str, b: str) -> frozenset[str]:
    return frozenset((a.strip().lower(), b.strip().lower()))


@dataclass(frozen=True)
class DistanceTable:
    """Heuristic distances in kilometres."""
    same_city_km: Decimal = Decimal("10")
    same_province_km: Decimal = Decimal("25")
    default_km: Decimal = Decimal("200")
    province_pairs: Mapping[frozenset[str], Decimal] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        same_city_km: Decimal = Decimal("10"),
        same_province_km: Decimal = Decimal("25"),
        default_km: Decimal = Decimal("200"),
        overrides: Mapping[tuple[str, str], Decimal] | None = None,
    ) -> DistanceTable:
        pairs = {_pair(a, b): Decimal(km) for (a, b), km in (overrides or {}).items()}
        return cls(same_city_km, same_province_km, default_km, pairs)

    def distance_km(self, source: Branch, destination: Branch) -> Decimal:
        src_city, dst_city = source.city.strip().lower(), destination.city.strip().lower()
        src_prov = source.province.strip().lower()
        dst_prov = destination.province.strip().lower()
        if src_city and src_city == dst_city:
            return self.same_city_km
        if src_prov and src_prov == dst_prov:
            return self.same_province_km
        return self.province_pairs.get(_pair(src_prov, dst_prov), self.default_km)


def estimate_delivery_date(
    distance_km: Decimal,
    priority: TransferPriority,
    from_date: date,
) -> date:
    """Base days by priority, plus one day above 100 km and one more above 200 km."""
    days = BASE_DELIVERY_DAYS[priority]
    if distance_km > 100:
        days += 1
    if distance_km > 200:
        days += 1
    return from_date + timedelta(days=days)
