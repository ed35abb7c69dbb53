"""
Module: freshstock_engines.expiry
Responsibility:
    Classify batches by days until expiry relative to an explicit date.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The caller supplies
    ``as_of``; this module never reads the clock.

Invariants enforced:
    - expired: days <= 0; urgent: 1..urgent_days; warning:
      urgent_days+1..warning_days; fresh: > warning_days.
    - A batch without an expiry date is ``no_expiry`` regardless of date.

Failure modes:
    - ValueError when urgent_days < 1 or warning_days < urgent_days.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable

from freshstock_engines.tracer import traced_engine
from freshstock_kernel.domain.batch import ExpiryStatus, ProductBatch

DEFAULT_URGENT_DAYS = 3
DEFAULT_WARNING_DAYS = 7


@dataclass(frozen=True)
class ExpiryThresholds:
    """Day boundaries of the urgent and warning bands."""
    urgent_days: int = DEFAULT_URGENT_DAYS
    warning_days: int = DEFAULT_WARNING_DAYS

    def __post_init__(self) -> None:
        if self.urgent_days < 1:
            raise ValueError("urgent_days must be at least 1")
        if self.warning_days < self.urgent_days:
            raise ValueError("warning_days cannot be less than urgent_days")


@dataclass(frozen=True)
class ClassifiedBatch:
    """A batch with its status on a given day."""
    batch: ProductBatch
    status: ExpiryStatus
    days_until_expiry: int | None

    @property
    def value(self) -> Decimal:
        return self.batch.stock_value


def classify_days(
    days_until_expiry: int | None,
    thresholds: ExpiryThresholds = ExpiryThresholds(),
) -> ExpiryStatus:
    """Map a day count to its expiry band."""
    if days_until_expiry is None:
        return ExpiryStatus.NO_EXPIRY
    if days_until_expiry <= 0:
        return ExpiryStatus.EXPIRED
    if days_until_expiry <= thresholds.urgent_days:
        return ExpiryStatus.URGENT
    if days_until_expiry <= thresholds.warning_days:
        return ExpiryStatus.WARNING
    return ExpiryStatus.FRESH


def classify_batch(
    batch: ProductBatch,
    as_of: date,
    thresholds: ExpiryThresholds = ExpiryThresholds(),
) -> ClassifiedBatch:
    days = batch.days_until_expiry(as_of)
    return ClassifiedBatch(
        batch=batch,
        status=classify_days(days, thresholds),
        days_until_expiry=days,
    )


@traced_engine("expiry_classification", "1.0", log_fields=("batches", "as_of"))
def classify_batches(
    batches: Iterable[ProductBatch],
    as_of: date,
    thresholds: ExpiryThresholds = ExpiryThresholds(),
) -> tuple[ClassifiedBatch, ...]:
    """Classify every batch; order follows the input."""
    return tuple(classify_batch(b, as_of, thresholds) for b in batches)
