"""
Batch value objects (``freshstock_kernel.domain.batch``).

Responsibility
--------------
Frozen ``ProductBatch`` snapshots, disposal methods, expiry status, and the
human-readable batch number format.  The Batch Ledger is the only component
that creates new snapshots; everyone else reads them.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* ``0 <= current_stock <= initial_stock`` and ``initial_stock > 0``.
* ``cost_per_unit >= 0``; it never changes after receipt.
* A disposed batch carries ``disposed_at`` and ``disposal_method``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

BATCH_NUMBER_PATTERN = re.compile(r"^BATCH-(\d{8})-(\d{3,})$")


class DisposalMethod(str, Enum):
    """How a written-off batch left the shelf."""
    RETURN_TO_SUPPLIER = "return_to_supplier"
    WASTE_DISPOSAL = "waste_disposal"
    DONATION = "donation"
    INTERNAL = "internal"
    RECALL = "recall"


class ExpiryStatus(str, Enum):
    """Freshness classification relative to a calendar day."""
    EXPIRED = "expired"
    URGENT = "urgent"
    WARNING = "warning"
    FRESH = "fresh"
    NO_EXPIRY = "no_expiry"


@dataclass(frozen=True)
class ProductBatch:
    """
    One receipt of a product at a branch.

    Contract:
        Immutable snapshot.  Stock changes produce a new snapshot through
        ``with_stock``; disposal produces one through ``as_disposed``.
    """
    id: UUID
    product_id: UUID
    branch_id: UUID
    batch_number: str
    initial_stock: int
    current_stock: int
    cost_per_unit: Decimal
    received_date: date
    expiry_date: date | None = None
    is_disposed: bool = False
    disposed_at: datetime | None = None
    disposed_by: UUID | None = None
    disposal_method: DisposalMethod | None = None
    disposed_quantity: int = 0
    supplier_name: str | None = None
    notes: str | None = None

    def __post_init__(self):
        if self.initial_stock <= 0:
            raise ValueError(f"initial_stock must be positive (got {self.initial_stock})")
        if not 0 <= self.current_stock <= self.initial_stock:
            raise ValueError(
                f"current_stock {self.current_stock} outside [0, {self.initial_stock}]"
            )
        if self.cost_per_unit < 0:
            raise ValueError(f"cost_per_unit cannot be negative (got {self.cost_per_unit})")

    def days_until_expiry(self, as_of: date) -> int | None:
        """Whole days from ``as_of`` to expiry; None without an expiry date."""
        if self.expiry_date is None:
            return None
        return (self.expiry_date - as_of).days

    def is_expired(self, as_of: date) -> bool:
        days = self.days_until_expiry(as_of)
        return days is not None and days <= 0

    def is_sellable(self, as_of: date) -> bool:
        """Not disposed and not expired on ``as_of``."""
        return not self.is_disposed and not self.is_expired(as_of)

    @property
    def stock_value(self) -> Decimal:
        return self.current_stock * self.cost_per_unit

    def with_stock(self, new_stock: int) -> ProductBatch:
        return replace(self, current_stock=new_stock)

    def as_disposed(
        self,
        disposed_at: datetime,
        disposed_by: UUID,
        method: DisposalMethod,
        notes: str | None = None,
    ) -> ProductBatch:
        return replace(
            self,
            is_disposed=True,
            disposed_at=disposed_at,
            disposed_by=disposed_by,
            disposal_method=method,
            current_stock=0,
            disposed_quantity=self.current_stock,
            notes=notes if notes is not None else self.notes,
        )

    def as_reopened(self) -> ProductBatch:
        """Clear the disposal and put the written-off units back on the shelf."""
        return replace(
            self,
            current_stock=self.current_stock + self.disposed_quantity,
            is_disposed=False,
            disposed_at=None,
            disposed_by=None,
            disposal_method=None,
            disposed_quantity=0,
        )


def format_batch_number(received_date: date, sequence: int) -> str:
    """``BATCH-YYYYMMDD-NNN`` for the ``sequence``-th batch of the day."""
    if sequence < 1:
        raise ValueError(f"sequence must be >= 1 (got {sequence})")
    return f"BATCH-{received_date:%Y%m%d}-{sequence:03d}"


def next_batch_number(received_date: date, existing: set[str] | frozenset[str]) -> str:
    """
    Next free batch number for ``received_date``.

    ``existing`` holds the numbers already used for the same product and
    branch.  The sequence continues after the highest one issued that day.
    """
    prefix = f"{received_date:%Y%m%d}"
    highest = 0
    for number in existing:
        match = BATCH_NUMBER_PATTERN.match(number)
        if match and match.group(1) == prefix:
            highest = max(highest, int(match.group(2)))
    return format_batch_number(received_date, highest + 1)


@dataclass(frozen=True)
class ExpiryMarker:
    """Last classification the expiry sweep recorded for a batch."""
    batch_id: UUID
    status: ExpiryStatus
    classified_on: date
