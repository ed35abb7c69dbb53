"""
Module: freshstock_engines.fifo
Responsibility:
    Freshness-first ordering of batches and allocation of a requested
    quantity across them.  The allocation is a plan only; committing it
    is the allocator service's job.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import freshstock_kernel domain types and exceptions.

Invariants enforced:
    - Ordering: batches with an expiry date come first by ascending
      expiry; batches without one come after all of them; ties break on
      received date, then batch id.
    - sum(line.quantity) + shortage == requested_quantity.
    - No line takes more than its batch's current stock.

Failure modes:
    - ValidationError for requested_quantity <= 0.
    - A shortage is reported in the plan, never raised.

Usage:
    from freshstock_engines.fifo import allocate, fifo_sort

    plan = allocate(batches=sellable, requested_quantity=12)
    plan.lines      # ((b1.id, 5), (b2.id, 7)) as AllocationLine objects
    plan.shortage   # 0
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, Sequence
from uuid import UUID

from freshstock_engines.tracer import traced_engine
from freshstock_kernel.domain.batch import ProductBatch
from freshstock_kernel.exceptions import ValidationError
from freshstock_kernel.logging_config import get_logger

logger = get_logger("engines.fifo")


@dataclass(frozen=True)
class AllocationLine:
    """Units to take from one batch."""
    batch_id: UUID
    batch_number: str
    quantity: int
    cost_per_unit: Decimal
    expiry_date: date | None

    @property
    def value(self) -> Decimal:
        return self.quantity * self.cost_per_unit


@dataclass(frozen=True)
class AllocationPlan:
    """
    Ordered allocation of a requested quantity.

    Contract:
        Frozen.  ``lines`` are in consumption order.  ``shortage`` is the
        part of the request no batch could cover.
    """
    requested_quantity: int
    lines: tuple[AllocationLine, ...]
    shortage: int
    product_id: UUID | None = None
    branch_id: UUID | None = None

    @property
    def allocated_quantity(self) -> int:
        return sum(line.quantity for line in self.lines)

    @property
    def is_complete(self) -> bool:
        return self.shortage == 0

    @property
    def total_cost(self) -> Decimal:
        return sum((line.value for line in self.lines), Decimal("0"))

    @property
    def average_unit_cost(self) -> Decimal | None:
        """Weighted unit cost of the allocated units; None when nothing was allocated."""
        allocated = self.allocated_quantity
        if allocated == 0:
            return None
        return self.total_cost / allocated

    def as_pairs(self) -> list[tuple[UUID, int]]:
        return [(line.batch_id, line.quantity) for line in self.lines]


def fifo_key(batch: ProductBatch) -> tuple:
    """Sort key implementing freshness-first order."""
    has_no_expiry = batch.expiry_date is None
    return (
        has_no_expiry,
        batch.expiry_date or date.max,
        batch.received_date,
        str(batch.id),
    )


def fifo_sort(batches: Iterable[ProductBatch]) -> list[ProductBatch]:
    return sorted(batches, key=fifo_key)


@traced_engine("fifo", "1.0", log_fields=("batches", "requested_quantity", "cap"))
def allocate(
    batches: Sequence[ProductBatch],
    requested_quantity: int,
    cap: int | None = None,
) -> AllocationPlan:
    """
    Walk ``batches`` in FIFO order taking min(stock, remaining) from each.

    Args:
        batches: Candidate batches.  Callers pass sellable batches only.
        requested_quantity: Units wanted; must be positive.
        cap: Upper bound on the total taken (e.g. unreserved stock).
            None means no bound beyond the batches' stock.

    Returns:
        AllocationPlan.  Never raises for shortage.
    """
    if requested_quantity <= 0:
        raise ValidationError(
            f"requested_quantity must be positive (got {requested_quantity})",
            field="requested_quantity",
        )

    allowed = requested_quantity if cap is None else max(0, min(cap, requested_quantity))
    remaining = allowed
    lines: list[AllocationLine] = []
    product_id = branch_id = None

    for batch in fifo_sort(batches):
        product_id = product_id or batch.product_id
        branch_id = branch_id or batch.branch_id
        if remaining == 0:
            break
        if batch.current_stock <= 0:
            continue
        take = min(batch.current_stock, remaining)
        lines.append(
            AllocationLine(
                batch_id=batch.id,
                batch_number=batch.batch_number,
                quantity=take,
                cost_per_unit=batch.cost_per_unit,
                expiry_date=batch.expiry_date,
            )
        )
        remaining -= take

    allocated = allowed - remaining
    return AllocationPlan(
        requested_quantity=requested_quantity,
        lines=tuple(lines),
        shortage=requested_quantity - allocated,
        product_id=product_id,
        branch_id=branch_id,
    )
