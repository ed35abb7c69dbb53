"""
Inventory mutation records (``freshstock_kernel.domain.mutation``).

Every stock change of a batch is recorded as exactly one
``InventoryMutation``.  Records are write-once; corrections are new
``adjustment`` records, never edits.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


class MutationType(str, Enum):
    """Why a batch's stock changed."""
    SALE = "sale"
    TRANSFER_OUT = "transfer_out"
    TRANSFER_IN = "transfer_in"
    DISPOSAL = "disposal"
    ADJUSTMENT = "adjustment"


@dataclass(frozen=True)
class InventoryMutation:
    """
    Append-only audit row for one stock change.

    ``quantity`` is the signed delta; ``stock_after`` is the resulting level
    and always equals ``stock_before + quantity``.
    """
    id: UUID
    batch_id: UUID
    product_id: UUID
    branch_id: UUID
    mutation_type: MutationType
    quantity: int
    stock_before: int
    stock_after: int
    unit_cost: Decimal
    actor_id: UUID
    occurred_at: datetime
    reference: str | None = None
    notes: str | None = None

    def __post_init__(self):
        if self.stock_before + self.quantity != self.stock_after:
            raise ValueError(
                f"stock_after {self.stock_after} != "
                f"stock_before {self.stock_before} + quantity {self.quantity}"
            )

    @property
    def value(self) -> Decimal:
        """Signed cost value of the movement."""
        return self.quantity * self.unit_cost
