"""
Transfer value objects (``freshstock_kernel.domain.transfer``).

Responsibility
--------------
Frozen records for inter-branch transfers: the transfer itself, its
shipment lines, the append-only status history, stock reservations,
the approver identity, and the derived ``TransferRecommendation``.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* ``quantity > 0`` and source != destination.
* ``status`` is one of ``TRANSFER_WORKFLOW.states``.
* Transfer numbers follow ``<PREFIX>-YYYYMMDD-NNNN``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


class TransferStatus(str, Enum):
    REQUESTED = "requested"
    APPROVED = "approved"
    SHIPPED = "shipped"
    RECEIVED = "received"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class TransferType(str, Enum):
    REGULAR = "regular"
    EMERGENCY = "emergency"
    REBALANCING = "rebalancing"
    EXPIRY_PREVENTION = "expiry_prevention"


class TransferPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    EMERGENCY = "emergency"


class RecommendationStrategy(str, Enum):
    EXPIRY = "expiry"
    IMBALANCE = "imbalance"


@dataclass(frozen=True)
class ShipmentLine:
    """Stock taken from one source batch when a transfer ships."""
    source_batch_id: UUID
    batch_number: str
    quantity: int
    cost_per_unit: Decimal
    expiry_date: date | None = None

    @property
    def value(self) -> Decimal:
        return self.quantity * self.cost_per_unit


@dataclass(frozen=True)
class InventoryTransfer:
    """
    A request to move stock of one product between two branches.

    Contract:
        Immutable snapshot.  Only the transfer workflow service produces
        new versions, one per transition.
    """
    id: UUID
    transfer_number: str
    source_branch_id: UUID
    destination_branch_id: UUID
    product_id: UUID
    quantity: int
    status: TransferStatus
    requested_by: UUID
    requested_at: datetime
    transfer_type: TransferType = TransferType.REGULAR
    priority: TransferPriority = TransferPriority.NORMAL
    request_reason: str | None = None
    notes: str | None = None
    estimated_cost: Decimal = Decimal("0")
    estimated_value: Decimal = Decimal("0")
    distance_km: Decimal = Decimal("0")
    estimated_delivery_date: date | None = None
    approved_by: UUID | None = None
    approved_at: datetime | None = None
    shipped_by: UUID | None = None
    shipped_at: datetime | None = None
    received_by: UUID | None = None
    received_at: datetime | None = None
    cancelled_by: UUID | None = None
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None
    rejected_by: UUID | None = None
    rejected_at: datetime | None = None
    rejection_reason: str | None = None
    shipment_lines: tuple[ShipmentLine, ...] = ()
    received_batch_ids: tuple[UUID, ...] = ()

    def __post_init__(self):
        if self.quantity <= 0:
            raise ValueError(f"quantity must be positive (got {self.quantity})")
        if self.source_branch_id == self.destination_branch_id:
            raise ValueError("source and destination branch must differ")

    @property
    def shipped_quantity(self) -> int:
        return sum(line.quantity for line in self.shipment_lines)

    @property
    def shipped_value(self) -> Decimal:
        return sum((line.value for line in self.shipment_lines), Decimal("0"))


@dataclass(frozen=True)
class TransferStatusChange:
    """Append-only history row.  ``from_status`` is None for creation."""
    transfer_id: UUID
    from_status: TransferStatus | None
    to_status: TransferStatus
    actor_id: UUID
    changed_at: datetime
    reason: str | None = None


@dataclass(frozen=True)
class Reservation:
    """Units of a product at a branch held for an approved transfer."""
    transfer_id: UUID
    product_id: UUID
    branch_id: UUID
    quantity: int


@dataclass(frozen=True)
class Approver:
    """
    Identity and authority of the person approving a transfer.

    ``branch_ids`` scopes branch-level roles; elevated roles ignore it.
    """
    actor_id: UUID
    role: str
    branch_ids: frozenset[UUID] = field(default_factory=frozenset)


@dataclass(frozen=True)
class TransferRecommendation:
    """
    A suggested movement of stock.  Derived on demand, never persisted.

    ``source_batch_id``, ``batch_number`` and ``days_until_expiry`` are set
    for the expiry strategy only.
    """
    strategy: RecommendationStrategy
    source_branch_id: UUID
    target_branch_id: UUID
    product_id: UUID
    recommended_quantity: int
    transfer_cost: Decimal
    potential_revenue: Decimal
    potential_savings: Decimal
    urgency_score: int
    recommended_date: date
    reasons: tuple[str, ...] = ()
    source_batch_id: UUID | None = None
    batch_number: str | None = None
    days_until_expiry: int | None = None

    def __post_init__(self):
        if not 1 <= self.urgency_score <= 10:
            raise ValueError(f"urgency_score must be in 1..10 (got {self.urgency_score})")
        if self.recommended_quantity <= 0:
            raise ValueError(
                f"recommended_quantity must be positive (got {self.recommended_quantity})"
            )


def format_transfer_number(prefix: str, day: date, sequence: int) -> str:
    """``<prefix>-YYYYMMDD-NNNN`` for the ``sequence``-th transfer of the day."""
    if sequence < 1:
        raise ValueError(f"sequence must be >= 1 (got {sequence})")
    return f"{prefix}-{day:%Y%m%d}-{sequence:04d}"
