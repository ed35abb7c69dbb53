"""
Module: freshstock_kernel.models.transfer
Responsibility: ORM persistence for inventory transfers and their status
    history.
Architecture position: Kernel > Models.

Invariants enforced:
    - UNIQUE(transfer_number).
    - CHECK quantity > 0 and source_branch_id <> destination_branch_id.
    - Status values limited to the transfer workflow states.
    - Status history is append-only (ORM listeners reject UPDATE/DELETE).

Failure modes:
    - IntegrityError on duplicate transfer number.
    - ImmutabilityViolationError on history modification.

Audit relevance:
    Each transfer row carries actor and timestamp per transition; the
    history table records every status change with its reason.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column

from freshstock_kernel.db.base import Base, UUIDString, ensure_utc
from freshstock_kernel.domain.transfer import (
    InventoryTransfer,
    ShipmentLine,
    TransferPriority,
    TransferStatus,
    TransferStatusChange,
    TransferType,
)
from freshstock_kernel.exceptions import ImmutabilityViolationError


def _line_to_json(line: ShipmentLine) -> dict:
    return {
        "source_batch_id": str(line.source_batch_id),
        "batch_number": line.batch_number,
        "quantity": line.quantity,
        "cost_per_unit": str(line.cost_per_unit),
        "expiry_date": line.expiry_date.isoformat() if line.expiry_date else None,
    }


def _line_from_json(data: dict) -> ShipmentLine:
    expiry = data.get("expiry_date")
    return ShipmentLine(
        source_batch_id=UUID(data["source_batch_id"]),
        batch_number=data["batch_number"],
        quantity=int(data["quantity"]),
        cost_per_unit=Decimal(data["cost_per_unit"]),
        expiry_date=date.fromisoformat(expiry) if expiry else None,
    )


class InventoryTransferModel(Base):
    """Persistent inventory transfer."""

    __tablename__ = "inventory_transfers"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_inventory_transfers_quantity"),
        CheckConstraint(
            "source_branch_id <> destination_branch_id",
            name="ck_inventory_transfers_branches",
        ),
        CheckConstraint(
            "status IN ('requested', 'approved', 'shipped', 'received', "
            "'rejected', 'cancelled')",
            name="ck_inventory_transfers_valid_status",
        ),
        Index("idx_inventory_transfer_status", "status"),
        Index("idx_inventory_transfer_source", "source_branch_id", "status"),
        Index("idx_inventory_transfer_destination", "destination_branch_id", "status"),
    )

    transfer_number: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)
    source_branch_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    destination_branch_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    product_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    transfer_type: Mapped[str] = mapped_column(String(30), nullable=False)
    priority: Mapped[str] = mapped_column(String(20), nullable=False)
    request_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    estimated_cost: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    estimated_value: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    distance_km: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    estimated_delivery_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    requested_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    requested_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    approved_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    shipped_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    shipped_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    received_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    received_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejected_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    shipment_lines: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    received_batch_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    def __repr__(self) -> str:
        return f"<InventoryTransfer {self.transfer_number} status={self.status}>"

    def to_dto(self) -> InventoryTransfer:
        """Convert ORM model to frozen domain snapshot."""
        return InventoryTransfer(
            id=self.id,
            transfer_number=self.transfer_number,
            source_branch_id=self.source_branch_id,
            destination_branch_id=self.destination_branch_id,
            product_id=self.product_id,
            quantity=self.quantity,
            status=TransferStatus(self.status),
            transfer_type=TransferType(self.transfer_type),
            priority=TransferPriority(self.priority),
            request_reason=self.request_reason,
            notes=self.notes,
            estimated_cost=Decimal(self.estimated_cost),
            estimated_value=Decimal(self.estimated_value),
            distance_km=Decimal(self.distance_km),
            estimated_delivery_date=self.estimated_delivery_date,
            requested_by=self.requested_by,
            requested_at=ensure_utc(self.requested_at),
            approved_by=self.approved_by,
            approved_at=ensure_utc(self.approved_at),
            shipped_by=self.shipped_by,
            shipped_at=ensure_utc(self.shipped_at),
            received_by=self.received_by,
            received_at=ensure_utc(self.received_at),
            cancelled_by=self.cancelled_by,
            cancelled_at=ensure_utc(self.cancelled_at),
            cancellation_reason=self.cancellation_reason,
            rejected_by=self.rejected_by,
            rejected_at=ensure_utc(self.rejected_at),
            rejection_reason=self.rejection_reason,
            shipment_lines=tuple(_line_from_json(d) for d in self.shipment_lines or ()),
            received_batch_ids=tuple(UUID(b) for b in self.received_batch_ids or ()),
        )

    @classmethod
    def from_dto(cls, dto: InventoryTransfer) -> InventoryTransferModel:
        """Create ORM model from domain snapshot."""
        model = cls(id=dto.id)
        model.apply_dto(dto)
        return model

    def apply_dto(self, dto: InventoryTransfer) -> None:
        """Copy the state of ``dto`` onto this row."""
        self.transfer_number = dto.transfer_number
        self.source_branch_id = dto.source_branch_id
        self.destination_branch_id = dto.destination_branch_id
        self.product_id = dto.product_id
        self.quantity = dto.quantity
        self.status = dto.status.value
        self.transfer_type = dto.transfer_type.value
        self.priority = dto.priority.value
        self.request_reason = dto.request_reason
        self.notes = dto.notes
        self.estimated_cost = dto.estimated_cost
        self.estimated_value = dto.estimated_value
        self.distance_km = dto.distance_km
        self.estimated_delivery_date = dto.estimated_delivery_date
        self.requested_by = dto.requested_by
        self.requested_at = dto.requested_at
        self.approved_by = dto.approved_by
        self.approved_at = dto.approved_at
        self.shipped_by = dto.shipped_by
        self.shipped_at = dto.shipped_at
        self.received_by = dto.received_by
        self.received_at = dto.received_at
        self.cancelled_by = dto.cancelled_by
        self.cancelled_at = dto.cancelled_at
        self.cancellation_reason = dto.cancellation_reason
        self.rejected_by = dto.rejected_by
        self.rejected_at = dto.rejected_at
        self.rejection_reason = dto.rejection_reason
        self.shipment_lines = [_line_to_json(line) for line in dto.shipment_lines]
        self.received_batch_ids = [str(b) for b in dto.received_batch_ids]


class TransferStatusChangeModel(Base):
    """Persistent transfer status history row. Append-only."""

    __tablename__ = "transfer_status_history"

    __table_args__ = (
        Index("idx_transfer_status_history_transfer", "transfer_id", "sequence"),
    )

    transfer_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("inventory_transfers.id"), nullable=False,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    from_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    to_status: Mapped[str] = mapped_column(String(20), nullable=False)
    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    changed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<TransferStatusChange {self.transfer_id} "
            f"{self.from_status}->{self.to_status}>"
        )

    def to_dto(self) -> TransferStatusChange:
        return TransferStatusChange(
            transfer_id=self.transfer_id,
            from_status=TransferStatus(self.from_status) if self.from_status else None,
            to_status=TransferStatus(self.to_status),
            actor_id=self.actor_id,
            changed_at=ensure_utc(self.changed_at),
            reason=self.reason,
        )

    @classmethod
    def from_dto(cls, dto: TransferStatusChange, sequence: int) -> TransferStatusChangeModel:
        return cls(
            transfer_id=dto.transfer_id,
            sequence=sequence,
            from_status=dto.from_status.value if dto.from_status else None,
            to_status=dto.to_status.value,
            actor_id=dto.actor_id,
            changed_at=dto.changed_at,
            reason=dto.reason,
        )


@event.listens_for(TransferStatusChangeModel, "before_update")
def prevent_history_update(mapper, connection, target):
    """Prevent updates to transfer status history."""
    raise ImmutabilityViolationError(
        entity_type="TransferStatusChange",
        entity_id=str(target.id),
        reason="Transfer status history is append-only -- cannot modify",
    )


@event.listens_for(TransferStatusChangeModel, "before_delete")
def prevent_history_delete(mapper, connection, target):
    """Prevent deletion of transfer status history."""
    raise ImmutabilityViolationError(
        entity_type="TransferStatusChange",
        entity_id=str(target.id),
        reason="Transfer status history is append-only -- cannot delete",
    )
