"""
Module: freshstock_kernel.models.mutation
Responsibility: ORM persistence for the append-only inventory mutation log.
Architecture position: Kernel > Models.

Invariants enforced:
    - Write-once: ORM listeners reject UPDATE and DELETE.
    - CHECK stock_after = stock_before + quantity.
    - UNIQUE(sequence): the position of the row in the ledger's log.

Failure modes:
    - ImmutabilityViolationError on any attempt to modify or delete a row.

Audit relevance:
    The mutation log explains every unit that entered or left a batch.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
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
from freshstock_kernel.domain.mutation import InventoryMutation, MutationType
from freshstock_kernel.exceptions import ImmutabilityViolationError


class InventoryMutationModel(Base):
    """Persistent mutation record. Append-only."""

    __tablename__ = "inventory_mutations"

    __table_args__ = (
        CheckConstraint(
            "stock_after = stock_before + quantity",
            name="ck_inventory_mutations_arithmetic",
        ),
        CheckConstraint(
            "mutation_type IN ('sale', 'transfer_out', 'transfer_in', "
            "'disposal', 'adjustment')",
            name="ck_inventory_mutations_type",
        ),
        Index("idx_inventory_mutation_batch", "batch_id", "occurred_at"),
        Index("idx_inventory_mutation_product_branch", "product_id", "branch_id"),
        Index("idx_inventory_mutation_reference", "reference"),
    )

    sequence: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)
    batch_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("product_batches.id"), nullable=False,
    )
    product_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    branch_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    mutation_type: Mapped[str] = mapped_column(String(20), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    stock_before: Mapped[int] = mapped_column(Integer, nullable=False)
    stock_after: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_cost: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<InventoryMutation {self.id} {self.mutation_type} "
            f"{self.quantity:+d} batch={self.batch_id}>"
        )

    def to_dto(self) -> InventoryMutation:
        """Convert ORM model to frozen domain record."""
        return InventoryMutation(
            id=self.id,
            batch_id=self.batch_id,
            product_id=self.product_id,
            branch_id=self.branch_id,
            mutation_type=MutationType(self.mutation_type),
            quantity=self.quantity,
            stock_before=self.stock_before,
            stock_after=self.stock_after,
            unit_cost=Decimal(self.unit_cost),
            actor_id=self.actor_id,
            occurred_at=ensure_utc(self.occurred_at),
            reference=self.reference,
            notes=self.notes,
        )

    @classmethod
    def from_dto(cls, dto: InventoryMutation, sequence: int) -> InventoryMutationModel:
        """Create ORM model from domain record at log position ``sequence``."""
        return cls(
            id=dto.id,
            sequence=sequence,
            batch_id=dto.batch_id,
            product_id=dto.product_id,
            branch_id=dto.branch_id,
            mutation_type=dto.mutation_type.value,
            quantity=dto.quantity,
            stock_before=dto.stock_before,
            stock_after=dto.stock_after,
            unit_cost=dto.unit_cost,
            actor_id=dto.actor_id,
            occurred_at=dto.occurred_at,
            reference=dto.reference,
            notes=dto.notes,
        )


@event.listens_for(InventoryMutationModel, "before_update")
def prevent_mutation_update(mapper, connection, target):
    """Prevent updates to inventory mutation records."""
    raise ImmutabilityViolationError(
        entity_type="InventoryMutation",
        entity_id=str(target.id),
        reason="Inventory mutations are append-only -- cannot modify",
    )


@event.listens_for(InventoryMutationModel, "before_delete")
def prevent_mutation_delete(mapper, connection, target):
    """Prevent deletion of inventory mutation records."""
    raise ImmutabilityViolationError(
        entity_type="InventoryMutation",
        entity_id=str(target.id),
        reason="Inventory mutations are append-only -- cannot delete",
    )
