"""
Module: freshstock_kernel.models.batch
Responsibility: ORM persistence for product batches.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain value objects (for to_dto/from_dto) only.

Invariants enforced:
    - UNIQUE(product_id, branch_id, batch_number).
    - CHECK 0 <= current_stock <= initial_stock.
    - CHECK cost_per_unit >= 0.

Failure modes:
    - IntegrityError on a duplicate batch number or a stock level outside
      [0, initial_stock].

Audit relevance:
    initial_stock and cost_per_unit are captured at receipt and never
    change; every stock change is explained by an inventory_mutations row.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from freshstock_kernel.db.base import TrackedBase, UUIDString, ensure_utc
from freshstock_kernel.domain.batch import DisposalMethod, ProductBatch


class ProductBatchModel(TrackedBase):
    """
    Persistent storage for one batch of a product at a branch.

    Guarantees:
        - (product_id, branch_id, expiry_date) index supports FIFO reads.
        - disposed rows keep disposed_quantity for value-lost reporting.
    """

    __tablename__ = "product_batches"

    __table_args__ = (
        UniqueConstraint(
            "product_id", "branch_id", "batch_number",
            name="uq_product_batches_number",
        ),
        CheckConstraint(
            "current_stock >= 0 AND current_stock <= initial_stock",
            name="ck_product_batches_stock_range",
        ),
        CheckConstraint("cost_per_unit >= 0", name="ck_product_batches_cost"),
        Index("idx_product_batch_fifo", "product_id", "branch_id", "expiry_date"),
        Index("idx_product_batch_expiry", "expiry_date", "is_disposed"),
    )

    product_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    branch_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    batch_number: Mapped[str] = mapped_column(String(50), nullable=False)

    initial_stock: Mapped[int] = mapped_column(Integer, nullable=False)
    current_stock: Mapped[int] = mapped_column(Integer, nullable=False)
    cost_per_unit: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    received_date: Mapped[date] = mapped_column(Date, nullable=False)
    expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    is_disposed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    disposed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    disposed_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    disposal_method: Mapped[str | None] = mapped_column(String(30), nullable=True)
    disposed_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    supplier_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<ProductBatch {self.batch_number}: "
            f"{self.current_stock}/{self.initial_stock} exp={self.expiry_date}>"
        )

    def to_dto(self) -> ProductBatch:
        """Convert ORM model to frozen domain snapshot."""
        return ProductBatch(
            id=self.id,
            product_id=self.product_id,
            branch_id=self.branch_id,
            batch_number=self.batch_number,
            initial_stock=self.initial_stock,
            current_stock=self.current_stock,
            cost_per_unit=Decimal(self.cost_per_unit),
            received_date=self.received_date,
            expiry_date=self.expiry_date,
            is_disposed=self.is_disposed,
            disposed_at=ensure_utc(self.disposed_at),
            disposed_by=self.disposed_by,
            disposal_method=(
                DisposalMethod(self.disposal_method) if self.disposal_method else None
            ),
            disposed_quantity=self.disposed_quantity,
            supplier_name=self.supplier_name,
            notes=self.notes,
        )

    @classmethod
    def from_dto(cls, dto: ProductBatch, created_by_id: UUID) -> ProductBatchModel:
        """Create ORM model from domain snapshot."""
        model = cls(id=dto.id, created_by_id=created_by_id)
        model.apply_dto(dto)
        return model

    def apply_dto(self, dto: ProductBatch, updated_by_id: UUID | None = None) -> None:
        """Copy the mutable state of ``dto`` onto this row."""
        self.product_id = dto.product_id
        self.branch_id = dto.branch_id
        self.batch_number = dto.batch_number
        self.initial_stock = dto.initial_stock
        self.current_stock = dto.current_stock
        self.cost_per_unit = dto.cost_per_unit
        self.received_date = dto.received_date
        self.expiry_date = dto.expiry_date
        self.is_disposed = dto.is_disposed
        self.disposed_at = dto.disposed_at
        self.disposed_by = dto.disposed_by
        self.disposal_method = dto.disposal_method.value if dto.disposal_method else None
        self.disposed_quantity = dto.disposed_quantity
        self.supplier_name = dto.supplier_name
        self.notes = dto.notes
        if updated_by_id is not None:
            self.updated_by_id = updated_by_id
