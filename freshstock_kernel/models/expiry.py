"""
Module: freshstock_kernel.models.expiry
Responsibility: ORM persistence for expiry sweep state: the per-batch
    classification marker and one row per completed sweep.
Architecture position: Kernel > Models.

Invariants enforced:
    - One marker per batch (UNIQUE batch_id).

Audit relevance:
    Markers decide which batches count as newly expired, so restoring them
    keeps value-lost reporting from double counting after a restart.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from freshstock_kernel.db.base import Base, UUIDString
from freshstock_kernel.domain.batch import ExpiryMarker, ExpiryStatus


class ExpiryMarkerModel(Base):
    """Last recorded expiry classification of a batch."""

    __tablename__ = "expiry_markers"

    batch_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("product_batches.id"), nullable=False, unique=True,
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    classified_on: Mapped[date] = mapped_column(Date, nullable=False)

    def __repr__(self) -> str:
        return f"<ExpiryMarker batch={self.batch_id} {self.status} on {self.classified_on}>"

    def to_dto(self) -> ExpiryMarker:
        return ExpiryMarker(
            batch_id=self.batch_id,
            status=ExpiryStatus(self.status),
            classified_on=self.classified_on,
        )

    @classmethod
    def from_dto(cls, dto: ExpiryMarker) -> ExpiryMarkerModel:
        return cls(
            batch_id=dto.batch_id,
            status=dto.status.value,
            classified_on=dto.classified_on,
        )


class ExpirySweepRunModel(Base):
    """Summary row for one completed expiry sweep."""

    __tablename__ = "expiry_sweep_runs"

    sweep_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    expired_count: Mapped[int] = mapped_column(Integer, nullable=False)
    urgent_count: Mapped[int] = mapped_column(Integer, nullable=False)
    warning_count: Mapped[int] = mapped_column(Integer, nullable=False)
    fresh_count: Mapped[int] = mapped_column(Integer, nullable=False)
    newly_expired_count: Mapped[int] = mapped_column(Integer, nullable=False)
    value_at_risk: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    value_lost: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    def __repr__(self) -> str:
        return f"<ExpirySweepRun {self.sweep_date} newly_expired={self.newly_expired_count}>"
