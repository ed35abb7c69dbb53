"""
freshstock_services.disposal_service -- Write-off of expired batches.

Responsibility:
    Dispose expired batches in bulk, undo a disposal, and list what is
    currently disposable.  Each batch is processed independently; one
    bad id does not stop the rest.

Architecture position:
    Services -- drives BatchLedger.mark_disposed / reopen_disposed and
    reports through NotificationDispatcher.

Invariants enforced:
    - Only expired, non-disposed batches can be disposed.
    - Disposal writes one ``disposal`` mutation of -remaining and stores
      the written-off quantity on the batch.
    - Disposing an already disposed batch changes nothing and is reported
      as a per-item ``BATCH_DISPOSED`` failure.
    - Undo restores exactly the written-off quantity with an
      ``adjustment`` mutation.

Failure modes:
    Per-item, carried in ``DisposalItemResult.error_code``:
    BATCH_NOT_FOUND, BATCH_DISPOSED, BATCH_NOT_EXPIRED, BATCH_NOT_DISPOSED.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from freshstock_kernel.domain.batch import DisposalMethod, ProductBatch
from freshstock_kernel.domain.clock import Clock
from freshstock_kernel.domain.notifications import NotificationKind
from freshstock_kernel.exceptions import (
    BatchDisposedError,
    BatchNotExpiredError,
    FreshstockError,
)
from freshstock_kernel.logging_config import LogContext, get_logger
from freshstock_services.batch_ledger import BatchLedger
from freshstock_services.notifier import NotificationDispatcher

logger = get_logger("services.disposal")


@dataclass(frozen=True)
class DisposalItemResult:
    batch_id: UUID
    success: bool
    quantity: int = 0
    value: Decimal = Decimal("0")
    error_code: str | None = None
    message: str | None = None


@dataclass(frozen=True)
class DisposalResult:
    """Outcome of a bulk disposal or undo."""
    items: tuple[DisposalItemResult, ...]

    @property
    def succeeded(self) -> tuple[DisposalItemResult, ...]:
        return tuple(i for i in self.items if i.success)

    @property
    def failed(self) -> tuple[DisposalItemResult, ...]:
        return tuple(i for i in self.items if not i.success)

    @property
    def total_quantity(self) -> int:
        return sum(i.quantity for i in self.succeeded)

    @property
    def value_lost(self) -> Decimal:
        return sum((i.value for i in self.succeeded), Decimal("0"))


def _failure(batch_id: UUID, exc: FreshstockError) -> DisposalItemResult:
    return DisposalItemResult(
        batch_id=batch_id, success=False, error_code=exc.code, message=str(exc),
    )


class DisposalManager:
    """
    Bulk disposal of expired stock.

    Contract:
        Receives the ledger, clock and dispatcher via constructor injection.
    Guarantees:
        - Every requested id yields exactly one item result, in input order.
        - At most one ``disposal_completed`` notification per call.
    """

    def __init__(
        self,
        ledger: BatchLedger,
        clock: Clock,
        notifier: NotificationDispatcher | None = None,
    ):
        self._ledger = ledger
        self._clock = clock
        self._notifier = notifier or NotificationDispatcher(None, clock)

    def dispose_batches(
        self,
        batch_ids: Iterable[UUID],
        disposed_by: UUID,
        method: DisposalMethod = DisposalMethod.WASTE_DISPOSAL,
        notes: str | None = None,
    ) -> DisposalResult:
        today = self._clock.today()
        items: list[DisposalItemResult] = []

        with LogContext.bind(actor_id=disposed_by):
            for batch_id in batch_ids:
                try:
                    items.append(self._dispose_one(batch_id, today, disposed_by, method, notes))
                except FreshstockError as exc:
                    logger.warning(
                        "batch_disposal_rejected",
                        extra={"batch_id": str(batch_id), "error_code": exc.code},
                    )
                    items.append(_failure(batch_id, exc))

        result = DisposalResult(items=tuple(items))
        if result.succeeded:
            self._notifier.emit(
                NotificationKind.DISPOSAL_COMPLETED,
                f"{len(result.succeeded)} expired batch(es) disposed",
                batch_ids=[str(i.batch_id) for i in result.succeeded],
                total_quantity=result.total_quantity,
                value_lost=str(result.value_lost),
                method=method.value,
            )

        logger.info(
            "disposal_completed",
            extra={
                "requested": len(items),
                "disposed": len(result.succeeded),
                "failed": len(result.failed),
                "total_quantity": result.total_quantity,
                "value_lost": str(result.value_lost),
            },
        )
        return result

    def _dispose_one(
        self,
        batch_id: UUID,
        today: date,
        disposed_by: UUID,
        method: DisposalMethod,
        notes: str | None,
    ) -> DisposalItemResult:
        batch = self._ledger.get_batch(batch_id)
        if batch.is_disposed:
            raise BatchDisposedError(batch.id, batch.batch_number, batch.disposed_at)
        if not batch.is_expired(today):
            raise BatchNotExpiredError(batch.id, batch.days_until_expiry(today))

        # Figures come from the snapshot taken under the batch lock.
        disposed = self._ledger.mark_disposed(batch_id, disposed_by, method, notes)
        return DisposalItemResult(
            batch_id=batch_id,
            success=True,
            quantity=disposed.disposed_quantity,
            value=disposed.disposed_quantity * disposed.cost_per_unit,
        )

    def undo_disposal(self, batch_ids: Iterable[UUID], undone_by: UUID) -> DisposalResult:
        """Reopen disposed batches and put the written-off units back."""
        items: list[DisposalItemResult] = []
        with LogContext.bind(actor_id=undone_by):
            for batch_id in batch_ids:
                try:
                    reopened = self._ledger.reopen_disposed(batch_id, undone_by)
                except FreshstockError as exc:
                    logger.warning(
                        "disposal_undo_rejected",
                        extra={"batch_id": str(batch_id), "error_code": exc.code},
                    )
                    items.append(_failure(batch_id, exc))
                    continue
                items.append(
                    DisposalItemResult(
                        batch_id=batch_id,
                        success=True,
                        # A disposed batch is frozen at 0, so everything now
                        # in stock is the restored quantity.
                        quantity=reopened.current_stock,
                        value=reopened.current_stock * reopened.cost_per_unit,
                    )
                )

        result = DisposalResult(items=tuple(items))
        logger.info(
            "disposal_undone",
            extra={"restored": len(result.succeeded), "failed": len(result.failed)},
        )
        return result

    def list_disposable(self, branch_id: UUID | None = None) -> list[ProductBatch]:
        """Expired, non-disposed batches that still hold stock."""
        today = self._clock.today()
        return [
            b for b in self._ledger.list_batches(branch_id=branch_id)
            if b.is_expired(today) and b.current_stock > 0
        ]
