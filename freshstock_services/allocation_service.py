"""
freshstock_services.allocation_service -- FIFO preview, commit and reservations.

Responsibility:
    Turn the pure FIFO engine into a two-step stock operation: ``preview``
    computes an ``AllocationPlan`` without touching stock, ``apply``
    commits it through ``BatchLedger.adjust_stock``.  Also owns the
    reservation book that holds stock for approved transfers.

Architecture position:
    Services -- composes freshstock_engines.fifo with the BatchLedger.

Invariants enforced:
    - A preview never offers reserved units: its total is capped at
      available - reserved (minus the excluded reservation).
    - ``apply`` is all-or-nothing from the caller's view.  When a line
      fails, lines already applied are reversed with ``adjustment``
      mutations and the original error is re-raised.
    - ``consume`` runs preview and apply under the (product, branch)
      stock lock.

Failure modes:
    - ValidationError from the engine for a non-positive request.
    - InsufficientStockError from ``consume`` on shortage unless
      ``allow_partial``.
    - Any ledger error raised while applying a line.

Usage:
    allocator = FifoAllocator(ledger, clock)
    plan = allocator.preview(product_id, branch_id, 12)
    allocator.apply(plan, MutationType.SALE, actor_id, reference="POS-991")
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from uuid import UUID

from freshstock_engines.fifo import AllocationPlan, allocate
from freshstock_kernel.domain.batch import ProductBatch
from freshstock_kernel.domain.clock import Clock
from freshstock_kernel.domain.mutation import MutationType
from freshstock_kernel.domain.transfer import Reservation
from freshstock_kernel.exceptions import InsufficientStockError, ValidationError
from freshstock_kernel.logging_config import get_logger
from freshstock_services.batch_ledger import BatchLedger

logger = get_logger("services.allocation")


class ReservationBook:
    """Stock held for approved transfers, keyed by transfer id."""

    def __init__(self) -> None:
        self._by_transfer: dict[UUID, Reservation] = {}
        self._lock = threading.Lock()

    def reserve(self, reservation: Reservation) -> None:
        if reservation.quantity <= 0:
            raise ValidationError(
                f"reservation quantity must be positive (got {reservation.quantity})",
                field="quantity",
            )
        with self._lock:
            self._by_transfer[reservation.transfer_id] = reservation
        logger.info(
            "stock_reserved",
            extra={
                "transfer_id": str(reservation.transfer_id),
                "product_id": str(reservation.product_id),
                "branch_id": str(reservation.branch_id),
                "quantity": reservation.quantity,
            },
        )

    def release(self, transfer_id: UUID) -> Reservation | None:
        with self._lock:
            reservation = self._by_transfer.pop(transfer_id, None)
        if reservation is not None:
            logger.info(
                "reservation_released",
                extra={"transfer_id": str(transfer_id), "quantity": reservation.quantity},
            )
        return reservation

    def get(self, transfer_id: UUID) -> Reservation | None:
        with self._lock:
            return self._by_transfer.get(transfer_id)

    def reserved_quantity(
        self,
        product_id: UUID,
        branch_id: UUID,
        exclude: UUID | None = None,
    ) -> int:
        with self._lock:
            return sum(
                r.quantity
                for r in self._by_transfer.values()
                if r.product_id == product_id
                and r.branch_id == branch_id
                and r.transfer_id != exclude
            )

    def all(self) -> list[Reservation]:
        with self._lock:
            return list(self._by_transfer.values())

    def clear(self) -> None:
        with self._lock:
            self._by_transfer.clear()


@dataclass(frozen=True)
class ConsumptionResult:
    """A committed plan and the batch snapshots it produced."""
    plan: AllocationPlan
    batches: tuple[ProductBatch, ...]


class FifoAllocator:
    """
    FIFO stock allocation over the ledger's sellable batches.

    Contract:
        Receives the ledger, clock and (optionally shared) reservation book
        via constructor injection.
    Guarantees:
        - ``preview`` never mutates.
        - ``apply`` never leaves a plan partially applied.
    Non-goals:
        - Does not decide who may consume stock.
    """

    def __init__(
        self,
        ledger: BatchLedger,
        clock: Clock,
        reservations: ReservationBook | None = None,
    ):
        self._ledger = ledger
        self._clock = clock
        self.reservations = reservations or ReservationBook()

    def unreserved_stock(
        self,
        product_id: UUID,
        branch_id: UUID,
        exclude_reservation: UUID | None = None,
    ) -> int:
        """Sellable stock minus units reserved for other transfers."""
        available = self._ledger.available_stock(product_id, branch_id, as_of=self._clock.today())
        reserved = self.reservations.reserved_quantity(
            product_id, branch_id, exclude=exclude_reservation,
        )
        return max(0, available - reserved)

    def preview(
        self,
        product_id: UUID,
        branch_id: UUID,
        requested_quantity: int,
        exclude_reservation: UUID | None = None,
    ) -> AllocationPlan:
        """FIFO plan over sellable batches, capped at unreserved stock."""
        batches = self._ledger.get_batches_for_product(
            product_id, branch_id, as_of=self._clock.today(),
        )
        cap = self.unreserved_stock(product_id, branch_id, exclude_reservation)
        plan = allocate(batches=batches, requested_quantity=requested_quantity, cap=cap)
        if plan.product_id is None:
            # No batches at all: keep the plan addressable.
            plan = AllocationPlan(
                requested_quantity=plan.requested_quantity,
                lines=plan.lines,
                shortage=plan.shortage,
                product_id=product_id,
                branch_id=branch_id,
            )
        logger.debug(
            "allocation_previewed",
            extra={
                "product_id": str(product_id),
                "branch_id": str(branch_id),
                "requested": requested_quantity,
                "allocated": plan.allocated_quantity,
                "shortage": plan.shortage,
            },
        )
        return plan

    def apply(
        self,
        plan: AllocationPlan,
        mutation_type: MutationType,
        actor_id: UUID,
        reference: str | None = None,
    ) -> tuple[ProductBatch, ...]:
        """
        Commit a plan line by line.

        Raises:
            Whatever ``adjust_stock`` raised for the failing line, after
            compensating the lines already applied.
        """
        applied: list[tuple[UUID, int]] = []
        results: list[ProductBatch] = []
        try:
            for line in plan.lines:
                results.append(
                    self._ledger.adjust_stock(
                        line.batch_id, -line.quantity, mutation_type, actor_id,
                        reference=reference,
                    )
                )
                applied.append((line.batch_id, line.quantity))
        except Exception:
            logger.warning(
                "allocation_apply_failed",
                extra={
                    "reference": reference,
                    "applied_lines": len(applied),
                    "total_lines": len(plan.lines),
                },
            )
            for batch_id, quantity in reversed(applied):
                self._ledger.adjust_stock(
                    batch_id, quantity, MutationType.ADJUSTMENT, actor_id,
                    reference=reference,
                    notes="Compensation for failed allocation",
                )
            raise

        logger.info(
            "allocation_applied",
            extra={
                "reference": reference,
                "mutation_type": mutation_type.value,
                "lines": len(results),
                "quantity": plan.allocated_quantity,
            },
        )
        return tuple(results)

    def consume(
        self,
        product_id: UUID,
        branch_id: UUID,
        quantity: int,
        mutation_type: MutationType,
        actor_id: UUID,
        allow_partial: bool = False,
        reference: str | None = None,
    ) -> ConsumptionResult:
        """Preview and apply atomically with respect to other stock operations."""
        with self._ledger.stock_lock(product_id, branch_id):
            plan = self.preview(product_id, branch_id, quantity)
            if not plan.is_complete and not allow_partial:
                raise InsufficientStockError(
                    available=plan.allocated_quantity,
                    requested=quantity,
                    product_id=product_id,
                    branch_id=branch_id,
                )
            batches = self.apply(plan, mutation_type, actor_id, reference=reference)
        return ConsumptionResult(plan=plan, batches=batches)
