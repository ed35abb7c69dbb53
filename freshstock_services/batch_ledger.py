"""
freshstock_services.batch_ledger -- Authoritative batch stock and mutation log.

Responsibility:
    Own every ``ProductBatch`` snapshot and the append-only
    ``InventoryMutation`` log.  ``adjust_stock`` is the single stock
    mutation entry point; disposal and its undo go through
    ``mark_disposed`` / ``reopen_disposed``.

Architecture position:
    Services -- stateful, in-memory, lock based.  Reads time only through
    the injected Clock.  Persistence is handled separately by
    ``freshstock_services.persistence_service``.

Invariants enforced:
    - 0 <= current_stock <= initial_stock for every batch at all times.
    - Every stock change appends exactly one mutation whose stock_after is
      the new level.
    - Disposed batches are frozen: adjust_stock refuses them.
    - Batch numbers are unique per (product, branch).
    - Batches are never deleted.

Concurrency:
    - One lock per batch serializes adjust_stock / mark_disposed /
      reopen_disposed on that batch.
    - ``stock_lock(product_id, branch_id)`` is a re-entrant lock for
      compound check-then-act operations.  Lock order: stock lock first,
      then batch lock.

Failure modes:
    - ValidationError: bad create/adjust input (nothing changes).
    - InsufficientStockError: a delta would drive a batch negative.
    - BatchDisposedError: mutation of a disposed batch.
    - BatchNotFoundError / BatchNotDisposedError.

Audit relevance:
    The mutation log explains every unit that entered or left a batch,
    with actor, timestamp, unit cost and reference.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Iterable, Sequence
from uuid import UUID, uuid4

from freshstock_engines.fifo import fifo_sort
from freshstock_kernel.domain.batch import (
    DisposalMethod,
    ProductBatch,
    next_batch_number,
)
from freshstock_kernel.domain.clock import Clock
from freshstock_kernel.domain.mutation import InventoryMutation, MutationType
from freshstock_kernel.exceptions import (
    BatchDisposedError,
    BatchNotDisposedError,
    BatchNotFoundError,
    InsufficientStockError,
    ValidationError,
)
from freshstock_kernel.logging_config import LogContext, get_logger

logger = get_logger("services.batch_ledger")


class BatchLedger:
    """
    In-memory ledger of product batches.

    Contract:
        Receives a Clock via constructor injection.  Hands out frozen
        ``ProductBatch`` snapshots; only the ledger replaces them.
    Guarantees:
        - ``create_batch`` validates before registering anything.
        - ``adjust_stock`` either appends one mutation and returns the new
          snapshot, or raises and leaves the batch untouched.
    Non-goals:
        - No catalog validation; callers check products and branches.
        - No reservation awareness; see FifoAllocator.
    """

    def __init__(self, clock: Clock):
        self._clock = clock
        self._batches: dict[UUID, ProductBatch] = {}
        self._mutations: list[InventoryMutation] = []
        self._batch_numbers: dict[tuple[UUID, UUID], set[str]] = defaultdict(set)
        self._batch_locks: dict[UUID, threading.Lock] = {}
        self._stock_locks: dict[tuple[UUID, UUID], threading.RLock] = {}
        self._registry_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Locks
    # ------------------------------------------------------------------

    def stock_lock(self, product_id: UUID, branch_id: UUID) -> threading.RLock:
        """Re-entrant lock guarding compound operations on one product at one branch."""
        key = (product_id, branch_id)
        with self._registry_lock:
            lock = self._stock_locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._stock_locks[key] = lock
            return lock

    def _batch_lock(self, batch_id: UUID) -> threading.Lock:
        with self._registry_lock:
            lock = self._batch_locks.get(batch_id)
            if lock is None:
                raise BatchNotFoundError(batch_id)
            return lock

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_batch(
        self,
        product_id: UUID,
        branch_id: UUID,
        initial_stock: int,
        cost_per_unit: Decimal,
        received_date: date,
        expiry_date: date | None = None,
        batch_number: str | None = None,
        actor_id: UUID | None = None,
        opening_stock: int | None = None,
        supplier_name: str | None = None,
        notes: str | None = None,
    ) -> ProductBatch:
        """
        Register a new batch.

        ``opening_stock`` defaults to ``initial_stock`` (goods receipt).
        Transfer receipts open at 0 and fill the batch with ``transfer_in``.

        Raises:
            ValidationError: initial_stock <= 0, cost_per_unit < 0,
                opening_stock outside [0, initial_stock], or a batch number
                already used for this product and branch.
        """
        if initial_stock <= 0:
            raise ValidationError(
                f"initial_stock must be positive (got {initial_stock})",
                field="initial_stock",
            )
        if cost_per_unit < 0:
            raise ValidationError(
                f"cost_per_unit cannot be negative (got {cost_per_unit})",
                field="cost_per_unit",
            )
        opening = initial_stock if opening_stock is None else opening_stock
        if not 0 <= opening <= initial_stock:
            raise ValidationError(
                f"opening_stock {opening} outside [0, {initial_stock}]",
                field="opening_stock",
            )

        key = (product_id, branch_id)
        with self._registry_lock:
            used = self._batch_numbers[key]
            if batch_number is None:
                batch_number = next_batch_number(received_date, used)
            elif batch_number in used:
                raise ValidationError(
                    f"Batch number {batch_number} already exists for this product and branch",
                    field="batch_number",
                )

            batch = ProductBatch(
                id=uuid4(),
                product_id=product_id,
                branch_id=branch_id,
                batch_number=batch_number,
                initial_stock=initial_stock,
                current_stock=opening,
                cost_per_unit=Decimal(cost_per_unit),
                received_date=received_date,
                expiry_date=expiry_date,
                supplier_name=supplier_name,
                notes=notes,
            )
            used.add(batch_number)
            self._batches[batch.id] = batch
            self._batch_locks[batch.id] = threading.Lock()

        logger.info(
            "batch_created",
            extra={
                "batch_id": str(batch.id),
                "batch_number": batch.batch_number,
                "product_id": str(product_id),
                "branch_id": str(branch_id),
                "initial_stock": initial_stock,
                "opening_stock": opening,
                "expiry_date": expiry_date,
                "actor_id": str(actor_id) if actor_id else None,
            },
        )
        return batch

    # ------------------------------------------------------------------
    # Stock mutation
    # ------------------------------------------------------------------

    def adjust_stock(
        self,
        batch_id: UUID,
        delta: int,
        mutation_type: MutationType,
        actor_id: UUID,
        reference: str | None = None,
        notes: str | None = None,
    ) -> ProductBatch:
        """
        Apply a signed stock change to one batch and record it.

        Raises:
            BatchNotFoundError: unknown batch.
            ValidationError: zero delta, or result above initial_stock.
            BatchDisposedError: batch is disposed.
            InsufficientStockError: result would be negative.
        """
        lock = self._batch_lock(batch_id)
        if delta == 0:
            raise ValidationError("delta cannot be zero", field="delta")

        with LogContext.bind(batch_id=batch_id, actor_id=actor_id), lock:
            batch = self._batches[batch_id]
            if batch.is_disposed:
                raise BatchDisposedError(batch.id, batch.batch_number, batch.disposed_at)

            new_stock = batch.current_stock + delta
            if new_stock < 0:
                raise InsufficientStockError(
                    available=batch.current_stock,
                    requested=-delta,
                    product_id=batch.product_id,
                    branch_id=batch.branch_id,
                    batch_id=batch.id,
                )
            if new_stock > batch.initial_stock:
                raise ValidationError(
                    f"Stock {new_stock} would exceed initial stock "
                    f"{batch.initial_stock} of batch {batch.batch_number}",
                    field="delta",
                )

            updated = batch.with_stock(new_stock)
            self._record(batch, updated, delta, mutation_type, actor_id, reference, notes)

            logger.info(
                "stock_adjusted",
                extra={
                    "batch_number": updated.batch_number,
                    "mutation_type": mutation_type.value,
                    "delta": delta,
                    "stock_after": new_stock,
                    "reference": reference,
                },
            )
        return updated

    def _record(
        self,
        before: ProductBatch,
        after: ProductBatch,
        delta: int,
        mutation_type: MutationType,
        actor_id: UUID,
        reference: str | None,
        notes: str | None,
    ) -> InventoryMutation:
        """Swap the snapshot and append the mutation.  Caller holds the batch lock."""
        mutation = InventoryMutation(
            id=uuid4(),
            batch_id=before.id,
            product_id=before.product_id,
            branch_id=before.branch_id,
            mutation_type=mutation_type,
            quantity=delta,
            stock_before=before.current_stock,
            stock_after=before.current_stock + delta,
            unit_cost=before.cost_per_unit,
            actor_id=actor_id,
            occurred_at=self._clock.now(),
            reference=reference,
            notes=notes,
        )
        with self._registry_lock:
            self._batches[before.id] = after
            self._mutations.append(mutation)
        return mutation

    # ------------------------------------------------------------------
    # Disposal flag
    # ------------------------------------------------------------------

    def mark_disposed(
        self,
        batch_id: UUID,
        disposed_by: UUID,
        method: DisposalMethod,
        notes: str | None = None,
    ) -> ProductBatch:
        """
        Freeze a batch and write off its remaining stock.

        Appends a ``disposal`` mutation of -remaining when stock is left.

        Raises:
            BatchNotFoundError, BatchDisposedError.
        """
        lock = self._batch_lock(batch_id)
        with lock:
            batch = self._batches[batch_id]
            if batch.is_disposed:
                raise BatchDisposedError(batch.id, batch.batch_number, batch.disposed_at)

            disposed = batch.as_disposed(self._clock.now(), disposed_by, method, notes)
            if batch.current_stock > 0:
                self._record(
                    batch, disposed, -batch.current_stock, MutationType.DISPOSAL,
                    disposed_by, None, notes or f"Disposed via {method.value}",
                )
            else:
                with self._registry_lock:
                    self._batches[batch_id] = disposed

        logger.info(
            "batch_disposed",
            extra={
                "batch_id": str(batch_id),
                "batch_number": batch.batch_number,
                "disposed_quantity": disposed.disposed_quantity,
                "method": method.value,
                "actor_id": str(disposed_by),
            },
        )
        return disposed

    def reopen_disposed(
        self,
        batch_id: UUID,
        actor_id: UUID,
        notes: str | None = None,
    ) -> ProductBatch:
        """
        Clear the disposal and restore the written-off quantity.

        The restoration is an ``adjustment`` mutation.

        Raises:
            BatchNotFoundError, BatchNotDisposedError.
        """
        lock = self._batch_lock(batch_id)
        with lock:
            batch = self._batches[batch_id]
            if not batch.is_disposed:
                raise BatchNotDisposedError(batch_id)

            reopened = batch.as_reopened()
            if batch.disposed_quantity > 0:
                self._record(
                    batch, reopened, batch.disposed_quantity, MutationType.ADJUSTMENT,
                    actor_id, None, notes or "Disposal undone",
                )
            else:
                with self._registry_lock:
                    self._batches[batch_id] = reopened

        logger.info(
            "batch_disposal_undone",
            extra={
                "batch_id": str(batch_id),
                "batch_number": batch.batch_number,
                "restored_quantity": batch.disposed_quantity,
                "actor_id": str(actor_id),
            },
        )
        return reopened

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_batch(self, batch_id: UUID) -> ProductBatch:
        with self._registry_lock:
            batch = self._batches.get(batch_id)
        if batch is None:
            raise BatchNotFoundError(batch_id)
        return batch

    def list_batches(
        self,
        branch_id: UUID | None = None,
        include_disposed: bool = False,
    ) -> list[ProductBatch]:
        """All batches (optionally at one branch), FIFO-ordered."""
        with self._registry_lock:
            batches = list(self._batches.values())
        return fifo_sort(
            b for b in batches
            if (branch_id is None or b.branch_id == branch_id)
            and (include_disposed or not b.is_disposed)
        )

    def get_batches_for_product(
        self,
        product_id: UUID,
        branch_id: UUID,
        include_expired: bool = False,
        include_disposed: bool = False,
        as_of: date | None = None,
    ) -> list[ProductBatch]:
        """Batches of one product at one branch in FIFO order."""
        today = as_of or self._clock.today()
        with self._registry_lock:
            batches = list(self._batches.values())
        return fifo_sort(
            b for b in batches
            if b.product_id == product_id
            and b.branch_id == branch_id
            and (include_disposed or not b.is_disposed)
            and (include_expired or not b.is_expired(today))
        )

    def available_stock(
        self,
        product_id: UUID,
        branch_id: UUID,
        as_of: date | None = None,
    ) -> int:
        """Sum of current stock over sellable (not disposed, not expired) batches."""
        return sum(
            b.current_stock
            for b in self.get_batches_for_product(product_id, branch_id, as_of=as_of)
        )

    def get_mutations(self, batch_id: UUID | None = None) -> list[InventoryMutation]:
        """Mutations in the order they were recorded."""
        with self._registry_lock:
            mutations = list(self._mutations)
        if batch_id is None:
            return mutations
        return [m for m in mutations if m.batch_id == batch_id]

    # ------------------------------------------------------------------
    # Rehydration
    # ------------------------------------------------------------------

    def restore(
        self,
        batches: Iterable[ProductBatch],
        mutations: Sequence[InventoryMutation],
    ) -> None:
        """Replace the ledger state with previously persisted records."""
        with self._registry_lock:
            self._batches = {b.id: b for b in batches}
            self._mutations = list(mutations)
            self._batch_numbers = defaultdict(set)
            for b in self._batches.values():
                self._batch_numbers[(b.product_id, b.branch_id)].add(b.batch_number)
            self._batch_locks = {bid: threading.Lock() for bid in self._batches}
        logger.info(
            "ledger_restored",
            extra={"batch_count": len(self._batches), "mutation_count": len(self._mutations)},
        )
