"""
freshstock_services.transfer_workflow -- Inter-branch transfer lifecycle.

Responsibility:
    Create transfer requests and drive them through the declared
    ``TRANSFER_WORKFLOW``: approve (with authority check and stock
    reservation), ship (FIFO ``transfer_out``), receive (new destination
    batches filled by ``transfer_in``), cancel and reject.

Architecture position:
    Services -- stateful orchestration over the BatchLedger and
    FifoAllocator.  Legality of every action is answered by the kernel
    ``Workflow`` value object; authority by
    freshstock_engines.approval; cost and delivery estimates by
    freshstock_engines.transfer_scoring and freshstock_engines.distance.

Invariants enforced:
    - Status changes only along TRANSFER_WORKFLOW transitions; anything
      else raises InvalidTransitionError naming the actual status.
    - Every transition appends exactly one TransferStatusChange and emits
      one ``transfer_status_changed`` notification.
    - An approved transfer holds a reservation for its quantity at the
      source branch until it ships or is cancelled.
    - Shipping consumes exactly ``quantity`` units in FIFO order; the
      shipment lines record source batch, cost and expiry.
    - Receiving preserves cost basis and expiry on the destination
      batches.

Concurrency:
    - A per-transfer lock serializes transitions of one transfer; the
      loser re-reads the new status and fails the legality check.
    - Approve and ship additionally hold the source (product, branch)
      stock lock.  Lock order: transfer lock, stock lock, batch lock.

Failure modes:
    - ValidationError: bad request (quantity, branches, product).
    - InsufficientStockError: not enough unreserved stock at request,
      approval or shipping time.
    - ApprovalAuthorityError: approver lacks authority.
    - InvalidTransitionError / TransferNotFoundError.

Audit relevance:
    The status history names actor, time and reason for every change;
    stock movement is in the ledger's mutation log referenced by the
    transfer number.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from dataclasses import replace
from datetime import date
from typing import Callable, Iterable
from uuid import UUID, uuid4

from freshstock_config.schema import FreshstockConfig
from freshstock_engines.approval import ApprovalPolicy, evaluate_approval_authority
from freshstock_engines.distance import DistanceTable, estimate_delivery_date
from freshstock_engines.transfer_scoring import TransferCostModel
from freshstock_kernel.domain.catalog import Branch, CatalogLookup, Product
from freshstock_kernel.domain.clock import Clock
from freshstock_kernel.domain.mutation import MutationType
from freshstock_kernel.domain.notifications import NotificationKind
from freshstock_kernel.domain.transfer import (
    Approver,
    InventoryTransfer,
    RecommendationStrategy,
    Reservation,
    ShipmentLine,
    TransferPriority,
    TransferRecommendation,
    TransferStatus,
    TransferStatusChange,
    TransferType,
    format_transfer_number,
)
from freshstock_kernel.domain.workflow import TRANSFER_WORKFLOW
from freshstock_kernel.exceptions import (
    ApprovalAuthorityError,
    CatalogError,
    InsufficientStockError,
    InvalidTransitionError,
    TransferNotFoundError,
    ValidationError,
)
from freshstock_kernel.logging_config import LogContext, get_logger
from freshstock_services.allocation_service import FifoAllocator, ReservationBook
from freshstock_services.batch_ledger import BatchLedger
from freshstock_services.notifier import NotificationDispatcher

logger = get_logger("services.transfer_workflow")


def _priority_for_urgency(urgency_score: int) -> TransferPriority:
    if urgency_score >= 9:
        return TransferPriority.HIGH
    if urgency_score >= 4:
        return TransferPriority.NORMAL
    return TransferPriority.LOW


class TransferWorkflowService:
    """
    Transfer requests and their state machine.

    Contract:
        Receives ledger, catalog, clock, allocator, dispatcher and config
        via constructor injection.  The allocator's reservation book is
        the one shared with the recommendation engine.
    Guarantees:
        - Every public transition returns the new transfer snapshot.
        - Failed transitions change nothing.
    Non-goals:
        - Does not persist; see LedgerPersistence.
    """

    def __init__(
        self,
        ledger: BatchLedger,
        catalog: CatalogLookup,
        clock: Clock,
        allocator: FifoAllocator | None = None,
        notifier: NotificationDispatcher | None = None,
        config: FreshstockConfig | None = None,
        distance_table: DistanceTable | None = None,
    ):
        config = config or FreshstockConfig()
        self._ledger = ledger
        self._catalog = catalog
        self._clock = clock
        self._allocator = allocator or FifoAllocator(ledger, clock)
        self._notifier = notifier or NotificationDispatcher(None, clock)
        self._prefix = config.workflow.transfer_number_prefix
        self._cost_model = TransferCostModel(
            base_cost=config.transfer_cost.base_cost,
            per_unit_cost=config.transfer_cost.per_unit_cost,
            distance_multiplier=config.transfer_cost.distance_multiplier,
        )
        self._approval_policy = ApprovalPolicy(
            approver_roles=frozenset(config.workflow.approver_roles),
            elevated_roles=frozenset(config.workflow.elevated_roles),
            branch_scoped_roles=frozenset(config.workflow.branch_scoped_roles),
            elevated_approval_threshold=config.workflow.elevated_approval_threshold,
        )
        self._distances = distance_table or DistanceTable.build(
            same_city_km=config.distance.same_city_km,
            same_province_km=config.distance.same_province_km,
            default_km=config.distance.default_km,
            overrides=config.distance.overrides(),
        )

        self._transfers: dict[UUID, InventoryTransfer] = {}
        self._history: dict[UUID, list[TransferStatusChange]] = defaultdict(list)
        self._transfer_locks: dict[UUID, threading.Lock] = {}
        self._day_sequence: dict[date, int] = defaultdict(int)
        self._registry_lock = threading.Lock()

    @property
    def reservations(self) -> ReservationBook:
        return self._allocator.reservations

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def request_transfer(
        self,
        source_branch_id: UUID,
        destination_branch_id: UUID,
        product_id: UUID,
        quantity: int,
        requested_by: UUID,
        reason: str | None = None,
        transfer_type: TransferType = TransferType.REGULAR,
        priority: TransferPriority = TransferPriority.NORMAL,
        notes: str | None = None,
    ) -> InventoryTransfer:
        """
        Create a transfer in ``requested`` status.

        Raises:
            ValidationError: non-positive quantity, same branch, unknown or
                inactive branch or product.
            InsufficientStockError: quantity exceeds the source's
                unreserved sellable stock.
        """
        if quantity <= 0:
            raise ValidationError(
                f"quantity must be positive (got {quantity})", field="quantity",
            )
        if source_branch_id == destination_branch_id:
            raise ValidationError(
                "source and destination branch must differ",
                field="destination_branch_id",
            )
        source = self._require_branch(source_branch_id, "source_branch_id")
        destination = self._require_branch(destination_branch_id, "destination_branch_id")
        product = self._require_product(product_id)

        with self._ledger.stock_lock(product_id, source_branch_id):
            unreserved = self._allocator.unreserved_stock(product_id, source_branch_id)
            if quantity > unreserved:
                raise InsufficientStockError(
                    available=unreserved,
                    requested=quantity,
                    product_id=product_id,
                    branch_id=source_branch_id,
                )
            plan = self._allocator.preview(product_id, source_branch_id, quantity)

        if plan.is_complete:
            estimated_value = plan.total_cost
        else:
            unit_cost = plan.average_unit_cost
            if unit_cost is None:
                unit_cost = product.buy_price
            estimated_value = quantity * unit_cost
        today = self._clock.today()
        distance = self._distances.distance_km(source, destination)

        transfer = InventoryTransfer(
            id=uuid4(),
            transfer_number=self._next_number(today),
            source_branch_id=source_branch_id,
            destination_branch_id=destination_branch_id,
            product_id=product_id,
            quantity=quantity,
            status=TransferStatus.REQUESTED,
            requested_by=requested_by,
            requested_at=self._clock.now(),
            transfer_type=transfer_type,
            priority=priority,
            request_reason=reason,
            notes=notes,
            estimated_cost=self._cost_model.transfer_cost(quantity),
            estimated_value=estimated_value,
            distance_km=distance,
            estimated_delivery_date=estimate_delivery_date(distance, priority, today),
        )

        created = self._history_entry(transfer, None, requested_by, reason)
        with self._registry_lock:
            self._transfers[transfer.id] = transfer
            self._transfer_locks[transfer.id] = threading.Lock()
            self._history[transfer.id].append(created)
        self._notify_change(transfer, None, requested_by)

        with LogContext.bind(transfer_id=transfer.id, actor_id=requested_by):
            logger.info(
                "transfer_requested",
                extra={
                    "transfer_number": transfer.transfer_number,
                    "source_branch_id": str(source_branch_id),
                    "destination_branch_id": str(destination_branch_id),
                    "product_id": str(product_id),
                    "quantity": quantity,
                    "estimated_cost": str(transfer.estimated_cost),
                    "estimated_value": str(transfer.estimated_value),
                    "distance_km": str(distance),
                },
            )
        return transfer

    def request_from_recommendation(
        self,
        recommendation: TransferRecommendation,
        requested_by: UUID,
    ) -> InventoryTransfer:
        """Turn a recommendation into a regular transfer request."""
        if recommendation.strategy is RecommendationStrategy.EXPIRY:
            transfer_type = TransferType.EXPIRY_PREVENTION
            notes = (
                f"Batch {recommendation.batch_number} expires in "
                f"{recommendation.days_until_expiry} day(s)"
            )
        else:
            transfer_type = TransferType.REBALANCING
            notes = None
        return self.request_transfer(
            source_branch_id=recommendation.source_branch_id,
            destination_branch_id=recommendation.target_branch_id,
            product_id=recommendation.product_id,
            quantity=recommendation.recommended_quantity,
            requested_by=requested_by,
            reason="; ".join(recommendation.reasons) or None,
            transfer_type=transfer_type,
            priority=_priority_for_urgency(recommendation.urgency_score),
            notes=notes,
        )

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def approve(self, transfer_id: UUID, approver: Approver) -> InventoryTransfer:
        """
        Approve and reserve stock at the source.

        Raises:
            ApprovalAuthorityError, InsufficientStockError,
            InvalidTransitionError, TransferNotFoundError.
        """

        def apply(current: InventoryTransfer) -> InventoryTransfer:
            evaluation = evaluate_approval_authority(
                self._approval_policy,
                approver,
                current.estimated_value,
                current.source_branch_id,
                current.destination_branch_id,
            )
            if not evaluation.authorized:
                raise ApprovalAuthorityError(
                    current.id, approver.actor_id, approver.role, evaluation.reason,
                )

            with self._ledger.stock_lock(current.product_id, current.source_branch_id):
                unreserved = self._allocator.unreserved_stock(
                    current.product_id, current.source_branch_id,
                )
                if current.quantity > unreserved:
                    raise InsufficientStockError(
                        available=unreserved,
                        requested=current.quantity,
                        product_id=current.product_id,
                        branch_id=current.source_branch_id,
                    )
                self._allocator.reservations.reserve(
                    Reservation(
                        transfer_id=current.id,
                        product_id=current.product_id,
                        branch_id=current.source_branch_id,
                        quantity=current.quantity,
                    )
                )
            return replace(
                current,
                status=TransferStatus.APPROVED,
                approved_by=approver.actor_id,
                approved_at=self._clock.now(),
            )

        return self._transition(transfer_id, "approve", approver.actor_id, apply)

    def ship(self, transfer_id: UUID, shipped_by: UUID) -> InventoryTransfer:
        """Take the reserved units out of the source batches in FIFO order."""

        def apply(current: InventoryTransfer) -> InventoryTransfer:
            with self._ledger.stock_lock(current.product_id, current.source_branch_id):
                plan = self._allocator.preview(
                    current.product_id,
                    current.source_branch_id,
                    current.quantity,
                    exclude_reservation=current.id,
                )
                if not plan.is_complete:
                    raise InsufficientStockError(
                        available=plan.allocated_quantity,
                        requested=current.quantity,
                        product_id=current.product_id,
                        branch_id=current.source_branch_id,
                    )
                self._allocator.apply(
                    plan, MutationType.TRANSFER_OUT, shipped_by,
                    reference=current.transfer_number,
                )
                self._allocator.reservations.release(current.id)

            lines = tuple(
                ShipmentLine(
                    source_batch_id=line.batch_id,
                    batch_number=line.batch_number,
                    quantity=line.quantity,
                    cost_per_unit=line.cost_per_unit,
                    expiry_date=line.expiry_date,
                )
                for line in plan.lines
            )
            return replace(
                current,
                status=TransferStatus.SHIPPED,
                shipped_by=shipped_by,
                shipped_at=self._clock.now(),
                shipment_lines=lines,
            )

        return self._transition(transfer_id, "ship", shipped_by, apply)

    def receive(self, transfer_id: UUID, received_by: UUID) -> InventoryTransfer:
        """Open one destination batch per shipment line and fill it."""

        def apply(current: InventoryTransfer) -> InventoryTransfer:
            today = self._clock.today()
            received: list[UUID] = []
            for line in current.shipment_lines:
                batch = self._ledger.create_batch(
                    product_id=current.product_id,
                    branch_id=current.destination_branch_id,
                    initial_stock=line.quantity,
                    cost_per_unit=line.cost_per_unit,
                    received_date=today,
                    expiry_date=line.expiry_date,
                    actor_id=received_by,
                    opening_stock=0,
                    notes=f"Received via {current.transfer_number} from {line.batch_number}",
                )
                self._ledger.adjust_stock(
                    batch.id, line.quantity, MutationType.TRANSFER_IN, received_by,
                    reference=current.transfer_number,
                )
                received.append(batch.id)
            return replace(
                current,
                status=TransferStatus.RECEIVED,
                received_by=received_by,
                received_at=self._clock.now(),
                received_batch_ids=tuple(received),
            )

        return self._transition(transfer_id, "receive", received_by, apply)

    def cancel(
        self,
        transfer_id: UUID,
        cancelled_by: UUID,
        reason: str | None = None,
    ) -> InventoryTransfer:
        """Cancel a requested or approved transfer and drop its reservation."""

        def apply(current: InventoryTransfer) -> InventoryTransfer:
            self._allocator.reservations.release(current.id)
            return replace(
                current,
                status=TransferStatus.CANCELLED,
                cancelled_by=cancelled_by,
                cancelled_at=self._clock.now(),
                cancellation_reason=reason,
            )

        return self._transition(transfer_id, "cancel", cancelled_by, apply, reason)

    def reject(
        self,
        transfer_id: UUID,
        rejected_by: UUID,
        reason: str | None = None,
    ) -> InventoryTransfer:

        def apply(current: InventoryTransfer) -> InventoryTransfer:
            return replace(
                current,
                status=TransferStatus.REJECTED,
                rejected_by=rejected_by,
                rejected_at=self._clock.now(),
                rejection_reason=reason,
            )

        return self._transition(transfer_id, "reject", rejected_by, apply, reason)

    def _transition(
        self,
        transfer_id: UUID,
        action: str,
        actor_id: UUID,
        apply: Callable[[InventoryTransfer], InventoryTransfer],
        reason: str | None = None,
    ) -> InventoryTransfer:
        """Check legality and run ``apply`` under the transfer lock."""
        lock = self._transfer_lock(transfer_id)
        with LogContext.bind(transfer_id=transfer_id, actor_id=actor_id), lock:
            current = self.get_transfer(transfer_id)
            transition = TRANSFER_WORKFLOW.find_transition(current.status.value, action)
            if transition is None:
                logger.warning(
                    "transfer_transition_rejected",
                    extra={
                        "transfer_number": current.transfer_number,
                        "status": current.status.value,
                        "action": action,
                    },
                )
                raise InvalidTransitionError(
                    current.id, current.transfer_number, current.status.value, action,
                )

            updated = apply(current)
            change = self._history_entry(updated, current.status, actor_id, reason)
            # History order must equal transition order.
            with self._registry_lock:
                self._transfers[transfer_id] = updated
                self._history[transfer_id].append(change)

            logger.info(
                "transfer_transitioned",
                extra={
                    "transfer_number": updated.transfer_number,
                    "action": action,
                    "from_status": current.status.value,
                    "to_status": updated.status.value,
                },
            )
        self._notify_change(updated, current.status, actor_id)
        return updated

    def _history_entry(
        self,
        transfer: InventoryTransfer,
        from_status: TransferStatus | None,
        actor_id: UUID,
        reason: str | None,
    ) -> TransferStatusChange:
        return TransferStatusChange(
            transfer_id=transfer.id,
            from_status=from_status,
            to_status=transfer.status,
            actor_id=actor_id,
            changed_at=self._clock.now(),
            reason=reason,
        )

    def _notify_change(
        self,
        transfer: InventoryTransfer,
        from_status: TransferStatus | None,
        actor_id: UUID,
    ) -> None:
        self._notifier.emit(
            NotificationKind.TRANSFER_STATUS_CHANGED,
            f"Transfer {transfer.transfer_number} is {transfer.status.value}",
            branch_id=transfer.source_branch_id,
            transfer_id=str(transfer.id),
            transfer_number=transfer.transfer_number,
            from_status=from_status.value if from_status else None,
            to_status=transfer.status.value,
            destination_branch_id=str(transfer.destination_branch_id),
            actor_id=str(actor_id),
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_transfer(self, transfer_id: UUID) -> InventoryTransfer:
        with self._registry_lock:
            transfer = self._transfers.get(transfer_id)
        if transfer is None:
            raise TransferNotFoundError(transfer_id)
        return transfer

    def list_transfers(
        self,
        status: TransferStatus | None = None,
        branch_id: UUID | None = None,
    ) -> list[InventoryTransfer]:
        """Transfers in request order; ``branch_id`` matches either end."""
        with self._registry_lock:
            transfers = list(self._transfers.values())
        return sorted(
            (
                t for t in transfers
                if (status is None or t.status is status)
                and (
                    branch_id is None
                    or branch_id in (t.source_branch_id, t.destination_branch_id)
                )
            ),
            key=lambda t: (t.requested_at, t.transfer_number),
        )

    def get_status_history(self, transfer_id: UUID) -> list[TransferStatusChange]:
        self.get_transfer(transfer_id)
        with self._registry_lock:
            return list(self._history.get(transfer_id, ()))

    def unreserved_stock(self, product_id: UUID, branch_id: UUID) -> int:
        return self._allocator.unreserved_stock(product_id, branch_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _transfer_lock(self, transfer_id: UUID) -> threading.Lock:
        with self._registry_lock:
            lock = self._transfer_locks.get(transfer_id)
        if lock is None:
            raise TransferNotFoundError(transfer_id)
        return lock

    def _next_number(self, day: date) -> str:
        with self._registry_lock:
            self._day_sequence[day] += 1
            sequence = self._day_sequence[day]
        return format_transfer_number(self._prefix, day, sequence)

    def _require_branch(self, branch_id: UUID, field: str) -> Branch:
        try:
            branch = self._catalog.get_branch(branch_id)
        except CatalogError as exc:
            raise ValidationError(str(exc), field=field) from exc
        if not branch.is_active:
            raise ValidationError(f"Branch {branch.code} is not active", field=field)
        return branch

    def _require_product(self, product_id: UUID) -> Product:
        try:
            product = self._catalog.get_product(product_id)
        except CatalogError as exc:
            raise ValidationError(str(exc), field="product_id") from exc
        if not product.is_active:
            raise ValidationError(
                f"Product {product.code} is not active", field="product_id",
            )
        return product

    # ------------------------------------------------------------------
    # Rehydration
    # ------------------------------------------------------------------

    def restore(
        self,
        transfers: Iterable[InventoryTransfer],
        history: Iterable[TransferStatusChange],
    ) -> None:
        """Replace state with persisted records and rebuild reservations."""
        with self._registry_lock:
            self._transfers = {t.id: t for t in transfers}
            self._history = defaultdict(list)
            for change in history:
                self._history[change.transfer_id].append(change)
            self._transfer_locks = {tid: threading.Lock() for tid in self._transfers}
            self._day_sequence = defaultdict(int)
            for t in self._transfers.values():
                _, day_part, seq_part = t.transfer_number.rsplit("-", 2)
                day = date(int(day_part[:4]), int(day_part[4:6]), int(day_part[6:]))
                self._day_sequence[day] = max(self._day_sequence[day], int(seq_part))
            approved = [
                t for t in self._transfers.values() if t.status is TransferStatus.APPROVED
            ]

        self._allocator.reservations.clear()
        for t in approved:
            self._allocator.reservations.reserve(
                Reservation(t.id, t.product_id, t.source_branch_id, t.quantity)
            )
        logger.info(
            "transfers_restored",
            extra={"transfer_count": len(self._transfers), "reservations": len(approved)},
        )
