"""
freshstock_services.expiry_monitor -- Daily expiry sweep.

Responsibility:
    Classify every non-disposed batch against the injected clock, detect
    batches that crossed into a more severe band since the last sweep,
    emit one notification per crossing, and report counts and values.

Architecture position:
    Services -- reads the BatchLedger, classifies through
    freshstock_engines.expiry, notifies through NotificationDispatcher.

Invariants enforced:
    - The sweep holds a sweep lock; two sweeps never interleave.
    - A batch counts as newly expired only when its recorded marker was
      not ``expired``.  Markers are updated by the sweep, so running twice
      on the same day reports the same classification and zero newly
      expired batches the second time.
    - Notifications are emitted on transitions only, never repeated for a
      batch that stays in the same band.

Failure modes:
    - None raised from the sweep itself; notification failures are logged
      by the dispatcher.

Audit relevance:
    Each sweep produces an ``ExpirySweepSummary`` kept in ``history`` and
    persisted as an ``expiry_sweep_runs`` row.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Iterable
from uuid import UUID, uuid4

from freshstock_config.schema import ExpiryConfig
from freshstock_engines.expiry import (
    ClassifiedBatch,
    ExpiryThresholds,
    classify_batch,
    classify_batches,
)
from freshstock_engines.fifo import fifo_key
from freshstock_kernel.domain.batch import ExpiryMarker, ExpiryStatus, ProductBatch
from freshstock_kernel.domain.clock import Clock
from freshstock_kernel.domain.notifications import NotificationKind
from freshstock_kernel.logging_config import get_logger
from freshstock_services.batch_ledger import BatchLedger
from freshstock_services.notifier import NotificationDispatcher

logger = get_logger("services.expiry_monitor")

_TRANSITION_KINDS: dict[ExpiryStatus, NotificationKind] = {
    ExpiryStatus.EXPIRED: NotificationKind.EXPIRY_EXPIRED,
    ExpiryStatus.URGENT: NotificationKind.EXPIRY_URGENT,
    ExpiryStatus.WARNING: NotificationKind.EXPIRY_WARNING,
}


@dataclass(frozen=True)
class ExpirySweepSummary:
    """Result of one sweep."""
    id: UUID
    sweep_date: date
    counts: dict[ExpiryStatus, int]
    value_at_risk: Decimal
    value_lost: Decimal
    newly_expired_batch_ids: tuple[UUID, ...] = ()
    notifications_sent: int = 0
    classified: tuple[ClassifiedBatch, ...] = field(default=(), repr=False)

    def count(self, status: ExpiryStatus) -> int:
        return self.counts.get(status, 0)

    @property
    def newly_expired_count(self) -> int:
        return len(self.newly_expired_batch_ids)


class ExpiryMonitor:
    """
    Expiry classification and sweep bookkeeping.

    Contract:
        Receives the ledger, clock, dispatcher and ExpiryConfig via
        constructor injection.
    Guarantees:
        - ``run_sweep`` is idempotent for a given day.
    Non-goals:
        - Does not dispose anything; see DisposalManager.
    """

    def __init__(
        self,
        ledger: BatchLedger,
        clock: Clock,
        notifier: NotificationDispatcher | None = None,
        config: ExpiryConfig | None = None,
    ):
        config = config or ExpiryConfig()
        self._ledger = ledger
        self._clock = clock
        self._notifier = notifier or NotificationDispatcher(None, clock)
        self.thresholds = ExpiryThresholds(
            urgent_days=config.urgent_days, warning_days=config.warning_days,
        )
        self._markers: dict[UUID, ExpiryMarker] = {}
        self._history: list[ExpirySweepSummary] = []
        self._sweep_lock = threading.Lock()
        self.last_sweep_date: date | None = None

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    def classify_batch(self, batch: ProductBatch, as_of: date | None = None) -> ClassifiedBatch:
        return classify_batch(batch, as_of or self._clock.today(), self.thresholds)

    def list_expiring(
        self,
        within_days: int,
        branch_id: UUID | None = None,
        as_of: date | None = None,
    ) -> list[ClassifiedBatch]:
        """Stocked batches expiring in 1..within_days days, soonest first."""
        today = as_of or self._clock.today()
        result = []
        for batch in self._ledger.list_batches(branch_id=branch_id):
            days = batch.days_until_expiry(today)
            if days is None or batch.current_stock <= 0:
                continue
            if 0 < days <= within_days:
                result.append(classify_batch(batch, today, self.thresholds))
        result.sort(key=lambda c: fifo_key(c.batch))
        return result

    # ------------------------------------------------------------------
    # Sweep
    # ------------------------------------------------------------------

    def run_sweep(self, as_of: date | None = None) -> ExpirySweepSummary:
        """Classify all non-disposed batches and report band transitions."""
        with self._sweep_lock:
            today = as_of or self._clock.today()
            classified = classify_batches(
                batches=self._ledger.list_batches(),
                as_of=today,
                thresholds=self.thresholds,
            )

            counts = {status: 0 for status in ExpiryStatus}
            value_at_risk = Decimal("0")
            value_lost = Decimal("0")
            newly_expired: list[UUID] = []
            sent = 0

            for item in classified:
                batch = item.batch
                counts[item.status] += 1
                if item.status in (ExpiryStatus.URGENT, ExpiryStatus.WARNING):
                    value_at_risk += item.value

                previous = self._markers.get(batch.id)
                changed = previous is None or previous.status != item.status
                self._markers[batch.id] = ExpiryMarker(batch.id, item.status, today)
                if not changed or item.status not in _TRANSITION_KINDS:
                    continue

                if item.status is ExpiryStatus.EXPIRED:
                    newly_expired.append(batch.id)
                    value_lost += item.value
                if self._notify_transition(item):
                    sent += 1

            summary = ExpirySweepSummary(
                id=uuid4(),
                sweep_date=today,
                counts=counts,
                value_at_risk=value_at_risk,
                value_lost=value_lost,
                newly_expired_batch_ids=tuple(newly_expired),
                notifications_sent=sent,
                classified=classified,
            )
            self._history.append(summary)
            self.last_sweep_date = today

        logger.info(
            "expiry_sweep_completed",
            extra={
                "sweep_date": today,
                "expired": counts[ExpiryStatus.EXPIRED],
                "urgent": counts[ExpiryStatus.URGENT],
                "warning": counts[ExpiryStatus.WARNING],
                "fresh": counts[ExpiryStatus.FRESH],
                "newly_expired": len(newly_expired),
                "value_at_risk": str(value_at_risk),
                "value_lost": str(value_lost),
            },
        )
        return summary

    def _notify_transition(self, item: ClassifiedBatch) -> bool:
        batch = item.batch
        kind = _TRANSITION_KINDS[item.status]
        if item.status is ExpiryStatus.EXPIRED:
            title = f"Batch {batch.batch_number} has expired"
        else:
            title = f"Batch {batch.batch_number} expires in {item.days_until_expiry} day(s)"
        return self._notifier.emit(
            kind,
            title,
            branch_id=batch.branch_id,
            batch_id=str(batch.id),
            product_id=str(batch.product_id),
            batch_number=batch.batch_number,
            days_until_expiry=item.days_until_expiry,
            current_stock=batch.current_stock,
            value=str(item.value),
        )

    # ------------------------------------------------------------------
    # State access
    # ------------------------------------------------------------------

    def marker(self, batch_id: UUID) -> ExpiryMarker | None:
        return self._markers.get(batch_id)

    def markers(self) -> list[ExpiryMarker]:
        return list(self._markers.values())

    @property
    def history(self) -> list[ExpirySweepSummary]:
        return list(self._history)

    def restore(self, markers: Iterable[ExpiryMarker]) -> None:
        """Load persisted markers so a restart does not re-report expiries."""
        with self._sweep_lock:
            self._markers = {m.batch_id: m for m in markers}
            if self._markers:
                self.last_sweep_date = max(m.classified_on for m in self._markers.values())
        logger.info("expiry_markers_restored", extra={"marker_count": len(self._markers)})
