"""
freshstock_services.persistence_service -- Save and rehydrate service state.

Responsibility:
    Write the in-memory BatchLedger, TransferWorkflowService and
    ExpiryMonitor state to the ORM tables, and rebuild those services from
    the tables after a restart.

Architecture position:
    Services -- the only bridge between the in-memory services and
    freshstock_kernel.models.  The caller owns the Session and the
    transaction (see freshstock_kernel.db.session_scope).

Invariants enforced:
    - Batches, transfers and expiry markers are upserted.
    - Mutations and status history are append-only: ``save`` only adds
      rows not yet written and never touches existing ones.
    - Mutation and history order survive a round trip via their
      ``sequence`` columns.

Failure modes:
    - SQLAlchemy errors propagate; the caller's transaction rolls back.
    - ImmutabilityViolationError if something tries to modify a persisted
      mutation or history row.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from freshstock_kernel.domain.batch import ExpiryStatus
from freshstock_kernel.logging_config import get_logger
from freshstock_kernel.models.batch import ProductBatchModel
from freshstock_kernel.models.expiry import ExpiryMarkerModel, ExpirySweepRunModel
from freshstock_kernel.models.mutation import InventoryMutationModel
from freshstock_kernel.models.transfer import (
    InventoryTransferModel,
    TransferStatusChangeModel,
)
from freshstock_services.batch_ledger import BatchLedger
from freshstock_services.expiry_monitor import ExpiryMonitor, ExpirySweepSummary
from freshstock_services.transfer_workflow import TransferWorkflowService

logger = get_logger("services.persistence")


@dataclass(frozen=True)
class SaveStats:
    batches_written: int = 0
    mutations_appended: int = 0
    transfers_written: int = 0
    history_appended: int = 0
    markers_written: int = 0
    sweep_runs_appended: int = 0


@dataclass(frozen=True)
class LoadStats:
    batches: int = 0
    mutations: int = 0
    transfers: int = 0
    history: int = 0
    markers: int = 0


class LedgerPersistence:
    """
    Persists ledger, workflow and expiry state through SQLAlchemy.

    Contract:
        ``actor_id`` is recorded as creator/updater of batch rows.
    """

    def __init__(
        self,
        ledger: BatchLedger,
        workflow: TransferWorkflowService | None = None,
        monitor: ExpiryMonitor | None = None,
        actor_id: UUID | None = None,
    ):
        self._ledger = ledger
        self._workflow = workflow
        self._monitor = monitor
        self._actor_id = actor_id or UUID(int=0)

    # ------------------------------------------------------------------
    # Save
    # ------------------------------------------------------------------

    def save(self, session: Session) -> SaveStats:
        """Write everything not yet persisted.  Flushes but does not commit."""
        batches = self._save_batches(session)
        session.flush()
        mutations = self._save_mutations(session)

        transfers = history = 0
        if self._workflow is not None:
            transfers = self._save_transfers(session)
            session.flush()
            history = self._save_history(session)

        markers = runs = 0
        if self._monitor is not None:
            markers = self._save_markers(session)
            runs = self._save_sweep_runs(session)

        session.flush()
        stats = SaveStats(batches, mutations, transfers, history, markers, runs)
        logger.info(
            "state_saved",
            extra={
                "batches_written": stats.batches_written,
                "mutations_appended": stats.mutations_appended,
                "transfers_written": stats.transfers_written,
                "history_appended": stats.history_appended,
                "markers_written": stats.markers_written,
                "sweep_runs_appended": stats.sweep_runs_appended,
            },
        )
        return stats

    def _save_batches(self, session: Session) -> int:
        existing = {m.id: m for m in session.scalars(select(ProductBatchModel))}
        written = 0
        for dto in self._ledger.list_batches(include_disposed=True):
            model = existing.get(dto.id)
            if model is None:
                session.add(ProductBatchModel.from_dto(dto, created_by_id=self._actor_id))
                written += 1
            elif model.to_dto() != dto:
                model.apply_dto(dto, updated_by_id=self._actor_id)
                written += 1
        return written

    def _save_mutations(self, session: Session) -> int:
        persisted = set(session.scalars(select(InventoryMutationModel.id)))
        next_sequence = (
            session.scalar(select(func.max(InventoryMutationModel.sequence))) or 0
        ) + 1
        appended = 0
        for dto in self._ledger.get_mutations():
            if dto.id in persisted:
                continue
            session.add(InventoryMutationModel.from_dto(dto, sequence=next_sequence))
            next_sequence += 1
            appended += 1
        return appended

    def _save_transfers(self, session: Session) -> int:
        existing = {m.id: m for m in session.scalars(select(InventoryTransferModel))}
        written = 0
        for dto in self._workflow.list_transfers():
            model = existing.get(dto.id)
            if model is None:
                session.add(InventoryTransferModel.from_dto(dto))
                written += 1
            elif model.to_dto() != dto:
                model.apply_dto(dto)
                written += 1
        return written

    def _save_history(self, session: Session) -> int:
        counts = dict(
            session.execute(
                select(TransferStatusChangeModel.transfer_id, func.count())
                .group_by(TransferStatusChangeModel.transfer_id)
            ).all()
        )
        appended = 0
        for transfer in self._workflow.list_transfers():
            history = self._workflow.get_status_history(transfer.id)
            already = counts.get(transfer.id, 0)
            for index, change in enumerate(history[already:], start=already + 1):
                session.add(TransferStatusChangeModel.from_dto(change, sequence=index))
                appended += 1
        return appended

    def _save_markers(self, session: Session) -> int:
        existing = {m.batch_id: m for m in session.scalars(select(ExpiryMarkerModel))}
        written = 0
        for marker in self._monitor.markers():
            model = existing.get(marker.batch_id)
            if model is None:
                session.add(ExpiryMarkerModel.from_dto(marker))
                written += 1
            elif model.to_dto() != marker:
                model.status = marker.status.value
                model.classified_on = marker.classified_on
                written += 1
        return written

    def _save_sweep_runs(self, session: Session) -> int:
        persisted = set(session.scalars(select(ExpirySweepRunModel.id)))
        appended = 0
        for summary in self._monitor.history:
            if summary.id in persisted:
                continue
            session.add(_sweep_run_row(summary))
            appended += 1
        return appended

    # ------------------------------------------------------------------
    # Load
    # ------------------------------------------------------------------

    def load(self, session: Session) -> LoadStats:
        """Replace the services' state with what the tables hold."""
        batches = [m.to_dto() for m in session.scalars(select(ProductBatchModel))]
        mutations = [
            m.to_dto()
            for m in session.scalars(
                select(InventoryMutationModel).order_by(InventoryMutationModel.sequence)
            )
        ]
        self._ledger.restore(batches, mutations)

        transfers = history = []
        if self._workflow is not None:
            transfers = [m.to_dto() for m in session.scalars(select(InventoryTransferModel))]
            history = [
                m.to_dto()
                for m in session.scalars(
                    select(TransferStatusChangeModel).order_by(
                        TransferStatusChangeModel.transfer_id,
                        TransferStatusChangeModel.sequence,
                    )
                )
            ]
            self._workflow.restore(transfers, history)

        markers = []
        if self._monitor is not None:
            markers = [m.to_dto() for m in session.scalars(select(ExpiryMarkerModel))]
            self._monitor.restore(markers)

        stats = LoadStats(
            batches=len(batches),
            mutations=len(mutations),
            transfers=len(transfers),
            history=len(history),
            markers=len(markers),
        )
        logger.info(
            "state_loaded",
            extra={
                "batches": stats.batches,
                "mutations": stats.mutations,
                "transfers": stats.transfers,
                "history": stats.history,
                "markers": stats.markers,
            },
        )
        return stats


def _sweep_run_row(summary: ExpirySweepSummary) -> ExpirySweepRunModel:
    return ExpirySweepRunModel(
        id=summary.id,
        sweep_date=summary.sweep_date,
        expired_count=summary.count(ExpiryStatus.EXPIRED),
        urgent_count=summary.count(ExpiryStatus.URGENT),
        warning_count=summary.count(ExpiryStatus.WARNING),
        fresh_count=summary.count(ExpiryStatus.FRESH),
        newly_expired_count=summary.newly_expired_count,
        value_at_risk=summary.value_at_risk,
        value_lost=summary.value_lost,
    )
