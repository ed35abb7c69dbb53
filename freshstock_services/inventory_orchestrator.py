"""
freshstock_services.inventory_orchestrator -- Central DI container for the services.

Responsibility:
    Creates every service exactly once and wires them together.  No
    service creates its collaborators when the orchestrator supplies them.

Architecture position:
    Services -- top of the service layer; the only place where services
    are constructed and composed.

Invariants enforced:
    - Single instances: one ledger, one reservation book (shared by the
      allocator, the workflow and the recommendation engine), one cache,
      one dispatcher.
    - DI transparency: all wiring is visible in ``__init__``.

Usage:
    orchestrator = InventoryOrchestrator(catalog, sales, clock=clock)
    orchestrator.ledger.create_batch(...)
    orchestrator.expiry_monitor.run_sweep()
    orchestrator.recommendations.get_recommendations_or_fallback()
"""

from __future__ import annotations

from pathlib import Path
from uuid import UUID

from freshstock_config.schema import FreshstockConfig
from freshstock_kernel.domain.catalog import CatalogLookup
from freshstock_kernel.domain.clock import Clock, SystemClock
from freshstock_kernel.domain.notifications import NotificationSink
from freshstock_kernel.domain.sales import SalesHistory
from freshstock_kernel.logging_config import get_logger
from freshstock_services.allocation_service import FifoAllocator, ReservationBook
from freshstock_services.batch_ledger import BatchLedger
from freshstock_services.computation_cache import ComputationCache
from freshstock_services.disposal_service import DisposalManager
from freshstock_services.expiry_monitor import ExpiryMonitor
from freshstock_services.notifier import NotificationDispatcher
from freshstock_services.persistence_service import LedgerPersistence
from freshstock_services.recommendation_service import TransferRecommendationEngine
from freshstock_services.transfer_workflow import TransferWorkflowService

logger = get_logger("services.orchestrator")


class InventoryOrchestrator:
    """All services for one deployment, sharing one ledger and one clock."""

    def __init__(
        self,
        catalog: CatalogLookup,
        sales: SalesHistory,
        clock: Clock | None = None,
        config: FreshstockConfig | None = None,
        sink: NotificationSink | None = None,
    ):
        self.clock = clock or SystemClock()
        self.config = config or FreshstockConfig.with_defaults()
        self.catalog = catalog
        self.sales = sales

        self.notifier = NotificationDispatcher(sink, self.clock)
        self.ledger = BatchLedger(self.clock)
        self.reservations = ReservationBook()
        self.allocator = FifoAllocator(self.ledger, self.clock, self.reservations)
        self.cache = ComputationCache(
            self.clock,
            ttl_seconds=self.config.cache.ttl_seconds,
            cooldown_seconds=self.config.cache.cooldown_seconds,
        )
        self.expiry_monitor = ExpiryMonitor(
            self.ledger, self.clock, self.notifier, self.config.expiry,
        )
        self.disposal = DisposalManager(self.ledger, self.clock, self.notifier)
        self.recommendations = TransferRecommendationEngine(
            self.ledger,
            catalog,
            sales,
            self.clock,
            config=self.config,
            cache=self.cache,
            reservations=self.reservations,
        )
        self.transfers = TransferWorkflowService(
            self.ledger,
            catalog,
            self.clock,
            allocator=self.allocator,
            notifier=self.notifier,
            config=self.config,
        )

        logger.info(
            "inventory_orchestrator_created",
            extra={"clock": type(self.clock).__name__},
        )

    def persistence(self, actor_id: UUID | None = None) -> LedgerPersistence:
        return LedgerPersistence(
            self.ledger, self.transfers, self.expiry_monitor, actor_id=actor_id,
        )


def build_inventory_orchestrator(
    catalog: CatalogLookup,
    sales: SalesHistory,
    config_path: Path | None = None,
    clock: Clock | None = None,
    sink: NotificationSink | None = None,
) -> InventoryOrchestrator:
    """Build an orchestrator from a YAML config (packaged defaults when no path)."""
    from freshstock_config.loader import load_config

    config = load_config(config_path)
    return InventoryOrchestrator(catalog, sales, clock=clock, config=config, sink=sink)
