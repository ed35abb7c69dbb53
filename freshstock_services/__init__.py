"""
freshstock_services -- Package init and public API.

Responsibility:
    Stateful services that compose the pure engines (freshstock_engines/)
    with in-memory state, locks, the injected clock and the notification
    sink.  This is the **only** layer that holds mutable inventory state
    or talks to a database session.

Architecture position:
    Services -- stateful orchestration over engines + kernel.

    Dependency direction:
        freshstock_services/ -> freshstock_engines/  (allowed)
        freshstock_services/ -> freshstock_kernel/   (allowed)
        freshstock_engines/  -> freshstock_services/ (FORBIDDEN)
        freshstock_kernel/   -> freshstock_services/ (FORBIDDEN)

Invariants enforced:
    - Layer isolation: freshstock_kernel and freshstock_engines never
      import from this package.
    - DI transparency: service wiring is centralised in
      InventoryOrchestrator.

Failure modes:
    - ImportError at startup if a service's dependency graph is broken.
"""

from freshstock_kernel.logging_config import get_logger

logger = get_logger("services")

from freshstock_services.allocation_service import (
    ConsumptionResult,
    FifoAllocator,
    ReservationBook,
)
from freshstock_services.batch_ledger import BatchLedger
from freshstock_services.computation_cache import CacheKey, CacheStats, ComputationCache
from freshstock_services.disposal_service import (
    DisposalItemResult,
    DisposalManager,
    DisposalResult,
)
from freshstock_services.expiry_monitor import ExpiryMonitor, ExpirySweepSummary
from freshstock_services.inventory_orchestrator import (
    InventoryOrchestrator,
    build_inventory_orchestrator,
)
from freshstock_services.notifier import NotificationDispatcher
from freshstock_services.persistence_service import LedgerPersistence, LoadStats, SaveStats
from freshstock_services.recommendation_service import (
    RecommendationResult,
    TransferRecommendationEngine,
)
from freshstock_services.transfer_workflow import TransferWorkflowService

__all__ = [
    "BatchLedger",
    "CacheKey",
    "CacheStats",
    "ComputationCache",
    "ConsumptionResult",
    "DisposalItemResult",
    "DisposalManager",
    "DisposalResult",
    "ExpiryMonitor",
    "ExpirySweepSummary",
    "FifoAllocator",
    "InventoryOrchestrator",
    "LedgerPersistence",
    "LoadStats",
    "NotificationDispatcher",
    "RecommendationResult",
    "ReservationBook",
    "SaveStats",
    "TransferRecommendationEngine",
    "TransferWorkflowService",
    "build_inventory_orchestrator",
]
