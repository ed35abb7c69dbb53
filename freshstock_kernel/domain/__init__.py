"""
Pure domain layer.

This module contains frozen value objects, protocols and workflow
definitions with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O

Time enters only through an injected Clock.
"""

from freshstock_kernel.domain.batch import (
    DisposalMethod,
    ExpiryMarker,
    ExpiryStatus,
    ProductBatch,
    format_batch_number,
    next_batch_number,
)
from freshstock_kernel.domain.catalog import (
    Branch,
    CatalogLookup,
    InMemoryCatalog,
    Product,
)
from freshstock_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from freshstock_kernel.domain.mutation import InventoryMutation, MutationType
from freshstock_kernel.domain.notifications import (
    NotificationEvent,
    NotificationKind,
    NotificationSink,
    NullNotificationSink,
)
from freshstock_kernel.domain.sales import InMemorySalesHistory, SalesHistory
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
from freshstock_kernel.domain.workflow import (
    TRANSFER_WORKFLOW,
    Guard,
    Transition,
    Workflow,
)

__all__ = [
    # Time
    "Clock",
    "DeterministicClock",
    "SystemClock",
    # Catalog
    "Branch",
    "Product",
    "CatalogLookup",
    "InMemoryCatalog",
    # Batches
    "ProductBatch",
    "DisposalMethod",
    "ExpiryStatus",
    "ExpiryMarker",
    "format_batch_number",
    "next_batch_number",
    # Mutations
    "InventoryMutation",
    "MutationType",
    # Transfers
    "InventoryTransfer",
    "ShipmentLine",
    "TransferStatus",
    "TransferStatusChange",
    "TransferType",
    "TransferPriority",
    "Reservation",
    "Approver",
    "TransferRecommendation",
    "RecommendationStrategy",
    "format_transfer_number",
    # Workflow
    "Guard",
    "Transition",
    "Workflow",
    "TRANSFER_WORKFLOW",
    # External interfaces
    "SalesHistory",
    "InMemorySalesHistory",
    "NotificationEvent",
    "NotificationKind",
    "NotificationSink",
    "NullNotificationSink",
]
