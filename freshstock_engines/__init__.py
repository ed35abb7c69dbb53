"""
Module: freshstock_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    calculation engines.  This is the import surface for freshstock_services.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import freshstock_kernel domain types, exceptions and logging.
    MUST NOT import freshstock_services or freshstock_config.

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()`` or ``date.today()``.
      Dates are passed in by the services.
    - Decimal-only arithmetic for money.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Engine calls are traced via ``@traced_engine`` (see
    ``freshstock_engines.tracer``), emitting FRESHSTOCK_ENGINE_TRACE records.
"""

from freshstock_engines.approval import (
    ApprovalEvaluation,
    ApprovalPolicy,
    evaluate_approval_authority,
)
from freshstock_engines.demand import (
    DemandEstimate,
    OptimalStockMethod,
    calculate_optimal_stock,
    calculate_reorder_point,
    estimate_demand,
)
from freshstock_engines.distance import DistanceTable, estimate_delivery_date
from freshstock_engines.expiry import (
    ClassifiedBatch,
    ExpiryThresholds,
    classify_batch,
    classify_batches,
    classify_days,
)
from freshstock_engines.fifo import (
    AllocationLine,
    AllocationPlan,
    allocate,
    fifo_key,
    fifo_sort,
)
from freshstock_engines.tracer import traced_engine
from freshstock_engines.transfer_scoring import (
    ScoringPolicy,
    TransferCostModel,
    expiry_urgency,
    imbalance_urgency,
    passes_roi_gate,
    rank_recommendations,
    score_expiry_candidate,
    score_imbalance_candidate,
)

__all__ = [
    "traced_engine",
    # FIFO
    "AllocationLine",
    "AllocationPlan",
    "allocate",
    "fifo_key",
    "fifo_sort",
    # Expiry
    "ClassifiedBatch",
    "ExpiryThresholds",
    "classify_batch",
    "classify_batches",
    "classify_days",
    # Demand
    "DemandEstimate",
    "OptimalStockMethod",
    "calculate_optimal_stock",
    "calculate_reorder_point",
    "estimate_demand",
    # Scoring
    "ScoringPolicy",
    "TransferCostModel",
    "expiry_urgency",
    "imbalance_urgency",
    "passes_roi_gate",
    "rank_recommendations",
    "score_expiry_candidate",
    "score_imbalance_candidate",
    # Distance
    "DistanceTable",
    "estimate_delivery_date",
    # Approval
    "ApprovalEvaluation",
    "ApprovalPolicy",
    "evaluate_approval_authority",
]
