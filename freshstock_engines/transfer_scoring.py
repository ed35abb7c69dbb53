"""
Module: freshstock_engines.transfer_scoring
Responsibility:
    Cost model, urgency scales, ROI gate and candidate scoring for
    inter-branch transfer recommendations.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    The recommendation service gathers inputs (batches, demand, stock)
    and passes them here; this module never reads the clock or ledger.

Invariants enforced:
    - transfer_cost = (base_cost + quantity * per_unit_cost) * distance_multiplier.
    - potential_savings = revenue - transfer_cost - quantity * unit_cost.
    - A candidate survives only if potential_savings > min_roi_ratio * transfer_cost.
    - urgency_score is always within 1..10.

Failure modes:
    - ValueError on negative cost parameters.
    - Scoring functions return None for candidates that fail the ROI gate
      or whose quantity rounds to zero.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import ROUND_FLOOR, Decimal
from uuid import UUID

from freshstock_kernel.domain.batch import ProductBatch
from freshstock_kernel.domain.catalog import Product
from freshstock_kernel.domain.transfer import (
    RecommendationStrategy,
    TransferRecommendation,
)

EXPIRY_REASONS: tuple[str, ...] = (
    "Prevent expiry waste at source branch",
    "Meet demand at target branch",
    "Optimize inventory distribution",
)

IMBALANCE_REASONS: tuple[str, ...] = (
    "Stock imbalance optimization",
    "Prevent stockout at target branch",
    "Reduce excess inventory at source branch",
)


@dataclass(frozen=True)
class TransferCostModel:
    """Linear handling cost with a fixed distance multiplier."""
    base_cost: Decimal = Decimal("50000")
    per_unit_cost: Decimal = Decimal("1000")
    distance_multiplier: Decimal = Decimal("1.2")

    def __post_init__(self) -> None:
        if self.base_cost < 0:
            raise ValueError("base_cost cannot be negative")
        if self.per_unit_cost < 0:
            raise ValueError("per_unit_cost cannot be negative")
        if self.distance_multiplier <= 0:
            raise ValueError("distance_multiplier must be positive")

    def transfer_cost(self, quantity: int) -> Decimal:
        return (self.base_cost + quantity * self.per_unit_cost) * self.distance_multiplier


def expiry_urgency(days_until_expiry: int) -> int:
    """Urgency for the expiry strategy; fewer days means more urgent."""
    if days_until_expiry <= 1:
        return 10
    if days_until_expiry <= 3:
        return 9
    if days_until_expiry <= 7:
        return 8
    if days_until_expiry <= 14:
        return 6
    if days_until_expiry <= 30:
        return 4
    return 2


def imbalance_urgency(target_stock: int, minimum_stock: int) -> int:
    """Urgency for the imbalance strategy, by how deep the shortage is."""
    if target_stock <= 0:
        return 10
    if target_stock * 2 <= minimum_stock:
        return 8
    if target_stock <= minimum_stock:
        return 6
    return 3


def passes_roi_gate(
    potential_savings: Decimal,
    transfer_cost: Decimal,
    min_roi_ratio: Decimal,
) -> bool:
    return potential_savings > min_roi_ratio * transfer_cost


def fraction_of(stock: int, fraction: Decimal) -> int:
    """Whole units of ``fraction`` of ``stock``, rounded down."""
    return int((Decimal(stock) * fraction).to_integral_value(rounding=ROUND_FLOOR))


@dataclass(frozen=True)
class ScoringPolicy:
    """Economic knobs shared by both strategies."""
    cost_model: TransferCostModel = TransferCostModel()
    min_roi_ratio: Decimal = Decimal("0.2")
    max_transfer_fraction: Decimal = Decimal("0.5")


def score_expiry_candidate(
    batch: ProductBatch,
    product: Product,
    target_branch_id: UUID,
    days_until_expiry: int,
    recommended_date: date,
    policy: ScoringPolicy = ScoringPolicy(),
) -> TransferRecommendation | None:
    """
    Score moving part of a soon-to-expire batch to a branch with demand.

    Returns None when the quantity is zero or the ROI gate rejects it.
    """
    quantity = fraction_of(batch.current_stock, policy.max_transfer_fraction)
    if quantity <= 0:
        return None

    cost = policy.cost_model.transfer_cost(quantity)
    revenue = quantity * product.sell_price
    savings = revenue - cost - quantity * batch.cost_per_unit
    if not passes_roi_gate(savings, cost, policy.min_roi_ratio):
        return None

    return TransferRecommendation(
        strategy=RecommendationStrategy.EXPIRY,
        source_branch_id=batch.branch_id,
        target_branch_id=target_branch_id,
        product_id=batch.product_id,
        recommended_quantity=quantity,
        transfer_cost=cost,
        potential_revenue=revenue,
        potential_savings=savings,
        urgency_score=expiry_urgency(days_until_expiry),
        recommended_date=recommended_date,
        reasons=EXPIRY_REASONS,
        source_batch_id=batch.id,
        batch_number=batch.batch_number,
        days_until_expiry=days_until_expiry,
    )


def score_imbalance_candidate(
    product: Product,
    source_branch_id: UUID,
    target_branch_id: UUID,
    excess: int,
    shortage: int,
    target_stock: int,
    unit_cost: Decimal,
    recommended_date: date,
    policy: ScoringPolicy = ScoringPolicy(),
) -> TransferRecommendation | None:
    """
    Score moving surplus from an over-stocked branch to an under-stocked one.

    ``unit_cost`` is the cost basis of the units that would leave the
    source (FIFO preview, or the catalog buy price as a fallback).
    """
    quantity = min(excess, shortage)
    if quantity <= 0:
        return None

    cost = policy.cost_model.transfer_cost(quantity)
    revenue = quantity * product.sell_price
    savings = revenue - cost - quantity * unit_cost
    if not passes_roi_gate(savings, cost, policy.min_roi_ratio):
        return None

    return TransferRecommendation(
        strategy=RecommendationStrategy.IMBALANCE,
        source_branch_id=source_branch_id,
        target_branch_id=target_branch_id,
        product_id=product.id,
        recommended_quantity=quantity,
        transfer_cost=cost,
        potential_revenue=revenue,
        potential_savings=savings,
        urgency_score=imbalance_urgency(target_stock, product.minimum_stock),
        recommended_date=recommended_date,
        reasons=IMBALANCE_REASONS,
    )


def recommendation_sort_key(rec: TransferRecommendation) -> tuple:
    """Savings desc, urgency desc, then ids for a stable order."""
    return (
        -rec.potential_savings,
        -rec.urgency_score,
        str(rec.source_branch_id),
        str(rec.target_branch_id),
        str(rec.product_id),
        str(rec.source_batch_id or ""),
    )


def rank_recommendations(
    recommendations: list[TransferRecommendation],
    top_n: int,
) -> tuple[TransferRecommendation, ...]:
    return tuple(sorted(recommendations, key=recommendation_sort_key)[:top_n])
