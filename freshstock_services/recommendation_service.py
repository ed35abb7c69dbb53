"""
freshstock_services.recommendation_service -- Inter-branch transfer suggestions.

Responsibility:
    Scan branches, batches and sales history and produce a ranked list of
    ``TransferRecommendation`` values from two strategies:

    * expiry-driven -- move half of a soon-to-expire batch to a branch
      whose recent demand can absorb it;
    * imbalance-driven -- move surplus from over-stocked branches to
      branches below their minimum stock.

Architecture position:
    Services -- read-only orchestration.  Gathers inputs from the
    BatchLedger, CatalogLookup and SalesHistory, delegates every
    calculation to freshstock_engines (demand, fifo, transfer_scoring)
    and memoizes the full pass through the ComputationCache.

Invariants enforced:
    - Never mutates stock or reservations.
    - Every returned recommendation passed the ROI gate.
    - Missing sales history is zero demand, never an invented figure.
    - Output order is deterministic for identical inputs.

Failure modes:
    - A failure scoring one candidate is logged and skipped; the pass
      continues and reports ``skipped_candidates``.
    - ThrottledError from ``get_recommendations``;
      ``get_recommendations_or_fallback`` converts it into a stale or
      empty result.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from decimal import Decimal
from uuid import UUID, uuid4

from freshstock_config.schema import FreshstockConfig
from freshstock_engines.demand import (
    DemandEstimate,
    OptimalStockMethod,
    calculate_optimal_stock,
    estimate_demand,
)
from freshstock_engines.fifo import allocate
from freshstock_engines.transfer_scoring import (
    ScoringPolicy,
    TransferCostModel,
    rank_recommendations,
    score_expiry_candidate,
    score_imbalance_candidate,
)
from freshstock_kernel.domain.catalog import Branch, CatalogLookup, Product
from freshstock_kernel.domain.clock import Clock
from freshstock_kernel.domain.sales import SalesHistory
from freshstock_kernel.domain.transfer import (
    RecommendationStrategy,
    TransferRecommendation,
)
from freshstock_kernel.exceptions import ThrottledError
from freshstock_kernel.logging_config import LogContext, get_logger
from freshstock_services.allocation_service import ReservationBook
from freshstock_services.batch_ledger import BatchLedger
from freshstock_services.computation_cache import CacheKey, ComputationCache

logger = get_logger("services.recommendation")

CACHE_OPERATION = "transfer_recommendations"


@dataclass(frozen=True)
class RecommendationResult:
    """One recommendation pass, or a fallback standing in for it."""
    recommendations: tuple[TransferRecommendation, ...]
    as_of: date
    generated_at: datetime | None
    skipped_candidates: int = 0
    stale: bool = False
    throttled: bool = False

    def by_strategy(self, strategy: RecommendationStrategy) -> tuple[TransferRecommendation, ...]:
        return tuple(r for r in self.recommendations if r.strategy is strategy)

    @property
    def total_potential_savings(self) -> Decimal:
        return sum((r.potential_savings for r in self.recommendations), Decimal("0"))


@dataclass(frozen=True)
class _BranchPosition:
    branch: Branch
    stock: int
    optimal: int


class TransferRecommendationEngine:
    """
    Read-only recommendation pass over all active branches.

    Contract:
        Receives ledger, catalog, sales history, clock, config and cache
        via constructor injection.  ``reservations`` is the allocator's
        book when transfers are in play; reserved units are not offered.
    Guarantees:
        - ``compute`` is a pure function of ledger, catalog, sales and
          reservations at call time plus ``as_of``.
    Non-goals:
        - Does not create transfers; see
          TransferWorkflowService.request_from_recommendation.
    """

    def __init__(
        self,
        ledger: BatchLedger,
        catalog: CatalogLookup,
        sales: SalesHistory,
        clock: Clock,
        config: FreshstockConfig | None = None,
        cache: ComputationCache | None = None,
        reservations: ReservationBook | None = None,
    ):
        config = config or FreshstockConfig()
        self._ledger = ledger
        self._catalog = catalog
        self._sales = sales
        self._clock = clock
        self._config = config.recommendation
        self._reservations = reservations or ReservationBook()
        self._cache = cache or ComputationCache(
            clock,
            ttl_seconds=config.cache.ttl_seconds,
            cooldown_seconds=config.cache.cooldown_seconds,
        )
        self._policy = ScoringPolicy(
            cost_model=TransferCostModel(
                base_cost=config.transfer_cost.base_cost,
                per_unit_cost=config.transfer_cost.per_unit_cost,
                distance_multiplier=config.transfer_cost.distance_multiplier,
            ),
            min_roi_ratio=self._config.min_roi_ratio,
            max_transfer_fraction=self._config.max_transfer_fraction,
        )
        self._method = OptimalStockMethod(self._config.optimal_stock_method)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def cache_key(self, as_of: date) -> CacheKey:
        return CacheKey(
            CACHE_OPERATION,
            {"as_of": as_of.isoformat(), "top_n": self._config.top_n},
        )

    def get_recommendations(self, as_of: date | None = None) -> RecommendationResult:
        """
        Cached recommendation pass.

        Raises:
            ThrottledError: recomputation is in flight or cooling down.
        """
        today = as_of or self._clock.today()
        return self._cache.get_or_compute(self.cache_key(today), lambda: self.compute(today))

    def get_recommendations_or_fallback(self, as_of: date | None = None) -> RecommendationResult:
        """Like ``get_recommendations`` but never raises ThrottledError."""
        today = as_of or self._clock.today()
        try:
            return self.get_recommendations(today)
        except ThrottledError as exc:
            stale = self._cache.peek_stale(self.cache_key(today))
            logger.info(
                "recommendations_fallback",
                extra={
                    "has_stale": stale is not None,
                    "retry_after_seconds": str(exc.retry_after_seconds),
                },
            )
            if stale is not None:
                return replace(stale, stale=True)
            return RecommendationResult(
                recommendations=(), as_of=today, generated_at=None, throttled=True,
            )

    def invalidate(self) -> int:
        return self._cache.invalidate_prefix(CACHE_OPERATION)

    def compute(self, as_of: date | None = None) -> RecommendationResult:
        """Run both strategies and rank the merged candidates."""
        today = as_of or self._clock.today()
        recommended_date = today + timedelta(days=self._config.execution_lead_days)
        branches = list(self._catalog.list_active_branches())

        with LogContext.bind(trace_id=uuid4()):
            memo: dict[tuple[UUID, UUID], DemandEstimate] = {}
            expiry, skipped_expiry = self._expiry_candidates(
                branches, today, recommended_date, memo,
            )
            imbalance, skipped_imbalance = self._imbalance_candidates(
                branches, today, recommended_date, memo,
            )
            ranked = rank_recommendations(expiry + imbalance, self._config.top_n)

            logger.info(
                "recommendations_computed",
                extra={
                    "as_of": today,
                    "branches": len(branches),
                    "expiry_candidates": len(expiry),
                    "imbalance_candidates": len(imbalance),
                    "skipped_candidates": skipped_expiry + skipped_imbalance,
                    "returned": len(ranked),
                },
            )

        return RecommendationResult(
            recommendations=ranked,
            as_of=today,
            generated_at=self._clock.now(),
            skipped_candidates=skipped_expiry + skipped_imbalance,
        )

    # ------------------------------------------------------------------
    # Demand
    # ------------------------------------------------------------------

    def demand(
        self,
        product_id: UUID,
        branch_id: UUID,
        as_of: date,
        memo: dict[tuple[UUID, UUID], DemandEstimate] | None = None,
    ) -> DemandEstimate:
        """Trailing-window demand; ``memo`` shares estimates within one pass."""
        key = (product_id, branch_id)
        if memo is not None and key in memo:
            return memo[key]
        window = self._config.demand_window_days
        daily = self._sales.get_daily_units_sold(
            product_id, branch_id, as_of - timedelta(days=window),
        )
        estimate = estimate_demand(daily_units=daily, window_days=window, until=as_of)
        if memo is not None:
            memo[key] = estimate
        return estimate

    # ------------------------------------------------------------------
    # Expiry strategy
    # ------------------------------------------------------------------

    def _expiry_candidates(
        self,
        branches: list[Branch],
        today: date,
        recommended_date: date,
        memo: dict[tuple[UUID, UUID], DemandEstimate],
    ) -> tuple[list[TransferRecommendation], int]:
        horizon = self._config.expiry_horizon_days
        found: list[TransferRecommendation] = []
        skipped = 0

        for source in branches:
            for batch in self._ledger.list_batches(branch_id=source.id):
                days = batch.days_until_expiry(today)
                if days is None or not 0 < days <= horizon or batch.current_stock <= 0:
                    continue
                for target in branches:
                    if target.id == source.id:
                        continue
                    try:
                        product = self._catalog.get_product(batch.product_id)
                        if not product.is_active:
                            break
                        demand = self.demand(product.id, target.id, today, memo)
                        if demand.average_daily_units <= self._config.demand_threshold:
                            continue
                        rec = score_expiry_candidate(
                            batch, product, target.id, days, recommended_date, self._policy,
                        )
                    except Exception:
                        skipped += 1
                        logger.warning(
                            "recommendation_candidate_skipped",
                            exc_info=True,
                            extra={
                                "strategy": RecommendationStrategy.EXPIRY.value,
                                "batch_id": str(batch.id),
                                "target_branch_id": str(target.id),
                            },
                        )
                        continue
                    if rec is not None:
                        found.append(rec)
        return found, skipped

    # ------------------------------------------------------------------
    # Imbalance strategy
    # ------------------------------------------------------------------

    def _imbalance_candidates(
        self,
        branches: list[Branch],
        today: date,
        recommended_date: date,
        memo: dict[tuple[UUID, UUID], DemandEstimate],
    ) -> tuple[list[TransferRecommendation], int]:
        products = list(self._catalog.list_active_products())
        sample = products[: self._config.imbalance_sample_size]
        found: list[TransferRecommendation] = []
        skipped = 0

        for product in sample:
            try:
                positions = [self._position(product, b, today, memo) for b in branches]
            except Exception:
                skipped += 1
                logger.warning(
                    "recommendation_candidate_skipped",
                    exc_info=True,
                    extra={
                        "strategy": RecommendationStrategy.IMBALANCE.value,
                        "product_id": str(product.id),
                    },
                )
                continue

            excess = [
                p for p in positions
                if p.stock > self._config.excess_multiplier * p.optimal
            ]
            short = [p for p in positions if p.stock < product.minimum_stock]

            for source in excess:
                for target in short:
                    if source.branch.id == target.branch.id:
                        continue
                    try:
                        rec = self._score_pair(product, source, target, today, recommended_date)
                    except Exception:
                        skipped += 1
                        logger.warning(
                            "recommendation_candidate_skipped",
                            exc_info=True,
                            extra={
                                "strategy": RecommendationStrategy.IMBALANCE.value,
                                "product_id": str(product.id),
                                "source_branch_id": str(source.branch.id),
                                "target_branch_id": str(target.branch.id),
                            },
                        )
                        continue
                    if rec is not None:
                        found.append(rec)
        return found, skipped

    def _unreserved(self, product_id: UUID, branch_id: UUID, today: date) -> int:
        available = self._ledger.available_stock(product_id, branch_id, as_of=today)
        return max(0, available - self._reservations.reserved_quantity(product_id, branch_id))

    def _position(
        self,
        product: Product,
        branch: Branch,
        today: date,
        memo: dict[tuple[UUID, UUID], DemandEstimate],
    ) -> _BranchPosition:
        stock = self._unreserved(product.id, branch.id, today)
        demand = None
        if self._method is OptimalStockMethod.VELOCITY:
            demand = self.demand(product.id, branch.id, today, memo)
        optimal = calculate_optimal_stock(
            product.minimum_stock,
            method=self._method,
            multiplier=self._config.optimal_stock_multiplier,
            demand=demand,
            lead_time_days=self._config.lead_time_days,
        )
        return _BranchPosition(branch=branch, stock=stock, optimal=optimal)

    def _score_pair(
        self,
        product: Product,
        source: _BranchPosition,
        target: _BranchPosition,
        today: date,
        recommended_date: date,
    ) -> TransferRecommendation | None:
        excess = source.stock - source.optimal
        shortage = target.optimal - target.stock
        quantity = min(excess, shortage)
        if quantity <= 0:
            return None

        batches = self._ledger.get_batches_for_product(product.id, source.branch.id, as_of=today)
        plan = allocate(batches=batches, requested_quantity=quantity, cap=source.stock)
        unit_cost = plan.average_unit_cost
        if unit_cost is None:
            unit_cost = product.buy_price

        return score_imbalance_candidate(
            product,
            source.branch.id,
            target.branch.id,
            excess,
            shortage,
            target.stock,
            unit_cost,
            recommended_date,
            self._policy,
        )
