"""
Tests for transfer scoring.

Covers:
- Cost model formula
- Urgency scales for both strategies
- ROI gate on expiry and imbalance candidates
- Ranking order and top-N truncation
"""

from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from freshstock_engines.transfer_scoring import (
    ScoringPolicy,
    TransferCostModel,
    expiry_urgency,
    fraction_of,
    imbalance_urgency,
    passes_roi_gate,
    rank_recommendations,
    score_expiry_candidate,
    score_imbalance_candidate,
)
from freshstock_kernel.domain.batch import ProductBatch
from freshstock_kernel.domain.catalog import Product
from freshstock_kernel.domain.transfer import RecommendationStrategy, TransferRecommendation

TODAY = date(2024, 1, 1)
TOMORROW = TODAY + timedelta(days=1)


def make_product(sell: str = "20000", buy: str = "12000", minimum: int = 10) -> Product:
    return Product(
        uuid4(), "MILK-1L", "Fresh Milk 1L",
        sell_price=Decimal(sell), buy_price=Decimal(buy), minimum_stock=minimum,
    )


def make_batch(product: Product, stock: int, expires_in: int, cost: str = "5000") -> ProductBatch:
    return ProductBatch(
        id=uuid4(),
        product_id=product.id,
        branch_id=uuid4(),
        batch_number="BATCH-20240101-001",
        initial_stock=stock,
        current_stock=stock,
        cost_per_unit=Decimal(cost),
        received_date=TODAY,
        expiry_date=TODAY + timedelta(days=expires_in),
    )


def make_recommendation(savings: str, urgency: int = 5) -> TransferRecommendation:
    return TransferRecommendation(
        strategy=RecommendationStrategy.IMBALANCE,
        source_branch_id=uuid4(),
        target_branch_id=uuid4(),
        product_id=uuid4(),
        recommended_quantity=10,
        transfer_cost=Decimal("72000"),
        potential_revenue=Decimal("200000"),
        potential_savings=Decimal(savings),
        urgency_score=urgency,
        recommended_date=TOMORROW,
    )


# =============================================================================
# Cost model and scales
# =============================================================================


class TestTransferCostModel:

    def test_default_formula(self):
        # (50000 + 50 * 1000) * 1.2
        assert TransferCostModel().transfer_cost(50) == Decimal("120000.0")

    def test_custom_parameters(self):
        model = TransferCostModel(Decimal("10"), Decimal("2"), Decimal("1"))

        assert model.transfer_cost(5) == Decimal("20")

    def test_negative_parameters_rejected(self):
        with pytest.raises(ValueError):
            TransferCostModel(base_cost=Decimal("-1"))
        with pytest.raises(ValueError):
            TransferCostModel(distance_multiplier=Decimal("0"))


class TestUrgencyScales:

    @pytest.mark.parametrize(
        "days,expected",
        [(1, 10), (2, 9), (3, 9), (5, 8), (7, 8), (10, 6), (14, 6), (20, 4), (30, 4), (45, 2)],
    )
    def test_expiry_urgency(self, days, expected):
        assert expiry_urgency(days) == expected

    @pytest.mark.parametrize(
        "stock,minimum,expected",
        [(0, 10, 10), (5, 10, 8), (6, 10, 6), (10, 10, 6), (11, 10, 3)],
    )
    def test_imbalance_urgency(self, stock, minimum, expected):
        assert imbalance_urgency(stock, minimum) == expected

    def test_fraction_rounds_down(self):
        assert fraction_of(7, Decimal("0.5")) == 3
        assert fraction_of(1, Decimal("0.5")) == 0


class TestRoiGate:

    def test_strictly_greater_required(self):
        assert not passes_roi_gate(Decimal("20"), Decimal("100"), Decimal("0.2"))
        assert passes_roi_gate(Decimal("20.01"), Decimal("100"), Decimal("0.2"))


# =============================================================================
# Candidate scoring
# =============================================================================


class TestScoreExpiryCandidate:
    """Half the batch moves to a branch with demand, if it pays."""

    def test_profitable_candidate(self):
        product = make_product()
        batch = make_batch(product, 100, expires_in=5)
        target = uuid4()

        rec = score_expiry_candidate(batch, product, target, 5, TOMORROW)

        assert rec.strategy is RecommendationStrategy.EXPIRY
        assert rec.recommended_quantity == 50
        assert rec.transfer_cost == Decimal("120000.0")
        assert rec.potential_revenue == Decimal("1000000")
        # 1,000,000 - 120,000 - 50 * 5,000
        assert rec.potential_savings == Decimal("630000.0")
        assert rec.urgency_score == 8
        assert rec.source_batch_id == batch.id
        assert rec.source_branch_id == batch.branch_id
        assert rec.target_branch_id == target
        assert rec.days_until_expiry == 5
        assert rec.recommended_date == TOMORROW
        assert rec.reasons

    def test_unprofitable_candidate_rejected(self):
        product = make_product(sell="6000")
        batch = make_batch(product, 20, expires_in=5)

        assert score_expiry_candidate(batch, product, uuid4(), 5, TOMORROW) is None

    def test_single_unit_batch_rejected(self):
        product = make_product()
        batch = make_batch(product, 1, expires_in=5)

        assert score_expiry_candidate(batch, product, uuid4(), 5, TOMORROW) is None

    def test_higher_roi_threshold_rejects(self):
        product = make_product()
        batch = make_batch(product, 100, expires_in=5)
        strict = ScoringPolicy(min_roi_ratio=Decimal("10"))

        assert score_expiry_candidate(batch, product, uuid4(), 5, TOMORROW, strict) is None


class TestScoreImbalanceCandidate:
    """min(excess, shortage) moves from surplus to shortage."""

    def test_quantity_is_min_of_excess_and_shortage(self):
        product = make_product()

        rec = score_imbalance_candidate(
            product, uuid4(), uuid4(), excess=80, shortage=15, target_stock=5,
            unit_cost=Decimal("5000"), recommended_date=TOMORROW,
        )

        assert rec.recommended_quantity == 15
        assert rec.strategy is RecommendationStrategy.IMBALANCE
        assert rec.urgency_score == 8
        assert rec.source_batch_id is None

    def test_zero_quantity_returns_none(self):
        rec = score_imbalance_candidate(
            make_product(), uuid4(), uuid4(), excess=0, shortage=10, target_stock=0,
            unit_cost=Decimal("5000"), recommended_date=TOMORROW,
        )

        assert rec is None

    def test_expensive_cost_basis_fails_gate(self):
        rec = score_imbalance_candidate(
            make_product(), uuid4(), uuid4(), excess=10, shortage=10, target_stock=0,
            unit_cost=Decimal("19000"), recommended_date=TOMORROW,
        )

        assert rec is None


class TestRanking:

    def test_savings_descending_then_urgency(self):
        low = make_recommendation("1000", urgency=9)
        high = make_recommendation("5000", urgency=2)
        tie_urgent = make_recommendation("3000", urgency=8)
        tie_calm = make_recommendation("3000", urgency=3)

        ranked = rank_recommendations([low, tie_calm, high, tie_urgent], top_n=10)

        assert ranked == (high, tie_urgent, tie_calm, low)

    def test_top_n_truncates(self):
        recs = [make_recommendation(str(1000 * i)) for i in range(1, 6)]

        ranked = rank_recommendations(recs, top_n=2)

        assert [r.potential_savings for r in ranked] == [Decimal("5000"), Decimal("4000")]

    def test_ranking_is_deterministic(self):
        recs = [make_recommendation("1000") for _ in range(5)]

        assert rank_recommendations(recs, 5) == rank_recommendations(list(reversed(recs)), 5)
