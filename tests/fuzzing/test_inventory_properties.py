"""
Hypothesis-based property tests for the inventory core.

Properties checked:
- FIFO order: expiry ascending, undated batches last, stable tie-breaks
- Allocation: allocated + shortage == requested, never above stock or cap,
  at most one partially consumed batch
- Ledger: stock stays within [0, initial_stock] and every mutation
  satisfies stock_after == stock_before + quantity
- ROI gate: no scored recommendation violates it
- Expiry bands: fewer days left never yields a fresher band
- Transfer workflow: any action sequence ends in a state reachable
  through TRANSFER_WORKFLOW, with one history row per accepted action
"""

from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st
from hypothesis.strategies import composite

from freshstock_engines.expiry import classify_days
from freshstock_engines.fifo import allocate, fifo_key, fifo_sort
from freshstock_engines.transfer_scoring import (
    ScoringPolicy,
    passes_roi_gate,
    score_expiry_candidate,
)
from freshstock_kernel.domain.batch import ExpiryStatus, ProductBatch
from freshstock_kernel.domain.catalog import Branch, InMemoryCatalog, Product
from freshstock_kernel.domain.clock import DeterministicClock
from freshstock_kernel.domain.mutation import MutationType
from freshstock_kernel.domain.transfer import Approver, TransferStatus
from freshstock_kernel.domain.workflow import TRANSFER_WORKFLOW
from freshstock_kernel.exceptions import FreshstockError
from freshstock_services.batch_ledger import BatchLedger
from freshstock_services.transfer_workflow import TransferWorkflowService

pytestmark = pytest.mark.slow

TODAY = date(2024, 1, 1)
PRODUCT_ID = uuid4()
BRANCH_ID = uuid4()

BAND_FRESHNESS = {
    ExpiryStatus.EXPIRED: 0,
    ExpiryStatus.URGENT: 1,
    ExpiryStatus.WARNING: 2,
    ExpiryStatus.FRESH: 3,
}


# =============================================================================
# Strategies
# =============================================================================


@composite
def batches(draw):
    """A ProductBatch of one product at one branch with random dates and stock."""
    initial = draw(st.integers(min_value=1, max_value=60))
    expiry_offset = draw(st.one_of(st.none(), st.integers(min_value=-5, max_value=60)))
    return ProductBatch(
        id=uuid4(),
        product_id=PRODUCT_ID,
        branch_id=BRANCH_ID,
        batch_number=f"BATCH-20240101-{draw(st.integers(min_value=1, max_value=999)):03d}",
        initial_stock=initial,
        current_stock=draw(st.integers(min_value=0, max_value=initial)),
        cost_per_unit=Decimal(draw(st.integers(min_value=0, max_value=20000))),
        received_date=TODAY - timedelta(days=draw(st.integers(min_value=0, max_value=10))),
        expiry_date=None if expiry_offset is None else TODAY + timedelta(days=expiry_offset),
    )


money = st.integers(min_value=0, max_value=200000).map(Decimal)


# =============================================================================
# FIFO ordering and allocation
# =============================================================================


class TestFifoProperties:

    @given(st.lists(batches(), max_size=20))
    def test_order_is_expiry_ascending_with_undated_last(self, items):
        ordered = fifo_sort(items)

        dated = [b for b in ordered if b.expiry_date is not None]
        undated = [b for b in ordered if b.expiry_date is None]
        assert ordered == dated + undated
        assert [b.expiry_date for b in dated] == sorted(b.expiry_date for b in dated)

    @given(st.lists(batches(), max_size=20))
    def test_order_ignores_input_order(self, items):
        assert fifo_sort(items) == fifo_sort(list(reversed(items)))

    @given(
        st.lists(batches(), max_size=15),
        st.integers(min_value=1, max_value=500),
        st.one_of(st.none(), st.integers(min_value=0, max_value=500)),
    )
    def test_allocation_accounting(self, items, requested, cap):
        plan = allocate(batches=items, requested_quantity=requested, cap=cap)

        total_stock = sum(b.current_stock for b in items)
        limit = requested if cap is None else min(cap, requested)
        assert plan.allocated_quantity == min(limit, total_stock)
        assert plan.allocated_quantity + plan.shortage == requested
        assert all(line.quantity > 0 for line in plan.lines)

    @given(st.lists(batches(), max_size=15), st.integers(min_value=1, max_value=500))
    def test_only_last_line_is_partial(self, items, requested):
        plan = allocate(batches=items, requested_quantity=requested)

        stock = {b.id: b.current_stock for b in items}
        full = [line.quantity == stock[line.batch_id] for line in plan.lines]
        assert all(full[:-1])

    @given(st.lists(batches(), max_size=15), st.integers(min_value=1, max_value=500))
    def test_lines_follow_fifo_order(self, items, requested):
        plan = allocate(batches=items, requested_quantity=requested)

        by_id = {b.id: b for b in items}
        keys = [fifo_key(by_id[line.batch_id]) for line in plan.lines]
        assert keys == sorted(keys)


# =============================================================================
# Ledger stock invariant
# =============================================================================


class TestLedgerProperties:

    @settings(max_examples=50, suppress_health_check=[HealthCheck.too_slow])
    @given(
        st.integers(min_value=1, max_value=50),
        st.lists(st.integers(min_value=-30, max_value=30).filter(lambda d: d != 0), max_size=30),
    )
    def test_stock_stays_in_range(self, initial, deltas):
        ledger = BatchLedger(DeterministicClock())
        actor = uuid4()
        batch = ledger.create_batch(
            product_id=PRODUCT_ID,
            branch_id=BRANCH_ID,
            initial_stock=initial,
            cost_per_unit=Decimal("1000"),
            received_date=TODAY,
            expiry_date=TODAY + timedelta(days=10),
            actor_id=actor,
        )

        expected = initial
        for delta in deltas:
            mutation_type = MutationType.SALE if delta < 0 else MutationType.ADJUSTMENT
            try:
                ledger.adjust_stock(batch.id, delta, mutation_type, actor)
            except FreshstockError:
                assert not 0 <= expected + delta <= initial
                continue
            expected += delta

        current = ledger.get_batch(batch.id).current_stock
        assert current == expected
        assert 0 <= current <= initial
        mutations = ledger.get_mutations(batch.id)
        assert initial + sum(m.quantity for m in mutations) == current
        for m in mutations:
            assert m.stock_after == m.stock_before + m.quantity


# =============================================================================
# Recommendation economics
# =============================================================================


class TestScoringProperties:

    @given(
        batches(),
        money,
        st.integers(min_value=1, max_value=30),
        st.sampled_from([Decimal("0"), Decimal("0.2"), Decimal("1")]),
    )
    def test_roi_gate_never_violated(self, batch, sell_price, days, min_roi):
        product = Product(PRODUCT_ID, "P", "Product", sell_price=sell_price, buy_price=Decimal("0"))
        policy = ScoringPolicy(min_roi_ratio=min_roi)

        rec = score_expiry_candidate(batch, product, uuid4(), days, TODAY, policy)

        if rec is not None:
            assert passes_roi_gate(rec.potential_savings, rec.transfer_cost, min_roi)
            assert rec.recommended_quantity == batch.current_stock // 2
            assert 1 <= rec.urgency_score <= 10

    @given(
        st.integers(min_value=-10, max_value=60),
        st.integers(min_value=-10, max_value=60),
    )
    def test_bands_monotonic_in_days(self, a, b):
        sooner, later = sorted((a, b))

        assert BAND_FRESHNESS[classify_days(sooner)] <= BAND_FRESHNESS[classify_days(later)]


# =============================================================================
# Workflow legality
# =============================================================================


ACTIONS = ("approve", "reject", "cancel", "ship", "receive")


class TestWorkflowProperties:

    @settings(max_examples=60, suppress_health_check=[HealthCheck.too_slow])
    @given(st.lists(st.sampled_from(ACTIONS), max_size=8))
    def test_status_follows_declared_transitions(self, actions):
        clock = DeterministicClock()
        source = Branch(uuid4(), "SRC", "Source")
        destination = Branch(uuid4(), "DST", "Destination")
        product = Product(uuid4(), "P", "Product", sell_price=Decimal("10"), buy_price=Decimal("5"))
        catalog = InMemoryCatalog(branches=[source, destination], products=[product])
        ledger = BatchLedger(clock)
        service = TransferWorkflowService(ledger, catalog, clock)
        actor = uuid4()
        ledger.create_batch(
            product_id=product.id,
            branch_id=source.id,
            initial_stock=10,
            cost_per_unit=Decimal("5"),
            received_date=TODAY,
            expiry_date=TODAY + timedelta(days=10),
            actor_id=actor,
        )
        transfer = service.request_transfer(source.id, destination.id, product.id, 4, actor)
        admin = Approver(actor_id=uuid4(), role="admin")

        state = TRANSFER_WORKFLOW.initial_state
        accepted = 0
        for action in actions:
            legal = TRANSFER_WORKFLOW.find_transition(state, action)
            try:
                if action == "approve":
                    service.approve(transfer.id, admin)
                else:
                    getattr(service, action)(transfer.id, actor)
            except FreshstockError:
                assert legal is None
                continue
            assert legal is not None
            state = legal.to_state
            accepted += 1

        final = service.get_transfer(transfer.id)
        assert final.status is TransferStatus(state)
        assert len(service.get_status_history(transfer.id)) == accepted + 1
        expected_reserved = 4 if final.status is TransferStatus.APPROVED else 0
        assert service.reservations.reserved_quantity(product.id, source.id) == expected_reserved
