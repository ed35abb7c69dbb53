"""
Tests for ExpiryMonitor.

Covers:
- Sweep counts, value at risk and value lost
- Transition-only notifications
- Same-day idempotence and day-over-day progression
- list_expiring horizon and ordering
- Marker restore after a restart
"""

from datetime import timedelta
from decimal import Decimal

from freshstock_kernel.domain.batch import DisposalMethod, ExpiryMarker, ExpiryStatus
from freshstock_kernel.domain.mutation import MutationType
from freshstock_kernel.domain.notifications import NotificationKind
from freshstock_services.expiry_monitor import ExpiryMonitor
from freshstock_services.notifier import NotificationDispatcher


class TestRunSweep:
    """Daily classification of all non-disposed batches."""

    def test_counts_by_band(self, expiry_monitor, receive_batch, milk, jakarta):
        receive_batch(milk, jakarta, 10, expires_in=-1)
        receive_batch(milk, jakarta, 10, expires_in=2)
        receive_batch(milk, jakarta, 10, expires_in=6)
        receive_batch(milk, jakarta, 10, expires_in=30)
        receive_batch(milk, jakarta, 10, expires_in=None)

        summary = expiry_monitor.run_sweep()

        assert summary.count(ExpiryStatus.EXPIRED) == 1
        assert summary.count(ExpiryStatus.URGENT) == 1
        assert summary.count(ExpiryStatus.WARNING) == 1
        assert summary.count(ExpiryStatus.FRESH) == 1
        assert summary.count(ExpiryStatus.NO_EXPIRY) == 1

    def test_values(self, expiry_monitor, receive_batch, milk, jakarta):
        receive_batch(milk, jakarta, 4, expires_in=0, cost=Decimal("1000"))
        receive_batch(milk, jakarta, 10, expires_in=3, cost=Decimal("2000"))
        receive_batch(milk, jakarta, 5, expires_in=7, cost=Decimal("3000"))
        receive_batch(milk, jakarta, 99, expires_in=20, cost=Decimal("3000"))

        summary = expiry_monitor.run_sweep()

        assert summary.value_lost == Decimal("4000")
        assert summary.value_at_risk == Decimal("35000")

    def test_disposed_batches_ignored(self, expiry_monitor, ledger, receive_batch, milk, jakarta, test_actor_id):
        batch = receive_batch(milk, jakarta, 10, expires_in=-1)
        ledger.mark_disposed(batch.id, test_actor_id, DisposalMethod.WASTE_DISPOSAL)

        summary = expiry_monitor.run_sweep()

        assert summary.count(ExpiryStatus.EXPIRED) == 0

    def test_notifications_on_transitions(self, expiry_monitor, receive_batch, milk, jakarta, sink):
        receive_batch(milk, jakarta, 10, expires_in=-1)
        receive_batch(milk, jakarta, 10, expires_in=2)
        receive_batch(milk, jakarta, 10, expires_in=6)
        receive_batch(milk, jakarta, 10, expires_in=30)

        summary = expiry_monitor.run_sweep()

        assert summary.notifications_sent == 3
        assert len(sink.of_kind(NotificationKind.EXPIRY_EXPIRED)) == 1
        assert len(sink.of_kind(NotificationKind.EXPIRY_URGENT)) == 1
        assert len(sink.of_kind(NotificationKind.EXPIRY_WARNING)) == 1
        urgent = sink.of_kind(NotificationKind.EXPIRY_URGENT)[0]
        assert urgent.branch_id == jakarta.id
        assert urgent.payload["days_until_expiry"] == 2

    def test_same_day_rerun_is_idempotent(self, expiry_monitor, receive_batch, milk, jakarta, sink):
        receive_batch(milk, jakarta, 10, expires_in=0)
        receive_batch(milk, jakarta, 10, expires_in=2)

        first = expiry_monitor.run_sweep()
        events_after_first = len(sink.events)
        second = expiry_monitor.run_sweep()

        assert first.newly_expired_count == 1
        assert second.newly_expired_count == 0
        assert second.counts == first.counts
        assert second.value_lost == Decimal("0")
        assert len(sink.events) == events_after_first

    def test_next_day_reports_new_transitions(self, expiry_monitor, receive_batch, milk, jakarta, deterministic_clock, sink):
        batch = receive_batch(milk, jakarta, 10, expires_in=1)
        expiry_monitor.run_sweep()

        deterministic_clock.advance_days(1)
        summary = expiry_monitor.run_sweep()

        assert summary.newly_expired_batch_ids == (batch.id,)
        assert expiry_monitor.marker(batch.id).status is ExpiryStatus.EXPIRED
        assert expiry_monitor.marker(batch.id).classified_on == deterministic_clock.today()
        assert len(sink.of_kind(NotificationKind.EXPIRY_EXPIRED)) == 1

    def test_staying_in_band_does_not_renotify(self, expiry_monitor, receive_batch, milk, jakarta, deterministic_clock, sink):
        receive_batch(milk, jakarta, 10, expires_in=7)
        expiry_monitor.run_sweep()

        deterministic_clock.advance_days(1)
        expiry_monitor.run_sweep()

        assert len(sink.of_kind(NotificationKind.EXPIRY_WARNING)) == 1

    def test_history_and_last_sweep_date(self, expiry_monitor, today):
        expiry_monitor.run_sweep()
        expiry_monitor.run_sweep()

        assert len(expiry_monitor.history) == 2
        assert expiry_monitor.last_sweep_date == today
        assert expiry_monitor.history[0].id != expiry_monitor.history[1].id

    def test_failing_sink_does_not_fail_sweep(self, ledger, deterministic_clock, receive_batch, milk, jakarta, failing_sink):
        monitor = ExpiryMonitor(
            ledger, deterministic_clock, NotificationDispatcher(failing_sink, deterministic_clock),
        )
        receive_batch(milk, jakarta, 10, expires_in=-1)

        summary = monitor.run_sweep()

        assert summary.newly_expired_count == 1
        assert summary.notifications_sent == 0
        assert failing_sink.attempts == 1

    def test_sweep_logged(self, expiry_monitor, receive_batch, milk, jakarta, captured_logs):
        receive_batch(milk, jakarta, 10, expires_in=-1)

        expiry_monitor.run_sweep()

        [record] = [r for r in captured_logs() if r["message"] == "expiry_sweep_completed"]
        assert record["expired"] == 1
        assert record["newly_expired"] == 1


class TestListExpiring:

    def test_horizon_and_order(self, expiry_monitor, receive_batch, milk, jakarta):
        receive_batch(milk, jakarta, 10, expires_in=0)
        later = receive_batch(milk, jakarta, 10, expires_in=12)
        sooner = receive_batch(milk, jakarta, 10, expires_in=3)
        receive_batch(milk, jakarta, 10, expires_in=40)
        receive_batch(milk, jakarta, 10, expires_in=None)

        result = expiry_monitor.list_expiring(within_days=30)

        assert [c.batch.id for c in result] == [sooner.id, later.id]
        assert result[0].status is ExpiryStatus.URGENT

    def test_empty_batches_excluded(self, expiry_monitor, ledger, receive_batch, milk, jakarta, test_actor_id):
        batch = receive_batch(milk, jakarta, 3, expires_in=3)
        ledger.adjust_stock(batch.id, -3, MutationType.SALE, test_actor_id)

        assert expiry_monitor.list_expiring(within_days=30) == []

    def test_branch_filter(self, expiry_monitor, receive_batch, milk, jakarta, bandung):
        receive_batch(milk, jakarta, 10, expires_in=3)
        mine = receive_batch(milk, bandung, 10, expires_in=3)

        result = expiry_monitor.list_expiring(within_days=30, branch_id=bandung.id)

        assert [c.batch.id for c in result] == [mine.id]


class TestRestore:

    def test_restored_markers_prevent_double_count(self, ledger, deterministic_clock, receive_batch, milk, jakarta, today):
        batch = receive_batch(milk, jakarta, 10, expires_in=-1)
        monitor = ExpiryMonitor(ledger, deterministic_clock)
        monitor.restore([ExpiryMarker(batch.id, ExpiryStatus.EXPIRED, today - timedelta(days=1))])

        summary = monitor.run_sweep()

        assert summary.newly_expired_count == 0
        assert summary.value_lost == Decimal("0")

    def test_restore_sets_last_sweep_date(self, ledger, deterministic_clock, receive_batch, milk, jakarta, today):
        batch = receive_batch(milk, jakarta, 10, expires_in=20)
        monitor = ExpiryMonitor(ledger, deterministic_clock)
        yesterday = today - timedelta(days=1)

        monitor.restore([ExpiryMarker(batch.id, ExpiryStatus.FRESH, yesterday)])

        assert monitor.last_sweep_date == yesterday
        assert monitor.marker(batch.id).status is ExpiryStatus.FRESH
