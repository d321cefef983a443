"""Tests for the expired-checkout sweep."""

from datetime import UTC, datetime, timedelta

import pytest
from marketplace.ordering.order import Order, OrderStatus
from protean import current_domain


def _later(minutes=31):
    return datetime.now(UTC) + timedelta(minutes=minutes)


def _status(order_id):
    return current_domain.repository_for(Order).get_by_id(order_id).status


@pytest.fixture
def magazine_id(register_magazine):
    return register_magazine(quantity=5)


@pytest.fixture
def pending(checkout, magazine_id):
    return checkout([{"magazine_id": magazine_id, "quantity": 2}])


class TestExpiredCheckoutSweep:
    def test_unpaid_expired_order_is_cancelled(self, sweeper, pending, available, magazine_id, gateway):
        report = sweeper.sweep(now=_later())

        assert report.cancelled == [pending.order_id]
        assert _status(pending.order_id) == "cancelled"
        assert available(magazine_id) == 5
        assert gateway.sessions[pending.session_id]["status"] == "expired"

    def test_cancellation_cause_is_expired(self, sweeper, pending):
        sweeper.sweep(now=_later())
        order = current_domain.repository_for(Order).get_by_id(pending.order_id)
        assert order.status_reason == "expired"

    def test_paid_order_with_lost_notification_is_confirmed(self, sweeper, pending, gateway, available, magazine_id):
        gateway.complete_session(pending.session_id)

        report = sweeper.sweep(now=_later())

        assert report.confirmed == [pending.order_id]
        assert _status(pending.order_id) == "confirmed"
        assert available(magazine_id) == 3

    def test_unexpired_orders_are_left_alone(self, sweeper, pending):
        report = sweeper.sweep(now=_later(minutes=5))

        assert report.total == 0
        assert _status(pending.order_id) == "pending"

    def test_gateway_outage_skips_the_order(self, sweeper, pending, gateway, available, magazine_id):
        gateway.fail_next("retrieve_session", times=3)

        report = sweeper.sweep(now=_later())

        assert report.skipped == [pending.order_id]
        assert _status(pending.order_id) == "pending"
        assert available(magazine_id) == 3

    def test_skipped_order_is_resolved_on_next_sweep(self, sweeper, pending, gateway):
        gateway.fail_next("retrieve_session", times=3)
        sweeper.sweep(now=_later())

        report = sweeper.sweep(now=_later())

        assert report.cancelled == [pending.order_id]

    def test_confirmed_orders_are_not_swept(self, sweeper, paid_order):
        report = sweeper.sweep(now=_later())
        assert report.total == 0
        assert _status(paid_order.order_id) == "confirmed"


class TestInterruptedStockRelease:
    @pytest.fixture
    def half_released(self, lifecycle, checkout, register_magazine, failing_release):
        m1 = register_magazine(title="Coastal Living", quantity=5)
        m2 = register_magazine(title="Garden Monthly", quantity=5)
        result = checkout([{"magazine_id": m1, "quantity": 2}, {"magazine_id": m2, "quantity": 3}])
        with failing_release(m1):
            with pytest.raises(RuntimeError):
                lifecycle.transition(result.order_id, OrderStatus.CANCELLED, "retailer-request")
        return result.order_id, m1, m2

    def test_sweep_releases_outstanding_stock(self, sweeper, half_released, available):
        order_id, m1, m2 = half_released

        report = sweeper.sweep(now=_later())

        assert report.released == [order_id]
        assert available(m1) == 5
        assert available(m2) == 5
        assert current_domain.repository_for(Order).get_by_id(order_id).unreleased_items == []

    def test_order_stays_outstanding_while_release_keeps_failing(
        self, sweeper, half_released, available, failing_release
    ):
        order_id, m1, _ = half_released

        with failing_release(m1):
            report = sweeper.sweep(now=_later())

        assert report.skipped == [order_id]
        assert available(m1) == 3

        report = sweeper.sweep(now=_later())
        assert report.released == [order_id]
        assert available(m1) == 5

    def test_fully_released_orders_are_not_revisited(self, sweeper, lifecycle, pending):
        lifecycle.transition(pending.order_id, OrderStatus.CANCELLED, "retailer-request")

        report = sweeper.sweep(now=_later())

        assert report.total == 0
