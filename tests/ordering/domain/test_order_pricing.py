"""Tests for Order placement, price snapshots and total invariants."""

from datetime import UTC, datetime, timedelta

import pytest
from marketplace.ordering.events import CheckoutSessionAttached, OrderPlaced, OrderRefunded
from marketplace.ordering.order import Order, OrderItem, OrderStatus
from protean.exceptions import ValidationError


def _items(*lines):
    return [
        {"magazine_id": f"mag-{i}", "title": f"Magazine {i}", "quantity": qty, "unit_price": price}
        for i, (qty, price) in enumerate(lines, start=1)
    ]


class TestPlaceOrder:
    def test_place_creates_pending_order(self):
        order = Order.place(retailer_id="ret-001", items_data=_items((2, 12.50)))
        assert order.status == OrderStatus.PENDING.value
        assert order.currency == "usd"

    def test_total_is_sum_of_line_totals(self):
        order = Order.place(retailer_id="ret-001", items_data=_items((2, 12.50), (3, 0.10)))
        assert order.total_amount == 25.30
        assert [item.line_total for item in order.items] == [25.00, 0.30]

    def test_unit_price_is_the_snapshot_given(self):
        order = Order.place(retailer_id="ret-001", items_data=_items((2, 12.50)))
        assert order.items[0].unit_price == 12.50

    def test_expiry_window(self):
        before = datetime.now(UTC)
        order = Order.place(retailer_id="ret-001", items_data=_items((1, 5.0)), expires_in_minutes=30)
        assert order.expires_at >= before + timedelta(minutes=30)
        assert not order.is_expired()
        assert order.is_expired(now=before + timedelta(minutes=31))

    def test_pre_generated_identity_is_kept(self):
        order = Order.place(retailer_id="ret-001", items_data=_items((1, 5.0)), order_id="ord-fixed")
        assert order.id == "ord-fixed"

    def test_place_raises_order_placed(self):
        order = Order.place(retailer_id="ret-001", items_data=_items((2, 12.50)))
        event = order._events[0]
        assert isinstance(event, OrderPlaced)
        assert event.total_amount == 25.00
        assert event.item_count == 1

    def test_empty_order_is_rejected(self):
        with pytest.raises(ValidationError) as exc:
            Order.place(retailer_id="ret-001", items_data=[])
        assert "items" in exc.value.messages


class TestInvariants:
    def test_item_line_total_must_match(self):
        with pytest.raises(ValidationError) as exc:
            OrderItem(magazine_id="mag-1", title="M", quantity=2, unit_price=12.50, line_total=20.00)
        assert "line_total" in exc.value.messages

    def test_order_total_must_match_items(self):
        item = OrderItem(magazine_id="mag-1", title="M", quantity=2, unit_price=12.50, line_total=25.00)
        with pytest.raises(ValidationError) as exc:
            Order(retailer_id="ret-001", items=[item], total_amount=99.00)
        assert "total_amount" in exc.value.messages

    def test_quantity_must_be_positive(self):
        with pytest.raises(ValidationError):
            OrderItem(magazine_id="mag-1", title="M", quantity=0, unit_price=12.50, line_total=0.0)

    def test_refunds_cannot_exceed_total(self):
        order = Order.place(retailer_id="ret-001", items_data=_items((2, 12.50)))
        with pytest.raises(ValidationError):
            order.record_refund("re_1", 30.00, "requested_by_customer")


class TestSessionAndRefunds:
    def test_attach_checkout_session(self):
        order = Order.place(retailer_id="ret-001", items_data=_items((1, 5.0)))
        order.attach_checkout_session("cs_123", "cus_123")

        assert order.checkout_session_id == "cs_123"
        assert order.gateway_customer_id == "cus_123"
        assert isinstance(order._events[-1], CheckoutSessionAttached)

    def test_record_refund_accumulates(self):
        order = Order.place(retailer_id="ret-001", items_data=_items((2, 12.50)))
        order.record_refund("re_1", 10.00, "requested_by_customer")
        order.record_refund("re_2", 5.00, "requested_by_customer")

        assert order.refunded_amount == 15.00
        assert order.refundable_amount == 10.00
        event = order._events[-1]
        assert isinstance(event, OrderRefunded)
        assert event.refunded_total == 15.00

    def test_pending_order_has_no_captured_payment(self):
        order = Order.place(retailer_id="ret-001", items_data=_items((1, 5.0)))
        assert not order.is_payment_captured
