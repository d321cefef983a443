"""Order aggregate — a retailer's purchase of magazines from publishers.

State Machine:
    pending → confirmed → shipped → delivered
    pending → cancelled
    confirmed → cancelled

``cancelled`` and ``delivered`` are terminal. Only ``pending → cancelled``
skips states: an abandoned or failed checkout never reaches confirmation.

Line items carry the magazine's wholesale price at the moment of checkout.
Nothing on the aggregate can change an item after placement, so later
catalog price changes never reach an existing order.

A cancelled order owes its reserved copies back to the catalogue until
every line is listed in ``released_magazine_ids``.
"""

from datetime import UTC, datetime, timedelta
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, Integer, List, String, Text

from marketplace.domain import marketplace
from marketplace.errors import InvalidTransition
from marketplace.ordering.events import (
    CheckoutSessionAttached,
    OrderPlaced,
    OrderRefunded,
    OrderStatusChanged,
)
from marketplace.shared.money import line_total, same_amount, sum_amounts


class OrderStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


_VALID_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),  # Terminal
    OrderStatus.CANCELLED: set(),  # Terminal
}

# States in which the gateway has captured the retailer's money
_CAPTURED_STATES = {
    OrderStatus.CONFIRMED,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
    OrderStatus.CANCELLED,
}


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in _VALID_TRANSITIONS[current]


@marketplace.entity(part_of="Order")
class OrderItem:
    """One magazine line of an order, priced when the order was placed."""

    magazine_id = Identifier(required=True)
    title = String(required=True, max_length=255)
    description = Text()
    quantity = Integer(required=True, min_value=1)
    unit_price = Float(required=True, min_value=0.0)
    line_total = Float(required=True, min_value=0.0)

    @invariant.post
    def line_total_matches_quantity_and_unit_price(self):
        if self.unit_price is None or self.quantity is None or self.line_total is None:
            return
        if not same_amount(self.line_total, line_total(self.unit_price, self.quantity)):
            raise ValidationError({"line_total": ["Line total must equal quantity times unit price"]})


@marketplace.aggregate
class Order:
    retailer_id = Identifier(required=True)
    retailer_email = String(max_length=254)
    items = HasMany(OrderItem)
    total_amount = Float(required=True, min_value=0.0)
    currency = String(max_length=3, default="usd")
    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    status_reason = String(max_length=100)
    checkout_session_id = String(max_length=255)
    gateway_customer_id = String(max_length=255)
    payment_intent_id = String(max_length=255)
    refunded_amount = Float(default=0.0, min_value=0.0)
    # Magazines whose reserved copies have gone back on sale after cancellation
    released_magazine_ids = List(content_type=String, default=list)
    created_at = DateTime()
    updated_at = DateTime()
    expires_at = DateTime()

    @invariant.post
    def total_equals_sum_of_line_totals(self):
        if not self.items:
            return
        if not same_amount(self.total_amount, sum_amounts(item.line_total for item in self.items)):
            raise ValidationError({"total_amount": ["Order total must equal the sum of its line totals"]})

    @invariant.post
    def refunds_cannot_exceed_total(self):
        if self.refunded_amount and self.total_amount is not None:
            if self.refunded_amount > self.total_amount + 0.001:
                raise ValidationError({"refunded_amount": ["Refunded amount cannot exceed the order total"]})

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def place(cls, retailer_id, items_data, currency="usd", retailer_email=None, expires_in_minutes=30, order_id=None):
        """Create a pending order from reserved cart lines.

        Args:
            retailer_id: The retailer buying the magazines.
            items_data: List of dicts with magazine_id, title, description,
                        quantity and unit_price (the wholesale price snapshot).
            currency: Lower-case ISO currency code.
            retailer_email: Used by the gateway to deduplicate customers.
            expires_in_minutes: How long the reservation is held while the
                                retailer pays.
            order_id: Pre-generated identity, so reservations can reference
                      the order before it is stored.
        """
        if not items_data:
            raise ValidationError({"items": ["An order needs at least one item"]})

        now = datetime.now(UTC)
        items = [
            OrderItem(
                magazine_id=item["magazine_id"],
                title=item["title"],
                description=item.get("description"),
                quantity=item["quantity"],
                unit_price=item["unit_price"],
                line_total=line_total(item["unit_price"], item["quantity"]),
            )
            for item in items_data
        ]
        total = sum_amounts(item.line_total for item in items)
        expires_at = now + timedelta(minutes=expires_in_minutes)

        identity = {"id": order_id} if order_id else {}
        order = cls(
            **identity,
            retailer_id=retailer_id,
            retailer_email=retailer_email,
            items=items,
            total_amount=total,
            currency=currency,
            created_at=now,
            updated_at=now,
            expires_at=expires_at,
        )
        order.raise_(
            OrderPlaced(
                order_id=order.id,
                retailer_id=retailer_id,
                item_count=len(items),
                total_amount=total,
                currency=currency,
                expires_at=expires_at,
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def current_status(self) -> OrderStatus:
        return OrderStatus(self.status)

    @property
    def is_payment_captured(self) -> bool:
        return bool(self.payment_intent_id) and self.current_status in _CAPTURED_STATES

    @property
    def refundable_amount(self) -> float:
        return max(0.0, sum_amounts([self.total_amount, -(self.refunded_amount or 0.0)]))

    @property
    def unreleased_items(self) -> list:
        """Lines of a cancelled order whose copies are not back on sale yet."""
        if self.current_status != OrderStatus.CANCELLED:
            return []
        released = set(self.released_magazine_ids or [])
        return [item for item in self.items if str(item.magazine_id) not in released]

    def is_expired(self, now=None) -> bool:
        now = now or datetime.now(UTC)
        return self.current_status == OrderStatus.PENDING and self.expires_at is not None and self.expires_at <= now

    # -------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------
    def attach_checkout_session(self, session_id, customer_id=None):
        now = datetime.now(UTC)
        self.checkout_session_id = session_id
        if customer_id:
            self.gateway_customer_id = customer_id
        self.updated_at = now
        self.raise_(
            CheckoutSessionAttached(
                order_id=self.id,
                checkout_session_id=session_id,
                gateway_customer_id=customer_id,
                attached_at=now,
            )
        )

    def transition_to(self, target: OrderStatus, cause: str, payment_intent_id=None):
        """Move to ``target`` if the lifecycle allows it. Returns the previous status."""
        current = self.current_status
        if not can_transition(current, target):
            raise InvalidTransition(current.value, target.value)

        now = datetime.now(UTC)
        self.status = target.value
        self.status_reason = cause
        if payment_intent_id:
            self.payment_intent_id = payment_intent_id
        self.updated_at = now

        self.raise_(
            OrderStatusChanged(
                order_id=self.id,
                previous_status=current.value,
                new_status=target.value,
                cause=cause,
                payment_intent_id=self.payment_intent_id,
                changed_at=now,
            )
        )
        return current

    def mark_stock_released(self, magazine_id):
        released = list(self.released_magazine_ids or [])
        if str(magazine_id) in released:
            return
        self.released_magazine_ids = [*released, str(magazine_id)]
        self.updated_at = datetime.now(UTC)

    def record_refund(self, refund_id, amount, reason):
        now = datetime.now(UTC)
        self.refunded_amount = sum_amounts([self.refunded_amount or 0.0, amount])
        self.updated_at = now
        self.raise_(
            OrderRefunded(
                order_id=self.id,
                refund_id=refund_id,
                amount=amount,
                refunded_total=self.refunded_amount,
                reason=reason,
                refunded_at=now,
            )
        )
