"""Domain events for the Order aggregate."""

from protean.fields import DateTime, Float, Identifier, Integer, String

from marketplace.domain import marketplace


@marketplace.event(part_of="Order")
class OrderPlaced:
    """A retailer checked out a cart and copies were reserved for it."""

    __version__ = 1

    order_id: Identifier(required=True)
    retailer_id: Identifier(required=True)
    item_count: Integer(required=True)
    total_amount: Float(required=True)
    currency: String(required=True)
    expires_at: DateTime(required=True)
    placed_at: DateTime(required=True)


@marketplace.event(part_of="Order")
class CheckoutSessionAttached:
    """The gateway checkout session for the order was created."""

    __version__ = 1

    order_id: Identifier(required=True)
    checkout_session_id: String(required=True)
    gateway_customer_id: String()
    attached_at: DateTime(required=True)


@marketplace.event(part_of="Order")
class OrderStatusChanged:
    """The order moved along its lifecycle."""

    __version__ = 1

    order_id: Identifier(required=True)
    previous_status: String(required=True)
    new_status: String(required=True)
    cause: String(required=True)
    payment_intent_id: String()
    changed_at: DateTime(required=True)


@marketplace.event(part_of="Order")
class OrderRefunded:
    """Money was returned to the retailer through the gateway."""

    __version__ = 1

    order_id: Identifier(required=True)
    refund_id: String(required=True)
    amount: Float(required=True)
    refunded_total: Float(required=True)
    reason: String(required=True)
    refunded_at: DateTime(required=True)
