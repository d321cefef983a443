"""Refunds for captured orders.

The gateway owns the refund limit: asking for more than is left on the
payment raises ``RefundRejected`` and the order is left untouched.
"""

from protean.utils.globals import current_domain

from marketplace.errors import InvalidRequest, PaymentNotConfirmed
from marketplace.ordering.order import Order
from marketplace.payments.client import PaymentGatewayClient
from marketplace.payments.gateway.port import RefundResult
from marketplace.shared.money import from_minor_units
from marketplace.utils.locks import order_locks
from marketplace.utils.logging import get_logger

logger = get_logger(__name__)


class OrderRefunds:
    def __init__(self, client: PaymentGatewayClient | None = None):
        self._client = client

    @property
    def client(self) -> PaymentGatewayClient:
        if self._client is None:
            self._client = PaymentGatewayClient()
        return self._client

    def refund(self, order_id: str, amount: float | None = None, reason: str = "requested_by_customer") -> RefundResult:
        """Refund ``amount`` of an order's payment, or whatever is left of it."""
        if amount is not None and amount <= 0:
            raise InvalidRequest("Refund amount must be positive", details={"field": "amount"})

        orders = current_domain.repository_for(Order)
        with order_locks.hold(order_id):
            order = orders.get_by_id(order_id)
            if not order.is_payment_captured:
                raise PaymentNotConfirmed(order_id)

            result = self.client.create_refund(order.payment_intent_id, amount, reason, currency=order.currency)
            refunded = from_minor_units(result.amount, order.currency)
            orders.record_refund(order_id, result.refund_id, refunded, reason)

        logger.info(
            "order_refunded",
            order_id=order_id,
            refund_id=result.refund_id,
            amount=refunded,
            reason=reason,
        )
        return result
