"""Payment confirmation handler — applies gateway notifications to orders.

Notifications arrive by webhook push (``handle_webhook``) or by polling the
session (``reconcile_session``). Both end in ``handle``, which is safe to
replay: a notification that asks for the status the order already has is
acknowledged without change, as is a failure report for an order that has
already moved past ``pending``. A cancelled order whose copies are not all
back on sale is cancelled again so the outstanding releases finish.

A signed notification for a session no order knows about is logged and
acknowledged; the gateway would otherwise redeliver it indefinitely.

A payment captured for an order that was cancelled in the meantime (the
retailer paid after the reservation expired) is refunded in full.
"""

from dataclasses import dataclass

from protean.utils.globals import current_domain

from marketplace.errors import OrderNotFound, StaleOrderState, WebhookSignatureInvalid
from marketplace.ordering.lifecycle import OrderLifecycleManager
from marketplace.ordering.order import Order, OrderStatus
from marketplace.payments.client import PaymentGatewayClient
from marketplace.payments.gateway.port import (
    OUTCOME_EXPIRED,
    OUTCOME_FAILED,
    OUTCOME_PENDING,
    OUTCOME_SUCCEEDED,
    PaymentNotification,
)
from marketplace.shared.money import from_minor_units
from marketplace.utils.locks import order_locks
from marketplace.utils.logging import get_logger

logger = get_logger(__name__)

CAUSE_CAPTURED = "payment-captured"
CAUSE_FAILED = "payment-failed"


@dataclass(frozen=True)
class WebhookOutcome:
    status: str  # processed, ignored, refunded
    order_id: str | None = None
    order_status: str | None = None


class PaymentWebhookHandler:
    def __init__(self, client: PaymentGatewayClient | None = None, lifecycle: OrderLifecycleManager | None = None):
        self.client = client or PaymentGatewayClient()
        self.lifecycle = lifecycle or OrderLifecycleManager(client=self.client)

    def handle_webhook(self, payload: bytes, signature: str) -> WebhookOutcome:
        """Verify and apply a raw webhook delivery."""
        gateway = self.client.gateway
        if not gateway.verify_webhook_signature(payload, signature):
            logger.warning("webhook_signature_invalid", signature=signature, payload_bytes=len(payload))
            raise WebhookSignatureInvalid()

        notification = gateway.parse_notification(payload)
        if notification is None:
            logger.debug("webhook_event_ignored")
            return WebhookOutcome(status="ignored")
        return self.handle(notification)

    def reconcile_session(self, session_id: str) -> WebhookOutcome:
        """Poll the gateway for a session and apply what it reports."""
        session = self.client.retrieve_session(session_id)
        if session.is_paid:
            outcome = OUTCOME_SUCCEEDED
        elif session.is_expired:
            outcome = OUTCOME_EXPIRED
        else:
            outcome = OUTCOME_PENDING
        return self.handle(
            PaymentNotification(
                event_type="session.polled",
                session_id=session_id,
                outcome=outcome,
                payment_intent_id=session.payment_intent_id,
            )
        )

    def handle(self, notification: PaymentNotification) -> WebhookOutcome:
        orders = current_domain.repository_for(Order)
        try:
            order = orders.find_by_checkout_session(notification.session_id)
        except OrderNotFound:
            logger.warning(
                "payment_notification_unknown_session",
                session_id=notification.session_id,
                event_type=notification.event_type,
                outcome=notification.outcome,
            )
            return WebhookOutcome(status="ignored")

        log = logger.bind(
            order_id=order.id,
            session_id=notification.session_id,
            event_type=notification.event_type,
            outcome=notification.outcome,
        )

        if notification.outcome == OUTCOME_PENDING:
            log.info("payment_notification_pending")
            return WebhookOutcome(status="ignored", order_id=order.id, order_status=order.status)

        if notification.outcome == OUTCOME_SUCCEEDED:
            if order.current_status == OrderStatus.CANCELLED:
                return self._refund_late_payment(order, notification)
            if order.current_status != OrderStatus.PENDING:
                log.info("payment_notification_duplicate", order_status=order.status)
                return WebhookOutcome(status="ignored", order_id=order.id, order_status=order.status)
            order = self._apply(order.id, OrderStatus.CONFIRMED, CAUSE_CAPTURED, log)
            return WebhookOutcome(status="processed", order_id=order.id, order_status=order.status)

        if notification.outcome in (OUTCOME_FAILED, OUTCOME_EXPIRED):
            if order.current_status != OrderStatus.PENDING and not order.unreleased_items:
                log.info("payment_notification_stale", order_status=order.status)
                return WebhookOutcome(status="ignored", order_id=order.id, order_status=order.status)
            order = self._apply(order.id, OrderStatus.CANCELLED, CAUSE_FAILED, log)
            return WebhookOutcome(status="processed", order_id=order.id, order_status=order.status)

        log.warning("payment_notification_unknown_outcome")
        return WebhookOutcome(status="ignored", order_id=order.id, order_status=order.status)

    def _apply(self, order_id: str, target: OrderStatus, cause: str, log) -> Order:
        try:
            order = self.lifecycle.transition(order_id, target, cause)
        except StaleOrderState:
            # Another delivery of the same outcome won the race
            order = current_domain.repository_for(Order).get_by_id(order_id)
            log.info("payment_notification_raced", order_status=order.status)
            return order
        log.info("payment_notification_applied", order_status=order.status)
        return order

    def _refund_late_payment(self, order: Order, notification: PaymentNotification) -> WebhookOutcome:
        orders = current_domain.repository_for(Order)
        with order_locks.hold(order.id):
            order = orders.get_by_id(order.id)
            if order.refunded_amount and order.refunded_amount >= order.total_amount:
                return WebhookOutcome(status="ignored", order_id=order.id, order_status=order.status)

            payment_intent_id = notification.payment_intent_id
            if not payment_intent_id:
                payment_intent_id = self.client.retrieve_session(notification.session_id).payment_intent_id

            logger.warning(
                "payment_captured_for_cancelled_order",
                order_id=order.id,
                session_id=notification.session_id,
                payment_intent_id=payment_intent_id,
            )
            result = self.client.create_refund(payment_intent_id, None, "requested_by_customer", currency=order.currency)
            orders.record_refund(
                order.id,
                result.refund_id,
                from_minor_units(result.amount, order.currency),
                "payment-after-cancellation",
            )
        return WebhookOutcome(status="refunded", order_id=order.id, order_status=order.status)
