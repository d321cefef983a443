"""Order lifecycle manager — the only way an order changes status.

A transition runs under the order's lock:

1. load the order; asking for the status it already has is a no-op
2. check the move against the transition table
3. for pending → confirmed, ask the gateway whether the money was captured
4. commit, guarded by the status read in step 1
5. on cancellation, put every reserved copy back on sale
6. tell the notifier

Each released line is recorded on the order. If some lines fail to
release, the rest are still attempted, the cancellation stays committed
and the error is raised; asking for ``cancelled`` again releases whatever
is still outstanding instead of being a no-op.

Notices go out after the commit. A notifier failure is logged and never
rolls the order back.
"""

from protean.utils.globals import current_domain

from marketplace.catalogue.magazine import Magazine
from marketplace.errors import InvalidTransition, PaymentNotConfirmed
from marketplace.notifications import get_notifier
from marketplace.notifications.port import OrderNotifier, OrderStatusNotice
from marketplace.ordering.order import Order, OrderStatus, can_transition
from marketplace.payments.client import PaymentGatewayClient
from marketplace.utils.locks import datastore_lock, order_locks
from marketplace.utils.logging import get_logger

logger = get_logger(__name__)


class OrderLifecycleManager:
    def __init__(self, client: PaymentGatewayClient | None = None, notifier: OrderNotifier | None = None):
        self._client = client
        self._notifier = notifier

    @property
    def client(self) -> PaymentGatewayClient:
        if self._client is None:
            self._client = PaymentGatewayClient()
        return self._client

    @property
    def notifier(self) -> OrderNotifier:
        return self._notifier or get_notifier()

    def transition(self, order_id: str, target_status, cause: str) -> Order:
        """Move an order to ``target_status``.

        Raises:
            OrderNotFound: no such order.
            InvalidTransition: the lifecycle does not allow the move.
            PaymentNotConfirmed: confirming an order the gateway has not been paid for.
            StaleOrderState: the order changed underneath us.
            Exception: whatever stopped a reserved line from being released. The
                order is cancelled regardless; retry the cancellation to finish.
        """
        target = OrderStatus(target_status)
        orders = current_domain.repository_for(Order)

        with order_locks.hold(order_id):
            order = orders.get_by_id(order_id)
            current = order.current_status

            if current == target:
                if order.unreleased_items:
                    logger.info(
                        "order_release_resumed",
                        order_id=order_id,
                        outstanding=[str(item.magazine_id) for item in order.unreleased_items],
                        cause=cause,
                    )
                    return self._release_inventory(order)
                logger.debug("order_transition_noop", order_id=order_id, status=current.value, cause=cause)
                return order

            if not can_transition(current, target):
                logger.info(
                    "order_transition_rejected",
                    order_id=order_id,
                    current_status=current.value,
                    requested_status=target.value,
                )
                raise InvalidTransition(current.value, target.value)

            payment_intent_id = None
            if current == OrderStatus.PENDING and target == OrderStatus.CONFIRMED:
                payment_intent_id = self._verify_capture(order)

            order = orders.update_status(order_id, current, target, cause, payment_intent_id=payment_intent_id)
            logger.info(
                "order_transitioned",
                order_id=order_id,
                previous_status=current.value,
                new_status=target.value,
                cause=cause,
            )

            release_error = None
            if target == OrderStatus.CANCELLED:
                try:
                    order = self._release_inventory(order)
                except Exception as exc:
                    release_error = exc

        self._notify(order, current, cause)
        if release_error is not None:
            raise release_error
        return order

    def _verify_capture(self, order: Order) -> str | None:
        if not order.checkout_session_id:
            raise PaymentNotConfirmed(order.id)

        session = self.client.retrieve_session(order.checkout_session_id)
        if not session.is_paid:
            logger.info(
                "order_payment_not_captured",
                order_id=order.id,
                session_id=session.session_id,
                payment_status=session.payment_status,
            )
            raise PaymentNotConfirmed(order.id, session.payment_status)
        return session.payment_intent_id

    def _release_inventory(self, order: Order) -> Order:
        """Release every outstanding line, recording each one on the order."""
        magazines = current_domain.repository_for(Magazine)
        orders = current_domain.repository_for(Order)

        failures = []
        for item in order.unreleased_items:
            try:
                with datastore_lock:
                    magazines.release(item.magazine_id, order.id, item.quantity)
                    try:
                        orders.mark_stock_released(order.id, item.magazine_id)
                    except Exception:
                        # Unrecorded releases would be repeated on retry
                        magazines.reserve(item.magazine_id, order.id, item.quantity)
                        raise
            except Exception as exc:
                failures.append((item, exc))

        if failures:
            logger.error(
                "reconciliation_required",
                order_id=order.id,
                step="release_inventory",
                outstanding=[{"magazine_id": str(item.magazine_id), "quantity": item.quantity} for item, _ in failures],
                error=str(failures[0][1]),
            )
            raise failures[0][1]
        return orders.get_by_id(order.id)

    def _notify(self, order: Order, previous: OrderStatus, cause: str) -> None:
        notice = OrderStatusNotice(
            order_id=order.id,
            previous_status=previous.value,
            new_status=order.status,
            cause=cause,
            timestamp=order.updated_at,
        )
        try:
            self.notifier.order_status_changed(notice)
        except Exception:
            logger.exception("order_notification_failed", order_id=order.id, new_status=order.status)
