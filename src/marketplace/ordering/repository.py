"""Repository for the Order aggregate.

Orders are written together with their items in one ``add``. Status
changes go through ``update_status``, which re-reads the order and only
writes if it is still in the status the caller decided from. Every method
materializes line items while holding ``datastore_lock`` so callers get a
complete snapshot.
"""

from datetime import UTC, datetime

from protean.exceptions import ObjectNotFoundError

from marketplace.domain import marketplace
from marketplace.errors import OrderNotFound, StaleOrderState
from marketplace.ordering.order import Order, OrderStatus
from marketplace.utils.locks import datastore_lock


def _loaded(order: Order) -> Order:
    # Touch the association so items are fetched inside the lock
    list(order.items)
    return order


@marketplace.repository(part_of=Order)
class OrderRepository:
    def create(self, order: Order) -> Order:
        with datastore_lock:
            self.add(order)
            return order

    def get_by_id(self, order_id: str) -> Order:
        with datastore_lock:
            try:
                return _loaded(self.get(order_id))
            except ObjectNotFoundError:
                raise OrderNotFound(order_id) from None

    def update_status(
        self,
        order_id: str,
        expected_status: OrderStatus,
        new_status: OrderStatus,
        cause: str,
        payment_intent_id: str | None = None,
    ) -> Order:
        """Move an order from ``expected_status`` to ``new_status``.

        Raises StaleOrderState if the stored order is no longer in
        ``expected_status``, and InvalidTransition if the move is not allowed.
        """
        with datastore_lock:
            order = self.get_by_id(order_id)
            if order.current_status != expected_status:
                raise StaleOrderState(order_id, expected_status.value, order.status)
            order.transition_to(new_status, cause, payment_intent_id=payment_intent_id)
            self.add(order)
            return order

    def attach_checkout_session(self, order_id: str, session_id: str, customer_id: str | None = None) -> Order:
        with datastore_lock:
            order = self.get_by_id(order_id)
            if order.current_status != OrderStatus.PENDING:
                raise StaleOrderState(order_id, OrderStatus.PENDING.value, order.status)
            order.attach_checkout_session(session_id, customer_id)
            self.add(order)
            return order

    def mark_stock_released(self, order_id: str, magazine_id: str) -> Order:
        with datastore_lock:
            order = self.get_by_id(order_id)
            order.mark_stock_released(magazine_id)
            self.add(order)
            return order

    def record_refund(self, order_id: str, refund_id: str, amount: float, reason: str) -> Order:
        with datastore_lock:
            order = self.get_by_id(order_id)
            order.record_refund(refund_id, amount, reason)
            self.add(order)
            return order

    def find_by_retailer(self, retailer_id: str) -> list[Order]:
        """Orders placed by a retailer, newest first."""
        with datastore_lock:
            orders = [_loaded(o) for o in self._dao.query.filter(retailer_id=retailer_id).all().items]
        return sorted(orders, key=lambda o: o.created_at, reverse=True)

    def find_by_checkout_session(self, session_id: str) -> Order:
        with datastore_lock:
            orders = self._dao.query.filter(checkout_session_id=session_id).all().items
            if not orders:
                raise OrderNotFound(session_id=session_id)
            return _loaded(orders[0])

    def find_expired_pending(self, now: datetime | None = None) -> list[Order]:
        """Pending orders whose reservation window has closed."""
        now = now or datetime.now(UTC)
        with datastore_lock:
            pending = self._dao.query.filter(status=OrderStatus.PENDING.value).all().items
            expired = [_loaded(o) for o in pending if o.is_expired(now)]
        return sorted(expired, key=lambda o: o.expires_at)

    def find_cancelled_with_unreleased_stock(self) -> list[Order]:
        """Cancelled orders whose inventory release was interrupted."""
        with datastore_lock:
            cancelled = self._dao.query.filter(status=OrderStatus.CANCELLED.value).all().items
            return [o for o in (_loaded(o) for o in cancelled) if o.unreleased_items]
