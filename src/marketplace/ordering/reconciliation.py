"""Expiry sweep for abandoned checkouts.

Pending orders hold inventory only until ``expires_at``. The sweep asks
the gateway about each expired order before giving up on it: a captured
payment whose notification never arrived confirms the order, anything
else expires the hosted session and cancels the order, which puts the
copies back on sale.

The same pass retries cancelled orders whose copies did not all go back on
sale, since no other caller will touch a cancelled order again.

Run it periodically with ``python src/manage.py sweep-expired``.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime

from protean.utils.globals import current_domain

from marketplace.errors import GatewayRejected, MarketplaceError
from marketplace.ordering.lifecycle import OrderLifecycleManager
from marketplace.ordering.order import Order, OrderStatus
from marketplace.payments.client import PaymentGatewayClient
from marketplace.utils.logging import get_logger

logger = get_logger(__name__)

CAUSE_EXPIRED = "expired"
CAUSE_RECONCILED = "payment-reconciled"
CAUSE_RELEASE_RETRY = "stock-release-retry"


@dataclass
class SweepReport:
    confirmed: list[str] = field(default_factory=list)
    cancelled: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    released: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.confirmed) + len(self.cancelled) + len(self.skipped) + len(self.released)


class ExpiredCheckoutSweeper:
    def __init__(self, client: PaymentGatewayClient | None = None, lifecycle: OrderLifecycleManager | None = None):
        self.client = client or PaymentGatewayClient()
        self.lifecycle = lifecycle or OrderLifecycleManager(client=self.client)

    def sweep(self, now: datetime | None = None) -> SweepReport:
        now = now or datetime.now(UTC)
        report = SweepReport()

        for order in current_domain.repository_for(Order).find_expired_pending(now):
            try:
                self._resolve(order, report)
            except MarketplaceError as exc:
                logger.warning(
                    "expired_checkout_skipped",
                    order_id=order.id,
                    error=exc.code,
                    reason=exc.reason,
                )
                report.skipped.append(order.id)

        self._release_outstanding(report)

        logger.info(
            "expired_checkout_sweep_finished",
            confirmed=len(report.confirmed),
            cancelled=len(report.cancelled),
            skipped=len(report.skipped),
            released=len(report.released),
        )
        return report

    def _release_outstanding(self, report: SweepReport) -> None:
        for order in current_domain.repository_for(Order).find_cancelled_with_unreleased_stock():
            try:
                self.lifecycle.transition(order.id, OrderStatus.CANCELLED, CAUSE_RELEASE_RETRY)
            except Exception:
                # Already logged as reconciliation_required; the next sweep retries
                report.skipped.append(order.id)
                continue
            logger.info("cancelled_order_stock_released", order_id=order.id)
            report.released.append(order.id)

    def _resolve(self, order: Order, report: SweepReport) -> None:
        if order.checkout_session_id:
            session = self.client.retrieve_session(order.checkout_session_id)
            if session.is_paid:
                self.lifecycle.transition(order.id, OrderStatus.CONFIRMED, CAUSE_RECONCILED)
                logger.warning("payment_reconciled_without_notification", order_id=order.id)
                report.confirmed.append(order.id)
                return
            if not session.is_expired:
                try:
                    self.client.expire_session(order.checkout_session_id)
                except GatewayRejected as exc:
                    # Completed in the meantime: leave it for the webhook or the next sweep
                    logger.info("expired_checkout_session_not_expirable", order_id=order.id, reason=exc.reason)
                    report.skipped.append(order.id)
                    return

        self.lifecycle.transition(order.id, OrderStatus.CANCELLED, CAUSE_EXPIRED)
        logger.info("expired_checkout_cancelled", order_id=order.id)
        report.cancelled.append(order.id)
