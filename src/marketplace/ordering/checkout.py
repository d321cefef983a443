"""Checkout orchestrator — turns a retailer's cart into a pending order and
a hosted payment session.

Steps, each undone if a later one fails:

1. validate the cart (non-empty, known magazines, positive whole quantities)
2. reserve every line, compare-and-decrement per magazine
3. store a pending Order priced at the reserved magazines' wholesale prices
4. find or create the gateway customer and open the checkout session
5. record the session on the Order

A failure in step 2 restores the lines already reserved. A failure after
step 3 cancels the Order through the lifecycle manager, which releases the
reservation. Cancellation is idempotent, so it is retried; if it still
fails the order is logged for reconciliation and the original error is
raised.
"""

from dataclasses import dataclass
from typing import Any
from uuid import uuid4

from protean.utils.globals import current_domain

from marketplace.catalogue.magazine import Magazine
from marketplace.errors import InsufficientInventory, InvalidCartItem, InvalidRequest, MarketplaceError
from marketplace.ordering.lifecycle import OrderLifecycleManager
from marketplace.ordering.order import Order, OrderStatus
from marketplace.payments.client import PaymentGatewayClient
from marketplace.settings import Settings, get_settings
from marketplace.utils.logging import get_logger

logger = get_logger(__name__)

ORDER_TYPE = "magazine_purchase"


@dataclass(frozen=True)
class CartLine:
    magazine_id: str
    quantity: int


@dataclass(frozen=True)
class CheckoutResult:
    order_id: str
    session_id: str
    redirect_url: str
    total_amount: float
    currency: str


class CheckoutOrchestrator:
    def __init__(
        self,
        client: PaymentGatewayClient | None = None,
        lifecycle: OrderLifecycleManager | None = None,
        settings: Settings | None = None,
    ):
        self.settings = settings or get_settings()
        self.client = client or PaymentGatewayClient(settings=self.settings)
        self.lifecycle = lifecycle or OrderLifecycleManager(client=self.client)

    def start_checkout(
        self,
        retailer_id: str,
        items: list[dict[str, Any]],
        retailer_email: str,
        retailer_name: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> CheckoutResult:
        if not retailer_id:
            raise InvalidRequest("retailerId is required", details={"field": "retailerId"})
        if not retailer_email:
            raise InvalidRequest("retailerEmail is required", details={"field": "retailerEmail"})

        lines = self._validate_cart(items)
        order_id = str(uuid4())
        log = logger.bind(order_id=order_id, retailer_id=retailer_id)
        log.info("checkout_started", lines=len(lines))

        reserved = self._reserve(order_id, lines)

        try:
            order = Order.place(
                retailer_id=retailer_id,
                retailer_email=retailer_email,
                items_data=[
                    {
                        "magazine_id": magazine.id,
                        "title": magazine.title,
                        "description": magazine.description,
                        "quantity": line.quantity,
                        "unit_price": magazine.wholesale_price,
                    }
                    for line, magazine in reserved
                ],
                currency=self.settings.currency,
                expires_in_minutes=self.settings.checkout_expiry_minutes,
                order_id=order_id,
            )
            current_domain.repository_for(Order).create(order)
        except Exception:
            log.warning("checkout_order_not_created")
            self._restore(order_id, reserved)
            raise

        session = None
        try:
            customer = self.client.create_customer(
                retailer_email,
                retailer_name,
                metadata={"retailer_id": retailer_id},
            )
            session = self.client.create_checkout_session(
                items=[
                    {
                        "name": magazine.title,
                        "description": magazine.description,
                        "image_url": magazine.image_url,
                        "magazine_id": magazine.id,
                        "unit_price": magazine.wholesale_price,
                        "quantity": line.quantity,
                    }
                    for line, magazine in reserved
                ],
                customer_ref=customer.customer_id,
                metadata={
                    **(metadata or {}),
                    "order_id": order_id,
                    "retailer_id": retailer_id,
                    "order_type": ORDER_TYPE,
                },
                idempotency_key=f"checkout-{order_id}",
                expires_at=order.expires_at,
            )
            current_domain.repository_for(Order).attach_checkout_session(
                order_id, session.session_id, customer.customer_id
            )
        except Exception as exc:
            log.warning("checkout_payment_setup_failed", error_type=type(exc).__name__)
            self._compensate(order_id, session.session_id if session else None, exc)
            raise

        log.info("checkout_session_created", session_id=session.session_id, total_amount=order.total_amount)
        return CheckoutResult(
            order_id=order_id,
            session_id=session.session_id,
            redirect_url=session.redirect_url,
            total_amount=order.total_amount,
            currency=order.currency,
        )

    # -------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------
    def _validate_cart(self, items) -> list[CartLine]:
        if not isinstance(items, list) or not items:
            raise InvalidRequest("Cart is empty", details={"field": "items"})

        magazines = current_domain.repository_for(Magazine)
        merged: dict[str, int] = {}
        for index, item in enumerate(items):
            magazine_id = item.get("magazine_id") if isinstance(item, dict) else None
            quantity = item.get("quantity") if isinstance(item, dict) else None

            if not isinstance(magazine_id, str) or not magazine_id.strip():
                raise InvalidCartItem(index, magazine_id, "magazineId is required")
            if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
                raise InvalidCartItem(index, magazine_id, "quantity must be a positive whole number")
            if magazine_id not in merged and magazines.find(magazine_id) is None:
                raise InvalidCartItem(index, magazine_id, "magazine does not exist")

            merged[magazine_id] = merged.get(magazine_id, 0) + quantity

        return [CartLine(magazine_id=m, quantity=q) for m, q in merged.items()]

    def _reserve(self, order_id: str, lines: list[CartLine]) -> list[tuple[CartLine, Magazine]]:
        magazines = current_domain.repository_for(Magazine)
        reserved: list[tuple[CartLine, Magazine]] = []
        for line in lines:
            try:
                magazine = magazines.reserve(line.magazine_id, order_id, line.quantity)
            except InsufficientInventory as exc:
                logger.info(
                    "checkout_insufficient_inventory",
                    order_id=order_id,
                    magazine_id=exc.magazine_id,
                    requested=exc.requested,
                    available=exc.available,
                )
                self._restore(order_id, reserved)
                raise
            reserved.append((line, magazine))
        return reserved

    def _restore(self, order_id: str, reserved: list[tuple[CartLine, Magazine]]) -> None:
        magazines = current_domain.repository_for(Magazine)
        for line, _ in reversed(reserved):
            try:
                magazines.release(line.magazine_id, order_id, line.quantity)
            except Exception as exc:
                logger.error(
                    "reconciliation_required",
                    order_id=order_id,
                    step="restore_reservation",
                    magazine_id=line.magazine_id,
                    quantity=line.quantity,
                    error=str(exc),
                )

    def _compensate(self, order_id: str, session_id: str | None, original: Exception) -> None:
        if session_id:
            try:
                self.client.expire_session(session_id)
            except MarketplaceError as exc:
                logger.warning("checkout_session_expiry_failed", order_id=order_id, session_id=session_id, error=exc.code)

        attempts = max(1, self.settings.compensation_attempts)
        last_error = None
        for attempt in range(1, attempts + 1):
            try:
                self.lifecycle.transition(order_id, OrderStatus.CANCELLED, "checkout-failed")
            except Exception as exc:
                last_error = exc
                logger.warning("checkout_rollback_retrying", order_id=order_id, attempt=attempt, error=str(exc))
                continue
            logger.info("checkout_rolled_back", order_id=order_id)
            return

        logger.error(
            "reconciliation_required",
            order_id=order_id,
            step="checkout_rollback",
            original_error=type(original).__name__,
            rollback_error=str(last_error),
        )
