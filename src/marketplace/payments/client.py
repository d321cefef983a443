"""Gateway client — the only way the order core talks to the payment provider.

Wraps the active ``PaymentGateway`` adapter with what every call needs:

- conversion of major-unit prices to integer minor units
- a per-call timeout, surfaced as ``GatewayTimeout``
- bounded retry with exponential backoff for transient failures
  (``GatewayUnavailable`` and ``GatewayTimeout``). Rejections are final.
- customer deduplication by email, looking up before creating

Calls that create something on the provider carry an idempotency key, so
a retry after a timeout cannot create a second session or refund.
"""

import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from datetime import datetime
from typing import Any, TypeVar
from uuid import uuid4

from marketplace.errors import GatewayTimeout, GatewayUnavailable
from marketplace.payments.gateway import get_gateway
from marketplace.payments.gateway.port import (
    CheckoutSession,
    GatewayCustomer,
    LineItem,
    PaymentGateway,
    RefundResult,
    SessionStatus,
    session_metadata,
)
from marketplace.settings import Settings, get_settings
from marketplace.shared.money import to_minor_units
from marketplace.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

# Shared by all clients; a call that outlives its timeout keeps its worker until it returns
_executor = ThreadPoolExecutor(max_workers=16, thread_name_prefix="gateway")


class PaymentGatewayClient:
    def __init__(
        self,
        gateway: PaymentGateway | None = None,
        settings: Settings | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.gateway = gateway or get_gateway()
        self.settings = settings or get_settings()
        self._sleep = sleep

    # -------------------------------------------------------------------
    # Call discipline
    # -------------------------------------------------------------------
    def _call_once(self, operation: str, fn: Callable[..., T], *args, **kwargs) -> T:
        future = _executor.submit(fn, *args, **kwargs)
        try:
            return future.result(timeout=self.settings.gateway_timeout_seconds)
        except FutureTimeout:
            future.cancel()
            raise GatewayTimeout(operation, self.settings.gateway_timeout_seconds) from None

    def _call(self, operation: str, fn: Callable[..., T], *args, **kwargs) -> T:
        attempts = max(1, self.settings.gateway_max_attempts)
        for attempt in range(1, attempts + 1):
            try:
                return self._call_once(operation, fn, *args, **kwargs)
            except GatewayUnavailable as exc:
                if attempt == attempts:
                    logger.error(
                        "gateway_call_failed",
                        operation=operation,
                        attempts=attempt,
                        error=exc.code,
                        reason=exc.reason,
                    )
                    raise
                delay = self.settings.gateway_backoff_seconds * (2 ** (attempt - 1))
                logger.warning(
                    "gateway_call_retrying",
                    operation=operation,
                    attempt=attempt,
                    delay_seconds=delay,
                    error=exc.code,
                )
                self._sleep(delay)
        raise AssertionError("unreachable")

    # -------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------
    def create_customer(self, email: str, name: str | None = None, metadata: dict[str, Any] | None = None) -> GatewayCustomer:
        """Return the gateway customer for ``email``, creating it if none exists.

        Two concurrent first purchases by the same retailer can still both
        create a customer; the provider tolerates duplicates.
        """
        existing = self._call("find_customer_by_email", self.gateway.find_customer_by_email, email)
        if existing is not None:
            return existing

        customer = self._call(
            "create_customer",
            self.gateway.create_customer,
            email,
            name,
            session_metadata(metadata or {}),
        )
        logger.info("gateway_customer_created", customer_id=customer.customer_id)
        return customer

    def build_line_items(self, items: list[dict[str, Any]], currency: str | None = None) -> list[LineItem]:
        currency = currency or self.settings.currency
        return [
            LineItem(
                name=item["name"],
                description=item.get("description"),
                image_url=item.get("image_url"),
                magazine_id=item.get("magazine_id"),
                unit_amount=to_minor_units(item["unit_price"], currency),
                quantity=item["quantity"],
            )
            for item in items
        ]

    def create_checkout_session(
        self,
        items: list[dict[str, Any]],
        customer_ref: str | None,
        metadata: dict[str, Any],
        idempotency_key: str,
        expires_at: datetime | None = None,
        currency: str | None = None,
    ) -> CheckoutSession:
        """Open a hosted checkout session.

        Args:
            items: Dicts with name, description, unit_price (major units),
                   quantity and optionally magazine_id and image_url.
            customer_ref: Gateway customer id from ``create_customer``.
            metadata: Flat key/value pairs stored on the session.
            idempotency_key: Stable per order, so retries reuse the session.
            expires_at: When the gateway should close the session.
        """
        currency = currency or self.settings.currency
        line_items = self.build_line_items(items, currency)
        return self._call(
            "create_checkout_session",
            self.gateway.create_checkout_session,
            line_items=line_items,
            currency=currency,
            customer_id=customer_ref,
            metadata=session_metadata(metadata),
            success_url=self.settings.success_url,
            cancel_url=self.settings.cancel_url,
            idempotency_key=idempotency_key,
            expires_at=int(expires_at.timestamp()) if expires_at else None,
        )

    def retrieve_session(self, session_id: str) -> SessionStatus:
        return self._call("retrieve_session", self.gateway.retrieve_session, session_id)

    def expire_session(self, session_id: str) -> None:
        self._call("expire_session", self.gateway.expire_session, session_id)

    def create_refund(
        self,
        payment_intent_ref: str,
        amount: float | None = None,
        reason: str = "requested_by_customer",
        currency: str | None = None,
    ) -> RefundResult:
        """Refund a captured payment, fully or by ``amount`` major units."""
        currency = currency or self.settings.currency
        minor = to_minor_units(amount, currency) if amount is not None else None
        return self._call(
            "create_refund",
            self.gateway.create_refund,
            payment_intent_ref,
            minor,
            reason,
            idempotency_key=f"refund-{uuid4().hex}",
        )
