"""Stripe payment gateway adapter.

Talks to Stripe through the official SDK. Each call passes the API key
explicitly so several adapters with different keys can coexist in one
process. Stripe errors are translated at this boundary:

- connection failures, rate limiting and 5xx responses → GatewayUnavailable
- anything else Stripe refuses → GatewayRejected (RefundRejected for refunds)

Checkout sessions are created in ``payment`` mode with card payments and
``price_data`` line items, carrying the order metadata on both the session
and the payment intent.
"""

import json
import time

import stripe

from marketplace.errors import GatewayRejected, GatewayUnavailable, InvalidWebhookPayload, RefundRejected
from marketplace.payments.gateway.port import (
    OUTCOME_EXPIRED,
    OUTCOME_FAILED,
    OUTCOME_PENDING,
    OUTCOME_SUCCEEDED,
    CheckoutSession,
    GatewayCustomer,
    LineItem,
    PaymentGateway,
    PaymentNotification,
    RefundResult,
    SessionStatus,
)
from marketplace.utils.logging import get_logger

logger = get_logger(__name__)

# Stripe refuses sessions that expire sooner than 30 minutes after creation
_MIN_SESSION_SECONDS = 31 * 60

_TRANSIENT_ERRORS = (stripe.APIConnectionError, stripe.RateLimitError, stripe.APIError)

# Stripe refund reasons; anything else is sent as the default
_REFUND_REASONS = {"duplicate", "fraudulent", "requested_by_customer"}


def _reference(value) -> str | None:
    """Stripe returns either an id or an expanded object for references."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return value.get("id")


class StripeGateway(PaymentGateway):
    def __init__(self, api_key: str, webhook_secret: str) -> None:
        self.api_key = api_key
        self.webhook_secret = webhook_secret

    def _translate(self, operation: str, exc: stripe.StripeError, rejected=GatewayRejected):
        logger.warning(
            "stripe_call_failed",
            operation=operation,
            error_type=type(exc).__name__,
            http_status=getattr(exc, "http_status", None),
        )
        if isinstance(exc, _TRANSIENT_ERRORS):
            return GatewayUnavailable(operation, reason=str(exc))
        if rejected is RefundRejected:
            return RefundRejected(reason=str(exc))
        return rejected(operation, reason=str(exc))

    def find_customer_by_email(self, email: str) -> GatewayCustomer | None:
        try:
            customers = stripe.Customer.list(email=email, limit=1, api_key=self.api_key)
        except stripe.StripeError as exc:
            raise self._translate("find_customer_by_email", exc) from exc
        if not customers.data:
            return None
        customer = customers.data[0]
        return GatewayCustomer(customer_id=customer.id, email=customer.email, name=customer.get("name"))

    def create_customer(self, email: str, name: str | None, metadata: dict[str, str]) -> GatewayCustomer:
        params = {"email": email, "metadata": metadata}
        if name:
            params["name"] = name
        try:
            customer = stripe.Customer.create(api_key=self.api_key, **params)
        except stripe.StripeError as exc:
            raise self._translate("create_customer", exc) from exc
        return GatewayCustomer(customer_id=customer.id, email=email, name=name)

    def create_checkout_session(
        self,
        line_items: list[LineItem],
        currency: str,
        customer_id: str | None,
        metadata: dict[str, str],
        success_url: str,
        cancel_url: str,
        idempotency_key: str,
        expires_at: int | None = None,
    ) -> CheckoutSession:
        params = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": [self._line_item(item, currency) for item in line_items],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata,
            "payment_intent_data": {"metadata": metadata},
        }
        if customer_id:
            params["customer"] = customer_id
        if expires_at:
            params["expires_at"] = max(expires_at, int(time.time()) + _MIN_SESSION_SECONDS)

        try:
            session = stripe.checkout.Session.create(
                api_key=self.api_key,
                idempotency_key=idempotency_key,
                **params,
            )
        except stripe.StripeError as exc:
            raise self._translate("create_checkout_session", exc) from exc

        return CheckoutSession(
            session_id=session.id,
            redirect_url=session.url,
            amount_total=session.amount_total,
            currency=session.currency,
            customer_id=_reference(session.get("customer")),
            expires_at=session.get("expires_at"),
        )

    @staticmethod
    def _line_item(item: LineItem, currency: str) -> dict:
        product_data = {"name": item.name, "metadata": {"descriptor_version": str(item.version)}}
        if item.description:
            product_data["description"] = item.description
        if item.image_url:
            product_data["images"] = [item.image_url]
        if item.magazine_id:
            product_data["metadata"]["magazine_id"] = item.magazine_id
        return {
            "price_data": {
                "currency": currency,
                "product_data": product_data,
                "unit_amount": item.unit_amount,
            },
            "quantity": item.quantity,
        }

    def retrieve_session(self, session_id: str) -> SessionStatus:
        try:
            session = stripe.checkout.Session.retrieve(
                session_id,
                expand=["payment_intent", "customer"],
                api_key=self.api_key,
            )
        except stripe.StripeError as exc:
            raise self._translate("retrieve_session", exc) from exc

        return SessionStatus(
            session_id=session.id,
            status=session.status,
            payment_status=session.payment_status,
            amount_total=session.get("amount_total"),
            payment_intent_id=_reference(session.get("payment_intent")),
            metadata=dict(session.get("metadata") or {}),
        )

    def expire_session(self, session_id: str) -> None:
        try:
            stripe.checkout.Session.expire(session_id, api_key=self.api_key)
        except stripe.StripeError as exc:
            raise self._translate("expire_session", exc) from exc

    def create_refund(
        self,
        payment_intent_id: str,
        amount: int | None,
        reason: str,
        idempotency_key: str | None = None,
    ) -> RefundResult:
        params = {
            "payment_intent": payment_intent_id,
            "reason": reason if reason in _REFUND_REASONS else "requested_by_customer",
        }
        if amount is not None:
            params["amount"] = amount
        if idempotency_key:
            params["idempotency_key"] = idempotency_key

        try:
            refund = stripe.Refund.create(api_key=self.api_key, **params)
        except stripe.StripeError as exc:
            raise self._translate("create_refund", exc, rejected=RefundRejected) from exc

        return RefundResult(
            refund_id=refund.id,
            amount=refund.amount,
            status=refund.status,
            payment_intent_id=payment_intent_id,
        )

    def verify_webhook_signature(self, payload: bytes, signature: str) -> bool:
        if not signature or not self.webhook_secret:
            return False
        try:
            stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except stripe.SignatureVerificationError:
            return False
        except ValueError:
            # Signature matched but the body is not JSON; parse_notification reports it
            return True
        return True

    def parse_notification(self, payload: bytes) -> PaymentNotification | None:
        try:
            event = json.loads(payload)
        except (TypeError, ValueError) as exc:
            raise InvalidWebhookPayload("body is not valid JSON") from exc

        event_type = event.get("type") if isinstance(event, dict) else None
        if not event_type:
            raise InvalidWebhookPayload("event type is missing")
        if not event_type.startswith("checkout.session."):
            return None

        session = (event.get("data") or {}).get("object") or {}
        session_id = session.get("id")
        if not session_id:
            raise InvalidWebhookPayload("checkout session id is missing")

        if event_type in ("checkout.session.completed", "checkout.session.async_payment_succeeded"):
            paid = session.get("payment_status") in ("paid", "no_payment_required")
            outcome = OUTCOME_SUCCEEDED if paid else OUTCOME_PENDING
        elif event_type == "checkout.session.async_payment_failed":
            outcome = OUTCOME_FAILED
        elif event_type == "checkout.session.expired":
            outcome = OUTCOME_EXPIRED
        else:
            return None

        return PaymentNotification(
            event_type=event_type,
            session_id=session_id,
            outcome=outcome,
            payment_intent_id=_reference(session.get("payment_intent")),
            event_id=event.get("id"),
        )
