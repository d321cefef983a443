"""Configurable fake payment gateway for development and testing.

This adapter simulates a hosted-checkout provider without any external
calls. It keeps customers, sessions, captured payment intents and refunds
in memory, and can be told to fail or stall so the retry, timeout and
rollback paths can be exercised:

- ``configure(should_succeed=False)`` rejects every session creation
- ``fail_next("create_checkout_session", times=2)`` raises transient errors
- ``set_latency("retrieve_session", 1.5)`` makes a call slow
- ``complete_session(session_id)`` plays the retailer paying on the hosted page

Webhook bodies are JSON ``{"eventType", "sessionId", "status"}`` signed with
a shared secret sent in the signature header.
"""

import hmac
import json
import threading
import time
from uuid import uuid4

from marketplace.errors import GatewayRejected, GatewayUnavailable, InvalidWebhookPayload, RefundRejected
from marketplace.payments.gateway.port import (
    NOTIFICATION_OUTCOMES,
    CheckoutSession,
    GatewayCustomer,
    LineItem,
    PaymentGateway,
    PaymentNotification,
    RefundResult,
    SessionStatus,
)

_FAKE_HOSTED_PAGE = "https://checkout.fake-gateway.test/pay"


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    def __init__(self, webhook_secret: str = "test-signature") -> None:
        self.webhook_secret = webhook_secret
        self.should_succeed: bool = True
        self.failure_reason: str = "Session creation declined"
        self.calls: list[dict] = []
        self.customers: dict[str, GatewayCustomer] = {}
        self.sessions: dict[str, dict] = {}
        self.intents: dict[str, dict] = {}
        self.refunds: list[RefundResult] = []
        self._idempotent_sessions: dict[str, str] = {}
        self._pending_failures: dict[str, list[Exception]] = {}
        self._latency: dict[str, float] = {}
        self._lock = threading.Lock()

    # -------------------------------------------------------------------
    # Test controls
    # -------------------------------------------------------------------
    def configure(self, should_succeed: bool, failure_reason: str = "Session creation declined") -> None:
        """Configure gateway behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def fail_next(self, operation: str, times: int = 1, transient: bool = True) -> None:
        """Make the next ``times`` calls of ``operation`` raise."""
        error = (
            GatewayUnavailable(operation, reason="fake outage")
            if transient
            else GatewayRejected(operation, reason=self.failure_reason)
        )
        with self._lock:
            self._pending_failures.setdefault(operation, []).extend([error] * times)

    def set_latency(self, operation: str, seconds: float) -> None:
        self._latency[operation] = seconds

    def complete_session(self, session_id: str, paid: bool = True) -> SessionStatus:
        """Simulate the retailer finishing the hosted payment page."""
        with self._lock:
            session = self.sessions[session_id]
            session["status"] = "complete"
            if paid:
                intent_id = f"pi_fake_{uuid4().hex[:12]}"
                self.intents[intent_id] = {"amount": session["amount_total"], "refunded": 0}
                session["payment_status"] = "paid"
                session["payment_intent_id"] = intent_id
            else:
                session["payment_status"] = "unpaid"
        return self.retrieve_session(session_id)

    def _enter(self, operation: str, **details) -> None:
        self.calls.append({"method": operation, **details})
        latency = self._latency.get(operation)
        if latency:
            time.sleep(latency)
        with self._lock:
            queued = self._pending_failures.get(operation)
            error = queued.pop(0) if queued else None
        if error is not None:
            raise error

    # -------------------------------------------------------------------
    # PaymentGateway
    # -------------------------------------------------------------------
    def find_customer_by_email(self, email: str) -> GatewayCustomer | None:
        self._enter("find_customer_by_email", email=email)
        with self._lock:
            return self.customers.get(email)

    def create_customer(self, email: str, name: str | None, metadata: dict[str, str]) -> GatewayCustomer:
        self._enter("create_customer", email=email, name=name, metadata=metadata)
        with self._lock:
            customer = GatewayCustomer(customer_id=f"cus_fake_{uuid4().hex[:12]}", email=email, name=name)
            self.customers[email] = customer
            return customer

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
        self._enter(
            "create_checkout_session",
            line_items=line_items,
            currency=currency,
            customer_id=customer_id,
            metadata=metadata,
            idempotency_key=idempotency_key,
        )
        if not self.should_succeed:
            raise GatewayRejected("create_checkout_session", reason=self.failure_reason)

        with self._lock:
            if idempotency_key in self._idempotent_sessions:
                existing = self.sessions[self._idempotent_sessions[idempotency_key]]
                return existing["checkout_session"]

            session_id = f"cs_fake_{uuid4().hex[:16]}"
            amount_total = sum(item.amount for item in line_items)
            checkout_session = CheckoutSession(
                session_id=session_id,
                redirect_url=f"{_FAKE_HOSTED_PAGE}/{session_id}",
                amount_total=amount_total,
                currency=currency,
                customer_id=customer_id,
                expires_at=expires_at,
            )
            self.sessions[session_id] = {
                "checkout_session": checkout_session,
                "status": "open",
                "payment_status": "unpaid",
                "amount_total": amount_total,
                "currency": currency,
                "line_items": list(line_items),
                "metadata": dict(metadata),
                "success_url": success_url,
                "cancel_url": cancel_url,
                "payment_intent_id": None,
            }
            self._idempotent_sessions[idempotency_key] = session_id
            return checkout_session

    def retrieve_session(self, session_id: str) -> SessionStatus:
        self._enter("retrieve_session", session_id=session_id)
        with self._lock:
            session = self.sessions.get(session_id)
            if session is None:
                raise GatewayRejected("retrieve_session", reason=f"No such checkout session: {session_id}")
            return SessionStatus(
                session_id=session_id,
                status=session["status"],
                payment_status=session["payment_status"],
                amount_total=session["amount_total"],
                payment_intent_id=session["payment_intent_id"],
                metadata=dict(session["metadata"]),
            )

    def expire_session(self, session_id: str) -> None:
        self._enter("expire_session", session_id=session_id)
        with self._lock:
            session = self.sessions.get(session_id)
            if session is None:
                raise GatewayRejected("expire_session", reason=f"No such checkout session: {session_id}")
            if session["status"] != "open":
                raise GatewayRejected("expire_session", reason=f"Session is {session['status']}")
            session["status"] = "expired"

    def create_refund(
        self,
        payment_intent_id: str,
        amount: int | None,
        reason: str,
        idempotency_key: str | None = None,
    ) -> RefundResult:
        self._enter("create_refund", payment_intent_id=payment_intent_id, amount=amount, reason=reason)
        with self._lock:
            intent = self.intents.get(payment_intent_id)
            if intent is None:
                raise RefundRejected(reason=f"No such payment_intent: {payment_intent_id}")

            remaining = intent["amount"] - intent["refunded"]
            requested = remaining if amount is None else amount
            if requested <= 0 or requested > remaining:
                raise RefundRejected(
                    reason=f"Refund amount ({requested}) is greater than unrefunded amount on charge ({remaining})"
                )

            intent["refunded"] += requested
            result = RefundResult(
                refund_id=f"re_fake_{uuid4().hex[:12]}",
                amount=requested,
                status="succeeded",
                payment_intent_id=payment_intent_id,
            )
            self.refunds.append(result)
            return result

    def verify_webhook_signature(self, payload: bytes, signature: str) -> bool:  # noqa: ARG002
        if not signature:
            return False
        return hmac.compare_digest(signature.encode(), self.webhook_secret.encode())

    def parse_notification(self, payload: bytes) -> PaymentNotification | None:
        try:
            body = json.loads(payload)
        except (TypeError, ValueError) as exc:
            raise InvalidWebhookPayload("body is not valid JSON") from exc
        if not isinstance(body, dict):
            raise InvalidWebhookPayload("body must be a JSON object")

        session_id = body.get("sessionId")
        outcome = body.get("status")
        if not session_id or not isinstance(session_id, str):
            raise InvalidWebhookPayload("sessionId is required")
        if outcome not in NOTIFICATION_OUTCOMES:
            raise InvalidWebhookPayload(f"unknown status {outcome!r}")

        payment_intent_id = body.get("paymentIntentId")
        if payment_intent_id is None and outcome == "succeeded":
            with self._lock:
                session = self.sessions.get(session_id)
                payment_intent_id = session["payment_intent_id"] if session else None

        return PaymentNotification(
            event_type=body.get("eventType") or f"checkout.session.{outcome}",
            session_id=session_id,
            outcome=outcome,
            payment_intent_id=payment_intent_id,
            event_id=body.get("eventId"),
        )
