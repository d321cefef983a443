"""Payment gateway port (abstract interface).

Defines the contract that all payment gateway adapters must implement.
Adapters speak the provider's language: amounts are integers in minor
units and failures are raised as ``GatewayUnavailable`` (transient, worth
retrying) or ``GatewayRejected`` / ``RefundRejected`` (final). Order
semantics live elsewhere.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

LINE_ITEM_DESCRIPTOR_VERSION = 1

# Outcomes a payment notification can carry
OUTCOME_SUCCEEDED = "succeeded"
OUTCOME_FAILED = "failed"
OUTCOME_EXPIRED = "expired"
OUTCOME_PENDING = "pending"

NOTIFICATION_OUTCOMES = frozenset({OUTCOME_SUCCEEDED, OUTCOME_FAILED, OUTCOME_EXPIRED, OUTCOME_PENDING})


@dataclass(frozen=True)
class LineItem:
    """What the gateway shows the retailer for one cart line."""

    name: str
    unit_amount: int
    quantity: int
    description: str | None = None
    image_url: str | None = None
    magazine_id: str | None = None
    version: int = LINE_ITEM_DESCRIPTOR_VERSION

    @property
    def amount(self) -> int:
        return self.unit_amount * self.quantity


@dataclass(frozen=True)
class GatewayCustomer:
    customer_id: str
    email: str
    name: str | None = None


@dataclass(frozen=True)
class CheckoutSession:
    """A hosted, time-bounded payment page created on the gateway."""

    session_id: str
    redirect_url: str
    amount_total: int
    currency: str
    customer_id: str | None = None
    expires_at: int | None = None


@dataclass(frozen=True)
class SessionStatus:
    """The gateway's current view of a checkout session."""

    session_id: str
    status: str  # open, complete, expired
    payment_status: str  # paid, unpaid, no_payment_required
    amount_total: int | None = None
    payment_intent_id: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def is_paid(self) -> bool:
        return self.payment_status in ("paid", "no_payment_required")

    @property
    def is_expired(self) -> bool:
        return self.status == "expired"


@dataclass(frozen=True)
class RefundResult:
    refund_id: str
    amount: int
    status: str
    payment_intent_id: str


@dataclass(frozen=True)
class PaymentNotification:
    """A payment outcome reported by the gateway, by push or by poll."""

    event_type: str
    session_id: str
    outcome: str
    payment_intent_id: str | None = None
    event_id: str | None = None


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    @abstractmethod
    def find_customer_by_email(self, email: str) -> GatewayCustomer | None:
        """Return the existing gateway customer for an email, if any."""
        ...

    @abstractmethod
    def create_customer(self, email: str, name: str | None, metadata: dict[str, str]) -> GatewayCustomer:
        """Create a customer record on the gateway."""
        ...

    @abstractmethod
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
        """Create a hosted checkout session for the given line items."""
        ...

    @abstractmethod
    def retrieve_session(self, session_id: str) -> SessionStatus:
        """Fetch the current status of a checkout session."""
        ...

    @abstractmethod
    def expire_session(self, session_id: str) -> None:
        """Close an open checkout session so it can no longer be paid."""
        ...

    @abstractmethod
    def create_refund(
        self,
        payment_intent_id: str,
        amount: int | None,
        reason: str,
        idempotency_key: str | None = None,
    ) -> RefundResult:
        """Refund all of a captured payment, or ``amount`` minor units of it."""
        ...

    @abstractmethod
    def verify_webhook_signature(self, payload: bytes, signature: str) -> bool:
        """Verify that a webhook payload is authentically from the gateway."""
        ...

    @abstractmethod
    def parse_notification(self, payload: bytes) -> PaymentNotification | None:
        """Translate a verified webhook body. Returns None for events we do not act on."""
        ...


def session_metadata(metadata: dict[str, Any]) -> dict[str, str]:
    """Gateways only accept flat string metadata."""
    return {str(k): str(v) for k, v in metadata.items() if v is not None}
