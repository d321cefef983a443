"""Error taxonomy for order and payment processing.

Every error carries a stable ``code``, the HTTP ``status_code`` it maps to
and a ``details`` dict that is safe to return to callers. Provider messages
are kept on ``reason`` for logs only.
"""

from typing import Any


class MarketplaceError(Exception):
    """Base exception for all marketplace errors."""

    code = "internal_error"
    status_code = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None, reason: str | None = None):
        self.message = message
        self.details = details or {}
        self.reason = reason
        super().__init__(message)

    def as_payload(self) -> dict[str, Any]:
        return {"error": self.code, "message": self.message, "details": self.details}


class InvalidRequest(MarketplaceError):
    """Raised when caller input fails validation."""

    code = "validation_error"
    status_code = 400


class InvalidCartItem(InvalidRequest):
    """Raised when a cart line names an unknown magazine or a bad quantity."""

    def __init__(self, index: int, magazine_id: Any, problem: str):
        self.index = index
        self.magazine_id = magazine_id
        super().__init__(
            f"Cart item {index} is invalid: {problem}",
            details={"index": index, "magazineId": magazine_id, "problem": problem},
        )


class InvalidWebhookPayload(InvalidRequest):
    """Raised when a gateway notification cannot be parsed."""

    def __init__(self, problem: str):
        super().__init__(f"Malformed payment notification: {problem}", details={"problem": problem})


class WebhookSignatureInvalid(MarketplaceError):
    """Raised when a notification fails the gateway signature check."""

    code = "invalid_signature"
    status_code = 401

    def __init__(self):
        super().__init__("Invalid webhook signature")


class OrderNotFound(MarketplaceError):
    code = "order_not_found"
    status_code = 404

    def __init__(self, order_id: str | None = None, session_id: str | None = None):
        self.order_id = order_id
        self.session_id = session_id
        if session_id is not None:
            super().__init__(f"No order for checkout session {session_id}", details={"sessionId": session_id})
        else:
            super().__init__(f"Order not found: {order_id}", details={"orderId": order_id})


class InsufficientInventory(MarketplaceError):
    """Raised when a reservation asks for more copies than are available."""

    code = "insufficient_inventory"
    status_code = 409

    def __init__(self, magazine_id: str, requested: int, available: int):
        self.magazine_id = magazine_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Only {available} copies of magazine {magazine_id} available, {requested} requested",
            details={"magazineId": magazine_id, "requested": requested, "available": available},
        )


class InvalidTransition(MarketplaceError):
    code = "invalid_transition"
    status_code = 409

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(
            f"Cannot move order from {current} to {requested}",
            details={"currentStatus": current, "requestedStatus": requested},
        )


class StaleOrderState(MarketplaceError):
    """Raised when an order changed status between read and write."""

    code = "stale_order_state"
    status_code = 409

    def __init__(self, order_id: str, expected: str, actual: str):
        self.order_id = order_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Order {order_id} is {actual}, expected {expected}",
            details={"orderId": order_id, "expectedStatus": expected, "actualStatus": actual},
        )


class PaymentNotConfirmed(MarketplaceError):
    """Raised when the gateway does not report a captured payment."""

    code = "payment_not_confirmed"
    status_code = 409

    def __init__(self, order_id: str, payment_status: str | None = None):
        self.order_id = order_id
        self.payment_status = payment_status
        super().__init__(
            f"Payment for order {order_id} has not been captured",
            details={"orderId": order_id, "paymentStatus": payment_status},
        )


class GatewayUnavailable(MarketplaceError):
    """Raised when the payment provider cannot be reached or errors transiently."""

    code = "gateway_unavailable"
    status_code = 502

    def __init__(self, operation: str, reason: str | None = None):
        self.operation = operation
        super().__init__(
            "Payment provider is unavailable, please retry",
            details={"operation": operation},
            reason=reason,
        )


class GatewayTimeout(GatewayUnavailable):
    code = "gateway_timeout"
    status_code = 504

    def __init__(self, operation: str, timeout: float):
        self.timeout = timeout
        super().__init__(operation, reason=f"no response within {timeout}s")
        self.message = "Payment provider did not respond in time"
        self.args = (self.message,)


class GatewayRejected(MarketplaceError):
    """Raised when the provider refuses a request. Never retried."""

    code = "gateway_rejected"
    status_code = 502

    def __init__(self, operation: str, reason: str | None = None):
        self.operation = operation
        super().__init__("Payment provider rejected the request", details={"operation": operation}, reason=reason)


class RefundRejected(GatewayRejected):
    """Raised when a refund exceeds what was captured or is otherwise refused."""

    code = "refund_rejected"
    status_code = 422

    def __init__(self, reason: str | None = None):
        super().__init__("create_refund", reason=reason)
        self.message = "Refund was rejected by the payment provider"
        self.args = (self.message,)
