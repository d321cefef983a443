"""FastAPI routes for checkout, payment webhooks and orders."""

from fastapi import APIRouter, Depends, Header, Query, Request
from protean.utils.globals import current_domain

from marketplace.api.schemas import (
    CheckoutRequest,
    CheckoutResponse,
    OrderResponse,
    RefundRequest,
    RefundResponse,
    TransitionRequest,
    WebhookResponse,
)
from marketplace.ordering.checkout import CheckoutOrchestrator
from marketplace.ordering.lifecycle import OrderLifecycleManager
from marketplace.ordering.order import Order
from marketplace.ordering.refunds import OrderRefunds
from marketplace.payments.webhook import PaymentWebhookHandler
from marketplace.shared.money import from_minor_units


# ---------------------------------------------------------------------------
# Service providers (overridable with app.dependency_overrides)
# ---------------------------------------------------------------------------
def get_checkout_orchestrator() -> CheckoutOrchestrator:
    return CheckoutOrchestrator()


def get_lifecycle_manager() -> OrderLifecycleManager:
    return OrderLifecycleManager()


def get_webhook_handler() -> PaymentWebhookHandler:
    return PaymentWebhookHandler()


def get_refunds() -> OrderRefunds:
    return OrderRefunds()


# ---------------------------------------------------------------------------
# Checkout Router
# ---------------------------------------------------------------------------
checkout_router = APIRouter(prefix="/checkout", tags=["checkout"])


@checkout_router.post("", status_code=201, response_model=CheckoutResponse)
async def start_checkout(
    body: CheckoutRequest,
    orchestrator: CheckoutOrchestrator = Depends(get_checkout_orchestrator),
) -> CheckoutResponse:
    """Reserve the cart and open a hosted payment session for it."""
    result = orchestrator.start_checkout(
        retailer_id=body.retailer_id,
        items=[{"magazine_id": item.magazine_id, "quantity": item.quantity} for item in body.items],
        retailer_email=body.retailer_email,
        retailer_name=body.retailer_name,
        metadata=body.metadata,
    )
    return CheckoutResponse(
        order_id=result.order_id,
        session_id=result.session_id,
        redirect_url=result.redirect_url,
        total_amount=result.total_amount,
        currency=result.currency,
    )


@checkout_router.get("/success", response_model=WebhookResponse)
async def checkout_success(
    session_id: str = Query(min_length=1),
    handler: PaymentWebhookHandler = Depends(get_webhook_handler),
) -> WebhookResponse:
    """Confirm an order by polling the gateway when the retailer lands back on the site."""
    outcome = handler.reconcile_session(session_id)
    return WebhookResponse(status=outcome.status, order_id=outcome.order_id, order_status=outcome.order_status)


# ---------------------------------------------------------------------------
# Webhook Router
# ---------------------------------------------------------------------------
webhook_router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@webhook_router.post("/payments", response_model=WebhookResponse)
async def payment_webhook(
    request: Request,
    x_gateway_signature: str = Header(default=""),
    stripe_signature: str = Header(default=""),
    handler: PaymentWebhookHandler = Depends(get_webhook_handler),
) -> WebhookResponse:
    """Apply a payment notification pushed by the gateway."""
    payload = await request.body()
    outcome = handler.handle_webhook(payload, x_gateway_signature or stripe_signature)
    return WebhookResponse(status=outcome.status, order_id=outcome.order_id, order_status=outcome.order_status)


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.get("", response_model=list[OrderResponse])
async def list_orders(retailer_id: str = Query(min_length=1)) -> list[OrderResponse]:
    """List a retailer's orders, newest first."""
    orders = current_domain.repository_for(Order).find_by_retailer(retailer_id)
    return [OrderResponse.from_order(order) for order in orders]


@order_router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str) -> OrderResponse:
    order = current_domain.repository_for(Order).get_by_id(order_id)
    return OrderResponse.from_order(order)


@order_router.post("/{order_id}/transitions", response_model=OrderResponse)
async def transition_order(
    order_id: str,
    body: TransitionRequest,
    lifecycle: OrderLifecycleManager = Depends(get_lifecycle_manager),
) -> OrderResponse:
    """Move an order along its lifecycle (shipping, delivery, cancellation)."""
    order = lifecycle.transition(order_id, body.status, body.cause)
    return OrderResponse.from_order(order)


@order_router.post("/{order_id}/refunds", status_code=201, response_model=RefundResponse)
async def refund_order(
    order_id: str,
    body: RefundRequest,
    refunds: OrderRefunds = Depends(get_refunds),
) -> RefundResponse:
    """Refund all or part of an order's captured payment."""
    result = refunds.refund(order_id, amount=body.amount, reason=body.reason)
    order = current_domain.repository_for(Order).get_by_id(order_id)
    return RefundResponse(
        refund_id=result.refund_id,
        order_id=order_id,
        amount=from_minor_units(result.amount, order.currency),
        status=result.status,
    )
