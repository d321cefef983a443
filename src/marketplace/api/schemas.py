"""Pydantic request/response schemas for the marketplace API.

These are external contracts (anti-corruption layer) — separate from the
Order aggregate. Field names are camelCase on the wire.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, StrictInt
from pydantic.alias_generators import to_camel

from marketplace.ordering.order import OrderStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------
class CartItemSchema(CamelModel):
    magazine_id: str
    quantity: StrictInt


class CheckoutRequest(CamelModel):
    retailer_id: str = Field(min_length=1)
    retailer_email: str = Field(min_length=3, max_length=254)
    retailer_name: str | None = None
    items: list[CartItemSchema]
    metadata: dict[str, str] | None = None

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "examples": [
                {
                    "retailerId": "ret-001",
                    "retailerEmail": "buyer@cornershop.example",
                    "retailerName": "Corner Shop",
                    "items": [{"magazineId": "mag-001", "quantity": 2}],
                }
            ]
        },
    )


class CheckoutResponse(CamelModel):
    order_id: str
    session_id: str
    redirect_url: str
    total_amount: float
    currency: str


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
class OrderItemResponse(CamelModel):
    magazine_id: str
    title: str
    quantity: int
    unit_price: float
    line_total: float


class OrderResponse(CamelModel):
    order_id: str
    retailer_id: str
    status: str
    status_reason: str | None = None
    total_amount: float
    currency: str
    refunded_amount: float = 0.0
    checkout_session_id: str | None = None
    items: list[OrderItemResponse]
    created_at: datetime | None = None
    updated_at: datetime | None = None
    expires_at: datetime | None = None

    @classmethod
    def from_order(cls, order) -> "OrderResponse":
        return cls(
            order_id=str(order.id),
            retailer_id=str(order.retailer_id),
            status=order.status,
            status_reason=order.status_reason,
            total_amount=order.total_amount,
            currency=order.currency,
            refunded_amount=order.refunded_amount or 0.0,
            checkout_session_id=order.checkout_session_id,
            items=[
                OrderItemResponse(
                    magazine_id=str(item.magazine_id),
                    title=item.title,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    line_total=item.line_total,
                )
                for item in order.items
            ],
            created_at=order.created_at,
            updated_at=order.updated_at,
            expires_at=order.expires_at,
        )


class TransitionRequest(CamelModel):
    status: OrderStatus
    cause: str = Field(default="manual", min_length=1, max_length=100)


class RefundRequest(CamelModel):
    amount: float | None = Field(default=None, gt=0)
    reason: str = "requested_by_customer"


class RefundResponse(CamelModel):
    refund_id: str
    order_id: str
    amount: float
    status: str


# ---------------------------------------------------------------------------
# Webhooks
# ---------------------------------------------------------------------------
class WebhookResponse(CamelModel):
    status: str  # processed, ignored, refunded
    order_id: str | None = None
    order_status: str | None = None
