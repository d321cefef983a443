"""HTTP surface of the marketplace order core."""

from marketplace.api.errors import register_error_handlers
from marketplace.api.routes import checkout_router, order_router, webhook_router

__all__ = ["checkout_router", "order_router", "webhook_router", "register_error_handlers"]
