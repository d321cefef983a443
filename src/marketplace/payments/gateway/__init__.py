"""Payment gateway factory.

Provides get_gateway() / set_gateway() to swap implementations:
- FakeGateway for development and testing (PAYMENT_GATEWAY=fake, default)
- StripeGateway for production (PAYMENT_GATEWAY=stripe)
"""

from marketplace.payments.gateway.fake_adapter import FakeGateway
from marketplace.payments.gateway.port import PaymentGateway
from marketplace.settings import Settings, get_settings

_current_gateway: PaymentGateway | None = None


def build_gateway(settings: Settings) -> PaymentGateway:
    """Construct the adapter named by ``settings.gateway``."""
    if settings.gateway == "stripe":
        from marketplace.payments.gateway.stripe_adapter import StripeGateway

        return StripeGateway(api_key=settings.stripe_api_key, webhook_secret=settings.stripe_webhook_secret)
    if settings.gateway == "fake":
        return FakeGateway(webhook_secret=settings.fake_webhook_secret)
    raise ValueError(f"Unknown payment gateway: {settings.gateway}")


def get_gateway() -> PaymentGateway:
    """Return the current payment gateway. Defaults to the one configured in settings."""
    global _current_gateway
    if _current_gateway is None:
        _current_gateway = build_gateway(get_settings())
    return _current_gateway


def set_gateway(gateway: PaymentGateway) -> None:
    """Override the active payment gateway (useful for tests)."""
    global _current_gateway
    _current_gateway = gateway


def reset_gateway() -> None:
    """Reset to default gateway."""
    global _current_gateway
    _current_gateway = None
