"""Runtime settings read from the environment.

Services take an explicit ``Settings`` so tests can shrink timeouts and
backoff without touching ``os.environ``; everything else calls
``get_settings()``.
"""

import os
from dataclasses import dataclass
from functools import lru_cache

from marketplace.shared.money import VALID_CURRENCIES


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw else default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw else default


@dataclass(frozen=True)
class Settings:
    environment: str = "development"
    currency: str = "usd"
    gateway: str = "fake"
    stripe_api_key: str = ""
    stripe_webhook_secret: str = ""
    fake_webhook_secret: str = "test-signature"
    frontend_url: str = "http://localhost:3000"
    gateway_timeout_seconds: float = 10.0
    gateway_max_attempts: int = 3
    gateway_backoff_seconds: float = 0.5
    checkout_expiry_minutes: int = 30
    compensation_attempts: int = 3

    def __post_init__(self):
        if self.currency not in VALID_CURRENCIES:
            raise ValueError(f"Unsupported currency: {self.currency}")

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            environment=(os.getenv("PROTEAN_ENV") or "development").lower(),
            currency=os.getenv("CURRENCY", "usd").lower(),
            gateway=os.getenv("PAYMENT_GATEWAY", "fake").lower(),
            stripe_api_key=os.getenv("STRIPE_SECRET_KEY", ""),
            stripe_webhook_secret=os.getenv("STRIPE_WEBHOOK_SECRET", ""),
            fake_webhook_secret=os.getenv("FAKE_WEBHOOK_SECRET", "test-signature"),
            frontend_url=os.getenv("FRONTEND_URL", "http://localhost:3000").rstrip("/"),
            gateway_timeout_seconds=_env_float("GATEWAY_TIMEOUT_SECONDS", 10.0),
            gateway_max_attempts=_env_int("GATEWAY_MAX_ATTEMPTS", 3),
            gateway_backoff_seconds=_env_float("GATEWAY_BACKOFF_SECONDS", 0.5),
            checkout_expiry_minutes=_env_int("CHECKOUT_EXPIRY_MINUTES", 30),
            compensation_attempts=_env_int("CHECKOUT_COMPENSATION_ATTEMPTS", 3),
        )

    @property
    def success_url(self) -> str:
        # {CHECKOUT_SESSION_ID} is substituted by the gateway on redirect
        return f"{self.frontend_url}/checkout/success?session_id={{CHECKOUT_SESSION_ID}}"

    @property
    def cancel_url(self) -> str:
        return f"{self.frontend_url}/checkout/cancel"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings, read once from the environment."""
    return Settings.from_env()
