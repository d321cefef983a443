"""Notifier registry.

Provides get_notifier() / set_notifier() to swap implementations:
- LogNotifier by default
- FakeNotifier in tests
"""

from marketplace.notifications.log_adapter import LogNotifier
from marketplace.notifications.port import OrderNotifier

_current_notifier: OrderNotifier | None = None


def get_notifier() -> OrderNotifier:
    global _current_notifier
    if _current_notifier is None:
        _current_notifier = LogNotifier()
    return _current_notifier


def set_notifier(notifier: OrderNotifier) -> None:
    global _current_notifier
    _current_notifier = notifier


def reset_notifier() -> None:
    global _current_notifier
    _current_notifier = None
