"""Order notification port — where status-change notices are delivered.

Delivery is at-least-once. Receivers de-duplicate on
``(order_id, new_status, timestamp)``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class OrderStatusNotice:
    order_id: str
    previous_status: str
    new_status: str
    cause: str
    timestamp: datetime

    def as_payload(self) -> dict:
        return {
            "orderId": self.order_id,
            "previousStatus": self.previous_status,
            "newStatus": self.new_status,
            "cause": self.cause,
            "timestamp": self.timestamp.isoformat(),
        }


class OrderNotifier(ABC):
    @abstractmethod
    def order_status_changed(self, notice: OrderStatusNotice) -> None:
        """Deliver a notice. Raise if delivery failed."""
        ...
