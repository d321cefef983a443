"""Fake notifier — records notices for test assertions."""

from marketplace.notifications.port import OrderNotifier, OrderStatusNotice


class FakeNotifier(OrderNotifier):
    def __init__(self):
        self.notices: list[OrderStatusNotice] = []
        self.should_succeed = True

    def configure(self, should_succeed: bool = True):
        self.should_succeed = should_succeed

    def order_status_changed(self, notice: OrderStatusNotice) -> None:
        if not self.should_succeed:
            raise ConnectionError("Notification delivery failed")
        self.notices.append(notice)

    def statuses_for(self, order_id: str) -> list[str]:
        return [n.new_status for n in self.notices if n.order_id == order_id]
