"""Default notifier — writes each notice to the structured log.

Stands in until a downstream consumer (email, publisher dashboard) is
wired to the port.
"""

from marketplace.notifications.port import OrderNotifier, OrderStatusNotice
from marketplace.utils.logging import get_logger

logger = get_logger(__name__)


class LogNotifier(OrderNotifier):
    def order_status_changed(self, notice: OrderStatusNotice) -> None:
        logger.info("order_status_notice", **notice.as_payload())
