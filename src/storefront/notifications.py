"""Order notifications.

Notifications run after the order change has been committed. A failing
notifier is logged and otherwise ignored.
"""

import logging
from typing import Callable, Protocol

from .models import Order

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def order_confirmed(self, order: Order) -> None: ...

    def order_status_changed(self, order: Order) -> None: ...


class LoggingNotifier:
    """Default notifier: writes the event to the log."""

    def order_confirmed(self, order: Order) -> None:
        recipient = order.guest_email or order.user_id
        logger.info("Order %s confirmed; notifying %s", order.reference, recipient)

    def order_status_changed(self, order: Order) -> None:
        logger.info("Order %s is now %s", order.reference, order.status)


def notify_safely(send: Callable[[Order], None], order: Order) -> bool:
    """Call a notifier hook. Returns False if it raised."""
    try:
        send(order)
    except Exception:
        logger.exception("Notification for order %s failed", order.reference)
        return False
    return True
