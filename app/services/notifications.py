"""
Customer-visible order status notifications.

Effects are plain values produced by the feed reconciler and the cancel
flow; the Notifier logs them, counts them and queues them in the session
inbox for the client to drain.
"""

import logging
from collections import deque
from dataclasses import dataclass

from app.metrics import NOTIFICATIONS
from app.models.order import OrderStatus
from app.schemas.order import Order

logger = logging.getLogger(__name__)

NOTIFY_STATUSES = frozenset({OrderStatus.ACCEPTED, OrderStatus.READY, OrderStatus.CANCELLED})


@dataclass(frozen=True)
class NotificationEffect:
    order_id: str
    status: OrderStatus
    title: str
    body: str


def status_message(order: Order) -> tuple[str, str] | None:
    """Title and body for ``order.status``; None for statuses that stay silent."""
    if order.status == OrderStatus.ACCEPTED:
        return (
            "Order Accepted!",
            f"Your order #{order.order_number} has been accepted. Total: ₱{order.total:.2f}",
        )
    if order.status == OrderStatus.READY:
        return "Order Ready to Serve!", f"Your order #{order.order_number} is ready to serve."
    if order.status == OrderStatus.CANCELLED:
        return "Order Cancelled!", f"Your order #{order.order_number} has been cancelled."
    return None


def build_effect(order: Order) -> NotificationEffect | None:
    message = status_message(order)
    if message is None or order.id is None:
        return None
    title, body = message
    return NotificationEffect(order_id=order.id, status=order.status, title=title, body=body)


class Notifier:
    def __init__(self, device_id: str, max_pending: int = 50) -> None:
        self.device_id = device_id
        self._inbox: deque[NotificationEffect] = deque(maxlen=max_pending)

    def dispatch(self, effects: list[NotificationEffect]) -> None:
        for effect in effects:
            logger.info(
                "NOTIFICATION: %s",
                effect.title,
                extra={
                    "device_id": self.device_id,
                    "order_id": effect.order_id,
                    "status": effect.status.value,
                },
            )
            NOTIFICATIONS.labels(effect.status.value).inc()
            self._inbox.append(effect)

    def drain(self) -> list[NotificationEffect]:
        pending = list(self._inbox)
        self._inbox.clear()
        return pending
