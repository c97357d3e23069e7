"""
Applies order feed snapshots to a session's local order list.

The snapshot is authoritative. Optimistic records inserted after a submit
stay in front until a snapshot carrying the same order arrives, matched by id
or, for records still without one, by (order_number, created_at).

Every order is announced at most once per session: the seen-set is keyed by
order id, only grows, and is consulted before emitting an effect, so
re-delivered snapshots are harmless.
"""

import logging

from app.metrics import SNAPSHOTS
from app.schemas.order import Order
from app.services.lifecycle import can_transition
from app.services.notifications import NOTIFY_STATUSES, NotificationEffect, build_effect

logger = logging.getLogger(__name__)


def _match_key(order: Order) -> tuple[str, int]:
    return order.order_number, order.created_at


class OrderFeedReconciler:
    def __init__(self, device_id: str) -> None:
        self.device_id = device_id
        self.loaded = False
        self._orders: list[Order] = []
        self._optimistic: list[Order] = []
        self._seen: set[str] = set()

    @property
    def orders(self) -> list[Order]:
        return list(self._orders)

    @property
    def seen(self) -> frozenset[str]:
        return frozenset(self._seen)

    def find(self, order_id: str) -> Order | None:
        return next((o for o in self._orders if o.id == order_id), None)

    def insert_local(self, order: Order) -> None:
        if order.id is not None and self.find(order.id) is not None:
            return
        self._optimistic.insert(0, order)
        self._orders.insert(0, order)

    def on_snapshot(self, snapshot: list[Order]) -> list[NotificationEffect]:
        SNAPSHOTS.inc()
        previous = {o.id: o for o in self._orders if o.id is not None}
        authoritative = [self._checked(o) for o in snapshot]

        ids = {o.id for o in authoritative}
        keys = {_match_key(o) for o in authoritative}
        self._optimistic = [
            o
            for o in self._optimistic
            if (o.id not in ids if o.id is not None else _match_key(o) not in keys)
        ]

        for order in authoritative:
            before = previous.get(order.id)
            if before is not None and before.status != order.status and not can_transition(before.status, order.status):
                logger.warning(
                    "Unexpected order status transition observed",
                    extra={
                        "order_id": order.id,
                        "from_status": before.status.value,
                        "to_status": order.status.value,
                    },
                )

        merged = self._optimistic + authoritative
        merged.sort(key=lambda o: o.created_at, reverse=True)
        self._orders = merged
        self.loaded = True

        effects = []
        for order in authoritative:
            effect = self.notify_once(order)
            if effect is not None:
                effects.append(effect)
        return effects

    def on_error(self, exc: Exception) -> None:
        logger.error("Error listening to orders", extra={"device_id": self.device_id, "error": str(exc)})
        self.loaded = True

    def notify_once(self, order: Order) -> NotificationEffect | None:
        if order.id is None or order.id in self._seen or order.status not in NOTIFY_STATUSES:
            return None
        self._seen.add(order.id)
        return build_effect(order)

    def _checked(self, order: Order) -> Order:
        recomputed = order.recomputed_total()
        if recomputed == order.total:
            return order
        logger.warning(
            "Stored order total disagrees with its items, using recomputed total",
            extra={"order_id": order.id, "stored": str(order.total), "recomputed": str(recomputed)},
        )
        return order.model_copy(update={"total": recomputed})
