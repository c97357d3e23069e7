"""
Process-local Order/Catalog stores.

Used by the "memory" backend and by the tests. Writes push a fresh snapshot
to the affected device's subscribers synchronously, the way a document store
with a local cache fires its listeners.
"""

import logging
import uuid
from collections import defaultdict
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from app.models.order import OrderStatus
from app.schemas.menu_item import Category, MenuItem
from app.schemas.order import Order
from app.services.errors import StoreError
from app.store.base import (
    ORDERS_COLLECTION,
    CatalogStore,
    ErrorCallback,
    OrderStore,
    SnapshotCallback,
    Subscription,
)

logger = logging.getLogger(__name__)


class InMemoryOrderStore(OrderStore):
    def __init__(self) -> None:
        self._orders: dict[str, Order] = {}
        self._documents: dict[tuple[str, str], dict] = {}
        self._listeners: dict[str, list[tuple[SnapshotCallback, ErrorCallback | None]]] = defaultdict(list)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create(self, order: Order) -> str:
        order_id = uuid.uuid4().hex[:20]
        self._orders[order_id] = order.model_copy(update={"id": order_id}, deep=True)
        self._publish(order.device_id)
        return order_id

    async def update(self, order_id: str, fields: dict[str, Any]) -> None:
        current = self._orders.get(order_id)
        if current is None:
            raise StoreError(f"No order document {order_id}")
        try:
            updated = Order.model_validate({**current.model_dump(), **fields, "id": order_id})
        except PydanticValidationError as exc:
            raise StoreError(f"Rejected update for order {order_id}: {exc}") from exc
        self._orders[order_id] = updated
        self._publish(updated.device_id)

    def put_document(self, collection: str, doc_id: str, data: dict) -> None:
        self._documents[(collection, doc_id)] = dict(data)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, collection: str, doc_id: str) -> Order | dict | None:
        if collection == ORDERS_COLLECTION:
            order = self._orders.get(doc_id)
            return order.model_copy(deep=True) if order else None
        data = self._documents.get((collection, doc_id))
        return dict(data) if data is not None else None

    async def query(self, device_id: str, status: OrderStatus | None = None) -> list[Order]:
        return [o for o in self._snapshot(device_id) if status is None or o.status == status]

    async def subscribe(
        self,
        device_id: str,
        callback: SnapshotCallback,
        on_error: ErrorCallback | None = None,
    ) -> Subscription:
        entry = (callback, on_error)
        self._listeners[device_id].append(entry)
        self._deliver(entry, self._snapshot(device_id))

        def cancel() -> None:
            if entry in self._listeners[device_id]:
                self._listeners[device_id].remove(entry)

        return Subscription(cancel)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _snapshot(self, device_id: str) -> list[Order]:
        orders = [o.model_copy(deep=True) for o in self._orders.values() if o.device_id == device_id]
        return sorted(orders, key=lambda o: o.created_at, reverse=True)

    def _publish(self, device_id: str) -> None:
        listeners = list(self._listeners.get(device_id, ()))
        if not listeners:
            return
        snapshot = self._snapshot(device_id)
        for entry in listeners:
            self._deliver(entry, [o.model_copy(deep=True) for o in snapshot])

    @staticmethod
    def _deliver(entry: tuple[SnapshotCallback, ErrorCallback | None], snapshot: list[Order]) -> None:
        callback, on_error = entry
        try:
            callback(snapshot)
        except Exception as exc:
            logger.error("Order snapshot listener failed", extra={"error": str(exc)})
            if on_error is not None:
                on_error(exc)


class InMemoryCatalogStore(CatalogStore):
    def __init__(self, categories: list[Category], items: list[MenuItem]) -> None:
        self._categories = list(categories)
        self._items = list(items)

    async def list_categories(self) -> list[Category]:
        return list(self._categories)

    async def list_menu_items(self) -> list[MenuItem]:
        return list(self._items)
