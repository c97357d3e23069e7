"""
Interfaces to the order document store and the menu catalog.

Snapshot callbacks are plain functions invoked on the event loop thread; they
must not block. Every store method raises StoreError on transport or
permission failure.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable

from app.models.order import OrderStatus
from app.schemas.menu_item import Category, MenuItem
from app.schemas.order import Order

ORDERS_COLLECTION = "orders"

SnapshotCallback = Callable[[list[Order]], None]
ErrorCallback = Callable[[Exception], None]


class Subscription:
    def __init__(self, cancel: Callable[[], None]) -> None:
        self._cancel = cancel
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self._cancel()


class OrderStore(ABC):
    @abstractmethod
    async def create(self, order: Order) -> str:
        """Persist an order without id and return the store-assigned id."""

    @abstractmethod
    async def update(self, order_id: str, fields: dict[str, Any]) -> None: ...

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Order | dict | None: ...

    @abstractmethod
    async def query(self, device_id: str, status: OrderStatus | None = None) -> list[Order]:
        """One-shot read of a device's orders, newest first."""

    @abstractmethod
    async def subscribe(
        self,
        device_id: str,
        callback: SnapshotCallback,
        on_error: ErrorCallback | None = None,
    ) -> Subscription:
        """Push every snapshot of the device's orders (newest first) to ``callback``.

        The current snapshot is delivered before this returns.
        """


class CatalogStore(ABC):
    @abstractmethod
    async def list_categories(self) -> list[Category]: ...

    @abstractmethod
    async def list_menu_items(self) -> list[MenuItem]: ...
