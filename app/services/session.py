"""
One customer session per device: cart, table, order feed and lifecycle
wired around a shared OrderStore.
"""

import asyncio
import logging
import time
from collections import OrderedDict
from typing import Callable

from app.config import Settings
from app.metrics import SESSIONS_EVICTED
from app.services.cart import Cart
from app.services.catalog import Catalog
from app.services.device import DEVICE_ID_KEY, KeyValueStorage, NamespacedStorage, SessionContext
from app.services.lifecycle import OrderLifecycle
from app.services.notifications import NotificationEffect, Notifier
from app.services.reconciler import OrderFeedReconciler
from app.services.table import TableBinding
from app.store.base import OrderStore, Subscription

logger = logging.getLogger(__name__)


class CustomerSession:
    def __init__(
        self,
        context: SessionContext,
        store: OrderStore,
        catalog: Catalog,
        settings: Settings,
    ) -> None:
        self.context = context
        self.store = store
        self.catalog = catalog
        self.cart = Cart(notice_seconds=settings.cart_notice_seconds)
        self.table = TableBinding(context, store)
        self.feed = OrderFeedReconciler(context.device_id)
        self.notifier = Notifier(context.device_id)
        self.lifecycle = OrderLifecycle(
            context,
            store,
            self.cart,
            self.table,
            self.feed,
            gcash_info_ref=(settings.gcash_info_collection, settings.gcash_info_doc_id),
        )
        self._subscription: Subscription | None = None

    @property
    def device_id(self) -> str:
        return self.context.device_id

    async def start(self) -> None:
        if self._subscription is None:
            self._subscription = await self.store.subscribe(
                self.device_id, self._on_snapshot, on_error=self.feed.on_error
            )

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    def _on_snapshot(self, orders) -> None:
        self.notifier.dispatch(self.feed.on_snapshot(orders))

    async def confirm_cancel(self) -> NotificationEffect | None:
        effect = await self.lifecycle.confirm_cancel()
        if effect is not None:
            self.notifier.dispatch([effect])
        return effect


class SessionRegistry:
    """Live sessions keyed by device id, each subscribed to its order feed.

    Sessions are kept in least-recently-used order. Those idle for longer
    than ``settings.session_idle_seconds``, and the oldest beyond
    ``settings.max_sessions``, are closed so their store subscription is
    released. Orders live in the store; only the evicted cart is lost.
    """

    def __init__(
        self,
        store: OrderStore,
        catalog: Catalog,
        storage: KeyValueStorage,
        settings: Settings,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.catalog = catalog
        self.storage = storage
        self.settings = settings
        self._clock = clock
        self._sessions: OrderedDict[str, CustomerSession] = OrderedDict()
        self._last_seen: dict[str, float] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, device_id: str) -> bool:
        return device_id in self._sessions

    async def get(self, device_id: str) -> CustomerSession:
        session = self._sessions.get(device_id)
        if session is not None:
            self._touch(device_id)
            return session
        async with self._lock:
            session = self._sessions.get(device_id)
            if session is None:
                storage = NamespacedStorage(self.storage, device_id)
                storage.set(DEVICE_ID_KEY, device_id)
                session = CustomerSession(SessionContext.load(storage), self.store, self.catalog, self.settings)
                await session.start()
                self._sessions[device_id] = session
                logger.info("Session started", extra={"device_id": device_id})
            self._touch(device_id)
            self._evict()
        return session

    def close(self) -> None:
        for session in self._sessions.values():
            session.close()
        self._sessions.clear()
        self._last_seen.clear()

    def _touch(self, device_id: str) -> None:
        self._last_seen[device_id] = self._clock()
        self._sessions.move_to_end(device_id)

    def _evict(self) -> None:
        cutoff = self._clock() - self.settings.session_idle_seconds
        while self._sessions:
            oldest = next(iter(self._sessions))
            if len(self._sessions) > self.settings.max_sessions:
                reason = "capacity"
            elif self._last_seen[oldest] < cutoff:
                reason = "idle"
            else:
                break
            self._sessions.pop(oldest).close()
            del self._last_seen[oldest]
            SESSIONS_EVICTED.labels(reason).inc()
            logger.info("Session evicted", extra={"device_id": oldest, "reason": reason})
