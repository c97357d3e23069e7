"""
Postgres-backed stores (SQLAlchemy async) with a Kafka change feed.

Every write publishes an OrderChangedEvent to the orders topic. Each app
instance consumes that topic and pushes a fresh snapshot to its subscribers
of the affected device, so staff-side writes made elsewhere reach customers
live. Writes made through this instance also refresh its own subscribers
immediately; the duplicate snapshot that follows from the topic is harmless.
"""

import logging
import uuid
from collections import defaultdict
from typing import Any, Callable

from aiokafka import AIOKafkaConsumer, AIOKafkaProducer
from aiokafka.errors import KafkaError
from opentelemetry import trace
from opentelemetry.propagate import extract, inject
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.models.document import StoreDocument
from app.models.menu_item import CategoryRecord, MenuItemRecord
from app.models.order import OrderRecord, OrderStatus, PaymentMethod, PaymentStatus
from app.schemas.menu_item import Category, MenuItem, MenuOption
from app.schemas.order import CartItem, Order
from app.services.catalog import CATEGORY_SEED, MENU_SEED
from app.services.errors import StoreError
from app.store.base import (
    ORDERS_COLLECTION,
    CatalogStore,
    ErrorCallback,
    OrderStore,
    SnapshotCallback,
    Subscription,
)
from shared.events import OrderChangedEvent

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def _optional(convert: Callable[[Any], Any]) -> Callable[[Any], Any]:
    return lambda value: None if value is None else convert(value)


# Columns a client may change after creation
_UPDATABLE: dict[str, Callable[[Any], Any]] = {
    "status": OrderStatus,
    "payment_status": PaymentStatus,
    "payment_method": _optional(PaymentMethod),
    "payment_proof": _optional(str),
    "table_number": int,
}


def _to_order(record: OrderRecord) -> Order:
    return Order(
        id=record.id,
        device_id=record.device_id,
        table_number=record.table_number,
        items=[CartItem.model_validate(item) for item in record.items],
        total=record.total,
        status=record.status,
        created_at=record.created_at,
        payment_method=record.payment_method,
        payment_status=record.payment_status,
        payment_proof=record.payment_proof,
        order_number=record.order_number,
    )


class SqlOrderStore(OrderStore):
    def __init__(
        self,
        session_factory: async_sessionmaker,
        producer: AIOKafkaProducer | None = None,
        topic: str = "orders.changed",
    ) -> None:
        self._session_factory = session_factory
        self._producer = producer
        self._topic = topic
        self._listeners: dict[str, list[tuple[SnapshotCallback, ErrorCallback | None]]] = defaultdict(list)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create(self, order: Order) -> str:
        order_id = str(uuid.uuid4())
        record = OrderRecord(
            id=order_id,
            device_id=order.device_id,
            table_number=order.table_number,
            items=[item.model_dump(mode="json") for item in order.items],
            total=order.total,
            status=order.status,
            created_at=order.created_at,
            payment_method=order.payment_method,
            payment_status=order.payment_status or PaymentStatus.PENDING,
            payment_proof=order.payment_proof,
            order_number=order.order_number,
        )
        try:
            async with self._session_factory() as db:
                db.add(record)
                await db.commit()
        except SQLAlchemyError as exc:
            raise StoreError(f"Could not save order: {exc}") from exc

        await self._changed(order_id, order.device_id, order.status, "created")
        return order_id

    async def update(self, order_id: str, fields: dict[str, Any]) -> None:
        unknown = set(fields) - set(_UPDATABLE)
        if unknown:
            raise StoreError(f"Rejected update for order {order_id}: read-only fields {sorted(unknown)}")
        try:
            values = {name: _UPDATABLE[name](value) for name, value in fields.items()}
        except (TypeError, ValueError) as exc:
            raise StoreError(f"Rejected update for order {order_id}: {exc}") from exc

        try:
            async with self._session_factory() as db:
                record = await db.get(OrderRecord, order_id)
                if record is None:
                    raise StoreError(f"No order document {order_id}")
                for name, value in values.items():
                    setattr(record, name, value)
                await db.commit()
                device_id, status = record.device_id, record.status
        except SQLAlchemyError as exc:
            raise StoreError(f"Could not update order {order_id}: {exc}") from exc

        await self._changed(order_id, device_id, status, "updated")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, collection: str, doc_id: str) -> Order | dict | None:
        try:
            async with self._session_factory() as db:
                if collection == ORDERS_COLLECTION:
                    record = await db.get(OrderRecord, doc_id)
                    return _to_order(record) if record is not None else None
                document = await db.get(StoreDocument, (collection, doc_id))
                return dict(document.data) if document is not None else None
        except SQLAlchemyError as exc:
            raise StoreError(f"Could not read {collection}/{doc_id}: {exc}") from exc

    async def query(self, device_id: str, status: OrderStatus | None = None) -> list[Order]:
        stmt = select(OrderRecord).where(OrderRecord.device_id == device_id)
        if status is not None:
            stmt = stmt.where(OrderRecord.status == status)
        stmt = stmt.order_by(OrderRecord.created_at.desc())
        try:
            async with self._session_factory() as db:
                result = await db.execute(stmt)
                records = result.scalars().all()
        except SQLAlchemyError as exc:
            raise StoreError(f"Could not query orders: {exc}") from exc
        try:
            return [_to_order(record) for record in records]
        except PydanticValidationError as exc:
            raise StoreError(f"Malformed order document: {exc}") from exc

    async def subscribe(
        self,
        device_id: str,
        callback: SnapshotCallback,
        on_error: ErrorCallback | None = None,
    ) -> Subscription:
        entry = (callback, on_error)
        self._listeners[device_id].append(entry)
        await self._push(device_id, [entry])

        def cancel() -> None:
            if entry in self._listeners[device_id]:
                self._listeners[device_id].remove(entry)

        return Subscription(cancel)

    async def refresh(self, device_id: str) -> None:
        listeners = list(self._listeners.get(device_id, ()))
        if listeners:
            await self._push(device_id, listeners)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _push(self, device_id: str, listeners: list[tuple[SnapshotCallback, ErrorCallback | None]]) -> None:
        try:
            snapshot = await self.query(device_id)
        except StoreError as exc:
            logger.error("Order snapshot query failed", extra={"device_id": device_id, "error": str(exc)})
            for _, on_error in listeners:
                if on_error is not None:
                    on_error(exc)
            return

        for callback, on_error in listeners:
            try:
                callback([order.model_copy(deep=True) for order in snapshot])
            except Exception as exc:
                logger.error("Order snapshot listener failed", extra={"device_id": device_id, "error": str(exc)})
                if on_error is not None:
                    on_error(exc)

    async def _changed(self, order_id: str, device_id: str, status: OrderStatus, change: str) -> None:
        await self.refresh(device_id)
        if self._producer is None:
            return
        event = OrderChangedEvent(order_id=order_id, device_id=device_id, status=status.value, change=change)

        # W3C trace context travels in the Kafka headers
        carrier: dict[str, str] = {}
        inject(carrier)
        try:
            await self._producer.send_and_wait(
                self._topic,
                key=device_id.encode(),
                value=event.model_dump_json().encode(),
                headers=[(k, v.encode()) for k, v in carrier.items()],
            )
        except KafkaError as exc:
            # the write itself succeeded; other instances catch up on their next change
            logger.warning(
                "Failed to publish order change",
                extra={"order_id": order_id, "device_id": device_id, "error": str(exc)},
            )


async def run_change_feed(consumer: AIOKafkaConsumer, store: SqlOrderStore) -> None:
    """Main consumer loop, runs until cancelled."""
    async for msg in consumer:
        headers = {k: v.decode() for k, v in msg.headers} if msg.headers else {}
        with tracer.start_as_current_span("kafka.consume.orders.changed", context=extract(headers)):
            try:
                event = OrderChangedEvent.model_validate_json(msg.value)
            except PydanticValidationError as exc:
                logger.error(
                    "Failed to parse order change message",
                    extra={"error": str(exc), "offset": msg.offset, "partition": msg.partition},
                )
                continue

            logger.debug(
                "Order change received",
                extra={"order_id": event.order_id, "device_id": event.device_id, "status": event.status},
            )
            await store.refresh(event.device_id)


class SqlCatalogStore(CatalogStore):
    def __init__(self, session_factory: async_sessionmaker) -> None:
        self._session_factory = session_factory

    async def list_categories(self) -> list[Category]:
        try:
            async with self._session_factory() as db:
                result = await db.execute(select(CategoryRecord).order_by(CategoryRecord.name))
                return [Category(id=c.id, name=c.name) for c in result.scalars().all()]
        except SQLAlchemyError as exc:
            raise StoreError(f"Could not list categories: {exc}") from exc

    async def list_menu_items(self) -> list[MenuItem]:
        stmt = select(MenuItemRecord).where(MenuItemRecord.is_available.is_(True)).order_by(MenuItemRecord.name)
        try:
            async with self._session_factory() as db:
                result = await db.execute(stmt)
                records = result.scalars().all()
        except SQLAlchemyError as exc:
            raise StoreError(f"Could not list menu items: {exc}") from exc
        return [
            MenuItem(
                id=r.id,
                name=r.name,
                price=r.price,
                category=r.category_id,
                image_url=r.image_url or None,
                options=tuple(MenuOption.model_validate(o) for o in r.options or ()),
            )
            for r in records
        ]


async def seed_catalog(session_factory: async_sessionmaker) -> None:
    """Populate categories and menu_items if empty. Called once on startup."""
    async with session_factory() as db:
        result = await db.execute(select(MenuItemRecord).limit(1))
        if result.scalars().first() is not None:
            return
        for category in CATEGORY_SEED:
            db.add(CategoryRecord(id=category.id, name=category.name))
        for item in MENU_SEED:
            db.add(
                MenuItemRecord(
                    id=item.id,
                    name=item.name,
                    price=item.price,
                    category_id=item.category,
                    image_url=item.image_url,
                    options=[o.model_dump(mode="json") for o in item.options],
                )
            )
        await db.commit()
        logger.info("Seeded %d menu items", len(MENU_SEED))
