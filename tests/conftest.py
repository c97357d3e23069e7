import asyncio
import os
from decimal import Decimal

# Must be set before app.config is imported anywhere
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("OTLP_ENDPOINT", "")
os.environ.setdefault("STATE_PATH", "")

import pytest

from app.config import Settings
from app.schemas.menu_item import Category, MenuItem, MenuOption
from app.schemas.order import CartItem, Order, SelectedOption
from app.services.catalog import Catalog
from app.services.device import MemoryStorage, SessionContext
from app.services.errors import StoreError
from app.services.session import CustomerSession
from app.store.memory import InMemoryOrderStore

ITEM_A = MenuItem(id="item-a", name="Item A", price=Decimal("100.00"), category="mains")
OPTION_O = MenuOption(id="opt-o", name="Option O", price=Decimal("10.00"))
OPTION_P = MenuOption(id="opt-p", name="Option P", price=Decimal("5.00"))
ITEM_B = MenuItem(
    id="item-b",
    name="Item B",
    price=Decimal("50.00"),
    category="sides",
    options=(OPTION_O, OPTION_P),
)
CATEGORIES = [Category(id="mains", name="Mains"), Category(id="sides", name="Sides")]


def selected(option: MenuOption) -> SelectedOption:
    return SelectedOption(id=option.id, name=option.name, price=option.price)


def make_order(
    device_id: str = "device-1",
    status: str = "pending",
    table_number: int = 5,
    created_at: int = 1_700_000_000_000,
    order_number: str = "1234",
    **fields,
) -> Order:
    items = fields.pop(
        "items",
        [CartItem(id="item-a", name="Item A", price=Decimal("100.00"), category="mains", quantity=2)],
    )
    total = fields.pop("total", sum((i.line_total() for i in items), Decimal("0.00")))
    return Order(
        device_id=device_id,
        table_number=table_number,
        items=items,
        total=total,
        status=status,
        created_at=created_at,
        order_number=order_number,
        **fields,
    )


class FlakyOrderStore(InMemoryOrderStore):
    """In-memory store with switchable failures and call counting."""

    def __init__(self) -> None:
        super().__init__()
        self.create_calls = 0
        self.update_calls: list[tuple[str, dict]] = []
        self.fail_create = False
        self.fail_query = False
        self.fail_update_ids: set[str] = set()
        self.create_gate: asyncio.Event | None = None

    async def create(self, order: Order) -> str:
        self.create_calls += 1
        if self.create_gate is not None:
            await self.create_gate.wait()
        if self.fail_create:
            raise StoreError("store unreachable")
        return await super().create(order)

    async def update(self, order_id: str, fields: dict) -> None:
        self.update_calls.append((order_id, dict(fields)))
        if order_id in self.fail_update_ids:
            raise StoreError("permission denied")
        await super().update(order_id, fields)

    async def query(self, device_id, status=None):
        if self.fail_query:
            raise StoreError("store unreachable")
        return await super().query(device_id, status)


@pytest.fixture
def catalog() -> Catalog:
    return Catalog(CATEGORIES, [ITEM_A, ITEM_B])


@pytest.fixture
def store() -> FlakyOrderStore:
    return FlakyOrderStore()


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def context(storage) -> SessionContext:
    return SessionContext.load(storage)


@pytest.fixture
def settings() -> Settings:
    return Settings(store_backend="memory", otlp_endpoint="", state_path="")


@pytest.fixture
async def session(context, store, catalog, settings) -> CustomerSession:
    session = CustomerSession(context, store, catalog, settings)
    await session.start()
    yield session
    session.close()
