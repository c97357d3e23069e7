from decimal import Decimal
from typing import Iterable

from pydantic import BaseModel, Field

from app.models.order import OrderStatus, PaymentMethod, PaymentStatus


class SelectedOption(BaseModel):
    """Copy of a menu option taken at selection time, not a live reference."""

    id: str
    name: str
    price: Decimal = Decimal("0.00")

    model_config = {"frozen": True}


class CartItem(BaseModel):
    id: str  # menu item id
    name: str
    price: Decimal
    category: str
    image_url: str | None = None
    quantity: int = Field(ge=1)
    selected_options: list[SelectedOption] = []

    @property
    def unit_price(self) -> Decimal:
        return self.price + sum((o.price for o in self.selected_options), Decimal("0.00"))

    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


def items_total(items: Iterable[CartItem]) -> Decimal:
    return sum((item.line_total() for item in items), Decimal("0.00"))


class Order(BaseModel):
    id: str | None = None
    device_id: str
    table_number: int = Field(gt=0)
    items: list[CartItem]
    total: Decimal
    status: OrderStatus = OrderStatus.PENDING
    created_at: int  # epoch milliseconds
    payment_method: PaymentMethod | None = None
    payment_status: PaymentStatus | None = PaymentStatus.PENDING
    payment_proof: str | None = None
    order_number: str

    model_config = {"extra": "ignore"}

    def recomputed_total(self) -> Decimal:
        return items_total(self.items)


# ---------------------------------------------------------------------------
# Request / response bodies
# ---------------------------------------------------------------------------


class CartItemIn(BaseModel):
    menu_item_id: str
    option_ids: list[str] = []


class CartQuantityIn(BaseModel):
    quantity: int
    option_ids: list[str] = []


class CartNoticeResponse(BaseModel):
    message: str
    expires_in: float


class CartResponse(BaseModel):
    items: list[CartItem]
    total: Decimal
    total_quantity: int
    notice: CartNoticeResponse | None = None


class OrderView(BaseModel):
    order: Order
    actions: list[str]


class PaymentIn(BaseModel):
    method: PaymentMethod | None = None
    proof: str | None = None


class GCashInfo(BaseModel):
    full_name: str = Field(alias="fullName")
    phone_number: str = Field(alias="phoneNumber")

    model_config = {"populate_by_name": True}


class ReceiptLine(BaseModel):
    name: str
    quantity: int
    unit_price: Decimal
    options: list[str]


class Receipt(BaseModel):
    order_number: str
    order_id: str
    table_number: int
    total: Decimal
    payment_method: PaymentMethod | None
    lines: list[ReceiptLine]


class TableIn(BaseModel):
    table_number: str


class SessionResponse(BaseModel):
    device_id: str
    table_number: int | None
    needs_table: bool
    cart: CartResponse


class RebindResponse(BaseModel):
    table_number: int
    updated_order_ids: list[str]
    failed_order_ids: list[str]


class NotificationResponse(BaseModel):
    order_id: str
    status: OrderStatus
    title: str
    body: str
