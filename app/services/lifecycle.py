"""
Order status model and the transitions a customer can trigger.

Status:          pending -> accepted -> paid -> ready -> served
                 pending -> cancelled (customer), accepted -> cancelled (staff)
Payment status:  pending -> processing -> paid, once the order is accepted

Only submit, cancel (from pending) and payment are caused here. Everything
else is written by staff and merely observed through the order feed.
"""

from __future__ import annotations

import logging
import random
import time
from typing import TYPE_CHECKING, Callable

from opentelemetry import trace

from app.metrics import ORDER_ACTIONS, ORDERS_SUBMITTED
from app.models.order import OrderStatus, PaymentMethod, PaymentStatus
from app.schemas.order import GCashInfo, Order, Receipt, ReceiptLine, items_total
from app.services.errors import (
    InvalidTransitionError,
    OrderNotFoundError,
    StoreError,
    ValidationError,
)
from app.services.notifications import NotificationEffect

if TYPE_CHECKING:
    from app.services.cart import Cart
    from app.services.device import SessionContext
    from app.services.reconciler import OrderFeedReconciler
    from app.services.table import TableBinding
    from app.store.base import OrderStore

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.ACCEPTED, OrderStatus.CANCELLED}),
    OrderStatus.ACCEPTED: frozenset({OrderStatus.PAID, OrderStatus.READY, OrderStatus.CANCELLED}),
    OrderStatus.PAID: frozenset({OrderStatus.READY, OrderStatus.SERVED}),
    OrderStatus.READY: frozenset({OrderStatus.PAID, OrderStatus.SERVED}),
    OrderStatus.SERVED: frozenset(),  # terminal
    OrderStatus.CANCELLED: frozenset(),  # terminal
}

PAYMENT_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.PROCESSING, PaymentStatus.PAID}),
    PaymentStatus.PROCESSING: frozenset({PaymentStatus.PAID}),
    PaymentStatus.PAID: frozenset(),
}

# Methods that need a reference code typed in by the customer
PROOF_REQUIRED = frozenset({PaymentMethod.GCASH})

ACTION_CANCEL = "cancel"
ACTION_PAY = "pay"
ACTION_RECEIPT = "receipt"
ACTION_PROCEED_TO_COUNTER = "proceed_to_counter"


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in TRANSITIONS[current]


def is_terminal(status: OrderStatus) -> bool:
    return not TRANSITIONS[status]


def payment_open(order: Order) -> bool:
    return order.payment_status in (None, PaymentStatus.PENDING)


def generate_order_number() -> str:
    # five random digits with the leading one dropped: "0000".."9999"
    return str(random.randint(10000, 99999))[1:]


def available_actions(order: Order) -> list[str]:
    actions = []
    if order.status == OrderStatus.PENDING:
        actions.append(ACTION_CANCEL)
    if order.status == OrderStatus.ACCEPTED and payment_open(order):
        actions.append(ACTION_PAY)
    elif order.payment_status == PaymentStatus.PAID:
        actions.append(ACTION_RECEIPT)
    elif order.payment_status == PaymentStatus.PROCESSING:
        actions.append(ACTION_PROCEED_TO_COUNTER)
    return actions


def _now_ms() -> int:
    return int(time.time() * 1000)


class OrderLifecycle:
    def __init__(
        self,
        context: SessionContext,
        store: OrderStore,
        cart: Cart,
        table: TableBinding,
        feed: OrderFeedReconciler,
        gcash_info_ref: tuple[str, str] = ("admin", "gcash"),
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self.context = context
        self.store = store
        self.cart = cart
        self.table = table
        self.feed = feed
        self.gcash_info_ref = gcash_info_ref
        self._clock = clock
        self.submitting = False
        self._cancel_candidate: str | None = None

    # ------------------------------------------------------------------
    # Submit
    # ------------------------------------------------------------------

    async def submit(self) -> Order | None:
        """Turn the cart into a pending order.

        Returns None without touching anything when a submission is already
        in flight. On StoreError the cart is left as it was.
        """
        if self.submitting:
            ORDERS_SUBMITTED.labels("busy").inc()
            logger.info("Submit ignored, another one is in flight", extra={"device_id": self.context.device_id})
            return None
        if self.cart.is_empty:
            ORDERS_SUBMITTED.labels("rejected").inc()
            raise ValidationError("Your cart is empty")
        table_number = self.table.table_number
        if table_number is None:
            ORDERS_SUBMITTED.labels("rejected").inc()
            raise ValidationError("Enter your table number before ordering")

        self.submitting = True
        try:
            items = self.cart.snapshot()
            order = Order(
                device_id=self.context.device_id,
                table_number=table_number,
                items=items,
                total=items_total(items),
                status=OrderStatus.PENDING,
                created_at=self._clock(),
                payment_status=PaymentStatus.PENDING,
                order_number=generate_order_number(),
            )
            with tracer.start_as_current_span("order.submit"):
                try:
                    order_id = await self.store.create(order)
                except StoreError as exc:
                    ORDERS_SUBMITTED.labels("failed").inc()
                    logger.error(
                        "Error placing order",
                        extra={"device_id": self.context.device_id, "error": str(exc)},
                    )
                    raise

            placed = order.model_copy(update={"id": order_id})
            self.cart.remove_snapshot(items)
            self.feed.insert_local(placed)
            ORDERS_SUBMITTED.labels("created").inc()
            logger.info(
                "Order placed",
                extra={
                    "order_id": order_id,
                    "order_number": placed.order_number,
                    "device_id": self.context.device_id,
                    "table_number": table_number,
                    "amount": float(placed.total),
                    "item_count": len(items),
                },
            )
            return placed
        finally:
            self.submitting = False

    # ------------------------------------------------------------------
    # Cancel (request -> confirm)
    # ------------------------------------------------------------------

    @property
    def cancel_candidate(self) -> str | None:
        return self._cancel_candidate

    def request_cancel(self, order_id: str) -> Order:
        order = self._require(order_id)
        if order.status != OrderStatus.PENDING:
            ORDER_ACTIONS.labels("cancel", "rejected").inc()
            raise InvalidTransitionError(f"Only pending orders can be cancelled (order is {order.status.value})")
        self._cancel_candidate = order_id
        return order

    def dismiss_cancel(self) -> None:
        self._cancel_candidate = None

    async def confirm_cancel(self) -> NotificationEffect | None:
        """Apply the requested cancellation.

        Returns the "Order Cancelled!" effect unless the feed already
        delivered one for this order.
        """
        if self._cancel_candidate is None:
            raise ValidationError("No cancellation was requested")
        order = self._require(self._cancel_candidate)
        if order.status != OrderStatus.PENDING:
            self._cancel_candidate = None
            ORDER_ACTIONS.labels("cancel", "rejected").inc()
            raise InvalidTransitionError(f"Order is already {order.status.value}")

        with tracer.start_as_current_span("order.cancel"):
            try:
                await self.store.update(order.id, {"status": OrderStatus.CANCELLED.value})
            except StoreError as exc:
                ORDER_ACTIONS.labels("cancel", "failed").inc()
                logger.error("Error cancelling order", extra={"order_id": order.id, "error": str(exc)})
                raise

        self._cancel_candidate = None
        ORDER_ACTIONS.labels("cancel", "applied").inc()
        logger.info("Order cancelled by customer", extra={"order_id": order.id})
        return self.feed.notify_once(order.model_copy(update={"status": OrderStatus.CANCELLED}))

    # ------------------------------------------------------------------
    # Payment
    # ------------------------------------------------------------------

    async def submit_payment(
        self, order_id: str, method: PaymentMethod | None, proof: str | None = None
    ) -> Order:
        order = self._require(order_id)
        if order.status != OrderStatus.ACCEPTED or not payment_open(order):
            ORDER_ACTIONS.labels("payment", "rejected").inc()
            raise InvalidTransitionError("Payment is only possible for accepted, unpaid orders")
        if method is None:
            ORDER_ACTIONS.labels("payment", "rejected").inc()
            raise ValidationError("Select a payment method")
        proof = (proof or "").strip()
        if method in PROOF_REQUIRED and not proof:
            ORDER_ACTIONS.labels("payment", "rejected").inc()
            raise ValidationError("Please enter the GCash reference number")

        fields = {
            "payment_method": method.value,
            "payment_status": PaymentStatus.PAID.value,
            "status": OrderStatus.PAID.value,
        }
        if method in PROOF_REQUIRED:
            fields["payment_proof"] = proof

        with tracer.start_as_current_span("order.payment"):
            try:
                await self.store.update(order_id, fields)
            except StoreError as exc:
                ORDER_ACTIONS.labels("payment", "failed").inc()
                logger.error("Error updating payment method", extra={"order_id": order_id, "error": str(exc)})
                raise

        ORDER_ACTIONS.labels("payment", "applied").inc()
        logger.info("Payment recorded", extra={"order_id": order_id, "method": method.value})
        return order.model_copy(
            update={
                "payment_method": method,
                "payment_status": PaymentStatus.PAID,
                "status": OrderStatus.PAID,
                "payment_proof": fields.get("payment_proof"),
            }
        )

    async def gcash_info(self) -> GCashInfo | None:
        collection, doc_id = self.gcash_info_ref
        try:
            doc = await self.store.get(collection, doc_id)
        except StoreError as exc:
            logger.error("Error fetching GCash info", extra={"error": str(exc)})
            return None
        if not isinstance(doc, dict) or not doc.get("gcashInfo"):
            return None
        return GCashInfo.model_validate(doc["gcashInfo"])

    # ------------------------------------------------------------------
    # Receipt
    # ------------------------------------------------------------------

    def receipt(self, order_id: str) -> Receipt:
        order = self._require(order_id)
        if order.payment_status != PaymentStatus.PAID:
            raise InvalidTransitionError("A receipt is available once the order is paid")
        return Receipt(
            order_number=order.order_number,
            order_id=order.id,
            table_number=order.table_number,
            total=order.total,
            payment_method=order.payment_method,
            lines=[
                ReceiptLine(
                    name=item.name,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    options=[o.name for o in item.selected_options],
                )
                for item in order.items
            ],
        )

    def _require(self, order_id: str) -> Order:
        order = self.feed.find(order_id)
        if order is None:
            raise OrderNotFoundError(f"Order {order_id} not found")
        return order
