"""
In-memory cart for one customer session.

Entries are keyed by (menu item id, sorted selected option ids), so the same
item with the same options always merges into one line regardless of the
order the options were picked in. Quantities are always >= 1; dropping below
that removes the line.
"""

import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Iterable

from app.schemas.menu_item import MenuItem
from app.schemas.order import CartItem, SelectedOption, items_total

logger = logging.getLogger(__name__)

CartKey = tuple[str, tuple[str, ...]]


def cart_key(item_id: str, selected_options: Iterable[SelectedOption]) -> CartKey:
    return item_id, tuple(sorted(o.id for o in selected_options))


def _canonical(selected_options: Iterable[SelectedOption]) -> list[SelectedOption]:
    unique = {o.id: o for o in selected_options}
    return [unique[k] for k in sorted(unique)]


@dataclass(frozen=True)
class CartNotice:
    message: str
    expires_at: float


class Cart:
    def __init__(
        self,
        notice_seconds: float = 2.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._entries: dict[CartKey, CartItem] = {}
        self._notice: CartNotice | None = None
        self._notice_seconds = notice_seconds
        self._clock = clock

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def add_item(
        self, menu_item: MenuItem, selected_options: Iterable[SelectedOption] = ()
    ) -> CartNotice:
        options = _canonical(selected_options)
        key = cart_key(menu_item.id, options)

        existing = self._entries.get(key)
        if existing is not None:
            existing.quantity += 1
        else:
            self._entries[key] = CartItem(
                id=menu_item.id,
                name=menu_item.name,
                price=menu_item.price,
                category=menu_item.category,
                image_url=menu_item.image_url,
                quantity=1,
                selected_options=options,
            )

        logger.debug(
            "Cart item added",
            extra={"menu_item_id": menu_item.id, "options": list(key[1]), "quantity": self._entries[key].quantity},
        )
        self._notice = CartNotice(
            message=f"{menu_item.name} has been added to your cart!",
            expires_at=self._clock() + self._notice_seconds,
        )
        return self._notice

    def set_quantity(
        self, item_id: str, new_quantity: int, selected_options: Iterable[SelectedOption] = ()
    ) -> None:
        key = cart_key(item_id, selected_options)
        if new_quantity < 1:
            self._entries.pop(key, None)
            return
        entry = self._entries.get(key)
        if entry is not None:
            entry.quantity = new_quantity

    def remove_item(self, item_id: str, selected_options: Iterable[SelectedOption] = ()) -> None:
        self._entries.pop(cart_key(item_id, selected_options), None)

    def clear(self) -> None:
        self._entries.clear()

    def remove_snapshot(self, items: Iterable[CartItem]) -> None:
        """Take back the quantities of a submitted snapshot.

        Lines added or raised after the snapshot was taken keep the
        difference.
        """
        for item in items:
            key = cart_key(item.id, item.selected_options)
            entry = self._entries.get(key)
            if entry is None:
                continue
            remaining = entry.quantity - item.quantity
            if remaining < 1:
                del self._entries[key]
            else:
                entry.quantity = remaining

    def clear_notice(self, notice: CartNotice | None = None) -> None:
        # a newer notice survives clearing of an older one
        if notice is None or notice is self._notice:
            self._notice = None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def notice(self) -> CartNotice | None:
        if self._notice is not None and self._clock() >= self._notice.expires_at:
            self._notice = None
        return self._notice

    def notice_remaining(self) -> float:
        notice = self.notice
        return 0.0 if notice is None else max(0.0, notice.expires_at - self._clock())

    @property
    def is_empty(self) -> bool:
        return not self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def items(self) -> list[CartItem]:
        return list(self._entries.values())

    def get(self, item_id: str, selected_options: Iterable[SelectedOption] = ()) -> CartItem | None:
        return self._entries.get(cart_key(item_id, selected_options))

    def compute_total(self) -> Decimal:
        return items_total(self._entries.values())

    def total_quantity(self) -> int:
        return sum(item.quantity for item in self._entries.values())

    def snapshot(self) -> list[CartItem]:
        """Deep copies for an order; later cart edits do not reach them."""
        return [item.model_copy(deep=True) for item in self._entries.values()]
