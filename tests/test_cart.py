"""Tests for the cart engine."""

from decimal import Decimal

from app.services.cart import Cart, cart_key
from conftest import ITEM_A, ITEM_B, OPTION_O, OPTION_P, selected


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def _direct_total(cart: Cart) -> Decimal:
    return sum(
        ((i.price + sum((o.price for o in i.selected_options), Decimal("0"))) * i.quantity for i in cart.items()),
        Decimal("0"),
    )


class TestAddItem:
    def test_repeated_adds_merge_into_one_entry(self):
        cart = Cart()
        for _ in range(5):
            cart.add_item(ITEM_B, [selected(OPTION_O)])
        assert len(cart) == 1
        assert cart.items()[0].quantity == 5

    def test_option_selection_order_does_not_split_lines(self):
        cart = Cart()
        cart.add_item(ITEM_B, [selected(OPTION_O), selected(OPTION_P)])
        cart.add_item(ITEM_B, [selected(OPTION_P), selected(OPTION_O)])
        assert len(cart) == 1
        assert cart.items()[0].quantity == 2
        assert [o.id for o in cart.items()[0].selected_options] == ["opt-o", "opt-p"]

    def test_different_options_create_separate_lines(self):
        cart = Cart()
        cart.add_item(ITEM_B)
        cart.add_item(ITEM_B, [selected(OPTION_O)])
        assert len(cart) == 2

    def test_duplicate_option_ids_collapse(self):
        cart = Cart()
        cart.add_item(ITEM_B, [selected(OPTION_O), selected(OPTION_O)])
        assert cart.items()[0].selected_options == [selected(OPTION_O)]

    def test_selected_option_is_a_copy(self):
        cart = Cart()
        cart.add_item(ITEM_B, [selected(OPTION_O)])
        option = cart.items()[0].selected_options[0]
        assert option.price == Decimal("10.00")
        assert option is not OPTION_O


class TestSetQuantity:
    def test_sets_quantity(self):
        cart = Cart()
        cart.add_item(ITEM_A)
        cart.set_quantity("item-a", 4)
        assert cart.get("item-a").quantity == 4

    def test_zero_is_remove(self):
        cart = Cart()
        cart.add_item(ITEM_B, [selected(OPTION_O)])
        cart.add_item(ITEM_A)
        cart.set_quantity("item-b", 0, [selected(OPTION_O)])
        assert cart.get("item-b", [selected(OPTION_O)]) is None
        assert len(cart) == 1

    def test_negative_is_remove(self):
        cart = Cart()
        cart.add_item(ITEM_A)
        cart.set_quantity("item-a", -3)
        assert cart.is_empty

    def test_absent_key_is_noop(self):
        cart = Cart()
        cart.add_item(ITEM_A)
        cart.set_quantity("item-b", 3)
        cart.set_quantity("item-a", 3, [selected(OPTION_O)])
        assert len(cart) == 1
        assert cart.get("item-a").quantity == 1


class TestRemoveAndClear:
    def test_remove_matches_options(self):
        cart = Cart()
        cart.add_item(ITEM_B)
        cart.add_item(ITEM_B, [selected(OPTION_O)])
        cart.remove_item("item-b", [selected(OPTION_O)])
        assert len(cart) == 1
        assert cart.items()[0].selected_options == []

    def test_remove_absent_is_noop(self):
        cart = Cart()
        cart.add_item(ITEM_A)
        cart.remove_item("missing")
        assert len(cart) == 1

    def test_clear(self):
        cart = Cart()
        cart.add_item(ITEM_A)
        cart.add_item(ITEM_B)
        cart.clear()
        assert cart.is_empty
        assert cart.compute_total() == Decimal("0.00")


class TestTotals:
    def test_total_with_options(self):
        cart = Cart()
        cart.add_item(ITEM_A)
        cart.add_item(ITEM_A)
        cart.add_item(ITEM_B, [selected(OPTION_O)])
        assert cart.compute_total() == Decimal("260.00")

    def test_total_follows_every_mutation(self):
        cart = Cart()
        cart.add_item(ITEM_A)
        cart.add_item(ITEM_B, [selected(OPTION_O), selected(OPTION_P)])
        assert cart.compute_total() == _direct_total(cart) == Decimal("165.00")
        cart.set_quantity("item-b", 3, [selected(OPTION_P), selected(OPTION_O)])
        assert cart.compute_total() == _direct_total(cart) == Decimal("295.00")
        cart.remove_item("item-a")
        assert cart.compute_total() == _direct_total(cart) == Decimal("195.00")

    def test_total_quantity(self):
        cart = Cart()
        cart.add_item(ITEM_A)
        cart.add_item(ITEM_A)
        cart.add_item(ITEM_B)
        assert cart.total_quantity() == 3


class TestSnapshot:
    def test_snapshot_is_detached(self):
        cart = Cart()
        cart.add_item(ITEM_A)
        frozen = cart.snapshot()
        cart.set_quantity("item-a", 9)
        assert frozen[0].quantity == 1

    def test_remove_snapshot_keeps_later_additions(self):
        cart = Cart()
        cart.add_item(ITEM_A)
        cart.add_item(ITEM_B, [selected(OPTION_O)])
        frozen = cart.snapshot()

        cart.add_item(ITEM_A)
        cart.add_item(ITEM_B, [selected(OPTION_P)])
        cart.remove_snapshot(frozen)

        assert [(i.id, i.quantity) for i in cart.items()] == [("item-a", 1), ("item-b", 1)]
        assert cart.get("item-b", [selected(OPTION_P)]) is not None
        assert cart.get("item-b", [selected(OPTION_O)]) is None

    def test_remove_snapshot_after_lowered_quantity(self):
        cart = Cart()
        cart.add_item(ITEM_A)
        cart.add_item(ITEM_A)
        frozen = cart.snapshot()
        cart.set_quantity("item-a", 1)
        cart.remove_snapshot(frozen)
        assert cart.is_empty


class TestNotice:
    def test_notice_expires(self):
        clock = FakeClock()
        cart = Cart(notice_seconds=2.0, clock=clock)
        notice = cart.add_item(ITEM_A)
        assert notice.message == "Item A has been added to your cart!"
        assert cart.notice is notice
        assert cart.notice_remaining() == 2.0
        clock.now += 2.0
        assert cart.notice is None
        assert cart.notice_remaining() == 0.0

    def test_clearing_old_notice_keeps_newer(self):
        cart = Cart(clock=FakeClock())
        first = cart.add_item(ITEM_A)
        second = cart.add_item(ITEM_B)
        cart.clear_notice(first)
        assert cart.notice is second
        cart.clear_notice(second)
        assert cart.notice is None


def test_cart_key_is_order_insensitive():
    assert cart_key("x", [selected(OPTION_P), selected(OPTION_O)]) == ("x", ("opt-o", "opt-p"))
