"""Tests for table binding and rebinding."""

import pytest

from app.models.order import OrderStatus
from app.services.device import TABLE_NUMBER_KEY, MemoryStorage, SessionContext
from app.services.errors import StoreError, ValidationError
from app.services.session import CustomerSession
from app.services.table import TableBinding, parse_table_number
from conftest import ITEM_A


async def _place(session):
    session.cart.add_item(ITEM_A)
    return await session.lifecycle.submit()


class TestParse:
    @pytest.mark.parametrize("raw,expected", [("7", 7), (" 12 ", 12), (3, 3)])
    def test_valid(self, raw, expected):
        assert parse_table_number(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "  ", "abc", "0", "-4", "2.5"])
    def test_invalid(self, raw):
        with pytest.raises(ValidationError):
            parse_table_number(raw)


class TestResolve:
    def test_query_param_wins_and_is_persisted(self, store):
        storage = MemoryStorage({TABLE_NUMBER_KEY: "3"})
        table = TableBinding(SessionContext.load(storage), store)
        assert table.table_number == 3
        assert table.resolve("9") == 9
        assert storage.get(TABLE_NUMBER_KEY) == "9"

    def test_no_query_param_keeps_persisted(self, store):
        storage = MemoryStorage({TABLE_NUMBER_KEY: "3"})
        table = TableBinding(SessionContext.load(storage), store)
        assert table.resolve(None) == 3
        assert table.needs_prompt is False

    def test_nothing_known_needs_prompt(self, context, store):
        table = TableBinding(context, store)
        assert table.resolve() is None
        assert table.needs_prompt is True

    def test_invalid_persisted_value_is_ignored(self, store):
        table = TableBinding(SessionContext.load(MemoryStorage({TABLE_NUMBER_KEY: "x"})), store)
        assert table.table_number is None

    def test_invalid_query_param_rejected(self, context, store):
        table = TableBinding(context, store)
        with pytest.raises(ValidationError):
            table.resolve("zero")
        assert table.table_number is None


class TestBind:
    async def test_rebind_moves_only_pending_orders(self, session, store):
        session.table.resolve("5")
        pending = await _place(session)
        accepted = await _place(session)
        await store.update(accepted.id, {"status": "accepted"})

        result = await session.table.bind("7")

        assert result.table_number == 7
        assert result.updated == [pending.id]
        assert result.failed == []
        assert (await store.get("orders", pending.id)).table_number == 7
        assert (await store.get("orders", accepted.id)).table_number == 5
        assert session.table.table_number == 7
        assert session.context.storage.get(TABLE_NUMBER_KEY) == "7"

    async def test_partial_failure_is_reported(self, session, store):
        session.table.resolve("5")
        first = await _place(session)
        second = await _place(session)
        store.fail_update_ids.add(first.id)

        result = await session.table.bind("8")

        assert result.updated == [second.id]
        assert result.failed == [first.id]
        assert (await store.get("orders", first.id)).table_number == 5
        assert (await store.get("orders", second.id)).table_number == 8
        assert session.table.table_number == 8

    async def test_query_failure_propagates_after_persisting(self, session, store):
        store.fail_query = True
        with pytest.raises(StoreError):
            await session.table.bind("4")
        assert session.table.table_number == 4

    async def test_invalid_table_touches_nothing(self, session, store):
        session.table.resolve("5")
        order = await _place(session)
        with pytest.raises(ValidationError):
            await session.table.bind("nope")
        assert store.update_calls == []
        assert session.table.table_number == 5
        assert (await store.get("orders", order.id)).status == OrderStatus.PENDING

    async def test_other_devices_untouched(self, session, store, catalog, settings):
        other = CustomerSession(SessionContext.load(MemoryStorage()), store, catalog, settings)
        await other.start()
        other.table.resolve("2")
        foreign = await _place(other)

        session.table.resolve("5")
        await session.table.bind("6")

        assert (await store.get("orders", foreign.id)).table_number == 2
        other.close()
