"""Tests for the Kafka change feed publisher and consumer loop."""

from types import SimpleNamespace

from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider

from app.models.order import OrderStatus
from app.store.sql import SqlOrderStore, run_change_feed
from shared.events import OrderChangedEvent

TRACE_ID = "4bf92f3577b34da6a3ce929d0e0e4736"
TRACEPARENT = f"00-{TRACE_ID}-00f067aa0ba902b7-01"


class FakeConsumer:
    def __init__(self, values: list[bytes], headers=None) -> None:
        self._messages = [
            SimpleNamespace(value=v, offset=n, partition=0, headers=headers) for n, v in enumerate(values)
        ]

    def __aiter__(self):
        return self._iter()

    async def _iter(self):
        for msg in self._messages:
            yield msg


class FakeProducer:
    def __init__(self) -> None:
        self.sent: list[dict] = []

    async def send_and_wait(self, topic, key=None, value=None, headers=None):
        self.sent.append({"topic": topic, "key": key, "value": value, "headers": headers})


class RecordingStore:
    def __init__(self) -> None:
        self.refreshed: list[str] = []
        self.trace_ids: list[int] = []

    async def refresh(self, device_id: str) -> None:
        self.refreshed.append(device_id)
        self.trace_ids.append(trace.get_current_span().get_span_context().trace_id)


def _event(device_id: str) -> bytes:
    return OrderChangedEvent(order_id="o-1", device_id=device_id, status="accepted", change="updated").model_dump_json().encode()


async def test_each_change_refreshes_its_device():
    store = RecordingStore()
    await run_change_feed(FakeConsumer([_event("dev-a"), _event("dev-b")]), store)
    assert store.refreshed == ["dev-a", "dev-b"]


async def test_malformed_messages_are_skipped():
    store = RecordingStore()
    await run_change_feed(FakeConsumer([b"not json", b'{"order_id": "x"}', _event("dev-a")]), store)
    assert store.refreshed == ["dev-a"]


async def test_consumer_continues_the_producer_trace():
    store = RecordingStore()
    consumer = FakeConsumer([_event("dev-a")], headers=[("traceparent", TRACEPARENT.encode())])
    await run_change_feed(consumer, store)
    assert store.trace_ids == [int(TRACE_ID, 16)]


async def test_published_change_carries_trace_context():
    producer = FakeProducer()
    store = SqlOrderStore(session_factory=None, producer=producer, topic="orders.changed")
    tracer = TracerProvider().get_tracer("test")

    with tracer.start_as_current_span("order.submit") as span:
        await store._changed("o-1", "dev-a", OrderStatus.ACCEPTED, "updated")
        trace_id = span.get_span_context().trace_id

    [sent] = producer.sent
    assert sent["topic"] == "orders.changed"
    assert sent["key"] == b"dev-a"
    headers = {k: v.decode() for k, v in sent["headers"]}
    assert headers["traceparent"].split("-")[1] == format(trace_id, "032x")
    assert OrderChangedEvent.model_validate_json(sent["value"]).status == "accepted"


def test_event_ignores_unknown_fields():
    event = OrderChangedEvent.model_validate_json(
        b'{"order_id": "o", "device_id": "d", "status": "ready", "change": "updated", "source": "staff"}'
    )
    assert event.device_id == "d"
    assert event.occurred_at.tzinfo is not None
