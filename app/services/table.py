import logging
from dataclasses import dataclass, field

from opentelemetry import trace

from app.metrics import TABLE_REBIND_UPDATES
from app.models.order import OrderStatus
from app.services.device import TABLE_NUMBER_KEY, SessionContext
from app.services.errors import StoreError, ValidationError
from app.store.base import OrderStore

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def parse_table_number(raw: str | int | None) -> int:
    text = str(raw).strip() if raw is not None else ""
    if not text:
        raise ValidationError("Table number is required")
    try:
        number = int(text)
    except ValueError:
        raise ValidationError(f"Invalid table number: {text!r}")
    if number < 1:
        raise ValidationError(f"Invalid table number: {text!r}")
    return number


@dataclass
class RebindResult:
    table_number: int
    updated: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


class TableBinding:
    """The table this device is ordering for.

    A ``?table=`` query parameter wins over the persisted value. Rebinding
    moves the device's still-pending orders along; accepted and later orders
    keep the table they were placed at.
    """

    def __init__(self, context: SessionContext, store: OrderStore) -> None:
        self.context = context
        self.store = store
        self._table_number: int | None = None
        stored = context.storage.get(TABLE_NUMBER_KEY)
        if stored:
            try:
                self._table_number = parse_table_number(stored)
            except ValidationError:
                logger.warning("Ignoring invalid persisted table number", extra={"value": stored})

    @property
    def table_number(self) -> int | None:
        return self._table_number

    @property
    def needs_prompt(self) -> bool:
        return self._table_number is None

    def resolve(self, query_param: str | None = None) -> int | None:
        if query_param:
            self._persist(parse_table_number(query_param))
        return self._table_number

    async def bind(self, raw: str | int) -> RebindResult:
        table_number = parse_table_number(raw)
        self._persist(table_number)
        result = RebindResult(table_number=table_number)

        with tracer.start_as_current_span("table.rebind"):
            # a failed lookup is surfaced; failed individual updates are not
            pending = await self.store.query(self.context.device_id, status=OrderStatus.PENDING)
            for order in pending:
                try:
                    await self.store.update(order.id, {"table_number": table_number})
                except StoreError as exc:
                    result.failed.append(order.id)
                    TABLE_REBIND_UPDATES.labels("failed").inc()
                    logger.warning(
                        "Error updating table number on pending order",
                        extra={"order_id": order.id, "table_number": table_number, "error": str(exc)},
                    )
                else:
                    result.updated.append(order.id)
                    TABLE_REBIND_UPDATES.labels("updated").inc()

        logger.info(
            "Table rebound",
            extra={
                "device_id": self.context.device_id,
                "table_number": table_number,
                "updated": len(result.updated),
                "failed": len(result.failed),
            },
        )
        return result

    def _persist(self, table_number: int) -> None:
        self.context.storage.set(TABLE_NUMBER_KEY, str(table_number))
        self._table_number = table_number
