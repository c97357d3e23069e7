import logging

from fastapi import APIRouter, Depends

from app.dependencies import get_session
from app.routers.cart import cart_response
from app.schemas.order import (
    GCashInfo,
    NotificationResponse,
    RebindResponse,
    SessionResponse,
    TableIn,
)
from app.services.session import CustomerSession

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/session", response_model=SessionResponse)
async def get_session_state(
    table: str | None = None,
    session: CustomerSession = Depends(get_session),
) -> SessionResponse:
    session.table.resolve(table)
    return SessionResponse(
        device_id=session.device_id,
        table_number=session.table.table_number,
        needs_table=session.table.needs_prompt,
        cart=cart_response(session.cart),
    )


@router.put("/session/table", response_model=RebindResponse)
async def rebind_table(body: TableIn, session: CustomerSession = Depends(get_session)) -> RebindResponse:
    logger.info(
        "Received rebind_table request",
        extra={"device_id": session.device_id, "table_number": body.table_number},
    )
    result = await session.table.bind(body.table_number)
    return RebindResponse(
        table_number=result.table_number,
        updated_order_ids=result.updated,
        failed_order_ids=result.failed,
    )


@router.get("/notifications", response_model=list[NotificationResponse])
async def drain_notifications(session: CustomerSession = Depends(get_session)) -> list[NotificationResponse]:
    return [
        NotificationResponse(order_id=e.order_id, status=e.status, title=e.title, body=e.body)
        for e in session.notifier.drain()
    ]


@router.get("/payment/gcash", response_model=GCashInfo | None)
async def gcash_info(session: CustomerSession = Depends(get_session)) -> GCashInfo | None:
    return await session.lifecycle.gcash_info()
