import logging

from fastapi import APIRouter, Depends, HTTPException, status

from app.dependencies import get_session
from app.schemas.order import NotificationResponse, Order, OrderView, PaymentIn, Receipt
from app.services.lifecycle import available_actions
from app.services.session import CustomerSession

router = APIRouter()
logger = logging.getLogger(__name__)


def _view(order: Order) -> OrderView:
    return OrderView(order=order, actions=available_actions(order))


@router.get("", response_model=list[OrderView])
async def list_orders(session: CustomerSession = Depends(get_session)) -> list[OrderView]:
    return [_view(order) for order in session.feed.orders]


@router.post("", response_model=OrderView, status_code=status.HTTP_201_CREATED)
async def place_order(session: CustomerSession = Depends(get_session)) -> OrderView:
    logger.info(
        "Received place_order request",
        extra={"device_id": session.device_id, "item_count": len(session.cart)},
    )
    order = await session.lifecycle.submit()
    if order is None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Order submission already in progress")
    return _view(order)


# registered before /{order_id} routes so "cancel" is never taken for an id
@router.post("/cancel/confirm", response_model=NotificationResponse | None)
async def confirm_cancel(session: CustomerSession = Depends(get_session)) -> NotificationResponse | None:
    effect = await session.confirm_cancel()
    if effect is None:
        return None
    return NotificationResponse(order_id=effect.order_id, status=effect.status, title=effect.title, body=effect.body)


@router.delete("/cancel", status_code=status.HTTP_204_NO_CONTENT)
async def dismiss_cancel(session: CustomerSession = Depends(get_session)) -> None:
    session.lifecycle.dismiss_cancel()


@router.post("/{order_id}/cancel", response_model=OrderView)
async def request_cancel(order_id: str, session: CustomerSession = Depends(get_session)) -> OrderView:
    return _view(session.lifecycle.request_cancel(order_id))


@router.post("/{order_id}/payment", response_model=OrderView)
async def submit_payment(
    order_id: str,
    body: PaymentIn,
    session: CustomerSession = Depends(get_session),
) -> OrderView:
    logger.info(
        "Received payment request",
        extra={"device_id": session.device_id, "order_id": order_id, "method": body.method},
    )
    order = await session.lifecycle.submit_payment(order_id, body.method, body.proof)
    return _view(order)


@router.get("/{order_id}/receipt", response_model=Receipt)
async def get_receipt(order_id: str, session: CustomerSession = Depends(get_session)) -> Receipt:
    return session.lifecycle.receipt(order_id)
