from fastapi import APIRouter, Depends, Query

from app.dependencies import get_session
from app.schemas.order import CartItemIn, CartNoticeResponse, CartQuantityIn, CartResponse
from app.services.cart import Cart
from app.services.session import CustomerSession

router = APIRouter()


def cart_response(cart: Cart) -> CartResponse:
    notice = cart.notice
    return CartResponse(
        items=cart.items(),
        total=cart.compute_total(),
        total_quantity=cart.total_quantity(),
        notice=(
            CartNoticeResponse(message=notice.message, expires_in=cart.notice_remaining())
            if notice is not None
            else None
        ),
    )


def _options(session: CustomerSession, menu_item_id: str, option_ids: list[str]):
    menu_item = session.catalog.menu_item(menu_item_id)
    return menu_item, session.catalog.select_options(menu_item, option_ids)


@router.get("", response_model=CartResponse)
async def get_cart(session: CustomerSession = Depends(get_session)) -> CartResponse:
    return cart_response(session.cart)


@router.post("/items", response_model=CartResponse)
async def add_item(body: CartItemIn, session: CustomerSession = Depends(get_session)) -> CartResponse:
    menu_item, options = _options(session, body.menu_item_id, body.option_ids)
    session.cart.add_item(menu_item, options)
    return cart_response(session.cart)


@router.patch("/items/{menu_item_id}", response_model=CartResponse)
async def set_quantity(
    menu_item_id: str,
    body: CartQuantityIn,
    session: CustomerSession = Depends(get_session),
) -> CartResponse:
    _, options = _options(session, menu_item_id, body.option_ids)
    session.cart.set_quantity(menu_item_id, body.quantity, options)
    return cart_response(session.cart)


@router.delete("/items/{menu_item_id}", response_model=CartResponse)
async def remove_item(
    menu_item_id: str,
    option_ids: list[str] = Query(default=[]),
    session: CustomerSession = Depends(get_session),
) -> CartResponse:
    _, options = _options(session, menu_item_id, option_ids)
    session.cart.remove_item(menu_item_id, options)
    return cart_response(session.cart)


@router.delete("", response_model=CartResponse)
async def clear_cart(session: CustomerSession = Depends(get_session)) -> CartResponse:
    session.cart.clear()
    return cart_response(session.cart)
