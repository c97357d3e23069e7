import logging

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.services.device import (
    DEVICE_ID_KEY,
    MemoryStorage,
    is_valid_device_id,
    load_or_create_device_id,
)

logger = logging.getLogger(__name__)

# ten years; the device id is never rotated
_COOKIE_MAX_AGE = 10 * 365 * 24 * 3600


class DeviceIdMiddleware(BaseHTTPMiddleware):
    """Load the device id from its cookie, creating one on the first visit.

    A malformed cookie is replaced with a fresh id.
    """

    def __init__(self, app, cookie_name: str = "device_id") -> None:
        super().__init__(app)
        self.cookie_name = cookie_name

    async def dispatch(self, request: Request, call_next) -> Response:
        existing = request.cookies.get(self.cookie_name)
        if existing is not None and not is_valid_device_id(existing):
            logger.warning("Rejected malformed device cookie", extra={"length": len(existing)})
            existing = None
        storage = MemoryStorage({DEVICE_ID_KEY: existing} if existing else None)
        device_id = load_or_create_device_id(storage)
        request.state.device_id = device_id

        response = await call_next(request)
        if device_id != existing:
            response.set_cookie(
                self.cookie_name,
                device_id,
                max_age=_COOKIE_MAX_AGE,
                httponly=True,
                samesite="lax",
            )
        return response
