from fastapi import Depends, Request

from app.services.catalog import Catalog
from app.services.session import CustomerSession, SessionRegistry


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.registry


def get_catalog(registry: SessionRegistry = Depends(get_registry)) -> Catalog:
    return registry.catalog


async def get_session(
    request: Request,
    registry: SessionRegistry = Depends(get_registry),
) -> CustomerSession:
    return await registry.get(request.state.device_id)
