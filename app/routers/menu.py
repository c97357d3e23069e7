from fastapi import APIRouter, Depends

from app.dependencies import get_catalog
from app.schemas.menu_item import MenuResponse
from app.services.catalog import Catalog

router = APIRouter()


@router.get("", response_model=MenuResponse)
async def get_menu(category: str | None = None, catalog: Catalog = Depends(get_catalog)) -> MenuResponse:
    return MenuResponse(categories=catalog.categories, items=catalog.filter(category))
