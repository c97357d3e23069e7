import logging
from decimal import Decimal

from app.schemas.menu_item import Category, MenuItem, MenuOption
from app.schemas.order import SelectedOption
from app.services.errors import ValidationError
from app.store.base import CatalogStore

logger = logging.getLogger(__name__)

CATEGORY_SEED = [
    Category(id="rice-meals", name="Rice Meals"),
    Category(id="noodles", name="Noodles"),
    Category(id="drinks", name="Drinks"),
]

MENU_SEED = [
    MenuItem(
        id="chicken-adobo",
        name="Chicken Adobo",
        price=Decimal("120.00"),
        category="rice-meals",
        options=(
            MenuOption(id="extra-rice", name="Extra Rice", price=Decimal("20.00")),
            MenuOption(id="egg", name="Fried Egg", price=Decimal("15.00")),
        ),
    ),
    MenuItem(
        id="pork-sisig",
        name="Pork Sisig",
        price=Decimal("150.00"),
        category="rice-meals",
        options=(MenuOption(id="egg", name="Fried Egg", price=Decimal("15.00")),),
    ),
    MenuItem(id="pancit-canton", name="Pancit Canton", price=Decimal("110.00"), category="noodles"),
    MenuItem(
        id="lomi",
        name="Lomi",
        price=Decimal("95.00"),
        category="noodles",
        options=(MenuOption(id="large", name="Large Bowl", max_selections=1, price=Decimal("30.00")),),
    ),
    MenuItem(id="iced-tea", name="Iced Tea", price=Decimal("40.00"), category="drinks"),
    MenuItem(id="calamansi-juice", name="Calamansi Juice", price=Decimal("45.00"), category="drinks"),
]


class Catalog:
    """Menu snapshot fetched once at startup; there is no live subscription."""

    def __init__(self, categories: list[Category], items: list[MenuItem]) -> None:
        self.categories = categories
        self.items = items
        self._by_id = {item.id: item for item in items}

    @classmethod
    async def load(cls, store: CatalogStore) -> "Catalog":
        categories = await store.list_categories()
        items = await store.list_menu_items()
        logger.info(
            "Catalog loaded",
            extra={"categories": len(categories), "menu_items": len(items)},
        )
        return cls(categories, items)

    def filter(self, category_id: str | None = None) -> list[MenuItem]:
        if category_id is None:
            return list(self.items)
        return [item for item in self.items if item.category == category_id]

    def menu_item(self, menu_item_id: str) -> MenuItem:
        item = self._by_id.get(menu_item_id)
        if item is None:
            raise ValidationError(f"Unknown menu item: {menu_item_id}")
        return item

    def select_options(self, menu_item: MenuItem, option_ids: list[str]) -> list[SelectedOption]:
        """Snapshot the chosen options' current name and price."""
        selected = []
        for option_id in dict.fromkeys(option_ids):
            option = menu_item.option(option_id)
            if option is None:
                raise ValidationError(f"Unknown option {option_id!r} for {menu_item.name}")
            selected.append(SelectedOption(id=option.id, name=option.name, price=option.price))
        return selected
