from decimal import Decimal

from pydantic import BaseModel, Field


class MenuOption(BaseModel):
    id: str
    name: str
    is_required: bool = False
    max_selections: int | None = None
    price: Decimal = Decimal("0.00")

    model_config = {"frozen": True, "from_attributes": True}


class MenuItem(BaseModel):
    id: str
    name: str
    price: Decimal = Field(ge=0, decimal_places=2)
    category: str
    image_url: str | None = None
    options: tuple[MenuOption, ...] = ()

    model_config = {"frozen": True, "from_attributes": True}

    def option(self, option_id: str) -> MenuOption | None:
        return next((o for o in self.options if o.id == option_id), None)


class Category(BaseModel):
    id: str
    name: str

    model_config = {"frozen": True, "from_attributes": True}


class MenuResponse(BaseModel):
    categories: list[Category]
    items: list[MenuItem]
