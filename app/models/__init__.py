# Import all models here so SQLAlchemy registers them with Base.metadata
from app.models.document import StoreDocument
from app.models.menu_item import CategoryRecord, MenuItemRecord
from app.models.order import OrderRecord, OrderStatus, PaymentMethod, PaymentStatus

__all__ = [
    "CategoryRecord",
    "MenuItemRecord",
    "OrderRecord",
    "OrderStatus",
    "PaymentMethod",
    "PaymentStatus",
    "StoreDocument",
]
