from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import JSON, BigInteger, DateTime, Integer, Numeric, String, Text
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class OrderStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    PAID = "paid"
    READY = "ready"
    SERVED = "served"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    PAID = "paid"


class PaymentMethod(str, Enum):
    CASH = "cash"
    GCASH = "gcash"


class OrderRecord(Base):
    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    device_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    table_number: Mapped[int] = mapped_column(Integer, nullable=False)
    # CartItem snapshots, frozen at submission
    items: Mapped[list] = mapped_column(JSON, nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    status: Mapped[OrderStatus] = mapped_column(
        SAEnum(OrderStatus, name="orderstatus"), default=OrderStatus.PENDING, nullable=False
    )
    # epoch milliseconds, set once at submission
    created_at: Mapped[int] = mapped_column(BigInteger, index=True, nullable=False)
    payment_method: Mapped[PaymentMethod | None] = mapped_column(
        SAEnum(PaymentMethod, name="paymentmethod"), nullable=True
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        SAEnum(PaymentStatus, name="paymentstatus"), default=PaymentStatus.PENDING, nullable=False
    )
    payment_proof: Mapped[str | None] = mapped_column(Text, nullable=True)
    order_number: Mapped[str] = mapped_column(String(8), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )
