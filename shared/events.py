"""
Pydantic event schemas exchanged over Kafka.
Staff tools and the customer-facing app both publish OrderChangedEvent after
writing an order; subscribers refresh the affected device's snapshot.
"""

import uuid
from datetime import datetime, timezone

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EventBase(BaseModel):
    event_id: uuid.UUID = Field(default_factory=uuid.uuid4)
    event_version: int = 1
    occurred_at: datetime = Field(default_factory=_utcnow)

    model_config = {"extra": "ignore"}


class OrderChangedEvent(EventBase):
    order_id: str
    device_id: str
    status: str
    change: str  # "created" | "updated"
