from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class StoreDocument(Base):
    """Free-form documents addressed by (collection, doc_id), e.g. admin/gcash."""

    __tablename__ = "documents"

    collection: Mapped[str] = mapped_column(String(100), primary_key=True)
    doc_id: Mapped[str] = mapped_column(String(100), primary_key=True)
    data: Mapped[dict] = mapped_column(JSON, nullable=False)
