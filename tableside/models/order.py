"""
Tableside Orders — Order DB models

[TRANSACTIONAL DATA] orders — one row per order; the aggregate lives in the
                      `document` column, the other columns are copies kept
                      for filtering and sorting.
version_id is the optimistic locking column — incremented on every write.
"""
import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Integer, String, Index
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from tableside.db.database import Base

DocumentType = JSON().with_variant(JSONB(), "postgresql")


class OrderRecord(Base):
    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: uuid.uuid4().hex)
    table_id: Mapped[str] = mapped_column(String(36), index=True, nullable=False)
    restaurant_id: Mapped[str] = mapped_column(String(36), index=True, nullable=False)
    status: Mapped[str] = mapped_column(String(16), index=True, nullable=False)
    order_type: Mapped[str] = mapped_column(String(8), nullable=False, default="qr")
    is_updated: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    has_unseen_changes: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    version_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)  # optimistic lock
    document: Mapped[dict] = mapped_column(DocumentType, nullable=False)

    __table_args__ = (
        Index("ix_orders_restaurant_status_created", "restaurant_id", "status", "created_at"),
        Index("ix_orders_table_created", "table_id", "created_at"),
    )
