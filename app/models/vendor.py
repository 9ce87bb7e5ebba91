"""Vendor (seller store) model.

Only the attributes the order core needs: the store name used as the key
on cart lines, the city used for delivery zoning, and shipping settings.
"""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, Boolean, DateTime, Numeric
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.db_types import UUIDType


class Vendor(Base):
    """Seller store registered on the marketplace."""
    __tablename__ = "vendors"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    seller_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        nullable=True,
        index=True,
        comment="User id of the seller owning this store"
    )

    name: Mapped[str] = mapped_column(
        String(200),
        unique=True,
        nullable=False,
        index=True
    )
    city: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="City the store ships from"
    )

    free_shipping_threshold: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2),
        nullable=True,
        comment="Store subtotal from which this store's shipment is free"
    )
    custom_rate_local: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2),
        nullable=True,
        comment="Replaces the intra-urban zone fee"
    )
    custom_rate_national: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2),
        nullable=True,
        comment="Replaces the inter-urban zone fee"
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<Vendor(name='{self.name}', city='{self.city}')>"
