"""
Flash Sale Models

Time-boxed sales created by an administrator. Sellers propose products with
a flash price; each proposal is approved or rejected independently.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import List

from sqlalchemy import String, DateTime, ForeignKey, Numeric, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.db_types import UUIDType


class FlashSaleEntryStatus(str, Enum):
    """Approval status of a product proposed for a flash sale."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class FlashSale(Base):
    """Flash sale window."""
    __tablename__ = "flash_sales"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    entries: Mapped[List["FlashSaleEntry"]] = relationship(
        "FlashSaleEntry",
        back_populates="flash_sale",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<FlashSale(name='{self.name}', start='{self.start_date}', end='{self.end_date}')>"


class FlashSaleEntry(Base):
    """A product proposed for a flash sale by its seller."""
    __tablename__ = "flash_sale_entries"
    __table_args__ = (
        UniqueConstraint('flash_sale_id', 'product_id', name='uq_flash_sale_product'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    flash_sale_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("flash_sales.id", ondelete="CASCADE"),
        nullable=False
    )
    product_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False, index=True)
    seller_shop_name: Mapped[str] = mapped_column(String(200), nullable=False)
    flash_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        default=FlashSaleEntryStatus.PENDING.value,
        nullable=False,
        comment="pending, approved, rejected"
    )

    flash_sale: Mapped["FlashSale"] = relationship("FlashSale", back_populates="entries")

    def __repr__(self) -> str:
        return f"<FlashSaleEntry(product='{self.product_id}', price={self.flash_price}, status='{self.status}')>"
