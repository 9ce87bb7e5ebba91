import uuid
from datetime import datetime, date, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import String, DateTime, Date, Integer, Numeric, Index
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.db_types import JSONType, UUIDType


class ProductStatus(str, Enum):
    """Product lifecycle status."""
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class Product(Base):
    """
    Catalog product owned by a seller's store.

    Variants are stored as JSON:
        variants:        [{"name": "Taille", "options": ["S", "M"]}]
        variant_details: [{"options": {"Taille": "S"}, "stock": 4, "price": 5500}]
    """
    __tablename__ = "products"
    __table_args__ = (
        Index('ix_product_vendor_status', 'vendor_name', 'status'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    sku: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Owning store, referenced by name across carts and flash sales
    vendor_name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        index=True,
        comment="Store name of the selling vendor"
    )

    # Pricing (FCFA)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    promotion_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    promotion_start_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    promotion_end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    # Variants
    variants: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)
    variant_details: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)

    # Shipping
    additional_shipping_fee: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2),
        nullable=True,
        comment="Declared shipping cost for one shipment of this product"
    )

    stock: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    status: Mapped[str] = mapped_column(
        String(50),
        default=ProductStatus.DRAFT.value,
        nullable=False,
        comment="draft, published, archived"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<Product(name='{self.name}', vendor='{self.vendor_name}')>"
