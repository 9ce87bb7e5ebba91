"""
Coupon Model for seller promo codes

Codes are scoped to the seller who created them. The discount fields are
frozen once the code has been redeemed; only the use counter moves.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import String, Boolean, DateTime, Integer, Numeric
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.db_types import UUIDType


class DiscountType(str, Enum):
    """Discount type enumeration."""
    PERCENTAGE = "percentage"  # e.g., 10% off
    FIXED = "fixed"  # e.g., 500 FCFA off


class Coupon(Base):
    """
    Promo code created by a seller.
    """
    __tablename__ = "coupons"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    # Coupon Code
    code: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        index=True,
        comment="Unique coupon code, stored uppercase"
    )

    # Discount Type & Value
    discount_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=DiscountType.PERCENTAGE.value,
        comment="percentage, fixed"
    )
    discount_value: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="Discount value (percentage or amount)"
    )

    # Minimum Requirements
    minimum_purchase: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2),
        nullable=True,
        comment="Minimum subtotal to apply coupon"
    )

    # Usage Limits
    max_uses: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="Total times this coupon can be used"
    )
    used_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Number of confirmed orders that redeemed this coupon"
    )

    # Validity
    valid_until: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Expiry (null = never expires)"
    )

    # Owning seller
    seller_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False, index=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

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

    @property
    def is_locked(self) -> bool:
        """Discount terms are frozen once the code has been redeemed."""
        return (self.used_count or 0) > 0

    def __repr__(self) -> str:
        return f"<Coupon(code='{self.code}', type='{self.discount_type}', value={self.discount_value})>"
