from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from decimal import Decimal
import uuid

from app.models.coupon import DiscountType
from app.schemas.base import BaseResponseSchema, BaseCreateSchema, BaseUpdateSchema, Money


class CouponCreate(BaseCreateSchema):
    """Seller coupon creation schema."""
    code: str = Field(..., min_length=3, max_length=50)
    discount_type: DiscountType = DiscountType.PERCENTAGE
    discount_value: Decimal = Field(..., gt=0)
    minimum_purchase: Optional[Decimal] = Field(None, ge=0)
    max_uses: Optional[int] = Field(None, ge=1)
    valid_until: Optional[datetime] = None
    is_active: bool = True


class CouponUpdate(BaseUpdateSchema):
    """Partial update. Only is_active may change once the coupon has been used."""
    code: Optional[str] = Field(None, min_length=3, max_length=50)
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[Decimal] = Field(None, gt=0)
    minimum_purchase: Optional[Decimal] = Field(None, ge=0)
    max_uses: Optional[int] = Field(None, ge=1)
    valid_until: Optional[datetime] = None
    is_active: Optional[bool] = None


class CouponResponse(BaseResponseSchema):
    id: uuid.UUID
    code: str
    discount_type: str
    discount_value: Money
    minimum_purchase: Optional[Money] = None
    max_uses: Optional[int] = None
    used_count: int
    valid_until: Optional[datetime] = None
    seller_id: uuid.UUID
    is_active: bool
    is_locked: bool
    created_at: datetime


class ValidateCouponRequest(BaseModel):
    """Request to validate a promo code against a subtotal."""
    code: str = Field(..., min_length=1, max_length=50)
    subtotal: Decimal = Field(..., ge=0)


class ValidateCouponResponse(BaseModel):
    valid: bool
    code: str
    discount: Optional[Money] = None
    reason: Optional[str] = None
    message: str
