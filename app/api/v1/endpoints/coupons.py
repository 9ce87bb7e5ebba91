"""
Coupon API Endpoints

Sellers manage their own promo codes; anyone signed in can validate a code
against a subtotal.
"""
from typing import List
import uuid
import logging

from fastapi import APIRouter

from app.api.deps import DB, CurrentActor, Seller, raise_http
from app.schemas.coupon import (
    CouponCreate,
    CouponUpdate,
    CouponResponse,
    ValidateCouponRequest,
    ValidateCouponResponse,
)
from app.services.coupon_service import CouponService, PromoCodeApplied
from app.services.exceptions import OrderCoreError

logger = logging.getLogger(__name__)
router = APIRouter()


# ==================== Public Endpoints ====================

@router.post("/validate", response_model=ValidateCouponResponse)
async def validate_coupon(data: ValidateCouponRequest, db: DB, actor: CurrentActor):
    """
    Validate a promo code.
    Returns the discount if valid, the rejection reason if not. Nothing is
    counted until an order is placed.
    """
    result = await CouponService(db).validate(data.code, data.subtotal)
    if isinstance(result, PromoCodeApplied):
        return ValidateCouponResponse(
            valid=True,
            code=result.code,
            discount=result.discount,
            message=f"Promo code applied! You save {result.discount:.0f} FCFA",
        )
    return ValidateCouponResponse(
        valid=False,
        code=data.code.strip().upper(),
        reason=result.reason.value,
        message=result.message,
    )


# ==================== Seller Endpoints ====================

@router.get("", response_model=List[CouponResponse])
async def list_my_coupons(db: DB, seller: Seller):
    return await CouponService(db).list_seller_coupons(seller.id)


@router.post("", response_model=CouponResponse, status_code=201)
async def create_coupon(data: CouponCreate, db: DB, seller: Seller):
    try:
        coupon = await CouponService(db).create_coupon(seller.id, data.model_dump())
        await db.commit()
    except OrderCoreError as e:
        raise_http(e)
    return coupon


@router.patch("/{coupon_id}", response_model=CouponResponse)
async def update_coupon(coupon_id: uuid.UUID, data: CouponUpdate, db: DB, seller: Seller):
    """Update a coupon. Once used, only is_active can change."""
    try:
        coupon = await CouponService(db).update_coupon(
            coupon_id,
            seller.id,
            data.model_dump(exclude_unset=True),
        )
        await db.commit()
    except OrderCoreError as e:
        raise_http(e)
    return coupon


@router.delete("/{coupon_id}", status_code=204)
async def delete_coupon(coupon_id: uuid.UUID, db: DB, seller: Seller):
    try:
        await CouponService(db).delete_coupon(coupon_id, seller.id)
        await db.commit()
    except OrderCoreError as e:
        raise_http(e)
