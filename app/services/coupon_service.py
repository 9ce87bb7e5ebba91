"""
Promo Code Engine and seller coupon management.

apply_promo_code() prices a code against a subtotal without touching any
state. The use counter moves only when an order is actually placed, through
CouponService.record_use(), inside the checkout transaction.
"""
import logging
import uuid
from typing import Dict, Iterable, List, Optional, Union
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.coupon import Coupon, DiscountType
from app.services.exceptions import (
    CouponLockedError,
    CouponNotFoundError,
    DuplicateCouponError,
    PromoCodeExhaustedError,
)
from app.services.pricing_engine import as_utc

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

# Fields that can still change after the first redemption
UNLOCKED_FIELDS = {"is_active"}


class PromoRejectionReason(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    EXPIRED = "EXPIRED"
    BELOW_MINIMUM = "BELOW_MINIMUM"
    LIMIT_REACHED = "LIMIT_REACHED"


REJECTION_MESSAGES = {
    PromoRejectionReason.NOT_FOUND: "Invalid promo code",
    PromoRejectionReason.EXPIRED: "This promo code has expired",
    PromoRejectionReason.BELOW_MINIMUM: "Order subtotal is below the minimum purchase for this code",
    PromoRejectionReason.LIMIT_REACHED: "This promo code has reached its usage limit",
}


@dataclass
class PromoCodeApplied:
    code: str
    discount: Decimal
    coupon_id: Optional[uuid.UUID] = None

    applied = True


@dataclass
class PromoCodeRejected:
    reason: PromoRejectionReason

    applied = False

    @property
    def message(self) -> str:
        return REJECTION_MESSAGES[self.reason]


PromoCodeResult = Union[PromoCodeApplied, PromoCodeRejected]


class CouponRegistry:
    """Coupons keyed by uppercase code."""

    def __init__(self, coupons: Iterable[Coupon] = ()):
        self._coupons: Dict[str, Coupon] = {normalize_code(c.code): c for c in coupons}

    def get(self, code: str) -> Optional[Coupon]:
        return self._coupons.get(normalize_code(code))


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def calculate_discount(coupon: Coupon, subtotal: Decimal) -> Decimal:
    """Discount for a subtotal, clamped to [0, subtotal] and rounded to the cent."""
    value = Decimal(coupon.discount_value)
    if coupon.discount_type == DiscountType.PERCENTAGE.value:
        discount = subtotal * value / Decimal("100")
    else:
        discount = value

    discount = min(max(discount, Decimal("0")), subtotal)
    return discount.quantize(CENT, rounding=ROUND_HALF_UP)


def apply_promo_code(
    code: str,
    subtotal: Decimal,
    registry: CouponRegistry,
    now: datetime,
) -> PromoCodeResult:
    """
    Validate a promo code against a subtotal.

    Checks run in order: existence, expiry, minimum purchase, usage limit.
    The first failing check decides the rejection reason.
    """
    coupon = registry.get(code)
    if coupon is None or coupon.is_active is False:
        return PromoCodeRejected(PromoRejectionReason.NOT_FOUND)

    if coupon.valid_until is not None and as_utc(now) > as_utc(coupon.valid_until):
        return PromoCodeRejected(PromoRejectionReason.EXPIRED)

    if coupon.minimum_purchase is not None and subtotal < coupon.minimum_purchase:
        return PromoCodeRejected(PromoRejectionReason.BELOW_MINIMUM)

    if coupon.max_uses is not None and (coupon.used_count or 0) >= coupon.max_uses:
        return PromoCodeRejected(PromoRejectionReason.LIMIT_REACHED)

    return PromoCodeApplied(
        code=coupon.code,
        discount=calculate_discount(coupon, subtotal),
        coupon_id=coupon.id,
    )


class CouponService:
    """Seller coupon management and redemption counting."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_code(self, code: str) -> Optional[Coupon]:
        result = await self.db.execute(
            select(Coupon).where(func.upper(Coupon.code) == normalize_code(code))
        )
        return result.scalar_one_or_none()

    async def load_registry(self, code: str) -> CouponRegistry:
        """Registry holding the active coupon for a code, if any."""
        coupon = await self.get_by_code(code)
        if coupon is None or not coupon.is_active:
            return CouponRegistry()
        return CouponRegistry([coupon])

    async def validate(self, code: str, subtotal: Decimal, now: datetime = None) -> PromoCodeResult:
        registry = await self.load_registry(code)
        return apply_promo_code(code, subtotal, registry, now or datetime.now(timezone.utc))

    async def record_use(self, coupon_id: uuid.UUID) -> None:
        """
        Count one redemption.

        The increment is a single conditional UPDATE so two checkouts racing
        for the last use cannot both succeed.

        Raises:
            PromoCodeExhaustedError: If the limit was reached concurrently
        """
        result = await self.db.execute(
            update(Coupon)
            .where(
                Coupon.id == coupon_id,
                (Coupon.max_uses == None) | (Coupon.used_count < Coupon.max_uses),
            )
            .values(used_count=Coupon.used_count + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning(f"Promo code {coupon_id} exhausted during checkout")
            raise PromoCodeExhaustedError(
                "This promo code has reached its usage limit",
                {"coupon_id": str(coupon_id)},
            )

    async def create_coupon(self, seller_id: uuid.UUID, data: dict) -> Coupon:
        code = normalize_code(data["code"])
        if await self.get_by_code(code) is not None:
            raise DuplicateCouponError(f"Coupon code '{code}' already exists", {"code": code})

        coupon = Coupon(
            code=code,
            discount_type=DiscountType(data.get("discount_type", DiscountType.PERCENTAGE)).value,
            discount_value=data["discount_value"],
            minimum_purchase=data.get("minimum_purchase"),
            max_uses=data.get("max_uses"),
            valid_until=data.get("valid_until"),
            seller_id=seller_id,
            used_count=0,
            is_active=data.get("is_active", True),
        )
        self.db.add(coupon)
        await self.db.flush()
        logger.info(f"Coupon {code} created by seller {seller_id}")
        return coupon

    async def get_seller_coupon(self, coupon_id: uuid.UUID, seller_id: Optional[uuid.UUID]) -> Coupon:
        """Fetch a coupon owned by the seller. A None seller_id (admin) skips the ownership check."""
        query = select(Coupon).where(Coupon.id == coupon_id)
        if seller_id is not None:
            query = query.where(Coupon.seller_id == seller_id)
        result = await self.db.execute(query)
        coupon = result.scalar_one_or_none()
        if coupon is None:
            raise CouponNotFoundError("Coupon not found", {"coupon_id": str(coupon_id)})
        return coupon

    async def update_coupon(self, coupon_id: uuid.UUID, seller_id: Optional[uuid.UUID], data: dict) -> Coupon:
        """
        Update a coupon.

        Once a coupon has been redeemed, only its activation flag may change.
        """
        coupon = await self.get_seller_coupon(coupon_id, seller_id)

        changed = {k: v for k, v in data.items() if getattr(coupon, k, None) != v}
        if coupon.is_locked and set(changed) - UNLOCKED_FIELDS:
            raise CouponLockedError(
                f"Coupon {coupon.code} has been used and can only be deactivated",
                {"code": coupon.code, "used_count": coupon.used_count},
            )

        if "code" in changed:
            new_code = normalize_code(changed["code"])
            existing = await self.get_by_code(new_code)
            if existing is not None and existing.id != coupon.id:
                raise DuplicateCouponError(f"Coupon code '{new_code}' already exists", {"code": new_code})
            changed["code"] = new_code
        if "discount_type" in changed:
            changed["discount_type"] = DiscountType(changed["discount_type"]).value

        for field_name, value in changed.items():
            setattr(coupon, field_name, value)

        await self.db.flush()
        return coupon

    async def delete_coupon(self, coupon_id: uuid.UUID, seller_id: Optional[uuid.UUID]) -> None:
        coupon = await self.get_seller_coupon(coupon_id, seller_id)
        if coupon.is_locked:
            raise CouponLockedError(
                f"Coupon {coupon.code} has been used and cannot be deleted",
                {"code": coupon.code, "used_count": coupon.used_count},
            )
        await self.db.delete(coupon)
        await self.db.flush()

    async def list_seller_coupons(self, seller_id: uuid.UUID) -> List[Coupon]:
        result = await self.db.execute(
            select(Coupon)
            .where(Coupon.seller_id == seller_id)
            .order_by(Coupon.created_at.desc())
        )
        return list(result.scalars().all())
