"""Promo code validation and seller coupon management."""
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import select

from app.models import Coupon
from app.services.coupon_service import (
    CouponRegistry,
    CouponService,
    PromoCodeApplied,
    PromoCodeRejected,
    PromoRejectionReason,
    apply_promo_code,
)
from app.services.exceptions import (
    CouponLockedError,
    CouponNotFoundError,
    DuplicateCouponError,
    PromoCodeExhaustedError,
)
from tests.conftest import make_coupon

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


def apply(coupon, subtotal, code=None):
    return apply_promo_code(code or coupon.code, Decimal(subtotal), CouponRegistry([coupon]), NOW)


class TestApplyPromoCode:
    def test_percentage_discount(self):
        result = apply(make_coupon(discount_type="percentage", discount_value=Decimal("10")), "10000")

        assert isinstance(result, PromoCodeApplied)
        assert result.discount == Decimal("1000.00")

    def test_fixed_discount_clamped_to_subtotal(self):
        coupon = make_coupon(code="MOINS5000", discount_type="fixed", discount_value=Decimal("5000"))
        result = apply(coupon, "3000")

        assert result.discount == Decimal("3000.00")

    def test_code_is_case_insensitive(self):
        result = apply(make_coupon(), "10000", code="  bienvenue10 ")
        assert result.applied is True
        assert result.code == "BIENVENUE10"

    def test_unknown_code(self):
        result = apply_promo_code("NOPE", Decimal("10000"), CouponRegistry(), NOW)
        assert isinstance(result, PromoCodeRejected)
        assert result.reason == PromoRejectionReason.NOT_FOUND

    def test_inactive_code_reads_as_unknown(self):
        result = apply(make_coupon(is_active=False), "10000")
        assert result.reason == PromoRejectionReason.NOT_FOUND

    def test_expired(self):
        result = apply(make_coupon(valid_until=NOW - timedelta(minutes=1)), "10000")
        assert result.reason == PromoRejectionReason.EXPIRED
        assert result.message == "This promo code has expired"

    def test_valid_until_is_inclusive(self):
        assert apply(make_coupon(valid_until=NOW), "10000").applied is True

    def test_below_minimum_purchase(self):
        result = apply(make_coupon(minimum_purchase=Decimal("15000")), "10000")
        assert result.reason == PromoRejectionReason.BELOW_MINIMUM

    def test_limit_reached(self):
        result = apply(make_coupon(max_uses=3, used_count=3), "10000")
        assert result.reason == PromoRejectionReason.LIMIT_REACHED

    def test_checks_run_in_order(self):
        coupon = make_coupon(
            valid_until=NOW - timedelta(days=1),
            minimum_purchase=Decimal("50000"),
            max_uses=1,
            used_count=1,
        )
        assert apply(coupon, "10000").reason == PromoRejectionReason.EXPIRED

    def test_applying_does_not_count_a_use(self):
        coupon = make_coupon(max_uses=5, used_count=2)
        apply(coupon, "10000")
        assert coupon.used_count == 2


class TestCouponService:
    async def test_record_use_increments(self, db):
        coupon = make_coupon(max_uses=2)
        db.add(coupon)
        await db.commit()

        await CouponService(db).record_use(coupon.id)
        await db.commit()

        used = await db.scalar(select(Coupon.used_count).where(Coupon.id == coupon.id))
        assert used == 1

    async def test_record_use_refuses_past_limit(self, db):
        coupon = make_coupon(max_uses=1, used_count=1)
        db.add(coupon)
        await db.commit()

        with pytest.raises(PromoCodeExhaustedError):
            await CouponService(db).record_use(coupon.id)

    async def test_record_use_without_limit(self, db):
        coupon = make_coupon(max_uses=None, used_count=40)
        db.add(coupon)
        await db.commit()

        await CouponService(db).record_use(coupon.id)
        used = await db.scalar(select(Coupon.used_count).where(Coupon.id == coupon.id))
        assert used == 41

    async def test_validate_reads_from_database(self, db):
        db.add(make_coupon(code="RENTREE", discount_type="fixed", discount_value=Decimal("2000")))
        await db.commit()

        result = await CouponService(db).validate("rentree", Decimal("8000"), now=NOW)
        assert result.discount == Decimal("2000.00")

    async def test_create_rejects_duplicate_code(self, db):
        service = CouponService(db)
        seller_id = uuid.uuid4()
        await service.create_coupon(seller_id, {"code": "noel", "discount_value": Decimal("15")})

        with pytest.raises(DuplicateCouponError):
            await service.create_coupon(seller_id, {"code": "NOEL", "discount_value": Decimal("5")})

    async def test_used_coupon_is_locked(self, db):
        coupon = make_coupon(used_count=1)
        db.add(coupon)
        await db.commit()
        service = CouponService(db)

        with pytest.raises(CouponLockedError):
            await service.update_coupon(coupon.id, coupon.seller_id, {"discount_value": Decimal("50")})
        with pytest.raises(CouponLockedError):
            await service.delete_coupon(coupon.id, coupon.seller_id)

        updated = await service.update_coupon(coupon.id, coupon.seller_id, {"is_active": False})
        assert updated.is_active is False

    async def test_unused_coupon_can_be_edited(self, db):
        coupon = make_coupon()
        db.add(coupon)
        await db.commit()

        updated = await CouponService(db).update_coupon(
            coupon.id, coupon.seller_id, {"discount_value": Decimal("25"), "code": "bienvenue25"}
        )
        assert updated.discount_value == Decimal("25")
        assert updated.code == "BIENVENUE25"

    async def test_other_sellers_cannot_touch_a_coupon(self, db):
        coupon = make_coupon()
        db.add(coupon)
        await db.commit()

        with pytest.raises(CouponNotFoundError):
            await CouponService(db).update_coupon(coupon.id, uuid.uuid4(), {"is_active": False})
