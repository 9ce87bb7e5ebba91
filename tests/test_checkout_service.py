"""Quoting and placing multi-vendor orders."""
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import select

from app.config import settings
from app.models import Coupon, Product
from app.services.checkout_service import CheckoutService
from app.services.exceptions import CheckoutError, InsufficientStockError, ProductNotFoundError
from app.services.flash_sale_service import FlashSaleService
from tests.conftest import home_delivery_request, make_coupon, make_product

SIZE_40 = {"Taille": "40"}
SIZE_42 = {"Taille": "42"}


def douala_cart(catalog, **kwargs):
    """One wax pagne from Douala and two pairs of sandals from Yaoundé, shipped to Douala."""
    return home_delivery_request(
        (catalog["wax"], 1),
        (catalog["sandals"], 2, SIZE_40),
        **kwargs,
    )


class TestQuote:
    async def test_two_vendor_cart(self, db, catalog):
        quote = await CheckoutService(db).quote(douala_cart(catalog))

        assert quote.subtotal == Decimal("13000")
        assert [s.fee for s in quote.delivery.shipments] == [Decimal("1000"), Decimal("2500")]
        assert quote.delivery_fee == Decimal("3500")
        assert quote.discount == Decimal("0")
        assert quote.total == Decimal("16500")

    async def test_variant_price_override(self, db, catalog):
        quote = await CheckoutService(db).quote(home_delivery_request((catalog["sandals"], 1, SIZE_42)))

        assert quote.lines[0].unit_price == Decimal("5500")
        assert quote.lines[0].price_source.value == "variant"

    async def test_approved_flash_sale_price(self, db, catalog, seller):
        now = datetime.now(timezone.utc)
        sales = FlashSaleService(db)
        sale = await sales.create_flash_sale("Fête des mères", now - timedelta(hours=1), now + timedelta(hours=1))
        await sales.propose_products(sale.id, seller, [{"product_id": catalog["wax"].id, "flash_price": "2000"}])
        await db.commit()

        quote = await CheckoutService(db).quote(home_delivery_request((catalog["wax"], 1)))
        assert quote.lines[0].unit_price == Decimal("3000")

        await sales.review_entries(sale.id, [catalog["wax"].id], "approved")
        await db.commit()

        quote = await CheckoutService(db).quote(home_delivery_request((catalog["wax"], 1)))
        assert quote.lines[0].unit_price == Decimal("2000")
        assert quote.lines[0].price_source.value == "flash_sale"

    async def test_rejected_promo_reported_not_raised(self, db, catalog):
        quote = await CheckoutService(db).quote(douala_cart(catalog, promo_code="INCONNU"))

        assert quote.promo is None
        assert quote.to_dict()["promo_rejection"] == "NOT_FOUND"
        assert quote.total == Decimal("16500")

    async def test_premium_loyalty_discount(self, db, catalog, customer, monkeypatch):
        monkeypatch.setattr(settings, "PREMIUM_DELIVERY_DISCOUNT_PERCENTAGE", Decimal("20"))
        premium = customer.model_copy(update={"loyalty_status": "premium"})
        quote = await CheckoutService(db).quote(douala_cart(catalog), premium)

        assert quote.delivery.total == Decimal("3500")
        assert quote.delivery_fee == Decimal("2800.00")

    async def test_standard_customer_pays_full_fee(self, db, catalog, customer, monkeypatch):
        monkeypatch.setattr(settings, "PREMIUM_DELIVERY_DISCOUNT_PERCENTAGE", Decimal("50"))
        quote = await CheckoutService(db).quote(douala_cart(catalog), customer)

        assert quote.delivery_fee == Decimal("3500")
        assert quote.total == Decimal("16500")

    async def test_store_national_rate(self, db, catalog):
        catalog["bastos"].custom_rate_national = Decimal("1800")
        await db.commit()

        quote = await CheckoutService(db).quote(douala_cart(catalog))
        assert [s.fee for s in quote.delivery.shipments] == [Decimal("1000"), Decimal("1800")]
        assert quote.delivery_fee == Decimal("2800")

    async def test_unknown_vendor_charged_inter_urban(self, db, catalog):
        orphan = make_product(name="Sac raphia", vendor_name="Atelier Disparu", price=Decimal("4000"))
        db.add(orphan)
        await db.commit()

        quote = await CheckoutService(db).quote(home_delivery_request((orphan, 1)))
        assert quote.delivery_fee == Decimal("2500")
        assert quote.delivery.degraded is True

    async def test_unknown_product(self, db, catalog):
        ghost = make_product()
        with pytest.raises(ProductNotFoundError):
            await CheckoutService(db).quote(home_delivery_request((ghost, 1)))


class TestPlaceOrder:
    async def test_order_totals_and_stock(self, db, catalog, customer):
        order = await CheckoutService(db).place_order(douala_cart(catalog), customer)
        await db.commit()

        assert order.subtotal == Decimal("13000")
        assert order.delivery_fee == Decimal("3500")
        assert order.total == Decimal("16500")
        assert order.tracking_number.startswith("KZ")
        assert {item.vendor_name for item in order.items} == {"Boutique Akwa", "Maison Bastos"}

        wax = await db.scalar(select(Product.stock).where(Product.id == catalog["wax"].id))
        sandals = await db.scalar(select(Product).where(Product.id == catalog["sandals"].id))
        assert wax == 4
        assert sandals.stock == 8
        assert sandals.variant_details[0]["stock"] == 1

    async def test_promo_code_is_counted(self, db, catalog, customer):
        coupon = make_coupon(code="AKWA10", discount_value=Decimal("10"), max_uses=5)
        db.add(coupon)
        await db.commit()

        order = await CheckoutService(db).place_order(douala_cart(catalog, promo_code="akwa10"), customer)
        await db.commit()

        assert order.discount_amount == Decimal("1300.00")
        assert order.total == Decimal("15200.00")
        assert order.applied_promo_code == "AKWA10"
        used = await db.scalar(select(Coupon.used_count).where(Coupon.id == coupon.id))
        assert used == 1

    async def test_rejected_promo_fails_checkout(self, db, catalog, customer):
        db.add(make_coupon(code="MIN50K", minimum_purchase=Decimal("50000")))
        await db.commit()

        with pytest.raises(CheckoutError) as exc:
            await CheckoutService(db).place_order(douala_cart(catalog, promo_code="MIN50K"), customer)
        assert exc.value.details["reason"] == "BELOW_MINIMUM"

    async def test_insufficient_variant_stock(self, db, catalog, customer):
        with pytest.raises(InsufficientStockError):
            await CheckoutService(db).place_order(
                home_delivery_request((catalog["sandals"], 2, SIZE_42)),
                customer,
            )

    async def test_insufficient_stock(self, db, catalog, customer):
        with pytest.raises(InsufficientStockError):
            await CheckoutService(db).place_order(home_delivery_request((catalog["wax"], 6)), customer)

    async def test_home_delivery_needs_address(self, db, catalog, customer):
        request = home_delivery_request((catalog["wax"], 1))
        request.shipping_address = None
        with pytest.raises(CheckoutError):
            await CheckoutService(db).place_order(request, customer)

    async def test_unpublished_product(self, db, catalog, customer):
        draft = make_product(name="Prototype", status="draft")
        db.add(draft)
        await db.commit()

        with pytest.raises(ProductNotFoundError):
            await CheckoutService(db).place_order(home_delivery_request((draft, 1)), customer)

    async def test_each_order_gets_its_own_tracking_number(self, db, catalog, customer):
        service = CheckoutService(db)
        first = await service.place_order(home_delivery_request((catalog["wax"], 1)), customer)
        second = await service.place_order(home_delivery_request((catalog["wax"], 1)), customer)
        await db.commit()

        assert first.tracking_number != second.tracking_number
        assert uuid.UUID(str(first.customer_id)) == customer.id
