"""Unit price resolution for cart lines."""
import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from app.schemas.checkout import CartLine
from app.services.pricing_engine import (
    PriceSource,
    cart_subtotal,
    find_variant_detail,
    get_active_flash_price,
    is_promotion_active,
    price_cart_lines,
    resolve_price,
    resolve_price_with_source,
)
from tests.conftest import make_flash_entry, make_flash_sale

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)
TODAY = NOW.date()


def make_line(**kwargs) -> CartLine:
    defaults = dict(
        product_id=uuid.uuid4(),
        name="Pagne wax",
        vendor_name="Boutique Akwa",
        price=Decimal("10000"),
        quantity=1,
    )
    defaults.update(kwargs)
    return CartLine(**defaults)


def running_sale(line, price, status="approved"):
    return make_flash_sale(
        NOW - timedelta(hours=1),
        NOW + timedelta(hours=1),
        [make_flash_entry(line.product_id, price, status=status)],
    )


class TestPrecedence:
    def test_base_price_when_nothing_applies(self):
        line = make_line()
        assert resolve_price(line, [], NOW) == Decimal("10000")
        assert resolve_price_with_source(line, [], NOW).price_source == PriceSource.BASE

    def test_variant_override_beats_flash_sale_and_promotion(self):
        line = make_line(
            promotion_price=Decimal("8000"),
            promotion_start_date=TODAY - timedelta(days=1),
            variant_details=[{"options": {"Taille": "M"}, "stock": 2, "price": Decimal("12000")}],
            selected_variant={"Taille": "M"},
        )
        priced = resolve_price_with_source(line, [running_sale(line, "6000")], NOW)

        assert priced.unit_price == Decimal("12000")
        assert priced.price_source == PriceSource.VARIANT

    def test_flash_sale_beats_promotion(self):
        line = make_line(promotion_price=Decimal("8000"), promotion_end_date=TODAY)
        priced = resolve_price_with_source(line, [running_sale(line, "6000")], NOW)

        assert priced.unit_price == Decimal("6000")
        assert priced.price_source == PriceSource.FLASH_SALE

    def test_promotion_beats_base(self):
        line = make_line(promotion_price=Decimal("8000"), promotion_end_date=TODAY)
        priced = resolve_price_with_source(line, [], NOW)

        assert priced.unit_price == Decimal("8000")
        assert priced.price_source == PriceSource.PROMOTION

    def test_variant_without_price_falls_through(self):
        line = make_line(
            variant_details=[{"options": {"Taille": "M"}, "stock": 2}],
            selected_variant={"Taille": "M"},
        )
        assert resolve_price(line, [running_sale(line, "6000")], NOW) == Decimal("6000")

    def test_unmatched_variant_selection_falls_through(self):
        line = make_line(
            variant_details=[{"options": {"Taille": "M", "Couleur": "Rouge"}, "price": Decimal("12000")}],
            selected_variant={"Taille": "M"},
        )
        assert resolve_price(line, [], NOW) == Decimal("10000")


class TestVariantMatching:
    def test_exact_match_required(self):
        line = make_line(variant_details=[
            {"options": {"Taille": "M", "Couleur": "Rouge"}, "price": Decimal("1")},
            {"options": {"Taille": "M", "Couleur": "Bleu"}, "price": Decimal("2")},
        ])
        detail = find_variant_detail(line.variant_details, {"Couleur": "Bleu", "Taille": "M"})
        assert detail.price == Decimal("2")

    def test_no_selection(self):
        line = make_line(variant_details=[{"options": {"Taille": "M"}}])
        assert find_variant_detail(line.variant_details, None) is None
        assert find_variant_detail(None, {"Taille": "M"}) is None


class TestFlashSaleWindow:
    def test_window_is_inclusive(self):
        product_id = uuid.uuid4()
        sale = make_flash_sale(NOW, NOW + timedelta(hours=2), [make_flash_entry(product_id, "5000")])

        assert get_active_flash_price(product_id, [sale], NOW) == Decimal("5000")
        assert get_active_flash_price(product_id, [sale], NOW + timedelta(hours=2)) == Decimal("5000")

    def test_outside_window_ignored(self):
        product_id = uuid.uuid4()
        sale = make_flash_sale(NOW, NOW + timedelta(hours=2), [make_flash_entry(product_id, "5000")])

        assert get_active_flash_price(product_id, [sale], NOW - timedelta(seconds=1)) is None
        assert get_active_flash_price(product_id, [sale], NOW + timedelta(hours=2, seconds=1)) is None

    @pytest.mark.parametrize("status", ["pending", "rejected"])
    def test_unapproved_entry_never_charged(self, status):
        line = make_line()
        priced = resolve_price_with_source(line, [running_sale(line, "5000", status=status)], NOW)

        assert priced.unit_price == Decimal("10000")
        assert priced.price_source == PriceSource.BASE

    def test_other_products_unaffected(self):
        sale = make_flash_sale(NOW, NOW, [make_flash_entry(uuid.uuid4(), "5000")])
        assert get_active_flash_price(uuid.uuid4(), [sale], NOW) is None

    def test_naive_sale_dates_read_as_utc(self):
        product_id = uuid.uuid4()
        sale = make_flash_sale(
            datetime(2026, 10, 18, 11, 0),
            datetime(2026, 10, 18, 13, 0),
            [make_flash_entry(product_id, "5000")],
        )
        assert get_active_flash_price(product_id, [sale], NOW) == Decimal("5000")


class TestPromotionBounds:
    @pytest.mark.parametrize(
        "start, end, expected",
        [
            (None, None, False),
            (TODAY - timedelta(days=3), None, True),
            (TODAY, None, True),
            (TODAY + timedelta(days=1), None, False),
            (None, TODAY + timedelta(days=3), True),
            (None, TODAY, True),
            (None, TODAY - timedelta(days=1), False),
            (TODAY - timedelta(days=1), TODAY + timedelta(days=1), True),
            (TODAY + timedelta(days=1), TODAY + timedelta(days=5), False),
            (TODAY - timedelta(days=5), TODAY - timedelta(days=1), False),
        ],
    )
    def test_bound_table(self, start, end, expected):
        line = make_line(
            promotion_price=Decimal("8000"),
            promotion_start_date=start,
            promotion_end_date=end,
        )
        assert is_promotion_active(line, NOW) is expected

    def test_promotion_price_must_be_lower(self):
        line = make_line(promotion_price=Decimal("10000"), promotion_start_date=date(2026, 1, 1))
        assert is_promotion_active(line, NOW) is False

    def test_missing_promotion_price(self):
        line = make_line(promotion_start_date=date(2026, 1, 1))
        assert is_promotion_active(line, NOW) is False


class TestCartPricing:
    def test_subtotal_uses_resolved_prices(self):
        discounted = make_line(price=Decimal("3000"), promotion_price=Decimal("2500"), promotion_end_date=TODAY)
        regular = make_line(price=Decimal("5000"), quantity=2)

        priced = price_cart_lines([discounted, regular], [], NOW)

        assert [pl.line_total for pl in priced] == [Decimal("2500"), Decimal("10000")]
        assert cart_subtotal(priced) == Decimal("12500")

    def test_empty_cart(self):
        assert cart_subtotal(price_cart_lines([], [], NOW)) == Decimal("0")
