"""
Pricing Engine for cart lines.

Resolves the single unit price charged for a cart line. Precedence is fixed:
1. Variant override (selected variant exactly matches a recorded combination)
2. Approved flash-sale entry inside an active sale window
3. Active promotion
4. Base price

Every function here is pure and never raises for well-formed input. A variant
selection that matches no recorded combination falls through to the next rule.
"""
from typing import List, Optional, Dict, Iterable
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from dataclasses import dataclass
import uuid

from app.models.flash_sale import FlashSaleEntryStatus
from app.schemas.checkout import CartLine, VariantDetail


class PriceSource(str, Enum):
    """Which rule produced the charged price."""
    VARIANT = "variant"
    FLASH_SALE = "flash_sale"
    PROMOTION = "promotion"
    BASE = "base"


@dataclass
class PricedLine:
    """A cart line with its resolved unit price."""
    line: CartLine
    unit_price: Decimal
    price_source: PriceSource

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.line.quantity

    def to_dict(self) -> dict:
        return {
            "product_id": self.line.product_id,
            "name": self.line.name,
            "vendor_name": self.line.vendor_name,
            "quantity": self.line.quantity,
            "unit_price": self.unit_price,
            "price_source": self.price_source.value,
            "line_total": self.line_total,
        }


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (SQLite round-trips) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def find_variant_detail(
    variant_details: Optional[List[VariantDetail]],
    selected_variant: Optional[Dict[str, str]],
) -> Optional[VariantDetail]:
    """Find the detail whose options match the selection key-for-key, value-for-value."""
    if not selected_variant or not variant_details:
        return None
    for detail in variant_details:
        if detail.options == selected_variant:
            return detail
    return None


def get_active_flash_price(
    product_id: uuid.UUID,
    flash_sales: Iterable,
    now: datetime,
) -> Optional[Decimal]:
    """
    Get the flash price of an approved entry in a sale whose window contains now.

    The window is inclusive on both ends. Pending and rejected entries are never
    honored. Sales are scanned in the order given; the first match wins.
    """
    now = as_utc(now)
    for sale in flash_sales:
        if not (as_utc(sale.start_date) <= now <= as_utc(sale.end_date)):
            continue
        for entry in sale.entries:
            if entry.product_id == product_id and entry.status == FlashSaleEntryStatus.APPROVED.value:
                return Decimal(entry.flash_price)
    return None


def is_promotion_active(line: CartLine, now: datetime) -> bool:
    """
    Check if the standing promotion applies today.

    Requires a promotion price strictly below the base price and at least one
    date bound. A missing bound leaves that side open. Bounds are whole days:
    the start day from midnight, the end day until 23:59:59.
    """
    if line.promotion_price is None or line.promotion_price >= line.price:
        return False

    start = line.promotion_start_date
    end = line.promotion_end_date
    if start is None and end is None:
        return False

    today = as_utc(now).date()
    if start is not None and today < start:
        return False
    if end is not None and today > end:
        return False
    return True


def resolve_price_with_source(
    line: CartLine,
    active_flash_sales: Iterable,
    now: datetime,
) -> PricedLine:
    """Resolve the unit price for a cart line and record which rule won."""
    detail = find_variant_detail(line.variant_details, line.selected_variant)
    if detail is not None and detail.price is not None:
        return PricedLine(line, Decimal(detail.price), PriceSource.VARIANT)

    flash_price = get_active_flash_price(line.product_id, active_flash_sales, now)
    if flash_price is not None:
        return PricedLine(line, flash_price, PriceSource.FLASH_SALE)

    if is_promotion_active(line, now):
        return PricedLine(line, Decimal(line.promotion_price), PriceSource.PROMOTION)

    return PricedLine(line, Decimal(line.price), PriceSource.BASE)


def resolve_price(line: CartLine, active_flash_sales: Iterable, now: datetime) -> Decimal:
    """Return the single unit price that must be charged for a cart line."""
    return resolve_price_with_source(line, active_flash_sales, now).unit_price


def price_cart_lines(
    lines: List[CartLine],
    active_flash_sales: Iterable,
    now: datetime,
) -> List[PricedLine]:
    """Price every line of a cart against the same flash-sale snapshot."""
    flash_sales = list(active_flash_sales)
    return [resolve_price_with_source(line, flash_sales, now) for line in lines]


def cart_subtotal(priced_lines: List[PricedLine]) -> Decimal:
    """Sum of unit price times quantity over all lines."""
    return sum((pl.line_total for pl in priced_lines), Decimal("0"))
