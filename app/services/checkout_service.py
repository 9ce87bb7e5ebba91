"""
Checkout Service

Quotes and places orders. Everything the customer is charged is recomputed
here from the catalog; client-side prices are never trusted.

    subtotal     = sum of resolved unit price x quantity
    discount     = promo code discount on the subtotal
    delivery fee = multi-vendor fee, less the premium loyalty discount
    total        = subtotal - discount + delivery fee

Placing an order is one unit of work: stock decrement, order insert and
promo use count commit or roll back together.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.order import DeliveryMethod, Order
from app.schemas.auth import Actor
from app.schemas.checkout import CartLine, CheckoutRequest
from app.services.coupon_service import (
    CouponService,
    PromoCodeApplied,
    PromoCodeRejected,
    apply_promo_code,
)
from app.services.delivery_fee_service import (
    DeliveryFeeBreakdown,
    apply_loyalty_delivery_discount,
    quote_delivery_fee,
)
from app.services.exceptions import CheckoutError
from app.services.flash_sale_service import FlashSaleService
from app.services.order_service import OrderService
from app.services.pricing_engine import PricedLine, cart_subtotal, price_cart_lines
from app.services.vendor_directory import load_vendor_directory

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass
class CheckoutQuote:
    """Server-side pricing of a cart."""
    lines: List[PricedLine]
    subtotal: Decimal
    delivery: DeliveryFeeBreakdown
    delivery_fee: Decimal
    discount: Decimal = ZERO
    promo: Optional[PromoCodeApplied] = None
    promo_rejection: Optional[PromoCodeRejected] = None
    products: Dict = field(default_factory=dict)

    @property
    def total(self) -> Decimal:
        return self.subtotal - self.discount + self.delivery_fee

    def to_dict(self) -> dict:
        return {
            "lines": [pl.to_dict() for pl in self.lines],
            "subtotal": self.subtotal,
            "discount": self.discount,
            "promo_code": self.promo.code if self.promo else None,
            "promo_rejection": self.promo_rejection.reason.value if self.promo_rejection else None,
            "shipments": [vars(s) for s in self.delivery.shipments],
            "delivery_fee_before_discount": self.delivery.total,
            "delivery_fee": self.delivery_fee,
            "total": self.total,
        }


class CheckoutService:
    """Service for cart pricing and order placement."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.orders = OrderService(db)
        self.coupons = CouponService(db)
        self.flash_sales = FlashSaleService(db)

    async def quote(
        self,
        request: CheckoutRequest,
        customer: Optional[Actor] = None,
        now: Optional[datetime] = None,
    ) -> CheckoutQuote:
        """
        Price a cart.

        Products are read with a row lock so that a quote used for placing an
        order sees the stock it is about to take. The loyalty status comes
        from the customer's verified identity, never from the request body.
        """
        now = now or datetime.now(timezone.utc)

        products = await self.orders.lock_products(item.product_id for item in request.items)
        lines = [
            CartLine.from_product(
                products[item.product_id],
                quantity=item.quantity,
                selected_variant=item.selected_variant,
            )
            for item in request.items
        ]

        active_sales = await self.flash_sales.get_active_flash_sales(now)
        priced = price_cart_lines(lines, active_sales, now)
        subtotal = cart_subtotal(priced)

        vendor_subtotals: Dict[str, Decimal] = {}
        for pl in priced:
            vendor_subtotals[pl.line.vendor_name] = vendor_subtotals.get(pl.line.vendor_name, ZERO) + pl.line_total

        destination_city = request.shipping_address.city if request.shipping_address else None
        directory = await load_vendor_directory(self.db, vendor_subtotals.keys())
        delivery = quote_delivery_fee(
            lines,
            request.delivery_method.value,
            destination_city,
            directory,
            vendor_subtotals=vendor_subtotals,
        )
        loyalty_status = customer.loyalty_status if customer else None
        delivery_fee = apply_loyalty_delivery_discount(delivery.total, loyalty_status)

        quote = CheckoutQuote(
            lines=priced,
            subtotal=subtotal,
            delivery=delivery,
            delivery_fee=delivery_fee,
            products=products,
        )

        if request.promo_code:
            registry = await self.coupons.load_registry(request.promo_code)
            result = apply_promo_code(request.promo_code, subtotal, registry, now)
            if isinstance(result, PromoCodeApplied):
                quote.promo = result
                quote.discount = result.discount
            else:
                quote.promo_rejection = result

        return quote

    async def place_order(self, request: CheckoutRequest, customer: Actor) -> Order:
        """
        Place an order from a cart.

        A rejected promo code fails the checkout instead of silently charging
        the full price.
        """
        if request.delivery_method == DeliveryMethod.HOME_DELIVERY and request.shipping_address is None:
            raise CheckoutError("A shipping address is required for home delivery")

        quote = await self.quote(request, customer)
        if quote.promo_rejection is not None:
            raise CheckoutError(
                quote.promo_rejection.message,
                {"promo_code": request.promo_code, "reason": quote.promo_rejection.reason.value},
            )

        order = await self.orders.create_order(
            customer,
            quote.lines,
            quote.products,
            delivery_method=request.delivery_method.value,
            subtotal=quote.subtotal,
            discount_amount=quote.discount,
            delivery_fee=quote.delivery_fee,
            shipping_address=request.shipping_address.model_dump() if request.shipping_address else None,
            pickup_point_id=request.pickup_point_id,
            applied_promo_code=quote.promo.code if quote.promo else None,
        )

        if quote.promo is not None:
            await self.coupons.record_use(quote.promo.coupon_id)

        logger.info(
            f"Checkout complete: order {order.tracking_number}, subtotal {quote.subtotal}, "
            f"discount {quote.discount}, delivery {quote.delivery_fee}, total {order.total}"
        )
        return order
