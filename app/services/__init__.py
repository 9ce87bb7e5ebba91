# Services module
from app.services.order_service import OrderService
from app.services.dispute_service import DisputeService
from app.services.checkout_service import CheckoutService
from app.services.coupon_service import CouponService
from app.services.flash_sale_service import FlashSaleService
from app.services.catalog_service import CatalogService

__all__ = [
    "OrderService",
    "DisputeService",
    "CheckoutService",
    "CouponService",
    "FlashSaleService",
    "CatalogService",
]
