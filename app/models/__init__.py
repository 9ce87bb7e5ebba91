# Models module - importing registers every table on Base.metadata
from app.models.product import Product, ProductStatus
from app.models.vendor import Vendor
from app.models.flash_sale import FlashSale, FlashSaleEntry, FlashSaleEntryStatus
from app.models.coupon import Coupon, DiscountType
from app.models.order import (
    Order, OrderItem, OrderStatusHistory, OrderTrackingEvent, OrderDisputeMessage,
    OrderStatus, DeliveryMethod, DisputeAuthor,
)

__all__ = [
    "Product",
    "ProductStatus",
    "Vendor",
    "FlashSale",
    "FlashSaleEntry",
    "FlashSaleEntryStatus",
    "Coupon",
    "DiscountType",
    "Order",
    "OrderItem",
    "OrderStatusHistory",
    "OrderTrackingEvent",
    "OrderDisputeMessage",
    "OrderStatus",
    "DeliveryMethod",
    "DisputeAuthor",
]
