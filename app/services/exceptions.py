"""
Domain errors raised by the order core services.

Every error carries a human readable message and a details dict. Endpoints
translate them to HTTP responses through ``status_code``.
"""
from typing import Dict


class OrderCoreError(Exception):
    """Base exception for order core errors."""
    status_code: int = 400

    def __init__(self, message: str, details: Dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class OrderNotFoundError(OrderCoreError):
    status_code = 404


class ProductNotFoundError(OrderCoreError):
    status_code = 404


class FlashSaleNotFoundError(OrderCoreError):
    status_code = 404


class CouponNotFoundError(OrderCoreError):
    status_code = 404


class InvalidTransitionError(OrderCoreError):
    """Requested status is not reachable from the current one."""
    status_code = 409


class RefundNotApplicableError(OrderCoreError):
    """Refund resolution on an order with no open refund request."""
    status_code = 409


class ConcurrentUpdateError(OrderCoreError):
    """Another actor changed the order since it was read."""
    status_code = 409


class PromoCodeExhaustedError(OrderCoreError):
    """Promo code reached its use limit while the order was being placed."""
    status_code = 409


class CouponLockedError(OrderCoreError):
    """Coupon has been used and can no longer be edited."""
    status_code = 409


class DuplicateCouponError(OrderCoreError):
    status_code = 409


class ProductInUseError(OrderCoreError):
    """Product is referenced by an open order."""
    status_code = 409


class InsufficientStockError(OrderCoreError):
    status_code = 400


class CheckoutError(OrderCoreError):
    status_code = 400


class NotAuthorizedForOrderError(OrderCoreError):
    """Actor is not a party to this order."""
    status_code = 403
