from pydantic import BaseModel, Field
from typing import Optional, List, Dict
from datetime import date
from decimal import Decimal
import uuid

from app.models.order import DeliveryMethod
from app.schemas.base import BaseCreateSchema, Money


# ==================== CART SCHEMAS ====================

class VariantDetail(BaseModel):
    """Stock and optional price override for one exact option combination."""
    options: Dict[str, str]
    stock: int = 0
    price: Optional[Decimal] = None
    sku: Optional[str] = None


class CartLine(BaseModel):
    """Product snapshot plus the requested quantity and variant selection."""
    product_id: uuid.UUID
    name: str
    vendor_name: str
    price: Decimal
    promotion_price: Optional[Decimal] = None
    promotion_start_date: Optional[date] = None
    promotion_end_date: Optional[date] = None
    variant_details: Optional[List[VariantDetail]] = None
    additional_shipping_fee: Optional[Decimal] = None
    quantity: int = Field(1, ge=1)
    selected_variant: Optional[Dict[str, str]] = None

    @classmethod
    def from_product(cls, product, quantity: int, selected_variant: Optional[Dict[str, str]] = None) -> "CartLine":
        """Snapshot a catalog product into a cart line."""
        return cls(
            product_id=product.id,
            name=product.name,
            vendor_name=product.vendor_name,
            price=product.price,
            promotion_price=product.promotion_price,
            promotion_start_date=product.promotion_start_date,
            promotion_end_date=product.promotion_end_date,
            variant_details=product.variant_details,
            additional_shipping_fee=product.additional_shipping_fee,
            quantity=quantity,
            selected_variant=selected_variant,
        )


class CartLineInput(BaseModel):
    """Cart line as sent by the storefront."""
    product_id: uuid.UUID
    quantity: int = Field(..., ge=1)
    selected_variant: Optional[Dict[str, str]] = None


class ShippingAddress(BaseModel):
    full_name: str
    phone: Optional[str] = None
    address: str
    city: str


class CheckoutRequest(BaseCreateSchema):
    """Checkout payload. Prices and fees are always recomputed server-side."""
    items: List[CartLineInput] = Field(..., min_length=1)
    delivery_method: DeliveryMethod = DeliveryMethod.HOME_DELIVERY
    shipping_address: Optional[ShippingAddress] = None
    pickup_point_id: Optional[str] = None
    promo_code: Optional[str] = Field(None, max_length=50)


# ==================== QUOTE SCHEMAS ====================

class PricedLineResponse(BaseModel):
    product_id: uuid.UUID
    name: str
    vendor_name: str
    quantity: int
    unit_price: Money
    price_source: str
    line_total: Money


class ShipmentFeeResponse(BaseModel):
    vendor_name: str
    zone_fee: Money
    max_declared_shipping_cost: Money
    fee: Money
    degraded: bool = False
    free_shipping: bool = False


class CheckoutQuoteResponse(BaseModel):
    lines: List[PricedLineResponse]
    subtotal: Money
    discount: Money
    promo_code: Optional[str] = None
    promo_rejection: Optional[str] = None
    shipments: List[ShipmentFeeResponse]
    delivery_fee_before_discount: Money
    delivery_fee: Money
    total: Money
