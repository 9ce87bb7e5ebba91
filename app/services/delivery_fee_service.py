"""
Delivery Fee Calculator

Multi-vendor delivery pricing. Each store in the cart ships its own parcel:

    zone fee      = intra-urban if the store's city is the destination city,
                    inter-urban otherwise (or when the store is unknown)
    shipment fee  = max(largest declared shipping cost in the group, zone fee)
    delivery fee  = sum of shipment fees

A store may set its own local and national rates, which replace the matching
zone fee, and may waive its shipment once its group subtotal reaches its
free shipping threshold. Pickup orders never pay delivery.

The fee is computed before any promo code. Only the premium loyalty discount
applies to it.
"""
import logging
from typing import Dict, List, Optional, Iterable
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP

from app.config import settings
from app.models.order import DeliveryMethod
from app.schemas.checkout import CartLine
from app.services.vendor_directory import VendorDirectory

logger = logging.getLogger(__name__)

PREMIUM_LOYALTY_STATUSES = ("premium", "premium_plus")

ZERO = Decimal("0")


@dataclass
class ShipmentFee:
    """Fee for the parcel of one store."""
    vendor_name: str
    zone_fee: Decimal
    max_declared_shipping_cost: Decimal
    fee: Decimal
    degraded: bool = False  # store missing from the directory
    free_shipping: bool = False


@dataclass
class DeliveryFeeBreakdown:
    """Per-store shipments and their total."""
    shipments: List[ShipmentFee] = field(default_factory=list)

    @property
    def total(self) -> Decimal:
        return sum((s.fee for s in self.shipments), ZERO)

    @property
    def degraded(self) -> bool:
        return any(s.degraded for s in self.shipments)


def normalize_city(city: Optional[str]) -> str:
    """Cities compare case-insensitively with surrounding and repeated whitespace ignored."""
    if not city:
        return ""
    return " ".join(city.split()).casefold()


def max_declared_shipping_cost(lines: Iterable[CartLine]) -> Decimal:
    """Largest declared shipping cost in a group. Missing or negative values are ignored."""
    declared = [
        Decimal(line.additional_shipping_fee)
        for line in lines
        if line.additional_shipping_fee is not None and line.additional_shipping_fee >= 0
    ]
    return max(declared, default=ZERO)


def group_lines_by_vendor(lines: Iterable[CartLine]) -> Dict[str, List[CartLine]]:
    """Group cart lines by store name, keeping first-seen order."""
    groups: Dict[str, List[CartLine]] = {}
    for line in lines:
        groups.setdefault(line.vendor_name, []).append(line)
    return groups


def quote_delivery_fee(
    lines: List[CartLine],
    delivery_method: str,
    destination_city: Optional[str],
    vendor_directory: VendorDirectory,
    intra_urban_fee: Decimal = None,
    inter_urban_fee: Decimal = None,
    vendor_subtotals: Optional[Dict[str, Decimal]] = None,
) -> DeliveryFeeBreakdown:
    """
    Compute the delivery fee with one shipment per store.

    Args:
        lines: Cart lines
        delivery_method: home-delivery or pickup
        destination_city: City of the shipping address
        vendor_directory: Store name to shipping profile
        intra_urban_fee: Same-city zone fee (defaults to settings)
        inter_urban_fee: Cross-city zone fee (defaults to settings)
        vendor_subtotals: Priced subtotal per store, for free shipping thresholds

    Returns:
        DeliveryFeeBreakdown
    """
    if intra_urban_fee is None:
        intra_urban_fee = settings.INTRA_URBAN_DELIVERY_FEE
    if inter_urban_fee is None:
        inter_urban_fee = settings.INTER_URBAN_DELIVERY_FEE

    breakdown = DeliveryFeeBreakdown()
    if delivery_method == DeliveryMethod.PICKUP.value or not lines:
        return breakdown

    destination = normalize_city(destination_city)

    for vendor_name, group in group_lines_by_vendor(lines).items():
        declared = max_declared_shipping_cost(group)
        vendor = vendor_directory.get(vendor_name)

        if vendor is None:
            logger.warning(
                f"Vendor '{vendor_name}' not found in directory, "
                f"charging inter-urban fee {inter_urban_fee}"
            )
            breakdown.shipments.append(ShipmentFee(
                vendor_name=vendor_name,
                zone_fee=Decimal(inter_urban_fee),
                max_declared_shipping_cost=declared,
                fee=max(declared, Decimal(inter_urban_fee)),
                degraded=True,
            ))
            continue

        if destination and normalize_city(vendor.city) == destination:
            zone_fee, custom_rate = Decimal(intra_urban_fee), vendor.custom_rate_local
        else:
            zone_fee, custom_rate = Decimal(inter_urban_fee), vendor.custom_rate_national
        if custom_rate is not None:
            zone_fee = Decimal(custom_rate)

        shipment = ShipmentFee(
            vendor_name=vendor_name,
            zone_fee=zone_fee,
            max_declared_shipping_cost=declared,
            fee=max(declared, zone_fee),
        )

        threshold = vendor.free_shipping_threshold
        if threshold is not None and vendor_subtotals is not None:
            group_subtotal = vendor_subtotals.get(vendor_name, ZERO)
            if group_subtotal >= threshold:
                shipment.fee = ZERO
                shipment.free_shipping = True

        breakdown.shipments.append(shipment)

    return breakdown


def compute_delivery_fee(
    lines: List[CartLine],
    delivery_method: str,
    destination_city: Optional[str],
    vendor_directory: VendorDirectory,
    intra_urban_fee: Decimal = None,
    inter_urban_fee: Decimal = None,
    vendor_subtotals: Optional[Dict[str, Decimal]] = None,
) -> Decimal:
    """Total delivery fee for a cart. Never raises for well-formed input."""
    return quote_delivery_fee(
        lines,
        delivery_method,
        destination_city,
        vendor_directory,
        intra_urban_fee=intra_urban_fee,
        inter_urban_fee=inter_urban_fee,
        vendor_subtotals=vendor_subtotals,
    ).total


def apply_loyalty_delivery_discount(
    fee: Decimal,
    loyalty_status: Optional[str],
    percentage: Decimal = None,
) -> Decimal:
    """
    Apply the premium loyalty discount to a computed delivery fee.

    Premium and premium_plus customers get ``percentage`` percent off. Any
    other status pays the full fee.
    """
    if percentage is None:
        percentage = settings.PREMIUM_DELIVERY_DISCOUNT_PERCENTAGE

    if loyalty_status not in PREMIUM_LOYALTY_STATUSES or not percentage or fee <= 0:
        return fee

    percentage = min(max(Decimal(percentage), ZERO), Decimal("100"))
    discount = (fee * percentage / Decimal("100")).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return fee - discount
