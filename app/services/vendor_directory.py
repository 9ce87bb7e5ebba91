"""
Vendor directory lookups.

Maps the store name carried by cart lines to the shipping data the delivery
fee calculation needs.
"""
from typing import Dict, Iterable, Optional
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.vendor import Vendor


@dataclass
class VendorInfo:
    """Shipping profile of one store."""
    name: str
    city: str
    free_shipping_threshold: Optional[Decimal] = None
    custom_rate_local: Optional[Decimal] = None
    custom_rate_national: Optional[Decimal] = None


class VendorDirectory:
    """In-memory snapshot of vendor shipping profiles keyed by store name."""

    def __init__(self, vendors: Iterable[VendorInfo] = ()):
        self._vendors: Dict[str, VendorInfo] = {v.name: v for v in vendors}

    def get(self, vendor_name: str) -> Optional[VendorInfo]:
        return self._vendors.get(vendor_name)

    def __contains__(self, vendor_name: str) -> bool:
        return vendor_name in self._vendors

    def __len__(self) -> int:
        return len(self._vendors)


async def load_vendor_directory(db: AsyncSession, vendor_names: Iterable[str]) -> VendorDirectory:
    """Load the profiles of the given active stores. Unknown names are simply absent."""
    names = set(vendor_names)
    if not names:
        return VendorDirectory()

    result = await db.execute(
        select(Vendor).where(
            Vendor.name.in_(names),
            Vendor.is_active == True,
        )
    )
    return VendorDirectory(
        VendorInfo(
            name=vendor.name,
            city=vendor.city,
            free_shipping_threshold=vendor.free_shipping_threshold,
            custom_rate_local=vendor.custom_rate_local,
            custom_rate_national=vendor.custom_rate_national,
        )
        for vendor in result.scalars().all()
    )
