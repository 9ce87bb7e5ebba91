"""
Flash sale registry.

Administrators open sale windows, sellers propose their products with a flash
price, and each proposal is then approved or rejected. Pricing only ever sees
approved entries of sales whose window contains the pricing instant.
"""
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.flash_sale import FlashSale, FlashSaleEntry, FlashSaleEntryStatus
from app.models.product import Product
from app.schemas.auth import Actor
from app.services.exceptions import (
    FlashSaleNotFoundError,
    NotAuthorizedForOrderError,
    ProductNotFoundError,
)

logger = logging.getLogger(__name__)


class FlashSaleService:
    """Service for flash sale windows and seller proposals."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_active_flash_sales(self, now: Optional[datetime] = None) -> List[FlashSale]:
        """Sales whose window contains ``now`` (inclusive), entries loaded."""
        now = now or datetime.now(timezone.utc)
        result = await self.db.execute(
            select(FlashSale)
            .where(FlashSale.start_date <= now, FlashSale.end_date >= now)
            .order_by(FlashSale.start_date)
        )
        return list(result.scalars().all())

    async def get_flash_sale(self, flash_sale_id: uuid.UUID) -> FlashSale:
        result = await self.db.execute(select(FlashSale).where(FlashSale.id == flash_sale_id))
        sale = result.scalar_one_or_none()
        if sale is None:
            raise FlashSaleNotFoundError("Flash sale not found", {"flash_sale_id": str(flash_sale_id)})
        return sale

    async def create_flash_sale(self, name: str, start_date: datetime, end_date: datetime) -> FlashSale:
        if end_date < start_date:
            raise ValueError("Flash sale must end after it starts")
        sale = FlashSale(name=name, start_date=start_date, end_date=end_date, entries=[])
        self.db.add(sale)
        await self.db.flush()
        logger.info(f"Flash sale '{name}' created: {start_date} -> {end_date}")
        return sale

    async def propose_products(
        self,
        flash_sale_id: uuid.UUID,
        seller: Actor,
        proposals: List[dict],
    ) -> List[FlashSaleEntry]:
        """
        Propose products for a sale. Each proposal is {product_id, flash_price}.

        A seller may only propose products of their own store. Proposing a
        product again replaces its flash price and resets it to pending.
        """
        sale = await self.get_flash_sale(flash_sale_id)
        existing = {entry.product_id: entry for entry in sale.entries}

        product_ids = [p["product_id"] for p in proposals]
        result = await self.db.execute(select(Product).where(Product.id.in_(product_ids)))
        products = {p.id: p for p in result.scalars().all()}

        entries = []
        for proposal in proposals:
            product = products.get(proposal["product_id"])
            if product is None:
                raise ProductNotFoundError("Product not found", {"product_id": str(proposal["product_id"])})
            if product.vendor_name != seller.shop_name:
                raise NotAuthorizedForOrderError(
                    f"{product.name} does not belong to {seller.shop_name}",
                    {"product_id": str(product.id)},
                )

            flash_price = Decimal(proposal["flash_price"])
            entry = existing.get(product.id)
            if entry is None:
                entry = FlashSaleEntry(
                    product_id=product.id,
                    seller_shop_name=seller.shop_name,
                    flash_price=flash_price,
                    status=FlashSaleEntryStatus.PENDING.value,
                )
                sale.entries.append(entry)
                existing[product.id] = entry
            else:
                entry.flash_price = flash_price
                entry.status = FlashSaleEntryStatus.PENDING.value
            entries.append(entry)

        await self.db.flush()
        logger.info(f"{seller.shop_name} proposed {len(entries)} products for flash sale {sale.name}")
        return entries

    async def review_entries(
        self,
        flash_sale_id: uuid.UUID,
        product_ids: List[uuid.UUID],
        status: str,
    ) -> List[FlashSaleEntry]:
        """Approve or reject proposals in batch."""
        status = FlashSaleEntryStatus(status).value
        sale = await self.get_flash_sale(flash_sale_id)

        wanted = set(product_ids)
        updated = []
        for entry in sale.entries:
            if entry.product_id in wanted:
                entry.status = status
                updated.append(entry)

        await self.db.flush()
        logger.info(f"Flash sale {sale.name}: {len(updated)} entries {status}")
        return updated
