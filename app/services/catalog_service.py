import logging
import uuid
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.order import Order, OrderItem
from app.models.product import Product, ProductStatus
from app.services.exceptions import NotAuthorizedForOrderError, ProductInUseError, ProductNotFoundError
from app.services.order_state_machine import OPEN_STATUSES

logger = logging.getLogger(__name__)


class CatalogService:
    """Catalog changes that must respect orders in flight."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def count_open_orders(self, product_id: uuid.UUID) -> int:
        stmt = (
            select(func.count(func.distinct(Order.id)))
            .join(OrderItem, OrderItem.order_id == Order.id)
            .where(
                OrderItem.product_id == product_id,
                Order.status.in_(OPEN_STATUSES),
            )
        )
        return (await self.db.execute(stmt)).scalar() or 0

    async def archive_product(self, product_id: uuid.UUID, shop_name: Optional[str] = None) -> Product:
        """
        Archive a product. Refused while an open order still references it.

        When shop_name is given the product must belong to that store.
        """
        result = await self.db.execute(
            select(Product).where(Product.id == product_id).with_for_update()
        )
        product = result.scalar_one_or_none()
        if product is None:
            raise ProductNotFoundError("Product not found", {"product_id": str(product_id)})
        if shop_name is not None and product.vendor_name != shop_name:
            raise NotAuthorizedForOrderError(
                f"{product.name} does not belong to {shop_name}",
                {"product_id": str(product_id)},
            )

        open_orders = await self.count_open_orders(product_id)
        if open_orders:
            raise ProductInUseError(
                f"{product.name} is part of {open_orders} open orders and cannot be archived",
                {"product_id": str(product_id), "open_orders": open_orders},
            )

        product.status = ProductStatus.ARCHIVED.value
        await self.db.flush()
        logger.info(f"Product {product.name} archived")
        return product
