"""
Product API Endpoints

Only the catalog operation that interacts with orders lives here.
"""
import uuid
import logging

from fastapi import APIRouter, Depends
from typing import Annotated

from app.api.deps import DB, raise_http, require_roles
from app.models.product import ProductStatus
from app.schemas.auth import Actor, UserRole
from app.services.catalog_service import CatalogService
from app.services.exceptions import OrderCoreError

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/{product_id}/archive")
async def archive_product(
    product_id: uuid.UUID,
    db: DB,
    actor: Annotated[Actor, Depends(require_roles(UserRole.SELLER, UserRole.SUPERADMIN))],
):
    """Archive a product. Refused while open orders reference it."""
    service = CatalogService(db)
    try:
        product = await service.archive_product(
            product_id,
            shop_name=None if actor.is_admin else (actor.shop_name or ""),
        )
        await db.commit()
    except OrderCoreError as e:
        raise_http(e)
    return {"id": str(product.id), "status": ProductStatus(product.status).value}
