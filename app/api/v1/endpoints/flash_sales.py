"""
Flash Sale API Endpoints
"""
from typing import List
import uuid
import logging

from fastapi import APIRouter, HTTPException

from app.api.deps import DB, CurrentActor, Seller, Admin, raise_http
from app.schemas.flash_sale import (
    FlashSaleCreate,
    FlashSaleResponse,
    FlashSaleEntryResponse,
    FlashSaleProposalRequest,
    FlashSaleReviewRequest,
)
from app.services.exceptions import OrderCoreError
from app.services.flash_sale_service import FlashSaleService

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/active", response_model=List[FlashSaleResponse])
async def list_active_flash_sales(db: DB, actor: CurrentActor):
    """Flash sales running right now."""
    return await FlashSaleService(db).get_active_flash_sales()


@router.post("", response_model=FlashSaleResponse, status_code=201)
async def create_flash_sale(data: FlashSaleCreate, db: DB, admin: Admin):
    try:
        sale = await FlashSaleService(db).create_flash_sale(data.name, data.start_date, data.end_date)
        await db.commit()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return sale


@router.post("/{flash_sale_id}/propose", response_model=List[FlashSaleEntryResponse])
async def propose_products(
    flash_sale_id: uuid.UUID,
    data: FlashSaleProposalRequest,
    db: DB,
    seller: Seller,
):
    """Propose products of the seller's store for a flash sale."""
    try:
        entries = await FlashSaleService(db).propose_products(
            flash_sale_id,
            seller,
            [p.model_dump() for p in data.products],
        )
        await db.commit()
    except OrderCoreError as e:
        raise_http(e)
    return entries


@router.put("/{flash_sale_id}/entries", response_model=List[FlashSaleEntryResponse])
async def review_entries(
    flash_sale_id: uuid.UUID,
    data: FlashSaleReviewRequest,
    db: DB,
    admin: Admin,
):
    """Approve or reject proposals in batch."""
    try:
        entries = await FlashSaleService(db).review_entries(
            flash_sale_id,
            data.product_ids,
            data.status.value,
        )
        await db.commit()
    except OrderCoreError as e:
        raise_http(e)
    return entries
