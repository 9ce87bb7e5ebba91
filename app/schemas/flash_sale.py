from pydantic import BaseModel, Field
from typing import List
from datetime import datetime
from decimal import Decimal
import uuid

from app.models.flash_sale import FlashSaleEntryStatus
from app.schemas.base import BaseResponseSchema, BaseCreateSchema, Money


class FlashSaleCreate(BaseCreateSchema):
    name: str = Field(..., min_length=1, max_length=200)
    start_date: datetime
    end_date: datetime


class FlashSaleEntryResponse(BaseResponseSchema):
    id: uuid.UUID
    product_id: uuid.UUID
    seller_shop_name: str
    flash_price: Money
    status: str


class FlashSaleResponse(BaseResponseSchema):
    id: uuid.UUID
    name: str
    start_date: datetime
    end_date: datetime
    entries: List[FlashSaleEntryResponse] = []


class FlashSaleProposal(BaseModel):
    product_id: uuid.UUID
    flash_price: Decimal = Field(..., gt=0)


class FlashSaleProposalRequest(BaseModel):
    """Seller proposes products for a sale."""
    products: List[FlashSaleProposal] = Field(..., min_length=1)


class FlashSaleReviewRequest(BaseModel):
    """Admin approves or rejects proposals in batch."""
    product_ids: List[uuid.UUID] = Field(..., min_length=1)
    status: FlashSaleEntryStatus
