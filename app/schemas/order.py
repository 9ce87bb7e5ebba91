from pydantic import BaseModel, Field, computed_field
from typing import Optional, List
from datetime import datetime
import uuid

from app.models.order import OrderStatus
from app.schemas.base import BaseResponseSchema, BaseCreateSchema, Money
from app.services.dispute_service import RefundResolution
from app.services.order_service import DeliveryFailureReason


# ==================== ORDER ITEM SCHEMAS ====================

class OrderItemResponse(BaseResponseSchema):
    """Order item response schema."""
    id: uuid.UUID
    product_id: uuid.UUID
    product_name: str
    vendor_name: str
    selected_variant: Optional[dict] = None
    quantity: int
    unit_price: Money
    price_source: str
    total_amount: Money


# ==================== HISTORY SCHEMAS ====================

class StatusHistoryResponse(BaseResponseSchema):
    """Audit log entry, one per transition."""
    sequence: int
    status: str  # VARCHAR in DB
    changed_by: str
    created_at: datetime


class TrackingEventResponse(BaseResponseSchema):
    """Customer-facing tracking entry."""
    status: str
    location: Optional[str] = None
    details: Optional[str] = None
    created_at: datetime


class DisputeMessageResponse(BaseResponseSchema):
    id: uuid.UUID
    author: str
    message: str
    attachment_urls: Optional[List[str]] = None
    created_at: datetime


# ==================== ORDER SCHEMAS ====================

class OrderResponse(BaseResponseSchema):
    """Order response schema."""
    id: uuid.UUID
    tracking_number: str
    customer_id: uuid.UUID
    customer_name: Optional[str] = None
    status: str
    subtotal: Money
    discount_amount: Money
    delivery_fee: Money
    total: Money
    applied_promo_code: Optional[str] = None
    delivery_method: str
    shipping_address: Optional[dict] = None
    pickup_point_id: Optional[str] = None
    agent_id: Optional[uuid.UUID] = None
    storage_location_id: Optional[str] = None
    checked_in_at: Optional[datetime] = None
    discrepancy: Optional[dict] = None
    pickup_recipient_name: Optional[str] = None
    delivery_failure_reason: Optional[dict] = None
    refund_reason: Optional[str] = None
    refund_evidence_urls: Optional[List[str]] = None
    version: int
    items: List[OrderItemResponse] = []
    status_history: List[StatusHistoryResponse] = []
    tracking_events: List[TrackingEventResponse] = []
    dispute_messages: List[DisputeMessageResponse] = []
    created_at: datetime
    updated_at: datetime

    @computed_field
    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)


class OrderSummary(BaseResponseSchema):
    """Order row for lists."""
    id: uuid.UUID
    tracking_number: str
    status: str
    total: Money
    delivery_method: str
    created_at: datetime


class TrackingResponse(BaseResponseSchema):
    """What the customer sees on the tracking page."""
    tracking_number: str
    status: str
    delivery_method: str
    tracking_events: List[TrackingEventResponse] = []


# ==================== ACTION SCHEMAS ====================

class OrderStatusUpdate(BaseModel):
    """Status change request."""
    status: OrderStatus
    location: Optional[str] = Field(None, max_length=200)
    details: Optional[str] = None


class AssignAgentRequest(BaseModel):
    agent_id: uuid.UUID


class RefundRequest(BaseCreateSchema):
    reason: str = Field(..., min_length=1)
    evidence_urls: List[str] = []


class RefundResolutionRequest(BaseModel):
    resolution: RefundResolution


class DisputeMessageCreate(BaseCreateSchema):
    message: str = Field(..., min_length=1)
    attachment_urls: List[str] = []


class DepotCheckInRequest(BaseModel):
    tracking_number: str
    storage_location_id: str = Field(..., min_length=1, max_length=100)
    notes: Optional[str] = None


class RecipientInfo(BaseModel):
    name: str = Field(..., min_length=1)
    id_number: Optional[str] = None


class DepotDepartureRequest(BaseModel):
    tracking_number: str
    recipient_info: Optional[RecipientInfo] = None  # Pickup hand-over only


class DiscrepancyReport(BaseModel):
    tracking_number: str
    reason: str = Field(..., min_length=1)


class DeliveryStatusUpdate(BaseModel):
    """Status update from a delivery agent."""
    status: OrderStatus
    details: Optional[str] = None
    reason: Optional[DeliveryFailureReason] = None  # Required for delivery-failed
