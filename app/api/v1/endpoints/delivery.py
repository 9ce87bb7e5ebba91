"""
Delivery Agent API Endpoints
"""
from typing import List
import uuid
import logging

from fastapi import APIRouter

from app.api.deps import DB, DeliveryAgent, raise_http
from app.schemas.order import OrderResponse, OrderSummary, DeliveryStatusUpdate
from app.services.exceptions import OrderCoreError
from app.services.order_service import OrderService

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/missions", response_model=List[OrderSummary])
async def get_my_missions(db: DB, agent: DeliveryAgent):
    """Orders assigned to the current agent that are still on the road."""
    return await OrderService(db).list_agent_missions(agent.id)


@router.put("/orders/{order_id}/status", response_model=OrderResponse)
async def update_delivery_status(
    order_id: uuid.UUID,
    data: DeliveryStatusUpdate,
    db: DB,
    agent: DeliveryAgent,
):
    """Update an assigned order. delivery-failed requires a reason."""
    try:
        order = await OrderService(db).delivery_agent_update(
            order_id,
            agent,
            data.status.value,
            details=data.details,
            failure_reason=data.reason.value if data.reason else None,
        )
        await db.commit()
    except OrderCoreError as e:
        raise_http(e)
    return order
