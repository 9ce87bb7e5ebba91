"""
Order API Endpoints

Reads, status changes, cancellation, agent assignment and the dispute
workflow. Every change goes through OrderService or DisputeService.
"""
from typing import List
import uuid
import logging

from fastapi import APIRouter

from app.api.deps import DB, CurrentActor, Customer, Admin, raise_http
from app.schemas.auth import UserRole
from app.schemas.order import (
    OrderResponse,
    OrderSummary,
    TrackingResponse,
    OrderStatusUpdate,
    AssignAgentRequest,
    RefundRequest,
    RefundResolutionRequest,
    DisputeMessageCreate,
    DisputeMessageResponse,
)
from app.services.dispute_service import DisputeService
from app.services.exceptions import OrderCoreError, NotAuthorizedForOrderError
from app.services.order_service import OrderService

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/mine", response_model=List[OrderSummary])
async def list_my_orders(db: DB, customer: Customer):
    """List the current customer's orders, newest first."""
    return await OrderService(db).list_customer_orders(customer.id)


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: uuid.UUID, db: DB, actor: CurrentActor):
    """Get order details by ID. Snapshot read, never blocks writers."""
    service = OrderService(db)
    try:
        order = await service.get_order(order_id)
        service.ensure_party(order, actor)
    except OrderCoreError as e:
        raise_http(e)
    return order


@router.get("/{order_id}/tracking", response_model=TrackingResponse)
async def get_tracking(order_id: uuid.UUID, db: DB, actor: CurrentActor):
    """Customer tracking view: one entry per status reached."""
    try:
        return await OrderService(db).get_tracking(order_id, actor)
    except OrderCoreError as e:
        raise_http(e)


@router.post("/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    order_id: uuid.UUID,
    data: OrderStatusUpdate,
    db: DB,
    actor: CurrentActor,
):
    """
    Change an order's status.

    Sellers, depot staff and administrators use this route. Customers use
    /cancel and /refund; delivery agents use the delivery routes. Refund
    statuses are only set through /refund and /resolve-refund.
    """
    allowed_roles = {UserRole.SELLER, UserRole.SUPERADMIN, UserRole.DEPOT_AGENT, UserRole.DEPOT_MANAGER}
    try:
        if actor.role not in allowed_roles:
            raise NotAuthorizedForOrderError(
                "Role cannot change order status here",
                {"role": actor.role.value},
            )
        order = await OrderService(db).update_status(
            order_id,
            data.status.value,
            actor,
            location=data.location,
            details=data.details,
        )
        await db.commit()
    except OrderCoreError as e:
        raise_http(e)
    return order


@router.post("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(order_id: uuid.UUID, db: DB, customer: Customer):
    """Cancel an order before pickup. Stock is restored."""
    try:
        order = await OrderService(db).cancel_order(order_id, customer)
        await db.commit()
    except OrderCoreError as e:
        raise_http(e)
    return order


@router.post("/{order_id}/assign-agent", response_model=OrderResponse)
async def assign_agent(order_id: uuid.UUID, data: AssignAgentRequest, db: DB, admin: Admin):
    """Assign a delivery agent to an order."""
    try:
        order = await OrderService(db).assign_agent(order_id, data.agent_id, admin)
        await db.commit()
    except OrderCoreError as e:
        raise_http(e)
    return order


# ==================== Disputes ====================

@router.post("/{order_id}/refund", response_model=OrderResponse)
async def request_refund(order_id: uuid.UUID, data: RefundRequest, db: DB, customer: Customer):
    """Open a refund request on a delivered order."""
    try:
        order = await DisputeService(db).request_refund(order_id, data.reason, data.evidence_urls, customer)
        await db.commit()
    except OrderCoreError as e:
        raise_http(e)
    return order


@router.post("/{order_id}/resolve-refund", response_model=OrderResponse)
async def resolve_refund(order_id: uuid.UUID, data: RefundResolutionRequest, db: DB, admin: Admin):
    """Approve or reject a refund request."""
    try:
        order = await DisputeService(db).resolve_refund(order_id, data.resolution.value, admin)
        await db.commit()
    except OrderCoreError as e:
        raise_http(e)
    return order


@router.post("/{order_id}/dispute", response_model=DisputeMessageResponse, status_code=201)
async def post_dispute_message(order_id: uuid.UUID, data: DisputeMessageCreate, db: DB, actor: CurrentActor):
    """Post a message to the order's dispute thread."""
    try:
        message = await DisputeService(db).post_message(order_id, data.message, actor, data.attachment_urls)
        await db.commit()
    except OrderCoreError as e:
        raise_http(e)
    return message
