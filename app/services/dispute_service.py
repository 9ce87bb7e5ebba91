"""
Dispute and refund workflow.

A customer opens a refund request on a delivered order; an administrator
approves or rejects it. Every step leaves a message in the order's dispute
thread. The thread is append-only: messages are never edited or removed.
"""
import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.order import Order, OrderStatus, OrderDisputeMessage, DisputeAuthor
from app.schemas.auth import Actor, UserRole
from app.services import order_state_machine as osm
from app.services.exceptions import (
    InvalidTransitionError,
    NotAuthorizedForOrderError,
    RefundNotApplicableError,
)
from app.services.order_service import OrderService

logger = logging.getLogger(__name__)


class RefundResolution(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"


AUTHOR_BY_ROLE = {
    UserRole.CUSTOMER: DisputeAuthor.CUSTOMER,
    UserRole.SELLER: DisputeAuthor.SELLER,
    UserRole.SUPERADMIN: DisputeAuthor.ADMIN,
}


def post_dispute_message(
    order: Order,
    author: str,
    message: str,
    attachment_urls: Optional[List[str]] = None,
    now: Optional[datetime] = None,
) -> OrderDisputeMessage:
    """Append a message to the dispute thread. No cap, no moderation."""
    entry = OrderDisputeMessage(
        sequence=len(order.dispute_messages) + 1,
        author=DisputeAuthor(author).value,
        message=message,
        attachment_urls=list(attachment_urls) if attachment_urls else None,
        created_at=now or datetime.now(timezone.utc),
    )
    order.dispute_messages.append(entry)
    return entry


def request_refund(
    order: Order,
    reason: str,
    evidence_urls: Optional[List[str]],
    actor: Actor,
    now: Optional[datetime] = None,
) -> Order:
    """Open a refund request: records the reason and moves the order to refund-requested."""
    now = now or datetime.now(timezone.utc)
    if settings.ORDER_STRICT_TRANSITIONS and not osm.can_request_refund(order.status):
        raise InvalidTransitionError(
            "Only delivered orders can be refunded",
            {"current_status": order.status},
        )

    order.refund_reason = reason
    order.refund_evidence_urls = list(evidence_urls) if evidence_urls else []
    post_dispute_message(
        order,
        DisputeAuthor.CUSTOMER.value,
        f"Refund request: {reason}",
        attachment_urls=evidence_urls,
        now=now,
    )
    return osm.record_transition(
        order,
        OrderStatus.REFUND_REQUESTED.value,
        actor.label,
        now=now,
        details=reason,
        changed_by_id=actor.id,
    )


def resolve_refund(
    order: Order,
    resolution: str,
    actor: Actor,
    now: Optional[datetime] = None,
) -> Order:
    """
    Close a refund request.

    Approval moves the order to refunded. Rejection re-applies the current
    status, which logs the decision without changing the status.
    """
    now = now or datetime.now(timezone.utc)
    resolution = RefundResolution(resolution)

    if settings.ORDER_STRICT_TRANSITIONS and order.status != OrderStatus.REFUND_REQUESTED.value:
        raise RefundNotApplicableError(
            "Order has no open refund request",
            {"current_status": order.status},
        )

    if resolution == RefundResolution.APPROVED:
        target = OrderStatus.REFUNDED.value
    else:
        target = order.status

    osm.transition_order(order, target, actor.label, now=now, changed_by_id=actor.id)
    post_dispute_message(
        order,
        DisputeAuthor.ADMIN.value,
        f"Refund request {resolution.value}.",
        now=now,
    )
    logger.info(f"Refund for order {order.tracking_number} {resolution.value} by {actor.label}")
    return order


class DisputeService:
    """Runs the dispute workflow on a locked order."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.orders = OrderService(db)

    async def request_refund(
        self,
        order_id: uuid.UUID,
        reason: str,
        evidence_urls: Optional[List[str]],
        actor: Actor,
    ) -> Order:
        order = await self.orders.get_for_update(order_id)
        self.orders.ensure_party(order, actor)
        request_refund(order, reason, evidence_urls, actor)
        logger.info(f"Refund requested on order {order.tracking_number}")
        return await self.orders.save(order)

    async def resolve_refund(self, order_id: uuid.UUID, resolution: str, actor: Actor) -> Order:
        order = await self.orders.get_for_update(order_id)
        resolve_refund(order, resolution, actor)
        return await self.orders.save(order)

    async def post_message(
        self,
        order_id: uuid.UUID,
        message: str,
        actor: Actor,
        attachment_urls: Optional[List[str]] = None,
    ) -> OrderDisputeMessage:
        """Post to the dispute thread as the actor's role."""
        order = await self.orders.get_for_update(order_id)
        self.orders.ensure_party(order, actor)

        author = AUTHOR_BY_ROLE.get(actor.role)
        if author is None:
            raise NotAuthorizedForOrderError(
                "Only customers, sellers and administrators take part in disputes",
                {"role": actor.role.value},
            )

        entry = post_dispute_message(order, author.value, message, attachment_urls)
        # Bumps the order version
        order.updated_at = entry.created_at
        await self.orders.save(order)
        return entry
