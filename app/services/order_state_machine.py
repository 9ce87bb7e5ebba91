"""
Order State Machine

This module is the SINGLE SOURCE OF TRUTH for order status transitions.
Every status change, whoever triggers it, goes through record_transition().

Two histories are kept per order:
- status_history: one entry per transition, never deduplicated (audit log)
- tracking_events: one entry per distinct status, the first time it is
  reached (what the customer sees)
"""

import logging
from typing import Optional, List, Dict
from datetime import datetime, timezone

from app.config import settings
from app.models.order import Order, OrderStatus, OrderStatusHistory, OrderTrackingEvent
from app.services.exceptions import InvalidTransitionError

logger = logging.getLogger(__name__)


# =============================================================================
# TRANSITION RULES
# =============================================================================

# Format: target_status -> statuses it may be reached from
ALLOWED_PREDECESSORS: Dict[str, List[str]] = {
    OrderStatus.READY_FOR_PICKUP.value: [
        OrderStatus.CONFIRMED.value,            # Seller packed the parcel
    ],
    OrderStatus.PICKED_UP.value: [
        OrderStatus.READY_FOR_PICKUP.value,     # Agent collected from seller
    ],
    OrderStatus.AT_DEPOT.value: [
        OrderStatus.PICKED_UP.value,            # Depot check-in
        OrderStatus.DEPOT_ISSUE.value,          # Discrepancy cleared
    ],
    OrderStatus.OUT_FOR_DELIVERY.value: [
        OrderStatus.AT_DEPOT.value,             # Home delivery departure
        OrderStatus.DELIVERY_FAILED.value,      # Second attempt
    ],
    OrderStatus.DELIVERED.value: [
        OrderStatus.OUT_FOR_DELIVERY.value,     # Handed over at home
        OrderStatus.AT_DEPOT.value,             # Collected at pickup point
    ],
    OrderStatus.CANCELLED.value: [
        OrderStatus.CONFIRMED.value,
        OrderStatus.READY_FOR_PICKUP.value,
    ],
    OrderStatus.REFUND_REQUESTED.value: [
        OrderStatus.DELIVERED.value,
    ],
    OrderStatus.REFUNDED.value: [
        OrderStatus.REFUND_REQUESTED.value,
    ],
    OrderStatus.RETURNED.value: [
        OrderStatus.REFUND_REQUESTED.value,
        OrderStatus.DELIVERY_FAILED.value,
    ],
    OrderStatus.DEPOT_ISSUE.value: [
        OrderStatus.PICKED_UP.value,
        OrderStatus.AT_DEPOT.value,
    ],
    OrderStatus.DELIVERY_FAILED.value: [
        OrderStatus.OUT_FOR_DELIVERY.value,
    ],
}

# No lifecycle transition leaves these. Delivered orders still accept a refund request.
TERMINAL_STATUSES = {
    OrderStatus.DELIVERED.value,
    OrderStatus.CANCELLED.value,
    OrderStatus.REFUNDED.value,
    OrderStatus.RETURNED.value,
}

# Orders still in progress
OPEN_STATUSES = [s.value for s in OrderStatus if s.value not in TERMINAL_STATUSES]

# Set only by the dispute workflow
DISPUTE_STATUSES = {
    OrderStatus.REFUND_REQUESTED.value,
    OrderStatus.REFUNDED.value,
}


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def _value(status) -> str:
    return status.value if isinstance(status, OrderStatus) else status


def can_transition(current_status: str, new_status: str) -> bool:
    """Check if a transition is allowed."""
    current_status, new_status = _value(current_status), _value(new_status)
    if current_status == new_status:
        return True
    return current_status in ALLOWED_PREDECESSORS.get(new_status, [])


def get_allowed_transitions(current_status: str) -> List[str]:
    """Get list of statuses that can be transitioned to from current status."""
    current_status = _value(current_status)
    return [
        target for target, sources in ALLOWED_PREDECESSORS.items()
        if current_status in sources
    ]


def validate_transition(current_status: str, new_status: str, strict: Optional[bool] = None) -> None:
    """
    Validate a status transition. Raises InvalidTransitionError if invalid.

    Re-applying the current status is always allowed. With strict checking
    turned off (ORDER_STRICT_TRANSITIONS=false) any status may follow any other.
    """
    if strict is None:
        strict = settings.ORDER_STRICT_TRANSITIONS

    current_status, new_status = _value(current_status), _value(new_status)
    if new_status not in {s.value for s in OrderStatus}:
        raise InvalidTransitionError(
            f"Unknown order status '{new_status}'",
            {"status": new_status},
        )

    if not strict or can_transition(current_status, new_status):
        return

    allowed = get_allowed_transitions(current_status)
    if not allowed:
        message = f"Order in '{current_status}' status cannot be modified. This is a terminal state."
    else:
        message = (
            f"Cannot change order from '{current_status}' to '{new_status}'. "
            f"Allowed transitions: {', '.join(allowed)}"
        )
    raise InvalidTransitionError(
        message,
        {"current_status": current_status, "requested_status": new_status, "allowed": allowed},
    )


def is_terminal(status: str) -> bool:
    """Is this a terminal (final) state?"""
    return _value(status) in TERMINAL_STATUSES


def can_cancel(status: str) -> bool:
    """Customers may cancel until the parcel leaves the seller."""
    return _value(status) in ALLOWED_PREDECESSORS[OrderStatus.CANCELLED.value]


def can_request_refund(status: str) -> bool:
    return _value(status) == OrderStatus.DELIVERED.value


def is_dispute_transition(current_status: str, new_status: str) -> bool:
    """
    Does this change belong to the dispute workflow?

    Opening or approving a refund, and any move away from an open refund
    request, are decided there and never through a plain status update.
    """
    current_status, new_status = _value(current_status), _value(new_status)
    return (
        new_status in DISPUTE_STATUSES
        or current_status == OrderStatus.REFUND_REQUESTED.value
    )


# =============================================================================
# TRANSITION EXECUTOR
# =============================================================================

def record_transition(
    order: Order,
    new_status: str,
    changed_by: str,
    now: Optional[datetime] = None,
    location: Optional[str] = None,
    details: Optional[str] = None,
    changed_by_id=None,
) -> Order:
    """
    Apply a status change to an order and log it.

    This function:
    1. Appends an entry to status_history, always
    2. Appends a tracking event if the status has never been reached before
    3. Sets the status

    It does not validate; callers run validate_transition() first. The
    caller persists the order.

    Args:
        order: Order instance with its histories loaded
        new_status: Target status
        changed_by: Actor label, e.g. "Depot Agent: Paul"
        now: Transition time (defaults to current UTC time)
        location: Where the parcel is, for the tracking event
        details: Free-text note for the tracking event
        changed_by_id: Id of the acting user
    """
    new_status = _value(new_status)
    now = now or datetime.now(timezone.utc)

    order.status_history.append(OrderStatusHistory(
        sequence=len(order.status_history) + 1,
        status=new_status,
        changed_by=changed_by,
        changed_by_id=changed_by_id,
        created_at=now,
    ))

    tracked = {event.status for event in order.tracking_events}
    if new_status not in tracked:
        order.tracking_events.append(OrderTrackingEvent(
            sequence=len(order.tracking_events) + 1,
            status=new_status,
            location=location,
            details=details,
            created_at=now,
        ))

    previous = order.status
    order.status = new_status
    # Touching updated_at also forces a version bump for no-op re-applications
    order.updated_at = now

    logger.info(
        f"Order {order.tracking_number}: {previous} -> {new_status} by {changed_by}"
    )
    return order


def transition_order(
    order: Order,
    new_status: str,
    changed_by: str,
    now: Optional[datetime] = None,
    location: Optional[str] = None,
    details: Optional[str] = None,
    changed_by_id=None,
    strict: Optional[bool] = None,
) -> Order:
    """Validate then record a transition."""
    validate_transition(order.status, new_status, strict=strict)
    return record_transition(
        order,
        new_status,
        changed_by,
        now=now,
        location=location,
        details=details,
        changed_by_id=changed_by_id,
    )
