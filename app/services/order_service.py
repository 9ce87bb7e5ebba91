from typing import Dict, Iterable, List, Optional
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
import threading
import time
import uuid
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from app.config import settings
from app.models.order import Order, OrderItem, OrderStatus, DeliveryMethod
from app.models.product import Product, ProductStatus
from app.schemas.auth import Actor, UserRole
from app.services import order_state_machine as osm
from app.services.exceptions import (
    CheckoutError,
    ConcurrentUpdateError,
    InsufficientStockError,
    InvalidTransitionError,
    NotAuthorizedForOrderError,
    OrderNotFoundError,
    ProductNotFoundError,
)
from app.services.pricing_engine import PricedLine, find_variant_detail

logger = logging.getLogger(__name__)


class DeliveryFailureReason(str, Enum):
    """Why a delivery attempt failed."""
    CLIENT_ABSENT = "client-absent"
    WRONG_ADDRESS = "wrong-address"
    PARCEL_REFUSED = "parcel-refused"


# Statuses a delivery agent may set on an assigned order
AGENT_STATUSES = {
    OrderStatus.PICKED_UP.value,
    OrderStatus.AT_DEPOT.value,
    OrderStatus.OUT_FOR_DELIVERY.value,
    OrderStatus.DELIVERED.value,
    OrderStatus.DELIVERY_FAILED.value,
}

# Statuses listed as active missions for a delivery agent
MISSION_STATUSES = [
    OrderStatus.READY_FOR_PICKUP.value,
    OrderStatus.PICKED_UP.value,
    OrderStatus.AT_DEPOT.value,
    OrderStatus.OUT_FOR_DELIVERY.value,
    OrderStatus.DELIVERY_FAILED.value,
]

_tracking_lock = threading.Lock()
_last_tracking_ms = 0


def generate_tracking_number(prefix: Optional[str] = None) -> str:
    """Tracking number: prefix + millisecond timestamp, strictly increasing per process."""
    global _last_tracking_ms
    with _tracking_lock:
        now_ms = int(time.time() * 1000)
        _last_tracking_ms = max(now_ms, _last_tracking_ms + 1)
        value = _last_tracking_ms
    return f"{prefix or settings.TRACKING_NUMBER_PREFIX}{value}"


class OrderService:
    """
    Order lifecycle use cases.

    Every write locks the order row, applies one transition through the state
    machine and flushes. The order's version counter turns a write based on a
    stale read into ConcurrentUpdateError instead of a silent overwrite.
    Commit is left to the caller's unit of work.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    # ==================== READS ====================

    async def get_order(self, order_id: uuid.UUID) -> Order:
        """Snapshot read for display. Never locks."""
        result = await self.db.execute(select(Order).where(Order.id == order_id))
        order = result.scalar_one_or_none()
        if order is None:
            raise OrderNotFoundError("Order not found", {"order_id": str(order_id)})
        return order

    async def get_for_update(self, order_id: uuid.UUID) -> Order:
        """Read the current state of an order and lock its row until commit."""
        result = await self.db.execute(
            select(Order)
            .where(Order.id == order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        order = result.scalar_one_or_none()
        if order is None:
            raise OrderNotFoundError("Order not found", {"order_id": str(order_id)})
        return order

    async def get_for_update_by_tracking(self, tracking_number: str) -> Order:
        result = await self.db.execute(
            select(Order)
            .where(Order.tracking_number == tracking_number)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        order = result.scalar_one_or_none()
        if order is None:
            raise OrderNotFoundError("Order not found", {"tracking_number": tracking_number})
        return order

    async def get_tracking(self, order_id: uuid.UUID, actor: Actor) -> Order:
        """Customer-facing tracking view of an order."""
        order = await self.get_order(order_id)
        self.ensure_party(order, actor)
        return order

    async def list_customer_orders(self, customer_id: uuid.UUID) -> List[Order]:
        result = await self.db.execute(
            select(Order)
            .where(Order.customer_id == customer_id)
            .order_by(Order.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_agent_missions(self, agent_id: uuid.UUID) -> List[Order]:
        result = await self.db.execute(
            select(Order)
            .where(
                Order.agent_id == agent_id,
                Order.status.in_(MISSION_STATUSES),
            )
            .order_by(Order.created_at.desc())
        )
        return list(result.scalars().all())

    # ==================== ACCESS ====================

    def ensure_party(self, order: Order, actor: Actor) -> None:
        """
        Check that the actor may act on this order.

        Customers see their own orders, sellers the orders containing their
        products, delivery agents the orders assigned to them. Depot staff and
        administrators see everything.
        """
        allowed = True
        if actor.role == UserRole.CUSTOMER:
            allowed = order.customer_id == actor.id
        elif actor.role == UserRole.SELLER:
            allowed = actor.shop_name is not None and actor.shop_name in order.vendor_names
        elif actor.role == UserRole.DELIVERY_AGENT:
            allowed = order.agent_id == actor.id

        if not allowed:
            raise NotAuthorizedForOrderError(
                "Not authorized to act on this order",
                {"order_id": str(order.id), "role": actor.role.value},
            )

    # ==================== WRITES ====================

    async def save(self, order: Order) -> Order:
        """Flush pending changes to an order, detecting lost updates."""
        # A failed flush expires the instance, so its id is read beforehand
        order_id = order.id
        try:
            await self.db.flush()
        except StaleDataError as e:
            logger.warning(f"Concurrent update detected on order {order_id}")
            raise ConcurrentUpdateError(
                "The order was changed by someone else. Reload and try again.",
                {"order_id": str(order_id)},
            ) from e
        return order

    async def _transition(
        self,
        order: Order,
        new_status: str,
        actor: Actor,
        location: Optional[str] = None,
        details: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Order:
        osm.transition_order(
            order,
            new_status,
            actor.label,
            now=now,
            location=location,
            details=details,
            changed_by_id=actor.id,
        )
        return await self.save(order)

    async def lock_products(self, product_ids: Iterable[uuid.UUID]) -> Dict[uuid.UUID, Product]:
        """Load and lock the catalog rows whose stock an order will move."""
        ids = set(product_ids)
        result = await self.db.execute(
            select(Product)
            .where(Product.id.in_(ids))
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        products = {p.id: p for p in result.scalars().all()}
        missing = ids - set(products)
        if missing:
            raise ProductNotFoundError(
                "Product not found",
                {"product_ids": sorted(str(pid) for pid in missing)},
            )
        return products

    def _adjust_stock(self, product: Product, quantity: int, selected_variant: Optional[dict]) -> None:
        """Move stock by ``quantity`` (negative to take). Variant lines move the variant's stock."""
        if selected_variant and product.variant_details:
            details = [dict(d) for d in product.variant_details]
            for detail in details:
                if detail.get("options") == selected_variant:
                    available = detail.get("stock", 0)
                    if available + quantity < 0:
                        raise InsufficientStockError(
                            f"Not enough stock for variant of {product.name}.",
                            {"product_id": str(product.id), "available": available},
                        )
                    detail["stock"] = available + quantity
                    # Reassign so the JSON column is flagged dirty
                    product.variant_details = details
                    return
            raise InsufficientStockError(
                f"Variant not available for {product.name}.",
                {"product_id": str(product.id), "selected_variant": selected_variant},
            )

        if product.stock + quantity < 0:
            raise InsufficientStockError(
                f"Not enough stock for {product.name}. Only {product.stock} available.",
                {"product_id": str(product.id), "available": product.stock},
            )
        product.stock += quantity

    async def create_order(
        self,
        customer: Actor,
        priced_lines: List[PricedLine],
        products: Dict[uuid.UUID, Product],
        delivery_method: str,
        subtotal: Decimal,
        discount_amount: Decimal,
        delivery_fee: Decimal,
        shipping_address: Optional[dict] = None,
        pickup_point_id: Optional[str] = None,
        applied_promo_code: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Order:
        """
        Create an order in 'confirmed' and take its stock.

        The first status log and tracking entries are written here. Stock is
        taken from the locked products; a shortfall raises and leaves the
        caller's transaction to roll back.
        """
        if not priced_lines:
            raise CheckoutError("Cart is empty")

        delivery_method = DeliveryMethod(delivery_method).value
        if delivery_method == DeliveryMethod.PICKUP.value and not pickup_point_id:
            raise CheckoutError("A pickup point is required for pickup orders")
        if delivery_method == DeliveryMethod.HOME_DELIVERY.value and not shipping_address:
            raise CheckoutError("A shipping address is required for home delivery")

        now = now or datetime.now(timezone.utc)

        for pl in priced_lines:
            product = products[pl.line.product_id]
            if product.status != ProductStatus.PUBLISHED.value:
                raise ProductNotFoundError(
                    f"{product.name} is not available",
                    {"product_id": str(product.id)},
                )
            self._adjust_stock(product, -pl.line.quantity, pl.line.selected_variant)

        order = Order(
            tracking_number=generate_tracking_number(),
            customer_id=customer.id,
            customer_name=customer.name,
            subtotal=subtotal,
            discount_amount=discount_amount,
            delivery_fee=delivery_fee,
            total=subtotal - discount_amount + delivery_fee,
            applied_promo_code=applied_promo_code,
            delivery_method=delivery_method,
            shipping_address=shipping_address,
            pickup_point_id=pickup_point_id,
            created_at=now,
            updated_at=now,
            items=[
                OrderItem(
                    product_id=pl.line.product_id,
                    product_name=pl.line.name,
                    vendor_name=pl.line.vendor_name,
                    selected_variant=pl.line.selected_variant,
                    additional_shipping_fee=pl.line.additional_shipping_fee,
                    quantity=pl.line.quantity,
                    unit_price=pl.unit_price,
                    price_source=pl.price_source.value,
                    total_amount=pl.line_total,
                )
                for pl in priced_lines
            ],
            status_history=[],
            tracking_events=[],
            dispute_messages=[],
        )
        osm.record_transition(
            order,
            OrderStatus.CONFIRMED.value,
            customer.label,
            now=now,
            location=settings.SYSTEM_LOCATION,
            details="Order placed",
            changed_by_id=customer.id,
        )
        self.db.add(order)
        await self.db.flush()

        logger.info(
            f"Order {order.tracking_number} created for customer {customer.id}: "
            f"{len(order.items)} lines, total {order.total}"
        )
        return order

    async def update_status(
        self,
        order_id: uuid.UUID,
        new_status: str,
        actor: Actor,
        location: Optional[str] = None,
        details: Optional[str] = None,
    ) -> Order:
        """
        Generic status change by a seller, depot staff or an administrator.

        Refund statuses are refused here; they go through DisputeService.
        """
        order = await self.get_for_update(order_id)
        self.ensure_party(order, actor)
        if osm.is_dispute_transition(order.status, new_status):
            raise NotAuthorizedForOrderError(
                "Refunds are handled through the dispute workflow",
                {"current_status": order.status, "requested_status": osm._value(new_status)},
            )
        return await self._transition(order, new_status, actor, location=location, details=details)

    async def cancel_order(self, order_id: uuid.UUID, actor: Actor) -> Order:
        """
        Customer cancellation.

        Only possible before the parcel leaves the seller, whatever the
        strictness setting. Stock taken at checkout is given back.
        """
        order = await self.get_for_update(order_id)
        self.ensure_party(order, actor)

        if not osm.can_cancel(order.status):
            raise InvalidTransitionError(
                f"Order cannot be cancelled in its current state ({order.status})",
                {"current_status": order.status},
            )

        products = await self.lock_products(item.product_id for item in order.items)
        for item in order.items:
            self._adjust_stock(products[item.product_id], item.quantity, item.selected_variant)

        logger.info(f"Order {order.tracking_number} cancelled, stock restored for {len(order.items)} lines")
        return await self._transition(order, OrderStatus.CANCELLED.value, actor)

    async def assign_agent(self, order_id: uuid.UUID, agent_id: uuid.UUID, actor: Actor) -> Order:
        """Assign a delivery agent. The status is left unchanged."""
        order = await self.get_for_update(order_id)
        if osm.is_terminal(order.status):
            raise InvalidTransitionError(
                f"Cannot assign an agent to an order in '{order.status}' status",
                {"current_status": order.status},
            )
        order.agent_id = agent_id
        order.updated_at = datetime.now(timezone.utc)
        logger.info(f"Order {order.tracking_number} assigned to agent {agent_id} by {actor.label}")
        return await self.save(order)

    async def check_in_at_depot(
        self,
        tracking_number: str,
        actor: Actor,
        storage_location_id: str,
        notes: Optional[str] = None,
    ) -> Order:
        """Depot check-in: picked-up -> at-depot, with storage location."""
        order = await self.get_for_update_by_tracking(tracking_number)
        now = datetime.now(timezone.utc)

        order.storage_location_id = storage_location_id
        order.checked_in_at = now
        order.checked_in_by = actor.id
        if notes:
            order.discrepancy = {
                "reason": f"Note at check-in: {notes}",
                "reported_at": now.isoformat(),
                "reported_by": str(actor.id),
            }

        return await self._transition(
            order,
            OrderStatus.AT_DEPOT.value,
            actor,
            location=actor.depot_id or "Depot",
            details=f"Arrived at depot, stored at {storage_location_id}",
            now=now,
        )

    async def process_depot_departure(
        self,
        tracking_number: str,
        actor: Actor,
        recipient_name: Optional[str] = None,
        recipient_id: Optional[str] = None,
    ) -> Order:
        """
        Release a parcel from the depot.

        Pickup orders are handed to the customer on the spot (delivered, with
        the recipient's identity). Home delivery orders go out for delivery.
        """
        order = await self.get_for_update_by_tracking(tracking_number)
        if order.status != OrderStatus.AT_DEPOT.value:
            raise InvalidTransitionError(
                "Order is not at depot.",
                {"current_status": order.status},
            )

        now = datetime.now(timezone.utc)
        if order.delivery_method == DeliveryMethod.PICKUP.value:
            if not recipient_name:
                raise CheckoutError("Recipient name is required for pickup hand-over")
            order.pickup_recipient_name = recipient_name
            order.pickup_recipient_id = recipient_id
            next_status = OrderStatus.DELIVERED.value
        else:
            next_status = OrderStatus.OUT_FOR_DELIVERY.value

        order.departure_processed_by = actor.id
        order.processed_for_departure_at = now

        return await self._transition(
            order,
            next_status,
            actor,
            location=actor.depot_id or "Depot",
            details=f"Processed for departure by depot agent {actor.name}",
            now=now,
        )

    async def report_discrepancy(self, tracking_number: str, actor: Actor, reason: str) -> Order:
        """Flag a parcel problem at the depot: -> depot-issue."""
        order = await self.get_for_update_by_tracking(tracking_number)
        now = datetime.now(timezone.utc)
        order.discrepancy = {
            "reason": reason,
            "reported_at": now.isoformat(),
            "reported_by": str(actor.id),
        }
        return await self._transition(
            order,
            OrderStatus.DEPOT_ISSUE.value,
            actor,
            location=actor.depot_id or "Depot",
            details=reason,
            now=now,
        )

    async def delivery_agent_update(
        self,
        order_id: uuid.UUID,
        actor: Actor,
        new_status: str,
        details: Optional[str] = None,
        failure_reason: Optional[str] = None,
    ) -> Order:
        """
        Status update by the assigned delivery agent.

        A failed delivery must carry one of the DeliveryFailureReason values.
        """
        order = await self.get_for_update(order_id)
        if order.agent_id is None or order.agent_id != actor.id:
            raise NotAuthorizedForOrderError(
                "Not authorized to update this order",
                {"order_id": str(order_id)},
            )

        new_status = osm._value(new_status)
        if new_status not in AGENT_STATUSES:
            raise InvalidTransitionError(
                f"Delivery agents cannot set status '{new_status}'",
                {"requested_status": new_status},
            )

        now = datetime.now(timezone.utc)
        if new_status == OrderStatus.DELIVERY_FAILED.value:
            if failure_reason is None:
                raise InvalidTransitionError("A failure reason is required", {"requested_status": new_status})
            order.delivery_failure_reason = {
                "reason": DeliveryFailureReason(failure_reason).value,
                "details": details,
                "date": now.isoformat(),
            }

        return await self._transition(
            order,
            new_status,
            actor,
            details=details or f"Status updated by delivery agent {actor.name}",
            now=now,
        )
