import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List
from decimal import Decimal

from sqlalchemy import String, DateTime, ForeignKey, Integer, Text, Numeric, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.db_types import JSONType, UUIDType


class OrderStatus(str, Enum):
    """Order status enumeration - marketplace delivery flow."""
    # Initial state
    CONFIRMED = "confirmed"                 # Order placed, awaiting seller preparation

    # Fulfilment states
    READY_FOR_PICKUP = "ready-for-pickup"   # Seller packed the parcel
    PICKED_UP = "picked-up"                 # Delivery agent collected it from the seller
    AT_DEPOT = "at-depot"                   # Checked in at a depot
    OUT_FOR_DELIVERY = "out-for-delivery"   # Left the depot for the customer

    # Final states
    DELIVERED = "delivered"                 # Handed to the customer
    CANCELLED = "cancelled"                 # Cancelled before pickup
    REFUNDED = "refunded"                   # Refund approved
    RETURNED = "returned"                   # Parcel returned to the seller

    # Dispute
    REFUND_REQUESTED = "refund-requested"   # Customer opened a refund request

    # Exception states
    DEPOT_ISSUE = "depot-issue"             # Discrepancy reported at the depot
    DELIVERY_FAILED = "delivery-failed"     # Delivery attempt failed


class DeliveryMethod(str, Enum):
    """How the parcel reaches the customer."""
    HOME_DELIVERY = "home-delivery"
    PICKUP = "pickup"


class DisputeAuthor(str, Enum):
    """Author role of a dispute message."""
    CUSTOMER = "customer"
    SELLER = "seller"
    ADMIN = "admin"


class Order(Base):
    """
    Marketplace order.
    Tracks orders from checkout to delivery, refund or return.
    """
    __tablename__ = "orders"
    __table_args__ = (
        Index('ix_order_status_created', 'status', 'created_at'),
        Index('ix_order_customer_created', 'customer_id', 'created_at'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    tracking_number: Mapped[str] = mapped_column(
        String(30),
        unique=True,
        nullable=False,
        index=True
    )

    # Customer
    customer_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False)
    customer_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    # Status
    status: Mapped[str] = mapped_column(
        String(50),
        default=OrderStatus.CONFIRMED.value,
        nullable=False,
        index=True,
        comment="confirmed, ready-for-pickup, picked-up, at-depot, out-for-delivery, delivered, ..."
    )

    # Pricing (FCFA)
    subtotal: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="Sum of charged unit prices times quantities"
    )
    discount_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("0.00"),
        nullable=False
    )
    delivery_fee: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("0.00"),
        nullable=False
    )
    total: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="subtotal - discount + delivery fee"
    )

    applied_promo_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Delivery
    delivery_method: Mapped[str] = mapped_column(
        String(20),
        default=DeliveryMethod.HOME_DELIVERY.value,
        nullable=False,
        comment="home-delivery, pickup"
    )
    shipping_address: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    pickup_point_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    agent_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        nullable=True,
        index=True,
        comment="Assigned delivery agent"
    )

    # Depot
    storage_location_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    checked_in_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    checked_in_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    discrepancy: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    departure_processed_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    processed_for_departure_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    pickup_recipient_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    pickup_recipient_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    delivery_failure_reason: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)

    # Refund
    refund_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    refund_evidence_urls: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)

    # Optimistic lock counter
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    # Relationships
    items: Mapped[List["OrderItem"]] = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    status_history: Mapped[List["OrderStatusHistory"]] = relationship(
        "OrderStatusHistory",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderStatusHistory.sequence",
        lazy="selectin",
    )
    tracking_events: Mapped[List["OrderTrackingEvent"]] = relationship(
        "OrderTrackingEvent",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderTrackingEvent.sequence",
        lazy="selectin",
    )
    dispute_messages: Mapped[List["OrderDisputeMessage"]] = relationship(
        "OrderDisputeMessage",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderDisputeMessage.sequence",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def item_count(self) -> int:
        """Get total number of items."""
        return sum(item.quantity for item in self.items)

    @property
    def vendor_names(self) -> set[str]:
        return {item.vendor_name for item in self.items}

    def __repr__(self) -> str:
        return f"<Order(tracking='{self.tracking_number}', status='{self.status}')>"


class OrderItem(Base):
    """Order line item, frozen from the cart at checkout."""
    __tablename__ = "order_items"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False
    )
    product_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False, index=True)

    # Product snapshot (stored for historical record)
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    vendor_name: Mapped[str] = mapped_column(String(200), nullable=False)
    selected_variant: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    additional_shipping_fee: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)

    # Quantity & Pricing
    quantity: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="Price actually charged per unit"
    )
    price_source: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="variant, flash_sale, promotion, base"
    )
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    order: Mapped["Order"] = relationship("Order", back_populates="items")

    def __repr__(self) -> str:
        return f"<OrderItem(product='{self.product_name}', qty={self.quantity})>"


class OrderStatusHistory(Base):
    """Order status change log. One row per transition, never deduplicated."""
    __tablename__ = "order_status_history"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[str] = mapped_column(String(50), nullable=False)
    changed_by: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Actor label, e.g. 'Depot Agent: Paul'"
    )
    changed_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    order: Mapped["Order"] = relationship("Order", back_populates="status_history")

    def __repr__(self) -> str:
        return f"<OrderStatusHistory(status='{self.status}', by='{self.changed_by}')>"


class OrderTrackingEvent(Base):
    """Customer-facing tracking entry. First time a status is reached only."""
    __tablename__ = "order_tracking_events"
    __table_args__ = (
        UniqueConstraint('order_id', 'status', name='uq_tracking_order_status'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[str] = mapped_column(String(50), nullable=False)
    location: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    order: Mapped["Order"] = relationship("Order", back_populates="tracking_events")

    def __repr__(self) -> str:
        return f"<OrderTrackingEvent(status='{self.status}')>"


class OrderDisputeMessage(Base):
    """Dispute thread message. Append-only."""
    __tablename__ = "order_dispute_messages"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    author: Mapped[str] = mapped_column(String(20), nullable=False, comment="customer, seller, admin")
    message: Mapped[str] = mapped_column(Text, nullable=False)
    attachment_urls: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    order: Mapped["Order"] = relationship("Order", back_populates="dispute_messages")

    def __repr__(self) -> str:
        return f"<OrderDisputeMessage(author='{self.author}')>"
