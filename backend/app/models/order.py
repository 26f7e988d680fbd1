"""Order and OrderLineItem models, plus the order state machine"""
from enum import Enum
from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from app.models.base import Base


class OrderStatus(str, Enum):
    """Local order state, stored in Order.external_fulfillment_status"""
    DRAFT = "draft"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    ON_HOLD = "on_hold"
    PARTIAL = "partial"
    SHIPPED = "shipped"
    FULFILLED = "fulfilled"
    CANCELLED = "cancelled"
    FAILED = "failed"


# Allowed forward moves. Anything absent (on_hold, fulfilled, cancelled, failed) is a sink.
ORDER_TRANSITIONS = {
    OrderStatus.DRAFT: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED, OrderStatus.FAILED},
    OrderStatus.CONFIRMED: {
        OrderStatus.PROCESSING, OrderStatus.ON_HOLD, OrderStatus.PARTIAL, OrderStatus.SHIPPED,
        OrderStatus.FULFILLED, OrderStatus.CANCELLED, OrderStatus.FAILED,
    },
    OrderStatus.PROCESSING: {
        OrderStatus.PARTIAL, OrderStatus.SHIPPED, OrderStatus.FULFILLED,
        OrderStatus.CANCELLED, OrderStatus.FAILED,
    },
    OrderStatus.PARTIAL: {OrderStatus.SHIPPED, OrderStatus.FULFILLED, OrderStatus.CANCELLED, OrderStatus.FAILED},
    OrderStatus.SHIPPED: {OrderStatus.FULFILLED},
}


def can_transition(current, new) -> bool:
    """True if ``current -> new`` is allowed. Re-applying the current state always is."""
    if current is None:
        return OrderStatus(new) == OrderStatus.DRAFT
    current, new = OrderStatus(current), OrderStatus(new)
    if current == new:
        return True
    return new in ORDER_TRANSITIONS.get(current, set())


class Order(Base):
    """Customer order, materialized once per order id by the payment webhook"""
    __tablename__ = "orders"

    id = Column(String(64), primary_key=True)  # e.g. "RANCH-1736901234567"

    # Customer
    customer_email = Column(String(255), nullable=False, index=True)
    customer_name = Column(String(255), nullable=False)
    customer_phone = Column(String(50), nullable=True)

    # Shipping address
    shipping_address_line1 = Column(String(255), nullable=False)
    shipping_address_line2 = Column(String(255), nullable=True)
    shipping_city = Column(String(100), nullable=False)
    shipping_state = Column(String(100), nullable=False)
    shipping_zip = Column(String(20), nullable=False)
    shipping_country = Column(String(2), nullable=False, default="US")

    # Totals (USD)
    subtotal = Column(Float, nullable=False)
    discount_amount = Column(Float, nullable=False, default=0)
    shipping_cost = Column(Float, nullable=False, default=0)
    total = Column(Float, nullable=False)

    # Fulfillment provider (Printful)
    external_fulfillment_order_id = Column(Integer, nullable=True, index=True)
    external_fulfillment_status = Column(String(20), nullable=False, default=OrderStatus.DRAFT.value, index=True)

    # Payment gateway (Stripe)
    payment_session_id = Column(String(255), nullable=True, index=True)
    payment_intent_id = Column(String(255), nullable=True)

    # Tracking
    tracking_number = Column(String(100), nullable=True)
    tracking_url = Column(String(512), nullable=True)
    tracking_carrier = Column(String(100), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False, index=True)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    shipped_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)

    # Relationships
    items = relationship("OrderLineItem", back_populates="order", cascade="all, delete-orphan", order_by="OrderLineItem.id")

    __table_args__ = (
        CheckConstraint('total >= 0 AND subtotal >= 0', name='ck_orders_valid_totals'),
    )

    @property
    def status(self) -> OrderStatus:
        return OrderStatus(self.external_fulfillment_status)


class OrderLineItem(Base):
    """Line item snapshot, written once at materialization"""
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(String(64), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)

    # Product snapshot
    product_id = Column(String(100), nullable=False, index=True)
    product_name = Column(String(255), nullable=False)
    variant_id = Column(String(100), nullable=False)
    variant_size = Column(String(20), nullable=False)
    variant_color = Column(String(50), nullable=False)

    # Pricing snapshot
    unit_price = Column(Float, nullable=False)
    quantity = Column(Integer, nullable=False)
    discount_percent = Column(Float, nullable=False, default=0)
    subtotal = Column(Float, nullable=False)  # unit_price * (1 - discount) * quantity

    external_variant_id = Column(Integer, nullable=False)  # Printful variant id
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    # Relationship
    order = relationship("Order", back_populates="items")

    __table_args__ = (
        CheckConstraint('quantity > 0', name='ck_order_items_quantity'),
        CheckConstraint('discount_percent >= 0 AND discount_percent <= 15', name='ck_order_items_discount'),
        CheckConstraint('subtotal >= 0 AND unit_price >= 0', name='ck_order_items_valid_pricing'),
    )
