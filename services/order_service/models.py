import uuid
from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, Numeric, Sequence, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from shared.config.database import Base

ORDER_SCHEMA = "order_schema"

# Server-side order number source; created alongside the tables on Postgres.
order_number_seq = Sequence("order_number_seq", schema=ORDER_SCHEMA, metadata=Base.metadata)


class OrderStatus:
    PENDING_PAYMENT = "pending_payment"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class PaymentStatus:
    PENDING = "pending"
    COMPLETED = "completed"


class PaymentMethod:
    CASH_ON_DELIVERY = "cash_on_delivery"
    GATEWAY = "gateway"

    ALL = (CASH_ON_DELIVERY, GATEWAY)


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint("total_amount >= 0", name="ck_orders_total_non_negative"),
        {"schema": ORDER_SCHEMA},
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    order_number = Column(String(40), unique=True, nullable=False, index=True)
    user_id = Column(String(64), nullable=True, index=True)  # null for guest checkout

    status = Column(String(20), nullable=False, default=OrderStatus.PENDING_PAYMENT)
    payment_method = Column(String(20), nullable=False)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING)

    customer_name = Column(String(255), nullable=False)
    customer_email = Column(String(255), nullable=False)
    customer_phone = Column(String(32), nullable=False)

    shipping_address = Column(Text, nullable=False)
    shipping_city = Column(String(120), nullable=False)
    shipping_state = Column(String(120), nullable=False)
    shipping_pincode = Column(String(20), nullable=False)
    shipping_country = Column(String(80), nullable=False)

    subtotal = Column(Numeric(12, 2), nullable=False)
    tax = Column(Numeric(12, 2), nullable=False, default=0)
    shipping_cost = Column(Numeric(12, 2), nullable=False, default=0)
    total_amount = Column(Numeric(12, 2), nullable=False)  # fixed at intake, never rewritten
    special_instructions = Column(Text, nullable=True)

    gateway_order_id = Column(String(64), nullable=True, index=True)
    gateway_payment_id = Column(String(64), nullable=True)
    gateway_signature = Column(String(128), nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    items = relationship(
        "OrderItem",
        back_populates="order",
        lazy="selectin",
        cascade="save-update, merge, delete",
        passive_deletes=True,
        order_by="OrderItem.id",
    )


class OrderItem(Base):
    __tablename__ = "order_items"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        CheckConstraint("unit_price >= 0", name="ck_order_items_unit_price_non_negative"),
        {"schema": ORDER_SCHEMA},
    )

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(
        String(36),
        ForeignKey(f"{ORDER_SCHEMA}.orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id = Column(String(64), nullable=False)

    # Denormalised at purchase time so later catalog edits don't rewrite history
    product_name = Column(String(255), nullable=False)
    product_image = Column(Text, nullable=True)
    size = Column(String(40), nullable=True)

    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)
    total_price = Column(Numeric(12, 2), nullable=False)  # unit_price * quantity, computed once

    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)

    order = relationship("Order", back_populates="items")
