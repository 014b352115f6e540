import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, JSON, Numeric, String, Text

from jazjo.infrastructure.database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    # Set client-side so events written in the same second still sort correctly.
    return datetime.now(timezone.utc)


class Profile(Base):
    __tablename__ = "profiles"

    user_id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String, unique=True, index=True)
    role = Column(String, nullable=False, default="customer")  # customer, staff, admin
    full_name = Column(String)
    contact = Column(String)
    address = Column(Text)
    created_at = Column(DateTime(timezone=True), default=_now)
    updated_at = Column(DateTime(timezone=True), default=_now, onupdate=_now)


class Product(Base):
    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=_uuid)
    sku = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=False)
    category = Column(String)
    unit = Column(String)
    price = Column(Numeric(12, 2), nullable=False, default=0)
    stock_cases = Column(Integer, nullable=False, default=0)
    image_url = Column(String)
    is_active = Column(Boolean, nullable=False, default=True)


class Order(Base):
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=_uuid)
    order_code = Column(String, unique=True, index=True, nullable=False)
    user_id = Column(String(36), index=True, nullable=False)

    # Customer snapshot, immutable after creation
    customer_name = Column(String, nullable=False)
    contact = Column(String, nullable=False)
    address = Column(Text, nullable=False)

    subtotal = Column(Numeric(12, 2), nullable=False)
    delivery_fee = Column(Numeric(12, 2), nullable=False)
    total = Column(Numeric(12, 2), nullable=False)

    status = Column(String, nullable=False, default="order_placed")
    payment_status = Column(String, nullable=False, default="pending")
    payment_provider = Column(String)
    payment_method = Column(String)
    paymongo_checkout_session_id = Column(String, index=True)
    paymongo_payment_id = Column(String)
    paid_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=_now, index=True)


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(36), ForeignKey("orders.id"), index=True, nullable=False)
    product_id = Column(String(36))
    sku = Column(String, nullable=False)

    # Catalog snapshot at order time
    name = Column(String, nullable=False)
    category = Column(String)
    unit = Column(String)
    image_url = Column(String)
    unit_price = Column(Numeric(12, 2), nullable=False)

    qty = Column(Integer, nullable=False)
    line_total = Column(Numeric(12, 2), nullable=False)
    created_at = Column(DateTime(timezone=True), default=_now)


class OrderStatusEvent(Base):
    """Append-only audit log."""
    __tablename__ = "order_status_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(36), ForeignKey("orders.id"), index=True, nullable=False)
    status = Column(String, nullable=False)
    note = Column(Text, default="")
    changed_by = Column(String(36))
    created_at = Column(DateTime(timezone=True), default=_now)


class Payment(Base):
    __tablename__ = "payments"

    id = Column(String(36), primary_key=True, default=_uuid)
    order_id = Column(String(36), ForeignKey("orders.id"), index=True, nullable=False)
    provider = Column(String, default="paymongo")
    status = Column(String, nullable=False, default="pending")
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String, default="PHP")
    provider_event_id = Column(String, index=True)
    provider_checkout_session_id = Column(String)
    provider_payment_id = Column(String)
    raw_payload = Column(JSON)
    created_at = Column(DateTime(timezone=True), default=_now)


class PaymentEvent(Base):
    """Every gateway event id ever processed; the unique key is the idempotency claim."""
    __tablename__ = "payment_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(String, unique=True, index=True, nullable=False)
    order_id = Column(String(36), ForeignKey("orders.id"), index=True, nullable=False)
    raw_payload = Column(JSON)
    created_at = Column(DateTime(timezone=True), default=_now)
