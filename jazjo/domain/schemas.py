"""
Records exchanged between the services and the storage adapters.

Field names follow the store's column names so that both the Supabase REST
rows and the SQLAlchemy objects validate straight into these models.
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from jazjo.domain.status import OrderStatus, PaymentStatus


class Record(BaseModel):
    model_config = ConfigDict(from_attributes=True, coerce_numbers_to_str=True)


# --- Catalog ---

class ProductRecord(Record):
    id: str
    sku: str
    name: str
    category: Optional[str] = None
    unit: Optional[str] = None
    price: Decimal = Decimal("0")
    stock_cases: int = 0
    image_url: Optional[str] = None
    is_active: bool = True


# --- Identity ---

class Identity(BaseModel):
    user_id: str
    email: Optional[str] = None


class ProfileRecord(Record):
    user_id: str
    email: Optional[str] = None
    role: str = "customer"
    full_name: Optional[str] = None
    contact: Optional[str] = None
    address: Optional[str] = None
    created_at: Optional[datetime] = None


class AuthSession(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None


# --- Orders ---

class OrderDraft(Record):
    order_code: str
    user_id: str
    customer_name: str
    contact: str
    address: str
    subtotal: Decimal
    delivery_fee: Decimal
    total: Decimal
    status: OrderStatus
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_provider: Optional[str] = None
    payment_method: str


class OrderRecord(OrderDraft):
    id: str
    paymongo_checkout_session_id: Optional[str] = None
    paymongo_payment_id: Optional[str] = None
    paid_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class OrderItemDraft(Record):
    order_id: str
    product_id: Optional[str] = None
    sku: str
    name: str
    category: Optional[str] = None
    unit: Optional[str] = None
    image_url: Optional[str] = None
    unit_price: Decimal
    qty: int
    line_total: Decimal


class OrderItemRecord(OrderItemDraft):
    created_at: Optional[datetime] = None


class StatusEventDraft(Record):
    order_id: str
    status: OrderStatus
    note: str = ""
    changed_by: Optional[str] = None


class StatusEventRecord(StatusEventDraft):
    created_at: Optional[datetime] = None


# --- Payments ---

class PaymentDraft(Record):
    order_id: str
    provider: str = "paymongo"
    status: PaymentStatus = PaymentStatus.PENDING
    amount: Decimal
    currency: str = "PHP"


class PaymentRecord(PaymentDraft):
    id: str
    provider_event_id: Optional[str] = None
    provider_checkout_session_id: Optional[str] = None
    provider_payment_id: Optional[str] = None
    raw_payload: Optional[Dict[str, Any]] = None


# --- Gateway ---

class CheckoutLineItem(BaseModel):
    currency: str
    amount: int  # centavos
    name: str
    quantity: int


class CheckoutSession(BaseModel):
    session_id: Optional[str] = None
    checkout_url: Optional[str] = None


class WebhookEvent(BaseModel):
    event_id: str = ""
    event_type: str = ""
    resource_id: Optional[str] = None
    order_code: Optional[str] = None
    payment_id: Optional[str] = None
    payload: Dict[str, Any] = Field(default_factory=dict)


# --- Inbound requests ---

class CartItemIn(BaseModel):
    sku: Optional[str] = None
    productId: Optional[str] = None
    qty: Any = 0

    @property
    def resolved_sku(self) -> str:
        return str(self.sku or self.productId or "").strip()


class CreateOrderIn(BaseModel):
    customerName: str = ""
    contact: str = ""
    address: str = ""
    paymentMethod: str = ""
    items: List[CartItemIn] = Field(default_factory=list)


class StatusUpdateIn(BaseModel):
    status: str = ""


class LoginIn(BaseModel):
    email: str = ""
    password: str = ""


class ProfileUpdateIn(BaseModel):
    fullName: Optional[str] = None
    full_name: Optional[str] = None
    contact: Optional[str] = None
    address: Optional[str] = None
