"""
Supabase (PostgREST) adapters for the repository interfaces.

This is the only place that knows the REST filter syntax and column lists.
"""
import enum
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence

from jazjo.core.errors import ConflictError
from jazjo.domain.schemas import (
    OrderItemRecord,
    OrderRecord,
    PaymentRecord,
    ProductRecord,
    ProfileRecord,
    StatusEventRecord,
)
from jazjo.domain.status import OrderStatus, PaymentStatus
from jazjo.infrastructure.supabase_client import SupabaseClient, eq, in_filter
from jazjo.interfaces.IOrderRepository import IOrderRepository
from jazjo.interfaces.IPaymentRepository import IPaymentRepository
from jazjo.interfaces.IProductRepository import IProductRepository
from jazjo.interfaces.IProfileRepository import IProfileRepository

PRODUCT_COLUMNS = "id,sku,name,category,unit,price,stock_cases,image_url,is_active"
PROFILE_COLUMNS = "user_id,email,role,full_name,contact,address,created_at"
ORDER_COLUMNS = (
    "id,order_code,user_id,customer_name,contact,address,subtotal,delivery_fee,total,"
    "status,payment_status,payment_provider,payment_method,paymongo_checkout_session_id,"
    "paymongo_payment_id,paid_at,created_at"
)
ITEM_COLUMNS = "order_id,product_id,sku,name,category,unit,image_url,unit_price,qty,line_total,created_at"
EVENT_COLUMNS = "order_id,status,note,changed_by,created_at"

RETURN_ROWS = "return=representation"
RETURN_NONE = "return=minimal"


def to_json(value):
    """Row values PostgREST accepts: Decimal as number, enums by code, ISO datetimes."""
    if isinstance(value, dict):
        return {k: to_json(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json(v) for v in value]
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _first(rows):
    return rows[0] if rows else None


class SupabaseRepository:
    def __init__(self, client: SupabaseClient):
        self.client = client


class SupabaseProductRepository(SupabaseRepository, IProductRepository):

    def list_active(self) -> List[ProductRecord]:
        rows = self.client.rest("products", params={
            "select": PRODUCT_COLUMNS,
            "is_active": "eq.true",
            "order": "name.asc",
        })
        return [ProductRecord.model_validate(r) for r in rows or []]

    def find_by_sku_in(self, skus: Iterable[str]) -> List[ProductRecord]:
        skus = list(skus)
        if not skus:
            return []
        rows = self.client.rest("products", params={"select": PRODUCT_COLUMNS, "sku": in_filter(skus)})
        return [ProductRecord.model_validate(r) for r in rows or []]

    def find_by_id(self, product_id: str) -> Optional[ProductRecord]:
        rows = self.client.rest("products", params={
            "select": PRODUCT_COLUMNS, "id": eq(product_id), "limit": "1",
        })
        row = _first(rows)
        return ProductRecord.model_validate(row) if row else None

    def update_stock(self, product_id: str, stock_cases: int) -> None:
        self.client.rest("products", method="PATCH", params={"id": eq(product_id)},
                         body={"stock_cases": stock_cases}, prefer=RETURN_NONE)


class SupabaseOrderRepository(SupabaseRepository, IOrderRepository):

    def _find_one(self, **filters) -> Optional[OrderRecord]:
        params = {"select": ORDER_COLUMNS, "limit": "1"}
        params.update({k: eq(v) for k, v in filters.items()})
        row = _first(self.client.rest("orders", params=params))
        return OrderRecord.model_validate(row) if row else None

    def insert(self, draft) -> OrderRecord:
        rows = self.client.rest("orders", method="POST", body=[to_json(draft.model_dump())],
                                prefer=RETURN_ROWS)
        return OrderRecord.model_validate(rows[0])

    def delete(self, order_id: str) -> None:
        self.client.rest("orders", method="DELETE", params={"id": eq(order_id)}, prefer=RETURN_NONE)

    def find_by_code(self, order_code: str) -> Optional[OrderRecord]:
        return self._find_one(order_code=order_code)

    def find_by_checkout_session(self, session_id: str) -> Optional[OrderRecord]:
        if not session_id:
            return None
        return self._find_one(paymongo_checkout_session_id=session_id)

    def list_all(self) -> List[OrderRecord]:
        rows = self.client.rest("orders", params={"select": ORDER_COLUMNS, "order": "created_at.desc"})
        return [OrderRecord.model_validate(r) for r in rows or []]

    def list_for_user(self, user_id: str) -> List[OrderRecord]:
        rows = self.client.rest("orders", params={
            "select": ORDER_COLUMNS, "user_id": eq(user_id), "order": "created_at.desc",
        })
        return [OrderRecord.model_validate(r) for r in rows or []]

    def update_status(self, order_id, status, expected=None) -> Optional[OrderRecord]:
        params = {"id": eq(order_id)}
        if expected is not None:
            params["status"] = eq(expected.value)
        rows = self.client.rest("orders", method="PATCH", params=params,
                                body={"status": status.value}, prefer=RETURN_ROWS)
        row = _first(rows)
        return OrderRecord.model_validate(row) if row else None

    def set_checkout_session(self, order_id: str, session_id: str) -> None:
        self.client.rest("orders", method="PATCH", params={"id": eq(order_id)},
                         body={"paymongo_checkout_session_id": session_id}, prefer=RETURN_NONE)

    def mark_paid(self, order_id, paid_at, checkout_session_id, payment_id) -> None:
        self.client.rest("orders", method="PATCH", params={"id": eq(order_id)}, prefer=RETURN_NONE, body=to_json({
            "payment_status": PaymentStatus.PAID,
            "paid_at": paid_at,
            "paymongo_checkout_session_id": checkout_session_id,
            "paymongo_payment_id": payment_id,
        }))
        self.client.rest("orders", method="PATCH", prefer=RETURN_NONE,
                         params={"id": eq(order_id), "status": eq(OrderStatus.PENDING_PAYMENT.value)},
                         body={"status": OrderStatus.ORDER_PLACED.value})

    def insert_items(self, items) -> None:
        self.client.rest("order_items", method="POST", prefer=RETURN_NONE,
                         body=[to_json(item.model_dump()) for item in items])

    def list_items(self, order_ids: Sequence[str]) -> List[OrderItemRecord]:
        if not order_ids:
            return []
        rows = self.client.rest("order_items", params={
            "select": ITEM_COLUMNS, "order_id": in_filter(order_ids), "order": "created_at.asc",
        })
        return [OrderItemRecord.model_validate(r) for r in rows or []]

    def delete_items(self, order_id: str) -> None:
        self.client.rest("order_items", method="DELETE", params={"order_id": eq(order_id)}, prefer=RETURN_NONE)

    def insert_event(self, event) -> None:
        self.client.rest("order_status_events", method="POST", prefer=RETURN_NONE,
                         body=[to_json(event.model_dump())])

    def list_events(self, order_ids: Sequence[str]) -> List[StatusEventRecord]:
        if not order_ids:
            return []
        rows = self.client.rest("order_status_events", params={
            "select": EVENT_COLUMNS, "order_id": in_filter(order_ids), "order": "created_at.asc",
        })
        return [StatusEventRecord.model_validate(r) for r in rows or []]

    def has_event_note(self, order_id: str, note: str) -> bool:
        rows = self.client.rest("order_status_events", params={
            "select": "id", "order_id": eq(order_id), "note": eq(note), "limit": "1",
        })
        return bool(rows)

    def delete_events(self, order_id: str) -> None:
        self.client.rest("order_status_events", method="DELETE", params={"order_id": eq(order_id)},
                         prefer=RETURN_NONE)


class SupabasePaymentRepository(SupabaseRepository, IPaymentRepository):

    def insert(self, draft) -> PaymentRecord:
        rows = self.client.rest("payments", method="POST", body=[to_json(draft.model_dump())],
                                prefer=RETURN_ROWS)
        return PaymentRecord.model_validate(rows[0])

    def exists_for_event(self, event_id: str) -> bool:
        if not event_id:
            return False
        rows = self.client.rest("payment_events", params={
            "select": "id", "event_id": eq(event_id), "limit": "1",
        })
        return bool(rows)

    def record_event(self, order_id, event_id, raw_payload) -> bool:
        try:
            self.client.rest("payment_events", method="POST", prefer=RETURN_NONE, body=[{
                "event_id": event_id, "order_id": order_id, "raw_payload": raw_payload,
            }])
        except ConflictError:
            return False
        return True

    def forget_event(self, event_id: str) -> None:
        self.client.rest("payment_events", method="DELETE", params={"event_id": eq(event_id)},
                         prefer=RETURN_NONE)

    def set_checkout_session(self, order_id: str, session_id: str) -> None:
        self.client.rest("payments", method="PATCH", params={"order_id": eq(order_id)},
                         body={"provider_checkout_session_id": session_id}, prefer=RETURN_NONE)

    def mark_paid(self, order_id, event_id, checkout_session_id, payment_id, raw_payload) -> None:
        self.client.rest("payments", method="PATCH", params={"order_id": eq(order_id)}, prefer=RETURN_NONE, body={
            "status": PaymentStatus.PAID.value,
            "provider_event_id": event_id,
            "provider_checkout_session_id": checkout_session_id,
            "provider_payment_id": payment_id,
            "raw_payload": raw_payload,
        })

    def delete_for_order(self, order_id: str) -> None:
        self.client.rest("payments", method="DELETE", params={"order_id": eq(order_id)}, prefer=RETURN_NONE)


class SupabaseProfileRepository(SupabaseRepository, IProfileRepository):

    def _find_one(self, **filters) -> Optional[ProfileRecord]:
        params = {"select": PROFILE_COLUMNS, "limit": "1"}
        params.update({k: eq(v) for k, v in filters.items()})
        row = _first(self.client.rest("profiles", params=params))
        return ProfileRecord.model_validate(row) if row else None

    def find_by_user_id(self, user_id: str) -> Optional[ProfileRecord]:
        return self._find_one(user_id=user_id)

    def find_by_email(self, email: str) -> Optional[ProfileRecord]:
        return self._find_one(email=email)

    def list_all(self) -> List[ProfileRecord]:
        rows = self.client.rest("profiles", params={"select": PROFILE_COLUMNS})
        return [ProfileRecord.model_validate(r) for r in rows or []]

    def update(self, user_id: str, patch) -> Optional[ProfileRecord]:
        rows = self.client.rest("profiles", method="PATCH", params={"user_id": eq(user_id)},
                                body=dict(patch), prefer=RETURN_ROWS)
        row = _first(rows)
        return ProfileRecord.model_validate(row) if row else None
