"""
Client-facing projections of orders (what the customer pages and the panel
tables render). Read-only.
"""
from collections import defaultdict
from typing import Dict, List, Optional, Sequence

from jazjo.domain.rules import DEFAULT_PAYMENT_METHOD
from jazjo.domain.schemas import OrderItemRecord, OrderRecord, ProfileRecord, StatusEventRecord
from jazjo.interfaces.IOrderRepository import IOrderRepository
from jazjo.interfaces.IProfileRepository import IProfileRepository


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def event_view(event: StatusEventRecord) -> dict:
    return {
        "status": event.status.value,
        "note": event.note,
        "created_at": _iso(event.created_at),
    }


def item_view(item: OrderItemRecord) -> dict:
    return {
        "productId": item.sku,
        "name": item.name,
        "price": float(item.unit_price),
        "qty": item.qty,
        "img": item.image_url or "",
    }


def order_view(order: OrderRecord, items: Sequence[OrderItemRecord] = (),
               events: Sequence[StatusEventRecord] = ()) -> dict:
    return {
        "id": order.order_code,
        "createdAt": _iso(order.created_at),
        "customerName": order.customer_name,
        "contact": order.contact,
        "address": order.address,
        "paymentMethod": order.payment_method or DEFAULT_PAYMENT_METHOD,
        "subtotal": float(order.subtotal),
        "deliveryFee": float(order.delivery_fee),
        "total": float(order.total),
        "status": order.status.label,
        "items": [item_view(i) for i in items],
        "status_events": [event_view(e) for e in events],
    }


def profile_view(profile: Optional[ProfileRecord]) -> Optional[dict]:
    if profile is None:
        return None
    return profile.model_dump(mode="json")


class OrderViews:
    def __init__(self, orders: IOrderRepository, profiles: IProfileRepository):
        self.orders = orders
        self.profiles = profiles

    def _with_children(self, orders: List[OrderRecord]) -> List[dict]:
        if not orders:
            return []
        ids = [o.id for o in orders]
        items_by_order: Dict[str, list] = defaultdict(list)
        events_by_order: Dict[str, list] = defaultdict(list)
        for item in self.orders.list_items(ids):
            items_by_order[item.order_id].append(item)
        for event in self.orders.list_events(ids):
            events_by_order[event.order_id].append(event)
        return [order_view(o, items_by_order[o.id], events_by_order[o.id]) for o in orders]

    def list_for_user(self, user_id: str) -> List[dict]:
        if not user_id:
            return []
        return self._with_children(self.orders.list_for_user(user_id))

    def get_for_user(self, order_code: str, user_id: str) -> Optional[dict]:
        """None for unknown codes and for other customers' orders alike."""
        order = self.orders.find_by_code(order_code)
        if order is None or order.user_id != user_id:
            return None
        return self._with_children([order])[0]

    def list_all_detailed(self) -> List[dict]:
        """Staff/admin listing: every order plus payment status and owner profile."""
        orders = self.orders.list_all()
        if not orders:
            return []
        profiles = {p.user_id: p for p in self.profiles.list_all()}
        detailed = []
        for order, view in zip(orders, self._with_children(orders)):
            view.update({
                "userId": order.user_id,
                "createdAtRaw": _iso(order.created_at),
                "paymentStatus": order.payment_status.value,
                "profile": profile_view(profiles.get(order.user_id)),
            })
            detailed.append(view)
        return detailed

    def get_detailed(self, order_code: str) -> Optional[dict]:
        order = self.orders.find_by_code(order_code)
        if order is None:
            return None
        view = self._with_children([order])[0]
        view.update({
            "userId": order.user_id,
            "createdAtRaw": _iso(order.created_at),
            "paymentStatus": order.payment_status.value,
            "profile": profile_view(self.profiles.find_by_user_id(order.user_id)),
        })
        return view
