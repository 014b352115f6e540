"""
Staff/admin panel read models. Everything here is derived on the fly from
orders, products and profiles; nothing is stored.

Rewards are a projection too: 10 points per full 100 spent on each order.
Redemption does not exist, so there is no ledger to write back to.
"""
from collections import Counter, OrderedDict
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from jazjo.application.catalog import CatalogReader
from jazjo.application.views import OrderViews
from jazjo.core.config import settings as default_settings
from jazjo.domain.rules import IN_STOCK, reward_points
from jazjo.domain.status import ACTIVE_DELIVERY_LABELS, OrderStatus
from jazjo.interfaces.IOrderRepository import IOrderRepository
from jazjo.interfaces.IProfileRepository import IProfileRepository

RECENT_ORDERS_LIMIT = 8


def format_date(value) -> str:
    """datetime or ISO string -> 'Apr 14, 2025, 03:05 PM'."""
    if not value:
        return ""
    d = value if isinstance(value, datetime) else _parse(value)
    if d is None:
        return str(value)
    return f"{d:%b} {d.day}, {d:%Y}, {d:%I:%M %p}"


def _parse(value: Optional[str]) -> Optional[datetime]:
    try:
        return datetime.fromisoformat(value) if value else None
    except ValueError:
        return None


def best_seller(orders: List[dict]):
    counts = Counter()
    for order in orders:
        for item in order.get("items") or []:
            counts[item["name"]] += item["qty"]
    if not counts:
        return "-"
    # Ties go to the name seen first.
    top = max(counts.values())
    return next(name for name, qty in counts.items() if qty == top)


class PanelReports:
    def __init__(self, views: OrderViews, catalog: CatalogReader, orders: IOrderRepository,
                 profiles: IProfileRepository, settings=None):
        self.views = views
        self.catalog = catalog
        self.orders = orders
        self.profiles = profiles
        self.settings = settings or default_settings

    def _points(self, total) -> int:
        return reward_points(total, self.settings.REWARD_BLOCK_AMOUNT, self.settings.REWARD_POINTS_PER_BLOCK)

    def _stock_counts(self, products):
        low_limit = self.catalog.low_stock_limit
        low = sum(1 for p in products if 0 < p.stock_cases <= low_limit)
        out = sum(1 for p in products if p.stock_cases <= 0)
        return low, out

    # --- Customer ---

    def customer_rewards(self, user_id: str) -> dict:
        orders = self.views.list_for_user(user_id)
        return {
            "totalSpent": sum(o["total"] for o in orders),
            "points": sum(self._points(o["total"]) for o in orders),
        }

    # --- Admin / staff ---

    def dashboard(self) -> dict:
        orders = self.views.list_all_detailed()
        products = self.catalog.list_active_products()
        low, out = self._stock_counts(products)
        return {
            "recentOrders": orders[:RECENT_ORDERS_LIMIT],
            "kpis": {
                "totalSales": sum(o["total"] for o in orders),
                "transactions": len(orders),
                "bestSeller": best_seller(orders),
                "lowStockCount": low,
                "outOfStockCount": out,
            },
        }

    def inventory(self) -> dict:
        inventory = [self.catalog.to_view(p) for p in self.catalog.list_active_products()]
        low_stock = sorted((p for p in inventory if p["status"] != IN_STOCK), key=lambda p: p["stockCases"])
        return {"inventory": inventory, "lowStock": low_stock}

    def customers(self) -> List[dict]:
        by_user: Dict[str, dict] = OrderedDict()
        for profile in self.profiles.list_all():
            by_user[profile.user_id] = {
                "name": profile.full_name or profile.email or "Unknown",
                "email": profile.email or "",
                "totalOrders": 0,
                "lastOrder": "",
            }
        for order in self.orders.list_all():  # newest first, so the first seen is the last order
            rec = by_user.setdefault(order.user_id, {
                "name": order.customer_name or "Unknown",
                "email": "",
                "totalOrders": 0,
                "lastOrder": "",
            })
            rec["totalOrders"] += 1
            rec["lastOrder"] = rec["lastOrder"] or format_date(order.created_at)
        return sorted(by_user.values(), key=lambda r: r["totalOrders"], reverse=True)

    def reports(self) -> List[dict]:
        orders = self.views.list_all_detailed()
        products = self.catalog.list_active_products()
        delivered_label = OrderStatus.DELIVERED.label
        cancelled_label = OrderStatus.CANCELLED.label
        delivered = sum(1 for o in orders if o["status"] == delivered_label)
        pending = sum(1 for o in orders if o["status"] not in (delivered_label, cancelled_label))
        low, out = self._stock_counts(products)
        return [
            {"reportType": "Sales Report", "coverage": f"{len(orders)} orders total", "status": "Available"},
            {"reportType": "Inventory Report",
             "coverage": f"{len(products)} products ({low} low, {out} out)", "status": "Available"},
            {"reportType": "Top Selling Products", "coverage": "Computed from order items", "status": "Available"},
            {"reportType": "Delivery Summary",
             "coverage": f"{delivered} delivered / {pending} pending", "status": "Available"},
        ]

    def rewards(self) -> List[dict]:
        by_email: Dict[str, dict] = OrderedDict()
        for c in self.customers():
            by_email[c["email"]] = {"customer": c["name"], "email": c["email"], "points": 0, "totalSpent": 0}
        for order in self.views.list_all_detailed():
            email = (order.get("profile") or {}).get("email") or ""
            rec = by_email.setdefault(email, {
                "customer": order["customerName"], "email": email, "points": 0, "totalSpent": 0,
            })
            rec["totalSpent"] += order["total"]
            rec["points"] += self._points(order["total"])
        return sorted(by_email.values(), key=lambda r: r["points"], reverse=True)

    def sales(self) -> dict:
        orders = self.views.list_all_detailed()
        buckets = {"Daily": {}, "Weekly": {}, "Monthly": {}}
        for order in orders:
            d = _parse(order.get("createdAtRaw") or order.get("createdAt"))
            if d is None:
                continue
            week_start = d - timedelta(days=(d.weekday() + 1) % 7)  # weeks start on Sunday
            keys = {
                "Daily": d.date().isoformat(),
                "Weekly": week_start.date().isoformat(),
                "Monthly": f"{d:%Y-%m}",
            }
            for period, key in keys.items():
                rec = buckets[period].setdefault(key, {"sales": 0, "transactions": 0})
                rec["sales"] += order["total"]
                rec["transactions"] += 1

        top = best_seller(orders)
        latest = {
            period: (values[max(values)] if values else {"sales": 0, "transactions": 0})
            for period, values in buckets.items()
        }
        return {
            "kpis": {
                "todaySales": latest["Daily"]["sales"],
                "transactions": latest["Daily"]["transactions"],
                "bestSeller": top,
                "refunds": 0,
            },
            "rows": [
                {"period": period, "sales": latest[period]["sales"],
                 "transactions": latest[period]["transactions"], "bestSeller": top}
                for period in ("Daily", "Weekly", "Monthly")
            ],
        }

    def delivery(self) -> dict:
        orders = self.views.list_all_detailed()
        active = next((o for o in orders if o["status"] in ACTIVE_DELIVERY_LABELS), None)
        return {"activeOrder": active or (orders[0] if orders else None)}
