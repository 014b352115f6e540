"""
Pure business rules. No I/O here; policy constants come from settings and are
passed in by the services.
"""
import random
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

ASYNC_PAYMENT_MARKER = "QRPH"
DEFAULT_PAYMENT_METHOD = "QRPH"

OUT_OF_STOCK = "Out of Stock"
LOW_STOCK = "Low Stock"
IN_STOCK = "In Stock"


def is_async_payment_method(method) -> bool:
    """QR-code payments are confirmed later by the gateway webhook."""
    return ASYNC_PAYMENT_MARKER in str(method or "").upper()


def stock_status_label(stock: int, low_limit: int = 10) -> str:
    if stock <= 0:
        return OUT_OF_STOCK
    if stock <= low_limit:
        return LOW_STOCK
    return IN_STOCK


def delivery_fee(subtotal: Decimal, threshold: Decimal, flat_fee: Decimal) -> Decimal:
    """Flat fee below the free-delivery threshold; an empty subtotal ships free."""
    if subtotal <= 0 or subtotal >= threshold:
        return Decimal("0")
    return flat_fee


def deduct_stock(current: int, qty: int) -> int:
    return max(0, current - qty)


def to_centavos(amount) -> int:
    """Smallest currency unit for the gateway (PHP 55.50 -> 5550)."""
    return int((Decimal(str(amount or 0)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def reward_points(total, block_amount: Decimal, points_per_block: int) -> int:
    """10 points per full 100 spent, per order."""
    return int(Decimal(str(total or 0)) // block_amount) * points_per_block


def make_order_code(now: datetime, rng: random.Random = None) -> str:
    rng = rng or random
    return f"ORD-{now:%Y%m%d}-{rng.randint(100, 999)}"
