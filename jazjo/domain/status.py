import enum

from jazjo.core.errors import ValidationError


class OrderStatus(str, enum.Enum):
    PENDING_PAYMENT = "pending_payment"
    ORDER_PLACED = "order_placed"
    PREPARING = "preparing"
    IN_TRANSIT = "in_transit"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    @property
    def label(self) -> str:
        return STATUS_LABELS[self]

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.DELIVERED, OrderStatus.CANCELLED)

    def next_status(self):
        """Immediate successor in the delivery chain, or None at the end."""
        if self is OrderStatus.CANCELLED:
            return None
        idx = STATUS_CHAIN.index(self)
        return STATUS_CHAIN[idx + 1] if idx + 1 < len(STATUS_CHAIN) else None

    @classmethod
    def parse(cls, value) -> "OrderStatus":
        """Accepts a stored code ("in_transit") or a UI label ("In Transit")."""
        if isinstance(value, cls):
            return value
        text = str(value or "").strip()
        for status in cls:
            if text == status.value:
                return status
        for status in LABEL_LOOKUP_ORDER:
            if text == status.label:
                return status
        raise ValidationError("Invalid status.")


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    CANCELLED = "cancelled"


STATUS_CHAIN = (
    OrderStatus.PENDING_PAYMENT,
    OrderStatus.ORDER_PLACED,
    OrderStatus.PREPARING,
    OrderStatus.IN_TRANSIT,
    OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED,
)

# Customers see an unpaid QRPH order as already placed.
STATUS_LABELS = {
    OrderStatus.PENDING_PAYMENT: "Order Placed",
    OrderStatus.ORDER_PLACED: "Order Placed",
    OrderStatus.PREPARING: "Preparing",
    OrderStatus.IN_TRANSIT: "In Transit",
    OrderStatus.OUT_FOR_DELIVERY: "Out for Delivery",
    OrderStatus.DELIVERED: "Delivered",
    OrderStatus.CANCELLED: "Cancelled",
}

# "Order Placed" is shared, so label lookup must prefer order_placed.
LABEL_LOOKUP_ORDER = [s for s in OrderStatus if s is not OrderStatus.PENDING_PAYMENT]

assert set(STATUS_LABELS) == set(OrderStatus), "every status needs a label"

ACTIVE_DELIVERY_LABELS = ("In Transit", "Out for Delivery", "Preparing", "Order Placed")


def status_label(value) -> str:
    """Label for a raw stored status; unknown values pass through unchanged."""
    if not value:
        return OrderStatus.ORDER_PLACED.label
    try:
        return OrderStatus(value).label
    except ValueError:
        return str(value)
