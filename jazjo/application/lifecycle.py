"""
Order lifecycle: status transitions and webhook payment reconciliation.

Status moves one step at a time along

    pending_payment -> order_placed -> preparing -> in_transit
        -> out_for_delivery -> delivered

and any non-terminal order may be cancelled. An unpaid QRPH order can only
stay pending or be cancelled until the gateway confirms payment.

Payment confirmation is idempotent twice over. Every gateway event id is kept
in a processed-events log, so any redelivery, even after other events for the
same order, is a no-op; a new event for an order that is already paid is only
logged. Stock is deducted only when the order's audit log lacks
STOCK_MARKER_NOTE, so replayed events never deduct stock a second time.
Payment never moves an order out of any status other than pending_payment.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from jazjo.core.errors import ConflictError, NotFoundError
from jazjo.domain.rules import deduct_stock, is_async_payment_method
from jazjo.domain.schemas import OrderRecord, ProfileRecord, StatusEventDraft
from jazjo.domain.status import OrderStatus, PaymentStatus
from jazjo.interfaces.IOrderRepository import IOrderRepository
from jazjo.interfaces.IPaymentRepository import IPaymentRepository
from jazjo.interfaces.IProductRepository import IProductRepository

logger = logging.getLogger(__name__)

STOCK_MARKER_NOTE = "QRPH payment confirmed via PayMongo webhook. Stock deducted."
PAYMENT_CONFIRMED_NOTE = "QRPH payment confirmed via PayMongo webhook."
ALLOWED_BEFORE_PAYMENT = frozenset({OrderStatus.PENDING_PAYMENT, OrderStatus.CANCELLED})


def awaiting_payment(order: OrderRecord) -> bool:
    return is_async_payment_method(order.payment_method) and order.payment_status != PaymentStatus.PAID


def check_transition(order: OrderRecord, target: OrderStatus):
    """Raises ConflictError unless `order` may move to `target` right now."""
    if awaiting_payment(order) and target not in ALLOWED_BEFORE_PAYMENT:
        raise ConflictError("Cannot move QRPH order status until payment is marked paid.")

    current = order.status
    if current.is_terminal:
        raise ConflictError(f"Order is already {current.label}.")
    if target == current:
        raise ConflictError(f"Order is already {target.label}.")
    if target is OrderStatus.CANCELLED or target == current.next_status():
        return
    raise ConflictError(f"Cannot move order from {current.label} to {target.label}.")


class OrderLifecycleManager:
    def __init__(self, orders: IOrderRepository, products: IProductRepository,
                 payments: IPaymentRepository, clock: Callable[[], datetime] = None):
        self.orders = orders
        self.products = products
        self.payments = payments
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def advance_status(self, order_code: str, requested_status, actor: ProfileRecord) -> OrderRecord:
        target = OrderStatus.parse(requested_status)
        order = self.orders.find_by_code(order_code)
        if not order:
            raise NotFoundError("Order not found.")

        check_transition(order, target)

        # Conditional on the status we just checked, so a concurrent change loses cleanly.
        updated = self.orders.update_status(order.id, target, expected=order.status)
        if updated is None:
            raise ConflictError("Order status changed concurrently; reload and try again.")

        self.orders.insert_event(StatusEventDraft(
            order_id=order.id,
            status=target,
            note=f"Status updated to {target.label} by {actor.role}.",
            changed_by=actor.user_id,
        ))
        logger.info("Order %s: %s -> %s by %s (%s)",
                    order.order_code, order.status.value, target.value, actor.user_id, actor.role)
        return updated

    def confirm_payment_from_webhook(self, order_code: Optional[str], checkout_session_id: Optional[str],
                                     payment_id: Optional[str], event_id: str,
                                     raw_payload: Dict[str, Any]) -> Dict[str, bool]:
        """
        Applies a paid event once. Returns `duplicate` for an event id seen
        before and `already_paid` for a new event on an order that is paid.
        """
        if self.payments.exists_for_event(event_id):
            logger.info("Webhook event %s already processed; skipping", event_id)
            return {"duplicate": True, "already_paid": False}

        order = self.orders.find_by_code(order_code) if order_code else None
        if order is None:
            order = self.orders.find_by_checkout_session(checkout_session_id)
        if order is None:
            raise NotFoundError("Order not found for webhook.")

        # The unique event id is the claim; a concurrent redelivery loses here.
        if event_id and not self.payments.record_event(order.id, event_id, raw_payload):
            logger.info("Webhook event %s claimed by a concurrent delivery; skipping", event_id)
            return {"duplicate": True, "already_paid": False}

        if order.payment_status == PaymentStatus.PAID:
            logger.info("Order %s already paid; event %s recorded only", order.order_code, event_id)
            return {"duplicate": False, "already_paid": True}

        try:
            self._apply_payment(order, checkout_session_id, payment_id, event_id, raw_payload)
        except Exception:
            # Release the claim; the gateway retries failed deliveries.
            if event_id:
                self.payments.forget_event(event_id)
            raise
        return {"duplicate": False, "already_paid": False}

    def _apply_payment(self, order: OrderRecord, checkout_session_id: Optional[str],
                       payment_id: Optional[str], event_id: str, raw_payload: Dict[str, Any]):
        session_ref = checkout_session_id or order.paymongo_checkout_session_id
        cancelled = order.status is OrderStatus.CANCELLED

        # The order's paid flag is written last; steps before it are safe to repeat.
        if cancelled:
            logger.warning("Order %s was paid after cancellation (event %s); stock untouched, refund needed",
                           order.order_code, event_id)
        elif not self.orders.has_event_note(order.id, STOCK_MARKER_NOTE):
            self._deduct_stock(order)
            self.orders.insert_event(StatusEventDraft(
                order_id=order.id, status=OrderStatus.ORDER_PLACED, note=STOCK_MARKER_NOTE,
            ))
            logger.info("Stock deducted for order %s", order.order_code)

        self.payments.mark_paid(order.id, event_id, session_ref, payment_id, raw_payload)
        self.orders.mark_paid(order.id, self.clock(), session_ref, payment_id)
        self.orders.insert_event(StatusEventDraft(
            order_id=order.id,
            status=OrderStatus.CANCELLED if cancelled else OrderStatus.ORDER_PLACED,
            note=PAYMENT_CONFIRMED_NOTE,
        ))
        logger.info("Order %s marked paid (event %s, payment %s)", order.order_code, event_id, payment_id)

    def _deduct_stock(self, order: OrderRecord):
        for item in self.orders.list_items([order.id]):
            if not item.product_id or item.qty <= 0:
                continue
            product = self.products.find_by_id(item.product_id)
            if product is None:
                logger.warning("Order %s: product %s no longer exists; stock not deducted",
                               order.order_code, item.sku)
                continue
            self.products.update_stock(product.id, deduct_stock(product.stock_cases, item.qty))
