import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Sequence
from urllib.parse import quote

import pytz

from jazjo.application.catalog import CatalogReader
from jazjo.application.saga import Saga
from jazjo.core.config import settings as default_settings
from jazjo.core.errors import ConflictError, ValidationError
from jazjo.domain.rules import (
    DEFAULT_PAYMENT_METHOD,
    delivery_fee,
    is_async_payment_method,
    make_order_code,
    to_centavos,
)
from jazjo.domain.schemas import (
    CartItemIn,
    CheckoutLineItem,
    OrderDraft,
    OrderItemDraft,
    OrderRecord,
    PaymentDraft,
    ProfileRecord,
    StatusEventDraft,
)
from jazjo.domain.status import OrderStatus, PaymentStatus
from jazjo.interfaces.IOrderRepository import IOrderRepository
from jazjo.interfaces.IPaymentGateway import IPaymentGateway
from jazjo.interfaces.IPaymentRepository import IPaymentRepository

logger = logging.getLogger(__name__)

SYNC_CREATED_NOTE = "Order created from web checkout."
ASYNC_CREATED_NOTE = "Order created. Awaiting QRPH payment."
PAYMENT_PROVIDER = "paymongo"
ORDER_CODE_ATTEMPTS = 5


@dataclass
class PlacedOrder:
    order: OrderRecord
    checkout_url: Optional[str] = None


def _positive_int(value) -> Optional[int]:
    """Cart quantities arrive as JSON numbers or strings; only whole cases count."""
    if isinstance(value, bool):
        return None
    try:
        number = Decimal(str(value).strip())
    except ArithmeticError:
        return None
    if not number.is_finite() or number <= 0 or number != number.to_integral_value():
        return None
    return int(number)


def merge_cart_items(items: Sequence[CartItemIn]) -> Dict[str, int]:
    """SKU -> total quantity, in first-seen order."""
    merged: Dict[str, int] = {}
    for item in items:
        sku = item.resolved_sku
        qty = _positive_int(item.qty)
        if not sku or qty is None:
            raise ValidationError("Invalid order item.")
        merged[sku] = merged.get(sku, 0) + qty
    return merged


class OrderBuilder:
    def __init__(self, catalog: CatalogReader, orders: IOrderRepository, payments: IPaymentRepository,
                 gateway: IPaymentGateway, settings=None, clock: Callable[[], datetime] = None,
                 rng=None):
        self.catalog = catalog
        self.orders = orders
        self.payments = payments
        self.gateway = gateway
        self.settings = settings or default_settings
        self.clock = clock or (lambda: datetime.now(pytz.timezone(self.settings.TIMEZONE)))
        self.rng = rng

    def create_order(self, customer_name: str, contact: str, address: str, payment_method: str,
                     items: Sequence[CartItemIn], requester: Optional[ProfileRecord]) -> PlacedOrder:
        customer_name = (customer_name or "").strip()
        contact = (contact or "").strip()
        address = (address or "").strip()
        payment_method = (payment_method or "").strip() or DEFAULT_PAYMENT_METHOD

        if not requester or not requester.user_id or not customer_name or not contact or not address or not items:
            raise ValidationError("Missing required order fields.")

        quantities = merge_cart_items(items)
        item_rows = self._price_items(quantities)

        subtotal = sum((row.line_total for row in item_rows), Decimal("0"))
        fee = delivery_fee(subtotal, self.settings.FREE_DELIVERY_THRESHOLD, self.settings.FLAT_DELIVERY_FEE)
        use_qrph = is_async_payment_method(payment_method)

        draft = OrderDraft(
            order_code=make_order_code(self.clock(), self.rng),
            user_id=requester.user_id,
            customer_name=customer_name,
            contact=contact,
            address=address,
            subtotal=subtotal,
            delivery_fee=fee,
            total=subtotal + fee,
            status=OrderStatus.PENDING_PAYMENT if use_qrph else OrderStatus.ORDER_PLACED,
            payment_status=PaymentStatus.PENDING,
            payment_provider=PAYMENT_PROVIDER if use_qrph else None,
            payment_method=payment_method,
        )

        saga = self._persistence_saga(draft, item_rows, use_qrph)
        context = saga.run()

        order = self.orders.find_by_code(context["order"].order_code) or context["order"]
        checkout = context.get("checkout")
        logger.info("Order %s created for %s (total %s, %s)",
                    order.order_code, requester.user_id, order.total, payment_method)
        return PlacedOrder(order=order, checkout_url=checkout.checkout_url if checkout else None)

    def _price_items(self, quantities: Dict[str, int]) -> List[OrderItemDraft]:
        """Snapshot rows priced from the catalog, never from the client."""
        by_sku = {p.sku: p for p in self.catalog.find_products_by_skus(quantities.keys())}
        rows = []
        for sku, qty in quantities.items():
            product = by_sku[sku]
            if not product.is_active:
                raise ValidationError(f"{sku} is inactive.")
            if product.stock_cases < qty:
                raise ValidationError(f"{product.name} has insufficient stock.")
            rows.append(OrderItemDraft(
                order_id="",  # filled in once the header exists
                product_id=product.id,
                sku=product.sku,
                name=product.name,
                category=product.category,
                unit=product.unit,
                image_url=product.image_url,
                unit_price=product.price,
                qty=qty,
                line_total=product.price * qty,
            ))
        return rows

    def _persistence_saga(self, draft: OrderDraft, item_rows: List[OrderItemDraft], use_qrph: bool) -> Saga:
        orders, payments = self.orders, self.payments

        def order_id(ctx) -> str:
            return ctx["order"].id

        saga = Saga(f"create-order for {draft.user_id}")
        saga.step(
            "order",
            lambda ctx: self._insert_order(draft),
            lambda ctx: orders.delete(order_id(ctx)),
        )
        saga.step(
            "items",
            lambda ctx: orders.insert_items([row.model_copy(update={"order_id": order_id(ctx)}) for row in item_rows]),
            lambda ctx: orders.delete_items(order_id(ctx)),
        )
        saga.step(
            "created_event",
            lambda ctx: orders.insert_event(StatusEventDraft(
                order_id=order_id(ctx),
                status=draft.status,
                note=ASYNC_CREATED_NOTE if use_qrph else SYNC_CREATED_NOTE,
            )),
            lambda ctx: orders.delete_events(order_id(ctx)),
        )
        saga.step(
            "payment",
            lambda ctx: payments.insert(PaymentDraft(
                order_id=order_id(ctx),
                provider=PAYMENT_PROVIDER,
                status=PaymentStatus.PENDING,
                amount=draft.total,
                currency=self.settings.CURRENCY,
            )),
            lambda ctx: payments.delete_for_order(order_id(ctx)),
        )
        if use_qrph:
            saga.step("checkout", lambda ctx: self._open_checkout(ctx["order"].order_code, item_rows))
            saga.step("link_checkout", lambda ctx: self._link_checkout(order_id(ctx), ctx["checkout"]))
        return saga

    def _insert_order(self, draft: OrderDraft) -> OrderRecord:
        """Inserts the header, drawing a fresh code while the current one is taken."""
        for attempt in range(ORDER_CODE_ATTEMPTS):
            if attempt:
                draft = draft.model_copy(update={"order_code": make_order_code(self.clock(), self.rng)})
            try:
                return self.orders.insert(draft)
            except ConflictError:
                logger.warning("Order code %s already taken (attempt %d of %d)",
                               draft.order_code, attempt + 1, ORDER_CODE_ATTEMPTS)
        raise ConflictError("Could not allocate an order code; try again.")

    def _open_checkout(self, order_code: str, item_rows: List[OrderItemDraft]):
        base = self.settings.base_url
        code = quote(order_code, safe="")
        line_items = [
            CheckoutLineItem(
                currency=self.settings.CURRENCY,
                amount=to_centavos(row.unit_price),
                name=row.name,
                quantity=row.qty,
            )
            for row in item_rows
        ]
        return self.gateway.create_checkout_session(
            order_code=order_code,
            line_items=line_items,
            success_url=f"{base}/customer/customer-orders.html?paid={code}",
            cancel_url=f"{base}/customer/customer-cart.html?cancelled={code}",
        )

    def _link_checkout(self, order_id: str, checkout) -> None:
        if not checkout or not checkout.session_id:
            logger.warning("Checkout session without id for order %s", order_id)
            return
        self.orders.set_checkout_session(order_id, checkout.session_id)
        self.payments.set_checkout_session(order_id, checkout.session_id)
