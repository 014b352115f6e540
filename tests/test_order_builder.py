from datetime import datetime
from decimal import Decimal

import pytest

from conftest import CUSTOMER_ID, CountingRng
from jazjo.application.catalog import CatalogReader
from jazjo.application.order_builder import (
    ASYNC_CREATED_NOTE,
    SYNC_CREATED_NOTE,
    OrderBuilder,
    merge_cart_items,
)
from jazjo.core.errors import ConflictError, UpstreamError, ValidationError
from jazjo.domain.models import Order, OrderItem, OrderStatusEvent, Payment, Product
from jazjo.domain.schemas import CartItemIn
from jazjo.domain.status import OrderStatus, PaymentStatus


@pytest.fixture
def builder(products, orders, payments, gateway, test_settings):
    return OrderBuilder(
        CatalogReader(products, low_stock_limit=10), orders, payments, gateway,
        settings=test_settings, clock=lambda: datetime(2025, 4, 14, 9, 30), rng=CountingRng(),
    )


def cart(*pairs):
    return [CartItemIn(sku=sku, qty=qty) for sku, qty in pairs]


def place(builder, customer, items, payment_method="COD", **overrides):
    fields = dict(customer_name="Cora Cruz", contact="09170000000", address="12 Mabini St")
    fields.update(overrides)
    return builder.create_order(payment_method=payment_method, items=items, requester=customer, **fields)


class TestSynchronousCheckout:

    def test_small_cart_pays_flat_delivery_fee(self, builder, customer, orders):
        placed = place(builder, customer, cart(("P001", 2)))

        order = placed.order
        assert order.order_code == "ORD-20250414-100"
        assert order.user_id == CUSTOMER_ID
        assert order.subtotal == Decimal("110")
        assert order.delivery_fee == Decimal("60")
        assert order.total == Decimal("170")
        assert order.status is OrderStatus.ORDER_PLACED
        assert order.payment_status is PaymentStatus.PENDING
        assert placed.checkout_url is None

        events = orders.list_events([order.id])
        assert [(e.status, e.note) for e in events] == [(OrderStatus.ORDER_PLACED, SYNC_CREATED_NOTE)]

    def test_item_snapshots_come_from_the_catalog(self, builder, customer, orders):
        placed = place(builder, customer, [CartItemIn(productId="P001", qty="3")])

        [item] = orders.list_items([placed.order.id])
        assert item.sku == "P001"
        assert item.product_id == "prod-1"
        assert item.name == "Ube Jam"
        assert item.unit_price == Decimal("55")
        assert item.qty == 3
        assert item.line_total == Decimal("165")

    def test_free_delivery_at_threshold(self, builder, customer):
        placed = place(builder, customer, cart(("P002", 2)))
        assert placed.order.subtotal == Decimal("800")
        assert placed.order.delivery_fee == Decimal("0")
        assert placed.order.total == Decimal("800")

    def test_totals_are_frozen_against_later_price_changes(self, builder, customer, orders, session_factory):
        placed = place(builder, customer, cart(("P001", 2)))

        session = session_factory()
        session.query(Product).filter(Product.sku == "P001").update({"price": Decimal("99")})
        session.commit()
        session.close()

        order = orders.find_by_code(placed.order.order_code)
        [item] = orders.list_items([order.id])
        assert order.total == Decimal("170")
        assert item.unit_price == Decimal("55")
        assert order.subtotal == sum(i.line_total for i in orders.list_items([order.id]))
        assert order.total == order.subtotal + order.delivery_fee

    def test_stock_is_not_touched_at_creation(self, builder, customer, products):
        place(builder, customer, cart(("P001", 2)))
        assert products.find_by_id("prod-1").stock_cases == 20

    def test_duplicate_skus_are_merged(self, builder, customer, orders):
        placed = place(builder, customer, cart(("P001", 1), ("P002", 1), ("P001", 2)))
        items = orders.list_items([placed.order.id])
        assert [(i.sku, i.qty) for i in items] == [("P001", 3), ("P002", 1)]


class TestValidation:

    @pytest.mark.parametrize("overrides", [
        {"customer_name": ""},
        {"contact": "   "},
        {"address": ""},
    ])
    def test_missing_fields(self, builder, customer, overrides):
        with pytest.raises(ValidationError, match="Missing required order fields."):
            place(builder, customer, cart(("P001", 1)), **overrides)

    def test_empty_cart(self, builder, customer):
        with pytest.raises(ValidationError, match="Missing required order fields."):
            place(builder, customer, [])

    def test_requires_a_requester(self, builder):
        with pytest.raises(ValidationError):
            place(builder, None, cart(("P001", 1)))

    @pytest.mark.parametrize("qty", [0, -1, 1.5, "abc", True, None])
    def test_invalid_quantity(self, builder, customer, qty):
        with pytest.raises(ValidationError, match="Invalid order item."):
            place(builder, customer, [CartItemIn(sku="P001", qty=qty)])

    def test_item_without_sku(self, builder, customer):
        with pytest.raises(ValidationError, match="Invalid order item."):
            place(builder, customer, [CartItemIn(qty=1)])

    def test_unknown_sku(self, builder, customer):
        with pytest.raises(ValidationError, match="Some products were not found."):
            place(builder, customer, cart(("P001", 1), ("P999", 1)))

    def test_inactive_product(self, builder, customer):
        with pytest.raises(ValidationError, match="P004 is inactive."):
            place(builder, customer, cart(("P004", 1)))

    def test_insufficient_stock(self, builder, customer):
        with pytest.raises(ValidationError, match="Coconut Vinegar has insufficient stock."):
            place(builder, customer, cart(("P002", 9)))

    def test_failed_validation_writes_nothing(self, builder, customer, session_factory):
        with pytest.raises(ValidationError):
            place(builder, customer, cart(("P001", 1), ("P003", 1)))
        session = session_factory()
        assert session.query(Order).count() == 0
        session.close()


class TestAsyncCheckout:

    def test_qrph_order_waits_for_payment(self, builder, customer, orders, gateway):
        placed = place(builder, customer, cart(("P001", 2)), payment_method="QRPH")

        order = orders.find_by_code(placed.order.order_code)
        assert order.status is OrderStatus.PENDING_PAYMENT
        assert order.payment_provider == "paymongo"
        assert order.paymongo_checkout_session_id == "cs_test_1"
        assert placed.checkout_url == "https://checkout.paymongo.test/cs_test_1"

        [session] = gateway.sessions
        assert session["order_code"] == order.order_code
        assert [(li.name, li.amount, li.quantity, li.currency) for li in session["line_items"]] == [
            ("Ube Jam", 5500, 2, "PHP"),
        ]
        assert session["success_url"] == f"http://shop.test/customer/customer-orders.html?paid={order.order_code}"
        assert session["cancel_url"] == f"http://shop.test/customer/customer-cart.html?cancelled={order.order_code}"

        events = orders.list_events([order.id])
        assert [e.note for e in events] == [ASYNC_CREATED_NOTE]

    def test_blank_payment_method_defaults_to_qrph(self, builder, customer):
        placed = place(builder, customer, cart(("P001", 1)), payment_method="")
        assert placed.order.payment_method == "QRPH"
        assert placed.order.status is OrderStatus.PENDING_PAYMENT

    def test_gateway_failure_rolls_back_every_write(self, builder, customer, gateway, orders, payments,
                                                     session_factory):
        gateway.fail = True
        with pytest.raises(UpstreamError):
            place(builder, customer, cart(("P001", 2)), payment_method="QRPH")

        assert orders.find_by_code("ORD-20250414-100") is None
        session = session_factory()
        assert session.query(Order).count() == 0
        assert session.query(OrderItem).count() == 0
        assert session.query(OrderStatusEvent).count() == 0
        assert session.query(Payment).count() == 0
        session.close()


class RepeatingRng:
    """Replays the given suffixes in order, then keeps returning the last one."""

    def __init__(self, *values):
        self.values = list(values)

    def randint(self, low, high):
        return self.values.pop(0) if len(self.values) > 1 else self.values[0]


class TestOrderCodes:

    def test_taken_code_is_redrawn(self, builder, customer, gateway):
        builder.rng = RepeatingRng(100, 100, 101)
        first = place(builder, customer, cart(("P001", 1)))
        second = place(builder, customer, cart(("P001", 1)), payment_method="QRPH")

        assert first.order.order_code == "ORD-20250414-100"
        assert second.order.order_code == "ORD-20250414-101"
        [session] = gateway.sessions
        assert session["order_code"] == "ORD-20250414-101"
        assert session["success_url"].endswith("paid=ORD-20250414-101")

    def test_gives_up_after_repeated_collisions(self, builder, customer, session_factory):
        builder.rng = RepeatingRng(100)
        place(builder, customer, cart(("P001", 1)))

        with pytest.raises(ConflictError, match="Could not allocate an order code"):
            place(builder, customer, cart(("P002", 1)))

        session = session_factory()
        assert session.query(Order).count() == 1
        assert session.query(OrderItem).count() == 1
        assert session.query(Payment).count() == 1
        session.close()


def test_merge_cart_items_keeps_first_seen_order():
    merged = merge_cart_items(cart(("B", 1), ("A", "2"), ("B", 4)))
    assert list(merged.items()) == [("B", 5), ("A", 2)]
