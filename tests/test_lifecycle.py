from datetime import datetime, timezone

import pytest

from conftest import CountingRng
from jazjo.application.catalog import CatalogReader
from jazjo.application.lifecycle import (
    PAYMENT_CONFIRMED_NOTE,
    STOCK_MARKER_NOTE,
    OrderLifecycleManager,
    check_transition,
)
from jazjo.application.order_builder import OrderBuilder
from jazjo.core.errors import ConflictError, NotFoundError, UpstreamError, ValidationError
from jazjo.domain.models import Payment
from jazjo.domain.schemas import CartItemIn, StatusEventDraft
from jazjo.domain.status import OrderStatus, PaymentStatus

PAID_AT = datetime(2025, 4, 14, 2, 0, tzinfo=timezone.utc)


@pytest.fixture
def builder(products, orders, payments, gateway, test_settings):
    return OrderBuilder(CatalogReader(products), orders, payments, gateway,
                        settings=test_settings, rng=CountingRng())


@pytest.fixture
def lifecycle(orders, products, payments):
    return OrderLifecycleManager(orders, products, payments, clock=lambda: PAID_AT)


def place(builder, customer, payment_method, qty=2):
    return builder.create_order("Cora Cruz", "09170000000", "12 Mabini St", payment_method,
                                [CartItemIn(sku="P001", qty=qty)], customer).order


def confirm(lifecycle, order, event_id="evt_1", session_id=None, payment_id="pay_1", use_code=True):
    return lifecycle.confirm_payment_from_webhook(
        order_code=order.order_code if use_code else None,
        checkout_session_id=session_id or order.paymongo_checkout_session_id,
        payment_id=payment_id,
        event_id=event_id,
        raw_payload={"data": {"id": event_id}},
    )


class TestAdvanceStatus:

    def test_walks_the_delivery_chain(self, builder, lifecycle, customer, staff, orders):
        order = place(builder, customer, "COD")
        for label in ("Preparing", "In Transit", "Out for Delivery", "Delivered"):
            updated = lifecycle.advance_status(order.order_code, label, staff)
            assert updated.status.label == label

        events = orders.list_events([order.id])
        assert events[-1].note == "Status updated to Delivered by staff."
        assert events[-1].changed_by == staff.user_id
        assert len(events) == 5

    def test_skipping_a_step_is_rejected(self, builder, lifecycle, customer, staff):
        order = place(builder, customer, "COD")
        with pytest.raises(ConflictError, match="Cannot move order from Order Placed to In Transit."):
            lifecycle.advance_status(order.order_code, "in_transit", staff)

    def test_same_status_is_rejected(self, builder, lifecycle, customer, staff):
        order = place(builder, customer, "COD")
        with pytest.raises(ConflictError, match="Order is already Order Placed."):
            lifecycle.advance_status(order.order_code, "Order Placed", staff)

    def test_cancel_from_any_open_state(self, builder, lifecycle, customer, admin):
        order = place(builder, customer, "COD")
        lifecycle.advance_status(order.order_code, "Preparing", admin)
        updated = lifecycle.advance_status(order.order_code, "Cancelled", admin)
        assert updated.status is OrderStatus.CANCELLED

    def test_terminal_orders_do_not_move(self, builder, lifecycle, customer, admin):
        order = place(builder, customer, "COD")
        lifecycle.advance_status(order.order_code, "cancelled", admin)
        with pytest.raises(ConflictError, match="Order is already Cancelled."):
            lifecycle.advance_status(order.order_code, "Preparing", admin)

    def test_unknown_order(self, lifecycle, staff):
        with pytest.raises(NotFoundError, match="Order not found."):
            lifecycle.advance_status("ORD-19990101-000", "Preparing", staff)

    def test_invalid_status(self, builder, lifecycle, customer, staff):
        order = place(builder, customer, "COD")
        with pytest.raises(ValidationError, match="Invalid status."):
            lifecycle.advance_status(order.order_code, "Shipped", staff)

    def test_concurrent_change_loses_cleanly(self, builder, lifecycle, customer, staff, orders, monkeypatch):
        stale = place(builder, customer, "COD")
        # Another request cancels the order between our read and our write.
        orders.update_status(stale.id, OrderStatus.CANCELLED)
        monkeypatch.setattr(orders, "find_by_code", lambda code: stale)

        check_transition(stale, OrderStatus.PREPARING)
        with pytest.raises(ConflictError, match="changed concurrently"):
            lifecycle.advance_status(stale.order_code, "Preparing", staff)

        monkeypatch.undo()
        assert orders.find_by_code(stale.order_code).status is OrderStatus.CANCELLED
        assert len(orders.list_events([stale.id])) == 1


class TestPaymentGuard:

    def test_unpaid_qrph_order_cannot_advance(self, builder, lifecycle, customer, staff):
        order = place(builder, customer, "QRPH")
        with pytest.raises(ConflictError, match="Cannot move QRPH order status until payment is marked paid."):
            lifecycle.advance_status(order.order_code, "Preparing", staff)

    def test_unpaid_qrph_order_can_be_cancelled(self, builder, lifecycle, customer, staff):
        order = place(builder, customer, "QRPH")
        updated = lifecycle.advance_status(order.order_code, "Cancelled", staff)
        assert updated.status is OrderStatus.CANCELLED

    def test_paid_qrph_order_moves_on(self, builder, lifecycle, customer, staff, products, orders):
        order = place(builder, customer, "QRPH")
        with pytest.raises(ConflictError):
            lifecycle.advance_status(order.order_code, "Preparing", staff)

        assert confirm(lifecycle, order) == {"duplicate": False, "already_paid": False}

        paid = orders.find_by_code(order.order_code)
        assert paid.status is OrderStatus.ORDER_PLACED
        assert paid.payment_status is PaymentStatus.PAID
        assert paid.paymongo_payment_id == "pay_1"
        assert paid.paid_at is not None
        assert products.find_by_id("prod-1").stock_cases == 18

        assert lifecycle.advance_status(order.order_code, "Preparing", staff).status is OrderStatus.PREPARING


class TestConfirmPayment:

    def test_records_payment_and_audit_notes(self, builder, lifecycle, customer, orders, session_factory):
        order = place(builder, customer, "QRPH")
        confirm(lifecycle, order, event_id="evt_9", payment_id="pay_9")

        notes = [e.note for e in orders.list_events([order.id])]
        assert notes[-2:] == [STOCK_MARKER_NOTE, PAYMENT_CONFIRMED_NOTE]

        session = session_factory()
        payment = session.query(Payment).filter(Payment.order_id == order.id).one()
        assert payment.status == "paid"
        assert payment.provider_event_id == "evt_9"
        assert payment.provider_payment_id == "pay_9"
        assert payment.provider_checkout_session_id == "cs_test_1"
        assert payment.raw_payload == {"data": {"id": "evt_9"}}
        session.close()

    def test_same_event_twice_is_a_no_op(self, builder, lifecycle, customer, products, orders):
        order = place(builder, customer, "QRPH")
        confirm(lifecycle, order)
        events_after_first = len(orders.list_events([order.id]))

        assert confirm(lifecycle, order) == {"duplicate": True, "already_paid": False}
        assert products.find_by_id("prod-1").stock_cases == 18
        assert len(orders.list_events([order.id])) == events_after_first

    def test_new_event_for_a_paid_order_does_not_deduct_again(self, builder, lifecycle, customer, products, orders):
        order = place(builder, customer, "QRPH")
        confirm(lifecycle, order, event_id="evt_1")
        assert confirm(lifecycle, order, event_id="evt_2") == {"duplicate": False, "already_paid": True}

        assert products.find_by_id("prod-1").stock_cases == 18
        notes = [e.note for e in orders.list_events([order.id])]
        assert notes.count(STOCK_MARKER_NOTE) == 1

    def test_marker_note_blocks_deduction(self, builder, lifecycle, customer, products, orders):
        order = place(builder, customer, "QRPH")
        orders.insert_event(StatusEventDraft(order_id=order.id, status=OrderStatus.ORDER_PLACED,
                                             note=STOCK_MARKER_NOTE))
        confirm(lifecycle, order)
        assert products.find_by_id("prod-1").stock_cases == 20

    def test_order_found_by_checkout_session(self, builder, lifecycle, customer, orders):
        order = place(builder, customer, "QRPH")
        confirm(lifecycle, order, use_code=False)
        assert orders.find_by_code(order.order_code).payment_status is PaymentStatus.PAID

    def test_unknown_order(self, lifecycle):
        with pytest.raises(NotFoundError, match="Order not found for webhook."):
            lifecycle.confirm_payment_from_webhook(None, "cs_missing", "pay_1", "evt_1", {})

    def test_stock_floors_at_zero(self, builder, lifecycle, customer, products, session_factory):
        order = place(builder, customer, "QRPH", qty=15)
        products.update_stock("prod-1", 5)
        confirm(lifecycle, order)
        assert products.find_by_id("prod-1").stock_cases == 0

    def test_replayed_event_after_staff_progress_changes_nothing(self, builder, lifecycle, customer, staff,
                                                                  products, orders, payments):
        order = place(builder, customer, "QRPH")
        assert confirm(lifecycle, order, event_id="evt_A") == {"duplicate": False, "already_paid": False}
        lifecycle.advance_status(order.order_code, "Preparing", staff)
        events_before = len(orders.list_events([order.id]))

        # A second paid event arrives, then PayMongo redelivers the first one.
        assert confirm(lifecycle, order, event_id="evt_B") == {"duplicate": False, "already_paid": True}
        assert confirm(lifecycle, order, event_id="evt_A") == {"duplicate": True, "already_paid": False}

        current = orders.find_by_code(order.order_code)
        assert current.status is OrderStatus.PREPARING
        assert current.payment_status is PaymentStatus.PAID
        assert products.find_by_id("prod-1").stock_cases == 18
        assert len(orders.list_events([order.id])) == events_before
        assert payments.exists_for_event("evt_A")
        assert payments.exists_for_event("evt_B")

    def test_payment_for_a_cancelled_order_keeps_it_cancelled(self, builder, lifecycle, customer, staff,
                                                              products, orders):
        order = place(builder, customer, "QRPH")
        lifecycle.advance_status(order.order_code, "Cancelled", staff)

        assert confirm(lifecycle, order) == {"duplicate": False, "already_paid": False}

        current = orders.find_by_code(order.order_code)
        assert current.status is OrderStatus.CANCELLED
        assert current.payment_status is PaymentStatus.PAID
        assert products.find_by_id("prod-1").stock_cases == 20
        events = orders.list_events([order.id])
        assert STOCK_MARKER_NOTE not in [e.note for e in events]
        assert events[-1].note == PAYMENT_CONFIRMED_NOTE
        assert events[-1].status is OrderStatus.CANCELLED

    def test_failed_processing_releases_the_event(self, builder, lifecycle, customer, products, orders,
                                                  payments, monkeypatch):
        order = place(builder, customer, "QRPH")

        def broken_update(product_id, stock):
            raise UpstreamError("Database error: connection reset")

        monkeypatch.setattr(products, "update_stock", broken_update)
        with pytest.raises(UpstreamError):
            confirm(lifecycle, order)

        assert not payments.exists_for_event("evt_1")
        assert orders.find_by_code(order.order_code).payment_status is PaymentStatus.PENDING

        monkeypatch.undo()
        assert confirm(lifecycle, order) == {"duplicate": False, "already_paid": False}
        assert products.find_by_id("prod-1").stock_cases == 18
        assert orders.find_by_code(order.order_code).payment_status is PaymentStatus.PAID
