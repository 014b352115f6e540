"""
SQLAlchemy adapters for the repository interfaces.

Used with STORE_BACKEND=sql (Postgres in deployment, SQLite in tests). Each
call runs in its own short session, mirroring one REST round trip.
"""
import enum
import logging
from contextlib import contextmanager
from typing import Iterable, List, Optional, Sequence

from sqlalchemy import asc, desc
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from jazjo.core.errors import ConflictError, UpstreamError
from jazjo.domain.models import Order, OrderItem, OrderStatusEvent, Payment, PaymentEvent, Product, Profile
from jazjo.domain.schemas import (
    OrderItemRecord,
    OrderRecord,
    PaymentRecord,
    ProductRecord,
    ProfileRecord,
    StatusEventRecord,
)
from jazjo.domain.status import OrderStatus, PaymentStatus
from jazjo.interfaces.IOrderRepository import IOrderRepository
from jazjo.interfaces.IPaymentRepository import IPaymentRepository
from jazjo.interfaces.IProductRepository import IProductRepository
from jazjo.interfaces.IProfileRepository import IProfileRepository

logger = logging.getLogger(__name__)


def _columns(draft) -> dict:
    """Draft fields as column values; enums are stored by their code."""
    return {k: (v.value if isinstance(v, enum.Enum) else v) for k, v in draft.model_dump().items()}


class SqlRepository:
    def __init__(self, session_factory):
        self.session_factory = session_factory

    @contextmanager
    def _session(self):
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except IntegrityError as e:
            session.rollback()
            logger.warning("Constraint violation in %s: %s", type(self).__name__, e.orig)
            raise ConflictError("Conflicting record already exists.") from e
        except SQLAlchemyError as e:
            session.rollback()
            logger.error("DB error in %s", type(self).__name__, exc_info=True)
            raise UpstreamError(f"Database error: {e}") from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


class SqlProductRepository(SqlRepository, IProductRepository):

    def list_active(self) -> List[ProductRecord]:
        with self._session() as session:
            rows = session.query(Product).filter(Product.is_active.is_(True)).order_by(asc(Product.name)).all()
            return [ProductRecord.model_validate(r) for r in rows]

    def find_by_sku_in(self, skus: Iterable[str]) -> List[ProductRecord]:
        skus = list(skus)
        if not skus:
            return []
        with self._session() as session:
            rows = session.query(Product).filter(Product.sku.in_(skus)).all()
            return [ProductRecord.model_validate(r) for r in rows]

    def find_by_id(self, product_id: str) -> Optional[ProductRecord]:
        with self._session() as session:
            row = session.get(Product, product_id)
            return ProductRecord.model_validate(row) if row else None

    def update_stock(self, product_id: str, stock_cases: int) -> None:
        with self._session() as session:
            session.query(Product).filter(Product.id == product_id).update({"stock_cases": stock_cases})


class SqlOrderRepository(SqlRepository, IOrderRepository):

    def insert(self, draft) -> OrderRecord:
        with self._session() as session:
            row = Order(**_columns(draft))
            session.add(row)
            session.flush()
            return OrderRecord.model_validate(row)

    def delete(self, order_id: str) -> None:
        with self._session() as session:
            session.query(Order).filter(Order.id == order_id).delete()

    def find_by_code(self, order_code: str) -> Optional[OrderRecord]:
        with self._session() as session:
            row = session.query(Order).filter(Order.order_code == order_code).first()
            return OrderRecord.model_validate(row) if row else None

    def find_by_checkout_session(self, session_id: str) -> Optional[OrderRecord]:
        if not session_id:
            return None
        with self._session() as session:
            row = session.query(Order).filter(Order.paymongo_checkout_session_id == session_id).first()
            return OrderRecord.model_validate(row) if row else None

    def list_all(self) -> List[OrderRecord]:
        with self._session() as session:
            rows = session.query(Order).order_by(desc(Order.created_at)).all()
            return [OrderRecord.model_validate(r) for r in rows]

    def list_for_user(self, user_id: str) -> List[OrderRecord]:
        with self._session() as session:
            rows = (
                session.query(Order)
                .filter(Order.user_id == user_id)
                .order_by(desc(Order.created_at))
                .all()
            )
            return [OrderRecord.model_validate(r) for r in rows]

    def update_status(self, order_id, status, expected=None) -> Optional[OrderRecord]:
        with self._session() as session:
            query = session.query(Order).filter(Order.id == order_id)
            if expected is not None:
                query = query.filter(Order.status == expected.value)
            changed = query.update({"status": status.value}, synchronize_session=False)
            if not changed:
                return None
            row = session.get(Order, order_id)
            return OrderRecord.model_validate(row)

    def set_checkout_session(self, order_id: str, session_id: str) -> None:
        with self._session() as session:
            session.query(Order).filter(Order.id == order_id).update(
                {"paymongo_checkout_session_id": session_id}
            )

    def mark_paid(self, order_id, paid_at, checkout_session_id, payment_id) -> None:
        with self._session() as session:
            query = session.query(Order).filter(Order.id == order_id)
            query.update({
                "payment_status": PaymentStatus.PAID.value,
                "paid_at": paid_at,
                "paymongo_checkout_session_id": checkout_session_id,
                "paymongo_payment_id": payment_id,
            }, synchronize_session=False)
            query.filter(Order.status == OrderStatus.PENDING_PAYMENT.value).update(
                {"status": OrderStatus.ORDER_PLACED.value}, synchronize_session=False
            )

    def insert_items(self, items) -> None:
        with self._session() as session:
            session.add_all([OrderItem(**_columns(item)) for item in items])

    def list_items(self, order_ids: Sequence[str]) -> List[OrderItemRecord]:
        if not order_ids:
            return []
        with self._session() as session:
            rows = (
                session.query(OrderItem)
                .filter(OrderItem.order_id.in_(list(order_ids)))
                .order_by(asc(OrderItem.created_at), asc(OrderItem.id))
                .all()
            )
            return [OrderItemRecord.model_validate(r) for r in rows]

    def delete_items(self, order_id: str) -> None:
        with self._session() as session:
            session.query(OrderItem).filter(OrderItem.order_id == order_id).delete()

    def insert_event(self, event) -> None:
        with self._session() as session:
            session.add(OrderStatusEvent(**_columns(event)))

    def list_events(self, order_ids: Sequence[str]) -> List[StatusEventRecord]:
        if not order_ids:
            return []
        with self._session() as session:
            rows = (
                session.query(OrderStatusEvent)
                .filter(OrderStatusEvent.order_id.in_(list(order_ids)))
                .order_by(asc(OrderStatusEvent.created_at), asc(OrderStatusEvent.id))
                .all()
            )
            return [StatusEventRecord.model_validate(r) for r in rows]

    def has_event_note(self, order_id: str, note: str) -> bool:
        with self._session() as session:
            row = (
                session.query(OrderStatusEvent.id)
                .filter(OrderStatusEvent.order_id == order_id, OrderStatusEvent.note == note)
                .first()
            )
            return row is not None

    def delete_events(self, order_id: str) -> None:
        with self._session() as session:
            session.query(OrderStatusEvent).filter(OrderStatusEvent.order_id == order_id).delete()


class SqlPaymentRepository(SqlRepository, IPaymentRepository):

    def insert(self, draft) -> PaymentRecord:
        with self._session() as session:
            row = Payment(**_columns(draft))
            session.add(row)
            session.flush()
            return PaymentRecord.model_validate(row)

    def exists_for_event(self, event_id: str) -> bool:
        if not event_id:
            return False
        with self._session() as session:
            return (
                session.query(PaymentEvent.id).filter(PaymentEvent.event_id == event_id).first() is not None
            )

    def record_event(self, order_id, event_id, raw_payload) -> bool:
        try:
            with self._session() as session:
                session.add(PaymentEvent(event_id=event_id, order_id=order_id, raw_payload=raw_payload))
        except ConflictError:
            return False
        return True

    def forget_event(self, event_id: str) -> None:
        with self._session() as session:
            session.query(PaymentEvent).filter(PaymentEvent.event_id == event_id).delete()

    def set_checkout_session(self, order_id: str, session_id: str) -> None:
        with self._session() as session:
            session.query(Payment).filter(Payment.order_id == order_id).update(
                {"provider_checkout_session_id": session_id}
            )

    def mark_paid(self, order_id, event_id, checkout_session_id, payment_id, raw_payload) -> None:
        with self._session() as session:
            session.query(Payment).filter(Payment.order_id == order_id).update({
                "status": PaymentStatus.PAID.value,
                "provider_event_id": event_id,
                "provider_checkout_session_id": checkout_session_id,
                "provider_payment_id": payment_id,
                "raw_payload": raw_payload,
            }, synchronize_session=False)

    def delete_for_order(self, order_id: str) -> None:
        with self._session() as session:
            session.query(Payment).filter(Payment.order_id == order_id).delete()


class SqlProfileRepository(SqlRepository, IProfileRepository):

    def find_by_user_id(self, user_id: str) -> Optional[ProfileRecord]:
        with self._session() as session:
            row = session.get(Profile, user_id)
            return ProfileRecord.model_validate(row) if row else None

    def find_by_email(self, email: str) -> Optional[ProfileRecord]:
        with self._session() as session:
            row = session.query(Profile).filter(Profile.email == email).first()
            return ProfileRecord.model_validate(row) if row else None

    def list_all(self) -> List[ProfileRecord]:
        with self._session() as session:
            return [ProfileRecord.model_validate(r) for r in session.query(Profile).all()]

    def update(self, user_id: str, patch) -> Optional[ProfileRecord]:
        with self._session() as session:
            row = session.get(Profile, user_id)
            if row is None:
                return None
            for key, value in patch.items():
                setattr(row, key, value)
            session.flush()
            return ProfileRecord.model_validate(row)
