from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional, Sequence

from jazjo.domain.schemas import (
    OrderDraft,
    OrderItemDraft,
    OrderItemRecord,
    OrderRecord,
    StatusEventDraft,
    StatusEventRecord,
)
from jazjo.domain.status import OrderStatus


class IOrderRepository(ABC):
    # --- Order headers ---
    @abstractmethod
    def insert(self, draft: OrderDraft) -> OrderRecord:
        """Raises ConflictError when the order code is already taken."""
        pass

    @abstractmethod
    def delete(self, order_id: str) -> None:
        pass

    @abstractmethod
    def find_by_code(self, order_code: str) -> Optional[OrderRecord]:
        pass

    @abstractmethod
    def find_by_checkout_session(self, session_id: str) -> Optional[OrderRecord]:
        pass

    @abstractmethod
    def list_all(self) -> List[OrderRecord]:
        """Newest first."""
        pass

    @abstractmethod
    def list_for_user(self, user_id: str) -> List[OrderRecord]:
        """Newest first."""
        pass

    @abstractmethod
    def update_status(self, order_id: str, status: OrderStatus,
                      expected: Optional[OrderStatus] = None) -> Optional[OrderRecord]:
        """
        Writes the new status. When `expected` is given the write only applies
        if the stored status still equals it; returns None if nothing matched.
        """
        pass

    @abstractmethod
    def set_checkout_session(self, order_id: str, session_id: str) -> None:
        pass

    @abstractmethod
    def mark_paid(self, order_id: str, paid_at: datetime,
                  checkout_session_id: Optional[str], payment_id: Optional[str]) -> None:
        """Records the payment; only a pending_payment order moves to order_placed."""
        pass

    # --- Line items ---
    @abstractmethod
    def insert_items(self, items: Sequence[OrderItemDraft]) -> None:
        pass

    @abstractmethod
    def list_items(self, order_ids: Sequence[str]) -> List[OrderItemRecord]:
        pass

    @abstractmethod
    def delete_items(self, order_id: str) -> None:
        pass

    # --- Status audit log ---
    @abstractmethod
    def insert_event(self, event: StatusEventDraft) -> None:
        pass

    @abstractmethod
    def list_events(self, order_ids: Sequence[str]) -> List[StatusEventRecord]:
        """Chronological."""
        pass

    @abstractmethod
    def has_event_note(self, order_id: str, note: str) -> bool:
        pass

    @abstractmethod
    def delete_events(self, order_id: str) -> None:
        """Only used to compensate a failed order creation."""
        pass
