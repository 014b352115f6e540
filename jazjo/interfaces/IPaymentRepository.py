from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from jazjo.domain.schemas import PaymentDraft, PaymentRecord


class IPaymentRepository(ABC):
    @abstractmethod
    def insert(self, draft: PaymentDraft) -> PaymentRecord:
        pass

    # --- Gateway event log ---
    @abstractmethod
    def exists_for_event(self, event_id: str) -> bool:
        """True once any delivery of this gateway event has been recorded."""
        pass

    @abstractmethod
    def record_event(self, order_id: str, event_id: str, raw_payload: Dict[str, Any]) -> bool:
        """Claims the event id; False when another delivery already holds it."""
        pass

    @abstractmethod
    def forget_event(self, event_id: str) -> None:
        pass

    @abstractmethod
    def set_checkout_session(self, order_id: str, session_id: str) -> None:
        pass

    @abstractmethod
    def mark_paid(self, order_id: str, event_id: str, checkout_session_id: Optional[str],
                  payment_id: Optional[str], raw_payload: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    def delete_for_order(self, order_id: str) -> None:
        pass
