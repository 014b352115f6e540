from abc import ABC, abstractmethod
from typing import List

from jazjo.domain.schemas import CheckoutLineItem, CheckoutSession


class IPaymentGateway(ABC):
    @abstractmethod
    def create_checkout_session(self, order_code: str, line_items: List[CheckoutLineItem],
                                success_url: str, cancel_url: str) -> CheckoutSession:
        pass

    @abstractmethod
    def verify_webhook_signature(self, raw_body: bytes, signature_header: str) -> bool:
        pass
