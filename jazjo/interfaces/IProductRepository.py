from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

from jazjo.domain.schemas import ProductRecord


class IProductRepository(ABC):
    @abstractmethod
    def list_active(self) -> List[ProductRecord]:
        """Active products ordered by name."""
        pass

    @abstractmethod
    def find_by_sku_in(self, skus: Iterable[str]) -> List[ProductRecord]:
        """Products for the given SKUs, active or not."""
        pass

    @abstractmethod
    def find_by_id(self, product_id: str) -> Optional[ProductRecord]:
        pass

    @abstractmethod
    def update_stock(self, product_id: str, stock_cases: int) -> None:
        pass
