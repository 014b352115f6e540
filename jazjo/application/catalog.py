from typing import Iterable, List

from jazjo.core.config import settings
from jazjo.core.errors import ValidationError
from jazjo.domain.rules import stock_status_label
from jazjo.domain.schemas import ProductRecord
from jazjo.interfaces.IProductRepository import IProductRepository


class CatalogReader:
    """Read-only access to the product catalog."""

    def __init__(self, products: IProductRepository, low_stock_limit: int = None):
        self.products = products
        self.low_stock_limit = low_stock_limit if low_stock_limit is not None else settings.LOW_STOCK_LIMIT

    def list_active_products(self) -> List[ProductRecord]:
        return self.products.list_active()

    def find_products_by_skus(self, skus: Iterable[str]) -> List[ProductRecord]:
        """
        One product per requested SKU, active or not. A missing SKU means the
        cart references something deleted since it was built.
        """
        wanted = set(skus)
        found = [p for p in self.products.find_by_sku_in(sorted(wanted)) if p.sku in wanted]
        if {p.sku for p in found} != wanted or len(found) != len(wanted):
            raise ValidationError("Some products were not found.")
        return found

    def stock_status(self, product: ProductRecord) -> str:
        return stock_status_label(product.stock_cases, self.low_stock_limit)

    def to_view(self, product: ProductRecord) -> dict:
        return {
            "id": product.sku,
            "dbId": product.id,
            "sku": product.sku,
            "name": product.name,
            "category": product.category,
            "unit": product.unit,
            "price": float(product.price),
            "stockCases": product.stock_cases,
            "image_url": product.image_url or "",
            "status": self.stock_status(product),
        }
