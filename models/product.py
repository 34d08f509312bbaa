"""
models/product.py
-----------------
Domain model for products listed by companies.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

STATUS_IN_STOCK = "instock"
STATUS_LOW_STOCK = "lowstock"
STATUS_OUT_OF_STOCK = "outofstock"
PRODUCT_STATUSES = (STATUS_IN_STOCK, STATUS_LOW_STOCK, STATUS_OUT_OF_STOCK)

STATUS_LABELS = {
    STATUS_IN_STOCK: "✅ In stock",
    STATUS_LOW_STOCK: "⚠️ Low stock",
    STATUS_OUT_OF_STOCK: "❌ Out of stock",
}


@dataclass
class Product:
    """
    Represents a product listed by a company.

    Attributes:
        id: Database primary key (None for new records).
        company_id: Owning company.
        price: Unit price.
        quantity: Units in stock.
        status: One of PRODUCT_STATUSES.
        company_name: Filled in by joined queries, not stored.
    """
    company_id: int
    title: str
    price: Decimal
    quantity: int = 0
    description: Optional[str] = None
    status: str = STATUS_IN_STOCK
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    company_name: Optional[str] = None

    def is_available(self) -> bool:
        return self.quantity > 0 and self.status != STATUS_OUT_OF_STOCK

    def __str__(self) -> str:
        return f"#{self.id} {self.title} ({self.price:.2f}) x{self.quantity}"
