"""
Product Models Module

Only the product columns the category hierarchy reads: the category
assignment, stock levels and selling price. Product CRUD lives elsewhere.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional
from sqlmodel import SQLModel, Field

from .category_models import utc_now


class ProductModel(SQLModel, table=True):
    """Product row as seen by category statistics."""

    id: Optional[str] = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    tenant_id: str = Field(index=True, max_length=50)
    sku: str = Field(max_length=50)
    name: str = Field(max_length=255)
    category_id: Optional[str] = Field(default=None, foreign_key="categorymodel.id", index=True)

    selling_price: Optional[Decimal] = Field(default=None, max_digits=19, decimal_places=4)
    current_stock: Decimal = Field(default=Decimal("0"), max_digits=19, decimal_places=4)
    min_stock_level: Decimal = Field(default=Decimal("0"), max_digits=19, decimal_places=4)
    active: bool = Field(default=True)

    created_at: datetime = Field(default_factory=utc_now)
