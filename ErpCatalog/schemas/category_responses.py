"""Response models returned by the category hierarchy engine."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field


class CategoryResponse(BaseModel):
    """A single category with its position in the hierarchy."""
    id: str
    tenant_id: str
    name: str
    description: Optional[str] = None
    notes: Optional[str] = None
    parent_id: Optional[str] = None
    full_path: str
    hierarchy_depth: int = 0
    product_count: int = 0
    version: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CategoryNode(BaseModel):
    """Tree node: a category with its nested subcategories."""
    id: str
    name: str
    description: Optional[str] = None
    notes: Optional[str] = None
    parent_id: Optional[str] = None
    product_count: int = 0
    version: int = 0
    subcategories: List[CategoryNode] = Field(default_factory=list)


class CategoryTreeResponse(BaseModel):
    root_categories: List[CategoryNode] = Field(default_factory=list)
    total_categories: int = 0
    max_depth: int = 0


class CategoryStatistics(BaseModel):
    category_id: str
    category_name: str
    direct_product_count: int = 0
    total_product_count: int = 0  # Including all subcategories
    subcategory_count: int = 0
    hierarchy_depth: int = 0
    total_value: Decimal = Decimal("0")
    total_value_formatted: str = ""
    low_stock_product_count: int = 0
    out_of_stock_product_count: int = 0


class CategorySystemStatistics(BaseModel):
    total_categories: int = 0
    root_categories: int = 0
    max_hierarchy_depth: int = 0
    categories_with_products: int = 0
    empty_categories_count: int = 0
    top_categories_by_product_count: List[CategoryStatistics] = Field(default_factory=list)
    top_categories_by_value: List[CategoryStatistics] = Field(default_factory=list)


CategoryNode.model_rebuild()
