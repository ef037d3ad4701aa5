"""
Persistence interfaces consumed by the category hierarchy engine.

The engine only talks to these protocols; ``CategoryRepository`` and
``ProductRepository`` are the SQL implementations shipped with the package.
Every method is implicitly scoped to the tenant the implementation was bound to.
"""

from decimal import Decimal
from typing import Protocol, List, Optional, Dict, Any

from ErpCatalog.models.category_models import CategoryModel


class CategoryStore(Protocol):
    """
    Tenant-bound persistence of category records.
    """

    def get_by_id(self, id: str) -> Optional[CategoryModel]:
        """Return the category, or None if it is missing or owned by another tenant."""
        ...

    def exists(self, id: str) -> bool:
        ...

    def get_all(self) -> List[CategoryModel]:
        ...

    def count(self) -> int:
        ...

    def get_children(self, parent_id: Optional[str]) -> List[CategoryModel]:
        """
        Direct children of ``parent_id`` ordered by name; ``None`` returns the roots.
        """
        ...

    def count_children(self, parent_id: Optional[str]) -> int:
        ...

    def find_by_name(self, name: str, parent_id: Optional[str]) -> Optional[CategoryModel]:
        """Case-insensitive lookup within one sibling group."""
        ...

    def is_name_available(self, name: str, parent_id: Optional[str], exclude_id: Optional[str] = None) -> bool:
        ...

    def count_with_products(self) -> int:
        ...

    def top_by_product_count(self, limit: int) -> List[CategoryModel]:
        ...

    def list_categories(self, offset: int, limit: int) -> List[CategoryModel]:
        ...

    def search(self, term: str, offset: int, limit: int) -> List[CategoryModel]:
        ...

    def create_category(self, category: CategoryModel) -> CategoryModel:
        """
        Persist a new category.

        Raises:
            DuplicateCategoryNameError: If the storage uniqueness constraint rejects it
        """
        ...

    def update_category(self, category_id: str, expected_version: int, changes: Dict[str, Any]) -> CategoryModel:
        """
        Apply ``changes`` only if the stored version still equals ``expected_version``.

        Raises:
            ConcurrencyConflictError: If the version moved on
            DuplicateCategoryNameError: If the storage uniqueness constraint rejects it
        """
        ...

    def touch(self, category_id: str, expected_version: int) -> None:
        """Bump the version of a category whose state a decision depended on."""
        ...

    def set_product_count(self, category_id: str, product_count: int) -> None:
        """Overwrite the cached product count without touching any other column."""
        ...

    def delete_category(self, category_id: str, expected_version: int) -> None:
        ...


class ProductCountSource(Protocol):
    """
    Tenant-bound view of products assigned to categories.
    """

    def count_products(self, category_id: str) -> int:
        """Number of products directly assigned to the category."""
        ...

    def product_counts_by_category(self) -> Dict[str, int]:
        """Direct product counts keyed by category id; categories without products are absent."""
        ...

    def inventory_value(self, category_id: str) -> Decimal:
        """Sum of selling price times current stock for the category's direct products."""
        ...

    def count_low_stock(self, category_id: str) -> int:
        ...

    def count_out_of_stock(self, category_id: str) -> int:
        ...

    def top_categories_by_value(self, limit: int) -> List[str]:
        """Category ids with positive inventory value, highest first."""
        ...
