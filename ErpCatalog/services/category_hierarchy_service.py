"""
Category hierarchy engine.

Owns the tree-shape invariants of a tenant's product categories: the parent
graph stays acyclic, parents belong to the same tenant, sibling names are
unique case-insensitively and a category is only deleted once it is empty.
Each public method runs in its own session and transaction.
"""

import logging
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlmodel import Session

from ErpCatalog.config import Settings, get_settings
from ErpCatalog.exceptions import (
    CategoryInUseError,
    CategoryNotFoundError,
    CircularReferenceError,
    DuplicateCategoryNameError,
    ValidationError,
)
from ErpCatalog.models.category_models import (
    CATEGORY_DESCRIPTION_MAX_LENGTH,
    CATEGORY_NAME_MAX_LENGTH,
    CATEGORY_NOTES_MAX_LENGTH,
    CategoryCreate,
    CategoryModel,
    CategoryUpdate,
    normalize_category_name,
)
from ErpCatalog.repositories.category_repository import CategoryRepository
from ErpCatalog.repositories.interfaces import CategoryStore, ProductCountSource
from ErpCatalog.repositories.product_repository import ProductRepository
from ErpCatalog.schemas.category_responses import (
    CategoryResponse,
    CategoryStatistics,
    CategorySystemStatistics,
    CategoryTreeResponse,
)
from ErpCatalog.schemas.category_results import CategoryValidationResult
from ErpCatalog.services import category_tree
from ErpCatalog.services.base_service import BaseService
from ErpCatalog.services.tenant_context import TenantContext

# Configure logging
logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 500


class CategoryHierarchyService(BaseService):
    """
    Hierarchy engine for tenant-scoped product categories.

    Every operation takes the caller's ``TenantContext`` first; a category owned
    by another tenant behaves exactly like a missing one.
    """

    def __init__(self, engine_override=None, settings: Optional[Settings] = None):
        super().__init__(engine_override)
        self.settings = settings or get_settings()
        self.entity_name = "Category"

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _stores(self, session: Session, tenant: TenantContext) -> Tuple[CategoryRepository, ProductRepository]:
        return (
            CategoryRepository(session, tenant.tenant_id),
            ProductRepository(session, tenant.tenant_id),
        )

    def _require_category(self, store: CategoryStore, category_id: str) -> CategoryModel:
        category = store.get_by_id(category_id)
        if category is None:
            raise CategoryNotFoundError(f"Category not found with ID: {category_id}", category_id=category_id)
        return category

    def _require_parent(self, store: CategoryStore, parent_id: str) -> CategoryModel:
        parent = store.get_by_id(parent_id)
        if parent is None:
            raise CategoryNotFoundError(f"Parent category not found with ID: {parent_id}", category_id=parent_id)
        return parent

    def _validate_category_fields(self, name: Optional[str], description: Optional[str], notes: Optional[str]) -> str:
        """Check field limits and return the trimmed name."""
        self.validate_required_fields({"name": name}, ["name"])
        name = normalize_category_name(name)

        field_errors = {}
        if len(name) > CATEGORY_NAME_MAX_LENGTH:
            field_errors["name"] = f"Category name cannot exceed {CATEGORY_NAME_MAX_LENGTH} characters"
        if description is not None and len(description) > CATEGORY_DESCRIPTION_MAX_LENGTH:
            field_errors["description"] = (
                f"Category description cannot exceed {CATEGORY_DESCRIPTION_MAX_LENGTH} characters"
            )
        if notes is not None and len(notes) > CATEGORY_NOTES_MAX_LENGTH:
            field_errors["notes"] = f"Category notes cannot exceed {CATEGORY_NOTES_MAX_LENGTH} characters"

        if field_errors:
            raise ValidationError("Invalid category data", field_errors=field_errors)
        return name

    def _ensure_name_available(
        self, store: CategoryStore, name: str, parent_id: Optional[str], exclude_id: Optional[str] = None
    ) -> None:
        if not store.is_name_available(name, parent_id, exclude_id=exclude_id):
            raise DuplicateCategoryNameError(
                f"Category name '{name}' already exists at this level",
                category_name=name,
                parent_id=parent_id,
            )

    def _check_reparent(self, store: CategoryStore, category: CategoryModel, new_parent_id: Optional[str]) -> None:
        """
        Reject a reparent that would close a loop, then version-check every
        ancestor the decision was based on.
        """
        creates_cycle, visited = category_tree.would_create_cycle(store, category.id, new_parent_id)
        if creates_cycle:
            raise CircularReferenceError(
                f"Moving category '{category.name}' under {new_parent_id} would create a circular reference",
                category_id=category.id,
                new_parent_id=new_parent_id,
            )
        for ancestor in visited:
            store.touch(ancestor.id, ancestor.version)

    def _to_response(self, category: CategoryModel, ancestors: List[CategoryModel]) -> CategoryResponse:
        return CategoryResponse(
            id=category.id,
            tenant_id=category.tenant_id,
            name=category.name,
            description=category.description,
            notes=category.notes,
            parent_id=category.parent_id,
            full_path=category_tree.full_path(ancestors, category),
            hierarchy_depth=len(ancestors),
            product_count=category.product_count,
            version=category.version,
            created_at=category.created_at,
            updated_at=category.updated_at,
        )

    def _to_responses(self, store: CategoryStore, categories: List[CategoryModel]) -> List[CategoryResponse]:
        known: Dict[str, CategoryModel] = {c.id: c for c in categories}
        return [
            self._to_response(c, category_tree.ancestor_chain(store, c, known))
            for c in categories
        ]

    def _validate_page(self, offset: int, limit: int) -> None:
        field_errors = {}
        if offset < 0:
            field_errors["offset"] = "Offset cannot be negative"
        if limit < 1 or limit > MAX_PAGE_SIZE:
            field_errors["limit"] = f"Limit must be between 1 and {MAX_PAGE_SIZE}"
        if field_errors:
            raise ValidationError("Invalid pagination parameters", field_errors=field_errors)

    def format_value(self, value: Decimal) -> str:
        """Render an amount as e.g. ``EUR 1,234.50``."""
        return f"{self.settings.CURRENCY} {value:,.2f}"

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create_category(self, tenant: TenantContext, category_data: CategoryCreate) -> CategoryResponse:
        """
        Create a category as a root or under an existing parent.

        Args:
            tenant: The tenant the category belongs to
            category_data: Name, optional description, notes and parent id

        Returns:
            CategoryResponse: The stored category with its full path

        Raises:
            ValidationError: If the name is blank or a field is too long
            CategoryNotFoundError: If the parent does not exist in the tenant
            DuplicateCategoryNameError: If a sibling already uses the name
        """
        name = self._validate_category_fields(category_data.name, category_data.description, category_data.notes)
        parent_id = category_data.parent_id or None
        self.log_operation("create", self.entity_name, name)

        with self.get_session() as session:
            store, _ = self._stores(session, tenant)
            ancestors = []
            if parent_id is not None:
                parent = self._require_parent(store, parent_id)
                ancestors = category_tree.ancestor_chain(store, parent) + [parent]
            self._ensure_name_available(store, name, parent_id)

            category = store.create_category(
                CategoryModel(
                    tenant_id=tenant.tenant_id,
                    name=name,
                    description=category_data.description,
                    notes=category_data.notes,
                    parent_id=parent_id,
                )
            )
            response = self._to_response(category, ancestors)

        self.logger.info(f"Created category '{response.full_path}' ({response.id}) for tenant {tenant.tenant_id}")
        return response

    def update_category(self, tenant: TenantContext, category_id: str, category_data: CategoryUpdate) -> CategoryResponse:
        """
        Replace a category's name, description, notes and parent.

        A changed ``parent_id`` is a reparent and goes through the same cycle
        check as ``move_category``; ``parent_id=None`` makes the category a root.

        Raises:
            ValidationError: If the name is blank or a field is too long
            CategoryNotFoundError: If the category or the new parent does not exist
            CircularReferenceError: If the new parent is the category or one of its descendants
            DuplicateCategoryNameError: If a sibling at the target level already uses the name
            ConcurrencyConflictError: If the category or its new ancestors changed concurrently
        """
        name = self._validate_category_fields(category_data.name, category_data.description, category_data.notes)
        new_parent_id = category_data.parent_id or None
        self.log_operation("update", self.entity_name, category_id)

        with self.get_session() as session:
            store, _ = self._stores(session, tenant)
            category = self._require_category(store, category_id)

            if new_parent_id != category.parent_id:
                if new_parent_id is not None:
                    self._require_parent(store, new_parent_id)
                self._check_reparent(store, category, new_parent_id)
            self._ensure_name_available(store, name, new_parent_id, exclude_id=category.id)

            updated = store.update_category(
                category.id,
                category.version,
                {
                    "name": name,
                    "description": category_data.description,
                    "notes": category_data.notes,
                    "parent_id": new_parent_id,
                },
            )
            response = self._to_response(updated, category_tree.ancestor_chain(store, updated))

        self.logger.info(f"Updated category '{response.full_path}' ({response.id}) to version {response.version}")
        return response

    def delete_category(self, tenant: TenantContext, category_id: str) -> None:
        """
        Physically delete an empty category.

        Raises:
            CategoryNotFoundError: If the category does not exist
            CategoryInUseError: If it still has products or subcategories
            ConcurrencyConflictError: If the category changed concurrently
        """
        self.log_operation("delete", self.entity_name, category_id)

        with self.get_session() as session:
            store, products = self._stores(session, tenant)
            category = self._require_category(store, category_id)
            product_count, subcategory_count, errors = self._deletion_blockers(store, products, category)
            if errors:
                raise CategoryInUseError(
                    f"Cannot delete category '{category.name}': {'; '.join(errors)}",
                    category_id=category.id,
                    errors=errors,
                    product_count=product_count,
                    subcategory_count=subcategory_count,
                )
            store.delete_category(category.id, category.version)
            name = category.name

        self.logger.info(f"Deleted category '{name}' ({category_id}) for tenant {tenant.tenant_id}")

    def get_category(self, tenant: TenantContext, category_id: str) -> CategoryResponse:
        self.logger.debug(f"Retrieving category {category_id} for tenant {tenant.tenant_id}")
        with self.get_session() as session:
            store, _ = self._stores(session, tenant)
            category = self._require_category(store, category_id)
            return self._to_response(category, category_tree.ancestor_chain(store, category))

    def get_root_categories(self, tenant: TenantContext) -> List[CategoryResponse]:
        with self.get_session() as session:
            store, _ = self._stores(session, tenant)
            return self._to_responses(store, store.get_children(None))

    def list_categories(
        self, tenant: TenantContext, offset: int = 0, limit: int = DEFAULT_PAGE_SIZE
    ) -> List[CategoryResponse]:
        """One page of the tenant's categories in name order."""
        self._validate_page(offset, limit)
        with self.get_session() as session:
            store, _ = self._stores(session, tenant)
            return self._to_responses(store, store.list_categories(offset, limit))

    def search_categories(
        self, tenant: TenantContext, term: str, offset: int = 0, limit: int = DEFAULT_PAGE_SIZE
    ) -> List[CategoryResponse]:
        """Case-insensitive substring search over names and descriptions."""
        if term is None or not term.strip():
            raise ValidationError("Search term is required", missing_fields=["term"])
        self._validate_page(offset, limit)
        with self.get_session() as session:
            store, _ = self._stores(session, tenant)
            matches = store.search(term, offset, limit)
            self.logger.debug(f"Search '{term}' matched {len(matches)} categories for tenant {tenant.tenant_id}")
            return self._to_responses(store, matches)

    # ------------------------------------------------------------------
    # Hierarchy operations
    # ------------------------------------------------------------------

    def move_category(self, tenant: TenantContext, category_id: str, new_parent_id: Optional[str]) -> CategoryResponse:
        """
        Reparent a category, or make it a root with ``new_parent_id=None``.

        The tree is left unchanged when the move is rejected.

        Raises:
            CategoryNotFoundError: If the category or the new parent does not exist
            CircularReferenceError: If the new parent is the category or one of its descendants
            DuplicateCategoryNameError: If the destination already has a sibling with the same name
            ConcurrencyConflictError: If the category or an ancestor it is checked against changed
        """
        new_parent_id = new_parent_id or None
        self.log_operation("move", self.entity_name, category_id)

        with self.get_session() as session:
            store, _ = self._stores(session, tenant)
            category = self._require_category(store, category_id)
            if new_parent_id is not None and new_parent_id != category_id:
                self._require_parent(store, new_parent_id)

            if new_parent_id == category.parent_id:
                self.logger.debug(f"Category {category_id} already has parent {new_parent_id}, nothing to move")
                return self._to_response(category, category_tree.ancestor_chain(store, category))

            self._check_reparent(store, category, new_parent_id)
            self._ensure_name_available(store, category.name, new_parent_id, exclude_id=category.id)
            moved = store.update_category(category.id, category.version, {"parent_id": new_parent_id})
            response = self._to_response(moved, category_tree.ancestor_chain(store, moved))

        self.logger.info(f"Moved category {category_id} to '{response.full_path}'")
        return response

    def get_category_path(self, tenant: TenantContext, category_id: str) -> List[CategoryResponse]:
        """Ancestors from the root down to the immediate parent, excluding the category."""
        with self.get_session() as session:
            store, _ = self._stores(session, tenant)
            category = self._require_category(store, category_id)
            chain = category_tree.ancestor_chain(store, category)
            return [self._to_response(ancestor, chain[:i]) for i, ancestor in enumerate(chain)]

    def get_descendants(self, tenant: TenantContext, category_id: str) -> List[CategoryResponse]:
        """Every category below ``category_id`` in depth-first pre-order."""
        with self.get_session() as session:
            store, _ = self._stores(session, tenant)
            category = self._require_category(store, category_id)
            descendants = category_tree.collect_descendants(store, category.id)
            known = {c.id: c for c in descendants}
            known[category.id] = category
            return [self._to_response(c, category_tree.ancestor_chain(store, c, known)) for c in descendants]

    def get_subcategories(self, tenant: TenantContext, category_id: str) -> List[CategoryResponse]:
        with self.get_session() as session:
            store, _ = self._stores(session, tenant)
            category = self._require_category(store, category_id)
            ancestors = category_tree.ancestor_chain(store, category) + [category]
            return [self._to_response(child, ancestors) for child in store.get_children(category.id)]

    def get_category_tree(self, tenant: TenantContext) -> CategoryTreeResponse:
        with self.get_session() as session:
            store, _ = self._stores(session, tenant)
            roots, total, max_depth = category_tree.build_tree(store.get_all())

        self.logger.debug(f"Built category tree for tenant {tenant.tenant_id}: {total} categories, depth {max_depth}")
        return CategoryTreeResponse(root_categories=roots, total_categories=total, max_depth=max_depth)

    # ------------------------------------------------------------------
    # Validation queries
    # ------------------------------------------------------------------

    def _deletion_blockers(
        self, store: CategoryStore, products: ProductCountSource, category: CategoryModel
    ) -> Tuple[int, int, List[str]]:
        product_count = products.count_products(category.id)
        subcategory_count = store.count_children(category.id)
        errors = []
        if product_count > 0:
            errors.append(f"Category contains {product_count} products")
        if subcategory_count > 0:
            errors.append(f"Category has {subcategory_count} subcategories")
        return product_count, subcategory_count, errors

    def validate_deletion(self, tenant: TenantContext, category_id: str) -> CategoryValidationResult:
        """
        Report whether ``delete_category`` would succeed, without deleting.

        Raises:
            CategoryNotFoundError: If the category does not exist
        """
        with self.get_session() as session:
            store, products = self._stores(session, tenant)
            category = self._require_category(store, category_id)
            _, _, errors = self._deletion_blockers(store, products, category)

        return CategoryValidationResult(valid=not errors, errors=errors, warnings=[], operation="DELETE")

    def validate_move(
        self, tenant: TenantContext, category_id: str, new_parent_id: Optional[str]
    ) -> CategoryValidationResult:
        """
        Report whether ``move_category`` would succeed, without moving.

        Invalid moves are reported through ``errors``; only a missing source id
        raises.
        """
        if category_id is None or not str(category_id).strip():
            raise ValidationError("Category ID is required", missing_fields=["category_id"])
        new_parent_id = new_parent_id or None

        errors = []
        warnings = []
        with self.get_session() as session:
            store, _ = self._stores(session, tenant)
            category = store.get_by_id(category_id)
            if category is None:
                errors.append("Source category does not exist")

            parent_exists = new_parent_id is None or new_parent_id == category_id or store.exists(new_parent_id)
            if not parent_exists:
                errors.append("Target parent category does not exist")

            if category is not None and parent_exists:
                creates_cycle, _ = category_tree.would_create_cycle(store, category.id, new_parent_id)
                if creates_cycle:
                    errors.append("Move would create circular reference")
                elif new_parent_id == category.parent_id:
                    warnings.append("Category already has this parent")
                elif not store.is_name_available(category.name, new_parent_id, exclude_id=category.id):
                    errors.append(f"A category named '{category.name}' already exists at the target level")

        return CategoryValidationResult(valid=not errors, errors=errors, warnings=warnings, operation="MOVE")

    def is_name_available(
        self,
        tenant: TenantContext,
        name: str,
        parent_id: Optional[str] = None,
        exclude_id: Optional[str] = None,
    ) -> bool:
        """Case-insensitive check of ``name`` among the children of ``parent_id``."""
        if not normalize_category_name(name):
            return False
        with self.get_session() as session:
            store, _ = self._stores(session, tenant)
            return store.is_name_available(name, parent_id or None, exclude_id=exclude_id)

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def _build_statistics(
        self,
        store: CategoryStore,
        products: ProductCountSource,
        category: CategoryModel,
        counts_by_category: Dict[str, int],
        depth: Optional[int] = None,
    ) -> CategoryStatistics:
        subtree = category_tree.subtree_ids(store, category.id)
        total_value = products.inventory_value(category.id)
        if depth is None:
            depth = category_tree.calculate_depth(store, category)

        return CategoryStatistics(
            category_id=category.id,
            category_name=category.name,
            direct_product_count=counts_by_category.get(category.id, 0),
            total_product_count=sum(counts_by_category.get(i, 0) for i in subtree),
            subcategory_count=store.count_children(category.id),
            hierarchy_depth=depth,
            total_value=total_value,
            total_value_formatted=self.format_value(total_value),
            low_stock_product_count=products.count_low_stock(category.id),
            out_of_stock_product_count=products.count_out_of_stock(category.id),
        )

    def get_category_statistics(self, tenant: TenantContext, category_id: str) -> CategoryStatistics:
        """
        Product and stock figures for one category.

        ``total_product_count`` sums live counts over the whole subtree; the
        cached ``product_count`` column is not consulted.
        """
        with self.get_session() as session:
            store, products = self._stores(session, tenant)
            category = self._require_category(store, category_id)
            return self._build_statistics(store, products, category, products.product_counts_by_category())

    def get_system_statistics(self, tenant: TenantContext) -> CategorySystemStatistics:
        limit = self.settings.TOP_CATEGORIES_LIMIT
        with self.get_session() as session:
            store, products = self._stores(session, tenant)
            categories = store.get_all()
            depths = category_tree.depth_index(categories)
            counts = products.product_counts_by_category()
            by_id = {c.id: c for c in categories}

            with_products = store.count_with_products()
            top_by_count = [
                self._build_statistics(store, products, c, counts, depths.get(c.id))
                for c in store.top_by_product_count(limit)
            ]
            top_by_value = [
                self._build_statistics(store, products, by_id[i], counts, depths.get(i))
                for i in products.top_categories_by_value(limit)
                if i in by_id
            ]

            return CategorySystemStatistics(
                total_categories=len(categories),
                root_categories=sum(1 for d in depths.values() if d == 0),
                max_hierarchy_depth=max(depths.values(), default=0),
                categories_with_products=with_products,
                empty_categories_count=len(categories) - with_products,
                top_categories_by_product_count=top_by_count,
                top_categories_by_value=top_by_value,
            )

    def refresh_all_product_counts(self, tenant: TenantContext) -> int:
        """
        Recompute every cached ``product_count`` from the products table.

        Only the count column is written, so versions and ``updated_at`` stay as
        they are. Running it twice in a row changes nothing the second time.

        Returns:
            int: Number of categories whose cached count changed
        """
        self.log_operation("refresh_product_counts", self.entity_name)
        with self.get_session() as session:
            store, products = self._stores(session, tenant)
            counts = products.product_counts_by_category()
            changed = 0
            for category in store.get_all():
                fresh = counts.get(category.id, 0)
                if category.product_count != fresh:
                    store.set_product_count(category.id, fresh)
                    changed += 1

        self.logger.info(f"Refreshed product counts for tenant {tenant.tenant_id}: {changed} categories changed")
        return changed
