import logging
from typing import Any, Dict, Optional, List

from sqlalchemy import delete, func, or_, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from ErpCatalog.models.category_models import (
    CategoryModel,
    category_name_key,
    normalize_category_name,
    utc_now,
)
from ErpCatalog.exceptions import (
    CategoryNotFoundError,
    ConcurrencyConflictError,
    DuplicateCategoryNameError,
)
from ErpCatalog.repositories.base_repository import BaseRepository

# Configure logging
logger = logging.getLogger(__name__)


def _is_unique_violation(error: IntegrityError) -> bool:
    message = str(error.orig).lower()
    return "unique" in message or "duplicate" in message


def _is_foreign_key_violation(error: IntegrityError) -> bool:
    return "foreign key" in str(error.orig).lower()


class CategoryRepository(BaseRepository[CategoryModel]):
    """SQL implementation of ``CategoryStore`` bound to one tenant."""

    def __init__(self, session: Session, tenant_id: str):
        super().__init__(session, tenant_id, CategoryModel)

    def _sibling_filter(self, parent_id: Optional[str]):
        if parent_id is None:
            return CategoryModel.parent_id.is_(None)
        return CategoryModel.parent_id == parent_id

    def get_children(self, parent_id: Optional[str]) -> List[CategoryModel]:
        statement = (
            self.scoped_select()
            .where(self._sibling_filter(parent_id))
            .order_by(CategoryModel.name_key, CategoryModel.name)
        )
        return list(self.session.exec(statement).all())

    def get_root_categories(self) -> List[CategoryModel]:
        return self.get_children(None)

    def count_children(self, parent_id: Optional[str]) -> int:
        statement = select(func.count()).select_from(CategoryModel).where(
            CategoryModel.tenant_id == self.tenant_id,
            self._sibling_filter(parent_id),
        )
        return self.session.exec(statement).one()

    def count_roots(self) -> int:
        return self.count_children(None)

    def find_by_name(self, name: str, parent_id: Optional[str]) -> Optional[CategoryModel]:
        statement = self.scoped_select().where(
            CategoryModel.name_key == category_name_key(name),
            self._sibling_filter(parent_id),
        )
        return self.session.exec(statement).first()

    def is_name_available(self, name: str, parent_id: Optional[str], exclude_id: Optional[str] = None) -> bool:
        existing = self.find_by_name(name, parent_id)
        return existing is None or (exclude_id is not None and existing.id == exclude_id)

    def count_with_products(self) -> int:
        statement = select(func.count()).select_from(CategoryModel).where(
            CategoryModel.tenant_id == self.tenant_id,
            CategoryModel.product_count > 0,
        )
        return self.session.exec(statement).one()

    def top_by_product_count(self, limit: int) -> List[CategoryModel]:
        statement = (
            self.scoped_select()
            .where(CategoryModel.product_count > 0)
            .order_by(CategoryModel.product_count.desc(), CategoryModel.name_key)
            .limit(limit)
        )
        return list(self.session.exec(statement).all())

    def list_categories(self, offset: int, limit: int) -> List[CategoryModel]:
        statement = (
            self.scoped_select()
            .order_by(CategoryModel.name_key, CategoryModel.id)
            .offset(offset)
            .limit(limit)
        )
        return list(self.session.exec(statement).all())

    def search(self, term: str, offset: int, limit: int) -> List[CategoryModel]:
        needle = term.strip().lower()
        statement = (
            self.scoped_select()
            .where(
                or_(
                    func.lower(CategoryModel.name).contains(needle, autoescape=True),
                    func.lower(CategoryModel.description).contains(needle, autoescape=True),
                )
            )
            .order_by(CategoryModel.name_key, CategoryModel.id)
            .offset(offset)
            .limit(limit)
        )
        return list(self.session.exec(statement).all())

    def create_category(self, category: CategoryModel) -> CategoryModel:
        """
        Persist a new category.

        Args:
            category: The unsaved category; its tenant is overwritten with the bound tenant

        Returns:
            CategoryModel: The flushed category

        Raises:
            DuplicateCategoryNameError: If a sibling with the same name already exists
        """
        category.name = normalize_category_name(category.name)
        category.name_key = category_name_key(category.name)
        logger.debug(f"[REPO] Creating category '{category.name}' for tenant {self.tenant_id}")
        try:
            return self.create(category)
        except IntegrityError as e:
            if _is_foreign_key_violation(e):
                # Parent removed by another writer after it was checked
                raise CategoryNotFoundError(
                    f"Parent category not found with ID: {category.parent_id}", category_id=category.parent_id
                ) from e
            if not _is_unique_violation(e):
                raise
            logger.debug(f"[REPO] Category creation rejected by uniqueness constraint: {category.name}")
            raise DuplicateCategoryNameError(
                f"Category name '{category.name}' already exists at this level",
                category_name=category.name,
                parent_id=category.parent_id,
            ) from e

    def update_category(self, category_id: str, expected_version: int, changes: Dict[str, Any]) -> CategoryModel:
        """
        Apply a version-checked update.

        Args:
            category_id: The ID of the category to update
            expected_version: The version the caller read before deciding on the change
            changes: Column values to write

        Returns:
            CategoryModel: The category as stored after the update

        Raises:
            CategoryNotFoundError: If the category no longer exists
            ConcurrencyConflictError: If another writer changed the category first
            DuplicateCategoryNameError: If the new name collides with a sibling
        """
        values = dict(changes)
        if "name" in values:
            values["name"] = normalize_category_name(values["name"])
            values["name_key"] = category_name_key(values["name"])
        values["version"] = expected_version + 1
        values["updated_at"] = utc_now()

        logger.debug(f"[REPO] Updating category {category_id} at version {expected_version}: {changes}")
        statement = (
            update(CategoryModel)
            .where(
                CategoryModel.id == category_id,
                CategoryModel.tenant_id == self.tenant_id,
                CategoryModel.version == expected_version,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.session.exec(statement)
        except IntegrityError as e:
            if _is_foreign_key_violation(e):
                raise CategoryNotFoundError(
                    f"Parent category not found with ID: {values.get('parent_id')}",
                    category_id=values.get("parent_id"),
                ) from e
            if not _is_unique_violation(e):
                raise
            raise DuplicateCategoryNameError(
                f"Category name '{values.get('name')}' already exists at this level",
                category_name=values.get("name"),
                parent_id=values.get("parent_id"),
            ) from e

        if result.rowcount == 0:
            self._raise_write_miss(category_id, expected_version)

        return self.session.get(CategoryModel, category_id, populate_existing=True)

    def touch(self, category_id: str, expected_version: int) -> None:
        statement = (
            update(CategoryModel)
            .where(
                CategoryModel.id == category_id,
                CategoryModel.tenant_id == self.tenant_id,
                CategoryModel.version == expected_version,
            )
            .values(version=expected_version + 1)
            .execution_options(synchronize_session=False)
        )
        if self.session.exec(statement).rowcount == 0:
            self._raise_write_miss(category_id, expected_version)

    def set_product_count(self, category_id: str, product_count: int) -> None:
        statement = (
            update(CategoryModel)
            .where(CategoryModel.id == category_id, CategoryModel.tenant_id == self.tenant_id)
            .values(product_count=max(0, product_count))
            .execution_options(synchronize_session=False)
        )
        self.session.exec(statement)

    def delete_category(self, category_id: str, expected_version: int) -> None:
        logger.debug(f"[REPO] Deleting category {category_id} at version {expected_version}")
        statement = (
            delete(CategoryModel)
            .where(
                CategoryModel.id == category_id,
                CategoryModel.tenant_id == self.tenant_id,
                CategoryModel.version == expected_version,
            )
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.session.exec(statement)
        except IntegrityError as e:
            if not _is_foreign_key_violation(e):
                raise
            # A child or product was attached after the emptiness check
            raise ConcurrencyConflictError(
                f"Category {category_id} gained dependents while being deleted",
                resource_type="category",
                resource_id=category_id,
                expected_version=expected_version,
            ) from e
        if result.rowcount == 0:
            self._raise_write_miss(category_id, expected_version)

    def _raise_write_miss(self, category_id: str, expected_version: int) -> None:
        statement = select(CategoryModel.version).where(
            CategoryModel.id == category_id,
            CategoryModel.tenant_id == self.tenant_id,
        )
        current_version = self.session.exec(statement).first()
        if current_version is None:
            raise CategoryNotFoundError(f"Category not found with ID: {category_id}", category_id=category_id)
        raise ConcurrencyConflictError(
            f"Category {category_id} was modified concurrently (expected version {expected_version}, "
            f"found {current_version})",
            resource_type="category",
            resource_id=category_id,
            expected_version=expected_version,
        )
