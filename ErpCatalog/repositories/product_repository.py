import logging
from decimal import Decimal
from typing import Dict, List

from sqlalchemy import func
from sqlmodel import Session, select

from ErpCatalog.models.product_models import ProductModel
from ErpCatalog.repositories.base_repository import BaseRepository

logger = logging.getLogger(__name__)

VALUE_QUANTUM = Decimal("0.0001")


def _to_decimal(value) -> Decimal:
    # SQLite hands aggregates back as float
    if value is None:
        return Decimal("0")
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(VALUE_QUANTUM)


class ProductRepository(BaseRepository[ProductModel]):
    """
    Read side of products as needed by category statistics.

    Implements ``ProductCountSource`` for one tenant.
    """

    def __init__(self, session: Session, tenant_id: str):
        super().__init__(session, tenant_id, ProductModel)

    def _in_category(self, category_id: str):
        return (
            ProductModel.tenant_id == self.tenant_id,
            ProductModel.category_id == category_id,
        )

    def count_products(self, category_id: str) -> int:
        statement = select(func.count()).select_from(ProductModel).where(*self._in_category(category_id))
        return self.session.exec(statement).one()

    def product_counts_by_category(self) -> Dict[str, int]:
        statement = (
            select(ProductModel.category_id, func.count())
            .where(ProductModel.tenant_id == self.tenant_id, ProductModel.category_id.is_not(None))
            .group_by(ProductModel.category_id)
        )
        return {category_id: count for category_id, count in self.session.exec(statement).all()}

    def inventory_value(self, category_id: str) -> Decimal:
        statement = select(
            func.sum(ProductModel.selling_price * ProductModel.current_stock)
        ).where(*self._in_category(category_id), ProductModel.selling_price.is_not(None))
        return _to_decimal(self.session.exec(statement).one())

    def count_low_stock(self, category_id: str) -> int:
        statement = select(func.count()).select_from(ProductModel).where(
            *self._in_category(category_id),
            ProductModel.min_stock_level > 0,
            ProductModel.current_stock <= ProductModel.min_stock_level,
        )
        return self.session.exec(statement).one()

    def count_out_of_stock(self, category_id: str) -> int:
        statement = select(func.count()).select_from(ProductModel).where(
            *self._in_category(category_id),
            ProductModel.current_stock == 0,
        )
        return self.session.exec(statement).one()

    def top_categories_by_value(self, limit: int) -> List[str]:
        value = func.sum(ProductModel.selling_price * ProductModel.current_stock)
        statement = (
            select(ProductModel.category_id, value.label("inventory_value"))
            .where(
                ProductModel.tenant_id == self.tenant_id,
                ProductModel.category_id.is_not(None),
                ProductModel.selling_price.is_not(None),
            )
            .group_by(ProductModel.category_id)
            .having(value > 0)
            .order_by(value.desc(), ProductModel.category_id)
            .limit(limit)
        )
        rows = self.session.exec(statement).all()
        logger.debug(f"[REPO] Top {limit} categories by value for tenant {self.tenant_id}: {len(rows)} found")
        return [category_id for category_id, _ in rows]
