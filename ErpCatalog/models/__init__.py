from .category_models import CategoryModel, CategoryCreate, CategoryUpdate
from .product_models import ProductModel

__all__ = [
    "CategoryModel",
    "CategoryCreate",
    "CategoryUpdate",
    "ProductModel",
]
