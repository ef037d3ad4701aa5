from .base_repository import BaseRepository
from .category_repository import CategoryRepository
from .product_repository import ProductRepository
from .interfaces import CategoryStore, ProductCountSource

__all__ = [
    "BaseRepository",
    "CategoryRepository",
    "ProductRepository",
    "CategoryStore",
    "ProductCountSource",
]
