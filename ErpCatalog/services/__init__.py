# Services package initialization

from .tenant_context import TenantContext
from .category_hierarchy_service import CategoryHierarchyService
from .category_import_service import CategoryImportService

__all__ = [
    "TenantContext",
    "CategoryHierarchyService",
    "CategoryImportService",
]
