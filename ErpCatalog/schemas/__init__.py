from .category_responses import (
    CategoryResponse,
    CategoryNode,
    CategoryTreeResponse,
    CategoryStatistics,
    CategorySystemStatistics,
)
from .category_results import (
    CategoryValidationResult,
    CategoryImportNode,
    CategoryHierarchyData,
    CategoryImportResult,
    BulkCategoryOperationResult,
)
