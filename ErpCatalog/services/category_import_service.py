"""
Bulk creation of categories.

Bulk operations are not atomic: every category is created in its own
transaction, so earlier successes survive later failures. Only catalog errors
are turned into per-item messages; anything else aborts the run.
"""

import logging
from typing import List, Optional

from ErpCatalog.exceptions import ErpCatalogException
from ErpCatalog.models.category_models import CategoryCreate
from ErpCatalog.schemas.category_results import (
    BulkCategoryOperationResult,
    CategoryHierarchyData,
    CategoryImportNode,
    CategoryImportResult,
)
from ErpCatalog.services.base_service import BaseService
from ErpCatalog.services.category_hierarchy_service import CategoryHierarchyService
from ErpCatalog.services.tenant_context import TenantContext

logger = logging.getLogger(__name__)


def count_nodes(nodes: List[CategoryImportNode]) -> int:
    total = 0
    stack = list(nodes)
    while stack:
        node = stack.pop()
        total += 1
        stack.extend(node.children or [])
    return total


class CategoryImportService(BaseService):
    """Service for importing category forests and batches of categories"""

    def __init__(self, engine_override=None, hierarchy_service: Optional[CategoryHierarchyService] = None):
        super().__init__(engine_override)
        self.hierarchy_service = hierarchy_service or CategoryHierarchyService(engine_override=self.engine)

    def _record_skipped(self, failed_node: CategoryImportNode, result: CategoryImportResult) -> None:
        """Count every descendant of a node that could not be created as failed."""
        stack = [(child, failed_node.name) for child in reversed(failed_node.children or [])]
        while stack:
            node, parent_name = stack.pop()
            result.failed_imports += 1
            result.errors.append(f"Skipped category '{node.name}': parent '{parent_name}' was not imported")
            stack.extend((child, node.name) for child in reversed(node.children or []))

    def import_category_hierarchy(self, tenant: TenantContext, hierarchy: CategoryHierarchyData) -> CategoryImportResult:
        """
        Create a forest of categories, parents before children.

        Nodes are visited depth-first in the order given. When a node fails its
        whole subtree is skipped and counted as failed, so
        ``successful_imports + failed_imports == total_nodes`` always holds.

        Args:
            tenant: The tenant receiving the categories
            hierarchy: Root nodes with nested children

        Returns:
            CategoryImportResult: Counts, errors and created ids in creation order
        """
        result = CategoryImportResult(total_nodes=count_nodes(hierarchy.root_nodes))
        self.log_operation("import_hierarchy", "Category", f"{result.total_nodes} nodes")

        stack = [(node, None, 1) for node in reversed(hierarchy.root_nodes)]
        while stack:
            node, parent_id, depth = stack.pop()
            try:
                created = self.hierarchy_service.create_category(
                    tenant,
                    CategoryCreate(
                        name=node.name,
                        description=node.description,
                        notes=node.notes,
                        parent_id=parent_id,
                    ),
                )
            except ErpCatalogException as e:
                self.logger.warning(f"Failed to import category '{node.name}': {e.message}")
                result.failed_imports += 1
                result.errors.append(f"Failed to import category '{node.name}': {e.message}")
                self._record_skipped(node, result)
                continue

            result.successful_imports += 1
            result.created_category_ids.append(created.id)
            result.max_depth_created = max(result.max_depth_created, depth)
            stack.extend((child, created.id, depth + 1) for child in reversed(node.children or []))

        self.logger.info(
            f"Category import for tenant {tenant.tenant_id} finished: {result.successful_imports} created, "
            f"{result.failed_imports} failed, max depth {result.max_depth_created}"
        )
        return result

    def create_categories_batch(
        self, tenant: TenantContext, categories: List[CategoryCreate]
    ) -> BulkCategoryOperationResult:
        """Create each category independently, in order, recording per-item failures."""
        result = BulkCategoryOperationResult(total_requested=len(categories), operation_type="CREATE_BATCH")
        self.log_operation("create_batch", "Category", f"{len(categories)} items")

        for category_data in categories:
            try:
                created = self.hierarchy_service.create_category(tenant, category_data)
            except ErpCatalogException as e:
                self.logger.warning(f"Failed to create category '{category_data.name}': {e.message}")
                result.failed_operations += 1
                result.errors.append(f"Failed to create category '{category_data.name}': {e.message}")
                continue

            result.successful_operations += 1
            result.created_category_ids.append(created.id)

        self.logger.info(
            f"Batch create for tenant {tenant.tenant_id} finished: {result.successful_operations} of "
            f"{result.total_requested} created"
        )
        return result
