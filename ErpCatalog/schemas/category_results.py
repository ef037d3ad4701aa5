"""Validation results and bulk operation payloads for categories."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field


class CategoryValidationResult(BaseModel):
    """Outcome of a dry-run check; invalid operations are data, not exceptions."""
    valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    operation: str


class CategoryImportNode(BaseModel):
    name: str
    description: Optional[str] = None
    notes: Optional[str] = None
    children: Optional[List[CategoryImportNode]] = None


class CategoryHierarchyData(BaseModel):
    root_nodes: List[CategoryImportNode] = Field(default_factory=list)


class CategoryImportResult(BaseModel):
    total_nodes: int = 0
    successful_imports: int = 0
    failed_imports: int = 0
    max_depth_created: int = 0
    errors: List[str] = Field(default_factory=list)
    created_category_ids: List[str] = Field(default_factory=list)


class BulkCategoryOperationResult(BaseModel):
    total_requested: int = 0
    successful_operations: int = 0
    failed_operations: int = 0
    errors: List[str] = Field(default_factory=list)
    created_category_ids: List[str] = Field(default_factory=list)
    operation_type: str = "CREATE_BATCH"


CategoryImportNode.model_rebuild()
