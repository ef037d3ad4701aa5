"""
Category Models Module

Contains CategoryModel and the request models used to create and update it.
Categories form a tenant-scoped tree: each row stores its parent's id and
children are found by querying on ``parent_id``.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional, Dict, Any
from sqlmodel import SQLModel, Field
from sqlalchemy import UniqueConstraint, CheckConstraint, Index, text
from pydantic import ConfigDict

CATEGORY_NAME_MAX_LENGTH = 100
CATEGORY_DESCRIPTION_MAX_LENGTH = 500
CATEGORY_NOTES_MAX_LENGTH = 1000


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def normalize_category_name(name: Optional[str]) -> str:
    """Names are stored trimmed."""
    return (name or "").strip()


def category_name_key(name: Optional[str]) -> str:
    """Key used for case-insensitive sibling uniqueness."""
    return normalize_category_name(name).lower()


class CategoryCreate(SQLModel):
    """Request model for creating a category"""
    name: str
    description: Optional[str] = None
    parent_id: Optional[str] = None
    notes: Optional[str] = None


class CategoryUpdate(SQLModel):
    """Update model for category modifications.

    Replaces name, description, notes and parent; ``parent_id=None`` makes the
    category a root.
    """
    name: str
    description: Optional[str] = None
    parent_id: Optional[str] = None
    notes: Optional[str] = None


class CategoryModel(SQLModel, table=True):
    """
    Model for hierarchical product categories of one tenant.

    Example hierarchy: Electronics > Computers > Laptops
    """

    id: Optional[str] = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    tenant_id: str = Field(index=True, max_length=50)
    name: str = Field(max_length=CATEGORY_NAME_MAX_LENGTH)
    name_key: str = Field(index=True, max_length=CATEGORY_NAME_MAX_LENGTH)
    description: Optional[str] = Field(default=None, max_length=CATEGORY_DESCRIPTION_MAX_LENGTH)
    notes: Optional[str] = Field(default=None, max_length=CATEGORY_NOTES_MAX_LENGTH)
    parent_id: Optional[str] = Field(default=None, foreign_key="categorymodel.id", index=True)

    # Denormalized count of directly assigned products, refreshed explicitly
    product_count: int = Field(default=0)

    # Optimistic concurrency counter, bumped by every structural write
    version: int = Field(default=0)

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)

    __table_args__ = (
        UniqueConstraint('tenant_id', 'parent_id', 'name_key', name='uix_category_tenant_parent_name'),
        # NULL parent ids never collide in a unique constraint, so roots get their own index
        Index(
            'uix_category_tenant_root_name',
            'tenant_id',
            'name_key',
            unique=True,
            sqlite_where=text('parent_id IS NULL'),
            postgresql_where=text('parent_id IS NULL'),
        ),
        CheckConstraint('product_count >= 0', name='ck_category_product_count_non_negative'),
    )

    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    def to_dict(self) -> Dict[str, Any]:
        """Custom serialization method for CategoryModel"""
        return self.model_dump(exclude={"name_key"})
