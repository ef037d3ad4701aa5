"""
Tree algorithms over a tenant-bound ``CategoryStore``.

The hierarchy is stored as an arena: every category knows its parent id and
children are looked up by querying on ``parent_id``. All traversals here are
iterative and keep a visited set, so a corrupted store that contains a loop
fails loudly with ``CircularReferenceError`` instead of spinning forever.
"""

import logging
from collections import defaultdict, deque
from typing import Dict, List, Optional, Tuple

from ErpCatalog.exceptions import CircularReferenceError
from ErpCatalog.models.category_models import CategoryModel
from ErpCatalog.repositories.interfaces import CategoryStore
from ErpCatalog.schemas.category_responses import CategoryNode

logger = logging.getLogger(__name__)

PATH_SEPARATOR = " > "


def _loop_detected(category_id: Optional[str]) -> CircularReferenceError:
    logger.error(f"Stored hierarchy contains a loop at category {category_id}")
    return CircularReferenceError(
        f"Stored category hierarchy contains a loop at category {category_id}",
        category_id=category_id,
    )


def _sort_key(category: CategoryModel):
    return (category.name_key, category.name)


def ancestor_chain(
    store: CategoryStore, category: CategoryModel, known: Optional[Dict[str, CategoryModel]] = None
) -> List[CategoryModel]:
    """
    Ancestors of ``category`` ordered from the root down to its immediate parent.

    ``known`` is an optional id lookup consulted before the store and filled
    with every category fetched, so repeated calls over one subtree stay cheap.
    """
    chain = []
    seen = {category.id}
    parent_id = category.parent_id
    while parent_id is not None:
        if parent_id in seen:
            raise _loop_detected(parent_id)
        seen.add(parent_id)
        parent = known.get(parent_id) if known is not None else None
        if parent is None:
            parent = store.get_by_id(parent_id)
            if parent is not None and known is not None:
                known[parent_id] = parent
        if parent is None:
            break
        chain.append(parent)
        parent_id = parent.parent_id
    chain.reverse()
    return chain


def calculate_depth(store: CategoryStore, category: CategoryModel) -> int:
    """Number of ancestors; roots are at depth 0."""
    return len(ancestor_chain(store, category))


def full_path(ancestors: List[CategoryModel], category: CategoryModel) -> str:
    return PATH_SEPARATOR.join([a.name for a in ancestors] + [category.name])


def would_create_cycle(
    store: CategoryStore, category_id: str, new_parent_id: Optional[str]
) -> Tuple[bool, List[CategoryModel]]:
    """
    Check whether attaching ``category_id`` under ``new_parent_id`` closes a loop.

    Walks upward from the prospective parent over the current tree.

    Returns:
        A tuple of the verdict and the categories visited on the way up, starting
        with the prospective parent. The visited chain is what the verdict
        depends on, so callers that act on it version-check those rows.
    """
    if new_parent_id is None:
        return False, []
    if new_parent_id == category_id:
        return True, []

    visited: List[CategoryModel] = []
    seen = set()
    current_id = new_parent_id
    while current_id is not None:
        if current_id == category_id:
            return True, visited
        if current_id in seen:
            raise _loop_detected(current_id)
        seen.add(current_id)
        current = store.get_by_id(current_id)
        if current is None:
            break
        visited.append(current)
        current_id = current.parent_id
    return False, visited


def collect_descendants(store: CategoryStore, category_id: str) -> List[CategoryModel]:
    """
    Full subtree under ``category_id`` (excluded), depth-first pre-order with
    siblings in name order.
    """
    result = []
    seen = {category_id}
    stack = list(reversed(store.get_children(category_id)))
    while stack:
        current = stack.pop()
        if current.id in seen:
            raise _loop_detected(current.id)
        seen.add(current.id)
        result.append(current)
        stack.extend(reversed(store.get_children(current.id)))
    return result


def subtree_ids(store: CategoryStore, category_id: str) -> List[str]:
    """Ids of ``category_id`` and all of its descendants."""
    return [category_id] + [c.id for c in collect_descendants(store, category_id)]


def index_by_parent(categories: List[CategoryModel]) -> Dict[Optional[str], List[CategoryModel]]:
    children = defaultdict(list)
    for category in categories:
        children[category.parent_id].append(category)
    for siblings in children.values():
        siblings.sort(key=_sort_key)
    return children


def depth_index(categories: List[CategoryModel]) -> Dict[str, int]:
    """
    Ancestor count of every category, computed breadth-first from the roots.

    Raises:
        CircularReferenceError: If some categories cannot be reached from a root
    """
    children = index_by_parent(categories)
    depths: Dict[str, int] = {}
    queue = deque((root, 0) for root in children.get(None, []))
    while queue:
        category, depth = queue.popleft()
        if category.id in depths:
            raise _loop_detected(category.id)
        depths[category.id] = depth
        for child in children.get(category.id, []):
            queue.append((child, depth + 1))

    if len(depths) != len(categories):
        unreachable = next(c.id for c in categories if c.id not in depths)
        raise _loop_detected(unreachable)
    return depths


def build_tree(categories: List[CategoryModel]) -> Tuple[List[CategoryNode], int, int]:
    """
    Assemble nested nodes from a flat list of categories.

    Returns:
        The name-ordered root nodes, the number of categories, and the longest
        root-to-leaf chain counted in nodes (0 for no categories).
    """
    depths = depth_index(categories)
    children = index_by_parent(categories)

    nodes = {
        c.id: CategoryNode(
            id=c.id,
            name=c.name,
            description=c.description,
            notes=c.notes,
            parent_id=c.parent_id,
            product_count=c.product_count,
            version=c.version,
        )
        for c in categories
    }
    for parent_id, siblings in children.items():
        if parent_id is None:
            continue
        nodes[parent_id].subcategories.extend(nodes[c.id] for c in siblings)

    roots = [nodes[c.id] for c in children.get(None, [])]
    max_depth = max(depths.values()) + 1 if depths else 0
    return roots, len(categories), max_depth
