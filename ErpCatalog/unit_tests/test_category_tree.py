"""
Tests for the tree algorithms, run against an in-memory store so corrupted
hierarchies can be simulated.
"""

import pytest

from ErpCatalog.exceptions import CircularReferenceError
from ErpCatalog.models.category_models import CategoryModel, category_name_key
from ErpCatalog.services import category_tree


class InMemoryCategoryStore:
    """Just enough of CategoryStore for the traversal functions."""

    def __init__(self):
        self.rows = {}

    def add(self, category_id, name, parent_id=None):
        self.rows[category_id] = CategoryModel(
            id=category_id,
            tenant_id="t",
            name=name,
            name_key=category_name_key(name),
            parent_id=parent_id,
        )
        return self.rows[category_id]

    def get_by_id(self, id):
        return self.rows.get(id)

    def get_children(self, parent_id):
        children = [c for c in self.rows.values() if c.parent_id == parent_id]
        return sorted(children, key=lambda c: c.name_key)

    def get_all(self):
        return list(self.rows.values())


@pytest.fixture
def store():
    # electronics > computers > laptops
    #             > audio
    # tools
    s = InMemoryCategoryStore()
    s.add("electronics", "Electronics")
    s.add("computers", "Computers", "electronics")
    s.add("laptops", "Laptops", "computers")
    s.add("audio", "Audio", "electronics")
    s.add("tools", "Tools")
    return s


def test_ancestor_chain_root_first(store):
    chain = category_tree.ancestor_chain(store, store.get_by_id("laptops"))

    assert [c.id for c in chain] == ["electronics", "computers"]
    assert category_tree.calculate_depth(store, store.get_by_id("laptops")) == 2
    assert category_tree.calculate_depth(store, store.get_by_id("tools")) == 0


def test_ancestor_chain_fills_known_lookup(store):
    known = {}
    category_tree.ancestor_chain(store, store.get_by_id("laptops"), known)

    assert set(known) == {"electronics", "computers"}


def test_full_path(store):
    laptops = store.get_by_id("laptops")
    chain = category_tree.ancestor_chain(store, laptops)

    assert category_tree.full_path(chain, laptops) == "Electronics > Computers > Laptops"
    assert category_tree.full_path([], store.get_by_id("tools")) == "Tools"


def test_collect_descendants_pre_order(store):
    descendants = category_tree.collect_descendants(store, "electronics")

    # Audio sorts before Computers, and Laptops follows its parent
    assert [c.id for c in descendants] == ["audio", "computers", "laptops"]
    assert category_tree.collect_descendants(store, "tools") == []
    assert category_tree.subtree_ids(store, "computers") == ["computers", "laptops"]


def test_would_create_cycle_under_descendant(store):
    creates_cycle, _ = category_tree.would_create_cycle(store, "electronics", "laptops")

    assert creates_cycle is True


def test_would_create_cycle_self_parent(store):
    assert category_tree.would_create_cycle(store, "tools", "tools") == (True, [])


def test_would_create_cycle_returns_visited_chain(store):
    creates_cycle, visited = category_tree.would_create_cycle(store, "tools", "laptops")

    assert creates_cycle is False
    assert [c.id for c in visited] == ["laptops", "computers", "electronics"]


def test_would_create_cycle_to_root(store):
    assert category_tree.would_create_cycle(store, "laptops", None) == (False, [])


def test_depth_index(store):
    depths = category_tree.depth_index(store.get_all())

    assert depths == {"electronics": 0, "computers": 1, "laptops": 2, "audio": 1, "tools": 0}


def test_build_tree_nests_nodes(store):
    roots, total, max_depth = category_tree.build_tree(store.get_all())

    assert [r.name for r in roots] == ["Electronics", "Tools"]
    assert [n.name for n in roots[0].subcategories] == ["Audio", "Computers"]
    assert roots[0].subcategories[1].subcategories[0].name == "Laptops"
    assert total == 5
    assert max_depth == 3


def test_build_tree_empty():
    assert category_tree.build_tree([]) == ([], 0, 0)


def test_build_tree_roots_only():
    s = InMemoryCategoryStore()
    s.add("a", "A")
    s.add("b", "B")

    _, total, max_depth = category_tree.build_tree(s.get_all())
    assert (total, max_depth) == (2, 1)


class TestCorruptedHierarchy:
    """A loop in stored data must fail instead of hanging."""

    def setup_method(self):
        self.store = InMemoryCategoryStore()
        self.store.add("root", "Root")
        self.store.add("a", "A", "b")
        self.store.add("b", "B", "a")

    def test_ancestor_chain_detects_loop(self):
        with pytest.raises(CircularReferenceError):
            category_tree.ancestor_chain(self.store, self.store.get_by_id("a"))

    def test_would_create_cycle_detects_loop(self):
        with pytest.raises(CircularReferenceError):
            category_tree.would_create_cycle(self.store, "root", "a")

    def test_collect_descendants_detects_loop(self):
        with pytest.raises(CircularReferenceError):
            category_tree.collect_descendants(self.store, "a")

    def test_build_tree_detects_unreachable_nodes(self):
        with pytest.raises(CircularReferenceError):
            category_tree.build_tree(self.store.get_all())
