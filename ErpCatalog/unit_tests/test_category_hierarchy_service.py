"""
Tests for CategoryHierarchyService: CRUD, hierarchy operations, validation
queries and optimistic concurrency.
"""

import pytest
from sqlmodel import Session

from ErpCatalog.exceptions import (
    CategoryInUseError,
    CategoryNotFoundError,
    CircularReferenceError,
    ConcurrencyConflictError,
    DuplicateCategoryNameError,
    ValidationError,
)
from ErpCatalog.models.category_models import CategoryCreate, CategoryUpdate
from ErpCatalog.repositories.category_repository import CategoryRepository
from ErpCatalog.services.category_hierarchy_service import CategoryHierarchyService
from ErpCatalog.services.tenant_context import TenantContext
from ErpCatalog.unit_tests.test_database import create_test_db


class ServiceTestBase:

    def setup_method(self):
        self.test_db = create_test_db()
        self.service = CategoryHierarchyService(engine_override=self.test_db.engine)
        self.tenant = TenantContext(tenant_id="tenant-a")

    def teardown_method(self):
        self.test_db.close()

    def create(self, name, parent=None, **kwargs):
        parent_id = parent.id if parent is not None else None
        return self.service.create_category(self.tenant, CategoryCreate(name=name, parent_id=parent_id, **kwargs))

    def chain(self, *names):
        """Create a straight line of categories, each under the previous one."""
        created = []
        parent = None
        for name in names:
            parent = self.create(name, parent)
            created.append(parent)
        return created


class TestCreateCategory(ServiceTestBase):

    def test_create_root_category(self):
        category = self.create("  Electronics ", description="Gadgets", notes="Main line")

        assert category.name == "Electronics"
        assert category.full_path == "Electronics"
        assert category.hierarchy_depth == 0
        assert category.parent_id is None
        assert category.tenant_id == "tenant-a"
        assert category.version == 0
        assert category.product_count == 0
        assert category.description == "Gadgets"
        assert category.notes == "Main line"

    def test_create_child_category(self):
        electronics, computers = self.chain("Electronics", "Computers")

        assert computers.parent_id == electronics.id
        assert computers.full_path == "Electronics > Computers"
        assert computers.hierarchy_depth == 1

    def test_duplicate_root_name_is_case_insensitive(self):
        self.create("Electronics")

        with pytest.raises(DuplicateCategoryNameError) as exc_info:
            self.create("electronics")

        assert exc_info.value.category_name == "electronics"
        assert self.service.get_category_tree(self.tenant).total_categories == 1

    def test_same_name_allowed_under_different_parents(self):
        tools = self.create("Tools")
        garden = self.create("Garden")

        first = self.create("Accessories", tools)
        second = self.create("Accessories", garden)

        assert first.id != second.id

    def test_duplicate_child_name_rejected(self):
        tools = self.create("Tools")
        self.create("Drills", tools)

        with pytest.raises(DuplicateCategoryNameError):
            self.create(" DRILLS ", tools)

    def test_missing_parent_raises_not_found(self):
        with pytest.raises(CategoryNotFoundError):
            self.service.create_category(self.tenant, CategoryCreate(name="Orphan", parent_id="no-such-id"))

    def test_blank_name_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            self.create("   ")

        assert exc_info.value.missing_fields == ["name"]

    @pytest.mark.parametrize("field,length", [("name", 101), ("description", 501), ("notes", 1001)])
    def test_oversized_fields_rejected(self, field, length):
        kwargs = {"name": "Valid"}
        kwargs[field] = "x" * length

        with pytest.raises(ValidationError) as exc_info:
            self.service.create_category(self.tenant, CategoryCreate(**kwargs))

        assert field in exc_info.value.field_errors

    def test_fields_at_limit_accepted(self):
        category = self.service.create_category(
            self.tenant,
            CategoryCreate(name="n" * 100, description="d" * 500, notes="x" * 1000),
        )

        assert len(category.name) == 100


class TestUpdateAndDelete(ServiceTestBase):

    def test_update_replaces_fields_and_bumps_version(self):
        tools = self.create("Tools", description="old", notes="old notes")

        updated = self.service.update_category(
            self.tenant, tools.id, CategoryUpdate(name="Hand Tools", description="new")
        )

        assert updated.name == "Hand Tools"
        assert updated.description == "new"
        assert updated.notes is None
        assert updated.version == 1
        assert updated.updated_at is not None

    def test_update_case_only_rename_of_itself_allowed(self):
        tools = self.create("tools")

        updated = self.service.update_category(self.tenant, tools.id, CategoryUpdate(name="Tools"))

        assert updated.name == "Tools"

    def test_update_to_sibling_name_rejected(self):
        self.create("Tools")
        garden = self.create("Garden")

        with pytest.raises(DuplicateCategoryNameError):
            self.service.update_category(self.tenant, garden.id, CategoryUpdate(name="TOOLS"))

    def test_update_with_parent_none_makes_root(self):
        _, computers = self.chain("Electronics", "Computers")

        updated = self.service.update_category(self.tenant, computers.id, CategoryUpdate(name="Computers"))

        assert updated.parent_id is None
        assert updated.full_path == "Computers"

    def test_update_reparent_into_descendant_rejected(self):
        a, b, c = self.chain("A", "B", "C")

        with pytest.raises(CircularReferenceError):
            self.service.update_category(self.tenant, a.id, CategoryUpdate(name="A", parent_id=c.id))

        assert self.service.get_category(self.tenant, a.id).parent_id is None

    def test_update_missing_category(self):
        with pytest.raises(CategoryNotFoundError):
            self.service.update_category(self.tenant, "missing", CategoryUpdate(name="X"))

    def test_delete_empty_category(self):
        tools = self.create("Tools")

        self.service.delete_category(self.tenant, tools.id)

        with pytest.raises(CategoryNotFoundError):
            self.service.get_category(self.tenant, tools.id)

    def test_delete_category_with_product_rejected(self):
        tools = self.create("Tools")
        self.test_db.add_product("tenant-a", tools.id, "HAMMER-1")

        with pytest.raises(CategoryInUseError) as exc_info:
            self.service.delete_category(self.tenant, tools.id)

        assert exc_info.value.errors == ["Category contains 1 products"]
        assert exc_info.value.product_count == 1
        assert self.service.get_category(self.tenant, tools.id).name == "Tools"

    def test_delete_category_with_children_rejected(self):
        tools, _ = self.chain("Tools", "Drills")

        with pytest.raises(CategoryInUseError) as exc_info:
            self.service.delete_category(self.tenant, tools.id)

        assert exc_info.value.errors == ["Category has 1 subcategories"]
        assert exc_info.value.subcategory_count == 1

    def test_delete_missing_category(self):
        with pytest.raises(CategoryNotFoundError):
            self.service.delete_category(self.tenant, "missing")


class TestQueries(ServiceTestBase):

    def test_get_category_includes_path(self):
        _, _, laptops = self.chain("Electronics", "Computers", "Laptops")

        category = self.service.get_category(self.tenant, laptops.id)

        assert category.full_path == "Electronics > Computers > Laptops"
        assert category.hierarchy_depth == 2

    def test_get_root_categories_sorted(self):
        self.create("tools")
        electronics = self.create("Electronics")
        self.create("Garden")
        self.create("Laptops", electronics)

        roots = self.service.get_root_categories(self.tenant)

        assert [c.name for c in roots] == ["Electronics", "Garden", "tools"]

    def test_list_categories_pages(self):
        for name in ["d", "a", "c", "b", "e"]:
            self.create(name)

        first = self.service.list_categories(self.tenant, offset=0, limit=2)
        rest = self.service.list_categories(self.tenant, offset=2)

        assert [c.name for c in first] == ["a", "b"]
        assert [c.name for c in rest] == ["c", "d", "e"]

    def test_list_categories_rejects_bad_page(self):
        with pytest.raises(ValidationError) as exc_info:
            self.service.list_categories(self.tenant, offset=-1, limit=0)

        assert set(exc_info.value.field_errors) == {"offset", "limit"}

    def test_search_categories(self):
        electronics = self.create("Electronics")
        self.create("Audio Cables", electronics)
        self.create("Garden", description="Outdoor cables and hoses")
        self.create("Kitchen")

        found = self.service.search_categories(self.tenant, "CABLE")

        assert [c.name for c in found] == ["Audio Cables", "Garden"]
        assert found[0].full_path == "Electronics > Audio Cables"

    def test_search_requires_term(self):
        with pytest.raises(ValidationError):
            self.service.search_categories(self.tenant, "  ")


class TestMoveCategory(ServiceTestBase):

    def test_move_under_descendant_rejected_and_tree_unchanged(self):
        a, b, c = self.chain("A", "B", "C")

        with pytest.raises(CircularReferenceError):
            self.service.move_category(self.tenant, a.id, c.id)

        assert self.service.get_category(self.tenant, a.id).parent_id is None
        assert self.service.get_category(self.tenant, b.id).parent_id == a.id
        assert self.service.get_category(self.tenant, c.id).parent_id == b.id

    def test_move_under_itself_rejected(self):
        tools = self.create("Tools")

        with pytest.raises(CircularReferenceError):
            self.service.move_category(self.tenant, tools.id, tools.id)

    def test_move_to_new_parent(self):
        electronics = self.create("Electronics")
        garden = self.create("Garden")
        lights = self.create("Lights", garden)

        moved = self.service.move_category(self.tenant, lights.id, electronics.id)

        assert moved.parent_id == electronics.id
        assert moved.full_path == "Electronics > Lights"
        assert moved.version == 1
        assert self.service.get_subcategories(self.tenant, garden.id) == []

    def test_move_to_root(self):
        _, computers = self.chain("Electronics", "Computers")

        moved = self.service.move_category(self.tenant, computers.id, None)

        assert moved.parent_id is None
        assert moved.hierarchy_depth == 0

    def test_move_bumps_checked_ancestors(self):
        a, b = self.chain("A", "B")
        x = self.create("X")

        self.service.move_category(self.tenant, x.id, b.id)

        assert self.service.get_category(self.tenant, a.id).version == 1
        assert self.service.get_category(self.tenant, b.id).version == 1
        assert self.service.get_category(self.tenant, x.id).version == 1

    def test_move_to_current_parent_is_noop(self):
        tools, drills = self.chain("Tools", "Drills")

        moved = self.service.move_category(self.tenant, drills.id, tools.id)

        assert moved.version == 0
        assert moved.parent_id == tools.id

    def test_move_with_name_clash_at_destination(self):
        tools = self.create("Tools")
        self.create("Accessories", tools)
        loose = self.create("accessories")

        with pytest.raises(DuplicateCategoryNameError):
            self.service.move_category(self.tenant, loose.id, tools.id)

        assert self.service.get_category(self.tenant, loose.id).parent_id is None

    def test_move_to_missing_parent(self):
        tools = self.create("Tools")

        with pytest.raises(CategoryNotFoundError):
            self.service.move_category(self.tenant, tools.id, "missing")

    def test_move_missing_category(self):
        tools = self.create("Tools")

        with pytest.raises(CategoryNotFoundError):
            self.service.move_category(self.tenant, "missing", tools.id)

    def test_parent_walks_terminate_after_many_moves(self):
        nodes = [self.create(f"N{i}") for i in range(6)]
        moves = [(1, 0), (2, 1), (3, 2), (0, 3), (4, 0), (5, 4), (0, 5), (2, 5), (1, 2)]
        for child, parent in moves:
            try:
                self.service.move_category(self.tenant, nodes[child].id, nodes[parent].id)
            except CircularReferenceError:
                pass

        # Every category reaches a root within as many steps as there are categories
        for node in nodes:
            path = self.service.get_category_path(self.tenant, node.id)
            assert len(path) < len(nodes)


class TestHierarchyQueries(ServiceTestBase):

    def setup_method(self):
        super().setup_method()
        # Electronics > Computers > Laptops
        #             > Audio
        # Tools
        self.electronics = self.create("Electronics")
        self.computers = self.create("Computers", self.electronics)
        self.laptops = self.create("Laptops", self.computers)
        self.audio = self.create("Audio", self.electronics)
        self.tools = self.create("Tools")

    def test_category_path_from_root(self):
        path = self.service.get_category_path(self.tenant, self.laptops.id)

        assert [c.name for c in path] == ["Electronics", "Computers"]
        assert [c.hierarchy_depth for c in path] == [0, 1]
        assert path[1].full_path == "Electronics > Computers"

    def test_category_path_of_root_is_empty(self):
        assert self.service.get_category_path(self.tenant, self.tools.id) == []

    def test_descendants_depth_first(self):
        descendants = self.service.get_descendants(self.tenant, self.electronics.id)

        assert [c.name for c in descendants] == ["Audio", "Computers", "Laptops"]
        assert descendants[2].full_path == "Electronics > Computers > Laptops"

    def test_path_and_descendants_agree(self):
        for category in [self.electronics, self.computers, self.laptops, self.audio, self.tools]:
            for descendant in self.service.get_descendants(self.tenant, category.id):
                path_ids = [c.id for c in self.service.get_category_path(self.tenant, descendant.id)]
                assert category.id in path_ids

    def test_subcategories(self):
        children = self.service.get_subcategories(self.tenant, self.electronics.id)

        assert [c.name for c in children] == ["Audio", "Computers"]
        assert children[0].full_path == "Electronics > Audio"

    def test_subcategories_of_missing_category(self):
        with pytest.raises(CategoryNotFoundError):
            self.service.get_subcategories(self.tenant, "missing")

    def test_category_tree(self):
        tree = self.service.get_category_tree(self.tenant)

        assert tree.total_categories == 5
        assert tree.max_depth == 3
        assert [n.name for n in tree.root_categories] == ["Electronics", "Tools"]
        electronics = tree.root_categories[0]
        assert [n.name for n in electronics.subcategories] == ["Audio", "Computers"]
        assert electronics.subcategories[1].subcategories[0].id == self.laptops.id

    def test_empty_tree(self):
        tree = self.service.get_category_tree(TenantContext(tenant_id="empty"))

        assert tree.root_categories == []
        assert tree.total_categories == 0
        assert tree.max_depth == 0


class TestValidationQueries(ServiceTestBase):

    def test_validate_deletion_valid(self):
        tools = self.create("Tools")

        result = self.service.validate_deletion(self.tenant, tools.id)

        assert result.valid is True
        assert result.errors == []
        assert result.operation == "DELETE"

    def test_validate_deletion_reports_all_blockers(self):
        tools, _ = self.chain("Tools", "Drills")
        self.test_db.add_product("tenant-a", tools.id, "SAW-1")
        self.test_db.add_product("tenant-a", tools.id, "SAW-2")

        result = self.service.validate_deletion(self.tenant, tools.id)

        assert result.valid is False
        assert result.errors == ["Category contains 2 products", "Category has 1 subcategories"]

    def test_validate_deletion_missing_category(self):
        with pytest.raises(CategoryNotFoundError):
            self.service.validate_deletion(self.tenant, "missing")

    def test_validate_move_valid(self):
        tools = self.create("Tools")
        garden = self.create("Garden")

        result = self.service.validate_move(self.tenant, tools.id, garden.id)

        assert result.valid is True
        assert result.operation == "MOVE"

    def test_validate_move_circular(self):
        a, _, c = self.chain("A", "B", "C")

        result = self.service.validate_move(self.tenant, a.id, c.id)

        assert result.valid is False
        assert result.errors == ["Move would create circular reference"]

    def test_validate_move_missing_source_and_target(self):
        result = self.service.validate_move(self.tenant, "missing", "also-missing")

        assert result.valid is False
        assert result.errors == ["Source category does not exist", "Target parent category does not exist"]

    def test_validate_move_missing_target(self):
        tools = self.create("Tools")

        result = self.service.validate_move(self.tenant, tools.id, "missing")

        assert result.errors == ["Target parent category does not exist"]

    def test_validate_move_name_clash(self):
        tools = self.create("Tools")
        self.create("Accessories", tools)
        loose = self.create("Accessories")

        result = self.service.validate_move(self.tenant, loose.id, tools.id)

        assert result.valid is False
        assert "already exists at the target level" in result.errors[0]

    def test_validate_move_to_root_is_valid(self):
        _, computers = self.chain("Electronics", "Computers")

        assert self.service.validate_move(self.tenant, computers.id, None).valid is True

    def test_validate_move_requires_category_id(self):
        with pytest.raises(ValidationError):
            self.service.validate_move(self.tenant, None, None)

    def test_validate_move_leaves_tree_unchanged(self):
        a, _, c = self.chain("A", "B", "C")

        self.service.validate_move(self.tenant, c.id, None)

        assert self.service.get_category(self.tenant, c.id).parent_id is not None
        assert self.service.get_category(self.tenant, a.id).version == 0

    def test_is_name_available(self):
        tools = self.create("Tools")
        self.create("Drills", tools)

        assert self.service.is_name_available(self.tenant, "TOOLS") is False
        assert self.service.is_name_available(self.tenant, " tools ", exclude_id=tools.id) is True
        assert self.service.is_name_available(self.tenant, "drills") is True
        assert self.service.is_name_available(self.tenant, "drills", parent_id=tools.id) is False
        assert self.service.is_name_available(self.tenant, "   ") is False


class TestOptimisticConcurrency:
    """Races are simulated by letting another session commit first."""

    @pytest.fixture(autouse=True)
    def file_database(self, tmp_path):
        self.test_db = create_test_db(f"sqlite:///{tmp_path / 'catalog.db'}")
        self.service = CategoryHierarchyService(engine_override=self.test_db.engine)
        self.tenant = TenantContext(tenant_id="tenant-a")
        yield
        self.test_db.close()

    def bump_elsewhere(self, category_id, version):
        with Session(self.test_db.engine) as other:
            CategoryRepository(other, self.tenant.tenant_id).touch(category_id, version)
            other.commit()

    def test_concurrent_update_raises_conflict(self, monkeypatch):
        tools = self.service.create_category(self.tenant, CategoryCreate(name="Tools"))
        original = CategoryRepository.update_category

        def racing_update(repo, category_id, expected_version, changes):
            self.bump_elsewhere(category_id, expected_version)
            return original(repo, category_id, expected_version, changes)

        monkeypatch.setattr(CategoryRepository, "update_category", racing_update)
        with pytest.raises(ConcurrencyConflictError) as exc_info:
            self.service.update_category(self.tenant, tools.id, CategoryUpdate(name="Hand Tools"))
        monkeypatch.undo()

        assert exc_info.value.retryable is True
        assert self.service.get_category(self.tenant, tools.id).name == "Tools"

        # A retry reads the new version and succeeds
        retried = self.service.update_category(self.tenant, tools.id, CategoryUpdate(name="Hand Tools"))
        assert retried.version == 2

    def test_concurrent_ancestor_change_aborts_move(self, monkeypatch):
        a = self.service.create_category(self.tenant, CategoryCreate(name="A"))
        b = self.service.create_category(self.tenant, CategoryCreate(name="B", parent_id=a.id))
        x = self.service.create_category(self.tenant, CategoryCreate(name="X"))
        original = CategoryRepository.touch
        raced = []

        def racing_touch(repo, category_id, expected_version):
            if not raced:
                raced.append(category_id)
                self.bump_elsewhere(category_id, expected_version)
            return original(repo, category_id, expected_version)

        monkeypatch.setattr(CategoryRepository, "touch", racing_touch)
        with pytest.raises(ConcurrencyConflictError):
            self.service.move_category(self.tenant, x.id, b.id)
        monkeypatch.undo()

        assert raced == [b.id]
        assert self.service.get_category(self.tenant, x.id).parent_id is None
        assert self.service.get_category(self.tenant, x.id).version == 0

    def test_delete_after_concurrent_change_raises_conflict(self, monkeypatch):
        tools = self.service.create_category(self.tenant, CategoryCreate(name="Tools"))
        original = CategoryRepository.delete_category

        def racing_delete(repo, category_id, expected_version):
            self.bump_elsewhere(category_id, expected_version)
            return original(repo, category_id, expected_version)

        monkeypatch.setattr(CategoryRepository, "delete_category", racing_delete)
        with pytest.raises(ConcurrencyConflictError):
            self.service.delete_category(self.tenant, tools.id)
        monkeypatch.undo()

        assert self.service.get_category(self.tenant, tools.id).version == 1

    def test_child_added_during_delete_raises_conflict(self, monkeypatch):
        tools = self.service.create_category(self.tenant, CategoryCreate(name="Tools"))
        original = CategoryRepository.delete_category

        def racing_delete(repo, category_id, expected_version):
            self.test_db.add_category(self.tenant.tenant_id, "Drills", parent_id=category_id)
            return original(repo, category_id, expected_version)

        monkeypatch.setattr(CategoryRepository, "delete_category", racing_delete)
        with pytest.raises(ConcurrencyConflictError):
            self.service.delete_category(self.tenant, tools.id)
        monkeypatch.undo()

        assert [c.name for c in self.service.get_subcategories(self.tenant, tools.id)] == ["Drills"]
