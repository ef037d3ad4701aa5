import pytest

from ErpCatalog.config import reset_settings
from ErpCatalog.services.tenant_context import TenantContext
from ErpCatalog.unit_tests.test_database import create_test_db


@pytest.fixture(autouse=True)
def fresh_settings():
    """Settings are cached per process; tests that patch the environment need a clean read."""
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def test_db():
    db = create_test_db()
    yield db
    db.close()


@pytest.fixture
def tenant():
    return TenantContext(tenant_id="tenant-a", user_id="user-1")


@pytest.fixture
def other_tenant():
    return TenantContext(tenant_id="tenant-b")
