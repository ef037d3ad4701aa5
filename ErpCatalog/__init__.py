"""
ErpCatalog - Tenant-scoped product category hierarchy for the ERP backend
"""

__version__ = "1.0.0"
__schema_version__ = "1.0.0"  # Database schema version

VERSION_INFO = {
    "app_version": __version__,
    "schema_version": __schema_version__,
    "description": "Category hierarchy engine with bulk import and statistics",
}
