"""
Consolidated ErpCatalog Exception Hierarchy

All business errors raised by the category hierarchy engine live here so the
request-handling layer can map them consistently.

Architecture:
- Base exception classes for common error types
- Category-specific exceptions that inherit from base classes
- Consistent error response structure (``to_dict``)
- Logging and HTTP status helpers shared by services and callers
"""

import logging
from typing import Any, Dict, Optional, List

logger = logging.getLogger(__name__)


# =============================================================================
# Base Exception Classes
# =============================================================================


class ErpCatalogException(Exception):
    """Base exception for all ErpCatalog-related errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, error_code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.error_code = error_code

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {"error_code": self.error_code, "message": self.message, "details": self.details}


class ValidationError(ErpCatalogException):
    """Raised when input validation fails."""

    def __init__(
        self, message: str, field_errors: Optional[Dict[str, str]] = None, missing_fields: Optional[List[str]] = None
    ):
        super().__init__(message, error_code="VALIDATION_ERROR")
        self.field_errors = field_errors or {}
        self.missing_fields = missing_fields or []

        if field_errors or missing_fields:
            self.details.update({"field_errors": self.field_errors, "missing_fields": self.missing_fields})


class ResourceNotFoundError(ErpCatalogException):
    """Raised when a requested resource is not found."""

    def __init__(self, message: str, resource_type: Optional[str] = None, resource_id: Optional[str] = None):
        super().__init__(message, error_code="RESOURCE_NOT_FOUND")
        self.resource_type = resource_type
        self.resource_id = resource_id

        if resource_type or resource_id:
            self.details.update({"resource_type": resource_type, "resource_id": resource_id})


class ResourceAlreadyExistsError(ErpCatalogException):
    """Raised when attempting to create a resource that already exists."""

    def __init__(
        self,
        message: str,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        conflicting_field: Optional[str] = None,
    ):
        super().__init__(message, error_code="RESOURCE_ALREADY_EXISTS")
        self.resource_type = resource_type
        self.resource_id = resource_id
        self.conflicting_field = conflicting_field

        if resource_type or resource_id or conflicting_field:
            self.details.update(
                {"resource_type": resource_type, "resource_id": resource_id, "conflicting_field": conflicting_field}
            )


class ConcurrencyConflictError(ErpCatalogException):
    """Raised when a version-checked write finds the row changed underneath it.

    The caller should retry the whole operation, not just the failed write.
    """

    retryable = True

    def __init__(self, message: str, resource_type: Optional[str] = None, resource_id: Optional[str] = None,
                 expected_version: Optional[int] = None):
        super().__init__(message, error_code="CONCURRENCY_CONFLICT")
        self.resource_type = resource_type
        self.resource_id = resource_id
        self.expected_version = expected_version
        self.details.update(
            {"resource_type": resource_type, "resource_id": resource_id, "expected_version": expected_version}
        )


class ConfigurationError(ErpCatalogException):
    """Raised when configuration is invalid or missing."""

    def __init__(self, message: str, config_field: Optional[str] = None, config_value: Optional[str] = None):
        super().__init__(message, error_code="CONFIGURATION_ERROR")
        self.config_field = config_field
        self.config_value = config_value

        if config_field or config_value:
            self.details.update({"config_field": config_field, "config_value": config_value})


# =============================================================================
# Category Hierarchy Exceptions
# =============================================================================


class CategoryNotFoundError(ResourceNotFoundError):
    """Raised when a category does not exist in the current tenant."""

    def __init__(self, message: str, category_id: Optional[str] = None):
        super().__init__(message, resource_type="category", resource_id=category_id)


class DuplicateCategoryNameError(ResourceAlreadyExistsError):
    """Raised when a sibling with the same (case-insensitive) name already exists."""

    def __init__(self, message: str, category_name: Optional[str] = None, parent_id: Optional[str] = None):
        super().__init__(message, resource_type="category", conflicting_field="name")
        self.category_name = category_name
        self.parent_id = parent_id

        if category_name:
            self.details.update({"category_name": category_name, "parent_id": parent_id})


class CircularReferenceError(ErpCatalogException):
    """Raised when a move or reparent would make a category its own ancestor."""

    def __init__(self, message: str, category_id: Optional[str] = None, new_parent_id: Optional[str] = None):
        super().__init__(message, error_code="CIRCULAR_REFERENCE")
        self.category_id = category_id
        self.new_parent_id = new_parent_id
        self.details.update({"category_id": category_id, "new_parent_id": new_parent_id})


class CategoryInUseError(ErpCatalogException):
    """Raised when deletion is blocked by products or subcategories."""

    def __init__(
        self,
        message: str,
        category_id: Optional[str] = None,
        errors: Optional[List[str]] = None,
        product_count: int = 0,
        subcategory_count: int = 0,
    ):
        super().__init__(message, error_code="CATEGORY_IN_USE")
        self.category_id = category_id
        self.errors = errors or []
        self.product_count = product_count
        self.subcategory_count = subcategory_count
        self.details.update(
            {
                "category_id": category_id,
                "errors": self.errors,
                "product_count": product_count,
                "subcategory_count": subcategory_count,
            }
        )


# =============================================================================
# Exception Logging Helpers
# =============================================================================


def log_exception(exception: Exception, context: str = None, extra_info: Optional[Dict[str, Any]] = None):
    """
    Centralized exception logging with consistent format.

    Catalog exceptions are expected business outcomes and are logged at WARNING;
    anything else is an infrastructure fault and is logged at ERROR with traceback.

    Args:
        exception: The exception to log
        context: Additional context about where the exception occurred
        extra_info: Additional information to include in the log
    """
    if isinstance(exception, ErpCatalogException):
        log_data = {
            "error_code": exception.error_code,
            "error_message": exception.message,  # Renamed to avoid conflict with LogRecord.message
            "details": exception.details,
            "context": context,
        }

        if extra_info:
            log_data.update(extra_info)

        logger.warning(f"ErpCatalog Error: {exception.message}", extra=log_data)
    else:
        log_data = {
            "exception_type": type(exception).__name__,
            "error_message": str(exception),
            "context": context,
        }

        if extra_info:
            log_data.update(extra_info)

        logger.error(f"Unexpected Error: {str(exception)}", extra=log_data, exc_info=exception)


def get_http_status_code(exception: Exception) -> int:
    """
    Get appropriate HTTP status code for an exception.

    Provides the request-handling layer with one mapping of catalog errors to
    HTTP status codes.
    """
    if isinstance(exception, ValidationError):
        return 422  # Unprocessable Entity
    elif isinstance(exception, ResourceNotFoundError):
        return 404  # Not Found
    elif isinstance(exception, (ResourceAlreadyExistsError, CircularReferenceError,
                                CategoryInUseError, ConcurrencyConflictError)):
        return 409  # Conflict
    elif isinstance(exception, ConfigurationError):
        return 500  # Internal Server Error
    elif isinstance(exception, ErpCatalogException):
        return 400  # Bad Request (default for application errors)
    else:
        return 500  # Internal Server Error (unexpected errors)
