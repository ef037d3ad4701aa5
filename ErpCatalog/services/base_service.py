"""
Base service abstraction for consistent database session management and error handling.

Every catalog service derives from BaseService so that one operation maps to
one session and one transaction.

Key features:
- Centralized session context manager
- Consistent error handling and logging
- Standardized transaction management
- Proper session cleanup
"""

import logging
from contextlib import contextmanager
from typing import Any, Dict
from abc import ABC

from sqlmodel import Session

from ErpCatalog.models.models import engine
from ErpCatalog.exceptions import ValidationError, log_exception

# Configure logging
logger = logging.getLogger(__name__)


class BaseService(ABC):
    """
    Base service class providing centralized session management and error handling.

    Usage:
        class CategoryHierarchyService(BaseService):
            def get_category(self, tenant, category_id):
                with self.get_session() as session:
                    # Your business logic here
                    ...
    """

    def __init__(self, engine_override=None):
        """
        Initialize base service.

        Args:
            engine_override: Optional engine to use instead of global engine (for testing)
        """
        self.logger = logging.getLogger(self.__class__.__name__)
        self.engine = engine_override if engine_override is not None else engine

    @contextmanager
    def get_session(self):
        """
        Context manager for synchronous database session management.

        Provides:
        - Automatic session creation and cleanup
        - Transaction management with auto-commit on success
        - Automatic rollback on exceptions

        Usage:
            with self.get_session() as session:
                # Database operations
                ...
        """
        session = Session(self.engine)
        try:
            self.logger.debug("Database session created")
            yield session
            session.commit()
            self.logger.debug("Database session committed successfully")
        except Exception as e:
            session.rollback()
            self.logger.debug(f"Database session rolled back due to error: {e}")
            log_exception(e, context=self.__class__.__name__)
            raise
        finally:
            session.close()
            self.logger.debug("Database session closed")

    def validate_required_fields(self, data: Dict[str, Any], required_fields: list[str]) -> None:
        """
        Validate that required fields are present in the data.

        Args:
            data: The data dictionary to validate
            required_fields: List of required field names

        Raises:
            ValidationError: If any required fields are missing
        """
        missing_fields = []
        for field in required_fields:
            value = data.get(field)
            if value is None or (isinstance(value, str) and value.strip() == ""):
                missing_fields.append(field)

        if missing_fields:
            raise ValidationError(
                f"Missing required fields: {', '.join(missing_fields)}",
                missing_fields=missing_fields,
            )

    def log_operation(self, operation: str, entity_type: str, entity_id: str = None):
        """
        Log service operations for debugging and audit purposes.

        Args:
            operation: The operation being performed (create, update, delete, etc.)
            entity_type: The type of entity being operated on
            entity_id: Optional ID of the entity
        """
        entity_info = f" (ID: {entity_id})" if entity_id else ""
        self.logger.info(f"Starting {operation} operation for {entity_type}{entity_info}")
