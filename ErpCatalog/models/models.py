"""
Core Models Module

Registers every table with SQLModel metadata and builds the database engine.
"""

from typing import Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from ErpCatalog.config import get_settings

# Import all domain models to ensure they're registered with SQLModel metadata
from .category_models import *
from .product_models import *


def build_engine(database_url: Optional[str] = None, echo: Optional[bool] = None) -> Engine:
    """Create an engine for the configured database.

    SQLite connections get foreign key enforcement; in-memory SQLite shares one
    connection so every session sees the same database.
    """
    settings = get_settings()
    url = database_url or settings.DATABASE_URL
    echo = settings.DB_ECHO if echo is None else echo

    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url in ("sqlite://", "sqlite+pysqlite://"):
            kwargs["poolclass"] = StaticPool
        new_engine = create_engine(url, echo=echo, **kwargs)
        event.listen(new_engine, "connect", enable_foreign_keys)
        return new_engine

    return create_engine(url, echo=echo, pool_pre_ping=True)


def enable_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


engine = build_engine()


# Create tables if they don't exist
def create_db_and_tables(target_engine: Optional[Engine] = None):
    SQLModel.metadata.create_all(target_engine or engine)
