"""Environment-driven settings and logging setup for ErpCatalog."""

import logging
import os
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv

from ErpCatalog.exceptions import ConfigurationError

# Load environment variables from .env file
load_dotenv()

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int, minimum: Optional[int] = None) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer", config_field=name, config_value=raw)
    if minimum is not None and value < minimum:
        raise ConfigurationError(f"{name} must be at least {minimum}", config_field=name, config_value=raw)
    return value


class Settings:
    """Configuration read once from the process environment."""

    def __init__(self) -> None:
        self.DATABASE_URL = os.getenv("ERP_DATABASE_URL", "sqlite:///erp_catalog.db")
        self.DB_ECHO = _env_bool("ERP_DB_ECHO", default=False)
        # N for the top-N lists in system statistics
        self.TOP_CATEGORIES_LIMIT = _env_int("ERP_TOP_CATEGORIES_LIMIT", 5, minimum=1)
        self.CURRENCY = os.getenv("ERP_CURRENCY", "EUR").strip().upper()
        self.LOG_LEVEL = os.getenv("ERP_LOG_LEVEL", "INFO").strip().upper()

        if len(self.CURRENCY) != 3:
            raise ConfigurationError(
                "ERP_CURRENCY must be a three-letter currency code",
                config_field="ERP_CURRENCY",
                config_value=self.CURRENCY,
            )
        if not isinstance(logging.getLevelName(self.LOG_LEVEL), int):
            raise ConfigurationError(
                f"Unknown log level '{self.LOG_LEVEL}'",
                config_field="ERP_LOG_LEVEL",
                config_value=self.LOG_LEVEL,
            )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    get_settings.cache_clear()


def setup_logging(level: Optional[str] = None) -> None:
    """Configure logging settings"""
    log_level = (level or get_settings().LOG_LEVEL).upper()
    logging.basicConfig(
        level=getattr(logging, log_level),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler()],
    )
