"""Application configuration helpers."""

from __future__ import annotations

from .backfill import BackfillConfig, get_backfill_config
from .env import optional_env_var
from .errors import ConfigurationError
from .logging import configure_logging
from .storage import DatabaseConfig, StorageConfig, get_database_config, get_storage_config

__all__ = [
    "BackfillConfig",
    "ConfigurationError",
    "DatabaseConfig",
    "StorageConfig",
    "configure_logging",
    "get_backfill_config",
    "get_database_config",
    "get_storage_config",
    "optional_env_var",
]
