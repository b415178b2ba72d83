"""Location of the backfill database."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from .env import optional_env_var

APP_DIR_NAME: Final[str] = "bylines"
DEFAULT_DB_FILENAME: Final[str] = "bylines.db"
DATA_DIR_ENV: Final[str] = "BYLINES_DATA_DIR"
DATABASE_URI_ENV: Final[str] = "DATABASE_URI"


@dataclass(frozen=True, slots=True)
class StorageConfig:
    data_dir: Path
    database_filename: str = DEFAULT_DB_FILENAME

    @property
    def database_path(self) -> Path:
        return self.data_dir / self.database_filename

    def prepare(self) -> Path:
        """Create the data directory if needed and return the database file path."""

        self.data_dir.mkdir(parents=True, exist_ok=True)
        return self.database_path


@dataclass(frozen=True, slots=True)
class DatabaseConfig:
    uri: str


def _platform_data_home() -> Path:
    if os.name == "nt":
        return Path(os.getenv("LOCALAPPDATA") or Path.home() / "AppData" / "Local")
    return Path(os.getenv("XDG_DATA_HOME") or Path.home() / ".local" / "share")


def get_storage_config() -> StorageConfig:
    configured = optional_env_var(DATA_DIR_ENV, "")
    base = Path(configured) if configured else _platform_data_home() / APP_DIR_NAME
    return StorageConfig(data_dir=base.expanduser().resolve())


def get_database_config(*, storage: StorageConfig | None = None) -> DatabaseConfig:
    """Return ``DATABASE_URI`` if set, else a SQLite file in the data directory."""

    uri = optional_env_var(DATABASE_URI_ENV, "")
    if uri:
        return DatabaseConfig(uri=uri)
    path = (storage or get_storage_config()).prepare()
    return DatabaseConfig(uri=f"sqlite+pysqlite:///{path}")
