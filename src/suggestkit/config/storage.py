"""Where the local entity store keeps its SQLite database."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Final

APP_DIR_NAME: Final[str] = "suggestkit"
DEFAULT_DB_FILENAME: Final[str] = "suggestkit.db"


@dataclass(frozen=True, slots=True)
class StorageConfig:
    data_dir: Path
    database_filename: str = DEFAULT_DB_FILENAME

    def resolve_data_dir(self) -> Path:
        return self.data_dir.expanduser().resolve()

    def database_path(self, *, ensure: bool = True) -> Path:
        data_dir = self.resolve_data_dir()
        if ensure:
            data_dir.mkdir(parents=True, exist_ok=True)
        return data_dir / self.database_filename


@dataclass(frozen=True, slots=True)
class DatabaseConfig:
    uri: str


def _platform_data_home() -> Path:
    env_name, fallback = (
        ("LOCALAPPDATA", Path("AppData") / "Local")
        if os.name == "nt"
        else ("XDG_DATA_HOME", Path(".local") / "share")
    )
    base = os.getenv(env_name)
    return Path(base) if base else Path.home() / fallback


def get_storage_config() -> StorageConfig:
    env_dir = os.getenv("SUGGESTKIT_DATA_DIR")
    data_dir = Path(env_dir) if env_dir else _platform_data_home() / APP_DIR_NAME
    return StorageConfig(data_dir=data_dir)


def get_database_config(
    *, uri: str | None = None, storage: StorageConfig | None = None
) -> DatabaseConfig:
    """Pick the database URI: explicit ``uri``, then ``DATABASE_URI``, then the data dir."""
    chosen = uri or os.getenv("DATABASE_URI")
    if chosen:
        return DatabaseConfig(uri=chosen)
    path = (storage or get_storage_config()).database_path()
    return DatabaseConfig(uri=f"sqlite+pysqlite:///{path}")
