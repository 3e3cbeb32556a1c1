"""Database and hook configuration."""

from __future__ import annotations

import os
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from queryforge.hooks.types import HookConfig

if TYPE_CHECKING:
    from queryforge.persistence.schema import ModelDefinition
    from queryforge.persistence.sqlite import SQLiteEngine

__all__ = ["DatabaseConfig", "HookConfig", "create_engine"]


@dataclass
class DatabaseConfig:
    """Database connection configuration.

    Supports sqlite:///, file: and postgresql:// URL schemes.
    """

    url: str

    @classmethod
    def from_env(cls, base_path: Path | None = None) -> DatabaseConfig:
        """Create config from environment variables.

        Resolution order:
        1. DATABASE_URL env var (standard)
        2. QUERYFORGE_DB_PATH env var (converted to sqlite:/// URL)
        3. sqlite:///{base_path}/data/queryforge.db when base_path is given
        4. Default: sqlite:///queryforge.db
        """
        url = os.environ.get("DATABASE_URL")
        if url:
            return cls(url=url)

        db_path = os.environ.get("QUERYFORGE_DB_PATH")
        if db_path:
            return cls(url=f"sqlite:///{db_path}")

        if base_path:
            return cls(url=f"sqlite:///{base_path / 'data' / 'queryforge.db'}")

        return cls(url="sqlite:///queryforge.db")

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith(("sqlite", "file:"))

    @property
    def is_postgresql(self) -> bool:
        return self.url.startswith(("postgresql", "postgres:"))

    @property
    def sqlite_path(self) -> str:
        """Filesystem path of a SQLite URL; ":memory:" when empty.

        Raises:
            ValueError: If the URL is not a SQLite URL
        """
        if self.url.startswith("sqlite:///"):
            path = self.url[len("sqlite:///"):]
        elif self.url.startswith("file:"):
            path = self.url[len("file:"):]
        else:
            raise ValueError(f"Not a SQLite URL: {self.url}")
        return path or ":memory:"


def create_engine(
    config: DatabaseConfig, models: Iterable[ModelDefinition] = ()
) -> SQLiteEngine:
    """Create a persistence engine based on the database URL scheme.

    Args:
        config: Database configuration with URL.
        models: Model definitions to declare on the engine.

    Returns:
        A SQLiteEngine instance (not yet connected).

    Raises:
        ValueError: For URL schemes without a bundled engine.
    """
    if config.is_sqlite:
        from queryforge.persistence.sqlite import SQLiteEngine

        return SQLiteEngine(config.sqlite_path, models)

    raise ValueError(f"Unsupported database URL scheme: {config.url}")
