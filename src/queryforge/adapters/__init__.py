"""Database adapters: create and drop the physical database for a URL.

Usage:
    from queryforge.adapters import adapter_registry

    adapter_registry.get_adapter(url).create(url)
"""

from queryforge.adapters.base import AdapterRegistry, DatabaseAdapter
from queryforge.adapters.postgres import (
    PostgresConfig,
    PostgresDatabaseAdapter,
    parse_postgres_url,
)
from queryforge.adapters.sqlite import SQLiteDatabaseAdapter, parse_sqlite_url

adapter_registry = AdapterRegistry()
adapter_registry.register(PostgresDatabaseAdapter())
adapter_registry.register(SQLiteDatabaseAdapter())

__all__ = [
    "AdapterRegistry",
    "DatabaseAdapter",
    "PostgresConfig",
    "PostgresDatabaseAdapter",
    "SQLiteDatabaseAdapter",
    "adapter_registry",
    "parse_postgres_url",
    "parse_sqlite_url",
]
