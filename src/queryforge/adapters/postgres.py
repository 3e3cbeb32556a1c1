"""PostgreSQL database adapter.

Uses psycopg v3 (psycopg[binary]>=3.1.0), imported lazily so the
package works without it when only SQLite is used. Creating and
dropping a database happens over a connection to the ``postgres``
maintenance database, since a database cannot drop itself.
"""

import logging
import re
from dataclasses import dataclass
from urllib.parse import unquote

logger = logging.getLogger(__name__)

_URL_PATTERN = re.compile(
    r"^postgres(?:ql)?://([^:]+):([^@]+)@([^:/]+):(\d+)/([^?]+)(\?.*)?$"
)


@dataclass
class PostgresConfig:
    """Connection parameters parsed from a PostgreSQL URL."""

    user: str
    password: str
    host: str
    port: int
    database: str


def parse_postgres_url(url: str) -> PostgresConfig:
    """Parse ``postgres[ql]://user:password@host:port/database``.

    User and password are percent-decoded.

    Raises:
        ValueError: If the URL does not have that shape
    """
    match = _URL_PATTERN.match(url)
    if not match:
        raise ValueError("Invalid PostgreSQL connection string")

    user, password, host, port, database, _query = match.groups()
    return PostgresConfig(
        user=unquote(user),
        password=unquote(password),
        host=host,
        port=int(port),
        database=database,
    )


class PostgresDatabaseAdapter:
    """Creates and drops PostgreSQL databases."""

    name = "postgres"

    def matches(self, url: str) -> bool:
        return url.startswith(("postgresql://", "postgres://"))

    def _connect(self, config: PostgresConfig):
        import psycopg

        # CREATE/DROP DATABASE cannot run inside a transaction block
        return psycopg.connect(
            host=config.host,
            port=config.port,
            user=config.user,
            password=config.password,
            dbname="postgres",
            autocommit=True,
        )

    def create(self, url: str) -> None:
        from psycopg import sql

        config = parse_postgres_url(url)
        with self._connect(config) as conn:
            exists = conn.execute(
                "SELECT 1 FROM pg_database WHERE datname = %s", (config.database,)
            ).fetchone()
            if exists:
                logger.warning("Database %s already exists", config.database)
                return

            conn.execute(sql.SQL("CREATE DATABASE {}").format(sql.Identifier(config.database)))
            logger.info("Database %s created", config.database)

    def drop(self, url: str) -> None:
        """Terminate other sessions on the database, then drop it if it exists."""
        from psycopg import sql

        config = parse_postgres_url(url)
        with self._connect(config) as conn:
            conn.execute(
                """
                SELECT pg_terminate_backend(pg_stat_activity.pid)
                FROM pg_stat_activity
                WHERE pg_stat_activity.datname = %s
                AND pid <> pg_backend_pid()
                """,
                (config.database,),
            )
            conn.execute(
                sql.SQL("DROP DATABASE IF EXISTS {}").format(sql.Identifier(config.database))
            )
            logger.info("Database %s dropped", config.database)
