"""SQLite database adapter: the database is a file."""

import logging
from pathlib import Path

logger = logging.getLogger(__name__)

# Side files SQLite may leave next to the database
_SIDE_SUFFIXES = ("-journal", "-wal", "-shm")


def parse_sqlite_url(url: str) -> Path:
    """Resolve a file: or sqlite:/// URL to an absolute path.

    Relative paths resolve against the current working directory.
    """
    if url.startswith("sqlite:///"):
        raw = url[len("sqlite:///"):]
    elif url.startswith("file:"):
        raw = url[len("file:"):]
    else:
        raise ValueError(f"Not a SQLite URL: {url}")

    path = Path(raw)
    if not path.is_absolute():
        path = Path.cwd() / path
    return path


class SQLiteDatabaseAdapter:
    """Creates and removes SQLite database files."""

    name = "sqlite"

    def matches(self, url: str) -> bool:
        return url.startswith(("file:", "sqlite:///"))

    def create(self, url: str) -> None:
        """Create the database file and its parent directories."""
        path = parse_sqlite_url(url)
        path.parent.mkdir(parents=True, exist_ok=True)

        if path.exists():
            logger.warning("SQLite database already exists at %s", path)
            return

        path.touch()
        logger.info("SQLite database created at %s", path)

    def drop(self, url: str) -> None:
        """Remove the database file along with its journal/WAL side files."""
        path = parse_sqlite_url(url)

        if path.exists():
            path.unlink()
            logger.info("SQLite database at %s dropped", path)
        else:
            logger.warning("SQLite database does not exist at %s", path)

        for suffix in _SIDE_SUFFIXES:
            side = path.with_name(path.name + suffix)
            if side.exists():
                side.unlink()
