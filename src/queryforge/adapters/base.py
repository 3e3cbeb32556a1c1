"""DatabaseAdapter Protocol and the registry that picks an adapter by URL."""

import logging
from typing import Protocol, runtime_checkable

from queryforge.errors import AdapterNotFoundError

logger = logging.getLogger(__name__)


@runtime_checkable
class DatabaseAdapter(Protocol):
    """Creates and drops the physical database behind a connection URL."""

    name: str

    def matches(self, url: str) -> bool:
        """True if this adapter handles the URL."""
        ...

    def create(self, url: str) -> None:
        """Create the database; an existing database is left alone."""
        ...

    def drop(self, url: str) -> None:
        """Drop the database; a missing database is not an error."""
        ...


class AdapterRegistry:
    """Ordered list of adapters; the first one matching a URL wins."""

    def __init__(self) -> None:
        self._adapters: list[DatabaseAdapter] = []

    def register(self, adapter: DatabaseAdapter) -> None:
        self._adapters.append(adapter)
        logger.debug("Registered database adapter: %s", adapter.name)

    def get_adapter(self, url: str) -> DatabaseAdapter:
        """Return the first registered adapter matching the URL.

        Raises:
            AdapterNotFoundError: If no adapter matches
        """
        for adapter in self._adapters:
            if adapter.matches(url):
                return adapter
        raise AdapterNotFoundError(url)

    @property
    def adapters(self) -> tuple[DatabaseAdapter, ...]:
        return tuple(self._adapters)
