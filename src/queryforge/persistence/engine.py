"""PersistenceEngine Protocol: the capability contract queryforge consumes.

queryforge does not execute queries itself. Any object with these two
coroutine methods can sit behind the interceptor and the query builder;
``SQLiteEngine`` is the bundled implementation.
"""

from collections.abc import Iterable
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class PersistenceEngine(Protocol):
    """Interface every persistence engine must implement.

    ``execute`` runs a named operation (see ``queryforge.hooks.Operation``)
    against a named model. Arguments use snake_case keys: ``where``,
    ``data``, ``order_by``, ``select``, ``include``, ``distinct``,
    ``take``, ``skip``, and ``create``/``update`` for upsert.

    ``find_many`` is the read capability used for column-hook diffing.
    """

    async def execute(self, model: str, operation: str, args: dict[str, Any]) -> Any: ...

    async def find_many(
        self,
        model: str,
        where: dict[str, Any] | None = None,
        select: Iterable[str] | None = None,
    ) -> list[dict[str, Any]]: ...
