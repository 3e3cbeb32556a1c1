"""Fluent query builder.

A QueryBuilder is a mutable, single-use scratchpad bound to one model
delegate. Chain methods mutate its QueryDescriptor in place and return
the same instance, so two variables holding the result of chained calls
on one builder share state:

    base = client.from_("user").where({"active": True})
    admins = base.where({"role": "admin"})   # base is admins

Use ``clone()`` when an independent copy is needed. Terminal methods
serialize the descriptor into engine args and issue the call; calling a
second terminal on the same builder reuses the accumulated state.
"""

import asyncio
import copy
import math
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, fields
from typing import TYPE_CHECKING, Any

from queryforge.errors import BuilderNotBoundError
from queryforge.hooks.registry import invoke

if TYPE_CHECKING:
    from queryforge.query.delegate import ModelDelegate
    from queryforge.query.models import ModelRegistry


@dataclass
class QueryDescriptor:
    """Accumulated query state. Unset parts are None and not serialized."""

    where: dict[str, Any] | None = None
    order_by: Any = None
    select: Any = None
    include: dict[str, Any] | None = None
    distinct: Any = None
    take: int | None = None
    skip: int | None = None

    def to_args(self) -> dict[str, Any]:
        """Serialize the set parts into engine args."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }

    def pick(self, *names: str) -> dict[str, Any]:
        """Serialize only the named parts."""
        return {name: value for name, value in self.to_args().items() if name in names}


class QueryBuilder:
    """Chainable query construction for one model.

    Subclass to add model-specific named filters:

        class UserQuery(QueryBuilder):
            def active(self):
                return self.where({"status": "active"})
    """

    def __init__(
        self,
        delegate: "ModelDelegate | None" = None,
        query: QueryDescriptor | None = None,
        models: "ModelRegistry | None" = None,
    ):
        self.delegate = delegate
        self.query = query if query is not None else QueryDescriptor()
        if models is None and delegate is not None:
            models = delegate.models
        self.models = models

    # ------------------------------------------------------------------
    # Filters
    # ------------------------------------------------------------------

    def where(self, condition: dict[str, Any]):
        """Add a filter condition.

        Repeated calls are AND-ed: ``where(A).where(B)`` yields
        ``{"AND": [A, B]}``.
        """
        return self._compose(condition, "AND")

    def and_where(self, condition: dict[str, Any]):
        """Alias for where()."""
        return self.where(condition)

    def or_where(self, condition: dict[str, Any]):
        """OR a condition with the entire accumulated filter.

        ``where(A).or_where(B).where(C)`` is ``(A OR B) AND C``; use
        where_group() for other groupings.
        """
        return self._compose(condition, "OR")

    def where_group(self, callback: Callable[["QueryBuilder"], Any], mode: str = "AND"):
        """Build a parenthesized group with a fresh builder.

        Args:
            callback: Receives a new builder of the same class; its
                accumulated filter becomes one group
            mode: "AND" or "OR" to combine the group with the current filter
        """
        group = type(self)(self.delegate, models=self.models)
        callback(group)
        return self._compose(group.query.where, mode)

    def or_where_group(self, callback: Callable[["QueryBuilder"], Any]):
        return self.where_group(callback, "OR")

    def with_id(self, id: int | str):
        """Filter by primary key.

        Raises:
            ValueError: If id is empty
        """
        if not id:
            raise ValueError("Id is required")
        return self.where({"id": id})

    def _compose(self, condition: dict[str, Any] | None, mode: str):
        if not condition:
            return self
        if not self.query.where:
            self.query.where = condition
        else:
            self.query.where = {mode: [self.query.where, condition]}
        return self

    # ------------------------------------------------------------------
    # Shape
    # ------------------------------------------------------------------

    def order(self, order_by: dict[str, str] | list[dict[str, str]]):
        self.query.order_by = order_by
        return self

    def first(self, key: str = "created_at"):
        """Order ascending by key and take one row."""
        return self.order({key: "asc"}).limit(1)

    def last(self, key: str = "created_at"):
        """Order descending by key and take one row."""
        return self.order({key: "desc"}).limit(1)

    def limit(self, limit: int):
        self.query.take = limit
        return self

    def skip(self, offset: int):
        self.query.skip = offset
        return self

    def distinct(self, distinct: str | list[str]):
        self.query.distinct = distinct
        return self

    def select(self, fields: dict[str, Any] | list[str]):
        self.query.select = fields
        return self

    def include(self, relation: str, callback: Callable[["QueryBuilder"], Any] | None = None):
        """Include a relation, optionally shaping it with a nested builder.

        The callback receives the builder class registered for the relation
        (by model name or plural alias), or a plain QueryBuilder.

            .include("posts", lambda posts: posts.published().limit(5))
        """
        relation_query: Any = True
        if callback is not None:
            nested = self.models.create(relation) if self.models is not None else None
            if nested is None:
                nested = QueryBuilder(models=self.models)
            callback(nested)
            relation_query = nested.get_query() or True

        self.query.include = {**(self.query.include or {}), relation: relation_query}
        return self

    def when(self, condition: bool | Callable[[], bool], callback: Callable[["QueryBuilder"], Any]):
        """Apply callback to this builder only when condition holds."""
        if condition() if callable(condition) else condition:
            callback(self)
        return self

    def get_query(self) -> dict[str, Any]:
        """Return the engine args the accumulated state serializes to."""
        return self.query.to_args()

    def clone(self):
        """Return an independent builder with a deep copy of the query state."""
        return type(self)(self.delegate, copy.deepcopy(self.query), models=self.models)

    # ------------------------------------------------------------------
    # Terminals
    # ------------------------------------------------------------------

    def _model(self) -> "ModelDelegate":
        if self.delegate is None:
            raise BuilderNotBoundError(
                f"{type(self).__name__} is not bound to a model; terminal calls need a delegate"
            )
        return self.delegate

    async def find_many(self) -> list[dict[str, Any]]:
        return await self._model().find_many(self.query.to_args())

    async def find_first(self) -> dict[str, Any] | None:
        """First matching row, or None."""
        return await self._model().find_first(self.query.to_args())

    async def find_unique(self) -> dict[str, Any] | None:
        """Row matching a unique filter (typically the id), or None."""
        return await self._model().find_unique(self.query.pick("where", "select", "include"))

    async def find_first_or_throw(self) -> dict[str, Any]:
        """Like find_first(), raising RecordNotFoundError when nothing matches."""
        return await self._model().find_first_or_throw(self.query.to_args())

    async def find_unique_or_throw(self) -> dict[str, Any]:
        return await self._model().find_unique_or_throw(self.query.pick("where", "select", "include"))

    async def create(self, data: dict[str, Any]) -> dict[str, Any]:
        """Create a row; create hooks fire."""
        return await self._model().create({**self.query.pick("select", "include"), "data": data})

    async def create_many(self, data: list[dict[str, Any]]) -> dict[str, int]:
        return await self._model().create_many({"data": data})

    async def update(self, data: dict[str, Any]) -> dict[str, Any]:
        """Update the single row matched by the accumulated filter."""
        return await self._model().update(
            {**self.query.pick("where", "select", "include"), "data": data}
        )

    async def update_many(self, data: dict[str, Any]) -> dict[str, int]:
        return await self._model().update_many({**self.query.pick("where"), "data": data})

    async def delete(self, **args: Any) -> dict[str, Any]:
        """Delete the single row matched by the accumulated filter.

        Keyword args override the serialized query parts.
        """
        return await self._model().delete({**self.query.pick("where", "select", "include"), **args})

    async def delete_many(self, **args: Any) -> dict[str, int]:
        return await self._model().delete_many({**self.query.pick("where"), **args})

    async def upsert(self, **args: Any) -> dict[str, Any]:
        """Update the matched row or create one; pass create= and update= data."""
        return await self._model().upsert({**self.query.pick("where", "select", "include"), **args})

    async def count(self) -> int:
        return await self._model().count(self.query.pick("where", "take", "skip"))

    # ------------------------------------------------------------------
    # Aggregates and helpers
    # ------------------------------------------------------------------

    async def _aggregate(self, kind: str, field: str) -> Any:
        args = {kind: {field: True}, **self.query.pick("where")}
        result = await self._model().aggregate(args)
        return result[kind][field]

    async def sum(self, field: str) -> Any:
        return await self._aggregate("_sum", field)

    async def avg(self, field: str) -> Any:
        return await self._aggregate("_avg", field)

    async def min(self, field: str) -> Any:
        return await self._aggregate("_min", field)

    async def max(self, field: str) -> Any:
        return await self._aggregate("_max", field)

    async def pluck(self, field: str) -> list[Any]:
        """Return one column from every matching row."""
        self.query.select = {field: True}
        rows = await self._model().find_many(self.query.to_args())
        return [row[field] for row in rows]

    async def only(self, field: str) -> Any:
        """Return one column of the first matching row, or None."""
        self.query.select = {field: True}
        row = await self._model().find_first(self.query.to_args())
        if row is None:
            return None
        return row[field]

    async def exists(self, existence_key: str = "id") -> bool:
        """True if any row matches the accumulated filter."""
        row = await self._model().find_first(
            {**self.query.pick("where"), "select": {existence_key: True}}
        )
        return row is not None

    async def paginate(self, page: int = 1, per_page: int = 15) -> dict[str, Any]:
        """Fetch one page plus the total count of matching rows.

        Returns:
            {"data": [...], "meta": {"total", "last_page", "current_page",
            "per_page", "prev", "next"}}

        Raises:
            ValueError: If page or per_page is less than 1
        """
        if page < 1:
            raise ValueError("Page must be at least 1")
        if per_page < 1:
            raise ValueError("Per page must be at least 1")

        self.query.skip = (page - 1) * per_page
        self.query.take = per_page

        model = self._model()
        data, total = await asyncio.gather(
            model.find_many(self.query.to_args()),
            model.count(self.query.pick("where")),
        )

        last_page = math.ceil(total / per_page)
        return {
            "data": data,
            "meta": {
                "total": total,
                "last_page": last_page,
                "current_page": page,
                "per_page": per_page,
                "prev": page - 1 if page > 1 else None,
                "next": page + 1 if page < last_page else None,
            },
        }

    async def chunk(
        self,
        size: int,
        callback: Callable[[list[dict[str, Any]]], Awaitable[None] | None],
    ) -> None:
        """Process matching rows in pages of ``size``.

        The builder's own skip/take are restored afterwards.
        """
        original_skip, original_take = self.query.skip, self.query.take
        model = self._model()
        page = 0
        try:
            while True:
                self.query.skip = page * size
                self.query.take = size
                rows = await model.find_many(self.query.to_args())
                if not rows:
                    break
                await invoke(callback, rows)
                if len(rows) < size:
                    break
                page += 1
        finally:
            self.query.skip, self.query.take = original_skip, original_take

    def __repr__(self) -> str:
        model = self.delegate.model if self.delegate is not None else None
        return f"{type(self).__name__}(model={model!r}, query={self.get_query()!r})"
