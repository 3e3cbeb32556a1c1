"""Per-model delegate: the capability to run operations against one model."""

from typing import TYPE_CHECKING, Any

from queryforge.hooks.types import Operation

if TYPE_CHECKING:
    from queryforge.client import Client
    from queryforge.query.models import ModelRegistry


class ModelDelegate:
    """Runs engine operations for one model through a client.

    Every call goes through ``Client.execute`` and therefore through the
    hook interceptor.
    """

    def __init__(self, client: "Client", model: str):
        self.client = client
        self.model = model

    @property
    def models(self) -> "ModelRegistry":
        return self.client.models

    async def _run(self, operation: Operation, args: dict[str, Any] | None) -> Any:
        return await self.client.execute(self.model, operation, {} if args is None else args)

    async def find_many(self, args: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        return await self._run(Operation.FIND_MANY, args)

    async def find_first(self, args: dict[str, Any] | None = None) -> dict[str, Any] | None:
        return await self._run(Operation.FIND_FIRST, args)

    async def find_unique(self, args: dict[str, Any] | None = None) -> dict[str, Any] | None:
        return await self._run(Operation.FIND_UNIQUE, args)

    async def find_first_or_throw(self, args: dict[str, Any] | None = None) -> dict[str, Any]:
        return await self._run(Operation.FIND_FIRST_OR_THROW, args)

    async def find_unique_or_throw(self, args: dict[str, Any] | None = None) -> dict[str, Any]:
        return await self._run(Operation.FIND_UNIQUE_OR_THROW, args)

    async def create(self, args: dict[str, Any]) -> dict[str, Any]:
        return await self._run(Operation.CREATE, args)

    async def create_many(self, args: dict[str, Any]) -> dict[str, int]:
        return await self._run(Operation.CREATE_MANY, args)

    async def update(self, args: dict[str, Any]) -> dict[str, Any]:
        return await self._run(Operation.UPDATE, args)

    async def update_many(self, args: dict[str, Any]) -> dict[str, int]:
        return await self._run(Operation.UPDATE_MANY, args)

    async def delete(self, args: dict[str, Any]) -> dict[str, Any]:
        return await self._run(Operation.DELETE, args)

    async def delete_many(self, args: dict[str, Any] | None = None) -> dict[str, int]:
        return await self._run(Operation.DELETE_MANY, args)

    async def upsert(self, args: dict[str, Any]) -> dict[str, Any]:
        return await self._run(Operation.UPSERT, args)

    async def count(self, args: dict[str, Any] | None = None) -> int:
        return await self._run(Operation.COUNT, args)

    async def aggregate(self, args: dict[str, Any]) -> dict[str, Any]:
        return await self._run(Operation.AGGREGATE, args)

    def __repr__(self) -> str:
        return f"ModelDelegate({self.model!r})"
