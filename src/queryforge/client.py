"""Client: one engine, one hook registry, one set of query builders.

Example:
    engine = SQLiteEngine("app.db", load_models("models/"))
    engine.connect()

    client = Client(engine)

    @client.hooks.before_create("user")
    def lowercase_email(args, engine):
        args["data"]["email"] = args["data"]["email"].lower()

    user = await client.from_("user").create({"email": "A@B.CO"})
    posts = await client.from_("posts").where({"published": True}).find_many()
"""

import logging
from typing import Any

from queryforge.hooks.interceptor import ErrorReporter, HookInterceptor
from queryforge.hooks.registry import HookRegistry
from queryforge.hooks.types import HookOptions, Operation
from queryforge.query.builder import QueryBuilder
from queryforge.query.delegate import ModelDelegate
from queryforge.query.models import ModelRegistry

logger = logging.getLogger(__name__)


class Client:
    """Routes model operations through the hook interceptor.

    Args:
        engine: A PersistenceEngine
        registry: Hook registry; a fresh one is created when omitted
        models: Builder class registry; a fresh one is created when omitted
        callbacks: When False, operations go straight to the engine and no
            hooks run
        on_error: Reporter for after-hook and column-hook failures
    """

    def __init__(
        self,
        engine: Any,
        registry: HookRegistry | None = None,
        models: ModelRegistry | None = None,
        callbacks: bool = True,
        on_error: ErrorReporter | None = None,
    ):
        self.engine = engine
        self.registry = registry if registry is not None else HookRegistry()
        self.models = models if models is not None else ModelRegistry()
        self.callbacks = callbacks
        self.interceptor = HookInterceptor(self.registry, engine, on_error=on_error)
        self._delegates: dict[str, ModelDelegate] = {}

    @property
    def hooks(self) -> HookRegistry:
        return self.registry

    def resolve_model(self, model: str) -> str:
        """Return the canonical model name hooks are keyed by.

        Plural aliases registered in the ModelRegistry resolve first. When
        the engine exposes a ``model(name)`` lookup (as SQLiteEngine does),
        its declared name wins, so every alias the engine accepts maps to
        the same hook keys.

        Raises:
            UnknownModelError: If the engine does not declare the model
        """
        name = self.models.resolve(model) or model.lower()
        lookup = getattr(self.engine, "model", None)
        if callable(lookup):
            return lookup(name).name
        return name

    async def execute(
        self, model: str, operation: Operation | str, args: dict[str, Any] | None = None
    ) -> Any:
        """Run one operation against a model, with hooks unless disabled."""
        model = self.resolve_model(model)
        if self.callbacks:
            return await self.interceptor.execute(model, operation, args)

        args = {} if args is None else args
        HookOptions.pop_from(args)
        return await self.engine.execute(model, Operation(operation).value, args)

    def delegate(self, model: str) -> ModelDelegate:
        """Return the delegate for a model, cached by canonical name.

        The name is resolved on every call, so registering a builder alias
        later is picked up.
        """
        name = self.resolve_model(model)
        delegate = self._delegates.get(name)
        if delegate is None:
            delegate = ModelDelegate(self, name)
            self._delegates[name] = delegate
        return delegate

    def from_(self, model: str) -> QueryBuilder:
        """Start a query on a model.

        Returns an instance of the builder class registered for the model
        (by name or plural alias), or a plain QueryBuilder.
        """
        delegate = self.delegate(model)
        builder = self.models.create(delegate.model, delegate) or self.models.create(model, delegate)
        if builder is None:
            builder = QueryBuilder(delegate, models=self.models)
        return builder

    async def drain(self) -> None:
        """Wait for detached after-hook and column-hook tasks to finish."""
        await self.interceptor.drain()

    def reset_hooks(self) -> None:
        self.registry.reset()
        logger.debug("Hook registry reset")

    def __repr__(self) -> str:
        return f"Client(engine={type(self.engine).__name__}, callbacks={self.callbacks})"
