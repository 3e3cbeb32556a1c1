"""Registry of custom query builder classes.

Lets ``Client.from_`` and ``QueryBuilder.include`` instantiate the
builder subclass registered for a model (or its plural alias), so named
filters like ``.published()`` stay available on related queries.
"""

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from queryforge.query.builder import QueryBuilder


class ModelRegistry:
    """Maps model names and plural aliases to QueryBuilder subclasses.

    Example:
        class PostQuery(QueryBuilder):
            def published(self):
                return self.where({"published": True})

        models = ModelRegistry()
        models.register("post", PostQuery)   # also reachable as "posts"
    """

    def __init__(self) -> None:
        self._models: dict[str, type["QueryBuilder"]] = {}
        self._aliases: dict[str, str] = {}

    def register(
        self, name: str, builder_cls: type["QueryBuilder"], plural: str | None = None
    ) -> None:
        """Register a builder class for a model.

        Args:
            name: Model name (case-insensitive)
            builder_cls: QueryBuilder subclass
            plural: Plural alias; defaults to name + "s"
        """
        name = name.lower()
        self._models[name] = builder_cls
        self._aliases[(plural or name + "s").lower()] = name

    def register_many(self, models: dict[str, type["QueryBuilder"]]) -> None:
        for name, builder_cls in models.items():
            self.register(name, builder_cls)

    def resolve(self, name: str) -> str | None:
        """Return the canonical model name for a name or plural alias."""
        key = name.lower()
        if key in self._models:
            return key
        return self._aliases.get(key)

    def get(self, name: str) -> type["QueryBuilder"] | None:
        model = self.resolve(name)
        return self._models.get(model) if model else None

    def has(self, name: str) -> bool:
        return self.resolve(name) is not None

    def create(self, name: str, delegate: Any = None) -> "QueryBuilder | None":
        """Instantiate the registered builder, or None when not registered."""
        builder_cls = self.get(name)
        if builder_cls is None:
            return None
        return builder_cls(delegate, models=self)

    def registered_models(self) -> list[str]:
        return list(self._models)

    def clear(self) -> None:
        """Clear all registrations. Primarily for testing."""
        self._models.clear()
        self._aliases.clear()
