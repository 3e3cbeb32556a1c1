"""Exception types raised by queryforge.

Hook failures are not wrapped: an exception raised by a before hook
reaches the caller unchanged, and so does an exception raised by the
persistence engine. The types below cover the conditions queryforge
itself detects.
"""


class QueryForgeError(Exception):
    """Base exception for queryforge errors."""

    pass


class HookAbortError(QueryForgeError):
    """Raised by a before hook to veto an operation.

    Any exception raised from a before hook aborts the operation; this
    type exists so application code can signal a deliberate veto.
    """

    pass


class RecordNotFoundError(QueryForgeError):
    """The target row of a single-row operation does not exist."""

    def __init__(self, model: str, where: dict | None = None):
        self.model = model
        self.where = where
        super().__init__(f"No '{model}' record found matching {where!r}")


class UnknownModelError(QueryForgeError):
    """The model name is not declared on the engine."""

    def __init__(self, model: str):
        self.model = model
        super().__init__(f"Model '{model}' does not exist")


class UnsupportedOperationError(QueryForgeError):
    """The engine does not implement the requested operation."""

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Unsupported operation '{operation}'")


class AdapterNotFoundError(QueryForgeError):
    """No database adapter handles the given connection URL."""

    def __init__(self, url: str):
        self.url = url
        super().__init__(f"No database adapter found for URL: {url}")


class BuilderNotBoundError(QueryForgeError):
    """A terminal method was called on a builder with no model delegate."""

    pass
