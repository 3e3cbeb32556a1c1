"""queryforge - lifecycle hooks and fluent queries over a persistence engine."""

from queryforge.client import Client
from queryforge.errors import (
    AdapterNotFoundError,
    BuilderNotBoundError,
    HookAbortError,
    QueryForgeError,
    RecordNotFoundError,
    UnknownModelError,
    UnsupportedOperationError,
)
from queryforge.hooks import HookConfig, HookInterceptor, HookRegistry, Operation, Timing
from queryforge.persistence import PersistenceEngine, SQLiteEngine, load_models
from queryforge.query import ModelDelegate, ModelRegistry, QueryBuilder

__all__ = [
    "AdapterNotFoundError",
    "BuilderNotBoundError",
    "Client",
    "HookAbortError",
    "HookConfig",
    "HookInterceptor",
    "HookRegistry",
    "ModelDelegate",
    "ModelRegistry",
    "Operation",
    "PersistenceEngine",
    "QueryBuilder",
    "QueryForgeError",
    "RecordNotFoundError",
    "SQLiteEngine",
    "Timing",
    "UnknownModelError",
    "UnsupportedOperationError",
    "load_models",
]
