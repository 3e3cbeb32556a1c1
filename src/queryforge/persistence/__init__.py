"""Persistence layer - engine contract and the bundled SQLite engine."""

from queryforge.persistence.engine import PersistenceEngine
from queryforge.persistence.schema import (
    FieldDefinition,
    ModelDefinition,
    RelationConfig,
    load_models,
)
from queryforge.persistence.sqlite import SQLiteEngine

__all__ = [
    "FieldDefinition",
    "ModelDefinition",
    "PersistenceEngine",
    "RelationConfig",
    "SQLiteEngine",
    "load_models",
]
