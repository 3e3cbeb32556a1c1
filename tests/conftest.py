"""Shared fixtures: a user/post schema on an in-memory SQLite engine."""

import pytest

from queryforge.client import Client
from queryforge.hooks import HookRegistry
from queryforge.persistence import (
    FieldDefinition,
    ModelDefinition,
    RelationConfig,
    SQLiteEngine,
)


def make_models() -> list[ModelDefinition]:
    user = ModelDefinition(
        name="User",
        fields=[
            FieldDefinition("id", "int", primary_key=True),
            FieldDefinition("email"),
            FieldDefinition("name"),
            FieldDefinition("status", default="pending"),
            FieldDefinition("age", "int"),
            FieldDefinition("created_at", "datetime"),
            FieldDefinition("updated_at", "datetime"),
        ],
        relations={"posts": RelationConfig(model="post", foreign_key="author_id")},
    )
    post = ModelDefinition(
        name="Post",
        fields=[
            FieldDefinition("id", "int", primary_key=True),
            FieldDefinition("title"),
            FieldDefinition("published", "bool", default=False),
            FieldDefinition("views", "int", default=0),
            FieldDefinition("author_id", "int"),
            FieldDefinition("tags", "json"),
            FieldDefinition("created_at", "datetime"),
        ],
        relations={"author": RelationConfig(model="user", foreign_key="author_id", kind="one")},
    )
    return [user, post]


@pytest.fixture
def engine():
    engine = SQLiteEngine(":memory:", make_models())
    engine.connect()
    yield engine
    engine.close()


@pytest.fixture
def registry():
    registry = HookRegistry()
    yield registry
    registry.reset()


@pytest.fixture
def client(engine, registry):
    return Client(engine, registry=registry)
