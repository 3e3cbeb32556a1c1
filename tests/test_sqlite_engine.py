"""Tests for the bundled SQLite persistence engine."""

from datetime import datetime

import pytest

from queryforge.errors import RecordNotFoundError, UnknownModelError, UnsupportedOperationError
from queryforge.persistence import PersistenceEngine, SQLiteEngine


async def seed(engine):
    for email, name, age, status in [
        ("ann@x.io", "Ann", 31, "active"),
        ("bob@x.io", "Bob", 17, "pending"),
        ("cy@x.io", "Cy", 45, "active"),
    ]:
        await engine.execute("user", "create", {"data": {"email": email, "name": name, "age": age, "status": status}})


class TestProtocol:
    def test_engine_satisfies_protocol(self):
        assert isinstance(SQLiteEngine(":memory:"), PersistenceEngine)

    def test_conn_lifecycle(self):
        engine = SQLiteEngine(":memory:")
        assert engine.conn is None
        engine.connect()
        assert engine.conn is not None
        engine.close()
        assert engine.conn is None

    @pytest.mark.asyncio
    async def test_not_connected(self, engine):
        engine.close()
        with pytest.raises(RuntimeError, match="not connected"):
            await engine.execute("user", "find_many", {})

    @pytest.mark.asyncio
    async def test_unknown_model(self, engine):
        with pytest.raises(UnknownModelError):
            await engine.execute("comment", "find_many", {})

    @pytest.mark.asyncio
    async def test_unsupported_operation(self, engine):
        with pytest.raises(UnsupportedOperationError):
            await engine.execute("user", "truncate", {})

    def test_model_lookup_by_plural(self, engine):
        assert engine.model("Users").name == "user"


class TestCreate:
    @pytest.mark.asyncio
    async def test_create_applies_defaults_and_timestamps(self, engine):
        user = await engine.execute("user", "create", {"data": {"email": "a@x.io"}})
        assert user["id"] == 1
        assert user["status"] == "pending"
        assert isinstance(user["created_at"], datetime)
        assert user["updated_at"] is not None

    @pytest.mark.asyncio
    async def test_type_round_trip(self, engine):
        post = await engine.execute(
            "post", "create", {"data": {"title": "Hi", "published": True, "tags": ["a", "b"]}}
        )
        assert post["published"] is True
        assert post["tags"] == ["a", "b"]
        assert post["views"] == 0

    @pytest.mark.asyncio
    async def test_create_with_select(self, engine):
        user = await engine.execute("user", "create", {"data": {"email": "a@x.io"}, "select": {"email": True}})
        assert user == {"email": "a@x.io"}

    @pytest.mark.asyncio
    async def test_unknown_field_rejected(self, engine):
        with pytest.raises(ValueError, match="Unknown field 'nope'"):
            await engine.execute("user", "create", {"data": {"nope": 1}})

    @pytest.mark.asyncio
    async def test_create_many(self, engine):
        result = await engine.execute("user", "create_many", {"data": [{"email": "a"}, {"email": "b"}]})
        assert result == {"count": 2}
        assert await engine.execute("user", "count", {}) == 2


class TestRead:
    @pytest.mark.asyncio
    async def test_filter_order_limit(self, engine):
        await seed(engine)
        rows = await engine.execute(
            "user",
            "find_many",
            {"where": {"status": "active"}, "order_by": {"name": "desc"}, "take": 1},
        )
        assert [r["name"] for r in rows] == ["Cy"]

    @pytest.mark.asyncio
    async def test_skip_without_take(self, engine):
        await seed(engine)
        rows = await engine.execute("user", "find_many", {"order_by": {"id": "asc"}, "skip": 1})
        assert [r["name"] for r in rows] == ["Bob", "Cy"]

    @pytest.mark.asyncio
    async def test_operators(self, engine):
        await seed(engine)
        rows = await engine.execute(
            "user",
            "find_many",
            {"where": {"OR": [{"age": {"lt": 18}}, {"name": {"starts_with": "C"}}]}, "order_by": {"id": "asc"}},
        )
        assert [r["name"] for r in rows] == ["Bob", "Cy"]

    @pytest.mark.asyncio
    async def test_distinct(self, engine):
        await seed(engine)
        rows = await engine.execute("user", "find_many", {"distinct": "status", "order_by": {"id": "asc"}})
        assert [r["status"] for r in rows] == ["active", "pending"]

    @pytest.mark.asyncio
    async def test_find_first_or_throw(self, engine):
        with pytest.raises(RecordNotFoundError):
            await engine.execute("user", "find_first_or_throw", {"where": {"id": 99}})
        assert await engine.execute("user", "find_unique", {"where": {"id": 99}}) is None

    @pytest.mark.asyncio
    async def test_find_many_capability(self, engine):
        await seed(engine)
        rows = await engine.find_many("user", {"status": "active"}, ["id", "status"])
        assert rows == [{"id": 1, "status": "active"}, {"id": 3, "status": "active"}]

    @pytest.mark.asyncio
    async def test_count_with_paging(self, engine):
        await seed(engine)
        assert await engine.execute("user", "count", {"where": {"status": "active"}}) == 2
        assert await engine.execute("user", "count", {"skip": 1, "take": 1}) == 1

    @pytest.mark.asyncio
    async def test_aggregate(self, engine):
        await seed(engine)
        result = await engine.execute(
            "user",
            "aggregate",
            {"_sum": {"age": True}, "_max": {"age": True}, "_count": True, "where": {"status": "active"}},
        )
        assert result == {"_sum": {"age": 76}, "_max": {"age": 45}, "_count": 2}


class TestRelations:
    @pytest.mark.asyncio
    async def test_include_many_with_nested_query(self, engine):
        await seed(engine)
        for title, published in [("a", True), ("b", False), ("c", True)]:
            await engine.execute("post", "create", {"data": {"title": title, "published": published, "author_id": 1}})

        user = await engine.execute(
            "user",
            "find_unique",
            {
                "where": {"id": 1},
                "include": {"posts": {"where": {"published": True}, "order_by": {"title": "desc"}, "take": 1}},
            },
        )
        assert [p["title"] for p in user["posts"]] == ["c"]

    @pytest.mark.asyncio
    async def test_include_one(self, engine):
        await seed(engine)
        await engine.execute("post", "create", {"data": {"title": "a", "author_id": 2}})
        post = await engine.execute("post", "find_first", {"include": {"author": {"select": {"name": True}}}})
        assert post["author"] == {"name": "Bob"}

    @pytest.mark.asyncio
    async def test_unknown_relation(self, engine):
        with pytest.raises(ValueError, match="Unknown relation"):
            await engine.execute("user", "find_many", {"include": {"comments": True}})


class TestWrites:
    @pytest.mark.asyncio
    async def test_update(self, engine):
        await seed(engine)
        user = await engine.execute("user", "update", {"where": {"id": 2}, "data": {"name": "Robert"}})
        assert user["name"] == "Robert"

    @pytest.mark.asyncio
    async def test_update_missing_raises(self, engine):
        with pytest.raises(RecordNotFoundError):
            await engine.execute("user", "update", {"where": {"id": 9}, "data": {"name": "X"}})

    @pytest.mark.asyncio
    async def test_numeric_update_operators(self, engine):
        post = await engine.execute("post", "create", {"data": {"title": "a"}})
        post = await engine.execute("post", "update", {"where": {"id": post["id"]}, "data": {"views": {"increment": 5}}})
        assert post["views"] == 5

    @pytest.mark.asyncio
    async def test_update_many(self, engine):
        await seed(engine)
        result = await engine.execute("user", "update_many", {"where": {"status": "active"}, "data": {"status": "archived"}})
        assert result == {"count": 2}

    @pytest.mark.asyncio
    async def test_delete_returns_row(self, engine):
        await seed(engine)
        deleted = await engine.execute("user", "delete", {"where": {"id": 1}})
        assert deleted["email"] == "ann@x.io"
        assert await engine.execute("user", "find_unique", {"where": {"id": 1}}) is None

    @pytest.mark.asyncio
    async def test_delete_many(self, engine):
        await seed(engine)
        assert await engine.execute("user", "delete_many", {"where": {"age": {"gte": 30}}}) == {"count": 2}

    @pytest.mark.asyncio
    async def test_upsert(self, engine):
        created = await engine.execute(
            "user", "upsert", {"where": {"email": "a@x.io"}, "create": {"email": "a@x.io", "name": "A"}, "update": {"name": "B"}}
        )
        updated = await engine.execute(
            "user", "upsert", {"where": {"email": "a@x.io"}, "create": {"email": "a@x.io", "name": "A"}, "update": {"name": "B"}}
        )
        assert created["name"] == "A"
        assert updated["id"] == created["id"]
        assert updated["name"] == "B"
