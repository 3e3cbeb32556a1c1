"""SQLite persistence engine.

Implements the PersistenceEngine contract on top of sqlite3 for the
models it is given. Each write statement is committed immediately.
"""

import json
import sqlite3
import uuid
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from queryforge.errors import RecordNotFoundError, UnknownModelError, UnsupportedOperationError
from queryforge.persistence.filters import FilterCompiler, quote
from queryforge.persistence.schema import ModelDefinition, get_storage_type

_AGGREGATES = {"_sum": "SUM", "_avg": "AVG", "_min": "MIN", "_max": "MAX", "_count": "COUNT"}
_NUMBER_UPDATES = {"increment": "+", "decrement": "-", "multiply": "*", "divide": "/"}


def _select_map(select: Any) -> dict[str, Any] | None:
    """Normalize a select spec ({field: True} or a list of names) to a dict."""
    if select is None:
        return None
    if isinstance(select, dict):
        return {name: spec for name, spec in select.items() if spec}
    return {name: True for name in select}


class SQLiteEngine:
    """Simple SQLite persistence engine."""

    def __init__(
        self,
        db_path: Path | str = ":memory:",
        models: Iterable[ModelDefinition] = (),
    ):
        self.db_path = str(db_path)
        self.conn: sqlite3.Connection | None = None
        self.models: dict[str, ModelDefinition] = {}
        for model in models:
            self.register_model(model)

    def connect(self) -> None:
        """Establish database connection and create tables for known models."""
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        for model in self.models.values():
            self.initialize_model(model)

    def close(self) -> None:
        """Close database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None

    def register_model(self, model: ModelDefinition) -> None:
        """Declare a model; its table is created now if already connected."""
        self.models[model.name] = model
        if self.conn:
            self.initialize_model(model)

    def initialize_model(self, model: ModelDefinition) -> None:
        """Create table for model if it doesn't exist."""
        conn = self._connection()

        columns = []
        for field in model.fields:
            col_def = f"{quote(field.name)} {get_storage_type(field.type)}"
            if field.name == model.primary_key:
                col_def += " PRIMARY KEY"
            columns.append(col_def)

        sql = f"CREATE TABLE IF NOT EXISTS {quote(model.name)} ({', '.join(columns)})"
        conn.execute(sql)
        conn.commit()

    def model(self, name: str) -> ModelDefinition:
        """Look up a model by name or plural name (case-insensitive).

        Raises:
            UnknownModelError: If no such model is declared
        """
        key = name.lower()
        if key in self.models:
            return self.models[key]
        for model in self.models.values():
            if model.plural_name.lower() == key:
                return model
        raise UnknownModelError(name)

    # ------------------------------------------------------------------
    # PersistenceEngine contract
    # ------------------------------------------------------------------

    async def execute(self, model: str, operation: str, args: dict[str, Any]) -> Any:
        """Run a named operation against a model.

        Raises:
            UnknownModelError: For undeclared models
            UnsupportedOperationError: For unknown operations
            RecordNotFoundError: When a single-row target does not exist
        """
        definition = self.model(model)
        handler = getattr(self, f"_op_{operation}", None)
        if handler is None:
            raise UnsupportedOperationError(operation)
        return handler(definition, args or {})

    async def find_many(
        self,
        model: str,
        where: dict[str, Any] | None = None,
        select: Iterable[str] | None = None,
    ) -> list[dict[str, Any]]:
        return self._select(
            self.model(model),
            where=where,
            select=list(select) if select is not None else None,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _op_find_many(self, model: ModelDefinition, args: dict[str, Any]) -> list[dict[str, Any]]:
        return self._select(
            model,
            where=args.get("where"),
            order_by=args.get("order_by"),
            take=args.get("take"),
            skip=args.get("skip"),
            select=args.get("select"),
            include=args.get("include"),
            distinct=args.get("distinct"),
        )

    def _op_find_first(self, model: ModelDefinition, args: dict[str, Any]) -> dict[str, Any] | None:
        rows = self._op_find_many(model, {**args, "take": 1})
        return rows[0] if rows else None

    def _op_find_unique(self, model: ModelDefinition, args: dict[str, Any]) -> dict[str, Any] | None:
        return self._op_find_first(model, args)

    def _op_find_first_or_throw(self, model: ModelDefinition, args: dict[str, Any]) -> dict[str, Any]:
        row = self._op_find_first(model, args)
        if row is None:
            raise RecordNotFoundError(model.name, args.get("where"))
        return row

    def _op_find_unique_or_throw(self, model: ModelDefinition, args: dict[str, Any]) -> dict[str, Any]:
        return self._op_find_first_or_throw(model, args)

    def _op_count(self, model: ModelDefinition, args: dict[str, Any]) -> int:
        conn = self._connection()
        where_sql, params = self._compile(model, args.get("where"))
        sql = f"SELECT COUNT(*) FROM {quote(model.name)}{where_sql}"
        total = conn.execute(sql, params).fetchone()[0]

        total = max(0, total - (args.get("skip") or 0))
        if args.get("take") is not None:
            total = min(total, args["take"])
        return total

    def _op_aggregate(self, model: ModelDefinition, args: dict[str, Any]) -> dict[str, Any]:
        """Aggregate with {"_sum": {field: True}, ..., "where": {...}}."""
        conn = self._connection()
        where_sql, params = self._compile(model, args.get("where"))

        result: dict[str, Any] = {}
        for key, func in _AGGREGATES.items():
            spec = args.get(key)
            if not spec:
                continue

            if spec is True:
                row = conn.execute(
                    f"SELECT COUNT(*) FROM {quote(model.name)}{where_sql}", params
                ).fetchone()
                result[key] = row[0]
                continue

            names = [name for name, wanted in _select_map(spec).items() if wanted]
            self._check_fields(model, names)
            exprs = ", ".join(f"{func}({quote(n)}) AS {quote(n)}" for n in names)
            row = conn.execute(f"SELECT {exprs} FROM {quote(model.name)}{where_sql}", params).fetchone()
            values = dict(row)
            if key in ("_min", "_max"):
                values = self._from_storage(model, values)
            result[key] = values

        return result

    def _select(
        self,
        model: ModelDefinition,
        where: dict[str, Any] | None = None,
        order_by: Any = None,
        take: int | None = None,
        skip: int | None = None,
        select: Any = None,
        include: dict[str, Any] | None = None,
        distinct: Any = None,
    ) -> list[dict[str, Any]]:
        """Query rows with filtering, ordering, paging, relations and projection."""
        conn = self._connection()
        where_sql, params = self._compile(model, where)
        order_sql = self._order_clause(model, order_by)

        # Paging happens after de-duplication when distinct is requested
        limit_sql = ""
        if not distinct:
            if take is not None:
                limit_sql = f" LIMIT {int(take)} OFFSET {int(skip or 0)}"
            elif skip:
                limit_sql = f" LIMIT -1 OFFSET {int(skip)}"

        sql = f"SELECT * FROM {quote(model.name)}{where_sql}{order_sql}{limit_sql}"
        rows = [self._from_storage(model, dict(row)) for row in conn.execute(sql, params).fetchall()]

        if distinct:
            rows = self._distinct(model, rows, distinct)
            start = skip or 0
            rows = rows[start:start + take] if take is not None else rows[start:]

        selected = _select_map(select)
        relations = dict(include or {})
        if selected:
            # Relation names inside select behave like include
            for name, spec in selected.items():
                if name in model.relations:
                    relations[name] = spec

        if relations:
            self._include(model, rows, relations)

        if selected:
            rows = [self._project(model, row, selected) for row in rows]
        return rows

    def _distinct(self, model: ModelDefinition, rows: list[dict[str, Any]], distinct: Any) -> list[dict[str, Any]]:
        names = [distinct] if isinstance(distinct, str) else list(distinct)
        self._check_fields(model, names)
        seen: set[str] = set()
        unique = []
        for row in rows:
            key = json.dumps([row.get(n) for n in names], default=str)
            if key not in seen:
                seen.add(key)
                unique.append(row)
        return unique

    def _project(self, model: ModelDefinition, row: dict[str, Any], selected: dict[str, Any]) -> dict[str, Any]:
        unknown = [n for n in selected if n not in row and n not in model.relations]
        self._check_fields(model, unknown)
        return {name: row[name] for name in selected if name in row}

    def _include(self, model: ModelDefinition, rows: list[dict[str, Any]], include: dict[str, Any]) -> None:
        """Attach related rows to each row under the relation name."""
        for name, spec in include.items():
            if not spec:
                continue
            relation = model.relations.get(name)
            if relation is None:
                raise ValueError(f"Unknown relation '{name}' on model '{model.name}'")

            related = self.model(relation.model)
            nested = spec if isinstance(spec, dict) else {}
            nested_select = _select_map(nested.get("select"))

            if relation.kind == "many":
                ids = [row[model.primary_key] for row in rows]
                children = self._select(
                    related,
                    where=self._and(nested.get("where"), {relation.foreign_key: {"in": ids}}),
                    order_by=nested.get("order_by"),
                    include=nested.get("include"),
                )
                grouped: dict[Any, list[dict[str, Any]]] = {}
                for child in children:
                    grouped.setdefault(child[relation.foreign_key], []).append(child)

                start = nested.get("skip") or 0
                take = nested.get("take")
                for row in rows:
                    group = grouped.get(row[model.primary_key], [])
                    group = group[start:start + take] if take is not None else group[start:]
                    if nested_select:
                        group = [self._project(related, child, nested_select) for child in group]
                    row[name] = group
            else:
                ids = list({row[relation.foreign_key] for row in rows if row.get(relation.foreign_key) is not None})
                parents = self._select(
                    related,
                    where=self._and(nested.get("where"), {related.primary_key: {"in": ids}}),
                    include=nested.get("include"),
                )
                by_id = {parent[related.primary_key]: parent for parent in parents}
                for row in rows:
                    parent = by_id.get(row.get(relation.foreign_key))
                    if parent is not None and nested_select:
                        parent = self._project(related, parent, nested_select)
                    row[name] = parent

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _op_create(self, model: ModelDefinition, args: dict[str, Any]) -> dict[str, Any]:
        conn = self._connection()
        pk = self._insert(model, dict(args.get("data") or {}))
        conn.commit()
        return self._reload(model, pk, args)

    def _op_create_many(self, model: ModelDefinition, args: dict[str, Any]) -> dict[str, int]:
        conn = self._connection()
        data = args.get("data") or []
        if isinstance(data, dict):
            data = [data]
        for item in data:
            self._insert(model, dict(item))
        conn.commit()
        return {"count": len(data)}

    def _op_update(self, model: ModelDefinition, args: dict[str, Any]) -> dict[str, Any]:
        conn = self._connection()
        target = self._op_find_first(model, {"where": args.get("where")})
        if target is None:
            raise RecordNotFoundError(model.name, args.get("where"))

        pk = target[model.primary_key]
        self._update_where(model, {model.primary_key: pk}, args.get("data") or {})
        conn.commit()
        return self._reload(model, pk, args)

    def _op_update_many(self, model: ModelDefinition, args: dict[str, Any]) -> dict[str, int]:
        conn = self._connection()
        count = self._update_where(model, args.get("where"), args.get("data") or {})
        conn.commit()
        return {"count": count}

    def _op_delete(self, model: ModelDefinition, args: dict[str, Any]) -> dict[str, Any]:
        conn = self._connection()
        existing = self._op_find_first(model, {"where": args.get("where")})
        if existing is None:
            raise RecordNotFoundError(model.name, args.get("where"))

        pk = existing[model.primary_key]
        deleted = self._reload(model, pk, args)
        conn.execute(
            f"DELETE FROM {quote(model.name)} WHERE {quote(model.primary_key)} = ?",
            [self._to_storage(model, model.primary_key, pk)],
        )
        conn.commit()
        return deleted

    def _op_delete_many(self, model: ModelDefinition, args: dict[str, Any]) -> dict[str, int]:
        conn = self._connection()
        where_sql, params = self._compile(model, args.get("where"))
        cursor = conn.execute(f"DELETE FROM {quote(model.name)}{where_sql}", params)
        conn.commit()
        return {"count": cursor.rowcount}

    def _op_upsert(self, model: ModelDefinition, args: dict[str, Any]) -> dict[str, Any]:
        conn = self._connection()
        existing = self._op_find_first(model, {"where": args.get("where")})
        if existing is None:
            pk = self._insert(model, dict(args.get("create") or {}))
        else:
            pk = existing[model.primary_key]
            self._update_where(model, {model.primary_key: pk}, args.get("update") or {})
        conn.commit()
        return self._reload(model, pk, args)

    def _insert(self, model: ModelDefinition, data: dict[str, Any]) -> Any:
        """Insert one row (no commit) and return its primary key."""
        conn = self._connection()
        self._check_fields(model, list(data))

        for field in model.fields:
            if field.default is not None:
                data.setdefault(field.name, field.default)

        now = datetime.now(timezone.utc)
        if model.get_field("created_at"):
            data.setdefault("created_at", now)
        if model.get_field("updated_at"):
            data.setdefault("updated_at", now)

        pk = model.primary_key
        pk_field = model.get_field(pk)
        if data.get(pk) is None and pk_field is not None and pk_field.type != "int":
            data[pk] = uuid.uuid4().hex

        field_names = [f.name for f in model.fields if f.name in data]
        placeholders = ", ".join("?" for _ in field_names)
        values = [self._to_storage(model, name, data[name]) for name in field_names]
        sql = (
            f"INSERT INTO {quote(model.name)} ({', '.join(quote(n) for n in field_names)}) "
            f"VALUES ({placeholders})"
        )
        cursor = conn.execute(sql, values)

        return data[pk] if data.get(pk) is not None else cursor.lastrowid

    def _update_where(self, model: ModelDefinition, where: dict[str, Any] | None, data: dict[str, Any]) -> int:
        """Apply data to every row matching where (no commit); return the row count."""
        conn = self._connection()
        data = dict(data)
        self._check_fields(model, list(data))

        if model.get_field("updated_at") and "updated_at" not in data:
            data["updated_at"] = datetime.now(timezone.utc)

        assignments: list[str] = []
        values: list[Any] = []
        for field in model.fields:
            if field.name not in data or field.name == model.primary_key:
                continue
            col = quote(field.name)
            value = data[field.name]
            if isinstance(value, dict) and field.type in ("int", "float"):
                ((op, operand),) = value.items()
                if op == "set":
                    assignments.append(f"{col} = ?")
                elif op in _NUMBER_UPDATES:
                    assignments.append(f"{col} = {col} {_NUMBER_UPDATES[op]} ?")
                else:
                    raise ValueError(f"Unsupported update operator '{op}' on field '{field.name}'")
                values.append(operand)
            else:
                assignments.append(f"{col} = ?")
                values.append(self._to_storage(model, field.name, value))

        where_sql, params = self._compile(model, where)
        if not assignments:
            row = conn.execute(f"SELECT COUNT(*) FROM {quote(model.name)}{where_sql}", params).fetchone()
            return row[0]

        sql = f"UPDATE {quote(model.name)} SET {', '.join(assignments)}{where_sql}"
        cursor = conn.execute(sql, values + params)
        return cursor.rowcount

    def _reload(self, model: ModelDefinition, pk: Any, args: dict[str, Any]) -> dict[str, Any]:
        return self._op_find_first(
            model,
            {
                "where": {model.primary_key: pk},
                "select": args.get("select"),
                "include": args.get("include"),
            },
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _connection(self) -> sqlite3.Connection:
        if not self.conn:
            raise RuntimeError("Database not connected")
        return self.conn

    def _compile(self, model: ModelDefinition, where: dict[str, Any] | None) -> tuple[str, list[Any]]:
        compiler = FilterCompiler(model, lambda name, value: self._to_storage(model, name, value))
        sql, params = compiler.compile(where)
        return (f" WHERE {sql}" if sql else ""), params

    def _order_clause(self, model: ModelDefinition, order_by: Any) -> str:
        if not order_by:
            return ""
        specs = order_by if isinstance(order_by, list) else [order_by]
        parts = []
        for spec in specs:
            for name, direction in spec.items():
                self._check_fields(model, [name])
                if str(direction).lower() not in ("asc", "desc"):
                    raise ValueError(f"Invalid sort direction '{direction}' for field '{name}'")
                parts.append(f"{quote(name)} {str(direction).upper()}")
        return f" ORDER BY {', '.join(parts)}"

    def _and(self, first: dict[str, Any] | None, second: dict[str, Any]) -> dict[str, Any]:
        return {"AND": [first, second]} if first else second

    def _check_fields(self, model: ModelDefinition, names: list[str]) -> None:
        known = set(model.field_names)
        for name in names:
            if name not in known:
                raise ValueError(f"Unknown field '{name}' on model '{model.name}'")

    def _to_storage(self, model: ModelDefinition, name: str, value: Any) -> Any:
        field = model.get_field(name)
        if field is None or value is None:
            return value
        if field.type == "bool":
            return int(bool(value))
        if field.type == "datetime" and isinstance(value, datetime):
            return value.isoformat()
        if field.type == "json":
            return json.dumps(value)
        return value

    def _from_storage(self, model: ModelDefinition, row: dict[str, Any]) -> dict[str, Any]:
        for name, value in row.items():
            field = model.get_field(name)
            if field is None or value is None:
                continue
            if field.type == "bool":
                row[name] = bool(value)
            elif field.type == "datetime" and isinstance(value, str):
                row[name] = datetime.fromisoformat(value)
            elif field.type == "json" and isinstance(value, str):
                row[name] = json.loads(value)
        return row
