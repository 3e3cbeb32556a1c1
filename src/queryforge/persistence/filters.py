"""Compile filter trees into SQL WHERE fragments.

Filter trees map column names to a value (equality) or to an operator
dict, and combine with the logical keys AND, OR and NOT:

    {"status": "active", "age": {"gte": 18}}
    {"OR": [{"name": {"starts_with": "A"}}, {"name": None}]}
"""

from collections.abc import Callable
from typing import Any

from queryforge.persistence.schema import ModelDefinition

LOGICAL_KEYS = ("AND", "OR", "NOT")

_COMPARISONS = {"lt": "<", "lte": "<=", "gt": ">", "gte": ">="}
_PATTERNS = {
    "contains": "%{}%",
    "starts_with": "{}%",
    "ends_with": "%{}",
}


def quote(name: str) -> str:
    """Return a double-quoted identifier."""
    return f'"{name}"'


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class FilterCompiler:
    """Compiles filter trees for one model.

    Args:
        model: Model whose columns may appear in filters
        to_storage: Converts a Python value to its stored form for a column
    """

    def __init__(self, model: ModelDefinition, to_storage: Callable[[str, Any], Any]):
        self.model = model
        self.to_storage = to_storage
        self._columns = set(model.field_names)

    def compile(self, where: dict[str, Any] | None) -> tuple[str, list[Any]]:
        """Compile a filter tree.

        Returns:
            (sql, params); sql is "" when the filter matches every row

        Raises:
            ValueError: For unknown columns or operators
        """
        if not where:
            return "", []

        parts: list[str] = []
        params: list[Any] = []
        for key, value in where.items():
            if key == "AND":
                sql, vals = self._combine(value, "AND")
            elif key == "OR":
                sql, vals = self._combine(value, "OR")
            elif key == "NOT":
                inner, vals = self._combine(value, "OR")
                sql = f"NOT ({inner})" if inner else "0 = 1"
            else:
                sql, vals = self._column(key, value)

            if sql:
                parts.append(sql)
                params.extend(vals)

        if len(parts) == 1:
            return parts[0], params
        return " AND ".join(f"({p})" for p in parts), params

    def _combine(self, value: Any, joiner: str) -> tuple[str, list[Any]]:
        conditions = value if isinstance(value, list) else [value]
        parts: list[str] = []
        params: list[Any] = []
        for condition in conditions:
            sql, vals = self.compile(condition)
            if not sql:
                if joiner == "OR":
                    # An empty branch matches everything
                    return "", []
                continue
            parts.append(f"({sql})")
            params.extend(vals)

        if not parts:
            return ("0 = 1", []) if joiner == "OR" else ("", [])
        return f" {joiner} ".join(parts), params

    def _column(self, name: str, value: Any) -> tuple[str, list[Any]]:
        if name not in self._columns:
            raise ValueError(f"Unknown field '{name}' on model '{self.model.name}'")

        col = quote(name)
        if not isinstance(value, dict):
            return self._equals(name, col, value)

        parts: list[str] = []
        params: list[Any] = []
        for op, operand in value.items():
            sql, vals = self._operator(name, col, op, operand)
            parts.append(sql)
            params.extend(vals)
        return " AND ".join(parts), params

    def _equals(self, name: str, col: str, value: Any) -> tuple[str, list[Any]]:
        if value is None:
            return f"{col} IS NULL", []
        return f"{col} = ?", [self.to_storage(name, value)]

    def _operator(self, name: str, col: str, op: str, operand: Any) -> tuple[str, list[Any]]:
        if op == "equals":
            return self._equals(name, col, operand)
        if op == "not":
            if operand is None:
                return f"{col} IS NOT NULL", []
            if isinstance(operand, dict):
                inner, vals = self._column(name, operand)
                return f"NOT ({inner})", vals
            return f"{col} != ?", [self.to_storage(name, operand)]
        if op in _COMPARISONS:
            return f"{col} {_COMPARISONS[op]} ?", [self.to_storage(name, operand)]
        if op == "in":
            values = list(operand)
            if not values:
                return "0 = 1", []
            placeholders = ", ".join("?" for _ in values)
            return f"{col} IN ({placeholders})", [self.to_storage(name, v) for v in values]
        if op == "not_in":
            values = list(operand)
            if not values:
                return "1 = 1", []
            placeholders = ", ".join("?" for _ in values)
            return f"{col} NOT IN ({placeholders})", [self.to_storage(name, v) for v in values]
        if op in _PATTERNS:
            pattern = _PATTERNS[op].format(_escape_like(str(operand)))
            return f"{col} LIKE ? ESCAPE '\\'", [pattern]

        raise ValueError(f"Unsupported filter operator '{op}' on field '{name}'")
