"""Hook system types for queryforge.

Defines the core data structures for the lifecycle hook system:
- Timing / Operation: the two halves of a hook key
- HookConfig: switches that govern column-change hooks
- HookOptions: per-call options carried inside operation args
- Callback signatures for before, after and column-change hooks
"""

import os
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Any

# Args key holding per-call hook options. Stripped before the engine sees args.
HOOK_OPTIONS_KEY = "__hooks"

# before(args, engine); may mutate args in place, raise to abort
BeforeHook = Callable[[dict[str, Any], Any], Awaitable[None] | None]
# after(args, result, engine)
AfterHook = Callable[[dict[str, Any], Any, Any], Awaitable[None] | None]
# column(prev_value, new_value, new_row, engine)
ColumnChangeHook = Callable[[Any, Any, dict[str, Any], Any], Awaitable[None] | None]


class Timing(Enum):
    """When a hook runs relative to the operation."""

    BEFORE = "before"
    AFTER = "after"


class Operation(Enum):
    """Engine actions a hook can be keyed on."""

    CREATE = "create"
    CREATE_MANY = "create_many"
    UPDATE = "update"
    UPDATE_MANY = "update_many"
    DELETE = "delete"
    DELETE_MANY = "delete_many"
    UPSERT = "upsert"
    FIND_MANY = "find_many"
    FIND_FIRST = "find_first"
    FIND_UNIQUE = "find_unique"
    FIND_FIRST_OR_THROW = "find_first_or_throw"
    FIND_UNIQUE_OR_THROW = "find_unique_or_throw"
    COUNT = "count"
    AGGREGATE = "aggregate"

    @property
    def is_update(self) -> bool:
        """True for the operations whose rows are diffed for column hooks."""
        return self in (Operation.UPDATE, Operation.UPDATE_MANY)


def normalize_model_name(model: str) -> str:
    """Model names are case-insensitive; the registry keys them lower-cased."""
    return model.lower()


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class HookConfig:
    """Configuration for the hook system.

    Attributes:
        enable_column_hooks: Global switch for column-change hooks
        max_refetch: Skip column hooks when a bulk update touches more rows
            than this. 0 disables the limit.
        warn_on_skip: Log a warning when column hooks are skipped by max_refetch
        id_field: Row identifier column used to correlate pre/post images
    """

    enable_column_hooks: bool = True
    max_refetch: int = 1000
    warn_on_skip: bool = True
    id_field: str = "id"

    @classmethod
    def from_env(cls) -> "HookConfig":
        """Create config from QUERYFORGE_* environment variables.

        Unset variables keep their defaults.
        """
        defaults = cls()
        max_refetch = os.environ.get("QUERYFORGE_MAX_REFETCH")
        return cls(
            enable_column_hooks=_env_bool(
                "QUERYFORGE_ENABLE_COLUMN_HOOKS", defaults.enable_column_hooks
            ),
            max_refetch=int(max_refetch) if max_refetch else defaults.max_refetch,
            warn_on_skip=_env_bool("QUERYFORGE_WARN_ON_SKIP", defaults.warn_on_skip),
            id_field=os.environ.get("QUERYFORGE_ID_FIELD", defaults.id_field),
        )

    def merged(self, **overrides: Any) -> "HookConfig":
        """Return a copy with the given fields replaced.

        Raises:
            TypeError: If an override names an unknown field
        """
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise TypeError(f"Unknown hook config option(s): {', '.join(sorted(unknown))}")
        return replace(self, **overrides)


@dataclass
class HookOptions:
    """Per-call hook options, passed in args under HOOK_OPTIONS_KEY.

    Attributes:
        skip_column_hooks: Do not diff or fire column hooks for this call
    """

    skip_column_hooks: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "HookOptions":
        """Create HookOptions from the raw args entry."""
        if not data:
            return cls()
        return cls(skip_column_hooks=bool(data.get("skip_column_hooks", False)))

    @classmethod
    def pop_from(cls, args: dict[str, Any]) -> "HookOptions":
        """Remove the options entry from args and parse it."""
        return cls.from_dict(args.pop(HOOK_OPTIONS_KEY, None))
