"""queryforge lifecycle hook system.

Provides extension points around every operation routed through the
persistence engine:
- before hooks: run in order, awaited, can mutate args, can abort
- after hooks: run concurrently, detached from the caller
- column-change hooks (after_change): fire per changed column per row

Usage:
    from queryforge.hooks import HookRegistry

    hooks = HookRegistry()

    @hooks.after_change("user", "status")
    async def on_status_change(prev, new, row, engine):
        await audit(row["id"], prev, new)
"""

from queryforge.hooks.diff import ColumnDiffEngine
from queryforge.hooks.interceptor import ErrorReporter, HookInterceptor
from queryforge.hooks.registry import HookRegistry
from queryforge.hooks.types import (
    HOOK_OPTIONS_KEY,
    AfterHook,
    BeforeHook,
    ColumnChangeHook,
    HookConfig,
    HookOptions,
    Operation,
    Timing,
    normalize_model_name,
)

__all__ = [
    "AfterHook",
    "BeforeHook",
    "ColumnChangeHook",
    "ColumnDiffEngine",
    "ErrorReporter",
    "HOOK_OPTIONS_KEY",
    "HookConfig",
    "HookInterceptor",
    "HookOptions",
    "HookRegistry",
    "Operation",
    "Timing",
    "normalize_model_name",
]
