"""Hook registry for queryforge.

Holds before/after hook registrations keyed by ``model:operation`` and
column-change hooks keyed by ``model:column``, plus the per-model cache
of columns needed to diff rows for column hooks.

The registry is an explicit object: construct one at startup, inject it
into the interceptor (usually through ``Client``), and call ``reset()``
between tests.
"""

import asyncio
import inspect
import logging
from collections.abc import Callable, Iterable
from typing import Any

from queryforge.hooks.types import (
    AfterHook,
    BeforeHook,
    ColumnChangeHook,
    HookConfig,
    HookOptions,
    Operation,
    Timing,
    normalize_model_name,
)

logger = logging.getLogger(__name__)

HookFn = BeforeHook | AfterHook


async def invoke(callback: Callable[..., Any], *args: Any) -> Any:
    """Call a sync or async callback, awaiting the result when needed."""
    result = callback(*args)
    if inspect.isawaitable(result):
        return await result
    return result


async def _settle(calls: Iterable[Any]) -> None:
    """Run coroutines concurrently; once all settle, re-raise the first failure."""
    results = await asyncio.gather(*calls, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result


class HookRegistry:
    """Registry for lifecycle and column-change hooks.

    Hooks sharing a key run in registration order. Registering the same
    callback twice makes it run twice.

    Example:
        hooks = HookRegistry()

        @hooks.before_create("user")
        def require_email(args, engine):
            if "@" not in args["data"]["email"]:
                raise HookAbortError("Invalid email format")

        hooks.after_change("user", "status", notify_status_change)
    """

    def __init__(self, config: HookConfig | None = None):
        self._default_config = config or HookConfig()
        self._config = self._default_config
        self._hooks: dict[Timing, dict[str, list[HookFn]]] = {
            Timing.BEFORE: {},
            Timing.AFTER: {},
        }
        self._column_hooks: dict[str, list[ColumnChangeHook]] = {}
        self._field_cache: dict[str, frozenset[str]] = {}
        self._models_with_column_hooks: set[str] = set()

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def config(self) -> HookConfig:
        return self._config

    def configure(self, **overrides: Any) -> None:
        """Override configuration fields, e.g. ``configure(max_refetch=5000)``."""
        self._config = self._config.merged(**overrides)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(
        self,
        model: str,
        operation: Operation | str,
        timing: Timing | str,
        callback: HookFn,
    ) -> None:
        """Append a hook for ``model:operation`` at the given timing.

        Args:
            model: Model name (case-insensitive)
            operation: The engine action, e.g. Operation.CREATE or "update_many"
            timing: Timing.BEFORE or Timing.AFTER (or their string values)
            callback: before hooks receive (args, engine) and may mutate args;
                after hooks receive (args, result, engine)
        """
        key = self._key(model, Operation(operation).value)
        self._hooks[Timing(timing)].setdefault(key, []).append(callback)

    def register_column_hook(
        self, model: str, column: str, callback: ColumnChangeHook
    ) -> None:
        """Append a column-change hook for ``model:column``.

        The callback receives (prev_value, new_value, new_row, engine).
        """
        model = normalize_model_name(model)
        self._column_hooks.setdefault(f"{model}:{column}", []).append(callback)
        self._models_with_column_hooks.add(model)

    def _add(self, model: str, operation: Operation, timing: Timing, callback):
        if callback is None:

            def decorator(fn):
                self.register(model, operation, timing, fn)
                return fn

            return decorator

        self.register(model, operation, timing, callback)
        return callback

    def before_create(self, model: str, callback: BeforeHook | None = None):
        return self._add(model, Operation.CREATE, Timing.BEFORE, callback)

    def after_create(self, model: str, callback: AfterHook | None = None):
        return self._add(model, Operation.CREATE, Timing.AFTER, callback)

    def before_update(self, model: str, callback: BeforeHook | None = None):
        return self._add(model, Operation.UPDATE, Timing.BEFORE, callback)

    def after_update(self, model: str, callback: AfterHook | None = None):
        return self._add(model, Operation.UPDATE, Timing.AFTER, callback)

    def before_delete(self, model: str, callback: BeforeHook | None = None):
        return self._add(model, Operation.DELETE, Timing.BEFORE, callback)

    def after_delete(self, model: str, callback: AfterHook | None = None):
        return self._add(model, Operation.DELETE, Timing.AFTER, callback)

    def after_upsert(self, model: str, callback: AfterHook | None = None):
        return self._add(model, Operation.UPSERT, Timing.AFTER, callback)

    def after_change(
        self, model: str, column: str, callback: ColumnChangeHook | None = None
    ):
        """Register a column-change hook; usable as a decorator when callback is omitted."""
        if callback is None:

            def decorator(fn):
                self.register_column_hook(model, column, fn)
                return fn

            return decorator

        self.register_column_hook(model, column, callback)
        return callback

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def hooks_for(
        self, timing: Timing | str, model: str, operation: Operation | str
    ) -> tuple[HookFn, ...]:
        """Return the callbacks registered for a key, in invocation order."""
        key = self._key(model, Operation(operation).value)
        return tuple(self._hooks[Timing(timing)].get(key, ()))

    def has_column_hooks(self, model: str) -> bool:
        return normalize_model_name(model) in self._models_with_column_hooks

    def relevant_fields(self, model: str) -> frozenset[str]:
        """Columns to select for a model's pre-image rows.

        The hooked columns plus the identifier column. Computed on first use
        and cached; column hooks registered for the model after that are not
        added to the cached set until ``reset()``.
        """
        model = normalize_model_name(model)
        cached = self._field_cache.get(model)
        if cached is not None:
            return cached

        prefix = f"{model}:"
        columns = {key[len(prefix):] for key in self._column_hooks if key.startswith(prefix)}
        columns.add(self._config.id_field)

        result = frozenset(columns)
        self._field_cache[model] = result
        return result

    def should_run_column_hooks(
        self, model: str, record_count: int, options: HookOptions | None = None
    ) -> bool:
        """Check whether column hooks should run for an operation.

        Args:
            model: The model name
            record_count: Number of rows in the pre-image
            options: Per-call hook options

        Returns:
            False when skipped per call, disabled globally, not registered
            for the model, or when record_count exceeds max_refetch.
        """
        if options is not None and options.skip_column_hooks:
            return False

        if not self._config.enable_column_hooks:
            return False

        if not self.has_column_hooks(model):
            return False

        max_refetch = self._config.max_refetch
        if max_refetch > 0 and record_count > max_refetch:
            if self._config.warn_on_skip:
                logger.warning(
                    "Skipping column hooks for %s: %d records exceeds max_refetch "
                    "limit of %d. Configure via registry.configure(max_refetch=...)",
                    normalize_model_name(model),
                    record_count,
                    max_refetch,
                )
            return False

        return True

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def run_hooks(
        self,
        timing: Timing | str,
        model: str,
        operation: Operation | str,
        args: list[Any],
        engine: Any,
    ) -> None:
        """Run the hooks registered for ``model:operation`` at a timing.

        Before hooks run one at a time, each awaited before the next starts;
        the first exception stops the sequence and propagates. After hooks
        run concurrently; every hook settles before the first exception
        (if any) is raised.

        Args:
            timing: Timing.BEFORE or Timing.AFTER
            model: Model name
            operation: The engine action
            args: Positional arguments for the callbacks ([args] or [args, result])
            engine: Engine handle appended as the last callback argument
        """
        hooks = self.hooks_for(timing, model, operation)
        if not hooks:
            return

        if Timing(timing) is Timing.AFTER:
            await _settle(invoke(hook, *args, engine) for hook in hooks)
            return

        for hook in hooks:
            await invoke(hook, *args, engine)

    async def run_column_hooks(
        self,
        model: str,
        new_row: dict[str, Any],
        prev_row: dict[str, Any],
        engine: Any,
    ) -> None:
        """Fire column-change hooks for every hooked column whose value changed.

        A column missing from prev_row compares as None.
        """
        model = normalize_model_name(model)
        calls = []
        for column, new_value in new_row.items():
            hooks = self._column_hooks.get(f"{model}:{column}")
            if not hooks:
                continue

            prev_value = prev_row.get(column)
            if new_value != prev_value:
                calls.extend(
                    invoke(hook, prev_value, new_value, new_row, engine) for hook in hooks
                )

        if calls:
            await _settle(calls)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def reset(self) -> None:
        """Clear all registrations, caches and config overrides. Primarily for testing."""
        self._hooks = {Timing.BEFORE: {}, Timing.AFTER: {}}
        self._column_hooks = {}
        self._field_cache = {}
        self._models_with_column_hooks = set()
        self._config = self._default_config

    @staticmethod
    def _key(model: str, operation: str) -> str:
        return f"{normalize_model_name(model)}:{operation}"
