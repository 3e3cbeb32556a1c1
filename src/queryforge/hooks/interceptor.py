"""Mutation interceptor for queryforge.

Wraps every call dispatched to the persistence engine and runs the hook
phases around it:

1. Pre-image fetch (update operations on models with column hooks)
2. Before hooks: sequential, awaited, an exception aborts the call
3. The engine call itself; its result or error goes back to the caller
4. Column diff: detached task, not awaited by the caller
5. After hooks: detached task, not awaited by the caller

Exceptions from phases 4 and 5 are logged and forwarded to the optional
``on_error`` reporter; they never reach the caller.
"""

import asyncio
import logging
from collections.abc import Callable, Coroutine
from functools import partial
from typing import Any

from queryforge.hooks.diff import ColumnDiffEngine
from queryforge.hooks.registry import HookRegistry
from queryforge.hooks.types import HookOptions, Operation, Timing

logger = logging.getLogger(__name__)

# on_error(exc, {"model": ..., "operation": ..., "phase": ...})
ErrorReporter = Callable[[BaseException, dict[str, Any]], None]


class HookInterceptor:
    """Runs registered hooks around engine calls.

    Args:
        registry: Hook registrations consulted on every call
        engine: The persistence engine; also the handle passed to hooks
        on_error: Reporter for after-hook and column-hook failures
    """

    def __init__(
        self,
        registry: HookRegistry,
        engine: Any,
        on_error: ErrorReporter | None = None,
    ):
        self.registry = registry
        self.engine = engine
        self.on_error = on_error
        self.differ = ColumnDiffEngine(registry, engine)
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        """Number of detached hook tasks not yet finished."""
        return len(self._tasks)

    async def execute(
        self, model: str, operation: Operation | str, args: dict[str, Any] | None = None
    ) -> Any:
        """Execute one engine operation with hooks.

        Args:
            model: Model name
            operation: Engine action
            args: Operation arguments; before hooks may mutate them in place

        Returns:
            The engine's result, unmodified

        Raises:
            Whatever a before hook or the engine raises
        """
        op = Operation(operation)
        args = {} if args is None else args
        options = HookOptions.pop_from(args)

        prev_rows: list[dict[str, Any]] | None = None
        if op.is_update and self.registry.should_run_column_hooks(model, 0, options):
            prev_rows = await self.differ.fetch_rows(
                model, args.get("where"), self.registry.relevant_fields(model)
            )
            logger.debug("Captured %d pre-image row(s) for %s:%s", len(prev_rows), model, op.value)

        await self.registry.run_hooks(Timing.BEFORE, model, op, [args], self.engine)

        result = await self.engine.execute(model, op.value, args)

        if prev_rows is not None and self.registry.should_run_column_hooks(
            model, len(prev_rows), options
        ):
            self._spawn(
                self._run_column_phase(model, op, result, prev_rows),
                model,
                op,
                "column",
            )

        if self.registry.hooks_for(Timing.AFTER, model, op):
            self._spawn(
                self.registry.run_hooks(Timing.AFTER, model, op, [args, result], self.engine),
                model,
                op,
                "after",
            )

        return result

    async def drain(self) -> None:
        """Wait for every detached hook task, including ones spawned meanwhile.

        Failures are already reported by the task callbacks and are not raised here.
        """
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
            self._tasks = {task for task in self._tasks if not task.done()}

    async def _run_column_phase(
        self,
        model: str,
        op: Operation,
        result: Any,
        prev_rows: list[dict[str, Any]],
    ) -> None:
        if op is Operation.UPDATE:
            new_rows = [result] if isinstance(result, dict) else []
        else:
            new_rows = await self.differ.fetch_post_image(model, prev_rows)

        matched = await self.differ.diff(model, new_rows, prev_rows, self.engine)
        logger.debug("Column diff for %s:%s matched %d row(s)", model, op.value, matched)

    def _spawn(
        self, coro: Coroutine[Any, Any, Any], model: str, op: Operation, phase: str
    ) -> None:
        task = asyncio.create_task(coro, name=f"queryforge:{phase}:{model}:{op.value}")
        self._tasks.add(task)
        context = {"model": model, "operation": op.value, "phase": phase}
        task.add_done_callback(partial(self._on_task_done, context))

    def _on_task_done(self, context: dict[str, Any], task: asyncio.Task) -> None:
        """Report failures of a detached hook task."""
        self._tasks.discard(task)
        if task.cancelled():
            return

        exc = task.exception()
        if exc is None:
            return

        logger.error(
            "%s hook failed for %s:%s: %s",
            context["phase"],
            context["model"],
            context["operation"],
            exc,
            exc_info=exc,
        )

        if self.on_error is None:
            return
        try:
            self.on_error(exc, context)
        except Exception as report_exc:
            logger.error("Hook error reporter failed: %s", report_exc, exc_info=report_exc)
