"""Row diffing for column-change hooks.

Captures pre-image rows before an update, obtains post-image rows after
it, pairs them by row identifier and hands each pair to the registry's
column-hook dispatch.
"""

import asyncio
import logging
from collections.abc import Iterable
from typing import Any

from queryforge.hooks.registry import HookRegistry

logger = logging.getLogger(__name__)


class ColumnDiffEngine:
    """Fetches and correlates pre/post images for one engine.

    Reads go straight to the engine, not through the interceptor, so
    diffing never triggers hooks of its own.
    """

    def __init__(self, registry: HookRegistry, engine: Any):
        self.registry = registry
        self.engine = engine

    @property
    def id_field(self) -> str:
        return self.registry.config.id_field

    async def fetch_rows(
        self,
        model: str,
        where: dict[str, Any] | None,
        select: Iterable[str] | None = None,
    ) -> list[dict[str, Any]]:
        """Fetch rows matching a filter.

        Args:
            model: Model name
            where: Filter tree (None matches every row)
            select: Columns to project; the identifier column is always added.
                None selects every column.

        Returns:
            Matching rows as dicts
        """
        projection = None
        if select is not None:
            projection = sorted(set(select) | {self.id_field})
        return await self.engine.find_many(model, where, projection)

    async def fetch_post_image(
        self, model: str, prev_rows: list[dict[str, Any]]
    ) -> list[dict[str, Any]]:
        """Re-fetch the rows of a pre-image by identifier, all columns.

        Identifiers are used instead of the original filter because the
        update may have changed the columns the filter matched on.
        """
        ids = [row[self.id_field] for row in prev_rows if self.id_field in row]
        if not ids:
            return []
        return await self.fetch_rows(model, {self.id_field: {"in": ids}})

    async def diff(
        self,
        model: str,
        new_rows: list[dict[str, Any]],
        prev_rows: list[dict[str, Any]],
        engine: Any = None,
    ) -> int:
        """Dispatch column hooks for every new row with a matching previous row.

        Rows without a counterpart (e.g. deleted concurrently) are skipped.

        Args:
            model: Model name
            new_rows: Post-image rows
            prev_rows: Pre-image rows
            engine: Handle passed to column hooks (defaults to this engine)

        Returns:
            Number of matched row pairs dispatched
        """
        engine = self.engine if engine is None else engine
        previous = {row[self.id_field]: row for row in prev_rows if self.id_field in row}

        calls = []
        for new_row in new_rows:
            if new_row is None:
                continue
            prev_row = previous.get(new_row.get(self.id_field))
            if prev_row is None:
                continue
            calls.append(self.registry.run_column_hooks(model, new_row, prev_row, engine))

        skipped = len(new_rows) - len(calls)
        if skipped:
            logger.debug("Column diff for %s skipped %d unmatched row(s)", model, skipped)

        results = await asyncio.gather(*calls, return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return len(calls)
