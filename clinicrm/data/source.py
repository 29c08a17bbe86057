"""
Row sources for query hooks.

A DataSource answers a filtered, ordered, paged read for one table. The
FallbackDataSource tries its sources in a declared order and serves the
first one that has rows, so the demo cache only ever shows through when
the remote store is empty.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional

from clinicrm.db.filters import OrderBy, match_row, paginate, sort_rows
from clinicrm.db.remote import RemoteDataClient
from clinicrm.db.tables import DEMO_TABLES, table_name
from clinicrm.logging import get_logger
from clinicrm.storage.cache import DemoCache

logger = get_logger(__name__)

REMOTE = "remote"
CACHE = "cache"


@dataclass
class SourcedRows:
    """Rows for one page plus the total matching count, tagged by origin."""
    origin: str
    rows: List[dict] = field(default_factory=list)
    count: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.rows


class DataSource(ABC):
    """Something that can answer a table read."""

    name: str = ""

    @abstractmethod
    async def fetch(
        self,
        table: str,
        columns: str = "*",
        filters: Optional[dict] = None,
        order_by: Optional[OrderBy] = None,
        page: int = 0,
        limit: int = 100,
    ) -> SourcedRows:
        """Return the requested page and the total count of matching rows."""

    async def has_rows(self, table: str) -> bool:
        """Whether the table holds any rows at all, ignoring filters."""
        result = await self.fetch(table, limit=1)
        return result.count > 0


class RemoteSource(DataSource):
    """Reads from the Supabase tables."""

    name = REMOTE

    def __init__(self, remote: RemoteDataClient):
        self.remote = remote

    async def fetch(self, table, columns="*", filters=None, order_by=None, page=0, limit=100):
        count = await self.remote.count(table, filters)
        rows = await self.remote.select(
            table,
            columns=columns,
            filters=filters,
            order_by=order_by,
            page=page,
            limit=limit,
        )
        return SourcedRows(origin=self.name, rows=rows, count=count)

    async def has_rows(self, table):
        return await self.remote.count(table) > 0


def _project(row: dict, columns: str) -> dict:
    if columns.strip() == "*":
        return dict(row)
    wanted = [c.strip() for c in columns.split(",") if c.strip()]
    return {c: row.get(c) for c in wanted}


class CacheSource(DataSource):
    """Reads demo rows from the local cache with the remote filter rules."""

    name = CACHE

    def __init__(self, cache: DemoCache):
        self.cache = cache

    async def fetch(self, table, columns="*", filters=None, order_by=None, page=0, limit=100):
        matching = [row for row in self.cache.rows(table) if match_row(row, filters)]
        ordered = sort_rows(matching, order_by)
        rows = [_project(row, columns) for row in paginate(ordered, page, limit)]
        return SourcedRows(origin=self.name, rows=rows, count=len(matching))

    async def has_rows(self, table):
        return self.cache.has_rows(table)


class FallbackDataSource(DataSource):
    """
    Serves the first source whose table holds any rows.

    The choice looks at whole tables, not at the filtered result: a filter
    matching nothing in a populated remote table yields an empty remote
    result rather than demo rows. Filters then apply to the chosen source.

    Errors from the primary source propagate; callers decide whether an
    error permits serving the fallbacks (see `fetch_fallback`).
    """

    def __init__(self, sources: List[DataSource]):
        if not sources:
            raise ValueError("FallbackDataSource needs at least one source")
        self.sources = list(sources)
        self.name = self.sources[0].name

    async def fetch(self, table, columns="*", filters=None, order_by=None, page=0, limit=100):
        primary, *fallbacks = self.sources
        result = await primary.fetch(table, columns, filters, order_by, page, limit)
        if result.count > 0 or not result.is_empty:
            return result
        if await primary.has_rows(table):
            return result

        for source in fallbacks:
            if await source.has_rows(table):
                logger.info(f"'{table}' is empty remotely; serving rows from {source.name}")
                return await source.fetch(table, columns, filters, order_by, page, limit)
        return result

    async def fetch_fallback(
        self, table, columns="*", filters=None, order_by=None, page=0, limit=100
    ) -> Optional[SourcedRows]:
        """Filtered result from the first secondary source holding rows, or None."""
        for source in self.sources[1:]:
            if await source.has_rows(table):
                return await source.fetch(table, columns, filters, order_by, page, limit)
        return None


def source_for_table(
    table, remote: RemoteDataClient, cache: Optional[DemoCache] = None
) -> DataSource:
    """
    Build the source chain for a table: remote then demo cache for the
    demo tables, remote only for everything else.
    """
    name = table_name(table)
    if cache is not None and name in DEMO_TABLES:
        return FallbackDataSource([RemoteSource(remote), CacheSource(cache)])
    return RemoteSource(remote)
