"""
Row-level access to the remote store.

The Supabase Python client is synchronous; each request is built and
executed in a worker thread so the event loop stays free. Every failure
comes back as a DataAccessError carrying a classified ErrorKind.
"""

import asyncio
from typing import Any, Callable, Optional

from clinicrm.db.filters import OrderBy, apply_filters, apply_ordering, page_range
from clinicrm.db.tables import table_name
from clinicrm.errors import to_data_access_error
from clinicrm.logging import get_logger

logger = get_logger(__name__)

# Matches no real row; PostgREST refuses a DELETE without a predicate
NIL_UUID = "00000000-0000-0000-0000-000000000000"


class RemoteDataClient:
  """Async CRUD over the Supabase tables."""

  def __init__(self, client):
    """
    Args:
      client: A SupabaseClient (or anything exposing `table(name)`).
    """
    self._client = client

  @property
  def client(self):
    return self._client

  async def _execute(self, table: str, operation: str, build: Callable[[Any], Any]):
    def run():
      return build(self._client.table(table)).execute()

    try:
      return await asyncio.to_thread(run)
    except Exception as e:
      error = to_data_access_error(e, table=table, operation=operation)
      logger.error(f"{operation} on '{table}' failed ({error.kind.value}): {error.message}")
      raise error from e

  async def probe(self, table) -> int:
    """Zero-row exact-count request; returns the row count."""
    name = table_name(table)
    response = await self._execute(
      name, "probe", lambda t: t.select("*", count="exact", head=True)
    )
    return response.count or 0

  async def count(self, table, filters: Optional[dict] = None) -> int:
    """Exact number of rows matching the filters."""
    name = table_name(table)
    response = await self._execute(
      name, "count",
      lambda t: apply_filters(t.select("*", count="exact", head=True), filters),
    )
    return response.count or 0

  async def select(
    self,
    table,
    columns: str = "*",
    filters: Optional[dict] = None,
    order_by: Optional[OrderBy] = None,
    page: int = 0,
    limit: Optional[int] = None,
  ) -> list[dict]:
    """
    Fetch rows matching the filters.

    Rows are ordered by `order_by` then id. With a limit, only the
    requested zero-based page is returned.
    """
    name = table_name(table)

    def build(t):
      query = apply_ordering(apply_filters(t.select(columns), filters), order_by)
      if limit is not None:
        start, end = page_range(page, limit)
        query = query.range(start, end)
      return query

    response = await self._execute(name, "select", build)
    return response.data or []

  async def find_one(self, table, column: str, value: Any) -> Optional[dict]:
    """First row whose column equals value, or None."""
    name = table_name(table)
    response = await self._execute(
      name, "select", lambda t: t.select("*").eq(column, value).limit(1)
    )
    return response.data[0] if response.data else None

  async def insert(self, table, rows) -> list[dict]:
    """Insert one row (dict) or many (list of dicts); returns inserted rows."""
    name = table_name(table)
    response = await self._execute(name, "insert", lambda t: t.insert(rows))
    return response.data or []

  async def update(self, table, row_id: str, partial: dict) -> list[dict]:
    name = table_name(table)
    response = await self._execute(
      name, "update", lambda t: t.update(partial).eq("id", row_id)
    )
    return response.data or []

  async def delete(self, table, row_id: str) -> list[dict]:
    """Delete a row by id; returns the deleted rows."""
    name = table_name(table)
    response = await self._execute(name, "delete", lambda t: t.delete().eq("id", row_id))
    return response.data or []

  async def delete_all(self, table) -> int:
    """Delete every row of a table; returns how many were deleted."""
    name = table_name(table)
    response = await self._execute(
      name, "delete_all", lambda t: t.delete().neq("id", NIL_UUID)
    )
    return len(response.data or [])
