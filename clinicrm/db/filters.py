"""
Filter, ordering and pagination rules.

The same rules are applied in two places: to PostgREST request builders
for the remote store, and to plain row dicts served from the demo cache.
Both must select the same rows for the same options.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Optional


@dataclass(frozen=True)
class OrderBy:
  column: str
  ascending: bool = True


# Stable tie-break so paging over equal sort keys is deterministic
SECONDARY_ORDER_COLUMN = "id"

IN = "in"
ILIKE = "ilike"
EQ = "eq"


def _plain(value: Any) -> Any:
  return value.value if isinstance(value, Enum) else value


def _is_empty(value: Any) -> bool:
  if value is None:
    return True
  if isinstance(value, str):
    return value == ""
  if isinstance(value, (list, tuple, set, frozenset)):
    return len(value) == 0
  return False


def normalize_filters(filters: Optional[dict]) -> list[tuple[str, str, Any]]:
  """
  Turn a filter mapping into (column, operator, value) predicates.

  Collections become membership tests, strings containing `%` or `*`
  become case-insensitive pattern matches (with `*` normalised to `%`),
  anything else is an equality test. Empty values are dropped.
  """
  predicates = []
  for column, value in (filters or {}).items():
    if _is_empty(value):
      continue
    if isinstance(value, (list, tuple, set, frozenset)):
      predicates.append((column, IN, [_plain(v) for v in value]))
      continue
    value = _plain(value)
    if isinstance(value, str) and ("%" in value or "*" in value):
      predicates.append((column, ILIKE, value.replace("*", "%")))
    else:
      predicates.append((column, EQ, value))
  return predicates


def apply_filters(query, filters: Optional[dict]):
  """Apply the filter mapping to a PostgREST request builder."""
  for column, op, value in normalize_filters(filters):
    if op == IN:
      query = query.in_(column, value)
    elif op == ILIKE:
      query = query.ilike(column, value)
    else:
      query = query.eq(column, value)
  return query


def apply_ordering(query, order_by: Optional[OrderBy]):
  """Order by the requested column, then by id ascending."""
  if order_by is not None and order_by.column != SECONDARY_ORDER_COLUMN:
    query = query.order(order_by.column, desc=not order_by.ascending)
    return query.order(SECONDARY_ORDER_COLUMN)
  if order_by is not None:
    return query.order(SECONDARY_ORDER_COLUMN, desc=not order_by.ascending)
  return query.order(SECONDARY_ORDER_COLUMN)


def page_range(page: int, limit: int) -> tuple[int, int]:
  """Inclusive row range for a zero-based page."""
  start = page * limit
  return start, start + limit - 1


# -----------------------------------------------------------------------------
# In-memory equivalents
# -----------------------------------------------------------------------------

def _pattern_regex(pattern: str) -> re.Pattern:
  parts = [re.escape(p) for p in pattern.split("%")]
  return re.compile("^" + ".*".join(parts).replace("_", "."), re.IGNORECASE | re.DOTALL)


def match_row(row: dict, filters: Optional[dict]) -> bool:
  """True if a row satisfies every predicate of the filter mapping."""
  for column, op, value in normalize_filters(filters):
    cell = _plain(row.get(column))
    if op == IN:
      if cell not in value:
        return False
    elif op == ILIKE:
      if cell is None or not _pattern_regex(value).match(str(cell)):
        return False
    elif cell != value:
      return False
  return True


def _sort_key(value: Any):
  value = _plain(value)
  if isinstance(value, bool):
    return int(value)
  if isinstance(value, (int, float)):
    return value
  return str(value)


def sort_rows(rows: Iterable[dict], order_by: Optional[OrderBy]) -> list[dict]:
  """
  Sort rows the way apply_ordering orders them remotely.

  Nulls sort last ascending and first descending, as Postgres orders them.
  """
  rows = sorted(rows, key=lambda r: _sort_key(r.get(SECONDARY_ORDER_COLUMN, "")))
  if order_by is None or order_by.column == SECONDARY_ORDER_COLUMN:
    if order_by is not None and not order_by.ascending:
      rows.reverse()
    return rows

  present = [r for r in rows if r.get(order_by.column) is not None]
  missing = [r for r in rows if r.get(order_by.column) is None]
  present.sort(key=lambda r: _sort_key(r[order_by.column]), reverse=not order_by.ascending)
  return present + missing if order_by.ascending else missing + present


def paginate(rows: list[dict], page: int, limit: int) -> list[dict]:
  start, end = page_range(page, limit)
  return rows[start:end + 1]
