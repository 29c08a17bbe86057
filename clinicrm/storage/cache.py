"""
Local shadow copy of demo patients and follow-ups.

Views fall back to these rows when the remote store returns nothing.
Rows whose id carries the `demo-` prefix were never stored remotely, so
edits to them are applied here instead.
"""

from __future__ import annotations

from typing import Any, Dict, List

from clinicrm.logging import get_logger
from clinicrm.storage.store import LocalStore

logger = get_logger(__name__)

DEMO_PATIENTS_KEY = "demo_patients"
DEMO_FOLLOW_UPS_KEY = "demo_follow_ups"
DEMO_ID_PREFIX = "demo-"

# Tables that support the demo fallback, mapped to their storage keys
DEMO_KEYS = {
    "patients": DEMO_PATIENTS_KEY,
    "follow_ups": DEMO_FOLLOW_UPS_KEY,
}


def is_demo_id(row_id) -> bool:
    """Whether an id was fabricated locally rather than assigned by the store."""
    return str(row_id).startswith(DEMO_ID_PREFIX)


class DemoCache:
    """Cached demo rows, keyed `demo_<table>`."""

    def __init__(self, store: LocalStore):
        self.store = store

    @staticmethod
    def supports(table: str) -> bool:
        return table in DEMO_KEYS

    def rows(self, table: str) -> List[Dict[str, Any]]:
        """Cached rows for a table; empty for unsupported tables or bad data."""
        key = DEMO_KEYS.get(table)
        if key is None:
            return []
        value = self.store.get(key)
        if value is None:
            return []
        if not isinstance(value, list):
            logger.warning(f"Discarding malformed demo cache entry '{key}'")
            return []
        return [row for row in value if isinstance(row, dict)]

    def has_rows(self, table: str) -> bool:
        return bool(self.rows(table))

    def save(self, patients: List[Dict[str, Any]], follow_ups: List[Dict[str, Any]]) -> None:
        self.store.set(DEMO_PATIENTS_KEY, patients)
        self.store.set(DEMO_FOLLOW_UPS_KEY, follow_ups)
        logger.info(f"Cached {len(patients)} demo patients and {len(follow_ups)} follow-ups")

    def replace(self, table: str, rows: List[Dict[str, Any]]) -> None:
        key = DEMO_KEYS[table]
        self.store.set(key, rows)

    def update_row(self, table: str, row_id: str, partial: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Merge `partial` into the cached row with this id; returns the updated rows."""
        rows = self.rows(table)
        updated = []
        for index, row in enumerate(rows):
            if str(row.get("id")) == str(row_id):
                rows[index] = {**row, **partial, "id": row.get("id")}
                updated.append(dict(rows[index]))
        if updated:
            self.replace(table, rows)
        return updated

    def remove_row(self, table: str, row_id: str) -> List[Dict[str, Any]]:
        """
        Drop the cached row with this id; returns the removed rows.

        Removing a patient also drops its cached follow-ups.
        """
        rows = self.rows(table)
        removed = [row for row in rows if str(row.get("id")) == str(row_id)]
        if not removed:
            return []
        self.replace(table, [row for row in rows if str(row.get("id")) != str(row_id)])

        if table == "patients":
            follow_ups = self.rows("follow_ups")
            kept = [f for f in follow_ups if str(f.get("patient_id")) != str(row_id)]
            if len(kept) != len(follow_ups):
                self.replace("follow_ups", kept)
                logger.info(f"Dropped {len(follow_ups) - len(kept)} cached follow-ups of patient {row_id}")
        return removed

    def clear(self) -> None:
        for key in DEMO_KEYS.values():
            self.store.remove(key)
