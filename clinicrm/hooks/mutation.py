"""
Mutation hook: validated inserts, updates and deletes.

Every call resets the hook state, checks the connection with an
operation-specific retry budget, and either returns the affected rows or
notifies, records and re-raises the failure. Updates and deletes of rows
that only exist in the demo cache are applied to the cache.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, List, Optional

from clinicrm.db.connection import probe_connection
from clinicrm.db.remote import RemoteDataClient
from clinicrm.db.tables import TableName
from clinicrm.errors import CRMError, DataAccessError, ErrorKind, ValidationError
from clinicrm.events import EventBus, invalidate
from clinicrm.hooks.state import HookState
from clinicrm.logging import get_logger
from clinicrm.notify import Notifier
from clinicrm.storage.cache import DemoCache, is_demo_id

logger = get_logger(__name__)

# Connection-check retries per operation
INSERT_RETRIES = 3
UPDATE_RETRIES = 1


class MutationHook:
    """Writes to the remote store on behalf of a view."""

    def __init__(
        self,
        remote: RemoteDataClient,
        notifier: Optional[Notifier] = None,
        events: Optional[EventBus] = None,
        retry_delay: float = 1.0,
        cache: Optional[DemoCache] = None,
    ):
        self.remote = remote
        self.notifier = notifier
        self.events = events
        self.retry_delay = retry_delay
        self.cache = cache
        self._state = HookState()

    @property
    def loading(self) -> bool:
        return self._state.loading

    @property
    def error(self) -> Optional[CRMError]:
        return self._state.error

    @property
    def success_data(self) -> Optional[List[dict]]:
        return self._state.data

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def insert(self, table, row: dict) -> List[dict]:
        """Insert one row; returns the inserted rows."""

        def check(name: str) -> None:
            if not row:
                raise ValidationError("Cannot insert an empty row", field="row")

        return await self._run(
            table, "insert", INSERT_RETRIES, check,
            lambda name: self.remote.insert(name, row),
        )

    async def batch_insert(self, table, rows: List[dict]) -> List[dict]:
        """Insert many rows in one request."""

        def check(name: str) -> None:
            if not rows:
                raise ValidationError("Cannot insert an empty batch", field="rows")
            if any(not r for r in rows):
                raise ValidationError("Batch contains an empty row", field="rows")

        return await self._run(
            table, "batch_insert", INSERT_RETRIES, check,
            lambda name: self.remote.insert(name, list(rows)),
        )

    async def update(self, table, row_id: str, partial: dict) -> List[dict]:
        """Apply a partial update to the row with the given id."""

        def check(name: str) -> None:
            if not row_id:
                raise ValidationError("An id is required to update a row", field="id")
            if not partial:
                raise ValidationError("Nothing to update", field="partial")

        if self._cache_held(table, row_id):
            return await self._run_local(
                table, "update", check,
                lambda name: self.cache.update_row(name, row_id, partial),
            )
        return await self._run(
            table, "update", UPDATE_RETRIES, check,
            lambda name: self.remote.update(name, row_id, partial),
        )

    async def remove(self, table, row_id: str) -> List[dict]:
        """
        Delete the row with the given id; returns the deleted rows.

        Deleting a cache-held patient also drops its cached follow-ups.
        """

        def check(name: str) -> None:
            if not row_id:
                raise ValidationError("An id is required to delete a row", field="id")

        if self._cache_held(table, row_id):
            return await self._run_local(
                table, "remove", check,
                lambda name: self.cache.remove_row(name, row_id),
            )
        return await self._run(
            table, "remove", UPDATE_RETRIES, check,
            lambda name: self.remote.delete(name, row_id),
        )

    def _cache_held(self, table: Any, row_id: Optional[str]) -> bool:
        if self.cache is None or not row_id or not is_demo_id(row_id):
            return False
        try:
            return self.cache.supports(TableName(table).value)
        except ValueError:
            return False

    # -------------------------------------------------------------------------
    # Plumbing
    # -------------------------------------------------------------------------

    async def _run(
        self,
        table,
        operation: str,
        retries: int,
        check: Callable[[str], None],
        perform: Callable[[str], Awaitable[List[dict]]],
    ) -> List[dict]:
        self._state.begin()
        try:
            name = self._table_name(table)
            check(name)

            probe_error = await probe_connection(
                self.remote, name, retries=retries, retry_delay=self.retry_delay
            )
            if probe_error is not None:
                if probe_error.is_permission_denied:
                    raise probe_error
                raise DataAccessError(
                    "Unable to connect to the database",
                    kind=ErrorKind.CONNECTIVITY,
                    table=name,
                    operation=operation,
                )

            rows = await perform(name)
        except CRMError as e:
            self._fail(table, operation, e)
            raise
        except Exception as e:
            error = DataAccessError(str(e), table=str(table), operation=operation)
            self._fail(table, operation, error)
            raise error from e

        self._state.succeed(rows)
        logger.info(f"{operation} on '{name}' affected {len(rows)} row(s)")
        invalidate(self.events, name)
        return rows

    async def _run_local(
        self,
        table,
        operation: str,
        check: Callable[[str], None],
        perform: Callable[[str], List[dict]],
    ) -> List[dict]:
        self._state.begin()
        try:
            name = self._table_name(table)
            check(name)
            rows = perform(name)
        except CRMError as e:
            self._fail(table, operation, e)
            raise

        self._state.succeed(rows)
        logger.info(f"{operation} on cached '{name}' affected {len(rows)} row(s)")
        tables = [name]
        if operation == "remove" and name == TableName.PATIENTS.value:
            tables.append(TableName.FOLLOW_UPS.value)
        invalidate(self.events, *tables)
        return rows

    @staticmethod
    def _table_name(table) -> str:
        try:
            return TableName(table).value
        except ValueError:
            raise ValidationError(f"Unknown table: {table!r}", field="table")

    def _fail(self, table, operation: str, error: CRMError) -> None:
        logger.error(f"{operation} on '{table}' failed: {error}")
        self._state.fail(error)
        if self.notifier is not None:
            self.notifier.error(_user_message(operation, error))


def _user_message(operation: str, error: CRMError) -> str:
    if error.kind == ErrorKind.VALIDATION:
        return error.message
    if error.kind == ErrorKind.PERMISSION_DENIED:
        return "You do not have permission to change this data"
    if error.kind in (ErrorKind.CONNECTIVITY, ErrorKind.TRANSIENT):
        return "Unable to connect to the database. Please try again"
    action = operation.replace("_", " ")
    return f"Failed to {action}: {error.message}"
