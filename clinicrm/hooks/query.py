"""
Query hook: a filtered, ordered, paged view of one table.

The hook keeps its latest rows, total count and error, and refetches when
its options change or when a `data.invalidated` event names its table.
Each fetch carries a generation number and only the newest fetch may
publish its result.
"""

from __future__ import annotations

import asyncio
import dataclasses
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from clinicrm.data.source import DataSource, FallbackDataSource, SourcedRows, source_for_table
from clinicrm.db.connection import probe_connection
from clinicrm.db.filters import OrderBy
from clinicrm.db.remote import RemoteDataClient
from clinicrm.db.tables import table_name
from clinicrm.errors import CRMError, DataAccessError, ErrorKind, ValidationError
from clinicrm.events import DATA_INVALIDATED, EventBus
from clinicrm.hooks.state import HookState
from clinicrm.logging import get_logger
from clinicrm.notify import Notifier
from clinicrm.storage.cache import DemoCache

logger = get_logger(__name__)

QUERY_CONNECTION_RETRIES = 2


@dataclass(frozen=True)
class QueryOptions:
    columns: str = "*"
    filters: Dict[str, Any] = field(default_factory=dict)
    order_by: Optional[OrderBy] = None
    limit: int = 100
    page: int = 0
    enabled: bool = True


@dataclass
class QueryResult:
    """Snapshot of a hook after a fetch."""
    data: List[dict]
    count: int
    origin: Optional[str]
    error: Optional[CRMError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class QueryHook:
    """
    Reactive read of a single table.

    Usage:
        hook = QueryHook(remote, "patients", QueryOptions(filters={"status": "Cold"}))
        result = await hook.refetch()
    """

    def __init__(
        self,
        remote: RemoteDataClient,
        table,
        options: Optional[QueryOptions] = None,
        cache: Optional[DemoCache] = None,
        notifier: Optional[Notifier] = None,
        events: Optional[EventBus] = None,
        retry_delay: float = 1.0,
        source: Optional[DataSource] = None,
    ):
        self.remote = remote
        self.table = table_name(table)
        self.options = options or QueryOptions()
        self.notifier = notifier
        self.events = events
        self.retry_delay = retry_delay
        self.source = source or source_for_table(self.table, remote, cache)

        self.data: List[dict] = []
        self.count = 0
        self.origin: Optional[str] = None
        self._state = HookState()

        self._generation = 0
        self._tasks: Set[asyncio.Task] = set()
        self._unsubscribe = None

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def loading(self) -> bool:
        return self._state.loading

    @property
    def error(self) -> Optional[CRMError]:
        return self._state.error

    @property
    def generation(self) -> int:
        return self._generation

    def snapshot(self) -> QueryResult:
        return QueryResult(data=list(self.data), count=self.count, origin=self.origin, error=self.error)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self, events: Optional[EventBus] = None) -> None:
        """Subscribe to invalidation events so the hook refetches on changes."""
        if events is not None:
            self.events = events
        if self.events is None or self._unsubscribe is not None:
            return
        self._unsubscribe = self.events.subscribe(DATA_INVALIDATED, self._on_invalidated)

    def close(self) -> None:
        """Unsubscribe and cancel in-flight fetches; their results are discarded."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._generation += 1
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
        self._state.loading = False

    def _on_invalidated(self, payload: Dict[str, Any]) -> None:
        if self.table not in payload.get("tables", []):
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"No running loop; skipping refetch of '{self.table}'")
            return
        self._track(loop.create_task(self.refetch()))

    def _track(self, task: asyncio.Task) -> asyncio.Task:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # -------------------------------------------------------------------------
    # Fetching
    # -------------------------------------------------------------------------

    async def update(self, **changes) -> QueryResult:
        """
        Change query options; refetches only when something changed.

        Raises:
            ValidationError: For unknown option names.
        """
        known = {f.name for f in dataclasses.fields(QueryOptions)}
        unknown = set(changes) - known
        if unknown:
            raise ValidationError(f"Unknown query options: {sorted(unknown)}", field=sorted(unknown)[0])

        new_options = dataclasses.replace(self.options, **changes)
        if new_options == self.options:
            return self.snapshot()
        self.options = new_options
        return await self.refetch()

    async def refetch(self) -> QueryResult:
        """Run the query now and return the resulting snapshot."""
        self._generation += 1
        task = self._track(asyncio.ensure_future(self._fetch(self._generation)))
        # A fetch cancelled by close() completes quietly
        await asyncio.wait({task})
        return self.snapshot()

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    def _apply(self, generation: int, result: SourcedRows) -> None:
        if not self._is_current(generation):
            logger.debug(f"Discarding stale result for '{self.table}' (generation {generation})")
            return
        self.data = result.rows
        self.count = result.count
        self.origin = result.origin

    async def _fetch(self, generation: int) -> None:
        options = self.options

        if not options.enabled:
            if self._is_current(generation):
                self.data, self.count, self.origin = [], 0, None
                self._state.reset()
            return

        self._state.begin()
        try:
            probe_error = await probe_connection(
                self.remote, self.table,
                retries=QUERY_CONNECTION_RETRIES,
                retry_delay=self.retry_delay,
            )
            if probe_error is not None:
                if probe_error.is_permission_denied:
                    raise probe_error
                raise DataAccessError(
                    f"Unable to connect to the database ('{self.table}')",
                    kind=ErrorKind.CONNECTIVITY,
                    table=self.table,
                    operation="select",
                )

            result = await self.source.fetch(
                self.table,
                columns=options.columns,
                filters=options.filters,
                order_by=options.order_by,
                page=options.page,
                limit=options.limit,
            )
        except CRMError as e:
            if self._is_current(generation):
                await self._handle_error(generation, e)
            return
        except Exception as e:
            logger.error(f"Unexpected error querying '{self.table}': {e}", exc_info=True)
            if self._is_current(generation):
                await self._handle_error(generation, DataAccessError(str(e), table=self.table, operation="select"))
            return

        if self._is_current(generation):
            self._apply(generation, result)
            self._state.succeed(result.rows)
        else:
            logger.debug(f"Discarding stale result for '{self.table}' (generation {generation})")

    async def _handle_error(self, generation: int, error: CRMError) -> None:
        self.data, self.count, self.origin = [], 0, None

        if error.kind == ErrorKind.PERMISSION_DENIED:
            self._notify_warning(f"Running in demo mode: access to '{self.table}' was denied")
            if isinstance(self.source, FallbackDataSource):
                options = self.options
                fallback = await self.source.fetch_fallback(
                    self.table,
                    columns=options.columns,
                    filters=options.filters,
                    order_by=options.order_by,
                    page=options.page,
                    limit=options.limit,
                )
                if fallback is not None:
                    self._apply(generation, fallback)
        else:
            self._notify_error(f"Failed to load {self.table.replace('_', ' ')}: {error.message}")

        if self._is_current(generation):
            self._state.fail(error)

    def _notify_warning(self, message: str) -> None:
        if self.notifier is not None:
            self.notifier.warning(message)
        else:
            logger.warning(message)

    def _notify_error(self, message: str) -> None:
        if self.notifier is not None:
            self.notifier.error(message)
        else:
            logger.error(message)
