"""
Wiring for the outer surfaces.

CRMContext holds one instance of every collaborator the CLI and the
server need, built from configuration, plus the read paths both
surfaces share (scoped patient lists, the merged follow-up view and the
dashboard).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from clinicrm.auth.session import AuthManager, scope_filters_for
from clinicrm.config import AppConfig, get_app_config
from clinicrm.db.client import SupabaseClient, get_client
from clinicrm.db.filters import OrderBy
from clinicrm.db.remote import RemoteDataClient
from clinicrm.db.repositories import ClinicRepository, ProfileRepository, SettingsRepository
from clinicrm.db.tables import TableName
from clinicrm.errors import AuthorizationError, CRMError
from clinicrm.events import EventBus
from clinicrm.hooks.mutation import MutationHook
from clinicrm.hooks.query import QueryHook, QueryOptions, QueryResult
from clinicrm.logging import get_logger
from clinicrm.models import MergedFollowUp, Profile
from clinicrm.notify import Notifier
from clinicrm.services.analytics import DashboardStats, compute_dashboard
from clinicrm.services.bulk_import import BulkImporter
from clinicrm.services.demo_data import DemoDataGenerator
from clinicrm.services.followups import filter_for_profile, merge_follow_ups
from clinicrm.services.outreach import OutreachWindow, load_outreach_window
from clinicrm.storage import DemoCache, JsonFileStore, LocalSessionStore, LocalStore, SessionStore

logger = get_logger(__name__)

# Upper bound on rows pulled for whole-table views (dashboard, follow-ups)
ALL_ROWS_LIMIT = 1000


@dataclass
class CRMContext:
    config: AppConfig
    client: SupabaseClient
    remote: RemoteDataClient
    store: LocalStore
    cache: DemoCache
    events: EventBus
    notifier: Notifier
    auth: AuthManager
    profiles: ProfileRepository
    clinics: ClinicRepository
    settings: SettingsRepository
    _hooks: List[QueryHook] = field(default_factory=list)

    # -------------------------------------------------------------------------
    # Hooks and services
    # -------------------------------------------------------------------------

    def query(self, table, **options) -> QueryHook:
        """A query hook on a table, attached to the event bus."""
        if "limit" not in options:
            options["limit"] = self.config.page_size
        hook = QueryHook(
            self.remote,
            table,
            QueryOptions(**options),
            cache=self.cache,
            notifier=self.notifier,
            events=self.events,
            retry_delay=self.config.retry_delay,
        )
        hook.start()
        self._hooks.append(hook)
        return hook

    def mutations(self) -> MutationHook:
        return MutationHook(
            self.remote,
            notifier=self.notifier,
            events=self.events,
            retry_delay=self.config.retry_delay,
            cache=self.cache,
        )

    def demo_generator(self, rng=None) -> DemoDataGenerator:
        return DemoDataGenerator(
            self.remote, self.auth, self.cache,
            notifier=self.notifier, events=self.events, rng=rng,
        )

    def importer(self, profile: Optional[Profile] = None) -> BulkImporter:
        profile = profile or self.auth.profile
        if profile is None:
            raise AuthorizationError("A staff profile is required to import patients")
        return BulkImporter(self.mutations(), profile, notifier=self.notifier)

    def close(self) -> None:
        for hook in self._hooks:
            hook.close()
        self._hooks.clear()

    # -------------------------------------------------------------------------
    # Shared read paths
    # -------------------------------------------------------------------------

    async def fetch(self, table, **options) -> QueryResult:
        """Run a one-off query and release its hook."""
        hook = self.query(table, **options)
        try:
            return await hook.refetch()
        finally:
            hook.close()
            self._hooks.remove(hook)

    async def patients(
        self,
        profile: Optional[Profile],
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[OrderBy] = None,
        page: int = 0,
        limit: Optional[int] = None,
    ) -> QueryResult:
        """Patients visible to a profile, narrowed by the given filters."""
        scoped = {**(filters or {}), **scope_filters_for(profile)}
        return await self.fetch(
            TableName.PATIENTS,
            filters=scoped,
            order_by=order_by,
            page=page,
            limit=limit or self.config.page_size,
        )

    async def _clinic_names(self) -> Dict[str, str]:
        try:
            return await self.clinics.names_by_id()
        except CRMError as e:
            logger.warning(f"Clinic names unavailable: {e}")
            return {}

    async def follow_up_view(self, profile: Optional[Profile]) -> List[MergedFollowUp]:
        """Every follow-up the profile may see, joined with patient and clinic names."""
        patients = await self.patients(profile, limit=ALL_ROWS_LIMIT)
        follow_ups = await self.fetch(
            TableName.FOLLOW_UPS,
            order_by=OrderBy("date", ascending=False),
            limit=ALL_ROWS_LIMIT,
        )
        merged = merge_follow_ups(follow_ups.data, patients.data, await self._clinic_names())
        return filter_for_profile(merged, profile)

    async def dashboard(self, profile: Optional[Profile]) -> DashboardStats:
        patients = await self.fetch(
            TableName.PATIENTS,
            order_by=OrderBy("created_at", ascending=False),
            limit=ALL_ROWS_LIMIT,
        )
        follow_ups = await self.fetch(
            TableName.FOLLOW_UPS,
            order_by=OrderBy("created_at", ascending=False),
            limit=ALL_ROWS_LIMIT,
        )
        return compute_dashboard(patients.data, follow_ups.data, profile)

    async def outreach_window(self, clinic_id: Optional[str]) -> OutreachWindow:
        return await load_outreach_window(self.settings, clinic_id)


def build_context(
    client: Optional[SupabaseClient] = None,
    store: Optional[LocalStore] = None,
    session_store: Optional[SessionStore] = None,
    notifier: Optional[Notifier] = None,
    config: Optional[AppConfig] = None,
) -> CRMContext:
    """
    Assemble a context from configuration.

    Defaults: the anon-key Supabase client, a JSON file store under
    CLINICRM_STORAGE_DIR, and a bypass record kept in that store.
    """
    config = config or get_app_config()
    client = client or get_client()
    store = store if store is not None else JsonFileStore(config.storage_dir)
    session_store = session_store or LocalSessionStore(store)
    notifier = notifier or Notifier()
    events = EventBus()

    remote = RemoteDataClient(client)
    profiles = ProfileRepository(remote)
    auth = AuthManager(client, profiles, session_store, events=events, notifier=notifier)

    return CRMContext(
        config=config,
        client=client,
        remote=remote,
        store=store,
        cache=DemoCache(store),
        events=events,
        notifier=notifier,
        auth=auth,
        profiles=profiles,
        clinics=ClinicRepository(remote),
        settings=SettingsRepository(remote),
    )
