"""
Remote store access for clinicrm.

This module provides:
- Supabase client initialization (client.py)
- Filter and ordering rules shared with the demo cache (filters.py)
- Async row-level CRUD with typed errors (remote.py)
- Connection health checks (connection.py)
- Repositories for profiles, clinics and settings (repositories.py)
"""

from clinicrm.db.client import (
  SupabaseConfig,
  SupabaseClient,
  get_client,
  get_config,
  is_configured,
  reset_clients,
)
from clinicrm.db.tables import TableName, DEMO_TABLES
from clinicrm.db.filters import OrderBy
from clinicrm.db.remote import RemoteDataClient
from clinicrm.db.connection import check_connection, probe_connection
from clinicrm.db.repositories import (
  ProfileRepository,
  ClinicRepository,
  SettingsRepository,
)

__all__ = [
  "SupabaseConfig",
  "SupabaseClient",
  "get_client",
  "get_config",
  "is_configured",
  "reset_clients",
  "TableName",
  "DEMO_TABLES",
  "OrderBy",
  "RemoteDataClient",
  "check_connection",
  "probe_connection",
  "ProfileRepository",
  "ClinicRepository",
  "SettingsRepository",
]
