"""
Authentication: session state machine and FastAPI dependencies.
"""

from clinicrm.auth.session import (
  AuthManager,
  AuthState,
  DEMO_ADMIN_EMAIL,
  DEMO_ADMIN_PASSWORD,
  scope_filters_for,
  static_admin_profile,
)
from clinicrm.auth.middleware import (
  Identity,
  get_auth_manager,
  set_auth_manager_provider,
  get_current_identity,
  get_admin_identity,
)

__all__ = [
  "AuthManager",
  "AuthState",
  "DEMO_ADMIN_EMAIL",
  "DEMO_ADMIN_PASSWORD",
  "scope_filters_for",
  "static_admin_profile",
  "Identity",
  "get_auth_manager",
  "set_auth_manager_provider",
  "get_current_identity",
  "get_admin_identity",
]
