"""
Supabase connection for clinicrm.

One anon-key client per process, subject to Row Level Security. Table
requests and the password sign-in flow both go through it.
"""

import os
from typing import Optional

from supabase import create_client, Client

from clinicrm.errors import ConfigurationError

REQUIRED_ENV = ("SUPABASE_URL", "SUPABASE_ANON_KEY")


class SupabaseConfig:
  """Connection settings read from the environment."""

  def __init__(self):
    self.url = os.environ.get("SUPABASE_URL")
    self.anon_key = os.environ.get("SUPABASE_ANON_KEY")
    # Lets the server verify access tokens without a round trip to Supabase Auth
    self.jwt_secret = os.environ.get("SUPABASE_JWT_SECRET")

  def missing(self) -> list[str]:
    """Names of required variables that are not set."""
    values = {"SUPABASE_URL": self.url, "SUPABASE_ANON_KEY": self.anon_key}
    return [name for name in REQUIRED_ENV if not values[name]]

  @property
  def is_configured(self) -> bool:
    return not self.missing()

  def validate(self) -> None:
    """
    Raises:
      ConfigurationError: Naming the first missing variable.
    """
    missing = self.missing()
    if missing:
      raise ConfigurationError(
        f"{', '.join(missing)} not set; cannot reach the database",
        config_key=missing[0],
      )


class SupabaseClient:
  """
  The calls clinicrm makes on a supabase `Client`.

  Every method is synchronous; callers run them in a worker thread.
  """

  def __init__(self, client: Client):
    self._client = client

  @classmethod
  def from_config(cls, config: SupabaseConfig) -> "SupabaseClient":
    config.validate()
    return cls(create_client(config.url, config.anon_key))

  def table(self, name: str):
    """Request builder for one table."""
    return self._client.table(name)

  # -------------------------------------------------------------------------
  # Supabase Auth
  # -------------------------------------------------------------------------

  def sign_in(self, email: str, password: str):
    """Password sign-in; the response carries `user` and `session`."""
    return self._client.auth.sign_in_with_password({"email": email, "password": password})

  def sign_out(self) -> None:
    self._client.auth.sign_out()

  def get_user(self, token: Optional[str] = None):
    """The user an access token belongs to, or the signed-in user without one."""
    return self._client.auth.get_user(token) if token else self._client.auth.get_user()

  def get_session(self):
    return self._client.auth.get_session()


# -----------------------------------------------------------------------------
# Process-wide instances
# -----------------------------------------------------------------------------

_config: Optional[SupabaseConfig] = None
_client: Optional[SupabaseClient] = None


def get_config() -> SupabaseConfig:
  global _config
  if _config is None:
    _config = SupabaseConfig()
  return _config


def get_client() -> SupabaseClient:
  """
  The shared anon-key client, created on first use.

  Raises:
    ConfigurationError: If SUPABASE_URL or SUPABASE_ANON_KEY is unset.
  """
  global _client
  if _client is None:
    _client = SupabaseClient.from_config(get_config())
  return _client


def is_configured() -> bool:
  """True when the required variables are set; never raises."""
  return get_config().is_configured


def reset_clients() -> None:
  """Forget the cached config and client so the environment is re-read."""
  global _config, _client
  _config = None
  _client = None
