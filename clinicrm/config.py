"""
Application settings for clinicrm.

Supabase credentials live in clinicrm.db.client.SupabaseConfig; everything
else the layer needs is read here from the environment.
"""

import os
from pathlib import Path
from typing import Optional


def _env_bool(name: str, default: bool = False) -> bool:
  value = os.environ.get(name)
  if value is None:
    return default
  return value.strip().lower() in ("1", "true", "yes", "on")


class AppConfig:
  """Configuration for local storage, logging and retry behaviour."""

  def __init__(self):
    self.storage_dir = Path(
      os.environ.get("CLINICRM_STORAGE_DIR", Path.home() / ".clinicrm")
    ).expanduser()
    self.log_level = os.environ.get("CLINICRM_LOG_LEVEL", "INFO")
    self.log_to_file = _env_bool("CLINICRM_LOG_TO_FILE")
    self.retry_delay = float(os.environ.get("CLINICRM_RETRY_DELAY", "1.0"))
    self.page_size = int(os.environ.get("CLINICRM_PAGE_SIZE", "100"))


_config: Optional[AppConfig] = None


def get_app_config() -> AppConfig:
  """Get the application configuration (singleton)."""
  global _config
  if _config is None:
    _config = AppConfig()
  return _config


def reset_app_config() -> None:
  """Drop the cached configuration (useful for testing)."""
  global _config
  _config = None
