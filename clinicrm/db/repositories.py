"""
Repository classes for the tables that are not served through query hooks.

Each repository wraps RemoteDataClient for one table and speaks in
models rather than raw rows.
"""

from typing import Any, Optional

from clinicrm.db.remote import RemoteDataClient
from clinicrm.db.tables import TableName
from clinicrm.models import Clinic, Profile, Settings


class BaseRepository:
  """Base class for all repositories."""

  table_name: TableName

  def __init__(self, remote: RemoteDataClient):
    self._remote = remote

  def _to_dict(self, obj: Any) -> dict:
    """Convert object to dict for storage."""
    if hasattr(obj, "model_dump"):
      return obj.model_dump(mode="json", exclude_none=True)
    elif isinstance(obj, dict):
      return obj
    else:
      raise ValueError(f"Cannot convert {type(obj)} to dict")


class ProfileRepository(BaseRepository):
  """Repository for user profiles (doctors and admins)."""

  table_name = TableName.PROFILES

  async def get_by_id(self, user_id: str) -> Optional[Profile]:
    row = await self._remote.find_one(self.table_name, "id", str(user_id))
    return Profile.model_validate(row) if row else None

  async def get_by_email(self, email: str) -> Optional[Profile]:
    row = await self._remote.find_one(self.table_name, "email", email)
    return Profile.model_validate(row) if row else None

  async def create(self, profile: Profile) -> Profile:
    rows = await self._remote.insert(self.table_name, self._to_dict(profile))
    return Profile.model_validate(rows[0]) if rows else profile


class ClinicRepository(BaseRepository):
  """Repository for clinics."""

  table_name = TableName.CLINICS

  async def get_all(self) -> list[Clinic]:
    rows = await self._remote.select(self.table_name)
    return [Clinic.model_validate(row) for row in rows]

  async def names_by_id(self) -> dict[str, str]:
    """Map of clinic id to clinic name."""
    return {clinic.id: clinic.name for clinic in await self.get_all()}


class SettingsRepository(BaseRepository):
  """Repository for per-clinic outreach settings."""

  table_name = TableName.SETTINGS

  async def get_for_clinic(self, clinic_id: str) -> Optional[Settings]:
    row = await self._remote.find_one(self.table_name, "clinic_id", clinic_id)
    return Settings.model_validate(row) if row else None

  async def save(self, settings: Settings) -> Settings:
    """Update existing settings by id, or insert new ones."""
    data = self._to_dict(settings)
    if settings.id:
      data.pop("id", None)
      rows = await self._remote.update(self.table_name, settings.id, data)
    else:
      rows = await self._remote.insert(self.table_name, data)
    return Settings.model_validate(rows[0]) if rows else settings
