"""
Profile and session models.

A Profile is the clinic-staff record linked to a Supabase auth user; its
role decides which patients the user may see.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel


# Inert token value carried by bypass sessions
BYPASS_TOKEN = "bypass"


class UserRole(str, Enum):
  """User roles for access control."""

  ADMIN = "admin"
  DOCTOR = "doctor"


class Profile(BaseModel):
  """
  Staff profile.

  Admins see every patient; doctors see only patients assigned to them.
  """

  id: str
  name: str
  email: str
  role: UserRole = UserRole.DOCTOR
  phone: Optional[str] = None
  clinic_id: Optional[str] = None
  created_at: Optional[datetime] = None
  updated_at: Optional[datetime] = None

  class Config:
    from_attributes = True

  @property
  def is_admin(self) -> bool:
    """Check if user is an admin."""
    return self.role == UserRole.ADMIN

  @property
  def is_doctor(self) -> bool:
    return self.role == UserRole.DOCTOR


class SessionInfo(BaseModel):
  """
  The current session, either issued by Supabase Auth or fabricated by the
  admin bypass. Bypass sessions carry placeholder tokens that must never be
  treated as valid credentials.
  """

  user_id: str
  email: Optional[str] = None
  access_token: str = BYPASS_TOKEN
  refresh_token: str = BYPASS_TOKEN
  expires_at: Optional[datetime] = None
  bypass: bool = False

  @property
  def is_expired(self) -> bool:
    if self.bypass or self.expires_at is None:
      return False
    now = datetime.now(self.expires_at.tzinfo) if self.expires_at.tzinfo else datetime.now()
    return now >= self.expires_at
