"""
Data models for clinicrm.
"""

from clinicrm.models.records import (
  Patient,
  PatientStatus,
  ColdReason,
  InteractionOutcome,
  PreferredTime,
  PreferredChannel,
  FollowUp,
  MergedFollowUp,
  Clinic,
  Settings,
)
from clinicrm.models.user import Profile, UserRole, SessionInfo, BYPASS_TOKEN

__all__ = [
  "Patient",
  "PatientStatus",
  "ColdReason",
  "InteractionOutcome",
  "PreferredTime",
  "PreferredChannel",
  "FollowUp",
  "MergedFollowUp",
  "Clinic",
  "Settings",
  "Profile",
  "UserRole",
  "SessionInfo",
  "BYPASS_TOKEN",
]
