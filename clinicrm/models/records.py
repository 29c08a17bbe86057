"""
CRM record models: patients, follow-ups, clinics and outreach settings.

Rows travel through the data layer as plain dicts (the shape PostgREST
returns); these models validate them and give generated or imported
records a single definition.
"""

from datetime import datetime, time
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator


class PatientStatus(str, Enum):
  """Lifecycle of a patient lead."""

  PENDING = "Pending"
  CONTACTED = "Contacted"
  INTERESTED = "Interested"
  NOT_INTERESTED = "Not Interested"
  BOOKED = "Booked"
  COLD = "Cold"


class ColdReason(str, Enum):
  """Why a lead went cold. Only meaningful when status is Cold."""

  NO_RESPONSE = "no-response"
  DECLINED = "declined"
  OPT_OUT = "opt-out"
  INVALID_CONTACT = "invalid-contact"
  BUDGET_CONSTRAINTS = "budget-constraints"


class InteractionOutcome(str, Enum):
  """Patient response to an outreach attempt."""

  YES = "Yes"
  NO = "No"
  MAYBE = "Maybe"
  NO_ANSWER = "No Answer"
  OPT_OUT = "Opt-out"


class PreferredTime(str, Enum):
  MORNING = "Morning"
  AFTERNOON = "Afternoon"
  EVENING = "Evening"


class PreferredChannel(str, Enum):
  CALL = "Call"
  SMS = "SMS"
  EMAIL = "Email"


class Patient(BaseModel):
  """
  A patient lead tracked by the clinic.

  `cold_reason` is set if and only if `status` is Cold.
  """

  id: Optional[str] = None
  name: str = Field(..., min_length=1)
  age: Optional[int] = Field(None, ge=0)
  gender: Optional[str] = None
  phone: str = Field(..., min_length=1)
  email: Optional[str] = None

  # Treatment
  treatment_category: Optional[str] = None
  treatment_type: Optional[str] = None
  price: Optional[float] = Field(None, ge=0)

  # Assignment
  doctor_id: Optional[str] = None
  clinic_id: Optional[str] = None

  # Lifecycle
  status: PatientStatus = PatientStatus.PENDING
  cold_reason: Optional[ColdReason] = None
  follow_up_required: bool = True
  last_interaction: Optional[datetime] = None
  last_interaction_outcome: Optional[InteractionOutcome] = None

  # Follow-up preferences
  preferred_time: Optional[PreferredTime] = None
  preferred_channel: Optional[PreferredChannel] = None
  availability_preferences: Optional[str] = None

  notes: Optional[str] = None
  script: Optional[str] = None

  # Audit
  created_at: Optional[datetime] = None
  last_modified: Optional[datetime] = None
  last_modified_by: Optional[str] = None

  class Config:
    from_attributes = True

  @model_validator(mode="after")
  def check_cold_reason(self) -> "Patient":
    if self.status == PatientStatus.COLD and self.cold_reason is None:
      raise ValueError("cold_reason is required when status is Cold")
    if self.status != PatientStatus.COLD and self.cold_reason is not None:
      raise ValueError("cold_reason is only allowed when status is Cold")
    return self

  @property
  def is_cold(self) -> bool:
    return self.status == PatientStatus.COLD


class FollowUp(BaseModel):
  """A single call or message to a patient."""

  id: Optional[str] = None
  patient_id: Optional[str] = None   # None once the patient is deleted
  type: str
  date: str                          # YYYY-MM-DD
  time: str                          # HH:MM:SS
  notes: Optional[str] = None
  response: Optional[InteractionOutcome] = None
  created_by: Optional[str] = None
  created_at: Optional[datetime] = None

  class Config:
    from_attributes = True

  @property
  def has_response(self) -> bool:
    return self.response is not None

  @property
  def occurred_at(self) -> datetime:
    """Combined date and time of the follow-up."""
    return datetime.fromisoformat(f"{self.date}T{self.time}")


class Clinic(BaseModel):
  """A clinic that owns doctors and patients."""

  id: str
  name: str
  address: Optional[str] = None
  phone: Optional[str] = None
  email: Optional[str] = None
  created_at: Optional[datetime] = None
  updated_at: Optional[datetime] = None

  class Config:
    from_attributes = True


class Settings(BaseModel):
  """Per-clinic outreach window."""

  id: Optional[str] = None
  clinic_id: Optional[str] = None
  outreach_start_time: time = time(9, 0)
  outreach_end_time: time = time(17, 0)
  # Weekday names ("Friday") or ISO dates ("2024-12-25")
  excluded_days: list[str] = Field(default_factory=list)
  outreach_interval: int = Field(60, gt=0)  # minutes

  class Config:
    from_attributes = True

  @model_validator(mode="after")
  def check_window(self) -> "Settings":
    if self.outreach_end_time <= self.outreach_start_time:
      raise ValueError("outreach_end_time must be after outreach_start_time")
    return self


class MergedFollowUp(FollowUp):
  """
  A FollowUp enriched with display names resolved in memory.

  Built per call for presentation and never written back to the store.
  """

  patient_name: str = "Unknown Patient"
  clinic_name: str = "Unknown Clinic"
  doctor_id: Optional[str] = None
