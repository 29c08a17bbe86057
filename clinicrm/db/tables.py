"""The fixed set of remote tables."""

from enum import Enum


class TableName(str, Enum):
  PATIENTS = "patients"
  FOLLOW_UPS = "follow_ups"
  CLINICS = "clinics"
  PROFILES = "profiles"
  SETTINGS = "settings"


# Tables whose views fall back to the local demo cache
DEMO_TABLES = frozenset({TableName.PATIENTS.value, TableName.FOLLOW_UPS.value})


def table_name(table) -> str:
  """
  Normalise a TableName or plain string to the table's name.

  Raises:
    ValueError: If the name is not one of the known tables.
  """
  return TableName(table).value
