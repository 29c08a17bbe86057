"""
Bulk patient import from spreadsheets.

Reads the first sheet of a .csv, .xlsx or .xls file with pandas, maps the
header variants people actually use onto Patient fields, and inserts the
valid rows one at a time through the mutation hook.
"""

from __future__ import annotations

import io
import math
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Dict, List, Optional, Union

import pandas as pd
from pydantic import ValidationError as ModelValidationError

from clinicrm.db.tables import TableName
from clinicrm.errors import CRMError, ValidationError
from clinicrm.hooks.mutation import MutationHook
from clinicrm.logging import LogContext, get_logger
from clinicrm.models import Patient, PatientStatus, Profile
from clinicrm.notify import Notifier

logger = get_logger(__name__)

SUPPORTED_SUFFIXES = (".csv", ".xlsx", ".xls")

# Patient field -> accepted column headers
HEADER_ALIASES: Dict[str, List[str]] = {
    "name": ["Patient Name", "Name", "Full Name"],
    "age": ["Age"],
    "gender": ["Gender", "Sex"],
    "phone": ["Phone", "Phone Number", "Mobile"],
    "email": ["Email", "Email Address"],
    "treatment_category": ["Treatment Category", "Category"],
    "treatment_type": ["Treatment Type", "Treatment"],
    "price": ["Price (AED)", "Price"],
    "follow_up_required": ["Follow-Up Required", "Follow Up Required"],
    "status": ["Status"],
    "cold_reason": ["Cold Reason"],
    "preferred_time": ["Preferred Follow-Up Time", "Preferred Time"],
    "preferred_channel": ["Preferred Channel"],
    "availability_preferences": ["Availability Preferences", "Availability"],
    "notes": ["Notes"],
    "script": ["Script"],
}

TEMPLATE_HEADERS = [
    "Patient Name", "Age", "Gender", "Phone", "Email", "Clinic Name",
    "Doctor Name", "Treatment Category", "Treatment Type", "Price (AED)",
    "Follow-Up Required", "Preferred Time", "Preferred Channel",
    "Availability Preferences", "Notes", "Script",
]

TEMPLATE_EXAMPLE = [
    "John Doe", "35", "Male", "+971501234567", "johndoe@example.com",
    "Dubai Clinic", "Dr. Smith", "Dental", "Implant", "5000", "Yes",
    "Morning", "Call", "Weekdays", "First time patient",
    "Hello {name}, this is {clinic} following up on your {treatment} consultation.",
]

TEMPLATE_INSTRUCTIONS = [
    "Patient Import Template Instructions",
    "",
    "1. Fill in the data according to the column headers",
    "2. Do not modify the column headers",
    "3. Phone numbers should be in international format (e.g., +971501234567)",
    '4. Gender should be "Male", "Female", or "Other"',
    '5. Follow-Up Required should be "Yes" or "No"',
    '6. Preferred Time should be "Morning", "Afternoon", or "Evening"',
    '7. Preferred Channel should be "Call", "SMS", or "Email"',
    "8. Save the file as .xlsx or .csv before uploading",
    "",
    "Note: All columns except Patient Name and Phone are optional",
]


def _header_key(header: str) -> str:
    return re.sub(r"[^a-z0-9]+", "", str(header).lower())


_ALIAS_LOOKUP = {
    _header_key(alias): field_name
    for field_name, aliases in HEADER_ALIASES.items()
    for alias in aliases
}


@dataclass
class ImportReport:
    """Outcome of one import run."""
    filename: str
    success_count: int = 0
    error_count: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.success_count + self.error_count

    def add_error(self, row_number: int, message: str) -> None:
        self.error_count += 1
        self.errors.append(f"Row {row_number}: {message}")


# =============================================================================
# READING
# =============================================================================

def read_sheet(source: Union[str, Path, bytes, BinaryIO], filename: Optional[str] = None) -> pd.DataFrame:
    """
    Load the first sheet of a spreadsheet as strings.

    Args:
        source: A path, raw bytes, or a binary file object
        filename: Name used to pick the format when source is not a path

    Raises:
        ValidationError: If the file type is not supported or the file cannot be read.
    """
    if isinstance(source, (str, Path)):
        filename = filename or Path(source).name
    suffix = Path(filename or "").suffix.lower()
    if suffix not in SUPPORTED_SUFFIXES:
        raise ValidationError(
            f"Unsupported file type '{suffix or filename}'; expected .csv, .xlsx or .xls",
            field="file",
        )

    if isinstance(source, bytes):
        source = io.BytesIO(source)

    try:
        if suffix == ".csv":
            df = pd.read_csv(source, dtype=str, keep_default_na=False)
        else:
            df = pd.read_excel(source, sheet_name=0, dtype=str)
    except pd.errors.EmptyDataError:
        return pd.DataFrame()
    except Exception as e:
        # pandas, openpyxl and xlrd each raise their own types for unreadable files
        logger.warning(f"Could not read {filename}: {e}")
        raise ValidationError(f"Could not read {filename}: {e}", field="file") from e

    df.columns = [str(c).strip() for c in df.columns]
    return df.fillna("")


def map_columns(columns: List[str]) -> Dict[str, str]:
    """Map recognised column headers to Patient field names."""
    mapping = {}
    for column in columns:
        field_name = _ALIAS_LOOKUP.get(_header_key(column))
        if field_name and field_name not in mapping.values():
            mapping[column] = field_name
    return mapping


def _number(value: str, kind=float):
    value = value.strip()
    if not value:
        return None
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"not a finite number: {value!r}")
    return kind(number) if kind is int else kind(value)


def row_to_patient(record: Dict[str, str], profile: Profile) -> dict:
    """
    Build an insertable patient row from mapped spreadsheet cells.

    Raises:
        ValidationError: If required cells are missing or values are invalid.
    """
    cells = {k: str(v).strip() for k, v in record.items()}

    if not cells.get("name"):
        raise ValidationError("missing patient name", field="name")
    if not cells.get("phone"):
        raise ValidationError("missing phone number", field="phone")

    try:
        age = _number(cells.get("age", ""), int)
        price = _number(cells.get("price", ""), float)
    except (ValueError, OverflowError) as e:
        raise ValidationError(f"invalid number ({e})", field="age/price")

    row = {
        "name": cells["name"],
        "phone": cells["phone"],
        "age": age,
        "price": price,
        "follow_up_required": cells.get("follow_up_required", "") == "Yes",
        "status": cells.get("status") or PatientStatus.PENDING.value,
        "doctor_id": profile.id,
        "clinic_id": profile.clinic_id,
        "last_modified_by": profile.id,
    }
    for optional in (
        "gender", "email", "treatment_category", "treatment_type", "cold_reason",
        "preferred_time", "preferred_channel", "availability_preferences",
        "notes", "script",
    ):
        row[optional] = cells.get(optional) or None

    try:
        patient = Patient.model_validate(row)
    except ModelValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(p) for p in first.get("loc", ())) or "row"
        raise ValidationError(f"{location}: {first.get('msg')}", field=location)

    return patient.model_dump(mode="json", exclude_none=True)


# =============================================================================
# IMPORTING
# =============================================================================

class BulkImporter:
    """
    Imports patients for the signed-in staff member.

    Usage:
        importer = BulkImporter(MutationHook(remote), profile)
        report = await importer.import_file("patients.xlsx")
    """

    def __init__(self, mutations: MutationHook, profile: Profile, notifier: Optional[Notifier] = None):
        self.mutations = mutations
        self.profile = profile
        self.notifier = notifier

    def _notify(self, level: str, message: str) -> None:
        if self.notifier is not None:
            getattr(self.notifier, level)(message)

    async def import_file(self, path: Union[str, Path]) -> ImportReport:
        path = Path(path)
        return await self.import_frame(read_sheet(path), path.name)

    async def import_bytes(self, data: bytes, filename: str) -> ImportReport:
        return await self.import_frame(read_sheet(data, filename), filename)

    async def import_frame(self, df: pd.DataFrame, filename: str) -> ImportReport:
        """Insert every valid row of a loaded sheet, one at a time."""
        report = ImportReport(filename=filename)
        if df.empty:
            self._notify("error", "No data found in the file")
            return report

        mapping = map_columns(list(df.columns))
        logger.info(f"Importing {len(df)} rows from {filename} ({len(mapping)} recognised columns)")

        with LogContext(logger, f"Importing {filename}"):
            for position, (_, series) in enumerate(df.iterrows()):
                row_number = position + 2  # header is spreadsheet row 1
                record = {mapping[col]: series[col] for col in mapping}
                try:
                    patient = row_to_patient(record, self.profile)
                    await self.mutations.insert(TableName.PATIENTS, patient)
                except CRMError as e:
                    logger.warning(f"{filename} row {row_number} not imported: {e.message}")
                    report.add_error(row_number, e.message)
                    continue
                report.success_count += 1

        if report.success_count:
            self._notify("success", f"{report.success_count} patients imported successfully")
        if report.error_count:
            self._notify("error", f"{report.error_count} patients failed to import")
        return report


def write_template(path: Union[str, Path]) -> Path:
    """
    Write the import template: the header row plus one example row.

    A .xlsx path also gets an Instructions sheet; any other suffix is
    written as CSV.
    """
    path = Path(path)
    df = pd.DataFrame([TEMPLATE_EXAMPLE], columns=TEMPLATE_HEADERS)

    if path.suffix.lower() == ".xlsx":
        with pd.ExcelWriter(path, engine="openpyxl") as writer:
            df.to_excel(writer, sheet_name="Patient Template", index=False)
            pd.DataFrame({"Instructions": TEMPLATE_INSTRUCTIONS}).to_excel(
                writer, sheet_name="Instructions", index=False
            )
    else:
        df.to_csv(path, index=False)

    logger.info(f"Wrote import template to {path}")
    return path
